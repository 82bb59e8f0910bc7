"""Tests for formula specs and OLS fitting."""

import logging

import numpy as np
import pandas as pd
import pytest

from imdb_report.base_model import (FittedModel, FormulaSpec, ModelFitError, constant_indicators, empty_levels,
                                    fit_ols, log_coefficients, log_section, setup_logging)


def test_formula_terms_and_rendering():
    spec = FormulaSpec(response='Rate', linear=('Votes', 'Duration'),
                       interaction_block=('Nudity', 'Violence', 'Alcohol'),
                       interactions=(('Duration', 'Drama'),))

    assert spec.terms() == [
        ('Votes',), ('Duration',), ('Nudity',), ('Violence',), ('Alcohol',),
        ('Nudity', 'Violence'), ('Nudity', 'Alcohol'), ('Violence', 'Alcohol'),
        ('Duration', 'Drama'),
    ]
    assert spec.formula() == ('Rate ~ Votes + Duration + Nudity + Violence + Alcohol + '
                              'Nudity:Violence + Nudity:Alcohol + Violence:Alcohol + Duration:Drama')
    assert spec.variables() == ['Rate', 'Votes', 'Duration', 'Nudity', 'Violence', 'Alcohol', 'Drama']


def test_formula_terms_are_deduplicated():
    spec = FormulaSpec(response='y', linear=('a', 'b'), interaction_block=('a', 'b'),
                       interactions=(('b', 'a'),))
    assert spec.terms() == [('a',), ('b',), ('a', 'b')]


def test_empty_formula_is_intercept_only():
    assert FormulaSpec(response='y').formula() == 'y ~ 1'


def test_formula_from_config_and_expand():
    spec = FormulaSpec.from_config({'response': 'Rate', 'linear': ['Votes', '@genres'],
                                    'interactions': [['Votes', 'Drama']]})
    expanded = spec.expand({'@genres': ['Action', 'Drama']})

    assert expanded.linear == ('Votes', 'Action', 'Drama')
    assert expanded.interactions == (('Votes', 'Drama'),)
    assert spec.linear == ('Votes', '@genres')


def test_formula_from_config_requires_response():
    with pytest.raises(ValueError):
        FormulaSpec.from_config({'linear': ['a']})


def test_from_terms_round_trip():
    spec = FormulaSpec(response='y', linear=('a',), interaction_block=('b', 'c'))
    rebuilt = FormulaSpec.from_terms('y', spec.terms())
    assert rebuilt.terms() == spec.terms()


def test_two_group_means_are_reproduced():
    data = pd.DataFrame({
        'Rate': [5.0, 2.0, 7.0, 4.0, 9.0],
        'Action': [True, False, True, False, True],
    })
    model = fit_ols(data, FormulaSpec(response='Rate', linear=('Action',)), name='two groups')

    # baseline group (Action false) mean 3.0, Action true mean 7.0
    assert model.params['Intercept'] == pytest.approx(3.0)
    assert model.params['Action[T.True]'] == pytest.approx(4.0)
    np.testing.assert_allclose(model.fittedvalues, [7.0, 3.0, 7.0, 3.0, 7.0])


def test_residuals_have_zero_mean(linear_frame):
    spec = FormulaSpec(response='y', linear=('x1', 'x2', 'group'))
    model = fit_ols(linear_frame, spec)

    assert model.resid.mean() == pytest.approx(0.0, abs=1e-10)
    assert model.params['x1'] == pytest.approx(2.0, abs=0.2)
    assert model.params['x2'] == pytest.approx(-1.5, abs=0.2)
    assert model.nobs == len(linear_frame)
    assert 0.0 < model.rsquared_adj <= 1.0


def test_categorical_baseline_is_first_level(linear_frame):
    model = fit_ols(linear_frame, FormulaSpec(response='y', linear=('group',)))
    assert 'group[T.b]' in model.exog_names
    assert 'group[T.c]' in model.exog_names
    assert 'group[T.a]' not in model.exog_names


def test_rank_deficient_design_raises(linear_frame):
    data = linear_frame.assign(x3=2.0 * linear_frame['x1'] - linear_frame['x2'])
    spec = FormulaSpec(response='y', linear=('x1', 'x2', 'x3'))

    with pytest.raises(ModelFitError) as excinfo:
        fit_ols(data, spec, name='collinear')
    assert excinfo.value.aliased == ['x3']


def test_missing_column_raises(linear_frame):
    with pytest.raises(ValueError, match='x9'):
        fit_ols(linear_frame, FormulaSpec(response='y', linear=('x9',)))


def test_refit_returns_new_model(linear_frame):
    model = fit_ols(linear_frame, FormulaSpec(response='y', linear=('x1', 'x2')), name='full')
    smaller = model.refit(spec=FormulaSpec(response='y', linear=('x1',)), name='smaller')

    assert isinstance(smaller, FittedModel)
    assert smaller is not model
    assert model.spec.linear == ('x1', 'x2')
    assert smaller.data is model.data
    with pytest.raises(Exception):
        model.name = 'changed'


def test_predict_and_summary(linear_frame):
    model = fit_ols(linear_frame, FormulaSpec(response='y', linear=('x1', 'x2', 'group')))
    predicted = model.predict(linear_frame.head(5))

    np.testing.assert_allclose(predicted, model.fittedvalues.head(5))
    summary = model.summary_dict()
    assert summary['n'] == len(linear_frame)
    assert summary['formula'] == 'y ~ x1 + x2 + group'
    table = model.coefficient_table()
    assert list(table.columns) == ['coefficient', 'std_error', 't_value', 'p_value']


def test_logging_helpers(tmp_path, linear_frame, caplog):
    log = setup_logging('imdb_report_test', log_dir=tmp_path, log_suffix='unit')
    log.propagate = True
    model = fit_ols(linear_frame, FormulaSpec(response='y', linear=('x1', 'x2')))

    with caplog.at_level(logging.INFO, logger='imdb_report_test'):
        log_section(log, 'coefficients')
        log_coefficients(log, model)

    assert (tmp_path / 'imdb_report_test_log_unit.txt').exists()
    assert 'COEFFICIENTS' in caplog.text
    assert 'Significant Terms' in caplog.text


def test_drop_variables_removes_every_term_using_them():
    spec = FormulaSpec(response='Rate', linear=('Votes', 'Horror'), interaction_block=('Date', 'Horror', 'Duration'),
                       interactions=(('Duration', 'Drama'), ('log_Votes', 'Horror')))
    reduced = spec.drop_variables(['Horror'])

    assert 'Horror' not in reduced.variables()
    assert reduced.terms() == [('Votes',), ('Date',), ('Duration',), ('Date', 'Duration'), ('Duration', 'Drama')]
    assert reduced.response == 'Rate'


def test_constant_indicators_and_empty_levels(linear_frame):
    data = linear_frame.assign(
        flag=False,
        mixed=linear_frame['x1'] > 0,
        group=pd.Categorical(linear_frame['group'], categories=['a', 'b', 'c', 'd']),
    )
    assert constant_indicators(data) == ['flag']
    assert constant_indicators(data, ['mixed', 'x1']) == []
    assert empty_levels(data) == {'group': ['d']}


def test_empty_baseline_level_is_named(linear_frame):
    data = linear_frame.assign(group=pd.Categorical(linear_frame['group'], categories=['z', 'a', 'b', 'c']))

    with pytest.raises(ModelFitError) as excinfo:
        fit_ols(data, FormulaSpec(response='y', linear=('x1', 'group')), name='empty baseline')
    assert excinfo.value.causes == ["group has no rows for level(s) ['z']"]
    assert "'z'" in str(excinfo.value)


def test_constant_indicator_is_named(linear_frame):
    data = linear_frame.assign(Film_Noir=False)

    with pytest.raises(ModelFitError) as excinfo:
        fit_ols(data, FormulaSpec(response='y', linear=('x1', 'Film_Noir')))
    causes = excinfo.value.causes
    assert causes[0] == 'Film_Noir is constant (False)'
    assert 'design column Film_Noir[T.True] is all zero' in causes
