"""Tests for loading and cleaning the raw IMDb table."""

import pandas as pd
import pytest

from imdb_report.data_loader import (ADVISORY_COLUMNS, ADVISORY_LEVELS, SENTINEL, clean_records,
                                     load_and_clean, load_raw)


def test_cleaning_counts_per_stage(raw_frame):
    clean, report = clean_records(raw_frame)

    assert report.n_raw == 10
    assert report.dropped_missing == 1
    assert report.dropped_sentinel == 2
    assert report.dropped_not_film == 1
    assert report.dropped_duplicates == 1
    assert report.dropped_coercion == 2
    assert report.n_clean == 3
    assert report.n_raw - report.total_dropped == report.n_clean == len(clean)


def test_cleaned_records_satisfy_invariants(raw_frame):
    clean, _ = clean_records(raw_frame)

    assert not clean.isna().any().any()
    assert 'Type' not in clean.columns
    assert 'Episodes' not in clean.columns
    for col in ['Rate'] + ADVISORY_COLUMNS:
        assert not (clean[col].astype(str) == SENTINEL).any()
    assert not clean.duplicated().any()
    assert list(clean['Name']) == ['Good One', 'Good Two', 'Good Three']


def test_numeric_coercion_strips_grouping_separators(raw_frame):
    clean, _ = clean_records(raw_frame)

    assert clean['Votes'].tolist() == [1234, 98, 12345678]
    assert clean['Rate'].tolist() == [7.1, 6.5, 8.0]
    assert pd.api.types.is_numeric_dtype(clean['Duration'])
    assert pd.api.types.is_numeric_dtype(clean['Date'])


def test_categorical_vocabularies(raw_frame):
    clean, _ = clean_records(raw_frame)

    assert list(clean['Certificate'].cat.categories) == ['PG-13', 'R']
    for col in ADVISORY_COLUMNS:
        assert isinstance(clean[col].dtype, pd.CategoricalDtype)
        assert set(clean[col].cat.categories) <= set(ADVISORY_LEVELS)
    # unused levels are dropped but the remaining ones keep vocabulary order
    assert list(clean['Nudity'].cat.categories) == ['None', 'Mild']


def test_no_rows_survive_returns_empty_frame(raw_frame):
    series_only = raw_frame.assign(Type='Series')
    clean, report = clean_records(series_only)

    assert clean.empty
    assert report.n_clean == 0


def test_load_raw_keeps_none_advisory_level(tmp_path, raw_frame):
    path = tmp_path / 'imdb.csv'
    raw_frame.to_csv(path, index=False)

    raw = load_raw(path)
    assert (raw['Violence'] == 'None').any()

    clean, report = load_and_clean(path)
    assert report.n_clean == 3
    assert 'None' in list(clean['Violence'].cat.categories)


def test_load_raw_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_raw(tmp_path / 'nope.csv')


def test_load_raw_missing_columns(tmp_path, raw_frame):
    path = tmp_path / 'imdb.csv'
    raw_frame.drop(columns=['Votes']).to_csv(path, index=False)
    with pytest.raises(ValueError, match='Votes'):
        load_raw(path)
