"""Shared synthetic data for the test suite (no real dataset needed)."""

import json

import numpy as np
import pandas as pd
import pytest

RAW_COLUMNS = ['Name', 'Date', 'Rate', 'Votes', 'Genre', 'Duration', 'Type', 'Certificate',
               'Episodes', 'Nudity', 'Violence', 'Profanity', 'Alcohol', 'Frightening']

LEVELS = ['None', 'Mild', 'Moderate', 'Severe']
GENRES = ['Action', 'Drama', 'Horror', 'Sci-Fi']


def raw_row(name, rate='7.1', votes='1,234', genre='Action, Drama', duration='120',
            type_='Film', certificate='R', episodes='-', nudity='Mild', violence='None',
            profanity='Moderate', alcohol='Mild', frightening='Severe', date='2010'):
    return {
        'Name': name, 'Date': date, 'Rate': rate, 'Votes': votes, 'Genre': genre,
        'Duration': duration, 'Type': type_, 'Certificate': certificate, 'Episodes': episodes,
        'Nudity': nudity, 'Violence': violence, 'Profanity': profanity, 'Alcohol': alcohol,
        'Frightening': frightening,
    }


@pytest.fixture
def raw_frame():
    """Hand-built raw table exercising every cleaning rule"""
    rows = [
        raw_row('Good One'),                                          # kept
        raw_row('Good Two', rate='6.5', votes='98', genre='Sci-Fi', certificate='PG-13',
                nudity='None'),                                       # kept
        raw_row('Missing Rate', rate=None),                           # missing
        raw_row('Sentinel Rate', rate='No Rate'),                     # sentinel
        raw_row('Sentinel Advisory', violence='No Rate'),             # sentinel
        raw_row('A Series', type_='Series', episodes='10'),           # not a film
        raw_row('Good One'),                                          # duplicate
        raw_row('Bad Duration', duration='None'),                     # coercion
        raw_row('Bad Advisory', alcohol='Extreme'),                   # coercion
        raw_row('Good Three', rate='8.0', votes='12,345,678', genre='Horror, Drama',
                certificate='PG-13', date='2015'),                    # kept
    ]
    return pd.DataFrame(rows, columns=RAW_COLUMNS)


def make_raw_imdb(n=400, seed=0):
    """Synthetic raw IMDb-style table whose rating depends on the predictors"""
    rng = np.random.default_rng(seed)
    rows = []
    for i in range(n):
        date = int(rng.integers(2000, 2021))
        votes = int(rng.integers(500, 500000))
        duration = int(rng.integers(80, 180))
        certificate = str(rng.choice(['PG', 'PG-13', 'R']))
        advisory = [str(rng.choice(LEVELS)) for _ in range(5)]
        genres = [g for g in GENRES if rng.random() < 0.5] or ['Drama']
        rate = (2.0 + 0.35 * np.log(votes) + 0.01 * duration
                + 0.3 * ('Drama' in genres) - 0.4 * ('Horror' in genres)
                + 0.1 * LEVELS.index(advisory[1]) + rng.normal(0, 0.5))
        rate = float(np.clip(rate, 1.0, 9.9))
        rows.append(raw_row(
            f"Film {i}", rate=f"{rate:.1f}", votes=f"{votes:,}", genre=", ".join(genres),
            duration=str(duration), certificate=certificate, date=str(date),
            nudity=advisory[0], violence=advisory[1], profanity=advisory[2],
            alcohol=advisory[3], frightening=advisory[4],
        ))
    # a few rows the cleaner has to throw away
    rows.append(raw_row('Unrated', rate='No Rate'))
    rows.append(raw_row('Show', type_='Series', episodes='8'))
    rows.append(dict(rows[0]))
    return pd.DataFrame(rows, columns=RAW_COLUMNS)


@pytest.fixture
def raw_imdb():
    return make_raw_imdb()


@pytest.fixture
def linear_frame():
    """Numeric data with a known linear signal, plus a two-level category"""
    rng = np.random.default_rng(1)
    n = 300
    x1 = rng.normal(size=n)
    x2 = rng.normal(size=n)
    group = pd.Categorical(rng.choice(['a', 'b', 'c'], size=n), categories=['a', 'b', 'c'])
    y = 5.0 + 2.0 * x1 - 1.5 * x2 + np.where(group == 'b', 1.0, 0.0) + rng.normal(0, 0.5, size=n)
    return pd.DataFrame({'y': y, 'x1': x1, 'x2': x2, 'group': group})


@pytest.fixture
def pipeline_config(tmp_path):
    """Write a synthetic CSV and a small configuration; return the config path"""
    data_path = tmp_path / 'imdb.csv'
    make_raw_imdb(n=300, seed=3).to_csv(data_path, index=False)

    formula = {
        "response": "Rate",
        "linear": ["Certificate", "Nudity", "Violence", "@genres"],
        "interaction_block": ["Date", "log_Votes", "Duration"],
    }
    config = {
        "scenario_name": "synthetic",
        "data_settings": {"input_path": "imdb.csv", "random_seed": 7},
        "feature_settings": {"log_columns": ["Votes"]},
        "model_steps": [
            {"name": "model_1_additive",
             "formula": {"response": "Rate",
                         "linear": ["Date", "Votes", "Duration", "Certificate", "Nudity", "@genres"]},
             "vif": True},
            {"name": "model_2_interactions", "formula": formula, "remove_outliers": True},
            {"name": "model_3_trimmed", "data": "model_2_interactions:trimmed", "formula": formula,
             "boxcox": {"column": "Rate", "target": "Rate_bc"}},
            {"name": "model_4_boxcox", "data": "model_3_trimmed:boxcox",
             "formula": dict(formula, response="Rate_bc"), "vif": True, "stepwise": True},
        ],
        "evaluation_settings": {"data": "model_3_trimmed:boxcox", "baseline": "model_1_additive",
                                "final": "model_4_boxcox:stepwise", "train_fraction": 0.85},
        "output_settings": {"output_dir": "out", "log_dir": "logs", "plots": True},
    }
    config_path = tmp_path / 'config.json'
    config_path.write_text(json.dumps(config), encoding='utf-8')
    return config_path
