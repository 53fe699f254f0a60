import numpy as np
import pandas as pd
import pytest

from balancematch.exceptions import InsufficientDataError, MissingValueError
from balancematch.modeling import estimate_scores, fit_model, predict_scores
from balancematch.table import build_covariate_table


@pytest.fixture
def sample_xy(records):
    table = build_covariate_table(records, 'subject', 'group', ['age', 'weight'],
                                  treatment_label='patient')
    return table.X, table.y


def test_fit_model_returns_model_and_metrics(sample_xy):
    X, y = sample_xy
    result = fit_model(X, y)
    assert result['model'] is not None
    assert 0 <= result['accuracy'] <= 1
    assert 0 <= result['auc'] <= 1
    # intercept plus one coefficient per covariate
    assert list(result['model'].params.index) == ['const', 'age', 'weight']


def test_predict_scores_are_probabilities_indexed_by_subject(sample_xy):
    X, y = sample_xy
    scores = predict_scores(fit_model(X, y)['model'], X)
    assert scores.name == 'scores'
    assert scores.index.equals(X.index)
    assert ((scores > 0) & (scores < 1)).all()


def test_fit_is_pure(sample_xy):
    X, y = sample_xy
    X_before = X.copy()
    first = predict_scores(fit_model(X, y)['model'], X)
    second = predict_scores(fit_model(X, y)['model'], X)
    pd.testing.assert_frame_equal(X, X_before)
    np.testing.assert_allclose(first.values, second.values)


def test_estimate_scores_on_table(records):
    table = build_covariate_table(records, 'subject', 'group', ['age'], treatment_label='patient')
    scores, fitted = estimate_scores(table)
    assert len(scores) == 70
    assert 'accuracy' in fitted


def test_zero_variance_covariate(sample_xy):
    X, y = sample_xy
    X = X.assign(constant=3.0)
    with pytest.raises(InsufficientDataError) as exc:
        fit_model(X, y)
    assert exc.value.covariate == 'constant'


def test_too_few_subjects():
    X = pd.DataFrame({'a': [1.0, 2.0, 3.0], 'b': [2.0, 1.0, 5.0]}, index=['s1', 's2', 's3'])
    y = pd.Series([1, 0, 0], index=X.index)
    with pytest.raises(InsufficientDataError, match="need at least 4"):
        fit_model(X, y)


def test_no_covariates(sample_xy):
    X, y = sample_xy
    with pytest.raises(InsufficientDataError, match="No covariates"):
        fit_model(X[[]], y)


def test_single_group(sample_xy):
    X, y = sample_xy
    with pytest.raises(InsufficientDataError, match="Both treatment and control"):
        fit_model(X, pd.Series(1, index=X.index))


def test_collinear_covariates(sample_xy):
    X, y = sample_xy
    X = X.assign(age_twice=X['age'] * 2)
    with pytest.raises(InsufficientDataError, match="collinear"):
        fit_model(X, y)


def test_missing_value_propagates(sample_xy):
    X, y = sample_xy
    X = X.copy()
    X.iloc[3, 1] = np.nan
    with pytest.raises(MissingValueError) as exc:
        fit_model(X, y)
    assert exc.value.subject_id == X.index[3]
    assert exc.value.column == 'weight'


def test_separated_groups_are_rejected():
    X = pd.DataFrame({'x': np.arange(1.0, 9.0)}, index=[f"s{i}" for i in range(8)])
    y = pd.Series([0, 0, 0, 0, 0, 1, 1, 1], index=X.index)
    with pytest.raises(InsufficientDataError, match="separat"):
        fit_model(X, y)


def test_overlapping_groups_give_open_interval_scores(sample_xy):
    X, y = sample_xy
    scores = predict_scores(fit_model(X, y)['model'], X)
    assert scores.between(0, 1, inclusive='neither').all()
