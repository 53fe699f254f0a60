import numpy as np
import pandas as pd
import pytest

from balancematch.exceptions import InsufficientControlsError
from balancematch.matching import (
    matched_data, nearest_neighbor_match, optimal_match, perform_match,
    prop_retained, tune_caliper, worst_match,
)


def _pairs(result):
    return list(zip(result.treatment_ids, result.control_ids))


def _random_pool(seed, n_treat=15, n_ctrl=40):
    rng = np.random.default_rng(seed)
    scores = np.concatenate([rng.beta(3, 2, n_treat), rng.beta(2, 3, n_ctrl)])
    ids = [f"t{i}" for i in range(n_treat)] + [f"c{i}" for i in range(n_ctrl)]
    scores = pd.Series(scores, index=ids, name='scores')
    treated = pd.Series([1] * n_treat + [0] * n_ctrl, index=ids)
    return scores, treated


def test_nearest_neighbor_example(example_scores):
    scores, treated = example_scores
    result = nearest_neighbor_match(scores, treated)
    assert _pairs(result) == [('t3', 'c4'), ('t2', 'c2'), ('t1', 'c1')]
    assert result.total_distance == pytest.approx(0.07)
    assert result.unmatched_controls == ['c3']
    assert result.unmatched_treatment == []
    assert list(result.matches['match_id']) == [0, 1, 2]


def test_optimal_example_matches_nearest_total(example_scores):
    scores, treated = example_scores
    nn = nearest_neighbor_match(scores, treated)
    opt = optimal_match(scores, treated)
    assert opt.total_distance <= nn.total_distance + 1e-12
    assert opt.total_distance == pytest.approx(0.07)
    assert sorted(_pairs(opt)) == sorted(_pairs(nn))


def test_descending_order_processes_high_scores_first(example_scores):
    scores, treated = example_scores
    result = nearest_neighbor_match(scores, treated, order='descending')
    assert result.treatment_ids == ['t1', 't2', 't3']
    with pytest.raises(ValueError):
        nearest_neighbor_match(scores, treated, order='random')


def test_ties_broken_by_identifier():
    scores = pd.Series([0.5, 0.5, 0.25, 0.75], index=['b', 'a', 'y', 'x'])
    treated = pd.Series([1, 1, 0, 0], index=scores.index)
    result = nearest_neighbor_match(scores, treated)
    # 'a' goes first on the score tie and takes 'x', the lower id of two equidistant controls
    assert _pairs(result) == [('a', 'x'), ('b', 'y')]


def test_nearest_neighbor_locality_when_extreme_removed(example_scores):
    scores, treated = example_scores
    full = nearest_neighbor_match(scores, treated)
    reduced = nearest_neighbor_match(scores.drop('t1'), treated.drop('t1'))
    full_pairs = {t: c for t, c in _pairs(full) if t != 't1'}
    assert dict(_pairs(reduced)) == full_pairs


def test_optimal_reassigns_when_extreme_removed():
    scores = pd.Series([0.50, 0.60, 0.56, 0.40], index=['a', 'b', 'x', 'y'])
    treated = pd.Series([1, 1, 0, 0], index=scores.index)

    opt_full = dict(_pairs(optimal_match(scores, treated)))
    opt_reduced = dict(_pairs(optimal_match(scores.drop('b'), treated.drop('b'))))
    assert opt_full['a'] == 'y'
    assert opt_reduced['a'] == 'x'

    nn_full = dict(_pairs(nearest_neighbor_match(scores, treated)))
    nn_reduced = dict(_pairs(nearest_neighbor_match(scores.drop('b'), treated.drop('b'))))
    assert nn_full['a'] == nn_reduced['a'] == 'x'


@pytest.mark.parametrize("seed", [0, 1, 2, 3, 4])
def test_optimal_never_worse_than_nearest(seed):
    scores, treated = _random_pool(seed)
    nn = nearest_neighbor_match(scores, treated)
    opt = optimal_match(scores, treated)
    assert opt.total_distance <= nn.total_distance + 1e-9


@pytest.mark.parametrize("method", ["nearest", "optimal"])
def test_one_to_one_invariants(method):
    scores, treated = _random_pool(11)
    data = pd.DataFrame({'scores': scores, 'treated': treated})
    result = perform_match(data, 'treated', method=method)
    assert result.n_matches == 15
    assert len(set(result.control_ids)) == result.n_matches
    assert len(set(result.treatment_ids)) == result.n_matches
    assert len(result.unmatched_controls) == 40 - 15

    md = matched_data(data, result)
    assert (md['treated'] == 1).sum() == (md['treated'] == 0).sum() == result.n_matches
    assert set(md.index) == set(result.matched_ids())


def test_insufficient_controls(example_scores):
    scores, treated = example_scores
    keep = ['t1', 't2', 't3', 'c1', 'c2']
    with pytest.raises(InsufficientControlsError) as exc:
        nearest_neighbor_match(scores[keep], treated[keep])
    assert exc.value.n_treatment == 3
    assert exc.value.n_control == 2
    with pytest.raises(InsufficientControlsError):
        optimal_match(scores[keep], treated[keep])


def test_caliper_nearest(example_scores):
    scores, treated = example_scores
    result = nearest_neighbor_match(scores, treated, caliper=0.02)
    assert _pairs(result) == [('t3', 'c4'), ('t1', 'c1')]
    assert result.unmatched_treatment == ['t2']
    assert result.unmatched_controls == ['c2', 'c3']
    assert prop_retained(result) == pytest.approx(2 / 3)


def test_caliper_optimal(example_scores):
    scores, treated = example_scores
    result = optimal_match(scores, treated, caliper=0.02)
    assert sorted(_pairs(result)) == [('t1', 'c1'), ('t3', 'c4')]
    assert result.unmatched_treatment == ['t2']
    assert (result.matches['distance'] <= 0.02).all()


def test_perform_match_requires_scores_column():
    data = pd.DataFrame({"treated": [1, 0], "x": [1, 2]})
    with pytest.raises(ValueError, match="Scores column not found"):
        perform_match(data=data, yvar="treated")


def test_perform_match_rejects_unknown_method(example_scores):
    scores, treated = example_scores
    data = pd.DataFrame({'scores': scores, 'treated': treated})
    with pytest.raises(ValueError, match="Invalid method"):
        perform_match(data, 'treated', method='random')


def test_matched_data_layout(example_scores):
    scores, treated = example_scores
    data = pd.DataFrame({'scores': scores, 'treated': treated, 'x': range(7)})
    md = matched_data(data, nearest_neighbor_match(scores, treated))
    assert list(md.index) == ['t3', 'c4', 't2', 'c2', 't1', 'c1']
    assert list(md['matched_as']) == ['treatment', 'control'] * 3
    assert md.loc['c2', 'pair_distance'] == pytest.approx(0.05)


def test_matched_data_empty_when_nothing_matches(example_scores):
    scores, treated = example_scores
    data = pd.DataFrame({'scores': scores, 'treated': treated})
    result = nearest_neighbor_match(scores, treated, caliper=0.001)
    md = matched_data(data, result)
    assert md.empty
    assert {'match_id', 'matched_as', 'pair_distance'} <= set(md.columns)
    assert worst_match(result) is None
    assert prop_retained(result) == 0.0


def test_worst_match(example_scores):
    scores, treated = example_scores
    worst = worst_match(nearest_neighbor_match(scores, treated))
    assert worst['treatment_id'] == 't2'
    assert worst['control_id'] == 'c2'
    assert worst['distance'] == pytest.approx(0.05)


def test_tune_caliper_outputs_proportions(example_scores):
    scores, treated = example_scores
    calipers, retained = tune_caliper(scores, treated, rng=np.array([0.001, 0.02, 1.0]))
    assert calipers == [0.001, 0.02, 1.0]
    assert retained[0] == 0.0
    assert retained[-1] == 1.0
    assert all(0.0 <= r <= 1.0 for r in retained)
