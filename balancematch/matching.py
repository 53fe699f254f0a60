# matching.py
# -*- coding: utf-8 -*-
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from scipy.optimize import linear_sum_assignment
from tqdm import tqdm

from balancematch.exceptions import InsufficientControlsError

MATCH_COLUMNS = ['match_id', 'treatment_id', 'control_id', 'treatment_score', 'control_score', 'distance']
METHODS = ('nearest', 'optimal')


@dataclass
class MatchResult:
    """
    Output of a 1:1 matching run.

    Attributes:
        method (str): 'nearest' or 'optimal'.
        matches (pd.DataFrame): One row per match with columns `MATCH_COLUMNS`.
        unmatched_treatment (List[Any]): Treatment ids left unmatched by the caliper.
        unmatched_controls (List[Any]): Control ids not used by any match, in id order.
        caliper (Optional[float]): The caliper applied, if any.
    """
    method: str
    matches: pd.DataFrame
    unmatched_treatment: List[Any] = field(default_factory=list)
    unmatched_controls: List[Any] = field(default_factory=list)
    caliper: Optional[float] = None

    @property
    def n_matches(self) -> int:
        return len(self.matches)

    @property
    def total_distance(self) -> float:
        return float(self.matches['distance'].sum())

    @property
    def treatment_ids(self) -> List[Any]:
        return self.matches['treatment_id'].tolist()

    @property
    def control_ids(self) -> List[Any]:
        return self.matches['control_id'].tolist()

    def matched_ids(self) -> List[Any]:
        """Ids of every subject in the matched dataset, treatment subjects first."""
        return self.treatment_ids + self.control_ids


def _split_scores(scores: pd.Series, treated: pd.Series) -> Tuple[pd.DataFrame, pd.DataFrame]:
    treated = treated.reindex(scores.index)
    frame = pd.DataFrame({'id': scores.index, 'score': scores.values, 'treated': treated.values})
    test = frame[frame['treated'] == 1][['id', 'score']]
    ctrl = frame[frame['treated'] == 0][['id', 'score']]
    if len(test) == 0 or len(test) > len(ctrl):
        raise InsufficientControlsError(len(test), len(ctrl))
    ctrl = ctrl.sort_values('id', kind='mergesort').reset_index(drop=True)
    return test, ctrl


def _order_treatment(test: pd.DataFrame, order: str) -> pd.DataFrame:
    if order not in ('ascending', 'descending'):
        raise ValueError("Invalid order parameter, use ('ascending', 'descending')")
    return test.sort_values(['score', 'id'], ascending=[order == 'ascending', True],
                            kind='mergesort').reset_index(drop=True)


def _build_result(method: str, pairs: List[dict], ctrl: pd.DataFrame, used: np.ndarray,
                  unmatched_treatment: List[Any], caliper: Optional[float]) -> MatchResult:
    matches = pd.DataFrame(pairs, columns=MATCH_COLUMNS[1:])
    matches.insert(0, 'match_id', np.arange(len(matches)))
    result = MatchResult(
        method=method,
        matches=matches,
        unmatched_treatment=unmatched_treatment,
        unmatched_controls=ctrl['id'][~used].tolist(),
        caliper=caliper,
    )
    logging.info(f"{method} matching complete: {result.n_matches} pairs, "
                 f"total distance {result.total_distance:.6f}.")
    if unmatched_treatment:
        logging.info(f"{len(unmatched_treatment)} treatment subject(s) exceeded caliper {caliper}: {unmatched_treatment}")
    return result


def nearest_neighbor_match(scores: pd.Series, treated: pd.Series, caliper: Optional[float] = None,
                           order: str = 'ascending', verbose: bool = False) -> MatchResult:
    """
    Greedy 1:1 nearest-neighbour matching on propensity scores, without replacement.

    Treatment subjects are processed by score (ascending by default), ties broken by
    subject id. Each takes the remaining control with the smallest absolute score
    difference, ties broken by control id, and that control leaves the pool. There is
    no backtracking, so the total distance is not guaranteed to be minimal.

    Args:
        scores (pd.Series): Propensity scores indexed by subject id.
        treated (pd.Series): 1/0 group indicator indexed by subject id.
        caliper (Optional[float], optional): Maximum allowed distance. A treatment
                                             subject whose nearest remaining control is
                                             farther stays unmatched. Defaults to None.
        order (str, optional): 'ascending' or 'descending' processing order.
        verbose (bool, optional): Show a progress bar. Defaults to False.

    Returns:
        MatchResult: Matches in processing order plus the residual controls.

    Raises:
        InsufficientControlsError: If there are more treatment than control subjects.
    """
    test, ctrl = _split_scores(scores, treated)
    test = _order_treatment(test, order)

    ctrl_scores = ctrl['score'].values.astype(float)
    used = np.zeros(len(ctrl), dtype=bool)
    pairs = []
    unmatched_treatment = []

    for tid, tscore in tqdm(zip(test['id'], test['score']), total=len(test),
                            desc="Nearest-neighbour matching", disable=not verbose):
        dists = np.abs(ctrl_scores - tscore)
        dists[used] = np.inf
        # argmin keeps the first minimum, i.e. the lowest control id
        j = int(np.argmin(dists))
        if caliper is not None and dists[j] > caliper:
            unmatched_treatment.append(tid)
            continue
        used[j] = True
        pairs.append({
            'treatment_id': tid,
            'control_id': ctrl['id'].iat[j],
            'treatment_score': tscore,
            'control_score': ctrl_scores[j],
            'distance': dists[j],
        })

    return _build_result('nearest', pairs, ctrl, used, unmatched_treatment, caliper)


def optimal_match(scores: pd.Series, treated: pd.Series, caliper: Optional[float] = None) -> MatchResult:
    """
    Optimal 1:1 matching: minimum total absolute score distance over all assignments.

    Solves the rectangular assignment problem on the |T| x |C| distance matrix with
    `scipy.optimize.linear_sum_assignment`. With a caliper, pairs beyond it are given a
    cost larger than any feasible total, so the solver first maximises the number of
    within-caliper matches and then minimises their summed distance; pairs still beyond
    the caliper are dropped.

    Unlike greedy matching, removing one treatment subject can change the partners of
    others because the assignment is solved globally.

    Args:
        scores (pd.Series): Propensity scores indexed by subject id.
        treated (pd.Series): 1/0 group indicator indexed by subject id.
        caliper (Optional[float], optional): Maximum allowed distance. Defaults to None.

    Returns:
        MatchResult: Matches ordered by treatment score, plus the residual controls.

    Raises:
        InsufficientControlsError: If there are more treatment than control subjects.
    """
    test, ctrl = _split_scores(scores, treated)
    test = _order_treatment(test, 'ascending')

    t_scores = test['score'].values.astype(float)
    c_scores = ctrl['score'].values.astype(float)
    cost = np.abs(t_scores[:, None] - c_scores[None, :])

    solve_cost = cost
    if caliper is not None:
        forbidden = cost > caliper
        solve_cost = np.where(forbidden, len(t_scores) + 1.0, cost)
    rows, cols = linear_sum_assignment(solve_cost)

    used = np.zeros(len(ctrl), dtype=bool)
    pairs = []
    unmatched_treatment = []
    for i, j in zip(rows, cols):
        if caliper is not None and cost[i, j] > caliper:
            unmatched_treatment.append(test['id'].iat[i])
            continue
        used[j] = True
        pairs.append({
            'treatment_id': test['id'].iat[i],
            'control_id': ctrl['id'].iat[j],
            'treatment_score': t_scores[i],
            'control_score': c_scores[j],
            'distance': cost[i, j],
        })

    return _build_result('optimal', pairs, ctrl, used, unmatched_treatment, caliper)


def perform_match(data: pd.DataFrame, yvar: str, method: str = 'nearest',
                  caliper: Optional[float] = None, order: str = 'ascending',
                  verbose: bool = False) -> MatchResult:
    """
    Matches treatment to control subjects using the 'scores' column of `data`.

    Args:
        data (pd.DataFrame): Subjects indexed by id with `yvar` and 'scores' columns.
        yvar (str): The 1/0 group indicator column.
        method (str, optional): 'nearest' (greedy) or 'optimal'. Defaults to 'nearest'.
        caliper (Optional[float], optional): Maximum allowed score distance.
        order (str, optional): Processing order for nearest-neighbour matching.
        verbose (bool, optional): Progress bar for nearest-neighbour matching.

    Returns:
        MatchResult: The matches and residual controls.

    Raises:
        ValueError: If 'scores' is missing or `method` is unknown.
        InsufficientControlsError: If there are more treatment than control subjects.
    """
    if 'scores' not in data.columns:
        logging.error("No 'scores' column found. Please run predict_scores() first.")
        raise ValueError("Scores column not found in data.")
    if method == 'nearest':
        return nearest_neighbor_match(data['scores'], data[yvar], caliper=caliper,
                                      order=order, verbose=verbose)
    elif method == 'optimal':
        return optimal_match(data['scores'], data[yvar], caliper=caliper)
    raise ValueError(f"Invalid method parameter, use {METHODS}")


def matched_data(data: pd.DataFrame, result: MatchResult) -> pd.DataFrame:
    """
    Builds the matched dataset: every subject appearing in a match.

    Rows keep the subject id index and gain 'match_id', 'matched_as'
    ('treatment' or 'control') and 'pair_distance'. Each match contributes its
    treatment row followed by its control row.
    """
    extra_cols = ['match_id', 'matched_as', 'pair_distance']
    if result.n_matches == 0:
        empty = data.iloc[0:0].copy()
        for col in extra_cols:
            empty[col] = pd.Series(dtype=object)
        return empty

    frames = []
    for role, id_col in (('treatment', 'treatment_id'), ('control', 'control_id')):
        part = data.loc[result.matches[id_col].values].copy()
        part['match_id'] = result.matches['match_id'].values
        part['matched_as'] = role
        part['pair_distance'] = result.matches['distance'].values
        frames.append(part)
    return pd.concat(frames).sort_values('match_id', kind='mergesort')


def worst_match(result: MatchResult) -> Optional[pd.Series]:
    """
    Returns the match with the largest score distance, or None when nothing matched.

    The analyst inspects this pair to decide whether the treatment subject is an
    outlier worth excluding before a rerun.
    """
    if result.n_matches == 0:
        return None
    return result.matches.loc[result.matches['distance'].idxmax()]


def prop_retained(result: MatchResult) -> float:
    """
    Proportion of treatment subjects that found a match.

    Returns:
        float: 0.0 to 1.0; 0.0 when there were no treatment subjects.
    """
    denom = result.n_matches + len(result.unmatched_treatment)
    return result.n_matches / denom if denom > 0 else 0.0


def tune_caliper(scores: pd.Series, treated: pd.Series, method: str = 'nearest',
                 rng: Union[np.ndarray, None] = None) -> Tuple[List[float], List[float]]:
    """
    Evaluates treatment-group retention across a range of caliper values.

    Args:
        scores (pd.Series): Propensity scores indexed by subject id.
        treated (pd.Series): 1/0 group indicator indexed by subject id.
        method (str, optional): 'nearest' or 'optimal'. Defaults to 'nearest'.
        rng (Optional[np.ndarray], optional): Caliper values to test. Defaults to
                                              `np.arange(0.01, 0.21, 0.01)`.

    Returns:
        Tuple[List[float], List[float]]: The calipers tested and the proportion of
                                         treatment subjects retained at each.
    """
    if rng is None:
        rng = np.arange(0.01, 0.21, 0.01)
    data = pd.DataFrame({'scores': scores, 'treated': treated})
    calipers = []
    retained = []
    for caliper in rng:
        result = perform_match(data, 'treated', method=method, caliper=float(caliper))
        calipers.append(float(caliper))
        retained.append(prop_retained(result))
    return calipers, retained
