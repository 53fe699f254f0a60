# diagnostics.py
# -*- coding: utf-8 -*-
"""
Balance diagnostics for matched datasets.

Every statistic here compares the treatment rows (`yvar == 1`) with the control rows
(`yvar == 0`) of whatever frame it is given; pass the matched dataset to diagnose a
match, or the full pool for the pre-matching baseline. Thresholds are advisory: the
functions surface numbers and flags, and the decision to rerun stays with the analyst.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from balancematch import utils as uf

BALANCE_COLUMNS = ['type', 'mean_treatment', 'mean_control', 'smd', 'variance_ratio', 'p_value']


@dataclass(frozen=True)
class BalanceThresholds:
    """
    Advisory acceptance lines for a balance table.

    Attributes:
        min_p (float): A p-value above this reads as no detectable difference.
        max_abs_smd (float): Caution line for |standardized mean difference|.
        vr_range (Tuple[float, float]): Acceptable variance ratio interval, inclusive.
    """
    min_p: float = 0.5
    max_abs_smd: float = 0.25
    vr_range: Tuple[float, float] = (0.5, 2.0)


def describe_variable(data: pd.DataFrame, yvar: str, var: str,
                      continuous_test: str = 'ttest') -> Dict[str, object]:
    """Computes the balance statistics of one variable between the two groups."""
    t = data.loc[data[yvar] == 1, var]
    c = data.loc[data[yvar] == 0, var]
    if uf.is_continuous(var, data):
        n_missing = int(t.isna().sum() + c.isna().sum())
        if n_missing:
            logging.warning(f"Variable '{var}' has {n_missing} missing value(s); they are left out of its balance statistics.")
            t, c = t.dropna(), c.dropna()
        return {
            'type': 'continuous',
            'mean_treatment': float(t.mean()) if len(t) else np.nan,
            'mean_control': float(c.mean()) if len(c) else np.nan,
            'smd': uf.std_mean_diff(t.values, c.values),
            'variance_ratio': uf.variance_ratio(t.values, c.values),
            'p_value': uf.location_test(t.values, c.values, test=continuous_test),
        }
    return {
        'type': 'categorical',
        'mean_treatment': np.nan,
        'mean_control': np.nan,
        'smd': np.nan,
        'variance_ratio': np.nan,
        'p_value': uf.association_test(data[var], data[yvar]),
    }


def balance_table(data: pd.DataFrame, yvar: str, variables: List[str],
                  continuous_test: str = 'ttest') -> pd.DataFrame:
    """
    Per-variable balance statistics.

    Args:
        data (pd.DataFrame): Usually the matched dataset.
        yvar (str): The 1/0 group indicator column.
        variables (List[str]): Covariates (and optionally 'scores' or extra variables).
        continuous_test (str, optional): 'ttest' or 'ranksum'. Defaults to 'ttest'.

    Returns:
        pd.DataFrame: Indexed by variable with columns `BALANCE_COLUMNS`. SMD and
                      variance ratio are NaN for categorical variables.
    """
    missing = [var for var in variables if var not in data.columns]
    if missing:
        raise KeyError(f"Variables not found in data: {missing}")
    rows = {var: describe_variable(data, yvar, var, continuous_test) for var in variables}
    table = pd.DataFrame.from_dict(rows, orient='index', columns=BALANCE_COLUMNS)
    table.index.name = 'variable'
    return table


def score_balance(data: pd.DataFrame, yvar: str, continuous_test: str = 'ttest') -> Dict[str, float]:
    """
    SMD, variance ratio and p-value of the propensity score distribution.

    Raises:
        ValueError: If `data` has no 'scores' column.
    """
    if 'scores' not in data.columns:
        raise ValueError("Scores column not found in data.")
    stats = describe_variable(data, yvar, 'scores', continuous_test)
    return {'smd': stats['smd'], 'variance_ratio': stats['variance_ratio'], 'p_value': stats['p_value']}


def compare_balance(before: pd.DataFrame, after: pd.DataFrame, yvar: str, variables: List[str],
                    continuous_test: str = 'ttest') -> pd.DataFrame:
    """
    Balance statistics before and after matching, side by side.

    Returns:
        pd.DataFrame: Indexed by variable with `smd_before`, `smd_after`,
                      `variance_ratio_before`, `variance_ratio_after`, `p_before`
                      and `p_after`.
    """
    tb = balance_table(before, yvar, variables, continuous_test)
    ta = balance_table(after, yvar, variables, continuous_test)
    return pd.DataFrame({
        'type': tb['type'],
        'smd_before': tb['smd'],
        'smd_after': ta['smd'],
        'variance_ratio_before': tb['variance_ratio'],
        'variance_ratio_after': ta['variance_ratio'],
        'p_before': tb['p_value'],
        'p_after': ta['p_value'],
    })


def assess_balance(table: pd.DataFrame, thresholds: Optional[BalanceThresholds] = None) -> pd.DataFrame:
    """
    Flags each row of a balance table against the advisory thresholds.

    Adds boolean `p_ok`, `smd_ok`, `vr_ok` and `balanced` columns. SMD and variance
    ratio are not defined for categorical rows, so those rows are judged on the
    p-value alone. NaN statistics on continuous rows fail their check.
    """
    if thresholds is None:
        thresholds = BalanceThresholds()
    out = table.copy()
    categorical = out['type'] == 'categorical'
    lo, hi = thresholds.vr_range
    out['p_ok'] = out['p_value'].gt(thresholds.min_p)
    out['smd_ok'] = out['smd'].abs().lt(thresholds.max_abs_smd) | categorical
    out['vr_ok'] = out['variance_ratio'].between(lo, hi) | categorical
    out['balanced'] = out['p_ok'] & out['smd_ok'] & out['vr_ok']

    flagged = out.index[~out['balanced']].tolist()
    if flagged:
        logging.warning(f"Variables outside advisory balance thresholds: {flagged}")
    else:
        logging.info("All variables within advisory balance thresholds.")
    return out
