# utils.py
# -*- coding: utf-8 -*-
import logging
import numpy as np
import pandas as pd
from scipy import stats


def std_mean_diff(t: np.ndarray, c: np.ndarray) -> float:
    """
    Standardized mean difference scaled by the treatment-group standard deviation.

    Computes `(mean(t) - mean(c)) / sd(t)` with the sample standard deviation
    (ddof=1). When `sd(t)` is zero the result is 0.0 if the means agree and a signed
    infinity otherwise.

    Args:
        t (np.ndarray): Values for the treatment group.
        c (np.ndarray): Values for the control group.

    Returns:
        float: The standardized mean difference, NaN if either group is too small.
    """
    t = np.asarray(t, dtype=float)
    c = np.asarray(c, dtype=float)
    if len(t) < 2 or len(c) < 1:
        return np.nan
    diff = np.mean(t) - np.mean(c)
    sd = np.std(t, ddof=1)
    if sd == 0:
        return 0.0 if diff == 0 else float(np.sign(diff) * np.inf)
    return float(diff / sd)


def variance_ratio(t: np.ndarray, c: np.ndarray) -> float:
    """
    Ratio of treatment to control sample variance (ddof=1).

    Returns inf when only the control variance is zero, 1.0 when both are zero,
    and NaN when either group has fewer than two values.
    """
    t = np.asarray(t, dtype=float)
    c = np.asarray(c, dtype=float)
    if len(t) < 2 or len(c) < 2:
        return np.nan
    var_t = np.var(t, ddof=1)
    var_c = np.var(c, ddof=1)
    if var_c == 0:
        return np.inf if var_t > 0 else 1.0
    return float(var_t / var_c)


def location_test(t: np.ndarray, c: np.ndarray, test: str = 'ttest') -> float:
    """
    Two-group location test for a continuous variable.

    Args:
        t (np.ndarray): Treatment values.
        c (np.ndarray): Control values.
        test (str, optional): 'ttest' for Welch's unequal-variance t-test or
                              'ranksum' for the two-sided Mann-Whitney U test.
                              Defaults to 'ttest'.

    Returns:
        float: The p-value, NaN if a group has fewer than two values.

    Raises:
        ValueError: If `test` is not recognised.
    """
    t = np.asarray(t, dtype=float)
    c = np.asarray(c, dtype=float)
    if test not in ('ttest', 'ranksum'):
        raise ValueError("Invalid test parameter, use ('ttest', 'ranksum')")
    if len(t) < 2 or len(c) < 2:
        return np.nan
    if np.ptp(t) == 0 and np.ptp(c) == 0 and t[0] == c[0]:
        # identical constant groups
        return 1.0
    if test == 'ttest':
        return float(stats.ttest_ind(t, c, equal_var=False).pvalue)
    return float(stats.mannwhitneyu(t, c, alternative='two-sided').pvalue)


def contingency_table(values: pd.Series, groups: pd.Series) -> pd.DataFrame:
    """Counts of each category (rows) by group (columns 1 then 0)."""
    counts = pd.crosstab(values, groups)
    for g in (1, 0):
        if g not in counts.columns:
            counts[g] = 0
    return counts[[1, 0]]


def association_test(values: pd.Series, groups: pd.Series) -> float:
    """
    Two-group association test for a categorical variable.

    Uses Fisher's exact test for a 2x2 table with any expected count below 5 and the
    chi-square test of independence otherwise.

    Args:
        values (pd.Series): Category per subject.
        groups (pd.Series): 1/0 group indicator aligned with `values`.

    Returns:
        float: The p-value, NaN when the table is degenerate (fewer than two
               categories or two groups).
    """
    counts = contingency_table(values, groups)
    if counts.shape[0] < 2 or (counts.sum(axis=0) == 0).any():
        logging.info(f"Contingency table for '{values.name}' is degenerate. Skipping association test.")
        return np.nan
    table = counts.values
    expected = stats.contingency.expected_freq(table)
    if table.shape == (2, 2) and (expected < 5).any():
        return float(stats.fisher_exact(table)[1])
    return float(stats.chi2_contingency(table)[1])


def is_continuous(colname: str, df: pd.DataFrame) -> bool:
    """
    Checks if a specified column in a DataFrame has a numeric data type.

    Boolean columns count as categorical.

    Args:
        colname (str): The name of the column to check.
        df (pd.DataFrame): The DataFrame containing the column.

    Returns:
        bool: True if the column exists and its dtype is numeric, False otherwise.
    """
    if colname not in df.columns:
        return False
    col = df[colname]
    return pd.api.types.is_numeric_dtype(col) and not pd.api.types.is_bool_dtype(col)
