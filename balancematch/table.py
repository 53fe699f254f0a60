# table.py
# -*- coding: utf-8 -*-
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

import pandas as pd

from balancematch.exceptions import GroupLabelError, MissingValueError

TREATED_COL = 'treated'
# columns added by scoring and matching
RESERVED_COLUMNS = (TREATED_COL, 'scores', 'match_id', 'matched_as', 'pair_distance')


@dataclass(frozen=True)
class CovariateTable:
    """
    One row per subject with a binary group indicator and the covariates used for scoring.

    Attributes:
        data (pd.DataFrame): Indexed by subject id. Holds the integer `treated` column
                             (1 = treatment, 0 = control), the covariates and any extra
                             diagnostic-only variables, in that order.
        covariates (List[str]): Ordered covariates fed to the propensity model.
        extra (List[str]): Variables reported by the diagnostics but not modelled.
        treatment_label (Any): Group value that was mapped to `treated == 1`.
        control_label (Any): Group value that was mapped to `treated == 0`.
        id_col (str): Name of the identifier column in the source records.
        group_col (str): Name of the group column in the source records.
        excluded (List[Any]): Subject ids removed by the analyst before building.
    """
    data: pd.DataFrame
    covariates: List[str]
    extra: List[str]
    treatment_label: Any
    control_label: Any
    id_col: str
    group_col: str
    excluded: List[Any] = field(default_factory=list)

    @property
    def yvar(self) -> str:
        return TREATED_COL

    @property
    def treatment_ids(self) -> List[Any]:
        return self.data.index[self.data[TREATED_COL] == 1].tolist()

    @property
    def control_ids(self) -> List[Any]:
        return self.data.index[self.data[TREATED_COL] == 0].tolist()

    @property
    def n_treatment(self) -> int:
        return int((self.data[TREATED_COL] == 1).sum())

    @property
    def n_control(self) -> int:
        return int((self.data[TREATED_COL] == 0).sum())

    @property
    def X(self) -> pd.DataFrame:
        return self.data[self.covariates]

    @property
    def y(self) -> pd.Series:
        return self.data[TREATED_COL]


def check_missing(frame: pd.DataFrame, columns: Iterable[str]) -> None:
    """
    Raises MissingValueError for the first missing cell among `columns`.

    Rows are scanned in index order and columns in the given order, so the reported
    subject is stable across runs.
    """
    columns = list(columns)
    if not columns:
        return
    mask = frame[columns].isna()
    n_missing = int(mask.values.sum())
    if n_missing == 0:
        return
    for subject_id, row in mask.iterrows():
        for col in columns:
            if row[col]:
                raise MissingValueError(subject_id, col, n_missing)


def _resolve_labels(group: pd.Series, group_col: str, treatment_label: Any):
    values = pd.unique(group.dropna())
    if len(values) != 2:
        raise GroupLabelError(
            f"Group column '{group_col}' must hold exactly two distinct values, "
            f"found {len(values)}: {list(values)}"
        )
    if treatment_label is None:
        if set(values) <= {0, 1}:
            treatment_label = next(v for v in values if v == 1)
        else:
            raise GroupLabelError(
                f"Group column '{group_col}' has labels {list(values)}; "
                "pass treatment_label to say which one is the treatment group."
            )
    matches = [v for v in values if v == treatment_label]
    if not matches:
        raise GroupLabelError(
            f"treatment_label {treatment_label!r} not found in '{group_col}' "
            f"(values: {list(values)})"
        )
    control_label = next(v for v in values if not v == treatment_label)
    return matches[0], control_label


def build_covariate_table(records: pd.DataFrame, id_col: str, group_col: str,
                          covariates: List[str], treatment_label: Any = None,
                          extra: Optional[List[str]] = None,
                          exclude: Optional[Iterable[Any]] = None) -> CovariateTable:
    """
    Assembles the per-subject covariate table from a unified record set.

    The input frame is copied and never modified. Subjects listed in `exclude` are
    removed first, then the identifier, group label and covariates are validated.
    Missing covariate values are reported rather than imputed.

    Args:
        records (pd.DataFrame): One row per subject.
        id_col (str): Column holding unique, stable subject identifiers.
        group_col (str): Column holding the two-valued group label.
        covariates (List[str]): Numeric columns used by the propensity model.
        treatment_label (Any, optional): The group value denoting treatment. May be
                                         omitted for boolean or 0/1 group columns.
        extra (Optional[List[str]], optional): Additional numeric or categorical
                                               columns to carry for diagnostics.
        exclude (Optional[Iterable[Any]], optional): Subject ids to drop.

    Returns:
        CovariateTable: The validated table.

    Raises:
        KeyError: If a requested column is absent.
        ValueError: If a covariate or extra variable uses a reserved column name.
        ValueError: If identifiers are not unique.
        TypeError: If a covariate is not numeric.
        GroupLabelError: If the group column is not a clean two-value label.
        MissingValueError: If a subject lacks its group label or a covariate value.
    """
    covariates = list(covariates)
    extra = [col for col in (extra or []) if col not in covariates]
    required = [id_col, group_col] + covariates + extra
    reserved = [col for col in covariates + extra if col in RESERVED_COLUMNS]
    if reserved:
        raise ValueError(f"Column names {reserved} are reserved ({list(RESERVED_COLUMNS)}); rename them before matching.")
    missing_cols = [col for col in required if col not in records.columns]
    if missing_cols:
        raise KeyError(f"Columns not found in records: {missing_cols}")

    df = records[required].copy()

    excluded = list(exclude) if exclude is not None else []
    if excluded:
        present = df[id_col].isin(excluded)
        unknown = [sid for sid in excluded if sid not in set(df[id_col])]
        if unknown:
            logging.warning(f"Excluded ids not present in records, ignored: {unknown}")
        df = df[~present]
        logging.info(f"Excluded {int(present.sum())} subject(s): {[sid for sid in excluded if sid not in unknown]}")

    duplicated = df[id_col][df[id_col].duplicated()].unique().tolist()
    if duplicated:
        raise ValueError(f"Subject identifiers in '{id_col}' are not unique: {duplicated}")
    df = df.set_index(id_col)

    check_missing(df, [group_col])
    treatment_label, control_label = _resolve_labels(df[group_col], group_col, treatment_label)

    non_numeric = [col for col in covariates if not pd.api.types.is_numeric_dtype(df[col])]
    if non_numeric:
        raise TypeError(f"Covariates must be numeric: {non_numeric}")
    check_missing(df, covariates)

    treated = (df[group_col] == treatment_label).astype(int)
    data = pd.concat([treated.rename(TREATED_COL), df[covariates + extra]], axis=1)

    table = CovariateTable(
        data=data,
        covariates=covariates,
        extra=extra,
        treatment_label=treatment_label,
        control_label=control_label,
        id_col=id_col,
        group_col=group_col,
        excluded=excluded,
    )
    logging.info(f"Group column: {group_col} (treatment={treatment_label!r}, control={control_label!r})")
    logging.info(f"Covariates: {covariates}")
    logging.info(f"N treatment: {table.n_treatment}, N control: {table.n_control}")
    return table
