# exceptions.py
# -*- coding: utf-8 -*-
from typing import Any, Optional


class MatchingError(Exception):
    """Base class for errors raised while building, scoring or matching subjects."""


class InsufficientDataError(MatchingError, ValueError):
    """
    Raised when the data cannot support a propensity model.

    Covers too few subjects for the number of covariates, an empty covariate list,
    a covariate with zero variance, a single-group pool, or a singular design matrix.

    Attributes:
        covariate (Optional[str]): The offending covariate, when one can be named.
    """
    def __init__(self, message: str, covariate: Optional[str] = None):
        super().__init__(message)
        self.covariate = covariate


class InsufficientControlsError(MatchingError, ValueError):
    """Raised when there are fewer control subjects than treatment subjects."""
    def __init__(self, n_treatment: int, n_control: int):
        super().__init__(
            f"1:1 matching needs at least as many controls as treatment subjects "
            f"(treatment={n_treatment}, control={n_control})."
        )
        self.n_treatment = n_treatment
        self.n_control = n_control


class MissingValueError(MatchingError, ValueError):
    """
    Raised when a subject lacks a required value.

    Attributes:
        subject_id (Any): Identifier of the first subject found with a missing value.
        column (str): The column (covariate or group label) that is missing.
        n_missing (int): Total number of missing cells in the checked columns.
    """
    def __init__(self, subject_id: Any, column: str, n_missing: int = 1):
        msg = f"Subject {subject_id!r} has no value for '{column}'"
        if n_missing > 1:
            msg += f" ({n_missing} missing values in total)"
        super().__init__(msg + ".")
        self.subject_id = subject_id
        self.column = column
        self.n_missing = n_missing


class GroupLabelError(MatchingError, ValueError):
    """Raised when the group column is not a clean two-valued label."""
