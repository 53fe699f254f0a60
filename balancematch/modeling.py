# modeling.py
# -*- coding: utf-8 -*-
import logging
import warnings
import numpy as np
import pandas as pd
import statsmodels.api as sm
from sklearn.metrics import accuracy_score, roc_auc_score
from statsmodels.tools.sm_exceptions import PerfectSeparationError, PerfectSeparationWarning
from typing import Dict, Any, Tuple

from balancematch.exceptions import InsufficientDataError
from balancematch.table import CovariateTable, check_missing


def validate_design(X: pd.DataFrame, y: pd.Series) -> None:
    """
    Checks that a covariate matrix can support a logistic propensity model.

    Args:
        X (pd.DataFrame): Covariates, one row per subject, indexed by subject id.
        y (pd.Series): Binary group indicator aligned with `X`.

    Raises:
        MissingValueError: If any covariate value is missing.
        InsufficientDataError: If there are no covariates, fewer than k + 2 subjects,
                               a zero-variance covariate, or only one group.
    """
    n, k = X.shape
    if k == 0:
        raise InsufficientDataError("No covariates supplied for the propensity model.")
    check_missing(X, X.columns)
    if n < k + 2:
        raise InsufficientDataError(
            f"{n} subjects cannot support a model with {k} covariates (need at least {k + 2})."
        )
    for col in X.columns:
        if X[col].nunique() <= 1:
            raise InsufficientDataError(f"Covariate '{col}' has zero variance.", covariate=col)
    if y.nunique() < 2:
        raise InsufficientDataError("Both treatment and control subjects are required to fit scores.")


def _design_matrix(X: pd.DataFrame) -> pd.DataFrame:
    return sm.add_constant(X.astype(float), has_constant='add')


def fit_model(X: pd.DataFrame, y: pd.Series, max_iter: int = 100) -> Dict[str, Any]:
    """
    Fits a binary logistic regression of group membership on the covariates.

    The model is an unpenalised maximum-likelihood logit with an intercept, fitted
    with statsmodels so the coefficient table is available to the analyst through
    `result['model'].summary()`.

    Args:
        X (pd.DataFrame): Covariates, indexed by subject id.
        y (pd.Series): 1 for treatment, 0 for control.
        max_iter (int, optional): Maximum Newton iterations. Defaults to 100.

    Returns:
        Dict[str, Any]: A dictionary containing:
            - 'model': the fitted statsmodels results object.
            - 'accuracy': in-sample accuracy at a 0.5 cut-off.
            - 'auc': in-sample ROC AUC.

    Raises:
        InsufficientDataError: See `validate_design`; also raised for a singular
                               design (perfectly collinear covariates) and when the
                               covariates separate the groups, so that scores would
                               leave the open interval (0, 1).
        MissingValueError: If any covariate value is missing.
    """
    validate_design(X, y)
    exog = _design_matrix(X)
    if np.linalg.matrix_rank(exog.values) < exog.shape[1]:
        raise InsufficientDataError(
            f"Covariates {list(X.columns)} are perfectly collinear; drop one and refit."
        )
    covariates = list(X.columns)
    try:
        with warnings.catch_warnings():
            warnings.filterwarnings("error", category=PerfectSeparationWarning)
            result = sm.Logit(y.astype(float), exog).fit(disp=0, maxiter=max_iter)
    except (PerfectSeparationError, PerfectSeparationWarning) as e:
        raise InsufficientDataError(
            f"Covariates {covariates} perfectly separate treatment from control; "
            f"propensity scores would be 0 or 1. Change the covariates or exclusions: {e}"
        ) from e
    except np.linalg.LinAlgError as e:
        raise InsufficientDataError(f"Logistic fit failed on a singular design: {e}") from e

    if not result.mle_retvals.get('converged', True):
        logging.warning(f"Logistic propensity model did not converge within {max_iter} iterations.")

    scores = predict_scores(result, X)
    # quasi-complete separation can slip past the warning and still saturate the link
    degenerate = scores.index[(scores <= 0.0) | (scores >= 1.0)].tolist()
    if degenerate:
        raise InsufficientDataError(
            f"Covariates {covariates} give propensity scores of exactly 0 or 1 for subjects "
            f"{degenerate} (separation); change the covariates or exclusions."
        )
    accuracy = accuracy_score(y, (scores >= 0.5).astype(int))
    auc = roc_auc_score(y, scores)
    logging.info(f"Propensity model trained on {len(X)} subjects. Accuracy: {accuracy:.2%}, AUC: {auc:.3f}")
    return {'model': result, 'accuracy': accuracy, 'auc': auc}


def predict_scores(model, X: pd.DataFrame) -> pd.Series:
    """Returns the predicted probability of treatment for each row of `X`."""
    check_missing(X, X.columns)
    probs = np.asarray(model.predict(_design_matrix(X)), dtype=float)
    return pd.Series(probs, index=X.index, name='scores')


def estimate_scores(table: CovariateTable, max_iter: int = 100) -> Tuple[pd.Series, Dict[str, Any]]:
    """
    Fits the propensity model on a covariate table and scores every subject.

    Returns:
        Tuple[pd.Series, Dict[str, Any]]: The scores indexed by subject id and the
                                          dictionary returned by `fit_model`.
    """
    fitted = fit_model(table.X, table.y, max_iter=max_iter)
    return predict_scores(fitted['model'], table.X), fitted
