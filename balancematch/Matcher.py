# Matcher.py
# -*- coding: utf-8 -*-
import logging
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from typing import Any, Dict, Iterable, List, Optional, Tuple

from balancematch import diagnostics
from balancematch import matching
from balancematch import modeling
from balancematch import visualization
from balancematch.exceptions import MatchingError
from balancematch.table import build_covariate_table

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)


class Matcher:
    """
    Propensity score matching workflow for a single analysis iteration.

    Builds the covariate table, fits a logistic propensity model, pairs each
    treatment subject with one control, and reports balance on the matched dataset.
    A new iteration with other covariates or exclusions is started with `refine()`.

    Attributes:
        records (pd.DataFrame): The unified record set this matcher was built from.
        table (CovariateTable): Validated per-subject table.
        data (pd.DataFrame): Table data indexed by subject id; gains a 'scores'
                             column after `predict_scores()`.
        yvar (str): The 1/0 group indicator column ('treated').
        xvars (List[str]): Covariates used by the propensity model.
        extra (List[str]): Diagnostic-only variables.
        exclude (List[Any]): Subject ids excluded by the analyst.
        model: Fitted statsmodels logit results, once `fit_scores()` has run.
        model_accuracy (Optional[float]): In-sample accuracy of the model.
        model_auc (Optional[float]): In-sample ROC AUC of the model.
        result (Optional[MatchResult]): The most recent match.
        results (Dict[str, MatchResult]): Latest match per method.
        matched_data (pd.DataFrame): Matched dataset of the most recent match.
    """
    def __init__(self, records: pd.DataFrame, id_col: str, group_col: str, covariates: List[str],
                 treatment_label: Any = None, extra: Optional[List[str]] = None,
                 exclude: Optional[Iterable[Any]] = None):
        """
        Initializes the Matcher object.

        Args:
            records (pd.DataFrame): One row per subject.
            id_col (str): Unique subject identifier column.
            group_col (str): Two-valued group label column.
            covariates (List[str]): Numeric covariates for the propensity model.
            treatment_label (Any, optional): Group value denoting treatment; may be
                                             omitted for boolean or 0/1 labels.
            extra (Optional[List[str]], optional): Variables reported in diagnostics only.
            exclude (Optional[Iterable[Any]], optional): Subject ids to leave out.
        Raises:
            MatchingError: If the records cannot form a valid covariate table.
        """
        plt.rcParams["figure.figsize"] = (10, 5)
        self.records = records
        try:
            self.table = build_covariate_table(records, id_col, group_col, covariates,
                                               treatment_label=treatment_label, extra=extra,
                                               exclude=exclude)
        except MatchingError as e:
            logging.error(f"Could not build covariate table: {e}")
            raise

        self.data = self.table.data.copy()
        self.yvar = self.table.yvar
        self.xvars = list(self.table.covariates)
        self.extra = list(self.table.extra)
        self.exclude = list(self.table.excluded)

        self.control_color = "#1F77B4"
        self.test_color = "#FF7F0E"

        self.model = None
        self.model_accuracy: Optional[float] = None
        self.model_auc: Optional[float] = None
        self.result: Optional[matching.MatchResult] = None
        self.results: Dict[str, matching.MatchResult] = {}
        self.matched_data = pd.DataFrame()

        self.testn = self.table.n_treatment
        self.controln = self.table.n_control
        if self.testn > self.controln:
            logging.warning(f"More treatment ({self.testn}) than control ({self.controln}) subjects; "
                            "1:1 matching will not be possible.")

    def fit_scores(self, max_iter: int = 100) -> None:
        """
        Fits the logistic propensity model on the covariates.

        Args:
            max_iter (int, optional): Max iterations for the solver. Defaults to 100.
        Raises:
            InsufficientDataError: If the data cannot support the model.
            MissingValueError: If a covariate value is missing.
        """
        try:
            fitted = modeling.fit_model(self.table.X, self.table.y, max_iter=max_iter)
        except MatchingError as e:
            logging.error(f"Could not fit propensity model: {e}")
            raise
        self.model = fitted['model']
        self.model_accuracy = fitted['accuracy']
        self.model_auc = fitted['auc']

    def predict_scores(self) -> None:
        """
        Predicts propensity scores using the fitted model.
        Scores are stored in `self.data['scores']`.
        """
        if self.model is None:
            raise ValueError("No trained model found. Please call fit_scores() first.")
        self.data['scores'] = modeling.predict_scores(self.model, self.table.X)
        logging.info(f"Propensity scores predicted: range [{self.data['scores'].min():.4f}, "
                     f"{self.data['scores'].max():.4f}].")

    def match(self, method: str = 'nearest', caliper: Optional[float] = None,
              order: str = 'ascending', verbose: bool = False) -> matching.MatchResult:
        """
        Performs 1:1 matching based on the estimated propensity scores.

        Args:
            method (str, optional): 'nearest' (greedy) or 'optimal'. Defaults to 'nearest'.
            caliper (Optional[float], optional): Maximum score distance for a match.
            order (str, optional): Nearest-neighbour processing order, 'ascending'
                                   or 'descending'. Defaults to 'ascending'.
            verbose (bool, optional): Show a progress bar. Defaults to False.
        Returns:
            MatchResult: The matches, also stored in `self.result`.
        Raises:
            ValueError: If scores have not been predicted or `method` is unknown.
            InsufficientControlsError: If there are fewer controls than treatment subjects.
        """
        self._require_scores()
        logging.info(f"Performing matching: method='{method}', caliper={caliper}")
        try:
            result = matching.perform_match(self.data, self.yvar, method=method, caliper=caliper,
                                            order=order, verbose=verbose)
        except MatchingError as e:
            logging.error(f"Matching failed: {e}")
            raise
        self.result = result
        self.results[method] = result
        self.matched_data = matching.matched_data(self.data, result)
        return result

    def compare_methods(self, caliper: Optional[float] = None) -> pd.DataFrame:
        """
        Runs both algorithms on the current scores and summarises them.

        `self.result` and `self.matched_data` are left untouched; both results are
        stored in `self.results`.

        Returns:
            pd.DataFrame: One row per method with `n_matches`, `total_distance`,
                          `max_distance`, `score_smd` and `score_variance_ratio`.
        """
        self._require_scores()
        rows = {}
        for method in matching.METHODS:
            result = matching.perform_match(self.data, self.yvar, method=method, caliper=caliper)
            self.results[method] = result
            matched = matching.matched_data(self.data, result)
            sb = diagnostics.score_balance(matched, self.yvar)
            rows[method] = {
                'n_matches': result.n_matches,
                'total_distance': result.total_distance,
                'max_distance': float(result.matches['distance'].max()) if result.n_matches else np.nan,
                'score_smd': sb['smd'],
                'score_variance_ratio': sb['variance_ratio'],
            }
        if set(self.results['nearest'].matched_ids()) == set(self.results['optimal'].matched_ids()):
            logging.info("Nearest-neighbour and optimal matching selected the same subjects.")
        return pd.DataFrame.from_dict(rows, orient='index')

    def balance_table(self, variables: Optional[List[str]] = None,
                      continuous_test: str = 'ttest') -> pd.DataFrame:
        """
        Balance statistics on the matched dataset.

        Args:
            variables (Optional[List[str]], optional): Defaults to the covariates,
                                                       the extra variables and 'scores'.
            continuous_test (str, optional): 'ttest' or 'ranksum'.
        """
        self._require_match()
        if variables is None:
            variables = self.xvars + self.extra + ['scores']
        return diagnostics.balance_table(self.matched_data, self.yvar, variables, continuous_test)

    def score_balance(self) -> Dict[str, float]:
        """SMD, variance ratio and p-value of the propensity score in the matched dataset."""
        self._require_match()
        return diagnostics.score_balance(self.matched_data, self.yvar)

    def compare_balance(self, variables: Optional[List[str]] = None,
                        continuous_test: str = 'ttest') -> pd.DataFrame:
        """Balance statistics for the full pool next to those of the matched dataset."""
        self._require_match()
        if variables is None:
            variables = self.xvars + self.extra + ['scores']
        return diagnostics.compare_balance(self.data, self.matched_data, self.yvar, variables, continuous_test)

    def assess_balance(self, thresholds: Optional[diagnostics.BalanceThresholds] = None) -> pd.DataFrame:
        """Balance table with advisory threshold flags; nothing is rerun automatically."""
        return diagnostics.assess_balance(self.balance_table(), thresholds)

    def worst_match(self) -> Optional[pd.Series]:
        """The match with the largest score distance in the most recent result."""
        self._require_match()
        worst = matching.worst_match(self.result)
        if worst is not None:
            logging.info(f"Largest distance {worst['distance']:.6f}: treatment {worst['treatment_id']!r} "
                         f"<-> control {worst['control_id']!r}")
        return worst

    def refine(self, covariates: Optional[List[str]] = None,
               exclude: Optional[Iterable[Any]] = None) -> 'Matcher':
        """
        Starts a new iteration on the same records.

        Args:
            covariates (Optional[List[str]], optional): Replacement covariate list.
                                                        Defaults to the current one.
            exclude (Optional[Iterable[Any]], optional): Further subject ids to drop,
                                                         added to the current exclusions.
        Returns:
            Matcher: A fresh matcher; scores and matches must be recomputed.
        """
        new_exclude = list(self.exclude)
        for sid in exclude or []:
            if sid not in new_exclude:
                new_exclude.append(sid)
        return Matcher(self.records, self.table.id_col, self.table.group_col,
                       covariates if covariates is not None else self.xvars,
                       treatment_label=self.table.treatment_label, extra=self.extra,
                       exclude=new_exclude)

    def tune_caliper(self, method: str = 'nearest', rng: Optional[np.ndarray] = None,
                     plot_result: bool = True) -> Tuple[List[float], List[float]]:
        """
        Evaluates treatment-group retention across a range of caliper values.

        Args:
            method (str, optional): 'nearest' or 'optimal'. Defaults to 'nearest'.
            rng (Optional[np.ndarray], optional): Calipers to test.
            plot_result (bool, optional): Plot retention against caliper. Defaults to True.
        """
        self._require_scores()
        calipers, retained = matching.tune_caliper(self.data['scores'], self.data[self.yvar],
                                                   method=method, rng=rng)
        if plot_result:
            visualization.plot_caliper_retention(calipers, retained)
        return calipers, retained

    def plot_scores(self) -> None:
        """
        Plots the distribution of propensity scores before matching.
        """
        self._require_scores()
        visualization.plot_scores(self.data, self.yvar,
                                  control_color=self.control_color,
                                  test_color=self.test_color)

    def plot_matched_scores(self) -> None:
        """
        Plots the distribution of propensity scores in the matched dataset.
        """
        self._require_match()
        visualization.plot_matched_scores(self.matched_data, self.yvar,
                                          control_color=self.control_color,
                                          test_color=self.test_color)

    def love_plot(self, threshold: Optional[float] = 0.25) -> None:
        """Dot plot of |SMD| per variable before and after matching."""
        visualization.love_plot(self.compare_balance(), threshold=threshold,
                                control_color=self.control_color,
                                test_color=self.test_color)

    def _require_scores(self) -> None:
        if 'scores' not in self.data.columns:
            logging.error("Propensity scores ('scores' column) not found. Please run predict_scores() first.")
            raise ValueError("Scores column not found in data. Please run predict_scores() first.")

    def _require_match(self) -> None:
        if self.result is None:
            raise ValueError("No matched data found. Please run match() first.")
