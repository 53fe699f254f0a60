# visualization.py
# -*- coding: utf-8 -*-
from typing import List, Optional

import numpy as np
import pandas as pd
import seaborn as sns
import matplotlib.pyplot as plt


def plot_matched_scores(data: pd.DataFrame, yvar: str, control_color: str = "#1F77B4", test_color: str = "#FF7F0E") -> None:
    """
    Plots the distribution of propensity scores after matching.
    """
    if data.empty:
        raise ValueError("No matched data found. Please run match() first.")
    if 'scores' not in data.columns:
        raise ValueError("No 'scores' column found in the matched dataset. Make sure scores are predicted.")

    sns.kdeplot(data[data[yvar] == 0]['scores'], label='Control (matched)', fill=True, color=control_color)
    sns.kdeplot(data[data[yvar] == 1]['scores'], label='Treatment (matched)', fill=True, color=test_color)
    plt.legend(loc='upper right')
    plt.xlim(0, 1)
    plt.title("Propensity Scores After Matching")
    plt.ylabel("Density")
    plt.xlabel("Scores")
    plt.show()


def plot_scores(data: pd.DataFrame, yvar: str, control_color: str = "#1F77B4", test_color: str = "#FF7F0E") -> None:
    """
    Plots the distribution of propensity scores before matching between treatment and control.
    """
    if 'scores' not in data.columns:
        raise ValueError("Propensity scores haven't been calculated. Please run predict_scores() first.")
    sns.kdeplot(data[data[yvar] == 0]['scores'], label='Control', fill=True, color=control_color)
    sns.kdeplot(data[data[yvar] == 1]['scores'], label='Treatment', fill=True, color=test_color)
    plt.legend(loc='upper right')
    plt.xlim(0, 1)
    plt.title("Propensity Scores Before Matching")
    plt.ylabel("Density")
    plt.xlabel("Scores")
    plt.show()


def love_plot(comparison: pd.DataFrame, threshold: Optional[float] = 0.25,
              control_color: str = "#1F77B4", test_color: str = "#FF7F0E") -> None:
    """
    Dot plot of absolute standardized mean differences before and after matching.

    Args:
        comparison (pd.DataFrame): Output of `diagnostics.compare_balance`.
        threshold (Optional[float], optional): Draws a dashed caution line at this
                                               |SMD|. Defaults to 0.25.
    """
    rows = comparison.dropna(subset=['smd_before', 'smd_after'], how='all')
    if rows.empty:
        raise ValueError("No continuous variables with standardized mean differences to plot.")
    rows = rows.iloc[::-1]
    positions = np.arange(len(rows))

    fig, ax = plt.subplots(figsize=(8, max(3, 0.5 * len(rows) + 1)))
    ax.scatter(rows['smd_before'].abs(), positions, label='Before matching', color=control_color)
    ax.scatter(rows['smd_after'].abs(), positions, label='After matching', color=test_color)
    if threshold is not None:
        ax.axvline(threshold, linestyle='--', color='grey', alpha=0.7)
    ax.set_yticks(positions)
    ax.set_yticklabels(rows.index.tolist())
    ax.set_xlabel("|Standardized Mean Difference|")
    ax.set_title("Covariate Balance")
    ax.legend(loc='lower right')
    plt.tight_layout()
    plt.show()


def plot_caliper_retention(calipers: List[float], retained: List[float]) -> None:
    """Plots the share of treatment subjects retained for each caliper value."""
    plt.figure(figsize=(10, 6))
    plt.plot(calipers, retained, marker='o')
    plt.title("Proportion of Treatment Group Retained for Caliper Grid")
    plt.ylabel("Proportion Retained (Treatment Group)")
    plt.xlabel("Caliper")
    plt.grid(True, linestyle='--', alpha=0.7)
    plt.tight_layout()
    plt.show()
