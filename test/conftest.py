import os
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("MPLBACKEND", "Agg")

import matplotlib

matplotlib.use("Agg", force=True)


def make_records(n_treat: int = 20, n_ctrl: int = 50, seed: int = 123) -> pd.DataFrame:
    """Overlapping synthetic subjects: patients are a little older and heavier."""
    rng = np.random.default_rng(seed)
    return pd.DataFrame({
        'subject': [f"T{i:03d}" for i in range(n_treat)] + [f"C{i:03d}" for i in range(n_ctrl)],
        'group': ['patient'] * n_treat + ['healthy'] * n_ctrl,
        'age': np.concatenate([rng.normal(55, 8, n_treat), rng.normal(50, 8, n_ctrl)]),
        'weight': np.concatenate([rng.normal(80, 10, n_treat), rng.normal(75, 10, n_ctrl)]),
        'sex': rng.choice(['F', 'M'], size=n_treat + n_ctrl),
    })


@pytest.fixture
def records():
    return make_records()


@pytest.fixture
def example_scores():
    """Treatment scores 0.82/0.55/0.40 against controls 0.81/0.50/0.42/0.39."""
    scores = pd.Series(
        [0.82, 0.55, 0.40, 0.81, 0.50, 0.42, 0.39],
        index=['t1', 't2', 't3', 'c1', 'c2', 'c3', 'c4'],
        name='scores',
    )
    treated = pd.Series([1, 1, 1, 0, 0, 0, 0], index=scores.index, name='treated')
    return scores, treated
