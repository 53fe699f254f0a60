# Example.py
import numpy as np
import pandas as pd
from balancematch import Matcher, BalanceThresholds

# --- 1. Build a Record Set ---
# One row per subject: identifier, group label and a few continuous covariates.
# Real analyses load and join these from files before handing them to Matcher.
rng = np.random.default_rng(7)
n_patients, n_healthy = 40, 120
records = pd.DataFrame({
    'subject': [f"P{i:03d}" for i in range(n_patients)] + [f"H{i:03d}" for i in range(n_healthy)],
    'group': ['patient'] * n_patients + ['healthy'] * n_healthy,
    'age': np.concatenate([rng.normal(62, 6, n_patients), rng.normal(55, 9, n_healthy)]),
    'education': np.concatenate([rng.normal(14, 2, n_patients), rng.normal(15, 3, n_healthy)]),
    'bmi': np.concatenate([rng.normal(27, 3, n_patients), rng.normal(25, 4, n_healthy)]),
    'sex': rng.choice(['F', 'M'], size=n_patients + n_healthy),
})

print("--- Sample Records ---")
print(records.head())

# --- 2. Initialize Matcher ---
# 'sex' is categorical, so it is reported in the diagnostics but not modelled.
matcher = Matcher(records, id_col='subject', group_col='group',
                  covariates=['age', 'education', 'bmi'],
                  treatment_label='patient', extra=['sex'])
print(f"\nTreatment: {matcher.testn}, Control: {matcher.controln}")

# --- 3. Fit and Predict Propensity Scores ---
matcher.fit_scores()
matcher.predict_scores()
print(matcher.model.summary())
matcher.plot_scores()

# --- 4. Match With Both Algorithms ---
print("\n--- Nearest-neighbour vs Optimal ---")
print(matcher.compare_methods())

result = matcher.match(method='optimal')
print(f"\nMatched {result.n_matches} pairs, total distance {result.total_distance:.4f}")
print(matcher.matched_data[[matcher.yvar, 'scores', 'match_id', 'matched_as', 'pair_distance']].head())

# --- 5. Diagnose ---
print("\n--- Balance on the Matched Dataset ---")
print(matcher.assess_balance(BalanceThresholds()))
print("\n--- Propensity Score Balance ---")
print(matcher.score_balance())
print("\n--- Before vs After ---")
print(matcher.compare_balance())
matcher.love_plot()
matcher.plot_matched_scores()

# --- 6. Iterate ---
# The analyst inspects the widest pair and may drop an outlier, then reruns.
worst = matcher.worst_match()
print(f"\nWidest pair: {worst['treatment_id']} <-> {worst['control_id']} ({worst['distance']:.4f})")
refined = matcher.refine(exclude=[worst['treatment_id']])
refined.fit_scores()
refined.predict_scores()
refined.match(method='optimal')
print(refined.assess_balance())

print("\n--- Example Script Finished ---")
