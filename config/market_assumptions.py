# =============================================================================
# Market Info used in simulations
# =============================================================================
import numpy as np

asset_classes = ("stocks", "bonds", "cash")

# Long-run compound annual growth rates and annualized volatility
stock_cagr = 0.07
stock_sigma = 0.16
bond_cagr = 0.04
bond_sigma = 0.06
cash_cagr = 0.025
cash_sigma = 0.01

# Stocks, bonds, cash
corr_matrix = np.array([
    [ 1.00, -0.30,  0.00],
    [-0.30,  1.00,  0.20],
    [ 0.00,  0.20,  1.00]
])

default_allocation = {"stocks": 0.60, "bonds": 0.35, "cash": 0.05}

# Fat tails: Student-t degrees of freedom (rescaled to unit variance)
student_t_df = 5

# -----------------------------------------------------------------------------
# Market regimes (Markov switching)
# -----------------------------------------------------------------------------
regime_names = ("bull", "normal", "bear", "crisis")

# Shifts are added to the arithmetic mean before the stationary-mean correction.
# mean_reversion is the AR(1) pull on last year's stock deviation.
regime_params = {
    "bull":   {"stock_shift":  0.05, "bond_shift": -0.005, "stock_vol_mult": 0.80, "bond_vol_mult": 0.80, "mean_reversion": 0.05},
    "normal": {"stock_shift":  0.00, "bond_shift":  0.000, "stock_vol_mult": 1.00, "bond_vol_mult": 1.00, "mean_reversion": 0.10},
    "bear":   {"stock_shift": -0.10, "bond_shift":  0.010, "stock_vol_mult": 1.40, "bond_vol_mult": 1.20, "mean_reversion": 0.20},
    "crisis": {"stock_shift": -0.25, "bond_shift":  0.020, "stock_vol_mult": 2.00, "bond_vol_mult": 1.50, "mean_reversion": 0.30},
}

# Row = current regime, column = next year's regime
regime_transitions = np.array([
    [0.70, 0.20, 0.08, 0.02],
    [0.25, 0.50, 0.20, 0.05],
    [0.20, 0.40, 0.30, 0.10],
    [0.05, 0.25, 0.60, 0.10],
])

initial_regime_probabilities = np.array([0.30, 0.50, 0.15, 0.05])
