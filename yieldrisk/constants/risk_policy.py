# Composite risk score weights; must sum to 1.0 so the score spans [0, 100].
RISK_WEIGHTS = {
    "liquidity":     0.30,
    "stability":     0.25,
    "yield":         0.20,
    "concentration": 0.15,
    "momentum":      0.10,
}

# Factors where a higher value means *less* risk (contribution is 1 - value).
RISK_REDUCING_FACTORS = ("liquidity", "stability", "momentum")

# Risk level cut points; a score equal to a cut point falls into the higher band.
LOW_RISK_CUTOFF = 30.0
MEDIUM_RISK_CUTOFF = 60.0
RISK_LEVEL_ORDER = ("low", "medium", "high")

# Normalisation ceilings used when deriving factors from raw series.
LIQUIDITY_LOG10_CEILING = 9.0   # log10($1B TVL)
VOLATILITY_CEILING = 0.10       # per-period return stdev treated as fully unstable
APY_CEILING = 100.0             # APY in percent treated as maximum yield risk

# Standard deviations at or below this are treated as zero.
ZERO_STD_EPSILON = 1e-12
