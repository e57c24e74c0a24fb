"""YieldRisk: risk/market analytics core for the yield-opportunity dashboard API."""

__version__ = "0.1.0"
