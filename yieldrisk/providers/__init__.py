# Re-export so callers can write `from yieldrisk.providers import DefiLlamaProvider`.
from .base import SeriesProvider
from .defillama import DefiLlamaProvider
from .loader import load_provider

__all__ = ["SeriesProvider", "DefiLlamaProvider", "load_provider"]
