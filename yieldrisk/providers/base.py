from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional

from yieldrisk.model_interface.types import PoolSeries


class SeriesProvider(ABC):
    """
    Upstream contract for raw pool series.

    Implementations must honour `timeout` (seconds) and raise ProviderTimeoutError
    when it elapses, or ProviderError for any other fetch failure. Retries, if any,
    belong here and not in the analytics core.
    """

    @abstractmethod
    def fetch_series(self, pool_id: str, range_days: int, timeout: Optional[float] = None) -> PoolSeries:
        ...
