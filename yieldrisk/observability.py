"""
Observability bootstrap.

PURPOSE:
- Optionally enables AWS X-Ray tracing when USE_XRAY=1.
- Provides a subsegment context manager used around upstream provider calls.
- Degrades to a no-op when X-Ray is disabled or the SDK is unavailable.

CONTEXT:
- Logging is configured separately in logging_setup.py.
"""
from __future__ import annotations
import os


def init_observability():
    """
    Optionally initialise AWS X-Ray instrumentation.

    returns:
    - xray_recorder if configured, otherwise None.

    notes:
    - patch_all() instruments requests, so provider HTTP calls show up as
      downstream nodes in the trace map.
    """
    if os.getenv("USE_XRAY", "0") != "1":
        return None
    try:
        from aws_xray_sdk.core import xray_recorder, patch_all
        xray_recorder.configure(service=os.getenv("XRAY_SERVICE_NAME", "YieldRisk"))
        patch_all()
        return xray_recorder
    except Exception:
        # Tracing must never block a request.
        return None


class xray_segment:
    """
    Context manager for a manual X-Ray subsegment.

    >>> with xray_segment("provider.fetch_series"):
    >>>     series = provider.fetch_series(pool_id, 30)

    Exceptions raised inside the block propagate; only tracing errors are ignored.
    """

    def __init__(self, name: str):
        self.name = name
        self.sub = None

    def __enter__(self):
        if os.getenv("USE_XRAY", "0") != "1":
            return self
        try:
            from aws_xray_sdk.core import xray_recorder
            self.sub = xray_recorder.begin_subsegment(self.name)
        except Exception:
            self.sub = None
        return self

    def __exit__(self, exc_type, exc, tb):
        if self.sub is None:
            return False
        try:
            from aws_xray_sdk.core import xray_recorder
            if exc is not None:
                self.sub.add_exception(exc, [])
            xray_recorder.end_subsegment()
        except Exception:
            pass
        return False
