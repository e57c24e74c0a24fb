# PURPOSE: Exception types shared by the analytics core and the Lambda handlers.
# CONTEXT: Handlers map InvalidInputError to HTTP 400 and everything else to 500.

from __future__ import annotations


class YieldRiskError(Exception):
    """Base class for errors raised by the analytics core."""


class InvalidInputError(YieldRiskError, ValueError):
    """Missing or malformed input, rejected before any provider call."""


class ProviderError(YieldRiskError, RuntimeError):
    """Upstream series fetch failed. The message is surfaced to callers verbatim."""


class ProviderTimeoutError(ProviderError):
    """Upstream series fetch did not complete within the caller's timeout."""


class ConfigurationError(YieldRiskError, ValueError):
    """Environment setting is malformed or names something that does not exist."""
