# PURPOSE: Resolve the SeriesProvider the service should use.
# CONTEXT: SERIES_PROVIDER="package.module:factory" swaps in another provider
#          (a fixture replayer, a different upstream); unset means DefiLlama.

import importlib
import os

from yieldrisk.errors import ConfigurationError
from yieldrisk.providers.base import SeriesProvider


def load_provider() -> SeriesProvider:
    """
    Build the configured provider.

    raises:
    - ConfigurationError – SERIES_PROVIDER is not "module:factory", or the module
      or factory cannot be found.
    """
    setting = os.getenv("SERIES_PROVIDER", "").strip()
    if not setting:
        from yieldrisk.providers.defillama import DefiLlamaProvider
        return DefiLlamaProvider()

    module_name, sep, factory_name = setting.partition(":")
    if not sep or not module_name or not factory_name:
        raise ConfigurationError(f"SERIES_PROVIDER must be 'module:factory', got {setting!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"SERIES_PROVIDER module {module_name!r} cannot be imported: {e}") from e
    factory = getattr(module, factory_name, None)
    if not callable(factory):
        raise ConfigurationError(f"SERIES_PROVIDER factory {factory_name!r} not found in {module_name!r}")
    return factory()
