"""
cafe_config -- versioned YAML configuration for the café workforce core.

Responsibility:
    Single entry point for configuration: ``load_configuration(directory)``
    for an explicit set, ``get_default_configuration()`` for the packaged
    defaults (2024 SSS table, PhilHealth, Pag-IBIG, simplified withholding
    tax, 2025 Philippine holidays, DOLE multipliers).

Architecture position:
    Configuration layer.  Sits beside ``cafe_kernel`` and below
    ``cafe_modules``; it imports only kernel exceptions, types and logging.

Failure modes:
    - ``ConfigurationError`` / ``BracketTableError`` on invalid documents.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from cafe_config.loader import load_configuration
from cafe_config.schema import CafeConfiguration

DEFAULT_CONFIG_DIR = Path(__file__).parent / "defaults"


@lru_cache(maxsize=1)
def get_default_configuration() -> CafeConfiguration:
    """Load (once) the configuration shipped with the package."""
    return load_configuration(DEFAULT_CONFIG_DIR)


__all__ = [
    "CafeConfiguration",
    "DEFAULT_CONFIG_DIR",
    "get_default_configuration",
    "load_configuration",
]
