"""
bursar_config -- single public entrypoint for school finance configuration.

Responsibility:
    ``get_active_config()`` is the one way runtime code obtains statutory
    rates and payroll/fee policy. YAML loading lives in ``loader`` and is
    exposed for tests and tooling only.

Audit relevance:
    Every load emits a ``BURSAR_CONFIG_TRACE`` log entry carrying the
    jurisdiction, currency and document checksum so a computed payslip
    can be tied back to the exact rate table that produced it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from bursar_config.loader import compute_checksum, load_config_file
from bursar_config.schema import (
    BursarConfig,
    FeePolicy,
    PayeRules,
    PayrollPolicy,
    StatutoryRates,
    TaxBand,
)

_logger = logging.getLogger("bursar.config")

_DEFAULTS_DIR = Path(__file__).parent / "defaults"
DEFAULT_CONFIG_PATH = _DEFAULTS_DIR / "nigeria.yaml"


def load_config(path: Path | str | None = None) -> BursarConfig:
    """Load, validate and trace a configuration file.

    Args:
        path: YAML file to load. Defaults to the bundled Nigerian rates.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If a value fails schema validation.
        KeyError: If a required key is missing.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_config_file(config_path)

    _logger.info(
        "BURSAR_CONFIG_TRACE",
        extra={
            "trace_type": "BURSAR_CONFIG_TRACE",
            "config_path": str(config_path),
            "jurisdiction": config.jurisdiction,
            "currency": config.currency,
            "checksum": config.checksum,
            "tax_band_count": len(config.statutory.paye.bands),
        },
    )
    return config


_active: BursarConfig | None = None


def get_active_config() -> BursarConfig:
    """Return the process-wide configuration, loading the defaults once."""
    global _active
    if _active is None:
        _active = load_config()
    return _active


def set_active_config(config: BursarConfig | None) -> None:
    """Replace (or with ``None``, reset) the process-wide configuration."""
    global _active
    _active = config


__all__ = [
    "BursarConfig",
    "DEFAULT_CONFIG_PATH",
    "FeePolicy",
    "PayeRules",
    "PayrollPolicy",
    "StatutoryRates",
    "TaxBand",
    "compute_checksum",
    "get_active_config",
    "load_config",
    "set_active_config",
]
