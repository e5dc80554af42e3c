"""
Configuration Loader (``bursar_config.loader``).

Responsibility
--------------
Loads a jurisdiction YAML file and parses it into the typed
``bursar_config.schema`` dataclasses. Runtime callers go through
``bursar_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* Monetary values and rates are parsed to ``Decimal`` from their string
  form so no float ever enters the configuration.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unparseable numbers  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from bursar_config.schema import (
    BursarConfig,
    FeePolicy,
    PayeRules,
    PayrollPolicy,
    StatutoryRates,
    TaxBand,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping at the top of {path}, got {type(data).__name__}")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, float):
        # YAML floats lose precision; quote numbers in config files.
        value = repr(value)
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"{field}: cannot parse {value!r} as a decimal") from exc


def parse_tax_band(data: dict[str, Any]) -> TaxBand:
    upper = data.get("upper_bound")
    return TaxBand(
        label=str(data.get("label", "")),
        upper_bound=None if upper is None else _decimal(upper, "upper_bound"),
        rate=_decimal(data["rate"], "rate"),
    )


def parse_paye_rules(data: dict[str, Any]) -> PayeRules:
    relief = data["relief"]
    return PayeRules(
        bands=tuple(parse_tax_band(b) for b in data["bands"]),
        relief_minimum=_decimal(relief["minimum"], "paye.relief.minimum"),
        relief_rate=_decimal(relief["rate"], "paye.relief.rate"),
    )


def parse_statutory_rates(data: dict[str, Any]) -> StatutoryRates:
    nhf = data["nhf"]
    pension = data["pension"]
    nhis = data["nhis"]
    return StatutoryRates(
        nhf_rate=_decimal(nhf["rate"], "nhf.rate"),
        nhf_min_basic=_decimal(nhf.get("min_basic", "0"), "nhf.min_basic"),
        pension_employee_rate=_decimal(pension["employee_rate"], "pension.employee_rate"),
        pension_employer_rate=_decimal(pension["employer_rate"], "pension.employer_rate"),
        nhis_rate=_decimal(nhis["rate"], "nhis.rate"),
        nhis_cap=_decimal(nhis["cap"], "nhis.cap"),
        paye=parse_paye_rules(data["paye"]),
    )


def parse_payroll_policy(data: dict[str, Any]) -> PayrollPolicy:
    return PayrollPolicy(
        cash_ceiling=_decimal(data["cash_ceiling"], "cash_ceiling"),
        bank_transfer_threshold=_decimal(
            data["bank_transfer_threshold"], "bank_transfer_threshold"
        ),
        net_pay_ceiling=_decimal(data["net_pay_ceiling"], "net_pay_ceiling"),
        min_year=int(data["min_year"]),
        max_year=int(data["max_year"]),
        max_allowance_lines=int(data.get("max_allowance_lines", 20)),
        max_deduction_lines=int(data.get("max_deduction_lines", 20)),
    )


def parse_fee_policy(data: dict[str, Any]) -> FeePolicy:
    return FeePolicy(
        quick_amount_fraction=_decimal(
            data.get("quick_amount_fraction", "0.5"), "quick_amount_fraction"
        ),
        quick_amount_increments=tuple(
            _decimal(v, "quick_amount_increments")
            for v in data.get("quick_amount_increments", ())
        ),
    )


def parse_config(data: dict[str, Any]) -> BursarConfig:
    """Parse a full configuration document into a ``BursarConfig``."""
    return BursarConfig(
        jurisdiction=str(data["jurisdiction"]),
        currency=str(data["currency"]),
        statutory=parse_statutory_rates(data["statutory"]),
        payroll=parse_payroll_policy(data["payroll"]),
        fees=parse_fee_policy(data.get("fees", {})),
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> BursarConfig:
    """Load and parse one configuration file."""
    return parse_config(load_yaml_file(path))
