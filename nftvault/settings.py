"""
Vault settings and their configuration loading.

VaultSettings groups the parameters the ledger reads: the interest APR, the
origination fee, the insurance premium and penalty, the repurchase window
and the global borrow cap. Settings are immutable; changing them means
building a new validated instance and handing it to Vault.set_settings().

Settings can be read from YAML (a path, a YAML string or an already parsed
mapping). Values not given fall back to the packaged defaults.yml.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Mapping, Union

import yaml

from .errors import InvalidInputError
from .rate import Rate

RATE_FIELDS = (
    "debt_interest_apr",
    "organization_fee_rate",
    "insurance_purchase_rate",
    "insurance_liquidation_penalty_rate",
)


@dataclass(frozen=True)
class VaultSettings:
    """
    Immutable configuration for one vault.

    Attributes:
        debt_interest_apr: Annual interest charged on all outstanding debt
        organization_fee_rate: Origination fee taken out of each borrow
        insurance_purchase_rate: Extra premium taken out of insured borrows
        insurance_liquidation_penalty_rate: Penalty on the frozen debt at repurchase
        insurance_repurchase_time_limit: Repurchase window in seconds
        borrow_amount_cap: Maximum total debt the vault may carry
    """
    debt_interest_apr: Rate
    organization_fee_rate: Rate
    insurance_purchase_rate: Rate
    insurance_liquidation_penalty_rate: Rate
    insurance_repurchase_time_limit: int
    borrow_amount_cap: int

    def validate(self) -> "VaultSettings":
        """
        Checks every field and returns the settings unchanged.

        Raises:
            InvalidRateError: If any rate is malformed or above 1.0
            InvalidInputError: If the window or the cap is out of range
        """
        for name in RATE_FIELDS:
            rate = getattr(self, name)
            if not isinstance(rate, Rate):
                raise InvalidInputError(f"{name} must be a Rate, got {rate!r}")
            rate.validate(below_one=True, name=name)

        if not isinstance(self.insurance_repurchase_time_limit, int) or self.insurance_repurchase_time_limit <= 0:
            raise InvalidInputError(
                f"insurance_repurchase_time_limit must be a positive number of seconds, "
                f"got {self.insurance_repurchase_time_limit!r}"
            )
        if not isinstance(self.borrow_amount_cap, int) or self.borrow_amount_cap < 0:
            raise InvalidInputError(f"borrow_amount_cap must be a non-negative integer, got {self.borrow_amount_cap!r}")
        return self

    def with_changes(self, **changes) -> "VaultSettings":
        """Returns a validated copy with some fields replaced."""
        return replace(self, **changes).validate()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for name in RATE_FIELDS:
            rate = getattr(self, name)
            data[name] = [rate.numerator, rate.denominator]
        return data

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "VaultSettings":
        """
        Builds validated settings from plain data.

        Raises:
            InvalidInputError: On unknown or missing keys
        """
        known = set(RATE_FIELDS) | {"insurance_repurchase_time_limit", "borrow_amount_cap"}
        unknown = set(data) - known
        if unknown:
            raise InvalidInputError(f"Unknown settings keys: {sorted(unknown)}")
        missing = known - set(data)
        if missing:
            raise InvalidInputError(f"Missing settings keys: {sorted(missing)}")

        values = {name: Rate.parse(data[name]) for name in RATE_FIELDS}
        values["insurance_repurchase_time_limit"] = int(data["insurance_repurchase_time_limit"])
        values["borrow_amount_cap"] = int(data["borrow_amount_cap"])
        return cls(**values).validate()

    @classmethod
    def default(cls) -> "VaultSettings":
        return cls.from_mapping(_default_config())


def _read_yaml(obj: Union[str, Path, Mapping[str, Any], None]) -> Dict[str, Any]:
    """Returns a dict from a mapping, a YAML file path or a YAML string."""
    if obj is None:
        return {}
    if isinstance(obj, Mapping):
        return dict(obj)
    path = Path(obj)
    if isinstance(obj, Path) or (len(str(obj)) < 4096 and "\n" not in str(obj) and path.exists()):
        with open(path, "rt", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    else:
        data = yaml.safe_load(str(obj)) or {}
    if not isinstance(data, dict):
        raise InvalidInputError(f"Settings must be a mapping, got {type(data).__name__}")
    return data


def _default_config() -> Dict[str, Any]:
    text = resources.files("nftvault").joinpath("defaults.yml").read_text(encoding="utf-8")
    return yaml.safe_load(text) or {}


def load_settings(source: Union[str, Path, Mapping[str, Any], None] = None,
                  **overrides: Any) -> VaultSettings:
    """
    Loads settings from YAML, merged over the packaged defaults.

    Args:
        source: Path to a YAML file, a YAML string, a mapping, or None
        **overrides: Individual keys that take precedence over the source

    Returns:
        Validated VaultSettings
    """
    cfg = _default_config()
    cfg.update(_read_yaml(source))
    cfg.update(overrides)
    return VaultSettings.from_mapping(cfg)
