"""
Protocol Non-Script Parameters

Numeric protocol constants consumed by transaction building. None of
these feed script hashing.

Defaults mirror the sample table the protocol was launched with. The
table and the fraction limit are provisional: deployments override them
from a JSON config file via load_protocol_config(). Every table is
validated once at load time and handed out read-only.

Units: ratios are parts per `ratio_multiplier` (1_000_000 = 100%),
amounts are lovelace, durations are {"milliseconds": int}.
"""

import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, List, Mapping, NamedTuple, Optional, TypedDict


# ============================================================================
# Type Definitions
# ============================================================================

class Duration(TypedDict):
    milliseconds: int


class ProtocolNonScriptParams(TypedDict):
    governor_share_ratio: int
    protocol_funds_share_ratio: int
    discount_cent_price: int
    project_milestones: List[int]
    teiki_coefficient: int
    project_teiki_burn_rate: int
    epoch_length: Duration
    project_pledge: int
    project_creation_fee: int
    project_sponsorship_fee: int
    project_sponsorship_duration: Duration
    project_information_update_fee: int
    project_community_update_fee: int
    min_treasury_per_milestone_event: int
    stake_key_deposit: int
    proposal_waiting_period: Duration
    project_delist_waiting_period: Duration


class ProtocolConfig(NamedTuple):
    """Validated, read-only configuration built once at process start."""
    protocol_params: Mapping[str, Any]
    transaction_constants: Mapping[str, int]


# ============================================================================
# Freezing
# ============================================================================

def config_to_json(value: Any) -> Any:
    """Plain dict/list copy of a frozen config table."""
    if isinstance(value, Mapping):
        return {k: config_to_json(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [config_to_json(v) for v in value]
    return value


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


# ============================================================================
# Defaults
# ============================================================================

RATIO_MULTIPLIER = 1_000_000

# Read-only; load_protocol_config() works on a thawed copy
SAMPLE_PROTOCOL_NON_SCRIPT_PARAMS: Mapping[str, Any] = _freeze({
    "governor_share_ratio": 800_000,  # 80%
    "protocol_funds_share_ratio": 100_000,  # 10%
    "discount_cent_price": 10_000,
    "project_milestones": [1_000_000_000, 5_000_000_000, 10_000_000_000],
    "teiki_coefficient": 500,
    "project_teiki_burn_rate": 50_000,  # 5% per epoch
    "epoch_length": {"milliseconds": 200_000},  # 10 blocks / epoch
    "project_pledge": 100_000_000,
    "project_creation_fee": 10_000_000,
    "project_sponsorship_fee": 50_000_000,
    "project_sponsorship_duration": {"milliseconds": 86_400_000},  # 1 day
    "project_information_update_fee": 4_000_000,
    "project_community_update_fee": 2_000_000,
    "min_treasury_per_milestone_event": 10,
    "stake_key_deposit": 2_000_000,
    "proposal_waiting_period": {"milliseconds": 20_000},  # 1 block
    "project_delist_waiting_period": {"milliseconds": 20_000},  # 1 block
})

DEFAULT_TRANSACTION_CONSTANTS: Mapping[str, int] = _freeze({
    "inactive_project_utxo_ada": 2_000_000,
    "project_detail_utxo_ada": 2_000_000,
    "project_script_utxo_ada": 20_000_000,
    "project_min_funds_withdrawal_ada": 100_000_000,
    "project_funds_withdrawal_discount_ratio": 100,
    "project_new_milestone_discount_cents": 100,
    "project_close_discount_cents": 50,
    "project_delist_discount_cents": 50,
    "project_script_close_discount_cents": 50,
    "project_script_delist_discount_cents": 50,
    "treasury_utxo_min_ada": 2_000_000,
    "treasury_min_withdrawal_ada": 100_000_000,
    "treasury_withdrawal_discount_ratio": 100,
    "treasury_revoke_discount_cents": 50,
    "ratio_multiplier": RATIO_MULTIPLIER,
    # Provisional; not yet confirmed
    "fraction_limit": 2_000_000,
})

RATIO_FIELDS = ("governor_share_ratio", "protocol_funds_share_ratio", "project_teiki_burn_rate")
DURATION_FIELDS = (
    "epoch_length",
    "project_sponsorship_duration",
    "proposal_waiting_period",
    "project_delist_waiting_period",
)
MILESTONE_FIELD = "project_milestones"

CONFIG_SECTIONS = ("protocol_params", "transaction_constants")


# ============================================================================
# Validation
# ============================================================================

def validate_protocol_params(
    table: Mapping[str, Any],
    ratio_multiplier: int = RATIO_MULTIPLIER
) -> Mapping[str, Any]:
    """
    Check a ProtocolNonScriptParams table.

    Rules:
      - Exact key set (no missing, no extra keys)
      - Scalars are non-negative integers (bool is not an integer here)
      - Ratios do not exceed ratio_multiplier
      - Durations are {"milliseconds": non-negative int}
      - project_milestones is a list of non-negative ints, strictly increasing

    Returns:
        The same table, unchanged.

    Raises:
        ConfigValidationError: On the first violated rule.
    """
    _check_keys(table, ProtocolNonScriptParams.__annotations__.keys(), "protocol_params")

    for key, value in table.items():
        if key in DURATION_FIELDS:
            if not isinstance(value, Mapping) or set(value.keys()) != {"milliseconds"}:
                raise ConfigValidationError(
                    f"protocol_params.{key} must be {{\"milliseconds\": int}}, got {value!r}"
                )
            _check_non_negative_int(value["milliseconds"], f"protocol_params.{key}.milliseconds")
        elif key == MILESTONE_FIELD:
            if not isinstance(value, (list, tuple)):
                raise ConfigValidationError(f"protocol_params.{key} must be a list, got {value!r}")
            for i, milestone in enumerate(value):
                _check_non_negative_int(milestone, f"protocol_params.{key}[{i}]")
            for i in range(1, len(value)):
                if value[i] <= value[i - 1]:
                    raise ConfigValidationError(
                        f"protocol_params.{key} must be strictly increasing: "
                        f"{value[i - 1]} >= {value[i]} at index {i}"
                    )
        else:
            _check_non_negative_int(value, f"protocol_params.{key}")
            if key in RATIO_FIELDS and value > ratio_multiplier:
                raise ConfigValidationError(
                    f"protocol_params.{key} = {value} exceeds ratio multiplier {ratio_multiplier}"
                )

    return table


def validate_transaction_constants(table: Mapping[str, int]) -> Mapping[str, int]:
    """
    Check the transaction constant table: exact key set, non-negative
    integers, positive ratio_multiplier.

    Raises:
        ConfigValidationError: On the first violated rule.
    """
    _check_keys(table, DEFAULT_TRANSACTION_CONSTANTS.keys(), "transaction_constants")
    for key, value in table.items():
        _check_non_negative_int(value, f"transaction_constants.{key}")
    if table["ratio_multiplier"] == 0:
        raise ConfigValidationError("transaction_constants.ratio_multiplier must be positive")
    return table


def _check_keys(table: Mapping, required, section: str) -> None:
    if not isinstance(table, Mapping):
        raise ConfigValidationError(f"{section} must be a mapping, got {type(table).__name__}")
    required = set(required)
    actual = set(table.keys())
    if actual != required:
        raise ConfigValidationError(
            f"{section} key mismatch. Missing: {sorted(required - actual)}, "
            f"Extra: {sorted(actual - required)}"
        )


def _check_non_negative_int(value: Any, label: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigValidationError(f"{label} must be an integer, got {value!r}")
    if value < 0:
        raise ConfigValidationError(f"{label} must be non-negative, got {value}")


# ============================================================================
# Loading
# ============================================================================

def load_protocol_config(path: Optional[str] = None) -> ProtocolConfig:
    """
    Build the validated protocol configuration.

    The optional JSON file may hold "protocol_params" and/or
    "transaction_constants" sections; keys present there override the
    defaults, and the merged tables are validated.

    Args:
        path: JSON config file, or None for defaults only.

    Returns:
        ProtocolConfig with read-only tables.

    Raises:
        ConfigValidationError: Unreadable file, malformed JSON, unknown
            sections or keys, or any value failing validation.
    """
    protocol_params = config_to_json(SAMPLE_PROTOCOL_NON_SCRIPT_PARAMS)
    transaction_constants = config_to_json(DEFAULT_TRANSACTION_CONSTANTS)

    if path is not None:
        try:
            overrides = json.loads(Path(path).read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigValidationError(f"Cannot read config file {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigValidationError(f"Invalid JSON in config file {path}: {e}") from e

        if not isinstance(overrides, dict):
            raise ConfigValidationError(f"Config file {path} must hold a JSON object")
        unknown = sorted(set(overrides) - set(CONFIG_SECTIONS))
        if unknown:
            raise ConfigValidationError(f"Unknown config sections: {unknown}")
        for section in CONFIG_SECTIONS:
            if section in overrides and not isinstance(overrides[section], dict):
                raise ConfigValidationError(f"Config section '{section}' must be an object")

        protocol_params.update(overrides.get("protocol_params", {}))
        transaction_constants.update(overrides.get("transaction_constants", {}))

    validate_transaction_constants(transaction_constants)
    validate_protocol_params(protocol_params, transaction_constants["ratio_multiplier"])

    return ProtocolConfig(
        protocol_params=_freeze(protocol_params),
        transaction_constants=_freeze(transaction_constants),
    )


class ConfigValidationError(Exception):
    """Raised when a protocol constant table is malformed. Never auto-corrected."""
    pass
