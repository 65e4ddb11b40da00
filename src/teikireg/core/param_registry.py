"""
Core Component: Parameter Registry

Frozen constants for deterministic registry derivation.
Hash algorithm, identifier widths, template order and byte frame tags
are defined here once and bound into every receipt.

No randomness, no environment leakage, no optionals.
"""


def param_registry() -> dict:
    """
    Returns a frozen mapping of all derivation-wide constants.

    Keys and values are JSON-serializable primitives or lists.
    This registry is hashed into every section receipt to prove parametric consistency.

    Returns:
        dict: Frozen parameter mapping with exact keys and values.

    Raises:
        RegistryError: If any required key is missing (internal consistency check).
    """
    registry = {
        # Version binding for receipts
        "pipeline_version": "1.0",

        # Script identity: BLAKE3 over language tag + artifact code, 28-byte output
        "hash_algo": "BLAKE3-224",
        "script_hash_bytes": 28,
        "tx_hash_bytes": 32,

        # Plutus language tag prefixed to artifact code before hashing
        "plutus_language": 2,

        # Frozen template order (declaration order of the dependency graph)
        "template_ids": [
            "protocol-nft-mp",
            "projects-authtoken-mp",
            "teiki-mp",
            "proof-of-backing-mp",
            "project-v",
            "project-detail-v",
            "project-script-v",
            "backing-v",
            "dedicated-treasury-v",
            "shared-treasury-v",
            "open-treasury-v",
            "protocol-sv",
        ],

        # Byte frame tags for serialization (ASCII 4-byte tags)
        "byte_frame_tags": {
            "SCRIPT": "SCR1",
        },

        # Parameter kind tags inside a script frame
        "param_kind_tags": {
            "hash": 1,
            "out_ref": 2,
        },
    }

    # Consistency check: ensure all required keys are present
    required_keys = {
        "pipeline_version", "hash_algo", "script_hash_bytes", "tx_hash_bytes",
        "plutus_language", "template_ids", "byte_frame_tags", "param_kind_tags"
    }

    actual_keys = set(registry.keys())
    if actual_keys != required_keys:
        missing = required_keys - actual_keys
        extra = actual_keys - required_keys
        raise RegistryError(
            f"param_registry() key mismatch. Missing: {missing}, Extra: {extra}"
        )

    return registry


class RegistryError(Exception):
    """Raised when param_registry() has missing or unexpected keys."""
    pass
