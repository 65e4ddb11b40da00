"""
Core foundation: receipts, hashing, serialization, parameter registry.

Frozen constants and deterministic byte-level I/O.
"""

from .param_registry import param_registry, RegistryError
from .hashing import blake3_hash, script_hash, SCRIPT_HASH_BYTES
from .bytesio import (
    hex_to_bytes,
    is_hex,
    serialize_out_ref,
    serialize_script_frame,
    SerializationError
)
from .receipts import (
    Receipts,
    assert_double_run_equal,
    stable_json_bytes,
    ReceiptError,
    DeterminismError
)

__all__ = [
    # Registry
    "param_registry",
    "RegistryError",

    # Hashing
    "blake3_hash",
    "script_hash",
    "SCRIPT_HASH_BYTES",

    # Serialization
    "hex_to_bytes",
    "is_hex",
    "serialize_out_ref",
    "serialize_script_frame",
    "SerializationError",

    # Receipts
    "Receipts",
    "assert_double_run_equal",
    "stable_json_bytes",
    "ReceiptError",
    "DeterminismError",
]
