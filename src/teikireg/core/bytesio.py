"""
Core Component: Byte Serialization (Big-Endian, Tagged Frames)

Stable, deterministic byte serialization for compiled script artifacts.

Frame layout (frozen):
  - 4 ASCII bytes tag: b"SCR1"
  - 1 byte language tag (Plutus version)
  - 1 byte L, then L ASCII bytes of the template id
  - 32 bytes template code digest (BLAKE3-256)
  - 1 byte K (number of parameters)
  - K parameter records, each led by a 1-byte kind tag:
      0x01 hash:    28 raw bytes
      0x02 out_ref: 32 raw bytes tx hash + 2 bytes output index (uint16, big-endian)

No timestamps, no padding.
"""

from typing import Sequence, Tuple

from .param_registry import param_registry

HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


def is_hex(value, size: int) -> bool:
    """True iff value is a string of exactly 2*size hex digits (no whitespace, no prefix)."""
    return isinstance(value, str) and len(value) == 2 * size and all(ch in HEX_DIGITS for ch in value)


def hex_to_bytes(value: str, size: int, label: str) -> bytes:
    """
    Decode a hex string of an exact byte width.

    Exactly 2*size digits are required; bytes.fromhex alone would also
    accept embedded whitespace.

    Args:
        value: Hex string.
        size: Required decoded length in bytes.
        label: Name used in error messages.

    Returns:
        bytes: Decoded bytes.

    Raises:
        SerializationError: If value is not a string, not hex, or the wrong width.
    """
    if not isinstance(value, str):
        raise SerializationError(f"{label} must be a hex string, got {type(value).__name__}")
    if not all(ch in HEX_DIGITS for ch in value):
        raise SerializationError(f"{label} is not valid hex: {value!r}")
    if len(value) != 2 * size:
        raise SerializationError(f"{label} must be {size} bytes, got {len(value) / 2:g}")
    return bytes.fromhex(value)


def serialize_out_ref(tx_hash: str, output_index: int) -> bytes:
    """
    Encode a transaction output reference as 34 bytes.

    Raises:
        SerializationError: If tx_hash is malformed or output_index is outside uint16.
    """
    reg = param_registry()
    raw = hex_to_bytes(tx_hash, reg["tx_hash_bytes"], "tx_hash")
    if isinstance(output_index, bool) or not isinstance(output_index, int):
        raise SerializationError(f"output_index must be int, got {type(output_index).__name__}")
    if output_index < 0 or output_index > 65535:
        raise SerializationError(f"output_index {output_index} out of uint16 range")
    return raw + output_index.to_bytes(2, byteorder='big')


def serialize_script_frame(
    language: int,
    template_id: str,
    code_digest: bytes,
    params: Sequence[Tuple[str, bytes]]
) -> bytes:
    """
    Encode a compiled script as a deterministic byte stream.

    Args:
        language: Plutus language tag (uint8).
        template_id: ASCII template identifier.
        code_digest: 32-byte digest of the template code.
        params: Ordered (kind, encoded_bytes) pairs; kind is "hash" or "out_ref"
            and encoded_bytes is already in its fixed width.

    Returns:
        bytes: Deterministic serialization.

    Raises:
        SerializationError: If any field is out of range.
    """
    reg = param_registry()
    kind_tags = reg["param_kind_tags"]
    widths = {"hash": reg["script_hash_bytes"], "out_ref": reg["tx_hash_bytes"] + 2}

    if language < 0 or language > 255:
        raise SerializationError(f"Language tag {language} out of uint8 range")

    id_bytes = template_id.encode('ascii')
    if len(id_bytes) > 255:
        raise SerializationError(f"Template id too long: {len(id_bytes)} > 255")
    if len(code_digest) != 32:
        raise SerializationError(f"Code digest must be 32 bytes, got {len(code_digest)}")
    if len(params) > 255:
        raise SerializationError(f"Too many parameters: {len(params)} > 255")

    stream = bytearray()

    # Tag (4 ASCII bytes)
    stream.extend(reg["byte_frame_tags"]["SCRIPT"].encode('ascii'))

    stream.append(language)
    stream.append(len(id_bytes))
    stream.extend(id_bytes)
    stream.extend(code_digest)

    stream.append(len(params))
    for kind, encoded in params:
        if kind not in kind_tags:
            raise SerializationError(f"Unknown parameter kind: {kind!r}")
        if len(encoded) != widths[kind]:
            raise SerializationError(
                f"Parameter of kind {kind} must be {widths[kind]} bytes, got {len(encoded)}"
            )
        stream.append(kind_tags[kind])
        stream.extend(encoded)

    return bytes(stream)


class SerializationError(Exception):
    """Raised when serialization encounters malformed or out-of-range values."""
    pass
