"""
Core Component: BLAKE3 Hashing

Deterministic hash functions for receipts and script identities.

No seeding, no randomness, no timestamps.
"""

import blake3

# Script hashes are 28 bytes, the width of a policy id / validator hash.
SCRIPT_HASH_BYTES = 28


def blake3_hash(data: bytes) -> str:
    """
    Return hex-encoded BLAKE3 digest of the byte stream.

    Args:
        data: Raw bytes to hash.

    Returns:
        str: Hexadecimal digest (64 characters for BLAKE3-256).

    Example:
        >>> blake3_hash(b"test")
        '4878ca0425c739fa427f7eda20fe845f6b2e46ba5fe2a14df5b1e32f50603215'
    """
    hasher = blake3.blake3()
    hasher.update(data)
    return hasher.hexdigest()


def script_hash(artifact) -> str:
    """
    Return the canonical content identifier of a compiled script artifact.

    The digest covers the one-byte language tag followed by the artifact
    code, so the same code under two language versions gets two ids.

    Args:
        artifact: ScriptArtifact (needs `language` and `code`).

    Returns:
        str: 56 lowercase hex characters (BLAKE3 truncated to 28 bytes).
    """
    hasher = blake3.blake3()
    hasher.update(bytes([artifact.language]))
    hasher.update(artifact.code)
    return hasher.hexdigest(length=SCRIPT_HASH_BYTES)
