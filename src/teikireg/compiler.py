"""
Script Compiler

Applies parameters to a protocol script template and produces a
loadable artifact. Pure: identical (template, params) always yields
byte-identical artifacts.

Template bodies are opaque byte blobs. The built-in bodies can be
replaced with compiled programs via load_template_code().
"""

from pathlib import Path
from typing import Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple, TypedDict

from .core import (
    blake3_hash,
    hex_to_bytes,
    is_hex,
    param_registry,
    serialize_out_ref,
    serialize_script_frame,
    SerializationError,
    SCRIPT_HASH_BYTES,
)


# ============================================================================
# Template Identifiers
# ============================================================================

PROTOCOL_NFT_MP = "protocol-nft-mp"
PROJECTS_AUTHTOKEN_MP = "projects-authtoken-mp"
TEIKI_MP = "teiki-mp"
PROOF_OF_BACKING_MP = "proof-of-backing-mp"
PROJECT_V = "project-v"
PROJECT_DETAIL_V = "project-detail-v"
PROJECT_SCRIPT_V = "project-script-v"
BACKING_V = "backing-v"
DEDICATED_TREASURY_V = "dedicated-treasury-v"
SHARED_TREASURY_V = "shared-treasury-v"
OPEN_TREASURY_V = "open-treasury-v"
PROTOCOL_SV = "protocol-sv"

# Ordered parameter schema per template: (param_name, kind)
# kind "out_ref" = transaction output reference, "hash" = 28-byte script hash
TEMPLATE_PARAM_SCHEMAS: Dict[str, Tuple[Tuple[str, str], ...]] = {
    PROTOCOL_NFT_MP: (("seed_utxo", "out_ref"),),
    PROJECTS_AUTHTOKEN_MP: (("protocol_nft_mph", "hash"),),
    TEIKI_MP: (("teiki_plant_nft_mph", "hash"),),
    PROOF_OF_BACKING_MP: (
        ("projects_authtoken_mph", "hash"),
        ("protocol_nft_mph", "hash"),
        ("teiki_mph", "hash"),
    ),
    PROJECT_V: (("projects_authtoken_mph", "hash"), ("protocol_nft_mph", "hash")),
    PROJECT_DETAIL_V: (("projects_authtoken_mph", "hash"), ("protocol_nft_mph", "hash")),
    PROJECT_SCRIPT_V: (("projects_authtoken_mph", "hash"), ("protocol_nft_mph", "hash")),
    BACKING_V: (("proof_of_backing_mph", "hash"), ("protocol_nft_mph", "hash")),
    DEDICATED_TREASURY_V: (("projects_authtoken_mph", "hash"), ("protocol_nft_mph", "hash")),
    SHARED_TREASURY_V: (
        ("projects_authtoken_mph", "hash"),
        ("protocol_nft_mph", "hash"),
        ("teiki_mph", "hash"),
        ("proof_of_backing_mph", "hash"),
    ),
    OPEN_TREASURY_V: (("protocol_nft_mph", "hash"),),
    PROTOCOL_SV: (("protocol_nft_mph", "hash"),),
}

TEMPLATE_IDS: Tuple[str, ...] = tuple(TEMPLATE_PARAM_SCHEMAS)

DEFAULT_TEMPLATE_CODE: Dict[str, bytes] = {
    template_id: f"teiki-protocol/{template_id}/v1".encode("ascii")
    for template_id in TEMPLATE_IDS
}

TEMPLATE_FILE_SUFFIX = ".uplc"


# ============================================================================
# Type Definitions
# ============================================================================

class OutRef(TypedDict):
    """Transaction output reference (the one-time seed)."""
    tx_hash: str  # 64 hex chars
    output_index: int


class ScriptArtifact(NamedTuple):
    """Compiled script: language tag plus framed code bytes."""
    template_id: str
    language: int
    code: bytes


# ============================================================================
# Compilation
# ============================================================================

def compile_script(
    template_id: str,
    params: Sequence,
    templates: Optional[Mapping[str, bytes]] = None
) -> ScriptArtifact:
    """
    Apply parameters to a script template.

    Args:
        template_id: One of TEMPLATE_IDS.
        params: Values in the template's schema order. Hash params are
            56-char hex strings; out_ref params are OutRef mappings.
        templates: Template code by id. Defaults to DEFAULT_TEMPLATE_CODE.

    Returns:
        ScriptArtifact: Deterministic artifact for (template code, params).

    Raises:
        CompilationError: Unknown template, missing template code, wrong
            arity, or a parameter of the wrong shape.
    """
    schema = TEMPLATE_PARAM_SCHEMAS.get(template_id)
    if schema is None:
        raise CompilationError(template_id, "unknown template")

    if templates is None:
        templates = DEFAULT_TEMPLATE_CODE
    code = templates.get(template_id)
    if not code:
        raise CompilationError(template_id, "no template code")

    if not isinstance(params, (tuple, list)):
        raise CompilationError(
            template_id, f"params must be a sequence, got {type(params).__name__}"
        )
    if len(params) != len(schema):
        raise CompilationError(
            template_id, f"expected {len(schema)} params, got {len(params)}"
        )

    encoded: List[Tuple[str, bytes]] = []
    try:
        for (name, kind), value in zip(schema, params):
            if kind == "hash":
                encoded.append((kind, hex_to_bytes(value, SCRIPT_HASH_BYTES, name)))
            else:
                if not isinstance(value, Mapping):
                    raise SerializationError(f"{name} must be an out ref mapping")
                encoded.append(
                    (kind, serialize_out_ref(value.get("tx_hash"), value.get("output_index")))
                )

        language = param_registry()["plutus_language"]
        frame = serialize_script_frame(
            language,
            template_id,
            bytes.fromhex(blake3_hash(code)),
            encoded
        )
    except SerializationError as e:
        raise CompilationError(template_id, str(e)) from e

    return ScriptArtifact(template_id=template_id, language=language, code=frame)


def load_template_code(directory) -> Dict[str, bytes]:
    """
    Load compiled template bodies from `<template_id>.uplc` files.

    Templates without a file keep their built-in body.

    Raises:
        FileNotFoundError: If directory does not exist.
        CompilationError: If a template file is empty.
    """
    root = Path(directory)
    if not root.is_dir():
        raise FileNotFoundError(f"Template directory not found: {directory}")

    templates = dict(DEFAULT_TEMPLATE_CODE)
    for template_id in TEMPLATE_IDS:
        path = root / f"{template_id}{TEMPLATE_FILE_SUFFIX}"
        if not path.is_file():
            continue
        code = path.read_bytes()
        if not code:
            raise CompilationError(template_id, f"empty template file {path}")
        templates[template_id] = code
    return templates


def parse_out_ref(text: str) -> OutRef:
    """
    Parse "<tx_hash>#<output_index>" into an OutRef.

    Raises:
        ValueError: If text is not of that form, or tx_hash is not exactly
            64 hex digits.
    """
    tx_hash, sep, index = text.partition("#")
    if not sep or not (index.isascii() and index.isdigit()):
        raise ValueError(f"Invalid out ref (expected <tx_hash>#<index>): {text!r}")
    if not is_hex(tx_hash, param_registry()["tx_hash_bytes"]):
        raise ValueError(f"Invalid out ref tx hash (expected 64 hex digits): {tx_hash!r}")
    return {"tx_hash": tx_hash.lower(), "output_index": int(index)}


def format_out_ref(out_ref: Mapping) -> str:
    return f"{out_ref['tx_hash']}#{out_ref['output_index']}"


class CompilationError(Exception):
    """Raised when a template cannot be compiled with the given parameters."""

    def __init__(self, template_id: str, reason: str):
        self.template_id = template_id
        self.reason = reason
        super().__init__(f"Compilation failed for template '{template_id}': {reason}")
