"""
Teiki Protocol Registry Derivation

Deterministic derivation of protocol script hashes from seed parameters,
assembled into one immutable registry.
"""

__version__ = "0.1.0"

from .compiler import compile_script, parse_out_ref, CompilationError, OutRef, ScriptArtifact
from .resolver import (
    derive_script_hashes,
    get_protocol_registry_script,
    topological_order,
    dependency_levels,
    RegistryScriptHashes,
    DependencyGraphError,
)
from .migratable import get_migratable_script, MigratableScript, MigrationToken
from .registry_builder import (
    build_registry,
    derive_protocol_registry,
    get_protocol_registry,
    registry_to_json,
    registry_fingerprint,
    Registry,
)
from .params import (
    load_protocol_config,
    validate_protocol_params,
    validate_transaction_constants,
    ProtocolConfig,
    ProtocolNonScriptParams,
    ConfigValidationError,
    SAMPLE_PROTOCOL_NON_SCRIPT_PARAMS,
)

__all__ = [
    # Compiler
    "compile_script",
    "parse_out_ref",
    "CompilationError",
    "OutRef",
    "ScriptArtifact",

    # Resolver
    "derive_script_hashes",
    "get_protocol_registry_script",
    "topological_order",
    "dependency_levels",
    "RegistryScriptHashes",
    "DependencyGraphError",

    # Registry
    "get_migratable_script",
    "MigratableScript",
    "MigrationToken",
    "build_registry",
    "derive_protocol_registry",
    "get_protocol_registry",
    "registry_to_json",
    "registry_fingerprint",
    "Registry",

    # Config
    "load_protocol_config",
    "validate_protocol_params",
    "validate_transaction_constants",
    "ProtocolConfig",
    "ProtocolNonScriptParams",
    "ConfigValidationError",
    "SAMPLE_PROTOCOL_NON_SCRIPT_PARAMS",
]
