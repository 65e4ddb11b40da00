"""
Registry Builder

Assembles derived script hashes into the protocol Registry.

The stake validator is stored bare (it has no migration path). Every
other registry entry is wrapped as a MigratableScript under the same
migration token. The protocol NFT policy is the identity the registry is
anchored to and is not itself an entry.
"""

from typing import Dict, NamedTuple, Tuple

from .core import blake3_hash, stable_json_bytes, Receipts
from .compiler import OutRef
from .migratable import (
    get_migratable_script,
    migratable_to_json,
    script_ref,
    MigratableScript,
    ScriptRef,
)
from .resolver import derive_script_hashes, RegistryScriptHashes


class Registry(NamedTuple):
    protocol_staking_validator: ScriptRef
    project_auth_token_minting_policy: MigratableScript
    proof_of_backing_minting_policy: MigratableScript
    teiki_minting_policy: MigratableScript
    project_validator: MigratableScript
    project_detail_validator: MigratableScript
    project_script_validator: MigratableScript
    backing_validator: MigratableScript
    dedicated_treasury_validator: MigratableScript
    shared_treasury_validator: MigratableScript
    open_treasury_validator: MigratableScript


# Registry field -> RegistryScriptHashes field it is built from
REGISTRY_FIELD_SOURCES: Tuple[Tuple[str, str], ...] = (
    ("protocol_staking_validator", "protocol_stake_validator_hash"),
    ("project_auth_token_minting_policy", "projects_authtoken_mph"),
    ("proof_of_backing_minting_policy", "proof_of_backing_mph"),
    ("teiki_minting_policy", "teiki_mph"),
    ("project_validator", "project_validator_hash"),
    ("project_detail_validator", "project_detail_validator_hash"),
    ("project_script_validator", "project_script_validator_hash"),
    ("backing_validator", "backing_validator_hash"),
    ("dedicated_treasury_validator", "dedicated_treasury_validator_hash"),
    ("shared_treasury_validator", "shared_treasury_validator_hash"),
    ("open_treasury_validator", "open_treasury_validator_hash"),
)

BARE_FIELDS = frozenset({"protocol_staking_validator"})


def build_registry(
    hashes: RegistryScriptHashes,
    migrate_token_mph: str,
    migrate_token_name: str
) -> Registry:
    """
    Map each derived hash onto its registry field.

    Args:
        hashes: Output of derive_script_hashes().
        migrate_token_mph: Migration token policy id (shared by all entries).
        migrate_token_name: Migration token name (shared by all entries).

    Returns:
        Registry with every field populated exactly once.

    Raises:
        ValueError: If a hash or migration identifier is empty.
    """
    fields = {}
    for field, source in REGISTRY_FIELD_SOURCES:
        value = getattr(hashes, source)
        if field in BARE_FIELDS:
            if not value:
                raise ValueError(f"Empty hash for registry field '{field}'")
            fields[field] = script_ref(value)
        else:
            fields[field] = get_migratable_script(value, migrate_token_mph, migrate_token_name)
    return Registry(**fields)


def derive_protocol_registry(
    seed_utxo: OutRef,
    teiki_plant_nft_mph: str,
    migrate_token_mph: str,
    migrate_token_name: str,
    **kwargs
) -> Tuple[Registry, Dict]:
    """
    Derive hashes and build the registry in one step.

    Keyword arguments are passed to derive_script_hashes().

    Returns:
        Tuple of (Registry, receipts) where receipts holds the derivation
        digest and a registry digest with the fingerprint.

    Raises:
        CompilationError: Derivation failed; nothing is built.
    """
    hashes, derive_receipts = derive_script_hashes(seed_utxo, teiki_plant_nft_mph, **kwargs)
    registry = build_registry(hashes, migrate_token_mph, migrate_token_name)

    receipts = Receipts("build-registry")
    receipts.put("migration_token", {
        "minting_policy_hash": migrate_token_mph,
        "token_name": migrate_token_name,
    })
    receipts.put("fields", [field for field, _ in REGISTRY_FIELD_SOURCES])
    receipts.put("fingerprint", registry_fingerprint(registry))

    return registry, {
        "derive": derive_receipts,
        "registry": receipts.digest(),
    }


def get_protocol_registry(
    seed_utxo: OutRef,
    teiki_plant_nft_mph: str,
    migrate_token_mph: str,
    migrate_token_name: str,
    **kwargs
) -> Registry:
    """Final wrapped registry for a protocol instance."""
    registry, _ = derive_protocol_registry(
        seed_utxo, teiki_plant_nft_mph, migrate_token_mph, migrate_token_name, **kwargs
    )
    return registry


def registry_to_json(registry: Registry) -> dict:
    """
    camelCase wire shape:
      protocolStakingValidator: {script: {hash}}
      <other>: {latest: {script: {hash}}, migrations: {hash: {mintingPolicyHash, tokenName}}}
    """
    out = {}
    for field in Registry._fields:
        value = getattr(registry, field)
        if field in BARE_FIELDS:
            out[_camel(field)] = {"script": {"hash": value.script.hash}}
        else:
            out[_camel(field)] = migratable_to_json(value)
    return out


def registry_fingerprint(registry: Registry) -> str:
    """BLAKE3 of the stable JSON wire shape; equal registries, equal fingerprints."""
    return blake3_hash(stable_json_bytes(registry_to_json(registry)))


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)
