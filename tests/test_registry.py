"""
Registry Builder & Migratable Wrapper - Unit Tests

Verifies:
  - Single-entry migration mapping keyed by the wrapped hash
  - Idempotent wrapping
  - Total coverage of all eleven registry fields
  - Migration token changes touch migration entries only
  - Wire shape and fingerprint stability
"""

from types import MappingProxyType

import pytest

from teikireg.migratable import (
    get_migratable_script,
    migratable_to_json,
    MigrationToken,
)
from teikireg.registry_builder import (
    build_registry,
    derive_protocol_registry,
    get_protocol_registry,
    registry_to_json,
    registry_fingerprint,
    Registry,
    REGISTRY_FIELD_SOURCES,
)
from teikireg.resolver import get_protocol_registry_script, RegistryScriptHashes


S1 = {"tx_hash": "11" * 32, "output_index": 0}
T1 = "ab" * 28
M1 = "cd" * 28
M2 = "ce" * 28
H = "ef" * 28


# ═══════════════════════════════════════════════════════════════════════
# Migratable wrapper
# ═══════════════════════════════════════════════════════════════════════

def test_wrap_single_entry_keyed_by_hash():
    script = get_migratable_script(H, M1, "MIGRATE")

    assert script.latest.script.hash == H
    assert dict(script.migrations) == {H: MigrationToken(M1, "MIGRATE")}
    assert script.migrations[H].minting_policy_hash == M1
    assert script.migrations[H].token_name == "MIGRATE"


def test_wrap_idempotent():
    assert get_migratable_script(H, M1, "MIGRATE") == get_migratable_script(H, M1, "MIGRATE")


def test_wrap_migrations_read_only():
    script = get_migratable_script(H, M1, "MIGRATE")
    assert isinstance(script.migrations, MappingProxyType)
    with pytest.raises(TypeError):
        script.migrations["other"] = MigrationToken(M1, "X")
    with pytest.raises(AttributeError):
        script.latest = None


@pytest.mark.parametrize("args", [("", M1, "MIGRATE"), (H, "", "MIGRATE"), (H, M1, "")])
def test_wrap_rejects_empty_identifiers(args):
    with pytest.raises(ValueError):
        get_migratable_script(*args)


def test_migratable_json_shape():
    assert migratable_to_json(get_migratable_script(H, M1, "MIGRATE")) == {
        "latest": {"script": {"hash": H}},
        "migrations": {H: {"mintingPolicyHash": M1, "tokenName": "MIGRATE"}},
    }


# ═══════════════════════════════════════════════════════════════════════
# Registry
# ═══════════════════════════════════════════════════════════════════════

def test_field_sources_cover_registry():
    assert tuple(field for field, _ in REGISTRY_FIELD_SOURCES) == Registry._fields
    sources = [source for _, source in REGISTRY_FIELD_SOURCES]
    assert len(set(sources)) == len(sources)
    assert set(sources) <= set(RegistryScriptHashes._fields)
    assert "protocol_nft_mph" not in sources


def test_example_scenario():
    """Seed S1, base T1, migration token (M1, "MIGRATE")."""
    hashes = get_protocol_registry_script(S1, T1)
    registry = get_protocol_registry(S1, T1, M1, "MIGRATE")

    assert registry.protocol_staking_validator.script.hash == hashes.protocol_stake_validator_hash
    assert registry.project_validator.migrations[hashes.project_validator_hash] == MigrationToken(
        minting_policy_hash=M1, token_name="MIGRATE"
    )

    assert len(Registry._fields) == 11
    for field in Registry._fields:
        value = getattr(registry, field)
        assert value is not None
        if field == "protocol_staking_validator":
            assert value.script.hash
        else:
            assert value.latest.script.hash
            assert list(value.migrations) == [value.latest.script.hash]


def test_registry_hashes_follow_sources():
    hashes = get_protocol_registry_script(S1, T1)
    registry = build_registry(hashes, M1, "MIGRATE")

    for field, source in REGISTRY_FIELD_SOURCES:
        value = getattr(registry, field)
        ref = value if field == "protocol_staking_validator" else value.latest
        assert ref.script.hash == getattr(hashes, source), field


def test_migration_token_change_keeps_hashes():
    r1 = get_protocol_registry(S1, T1, M1, "MIGRATE")
    r2 = get_protocol_registry(S1, T1, M2, "MIGRATE")

    assert r1.protocol_staking_validator == r2.protocol_staking_validator
    for field in Registry._fields[1:]:
        a, b = getattr(r1, field), getattr(r2, field)
        assert a.latest == b.latest
        assert a.migrations != b.migrations
        h = a.latest.script.hash
        assert a.migrations[h].minting_policy_hash == M1
        assert b.migrations[h].minting_policy_hash == M2

    assert registry_fingerprint(r1) != registry_fingerprint(r2)


def test_registry_deterministic():
    r1 = get_protocol_registry(S1, T1, M1, "MIGRATE")
    r2 = get_protocol_registry(S1, T1, M1, "MIGRATE", max_workers=4)

    assert r1 == r2
    assert registry_fingerprint(r1) == registry_fingerprint(r2)


def test_registry_json_shape():
    wire = registry_to_json(get_protocol_registry(S1, T1, M1, "MIGRATE"))

    assert list(wire) == [
        "protocolStakingValidator",
        "projectAuthTokenMintingPolicy",
        "proofOfBackingMintingPolicy",
        "teikiMintingPolicy",
        "projectValidator",
        "projectDetailValidator",
        "projectScriptValidator",
        "backingValidator",
        "dedicatedTreasuryValidator",
        "sharedTreasuryValidator",
        "openTreasuryValidator",
    ]
    assert set(wire["protocolStakingValidator"]) == {"script"}
    project = wire["projectValidator"]
    h = project["latest"]["script"]["hash"]
    assert project["migrations"] == {h: {"mintingPolicyHash": M1, "tokenName": "MIGRATE"}}


def test_derive_protocol_registry_receipts():
    registry, receipts = derive_protocol_registry(S1, T1, M1, "MIGRATE")

    assert set(receipts) == {"derive", "registry"}
    assert receipts["registry"]["payload"]["fingerprint"] == registry_fingerprint(registry)
    assert receipts["registry"]["payload"]["fields"] == list(Registry._fields)


def test_build_registry_rejects_empty_hash():
    hashes = get_protocol_registry_script(S1, T1)._replace(project_validator_hash="")
    with pytest.raises(ValueError):
        build_registry(hashes, M1, "MIGRATE")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
