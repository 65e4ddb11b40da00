"""
Migratable Script Wrapper

Pairs a script hash with the token that authorizes migrating it.

The migration mapping is keyed by script hash and holds exactly one
entry, keyed by the wrapped hash itself. Consumers look up "which token
authorizes migrating this hash" the same way whether one or several
tokens are ever registered per hash.
"""

from types import MappingProxyType
from typing import Mapping, NamedTuple


class ScriptHashRef(NamedTuple):
    hash: str


class ScriptRef(NamedTuple):
    """`{script: {hash}}` wrapper; the bare form used for the stake validator."""
    script: ScriptHashRef


class MigrationToken(NamedTuple):
    """Token (policy id + name) whose presence authorizes a migration."""
    minting_policy_hash: str
    token_name: str


class MigratableScript(NamedTuple):
    """Latest script plus read-only migration authorizations keyed by script hash."""
    latest: ScriptRef
    migrations: Mapping[str, MigrationToken]


def script_ref(hash: str) -> ScriptRef:
    return ScriptRef(script=ScriptHashRef(hash=hash))


def get_migratable_script(
    hash: str,
    migrate_token_mph: str,
    migrate_token_name: str
) -> MigratableScript:
    """
    Wrap a script hash with its migration token.

    Args:
        hash: Script hash being wrapped.
        migrate_token_mph: Minting policy id of the migration token.
        migrate_token_name: Name of the migration token.

    Returns:
        MigratableScript with migrations == {hash: MigrationToken(mph, name)}.
        Wrapping the same hash twice yields equal records.

    Raises:
        ValueError: If any identifier is empty.
    """
    for label, value in (
        ("hash", hash),
        ("migrate_token_mph", migrate_token_mph),
        ("migrate_token_name", migrate_token_name),
    ):
        if not isinstance(value, str) or not value:
            raise ValueError(f"{label} must be a non-empty string, got {value!r}")

    token = MigrationToken(minting_policy_hash=migrate_token_mph, token_name=migrate_token_name)
    return MigratableScript(
        latest=script_ref(hash),
        migrations=MappingProxyType({hash: token}),
    )


def migratable_to_json(script: MigratableScript) -> dict:
    """camelCase wire shape of a MigratableScript."""
    return {
        "latest": {"script": {"hash": script.latest.script.hash}},
        "migrations": {
            h: {"mintingPolicyHash": t.minting_policy_hash, "tokenName": t.token_name}
            for h, t in sorted(script.migrations.items())
        },
    }
