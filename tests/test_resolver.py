"""
Dependency Resolver - Unit Tests

Verifies:
  - Topological order and waves respect every declared dependency
  - Malformed graphs (cycles, unknown inputs, duplicates) are rejected
  - Determinism of derived hashes and receipts
  - Sensitivity to the seed and to the base token policy
  - Each compilation observes finalized upstream hashes
  - Concurrent derivation matches the sequential one
  - All-or-nothing failure with the offending template id
"""

import threading

import pytest

from teikireg.compiler import compile_script, CompilationError
from teikireg.core import script_hash
from teikireg.resolver import (
    derive_script_hashes,
    get_protocol_registry_script,
    topological_order,
    dependency_levels,
    ScriptNode,
    RegistryScriptHashes,
    DependencyGraphError,
    SCRIPT_NODES,
    SEED_INPUTS,
)


SEED_1 = {"tx_hash": "11" * 32, "output_index": 0}
SEED_2 = {"tx_hash": "22" * 32, "output_index": 0}
BASE_1 = "ab" * 28
BASE_2 = "ac" * 28

NODES = {node.name: node for node in SCRIPT_NODES}

# Nodes that do not depend on teiki_plant_nft_mph
BASE_INDEPENDENT = {
    "protocol_nft_mph",
    "projects_authtoken_mph",
    "project_validator_hash",
    "project_detail_validator_hash",
    "project_script_validator_hash",
    "dedicated_treasury_validator_hash",
    "open_treasury_validator_hash",
    "protocol_stake_validator_hash",
}


# ═══════════════════════════════════════════════════════════════════════
# Graph ordering
# ═══════════════════════════════════════════════════════════════════════

def test_nodes_match_hash_bundle_fields():
    assert tuple(node.name for node in SCRIPT_NODES) == RegistryScriptHashes._fields


def test_topological_order_respects_dependencies():
    order = topological_order()
    position = {name: i for i, name in enumerate(order)}

    assert set(order) == set(NODES)
    for node in SCRIPT_NODES:
        for dep in node.inputs:
            if dep in SEED_INPUTS:
                continue
            assert position[dep] < position[node.name], f"{dep} must precede {node.name}"

    assert order[0] == "protocol_nft_mph"


def test_only_protocol_nft_uses_seed():
    users = [node.name for node in SCRIPT_NODES if "seed_utxo" in node.inputs]
    assert users == ["protocol_nft_mph"]


def test_dependency_levels():
    levels = dependency_levels()

    assert levels[0] == ["protocol_nft_mph", "teiki_mph"]
    assert levels[1] == [
        "projects_authtoken_mph",
        "open_treasury_validator_hash",
        "protocol_stake_validator_hash",
    ]
    assert "proof_of_backing_mph" in levels[2]
    assert levels[3] == ["backing_validator_hash", "shared_treasury_validator_hash"]

    seen = set(SEED_INPUTS)
    for level in levels:
        for name in level:
            assert all(dep in seen for dep in NODES[name].inputs)
        seen.update(level)


def test_cycle_rejected():
    nodes = (
        ScriptNode("a", "t", ("b",)),
        ScriptNode("b", "t", ("a",)),
    )
    with pytest.raises(DependencyGraphError) as exc_info:
        topological_order(nodes, ())
    assert "cycle" in str(exc_info.value)


def test_unknown_input_and_duplicates_rejected():
    with pytest.raises(DependencyGraphError):
        topological_order((ScriptNode("a", "t", ("missing",)),), ())
    with pytest.raises(DependencyGraphError):
        topological_order((ScriptNode("a", "t", ()), ScriptNode("a", "t", ())), ())
    with pytest.raises(DependencyGraphError):
        dependency_levels((ScriptNode("seed", "t", ()),), ("seed",))


# ═══════════════════════════════════════════════════════════════════════
# Determinism and sensitivity
# ═══════════════════════════════════════════════════════════════════════

def test_derivation_deterministic():
    hashes_a, receipts_a = derive_script_hashes(SEED_1, BASE_1)
    hashes_b, receipts_b = derive_script_hashes(SEED_1, BASE_1)

    assert hashes_a == hashes_b
    assert receipts_a["section_hash"] == receipts_b["section_hash"]
    for value in hashes_a:
        assert len(value) == 56


def test_all_hashes_distinct():
    hashes = get_protocol_registry_script(SEED_1, BASE_1)
    assert len(set(hashes)) == len(hashes)


def test_seed_change_propagates():
    """Changing the seed changes every hash except the Teiki token policy."""
    h1 = get_protocol_registry_script(SEED_1, BASE_1)
    h2 = get_protocol_registry_script(SEED_2, BASE_1)

    for field in RegistryScriptHashes._fields:
        if field == "teiki_mph":
            assert getattr(h1, field) == getattr(h2, field)
        else:
            assert getattr(h1, field) != getattr(h2, field), field


def test_output_index_is_part_of_seed():
    h1 = get_protocol_registry_script(SEED_1, BASE_1)
    h2 = get_protocol_registry_script({"tx_hash": "11" * 32, "output_index": 1}, BASE_1)
    assert h1.protocol_nft_mph != h2.protocol_nft_mph


def test_base_policy_change_propagates():
    h1 = get_protocol_registry_script(SEED_1, BASE_1)
    h2 = get_protocol_registry_script(SEED_1, BASE_2)

    for field in RegistryScriptHashes._fields:
        if field in BASE_INDEPENDENT:
            assert getattr(h1, field) == getattr(h2, field), field
        else:
            assert getattr(h1, field) != getattr(h2, field), field


# ═══════════════════════════════════════════════════════════════════════
# Parameter threading
# ═══════════════════════════════════════════════════════════════════════

def test_compilations_observe_upstream_hashes():
    """Each compile call receives the already-derived hashes of its inputs."""
    calls = []
    produced = {}

    def recording_compile(template_id, params):
        calls.append((template_id, params))
        return compile_script(template_id, params)

    def recording_hash(artifact):
        value = script_hash(artifact)
        produced[artifact.template_id] = value
        return value

    hashes, _ = derive_script_hashes(
        SEED_1, BASE_1, compile_fn=recording_compile, hash_fn=recording_hash
    )

    assert len(calls) == len(SCRIPT_NODES)
    params_by_template = dict(calls)

    nft = produced["protocol-nft-mp"]
    at = produced["projects-authtoken-mp"]
    teiki = produced["teiki-mp"]
    pob = produced["proof-of-backing-mp"]

    assert params_by_template["protocol-nft-mp"] == (SEED_1,)
    assert params_by_template["projects-authtoken-mp"] == (nft,)
    assert params_by_template["teiki-mp"] == (BASE_1,)
    assert params_by_template["proof-of-backing-mp"] == (at, nft, teiki)
    assert params_by_template["project-v"] == (at, nft)
    assert params_by_template["project-detail-v"] == (at, nft)
    assert params_by_template["project-script-v"] == (at, nft)
    assert params_by_template["backing-v"] == (pob, nft)
    assert params_by_template["dedicated-treasury-v"] == (at, nft)
    assert params_by_template["shared-treasury-v"] == (at, nft, teiki, pob)
    assert params_by_template["open-treasury-v"] == (nft,)
    assert params_by_template["protocol-sv"] == (nft,)

    assert hashes.protocol_nft_mph == nft
    assert hashes.proof_of_backing_mph == pob


def test_receipts_record_params_and_order():
    hashes, receipts = derive_script_hashes(SEED_1, BASE_1)
    payload = receipts["payload"]

    assert receipts["section"] == "derive-script-hashes"
    assert payload["evaluation_order"] == list(topological_order())
    assert payload["inputs"]["seed_utxo"] == "11" * 32 + "#0"

    by_name = {entry["name"]: entry for entry in payload["nodes"]}
    assert by_name["backing_validator_hash"]["params"] == [
        hashes.proof_of_backing_mph,
        hashes.protocol_nft_mph,
    ]
    assert by_name["protocol_nft_mph"]["params"] == ["11" * 32 + "#0"]
    assert payload["hashes"] == hashes._asdict()


# ═══════════════════════════════════════════════════════════════════════
# Concurrency
# ═══════════════════════════════════════════════════════════════════════

def test_concurrent_matches_sequential():
    seq_hashes, seq_receipts = derive_script_hashes(SEED_1, BASE_1)
    par_hashes, par_receipts = derive_script_hashes(SEED_1, BASE_1, max_workers=4)

    assert par_hashes == seq_hashes
    assert par_receipts["section_hash"] == seq_receipts["section_hash"]


def test_concurrent_never_runs_node_before_inputs():
    lock = threading.Lock()
    finished = set()
    violations = []
    template_to_node = {node.template_id: node for node in SCRIPT_NODES}

    def checking_compile(template_id, params):
        node = template_to_node[template_id]
        with lock:
            missing = [d for d in node.inputs if d not in SEED_INPUTS and d not in finished]
            if missing:
                violations.append((node.name, missing))
        return compile_script(template_id, params)

    def marking_hash(artifact):
        value = script_hash(artifact)
        with lock:
            finished.add(template_to_node[artifact.template_id].name)
        return value

    derive_script_hashes(
        SEED_1, BASE_1, compile_fn=checking_compile, hash_fn=marking_hash, max_workers=8
    )
    assert violations == []
    assert finished == set(NODES)


# ═══════════════════════════════════════════════════════════════════════
# Failure
# ═══════════════════════════════════════════════════════════════════════

@pytest.mark.parametrize("max_workers", [1, 4])
def test_compilation_failure_aborts(max_workers):
    def failing_compile(template_id, params):
        if template_id == "backing-v":
            raise CompilationError(template_id, "template rejected")
        return compile_script(template_id, params)

    with pytest.raises(CompilationError) as exc_info:
        derive_script_hashes(SEED_1, BASE_1, compile_fn=failing_compile, max_workers=max_workers)
    assert exc_info.value.template_id == "backing-v"


@pytest.mark.parametrize("max_workers", [1, 4])
def test_foreign_errors_wrapped_with_template_id(max_workers):
    def broken_compile(template_id, params):
        if template_id == "teiki-mp":
            raise KeyError("opcode")
        return compile_script(template_id, params)

    with pytest.raises(CompilationError) as exc_info:
        derive_script_hashes(SEED_1, BASE_1, compile_fn=broken_compile, max_workers=max_workers)
    assert exc_info.value.template_id == "teiki-mp"


def test_hex_case_does_not_change_hashes_or_receipts():
    upper_seed = {"tx_hash": SEED_1["tx_hash"].upper(), "output_index": 0}
    hashes, receipts = derive_script_hashes(SEED_1, BASE_1)
    upper_hashes, upper_receipts = derive_script_hashes(upper_seed, BASE_1.upper())

    assert upper_hashes == hashes
    assert upper_receipts["section_hash"] == receipts["section_hash"]
    assert upper_receipts["payload"]["inputs"]["teiki_plant_nft_mph"] == BASE_1


def test_spaced_base_policy_fails_at_teiki_mp():
    with pytest.raises(CompilationError) as exc_info:
        derive_script_hashes(SEED_1, "ab " * 28)
    assert exc_info.value.template_id == "teiki-mp"
    assert isinstance(exc_info.value.__cause__, KeyError)


def test_malformed_seed_fails_at_protocol_nft():
    with pytest.raises(CompilationError) as exc_info:
        derive_script_hashes({"tx_hash": "11" * 31, "output_index": 0}, BASE_1)
    assert exc_info.value.template_id == "protocol-nft-mp"


def test_malformed_base_policy_fails_at_teiki_mp():
    with pytest.raises(CompilationError) as exc_info:
        derive_script_hashes(SEED_1, "T1")
    assert exc_info.value.template_id == "teiki-mp"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
