"""
Dependency Resolver

Derives every protocol script hash from the seed inputs by walking a
fixed dependency graph of (template, inputs) nodes. Each node is
compiled and hashed only after all of its inputs are finalized, and its
hash is threaded into the parameters of its dependents.

Graph (declaration order = tie-break order):

  seed_utxo ──► protocol_nft_mph ──► projects_authtoken_mph ─┐
  teiki_plant_nft_mph ──► teiki_mph ────────────────────────┼─► proof_of_backing_mph
                                                            │
  project / project-detail / project-script / dedicated-treasury validators
      ◄── (projects_authtoken_mph, protocol_nft_mph)
  backing validator         ◄── (proof_of_backing_mph, protocol_nft_mph)
  shared treasury validator ◄── (projects_authtoken_mph, protocol_nft_mph,
                                 teiki_mph, proof_of_backing_mph)
  open treasury validator, protocol stake validator ◄── (protocol_nft_mph)

protocol_nft_mph is the only node fed by the one-time seed, which makes
the whole derivation globally unique. teiki_mph does not depend on it.

Derivation is all-or-nothing: a failing node aborts the run and no
partial hash set is returned.
"""

from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Mapping, NamedTuple, Sequence, Tuple

from .core import Receipts, script_hash
from .compiler import (
    compile_script,
    format_out_ref,
    CompilationError,
    OutRef,
    PROTOCOL_NFT_MP,
    PROJECTS_AUTHTOKEN_MP,
    TEIKI_MP,
    PROOF_OF_BACKING_MP,
    PROJECT_V,
    PROJECT_DETAIL_V,
    PROJECT_SCRIPT_V,
    BACKING_V,
    DEDICATED_TREASURY_V,
    SHARED_TREASURY_V,
    OPEN_TREASURY_V,
    PROTOCOL_SV,
)


# ============================================================================
# Dependency Graph
# ============================================================================

class ScriptNode(NamedTuple):
    """One derived hash: compile `template_id` with `inputs`, then hash."""
    name: str
    template_id: str
    inputs: Tuple[str, ...]  # upstream node names or seed input names


SEED_INPUTS: Tuple[str, ...] = ("seed_utxo", "teiki_plant_nft_mph")

SCRIPT_NODES: Tuple[ScriptNode, ...] = (
    ScriptNode("protocol_nft_mph", PROTOCOL_NFT_MP, ("seed_utxo",)),
    ScriptNode("projects_authtoken_mph", PROJECTS_AUTHTOKEN_MP, ("protocol_nft_mph",)),
    ScriptNode("teiki_mph", TEIKI_MP, ("teiki_plant_nft_mph",)),
    ScriptNode(
        "proof_of_backing_mph",
        PROOF_OF_BACKING_MP,
        ("projects_authtoken_mph", "protocol_nft_mph", "teiki_mph"),
    ),
    ScriptNode("project_validator_hash", PROJECT_V, ("projects_authtoken_mph", "protocol_nft_mph")),
    ScriptNode(
        "project_detail_validator_hash",
        PROJECT_DETAIL_V,
        ("projects_authtoken_mph", "protocol_nft_mph"),
    ),
    ScriptNode(
        "project_script_validator_hash",
        PROJECT_SCRIPT_V,
        ("projects_authtoken_mph", "protocol_nft_mph"),
    ),
    ScriptNode("backing_validator_hash", BACKING_V, ("proof_of_backing_mph", "protocol_nft_mph")),
    ScriptNode(
        "dedicated_treasury_validator_hash",
        DEDICATED_TREASURY_V,
        ("projects_authtoken_mph", "protocol_nft_mph"),
    ),
    ScriptNode(
        "shared_treasury_validator_hash",
        SHARED_TREASURY_V,
        ("projects_authtoken_mph", "protocol_nft_mph", "teiki_mph", "proof_of_backing_mph"),
    ),
    ScriptNode("open_treasury_validator_hash", OPEN_TREASURY_V, ("protocol_nft_mph",)),
    ScriptNode("protocol_stake_validator_hash", PROTOCOL_SV, ("protocol_nft_mph",)),
)


class RegistryScriptHashes(NamedTuple):
    """Raw hash bundle, one field per SCRIPT_NODES entry (same order)."""
    protocol_nft_mph: str
    projects_authtoken_mph: str
    teiki_mph: str
    proof_of_backing_mph: str
    project_validator_hash: str
    project_detail_validator_hash: str
    project_script_validator_hash: str
    backing_validator_hash: str
    dedicated_treasury_validator_hash: str
    shared_treasury_validator_hash: str
    open_treasury_validator_hash: str
    protocol_stake_validator_hash: str


CompileFn = Callable[[str, Sequence], object]
HashFn = Callable[[object], str]


# ============================================================================
# Ordering
# ============================================================================

def topological_order(
    nodes: Sequence[ScriptNode] = SCRIPT_NODES,
    seed_inputs: Sequence[str] = SEED_INPUTS
) -> Tuple[str, ...]:
    """
    Return node names in dependency order.

    Kahn's algorithm; among ready nodes the earliest declared goes first,
    so the order is a pure function of the graph declaration.

    Raises:
        DependencyGraphError: Duplicate names, unknown inputs, or a cycle.
    """
    return tuple(name for level in _resolve_levels(nodes, seed_inputs, one_at_a_time=True)
                 for name in level)


def dependency_levels(
    nodes: Sequence[ScriptNode] = SCRIPT_NODES,
    seed_inputs: Sequence[str] = SEED_INPUTS
) -> List[List[str]]:
    """
    Group node names into waves; members of one wave are mutually independent
    and depend only on earlier waves.

    Raises:
        DependencyGraphError: Duplicate names, unknown inputs, or a cycle.
    """
    return _resolve_levels(nodes, seed_inputs, one_at_a_time=False)


def _resolve_levels(
    nodes: Sequence[ScriptNode],
    seed_inputs: Sequence[str],
    one_at_a_time: bool
) -> List[List[str]]:
    names = [node.name for node in nodes]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise DependencyGraphError(f"Duplicate node names: {dupes}")

    shadowed = sorted(set(names) & set(seed_inputs))
    if shadowed:
        raise DependencyGraphError(f"Node names shadow seed inputs: {shadowed}")

    known = set(names) | set(seed_inputs)
    for node in nodes:
        unknown = [i for i in node.inputs if i not in known]
        if unknown:
            raise DependencyGraphError(f"Node '{node.name}' has unknown inputs: {unknown}")

    finalized = set(seed_inputs)
    remaining = list(nodes)
    levels: List[List[str]] = []

    while remaining:
        ready = [node for node in remaining if all(i in finalized for i in node.inputs)]
        if not ready:
            raise DependencyGraphError(
                f"Dependency cycle among: {[node.name for node in remaining]}"
            )
        if one_at_a_time:
            ready = ready[:1]
        levels.append([node.name for node in ready])
        for node in ready:
            remaining.remove(node)
            finalized.add(node.name)

    return levels


# ============================================================================
# Derivation
# ============================================================================

def derive_script_hashes(
    seed_utxo: OutRef,
    teiki_plant_nft_mph: str,
    compile_fn: CompileFn = compile_script,
    hash_fn: HashFn = script_hash,
    max_workers: int = 1
) -> Tuple[RegistryScriptHashes, Dict]:
    """
    Derive all protocol script hashes from the seed inputs.

    Args:
        seed_utxo: One-time seed output reference.
        teiki_plant_nft_mph: Base token policy id (56 hex chars).
        compile_fn: (template_id, params) -> artifact.
        hash_fn: artifact -> script hash.
        max_workers: > 1 evaluates independent nodes concurrently on a
            thread pool. Results and receipts match the sequential run.

    Returns:
        Tuple of (RegistryScriptHashes, receipts_dict). The receipts list
        every node in evaluation order with its template, params and hash.

    Raises:
        CompilationError: A node failed; carries that node's template id.
    """
    node_by_name = {node.name: node for node in SCRIPT_NODES}
    order = topological_order(SCRIPT_NODES, SEED_INPUTS)
    seed_utxo, teiki_plant_nft_mph = _normalize_seed_inputs(seed_utxo, teiki_plant_nft_mph)

    values: Dict[str, object] = {
        "seed_utxo": seed_utxo,
        "teiki_plant_nft_mph": teiki_plant_nft_mph,
    }

    if max_workers <= 1:
        for name in order:
            node = node_by_name[name]
            params = tuple(values[i] for i in node.inputs)
            values[name] = _compile_and_hash(node.template_id, params, compile_fn, hash_fn)
    else:
        _derive_concurrently(order, node_by_name, values, compile_fn, hash_fn, max_workers)

    hashes = RegistryScriptHashes(**{name: values[name] for name in RegistryScriptHashes._fields})

    receipts = Receipts("derive-script-hashes")
    receipts.put("inputs", {
        "seed_utxo": _receipt_value(seed_utxo),
        "teiki_plant_nft_mph": teiki_plant_nft_mph,
    })
    receipts.put("evaluation_order", list(order))
    receipts.put("levels", dependency_levels(SCRIPT_NODES, SEED_INPUTS))
    receipts.put("nodes", [
        {
            "name": name,
            "template_id": node_by_name[name].template_id,
            "inputs": list(node_by_name[name].inputs),
            "params": [_receipt_value(values[i]) for i in node_by_name[name].inputs],
            "hash": values[name],
        }
        for name in order
    ])
    receipts.put("hashes", hashes._asdict())

    return hashes, receipts.digest()


def _normalize_seed_inputs(seed_utxo, teiki_plant_nft_mph):
    # Hex ids are case-insensitive; values and receipts carry the lowercase form.
    if isinstance(teiki_plant_nft_mph, str):
        teiki_plant_nft_mph = teiki_plant_nft_mph.lower()
    if isinstance(seed_utxo, Mapping) and isinstance(seed_utxo.get("tx_hash"), str):
        seed_utxo = {**seed_utxo, "tx_hash": seed_utxo["tx_hash"].lower()}
    return seed_utxo, teiki_plant_nft_mph


def get_protocol_registry_script(
    seed_utxo: OutRef,
    teiki_plant_nft_mph: str,
    **kwargs
) -> RegistryScriptHashes:
    """Raw hash bundle for a protocol instance (receipts discarded)."""
    hashes, _ = derive_script_hashes(seed_utxo, teiki_plant_nft_mph, **kwargs)
    return hashes


def _derive_concurrently(
    order: Tuple[str, ...],
    node_by_name: Dict[str, ScriptNode],
    values: Dict[str, object],
    compile_fn: CompileFn,
    hash_fn: HashFn,
    max_workers: int
) -> None:
    """
    Ready-set scheduler: submit every node whose inputs are finalized,
    record results as they complete, repeat. `values` is only written
    from this thread.
    """
    pending = list(order)
    running = {}

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        try:
            while pending or running:
                ready = [
                    name for name in pending
                    if all(i in values for i in node_by_name[name].inputs)
                ]
                for name in ready:
                    pending.remove(name)
                    node = node_by_name[name]
                    params = tuple(values[i] for i in node.inputs)
                    future = pool.submit(
                        _compile_and_hash, node.template_id, params, compile_fn, hash_fn
                    )
                    running[future] = name

                if not running:
                    raise DependencyGraphError(f"No runnable nodes among: {pending}")

                done, _ = wait(list(running), return_when=FIRST_COMPLETED)
                for future in done:
                    name = running.pop(future)
                    values[name] = future.result()
        except BaseException:
            for future in running:
                future.cancel()
            raise


def _compile_and_hash(
    template_id: str,
    params: Tuple,
    compile_fn: CompileFn,
    hash_fn: HashFn
) -> str:
    try:
        return hash_fn(compile_fn(template_id, params))
    except CompilationError:
        raise
    except Exception as e:
        raise CompilationError(template_id, f"{type(e).__name__}: {e}") from e


def _receipt_value(value) -> str:
    if isinstance(value, Mapping):
        return format_out_ref(value)
    return value


class DependencyGraphError(Exception):
    """Raised when the script dependency graph is malformed (programming error)."""
    pass
