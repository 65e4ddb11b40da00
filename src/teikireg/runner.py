"""
Protocol Registry Runner

Derives the registry for one protocol instance and bundles it with the
validated non-script protocol parameters:

  1. load + validate protocol config (defaults or JSON file)
  2. derive script hashes in dependency order
  3. wrap hashes into the Registry
  4. emit registry, params, fingerprint and receipts as JSON
"""

import argparse
import functools
import json
import sys
from typing import Dict, Optional, Sequence, Tuple

from .core import assert_double_run_equal, blake3_hash, stable_json_bytes, DeterminismError, Receipts
from .compiler import compile_script, load_template_code, parse_out_ref, CompilationError, OutRef
from .params import config_to_json, load_protocol_config, ConfigValidationError, ProtocolConfig
from .registry_builder import derive_protocol_registry, registry_fingerprint, registry_to_json
from .resolver import derive_script_hashes


# ============================================================================
# Generation
# ============================================================================

def generate(
    seed_utxo: OutRef,
    teiki_plant_nft_mph: str,
    migrate_token_mph: str,
    migrate_token_name: str,
    config: Optional[ProtocolConfig] = None,
    templates: Optional[Dict[str, bytes]] = None,
    max_workers: int = 1,
    scripts_only: bool = False
) -> Tuple[Dict, Dict]:
    """
    Produce the protocol registry bundle.

    Args:
        seed_utxo: One-time seed output reference.
        teiki_plant_nft_mph: Base token policy id.
        migrate_token_mph: Migration token policy id.
        migrate_token_name: Migration token name.
        config: Validated protocol config; defaults when None.
        templates: Template code override (see load_template_code()).
        max_workers: Thread count for independent nodes.
        scripts_only: Emit the raw hash bundle instead of the wrapped registry.

    Returns:
        Tuple of (result, receipts).

    Raises:
        CompilationError: Derivation failed.
        ConfigValidationError: Default config failed validation.
    """
    if config is None:
        config = load_protocol_config()

    compile_fn = compile_script
    if templates is not None:
        compile_fn = functools.partial(compile_script, templates=templates)

    if scripts_only:
        hashes, derive_receipts = derive_script_hashes(
            seed_utxo, teiki_plant_nft_mph, compile_fn=compile_fn, max_workers=max_workers
        )
        result = {"registryScript": hashes._asdict()}
        receipts = {"derive": derive_receipts}
    else:
        registry, receipts = derive_protocol_registry(
            seed_utxo,
            teiki_plant_nft_mph,
            migrate_token_mph,
            migrate_token_name,
            compile_fn=compile_fn,
            max_workers=max_workers,
        )
        result = {
            "registry": registry_to_json(registry),
            "fingerprint": registry_fingerprint(registry),
        }

    result["protocolParams"] = config_to_json(config.protocol_params)
    result["transactionConstants"] = config_to_json(config.transaction_constants)
    return result, receipts


def generate_with_determinism_check(*args, **kwargs) -> Tuple[Dict, Dict]:
    """
    Run generate() twice and verify identical results and section hashes.

    Each run is reduced to a Receipts section holding the result hash and
    every section_hash, and the two are compared with assert_double_run_equal().

    Raises:
        DeterminismError: If the two runs differ; names the first differing key.
    """
    runs = []

    def build_run() -> Receipts:
        result, receipts = generate(*args, **kwargs)
        runs.append((result, receipts))
        r = Receipts("generate")
        r.put("result_hash", blake3_hash(stable_json_bytes(result)))
        for key in sorted(receipts):
            r.put(f"{key}.section_hash", receipts[key]["section_hash"])
        return r

    assert_double_run_equal(build_run)

    result, receipts = runs[0]
    receipts_final = dict(receipts)
    receipts_final["determinism"] = {
        "double_run_ok": True,
        "sections_checked": len(receipts),
    }
    return result, receipts_final


# ============================================================================
# CLI Entry Point
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="teikireg",
        description="Derive the Teiki protocol script registry from seed parameters",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Registry with default protocol params
  teikireg <tx_hash>#0 <teiki_plant_nft_mph> <migrate_token_mph> MIGRATE

  # Raw hash bundle only, independent scripts compiled on 4 threads
  teikireg <tx_hash>#0 <mph> <mph> MIGRATE --scripts-only --workers 4

  # Overridden protocol params, double-run determinism check
  teikireg <tx_hash>#0 <mph> <mph> MIGRATE --config params.json --determinism-check
        """
    )

    parser.add_argument("seed_utxo", type=str, help="Seed output reference: <tx_hash>#<index>")
    parser.add_argument("teiki_plant_nft_mph", type=str, help="Teiki plant NFT policy id (hex)")
    parser.add_argument("migrate_token_mph", type=str, help="Migration token policy id (hex)")
    parser.add_argument("migrate_token_name", type=str, help="Migration token name")

    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON file overriding protocol_params / transaction_constants. Default: built-in values."
    )

    parser.add_argument(
        "--templates-dir",
        type=str,
        default=None,
        help="Directory of <template_id>.uplc files replacing built-in template code."
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Threads for independent scripts. Default: 1 (sequential)."
    )

    parser.add_argument(
        "--scripts-only",
        action="store_true",
        help="Emit the raw script hash bundle instead of the registry. Default: False."
    )

    parser.add_argument(
        "--determinism-check",
        action="store_true",
        help="Run double-derivation determinism check. Default: False (single run)."
    )

    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output file for results JSON. Default: print to stdout."
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Exit codes: 0 success, 1 configuration/input error, 2 compilation error.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.workers < 1:
        parser.error(f"--workers must be at least 1, got {args.workers}")

    try:
        seed_utxo = parse_out_ref(args.seed_utxo)
        config = load_protocol_config(args.config)
        templates = load_template_code(args.templates_dir) if args.templates_dir else None
    except (ValueError, FileNotFoundError, ConfigValidationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except CompilationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    run = generate_with_determinism_check if args.determinism_check else generate

    try:
        result, receipts = run(
            seed_utxo,
            args.teiki_plant_nft_mph,
            args.migrate_token_mph,
            args.migrate_token_name,
            config=config,
            templates=templates,
            max_workers=args.workers,
            scripts_only=args.scripts_only,
        )
    except CompilationError as e:
        print(f"Compilation error: {e}", file=sys.stderr)
        return 2
    except (ValueError, DeterminismError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    result["receipts"] = receipts

    if args.output:
        try:
            with open(args.output, "w", encoding="utf-8") as f:
                json.dump(result, f, indent=2)
        except OSError as e:
            print(f"Error: cannot write {args.output}: {e}", file=sys.stderr)
            return 1
        print(f"Results written to: {args.output}", file=sys.stderr)
    else:
        print(json.dumps(result, indent=2))

    return 0


if __name__ == "__main__":
    sys.exit(main())
