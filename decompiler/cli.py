#!/usr/bin/env python3
"""
Control-flow and call-graph reconstruction over lifted contract facts.

Reads one or more directories of lifter facts, derives block boundaries,
variable ownership, call/return argument bindings, the inter-procedural
control-flow graph and the entry/exit/terminal classification, and writes
the derived tables next to a violation report.

Usage:
    tac-cfg facts/ -o out/ --summary out/summary.yaml --format yaml
"""

import argparse
import multiprocessing
import os
import sys
from typing import List, Optional, Tuple

import structlog

from decompiler.config import AnalysisConfig, load_config
from decompiler.core.errors import ConfigError, ReconstructionError
from decompiler.reconstructor import ControlFlowReconstructor
from decompiler.utils.fact_io import export_summary, load_facts, write_result
from decompiler.utils.logging_config import LOG_FORMATS, configure_logging

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_DEGRADED = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tac-cfg",
        description="Reconstruct basic blocks, call bindings and the global CFG from lifted contract facts",
    )
    parser.add_argument("facts_dirs", nargs="+", metavar="FACTS_DIR", help="Directory of lifter fact files (one per contract)")
    parser.add_argument("-o", "--output", default="out", help="Output directory (default: out)")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--format", choices=["json", "yaml"], default="json", help="Summary format (default: json)")
    parser.add_argument("--summary", action="store_true", help="Write a summary file per contract")
    parser.add_argument("--workers", type=int, default=1, help="Worker processes for multiple contracts (default: 1)")
    parser.add_argument("--max-statements", type=int, help="Abandon contracts with more statements than this")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], help="Logging level")
    parser.add_argument("--log-format", choices=LOG_FORMATS, help="Log renderer")
    parser.add_argument("--strict", action="store_true", help="Exit with status 2 if any output is degraded")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> AnalysisConfig:
    config = load_config(args.config)
    if args.max_statements is not None:
        config.max_statements = args.max_statements
    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format
    return config.validate()


def contract_name(facts_dir: str) -> str:
    return os.path.basename(os.path.normpath(facts_dir)) or "contract"


def contract_names(facts_dirs: List[str]) -> List[str]:
    """Output directory name per facts directory, unique within one run."""
    names, seen = [], set()
    for facts_dir in facts_dirs:
        base = contract_name(facts_dir)
        name, n = base, 1
        while name in seen:
            n += 1
            name = f"{base}-{n}"
        if name != base:
            logger.warning("Contract name already taken", facts_dir=facts_dir, renamed_to=name)
        seen.add(name)
        names.append(name)
    return names


def analyze_contract(
    facts_dir: str,
    output_root: str,
    config: AnalysisConfig,
    summary_format: Optional[str] = None,
    name: Optional[str] = None,
) -> Tuple[str, str, int]:
    """
    Run the whole reconstruction for one contract and publish its tables.

    Returns:
        (contract, status, violation count) where status is "ok",
        "degraded" or "failed".
    """
    name = name or contract_name(facts_dir)
    log = logger.bind(contract=name)
    try:
        facts = load_facts(facts_dir, config)
        result = ControlFlowReconstructor(facts, config, contract=name).run()
    except ReconstructionError as e:
        log.error("Reconstruction failed", error=str(e))
        return name, "failed", 0

    out_dir = os.path.join(output_root, name)
    try:
        write_result(result, out_dir, config)
        if summary_format:
            export_summary(result, os.path.join(out_dir, f"summary.{summary_format}"), summary_format)
    except OSError as e:
        log.error("Writing output failed", out_dir=out_dir, error=str(e))
        return name, "failed", len(result.violations)
    return name, "degraded" if result.degraded else "ok", len(result.violations)


def _worker(task):
    facts_dir, output_root, config, summary_format, name = task
    configure_logging(config.log_level, config.log_format)
    return analyze_contract(facts_dir, output_root, config, summary_format, name)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_FAILED

    configure_logging(config.log_level, config.log_format)
    summary_format = args.format if args.summary else None
    tasks = [
        (facts_dir, args.output, config, summary_format, name)
        for facts_dir, name in zip(args.facts_dirs, contract_names(args.facts_dirs))
    ]

    if args.workers > 1 and len(tasks) > 1:
        logger.info("Analysing contracts in parallel", contracts=len(tasks), workers=args.workers)
        with multiprocessing.Pool(processes=args.workers) as pool:
            outcomes = pool.map(_worker, tasks)
    else:
        outcomes = [analyze_contract(*task) for task in tasks]

    for name, status, violations in outcomes:
        logger.info("Contract done", contract=name, status=status, violations=violations)

    statuses = {status for _, status, _ in outcomes}
    if "failed" in statuses:
        return EXIT_FAILED
    if args.strict and "degraded" in statuses:
        return EXIT_DEGRADED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
