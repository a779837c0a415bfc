"""Reading lifter fact files and publishing reconstruction results."""
import csv
import json
import os
from typing import Dict, Iterable, List, Optional

import structlog
import yaml

from decompiler.config import AnalysisConfig
from decompiler.core.errors import FactFileError
from decompiler.core.fact_store import FactStore

logger = structlog.get_logger()

# Relation → (arity, indexes of integer columns, required)
RELATION_SCHEMA = {
    "statement_opcode": (2, (), True),
    "statement_block": (2, (), True),
    "statement_next": (2, (), False),
    "statement_uses": (3, (2,), False),
    "statement_defines": (3, (2,), False),
    "variable_value": (2, (), False),
    "local_edges": (2, (), False),
    "fallthrough_edges": (2, (), False),
    "call_graph_edges": (2, (), False),
    "function_call_returns": (3, (), False),
    "function_entries": (1, (), False),
    "in_function": (2, (), True),
    "formal_args": (3, (2,), False),
    "actual_return_args": (3, (2,), False),
    "public_function_selectors": (2, (), False),
    "function_names": (2, (), False),
}

OUTPUT_FILES = {
    "block_head": "Block_Head.csv",
    "block_tail": "Block_Tail.csv",
    "variable_function": "Variable_Function.csv",
    "actual_args": "ActualArgs.csv",
    "formal_return_args": "FormalReturnArgs.csv",
    "formal_args": "FormalArgs.csv",
    "actual_return_args": "ActualReturnArgs.csv",
    "global_edges": "GlobalBlockEdge.csv",
    "function_exits": "FunctionExit.csv",
    "valid_terminal_blocks": "ValidGlobalTerminalBlock.csv",
    "fallback_functions": "FallbackFunction.csv",
    "terminal_kinds": "FunctionExit_TerminalKind.csv",
}


def read_fact_file(
    path: str,
    arity: Optional[int] = None,
    int_columns: Iterable[int] = (),
    delimiter: str = "\t",
) -> List[tuple]:
    """
    Read one relation file, one tuple per line.

    Args:
        path: File to read.
        arity: Expected column count, or None to accept any width.
        int_columns: Column indexes to parse as integers.
        delimiter: Column separator.

    Returns:
        List of tuples, in file order, blank lines skipped.

    Raises:
        FactFileError: On a wrong column count, a non-integer where an
            integer is expected, bytes that are not UTF-8, or a file that
            cannot be read at all.
    """
    rows = []
    line_no = 0
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            reader = csv.reader(f, delimiter=delimiter, quoting=csv.QUOTE_NONE)
            for line_no, row in enumerate(reader, start=1):
                if not row or (len(row) == 1 and not row[0].strip()):
                    continue
                if arity is not None and len(row) != arity:
                    raise FactFileError(f"Expected {arity} columns, got {len(row)}", path, line_no)
                parsed = list(row)
                for index in int_columns:
                    try:
                        parsed[index] = int(parsed[index])
                    except ValueError as e:
                        raise FactFileError(
                            f"Column {index} is not an integer: {parsed[index]!r}", path, line_no
                        ) from e
                rows.append(tuple(parsed))
    except UnicodeDecodeError as e:
        raise FactFileError(f"Not valid UTF-8 at byte {e.start}: {e.reason}", path) from e
    except csv.Error as e:
        raise FactFileError(f"Unparseable line: {e}", path, line_no + 1) from e
    except OSError as e:
        raise FactFileError(f"Cannot read fact file: {e.strerror or e}", path) from e
    return rows


def load_facts(facts_dir: str, config: Optional[AnalysisConfig] = None) -> FactStore:
    """
    Load a directory of lifter facts into an immutable FactStore.

    Raises:
        FactFileError: If the directory or a required file is missing, or a
            file is malformed.
    """
    config = config or AnalysisConfig()
    if not os.path.isdir(facts_dir):
        raise FactFileError("Facts directory not found", facts_dir)

    relations: Dict[str, list] = {}
    for relation, (arity, int_columns, required) in RELATION_SCHEMA.items():
        path = os.path.join(facts_dir, config.fact_files[relation])
        if not os.path.exists(path):
            if required:
                raise FactFileError(f"Required fact file for {relation} is missing", path)
            logger.debug("Optional fact file missing", relation=relation, path=path)
            relations[relation] = []
            continue
        rows = read_fact_file(path, arity, int_columns, config.delimiter)
        logger.debug("Loaded relation", relation=relation, tuples=len(rows))
        relations[relation] = rows

    # Single-column relation
    relations["function_entries"] = [row[0] for row in relations["function_entries"]]

    passthrough = {}
    for name, filename in config.passthrough_files.items():
        path = os.path.join(facts_dir, filename)
        if os.path.exists(path):
            passthrough[name] = read_fact_file(path, delimiter=config.delimiter)

    facts = FactStore.from_relations(passthrough=passthrough, **relations)
    logger.info(
        "Loaded facts",
        facts_dir=facts_dir,
        statements=len(facts.statements),
        blocks=len(facts.blocks),
        functions=len(facts.functions),
    )
    return facts


def write_fact_file(path: str, rows: Iterable[tuple], delimiter: str = "\t") -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f, delimiter=delimiter, quoting=csv.QUOTE_NONE, escapechar="\\", lineterminator="\n")
        for row in rows:
            writer.writerow(row)


def write_result(result, out_dir: str, config: Optional[AnalysisConfig] = None) -> List[str]:
    """
    Publish every derived table of a finished ReconstructionResult.

    Returns:
        Paths of the files written.
    """
    config = config or AnalysisConfig()
    os.makedirs(out_dir, exist_ok=True)
    written = []

    def emit(filename, rows):
        path = os.path.join(out_dir, filename)
        write_fact_file(path, rows, config.delimiter)
        written.append(path)

    for attribute, filename in OUTPUT_FILES.items():
        rows = getattr(result, attribute)
        emit(filename, [row if isinstance(row, tuple) else (row,) for row in rows])

    emit("GlobalEntryBlock.csv", [(result.global_entry_block,)])
    emit("Violations.csv", [violation.as_row() for violation in result.violations])

    for name, rows in result.passthrough.items():
        emit(config.passthrough_files.get(name, f"{name}.csv"), rows)

    logger.info("Wrote reconstruction output", out_dir=out_dir, files=len(written))
    return written


def result_summary(result) -> Dict:
    return {
        "contract": result.contract,
        "degraded": result.degraded,
        "global_entry_block": result.global_entry_block,
        "fallback_functions": list(result.fallback_functions),
        "tables": {
            attribute: len(getattr(result, attribute))
            for attribute in OUTPUT_FILES
        },
        "violations": [violation.as_dict() for violation in result.violations],
    }


def export_summary(result, filename: str, fmt: str = "json") -> None:
    """Dump a JSON or YAML summary of a result."""
    data = result_summary(result)
    with open(filename, "w") as f:
        if fmt == "yaml":
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        elif fmt == "json":
            json.dump(data, f, indent=2)
        else:
            raise ValueError(f"Unsupported summary format: {fmt}")
    logger.info("Exported summary", path=filename, format=fmt)
