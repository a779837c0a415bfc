"""Analysis configuration: defaults, YAML file, environment overrides."""
import dataclasses
import os
from typing import Any, Dict, Optional

import yaml

from decompiler.core.errors import ConfigError
from decompiler.utils.ids import selector_bytes

# Relation name → file name written by the lifter
DEFAULT_FACT_FILES = {
    "statement_opcode": "TAC_Op.csv",
    "statement_block": "TAC_Block.csv",
    "statement_next": "TAC_Statement_Next.csv",
    "statement_uses": "TAC_Use.csv",
    "statement_defines": "TAC_Def.csv",
    "variable_value": "TAC_Variable_Value.csv",
    "local_edges": "LocalBlockEdge.csv",
    "fallthrough_edges": "IRFallthroughEdge.csv",
    "call_graph_edges": "IRFunctionCall.csv",
    "function_call_returns": "IRFunctionCallReturn.csv",
    "function_entries": "IRFunctionEntry.csv",
    "in_function": "InFunction.csv",
    "formal_args": "FormalArgs.csv",
    "actual_return_args": "ActualReturnArgs.csv",
    "public_function_selectors": "PublicFunctionSelector.csv",
    "function_names": "HighLevelFunctionName.csv",
}

# Loaded verbatim and republished untouched
DEFAULT_PASSTHROUGH_FILES = {
    "Block_Gas": "TAC_Block_Gas.csv",
    "Block_CodeChunkAccessed": "TAC_Block_CodeChunkAccessed.csv",
    "Storage_Snapshot": "TAC_Storage_Snapshot.csv",
    "SHA3_Preimage": "TAC_SHA3_Preimage.csv",
}

ENV_PREFIX = "TAC_CFG_"


@dataclasses.dataclass
class AnalysisConfig:
    global_entry_block: str = "0x0"
    fallback_selector: str = "0x00000000"
    max_statements: int = 0  # 0 disables the size limit
    delimiter: str = "\t"
    log_level: str = "INFO"
    log_format: str = "console"
    fact_files: Dict[str, str] = dataclasses.field(default_factory=lambda: dict(DEFAULT_FACT_FILES))
    passthrough_files: Dict[str, str] = dataclasses.field(
        default_factory=lambda: dict(DEFAULT_PASSTHROUGH_FILES)
    )

    def validate(self) -> "AnalysisConfig":
        if self.max_statements < 0:
            raise ConfigError(f"max_statements must be >= 0, got {self.max_statements}")
        if selector_bytes(self.fallback_selector) is None:
            raise ConfigError(f"fallback_selector is not a 4-byte hex string: {self.fallback_selector!r}")
        if self.log_format not in ("console", "json"):
            raise ConfigError(f"log_format must be 'console' or 'json', got {self.log_format!r}")
        unknown = set(self.fact_files) - set(DEFAULT_FACT_FILES)
        if unknown:
            raise ConfigError(f"Unknown fact relations: {sorted(unknown)}")
        if len(self.delimiter) != 1:
            raise ConfigError("delimiter must be a single character")
        return self


def _apply_mapping(config: AnalysisConfig, data: Dict[str, Any]) -> None:
    fields = {f.name for f in dataclasses.fields(AnalysisConfig)}
    unknown = set(data) - fields
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {sorted(unknown)}")
    for key, value in data.items():
        if key in ("fact_files", "passthrough_files"):
            if not isinstance(value, dict):
                raise ConfigError(f"{key} must be a mapping")
            getattr(config, key).update({str(k): str(v) for k, v in value.items()})
        elif key == "max_statements":
            try:
                config.max_statements = int(value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"max_statements must be an integer: {value!r}") from e
        else:
            # YAML reads unquoted 0x0 as the integer 0
            if not isinstance(value, str):
                raise ConfigError(f"{key} must be a string; quote it in YAML, e.g. {key}: \"{value}\"")
            setattr(config, key, value)


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> AnalysisConfig:
    """
    Build the analysis configuration.

    Precedence, lowest first: built-in defaults, the YAML file at ``path``,
    ``TAC_CFG_*`` environment variables. CLI flags are applied by the
    caller on top of the returned object.

    Raises:
        ConfigError: If the file is unreadable or holds unknown/invalid keys.
    """
    config = AnalysisConfig()

    if path:
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must hold a mapping")
        _apply_mapping(config, data)

    environ = os.environ if environ is None else environ
    overrides = {}
    for key in ("global_entry_block", "fallback_selector", "max_statements", "log_level", "log_format"):
        env_key = ENV_PREFIX + key.upper()
        if env_key in environ:
            overrides[key] = environ[env_key]
    _apply_mapping(config, overrides)

    return config.validate()
