class ReconstructionError(Exception):
    """Base class for errors that stop a reconstruction run."""


class FactFileError(ReconstructionError):
    """A fact file is missing or cannot be parsed."""

    def __init__(self, message, path=None, line=None):
        self.path = path
        self.line = line
        location = ""
        if path is not None:
            location = f" [{path}" + (f":{line}" if line is not None else "") + "]"
        super().__init__(f"{message}{location}")


class FactStoreError(ReconstructionError):
    """The fact store is too incomplete for any derivation to be meaningful."""


class AnalysisAborted(ReconstructionError):
    """A run was abandoned before publishing output (e.g. contract too large)."""


class ConfigError(ReconstructionError):
    """Invalid analysis configuration."""
