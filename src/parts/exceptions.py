"""Custom exceptions for parts."""

from typing import Optional


class PartsError(Exception):
    """Base exception for parts errors."""
    pass


class ConfigError(PartsError):
    """Raised when part definitions are malformed, duplicated or invalid.

    Attributes:
        part: Name of the offending part, if known.
        rule: Text of the offending selection rule, if any.
    """

    def __init__(self, message: str, part: Optional[str] = None, rule: Optional[str] = None):
        super().__init__(message)
        self.part = part
        self.rule = rule


class NoConfigFileFound(ConfigError):
    """Raised when no configuration file could be located."""

    def __init__(self, candidates: Optional[list] = None):
        self.candidates = list(candidates or [])
        super().__init__(
            "no config file was found, use verbose output (-v) for more details"
        )


class UnknownPartError(ConfigError):
    """Raised when a part name is not declared in the configuration."""

    def __init__(self, part: str):
        super().__init__(f"unknown part name: {part!r}", part=part)


class PartIOError(PartsError):
    """Raised when a member file of a part cannot be read."""

    def __init__(self, message: str, part: Optional[str] = None, path: Optional[str] = None):
        super().__init__(message)
        self.part = part
        self.path = path


class EnumerationError(PartsError):
    """Raised when the file tree cannot be walked."""
    pass


class StateIOError(PartsError):
    """Raised when the state file cannot be read or written."""
    pass


class StateFormatError(PartsError):
    """Raised when the persisted snapshot is corrupt or of another format version."""
    pass


class StateConflictError(PartsError):
    """Raised when another run committed a snapshot since this run loaded its own."""
    pass


class GitError(PartsError):
    """Raised when a git command fails.

    Attributes:
        command: The git command line that failed.
        stderr: Captured standard error of the command.
    """

    def __init__(self, message: str, command: Optional[list] = None, stderr: str = ""):
        super().__init__(message)
        self.command = list(command or [])
        self.stderr = stderr
