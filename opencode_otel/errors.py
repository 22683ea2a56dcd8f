"""
Exception types raised by opencode-otel.

Only configuration loading raises; event translation degrades silently and the
host adapter catches anything unexpected per event.
"""

from typing import List, Optional, Tuple


class OtelPluginError(Exception):
    """Base class for plugin errors."""


class ConfigError(OtelPluginError):
    """Raised when the config file exists but cannot be parsed."""

    def __init__(self, source: str, reason: str, message: Optional[str] = None):
        self.source = source
        self.reason = reason
        super().__init__(message or f"Failed to parse config at {source}: {reason}")


class ConfigValidationError(ConfigError):
    """Raised when the config file parses but fails schema validation.

    Args:
        source: Where the config came from (a file path or "config file")
        issues: (field path, message) pairs, one per failing field
    """

    def __init__(self, source: str, issues: List[Tuple[str, str]]):
        self.issues = issues
        details = "\n".join(f"  - {path}: {message}" for path, message in issues)
        super().__init__(source, details, f"Invalid config from {source}:\n{details}")
