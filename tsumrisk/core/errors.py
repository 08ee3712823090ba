"""
Exception types raised by the engines and readers.

All errors derive from :class:`TsumRiskError`. Input-validation errors also
derive from :class:`ValueError` so callers catching ``ValueError`` keep
working.
"""

from __future__ import annotations


class TsumRiskError(Exception):
    """Base class for all tsumrisk errors."""


class ConfigurationError(TsumRiskError, ValueError):
    """Invalid run or combination configuration."""


class DataIntegrityError(TsumRiskError, ValueError):
    """Reference ids are sparse, duplicated or outside the result range."""


class DimensionMismatchError(TsumRiskError, ValueError):
    """Grids passed to a combination do not share the same geometry."""


class RecordParseError(TsumRiskError, ValueError):
    """A weather record holds a malformed numeric or date field."""

    def __init__(self, source: str, line: int, detail: str):
        self.source = source
        self.line = line
        super().__init__(f"{source}:{line}: {detail}")


class RunCancelledError(TsumRiskError):
    """The run was cancelled through its cancellation token."""
