"""
Exceptions raised by the stream-processing core.

Configuration problems are detected when a stage is built or wired and are
fatal: the pipeline must not run with meaningless filter state.  Numeric
edge cases (empty blocks) are not errors at all.
"""
from __future__ import annotations


class DSPError(Exception):
    """Base class for all sdrstream errors."""


class ConfigurationError(DSPError, ValueError):
    """Invalid stage parameters or wiring (lengths, rates, sample types)."""


class UnimplementedStageError(DSPError, NotImplementedError):
    """A stage was driven without its transform being supplied."""
