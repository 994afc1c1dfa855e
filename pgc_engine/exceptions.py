"""
Error taxonomy for the PGC tour engine.
"""


class EngineError(Exception):
    """Base class for all engine errors."""


class ProviderError(EngineError):
    """Transient failure talking to the data provider (network, HTTP, JSON).

    Never retried inside a run; the next scheduled tick tries again.
    """


class MalformedSnapshotError(EngineError):
    """Provider payload is missing required structure. Aborts the cycle."""


class UnknownTierError(EngineError):
    """Tier name has no lookup table."""


class CycleTimeoutError(EngineError):
    """A sync cycle ran past its time limit and was abandoned."""


class InvariantViolationError(EngineError):
    """Input would break an engine invariant. Fatal for the run, not retried."""


class DuplicateEntrantError(InvariantViolationError):
    """The provider field lists the same entrant more than once."""


class GroupsLockedError(InvariantViolationError):
    """Groups cannot be reassigned once teams have been picked against them."""


class InvalidTransitionError(InvariantViolationError):
    """Tournament status may only move forward."""
