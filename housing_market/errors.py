"""Exceptions raised by the clearing engine."""


class InvariantViolation(RuntimeError):
    """
    A market invariant was broken.

    Raised for defects in a collaborator or in the engine itself (double
    listing, stale listing references, self-trades outside the documented
    no-op, re-entrant clearing). Never caught by the engine.
    """
