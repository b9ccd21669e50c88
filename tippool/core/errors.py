from __future__ import annotations


class TipPoolError(Exception):
    """Base class for tip pool engine failures."""


class InvalidShiftError(TipPoolError):
    """Raised when an attendance row carries an unusable duration."""


class InvalidPeriodError(TipPoolError):
    """Raised when a distribution period violates its preconditions."""


class InvalidAdjustmentError(TipPoolError):
    """Raised when a manual share override cannot be applied."""


class DraftStateError(TipPoolError):
    """Raised when a draft is asked for a transition its status does not allow."""
