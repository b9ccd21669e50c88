"""Domain layer definitions."""

from .drafts import DistributionDraft, DraftStatus

__all__ = [
    "DistributionDraft",
    "DraftStatus",
]
