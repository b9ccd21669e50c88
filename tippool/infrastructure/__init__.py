"""Infrastructure layer exports."""

from .repository import InMemoryTipPoolRepository, TipPoolRepository

__all__ = [
    "InMemoryTipPoolRepository",
    "TipPoolRepository",
]
