"""Application services."""

from .tips import TipPoolService, get_tip_pool_service, reset_tip_pool_state

__all__ = [
    "TipPoolService",
    "get_tip_pool_service",
    "reset_tip_pool_state",
]
