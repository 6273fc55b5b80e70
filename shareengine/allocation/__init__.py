"""Share allocation and participant lifecycle package."""

from shareengine.allocation.allocator import (
    AllocationError,
    AllocationMode,
    BaseAllocation,
    ShareSplit,
    allocate_base_shares,
    detect_mode,
    effective_shares,
    recompute_effective_shares,
)
from shareengine.allocation.state_machine import ParticipantStateMachine

__all__ = [
    "AllocationError",
    "AllocationMode",
    "BaseAllocation",
    "ParticipantStateMachine",
    "ShareSplit",
    "allocate_base_shares",
    "detect_mode",
    "effective_shares",
    "recompute_effective_shares",
]
