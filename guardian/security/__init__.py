"""
Security module.

Provides the intrusion arming state machine and its evidence records.
"""

from .types import ArmingState, IntrusionFrame, create_intrusion_frame
from .arming import ArmingStateMachine

__all__ = [
    "ArmingState",
    "IntrusionFrame",
    "create_intrusion_frame",
    "ArmingStateMachine",
]
