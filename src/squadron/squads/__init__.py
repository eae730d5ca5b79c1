"""Squad subsystem — registry, state machine, formation, targeting, health."""
from .engine import SquadEngine, TickReport
from .formation import QUAD_OFFSETS, desired_position, formation_offset, formation_positions
from .orders import MoveIntent, Order, OrderType
from .registry import SquadRegistry, UnknownSquadError
from .safe_mode import SafeModeLedger
from .squad import Objective, RetreatReason, Squad, SquadState, SquadStatus
from .state_machine import HandlerTableError, SquadStateMachine, TickContext
from .targeting import TargetPriority, TargetSelector, pick_target

__all__ = [
    "HandlerTableError",
    "MoveIntent",
    "Objective",
    "Order",
    "OrderType",
    "QUAD_OFFSETS",
    "RetreatReason",
    "SafeModeLedger",
    "Squad",
    "SquadEngine",
    "SquadRegistry",
    "SquadState",
    "SquadStateMachine",
    "SquadStatus",
    "TargetPriority",
    "TargetSelector",
    "TickContext",
    "TickReport",
    "UnknownSquadError",
    "desired_position",
    "formation_offset",
    "formation_positions",
    "pick_target",
]
