from enum import Enum, auto


class DispatchState(Enum):
    AWAITING_MODEL = auto()
    MODEL_RESPONDED = auto()
    EXECUTING_TOOLS = auto()
    DONE = auto()
    FAILED = auto()


TERMINAL_STATES = frozenset({DispatchState.DONE, DispatchState.FAILED})

TRANSITIONS: dict[DispatchState, set[DispatchState]] = {
    DispatchState.AWAITING_MODEL: {DispatchState.MODEL_RESPONDED, DispatchState.FAILED},
    DispatchState.MODEL_RESPONDED: {
        DispatchState.EXECUTING_TOOLS,
        DispatchState.DONE,
        DispatchState.FAILED,
    },
    DispatchState.EXECUTING_TOOLS: {DispatchState.AWAITING_MODEL, DispatchState.FAILED},
    DispatchState.DONE: set(),
    DispatchState.FAILED: set(),
}


def validate_transition(current: DispatchState, target: DispatchState) -> None:
    """Raise ValueError if the transition is not allowed."""
    allowed = TRANSITIONS.get(current, set())
    if target not in allowed:
        raise ValueError(
            f"Invalid transition: {current.name} -> {target.name}. "
            f"Allowed: {sorted(s.name for s in allowed)}"
        )
