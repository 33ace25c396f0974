"""Per-turn processing states and the legal transitions between them."""

from __future__ import annotations

import logging
from enum import Enum

from conversation.errors import InvalidTransitionError
from core.event_bus import TURN_STATE, EventBus

logger = logging.getLogger("nlq.turn")


class TurnState(str, Enum):
    RECEIVED = "received"
    REFERENCE_RESOLVED = "reference_resolved"
    INTENT_PARSED = "intent_parsed"
    CLARIFICATION_NEEDED = "clarification_needed"
    ASKED_CLARIFICATION = "asked_clarification"
    ROUTED = "routed"
    RESPONSES_MERGED = "responses_merged"
    ANSWERED = "answered"


TRANSITIONS: dict[TurnState, frozenset[TurnState]] = {
    TurnState.RECEIVED: frozenset({TurnState.REFERENCE_RESOLVED}),
    TurnState.REFERENCE_RESOLVED: frozenset({TurnState.INTENT_PARSED}),
    TurnState.INTENT_PARSED: frozenset({TurnState.CLARIFICATION_NEEDED, TurnState.ROUTED}),
    TurnState.CLARIFICATION_NEEDED: frozenset({TurnState.ASKED_CLARIFICATION}),
    TurnState.ROUTED: frozenset({TurnState.RESPONSES_MERGED}),
    TurnState.RESPONSES_MERGED: frozenset({TurnState.ANSWERED}),
    TurnState.ASKED_CLARIFICATION: frozenset(),
    TurnState.ANSWERED: frozenset(),
}

TERMINAL_STATES = frozenset({TurnState.ASKED_CLARIFICATION, TurnState.ANSWERED})


class TurnStateMachine:
    """Tracks one turn; never revisits an earlier state."""

    def __init__(self, conversation_id: str, event_bus: EventBus | None = None) -> None:
        self.conversation_id = conversation_id
        self.event_bus = event_bus
        self.state = TurnState.RECEIVED
        self.history: list[TurnState] = [TurnState.RECEIVED]

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, target: TurnState) -> TurnState:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Illegal turn transition {self.state.value} -> {target.value}"
            )
        previous, self.state = self.state, target
        self.history.append(target)
        logger.debug("Turn in %s: %s -> %s", self.conversation_id, previous.value, target.value)
        if self.event_bus is not None:
            self.event_bus.emit(
                TURN_STATE,
                {
                    "conversation_id": self.conversation_id,
                    "from": previous.value,
                    "to": target.value,
                },
            )
        return target
