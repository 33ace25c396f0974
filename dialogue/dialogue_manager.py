"""Per-turn dialogue orchestration.

One call to ``process_turn`` takes a question through the turn state
machine: parse, detect follow-ups and topic switches, then either ask for
clarification or route, merge and answer. The turn is appended to the
store only after all of that has completed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from conversation.conversation_store import ConversationStore
from conversation.types import (
    AskResult,
    ClarificationQuestion,
    Conversation,
    Intent,
    ParsedIntent,
    Turn,
)
from conversation.types.intent import COMPATIBLE_ENTITY_TYPES
from core.event_bus import EventBus
from dialogue.response_generator import ResponseGenerator
from dialogue.turn_state import TurnState, TurnStateMachine
from intent.intent_parser import (
    FOLLOW_UP_PATTERN,
    INTENT_TYPE_OPTIONS,
    UNKNOWN_TYPE_QUESTION,
    IntentParser,
)
from routing.agent_router import AgentRouter

logger = logging.getLogger("nlq.dialogue")

# Checked in order; the first match decides how the follow-up is merged.
FOLLOW_UP_KINDS: list[tuple[str, re.Pattern[str]]] = [
    (
        "related_query",
        re.compile(
            r"\b(?:what are|tell me about|explain)\s+(?:the\s+|its\s+)?"
            r"(dependencies|capabilities|requirements|examples|parameters)\b",
            re.IGNORECASE,
        ),
    ),
    ("more_info", re.compile(r"\b(?:show|give|tell)\s+me\s+(?:more|another|additional)\b", re.IGNORECASE)),
    ("related_query", re.compile(r"\b(?:what|which|how)\s+(?:else|other|more)\b", re.IGNORECASE)),
    ("additional_query", re.compile(r"^\s*(?:and|also|what about|how about)\b", re.IGNORECASE)),
]

DEFAULT_MAX_SUGGESTIONS = 5


@dataclass
class TurnOutcome:
    """Everything produced by one processed turn."""

    result: AskResult
    turn: Turn
    parsed: ParsedIntent
    state: TurnState
    follow_up: bool = False
    context_switched: bool = False


class DialogueManager:
    """Runs the per-turn state machine over parser, router and store."""

    def __init__(
        self,
        store: ConversationStore,
        parser: IntentParser,
        router: AgentRouter,
        generator: ResponseGenerator,
        event_bus: EventBus | None = None,
        max_suggestions: int = DEFAULT_MAX_SUGGESTIONS,
    ) -> None:
        self.store = store
        self.parser = parser
        self.router = router
        self.generator = generator
        self.event_bus = event_bus
        self.max_suggestions = max_suggestions

    async def process_turn(self, question: str, conversation_id: str) -> TurnOutcome:
        """Process one question; callers serialize turns per conversation."""
        conversation = self.store.require(conversation_id)
        machine = TurnStateMachine(conversation_id, self.event_bus)

        parsed = await self.parser.parse_intent(question, conversation_id)
        machine.advance(TurnState.REFERENCE_RESOLVED)
        machine.advance(TurnState.INTENT_PARSED)

        follow_up = self.detect_follow_up(parsed, conversation)
        if follow_up:
            parsed = self.merge_follow_up(parsed, conversation)
        context_switched = self.detect_context_switch(parsed, conversation, follow_up)
        if context_switched:
            logger.info(
                "Context switch in %s: %s -> %s/%s",
                conversation_id,
                conversation.current_topic,
                parsed.type,
                parsed.entity,
            )

        if parsed.requires_clarification:
            machine.advance(TurnState.CLARIFICATION_NEEDED)
            return self._clarify(question, parsed, conversation, machine, follow_up, context_switched)

        intents = parsed.expanded_intents or [parsed.as_intent()]
        routes = self.router.route_intents(intents, conversation_id)
        machine.advance(TurnState.ROUTED)

        coordinated = await self.router.coordinate_response(routes, parsed.as_intent(), conversation_id)
        machine.advance(TurnState.RESPONSES_MERGED)

        suggestions = self.generate_suggestions(parsed, conversation)
        result = self.generator.generate(coordinated, parsed, conversation, suggestions)
        turn = Turn(
            user_input=question,
            intent=parsed.as_intent(),
            entities=parsed.entities,
            response=result.answer,
            confidence=result.confidence,
            agents_used=coordinated.agents_used,
            follow_up=follow_up,
            context_switched=context_switched,
        )
        self.store.append_turn(conversation_id, turn)
        machine.advance(TurnState.ANSWERED)
        return TurnOutcome(
            result=result,
            turn=turn,
            parsed=parsed,
            state=machine.state,
            follow_up=follow_up,
            context_switched=context_switched,
        )

    def _clarify(
        self,
        question: str,
        parsed: ParsedIntent,
        conversation: Conversation,
        machine: TurnStateMachine,
        follow_up: bool,
        context_switched: bool,
    ) -> TurnOutcome:
        clarification = self.ask_clarification(parsed)
        answer = "\n\n".join(parsed.clarification_questions) or clarification.question
        logger.info("Asking for clarification in %s: %s", conversation.id, clarification.type)

        turn = Turn(
            user_input=question,
            intent=parsed.as_intent(),
            entities=parsed.entities,
            response=answer,
            confidence=parsed.confidence,
            clarification=True,
            follow_up=follow_up,
            context_switched=context_switched,
        )
        self.store.append_turn(conversation.id, turn)
        machine.advance(TurnState.ASKED_CLARIFICATION)

        result = AskResult(
            answer=answer,
            related_entities=list(parsed.entities),
            confidence=parsed.confidence,
            conversation_id=conversation.id,
            requires_clarification=True,
            clarification=clarification,
        )
        return TurnOutcome(
            result=result,
            turn=turn,
            parsed=parsed,
            state=machine.state,
            follow_up=follow_up,
            context_switched=context_switched,
        )

    # ------------------------------------------------------------------
    # Follow-ups and topic switches
    # ------------------------------------------------------------------

    @staticmethod
    def follow_up_kind(question: str) -> tuple[str, str | None] | None:
        """Return (kind, query type) for a follow-up phrasing, or None."""
        for kind, pattern in FOLLOW_UP_KINDS:
            match = pattern.search(question)
            if match:
                query_type = match.group(1).lower() if match.groups() else None
                return kind, query_type
        return None

    def detect_follow_up(self, parsed: ParsedIntent, conversation: Conversation) -> bool:
        previous = conversation.current_intent
        if previous is None:
            return False
        texts = (parsed.original_question, parsed.resolved_question)
        if not any(FOLLOW_UP_PATTERN.search(text) or self.follow_up_kind(text) for text in texts):
            return False
        # Naming a different entity outright starts a new topic.
        if parsed.explicit_entity and parsed.entity and previous.entity:
            return parsed.entity.lower() == previous.entity.lower()
        return True

    def merge_follow_up(self, parsed: ParsedIntent, conversation: Conversation) -> ParsedIntent:
        """Fill the follow-up's missing fields from the previous intent."""
        previous = conversation.current_intent
        if previous is None:
            return parsed
        merged = parsed.model_copy(deep=True)
        if merged.type == "unknown":
            merged.type = previous.type
        if not merged.entity and "dimension" not in merged.filters:
            merged.entity = previous.entity

        kind = self.follow_up_kind(parsed.original_question)
        filters = dict(merged.filters)
        for key, value in previous.filters.items():
            filters.setdefault(key, value)
        if kind is not None:
            name, query_type = kind
            if name == "related_query" and query_type:
                filters["queryType"] = query_type
            elif name == "more_info":
                filters.pop("queryType", None)
        if merged.entity and merged.type in ("agent", "function"):
            filters["name"] = merged.entity
        merged.filters = filters
        return self.parser.assess(merged, conversation)

    @staticmethod
    def detect_context_switch(
        parsed: ParsedIntent, conversation: Conversation, follow_up: bool
    ) -> bool:
        previous = conversation.current_intent
        if previous is None or follow_up:
            return False
        if parsed.type != previous.type:
            return True
        return (parsed.entity or "").lower() != (previous.entity or "").lower()

    # ------------------------------------------------------------------
    # Clarification and suggestions
    # ------------------------------------------------------------------

    @staticmethod
    def ask_clarification(intent: Intent) -> ClarificationQuestion:
        if intent.type == "unknown":
            return ClarificationQuestion(
                question=UNKNOWN_TYPE_QUESTION,
                options=list(INTENT_TYPE_OPTIONS),
                type="disambiguation",
            )
        if isinstance(intent, ParsedIntent) and intent.clarification_options:
            return ClarificationQuestion(
                question=intent.clarification_questions[0],
                options=list(intent.clarification_options),
                type="disambiguation",
            )
        if not intent.entity:
            return ClarificationQuestion(
                question=f"What {intent.type} are you interested in?",
                type="missing_info",
            )
        if isinstance(intent, ParsedIntent) and intent.clarification_questions:
            return ClarificationQuestion(question=intent.clarification_questions[0], type="missing_info")
        return ClarificationQuestion(question=f'Did you mean "{intent.entity}"?', type="confirmation")

    def generate_suggestions(self, parsed: ParsedIntent, conversation: Conversation) -> list[str]:
        suggestions = [sub.question for sub in parsed.expanded_intents[1:]]
        entity = parsed.entity
        dimension = parsed.filters.get("dimension")

        if parsed.type == "agent":
            if entity:
                suggestions += [
                    f"What are the capabilities of {entity}?",
                    f"What rules apply to {entity}?",
                ]
            elif dimension:
                suggestions.append(f"What rules apply to agents in {dimension}?")
        elif parsed.type in ("function", "example") and entity:
            suggestions += [
                f"What are the parameters of {entity}?",
                f"What agents use {entity}?",
            ]
        elif parsed.type == "rule":
            suggestions += ["What are all the MUST requirements?", "What are all the SHOULD requirements?"]
        elif parsed.type == "fact":
            suggestions.append("What are related facts?")

        wanted = COMPATIBLE_ENTITY_TYPES[parsed.type]
        for sibling in self.store.recent_entities(conversation):
            if sibling.type in wanted and not (entity and sibling.matches_name(entity)):
                suggestions.append(f"Tell me about {sibling.name}")

        topic = conversation.current_topic
        if topic and not (entity and topic.lower() == entity.lower()):
            suggestions.append(f"What else can you tell me about {topic}?")

        unique = list(dict.fromkeys(suggestions))
        return unique[: self.max_suggestions]
