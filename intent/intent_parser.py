"""Context-aware intent parsing.

Pipeline per question:
1. dereference pronouns against the conversation
2. classify the dereferenced text with the base classifier
3. refine the base intent with conversation context
4. extract and reconcile entities
5. decide whether clarification is needed
6. expand into related sub-intents
7. score confidence
"""

from __future__ import annotations

import logging
import re
from typing import Any

from conversation.conversation_store import ConversationStore
from conversation.reference_resolver import ReferenceResolver
from conversation.types.entity import RESOLVED_FROM_QUESTION, Entity, EntityType
from conversation.types.intent import COMPATIBLE_ENTITY_TYPES, Intent, ParsedIntent
from conversation.types.turn import Conversation
from intent.classifier import (
    AGENT_NAME_PATTERN,
    DIMENSION_PATTERN,
    FUNCTION_NAME_PATTERN,
    BaseIntentClassifier,
    normalize_dimension,
)

logger = logging.getLogger("nlq.intent")

FOLLOW_UP_PATTERN = re.compile(
    r"\b(its|what about|how about|tell me more|what else|and also|more about)\b",
    re.IGNORECASE,
)

UNKNOWN_TYPE_QUESTION = (
    "Could you clarify what you're looking for? (agent, function, rule, example, or fact)"
)
INTENT_TYPE_OPTIONS = ["agent", "function", "rule", "example", "fact"]


class IntentParser:
    """Parses questions into typed intents using conversation context."""

    def __init__(
        self,
        store: ConversationStore,
        resolver: ReferenceResolver,
        classifier: BaseIntentClassifier,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.classifier = classifier

    async def parse_intent(self, question: str, conversation_id: str) -> ParsedIntent:
        """Parse ``question`` in the context of ``conversation_id``."""
        conversation = self.store.require(conversation_id)
        resolution = self.resolver.resolve(question, conversation)
        base = await self.classifier.classify(resolution.text)
        entities = self.extract_entities(resolution.text, conversation, explicit=base.entity)

        contextual = bool(
            resolution.changed
            or entities
            or base.filters.get("dimension")
            or FOLLOW_UP_PATTERN.search(question)
        )
        refined = self.refine_intent(base, conversation, contextual=contextual)

        parsed = ParsedIntent(
            **refined.model_dump(),
            original_question=question,
            resolved_question=resolution.text,
            entities=entities,
            explicit_entity=base.entity is not None,
            unresolved_references=resolution.unresolved,
        )
        return self.assess(parsed, conversation)

    def assess(self, parsed: ParsedIntent, conversation: Conversation) -> ParsedIntent:
        """Recompute clarification, expansion and confidence for ``parsed``."""
        needs, questions, options = self.check_clarification(parsed)
        parsed.requires_clarification = needs
        parsed.clarification_questions = questions
        parsed.clarification_options = options
        expanded = self.expand_query(parsed.as_intent())
        parsed.expanded_intents = expanded if len(expanded) > 1 else []
        parsed.confidence = self.calculate_confidence(parsed, conversation)
        logger.debug(
            "Parsed %r as %s/%s (confidence=%.2f, clarify=%s)",
            parsed.original_question,
            parsed.type,
            parsed.entity,
            parsed.confidence,
            parsed.requires_clarification,
        )
        return parsed

    def refine_intent(
        self, intent: Intent, conversation: Conversation, contextual: bool = True
    ) -> Intent:
        """Fill gaps in ``intent`` from conversation state without overriding it."""
        refined = intent.model_copy(deep=True)
        filters: dict[str, Any] = refined.filters

        if refined.type == "unknown" and contextual:
            previous = conversation.last_known_intent()
            if previous is not None:
                refined.type = previous.type
            if conversation.current_topic and not refined.entity and "dimension" not in filters:
                refined.entity = conversation.current_topic

        if conversation.current_topic and "topic" not in filters:
            filters["topic"] = conversation.current_topic

        if not refined.entity and refined.type != "unknown" and "dimension" not in filters:
            wanted = COMPATIBLE_ENTITY_TYPES[refined.type]
            recent = next(
                (e for e in self.store.recent_entities(conversation) if e.type in wanted),
                None,
            )
            if recent is not None:
                refined.entity = recent.name
                if refined.type in ("agent", "function"):
                    filters["name"] = recent.name
        return refined

    def extract_entities(
        self,
        question: str,
        conversation: Conversation,
        explicit: str | None = None,
    ) -> list[Entity]:
        """Entities mentioned in ``question``, reusing known conversation entities."""
        mentions: list[tuple[EntityType, str]] = []
        mentions += [("concept", normalize_dimension(m.group(1))) for m in DIMENSION_PATTERN.finditer(question)]
        mentions += [("agent", m.group(1)) for m in AGENT_NAME_PATTERN.finditer(question)]
        mentions += [("function", m.group(1)) for m in FUNCTION_NAME_PATTERN.finditer(question)]
        if explicit and explicit.lower() in question.lower():
            if not any(name.lower() == explicit.lower() for _, name in mentions):
                mentions.append(("agent" if explicit.lower().endswith("agent") else "function", explicit))

        entities: list[Entity] = []
        seen: set[str] = set()
        for entity_type, name in mentions:
            key = name.lower()
            if key in seen:
                continue
            seen.add(key)
            known = self.store.find_entity(conversation, name)
            if known is not None:
                entities.append(known.model_copy(deep=True))
            else:
                entities.append(Entity(type=entity_type, name=name, source=RESOLVED_FROM_QUESTION))
        return entities

    @staticmethod
    def check_clarification(parsed: ParsedIntent) -> tuple[bool, list[str], list[str]]:
        """Return (needs clarification, questions, candidate options)."""
        if parsed.type == "unknown":
            return True, [UNKNOWN_TYPE_QUESTION], list(INTENT_TYPE_OPTIONS)

        if parsed.explicit_entity and parsed.entity:
            if not any(e.matches_name(parsed.entity) for e in parsed.entities):
                return (
                    True,
                    [f'I couldn\'t find "{parsed.entity}". Could you provide more details?'],
                    [],
                )

        wanted = COMPATIBLE_ENTITY_TYPES[parsed.type]
        candidates = [e for e in parsed.entities if e.type in wanted]
        if len(candidates) > 1:
            numbered = "\n".join(f"{i}. {e.name}" for i, e in enumerate(candidates, start=1))
            return (
                True,
                [f"I found multiple matches. Which one did you mean?\n{numbered}"],
                [e.name for e in candidates],
            )
        return False, [], []

    @staticmethod
    def disambiguate(intent: Intent, options: list[Entity]) -> Intent:
        """Adopt the only option as the target; leave the intent as-is otherwise."""
        if len(options) != 1:
            return intent
        chosen = options[0]
        updated = intent.model_copy(deep=True)
        updated.entity = chosen.name
        if updated.type in ("agent", "function"):
            updated.filters["name"] = chosen.name
        return updated

    @staticmethod
    def expand_query(intent: Intent) -> list[Intent]:
        """Primary intent first, followed by related sub-intents."""
        expanded = [intent]
        filters = intent.recognized_filters()

        if intent.type == "agent" and intent.entity and filters.get("queryType") != "dependencies":
            expanded.append(
                Intent(
                    type="agent",
                    entity=intent.entity,
                    question=f"What are the dependencies of {intent.entity}?",
                    filters={**filters, "queryType": "dependencies"},
                )
            )
        elif intent.type == "function" and intent.entity:
            expanded.append(
                Intent(
                    type="example",
                    entity=intent.entity,
                    question=f"Show examples of {intent.entity}",
                    filters={"function": intent.entity},
                )
            )
        elif intent.type == "rule" and not filters.get("related"):
            expanded.append(
                Intent(
                    type="rule",
                    question="What are all related rules?",
                    filters={**filters, "related": True},
                )
            )
        return expanded

    def calculate_confidence(self, parsed: ParsedIntent, conversation: Conversation) -> float:
        confidence = 0.5
        if parsed.type != "unknown":
            confidence += 0.2
        if parsed.entity and any(e.matches_name(parsed.entity) for e in parsed.entities):
            confidence += 0.2
        if (
            parsed.entity
            and conversation.current_topic
            and parsed.entity.lower() == conversation.current_topic.lower()
        ):
            confidence += 0.1
        if parsed.requires_clarification:
            confidence -= 0.3
        return max(0.0, min(1.0, confidence))
