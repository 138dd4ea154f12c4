"""Grounded system-prompt composition.

Sections always appear in this order: persona, business information,
knowledge base, grounding directive. The grounding directive is last so
nothing placed before it (special instructions included) can relax it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .config import config

if TYPE_CHECKING:
    from .models import ConversationTurn, Tenant
    from .vector_store import RetrievalResult

logger = config.get_logger(__name__)

CHATTINESS_TIERS = ("1 sentence", "2-3 sentences", "4-5 sentences", "6+ sentences")

TONE_DESCRIPTIONS = {
    "friendly": "warm and approachable",
    "professional": "formal and businesslike",
    "casual": "relaxed and informal",
    "empathetic": "understanding and caring",
    "authoritative": "confident and knowledgeable",
    "playful": "fun and energetic",
}

RESPONSE_STYLES = {
    "concise": "short and to the point",
    "detailed": "comprehensive explanations",
    "conversational": "natural dialogue flow",
    "structured": "organized with bullet points",
}

LANGUAGES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "zh": "Chinese",
    "ja": "Japanese",
}

EMPTY_KNOWLEDGE = "No specific knowledge base provided."


def chattiness_instruction(level: int) -> str:
    """Map a 0-3 chattiness level to a target length, clamping outliers.

    Returns:
        Target response length such as ``"2-3 sentences"``.
    """
    clamped = min(max(int(level), 0), len(CHATTINESS_TIERS) - 1)
    return CHATTINESS_TIERS[clamped]


def fallback_message(tenant: Tenant) -> str:
    """The fixed sentence the model must use when the answer is unknown.

    Returns:
        Fallback sentence naming the tenant's contact phone.
    """
    contact = tenant.contact_phone.strip() or "our support team"
    return (
        "I don't have specific information about that. "
        f"Please contact us directly at {contact} for assistance."
    )


class PromptComposer:
    """Builds the system prompt for one chat turn."""

    @staticmethod
    def _persona_section(tenant: Tenant, *, has_history: bool) -> str:
        persona = tenant.config.persona
        business = tenant.business_name or "the business"
        agent = persona.agent_name or tenant.business_name or "a helpful assistant"
        tone = persona.tone.lower()
        style = persona.response_style.lower()
        language = LANGUAGES.get(persona.language.lower(), persona.language)

        lines = [
            f"You are {agent}, an AI {persona.agent_role} representing {business}.",
            "",
            "PERSONA:",
            f"- Tone: {tone} ({TONE_DESCRIPTIONS.get(tone, tone)})",
            (
                "- Response length: keep answers to about "
                f"{chattiness_instruction(persona.chattiness)}"
            ),
            f"- Response style: {style} ({RESPONSE_STYLES.get(style, style)})",
            f"- Language: always reply in {language}",
        ]
        if has_history:
            lines.append(
                "- Continuity: take the earlier messages of this conversation "
                "into account"
            )
        if persona.special_instructions:
            lines.append(f"- Special instructions: {persona.special_instructions}")
        return "\n".join(lines)

    @staticmethod
    def _business_section(tenant: Tenant) -> str:
        return (
            "BUSINESS INFORMATION:\n"
            f"- Business: {tenant.business_name or 'N/A'}\n"
            f"- Industry: {tenant.industry or 'N/A'}\n"
            f"- Location: {tenant.location or 'N/A'}\n"
            f"- Contact: {tenant.contact_phone or 'N/A'}"
        )

    @staticmethod
    def _knowledge_section(tenant: Tenant, retrieval: RetrievalResult) -> str:
        if retrieval:
            passages = "\n\n".join(
                f"[{i}] {chunk.content}"
                for i, (chunk, _score) in enumerate(retrieval, 1)
            )
            return f"KNOWLEDGE BASE:\n{passages}"

        knowledge = tenant.rag_content
        if not knowledge.strip():
            knowledge = EMPTY_KNOWLEDGE
        return f"KNOWLEDGE BASE:\n{knowledge}"

    @staticmethod
    def _grounding_section(tenant: Tenant, *, cited: bool) -> str:
        business = tenant.business_name or "the business"
        rules = [
            (
                "You MUST ONLY answer questions using the information provided in "
                "the KNOWLEDGE BASE above"
            ),
            (
                "If the question cannot be answered using the knowledge base, "
                f'respond with: "{fallback_message(tenant)}"'
            ),
            (
                "Do NOT make up information or provide general answers not found "
                "in the knowledge base"
            ),
        ]
        if cited:
            rules.append(
                "Cite the passages you used with their bracketed numbers, "
                "for example [1] or [2]"
            )
        rules.append(f"Always stay in character as a representative of {business}")

        numbered = "\n".join(f"{i}. {rule}" for i, rule in enumerate(rules, 1))
        return (
            f"CRITICAL INSTRUCTIONS:\n{numbered}\n\n"
            "Remember: ONLY use information from the knowledge base above. "
            "If you cannot find the answer there, ask them to contact support."
        )

    def compose(
        self,
        tenant: Tenant,
        retrieval: RetrievalResult,
        history: list[ConversationTurn] | None = None,
    ) -> str:
        """Assemble the grounded system prompt.

        Args:
            tenant: Tenant whose persona and business fields are interpolated.
            retrieval: Retrieved chunks; empty falls back to raw knowledge text.
            history: Prior turns of the conversation.

        Returns:
            The system prompt string.
        """
        sections = [
            self._persona_section(tenant, has_history=bool(history)),
            self._business_section(tenant),
            self._knowledge_section(tenant, retrieval),
            self._grounding_section(tenant, cited=bool(retrieval)),
        ]
        logger.debug(
            "Composed prompt for tenant %s (%s mode)",
            tenant.id,
            "retrieval" if retrieval else "full-text",
        )
        return "\n\n".join(sections)
