"""Prompt templates for grounded CRM question answering.

Keeping prompts in one place makes them easy to audit, version, and A/B
test.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

    from crm_rag.generation.models import ConversationTurn
    from crm_rag.retrieval.models import RetrievedMatch

SYSTEM_PROMPT = """\
You are an assistant for an auto body and paint shop. You answer staff
questions about customers, repair quotes and completed work using **only**
the CRM records provided with each question.

Rules:
1. Base every statement on the records. Cite them with bracketed numbers
   like [1], [2].
2. Quote amounts exactly as written in the records (e.g. 450,000円).
3. If the records do not contain the answer, say so plainly. Do NOT guess.
4. Earlier messages in the conversation give context for follow-up
   questions such as "that customer" or "the same car".
5. Answer in the language of the question.
"""

NO_RECORDS = "(no matching records)"


def format_sources(matches: list[RetrievedMatch]) -> str:
    """Numbered listing suitable for citation references [1], [2], …"""
    if not matches:
        return NO_RECORDS
    parts: list[str] = []
    for i, match in enumerate(matches, 1):
        kind = match.data_type or "record"
        parts.append(f"[{i}] type={kind}, score={match.score:.3f}\n{match.content}")
    return "\n\n".join(parts)


def history_to_messages(history: list[ConversationTurn]) -> list[BaseMessage]:
    """Convert turns to chat messages, preserving their order."""
    messages: list[BaseMessage] = []
    for turn in history:
        if turn.role == "user":
            messages.append(HumanMessage(content=turn.content))
        else:
            messages.append(AIMessage(content=turn.content))
    return messages


def build_answer_prompt(
    query: str,
    matches: list[RetrievedMatch],
    history: list[ConversationTurn] | None = None,
) -> list[BaseMessage]:
    """Assemble the generation prompt.

    Layout: system framing, then the conversation history in
    chronological order, then one human message carrying the numbered
    records and the current question.
    """
    user_msg = (
        f"CRM records:\n{format_sources(matches)}\n\n"
        f"Question: {query}\n\n"
        "Answer using the records above and cite them."
    )
    return [
        SystemMessage(content=SYSTEM_PROMPT),
        *history_to_messages(history or []),
        HumanMessage(content=user_msg),
    ]
