"""
Prompt templates for autonomous turns and knowledge injection.

All templates are plain str.format templates; builders below are the
only place that fills them in.
"""

from __future__ import annotations

from typing import Sequence

from adapters.retrieval.base import Topic
from invariants import IDLE_TALK_RELATED_PREVIEW_CHARS


NEW_TOPIC_PROMPT_V1: str = """
There are no new comments, so talk freely to your listeners about the following topic:

Topic: {topic}

Share your thoughts or memories about this topic in about 200 characters.
Open with a short lead-in that suits starting a casual chat.
Do not greet the listeners.
""".strip()


CONTINUATION_PROMPT_V1: str = """
Last time you said:
"{last_response}"
{related}
Dig deeper into this topic and talk about it in about 200 characters.
Keep the natural flow of the conversation and add related memories or thoughts.
Do not open with phrases like "continuing from before"; go straight into the content.
""".strip()


RELATED_KNOWLEDGE_HEADER: str = "[Related things you said before]"

KNOWLEDGE_SECTION_HEADER: str = "## Related information (Knowledge Database)"


def build_new_topic_prompt(topic: Topic) -> str:
    return NEW_TOPIC_PROMPT_V1.format(topic=topic.content)


def build_continuation_prompt(last_response: str, related: Sequence[Topic]) -> str:
    return CONTINUATION_PROMPT_V1.format(
        last_response=last_response,
        related=format_related_block(related),
    )


def format_related_block(related: Sequence[Topic]) -> str:
    """
    Bulleted block of related past statements.

    Empty string when there is nothing to show; each item is cut to
    IDLE_TALK_RELATED_PREVIEW_CHARS with an ellipsis.
    """
    if not related:
        return ""

    lines = []
    for item in related:
        preview = item.content[:IDLE_TALK_RELATED_PREVIEW_CHARS]
        if len(item.content) > IDLE_TALK_RELATED_PREVIEW_CHARS:
            preview += "..."
        lines.append(f"- {preview}")

    return "\n" + RELATED_KNOWLEDGE_HEADER + "\n" + "\n".join(lines) + "\n"


def format_knowledge_for_prompt(results: Sequence[Topic]) -> str:
    """Numbered knowledge block appended to the system prompt."""
    if not results:
        return ""

    lines = []
    for index, result in enumerate(results, start=1):
        similarity = (result.similarity or 0.0) * 100
        lines.append(f"{index}. [{similarity:.1f}% relevant] {result.content}")

    return f"\n\n{KNOWLEDGE_SECTION_HEADER}\n\n" + "\n".join(lines) + "\n"
