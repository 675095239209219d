"""Conversation titles generated from the first user message."""

import logging

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ResultMessage,
    TextBlock,
    query,
)

from lexia_models import Message, MessageRole
from lexia.config import settings
from lexia.services.claude_mock import (
    MockAssistantMessage,
    MockClaudeResponse,
    MockResultMessage,
    MockTextBlock,
)

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 50
MAX_INSTRUCTION_LENGTH = 400


def first_user_text(messages: list[Message]) -> str:
    """Text of the first user message in the batch, or ''."""
    for message in messages:
        if message.role == MessageRole.USER:
            return message.content
    return ""


def clean_title(text: str) -> str:
    """Strip surrounding quotes and cap the length."""
    return text.strip().strip("\"'").strip()[:MAX_TITLE_LENGTH]


async def generate_conversation_title(user_message: str) -> str | None:
    """Ask Claude for a 4-6 word title. Returns None if generation fails."""
    if not user_message.strip():
        return None

    truncated = user_message.strip()[:MAX_INSTRUCTION_LENGTH]
    prompt = f"""Genera un título muy corto (4-6 palabras) que describa la instrucción o consulta del usuario. Sin comillas ni puntuación final. Solo el título.

Instrucción del usuario:
"{truncated}"

Título:"""

    query_fn = MockClaudeResponse.query_mock if settings.use_mock_claude else query

    try:
        options = ClaudeAgentOptions(model=settings.claude_model)

        collected_text: list[str] = []
        async for msg in query_fn(prompt=prompt, options=options):
            if isinstance(msg, (AssistantMessage, MockAssistantMessage)):
                for block in msg.content:
                    if isinstance(block, (TextBlock, MockTextBlock)):
                        collected_text.append(block.text)
            elif isinstance(msg, (ResultMessage, MockResultMessage)):
                if msg.is_error:
                    logger.error(f"Title generation error: {msg.result}")
                    return None

        title = clean_title("".join(collected_text))
        return title or None
    except Exception as e:
        logger.error(f"Failed to generate conversation title: {e}")
        return None
