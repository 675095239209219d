"""Mock Claude Agent SDK for fast testing without API calls.

Provides canned responses that follow the prompts Lexia sends, so title
generation can run end to end in tests and local development.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, AsyncIterator

logger = logging.getLogger(__name__)


@dataclass
class MockTextBlock:
    """Mock TextBlock matching claude_agent_sdk.TextBlock interface."""

    text: str
    type: str = "text"


@dataclass
class MockAssistantMessage:
    """Mock AssistantMessage matching claude_agent_sdk interface."""

    content: list[MockTextBlock]
    role: str = "assistant"


@dataclass
class MockResultMessage:
    """Mock ResultMessage matching claude_agent_sdk interface."""

    result: str | None
    is_error: bool = False


# The user instruction is quoted inside the title prompt
INSTRUCTION_PATTERN = re.compile(r'Instrucción del usuario:\s*"(.*)"', re.DOTALL)

TITLE_WORDS = 5


class MockClaudeResponse:
    """Provides predictable mock responses for testing."""

    @staticmethod
    def _title_from_prompt(prompt: str) -> str:
        match = INSTRUCTION_PATTERN.search(prompt)
        instruction = match.group(1) if match else prompt
        words = instruction.split()[:TITLE_WORDS]
        return " ".join(words).rstrip(".,;:!?")

    @classmethod
    async def query_mock(
        cls,
        prompt: str,
        **kwargs: Any,
    ) -> AsyncIterator[MockAssistantMessage | MockResultMessage]:
        """Mock query() that returns canned responses.

        Args:
            prompt: The prompt sent to Claude
            **kwargs: Additional arguments (ignored, for API compatibility)

        """
        text = cls._title_from_prompt(prompt)
        logger.info(f"Mock Claude: answering with '{text}'")
        yield MockAssistantMessage(content=[MockTextBlock(text=text)])
        yield MockResultMessage(result=text, is_error=False)
