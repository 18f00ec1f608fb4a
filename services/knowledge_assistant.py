# Copyright (c) Microsoft. All rights reserved.

"""IT support self-service answers for customers waiting on an agent."""

import logging
import re
from typing import Any

from services.ai_client import create_chat_client
from services.models import to_iso, utc_now
from services.observability import dependency_span

logger = logging.getLogger(__name__)

ASSISTANT_INSTRUCTIONS = (
    "You are an IT support assistant for Microsoft 365 users. Answer the user's "
    "question with short, practical troubleshooting steps. If the question needs "
    "account-specific access or cannot be solved with general guidance, say that a "
    "support agent will follow up. Answer in plain text or simple markdown."
)

CONFIDENCE_SCORE = 0.9

_FENCED_BLOCK = re.compile(r"```[a-zA-Z]*\s*\n?(.*?)\n?```", re.DOTALL)


def clean_markdown_response(text: str) -> str:
    """Unwrap fenced code blocks (```markdown ... ```) and trim the reply."""
    if not text or not text.strip():
        return text
    return _FENCED_BLOCK.sub(r"\1", text).strip()


class KnowledgeAssistant:
    """Answers free-form support questions with an Agent Framework agent."""

    def __init__(self, agent: Any | None = None):
        self._agent = agent

    @property
    def agent(self):
        if self._agent is None:
            self._agent = create_chat_client().as_agent(
                name="SupportKnowledgeAgent",
                instructions=ASSISTANT_INSTRUCTIONS,
            )
        return self._agent

    async def answer(self, query: str | None) -> dict:
        """
        Answer a support question.

        Returns:
            {"response", "success", "errorMessage", "confidenceScore", "timestamp", "metadata"}.
        """
        if not query or not query.strip():
            return self._error("Query cannot be empty")

        preview = query if len(query) <= 100 else query[:100] + "..."
        logger.info(f"Processing support query: {preview}")

        try:
            async with dependency_span("openai", "answer_query"):
                response = await self.agent.run(query)
        except Exception as e:
            logger.error(f"Error processing support query: {e}")
            return self._error(str(e))

        return {
            "response": clean_markdown_response(response.text),
            "success": True,
            "errorMessage": None,
            "confidenceScore": CONFIDENCE_SCORE,
            "timestamp": to_iso(utc_now()),
            "metadata": {"agentName": getattr(self.agent, "name", None)},
        }

    @staticmethod
    def _error(message: str) -> dict:
        return {
            "response": "",
            "success": False,
            "errorMessage": message,
            "confidenceScore": 0.0,
            "timestamp": to_iso(utc_now()),
            "metadata": {},
        }
