# Copyright (c) Microsoft. All rights reserved.

"""
AI-generated support case transcripts.

The thread's messages are rendered as "[timestamp] sender: content" lines
and summarized by an Agent Framework agent that must answer with a JSON
object. Missing fields are filled with sensible defaults.
"""

import json
import logging
from typing import Any

from services.ai_client import create_chat_client
from services.chat_service import ChatService
from services.models import ChatTranscript, utc_now
from services.observability import SupportChatAttr, dependency_span
from services.text import mask_for_logging, require

logger = logging.getLogger(__name__)

TRANSCRIPT_INSTRUCTIONS = (
    "You are an assistant that produces concise customer support transcripts. "
    "Given the following conversation between a support agent and a customer, "
    "produce a strict JSON object with the properties: problemReported (string), "
    "solutionProvided (string), summary (string - brief key points and follow-up actions), "
    "resolutionDate (string in ISO 8601 or friendly date), and fullTranscript (string). "
    "Keep it simple and customer-focused. Do not include any additional commentary or formatting."
)

DEFAULT_SUMMARY = "No additional follow-up actions required"


class TranscriptNotAvailableError(Exception):
    """The thread has no messages to summarize."""


def format_conversation(messages: list[dict]) -> str:
    return "\n".join(
        f"[{m.get('sentAtUtc', '')}] {m.get('senderDisplayName', '')}: {m.get('content', '')}"
        for m in messages
    )


def extract_json_object(text: str) -> dict:
    """
    Parse the JSON object embedded in a model reply.

    Tolerates prose or code fences around the object by taking the text
    between the first "{" and the last "}".

    Raises:
        ValueError: If no JSON object can be parsed.
    """
    payload = (text or "").strip()
    start = payload.find("{")
    end = payload.rfind("}")
    if start >= 0 and end > start:
        payload = payload[start : end + 1]
    data = json.loads(payload)
    if not isinstance(data, dict):
        raise ValueError("Transcript response is not a JSON object")
    return data


class TranscriptService:
    """Summarizes chat threads into support case transcripts."""

    def __init__(self, chat_service: ChatService, agent: Any | None = None):
        """
        Args:
            chat_service: Source of thread messages.
            agent: Agent exposing ``async run(prompt)``; created from Azure
                OpenAI settings on first use when omitted.
        """
        self.chat_service = chat_service
        self._agent = agent

    @property
    def agent(self):
        if self._agent is None:
            self._agent = create_chat_client().as_agent(
                name="TranscriptAgent",
                instructions=TRANSCRIPT_INSTRUCTIONS,
            )
        return self._agent

    async def generate_transcript(
        self,
        thread_id: str,
        customer_name: str | None = None,
        agent_name: str | None = None,
    ) -> ChatTranscript:
        """
        Generate a transcript for a chat thread.

        Raises:
            ValueError: If thread_id is blank or the model reply is not valid JSON.
            TranscriptNotAvailableError: If the thread has no text messages.
        """
        thread_id = require(thread_id, "threadId")
        messages = await self.chat_service.get_thread_messages(thread_id)
        if not messages:
            raise TranscriptNotAvailableError(f"No messages found for thread {thread_id}")

        conversation = format_conversation(messages)
        lines = [f"Thread Id: {thread_id}"]
        if customer_name:
            lines.append(f"Customer Name: {customer_name}")
        if agent_name:
            lines.append(f"Agent Name: {agent_name}")
        lines.append("Conversation:")
        lines.append(conversation)

        async with dependency_span(
            "openai", "generate_transcript", **{SupportChatAttr.THREAD_ID: thread_id}
        ):
            response = await self.agent.run("\n".join(lines))

        try:
            data = extract_json_object(response.text)
        except ValueError as e:
            logger.error(f"Failed to parse transcript for {mask_for_logging(thread_id)}: {e}")
            raise

        transcript = ChatTranscript(
            thread_id=thread_id,
            customer_name=customer_name or data.get("customerName") or "",
            agent_name=agent_name or data.get("agentName") or "",
            problem_reported=data.get("problemReported") or "",
            solution_provided=data.get("solutionProvided") or "",
            summary=data.get("summary") or DEFAULT_SUMMARY,
            resolution_date=data.get("resolutionDate") or utc_now().date().isoformat(),
            full_transcript=data.get("fullTranscript") or conversation,
        )
        logger.info(f"Generated transcript for thread {mask_for_logging(thread_id)}")
        return transcript
