# Copyright (c) Microsoft. All rights reserved.

"""Tests for transcript emails."""

import pytest

from services.email_service import EmailService, TranscriptEmailRequest, render_transcript_email


@pytest.fixture
def email_request() -> TranscriptEmailRequest:
    return TranscriptEmailRequest.from_dict({
        "customerEmail": "jane@example.com",
        "customerName": "Jane <Doe>",
        "threadId": "19:t@thread.v2",
        "agentName": "Alice",
        "problemReported": "Printer offline",
        "solutionProvided": "Restarted spooler",
        "summary": "Resolved in one session",
        "resolutionDate": "2025-03-04",
    })


class TestRenderTranscriptEmail:
    def test_escapes_values(self, email_request: TranscriptEmailRequest) -> None:
        body = render_transcript_email(email_request)

        assert "Jane &lt;Doe&gt;" in body
        assert "Restarted spooler" in body
        assert body.startswith("<!DOCTYPE html>")

    def test_null_fields_render_empty(self) -> None:
        request = TranscriptEmailRequest.from_dict({
            "customerEmail": "jane@example.com",
            "customerName": "Jane",
            "threadId": "19:t@thread.v2",
            "agentName": None,
            "summary": None,
            "resolutionDate": None,
        })

        body = render_transcript_email(request)

        assert request.agent_name == ""
        assert "<span class='case-info-label'>Support Agent:</span> </div>" in body


class TestEmailService:
    async def test_send(self, graph_client, graph_recorder, email_request) -> None:
        service = EmailService(graph_client, sender="support@contoso.com")

        result = await service.send_transcript_email(email_request)

        assert result["success"] is True
        assert result["emailId"]
        assert graph_recorder.requests[0].url.path == "/v1.0/users/support@contoso.com/sendMail"
        message = graph_recorder.body()["message"]
        assert message["subject"] == "Support Case Summary - 19:t@thread.v2"
        assert message["toRecipients"] == [{"emailAddress": {"address": "jane@example.com"}}]

    async def test_send_failure(self, graph_client, graph_recorder, email_request) -> None:
        graph_recorder.respond(500, {"error": {"code": "x"}})
        service = EmailService(graph_client, sender="support@contoso.com")

        result = await service.send_transcript_email(email_request)

        assert result["success"] is False
        assert result["emailId"] == ""

    async def test_requires_recipient(self, graph_client, email_request) -> None:
        email_request.customer_email = ""

        with pytest.raises(ValueError, match="customerEmail is required"):
            await EmailService(graph_client).send_transcript_email(email_request)
