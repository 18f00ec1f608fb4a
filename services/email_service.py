# Copyright (c) Microsoft. All rights reserved.

"""Support case summary emails sent through Microsoft Graph sendMail."""

import html
import logging
import os
import uuid
from dataclasses import dataclass

from services.graph_client import GraphClient
from services.text import require

logger = logging.getLogger(__name__)

_EMAIL_STYLE = """
body { font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; line-height: 1.6; color: #333; max-width: 800px; margin: 0 auto; padding: 20px; background-color: #f5f5f5; }
.container { background-color: #ffffff; border-radius: 12px; overflow: hidden; }
.header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 30px; text-align: center; }
.content { padding: 30px; }
.case-info { background-color: #f8f9fa; padding: 20px; border-radius: 8px; margin-bottom: 30px; }
.case-info-label { font-weight: 600; color: #495057; }
.section { margin-bottom: 25px; padding: 25px; border-radius: 8px; border: 1px solid #e9ecef; }
.section-title { color: #495057; font-weight: 600; font-size: 18px; margin-bottom: 15px; }
.problem { border-left: 5px solid #dc3545; }
.solution { border-left: 5px solid #28a745; }
.summary { border-left: 5px solid #007bff; }
.footer { background-color: #f8f9fa; padding: 25px; text-align: center; color: #6c757d; }
"""


def _text(value) -> str:
    return "" if value is None else str(value)


@dataclass
class TranscriptEmailRequest:
    customer_email: str
    customer_name: str
    thread_id: str
    agent_name: str = ""
    problem_reported: str = ""
    solution_provided: str = ""
    summary: str = ""
    resolution_date: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "TranscriptEmailRequest":
        return cls(
            customer_email=_text(data.get("customerEmail")),
            customer_name=_text(data.get("customerName")),
            thread_id=_text(data.get("threadId")),
            agent_name=_text(data.get("agentName")),
            problem_reported=_text(data.get("problemReported")),
            solution_provided=_text(data.get("solutionProvided")),
            summary=_text(data.get("summary")),
            resolution_date=_text(data.get("resolutionDate")),
        )


def _section(css_class: str, icon: str, title: str, content: str) -> str:
    return (
        f"<div class='section {css_class}'>"
        f"<div class='section-title'><span class='icon'>{icon}</span> {title}</div>"
        f"<div class='section-content'>{html.escape(content)}</div>"
        "</div>"
    )


def render_transcript_email(request: TranscriptEmailRequest) -> str:
    """Render the case summary as a standalone HTML document."""
    info = [
        ("Customer", request.customer_name),
        ("Case ID", request.thread_id),
        ("Resolution Date", request.resolution_date),
        ("Support Agent", request.agent_name),
    ]
    info_html = "".join(
        f"<div class='case-info-item'><span class='case-info-label'>{label}:</span> {html.escape(value)}</div>"
        for label, value in info
    )
    return (
        "<!DOCTYPE html><html><head><meta charset='utf-8'>"
        f"<style>{_EMAIL_STYLE}</style></head><body>"
        "<div class='container'>"
        "<div class='header'><h2>Support Case Summary</h2></div>"
        "<div class='content'>"
        f"<div class='case-info'>{info_html}</div>"
        + _section("problem", "🔴", "Problem Reported", request.problem_reported)
        + _section("solution", "✅", "Solution Provided", request.solution_provided)
        + _section("summary", "📋", "Summary", request.summary)
        + "</div>"
        "<div class='footer'>"
        "<p>Thank you for contacting our support team. If you have any further questions, "
        "please don't hesitate to reach out.</p>"
        "<p class='signature'>Best regards,<br><strong>Customer Support Team</strong></p>"
        "</div></div></body></html>"
    )


class EmailService:
    """Sends transcript emails from the support service account."""

    def __init__(self, graph: GraphClient, sender: str | None = None):
        self.graph = graph
        self.sender = sender or os.environ.get(
            "SERVICE_ACCOUNT_EMAIL", "support@office365clinic.com"
        )

    async def send_transcript_email(self, request: TranscriptEmailRequest) -> dict:
        """
        Email a support case summary to the customer.

        Returns:
            {"success", "message", "emailId"}; emailId is empty on failure.

        Raises:
            ValueError: If the customer email is missing.
        """
        recipient = require(request.customer_email, "customerEmail")
        message = {
            "message": {
                "subject": f"Support Case Summary - {request.thread_id}",
                "body": {"contentType": "HTML", "content": render_transcript_email(request)},
                "toRecipients": [{"emailAddress": {"address": recipient}}],
            },
            "saveToSentItems": True,
        }

        try:
            await self.graph.request("POST", f"users/{self.sender}/sendMail", json=message)
        except Exception as e:
            logger.error(f"Failed to send transcript email for thread {request.thread_id}: {e}")
            return {"success": False, "message": f"Failed to send email: {e}", "emailId": ""}

        logger.info(f"Sent transcript email for thread {request.thread_id}")
        return {
            "success": True,
            "message": "Transcript email sent successfully.",
            "emailId": str(uuid.uuid4()),
        }
