# Copyright (c) Microsoft. All rights reserved.

"""
Teams meetings for support escalations.

Meetings are created as online events in the agent's Outlook calendar via
Graph. The join link is recorded on the work item and posted into the chat
thread so the customer can join from the widget.
"""

import html
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from services.chat_service import ChatService
from services.graph_client import GraphClient, GraphNotFoundError
from services.models import parse_iso, to_iso, utc_now
from services.text import mask_for_logging, require
from services.work_item_store import WorkItemStore

logger = logging.getLogger(__name__)

GRAPH_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


def to_graph_time(value: datetime, time_zone: str = "UTC") -> tuple[datetime, str]:
    """
    Convert an aware datetime to wall-clock time in the meeting time zone.

    Zones that cannot be resolved locally (such as Windows zone names) are
    sent to Graph as UTC instead.
    """
    if time_zone != "UTC":
        try:
            return value.astimezone(ZoneInfo(time_zone)), time_zone
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown time zone {time_zone!r}; scheduling in UTC")
    return value.astimezone(timezone.utc), "UTC"


@dataclass
class MeetingRequest:
    thread_id: str
    customer_name: str
    agent_email: str
    start: datetime
    end: datetime
    subject: str
    customer_email: str | None = None
    description: str | None = None
    time_zone: str = "UTC"

    @classmethod
    def from_dict(cls, data: dict) -> "MeetingRequest":
        """
        Build a request from a camelCase JSON body.

        Raises:
            ValueError: If a required field is missing, a date is malformed,
                or the meeting does not end after it starts.
        """
        start = parse_iso(require(data.get("startDateTime"), "startDateTime"))
        end = parse_iso(require(data.get("endDateTime"), "endDateTime"))
        if end <= start:
            raise ValueError("endDateTime must be after startDateTime")
        return cls(
            thread_id=require(data.get("threadId"), "threadId"),
            customer_name=require(data.get("customerName"), "customerName"),
            agent_email=require(data.get("agentEmail"), "agentEmail"),
            start=start,
            end=end,
            subject=require(data.get("subject"), "subject"),
            customer_email=data.get("customerEmail") or None,
            description=data.get("description") or None,
            time_zone=data.get("timeZone") or "UTC",
        )

    @classmethod
    def for_update(cls, data: dict, organizer_email: str) -> "MeetingRequest":
        """
        Build a reschedule request; only the subject and times are required.

        Raises:
            ValueError: If a required field is missing or the times are invalid.
        """
        return cls.from_dict({
            "threadId": data.get("threadId") or "-",
            "customerName": data.get("customerName") or "Customer",
            "agentEmail": data.get("agentEmail") or organizer_email,
            **{k: v for k, v in data.items() if k not in ("threadId", "customerName", "agentEmail")},
        })

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


def build_meeting_body(request: MeetingRequest) -> str:
    body = "<div><strong>Support Session</strong></div>"
    body += f"<div>Customer: {html.escape(request.customer_name)}</div>"
    if request.description:
        body += f"<div><br/>{html.escape(request.description)}</div>"
    body += "<div><br/><em>This meeting was scheduled via the Customer Support Platform.</em></div>"
    return body


def build_meeting_chat_message(request: MeetingRequest, join_url: str) -> str:
    """HTML card posted into the chat thread with the join link."""
    start, zone = to_graph_time(request.start, request.time_zone)
    start_text = start.strftime("%B %d, %Y at %I:%M %p ") + zone
    return (
        "<div style='padding: 12px; border-left: 4px solid #6264A7; background-color: #F5F5F5;'>"
        "<p><strong>🎥 Teams Meeting Scheduled</strong></p>"
        f"<p>Hi {html.escape(request.customer_name)},</p>"
        "<p>I've scheduled a Teams meeting for us!</p>"
        f"<p><strong>📅 Time:</strong> {start_text}</p>"
        f"<p><strong>⏱️ Duration:</strong> {request.duration_minutes} minutes</p>"
        f"<p><a href='{html.escape(join_url, quote=True)}'>Join Meeting</a></p>"
        "<p>See you there! 👋</p>"
        "</div>"
    )


def _event_payload(request: MeetingRequest) -> dict:
    start, zone = to_graph_time(request.start, request.time_zone)
    end, _ = to_graph_time(request.end, request.time_zone)
    return {
        "subject": request.subject,
        "body": {"contentType": "HTML", "content": build_meeting_body(request)},
        "start": {"dateTime": start.strftime(GRAPH_DATETIME_FORMAT), "timeZone": zone},
        "end": {"dateTime": end.strftime(GRAPH_DATETIME_FORMAT), "timeZone": zone},
    }


def _meeting_result(event: dict, request: MeetingRequest) -> dict:
    online = event.get("onlineMeeting") or {}
    return {
        "success": True,
        "eventId": event.get("id"),
        "joinUrl": online.get("joinUrl"),
        "conferenceId": online.get("conferenceId"),
        "startDateTime": to_iso(request.start),
        "endDateTime": to_iso(request.end),
        "threadId": request.thread_id,
    }


class MeetingService:
    """Schedules, reads, updates and cancels Teams meetings through Graph."""

    def __init__(
        self,
        graph: GraphClient,
        work_item_store: WorkItemStore,
        chat_service: ChatService,
    ):
        self.graph = graph
        self.work_item_store = work_item_store
        self.chat_service = chat_service

    async def create_meeting(self, request: MeetingRequest) -> dict:
        """
        Create a Teams meeting in the agent's calendar.

        On success the meeting is linked to the work item and announced in
        the chat thread; failures in those follow-ups are only logged.
        """
        event = _event_payload(request)
        event["isOnlineMeeting"] = True
        event["onlineMeetingProvider"] = "teamsForBusiness"
        event["allowNewTimeProposals"] = True
        event["attendees"] = []
        if request.customer_email:
            event["attendees"].append({
                "emailAddress": {"address": request.customer_email, "name": request.customer_name},
                "type": "required",
            })

        try:
            created = await self.graph.request(
                "POST", f"users/{request.agent_email}/calendar/events", json=event
            )
        except Exception as e:
            logger.error(f"Failed to create Teams meeting: {e}")
            return {"success": False, "errorMessage": f"Failed to create meeting: {e}"}

        if not created.get("onlineMeeting"):
            logger.error("Teams meeting was created without online meeting info")
            return {"success": False, "errorMessage": "Failed to create Teams meeting"}

        result = _meeting_result(created, request)
        await self._link_meeting_to_thread(request, result["eventId"], result["joinUrl"])
        return result

    async def _link_meeting_to_thread(
        self, request: MeetingRequest, event_id: str, join_url: str
    ) -> None:
        thread_id = request.thread_id
        try:
            await self.work_item_store.update_thread_metadata(thread_id, {
                "MeetingEventId": event_id,
                "MeetingJoinUrl": join_url,
                "MeetingScheduledAt": to_iso(utc_now()),
            })
        except Exception as e:
            logger.warning(f"Failed to store meeting metadata for {mask_for_logging(thread_id)}: {e}")

        try:
            work_item = await self.work_item_store.get_work_item(thread_id)
            if work_item is None or not work_item.assigned_agent_id:
                logger.warning(
                    f"No assigned agent on thread {mask_for_logging(thread_id)}; meeting link not posted"
                )
                return
            sent = await self.chat_service.send_html_message_as(
                thread_id,
                work_item.assigned_agent_id,
                work_item.assigned_agent_name or "Support Agent",
                build_meeting_chat_message(request, join_url),
            )
            if not sent["success"]:
                logger.warning(f"Failed to post meeting link: {sent.get('errorMessage')}")
        except Exception as e:
            logger.error(f"Error posting meeting link to thread {mask_for_logging(thread_id)}: {e}")

    async def get_meeting(self, event_id: str, organizer_email: str) -> dict | None:
        """Meeting details, or None when the event does not exist."""
        event_id = require(event_id, "eventId")
        organizer_email = require(organizer_email, "organizerEmail")
        try:
            event = await self.graph.request("GET", f"users/{organizer_email}/events/{event_id}")
        except GraphNotFoundError:
            return None

        online = event.get("onlineMeeting") or {}
        organizer = ((event.get("organizer") or {}).get("emailAddress") or {}).get("address")
        return {
            "eventId": event.get("id", event_id),
            "subject": event.get("subject") or "Teams Meeting",
            "description": (event.get("body") or {}).get("content"),
            "startDateTime": (event.get("start") or {}).get("dateTime"),
            "endDateTime": (event.get("end") or {}).get("dateTime"),
            "joinUrl": online.get("joinUrl", ""),
            "conferenceId": online.get("conferenceId"),
            "tollNumber": online.get("tollNumber"),
            "organizerEmail": organizer or organizer_email,
            "attendees": [
                {
                    "name": (a.get("emailAddress") or {}).get("name", ""),
                    "email": (a.get("emailAddress") or {}).get("address", ""),
                    "type": a.get("type") or "required",
                    "responseStatus": (a.get("status") or {}).get("response"),
                }
                for a in event.get("attendees") or []
            ],
            "status": "Cancelled" if event.get("isCancelled") else "Scheduled",
        }

    async def cancel_meeting(
        self, event_id: str, organizer_email: str, message: str | None = None
    ) -> bool:
        event_id = require(event_id, "eventId")
        organizer_email = require(organizer_email, "organizerEmail")
        try:
            await self.graph.request(
                "POST",
                f"users/{organizer_email}/events/{event_id}/cancel",
                json={"comment": message or "This meeting has been cancelled."},
            )
        except Exception as e:
            logger.error(f"Failed to cancel meeting {mask_for_logging(event_id)}: {e}")
            return False
        return True

    async def update_meeting(
        self, event_id: str, organizer_email: str, request: MeetingRequest
    ) -> dict | None:
        """
        Reschedule or rename a meeting.

        Returns:
            The meeting result, or None when the event does not exist.
        """
        event_id = require(event_id, "eventId")
        organizer_email = require(organizer_email, "organizerEmail")
        try:
            updated = await self.graph.request(
                "PATCH", f"users/{organizer_email}/events/{event_id}", json=_event_payload(request)
            )
        except GraphNotFoundError:
            return None
        except Exception as e:
            logger.error(f"Failed to update meeting {mask_for_logging(event_id)}: {e}")
            return {"success": False, "errorMessage": f"Failed to update meeting: {e}"}

        updated.setdefault("id", event_id)
        return _meeting_result(updated, request)
