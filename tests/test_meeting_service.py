# Copyright (c) Microsoft. All rights reserved.

"""Tests for Teams meeting scheduling."""

import pytest

from services.meeting_service import (
    GRAPH_DATETIME_FORMAT,
    MeetingRequest,
    MeetingService,
    build_meeting_chat_message,
    to_graph_time,
)
from services.models import parse_iso

MEETING_BODY = {
    "threadId": "19:t@thread.v2",
    "customerName": "Jane",
    "customerEmail": "jane@example.com",
    "agentEmail": "alice@contoso.com",
    "startDateTime": "2025-03-04T17:00:00Z",
    "endDateTime": "2025-03-04T17:30:00Z",
    "subject": "Printer follow-up",
}

CREATED_EVENT = {
    "id": "evt-1",
    "onlineMeeting": {"joinUrl": "https://teams.microsoft.com/l/meetup-join/abc", "conferenceId": "123"},
}


@pytest.fixture
def meetings(graph_client, work_item_store, chat_service) -> MeetingService:
    return MeetingService(graph_client, work_item_store, chat_service)


class TestMeetingRequest:
    """Test request parsing."""

    def test_from_dict(self) -> None:
        request = MeetingRequest.from_dict(MEETING_BODY)

        assert request.duration_minutes == 30
        assert request.time_zone == "UTC"
        assert request.customer_email == "jane@example.com"

    @pytest.mark.parametrize("field", ["threadId", "customerName", "agentEmail", "subject", "startDateTime"])
    def test_missing_field(self, field: str) -> None:
        body = {**MEETING_BODY, field: ""}

        with pytest.raises(ValueError, match=f"{field} is required"):
            MeetingRequest.from_dict(body)

    def test_end_before_start(self) -> None:
        body = {**MEETING_BODY, "endDateTime": "2025-03-04T16:00:00Z"}

        with pytest.raises(ValueError, match="endDateTime must be after startDateTime"):
            MeetingRequest.from_dict(body)

    def test_malformed_date(self) -> None:
        with pytest.raises(ValueError):
            MeetingRequest.from_dict({**MEETING_BODY, "startDateTime": "tomorrow"})

    def test_for_update_only_needs_times_and_subject(self) -> None:
        request = MeetingRequest.for_update(
            {
                "subject": "Moved",
                "startDateTime": "2025-03-05T10:00:00Z",
                "endDateTime": "2025-03-05T11:00:00Z",
            },
            "alice@contoso.com",
        )

        assert request.agent_email == "alice@contoso.com"
        assert request.customer_name == "Customer"
        assert request.duration_minutes == 60

    def test_chat_message_has_join_link(self) -> None:
        request = MeetingRequest.from_dict(MEETING_BODY)

        message = build_meeting_chat_message(request, "https://join/abc")

        assert "<a href='https://join/abc'>Join Meeting</a>" in message
        assert "March 04, 2025 at 05:00 PM UTC" in message
        assert "30 minutes" in message

    def test_chat_message_time_converted_from_offset(self) -> None:
        request = MeetingRequest.from_dict({
            **MEETING_BODY,
            "startDateTime": "2025-03-04T17:00:00+02:00",
            "endDateTime": "2025-03-04T17:30:00+02:00",
        })

        message = build_meeting_chat_message(request, "https://join/abc")

        assert "March 04, 2025 at 03:00 PM UTC" in message


class TestGraphTime:
    def test_offset_converted_to_utc(self) -> None:
        value = parse_iso("2025-03-04T17:00:00+02:00")

        local, zone = to_graph_time(value)

        assert local.strftime(GRAPH_DATETIME_FORMAT) == "2025-03-04T15:00:00"
        assert zone == "UTC"

    def test_unresolvable_zone_falls_back_to_utc(self) -> None:
        value = parse_iso("2025-03-04T17:00:00-05:00")

        local, zone = to_graph_time(value, "Not/A_Zone")

        assert local.strftime(GRAPH_DATETIME_FORMAT) == "2025-03-04T22:00:00"
        assert zone == "UTC"


class TestCreateMeeting:
    async def test_create_sends_utc_times_for_offset_input(
        self, meetings: MeetingService, graph_recorder
    ) -> None:
        graph_recorder.respond(201, CREATED_EVENT)

        await meetings.create_meeting(MeetingRequest.from_dict({
            **MEETING_BODY,
            "startDateTime": "2025-03-04T17:00:00+02:00",
            "endDateTime": "2025-03-04T17:30:00+02:00",
        }))

        event = graph_recorder.body(0)
        assert event["start"] == {"dateTime": "2025-03-04T15:00:00", "timeZone": "UTC"}
        assert event["end"] == {"dateTime": "2025-03-04T15:30:00", "timeZone": "UTC"}

    async def test_create_links_and_posts(
        self, meetings: MeetingService, graph_recorder, chat_service, work_item_store, acs
    ) -> None:
        thread_id = (await chat_service.create_thread("Jane", "Help"))["threadId"]
        await work_item_store.claim_work_item(thread_id, "8:acs:agent-alice", "Alice Agent")
        graph_recorder.respond(201, CREATED_EVENT)

        result = await meetings.create_meeting(
            MeetingRequest.from_dict({**MEETING_BODY, "threadId": thread_id})
        )

        assert result["success"] is True
        assert result["eventId"] == "evt-1"
        assert result["joinUrl"] == CREATED_EVENT["onlineMeeting"]["joinUrl"]
        event = graph_recorder.body(0)
        assert event["isOnlineMeeting"] is True
        assert event["attendees"][0]["emailAddress"]["address"] == "jane@example.com"
        metadata = await work_item_store.get_thread_metadata(thread_id)
        assert metadata["MeetingEventId"] == "evt-1"
        posted = acs.threads[thread_id]["messages"][-1]
        assert posted.sender_display_name == "Alice Agent"
        assert "Join Meeting" in posted.content.message

    async def test_create_without_assigned_agent(self, meetings: MeetingService, graph_recorder, acs) -> None:
        graph_recorder.respond(201, CREATED_EVENT)

        result = await meetings.create_meeting(MeetingRequest.from_dict(MEETING_BODY))

        assert result["success"] is True
        assert acs.threads == {}

    async def test_create_graph_failure(self, meetings: MeetingService, graph_recorder) -> None:
        graph_recorder.respond(500, {"error": {"code": "x"}})

        result = await meetings.create_meeting(MeetingRequest.from_dict(MEETING_BODY))

        assert result["success"] is False

    async def test_create_without_online_meeting(self, meetings: MeetingService, graph_recorder) -> None:
        graph_recorder.respond(201, {"id": "evt-1"})

        result = await meetings.create_meeting(MeetingRequest.from_dict(MEETING_BODY))

        assert result == {"success": False, "errorMessage": "Failed to create Teams meeting"}


class TestManageMeeting:
    async def test_get(self, meetings: MeetingService, graph_recorder) -> None:
        graph_recorder.respond(200, {
            **CREATED_EVENT,
            "subject": "Printer follow-up",
            "start": {"dateTime": "2025-03-04T17:00:00"},
            "organizer": {"emailAddress": {"address": "alice@contoso.com"}},
            "attendees": [{"emailAddress": {"name": "Jane", "address": "jane@example.com"}}],
        })

        meeting = await meetings.get_meeting("evt-1", "alice@contoso.com")

        assert meeting["subject"] == "Printer follow-up"
        assert meeting["status"] == "Scheduled"
        assert meeting["attendees"][0]["type"] == "required"

    async def test_get_missing(self, meetings: MeetingService, graph_recorder) -> None:
        graph_recorder.respond(404, {"error": {"code": "ErrorItemNotFound"}})

        assert await meetings.get_meeting("evt-1", "alice@contoso.com") is None

    async def test_cancel(self, meetings: MeetingService, graph_recorder) -> None:
        assert await meetings.cancel_meeting("evt-1", "alice@contoso.com") is True
        assert graph_recorder.requests[0].url.path.endswith("/events/evt-1/cancel")
        assert graph_recorder.body()["comment"] == "This meeting has been cancelled."

    async def test_cancel_failure(self, meetings: MeetingService, graph_recorder) -> None:
        graph_recorder.respond(404, {"error": {"code": "ErrorItemNotFound"}})

        assert await meetings.cancel_meeting("evt-1", "alice@contoso.com") is False

    async def test_update(self, meetings: MeetingService, graph_recorder) -> None:
        graph_recorder.respond(200, CREATED_EVENT)
        request = MeetingRequest.for_update(
            {"subject": "Moved", "startDateTime": "2025-03-05T10:00:00Z", "endDateTime": "2025-03-05T11:00:00Z"},
            "alice@contoso.com",
        )

        result = await meetings.update_meeting("evt-1", "alice@contoso.com", request)

        assert result["success"] is True
        assert graph_recorder.requests[0].method == "PATCH"
        assert graph_recorder.body()["start"]["dateTime"] == "2025-03-05T10:00:00"

    async def test_update_missing(self, meetings: MeetingService, graph_recorder) -> None:
        graph_recorder.respond(404, {"error": {"code": "ErrorItemNotFound"}})
        request = MeetingRequest.from_dict(MEETING_BODY)

        assert await meetings.update_meeting("evt-1", "alice@contoso.com", request) is None
