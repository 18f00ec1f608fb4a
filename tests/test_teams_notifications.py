# Copyright (c) Microsoft. All rights reserved.

"""Tests for Teams activity feed notifications."""

from datetime import datetime, timezone

import pytest

from services.models import AgentUser
from services.teams_notifications import (
    DEFAULT_CONTEXT,
    TeamsNotificationService,
    format_notification_time,
    notification_context,
    truncate_for_notification,
)

NOW = datetime(2025, 3, 4, 17, 45, tzinfo=timezone.utc)


@pytest.fixture
def teams(graph_client, agent_users) -> TeamsNotificationService:
    return TeamsNotificationService(graph_client, agent_users, app_id="app-123", enabled=True)


class TestFormatting:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (datetime(2025, 3, 4, 9, 5, tzinfo=timezone.utc), "Today 09:05"),
            (datetime(2025, 3, 3, 23, 0, tzinfo=timezone.utc), "Yesterday 23:00"),
            (datetime(2025, 2, 1, 8, 0, tzinfo=timezone.utc), "Feb 01 08:00"),
        ],
    )
    def test_notification_time(self, value, expected) -> None:
        assert format_notification_time(value, NOW) == expected

    def test_truncate_prefers_word_break(self) -> None:
        text = "word " * 30

        result = truncate_for_notification(text, 20)

        assert result == "word word word word..."

    def test_truncate_hard_cut_without_spaces(self) -> None:
        assert truncate_for_notification("x" * 30, 10) == "x" * 10 + "..."

    def test_context_fallback_order(self) -> None:
        assert notification_context(None, "Billing", "Hello") == "Billing"
        assert notification_context(" ", None, "Hello") == "Hello"
        assert notification_context() == DEFAULT_CONTEXT


class TestBuildNotification:
    async def test_deep_link(self, teams: TeamsNotificationService) -> None:
        link = teams.build_deep_link("19:t@thread.v2")

        assert link == (
            "https://teams.microsoft.com/l/entity/app-123/index"
            '?context={"subEntityId":"19:t@thread.v2"}'
        )

    async def test_topic_with_chat_topic(self, teams: TeamsNotificationService) -> None:
        body = teams.build_notification("t", "Jane", NOW, chat_topic="Billing")

        assert body["topic"]["value"] == "Jane > Billing (Mar 04 17:45)"
        assert body["templateParameters"][0]["value"] == "Billing"
        assert body["teamsAppId"] == "app-123"

    async def test_anonymous_customer(self, teams: TeamsNotificationService) -> None:
        body = teams.build_notification("t", None, NOW)

        assert body["topic"]["value"] == "Customer Support (Mar 04 17:45)"

    async def test_urgent_preview(self, teams: TeamsNotificationService) -> None:
        body = teams.build_notification("t", "Jane", NOW, priority="high")

        assert body["previewText"]["content"] == "🚨 Urgent support request"


class TestSendNotification:
    """Test delivery through Graph."""

    async def test_send(self, teams: TeamsNotificationService, graph_recorder) -> None:
        sent = await teams.send_new_chat_notification("teams-bob", "19:t@thread.v2", "Jane")

        assert sent is True
        assert graph_recorder.requests[0].url.path == "/v1.0/users/teams-bob/teamwork/sendActivityNotification"
        assert graph_recorder.body()["activityType"] == "systemDefault"

    async def test_send_failure_returns_false(self, teams: TeamsNotificationService, graph_recorder) -> None:
        graph_recorder.respond(403, {"error": {"code": "Forbidden"}})

        assert await teams.send_new_chat_notification("teams-bob", "t") is False

    async def test_disabled(self, graph_client, graph_recorder) -> None:
        teams = TeamsNotificationService(graph_client, app_id="app", enabled=False)

        assert await teams.send_new_chat_notification("teams-bob", "t") is True
        assert await teams.broadcast_new_chat_notification("t") == 0
        assert graph_recorder.requests == []

    async def test_broadcast(self, teams: TeamsNotificationService, graph_recorder) -> None:
        graph_recorder.respond(202)
        graph_recorder.respond(500, {"error": {"code": "x"}})

        sent = await teams.broadcast_new_chat_notification("t", "Jane")

        assert sent == 1
        assert len(graph_recorder.requests) == 2

    async def test_broadcast_without_agents(self, graph_client) -> None:
        teams = TeamsNotificationService(graph_client, [AgentUser("", "8:acs:x", "X")], app_id="a", enabled=True)

        assert await teams.broadcast_new_chat_notification("t") == 0

    async def test_enabled_from_environment(self, graph_client, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEAMS_ENABLE_NOTIFICATIONS", "False")

        assert TeamsNotificationService(graph_client, app_id="a").enabled is False
