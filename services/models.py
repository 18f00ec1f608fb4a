# Copyright (c) Microsoft. All rights reserved.

"""
Domain types shared by the support chat services.

Work items are stored as camelCase JSON documents in Cosmos DB; the
dataclasses here convert to and from that document shape.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any

HIGH_PRIORITY_WAIT_SECONDS = 300


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class WorkItemStatus(IntEnum):
    """Lifecycle of a customer chat request."""

    UNASSIGNED = 0
    CLAIMED = 1
    ACTIVE = 2
    RESOLVED = 3
    CANCELLED = 4

    @classmethod
    def parse(cls, value: Any) -> "WorkItemStatus":
        """
        Parse a status from an int, a numeric string, or a name.

        Names are matched case-insensitively ("claimed", "Claimed").

        Raises:
            ValueError: If the value does not name a known status.
        """
        if isinstance(value, WorkItemStatus):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid work item status: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            text = value.strip()
            if text.lstrip("-").isdigit():
                return cls(int(text))
            try:
                return cls[text.upper()]
            except KeyError:
                pass
        raise ValueError(f"Invalid work item status: {value!r}")

    @property
    def label(self) -> str:
        return self.name.capitalize()


@dataclass
class AgentWorkItem:
    """A customer chat request waiting for, or handled by, a support agent."""

    id: str
    status: WorkItemStatus = WorkItemStatus.UNASSIGNED
    assigned_agent_id: str | None = None
    assigned_agent_name: str | None = None
    claimed_at: datetime | None = None
    customer_name: str | None = None
    customer_id: str | None = None
    creator_user_id: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    last_modified_at: datetime = field(default_factory=utc_now)
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def partition_key(self) -> str:
        return self.id

    def wait_time_seconds(self, now: datetime | None = None) -> float:
        return ((now or utc_now()) - self.created_at).total_seconds()

    def priority(self, now: datetime | None = None) -> str:
        if self.wait_time_seconds(now) > HIGH_PRIORITY_WAIT_SECONDS:
            return "HIGH"
        return "NORMAL"

    def to_document(self) -> dict:
        """Serialize to the Cosmos DB document shape."""
        return {
            "id": self.id,
            "partitionKey": self.partition_key,
            "status": int(self.status),
            "assignedAgentId": self.assigned_agent_id,
            "assignedAgentName": self.assigned_agent_name,
            "claimedAt": to_iso(self.claimed_at),
            "customerName": self.customer_name,
            "customerId": self.customer_id,
            "creatorUserId": self.creator_user_id,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
            "lastModifiedAt": to_iso(self.last_modified_at),
            "metadata": dict(self.metadata),
        }

    def to_response(self, now: datetime | None = None) -> dict:
        """Serialize for HTTP responses, adding the computed fields."""
        body = self.to_document()
        body["waitTimeSeconds"] = round(self.wait_time_seconds(now), 1)
        body["priority"] = self.priority(now)
        return body

    @classmethod
    def from_document(cls, doc: dict) -> "AgentWorkItem":
        created_at = parse_iso(doc.get("createdAt")) or utc_now()
        updated_at = parse_iso(doc.get("updatedAt")) or created_at
        return cls(
            id=doc["id"],
            status=WorkItemStatus.parse(doc.get("status", 0)),
            assigned_agent_id=doc.get("assignedAgentId"),
            assigned_agent_name=doc.get("assignedAgentName"),
            claimed_at=parse_iso(doc.get("claimedAt")),
            customer_name=doc.get("customerName"),
            customer_id=doc.get("customerId"),
            creator_user_id=doc.get("creatorUserId"),
            created_at=created_at,
            updated_at=updated_at,
            last_modified_at=parse_iso(doc.get("lastModifiedAt")) or updated_at,
            metadata=dict(doc.get("metadata") or {}),
        )


@dataclass
class ClaimResult:
    """Outcome of an attempt to claim a work item."""

    success: bool
    work_item: AgentWorkItem | None = None
    error: str | None = None
    claimed_by: str | None = None
    claimed_at: datetime | None = None

    def to_response(self) -> dict:
        return {
            "success": self.success,
            "workItem": self.work_item.to_response() if self.work_item else None,
            "error": self.error,
            "claimedBy": self.claimed_by,
            "claimedAt": to_iso(self.claimed_at),
        }


@dataclass(frozen=True)
class AgentUser:
    """A support agent: Teams identity paired with an ACS identity."""

    teams_user_id: str
    acs_user_id: str
    display_name: str

    @classmethod
    def from_dict(cls, data: dict) -> "AgentUser":
        return cls(
            teams_user_id=data.get("teamsUserId", ""),
            acs_user_id=data.get("acsUserId", ""),
            display_name=data.get("displayName", ""),
        )

    def to_dict(self) -> dict:
        return {
            "teamsUserId": self.teams_user_id,
            "acsUserId": self.acs_user_id,
            "displayName": self.display_name,
        }


@dataclass
class ChatTranscript:
    """AI-generated summary of a support conversation."""

    thread_id: str
    customer_name: str = ""
    agent_name: str = ""
    problem_reported: str = ""
    solution_provided: str = ""
    summary: str = ""
    resolution_date: str = ""
    full_transcript: str = ""

    def to_dict(self) -> dict:
        return {
            "threadId": self.thread_id,
            "customerName": self.customer_name,
            "agentName": self.agent_name,
            "problemReported": self.problem_reported,
            "solutionProvided": self.solution_provided,
            "summary": self.summary,
            "resolutionDate": self.resolution_date,
            "fullTranscript": self.full_transcript,
        }
