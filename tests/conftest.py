# Copyright (c) Microsoft. All rights reserved.

"""Shared fakes for the Azure SDK clients used by the services."""

import copy
import itertools
import json
import re
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable

import httpx
import pytest
from azure.communication.chat import ChatMessageType
from azure.core import MatchConditions
from azure.core.credentials import AccessToken
from azure.core.exceptions import ResourceNotFoundError
from azure.cosmos.exceptions import (
    CosmosAccessConditionFailedError,
    CosmosResourceNotFoundError,
)

from services.admin_user_store import AdminUserStore
from services.agent_service import AgentService
from services.chat_service import ChatService
from services.graph_client import GraphClient
from services.identity import TokenService
from services.models import AgentUser
from services.queue_notifier import QueueNotifier
from services.work_item_store import WorkItemStore

_FILTER = re.compile(r"c\.(\w+)\s*=\s*(@\w+)")
_ORDER_BY = re.compile(r"ORDER BY c\.(\w+)(?:\s+(ASC|DESC))?", re.IGNORECASE)


# -----------------------------------------------------------------------------
# Cosmos DB
# -----------------------------------------------------------------------------


class FakeContainer:
    """In-memory Cosmos container with ETag checks and simple parameterized queries."""

    def __init__(self):
        self.items: dict[str, dict] = {}
        self._etags = itertools.count(1)
        # Called with the item id right before a replace is applied
        self.before_replace: Callable[[str], None] | None = None

    def _store(self, body: dict) -> dict:
        doc = copy.deepcopy(body)
        doc["_etag"] = f'"etag-{next(self._etags)}"'
        self.items[doc["id"]] = doc
        return copy.deepcopy(doc)

    def read_item(self, item: str, partition_key: Any) -> dict:
        if item not in self.items:
            raise CosmosResourceNotFoundError(status_code=404, message="Entity not found")
        return copy.deepcopy(self.items[item])

    def upsert_item(self, body: dict) -> dict:
        return self._store(body)

    def replace_item(
        self,
        item: str,
        body: dict,
        etag: str | None = None,
        match_condition: MatchConditions | None = None,
    ) -> dict:
        if self.before_replace is not None:
            hook, self.before_replace = self.before_replace, None
            hook(item)
        if item not in self.items:
            raise CosmosResourceNotFoundError(status_code=404, message="Entity not found")
        if (
            match_condition == MatchConditions.IfNotModified
            and etag != self.items[item]["_etag"]
        ):
            raise CosmosAccessConditionFailedError(status_code=412, message="Precondition failed")
        return self._store(body)

    def delete_item(self, item: str, partition_key: Any) -> None:
        if item not in self.items:
            raise CosmosResourceNotFoundError(status_code=404, message="Entity not found")
        del self.items[item]

    def query_items(
        self,
        query: str,
        parameters: list[dict] | None = None,
        enable_cross_partition_query: bool | None = None,
        partition_key: Any = None,
    ) -> list[dict]:
        values = {p["name"]: p["value"] for p in parameters or []}
        results = [
            copy.deepcopy(doc)
            for doc in self.items.values()
            if all(doc.get(field) == values[param] for field, param in _FILTER.findall(query))
        ]
        order = _ORDER_BY.search(query)
        if order:
            field, direction = order.group(1), (order.group(2) or "ASC").upper()
            results.sort(key=lambda d: d.get(field) or "", reverse=direction == "DESC")
        return results


# -----------------------------------------------------------------------------
# Azure Communication Services
# -----------------------------------------------------------------------------


class FakeIdentityClient:
    def __init__(self):
        self._ids = itertools.count(1)
        self.issued: list[tuple[str, list]] = []
        self.revoked: list[str] = []

    def _token(self) -> AccessToken:
        expires = datetime.now(timezone.utc) + timedelta(hours=24)
        return AccessToken(f"token-{len(self.issued) + 1}", int(expires.timestamp()))

    def create_user(self):
        return SimpleNamespace(properties={"id": f"8:acs:user-{next(self._ids)}"})

    def create_user_and_token(self, scopes):
        user = self.create_user()
        self.issued.append((user.properties["id"], list(scopes)))
        return user, self._token()

    def get_token(self, user, scopes):
        self.issued.append((user.properties["id"], list(scopes)))
        return self._token()

    def revoke_tokens(self, user):
        self.revoked.append(user.properties["id"])


class FakeThreadClient:
    def __init__(self, acs: "FakeAcs", thread_id: str, token: str):
        self._acs = acs
        self.thread_id = thread_id
        self.token = token

    @property
    def thread(self) -> dict:
        if self.thread_id not in self._acs.threads:
            raise ResourceNotFoundError("Thread not found")
        return self._acs.threads[self.thread_id]

    def add_participants(self, participants):
        if self._acs.fail_add_participants:
            return [(participants[0], SimpleNamespace(message="Participant is blocked"))]
        self.thread["participants"].extend(participants)
        return []

    def send_message(self, content, sender_display_name=None, chat_message_type=None):
        message_id = f"msg-{next(self._acs._ids)}"
        self.thread["messages"].append(SimpleNamespace(
            id=message_id,
            type=chat_message_type or ChatMessageType.TEXT,
            content=SimpleNamespace(message=content),
            sender=SimpleNamespace(raw_id=self._acs.token_owner.get(self.token, "")),
            sender_display_name=sender_display_name,
            created_on=datetime.now(timezone.utc) + timedelta(seconds=len(self.thread["messages"])),
        ))
        return SimpleNamespace(id=message_id)

    def list_messages(self):
        return list(self.thread["messages"])


class FakeChatClient:
    def __init__(self, acs: "FakeAcs", token: str):
        self._acs = acs
        self.token = token

    def create_chat_thread(self, topic, thread_participants=None):
        thread_id = f"19:thread-{next(self._acs._ids)}@thread.v2"
        self._acs.threads[thread_id] = {
            "topic": topic,
            "participants": list(thread_participants or []),
            "messages": [],
        }
        return SimpleNamespace(chat_thread=SimpleNamespace(id=thread_id, topic=topic))

    def get_chat_thread_client(self, thread_id):
        return FakeThreadClient(self._acs, thread_id, self.token)

    def delete_chat_thread(self, thread_id):
        if thread_id not in self._acs.threads:
            raise ResourceNotFoundError("Thread not found")
        del self._acs.threads[thread_id]


class FakeAcs:
    """Shared state behind the fake chat clients."""

    def __init__(self, identity: FakeIdentityClient):
        self.identity = identity
        self.threads: dict[str, dict] = {}
        self.fail_add_participants = False
        self.token_owner: dict[str, str] = {}
        self._ids = itertools.count(1)

    def client_for(self, token: str) -> FakeChatClient:
        return FakeChatClient(self, token)


class RecordingTokenService(TokenService):
    """Token service that remembers which ACS user each token belongs to."""

    def __init__(self, acs: FakeAcs):
        super().__init__(client=acs.identity, endpoint="https://acs.example.communication.azure.com/")
        self._acs = acs

    def _token_response(self, user_id, access_token):
        self._acs.token_owner[access_token.token] = user_id
        return TokenService._token_response(user_id, access_token)


# -----------------------------------------------------------------------------
# Storage Queues
# -----------------------------------------------------------------------------


class FakeQueue:
    def __init__(self, name: str):
        self.name = name
        self.created = False
        self.messages: list[dict] = []
        self.fail = False

    def create_queue(self):
        self.created = True

    def send_message(self, content: str):
        if self.fail:
            raise RuntimeError("queue unavailable")
        self.messages.append(json.loads(content))


class FakeQueues(dict):
    def __missing__(self, name: str) -> FakeQueue:
        queue = self[name] = FakeQueue(name)
        return queue

    def factory(self, name: str) -> FakeQueue:
        return self[name]


# -----------------------------------------------------------------------------
# Microsoft Graph
# -----------------------------------------------------------------------------


class FakeCredential:
    def get_token(self, *scopes, **kwargs):
        return AccessToken("graph-token", 9999999999)


class GraphRecorder:
    """httpx mock handler that records requests and replays queued responses."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responses: list[httpx.Response] = []

    def respond(self, status_code: int = 200, json_body: Any = None) -> None:
        if json_body is None:
            self.responses.append(httpx.Response(status_code))
        else:
            self.responses.append(httpx.Response(status_code, json=json_body))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responses:
            return self.responses.pop(0)
        return httpx.Response(202)

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def work_item_container() -> FakeContainer:
    return FakeContainer()


@pytest.fixture
def work_item_store(work_item_container: FakeContainer) -> WorkItemStore:
    return WorkItemStore(container=work_item_container, container_name="agentWorkItems")


@pytest.fixture
def admin_container() -> FakeContainer:
    return FakeContainer()


@pytest.fixture
def admin_store(admin_container: FakeContainer) -> AdminUserStore:
    return AdminUserStore(container=admin_container, container_name="adminUsers", environment="test")


@pytest.fixture
def acs() -> FakeAcs:
    return FakeAcs(FakeIdentityClient())


@pytest.fixture
def token_service(acs: FakeAcs) -> TokenService:
    return RecordingTokenService(acs)


@pytest.fixture
def chat_service(
    token_service: TokenService,
    admin_store: AdminUserStore,
    work_item_store: WorkItemStore,
    acs: FakeAcs,
) -> ChatService:
    return ChatService(
        token_service,
        admin_store,
        work_item_store,
        chat_client_factory=acs.client_for,
        history_send_delay=0,
    )


@pytest.fixture
def agent_users() -> list[AgentUser]:
    return [
        AgentUser("Teams-Alice", "8:acs:agent-alice", "Alice Agent"),
        AgentUser("teams-bob", "8:acs:agent-bob", "Bob Agent"),
    ]


@pytest.fixture
def agent_service(
    work_item_store: WorkItemStore, chat_service: ChatService, agent_users: list[AgentUser]
) -> AgentService:
    return AgentService(work_item_store, chat_service, agent_users)


@pytest.fixture
def queues() -> FakeQueues:
    return FakeQueues()


@pytest.fixture
def queue_notifier(queues: FakeQueues) -> QueueNotifier:
    return QueueNotifier(
        new_chat_queue="new-chat",
        chat_claimed_queue="chat-claimed",
        work_item_cancelled_queue="cancelled",
        queue_factory=queues.factory,
    )


@pytest.fixture
def graph_recorder() -> GraphRecorder:
    return GraphRecorder()


@pytest.fixture
async def graph_client(graph_recorder: GraphRecorder) -> GraphClient:
    client = GraphClient(FakeCredential(), transport=httpx.MockTransport(graph_recorder))
    yield client
    await client.close()
