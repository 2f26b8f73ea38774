"""Shared fixtures for flow engine tests."""

from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import httpx
import pytest

from models.flow import Flow, WebhookEvent
from services.flow_engine import FlowEngine, HttpSender


def _node(node_id: str, node_type: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    node = {"id": node_id, "type": node_type}
    if data is not None:
        node["data"] = data
    return node


def _edge(source: str, target: str, handle: Optional[str] = None) -> Dict[str, Any]:
    edge = {"id": f"{source}-{target}", "source": source, "target": target}
    if handle is not None:
        edge["sourceHandle"] = handle
    return edge


@pytest.fixture
def node():
    """Factory for raw node dicts: node("a1", "action", {...})."""
    return _node


@pytest.fixture
def edge():
    """Factory for raw edge dicts: edge("c1", "a1", "yes")."""
    return _edge


@pytest.fixture
def make_flow():
    """Factory for Flow models from raw nodes/edges."""
    def _make(nodes: List[Dict[str, Any]], edges: List[Dict[str, Any]],
              flow_id: str = "flow-1", active: bool = True, name: str = "Test flow") -> Flow:
        return Flow.model_validate({
            "id": flow_id,
            "name": name,
            "active": active,
            "nodes": nodes,
            "edges": edges,
        })
    return _make


@pytest.fixture
def make_event():
    """Factory for webhook events."""
    def _make(data: Dict[str, Any], event: str = "lead.converted") -> WebhookEvent:
        return WebhookEvent(event=event, data=data)
    return _make


@pytest.fixture
def lead_flow(make_flow):
    """trigger(lead.converted) -> condition(source == whatsapp) -yes-> HTTP action -> end"""
    return make_flow(
        nodes=[
            _node("trigger", "trigger", {"event": "lead.converted"}),
            _node("condition", "condition", {
                "field": "data.lead.source", "operator": "EQUALS", "value": "whatsapp",
            }),
            _node("action", "action", {
                "type": "HTTP_REQUEST",
                "config": {"url": "https://crm.example.com/leads", "body": {"source": "{{lead.source}}"}},
            }),
            _node("end", "end"),
        ],
        edges=[
            _edge("trigger", "condition"),
            _edge("condition", "action", "yes"),
            _edge("action", "end"),
        ],
    )


@pytest.fixture
def captured_requests() -> List[httpx.Request]:
    return []


@pytest.fixture
def mock_transport(captured_requests):
    """MockTransport answering 200 {"ok": true} and recording requests."""
    def handler(request: httpx.Request) -> httpx.Response:
        captured_requests.append(request)
        return httpx.Response(200, json={"ok": True})
    return httpx.MockTransport(handler)


@pytest.fixture
def http_sender(mock_transport) -> HttpSender:
    return HttpSender(timeout_ms=1000, transport=mock_transport)


@pytest.fixture
def flow_repository():
    repository = AsyncMock()
    repository.find_flow_by_id.return_value = None
    return repository


@pytest.fixture
def execution_logs():
    logs = AsyncMock()
    logs.create_execution_log.return_value = "log-1"
    return logs


@pytest.fixture
def email_sender():
    return AsyncMock()


@pytest.fixture
def engine(flow_repository, execution_logs, email_sender, http_sender) -> FlowEngine:
    return FlowEngine(
        flow_repository=flow_repository,
        execution_logs=execution_logs,
        email_sender=email_sender,
        http=http_sender,
    )
