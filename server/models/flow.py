"""Pydantic models for flow graphs with tagged node and action variants.

Flows are stored as React Flow JSON (``nodes``/``edges`` arrays). Node data
and action configuration are parsed into explicit variants selected by the
``type`` tag, so the engine matches on classes rather than probing dict keys.
Tags that are missing or unknown parse into ``UnknownNode``/``UnknownAction``
instead of failing validation; the engine reports them when it reaches them.
"""

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional, Union

from pydantic import BaseModel, Discriminator, Field, Tag, field_validator

from constants import (
    ACTION_CALL_FLOW,
    ACTION_HTTP_REQUEST,
    ACTION_LOG,
    ACTION_SEND_EMAIL,
    ACTION_TYPES,
    CONDITION_TYPE_FIELD,
    DEFAULT_CONDITION_HTTP_METHOD,
    NODE_ACTION,
    NODE_CONDITION,
    NODE_END,
    NODE_TRIGGER,
    NODE_TYPES,
)

# Literal compared by conditions. bool comes first so `true` is not read as 1
ConditionValue = Optional[Union[bool, str, int, float]]


class FlowBaseModel(BaseModel):
    """Base class for flow graph models (camelCase on the wire)."""
    model_config = {"extra": "allow", "populate_by_name": True, "frozen": True}


def _tag_of(value: Any, known: frozenset) -> str:
    if isinstance(value, dict):
        tag = value.get("type")
    else:
        tag = getattr(value, "type", None)
    return tag if tag in known else "unknown"


# =============================================================================
# TRIGGER / CONDITION / END DATA
# =============================================================================

class TriggerData(FlowBaseModel):
    """Trigger node data: the event name the flow listens to."""
    event: str = ""


class HttpConditionConfig(FlowBaseModel):
    """Condition whose subject is read from an HTTP response."""
    url: str = ""
    method: str = DEFAULT_CONDITION_HTTP_METHOD
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Dict[str, Any]] = None
    response_field: str = Field(default="", alias="responseField")
    operator: Optional[str] = None
    value: ConditionValue = None


class ConditionData(FlowBaseModel):
    """Condition node data.

    ``conditionType`` FIELD compares a payload field; HTTP_REQUEST compares a
    field of an HTTP response described by ``httpConfig``.
    """
    condition_type: str = Field(default=CONDITION_TYPE_FIELD, alias="conditionType")
    field: Optional[str] = None
    operator: Optional[str] = None
    value: ConditionValue = None
    http_config: Optional[HttpConditionConfig] = Field(default=None, alias="httpConfig")


# =============================================================================
# ACTION DATA
# =============================================================================

class LogActionConfig(FlowBaseModel):
    message: Optional[str] = None


class HttpActionConfig(FlowBaseModel):
    url: str = ""
    method: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Any] = None


class EmailActionConfig(FlowBaseModel):
    email: str = ""
    subject: Optional[str] = None
    message: Optional[str] = None


class CallFlowActionConfig(FlowBaseModel):
    flow_id: str = Field(default="", alias="flowId")
    data: Dict[str, Any] = Field(default_factory=dict)


class _ActionBase(FlowBaseModel):

    @field_validator("config", mode="before", check_fields=False)
    @classmethod
    def _null_config(cls, v):
        return {} if v is None else v


class LogAction(_ActionBase):
    type: str = ACTION_LOG
    config: LogActionConfig = Field(default_factory=LogActionConfig)


class HttpRequestAction(_ActionBase):
    type: str = ACTION_HTTP_REQUEST
    config: HttpActionConfig = Field(default_factory=HttpActionConfig)


class SendEmailAction(_ActionBase):
    type: str = ACTION_SEND_EMAIL
    config: EmailActionConfig = Field(default_factory=EmailActionConfig)


class CallFlowAction(_ActionBase):
    type: str = ACTION_CALL_FLOW
    config: CallFlowActionConfig = Field(default_factory=CallFlowActionConfig)


class UnknownAction(FlowBaseModel):
    """Action data with a missing or unsupported ``type``."""
    type: Optional[str] = None
    config: Any = None


ActionData = Annotated[
    Union[
        Annotated[LogAction, Tag(ACTION_LOG)],
        Annotated[HttpRequestAction, Tag(ACTION_HTTP_REQUEST)],
        Annotated[SendEmailAction, Tag(ACTION_SEND_EMAIL)],
        Annotated[CallFlowAction, Tag(ACTION_CALL_FLOW)],
        Annotated[UnknownAction, Tag("unknown")],
    ],
    Discriminator(lambda v: _tag_of(v, ACTION_TYPES)),
]


# =============================================================================
# NODES AND EDGES
# =============================================================================

class TriggerNode(FlowBaseModel):
    id: str
    type: str = NODE_TRIGGER
    data: TriggerData = Field(default_factory=TriggerData)


class ConditionNode(FlowBaseModel):
    id: str
    type: str = NODE_CONDITION
    data: ConditionData = Field(default_factory=ConditionData)


class ActionNode(FlowBaseModel):
    id: str
    type: str = NODE_ACTION
    data: Optional[ActionData] = None


class EndNode(FlowBaseModel):
    id: str
    type: str = NODE_END
    data: Dict[str, Any] = Field(default_factory=dict)


class UnknownNode(FlowBaseModel):
    """Node with a missing or unsupported ``type``."""
    id: str
    type: Optional[str] = None
    data: Any = None


FlowNode = Annotated[
    Union[
        Annotated[TriggerNode, Tag(NODE_TRIGGER)],
        Annotated[ConditionNode, Tag(NODE_CONDITION)],
        Annotated[ActionNode, Tag(NODE_ACTION)],
        Annotated[EndNode, Tag(NODE_END)],
        Annotated[UnknownNode, Tag("unknown")],
    ],
    Discriminator(lambda v: _tag_of(v, NODE_TYPES)),
]


class Edge(FlowBaseModel):
    id: str = ""
    source: str
    target: str
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")


class Flow(FlowBaseModel):
    """A flow graph snapshot. Read-only for the duration of a run."""
    id: str
    name: str = ""
    active: bool = False
    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_trigger_nodes(self) -> List[TriggerNode]:
        return [n for n in self.nodes if isinstance(n, TriggerNode)]

    def get_trigger_node(self) -> Optional[TriggerNode]:
        triggers = self.get_trigger_nodes()
        return triggers[0] if triggers else None

    @property
    def trigger_event(self) -> Optional[str]:
        trigger = self.get_trigger_node()
        return trigger.data.event if trigger else None

    def outgoing_edges(self, node_id: str) -> List[Edge]:
        """Edges leaving ``node_id`` in edge-list order."""
        return [e for e in self.edges if e.source == node_id]

    def next_node_ids(self, node_id: str) -> List[str]:
        return [e.target for e in self.outgoing_edges(node_id) if e.target]


# =============================================================================
# WEBHOOK EVENTS
# =============================================================================

class WebhookPayload(BaseModel):
    """Body accepted by the webhook endpoint."""
    model_config = {"populate_by_name": True}

    event: str = Field(min_length=1)
    data: Dict[str, Any]
    version: str = "1.0"
    occurred_at: Optional[datetime] = Field(default=None, alias="occurredAt")


class WebhookEvent(FlowBaseModel):
    """A received event. The engine reads ``event`` and ``data``."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event: str
    version: str = "1.0"
    occurred_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        alias="occurredAt"
    )
    data: Dict[str, Any] = Field(default_factory=dict)
    processed: bool = False
