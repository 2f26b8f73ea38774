"""SQLModel database models and tables."""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from sqlmodel import SQLModel, Field, Column, DateTime, JSON
from sqlalchemy import Text, func


class FlowRecord(SQLModel, table=True):
    """Flow definitions (React Flow nodes/edges stored as JSON)."""

    __tablename__ = "flows"

    id: str = Field(primary_key=True, max_length=255)
    name: str = Field(max_length=255)
    active: bool = Field(default=False, index=True)
    nodes: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    edges: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )


class WebhookEventRecord(SQLModel, table=True):
    """Received webhook events."""

    __tablename__ = "webhook_events"

    id: str = Field(primary_key=True, max_length=255)
    event: str = Field(index=True, max_length=255)
    version: str = Field(default="1.0", max_length=50)
    occurred_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))
    data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    processed: bool = Field(default=False, index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )


class FlowExecutionLog(SQLModel, table=True):
    """Audit record of one flow invocation (top-level or called sub-flow)."""

    __tablename__ = "flow_execution_logs"

    id: str = Field(primary_key=True, max_length=255)
    flow_id: str = Field(foreign_key="flows.id", index=True, max_length=255)
    webhook_event_id: str = Field(index=True, max_length=255)
    status: str = Field(default="running", max_length=50)
    executed_nodes: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    error: Optional[str] = Field(default=None, sa_column=Column(Text))
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True))
    )
    completed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True))
    )
