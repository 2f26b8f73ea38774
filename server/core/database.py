"""Modern async database service with SQLModel and SQLAlchemy 2.0."""

import uuid
from datetime import datetime, timezone
from typing import List, Optional
from pydantic import ValidationError as PydanticValidationError
from sqlmodel import SQLModel, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from contextlib import asynccontextmanager

from constants import EXECUTION_STATUSES, STATUS_RUNNING
from core.config import Settings
from models.database import FlowRecord, WebhookEventRecord, FlowExecutionLog
from models.flow import Flow, WebhookEvent
from core.logging import get_logger

logger = get_logger(__name__)


class Database:
    """Async database service with SQLModel.

    Implements the flow repository and execution log writer used by the
    flow engine, plus webhook event persistence.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            engine_args = {"echo": self.settings.database_echo, "future": True}
            if not self.settings.is_sqlite:
                engine_args["pool_size"] = self.settings.database_pool_size
                engine_args["max_overflow"] = self.settings.database_max_overflow

            # Create async engine
            self.engine = create_async_engine(self.settings.database_url, **engine_args)

            # Create session factory
            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            # Create tables
            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    # ============================================================================
    # Flows
    # ============================================================================

    async def save_flow(self, flow: Flow) -> bool:
        """Save or update a flow definition."""
        data = flow.model_dump(mode="json", by_alias=True, exclude_none=True)
        try:
            async with self.get_session() as session:
                stmt = select(FlowRecord).where(FlowRecord.id == flow.id)
                result = await session.execute(stmt)
                existing = result.scalar_one_or_none()

                if existing:
                    existing.name = flow.name
                    existing.active = flow.active
                    existing.nodes = data.get("nodes", [])
                    existing.edges = data.get("edges", [])
                    existing.updated_at = datetime.now(timezone.utc)
                else:
                    existing = FlowRecord(
                        id=flow.id,
                        name=flow.name,
                        active=flow.active,
                        nodes=data.get("nodes", []),
                        edges=data.get("edges", [])
                    )
                    session.add(existing)

                await session.commit()
                return True

        except Exception as e:
            logger.error("Failed to save flow", flow_id=flow.id, error=str(e))
            return False

    async def find_flow_by_id(self, flow_id: str) -> Optional[Flow]:
        """Get flow by ID. Lookup failures propagate to the caller.

        Raises:
            ValueError: The stored flow definition does not parse
        """
        async with self.get_session() as session:
            stmt = select(FlowRecord).where(FlowRecord.id == flow_id)
            result = await session.execute(stmt)
            record = result.scalar_one_or_none()

        if record is None:
            return None
        try:
            return self._to_flow(record)
        except PydanticValidationError as e:
            logger.error("Stored flow is invalid", flow_id=flow_id, error=str(e))
            raise ValueError(f"stored flow {flow_id} is invalid ({e.error_count()} errors)") from e

    async def find_active_flows(self) -> List[Flow]:
        """Get all active flows. Records that fail to parse are logged and skipped."""
        async with self.get_session() as session:
            stmt = select(FlowRecord).where(FlowRecord.active == True).order_by(FlowRecord.created_at)  # noqa: E712
            result = await session.execute(stmt)
            records = result.scalars().all()

        flows = []
        for record in records:
            try:
                flows.append(self._to_flow(record))
            except PydanticValidationError as e:
                logger.error("Skipping invalid stored flow", flow_id=record.id, error=str(e))
        return flows

    async def find_active_flows_by_event(self, event: str) -> List[Flow]:
        """Get active flows whose trigger node listens to ``event``."""
        flows = await self.find_active_flows()
        return [f for f in flows if f.trigger_event == event]

    @staticmethod
    def _to_flow(record: FlowRecord) -> Flow:
        return Flow.model_validate({
            "id": record.id,
            "name": record.name,
            "active": record.active,
            "nodes": record.nodes or [],
            "edges": record.edges or [],
            "createdAt": record.created_at,
            "updatedAt": record.updated_at,
        })

    # ============================================================================
    # Webhook Events
    # ============================================================================

    async def save_webhook_event(self, event: WebhookEvent) -> WebhookEvent:
        """Persist a received event."""
        try:
            async with self.get_session() as session:
                record = WebhookEventRecord(
                    id=event.id,
                    event=event.event,
                    version=event.version,
                    occurred_at=event.occurred_at,
                    data=event.data,
                    processed=event.processed
                )
                session.add(record)
                await session.commit()
                return event

        except Exception as e:
            logger.error("Failed to save webhook event", event_id=event.id, error=str(e))
            raise

    async def get_webhook_event(self, event_id: str) -> Optional[WebhookEvent]:
        """Get a received event by ID."""
        async with self.get_session() as session:
            stmt = select(WebhookEventRecord).where(WebhookEventRecord.id == event_id)
            result = await session.execute(stmt)
            record = result.scalar_one_or_none()
            if not record:
                return None
            return WebhookEvent(
                id=record.id,
                event=record.event,
                version=record.version,
                occurred_at=record.occurred_at,
                data=record.data or {},
                processed=record.processed
            )

    async def mark_event_processed(self, event_id: str) -> bool:
        """Flag an event as processed."""
        try:
            async with self.get_session() as session:
                stmt = select(WebhookEventRecord).where(WebhookEventRecord.id == event_id)
                result = await session.execute(stmt)
                record = result.scalar_one_or_none()

                if not record:
                    return False

                record.processed = True
                await session.commit()
                return True

        except Exception as e:
            logger.error("Failed to mark event processed", event_id=event_id, error=str(e))
            return False

    # ============================================================================
    # Execution Logs
    # ============================================================================

    async def create_execution_log(self, flow_id: str, event_id: str) -> str:
        """Open a running execution log and return its ID."""
        log_id = str(uuid.uuid4())
        async with self.get_session() as session:
            session.add(FlowExecutionLog(
                id=log_id,
                flow_id=flow_id,
                webhook_event_id=event_id,
                status=STATUS_RUNNING,
                executed_nodes=[]
            ))
            await session.commit()
        return log_id

    async def update_execution_log(self, log_id: str, status: str,
                                   executed_nodes: List[str],
                                   error: Optional[str] = None) -> None:
        """Finalize an execution log."""
        if status not in EXECUTION_STATUSES:
            raise ValueError(f"Invalid execution status: {status}")

        async with self.get_session() as session:
            stmt = select(FlowExecutionLog).where(FlowExecutionLog.id == log_id)
            result = await session.execute(stmt)
            log = result.scalar_one_or_none()

            if not log:
                logger.warning("Execution log not found", log_id=log_id)
                return

            log.status = status
            log.executed_nodes = list(executed_nodes)
            log.error = error
            log.completed_at = datetime.now(timezone.utc)
            await session.commit()

    async def get_execution_logs_for_event(self, event_id: str) -> List[FlowExecutionLog]:
        """Get all execution logs written for an event, oldest first."""
        try:
            async with self.get_session() as session:
                stmt = (
                    select(FlowExecutionLog)
                    .where(FlowExecutionLog.webhook_event_id == event_id)
                    .order_by(FlowExecutionLog.started_at)
                )
                result = await session.execute(stmt)
                return list(result.scalars().all())

        except Exception as e:
            logger.error("Failed to get execution logs", event_id=event_id, error=str(e))
            return []
