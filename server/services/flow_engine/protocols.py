"""Collaborator interfaces consumed by the engine.

Usage:
    from services.flow_engine.protocols import NullExecutionLogWriter

    # Database implements both FlowRepositoryProtocol and
    # ExecutionLogWriterProtocol; tests pass AsyncMocks or the null writer.
    engine = FlowEngine(flow_repository=database, execution_logs=database)
"""

from typing import List, Optional, Protocol

from core.logging import get_logger
from models.flow import Flow

logger = get_logger(__name__)


class FlowRepositoryProtocol(Protocol):
    """Resolves CALL_FLOW targets."""

    async def find_flow_by_id(self, flow_id: str) -> Optional[Flow]:
        """Return the flow or None if it does not exist."""
        ...


class ExecutionLogWriterProtocol(Protocol):
    """Persists an audit record per flow invocation."""

    async def create_execution_log(self, flow_id: str, event_id: str) -> str:
        """Open a ``running`` log record and return its id."""
        ...

    async def update_execution_log(self, log_id: str, status: str,
                                   executed_nodes: List[str],
                                   error: Optional[str] = None) -> None:
        """Finalize a log record."""
        ...


class EmailSenderProtocol(Protocol):
    """Delivery boundary for SEND_EMAIL actions."""

    async def send(self, to: str, subject: str, message: str) -> None:
        ...


class NullExecutionLogWriter:
    """No-op log writer for engines running without persistence.

    This follows the Null Object pattern - all operations succeed silently.
    """

    async def create_execution_log(self, flow_id: str, event_id: str) -> str:
        return ""

    async def update_execution_log(self, log_id: str, status: str,
                                   executed_nodes: List[str],
                                   error: Optional[str] = None) -> None:
        return None


class LoggingEmailSender:
    """Accepts emails by logging them. No message leaves the process."""

    async def send(self, to: str, subject: str, message: str) -> None:
        logger.info("Email accepted for delivery", to=to, subject=subject,
                    message_length=len(message))
