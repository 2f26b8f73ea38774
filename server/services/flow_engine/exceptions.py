"""Flow engine exception hierarchy."""

from typing import List, Optional


class FlowEngineError(Exception):
    """Base exception for all flow engine errors."""


class ValidationError(FlowEngineError):
    """Malformed flow or action configuration."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class ExecutionError(FlowEngineError):
    """Runtime failure of a side effect (HTTP call, unknown action, ...)."""

    def __init__(self, message: str, node_id: Optional[str] = None):
        self.node_id = node_id
        super().__init__(message)


class HttpTimeoutError(ExecutionError):
    """Outbound HTTP call did not complete within the hard timeout."""

    def __init__(self, method: str, url: str, timeout_ms: int):
        self.method = method
        self.url = url
        self.timeout_ms = timeout_ms
        super().__init__(f"Timeout executing HTTP {method} {url} ({timeout_ms}ms)")


class RecursionLimitError(FlowEngineError):
    """Flow call chain exceeded the depth limit or called itself again."""

    def __init__(self, message: str, call_stack: List[str]):
        self.call_stack = list(call_stack)
        super().__init__(f"{message}. Stack: {' -> '.join(self.call_stack)}")


class QueueFullError(FlowEngineError):
    """Background worker queue cannot accept more jobs."""

    def __init__(self, queue_size: int):
        self.queue_size = queue_size
        super().__init__(f"Worker queue is full ({queue_size} pending jobs)")
