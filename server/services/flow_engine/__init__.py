"""Flow engine - executes trigger/condition/action graphs for webhook events.

Walks a flow from its trigger node, evaluates conditions at branch points,
dispatches actions and calls other flows with depth and loop protection.
"""

from services.flow_engine.engine import FlowEngine
from services.flow_engine.exceptions import (
    ExecutionError,
    FlowEngineError,
    HttpTimeoutError,
    QueueFullError,
    RecursionLimitError,
    ValidationError,
)
from services.flow_engine.http import HttpSender
from services.flow_engine.models import ExecutionContext, FlowExecutionResult, ValidationIssue
from services.flow_engine.protocols import LoggingEmailSender, NullExecutionLogWriter
from services.flow_engine.validator import validate_flow

__all__ = [
    "FlowEngine",
    "HttpSender",
    "ExecutionContext",
    "FlowExecutionResult",
    "ValidationIssue",
    "validate_flow",
    "LoggingEmailSender",
    "NullExecutionLogWriter",
    "FlowEngineError",
    "ValidationError",
    "ExecutionError",
    "HttpTimeoutError",
    "RecursionLimitError",
    "QueueFullError",
]
