"""Execution state models for one flow invocation.

An ``ExecutionContext`` is created per ``execute_flow`` call and discarded
when it returns. Called sub-flows get a child context: it inherits the call
stack and depth for recursion protection but starts with its own visited set
and error list.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models.flow import WebhookEvent


@dataclass
class ValidationIssue:
    """A static problem found in a flow graph before execution."""
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None

    def __str__(self) -> str:
        return self.message


@dataclass
class FlowExecutionResult:
    """Outcome of one flow invocation."""
    success: bool
    executed_nodes: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "success": self.success,
            "executedNodes": list(self.executed_nodes),
            "errors": list(self.errors),
        }


@dataclass
class ExecutionContext:
    """Per-invocation mutable state.

    Invariant: ``depth == len(call_stack) - 1``.
    """
    event: WebhookEvent
    call_stack: List[str]
    depth: int = 0
    # Insertion-ordered set of visited node ids
    visited: Dict[str, None] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @classmethod
    def create(cls, flow_id: str, event: WebhookEvent) -> "ExecutionContext":
        """Context for a flow started directly by an event."""
        return cls(event=event, call_stack=[flow_id], depth=0)

    def child(self, flow_id: str, event: WebhookEvent) -> "ExecutionContext":
        """Context for a flow called from this one."""
        return ExecutionContext(
            event=event,
            call_stack=[*self.call_stack, flow_id],
            depth=self.depth + 1,
        )

    @property
    def payload(self) -> Dict[str, Any]:
        return self.event.data

    @property
    def flow_id(self) -> str:
        return self.call_stack[-1]

    def is_visited(self, node_id: str) -> bool:
        return node_id in self.visited

    def mark_visited(self, node_id: str) -> None:
        self.visited[node_id] = None

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def to_result(self) -> FlowExecutionResult:
        return FlowExecutionResult(
            success=not self.errors,
            executed_nodes=list(self.visited),
            errors=list(self.errors),
        )
