"""Flow traversal engine.

Walks a flow graph from its trigger node for one webhook event:

    trigger -> successors (sequential, edge order)
    condition -> all edges of the chosen branch (concurrent)
    action -> side effect, then successors (sequential, even after a failure)
    end -> stop

Every node is visited at most once per flow invocation. CALL_FLOW actions
re-enter ``execute_flow`` with a child context that carries the call stack
for depth and loop protection.
"""

import asyncio
import time
from typing import Optional

from constants import CONDITION_TYPE_FIELD, CONDITION_TYPE_HTTP, MAX_FLOW_DEPTH
from core.logging import flow_log_context, get_logger, log_execution_time
from models.flow import (
    ActionNode,
    ConditionNode,
    EndNode,
    Flow,
    TriggerNode,
    WebhookEvent,
)
from .actions import ActionDispatcher
from .conditions import evaluate_condition, evaluate_http_condition, select_branch_edges
from .exceptions import ExecutionError, RecursionLimitError, ValidationError
from .http import HttpSender
from .models import ExecutionContext, FlowExecutionResult
from .protocols import (
    EmailSenderProtocol,
    ExecutionLogWriterProtocol,
    FlowRepositoryProtocol,
)
from .validator import validate_flow

logger = get_logger(__name__)


class FlowEngine:
    """Executes flows against webhook events.

    Stateless between calls; all per-run state lives in ``ExecutionContext``.
    """

    def __init__(
        self,
        flow_repository: Optional[FlowRepositoryProtocol] = None,
        execution_logs: Optional[ExecutionLogWriterProtocol] = None,
        email_sender: Optional[EmailSenderProtocol] = None,
        http: Optional[HttpSender] = None,
        max_depth: int = MAX_FLOW_DEPTH,
    ):
        self.max_depth = max_depth
        self.http = http or HttpSender()
        self.actions = ActionDispatcher(
            execute_flow_fn=self.execute_flow,
            flow_repository=flow_repository,
            execution_logs=execution_logs,
            email_sender=email_sender,
            http=self.http,
        )

    async def execute_flow(self, flow: Flow, event: WebhookEvent,
                           parent_context: Optional[ExecutionContext] = None) -> FlowExecutionResult:
        """Run ``flow`` for ``event``.

        Never raises: validation problems, recursion limits and unexpected
        failures are all returned in ``FlowExecutionResult.errors``.

        Args:
            flow: Flow snapshot to run
            event: Event whose ``data`` is the payload
            parent_context: Context of the calling flow for CALL_FLOW

        Returns:
            FlowExecutionResult with visited node ids in visit order
        """
        if parent_context is None:
            context = ExecutionContext.create(flow.id, event)
        else:
            context = parent_context.child(flow.id, event)

        with flow_log_context(flow.id, event.id, context.depth):
            return await self._run(flow, event, context)

    async def _run(self, flow: Flow, event: WebhookEvent,
                   context: ExecutionContext) -> FlowExecutionResult:
        start_time = time.time()
        logger.info("Flow started", flow_id=flow.id, flow_name=flow.name, event_name=event.event,
                    event_id=event.id, depth=context.depth)

        try:
            self._guard_recursion(flow, context)

            issues = validate_flow(flow)
            if issues:
                for issue in issues:
                    context.add_error(str(issue))
                logger.warning("Flow validation failed", flow_id=flow.id,
                               issues=[str(i) for i in issues])
                return context.to_result()

            trigger = flow.get_trigger_node()
            if context.depth == 0:
                if trigger.data.event != event.event:
                    context.add_error(
                        f"Event mismatch: flow {flow.id} is triggered by "
                        f"'{trigger.data.event}' but received '{event.event}'"
                    )
                    return context.to_result()
            else:
                logger.debug("Skipping trigger event check for called flow", flow_id=flow.id,
                             trigger_event=trigger.data.event, depth=context.depth)

            await self._visit_node(flow, trigger.id, context)

        except RecursionLimitError as e:
            logger.warning("Flow call chain stopped", flow_id=flow.id, error=str(e))
            context.add_error(str(e))
        except Exception as e:
            logger.error("Fatal error executing flow", flow_id=flow.id, error=str(e), exc_info=True)
            context.add_error(f"Fatal error executing flow: {e}")

        result = context.to_result()
        log_execution_time(logger, "execute_flow", start_time, time.time(),
                           flow_id=flow.id, depth=context.depth, success=result.success,
                           executed_nodes=len(result.executed_nodes), errors=len(result.errors))
        return result

    def _guard_recursion(self, flow: Flow, context: ExecutionContext) -> None:
        if context.depth >= self.max_depth:
            raise RecursionLimitError(
                f"Maximum flow depth ({self.max_depth}) exceeded calling flow {flow.id}",
                context.call_stack,
            )
        if context.call_stack.count(flow.id) > 1:
            raise RecursionLimitError(f"Loop detected: flow {flow.id} calls itself",
                                      context.call_stack)

    # =========================================================================
    # NODE DISPATCH
    # =========================================================================

    async def _visit_node(self, flow: Flow, node_id: str, context: ExecutionContext) -> None:
        if context.is_visited(node_id):
            return

        node = flow.get_node(node_id)
        if node is None:
            context.add_error(f"Node {node_id} not found in flow {flow.id}")
            return

        context.mark_visited(node_id)
        logger.debug("Visiting node", flow_id=flow.id, node_id=node_id, node_type=node.type)

        if isinstance(node, TriggerNode):
            await self._visit_successors(flow, node_id, context)

        elif isinstance(node, EndNode):
            logger.debug("Reached end node", flow_id=flow.id, node_id=node_id)

        elif isinstance(node, ConditionNode):
            await self._run_condition(flow, node, context)

        elif isinstance(node, ActionNode):
            await self._run_action(flow, node, context)

        else:
            context.add_error(f"Error executing node {node_id}: unknown node type: {node.type}")

    async def _visit_successors(self, flow: Flow, node_id: str, context: ExecutionContext) -> None:
        for next_id in flow.next_node_ids(node_id):
            await self._visit_node(flow, next_id, context)

    async def _run_condition(self, flow: Flow, node: ConditionNode, context: ExecutionContext) -> None:
        """Evaluate the condition and follow its branch. Errors stop this path."""
        try:
            result = await self._evaluate(node, context)
        except Exception as e:
            logger.warning("Condition failed", flow_id=flow.id, node_id=node.id, error=str(e))
            context.add_error(f"Error executing node {node.id}: {e}")
            return

        edges = select_branch_edges(flow.outgoing_edges(node.id), result)
        if not edges:
            logger.debug("No edges for branch, path ends", flow_id=flow.id,
                         node_id=node.id, result=result)
            return

        await asyncio.gather(*(self._visit_node(flow, e.target, context) for e in edges))

    async def _evaluate(self, node: ConditionNode, context: ExecutionContext) -> bool:
        data = node.data
        condition_type = data.condition_type or CONDITION_TYPE_FIELD

        if condition_type == CONDITION_TYPE_FIELD:
            if not data.field or not data.field.strip():
                raise ValidationError(f"Condition node {node.id}: field not configured",
                                      field="field")
            return evaluate_condition(data, context.payload)

        if condition_type == CONDITION_TYPE_HTTP:
            if data.http_config is None:
                raise ValidationError(f"Condition node {node.id}: httpConfig not configured",
                                      field="httpConfig")
            return await evaluate_http_condition(data.http_config, context.payload, self.http)

        raise ExecutionError(f"Condition node {node.id}: unknown condition type: {condition_type}",
                             node_id=node.id)

    async def _run_action(self, flow: Flow, node: ActionNode, context: ExecutionContext) -> None:
        """Execute the action, then continue to successors even if it failed."""
        try:
            await self.actions.execute(node.id, node.data, context)
        except Exception as e:
            logger.warning("Action failed", flow_id=flow.id, node_id=node.id, error=str(e))
            context.add_error(f"Error executing node {node.id}: {e}")

        await self._visit_successors(flow, node.id, context)
