"""Action dispatch for action nodes.

Uses a registry keyed by action type. Each handler either returns normally
or raises; the traversal engine records the error and keeps walking past the
action node either way.
"""

import json
from typing import Any, Awaitable, Callable, Dict, Optional, TYPE_CHECKING

from constants import (
    ACTION_CALL_FLOW,
    ACTION_HTTP_REQUEST,
    ACTION_LOG,
    ACTION_SEND_EMAIL,
    DEFAULT_ACTION_HTTP_METHOD,
    HTTP_METHODS,
    STATUS_ERROR,
    STATUS_SUCCESS,
)
from core.logging import get_logger
from models.flow import (
    CallFlowActionConfig,
    EmailActionConfig,
    Flow,
    HttpActionConfig,
    LogActionConfig,
    UnknownAction,
    WebhookEvent,
)
from .exceptions import ExecutionError, ValidationError
from .http import HttpSender
from .paths import interpolate_variables
from .protocols import (
    EmailSenderProtocol,
    ExecutionLogWriterProtocol,
    FlowRepositoryProtocol,
    LoggingEmailSender,
    NullExecutionLogWriter,
)

if TYPE_CHECKING:
    from .models import ExecutionContext, FlowExecutionResult

logger = get_logger(__name__)

ExecuteFlowFn = Callable[[Flow, WebhookEvent, "ExecutionContext"], Awaitable["FlowExecutionResult"]]


class ActionDispatcher:
    """Executes action node side effects using registry-based dispatch."""

    def __init__(
        self,
        execute_flow_fn: ExecuteFlowFn,
        flow_repository: Optional[FlowRepositoryProtocol] = None,
        execution_logs: Optional[ExecutionLogWriterProtocol] = None,
        email_sender: Optional[EmailSenderProtocol] = None,
        http: Optional[HttpSender] = None,
    ):
        """
        Args:
            execute_flow_fn: Engine entry point used by CALL_FLOW
                Signature: async def (flow, event, parent_context) -> FlowExecutionResult
            flow_repository: Resolves CALL_FLOW targets
            execution_logs: Audit log writer for called flows
            email_sender: SEND_EMAIL delivery boundary
            http: Outbound HTTP sender
        """
        self._execute_flow = execute_flow_fn
        self.flow_repository = flow_repository
        self.execution_logs = execution_logs or NullExecutionLogWriter()
        self.email_sender = email_sender or LoggingEmailSender()
        self.http = http or HttpSender()
        self._handlers = self._build_handler_registry()

    def _build_handler_registry(self) -> Dict[str, Callable[..., Awaitable[None]]]:
        return {
            ACTION_LOG: self._handle_log,
            ACTION_HTTP_REQUEST: self._handle_http_request,
            ACTION_SEND_EMAIL: self._handle_send_email,
            ACTION_CALL_FLOW: self._handle_call_flow,
        }

    async def execute(self, node_id: str, action: Any, context: "ExecutionContext") -> None:
        """Run one action.

        Raises:
            ValidationError: Missing required configuration
            ExecutionError: Side effect failed or action type is unknown
        """
        if action is None or (isinstance(action, UnknownAction) and not action.type):
            raise ExecutionError(f"Action node {node_id}: action data invalid or not configured",
                                 node_id=node_id)

        handler = self._handlers.get(action.type)
        if handler is None:
            raise ExecutionError(f"Action node {node_id}: unknown action type: {action.type}",
                                 node_id=node_id)

        logger.debug("Executing action", node_id=node_id, action_type=action.type)
        await handler(node_id, action.config, context)

    # =========================================================================
    # HANDLERS
    # =========================================================================

    async def _handle_log(self, node_id: str, config: LogActionConfig,
                          context: "ExecutionContext") -> None:
        message = config.message or "Log action executed"
        logger.info("[LOG action]", node_id=node_id, flow_id=context.flow_id,
                    message=interpolate_variables(message, context.payload))

    async def _handle_http_request(self, node_id: str, config: HttpActionConfig,
                                   context: "ExecutionContext") -> None:
        if not config.url:
            raise ValidationError(f"Action node {node_id}: URL not configured for HTTP_REQUEST",
                                  field="url")

        method = (config.method or DEFAULT_ACTION_HTTP_METHOD).upper()
        if method not in HTTP_METHODS:
            raise ValidationError(f"Action node {node_id}: unsupported HTTP method {method}",
                                  field="method")
        url = interpolate_variables(config.url, context.payload)
        headers = {"Content-Type": "application/json", **config.headers}

        content = None
        if config.body is not None:
            content = interpolate_variables(json.dumps(config.body), context.payload)

        response = await self.http.request(method, url, headers=headers, content=content)

        if not response.is_success:
            raise ExecutionError(f"HTTP {response.status_code}: {response.text}", node_id=node_id)

        logger.info("[HTTP action] Request completed", node_id=node_id, method=method,
                    url=url, status=response.status_code)

    async def _handle_send_email(self, node_id: str, config: EmailActionConfig,
                                 context: "ExecutionContext") -> None:
        if not config.email:
            raise ValidationError(f"Action node {node_id}: email not configured for SEND_EMAIL",
                                  field="email")

        to = interpolate_variables(config.email, context.payload)
        subject = interpolate_variables(config.subject or "", context.payload)
        message = interpolate_variables(config.message or "", context.payload)
        await self.email_sender.send(to, subject, message)
        logger.info("[EMAIL action] Accepted", node_id=node_id, to=to)

    async def _handle_call_flow(self, node_id: str, config: CallFlowActionConfig,
                                context: "ExecutionContext") -> None:
        """Run another flow as part of this one.

        Misconfiguration (no flowId, unknown flow) raises ValidationError.
        An inactive target is skipped with a warning. The called flow's own
        errors are logged and written to its execution log, but do not fail
        the calling flow.
        """
        flow_id = config.flow_id
        if not flow_id:
            raise ValidationError(f"Action node {node_id}: flowId not configured for CALL_FLOW",
                                  field="flowId")
        if self.flow_repository is None:
            raise ExecutionError(f"Action node {node_id}: no flow repository configured for CALL_FLOW",
                                 node_id=node_id)

        logger.info("[CALL_FLOW action] Calling flow", node_id=node_id, target_flow_id=flow_id,
                    depth=context.depth, call_stack=context.call_stack)

        try:
            target = await self.flow_repository.find_flow_by_id(flow_id)
        except Exception as e:
            raise ExecutionError(f"Error calling flow {flow_id}: {e}", node_id=node_id) from e

        if target is None:
            raise ValidationError(f"Action node {node_id}: flow {flow_id} not found", field="flowId")

        if not target.active:
            logger.warning("[CALL_FLOW action] Target flow is inactive, skipping",
                           node_id=node_id, target_flow_id=flow_id)
            return

        # Configured data wins on key collision
        merged = {**context.payload, **config.data}
        sub_event = context.event.model_copy(update={"data": merged})

        log_id = await self._open_execution_log(target.id, context.event.id)
        result = await self._execute_flow(target, sub_event, context)
        await self._close_execution_log(log_id, target.id, result)

        if result.success:
            logger.info("[CALL_FLOW action] Called flow completed", node_id=node_id,
                        target_flow_id=flow_id, executed_nodes=len(result.executed_nodes))
        else:
            logger.warning("[CALL_FLOW action] Called flow finished with errors", node_id=node_id,
                           target_flow_id=flow_id, error_count=len(result.errors),
                           errors=result.errors)

    # =========================================================================
    # EXECUTION LOGS FOR CALLED FLOWS
    # =========================================================================

    async def _open_execution_log(self, flow_id: str, event_id: str) -> Optional[str]:
        try:
            return await self.execution_logs.create_execution_log(flow_id, event_id)
        except Exception as e:
            logger.error("Failed to create execution log for called flow",
                         flow_id=flow_id, event_id=event_id, error=str(e))
            return None

    async def _close_execution_log(self, log_id: Optional[str], flow_id: str,
                                   result: "FlowExecutionResult") -> None:
        if not log_id:
            return
        try:
            await self.execution_logs.update_execution_log(
                log_id,
                STATUS_SUCCESS if result.success else STATUS_ERROR,
                result.executed_nodes,
                "; ".join(result.errors) if result.errors else None,
            )
        except Exception as e:
            logger.warning("Failed to update execution log for called flow",
                           log_id=log_id, flow_id=flow_id, error=str(e))
