"""Webhook orchestration: persist the event, run matching flows, log each run."""

import asyncio
import time
from typing import List, Optional

from constants import STATUS_ERROR, STATUS_SUCCESS
from core.database import Database
from core.logging import get_logger, log_execution_time
from models.flow import Flow, WebhookEvent, WebhookPayload
from services.flow_engine import FlowEngine, FlowExecutionResult
from services.worker_pool import FlowWorkerPool

logger = get_logger(__name__)


class WebhookService:
    """Receives webhook events and runs the active flows listening to them."""

    def __init__(self, database: Database, flow_engine: FlowEngine, worker_pool: FlowWorkerPool):
        self.database = database
        self.flow_engine = flow_engine
        self.worker_pool = worker_pool
        self.worker_pool.set_error_callback(self._on_job_error)

    async def receive_webhook(self, payload: WebhookPayload) -> WebhookEvent:
        """Persist the event and queue it for background processing.

        Raises:
            QueueFullError: The worker pool cannot take more work
        """
        fields = {"event": payload.event, "version": payload.version, "data": payload.data}
        if payload.occurred_at:
            fields["occurred_at"] = payload.occurred_at
        event = WebhookEvent(**fields)

        await self.database.save_webhook_event(event)
        logger.info("Webhook received", event_id=event.id, event_name=event.event)

        self.worker_pool.submit(lambda: self.process_webhook_flows(event), name=f"webhook:{event.id}")
        return event

    async def process_webhook_flows(self, event: WebhookEvent) -> List[FlowExecutionResult]:
        """Run every active flow triggered by ``event`` concurrently."""
        start_time = time.time()
        flows = await self.database.find_active_flows_by_event(event.event)

        if not flows:
            logger.info("No active flows for event", event_id=event.id, event_name=event.event)
        else:
            logger.info("Processing flows for event", event_id=event.id, event_name=event.event,
                        flow_count=len(flows), flow_ids=[f.id for f in flows])

        results = await asyncio.gather(*(self.execute_flow_for_event(f, event) for f in flows))

        await self.database.mark_event_processed(event.id)
        log_execution_time(logger, "process_webhook_flows", start_time, time.time(),
                           event_id=event.id, flow_count=len(flows),
                           failed=sum(1 for r in results if not r.success))
        return list(results)

    async def execute_flow_for_event(self, flow: Flow, event: WebhookEvent) -> FlowExecutionResult:
        """Run one flow inside its own execution log record."""
        log_id: Optional[str] = None
        try:
            log_id = await self.database.create_execution_log(flow.id, event.id)
        except Exception as e:
            logger.error("Failed to create execution log", flow_id=flow.id,
                         event_id=event.id, error=str(e))

        result = await self.flow_engine.execute_flow(flow, event)

        if log_id:
            try:
                await self.database.update_execution_log(
                    log_id,
                    STATUS_SUCCESS if result.success else STATUS_ERROR,
                    result.executed_nodes,
                    "; ".join(result.errors) if result.errors else None,
                )
            except Exception as e:
                logger.error("Failed to update execution log", log_id=log_id,
                             flow_id=flow.id, error=str(e))

        if result.success:
            logger.info("Flow executed", flow_id=flow.id, event_id=event.id,
                        executed_nodes=result.executed_nodes)
        else:
            logger.warning("Flow executed with errors", flow_id=flow.id, event_id=event.id,
                           errors=result.errors)
        return result

    async def _on_job_error(self, job_name: str, error: Exception) -> None:
        logger.error("Webhook processing failed", job=job_name, error=str(error))
