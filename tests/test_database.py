"""Tests for the SQLite-backed database service."""

import pytest

from core.config import Settings
from core.database import Database
from models.database import FlowRecord
from models.flow import WebhookEvent
from services.flow_engine import FlowEngine
from services.webhook_service import WebhookService
from services.worker_pool import FlowWorkerPool

pytestmark = pytest.mark.asyncio


@pytest.fixture
async def database(tmp_path):
    settings = Settings(database_url=f"sqlite+aiosqlite:///{tmp_path}/flows.db")
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


async def store_raw_flow(database, flow_id, nodes, edges=None, active=True):
    """Write a flow record without going through the Flow model."""
    async with database.get_session() as session:
        session.add(FlowRecord(id=flow_id, name=flow_id, active=active,
                               nodes=nodes, edges=edges or []))
        await session.commit()


class TestFlows:

    async def test_save_and_find(self, database, lead_flow):
        assert await database.save_flow(lead_flow) is True

        loaded = await database.find_flow_by_id("flow-1")

        assert loaded is not None
        assert loaded.name == lead_flow.name
        assert loaded.active is True
        assert [n.id for n in loaded.nodes] == ["trigger", "condition", "action", "end"]
        assert loaded.nodes[2].data.config.url == "https://crm.example.com/leads"
        assert loaded.edges[1].source_handle == "yes"
        assert loaded.trigger_event == "lead.converted"

    async def test_find_missing(self, database):
        assert await database.find_flow_by_id("nope") is None

    async def test_save_updates_existing(self, database, lead_flow):
        await database.save_flow(lead_flow)
        await database.save_flow(lead_flow.model_copy(update={"name": "Renamed", "active": False}))

        loaded = await database.find_flow_by_id("flow-1")

        assert loaded.name == "Renamed"
        assert loaded.active is False

    async def test_find_active_flows_by_event(self, database, make_flow, node):
        await database.save_flow(make_flow([node("t", "trigger", {"event": "a"})], [], flow_id="f-a"))
        await database.save_flow(make_flow([node("t", "trigger", {"event": "b"})], [], flow_id="f-b"))
        await database.save_flow(make_flow([node("t", "trigger", {"event": "a"})], [],
                                           flow_id="f-off", active=False))

        assert [f.id for f in await database.find_active_flows()] == ["f-a", "f-b"]
        assert [f.id for f in await database.find_active_flows_by_event("a")] == ["f-a"]
        assert await database.find_active_flows_by_event("c") == []


class TestInvalidStoredFlows:

    BAD_NODES = [
        {"id": "t", "type": "trigger", "data": {"event": "e"}},
        {"id": "a", "type": "action", "data": {"type": "LOG", "config": {"message": 123}}},
    ]

    async def test_active_flows_skip_unparseable_record(self, database, make_flow, node):
        await store_raw_flow(database, "bad", self.BAD_NODES)
        await database.save_flow(make_flow([node("t", "trigger", {"event": "e"})], [],
                                           flow_id="good"))

        flows = await database.find_active_flows_by_event("e")

        assert [f.id for f in flows] == ["good"]

    async def test_find_by_id_raises_for_unparseable_record(self, database):
        await store_raw_flow(database, "bad", self.BAD_NODES)

        with pytest.raises(ValueError, match="stored flow bad is invalid"):
            await database.find_flow_by_id("bad")

    async def test_edge_without_target_is_skipped(self, database):
        await store_raw_flow(database, "no-target",
                             [{"id": "t", "type": "trigger", "data": {"event": "e"}}],
                             edges=[{"id": "e1", "source": "t"}])

        assert await database.find_active_flows() == []

    async def test_good_flow_runs_next_to_bad_one(self, database, make_flow, node, edge):
        await store_raw_flow(database, "bad", self.BAD_NODES)
        await database.save_flow(make_flow(
            [node("t", "trigger", {"event": "e"}),
             node("a", "action", {"type": "LOG", "config": {"message": "hi {{name}}"}}),
             node("end", "end")],
            [edge("t", "a"), edge("a", "end")],
            flow_id="good",
        ))
        engine = FlowEngine(flow_repository=database, execution_logs=database)
        service = WebhookService(database=database, flow_engine=engine,
                                 worker_pool=FlowWorkerPool(concurrency=1, queue_size=5))
        event = WebhookEvent(event="e", data={"name": "Ana"})
        await database.save_webhook_event(event)

        results = await service.process_webhook_flows(event)

        assert [r.executed_nodes for r in results] == [["t", "a", "end"]]
        assert (await database.get_webhook_event(event.id)).processed is True
        logs = await database.get_execution_logs_for_event(event.id)
        assert [(log.flow_id, log.status) for log in logs] == [("good", "success")]


class TestWebhookEvents:

    async def test_save_and_mark_processed(self, database):
        event = WebhookEvent(event="lead.converted", data={"lead": {"source": "whatsapp"}})
        await database.save_webhook_event(event)

        assert await database.mark_event_processed(event.id) is True

        loaded = await database.get_webhook_event(event.id)
        assert loaded.processed is True
        assert loaded.data == {"lead": {"source": "whatsapp"}}

    async def test_mark_unknown_event(self, database):
        assert await database.mark_event_processed("nope") is False


class TestExecutionLogs:

    async def test_log_lifecycle(self, database, lead_flow):
        await database.save_flow(lead_flow)

        log_id = await database.create_execution_log("flow-1", "event-1")
        logs = await database.get_execution_logs_for_event("event-1")
        assert [(log.id, log.status) for log in logs] == [(log_id, "running")]

        await database.update_execution_log(log_id, "error", ["trigger", "condition"], "a; b")

        log = (await database.get_execution_logs_for_event("event-1"))[0]
        assert log.status == "error"
        assert log.executed_nodes == ["trigger", "condition"]
        assert log.error == "a; b"
        assert log.completed_at is not None

    async def test_rejects_unknown_status(self, database):
        with pytest.raises(ValueError):
            await database.update_execution_log("log-1", "done", [])

    async def test_update_unknown_log_is_ignored(self, database):
        await database.update_execution_log("nope", "success", [])
        assert await database.get_execution_logs_for_event("event-1") == []
