"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from services.flow_engine import FlowEngine, HttpSender, LoggingEmailSender
from services.worker_pool import FlowWorkerPool
from services.webhook_service import WebhookService


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Database (flow repository and execution log writer for the engine)
    database = providers.Singleton(
        Database,
        settings=settings
    )

    http_sender = providers.Singleton(
        HttpSender,
        timeout_ms=settings.provided.http_timeout_ms
    )

    email_sender = providers.Singleton(
        LoggingEmailSender
    )

    flow_engine = providers.Singleton(
        FlowEngine,
        flow_repository=database,
        execution_logs=database,
        email_sender=email_sender,
        http=http_sender,
        max_depth=settings.provided.max_flow_depth
    )

    worker_pool = providers.Singleton(
        FlowWorkerPool,
        concurrency=settings.provided.worker_concurrency,
        queue_size=settings.provided.worker_queue_size
    )

    webhook_service = providers.Singleton(
        WebhookService,
        database=database,
        flow_engine=flow_engine,
        worker_pool=worker_pool
    )


# Global container instance
container = Container()
