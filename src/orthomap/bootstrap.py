import logging

import inject

from src.orthomap.application.orchestrator import TaskOrchestrator
from src.orthomap.domain.repositories import TaskRepository
from src.orthomap.infrastructure.postgres.repositories import PostgresTaskRepository
from src.setup.app_config import configure_di
from src.setup.logging_config import configure_logging

logger = logging.getLogger(__name__)


async def build_orchestrator() -> TaskOrchestrator:
    """Configure logging and DI, prepare the task store and return an orchestrator."""
    configure_logging()
    configure_di()

    storage = inject.instance(TaskRepository)
    if isinstance(storage, PostgresTaskRepository):
        await storage.create_schema()

    orchestrator = TaskOrchestrator()
    logger.info("Task orchestrator ready", extra={"storage": type(storage).__name__})
    return orchestrator
