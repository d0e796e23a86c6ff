import logging

import inject

from src.orthomap.application.products import ProductBuilder
from src.orthomap.domain.repositories import (
    ExternalJobClient,
    NotificationSink,
    TaskRepository,
)
from src.orthomap.domain.spectral.engine import SpectralDerivationEngine
from src.orthomap.infrastructure.artifacts import ArtifactStore
from src.orthomap.infrastructure.memory.repositories import InMemoryTaskRepository
from src.orthomap.infrastructure.nodeodm.client import NodeOdmClient
from src.orthomap.infrastructure.postgres.orm import PostgresOrm
from src.orthomap.infrastructure.postgres.repositories import PostgresTaskRepository
from src.orthomap.infrastructure.raster.reprojector import GeoReprojector
from src.setup.db_config import get_database_settings
from src.setup.odm_config import get_odm_settings
from src.setup.pipeline_config import get_pipeline_settings
from src.setup.stream_config import build_notification_sink

logger = logging.getLogger(__name__)


def build_task_repository() -> TaskRepository:
    settings = get_database_settings()
    if settings.DATABASE_URL is None:
        logger.warning("DATABASE_URL is not set, tasks are kept in memory only")
        return InMemoryTaskRepository()
    return PostgresTaskRepository(
        PostgresOrm(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    )


def build_job_client() -> ExternalJobClient:
    settings = get_odm_settings()
    return NodeOdmClient(
        settings.ODM_URL,
        token=settings.ODM_TOKEN,
        timeout=settings.ODM_TIMEOUT_SECONDS,
    )


def build_artifact_store() -> ArtifactStore:
    return ArtifactStore(get_pipeline_settings().ARTIFACT_ROOT)


def build_product_builder() -> ProductBuilder:
    settings = get_pipeline_settings()
    return ProductBuilder(
        inject.instance(ArtifactStore),
        SpectralDerivationEngine(max_workers=settings.SPECTRAL_WORKERS),
        GeoReprojector(settings.DEFAULT_SOURCE_CRS),
    )


def configure_di() -> None:
    """Bind the orchestrator's collaborators; a no-op when already configured."""
    if inject.is_configured():
        return

    def _config(binder: inject.Binder) -> None:
        binder.bind_to_constructor(TaskRepository, build_task_repository)
        binder.bind_to_constructor(NotificationSink, build_notification_sink)
        binder.bind_to_constructor(ExternalJobClient, build_job_client)
        binder.bind_to_constructor(ArtifactStore, build_artifact_store)
        binder.bind_to_constructor(ProductBuilder, build_product_builder)

    inject.configure(_config)
