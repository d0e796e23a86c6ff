from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class PipelineSettings(BaseSettings):
    """Task orchestration, artifact layout and derivation tuning."""
    POLL_INTERVAL_SECONDS: float = 2.0
    POLL_ERROR_TOLERANCE: int = 0
    PROGRESS_DELTA: float = 1.0
    ARTIFACT_ROOT: str = "uploads"
    DEFAULT_SOURCE_CRS: str | None = None
    SPECTRAL_WORKERS: int = 4

    model_config = ConfigDict(env_file=".env", extra="ignore")


def get_pipeline_settings() -> PipelineSettings:
    """Return a fresh pipeline settings instance."""
    return PipelineSettings()
