import logging
import sys

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class LoggingSettings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    model_config = ConfigDict(env_file=".env", extra="ignore")


def configure_logging(settings: LoggingSettings | None = None) -> None:
    """Send log records to stdout at the configured level."""
    if settings is None:
        settings = LoggingSettings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format=settings.LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    # httpx logs every request at INFO; one line per poll tick is noise.
    logging.getLogger("httpx").setLevel(logging.WARNING)
