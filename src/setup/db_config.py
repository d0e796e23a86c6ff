from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class DatabaseSettings(BaseSettings):
    # Unset means tasks live in process memory only.
    DATABASE_URL: str | None = None
    DATABASE_ECHO: bool = False

    model_config = ConfigDict(env_file=".env", extra="ignore")


def get_database_settings() -> DatabaseSettings:
    return DatabaseSettings()
