from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class OdmSettings(BaseSettings):
    """Connection settings for the NodeODM job runner."""
    ODM_URL: str = "http://localhost:3000"
    ODM_TOKEN: str | None = None
    ODM_TIMEOUT_SECONDS: float = 30.0

    model_config = ConfigDict(env_file=".env", extra="ignore")


def get_odm_settings() -> OdmSettings:
    return OdmSettings()
