import os
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


ENV_FILE = os.path.join(os.path.dirname(__file__), '..', '.env')


class Settings(BaseSettings):
    """
    Runtime configuration for the Flowify backend.
    Values come from environment variables (DATABASE_URL, AI_PROJECT_ID, ...),
    then backend/.env, then the defaults below. Empty values count as unset.
    """
    model_config = SettingsConfigDict(
        env_file=ENV_FILE,
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = Field(..., description="SQLAlchemy connection URL.")
    storage_dir: str = Field(default="uploads", description="Directory holding uploaded and modified images.")

    ai_project_id: Optional[str] = Field(None, description="Cloud project hosting the image model.")
    ai_region: str = Field(default="us-central1", description="Region of the prediction endpoint.")
    ai_model: str = Field(default="imagegeneration@002", description="Publisher model identifier.")
    ai_endpoint: Optional[str] = Field(None, description="Full predict URL, overrides project/region/model.")
    ai_access_token: Optional[str] = Field(None, description="Bearer token sent to the prediction endpoint.")
    ai_timeout_seconds: float = Field(default=60.0, gt=0, description="Timeout for the outbound predict call.")
    use_mock_ai: bool = Field(default=False, description="Echo the source image instead of calling the provider.")

    placeholder_user_email: str = Field(
        default="placeholder@flowify.local",
        description="Owner of uploads while no authentication exists."
    )

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, ge=1, le=65535)
    log_level: str = Field(default="INFO")


@lru_cache
def get_settings() -> Settings:
    """
    Loads the settings once per process.
    Raises pydantic's ValidationError (a ValueError) if DATABASE_URL is not set.
    """
    return Settings()
