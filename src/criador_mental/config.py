from typing import Optional

from pydantic import AnyHttpUrl, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Generative AI backend (Gemini REST API)
    gemini_api_key: SecretStr = SecretStr("")
    gemini_api_base_url: AnyHttpUrl = "https://generativelanguage.googleapis.com/v1beta"
    image_model: str = "gemini-2.5-flash-image"
    chat_model: str = "gemini-2.5-flash"
    ai_timeout_seconds: float = 120.0

    # Identity provider tokens (HS256, Supabase-style claims)
    jwt_secret: SecretStr = SecretStr("")
    jwt_algo: str = "HS256"
    jwt_audience: str = "authenticated"

    # Document store; in-memory repository when unset
    database_url: Optional[str] = None

    # Blob storage for generated images
    blob_root: str = "/app/data/blobs"
    public_base_url: str = "http://localhost:8000"

    # Editor behaviour
    autosave_delay_seconds: float = 1.0
    canvas_width: int = 960
    canvas_height: int = 540
    canvas_background: str = "#FFFFFF"
    chat_history_limit: int = 200

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
