from __future__ import annotations

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # API Keys
    openai_api_key: str = ""  # Only needed for "openai:" embedding models

    # Embeddings
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_normalize: bool = True

    # Exemplar collection used when a caller does not name one
    exemplar_store_path: str = "data/exemplars/starter.json"

    # Segmentation defaults
    segment_min_words: int = 5
    segment_max_words: int = 100
    segment_overlap_words: int = 25
    speaker_pattern: str = r"^([A-Z][A-Z\s.]+):"

    # App config
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    max_upload_bytes: int = 5 * 1024 * 1024

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


def configure_logging(level: str | None = None) -> None:
    """Install a root handler once; later calls only adjust the level."""
    resolved = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(resolved)


settings = get_settings()
