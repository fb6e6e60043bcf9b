"""
Environment-driven settings.

Values come from the process environment; a ``.env`` file in the project root
is loaded first so local development does not need exported variables.
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

project_root = Path(__file__).parent
load_dotenv(project_root / ".env")


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {'1', 'true', 'yes', 'on'}


class Settings(BaseModel):
    database_url: str = "sqlite:///statements.db"
    blob_storage_dir: str = "uploads"
    storage_bucket: str = "bank-statements"

    groq_api_key: Optional[str] = None
    llm_base_url: str = "https://api.groq.com/openai/v1"
    llm_model: str = "llama-3.1-8b-instant"
    llm_timeout: float = 60.0

    pdf_strategy: str = Field("ai", pattern="^(ai|local)$")
    pdf_chunk_size: int = Field(4000, gt=0)
    auto_categorize: bool = False
    log_level: str = "INFO"

    @field_validator("pdf_strategy", mode="before")
    @classmethod
    def normalize_strategy(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, keeping defaults for unset ones."""
        env = os.environ
        values = {
            'database_url': env.get('DATABASE_URL'),
            'blob_storage_dir': env.get('BLOB_STORAGE_DIR'),
            'storage_bucket': env.get('STORAGE_BUCKET'),
            'groq_api_key': env.get('GROQ_API_KEY') or None,
            'llm_base_url': env.get('LLM_BASE_URL'),
            'llm_model': env.get('LLM_MODEL'),
            'llm_timeout': env.get('LLM_TIMEOUT'),
            'pdf_strategy': env.get('PDF_STRATEGY'),
            'pdf_chunk_size': env.get('PDF_CHUNK_SIZE'),
            'log_level': env.get('LOG_LEVEL'),
        }
        values = {key: value for key, value in values.items() if value is not None}
        values['auto_categorize'] = _env_bool(env.get('AUTO_CATEGORIZE'), False)
        return cls(**values)


def get_settings() -> Settings:
    return Settings.from_env()
