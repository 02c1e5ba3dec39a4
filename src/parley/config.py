"""Runtime configuration.

Settings are read from environment variables (a ``.env`` file is loaded
first) plus an optional JSON file listing the selectable models.
"""

import json
import os
from pathlib import Path
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .llm.base import DEFAULT_PROVIDER_TIMEOUT
from .llm.models import ProviderFamily, ProviderModel

DEFAULT_MODELS: tuple[ProviderModel, ...] = (
    ProviderModel(model_id="gpt-4o-mini", name="gpt-4o-mini", provider="openai"),
    ProviderModel(
        model_id="gpt-4.1",
        name="gpt-4.1",
        provider="openai",
        search_tool="web_search_preview",
        responses_api=True,
    ),
    ProviderModel(
        model_id="o4-mini",
        name="o4-mini",
        provider="openai",
        reasoning=True,
        responses_api=True,
    ),
    ProviderModel(
        model_id="claude-sonnet-4-20250514",
        name="claude-sonnet-4",
        provider="anthropic",
        search_tool="web_search_20250305",
    ),
    ProviderModel(model_id="gemini-2.5-flash", name="gemini-2.5-flash", provider="gemini"),
    ProviderModel(model_id="openai.gpt-oss-120b-1:0", name="gpt-oss-120b", provider="aws"),
    ProviderModel(model_id="llama3.2", name="llama3.2", provider="local"),
)


class Settings(BaseModel):
    """Engine and provider configuration."""

    # Provider credentials and endpoints
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    openai_org_id: str | None = None
    anthropic_api_key: str | None = None
    gemini_api_key: str | None = None
    aws_bedrock_api_key: str | None = None
    aws_region: str = "us-east-1"
    local_llm_url: str = "http://localhost:11434/v1"

    # Models
    models: list[ProviderModel] = Field(default_factory=lambda: list(DEFAULT_MODELS))
    default_model: str = "gpt-4o-mini"
    summary_model: str = "gpt-4o-mini"

    # Turn limits and deadlines
    max_iterations: int = Field(default=10, ge=1)
    max_output_tokens: int = Field(default=4000, ge=1)
    provider_timeout: float = Field(default=DEFAULT_PROVIDER_TIMEOUT, gt=0)
    summary_timeout: float = Field(default=30.0, gt=0)
    tool_timeout: float = Field(default=30.0, gt=0)
    progress_every: int = Field(default=16, ge=1)
    show_partial_on_error: bool = True

    # Context window defaults for new conversations
    context_limit: int = Field(default=100, ge=1)
    retention_days: int = Field(default=30, ge=0)
    keep_recent: int = Field(default=3, ge=1)

    # Storage and logging
    db_path: str = "./parley.db"
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"

    def provider_config(self, family: ProviderFamily) -> dict[str, Any]:
        """Keyword arguments for ``create_provider_adapter`` for one family."""
        if family == "openai":
            return {
                "api_key": self.openai_api_key,
                "base_url": self.openai_base_url,
                "organization": self.openai_org_id,
                "timeout": self.provider_timeout,
            }
        if family == "anthropic":
            return {"api_key": self.anthropic_api_key, "timeout": self.provider_timeout}
        if family == "gemini":
            return {"api_key": self.gemini_api_key, "timeout": self.provider_timeout}
        if family == "aws":
            return {
                "api_key": self.aws_bedrock_api_key,
                "region": self.aws_region,
                "timeout": self.provider_timeout,
            }
        return {"base_url": self.local_llm_url, "timeout": self.provider_timeout}


def load_models_file(path: str | Path) -> list[ProviderModel]:
    """Read a JSON list of model descriptors.

    Raises:
        ValueError: If the file is not a JSON list
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"Models file must contain a JSON list: {path}")
    return [ProviderModel.model_validate(item) for item in data]


def load_settings(env_file: str | Path | None = None) -> Settings:
    """Build settings from the environment.

    Environment variables:
        OPENAI_API_KEY, OPENAI_BASE_URL, OPENAI_ORG_ID: OpenAI credentials
        ANTHROPIC_API_KEY: Anthropic API key
        GEMINI_API_KEY: Gemini API key
        AWS_BEDROCK_API_KEY, AWS_REGION: Bedrock credentials (region default: us-east-1)
        LOCAL_LLM_URL: Local server URL (default: http://localhost:11434/v1)
        PARLEY_MODELS_FILE: JSON list of model descriptors
        PARLEY_DEFAULT_MODEL: Fallback model name (default: gpt-4o-mini)
        PARLEY_SUMMARY_MODEL: Model used for summaries (default: gpt-4o-mini)
        PARLEY_MAX_ITERATIONS: Tool-call rounds per turn (default: 10)
        PARLEY_MAX_OUTPUT_TOKENS: Completion token cap per call (default: 4000)
        PARLEY_PROVIDER_TIMEOUT: Provider deadline in seconds (default: 300)
        PARLEY_SUMMARY_TIMEOUT: Summary model deadline in seconds (default: 30)
        PARLEY_TOOL_TIMEOUT: Tool deadline in seconds (default: 30)
        PARLEY_PROGRESS_EVERY: Fragments between progress updates (default: 16)
        PARLEY_CONTEXT_LIMIT: Live entries before summarizing (default: 100)
        PARLEY_KEEP_RECENT: Newest entries kept verbatim when summarizing (default: 3)
        PARLEY_RETENTION_DAYS: Conversation age window (default: 30)
        PARLEY_DB_PATH: SQLite database path (default: ./parley.db)
        PARLEY_LOG_LEVEL: Log level (default: INFO)
        PARLEY_LOG_FORMAT: 'console' or 'json' (default: console)
    """
    load_dotenv(env_file)

    values: dict[str, Any] = {
        "openai_api_key": os.getenv("OPENAI_API_KEY"),
        "openai_base_url": os.getenv("OPENAI_BASE_URL"),
        "openai_org_id": os.getenv("OPENAI_ORG_ID"),
        "anthropic_api_key": os.getenv("ANTHROPIC_API_KEY"),
        "gemini_api_key": os.getenv("GEMINI_API_KEY"),
        "aws_bedrock_api_key": os.getenv("AWS_BEDROCK_API_KEY"),
        "aws_region": os.getenv("AWS_REGION"),
        "local_llm_url": os.getenv("LOCAL_LLM_URL"),
        "default_model": os.getenv("PARLEY_DEFAULT_MODEL"),
        "summary_model": os.getenv("PARLEY_SUMMARY_MODEL"),
        "max_iterations": os.getenv("PARLEY_MAX_ITERATIONS"),
        "max_output_tokens": os.getenv("PARLEY_MAX_OUTPUT_TOKENS"),
        "provider_timeout": os.getenv("PARLEY_PROVIDER_TIMEOUT"),
        "summary_timeout": os.getenv("PARLEY_SUMMARY_TIMEOUT"),
        "tool_timeout": os.getenv("PARLEY_TOOL_TIMEOUT"),
        "progress_every": os.getenv("PARLEY_PROGRESS_EVERY"),
        "context_limit": os.getenv("PARLEY_CONTEXT_LIMIT"),
        "keep_recent": os.getenv("PARLEY_KEEP_RECENT"),
        "retention_days": os.getenv("PARLEY_RETENTION_DAYS"),
        "db_path": os.getenv("PARLEY_DB_PATH"),
        "log_level": os.getenv("PARLEY_LOG_LEVEL"),
        "log_format": os.getenv("PARLEY_LOG_FORMAT"),
    }
    # Unset variables fall back to model defaults
    values = {key: value for key, value in values.items() if value not in (None, "")}

    models_file = os.getenv("PARLEY_MODELS_FILE")
    if models_file:
        values["models"] = load_models_file(models_file)

    return Settings.model_validate(values)
