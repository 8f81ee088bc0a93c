"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration for planview. Reads from .env automatically."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Workspace whose Plan/ documents and source tree are visualised.
    # Leave empty to pass workspace_path explicitly per request.
    workspace_path: str = ""

    @field_validator("workspace_path")
    @classmethod
    def _resolve_workspace(cls, value: str) -> str:
        if value:
            return str(Path(value).expanduser().resolve())
        return value

    # Plan directory names, tried in order.  Env var: PLAN_DIR_NAMES=Plan,plan
    plan_dir_names: str = "Plan,plan,PLAN"

    @property
    def plan_dirs(self) -> list[str]:
        return [name.strip() for name in self.plan_dir_names.split(",") if name.strip()]

    # Analysis cache: JSON files relative to the workspace root
    cache_dir: str = ".planview/analysis_cache"
    analysis_ttl_hours: float = 24.0

    # ── Layout defaults ───────────────────────────────────────────────
    # "TB" = top-down, "LR" = left-to-right
    layout_direction: Literal["TB", "LR"] = "TB"
    layout_rank_spacing: float = 100.0
    layout_node_spacing: float = 150.0
    layout_node_width: float = 200.0
    layout_node_height: float = 80.0
    layout_ordering_passes: int = 4

    # ── Language model used for architecture analysis ─────────────────
    # Prefix determines the provider:
    #   "ollama:<model>"      → local Ollama
    #   "claude-*"            → Anthropic API
    #   anything else         → OpenAI API
    analysis_model: str = "gpt-4o-mini"
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    ollama_base_url: str = "http://localhost:11434"
    analysis_max_tokens: int = 3000
    analysis_temperature: float = 0.1

    # Web API
    web_host: str = "127.0.0.1"
    web_port: int = 8430

    # Logging
    log_level: str = "INFO"
    log_file: str = "logs/planview.log"   # empty = console only


_settings: Settings | None = None


def get_settings() -> Settings:
    """Singleton accessor."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
