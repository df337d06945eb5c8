"""
Configuration management for Tool-Agent

Uses pydantic-settings for environment variable parsing and validation.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Hard limits of the agent loop
MAX_AGENT_ITERATIONS = 8
TOOL_TIMEOUT_SECONDS = 30.0
MODEL_TIMEOUT_SECONDS = 120.0

# Hostnames the fetch_url tool may contact
ALLOWED_FETCH_HOSTNAMES: frozenset[str] = frozenset({
    "en.wikipedia.org",
    "www.wikipedia.org",
    "arxiv.org",
    "export.arxiv.org",
    "api.duckduckgo.com",
    "github.com",
    "raw.githubusercontent.com",
    "docs.python.org",
    "developer.mozilla.org",
    "stackoverflow.com",
})


@dataclass(frozen=True)
class AgentLimits:
    """Bounds applied to every agent run."""

    max_iterations: int = MAX_AGENT_ITERATIONS
    tool_timeout: float = TOOL_TIMEOUT_SECONDS
    model_timeout: float = MODEL_TIMEOUT_SECONDS
    allowed_fetch_hosts: frozenset[str] = ALLOWED_FETCH_HOSTNAMES


class LLMConfig(BaseSettings):
    """Configuration for the completion service."""

    model_config = SettingsConfigDict(extra="ignore")

    provider: Literal["ollama", "openai", "openrouter"] = "ollama"
    model: str = "qwen3:14b"
    api_key: str = "ollama"
    base_url: str | None = "http://localhost:11434/v1"
    max_tokens: int = 4096
    temperature: float = 0.7
    timeout: float = MODEL_TIMEOUT_SECONDS


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "Tool-Agent"
    debug: bool = False
    log_level: str = "INFO"

    # Completion service
    llm_provider: Literal["ollama", "openai", "openrouter"] = "ollama"
    llm_model: str = Field(default="qwen3:14b", description="Chat model name")
    llm_api_key: str = Field(default="", description="API key for the completion service")
    llm_base_url: str = Field(default="", description="Override for the completion service URL")
    max_tokens: int = 4096
    temperature: float = 0.7

    # Embeddings
    embedding_model: str = Field(default="nomic-embed-text", description="Embedding model name")

    # Agent loop
    max_iterations: int = Field(default=MAX_AGENT_ITERATIONS, ge=1, le=MAX_AGENT_ITERATIONS)
    tool_timeout_seconds: float = Field(default=TOOL_TIMEOUT_SECONDS, gt=0, le=TOOL_TIMEOUT_SECONDS)
    model_timeout_seconds: float = Field(default=MODEL_TIMEOUT_SECONDS, gt=0, le=MODEL_TIMEOUT_SECONDS)
    fetch_allowed_hosts: str = Field(
        default=",".join(sorted(ALLOWED_FETCH_HOSTNAMES)),
        description="Comma-separated hostnames fetch_url may contact",
    )

    # Tools
    tavily_api_key: str = Field(default="", description="Tavily API key for web search")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/agent.db",
        description="Database connection URL"
    )

    # Memory
    summarize_after_turns: int = Field(default=15, ge=2, description="Turn count that triggers summarization")
    summary_keep_recent: int = Field(default=6, ge=1, description="Recent turns kept verbatim on summarization")
    recall_limit: int = Field(default=5, ge=1, description="Memory facts recalled per query")
    recall_min_score: float = Field(default=0.0, ge=-1.0, le=1.0, description="Minimum cosine similarity for recall")

    # Image generation
    comfyui_url: str = Field(default="http://localhost:8188", description="ComfyUI base URL")
    comfyui_timeout_seconds: float = Field(default=25.0, description="Image generation polling budget")
    artifacts_dir: str = Field(default="./data/artifacts", description="Where generated images are written")

    @field_validator("fetch_allowed_hosts", mode="before")
    @classmethod
    def parse_allowed_hosts(cls, v: str) -> str:
        return v.strip().lower() if v else ""

    @model_validator(mode="after")
    def check_summary_window(self) -> "Settings":
        if self.summary_keep_recent >= self.summarize_after_turns:
            raise ValueError("SUMMARY_KEEP_RECENT must be smaller than SUMMARIZE_AFTER_TURNS")
        return self

    @property
    def allowed_hosts_set(self) -> frozenset[str]:
        """Get the fetch allowlist as a set."""
        if not self.fetch_allowed_hosts:
            return frozenset()
        return frozenset(h.strip() for h in self.fetch_allowed_hosts.split(",") if h.strip())

    def agent_limits(self) -> AgentLimits:
        """Get the immutable limits passed to the agent components."""
        return AgentLimits(
            max_iterations=self.max_iterations,
            tool_timeout=self.tool_timeout_seconds,
            model_timeout=self.model_timeout_seconds,
            allowed_fetch_hosts=self.allowed_hosts_set,
        )

    def get_llm_config(self, provider: str | None = None) -> LLMConfig:
        """Get completion service configuration for a provider."""
        provider = provider or self.llm_provider

        base_url_map = {
            "ollama": "http://localhost:11434/v1",
            "openai": None,
            "openrouter": "https://openrouter.ai/api/v1",
        }

        api_key = self.llm_api_key or ("ollama" if provider == "ollama" else "")

        return LLMConfig(
            provider=provider,  # type: ignore
            model=self.llm_model,
            api_key=api_key,
            base_url=self.llm_base_url or base_url_map.get(provider),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            timeout=self.model_timeout_seconds,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
