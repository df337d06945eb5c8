"""
Tests for configuration module.
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from tool_agent.config import (
    ALLOWED_FETCH_HOSTNAMES,
    MAX_AGENT_ITERATIONS,
    AgentLimits,
    Settings,
)


def test_settings_default_values():
    """Test that settings have sensible defaults."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings(_env_file=None)

        assert settings.app_name == "Tool-Agent"
        assert settings.llm_provider == "ollama"
        assert settings.max_iterations == 8
        assert settings.summarize_after_turns == 15
        assert settings.summary_keep_recent == 6
        assert settings.database_url.startswith("sqlite+aiosqlite")


def test_settings_from_env():
    """Test loading settings from environment variables."""
    env = {
        "LLM_PROVIDER": "openrouter",
        "LLM_MODEL": "meta-llama/llama-3.1-8b-instruct",
        "LLM_API_KEY": "test_key",
        "TAVILY_API_KEY": "tvly-test",
        "SUMMARIZE_AFTER_TURNS": "20",
    }

    with patch.dict(os.environ, env, clear=True):
        settings = Settings(_env_file=None)

        assert settings.llm_provider == "openrouter"
        assert settings.llm_model == "meta-llama/llama-3.1-8b-instruct"
        assert settings.tavily_api_key == "tvly-test"
        assert settings.summarize_after_turns == 20


def test_iteration_cap_cannot_be_raised():
    """The configured iteration count may only lower the hard cap."""
    with patch.dict(os.environ, {"MAX_ITERATIONS": str(MAX_AGENT_ITERATIONS + 1)}, clear=True):
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    with patch.dict(os.environ, {"MAX_ITERATIONS": "3"}, clear=True):
        assert Settings(_env_file=None).agent_limits().max_iterations == 3


def test_summary_window_must_leave_turns_to_summarize():
    """Keeping as many turns as the threshold is rejected at load time."""
    env = {"SUMMARIZE_AFTER_TURNS": "5", "SUMMARY_KEEP_RECENT": "6"}

    with patch.dict(os.environ, env, clear=True):
        with pytest.raises(ValidationError, match="SUMMARY_KEEP_RECENT must be smaller"):
            Settings(_env_file=None)


def test_allowed_hosts_default():
    """The fetch allowlist defaults to the built-in trusted hosts."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings(_env_file=None)

        assert settings.allowed_hosts_set == ALLOWED_FETCH_HOSTNAMES


def test_allowed_hosts_parsing():
    """Test parsing a custom allowlist."""
    env = {"FETCH_ALLOWED_HOSTS": " Docs.Python.org, example.com ,,"}

    with patch.dict(os.environ, env, clear=True):
        settings = Settings(_env_file=None)

        assert settings.allowed_hosts_set == frozenset({"docs.python.org", "example.com"})


def test_allowed_hosts_empty():
    """Test an explicitly empty allowlist."""
    with patch.dict(os.environ, {"FETCH_ALLOWED_HOSTS": ""}, clear=True):
        settings = Settings(_env_file=None)

        assert settings.allowed_hosts_set == frozenset()


def test_agent_limits():
    """Test building the immutable limits object."""
    env = {"TOOL_TIMEOUT_SECONDS": "5", "MODEL_TIMEOUT_SECONDS": "60"}

    with patch.dict(os.environ, env, clear=True):
        limits = Settings(_env_file=None).agent_limits()

        assert isinstance(limits, AgentLimits)
        assert limits.tool_timeout == 5.0
        assert limits.model_timeout == 60.0
        assert limits.max_iterations == MAX_AGENT_ITERATIONS

        with pytest.raises(AttributeError):
            limits.max_iterations = 100


def test_get_llm_config_ollama():
    """Test the local default completion service."""
    with patch.dict(os.environ, {}, clear=True):
        config = Settings(_env_file=None).get_llm_config()

        assert config.provider == "ollama"
        assert config.api_key == "ollama"
        assert config.base_url == "http://localhost:11434/v1"


def test_get_llm_config_openrouter():
    """Test getting OpenRouter configuration."""
    env = {"LLM_API_KEY": "test_openrouter_key"}

    with patch.dict(os.environ, env, clear=True):
        config = Settings(_env_file=None).get_llm_config("openrouter")

        assert config.provider == "openrouter"
        assert config.api_key == "test_openrouter_key"
        assert config.base_url == "https://openrouter.ai/api/v1"


def test_get_llm_config_base_url_override():
    """An explicit base URL wins over the provider default."""
    env = {"LLM_PROVIDER": "openai", "LLM_BASE_URL": "http://proxy:8000/v1"}

    with patch.dict(os.environ, env, clear=True):
        config = Settings(_env_file=None).get_llm_config()

        assert config.base_url == "http://proxy:8000/v1"
        assert config.api_key == ""
