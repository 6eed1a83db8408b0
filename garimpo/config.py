"""Configuration management for the Garimpo backend."""

from __future__ import annotations

import logging
import os
from typing import Any, cast

import yaml
from dotenv import load_dotenv

OVERRIDE_ENV_VAR = "GARIMPO_CONFIG"


class Configuration:
    """YAML-backed configuration with environment secrets.

    Defaults come from ``config.yaml`` next to this module. When the
    ``GARIMPO_CONFIG`` environment variable (or ``override_path``) names another
    YAML file, it is deep-merged over the defaults.
    """

    def __init__(self, override_path: str | None = None) -> None:
        self.load_env()
        self._default_config = self._load_yaml_config(
            os.path.join(os.path.dirname(__file__), "config.yaml")
        )
        override_path = override_path or os.getenv(OVERRIDE_ENV_VAR)
        if override_path:
            logging.info("Loading configuration overrides from %s", override_path)
            override = self._load_yaml_config(override_path)
            self._current_config = self._deep_merge(self._default_config, override)
        else:
            self._current_config = self._default_config

    @staticmethod
    def load_env() -> None:
        """Load environment variables from .env file."""
        load_dotenv()

    @staticmethod
    def _load_yaml_config(config_path: str) -> dict[str, Any]:
        """Load configuration from YAML file."""
        with open(config_path) as file:
            config = yaml.safe_load(file)
            if not isinstance(config, dict):
                raise ValueError("Configuration file must contain a dictionary")
            return cast(dict[str, Any], config)

    def _deep_merge(
        self, base: dict[str, Any], override: dict[str, Any]
    ) -> dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._deep_merge(
                    cast(dict[str, Any], result[key]), cast(dict[str, Any], value)
                )
            else:
                result[key] = value

        return result

    def _get_config_value(self, path: list[str], default: Any = None) -> Any:
        """Get a configuration value by path, falling back to ``default``."""
        current: Any = self._current_config
        for key in path:
            if isinstance(current, dict) and key in current:
                current = current[key]  # type: ignore[assignment]
            else:
                return default
        return current  # type: ignore[return-value]

    @property
    def llm_api_key(self) -> str:
        """Get the API key for the active LLM provider.

        Raises:
            ValueError: If the API key is not found in environment variables.
        """
        active_provider = self._get_config_value(["llm", "active"], "openai")

        provider_key_map = {
            "openai": "OPENAI_API_KEY",
            "groq": "GROQ_API_KEY",
            "openrouter": "OPENROUTER_API_KEY",
        }

        env_key = provider_key_map.get(active_provider)
        if not env_key:
            raise ValueError(
                f"Unknown provider '{active_provider}' - no API key mapping found"
            )

        api_key = os.getenv(env_key)
        if not api_key:
            raise ValueError(
                f"API key '{env_key}' not found in environment variables "
                f"for provider '{active_provider}'"
            )

        return api_key

    @property
    def tmdb_api_key(self) -> str:
        """Get the TMDb API key.

        Raises:
            ValueError: If ``TMDB_API_KEY`` is not set.
        """
        api_key = os.getenv("TMDB_API_KEY")
        if not api_key:
            raise ValueError("API key 'TMDB_API_KEY' not found in environment variables")
        return api_key

    def get_config_dict(self) -> dict[str, Any]:
        """Get the full configuration dictionary."""
        return self._current_config

    def get_llm_config(self) -> dict[str, Any]:
        """Get active LLM provider configuration from YAML."""
        llm_config = self._current_config.get("llm", {})
        active_provider = llm_config.get("active", "openai")
        providers = llm_config.get("providers", {})

        if active_provider not in providers:
            raise ValueError(
                f"Active provider '{active_provider}' not found in providers config"
            )

        return providers[active_provider]

    def get_llm_profile(self, name: str) -> dict[str, Any]:
        """Get the sampling parameters for a named model profile.

        Profiles are ``agent`` (tool-calling, deterministic), ``narrator``
        (status lines) and ``title`` (conversation titles).
        """
        profiles = self._get_config_value(["llm", "profiles"], {})
        if name not in profiles:
            raise ValueError(f"LLM profile '{name}' not found in llm.profiles config")
        return dict(profiles[name] or {})

    def get_tmdb_config(self) -> dict[str, Any]:
        """Get TMDb catalog configuration from YAML."""
        return self._current_config.get("tmdb", {})

    def get_logging_config(self) -> dict[str, Any]:
        """Get logging configuration from YAML."""
        return self._current_config.get("logging", {})

    def get_chat_service_config(self) -> dict[str, Any]:
        """Get chat service configuration from YAML."""
        return self._current_config.get("chat", {}).get("service", {})

    def get_chat_storage_config(self) -> dict[str, Any]:
        """Get chat storage configuration from YAML."""
        return self._current_config.get("chat", {}).get("storage", {})

    def get_connection_pool_config(self) -> dict[str, Any]:
        """Get HTTP connection pool configuration with defaults."""
        pool_config = self._current_config.get("connection_pool", {})
        return {
            "max_connections": pool_config.get("max_connections", 50),
            "max_keepalive_connections": pool_config.get("max_keepalive_connections", 20),
            "keepalive_expiry_seconds": pool_config.get("keepalive_expiry_seconds", 300.0),
            "request_timeout_seconds": pool_config.get("request_timeout_seconds", 60.0),
        }

    def get_max_agent_turns(self) -> int:
        """Get the maximum number of think/act turns per request.

        Returns:
            Maximum number of agent turns (default: 3).
        """
        service_config = self.get_chat_service_config()
        max_turns = service_config.get("max_agent_turns", 3)

        if not isinstance(max_turns, int) or isinstance(max_turns, bool) or max_turns < 1:
            raise ValueError("max_agent_turns must be a positive integer")

        return max_turns

    def get_max_preference_items(self) -> int:
        """Get the per-category preference list cap (default: 10)."""
        service_config = self.get_chat_service_config()
        max_items = service_config.get("preferences", {}).get("max_items", 10)

        if not isinstance(max_items, int) or isinstance(max_items, bool) or max_items < 1:
            raise ValueError("preferences.max_items must be a positive integer")

        return max_items
