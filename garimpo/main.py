"""
Main application entry point - HTTP interface with graceful shutdown handling.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from typing import Any

from garimpo.chat.chat_orchestrator import ChatOrchestrator
from garimpo.clients import LLMClient, TMDbClient
from garimpo.config import Configuration
from garimpo.history import create_repositories
from garimpo.tools import MovieGateway, PreferenceTools, create_tool_registry
from garimpo.web_server import run_web_server

LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Config module name -> logger prefixes it controls
MODULE_LOGGER_MAP: dict[str, dict[str, Any]] = {
    "chat": {"loggers": ["garimpo.chat"], "default_level": "INFO"},
    "tools": {"loggers": ["garimpo.tools"], "default_level": "INFO"},
    "clients": {"loggers": ["garimpo.clients", "httpx"], "default_level": "INFO"},
    "history": {"loggers": ["garimpo.history", "aiosqlite"], "default_level": "WARNING"},
}


def _configure_advanced_logging(logging_config: dict[str, Any]) -> None:
    """
    Configure hierarchical loggers and feature flags from the ``logging`` section.

    Levels are set on parent loggers so module loggers inherit them. Feature
    flags are stored on the logging module and read by ``should_log_feature``.
    """
    global_level = logging_config.get("level", "WARNING")
    logging.getLogger().setLevel(LEVEL_MAP.get(global_level, logging.WARNING))

    if "format" in logging_config:
        for handler in logging.getLogger().handlers:
            if isinstance(handler, logging.StreamHandler):
                handler.setFormatter(logging.Formatter(logging_config["format"]))

    module_features: dict[str, dict[str, bool]] = {}
    for module_name, module_config in logging_config.get("modules", {}).items():
        if not isinstance(module_config, dict):
            continue

        mapping = MODULE_LOGGER_MAP.get(module_name, {})
        module_level = module_config.get("level", mapping.get("default_level", global_level))
        level_value = LEVEL_MAP.get(module_level, logging.WARNING)

        for logger_name in mapping.get("loggers", []):
            logging.getLogger(logger_name).setLevel(level_value)

        module_features[module_name] = module_config.get("enable_features") or {}

    logging._module_features = module_features  # type: ignore[attr-defined]


# Configure logging for the application
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)


async def main() -> None:
    """Main entry point - HTTP interface with graceful shutdown handling."""
    config = Configuration()
    _configure_advanced_logging(config.get_logging_config())

    conversations, preferences = create_repositories(config)

    # Setup graceful shutdown handler
    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        """Handle shutdown signals gracefully."""
        logging.info("Received shutdown signal, initiating graceful shutdown...")
        shutdown_event.set()

    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, signal_handler)

    async with LLMClient(config) as llm_client, TMDbClient.from_config(config) as tmdb_client:
        # One gateway per process, so the genre table is fetched once
        gateway = MovieGateway(tmdb_client)
        registry = create_tool_registry(gateway, PreferenceTools(preferences))
        orchestrator = ChatOrchestrator(
            ChatOrchestrator.ChatOrchestratorConfig(
                llm_client=llm_client,
                registry=registry,
                conversations=conversations,
                preferences=preferences,
                configuration=config,
            )
        )

        try:
            server_task = asyncio.create_task(
                run_web_server(orchestrator, config.get_config_dict())
            )

            # Wait for either server completion or shutdown signal
            done, pending = await asyncio.wait(
                [server_task, asyncio.create_task(shutdown_event.wait())],
                return_when=asyncio.FIRST_COMPLETED,
            )

            for task in pending:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

            for task in done:
                if task == server_task:
                    exception = task.exception()
                    if exception is not None:
                        raise exception

        except KeyboardInterrupt:
            logging.info("Keyboard interrupt received, shutting down...")
        except Exception as e:
            logging.error(f"Application error: {e}")
            raise
        finally:
            logging.info("Application shutdown complete")


def cli_main() -> None:
    """Synchronous CLI entrypoint that runs the async main."""
    asyncio.run(main())


if __name__ == "__main__":
    cli_main()
