"""
Chat Logging Utilities

Shared logging helpers with per-module feature flags.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

logger = logging.getLogger(__name__)
tool_logger = logging.getLogger("garimpo.tools")


def should_log_feature(module: str, feature: str) -> bool:
    """
    Check if a specific logging feature should be enabled.

    Feature flags are installed on the logging module by ``garimpo.main``.
    """
    if hasattr(logging, "_module_features"):
        module_features = getattr(logging, "_module_features", {}).get(module, {})
        return module_features.get(feature, False)
    return False


def _truncate(text: str, length: int) -> str:
    return text[:length] + "..." if len(text) > length else text


def log_llm_reply(
    content: str, tool_calls: list[Any], context: str, chat_conf: dict[str, Any]
) -> None:
    """
    Log one completed model turn.

    Args:
        content: Text the model streamed during the turn
        tool_calls: Tool calls requested during the turn
        context: Descriptive context for the log entry
        chat_conf: Chat service configuration containing logging settings
    """
    if not should_log_feature("chat", "llm_replies"):
        return

    truncate_length = chat_conf.get("logging", {}).get("llm_reply", 500)

    log_parts = [f"LLM Reply ({context}):"]
    if content:
        log_parts.append(f"Content: {_truncate(content, truncate_length)}")
    if tool_calls:
        log_parts.append(f"Tool calls: {len(tool_calls)}")
        for i, call in enumerate(tool_calls):
            log_parts.append(f"  [{i}] {getattr(call, 'name', 'unknown')}")

    logger.info(" | ".join(log_parts))


def log_tool_execution_start(tool_name: str, call_index: int = 0) -> None:
    tool_logger.info("→ Tool[%s]: executing call #%d", tool_name, call_index)


def log_tool_execution_success(tool_name: str, content_length: int) -> None:
    tool_logger.info("← Tool[%s]: success, content length: %d", tool_name, content_length)


def log_tool_execution_error(tool_name: str, error_msg: str) -> None:
    tool_logger.error("← Tool[%s]: failed with error: %s", tool_name, error_msg)


def log_tool_args_error(tool_name: str, error: Exception) -> None:
    """
    Log malformed tool arguments.

    Args:
        tool_name: Name of the tool with malformed arguments
        error: The JSON decode or validation error
    """
    tool_logger.error("Malformed JSON arguments for %s: %s", tool_name, error)


@asynccontextmanager
async def log_performance(operation_name: str) -> AsyncIterator[None]:
    """Context manager to log how long an operation took."""
    start_time = time.monotonic()
    try:
        yield
    finally:
        elapsed_ms = (time.monotonic() - start_time) * 1000
        logger.info(f"⏱️ {operation_name} completed in {elapsed_ms:.2f}ms")


def log_tool_arguments(
    tool_name: str, arguments: dict[str, Any], context: str, truncate_length: int = 500
) -> None:
    """
    Log tool arguments being dispatched.

    Args:
        tool_name: Name of the tool being called
        arguments: Arguments dictionary being sent to the tool
        context: Descriptive context for the log entry
        truncate_length: Maximum length for argument logging
    """
    if not should_log_feature("tools", "tool_arguments"):
        tool_logger.debug(f"Tool arguments logging disabled for {tool_name}")
        return

    args_str = _truncate(str(arguments), truncate_length)
    tool_logger.info(f"→ Tool[{tool_name}]: arguments ({context}): {args_str}")


def log_tool_results(
    tool_name: str, results: Any, context: str, truncate_length: int = 200
) -> None:
    if not should_log_feature("tools", "tool_results"):
        return

    results_str = _truncate(str(results), truncate_length)
    tool_logger.info(f"← Tool[{tool_name}]: results ({context}): {results_str}")
