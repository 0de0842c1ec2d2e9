"""Decorators for tracing tool and resource handlers."""

import functools
from collections.abc import Callable
from datetime import datetime
from typing import Any

import logfire

from .config import get_observability_config

# Argument names that carry credentials; never recorded on spans
SENSITIVE_ARGUMENTS = frozenset({"secret_key", "authorization", "token"})


def trace_tool(tool_name: str):
    """Decorator to trace tool execution."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(
                f"tool.execution.{tool_name}",
                tool_name=tool_name,
                tool_category=_categorize_tool(tool_name),
            ) as span:
                start_time = datetime.now()

                arguments = kwargs.get("arguments")
                if arguments is None and args:
                    arguments = args[-1]
                if isinstance(arguments, dict):
                    _add_attributes(span, "input", arguments)

                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    span.set_attribute("tool.success", False)
                    span.set_attribute("tool.error_type", type(e).__name__)
                    raise

                span.set_attribute("tool.success", not _is_error(result))
                span.set_attribute(
                    "tool.duration_ms", (datetime.now() - start_time).total_seconds() * 1000
                )
                if _is_error(result):
                    span.set_attribute("tool.error_kind", result.get("error", {}).get("kind", ""))
                return result

        return wrapper

    return decorator


def trace_resource(resource_type: str):
    """Lightweight decorator for resource reads."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(
                f"resource.read.{resource_type}",
                resource_type=resource_type,
            ) as span:
                _add_attributes(span, "resource", kwargs)
                result = await func(*args, **kwargs)
                if isinstance(result, dict) and isinstance(result.get("items"), list):
                    span.set_attribute("result.item_count", len(result["items"]))
                return result

        return wrapper

    return decorator


def _categorize_tool(tool_name: str) -> str:
    if "borrow" in tool_name or "return" in tool_name:
        return "circulation"
    if "search" in tool_name:
        return "discovery"
    if "librarian" in tool_name or "authenticate" in tool_name:
        return "membership"
    if "book" in tool_name:
        return "catalog"
    return "general"


def _add_attributes(span, prefix: str, data: dict):
    """Add scalar arguments to the span, skipping credentials."""
    max_length = get_observability_config().max_attribute_length
    for key, value in data.items():
        if key.lower() in SENSITIVE_ARGUMENTS:
            continue
        if isinstance(value, str):
            span.set_attribute(f"{prefix}.{key}", value[:max_length])
        elif isinstance(value, int | float | bool):
            span.set_attribute(f"{prefix}.{key}", value)


def _is_error(result: Any) -> bool:
    return isinstance(result, dict) and bool(result.get("isError"))
