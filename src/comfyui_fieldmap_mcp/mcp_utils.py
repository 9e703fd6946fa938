"""
MCP Utilities

Error responses and structured logging shared by the MCP tools and the CLI.

Log records are single-line JSON on stderr; stdout belongs to the MCP stdio
transport and to CLI results. Everything logged while one tool call or CLI
command runs carries the same correlation id, so an import can be followed
from parse to mapping.
"""

import functools
import json
import logging
import os
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from core.errors import RichMCPError

# =============================================================================
# Structured Logging
# =============================================================================

LOGGER_NAME = "comfyui-fieldmap"
DEFAULT_LOG_LEVEL = "INFO"

logger = logging.getLogger(LOGGER_NAME)
_handler: Optional[logging.Handler] = None


class JSONFormatter(logging.Formatter):
    """Render a record as one JSON object, merging in log_structured fields."""

    def format(self, record):
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{created.microsecond // 1000:03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        cid = getattr(record, "correlation_id", None)
        if cid:
            entry["correlation_id"] = cid
        entry.update(getattr(record, "fields", None) or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, separators=(",", ":"), default=str)


def resolve_log_level(name: Optional[str]) -> int:
    """Map a level name ("debug", "WARNING", ...) to its number; unknown names give INFO."""
    level = logging.getLevelName((name or DEFAULT_LOG_LEVEL).upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: Optional[str] = None, stream=None) -> logging.Logger:
    """
    Set the package log level and install the JSON stderr handler.

    Args:
        level: Level name. Falls back to $FIELDMAP_LOG_LEVEL, then INFO.
        stream: Handler stream for the first call (default sys.stderr).

    Safe to call repeatedly; only the level changes after the first call.
    """
    global _handler
    logger.setLevel(resolve_log_level(level or os.environ.get("FIELDMAP_LOG_LEVEL")))
    if _handler is None:
        _handler = logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(JSONFormatter())
        logger.addHandler(_handler)
    return logger


configure_logging()


# Correlation ID context variable
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def _new_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def set_correlation_id(cid: str):
    _correlation_id.set(cid)


def get_correlation_id() -> str:
    """Current correlation ID; one is generated on first use."""
    cid = _correlation_id.get()
    if cid is None:
        cid = _new_correlation_id()
        _correlation_id.set(cid)
    return cid


def clear_correlation_id():
    _correlation_id.set(None)


@contextmanager
def correlation_scope(cid: Optional[str] = None) -> Iterator[str]:
    """Run a block under its own correlation ID and restore the outer one on exit."""
    token = _correlation_id.set(cid or _new_correlation_id())
    try:
        yield _correlation_id.get()
    finally:
        _correlation_id.reset(token)


def log_structured(level: str, message: str, **fields):
    """
    Log `message` at `level` with keyword fields as top-level JSON keys.

    Example:
        log_structured("warning", "missing_nodes", missing=["WanImageToVideo"])
    """
    extra = {"correlation_id": get_correlation_id(), "fields": fields}
    getattr(logger, level)(message, extra=extra)


@dataclass
class ToolInvocation:
    """Timing and outcome of one tool call."""

    tool_name: str
    invocation_id: str = field(default_factory=_new_correlation_id)
    start_time: float = field(default_factory=time.perf_counter)

    def complete(self, status: str = "success", error: Optional[str] = None) -> Dict[str, Any]:
        """Log the outcome and return the logged fields."""
        entry: Dict[str, Any] = {
            "tool": self.tool_name,
            "invocation_id": self.invocation_id,
            "latency_ms": round((time.perf_counter() - self.start_time) * 1000, 2),
            "status": status,
        }
        if error:
            entry["error"] = error
        if status == "success":
            log_structured("info", "tool_completed", **entry)
        else:
            log_structured("error", "tool_failed", **entry)
        return entry


# =============================================================================
# MCP-Compliant Error Responses
# =============================================================================


def mcp_error(
    message: str,
    code: str = "TOOL_ERROR",
    details: Dict[str, Any] = None,
) -> Dict[str, Any]:
    """
    Build an MCP error result.

    Domain failures raised as RichMCPError use their own to_dict(); this is
    for plain argument problems and unexpected errors.
    """
    result = {
        "error": message,
        "code": code,
        "isError": True,
    }
    if details:
        result["details"] = details
    return result


def validation_error(message: str, field: str = None) -> Dict[str, Any]:
    """Bad tool argument; `field` names the argument."""
    details = {"field": field} if field else None
    return mcp_error(message, "VALIDATION_ERROR", details)


# =============================================================================
# Tool Decorator with Logging
# =============================================================================


def mcp_tool_wrapper(func):
    """
    Give a tool its own correlation scope, log its outcome and turn raised
    errors into MCP error results.

    RichMCPError subclasses (parse, missing nodes, missing fields, ...) come
    back as their to_dict(); anything else becomes INTERNAL_ERROR with the
    traceback logged.

    Example:
        @mcp.tool()
        @mcp_tool_wrapper
        def analyze_workflow(workflow_json: str) -> dict:
            ...
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        with correlation_scope():
            invocation = ToolInvocation(func.__name__)
            try:
                result = func(*args, **kwargs)
            except RichMCPError as e:
                invocation.complete("error", e.code)
                return e.to_dict()
            except Exception as e:
                log_structured("exception", "tool_crashed", tool=func.__name__)
                invocation.complete("error", "INTERNAL_ERROR")
                return mcp_error(str(e), "INTERNAL_ERROR")

            if isinstance(result, dict) and result.get("isError"):
                invocation.complete("error", result.get("code"))
            else:
                invocation.complete("success")
            return result

    return wrapper
