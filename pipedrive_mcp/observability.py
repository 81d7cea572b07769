import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

_STRUCTURED_FIELDS = ("user", "method", "tool", "correlation_id", "duration_ms")


class StructuredFormatter(logging.Formatter):
    """Formatter that fills missing structured fields with empty strings."""

    def format(self, record: logging.LogRecord) -> str:
        for name in _STRUCTURED_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, "")
        return super().format(record)


def setup_logger(log_level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger("pipedrive_mcp")
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    logger.setLevel(level)
    if logger.handlers:
        return logger
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(
        '{"ts":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","user":"%(user)s",'
        '"method":"%(method)s","tool":"%(tool)s","correlation_id":"%(correlation_id)s",'
        '"duration_ms":"%(duration_ms)s","msg":"%(message)s"}'
    ))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


class AuditLogger:
    """
    Append-only JSON-lines audit trail for auth attempts and tool calls.

    Disabled (no-op) when constructed without a path.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self._path = path
        if path:
            directory = os.path.dirname(path) or "."
            os.makedirs(directory, exist_ok=True)
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self._path)

    def _write(self, entry: Dict[str, Any]) -> None:
        if not self._path:
            return
        line = json.dumps(entry, ensure_ascii=False, separators=(",", ":"))
        with self._lock:
            with open(self._path, "a", encoding="utf-8") as fh:
                fh.write(line + "\n")

    def log_auth(
        self,
        *,
        outcome: str,
        client: str,
        masked_token: str,
        user_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        self._write({
            "ts": time.time(),
            "event": "auth",
            "outcome": outcome,
            "client": client,
            "token": masked_token,
            "user_id": user_id,
            "reason": reason,
        })

    def log_call(
        self,
        *,
        tool: str,
        user_id: str,
        status: str,
        duration_ms: float,
        correlation_id: Optional[str] = None,
    ) -> None:
        self._write({
            "ts": time.time(),
            "event": "tool_call",
            "tool": tool,
            "user_id": user_id,
            "status": status,
            "duration_ms": float(duration_ms),
            "correlation_id": correlation_id,
        })


@dataclass
class ToolCallStats:
    """Running totals for one tool. Reply size is the estimated token count of the result text."""

    calls: int = 0
    errors: int = 0
    latency_ms_sum: float = 0.0
    reply_tokens_sum: int = 0
    over_budget: int = 0

    def add(self, duration_ms: float, error: bool, reply_tokens: int, over_budget: bool) -> None:
        self.calls += 1
        self.latency_ms_sum += float(duration_ms)
        self.reply_tokens_sum += int(reply_tokens)
        self.errors += int(error)
        self.over_budget += int(over_budget)

    def as_dict(self) -> Dict[str, float]:
        per_call = float(self.calls or 1)
        return {
            "calls": float(self.calls),
            "errors": float(self.errors),
            "avg_latency_ms": self.latency_ms_sum / per_call,
            "avg_reply_tokens": self.reply_tokens_sum / per_call,
            "over_budget": float(self.over_budget),
        }


class InMemoryMetrics:
    """Process-lifetime per-tool call stats, shared by all principals."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_tool: Dict[str, ToolCallStats] = {}

    def record(
        self,
        tool: str,
        duration_ms: float,
        error: bool,
        reply_tokens: int = 0,
        over_budget: bool = False,
    ) -> None:
        with self._lock:
            self._by_tool.setdefault(tool, ToolCallStats()).add(duration_ms, error, reply_tokens, over_budget)

    def snapshot(self) -> Dict[str, Dict[str, float]]:
        with self._lock:
            return {name: stats.as_dict() for name, stats in self._by_tool.items()}


# (metric name, snapshot key, type, help)
_TOOL_SERIES = (
    ("mcp_tool_calls_total", "calls", "counter", "Total number of tool calls"),
    ("mcp_tool_errors_total", "errors", "counter", "Tool calls that returned isError"),
    ("mcp_tool_avg_latency_ms", "avg_latency_ms", "gauge", "Average tool latency in milliseconds"),
    ("mcp_tool_avg_reply_tokens", "avg_reply_tokens", "gauge", "Average estimated reply size in tokens"),
    ("mcp_tool_over_budget_total", "over_budget", "counter", "Replies above the response token budget"),
)


def render_prometheus(snapshot: Dict[str, Dict[str, float]], gauges: Dict[str, float]) -> str:
    """Format tool stats plus gateway gauges in Prometheus text exposition format."""
    lines: List[str] = [
        "# HELP mcp_server_healthy MCP server health status",
        "# TYPE mcp_server_healthy gauge",
        "mcp_server_healthy 1",
    ]
    for name, value in sorted(gauges.items()):
        lines.append(f"# TYPE {name} gauge")
        lines.append(f"{name} {value}")

    if not snapshot:
        return "\n".join(lines) + "\n"
    for metric, key, kind, help_text in _TOOL_SERIES:
        lines.append(f"# HELP {metric} {help_text}")
        lines.append(f"# TYPE {metric} {kind}")
        lines.extend(f'{metric}{{tool="{tool}"}} {stats[key]}' for tool, stats in sorted(snapshot.items()))
    return "\n".join(lines) + "\n"
