"""
Log formatters for file and console output.

JsonlFormatter writes one JSON object per line:
    {"ts":"2025-03-02T10:15:04+00:00","level":2,"tag":"INFO",
     "message":"cache_hit","request_id":"9f2c41d0a7b3","extra":{"tag":"female"}}

ColoredConsoleFormatter writes a compact human line:
    10:15:04 [ INFO  ] (9f2c41d0a7b3) cache_hit tag=female 0.002s
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict

from . import colors
from .colors import Colors, get_tag_color


def _paint(text: str, color: str) -> str:
    # Looked up at call time so toggling colors.USE_COLORS takes effect.
    if not colors.USE_COLORS:
        return text
    return f"{color}{text}{Colors.RESET}"


class JsonlFormatter(logging.Formatter):
    """Machine-readable JSON Lines records for the rotating log file."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
            "logger": record.name,
        }

        event = getattr(record, "event", None)
        if event:
            payload["event"] = event

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Human-readable console lines.

    Format:
        HH:MM:SS [ TAG   ] (rid) message key=value ... 0.123s

    Cache outcome and cost fields get their own colors so that misses and
    paid requests stand out when tailing the service.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        rid = getattr(record, "request_id", "-")

        parts = [
            _paint(ts, Colors.DIM),
            _paint(f"[{tag:^7}]", get_tag_color(tag)),
        ]
        if rid != "-":
            parts.append(_paint(f"({rid})", Colors.DIM + Colors.CYAN))
        parts.append(record.getMessage())

        event = getattr(record, "event", None)
        if event:
            parts.append(_paint(f"event={event}", Colors.BLUE))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for key, value in extra_data.items():
                parts.append(_paint(f"{key}={value}", self._field_color(key, value)))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            if seconds < 0.1:
                color = Colors.GREEN
            elif seconds < 1.0:
                color = Colors.YELLOW
            else:
                color = Colors.RED
            parts.append(_paint(f"{seconds:.3f}s", color))

        return " ".join(parts)

    @staticmethod
    def _field_color(key: str, value: Any) -> str:
        if key == "cache_hit":
            return Colors.GREEN if value else Colors.YELLOW
        if key in ("cost_usd", "total_cost_usd") and isinstance(value, (int, float)):
            return Colors.MAGENTA if value > 0 else Colors.DIM
        if key == "fallback" and value:
            return Colors.YELLOW
        if key == "cpu_percent" and isinstance(value, (int, float)):
            if value < 50:
                return Colors.CYAN
            return Colors.YELLOW if value < 80 else Colors.RED
        return Colors.DIM
