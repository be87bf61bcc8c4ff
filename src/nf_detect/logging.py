from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Final, Literal, Protocol, TypedDict, runtime_checkable

from .request_context import request_id_var

_LOGGER_NAME: Final[str] = "nf_detect"
_ENV_PREFIX: Final[str] = "NF_DETECT_"


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        rid = request_id_var.get()
        payload: dict[str, object] = {
            "ts": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if rid:
            payload["request_id"] = rid
        extra = _parse_evt_fields(record.getMessage())
        if extra:
            if "event" in extra:
                payload["message"] = str(extra.pop("event"))
            for k, v in extra.items():
                payload[k] = v
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class _ConsoleFormatter(logging.Formatter):
    """Colorized single-line formatter for interactive terminals.

    `EVT` lines render as the event name followed by colored key=value pairs.
    Other messages keep their text after the leading event word.
    """

    _RESET = "\x1b[0m"
    _BOLD = "\x1b[1m"
    _DIM = "\x1b[2m"
    _RED = "\x1b[91m"
    _GREEN = "\x1b[92m"
    _YELLOW = "\x1b[93m"
    _BLUE = "\x1b[94m"
    _MAGENTA = "\x1b[95m"
    _CYAN = "\x1b[36m"

    _LEVELS: Final[tuple[tuple[int, str, str], ...]] = (
        (logging.ERROR, "ERROR", _RED),
        (logging.WARNING, "WARN", _YELLOW),
        (logging.INFO, "INFO", _CYAN),
    )

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now(UTC).strftime("%H:%M:%S")
        msg = record.getMessage()
        parts = [f"{self._DIM}[{ts}]{self._RESET}", self._level_tag(record.levelno)]
        if msg.startswith("EVT "):
            fields = _parse_evt_fields(msg)
            parts.append(self._event(str(fields.pop("event", "event"))))
            parts.extend(
                f"{self._DIM}{k}{self._RESET}={self._color_value(k, str(v))}"
                for k, v in fields.items()
            )
        else:
            head, _, rest = msg.partition(" ")
            parts.append(self._event(head))
            if rest:
                parts.append(rest)
        rid = request_id_var.get()
        if rid:
            parts.append(f"{self._DIM}rid={rid}{self._RESET}")
        if record.exc_info:
            parts.append(f"\n{self._RED}{self.formatException(record.exc_info)}{self._RESET}")
        return " ".join(parts)

    def _level_tag(self, level: int) -> str:
        for threshold, name, color in self._LEVELS:
            if level >= threshold:
                return f"{self._BOLD}{color}[{name}]{self._RESET}"
        return f"{self._DIM}[DEBUG]{self._RESET}"

    def _event(self, name: str) -> str:
        return f"{self._BOLD}{self._BLUE}{name}{self._RESET}"

    def _color_value(self, key: str, v: str) -> str:
        if key == "latency_ms":
            return f"{self._MAGENTA}{v}{self._RESET}"
        if key == "code":
            return f"{self._RED}{v}{self._RESET}"
        if key in {"label", "confidence"}:
            return f"{self._GREEN}{v}{self._RESET}"
        return v


class LogEvent(TypedDict, total=False):
    event: str
    latency_ms: int
    label: str
    confidence: float
    model_id: str
    generation: int
    code: str


def log_event(
    event: str, fields: Mapping[str, object] | None = None, *, level: int = logging.INFO
) -> None:
    parts: list[str] = [f"event={event}"]
    if fields is not None:
        if "latency_ms" in fields and isinstance(fields["latency_ms"], int):
            parts.append(f"latency_ms={fields['latency_ms']}")
        if "label" in fields and isinstance(fields["label"], str):
            # Labels come from a text file and may hold spaces
            parts.append(f"label={fields['label'].replace(' ', '_')}")
        if "confidence" in fields and isinstance(fields["confidence"], float):
            parts.append(f"confidence={fields['confidence']}")
        if "model_id" in fields and isinstance(fields["model_id"], str):
            parts.append(f"model_id={fields['model_id']}")
        if (
            "generation" in fields
            and isinstance(fields["generation"], int)
            and not isinstance(fields["generation"], bool)
        ):
            parts.append(f"generation={fields['generation']}")
        if "code" in fields and isinstance(fields["code"], str):
            parts.append(f"code={fields['code']}")
    get_logger().log(level, "EVT " + " ".join(parts))


def _parse_evt_fields(msg: str) -> dict[str, object]:
    if not msg.startswith("EVT "):
        return {}
    out: dict[str, object] = {}
    for tok in msg[4:].split():
        k, sep, v = tok.partition("=")
        key = k.strip()
        if not sep or not key:
            continue
        val: object = v
        if key in {"latency_ms", "generation"} and v.isdigit():
            val = int(v)
        elif key == "confidence":
            val = float(v) if _is_float_str(v) else v
        out[key] = val
    return out


def _is_float_str(s: str) -> bool:
    if not s:
        return False
    # Accepts 0.5, 1, 1.0 and scientific forms such as 1e-05
    try:
        float(s)
    except ValueError:
        return False
    return True


LogStyle = Literal["json", "pretty", "auto"]


def _env_level() -> int:
    v = os.environ.get(f"{_ENV_PREFIX}LOG_LEVEL")
    if not v:
        return logging.INFO
    return {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }.get(v.strip().upper(), logging.INFO)


def init_logging(style: LogStyle = "auto") -> logging.Logger:
    """Initialize or refresh the project logger.

    Re-binds the StreamHandler to the current ``sys.stdout`` so that stdout
    replacements (pytest capsys) are honored, keeping exactly one handler.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    lvl = _env_level()
    logger.setLevel(lvl)
    logger.propagate = _env_truthy(f"{_ENV_PREFIX}LOG_PROPAGATE") or _env_truthy("LOG_PROPAGATE")

    formatter = _choose_formatter(style)
    for h in list(logger.handlers):
        if isinstance(h, logging.StreamHandler):
            logger.removeHandler(h)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(lvl)
    logger.addHandler(handler)
    return logger


def get_logger() -> logging.Logger:
    return logging.getLogger(_LOGGER_NAME)


def _env_truthy(name: str) -> bool:
    v = os.environ.get(name)
    if not v:
        return False
    return v.strip().lower() in {"1", "true", "yes", "on", "y"}


def _choose_formatter(style: LogStyle = "auto") -> logging.Formatter:
    if style == "json":
        return _JsonFormatter()
    if style == "pretty":
        return _ConsoleFormatter()

    force_json = _env_truthy(f"{_ENV_PREFIX}LOG_JSON") or _env_truthy("LOG_JSON")
    force_pretty = _env_truthy(f"{_ENV_PREFIX}LOG_PRETTY") or _env_truthy("LOG_PRETTY")

    @runtime_checkable
    class _HasIsatty(Protocol):
        def isatty(self) -> bool: ...

    out_stream = sys.stdout
    is_tty = isinstance(out_stream, _HasIsatty) and bool(out_stream.isatty())
    if not force_json and (force_pretty or is_tty):
        return _ConsoleFormatter()
    return _JsonFormatter()
