"""
Event-log configuration.

``EventLogConfig`` is a frozen dataclass; ``load_config`` builds one from
``PROOFCHAIN_*`` environment variables and validates it.
"""

from dataclasses import dataclass, replace
from enum import IntEnum
from os import environ
from typing import Any, Literal, Mapping

from .errors import InvalidInputError


ENV_PREFIX = "PROOFCHAIN_"

SinkMode = Literal["background", "inline"]
SINK_MODES = ("background", "inline")


class LogLevel(IntEnum):
    """
    Ordered log levels. Numeric values are part of the export wire format.
    """
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    PROOF = 4
    VALIDATION = 5

    @classmethod
    def coerce(cls, value: "LogLevel | int | str") -> "LogLevel":
        if isinstance(value, cls):
            return value
        try:
            if isinstance(value, str):
                text = value.strip().upper()
                if text.isdigit():
                    return cls(int(text))
                if text == "WARNING":
                    return cls.WARN
                return cls[text]
            if isinstance(value, bool):
                raise ValueError(value)
            return cls(value)
        except (KeyError, ValueError, TypeError):
            raise InvalidInputError(
                f"Unknown log level: {value!r}",
                details={"level": value, "supported": [lvl.name for lvl in cls]},
            ) from None


@dataclass(frozen=True)
class EventLogConfig:
    min_level: LogLevel = LogLevel.DEBUG
    enable_console: bool = True
    enable_file: bool = False
    file_path: str | None = None
    max_file_size: int = 10 * 1024 * 1024
    # Disabling keeps every entry linked to the zero sentinel, trading
    # verifiable ordering for throughput. verify() will then fail.
    enable_hash_chain: bool = True
    sink_mode: SinkMode = "background"

    def __post_init__(self) -> None:
        object.__setattr__(self, "min_level", LogLevel.coerce(self.min_level))

    def validate(self) -> None:
        if self.enable_file and not (self.file_path or "").strip():
            raise InvalidInputError("file_path must be set when file logging is enabled")
        if self.max_file_size <= 0:
            raise InvalidInputError("max_file_size must be > 0")
        if self.sink_mode not in SINK_MODES:
            raise InvalidInputError(
                f"sink_mode must be one of {', '.join(SINK_MODES)}",
                details={"sink_mode": self.sink_mode},
            )

    def with_overrides(self, **overrides: Any) -> "EventLogConfig":
        cfg = replace(self, **overrides)
        cfg.validate()
        return cfg


def _coerce_bool(value: str, field: str) -> bool:
    truthy = {"1", "true", "yes", "on"}
    falsy = {"0", "false", "no", "off"}
    lowered = value.strip().lower()
    if lowered in truthy:
        return True
    if lowered in falsy:
        return False
    raise InvalidInputError(f"Invalid boolean for {field}: {value}")


def _coerce_int(value: str, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"Invalid integer for {field}: {value}") from exc


def _get_env(env: Mapping[str, str], key: str) -> str | None:
    return env.get(f"{ENV_PREFIX}{key}")


def load_config(env: Mapping[str, str] | None = None) -> EventLogConfig:
    source: Mapping[str, str] = environ if env is None else env
    defaults = EventLogConfig()

    level_raw = _get_env(source, "MIN_LEVEL")
    min_level = LogLevel.coerce(level_raw) if level_raw is not None else defaults.min_level

    console_raw = _get_env(source, "ENABLE_CONSOLE")
    enable_console = (
        _coerce_bool(console_raw, "enable_console")
        if console_raw is not None
        else defaults.enable_console
    )

    file_raw = _get_env(source, "ENABLE_FILE")
    enable_file = (
        _coerce_bool(file_raw, "enable_file") if file_raw is not None else defaults.enable_file
    )

    file_path = _get_env(source, "FILE_PATH") or defaults.file_path

    size_raw = _get_env(source, "MAX_FILE_SIZE")
    max_file_size = (
        _coerce_int(size_raw, "max_file_size") if size_raw is not None else defaults.max_file_size
    )

    chain_raw = _get_env(source, "ENABLE_HASH_CHAIN")
    enable_hash_chain = (
        _coerce_bool(chain_raw, "enable_hash_chain")
        if chain_raw is not None
        else defaults.enable_hash_chain
    )

    sink_mode = (_get_env(source, "SINK_MODE") or defaults.sink_mode).strip().lower()

    cfg = EventLogConfig(
        min_level=min_level,
        enable_console=enable_console,
        enable_file=enable_file,
        file_path=file_path,
        max_file_size=max_file_size,
        enable_hash_chain=enable_hash_chain,
        sink_mode=sink_mode,  # type: ignore[arg-type]
    )
    cfg.validate()
    return cfg


__all__ = ["ENV_PREFIX", "LogLevel", "EventLogConfig", "load_config"]
