"""Configuration helpers for the AI insertion annotator."""

from __future__ import annotations

import logging
from configparser import ConfigParser
from typing import Any, Protocol

from .errors import AnnotatorConfigError
from .markers import DEFAULT_TOOL_NAME

__all__ = ["AnnotatorConfig", "DEFAULT_WATCH_PATTERNS"]

logger = logging.getLogger(__name__)


class _ConfigReader(Protocol):
    """Protocol describing the subset of config readers we rely on."""

    def has_option(self, section: str, option: str) -> bool:  # pragma: no cover - typing aid
        ...

    def has_section(self, section: str) -> bool:  # pragma: no cover - typing aid
        ...

    def get(self, section: str, option: str, *args: Any, **kwargs: Any) -> str:  # pragma: no cover
        ...

    def getboolean(self, section: str, option: str, *args: Any, **kwargs: Any) -> bool:  # pragma: no cover
        ...

    def getint(self, section: str, option: str, *args: Any, **kwargs: Any) -> int:  # pragma: no cover
        ...


DEFAULT_WATCH_PATTERNS: tuple[str, ...] = (
    "**/*.{js,ts,jsx,tsx}",
    "**/*.{py,rb,go,rs,java,kt,swift}",
    "**/*.{c,cpp,h,hpp,cs}",
    "**/*.{html,css,scss,less}",
    "**/*.{sql,sh,bash,ps1}",
    "**/*.{yaml,yml,json,xml}",
)

_DEFAULTS: dict[str, Any] = {
    "enabled": True,
    "chars_per_second_threshold": 10,
    "min_chars_for_detection": 8,
    "env_file_name": ".env",
    "tool_name": DEFAULT_TOOL_NAME,
    "cooldown_seconds": 2.0,
    "coalesce_window": 0.3,
    "suppression_grace": 0.6,
    "watch_patterns": DEFAULT_WATCH_PATTERNS,
    "audit_log_path": None,
}


class AnnotatorConfig:
    """Encapsulates the live configuration of the annotation engine."""

    __slots__ = (
        "enabled",
        "chars_per_second_threshold",
        "min_chars_for_detection",
        "env_file_name",
        "tool_name",
        "cooldown_seconds",
        "coalesce_window",
        "suppression_grace",
        "watch_patterns",
        "audit_log_path",
    )

    SECTION = "Annotator"

    def __init__(self, **overrides: Any) -> None:
        self.enabled: bool = True
        self.chars_per_second_threshold: int = 10
        self.min_chars_for_detection: int = 8
        self.env_file_name: str = ".env"
        self.tool_name: str = DEFAULT_TOOL_NAME
        self.cooldown_seconds: float = 2.0
        self.coalesce_window: float = 0.3
        self.suppression_grace: float = 0.6
        self.watch_patterns: tuple[str, ...] = DEFAULT_WATCH_PATTERNS
        self.audit_log_path: str | None = None

        for name, value in overrides.items():
            if name not in self.__slots__:
                raise AnnotatorConfigError(f"Unknown annotator option '{name}'")
            setattr(self, name, value)
        self.validate()

    def copy(self, **overrides: Any) -> "AnnotatorConfig":
        """Return a copy with ``overrides`` applied."""

        values = {name: getattr(self, name) for name in self.__slots__}
        values.update(overrides)
        return AnnotatorConfig(**values)

    def validate(self) -> None:
        """Raise :class:`AnnotatorConfigError` for values the engine cannot use."""

        if self.min_chars_for_detection < 1:
            raise AnnotatorConfigError("min_chars_for_detection must be at least 1")
        if self.chars_per_second_threshold < 0:
            raise AnnotatorConfigError("chars_per_second_threshold must not be negative")
        for name in ("cooldown_seconds", "coalesce_window", "suppression_grace"):
            if float(getattr(self, name)) < 0:
                raise AnnotatorConfigError(f"{name} must not be negative")
        if not (self.env_file_name or "").strip():
            raise AnnotatorConfigError("env_file_name must not be empty")

    def is_default_state(self) -> bool:
        """Return ``True`` when no user-specific settings are active."""

        return all(getattr(self, name) == default for name, default in _DEFAULTS.items())

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def load_from_main_config(self, conf: _ConfigReader) -> None:
        """Populate the settings from the main configuration object."""

        reader = _ReaderFacade(conf)
        section = self.SECTION

        self.enabled = reader.get_bool(section, "enabled", self.enabled)
        self.chars_per_second_threshold = max(
            0, reader.get_int(section, "chars_per_second_threshold", self.chars_per_second_threshold)
        )
        self.min_chars_for_detection = max(
            1, reader.get_int(section, "min_chars_for_detection", self.min_chars_for_detection)
        )
        self.env_file_name = (
            reader.get_str(section, "env_file_name", self.env_file_name).strip() or self.env_file_name
        )
        self.tool_name = reader.get_str(section, "tool_name", self.tool_name).strip() or self.tool_name
        self.cooldown_seconds = max(0.0, reader.get_float(section, "cooldown_seconds", self.cooldown_seconds))
        self.coalesce_window = max(0.0, reader.get_float(section, "coalesce_window", self.coalesce_window))
        self.suppression_grace = max(
            0.0, reader.get_float(section, "suppression_grace", self.suppression_grace)
        )
        patterns = reader.get_str_list(section, "watch_patterns", list(self.watch_patterns))
        self.watch_patterns = tuple(patterns) or DEFAULT_WATCH_PATTERNS
        self.audit_log_path = self._normalise_optional(
            reader.get_str(section, "audit_log_path", self.audit_log_path or "")
        )

    def save_to_main_config(self, conf: ConfigParser) -> None:
        """Persist the current settings into the main config parser."""

        if self.is_default_state():
            return

        section = self.SECTION
        if not conf.has_section(section):
            conf[section] = {}

        conf[section]["enabled"] = str(self.enabled)
        conf[section]["chars_per_second_threshold"] = str(self.chars_per_second_threshold)
        conf[section]["min_chars_for_detection"] = str(self.min_chars_for_detection)
        conf[section]["env_file_name"] = str(self.env_file_name)
        conf[section]["tool_name"] = str(self.tool_name)
        conf[section]["cooldown_seconds"] = str(self.cooldown_seconds)
        conf[section]["coalesce_window"] = str(self.coalesce_window)
        conf[section]["suppression_grace"] = str(self.suppression_grace)
        conf[section]["watch_patterns"] = ";".join(self.watch_patterns)

        if self.audit_log_path:
            conf[section]["audit_log_path"] = str(self.audit_log_path)
        elif conf.has_option(section, "audit_log_path"):
            conf.remove_option(section, "audit_log_path")

    @staticmethod
    def _normalise_optional(value: str | None) -> str | None:
        cleaned = (value or "").strip()
        return cleaned or None


class _ReaderFacade:
    """Typed, fault tolerant reads from a :class:`ConfigParser`."""

    __slots__ = ("_conf",)

    def __init__(self, conf: _ConfigReader) -> None:
        self._conf = conf

    def get_str(self, section: str, option: str, default: str) -> str:
        return self._conf.get(section, option, fallback=default)

    def get_bool(self, section: str, option: str, default: bool) -> bool:
        try:
            return self._conf.getboolean(section, option, fallback=default)
        except ValueError:
            logger.warning("Invalid boolean for '%s:%s' in annotator config", section, option)
            return default

    def get_int(self, section: str, option: str, default: int) -> int:
        try:
            return self._conf.getint(section, option, fallback=default)
        except ValueError:
            logger.warning("Invalid integer for '%s:%s' in annotator config", section, option)
            return default

    def get_float(self, section: str, option: str, default: float) -> float:
        try:
            raw_value = self._conf.get(section, option, fallback=str(default))
            return float(raw_value)
        except (ValueError, TypeError):
            logger.warning("Invalid float for '%s:%s' in annotator config", section, option)
            return default

    def get_str_list(self, section: str, option: str, default: list[str]) -> list[str]:
        if not self._conf.has_option(section, option):
            return default.copy()
        raw = self._conf.get(section, option, fallback="")
        # Brace globs contain commas, so entries are separated by semicolons
        return [item.strip() for item in raw.split(";") if item.strip()]
