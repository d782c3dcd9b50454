"""Configuration helpers for the dialogue tree engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

DEFAULT_STORAGE_KEY = "forge_dialogue_trees"
DEFAULT_START_TEXT = "Welcome to the dialogue."
DEFAULT_SPEAKER = "Narrator"
DEFAULT_MAX_TRANSPARENT_STEPS = 1000

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    return Path(trimmed).expanduser()


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default

    trimmed = value.strip()
    return trimmed or default


def _parse_positive_int(value: str | None, *, name: str, default: int) -> int:
    if value is None:
        return default

    trimmed = value.strip()
    if not trimmed:
        return default

    try:
        parsed = int(trimmed)
    except ValueError as exc:
        raise ValueError(f"{name} must be a positive integer.") from exc
    if parsed < 1:
        raise ValueError(f"{name} must be greater than zero.")
    return parsed


@dataclass(frozen=True)
class DialogueSettings:
    """Runtime settings for the store, runtime, API and CLI.

    Values are read from ``DIALOGUETREE_*`` environment variables by
    :meth:`from_env`. Paths are expanded to support ``~`` prefixes while
    empty strings are treated as if the variable was unset.
    """

    storage_key: str = DEFAULT_STORAGE_KEY
    storage_dir: Path | None = None
    default_start_text: str = DEFAULT_START_TEXT
    default_speaker: str = DEFAULT_SPEAKER
    max_transparent_steps: int = DEFAULT_MAX_TRANSPARENT_STEPS
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "DialogueSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.

        Raises:
            ValueError: If a numeric or log level variable holds an invalid value.
        """

        source = environ if environ is not None else os.environ

        log_level = _normalise_string(
            source.get("DIALOGUETREE_LOG_LEVEL"), default="WARNING"
        ).upper()
        if log_level not in _LOG_LEVELS:
            raise ValueError(
                "DIALOGUETREE_LOG_LEVEL must be one of: " + ", ".join(_LOG_LEVELS)
            )

        return cls(
            storage_key=_normalise_string(
                source.get("DIALOGUETREE_STORAGE_KEY"), default=DEFAULT_STORAGE_KEY
            ),
            storage_dir=_normalise_path(source.get("DIALOGUETREE_STORAGE_DIR")),
            default_start_text=_normalise_string(
                source.get("DIALOGUETREE_DEFAULT_START_TEXT"),
                default=DEFAULT_START_TEXT,
            ),
            default_speaker=_normalise_string(
                source.get("DIALOGUETREE_DEFAULT_SPEAKER"), default=DEFAULT_SPEAKER
            ),
            max_transparent_steps=_parse_positive_int(
                source.get("DIALOGUETREE_MAX_TRANSPARENT_STEPS"),
                name="DIALOGUETREE_MAX_TRANSPARENT_STEPS",
                default=DEFAULT_MAX_TRANSPARENT_STEPS,
            ),
            log_level=log_level,
        )


__all__ = ["DialogueSettings"]
