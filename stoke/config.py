"""Tunable engine parameters.

Defaults live on the dataclass; ``from_env`` lets the application override
them with ``STOKE_*`` environment variables at startup.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .validators import InvalidInput, validate_quality


@dataclass(frozen=True)
class EngineConfig:
    got_it_quality: int = 4
    revisit_quality: int = 2
    correct_quality_threshold: int = 3
    mastery_interval_days: int = 21
    max_consecutive_same_content: int = 2
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        validate_quality(self.got_it_quality)
        validate_quality(self.revisit_quality)
        validate_quality(self.correct_quality_threshold)
        if self.mastery_interval_days < 0:
            raise InvalidInput(f"mastery_interval_days must not be negative, got {self.mastery_interval_days}")
        if self.max_consecutive_same_content < 1:
            raise InvalidInput(
                f"max_consecutive_same_content must be at least 1, got {self.max_consecutive_same_content}"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            got_it_quality=int(env.get("STOKE_GOT_IT_QUALITY", defaults.got_it_quality)),
            revisit_quality=int(env.get("STOKE_REVISIT_QUALITY", defaults.revisit_quality)),
            correct_quality_threshold=int(
                env.get("STOKE_CORRECT_QUALITY_THRESHOLD", defaults.correct_quality_threshold)
            ),
            mastery_interval_days=int(env.get("STOKE_MASTERY_INTERVAL_DAYS", defaults.mastery_interval_days)),
            max_consecutive_same_content=int(
                env.get("STOKE_MAX_CONSECUTIVE_SAME_CONTENT", defaults.max_consecutive_same_content)
            ),
            log_level=env.get("STOKE_LOG_LEVEL", defaults.log_level).upper(),
        )


__all__ = ["EngineConfig"]
