"""
settings.py — Institution-wide settings read from the environment.

The engine never touches ``os.environ``; callers build a ``Settings`` once
(normally via ``Settings.from_env()`` after ``load_dotenv()``) and pass it in.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List

from evaluation.models import RECOVERY_STRATEGIES, REPLACE_IF_HIGHER

logger = logging.getLogger(__name__)


def _split_origins(raw: str) -> List[str]:
    return [o.strip() for o in raw.split(",") if o.strip()]


@dataclass(frozen=True)
class Settings:
    default_recovery_strategy: str = REPLACE_IF_HIGHER
    school_name: str = "Rede Municipal de Ensino"
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])

    @classmethod
    def from_env(cls) -> "Settings":
        strategy = os.getenv("DEFAULT_RECOVERY_STRATEGY", REPLACE_IF_HIGHER).strip().lower()
        if strategy not in RECOVERY_STRATEGIES:
            logger.warning(
                " SETTINGS_INVALID key=DEFAULT_RECOVERY_STRATEGY value=%s fallback=%s",
                strategy,
                REPLACE_IF_HIGHER,
            )
            strategy = REPLACE_IF_HIGHER
        return cls(
            default_recovery_strategy=strategy,
            school_name=os.getenv("SCHOOL_NAME", "Rede Municipal de Ensino"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cors_origins=_split_origins(
                os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
            ),
        )
