"""
Shared stores for the route modules.

The engine itself is stateless; these in-memory adapters stand in for the
database so the API can be exercised end to end. Override the ``get_*``
dependencies to plug in real storage.
"""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from evaluation.models import Assessment
from evaluation.repository import (
    InMemoryAssessmentRepository,
    InMemoryDirectory,
    InMemoryTransferStore,
)
from evaluation.settings import Settings

SAMPLE_DATA_DIR = Path(__file__).resolve().parent.parent / "sample_data"
DEFAULT_SEED = SAMPLE_DATA_DIR / "escola_exemplo.json"


def load_seed(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        return json.load(f)


@lru_cache(maxsize=1)
def _seed() -> Dict[str, Any]:
    return load_seed(Path(os.getenv("SEED_FILE", str(DEFAULT_SEED))))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache(maxsize=1)
def get_directory() -> InMemoryDirectory:
    return InMemoryDirectory.from_dict(_seed())


@lru_cache(maxsize=1)
def get_repository() -> InMemoryAssessmentRepository:
    return InMemoryAssessmentRepository(
        Assessment.from_dict(a) for a in _seed().get("assessments", [])
    )


@lru_cache(maxsize=1)
def get_transfer_store() -> InMemoryTransferStore:
    return InMemoryTransferStore()


def reset_stores() -> None:
    """Drop every cached store (fresh seed on next request)."""
    for factory in (_seed, get_settings, get_directory, get_repository, get_transfer_store):
        factory.cache_clear()
