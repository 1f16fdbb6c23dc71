"""Runtime configuration read from the environment at startup."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .repositories import EntityStore
from .services import DEFAULT_USER_ID
from .storage import InMemoryEntityStore, SqliteEntityStore


STORAGE_BACKENDS = ("memory", "sqlite")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class AppConfig:
    """Tunable settings for a studyhub process."""

    storage: str = "memory"
    db_path: Path = Path("studyhub.db")
    default_user_id: str = DEFAULT_USER_ID
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.storage not in STORAGE_BACKENDS:
            raise ValueError(
                f"Unknown storage backend {self.storage!r}; expected one of {', '.join(STORAGE_BACKENDS)}"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        env = os.environ if environ is None else environ
        return cls(
            storage=env.get("STUDYHUB_STORAGE", "memory").strip().lower(),
            db_path=Path(env.get("STUDYHUB_DB_PATH", "studyhub.db")),
            default_user_id=env.get("STUDYHUB_DEFAULT_USER", DEFAULT_USER_ID),
            log_level=env.get("STUDYHUB_LOG_LEVEL", "INFO").upper(),
        )

    def build_store(self) -> EntityStore:
        if self.storage == "sqlite":
            return SqliteEntityStore(self.db_path)
        return InMemoryEntityStore()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


__all__ = ["AppConfig", "configure_logging"]
