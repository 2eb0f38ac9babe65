from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class SqlStoreConfig:
    """Connection configuration.

    `database_url` should come from environment (DATABASE_URL).
    Do not log it.
    """

    database_url: str
    echo: bool = False

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ValueError("database_url is required")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SqlStoreConfig":
        env = os.environ if environ is None else environ
        url = env.get("DATABASE_URL", "")
        if not url:
            raise ValueError("DATABASE_URL is not set")
        return cls(database_url=url)
