from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Portal settings.

    Notes:
    - Defaults are local and deterministic (SQLite file next to the repo, bundled policy).
    - Every field can be overridden with a ``PORTAL_`` environment variable.
    """

    model_config = SettingsConfigDict(env_prefix="PORTAL_", extra="ignore")

    db_url: str | None = None
    policy_path: str | None = None
    log_level: str = "INFO"
    seed_demo_data: bool = True

    authorization_header: str = "Authorization"
    bearer_prefix: str = "Bearer"

    def resolved_db_url(self) -> str:
        if self.db_url:
            return self.db_url

        repo_root = Path(__file__).resolve().parents[1]
        db_path = repo_root / "portal.db"
        return f"sqlite:///{db_path}"

    def resolved_policy_path(self) -> Path:
        if self.policy_path:
            return Path(self.policy_path)

        repo_root = Path(__file__).resolve().parents[1]
        return repo_root / "config" / "policy.yaml"


@lru_cache
def get_settings() -> Settings:
    return Settings()
