"""Planner CRM configuration via pydantic-settings."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class PlannerSettings(BaseSettings):
    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///planner_crm.db"
    echo_sql: bool = False
    app_title: str = "Planner CRM"
    log_level: str = "INFO"

    # Stage named like this marks the proposal milestone when no stage carries the flag.
    proposal_stage_name: str = "Proposta Feita"
    sla_warning_ratio: float = 0.8

    actor_header: str = "X-Actor-Id"

    # SLA breach scanner
    sla_scan_enabled: bool = False
    sla_scan_interval_seconds: float = 3600.0
    notification_link_prefix: str = "/pipeline"

    model_config = {"env_prefix": "PLANNER_CRM_", "env_file": ".env", "extra": "ignore"}

    @property
    def base_dir(self) -> Path:
        return Path(__file__).resolve().parent

    @property
    def project_dir(self) -> Path:
        return self.base_dir.parent

    @property
    def migrations_dir(self) -> Path:
        return self.base_dir / "migrations"

    @property
    def sync_database_url(self) -> str:
        """Database URL with the async driver swapped for its sync counterpart (Alembic)."""
        return (
            self.database_url
            .replace("+aiosqlite", "")
            .replace("+asyncpg", "+psycopg")
        )

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in {"prod", "production"}


settings = PlannerSettings()
