from __future__ import annotations

import json
import os
from datetime import date
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from catalyst_monitor.errors import ConfigurationError

DEFAULT_MILESTONES_BASE_URL = "https://milestones.projectcatalyst.io"
DEFAULT_KOIOS_BASE_URL = "https://api.koios.rest/api/v1"
DEFAULT_PRICE_API_URL = "https://api.coingecko.com/api/v3/simple/price"


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


class Settings(BaseModel):
    """Environment-driven settings, built once per run and passed explicitly."""

    backend_url: str = ""
    backend_key: str = ""
    milestones_base_url: str = DEFAULT_MILESTONES_BASE_URL
    koios_base_url: str = DEFAULT_KOIOS_BASE_URL
    koios_api_key: str = ""
    price_api_url: str = DEFAULT_PRICE_API_URL
    discord_webhook_url: str = ""
    projects_config: Path = Path("config") / "projects.json"
    data_dir: Path = Path("data")
    summary_path: Path = Path("README.md")
    http_timeout: float = 20.0

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            backend_url=_env("BACKEND_URL"),
            backend_key=_env("BACKEND_KEY"),
            milestones_base_url=_env("MILESTONES_BASE_URL", DEFAULT_MILESTONES_BASE_URL).rstrip("/"),
            koios_base_url=_env("KOIOS_BASE_URL", DEFAULT_KOIOS_BASE_URL).rstrip("/"),
            koios_api_key=_env("KOIOS_API_KEY"),
            price_api_url=_env("PRICE_API_URL", DEFAULT_PRICE_API_URL),
            discord_webhook_url=_env("DISCORD_WEBHOOK_URL"),
            projects_config=Path(_env("PROJECTS_CONFIG", str(Path("config") / "projects.json"))),
            data_dir=Path(_env("DATA_DIR", "data")),
            summary_path=Path(_env("SUMMARY_PATH", "README.md")),
            http_timeout=float(_env("HTTP_TIMEOUT", "20") or 20),
        )


# ---------------------------------------------------------------------------
# Static project configuration
# ---------------------------------------------------------------------------


class Collaborator(BaseModel):
    """A named party receiving either a fixed amount or a fraction of the budget."""

    model_config = ConfigDict(frozen=True)

    name: str
    amount: float | None = None
    allocation: float | None = None

    @model_validator(mode="after")
    def _exactly_one_share(self) -> Collaborator:
        if (self.amount is None) == (self.allocation is None):
            raise ValueError(f"collaborator {self.name!r} needs exactly one of 'amount' or 'allocation'")
        return self


class DateRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: date | None = None
    end: date | None = None


class ProjectConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    project_id: str
    name: str = ""
    wallet: str = ""
    date_ranges: DateRange = Field(default_factory=DateRange, alias="dateRanges")
    collaborators: tuple[Collaborator, ...] = ()

    @field_validator("project_id", mode="before")
    @classmethod
    def _id_as_str(cls, v: object) -> str:
        return str(v).strip()


class OrganizationConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    wallet: str = ""


class MonitorConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    projects: tuple[ProjectConfig, ...] = ()
    organizations: tuple[OrganizationConfig, ...] = ()

    def project(self, project_id: str) -> ProjectConfig:
        for proj in self.projects:
            if proj.project_id == project_id:
                return proj
        raise ConfigurationError(f"Project ID {project_id} not found in configuration")

    @property
    def project_ids(self) -> list[str]:
        return [p.project_id for p in self.projects]


def load_config(path: str | Path) -> MonitorConfig:
    """Load and validate the static project configuration file."""
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Project configuration not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Project configuration is not valid JSON: {path}: {exc}") from exc
    try:
        return MonitorConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid project configuration {path}: {exc}") from exc
