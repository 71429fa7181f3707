from __future__ import annotations

import json
from pathlib import Path
from functools import lru_cache

import structlog
import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from sourcehealth.models.schemas import Endpoint, EndpointEntry


ROOT_DIR = Path(__file__).resolve().parent.parent.parent

# In Docker, the package is installed to site-packages but config lives at /app/config.
# Fall back to the source-tree-relative path for local development.
_docker_config = Path("/app/config")
CONFIG_DIR = _docker_config if _docker_config.exists() else ROOT_DIR / "config"

logger = structlog.get_logger()


class ConfigError(Exception):
    """The endpoint list is missing or cannot be parsed. Fatal for a run."""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Files
    endpoints_path: Path = CONFIG_DIR / "endpoints.json"
    report_path: Path = Path("report.md")
    report_timezone: str = "Asia/Shanghai"

    # Search test
    enable_search_test: bool = True
    search_keyword: str = "斗罗大陆"
    search_param: str = "wd"

    # Probing
    concurrent_limit: int = Field(10, ge=1)
    max_retry: int = Field(3, ge=1)
    retry_delay_ms: int = Field(500, ge=0)
    timeout_ms: int = Field(10000, ge=1)

    # History
    max_days: int = Field(30, ge=1)
    warn_streak: int = Field(3, ge=1)

    # Slack
    slack_webhook_url: str = ""

    # Trigger auth
    trigger_secret: str = ""

    log_level: str = "INFO"

    def load_yaml_config(self) -> dict:
        settings_path = CONFIG_DIR / "settings.yaml"
        if settings_path.exists():
            with open(settings_path) as f:
                return yaml.safe_load(f) or {}
        return {}

    def yaml_section(self, name: str) -> dict:
        """One top-level mapping of settings.yaml; empty if absent or not a mapping."""
        config = self.load_yaml_config()
        section = config.get(name) if isinstance(config, dict) else None
        return section if isinstance(section, dict) else {}


@lru_cache
def get_settings() -> Settings:
    return Settings()


def load_endpoints(path: Path | str) -> list[Endpoint]:
    """Read the endpoint list. Raises ConfigError if it is missing or malformed."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Endpoint config not found: {path}")

    try:
        text = path.read_text(encoding="utf-8")
        if path.suffix in (".yaml", ".yml"):
            raw = yaml.safe_load(text)
        else:
            raw = json.loads(text)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot parse endpoint config {path}: {e}") from e

    if isinstance(raw, dict):
        raw = raw.get("sources")
    if not isinstance(raw, list):
        raise ConfigError(f"Endpoint config {path} must contain a list of sources")

    endpoints: list[Endpoint] = []
    seen: set[str] = set()
    for i, item in enumerate(raw):
        try:
            endpoint = EndpointEntry.model_validate(item).to_endpoint()
        except ValidationError as e:
            raise ConfigError(f"Invalid source #{i} in {path}: {e}") from e

        if endpoint.key in seen:
            logger.warning("duplicate_endpoint_skipped", name=endpoint.name, base_url=endpoint.key)
            continue
        seen.add(endpoint.key)
        endpoints.append(endpoint)

    logger.info("endpoints_loaded", path=str(path), count=len(endpoints))
    return endpoints
