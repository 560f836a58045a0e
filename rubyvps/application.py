"""Application registration request and its validation."""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import Config
from .errors import ValidationError

APP_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
DOMAIN_PATTERN = re.compile(r"^[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
DB_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
ENVIRONMENT_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
MAX_DB_NAME_LENGTH = 63  # PostgreSQL NAMEDATALEN - 1


@dataclass
class ApplicationSpec:
    """One application to register on the host."""

    app_name: str
    domain: str
    db_name: Optional[str] = None
    environment: str = "production"
    request_tls: bool = False

    def __post_init__(self) -> None:
        if not self.db_name:
            self.db_name = f"{self.app_name}_production"

    def validate(self) -> None:
        """Raise ValidationError for names that are unsafe to use on the host."""
        if not APP_NAME_PATTERN.fullmatch(self.app_name):
            raise ValidationError(
                f"Invalid app name '{self.app_name}'. Use only letters, numbers, underscores, and hyphens."
            )
        labels = self.domain.split(".")
        if not DOMAIN_PATTERN.fullmatch(self.domain) or any(
            not label or label.startswith("-") or label.endswith("-") for label in labels
        ):
            raise ValidationError(f"Invalid domain format: {self.domain}")
        if not DB_NAME_PATTERN.fullmatch(self.db_name or ""):
            raise ValidationError(
                f"Invalid database name '{self.db_name}'. Use only letters, numbers, underscores, and hyphens."
            )
        if len(self.db_name or "") > MAX_DB_NAME_LENGTH:
            raise ValidationError(
                f"Database name '{self.db_name}' is longer than {MAX_DB_NAME_LENGTH} characters."
            )
        if not ENVIRONMENT_PATTERN.fullmatch(self.environment):
            raise ValidationError(f"Invalid Rails environment: {self.environment}")

    def app_root(self, config: Config) -> Path:
        return config.apps_root / self.app_name

    def public_dir(self, config: Config) -> Path:
        return self.app_root(config) / "current" / "public"

    def vhost_path(self, config: Config) -> Path:
        return config.nginx_available / self.app_name

    def enabled_link(self, config: Config) -> Path:
        return config.nginx_enabled / self.app_name
