"""Configuration passed explicitly to every step."""

import dataclasses
import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import ValidationError

DEFAULT_CONFIG_FILE: str = "/etc/rubyvps.json"
DB_PRIVILEGES = ("superuser", "createdb")


@dataclass
class Config:
    """Desired host state and the filesystem locations it lives in."""

    deploy_user: str = "deploy"
    home: Optional[Path] = None

    ruby_version: str = "3.3.6"
    node_version: str = "20"
    postgresql_version: str = "16"

    # Left unset on purpose: provision refuses to guess a privilege level.
    db_role_privilege: Optional[str] = None
    certbot_email: Optional[str] = None

    log_file: str = "/var/log/rubyvps.log"
    command_timeout: int = 3600
    apt_cache_max_age: int = 6 * 3600

    packages: List[str] = field(
        default_factory=lambda: [
            # Build essentials
            "build-essential",
            "autoconf",
            "bison",
            "patch",
            "rustc",
            # Development libraries
            "libssl-dev",
            "libyaml-dev",
            "libreadline6-dev",
            "zlib1g-dev",
            "libgmp-dev",
            "libncurses5-dev",
            "libffi-dev",
            "libgdbm6",
            "libgdbm-dev",
            "libdb-dev",
            "libpq-dev",
            # SQLite
            "sqlite3",
            "libsqlite3-dev",
            # Utilities
            "git",
            "curl",
            "wget",
            "gnupg2",
            "ca-certificates",
            "lsb-release",
            "apt-transport-https",
            "software-properties-common",
        ]
    )
    firewall_ports: List[str] = field(default_factory=lambda: ["22", "80", "443"])

    nginx_dir: Path = Path("/etc/nginx")
    nginx_modules_available: Path = Path("/usr/share/nginx/modules-available")
    redis_conf: Path = Path("/etc/redis/redis.conf")
    apt_sources_dir: Path = Path("/etc/apt/sources.list.d")
    apt_keyrings_dir: Path = Path("/etc/apt/keyrings")
    apt_lists_dir: Path = Path("/var/lib/apt/lists")
    letsencrypt_dir: Path = Path("/etc/letsencrypt")
    state_dir: Path = Path("/var/lib/rubyvps")
    os_release: Path = Path("/etc/os-release")

    def __post_init__(self) -> None:
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if f.type in (Path, "Path") and value is not None:
                setattr(self, f.name, Path(value))
        if self.home is None:
            self.home = Path("/home") / self.deploy_user
        else:
            self.home = Path(self.home)

    # ----------------------------------------------------------------
    # Derived locations
    # ----------------------------------------------------------------
    @property
    def nginx_available(self) -> Path:
        return self.nginx_dir / "sites-available"

    @property
    def nginx_enabled(self) -> Path:
        return self.nginx_dir / "sites-enabled"

    @property
    def passenger_conf(self) -> Path:
        return self.nginx_dir / "conf.d" / "mod-http-passenger.conf"

    @property
    def passenger_module_link(self) -> Path:
        return self.nginx_dir / "modules-enabled" / "50-mod-http-passenger.conf"

    @property
    def passenger_module_load(self) -> Path:
        return self.nginx_modules_available / "mod-http-passenger.load"

    @property
    def rbenv_root(self) -> Path:
        return self.home / ".rbenv"

    @property
    def ruby_shim(self) -> Path:
        return self.rbenv_root / "shims" / "ruby"

    @property
    def apps_root(self) -> Path:
        return self.home / "apps"

    @property
    def bashrc(self) -> Path:
        return self.home / ".bashrc"

    @property
    def ssh_dir(self) -> Path:
        return self.home / ".ssh"

    @property
    def redis_password_file(self) -> Path:
        return self.home / ".redis_password"

    def certificate_dir(self, domain: str) -> Path:
        return self.letsencrypt_dir / "live" / domain

    def reload_stamp(self, app_name: str) -> Path:
        """Checksum of the virtual host Nginx last reloaded successfully."""
        return self.state_dir / f"{app_name}.vhost.sha256"

    # ----------------------------------------------------------------
    # Loading and overrides
    # ----------------------------------------------------------------
    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "Config":
        """
        Load a configuration from a JSON file.

        With no path, DEFAULT_CONFIG_FILE is used if it exists, otherwise defaults.
        """
        if path is None:
            if not Path(DEFAULT_CONFIG_FILE).is_file():
                return cls()
            path = DEFAULT_CONFIG_FILE

        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ValidationError(f"Could not read configuration file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ValidationError(f"Configuration root in {path} must be an object")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValidationError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)

    def with_overrides(self, **overrides: Any) -> "Config":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "deploy_user" in changes and "home" not in changes:
            changes["home"] = None
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the config to a dictionary."""
        return {k: str(v) if isinstance(v, Path) else v for k, v in asdict(self).items()}
