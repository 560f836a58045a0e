"""
Application registrar

Ensures one application's state on an already provisioned host: app root
directory, PostgreSQL database, Nginx + Passenger virtual host (written,
enabled, validated, reloaded) and optionally a Let's Encrypt certificate.
"""

import logging
import os
import pwd
import stat
import subprocess
from enum import Enum
from typing import Dict, List, Optional, Tuple

from . import LOGGER_NAME
from .application import ApplicationSpec
from .config import Config
from .configfile import backup_file, ensure_owner, file_checksum, text_checksum, write_atomic
from .credentials import read_password
from .engine import APPLIED, PENDING, ProvisioningStep, RunReport, StepEngine, StepResult
from .errors import NonFatalWarning, ValidationError
from .provisioner import validate_deploy_user
from .resources import HostResources
from .shell import CommandRunner, describe_failure
from .templates import render_vhost

logger = logging.getLogger(LOGGER_NAME)


class RegistrationState(Enum):
    VALIDATING = "validating"
    DIRECTORY_ENSURED = "directory ensured"
    DATABASE_ENSURED = "database ensured"
    VHOST_WRITTEN = "virtual host written"
    PROXY_RELOADED = "proxy reloaded"
    CERTIFICATE_REQUESTED = "certificate requested"
    DONE = "done"


class Registrar:
    """Registers applications on the host, one ApplicationSpec at a time."""

    def __init__(self, config: Config, runner: Optional[CommandRunner] = None):
        self.config = config
        self.runner = runner or CommandRunner()
        self.resources = HostResources(config, self.runner)
        self.state = RegistrationState.VALIDATING
        self._state_for: Dict[str, RegistrationState] = {}
        self._vhost_steps: List[str] = []
        self._reload_needed = False

    # ------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------
    def preflight(self, spec: ApplicationSpec) -> None:
        """Everything that must hold before any state is touched."""
        spec.validate()
        validate_deploy_user(self.config)
        if not self.runner.command_exists("nginx"):
            raise ValidationError("Nginx is not installed. Please run 'rubyvps provision' first.")
        if not self.runner.command_exists("psql"):
            raise ValidationError("PostgreSQL is not installed. Please run 'rubyvps provision' first.")
        if spec.request_tls and not self.runner.command_exists("certbot"):
            raise ValidationError(
                "Certbot is not installed. Please run 'rubyvps provision' first or install Certbot manually."
            )

    # ------------------------------------------------------------
    # App directory
    # ------------------------------------------------------------
    def directory_ready(self, spec: ApplicationSpec) -> bool:
        root = spec.app_root(self.config)
        if not root.is_dir():
            return False
        st = root.stat()
        return st.st_uid == pwd.getpwnam(self.config.deploy_user).pw_uid and not st.st_mode & (stat.S_IWGRP | stat.S_IWOTH)

    def ensure_directory(self, spec: ApplicationSpec) -> None:
        root = spec.app_root(self.config)
        apps_root = self.config.apps_root
        for path in (apps_root, root):
            if not path.is_dir():
                path.mkdir()
                logger.info(f"Created {path}")
            ensure_owner(path, self.config.deploy_user)
        mode = stat.S_IMODE(root.stat().st_mode)
        os.chmod(root, (mode | stat.S_IRWXU) & ~(stat.S_IWGRP | stat.S_IWOTH))

    # ------------------------------------------------------------
    # Database
    # ------------------------------------------------------------
    def database_exists(self, spec: ApplicationSpec) -> bool:
        return self.resources.psql(f"SELECT 1 FROM pg_database WHERE datname = '{spec.db_name}'") == "1"

    def create_database(self, spec: ApplicationSpec) -> None:
        self.runner.run(["createdb", "-O", self.config.deploy_user, spec.db_name], user="postgres")
        logger.info(f"Database '{spec.db_name}' created (owner {self.config.deploy_user})")

    # ------------------------------------------------------------
    # Virtual host
    # ------------------------------------------------------------
    def has_certificate(self, spec: ApplicationSpec) -> bool:
        cert_dir = self.config.certificate_dir(spec.domain)
        return (cert_dir / "fullchain.pem").exists() and (cert_dir / "privkey.pem").exists()

    def rendered_vhost(self, spec: ApplicationSpec) -> str:
        return render_vhost(spec, self.config, tls=self.has_certificate(spec))

    def vhost_current(self, spec: ApplicationSpec) -> bool:
        return file_checksum(spec.vhost_path(self.config)) == text_checksum(self.rendered_vhost(spec))

    def write_vhost(self, spec: ApplicationSpec) -> None:
        path = spec.vhost_path(self.config)
        if path.exists():
            logger.warning(f"{path} differs from the rendered configuration; replacing it (backup: {path.name}.bak)")
            backup_file(path)
        write_atomic(path, self.rendered_vhost(spec), mode=0o644)
        logger.info(f"Nginx configuration written: {path}")

    def site_enabled(self, spec: ApplicationSpec) -> bool:
        link = spec.enabled_link(self.config)
        return link.is_symlink() and os.readlink(link) == str(spec.vhost_path(self.config))

    def enable_site(self, spec: ApplicationSpec) -> None:
        link = spec.enabled_link(self.config)
        if link.is_symlink():
            link.unlink()
        link.parent.mkdir(parents=True, exist_ok=True)
        link.symlink_to(spec.vhost_path(self.config))
        logger.info(f"Site enabled: {link}")

    def proxy_current(self, spec: ApplicationSpec) -> bool:
        if self._reload_needed:
            return False
        stamp = self.config.reload_stamp(spec.app_name)
        if not stamp.is_file() or not self.site_enabled(spec):
            return False
        return stamp.read_text().strip() == text_checksum(self.rendered_vhost(spec))

    def reload_proxy(self, spec: ApplicationSpec) -> None:
        self.resources.reload_nginx()
        write_atomic(self.config.reload_stamp(spec.app_name), text_checksum(self.rendered_vhost(spec)) + "\n")
        self._reload_needed = False

    # ------------------------------------------------------------
    # Certificate
    # ------------------------------------------------------------
    def request_certificate(self, spec: ApplicationSpec) -> None:
        cmd = ["certbot", "certonly", "--nginx", "-d", spec.domain]
        email = self.config.certbot_email
        if email:
            cmd += ["--non-interactive", "--agree-tos", "--email", email]
        logger.info(f"Requesting certificate for {spec.domain} from Let's Encrypt...")
        try:
            # Without an e-mail certbot asks its questions on the terminal.
            self.runner.run(cmd, capture_output=bool(email), timeout=self.config.command_timeout)
        except subprocess.CalledProcessError as e:
            raise NonFatalWarning(f"Certificate request for {spec.domain} failed: {describe_failure(e)}") from e

    # ------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------
    def _vhost_pair(self, spec: ApplicationSpec, suffix: str = "") -> List[ProvisioningStep]:
        vhost_name = f"Virtual host {spec.app_name}{suffix}"
        self._vhost_steps.append(vhost_name)
        self._state_for[vhost_name] = RegistrationState.VHOST_WRITTEN
        reload_name = f"Nginx reload{suffix}"
        self._state_for[reload_name] = RegistrationState.PROXY_RELOADED
        return [
            ProvisioningStep(
                vhost_name,
                lambda: self.vhost_current(spec),
                lambda: self.write_vhost(spec),
                description="Creating Nginx configuration",
            ),
            ProvisioningStep(
                reload_name,
                lambda: self.proxy_current(spec),
                lambda: self.reload_proxy(spec),
                description="Testing and reloading Nginx",
            ),
        ]

    def steps(self, spec: ApplicationSpec) -> List[ProvisioningStep]:
        self._state_for = {}
        self._vhost_steps = []
        directory = ProvisioningStep(
            f"App directory {spec.app_root(self.config)}",
            lambda: self.directory_ready(spec),
            lambda: self.ensure_directory(spec),
            description="Creating application directory",
        )
        database = ProvisioningStep(
            f"Database {spec.db_name}",
            lambda: self.database_exists(spec),
            lambda: self.create_database(spec),
            description="Creating PostgreSQL database",
        )
        enabled = ProvisioningStep(
            f"Site {spec.app_name} enabled",
            lambda: self.site_enabled(spec),
            lambda: self.enable_site(spec),
            description="Enabling site in Nginx",
        )
        self._state_for[directory.name] = RegistrationState.DIRECTORY_ENSURED
        self._state_for[database.name] = RegistrationState.DATABASE_ENSURED
        self._state_for[enabled.name] = RegistrationState.VHOST_WRITTEN
        self._vhost_steps.append(enabled.name)

        vhost, reload = self._vhost_pair(spec)
        steps = [directory, database, vhost, enabled, reload]
        if spec.request_tls:
            certificate = ProvisioningStep(
                f"TLS certificate {spec.domain}",
                lambda: self.has_certificate(spec),
                lambda: self.request_certificate(spec),
                fatal=False,
                description="Requesting SSL certificate from Let's Encrypt",
            )
            self._state_for[certificate.name] = RegistrationState.CERTIFICATE_REQUESTED
            steps += [certificate] + self._vhost_pair(spec, " (TLS)")
        return steps

    def _advance(self, result: StepResult) -> None:
        if result.status in (APPLIED, PENDING) and result.name in self._vhost_steps:
            self._reload_needed = True
        state = self._state_for.get(result.name)
        if state is not None:
            self.state = state
            logger.debug(f"Registration state: {state.value}")

    def register(self, spec: ApplicationSpec, dry_run: bool = False) -> RunReport:
        """Validate ``spec`` and reconcile its application state."""
        self.state = RegistrationState.VALIDATING
        self._reload_needed = False
        self.preflight(spec)
        engine = StepEngine(dry_run=dry_run, listener=self._advance)
        report = engine.run(self.steps(spec))
        self.state = RegistrationState.DONE
        return report

    # ------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------
    def summary_rows(self, spec: ApplicationSpec) -> List[Tuple[str, str]]:
        tls = "Will request certificate via Certbot" if spec.request_tls else "Not requested (use --request-tls to enable)"
        return [
            ("Application", spec.app_name),
            ("Domain", spec.domain),
            ("Database", spec.db_name or ""),
            ("Rails Env", spec.environment),
            ("App Root", str(spec.app_root(self.config))),
            ("SSL", tls),
        ]

    def next_steps(self, spec: ApplicationSpec, report: RunReport) -> str:
        """Capistrano-oriented follow-up instructions shown after registration."""
        user = self.config.deploy_user
        root = spec.app_root(self.config)
        lines = [
            f"Application directory: {root}",
            f"PostgreSQL database: {spec.db_name} (owned by {user})",
            f"Nginx virtual host: {spec.vhost_path(self.config)} (enabled and active)",
        ]
        if spec.request_tls:
            ok = self.has_certificate(spec)
            lines.append(f"SSL certificate: {'✓ Configured' if ok else '✗ Failed (see warnings above)'}")
        lines += [
            "",
            "Capistrano will create releases/ and shared/ on first deploy.",
            "",
            f"1. config/deploy/{spec.environment}.rb:",
            f"     set :deploy_to, '{root}'",
            f"     server '{spec.domain}', user: '{user}', roles: %w{{app db web}}",
            "2. config/database.yml:",
            f"     {spec.environment}:",
            "       adapter: postgresql",
            f"       database: {spec.db_name}",
            f"       username: {user}",
            "       host: localhost",
        ]
        n = 3
        password = read_password(self.config.redis_password_file)
        if password:
            lines += [
                f"{n}. Redis password for config/cable.yml and sidekiq.yml:",
                f"     {password}",
            ]
            n += 1
        lines.append(f"{n}. Deploy: cap {spec.environment} deploy")
        if not spec.request_tls:
            lines.append(f"{n + 1}. Optional SSL after first deploy: rubyvps register {spec.app_name} {spec.domain} --request-tls")
        lines += [
            "",
            f"Restart application:  sudo passenger-config restart-app {root}",
            f"Application log:      tail -f {root}/shared/log/{spec.environment}.log",
            "Nginx error log:      sudo tail -f /var/log/nginx/error.log",
            f"Connect to database:  psql -d {spec.db_name}",
        ]
        if report.failed:
            lines += ["", "Failed steps: " + ", ".join(r.name for r in report.failed)]
        return "\n".join(lines)
