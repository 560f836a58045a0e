"""Host provisioning: brings the VPS to the state Ruby applications need."""

import logging
import pwd
import re
from typing import List, Optional, Tuple

from . import LOGGER_NAME
from .config import DB_PRIVILEGES, Config
from .engine import ProvisioningStep, RunReport, StepEngine
from .errors import ValidationError
from .resources import HostResources
from .shell import CommandRunner

logger = logging.getLogger(LOGGER_NAME)

DEPLOY_USER_PATTERN = re.compile(r"^[a-z_][a-z0-9_-]*$")

# (label, command, run as deploy user)
VERSION_COMMANDS: List[Tuple[str, List[str], bool]] = [
    ("Ruby", ["ruby", "-v"], True),
    ("Bundler", ["bundle", "-v"], True),
    ("rbenv", ["rbenv", "-v"], True),
    ("Node.js", ["node", "-v"], False),
    ("npm", ["npm", "-v"], False),
    ("Yarn", ["yarn", "-v"], False),
    ("PostgreSQL", ["psql", "--version"], False),
    ("SQLite", ["sqlite3", "--version"], False),
    ("Redis", ["redis-server", "--version"], False),
    ("Nginx", ["nginx", "-v"], False),
    ("Passenger", ["passenger", "--version"], False),
    ("Certbot", ["certbot", "--version"], False),
]


def validate_deploy_user(config: Config) -> None:
    """The deploy account must exist before anything is provisioned for it."""
    if not DEPLOY_USER_PATTERN.fullmatch(config.deploy_user):
        raise ValidationError(f"Invalid deploy user name: {config.deploy_user}")
    try:
        pwd.getpwnam(config.deploy_user)
    except KeyError:
        raise ValidationError(
            f"User '{config.deploy_user}' does not exist. Create it first: "
            f"adduser {config.deploy_user} && usermod -aG sudo {config.deploy_user}"
        ) from None
    if not config.home.is_dir():
        raise ValidationError(f"Home directory {config.home} does not exist")


class Provisioner:
    """Builds the ordered host steps and runs them through the step engine."""

    def __init__(self, config: Config, runner: Optional[CommandRunner] = None):
        self.config = config
        self.runner = runner or CommandRunner()
        self.resources = HostResources(config, self.runner)

    def preflight(self) -> None:
        validate_deploy_user(self.config)
        if self.config.db_role_privilege is None:
            raise ValidationError(
                "PostgreSQL privilege level for the deploy role is not set. "
                "Pass --db-privilege superuser|createdb or set db_role_privilege in the config file."
            )
        if self.config.db_role_privilege not in DB_PRIVILEGES:
            raise ValidationError(
                f"Invalid db_role_privilege '{self.config.db_role_privilege}' "
                f"(expected one of: {', '.join(DB_PRIVILEGES)})"
            )

    def steps(self, upgrade: bool = False) -> List[ProvisioningStep]:
        r = self.resources
        return (
            r.system_steps(upgrade=upgrade)
            + r.ruby_steps()
            + r.node_steps()
            + r.postgresql_steps()
            + r.redis_steps()
            + r.nginx_steps()
            + r.certbot_steps()
            + r.firewall_steps()
            + r.maintenance_steps()
        )

    def provision(
        self,
        upgrade: bool = False,
        dry_run: bool = False,
        listener=None,
    ) -> RunReport:
        """Validate, then reconcile every host resource in order."""
        self.preflight()
        engine = StepEngine(dry_run=dry_run, listener=listener)
        report = engine.run(self.steps(upgrade=upgrade))
        logger.info(
            f"Provisioning finished: {len(report.changed)} changed, "
            f"{len(report.results) - len(report.changed) - len(report.failed)} unchanged, "
            f"{len(report.failed)} failed"
        )
        return report

    def collect_versions(self) -> List[Tuple[str, str]]:
        """Installed component versions for the final summary."""
        versions = []
        for label, cmd, as_deploy in VERSION_COMMANDS:
            try:
                if as_deploy:
                    result = self.resources.run_as_deploy(cmd, check=False)
                else:
                    if not self.runner.command_exists(cmd[0]):
                        versions.append((label, "not installed"))
                        continue
                    result = self.runner.run(cmd, check=False)
            except OSError:
                versions.append((label, "not installed"))
                continue
            # nginx -v prints to stderr
            output = (result.stdout or "").strip() or (result.stderr or "").strip()
            if result.returncode != 0 or not output:
                versions.append((label, "not available"))
            else:
                versions.append((label, output.splitlines()[0]))
        return versions
