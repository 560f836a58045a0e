"""
Host resources

Probe and apply functions for every piece of host state the provisioner
manages, grouped per resource and returned as ordered ProvisioningSteps.
Probes only read (dpkg-query, systemctl is-*, read-only SQL, apt-get -s,
files on disk); appliers tolerate partially configured resources.
"""

import logging
import os
import re
import stat
import tempfile
import time
from pathlib import Path
from typing import List, Optional, Sequence

from . import LOGGER_NAME
from .config import Config
from .configfile import DirectiveFile, ensure_owner, write_atomic
from .credentials import generate_password, read_password, store_password
from .engine import ProvisioningStep
from .errors import ApplyError, ProbeError
from .shell import CommandRunner
from .templates import RBENV_BASHRC_BLOCK, RBENV_MARKER, render_passenger_source, render_pgdg_source

logger = logging.getLogger(LOGGER_NAME)

RBENV_REPO = "https://github.com/rbenv/rbenv.git"
RUBY_BUILD_REPO = "https://github.com/rbenv/ruby-build.git"
NODESOURCE_SETUP_URL = "https://deb.nodesource.com/setup_{version}.x"
PGDG_KEY_URL = "https://www.postgresql.org/media/keys/ACCC4CF8.asc"
PASSENGER_KEY_URL = "https://oss-binaries.phusionpassenger.com/auto-software-signing-gpg-key.txt"

VERSION_RE = re.compile(r"(\d+)(?:\.(\d+))?(?:\.(\d+))?")


# ----------------------------------------------------------------
# Parsing helpers
# ----------------------------------------------------------------
def parse_version(text: Optional[str]) -> Optional[str]:
    """Extract the first dotted version number from command output (``v20.11.1`` -> ``20.11.1``)."""
    if not text:
        return None
    match = VERSION_RE.search(text)
    return match.group(0) if match else None


def major_of(version: str) -> Optional[int]:
    match = VERSION_RE.search(version)
    return int(match.group(1)) if match else None


def needs_runtime_upgrade(current: Optional[str], target: str) -> bool:
    """
    A runtime is replaced when missing or when its major version differs from
    the target. Same-major versions are kept.
    """
    if not current:
        return True
    return major_of(current) != major_of(target)


def parse_os_codename(text: str) -> Optional[str]:
    values = {}
    for line in text.splitlines():
        if "=" in line:
            key, _, value = line.partition("=")
            values[key.strip()] = value.strip().strip('"')
    return values.get("VERSION_CODENAME") or values.get("UBUNTU_CODENAME") or None


def ufw_is_active(status_text: str) -> bool:
    return bool(re.search(r"^Status:\s+active", status_text, re.MULTILINE))


def ufw_allows(status_text: str, port: str) -> bool:
    pattern = rf"^{re.escape(port)}(/tcp)?\s+ALLOW"
    return bool(re.search(pattern, status_text, re.MULTILINE))


def apt_upgrade_count(simulation: str) -> int:
    match = re.search(r"^(\d+) upgraded", simulation, re.MULTILINE)
    return int(match.group(1)) if match else 0


def apt_autoremove_pending(simulation: str) -> List[str]:
    return [line.split()[1] for line in simulation.splitlines() if line.startswith("Remv ")]


# ----------------------------------------------------------------
# Resources
# ----------------------------------------------------------------
class HostResources:
    """Probes and appliers for the host, bound to one config and runner."""

    def __init__(self, config: Config, runner: CommandRunner):
        self.config = config
        self.runner = runner

    # ------------------------------------------------------------
    # Command helpers
    # ------------------------------------------------------------
    def run(self, cmd: Sequence[str], **kwargs):
        return self.runner.run(cmd, **kwargs)

    def run_as_deploy(self, cmd: Sequence[str], **kwargs):
        """Run a command as the deploy user with rbenv on the PATH."""
        root = self.config.rbenv_root
        path = f"{root}/bin:{root}/shims:/usr/local/bin:/usr/bin:/bin"
        full = ["env", f"HOME={self.config.home}", f"RBENV_ROOT={root}", f"PATH={path}"] + list(cmd)
        return self.runner.run(full, user=self.config.deploy_user, **kwargs)

    def psql(self, sql: str) -> str:
        result = self.run(["psql", "-tAc", sql], user="postgres", check=False)
        if result.returncode != 0:
            raise ProbeError(f"psql query failed: {(result.stderr or '').strip()}")
        return result.stdout.strip()

    def package_installed(self, package: str) -> bool:
        result = self.run(["dpkg-query", "-W", "-f=${Status}", package], check=False)
        return result.returncode == 0 and "install ok installed" in (result.stdout or "")

    def missing_packages(self, packages: Sequence[str]) -> List[str]:
        return [pkg for pkg in packages if not self.package_installed(pkg)]

    def apt_install(self, packages: Sequence[str]) -> None:
        logger.info(f"Installing packages: {', '.join(packages)}")
        self.run(["apt-get", "install", "-y", "-qq"] + list(packages), timeout=self.config.command_timeout)

    def apt_update(self) -> None:
        self.run(["apt-get", "update", "-qq"], timeout=self.config.command_timeout)

    def service_running(self, name: str) -> bool:
        active = self.run(["systemctl", "is-active", "--quiet", name], check=False)
        enabled = self.run(["systemctl", "is-enabled", "--quiet", name], check=False)
        return active.returncode == 0 and enabled.returncode == 0

    def enable_service(self, name: str) -> None:
        self.run(["systemctl", "enable", "--now", name])

    def nginx_config_valid(self) -> bool:
        result = self.run(["nginx", "-t"], check=False)
        if result.returncode != 0:
            logger.error(f"Nginx configuration test failed: {(result.stderr or '').strip()}")
        return result.returncode == 0

    def reload_nginx(self) -> None:
        """Reload Nginx, but only when the configuration validates."""
        if not self.nginx_config_valid():
            raise ApplyError("Nginx configuration test failed; not reloading")
        self.run(["systemctl", "reload", "nginx"])
        logger.info("Nginx reloaded")

    def os_codename(self) -> str:
        try:
            codename = parse_os_codename(self.config.os_release.read_text())
        except OSError as e:
            raise ProbeError(f"Could not read {self.config.os_release}: {e}") from e
        if not codename:
            raise ProbeError(f"No release codename in {self.config.os_release}")
        return codename

    def fetch(self, url: str, dest: Path) -> None:
        self.run(["curl", "-fsSL", url, "-o", str(dest)])

    def add_apt_repository(self, list_file: Path, content: str, keyring: Path, key_url: str, dearmor: bool) -> None:
        self.config.apt_keyrings_dir.mkdir(parents=True, exist_ok=True)
        if dearmor:
            with tempfile.TemporaryDirectory(prefix="rubyvps_") as tmp:
                armored = Path(tmp) / "key.asc"
                self.fetch(key_url, armored)
                self.run(["gpg", "--dearmor", "--yes", "-o", str(keyring), str(armored)])
        else:
            self.fetch(key_url, keyring)
        os.chmod(keyring, 0o644)
        write_atomic(list_file, content)
        self.apt_update()

    # ------------------------------------------------------------
    # System packages
    # ------------------------------------------------------------
    def apt_index_fresh(self) -> bool:
        lists = self.config.apt_lists_dir
        if not lists.is_dir():
            return False
        newest = max((p.stat().st_mtime for p in lists.iterdir() if p.is_file()), default=0.0)
        return time.time() - newest < self.config.apt_cache_max_age

    def system_steps(self, upgrade: bool = False) -> List[ProvisioningStep]:
        steps = [
            ProvisioningStep(
                "Package index",
                self.apt_index_fresh,
                self.apt_update,
                description="Updating system package lists",
            )
        ]
        if upgrade:
            steps.append(
                ProvisioningStep(
                    "System upgrade",
                    lambda: apt_upgrade_count(self.run(["apt-get", "-s", "upgrade"]).stdout) == 0,
                    lambda: self.run(
                        ["apt-get", "upgrade", "-y", "-qq", "-o", "Dpkg::Options::=--force-confold"],
                        timeout=self.config.command_timeout,
                    ),
                    description="Upgrading installed packages",
                )
            )
        steps.append(
            ProvisioningStep(
                "Build tools and libraries",
                lambda: not self.missing_packages(self.config.packages),
                lambda: self.apt_install(self.missing_packages(self.config.packages)),
                description="Installing system build tools and dependencies",
            )
        )
        return steps

    # ------------------------------------------------------------
    # Ruby via rbenv
    # ------------------------------------------------------------
    def rbenv_installed(self) -> bool:
        root = self.config.rbenv_root
        return (root / "bin" / "rbenv").exists() and (
            root / "plugins" / "ruby-build" / "bin" / "ruby-build"
        ).exists()

    def install_rbenv(self) -> None:
        root = self.config.rbenv_root
        if not (root / "bin" / "rbenv").exists():
            self.run_as_deploy(["git", "clone", "--depth", "1", RBENV_REPO, str(root)])
        plugin = root / "plugins" / "ruby-build"
        if not (plugin / "bin" / "ruby-build").exists():
            self.run_as_deploy(["git", "clone", "--depth", "1", RUBY_BUILD_REPO, str(plugin)])

    def rbenv_in_shell(self) -> bool:
        bashrc = self.config.bashrc
        return bashrc.is_file() and "rbenv init" in bashrc.read_text()

    def add_rbenv_to_shell(self) -> None:
        bashrc = self.config.bashrc
        with open(bashrc, "a") as f:
            f.write(RBENV_BASHRC_BLOCK)
        ensure_owner(bashrc, self.config.deploy_user)
        logger.info(f"Added {RBENV_MARKER.lstrip('# ')} to {bashrc}")

    def current_ruby(self) -> Optional[str]:
        if not self.rbenv_installed():
            return None
        result = self.run_as_deploy(["rbenv", "version-name"], check=False)
        name = (result.stdout or "").strip()
        if result.returncode != 0 or not name or name == "system":
            return None
        return name

    def ruby_satisfied(self) -> bool:
        current = self.current_ruby()
        target = self.config.ruby_version
        if current and current != target and not needs_runtime_upgrade(current, target):
            logger.info(f"Keeping Ruby {current} (same major version as {target})")
        return not needs_runtime_upgrade(current, target)

    def install_ruby(self) -> None:
        version = self.config.ruby_version
        logger.info(f"Compiling Ruby {version} (this may take several minutes)...")
        self.run_as_deploy(["rbenv", "install", "--skip-existing", version], timeout=self.config.command_timeout)
        self.run_as_deploy(["rbenv", "global", version])
        self.run_as_deploy(["rbenv", "rehash"])
        self.run_as_deploy(["gem", "update", "--system", "--no-document", "--quiet"], timeout=self.config.command_timeout)

    def bundler_installed(self) -> bool:
        result = self.run_as_deploy(["gem", "list", "--installed", "bundler"], check=False)
        return result.returncode == 0 and (result.stdout or "").strip() == "true"

    def install_bundler(self) -> None:
        self.run_as_deploy(["gem", "install", "bundler", "--no-document", "--quiet"])
        self.run_as_deploy(["rbenv", "rehash"])

    def ruby_steps(self) -> List[ProvisioningStep]:
        version = self.config.ruby_version
        return [
            ProvisioningStep("rbenv and ruby-build", self.rbenv_installed, self.install_rbenv,
                             description="Cloning rbenv and ruby-build"),
            ProvisioningStep("rbenv shell integration", self.rbenv_in_shell, self.add_rbenv_to_shell,
                             description="Adding rbenv to ~/.bashrc"),
            ProvisioningStep(f"Ruby {version}", self.ruby_satisfied, self.install_ruby,
                             description=f"Installing Ruby {version}"),
            ProvisioningStep("Bundler", self.bundler_installed, self.install_bundler,
                             description="Installing Bundler"),
        ]

    # ------------------------------------------------------------
    # Node.js and Yarn
    # ------------------------------------------------------------
    def current_node(self) -> Optional[str]:
        if not self.runner.command_exists("node"):
            return None
        result = self.run(["node", "-v"], check=False)
        return parse_version(result.stdout) if result.returncode == 0 else None

    def install_node(self) -> None:
        url = NODESOURCE_SETUP_URL.format(version=self.config.node_version)
        with tempfile.TemporaryDirectory(prefix="rubyvps_") as tmp:
            script = Path(tmp) / "nodesource_setup.sh"
            self.fetch(url, script)
            self.run(["bash", str(script)], timeout=self.config.command_timeout)
        self.apt_install(["nodejs"])

    def node_steps(self) -> List[ProvisioningStep]:
        return [
            ProvisioningStep(
                f"Node.js {self.config.node_version}",
                lambda: not needs_runtime_upgrade(self.current_node(), self.config.node_version),
                self.install_node,
                description=f"Installing Node.js {self.config.node_version} LTS",
            ),
            ProvisioningStep(
                "Yarn",
                lambda: self.runner.command_exists("yarn"),
                lambda: self.run(["npm", "install", "--global", "yarn"]),
                description="Installing Yarn",
            ),
        ]

    # ------------------------------------------------------------
    # PostgreSQL
    # ------------------------------------------------------------
    @property
    def pgdg_list(self) -> Path:
        return self.config.apt_sources_dir / "pgdg.list"

    @property
    def pgdg_keyring(self) -> Path:
        return self.config.apt_keyrings_dir / "postgresql.asc"

    def pgdg_configured(self) -> bool:
        expected = render_pgdg_source(self.os_codename(), self.pgdg_keyring)
        return self.pgdg_list.is_file() and self.pgdg_list.read_text() == expected and self.pgdg_keyring.is_file()

    def add_pgdg(self) -> None:
        content = render_pgdg_source(self.os_codename(), self.pgdg_keyring)
        self.add_apt_repository(self.pgdg_list, content, self.pgdg_keyring, PGDG_KEY_URL, dearmor=False)

    def role_privileges(self) -> Optional[str]:
        user = self.config.deploy_user
        return self.psql(f"SELECT rolsuper, rolcreatedb FROM pg_roles WHERE rolname = '{user}'") or None

    def postgresql_installed(self) -> bool:
        return self.runner.command_exists("psql") and self.package_installed(
            f"postgresql-{self.config.postgresql_version}"
        )

    def role_satisfied(self) -> bool:
        # No server yet, so no role.
        if not self.postgresql_installed():
            return False
        row = self.role_privileges()
        if row is None:
            return False
        rolsuper, _, rolcreatedb = row.partition("|")
        if self.config.db_role_privilege == "superuser":
            return rolsuper == "t"
        return rolcreatedb == "t" and rolsuper == "f"

    def ensure_role(self) -> None:
        user = self.config.deploy_user
        superuser = self.config.db_role_privilege == "superuser"
        if self.role_privileges() is None:
            flag = "--superuser" if superuser else "--createdb"
            self.run(["createuser", flag, user], user="postgres")
            logger.info(f"PostgreSQL role '{user}' created ({self.config.db_role_privilege})")
        else:
            attrs = "SUPERUSER" if superuser else "NOSUPERUSER CREATEDB"
            self.run(["psql", "-c", f'ALTER ROLE "{user}" {attrs}'], user="postgres")
            logger.info(f"PostgreSQL role '{user}' altered to {attrs}")

    def postgresql_steps(self) -> List[ProvisioningStep]:
        version = self.config.postgresql_version
        packages = [f"postgresql-{version}", f"postgresql-client-{version}"]
        return [
            ProvisioningStep("PostgreSQL APT repository", self.pgdg_configured, self.add_pgdg,
                             description="Adding PostgreSQL APT repository"),
            ProvisioningStep(
                f"PostgreSQL {version}",
                lambda: not self.missing_packages(packages),
                lambda: self.apt_install(self.missing_packages(packages)),
                description="Installing PostgreSQL server and client",
            ),
            ProvisioningStep(
                "PostgreSQL service",
                lambda: self.service_running("postgresql"),
                lambda: self.enable_service("postgresql"),
                description="Ensuring PostgreSQL service is running",
            ),
            ProvisioningStep(
                f"PostgreSQL role {self.config.deploy_user}",
                self.role_satisfied,
                self.ensure_role,
                description=f"Configuring PostgreSQL role for {self.config.deploy_user}",
            ),
        ]

    # ------------------------------------------------------------
    # Redis
    # ------------------------------------------------------------
    def redis_conf(self) -> DirectiveFile:
        return DirectiveFile.read(self.config.redis_conf)

    def persist_redis_password(self) -> None:
        """Store the Redis password once: adopt a configured one, otherwise generate."""
        existing = self.redis_conf().get("requirepass")
        if existing:
            logger.info("Adopting the requirepass already present in redis.conf")
        store_password(self.config.redis_password_file, existing or generate_password(), self.config.deploy_user)

    def redis_password_configured(self) -> bool:
        configured = self.redis_conf().get("requirepass")
        stored = read_password(self.config.redis_password_file)
        if configured and stored and configured != stored:
            logger.warning(
                f"redis.conf requirepass differs from {self.config.redis_password_file}; leaving redis.conf unchanged"
            )
        return configured is not None

    def configure_redis_password(self) -> None:
        password = read_password(self.config.redis_password_file)
        if password is None:
            raise ApplyError(f"Redis password file {self.config.redis_password_file} is missing")
        conf = self.redis_conf()
        conf.set("requirepass", password)
        conf.save(backup=True)
        self.run(["systemctl", "restart", "redis-server"])
        logger.info("Redis password configured and Redis restarted")

    def redis_steps(self) -> List[ProvisioningStep]:
        return [
            ProvisioningStep(
                "Redis",
                lambda: self.package_installed("redis-server"),
                lambda: self.apt_install(["redis-server"]),
                description="Installing Redis",
            ),
            ProvisioningStep(
                "Redis service",
                lambda: self.service_running("redis-server"),
                lambda: self.enable_service("redis-server"),
                description="Ensuring Redis service is running",
            ),
            ProvisioningStep(
                "Redis password file",
                lambda: read_password(self.config.redis_password_file) is not None,
                self.persist_redis_password,
                description="Generating Redis password",
            ),
            ProvisioningStep(
                "Redis requirepass",
                self.redis_password_configured,
                self.configure_redis_password,
                description="Configuring Redis password",
            ),
        ]

    # ------------------------------------------------------------
    # Passenger + Nginx
    # ------------------------------------------------------------
    @property
    def passenger_list(self) -> Path:
        return self.config.apt_sources_dir / "passenger.list"

    @property
    def passenger_keyring(self) -> Path:
        return self.config.apt_keyrings_dir / "phusionpassenger.gpg"

    def passenger_repo_configured(self) -> bool:
        expected = render_passenger_source(self.os_codename(), self.passenger_keyring)
        return (
            self.passenger_list.is_file()
            and self.passenger_list.read_text() == expected
            and self.passenger_keyring.is_file()
        )

    def add_passenger_repo(self) -> None:
        content = render_passenger_source(self.os_codename(), self.passenger_keyring)
        self.add_apt_repository(self.passenger_list, content, self.passenger_keyring, PASSENGER_KEY_URL, dearmor=True)

    def passenger_module_enabled(self) -> bool:
        link = self.config.passenger_module_link
        return link.exists() or link.is_symlink() or not self.config.passenger_module_load.exists()

    def enable_passenger_module(self) -> None:
        link = self.config.passenger_module_link
        link.parent.mkdir(parents=True, exist_ok=True)
        link.symlink_to(self.config.passenger_module_load)
        logger.info("Passenger Nginx module enabled")

    def passenger_conf(self) -> DirectiveFile:
        return DirectiveFile.read(self.config.passenger_conf, terminator=";")

    def passenger_ruby_bound(self) -> bool:
        return self.passenger_conf().get("passenger_ruby") == str(self.config.ruby_shim)

    def bind_passenger_ruby(self) -> None:
        conf = self.passenger_conf()
        conf.set("passenger_ruby", str(self.config.ruby_shim))
        conf.save(backup=True)
        logger.info("Passenger configured to use rbenv Ruby")
        if self.run(["systemctl", "is-active", "--quiet", "nginx"], check=False).returncode == 0:
            self.reload_nginx()

    def passenger_install_valid(self) -> bool:
        if not self.runner.command_exists("passenger-config"):
            return False
        result = self.run(["passenger-config", "validate-install", "--auto"], check=False)
        if result.returncode != 0:
            logger.error((result.stdout or "").strip() or (result.stderr or "").strip())
        return result.returncode == 0

    def start_nginx(self) -> None:
        if not self.nginx_config_valid():
            raise ApplyError("Nginx configuration test failed; not starting Nginx")
        self.enable_service("nginx")

    def nginx_steps(self) -> List[ProvisioningStep]:
        packages = ["nginx", "libnginx-mod-http-passenger"]
        return [
            ProvisioningStep("Passenger APT repository", self.passenger_repo_configured, self.add_passenger_repo,
                             description="Adding Passenger APT repository"),
            ProvisioningStep(
                "Passenger + Nginx",
                lambda: not self.missing_packages(packages),
                lambda: self.apt_install(self.missing_packages(packages)),
                description="Installing libnginx-mod-http-passenger",
            ),
            ProvisioningStep("Passenger Nginx module", self.passenger_module_enabled, self.enable_passenger_module,
                             description="Enabling Passenger Nginx module"),
            ProvisioningStep("Passenger Ruby", self.passenger_ruby_bound, self.bind_passenger_ruby,
                             description="Configuring Passenger to use rbenv Ruby"),
            ProvisioningStep("Nginx service", lambda: self.service_running("nginx"), self.start_nginx,
                             description="Enabling and starting Nginx"),
            ProvisioningStep("Passenger installation", self.passenger_install_valid,
                             description="Validating Passenger installation"),
        ]

    # ------------------------------------------------------------
    # Certbot and firewall
    # ------------------------------------------------------------
    def certbot_steps(self) -> List[ProvisioningStep]:
        packages = ["certbot", "python3-certbot-nginx"]
        return [
            ProvisioningStep(
                "Certbot",
                lambda: not self.missing_packages(packages),
                lambda: self.apt_install(self.missing_packages(packages)),
                description="Installing Certbot with the Nginx plugin",
            )
        ]

    def ufw_status(self) -> str:
        return self.run(["ufw", "status"]).stdout or ""

    def firewall_satisfied(self) -> bool:
        if not self.runner.command_exists("ufw"):
            return False
        status = self.ufw_status()
        return ufw_is_active(status) and all(ufw_allows(status, p) for p in self.config.firewall_ports)

    def configure_firewall(self) -> None:
        if not self.runner.command_exists("ufw"):
            self.apt_install(["ufw"])
        status = self.ufw_status()
        if not ufw_is_active(status):
            self.run(["ufw", "default", "deny", "incoming"])
            self.run(["ufw", "default", "allow", "outgoing"])
        # Ports are allowed before enabling so SSH never drops.
        for port in self.config.firewall_ports:
            if not ufw_allows(status, port):
                self.run(["ufw", "allow", f"{port}/tcp"])
                logger.info(f"Allowed TCP port {port}.")
        if not ufw_is_active(status):
            self.run(["ufw", "--force", "enable"])
            logger.info("UFW firewall enabled.")

    def firewall_steps(self) -> List[ProvisioningStep]:
        ports = ", ".join(self.config.firewall_ports)
        return [
            ProvisioningStep("Firewall", self.firewall_satisfied, self.configure_firewall,
                             description=f"Configuring UFW (allow {ports})")
        ]

    # ------------------------------------------------------------
    # Permissions and cleanup
    # ------------------------------------------------------------
    def _loose_ssh_paths(self) -> List[Path]:
        ssh = self.config.ssh_dir
        if not ssh.is_dir():
            return []
        loose = []
        if stat.S_IMODE(ssh.stat().st_mode) != 0o700:
            loose.append(ssh)
        for item in ssh.iterdir():
            if item.is_file() and not item.is_symlink() and stat.S_IMODE(item.stat().st_mode) != 0o600:
                loose.append(item)
        return loose

    def _writable_rbenv_paths(self) -> List[Path]:
        root = self.config.rbenv_root
        if not root.is_dir():
            return []
        found = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [d for d in dirnames if not os.path.islink(os.path.join(dirpath, d))]
            for path in [Path(dirpath)] + [Path(dirpath) / f for f in filenames]:
                if path.is_symlink():
                    continue
                if path.lstat().st_mode & (stat.S_IWGRP | stat.S_IWOTH):
                    found.append(path)
        return found

    def permissions_secure(self) -> bool:
        return not self._loose_ssh_paths() and not self._writable_rbenv_paths()

    def secure_permissions(self) -> None:
        for path in self._loose_ssh_paths():
            os.chmod(path, 0o700 if path.is_dir() else 0o600)
        for path in self._writable_rbenv_paths():
            mode = stat.S_IMODE(path.lstat().st_mode)
            os.chmod(path, mode & ~(stat.S_IWGRP | stat.S_IWOTH))

    def autoremove_clean(self) -> bool:
        return not apt_autoremove_pending(self.run(["apt-get", "-s", "autoremove"]).stdout or "")

    def cleanup(self) -> None:
        self.run(["apt-get", "autoremove", "-y", "-qq"], timeout=self.config.command_timeout)
        self.run(["apt-get", "clean", "-qq"])

    def maintenance_steps(self) -> List[ProvisioningStep]:
        return [
            ProvisioningStep("File permissions", self.permissions_secure, self.secure_permissions,
                             description="Setting secure file permissions"),
            ProvisioningStep("Package cleanup", self.autoremove_clean, self.cleanup,
                             description="Cleaning up package manager cache"),
        ]
