"""Shared fixtures for the rubyvps test suite."""

from __future__ import annotations

import os
import pwd
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from rubyvps.config import Config

Response = Union[Tuple[int, str, str], Callable[[List[str]], Tuple[int, str, str]]]


def strip_env(cmd: Sequence[str]) -> List[str]:
    """Drop an ``env KEY=VALUE ...`` wrapper so handlers match the real command."""
    cmd = list(cmd)
    if cmd and cmd[0] == "env":
        cmd = cmd[1:]
        while cmd and "=" in cmd[0]:
            cmd = cmd[1:]
    return cmd


class FakeRunner:
    """
    Stand-in for CommandRunner that records commands and answers them from
    registered handlers. Unmatched commands succeed with empty output.
    """

    def __init__(self, available: Sequence[str] = ()):
        self.calls: List[Tuple[List[str], Optional[str]]] = []
        self.available = set(available)
        self._handlers: List[Tuple[List[str], Response]] = []

    def on(self, *prefix: str, returncode: int = 0, stdout: str = "", stderr: str = "",
           effect: Optional[Callable[[List[str]], Tuple[int, str, str]]] = None) -> None:
        response: Response = effect if effect is not None else (returncode, stdout, stderr)
        # Later registrations win.
        self._handlers.insert(0, (list(prefix), response))

    def run(self, cmd, check=True, capture_output=True, env=None, timeout=None, user=None, input=None):
        cmd = strip_env(cmd)
        self.calls.append((cmd, user))
        returncode, stdout, stderr = 0, "", ""
        for prefix, response in self._handlers:
            if cmd[: len(prefix)] == prefix:
                returncode, stdout, stderr = response(cmd) if callable(response) else response
                break
        if check and returncode != 0:
            raise subprocess.CalledProcessError(returncode, cmd, output=stdout, stderr=stderr)
        return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)

    def command_exists(self, name: str) -> bool:
        return name in self.available

    def commands(self) -> List[List[str]]:
        return [cmd for cmd, _ in self.calls]

    def ran(self, *prefix: str) -> bool:
        return any(cmd[: len(prefix)] == list(prefix) for cmd in self.commands())

    def count(self, *prefix: str) -> int:
        return sum(1 for cmd in self.commands() if cmd[: len(prefix)] == list(prefix))


class FakeHost(FakeRunner):
    """
    A FakeRunner that keeps just enough PostgreSQL, Nginx and Certbot state
    for registration to be exercised end to end.
    """

    def __init__(self, config: Config):
        super().__init__(available=["nginx", "psql", "certbot"])
        self.config = config
        self.databases: Dict[str, str] = {}
        self.nginx_valid = True
        self.certbot_succeeds = True

        self.on("psql", "-tAc", effect=self._query)
        self.on("createdb", effect=self._createdb)
        self.on("nginx", "-t", effect=self._nginx_test)
        self.on("certbot", effect=self._certbot)

    def _query(self, cmd: List[str]) -> Tuple[int, str, str]:
        sql = cmd[2]
        if "FROM pg_database" in sql:
            name = sql.split("datname = '", 1)[1].rstrip("'")
            return 0, "1\n" if name in self.databases else "", ""
        return 0, "", ""

    def _createdb(self, cmd: List[str]) -> Tuple[int, str, str]:
        owner, name = cmd[2], cmd[3]
        if name in self.databases:
            return 1, "", f'createdb: error: database "{name}" already exists'
        self.databases[name] = owner
        return 0, "", ""

    def _nginx_test(self, cmd: List[str]) -> Tuple[int, str, str]:
        if self.nginx_valid:
            return 0, "", "nginx: configuration file /etc/nginx/nginx.conf test is successful"
        return 1, "", 'nginx: [emerg] unknown directive "passenger_enabled"'

    def _certbot(self, cmd: List[str]) -> Tuple[int, str, str]:
        if not self.certbot_succeeds:
            return 1, "", "Challenge failed for domain"
        domain = cmd[cmd.index("-d") + 1]
        live = self.config.certificate_dir(domain)
        live.mkdir(parents=True, exist_ok=True)
        (live / "fullchain.pem").write_text("cert\n")
        (live / "privkey.pem").write_text("key\n")
        return 0, "", ""


def current_user() -> str:
    return pwd.getpwuid(os.getuid()).pw_name


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """A config whose every path lives under tmp_path, deploying as the current user."""
    home = tmp_path / "home"
    home.mkdir()
    return Config(
        deploy_user=current_user(),
        home=home,
        db_role_privilege="createdb",
        log_file=str(tmp_path / "rubyvps.log"),
        nginx_dir=tmp_path / "nginx",
        nginx_modules_available=tmp_path / "nginx-modules",
        redis_conf=tmp_path / "redis" / "redis.conf",
        apt_sources_dir=tmp_path / "apt" / "sources.list.d",
        apt_keyrings_dir=tmp_path / "apt" / "keyrings",
        apt_lists_dir=tmp_path / "apt" / "lists",
        letsencrypt_dir=tmp_path / "letsencrypt",
        state_dir=tmp_path / "state",
        os_release=tmp_path / "os-release",
    )


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def host(config: Config) -> FakeHost:
    return FakeHost(config)
