"""Tests for application spec validation and derived paths."""

from __future__ import annotations

import pytest

from rubyvps.application import ApplicationSpec
from rubyvps.config import Config
from rubyvps.errors import ValidationError


class TestDefaults:

    def test_database_name_defaults_to_production(self) -> None:
        spec = ApplicationSpec("wallet", "wallet.example.com")
        assert spec.db_name == "wallet_production"
        assert spec.environment == "production"
        assert not spec.request_tls

    def test_paths_follow_deploy_home(self, config: Config) -> None:
        spec = ApplicationSpec("wallet", "wallet.example.com")
        assert spec.app_root(config) == config.home / "apps" / "wallet"
        assert spec.public_dir(config) == config.home / "apps" / "wallet" / "current" / "public"
        assert spec.vhost_path(config) == config.nginx_dir / "sites-available" / "wallet"
        assert spec.enabled_link(config) == config.nginx_dir / "sites-enabled" / "wallet"


class TestValidation:

    @pytest.mark.parametrize(
        "app_name,domain",
        [
            ("wallet", "wallet.example.com"),
            ("my_app-2", "app.example.co.uk"),
            ("x", "sub-domain.example.io"),
        ],
    )
    def test_valid(self, app_name: str, domain: str) -> None:
        ApplicationSpec(app_name, domain).validate()

    @pytest.mark.parametrize("app_name", ["my app", "app;rm", "", "../etc", "app.name"])
    def test_invalid_app_name(self, app_name: str) -> None:
        with pytest.raises(ValidationError, match="Invalid app name"):
            ApplicationSpec(app_name, "example.com", db_name="db").validate()

    @pytest.mark.parametrize(
        "domain",
        ["localhost", "example", "-bad.example.com", "bad-.example.com", "a..example.com", "exa mple.com", "example.c"],
    )
    def test_invalid_domain(self, domain: str) -> None:
        with pytest.raises(ValidationError, match="Invalid domain"):
            ApplicationSpec("wallet", domain).validate()

    def test_invalid_database_name(self) -> None:
        with pytest.raises(ValidationError, match="Invalid database name"):
            ApplicationSpec("wallet", "example.com", db_name="wallet; DROP").validate()

    def test_database_name_length_limit(self) -> None:
        with pytest.raises(ValidationError, match="longer than 63"):
            ApplicationSpec("wallet", "example.com", db_name="d" * 64).validate()

    def test_invalid_environment(self) -> None:
        with pytest.raises(ValidationError, match="Rails environment"):
            ApplicationSpec("wallet", "example.com", environment="prod uction").validate()

    @pytest.mark.parametrize(
        "kwargs,message",
        [
            ({"app_name": "wallet\n"}, "Invalid app name"),
            ({"domain": "wallet.example.com\n"}, "Invalid domain"),
            ({"db_name": "wallet_production\n"}, "Invalid database name"),
            ({"environment": "production\n"}, "Rails environment"),
        ],
    )
    def test_trailing_newline_is_rejected(self, kwargs, message: str) -> None:
        fields = {"app_name": "wallet", "domain": "wallet.example.com", "db_name": "wallet_production"}
        fields.update(kwargs)
        with pytest.raises(ValidationError, match=message):
            ApplicationSpec(**fields).validate()
