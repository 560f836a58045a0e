"""Tests for rendered virtual hosts and APT sources."""

from __future__ import annotations

from pathlib import Path

from rubyvps.application import ApplicationSpec
from rubyvps.config import Config
from rubyvps.templates import render_passenger_source, render_pgdg_source, render_vhost


class TestVirtualHost:

    def test_plain_vhost(self, config: Config) -> None:
        spec = ApplicationSpec("wallet", "wallet.example.com", environment="staging")
        text = render_vhost(spec, config)
        assert "listen 80;" in text
        assert "server_name wallet.example.com;" in text
        assert f"root {config.home}/apps/wallet/current/public;" in text
        assert "passenger_app_env staging;" in text
        assert f"passenger_ruby {config.home}/.rbenv/shims/ruby;" in text
        assert "passenger_app_group_name wallet_websocket;" in text
        assert "client_max_body_size 100m;" in text
        assert "error_page 500 502 503 504 /500.html;" in text
        assert "443" not in text

    def test_tls_vhost_redirects_and_serves_https(self, config: Config) -> None:
        spec = ApplicationSpec("wallet", "wallet.example.com")
        text = render_vhost(spec, config, tls=True)
        live = config.letsencrypt_dir / "live" / "wallet.example.com"
        assert "return 301 https://$host$request_uri;" in text
        assert "listen 443 ssl http2;" in text
        assert f"ssl_certificate {live}/fullchain.pem;" in text
        assert f"ssl_certificate_key {live}/privkey.pem;" in text
        assert text.count("passenger_enabled on;") == 1

    def test_rendering_is_deterministic(self, config: Config) -> None:
        spec = ApplicationSpec("wallet", "wallet.example.com")
        assert render_vhost(spec, config) == render_vhost(spec, config)

    def test_braces_balance(self, config: Config) -> None:
        spec = ApplicationSpec("wallet", "wallet.example.com")
        for tls in (False, True):
            text = render_vhost(spec, config, tls=tls)
            assert text.count("{") == text.count("}")


class TestAptSources:

    def test_sources_are_signed_by_keyring(self) -> None:
        pgdg = render_pgdg_source("noble", Path("/etc/apt/keyrings/pgdg.asc"))
        assert pgdg == "deb [signed-by=/etc/apt/keyrings/pgdg.asc] https://apt.postgresql.org/pub/repos/apt noble-pgdg main\n"
        passenger = render_passenger_source("jammy", Path("/k.gpg"))
        assert "[signed-by=/k.gpg]" in passenger
        assert passenger.rstrip().endswith("passenger jammy main")
