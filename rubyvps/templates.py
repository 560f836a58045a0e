"""Generated configuration text."""

from pathlib import Path

from .application import ApplicationSpec
from .config import Config

RBENV_MARKER = "# rbenv configuration"

RBENV_BASHRC_BLOCK = """
# rbenv configuration
export PATH="$HOME/.rbenv/bin:$PATH"
eval "$(rbenv init - bash)"
"""


def _passenger_block(spec: ApplicationSpec, config: Config) -> str:
    return f"""    root {spec.public_dir(config)};

    # Enable Passenger
    passenger_enabled on;
    passenger_app_env {spec.environment};
    passenger_ruby {config.ruby_shim};
    passenger_preload_bundler on;

    # Action Cable WebSocket support
    location /cable {{
        passenger_app_group_name {spec.app_name}_websocket;
        passenger_force_max_concurrent_requests_per_process 0;
    }}

    # Client upload size
    client_max_body_size 100m;

    # Assets and static files
    location ~ ^/(assets|packs) {{
        gzip_static on;
        expires max;
        add_header Cache-Control public;
    }}

    # Error pages
    error_page 500 502 503 504 /500.html;
    error_page 404 /404.html;
    error_page 422 /422.html;"""


def render_vhost(spec: ApplicationSpec, config: Config, tls: bool = False) -> str:
    """
    Render the Nginx + Passenger virtual host for ``spec``.

    With ``tls`` the port 80 server only redirects to HTTPS and the application
    is served on 443 with the Let's Encrypt certificate for the domain.
    """
    header = f"""# Nginx + Passenger configuration for {spec.app_name}
# Domain: {spec.domain}
# Generated by rubyvps; local edits are replaced on the next registration.
"""
    if not tls:
        return f"""{header}
server {{
    listen 80;
    listen [::]:80;
    server_name {spec.domain};

{_passenger_block(spec, config)}
}}
"""

    cert_dir = config.certificate_dir(spec.domain)
    return f"""{header}
server {{
    listen 80;
    listen [::]:80;
    server_name {spec.domain};

    location /.well-known/acme-challenge/ {{
        root {spec.public_dir(config)};
    }}

    location / {{
        return 301 https://$host$request_uri;
    }}
}}

server {{
    listen 443 ssl http2;
    listen [::]:443 ssl http2;
    server_name {spec.domain};

    ssl_certificate {cert_dir / "fullchain.pem"};
    ssl_certificate_key {cert_dir / "privkey.pem"};
    ssl_protocols TLSv1.2 TLSv1.3;
    ssl_session_cache shared:SSL:10m;
    ssl_session_timeout 1d;

{_passenger_block(spec, config)}
}}
"""


def render_pgdg_source(codename: str, keyring: Path) -> str:
    return f"deb [signed-by={keyring}] https://apt.postgresql.org/pub/repos/apt {codename}-pgdg main\n"


def render_passenger_source(codename: str, keyring: Path) -> str:
    return f"deb [signed-by={keyring}] https://oss-binaries.phusionpassenger.com/apt/passenger {codename} main\n"
