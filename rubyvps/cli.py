"""
Command line interface

    rubyvps provision --db-privilege createdb
    rubyvps register wallet wallet.example.com --request-tls
"""

import os
import signal
import sys
import time
from typing import Optional

import click
from rich.prompt import Confirm
from rich.traceback import install as install_rich_traceback

from . import APP_NAME, VERSION
from .application import ApplicationSpec
from .config import DB_PRIVILEGES, Config
from .engine import RunReport
from .errors import ProvisionError, ValidationError
from .log import setup_logger
from .provisioner import Provisioner
from .registrar import Registrar
from .shell import CommandRunner
from .ui import (
    NordColors,
    console,
    create_header,
    display_key_values,
    display_panel,
    print_error,
    print_section,
    print_status_report,
    print_step,
    print_success,
    print_warning,
)


def make_runner(config: Config) -> CommandRunner:
    return CommandRunner(timeout=config.command_timeout)


def check_root_privileges() -> None:
    if os.geteuid() != 0:
        print_error("This script must be run as root (e.g., using sudo).")
        sys.exit(1)


def signal_handler(sig, frame) -> None:
    sig_name = "SIGINT" if sig == signal.SIGINT else "SIGTERM"
    print_warning(f"Process interrupted by {sig_name}. Re-run the same command to resume.")
    sys.exit(128 + sig)


def fail(e: ProvisionError) -> None:
    """Print a fatal error with whatever partial report it carries, then exit 1."""
    report: Optional[RunReport] = getattr(e, "report", None)
    if report is not None and report.results:
        print_status_report("Steps Before Failure", report.rows())
    print_error(str(e))
    if not isinstance(e, ValidationError):
        print_warning("Nothing was rolled back. Fix the problem and re-run the same command.")
    sys.exit(1)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="JSON configuration file (default: /etc/rubyvps.json if present).",
)
@click.option("--log-file", type=click.Path(dir_okay=False), default=None, help="Log file path.")
@click.option("--debug", is_flag=True, help="Show debug output, including every command run.")
@click.version_option(VERSION, prog_name=APP_NAME)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], log_file: Optional[str], debug: bool) -> None:
    """Provision an Ubuntu VPS for Ruby applications and register apps on it."""
    try:
        config = Config.load(config_path)
    except ValidationError as e:
        print_error(str(e))
        sys.exit(1)
    config = config.with_overrides(log_file=log_file)
    setup_logger(config.log_file, debug=debug)
    ctx.obj = config


@cli.command()
@click.option(
    "--db-privilege",
    type=click.Choice(DB_PRIVILEGES),
    default=None,
    help="Privilege level of the deploy user's PostgreSQL role.",
)
@click.option("--upgrade", is_flag=True, help="Also upgrade installed system packages.")
@click.option("--check", is_flag=True, help="Only report what would change.")
@click.pass_obj
def provision(config: Config, db_privilege: Optional[str], upgrade: bool, check: bool) -> None:
    """Install and configure the Ruby, Node.js, PostgreSQL, Redis and Nginx stack."""
    console.print(create_header(APP_NAME, "VPS Provisioning"))
    console.print(f"Started at: [bold {NordColors.SNOW_STORM_1}]{time.strftime('%Y-%m-%d %H:%M:%S')}[/]")
    check_root_privileges()

    config = config.with_overrides(db_role_privilege=db_privilege)
    provisioner = Provisioner(config, make_runner(config))
    try:
        report = provisioner.provision(upgrade=upgrade, dry_run=check)
    except ProvisionError as e:
        fail(e)
        return

    print_status_report("Provisioning Results", report.rows())
    if check:
        if report.pending:
            print_warning(f"{len(report.pending)} step(s) would change the host.")
        else:
            print_success("Host is already in the desired state.")
        return

    print_section("Installed Versions")
    display_key_values("Installed Versions", provisioner.collect_versions())
    if report.failed:
        print_warning(f"Provisioning completed with {len(report.failed)} warning(s).")
    else:
        print_success("Provisioning completed successfully.")
    display_panel(
        "\n".join(
            [
                f"Redis password: {config.redis_password_file}",
                "Register an app: rubyvps register <app_name> <domain>",
                "Restart Nginx:   sudo systemctl restart nginx",
            ]
        ),
        style=NordColors.FROST_2,
        title="Next Steps",
    )


@cli.command()
@click.argument("app_name")
@click.argument("domain")
@click.option("--db-name", default=None, help="Database name (default: <app_name>_production).")
@click.option("--rails-env", default="production", show_default=True, help="Rails environment.")
@click.option("--request-tls", "--request-ssl", "request_tls", is_flag=True, help="Request a Let's Encrypt certificate.")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.option("--check", is_flag=True, help="Only report what would change.")
@click.pass_obj
def register(
    config: Config,
    app_name: str,
    domain: str,
    db_name: Optional[str],
    rails_env: str,
    request_tls: bool,
    yes: bool,
    check: bool,
) -> None:
    """Create directory, database and Nginx site for APP_NAME served at DOMAIN."""
    console.print(create_header(APP_NAME, "Application Registration"))
    check_root_privileges()

    spec = ApplicationSpec(app_name, domain, db_name=db_name, environment=rails_env, request_tls=request_tls)
    registrar = Registrar(config, make_runner(config))
    try:
        registrar.preflight(spec)
    except ValidationError as e:
        fail(e)
        return

    display_key_values("Configuration Summary", registrar.summary_rows(spec))
    if not (yes or check) and not Confirm.ask("Proceed with application setup?", default=False):
        print_warning("Setup cancelled.")
        return

    print_step(f"Registering {spec.app_name} ({spec.domain})")
    try:
        report = registrar.register(spec, dry_run=check)
    except ProvisionError as e:
        fail(e)
        return

    print_status_report("Registration Results", report.rows())
    if check:
        if report.pending:
            print_warning(f"{len(report.pending)} step(s) would change the host.")
        else:
            print_success(f"{spec.app_name} is already registered.")
        return

    if report.failed:
        print_warning(f"{spec.app_name} registered with {len(report.failed)} warning(s).")
    else:
        print_success(f"{spec.app_name} registered.")
    display_panel(registrar.next_steps(spec, report), style=NordColors.FROST_2, title="Next Steps")


def main() -> None:
    install_rich_traceback(show_locals=False)
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)
    try:
        cli()
    except KeyboardInterrupt:
        print_warning("Operation cancelled by user.")
        sys.exit(130)


if __name__ == "__main__":
    main()
