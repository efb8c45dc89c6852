"""CLI entry point for netmetrics."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional

import click
from rich.logging import RichHandler

from netmetrics import __version__
from netmetrics.config import DEFAULT_PORT, LATENCY_POLICIES, UPLOAD_MODES, load_config, validate_config
from netmetrics.models import MeasurementConfig


def _configure_logging(verbose: bool, quiet: bool = False) -> None:
    from netmetrics.display import console

    level = logging.DEBUG if verbose else (logging.ERROR if quiet else logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=verbose)],
        force=True,
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _load(
    config_path: Optional[str],
    timeout: Optional[float],
    deadline: Optional[float],
    policy: Optional[str],
    upload_mode: Optional[str],
    system: bool,
) -> MeasurementConfig:
    try:
        config = load_config(config_path)
        if timeout is not None:
            config.request_timeout = timeout
        if deadline is not None:
            config.deadline = deadline
        if policy:
            config.latency_policy = policy
        if upload_mode:
            config.upload_mode = upload_mode
        if system:
            config.include_system = True
        return validate_config(config)
    except (OSError, ValueError) as exc:
        raise click.BadParameter(str(exc), param_hint="--config") from exc


def _shared_options(func):
    options = [
        click.option("-c", "--config", "config_path", default=None, help="YAML configuration file"),
        click.option("-t", "--timeout", type=float, default=None, help="Per-endpoint timeout in seconds"),
        click.option("--deadline", type=float, default=None, help="Overall measurement deadline in seconds"),
        click.option("--policy", type=click.Choice(LATENCY_POLICIES), default=None, help="Ping selection policy"),
        click.option("--upload-mode", type=click.Choice(UPLOAD_MODES), default=None, help="Upload strategy"),
        click.option("--system", is_flag=True, help="Include host system stats"),
        click.option("-v", "--verbose", is_flag=True, help="Debug logging"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """netmetrics: network performance metrics service.

    Measures download/upload throughput, latency and public IP/geolocation
    concurrently, tolerating failures of individual probes.
    """


@main.command()
@_shared_options
@click.option("--ip", "observed_ip", default=None, help="Caller address to geolocate instead of looking it up")
@click.option("--json", "json_output", is_flag=True, help="Output JSON to stdout")
@click.option("-o", "--output", default=None, help="Write JSON results to file")
def run(
    config_path: Optional[str],
    timeout: Optional[float],
    deadline: Optional[float],
    policy: Optional[str],
    upload_mode: Optional[str],
    system: bool,
    verbose: bool,
    observed_ip: Optional[str],
    json_output: bool,
    output: Optional[str],
) -> None:
    """Run one measurement and print the report."""
    from netmetrics.display import console, render_error, render_report, render_warning
    from netmetrics.engine import MeasurementError, measure
    from netmetrics.export import export_json, write_to_file
    from netmetrics.system import system_cache

    _configure_logging(verbose, quiet=json_output)
    config = _load(config_path, timeout, deadline, policy, upload_mode, system)
    cache = system_cache(config.system_cache_ttl) if config.include_system else None

    if not json_output:
        console.print(f"[bold]Measuring network (deadline {config.deadline:.0f}s)...[/bold]\n")

    try:
        report = asyncio.run(measure(config, observed_ip=observed_ip, system_cache=cache))
    except KeyboardInterrupt:
        if not json_output:
            console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)
    except MeasurementError as exc:
        render_error(str(exc))
        sys.exit(1)

    json_str = export_json(report)
    if json_output:
        click.echo(json_str)
    else:
        render_report(report)
        for kind in report.failed_probes:
            render_warning(f"{kind} probe failed")

    if output:
        write_to_file(json_str, output)
        if not json_output:
            console.print(f"\n[dim]Results written to {output}[/dim]")


@main.command()
@_shared_options
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address")
@click.option("-p", "--port", type=int, default=DEFAULT_PORT, show_default=True, help="Listen port")
@click.option("--trust-proxy", is_flag=True, help="Honor X-Forwarded-* headers")
def serve(
    config_path: Optional[str],
    timeout: Optional[float],
    deadline: Optional[float],
    policy: Optional[str],
    upload_mode: Optional[str],
    system: bool,
    verbose: bool,
    host: str,
    port: int,
    trust_proxy: bool,
) -> None:
    """Serve GET /network-metrics over HTTP."""
    from netmetrics.web import create_web_app

    _configure_logging(verbose)
    config = _load(config_path, timeout, deadline, policy, upload_mode, system)
    app = create_web_app(config, trust_proxy=trust_proxy)

    logger = logging.getLogger(__name__)
    logger.info("Server running at http://%s:%d", host, port)
    logger.info("Access network metrics at: http://%s:%d/network-metrics", host, port)
    app.run(host=host, port=port, debug=False)


if __name__ == "__main__":
    main()
