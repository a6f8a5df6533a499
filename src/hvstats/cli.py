#!/usr/bin/env python3
"""
Command-line interface for hvstats.

This is the composition root: it loads configuration, builds the driver
registry and renders snapshots.
"""

import json
import sys
from typing import Any, Callable, Dict, List, Optional

import click
import yaml

from hvstats.config import AppConfig, config_loader
from hvstats.exceptions import ConfigurationError, HVStatsError
from hvstats.libvirt_driver import LibvirtDriver
from hvstats.logging import logger
from hvstats.models import Domain, string_to_domain_id
from hvstats.registry import DriverRegistry

DRIVER_FACTORIES: Dict[str, Callable[[AppConfig], Any]] = {
    "libvirt": lambda config: LibvirtDriver(config.libvirt_uri),
}


def build_registry(
    config: AppConfig,
    factories: Optional[Dict[str, Callable[[AppConfig], Any]]] = None,
) -> DriverRegistry:
    """Create the drivers named in the config and register them."""
    factories = DRIVER_FACTORIES if factories is None else factories

    drivers = []
    for name in config.drivers:
        factory = factories.get(name)
        if factory is None:
            message = f"Unknown driver '{name}'"
            if config.registration_policy == "strict":
                raise ConfigurationError(message)
            logger.warning(f"{message}, skipping", driver=name)
            continue
        drivers.append(factory(config))

    registry = DriverRegistry()
    registry.register_all(drivers, policy=config.registration_policy)
    return registry


def setup_logging(verbose: bool, quiet: bool, log_level: str) -> None:
    """Setup logging configuration."""
    if quiet:
        logger.set_level("ERROR")
    elif verbose:
        logger.set_level("DEBUG")
    else:
        logger.set_level(log_level)


def render(data: Any, output_format: str) -> str:
    if output_format == "json":
        return json.dumps(data, indent=2)
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)


def format_domain(domain: Domain) -> List[str]:
    lines = [
        f"{domain.id:>6}  {domain.name:<24} {domain.flags.name:<9} {domain.uuid}"
    ]
    for cpu in domain.cpus:
        lines.append(f"        cpu{cpu.id:<3} {cpu.flags.name:<8} {cpu.time:.2f}s")
    for block in domain.blocks:
        lines.append(
            f"        {block.name:<6} rd {block.read.bytes} B  wr {block.write.bytes} B"
        )
    for iface in domain.interfaces:
        lines.append(
            f"        {iface.name or '-':<6} {iface.mac or '-':<17} "
            f"rx {iface.rx.bytes} B  tx {iface.tx.bytes} B"
        )
    return lines


@click.group()
@click.option("--config", "-c", default=None, help="Configuration file path")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-error output")
@click.option(
    "--output",
    "-o",
    type=click.Choice(["text", "json", "yaml"]),
    default="text",
    help="Output format",
)
@click.version_option(package_name="hvstats")
@click.pass_context
def cli(ctx: Any, config: Optional[str], verbose: bool, quiet: bool, output: str) -> None:
    """Collect resource usage from local hypervisors."""
    ctx.ensure_object(dict)

    # stdout carries rendered snapshots only
    previous_stream = logger.set_stream(sys.stderr)
    ctx.call_on_close(lambda: logger.set_stream(previous_stream))

    try:
        app_config = config_loader.load_config(config)
        setup_logging(verbose, quiet, app_config.log_level)
        if "registry" in ctx.obj:
            registry = ctx.obj["registry"]
        else:
            registry = build_registry(app_config)
    except HVStatsError as e:
        click.echo(f"✗ Error: {e}", err=True)
        sys.exit(e.exit_code)

    ctx.call_on_close(registry.close_all)
    ctx.obj["config"] = app_config
    ctx.obj["registry"] = registry
    ctx.obj["output_format"] = output


@cli.command()
@click.pass_context
def drivers(ctx: Any) -> None:
    """List registered drivers and whether their hypervisor is present."""
    registry: DriverRegistry = ctx.obj["registry"]
    detected = set(registry.detected_drivers())
    names = sorted(registry.available_drivers())

    if ctx.obj["output_format"] == "text":
        if not names:
            click.echo("No drivers registered")
        for name in names:
            status = "detected" if name in detected else "not detected"
            click.echo(f"{name:<12} {status}")
        return

    data = [{"name": name, "detected": name in detected} for name in names]
    click.echo(render(data, ctx.obj["output_format"]))


@cli.command()
@click.argument("domain_ids", nargs=-1)
@click.option("--driver", "-d", "driver_name", help="Driver to collect from")
@click.option("--cpu/--no-cpu", default=None, help="Include per-vCPU statistics")
@click.option("--block/--no-block", default=None, help="Include block device statistics")
@click.option("--network/--no-network", default=None, help="Include network statistics")
@click.pass_context
def collect(
    ctx: Any,
    domain_ids: List[str],
    driver_name: Optional[str],
    cpu: Optional[bool],
    block: Optional[bool],
    network: Optional[bool],
) -> None:
    """Take one snapshot, optionally limited to the given domain ids."""
    registry: DriverRegistry = ctx.obj["registry"]
    config: AppConfig = ctx.obj["config"]

    if driver_name is None:
        detected = registry.detected_drivers()
        if not detected:
            click.echo("✗ No hypervisor detected on this host", err=True)
            sys.exit(1)
        driver_name = detected[0]

    try:
        snapshot = registry.collect(
            driver_name,
            include_cpu=config.collect_cpu if cpu is None else cpu,
            include_block=config.collect_block if block is None else block,
            include_network=config.collect_network if network is None else network,
        )
    except HVStatsError as e:
        click.echo(f"✗ Error: {e}", err=True)
        sys.exit(e.exit_code)

    domains = sorted(snapshot.values(), key=lambda d: d.id)
    if domain_ids:
        wanted = [string_to_domain_id(text) for text in domain_ids]
        for text, domid in zip(domain_ids, wanted):
            if domid not in snapshot:
                click.echo(f"Warning: no domain with id '{text}'", err=True)
        domains = [d for d in domains if d.id in wanted]

    output_format = ctx.obj["output_format"]
    if output_format == "text":
        for domain in domains:
            for line in format_domain(domain):
                click.echo(line)
        if not domains:
            click.echo("No domains found")
        return

    click.echo(render([d.to_dict() for d in domains], output_format))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
