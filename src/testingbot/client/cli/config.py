"""Config command group for the TestingBot CLI."""

import json
from typing import Optional

import click
import yaml

from testingbot.core.configuration import TestingBotConfig
from testingbot.core.exceptions import ConfigError


@click.group()
def config() -> None:
    r"""Configuration management.

    \b
    Examples:
      testingbot config show
      testingbot config show --section polling -o json
    """


@config.command()
@click.option(
    "--section",
    type=str,
    default=None,
    help="Show only a specific section of the configuration.",
)
@click.option(
    "--key",
    type=str,
    default=None,
    help="Show only a specific key (requires --section).",
)
@click.option(
    "-o",
    "--output",
    type=click.Choice(["yaml", "json"]),
    default="yaml",
    show_default=True,
    help="Output format.",
)
def show(section: Optional[str], key: Optional[str], output: str) -> None:
    r"""Display the effective configuration.

    Values from TESTINGBOT__SECTION__KEY environment variables override the
    config file.

    \b
    Examples:
      testingbot config show --section http --key request_timeout
    """
    if key and not section:
        raise click.UsageError("--key requires --section to be specified.")

    cfg = TestingBotConfig()

    if section and key:
        try:
            value = cfg.get(section, key)
        except ConfigError as e:
            raise click.ClickException(f"Key not found: {e}")
        if output == "json":
            click.echo(json.dumps({section: {key: value}}, indent=2))
        else:
            click.echo(f"{section}.{key}: {value}")
    else:
        sections = [section] if section else list(cfg._config.keys())
        data = {name: cfg.get_section(name) for name in sections}
        if section and not data[section]:
            raise click.ClickException(f"Section not found: {section}")
        if output == "json":
            click.echo(json.dumps(data, indent=2))
        else:
            click.echo(yaml.safe_dump(data, default_flow_style=False))

    click.echo(f"\n(Config file: {cfg._filepath})", err=True)
