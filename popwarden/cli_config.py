"""CLI commands for configuration.

Groups:
    config_group  -- show, validate
"""

from pathlib import Path
from typing import Optional

import click
import yaml
from pydantic import ValidationError

from popwarden.cli_helpers import config_path_from, console, load_cli_config, print_error, print_success


@click.group("config")
def config_group():
    """Show and validate popwarden configuration."""
    pass


@config_group.command("show")
@click.option("--section", default=None,
              type=click.Choice(["scoring", "learning", "decisions", "storage", "logging"]),
              help="Only show one section")
@click.pass_context
def config_show(ctx: click.Context, section: Optional[str]):
    """Print the effective (merged and validated) configuration."""
    config = load_cli_config(ctx)
    data = config.model_dump(mode="json")
    if section:
        data = {section: data[section]}
    console.print(yaml.safe_dump(data, sort_keys=False, default_flow_style=False).rstrip())


@config_group.command("validate")
@click.argument("path", required=False, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def config_validate(ctx: click.Context, path: Optional[Path]):
    """Validate a config file (defaults to --config or ~/.popwarden/config.yaml)."""
    from popwarden.config.loader import USER_CONFIG_PATH, load_config

    target = path or config_path_from(ctx)
    if target is None:
        if not USER_CONFIG_PATH.exists():
            print_success("No user config file; builtin defaults are in effect")
            return
        target = USER_CONFIG_PATH

    try:
        load_config(target)
    except ValidationError as e:
        print_error(f"{target}: {e.error_count()} validation error(s)")
        for err in e.errors():
            loc = ".".join(str(part) for part in err["loc"])
            console.print(f"  [red]{loc}[/red]: {err['msg']}")
        ctx.exit(1)
    except (OSError, yaml.YAMLError, ValueError) as e:
        print_error(f"{target}: {e}")
        ctx.exit(1)

    print_success(f"{target} is valid")
