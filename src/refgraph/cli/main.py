"""Main entry point for the refgraph CLI.

Commands:
    refgraph discover: List the artifacts referring to a subject

Example:
    $ refgraph --help
    $ refgraph discover ghcr.io/acme/app:v1.0.0 -o table
"""

from __future__ import annotations

import sys
from importlib.metadata import version as get_version

import click

from refgraph.cli.discover import discover_command


def _get_version() -> str:
    """Get the refgraph package version.

    Returns:
        Version string from package metadata, or 'unknown' if not installed.
    """
    try:
        return get_version("refgraph")
    except Exception:
        return "unknown"


@click.group(
    name="refgraph",
    help="refgraph - Discover OCI artifact referrers.",
    epilog="Use 'refgraph <command> --help' for command-specific help.",
    context_settings={
        "help_option_names": ["-h", "--help"],
    },
)
@click.version_option(
    version=_get_version(),
    prog_name="refgraph",
    message="%(prog)s %(version)s",
)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Root command group for the refgraph CLI."""
    ctx.ensure_object(dict)


cli.add_command(discover_command)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the refgraph CLI.

    Args:
        argv: Command-line arguments (uses sys.argv if None).
    """
    try:
        cli(args=argv, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
