"""`wdlf` command group."""

from __future__ import annotations

import sys

import click

from wdlf_inverter.cli.common_cli import EXIT_CONVERGED, configure_logging
from wdlf_inverter.cli.invert_cli import invert_command
from wdlf_inverter.cli.resample_cli import resample_command
from wdlf_inverter.cli.synthesize_cli import synthesize_command


@click.group()
@click.version_option(package_name="wdlf-inverter")
@click.option("-v", "--verbose", count=True, help="Log progress (-v) or debug detail (-vv) to stderr.")
def cli(verbose: int) -> None:
    """Recover star formation histories from white dwarf luminosity functions."""
    configure_logging(verbose)


cli.add_command(invert_command)
cli.add_command(synthesize_command)
cli.add_command(resample_command)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    try:
        rv = cli.main(args=argv, prog_name="wdlf", standalone_mode=False)
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.Abort:
        click.echo("Aborted!", err=True)
        return 1
    return rv if isinstance(rv, int) else EXIT_CONVERGED


if __name__ == "__main__":
    sys.exit(main())
