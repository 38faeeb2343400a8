"""`wdlf resample` command: bootstrap uncertainties on the recovered SFH."""

from __future__ import annotations

from pathlib import Path

import click

from wdlf_inverter.cli.common_cli import (
    dump_json_output,
    invalid_configuration,
    load_config_file,
    load_luminosity_function,
    resolve_optional_output_path,
)
from wdlf_inverter.errors import InvalidConfigurationError
from wdlf_inverter.inversion.controller import InversionResult
from wdlf_inverter.inversion.resampling import bootstrap_inversion
from wdlf_inverter.physics.reference import reference_physics
from wdlf_inverter.sfh.models import initial_guess

SCHEMA_VERSION = "wdlf.bootstrap.v1"


@click.command("resample")
@click.option(
    "--lf",
    "lf_path",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Observed luminosity function (centre, width, density, error columns).",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="JSON configuration file.",
)
@click.option("--realisations", type=int, default=10, show_default=True)
@click.option("--seed", type=int, default=None, help="Root random seed.")
@click.option(
    "-o",
    "--out",
    "output_path_arg",
    type=str,
    default="-",
    show_default=True,
    help="JSON output path; '-' writes to stdout.",
)
def resample_command(
    lf_path: Path,
    config_path: Path | None,
    realisations: int,
    seed: int | None,
    output_path_arg: str,
) -> None:
    """Invert Gaussian resamplings of an LF and report the spread of the rates."""
    out_path = resolve_optional_output_path(output_path_arg)
    observed = load_luminosity_function(lf_path)
    config_file = load_config_file(config_path)

    def _progress(index: int, result: InversionResult) -> None:
        click.echo(
            f"realisation {index + 1}/{realisations}: {result.termination.value} "
            f"after {result.iterations} iterations",
            err=True,
        )

    try:
        config = config_file.to_inversion_config()
        init = config_file.initial_model
        model = initial_guess(init.t_min, init.t_max, init.n_bins, init.rate)
        summary = bootstrap_inversion(
            observed,
            model,
            reference_physics(),
            config,
            n_realisations=realisations,
            seed=seed,
            on_realisation=_progress,
        )
    except InvalidConfigurationError as exc:
        raise invalid_configuration(exc) from exc

    payload = {
        "schema_version": SCHEMA_VERSION,
        "observed_lf": observed.name,
        "n_realisations": summary.n_realisations,
        "n_converged": summary.n_converged,
        "bins": summary.to_table(),
    }
    dump_json_output(payload, out_path)


__all__ = ["resample_command"]
