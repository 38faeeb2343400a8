"""`wdlf synthesize` command: forward-model an LF from a simple star formation history."""

from __future__ import annotations

from pathlib import Path

import click

from wdlf_inverter.cli.common_cli import (
    dump_text_output,
    invalid_configuration,
    load_magnitude_bins,
    resolve_optional_output_path,
)
from wdlf_inverter.config import ModellingParameters
from wdlf_inverter.domain.luminosity_function import format_luminosity_function_text
from wdlf_inverter.errors import InvalidConfigurationError
from wdlf_inverter.inversion.forward import synthesize_luminosity_function
from wdlf_inverter.physics.reference import reference_physics
from wdlf_inverter.sfh.models import constant, discretise, exponential_decay


@click.command("synthesize")
@click.option("--t-min", type=float, default=0.0, show_default=True, help="Minimum lookback time [yr].")
@click.option("--t-max", type=float, required=True, help="Maximum lookback time [yr].")
@click.option("--rate", type=float, required=True, help="Star formation rate [stars/yr].")
@click.option(
    "--tau",
    type=float,
    default=None,
    help="Exponential decay timescale [yr]; omit for a constant rate.",
)
@click.option("--n-bins", type=int, default=20, show_default=True, help="Lookback-time bins.")
@click.option(
    "--lf-bins",
    "bins_path",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Magnitude bins (centre and width columns).",
)
@click.option("--wd-per-bin", type=int, default=2000, show_default=True)
@click.option(
    "--fractional-error",
    type=float,
    default=0.05,
    show_default=True,
    help="Density error assigned to each bin, as a fraction of the density.",
)
@click.option("--seed", type=int, default=None, help="Root random seed.")
@click.option("--workers", type=int, default=1, show_default=True)
@click.option(
    "-o",
    "--out",
    "output_path_arg",
    type=str,
    default="-",
    show_default=True,
    help="Output path for the four-column LF; '-' writes to stdout.",
)
def synthesize_command(
    t_min: float,
    t_max: float,
    rate: float,
    tau: float | None,
    n_bins: int,
    bins_path: Path,
    wd_per_bin: int,
    fractional_error: float,
    seed: int | None,
    workers: int,
    output_path_arg: str,
) -> None:
    """Simulate the luminosity function of a constant or exponential SFH."""
    out_path = resolve_optional_output_path(output_path_arg)
    centres, widths = load_magnitude_bins(bins_path)

    try:
        if tau is None:
            sfh = constant(t_min, t_max, rate)
        else:
            sfh = exponential_decay(t_min, t_max, rate, tau)
        model_lf = synthesize_luminosity_function(
            discretise(sfh, n_bins),
            reference_physics(),
            centres,
            widths,
            wd_per_bin=wd_per_bin,
            seed=seed,
            modelling=ModellingParameters(),
            n_workers=workers,
        )
        observed = model_lf.to_observed(fractional_error=fractional_error)
    except InvalidConfigurationError as exc:
        raise invalid_configuration(exc) from exc

    header = f"Synthetic WDLF: {sfh.name} SFH over [{t_min:g}, {t_max:g}] yr, seed={seed}"
    text = format_luminosity_function_text(
        observed.centres,
        observed.widths,
        observed.density,
        observed.density_error,
        header=header,
    )
    dump_text_output(text, out_path)


__all__ = ["synthesize_command"]
