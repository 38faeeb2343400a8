"""`wdlf invert` command: recover a star formation history from an observed LF."""

from __future__ import annotations

from pathlib import Path

import click

from wdlf_inverter.cli.common_cli import (
    EXIT_ITERATION_LIMIT,
    dump_json_output,
    invalid_configuration,
    load_config_file,
    load_luminosity_function,
    resolve_optional_output_path,
)
from wdlf_inverter.errors import InvalidConfigurationError
from wdlf_inverter.inversion.controller import InversionController
from wdlf_inverter.physics.reference import reference_physics
from wdlf_inverter.sfh.models import initial_guess

SCHEMA_VERSION = "wdlf.inversion.v1"


@click.command("invert")
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
@click.option("--seed", type=int, default=None, help="Root random seed.")
@click.option("--workers", type=int, default=None, help="Worker threads for particle generation.")
@click.option("--wd-per-bin", type=int, default=None, help="Simulated white dwarfs per lookback-time bin.")
@click.option("--min-iterations", type=int, default=None, help="Iterations before testing convergence.")
@click.option("--max-iterations", type=int, default=None, help="Hard iteration limit.")
@click.option("--threshold", type=float, default=None, help="Relative chi-square change for convergence.")
@click.option(
    "-o",
    "--out",
    "output_path_arg",
    type=str,
    default="-",
    show_default=True,
    help="JSON output path; '-' writes to stdout.",
)
@click.pass_context
def invert_command(
    ctx: click.Context,
    lf_path: Path,
    config_path: Path | None,
    seed: int | None,
    workers: int | None,
    wd_per_bin: int | None,
    min_iterations: int | None,
    max_iterations: int | None,
    threshold: float | None,
    output_path_arg: str,
) -> None:
    """Invert an observed white dwarf luminosity function.

    Uses the analytic reference physics. Exits 0 when the run converged,
    1 when it hit the iteration limit and 2 on invalid configuration.
    """
    out_path = resolve_optional_output_path(output_path_arg)
    observed = load_luminosity_function(lf_path)
    config_file = load_config_file(config_path)

    try:
        config = config_file.to_inversion_config(
            seed=seed,
            n_workers=workers,
            wd_per_bin=wd_per_bin,
            min_iterations=min_iterations,
            max_iterations=max_iterations,
            convergence_threshold=threshold,
        )
        init = config_file.initial_model
        model = initial_guess(init.t_min, init.t_max, init.n_bins, init.rate)
        controller = InversionController(observed, model, reference_physics(), config)
        result = controller.run()
    except InvalidConfigurationError as exc:
        raise invalid_configuration(exc) from exc

    payload = {
        "schema_version": SCHEMA_VERSION,
        "observed_lf": observed.name,
        "settings": {
            "wd_per_bin": config.wd_per_bin,
            "min_iterations": config.min_iterations,
            "max_iterations": config.max_iterations,
            "convergence_threshold": config.convergence_threshold,
            "strategy": config.strategy.value,
            "seed": config.seed,
        },
        "result": result.to_payload(),
    }
    dump_json_output(payload, out_path)

    if not result.converged:
        click.echo(
            f"Inversion did not converge ({result.termination.value}) "
            f"after {result.iterations} iterations",
            err=True,
        )
        ctx.exit(EXIT_ITERATION_LIMIT)


__all__ = ["invert_command"]
