"""Shared helpers for click-based `wdlf` commands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import click
import numpy as np

from wdlf_inverter.config import ConfigFile
from wdlf_inverter.domain.histogram import validate_bin_layout
from wdlf_inverter.domain.luminosity_function import (
    ObservedLuminosityFunction,
    parse_luminosity_function_text,
)
from wdlf_inverter.errors import InvalidConfigurationError, envelope_for

EXIT_CONVERGED = 0
EXIT_ITERATION_LIMIT = 1
EXIT_INVALID_CONFIGURATION = 2


class WdlfCliError(click.ClickException):
    """Click exception with explicit exit-code control."""

    def __init__(self, message: str, *, exit_code: int = EXIT_INVALID_CONFIGURATION) -> None:
        super().__init__(message)
        self.exit_code = int(exit_code)


def invalid_configuration(exc: InvalidConfigurationError) -> WdlfCliError:
    envelope = envelope_for(exc)
    return WdlfCliError(
        f"{envelope.type.value}: {envelope.message}", exit_code=EXIT_INVALID_CONFIGURATION
    )


def configure_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def dump_json_output(payload: dict[str, Any], out_path: Path | None) -> None:
    """Write JSON payload to file or stdout."""
    text = json.dumps(payload, sort_keys=True, indent=2)
    if out_path is None:
        click.echo(text)
        return
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(text + "\n", encoding="utf-8")


def dump_text_output(text: str, out_path: Path | None) -> None:
    if out_path is None:
        click.echo(text, nl=False)
        return
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(text, encoding="utf-8")


def _read_text(path: Path, *, label: str) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise WdlfCliError(f"{label} not found: {path}") from exc
    except OSError as exc:
        raise WdlfCliError(f"Cannot read {label}: {exc}") from exc


def load_json_file(path: Path, *, label: str) -> dict[str, Any]:
    """Load an object JSON file with user-facing errors."""
    text = _read_text(path, label=label)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise WdlfCliError(f"Malformed JSON in {label}: {exc}") from exc

    if not isinstance(payload, dict):
        raise WdlfCliError(f"{label} must be a JSON object")
    return payload


def load_config_file(path: Path | None) -> ConfigFile:
    if path is None:
        return ConfigFile()
    payload = load_json_file(path, label="config file")
    try:
        return ConfigFile.from_payload(payload)
    except InvalidConfigurationError as exc:
        raise invalid_configuration(exc) from exc


def load_luminosity_function(path: Path) -> ObservedLuminosityFunction:
    text = _read_text(path, label="luminosity function file")
    try:
        return parse_luminosity_function_text(text, name=path.stem)
    except InvalidConfigurationError as exc:
        raise invalid_configuration(exc) from exc


def load_magnitude_bins(path: Path) -> tuple[np.ndarray, np.ndarray]:
    """Read bin centres and widths from the first two columns of a text file."""
    text = _read_text(path, label="magnitude bins file")
    rows: list[tuple[float, float]] = []
    for line_number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        tokens = line.split()
        try:
            rows.append((float(tokens[0]), float(tokens[1])))
        except (IndexError, ValueError) as exc:
            raise WdlfCliError(
                f"magnitude bins file line {line_number}: expected centre and width"
            ) from exc
    if not rows:
        raise WdlfCliError("magnitude bins file contains no bins")
    data = np.asarray(rows, dtype=np.float64)
    try:
        return validate_bin_layout(data[:, 0], data[:, 1], label="magnitude bins")
    except InvalidConfigurationError as exc:
        raise invalid_configuration(exc) from exc


def resolve_optional_output_path(output_arg: str | None) -> Path | None:
    """Map '-', empty, or None to stdout; otherwise return filesystem path."""
    if output_arg is None:
        return None
    value = str(output_arg).strip()
    if value in {"", "-"}:
        return None
    return Path(value)
