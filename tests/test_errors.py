"""Tests for the error taxonomy."""

from __future__ import annotations

import pytest

from wdlf_inverter.errors import (
    ErrorType,
    GenerationStalledError,
    InsufficientHistoryError,
    InvalidConfigurationError,
    envelope_for,
    make_error,
)


class TestExceptions:
    """Exception classes raised by the engine."""

    def test_invalid_configuration_is_value_error(self) -> None:
        assert isinstance(InvalidConfigurationError("bad"), ValueError)

    def test_generation_stalled(self) -> None:
        exc = GenerationStalledError(3, 500, 7)
        assert exc.bin_index == 3
        assert exc.draws == 500
        assert exc.realized == 7
        assert "bin 3" in str(exc)
        assert "500 draws" in str(exc)

    def test_raise_and_catch(self) -> None:
        with pytest.raises(RuntimeError) as exc_info:
            raise GenerationStalledError(0, 10, 0)
        assert exc_info.value.draws == 10


class TestEnvelope:
    """Mapping exceptions onto stable envelopes."""

    def test_invalid_configuration(self) -> None:
        env = envelope_for(InvalidConfigurationError("zero-width bin"))
        assert env.type is ErrorType.INVALID_CONFIGURATION
        assert env.message == "zero-width bin"
        assert env.context == {}

    def test_generation_stalled_context(self) -> None:
        env = envelope_for(GenerationStalledError(2, 100, 4))
        assert env.type is ErrorType.GENERATION_STALLED
        assert env.context == {"bin_index": 2, "draws": 100, "realized": 4}

    def test_insufficient_history(self) -> None:
        env = envelope_for(InsufficientHistoryError("need two values"))
        assert env.type is ErrorType.INSUFFICIENT_HISTORY

    def test_unknown_exception(self) -> None:
        env = envelope_for(KeyError("x"))
        assert env.type is ErrorType.INTERNAL_ERROR
        assert env.context["exception"] == "KeyError"

    def test_envelope_is_frozen(self) -> None:
        env = make_error(ErrorType.INTERNAL_ERROR, "boom")
        with pytest.raises(ValueError):
            env.message = "changed"

    def test_json_round_trip(self) -> None:
        env = make_error(ErrorType.GENERATION_STALLED, "stalled", bin_index=1)
        dumped = env.model_dump(mode="json")
        assert dumped == {
            "type": "GENERATION_STALLED",
            "message": "stalled",
            "context": {"bin_index": 1},
        }
