"""Tests for the optisar exception hierarchy."""

from __future__ import annotations

import pytest

from optisar.exceptions import CollaboratorError, ConfigurationError, OptiSARError

ALL_EXCEPTION_CLASSES = [
    OptiSARError,
    ConfigurationError,
    CollaboratorError,
]

SUBCLASS_EXCEPTION_CLASSES = [
    ConfigurationError,
    CollaboratorError,
]


@pytest.mark.unit
class TestExceptionInheritance:
    """Verify the exception inheritance chain."""

    def test_base_inherits_from_exception(self) -> None:
        assert issubclass(OptiSARError, Exception)

    @pytest.mark.parametrize(
        "exc_cls",
        SUBCLASS_EXCEPTION_CLASSES,
        ids=lambda c: c.__name__,
    )
    def test_subclass_inherits_from_base(self, exc_cls: type[OptiSARError]) -> None:
        assert issubclass(exc_cls, OptiSARError)

    def test_configuration_and_collaborator_are_distinct(self) -> None:
        assert not issubclass(ConfigurationError, CollaboratorError)
        assert not issubclass(CollaboratorError, ConfigurationError)


@pytest.mark.unit
class TestThreePartMessage:
    """Verify the three-part message pattern (what, cause, fix)."""

    @pytest.mark.parametrize(
        "exc_cls",
        ALL_EXCEPTION_CLASSES,
        ids=lambda c: c.__name__,
    )
    def test_full_message(self, exc_cls: type[OptiSARError]) -> None:
        exc = exc_cls(what="Operation failed", cause="Bad input", fix="Check your data")
        lines = str(exc).split("\n")
        assert lines[:3] == ["Operation failed", "Cause: Bad input", "Fix: Check your data"]

    @pytest.mark.parametrize(
        "exc_cls",
        ALL_EXCEPTION_CLASSES,
        ids=lambda c: c.__name__,
    )
    def test_what_only_message(self, exc_cls: type[OptiSARError]) -> None:
        assert str(exc_cls(what="Something broke")) == "Something broke"

    def test_message_omits_empty_cause(self) -> None:
        msg = str(OptiSARError(what="Failed", fix="Retry"))
        assert "Cause:" not in msg
        assert "Fix: Retry" in msg

    def test_attributes_stored(self) -> None:
        exc = ConfigurationError(what="W", cause="C", fix="F")
        assert (exc.what, exc.cause, exc.fix) == ("W", "C", "F")


@pytest.mark.unit
class TestCollaboratorContext:
    """CollaboratorError carries the failed call's context."""

    def test_context_attributes(self) -> None:
        exc = CollaboratorError(
            what="Archive query failed",
            sensor="COPERNICUS/S1_GRD_FLOAT",
            date_range=("2019-01-01", "2023-06-28"),
            region="Point[1, 2, 1, 2]",
        )
        assert exc.sensor == "COPERNICUS/S1_GRD_FLOAT"
        assert exc.date_range == ("2019-01-01", "2023-06-28")
        assert exc.region == "Point[1, 2, 1, 2]"

    def test_context_line_in_message(self) -> None:
        exc = CollaboratorError(
            what="Archive query failed",
            cause="HTTP 503",
            sensor="S1",
            date_range=("2021-01-01", "2022-01-01"),
        )
        lines = str(exc).split("\n")
        assert lines[-1] == "Context: sensor=S1, date_range=2021-01-01..2022-01-01"

    def test_no_context_line_without_context(self) -> None:
        assert "Context:" not in str(CollaboratorError(what="Mask failed"))

    def test_chained_cause_preserved(self) -> None:
        original = RuntimeError("socket closed")
        with pytest.raises(CollaboratorError) as excinfo:
            try:
                raise original
            except RuntimeError as exc:
                raise CollaboratorError(what="Archive query failed") from exc
        assert excinfo.value.__cause__ is original
