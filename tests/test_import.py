"""Test that the optisar package imports correctly."""

import re

import pytest

import optisar


@pytest.mark.unit
def test_package_version_exists() -> None:
    """Verify package exposes a valid semver version string."""
    assert isinstance(optisar.__version__, str)
    assert re.match(r"^\d+\.\d+\.\d+", optisar.__version__)


@pytest.mark.unit
def test_public_api_exports() -> None:
    """Verify every name in __all__ is importable from the package."""
    for name in optisar.__all__:
        assert hasattr(optisar, name), name


@pytest.mark.unit
def test_exception_hierarchy() -> None:
    """Verify exception inheritance chain."""
    assert issubclass(optisar.ConfigurationError, optisar.OptiSARError)
    assert issubclass(optisar.CollaboratorError, optisar.OptiSARError)
    assert issubclass(optisar.OptiSARError, Exception)


@pytest.mark.unit
def test_library_installs_no_log_handlers() -> None:
    """Logging configuration is left to the application."""
    import logging

    assert logging.getLogger("optisar").handlers == []
