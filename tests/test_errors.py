"""Tests for lakeorch error classes.

Tests cover:
- Error hierarchy (everything is a LakeorchError)
- Structured attributes on CommandError and InvalidTransitionError
"""

import pytest

from lakeorch.errors import (
    CommandError,
    ConfigError,
    InvalidTransitionError,
    LakeorchError,
    PhaseNotFoundError,
    QueryError,
    SignatureError,
)


class TestHierarchy:
    """Every lakeorch error can be caught as LakeorchError."""

    @pytest.mark.parametrize(
        "error_class",
        [ConfigError, QueryError, PhaseNotFoundError, SignatureError],
    )
    def test_is_lakeorch_error(self, error_class):
        assert issubclass(error_class, LakeorchError)
        with pytest.raises(LakeorchError, match="boom"):
            raise error_class("boom")

    def test_base_is_exception(self):
        assert issubclass(LakeorchError, Exception)


class TestCommandError:
    """Tests for CommandError."""

    def test_message_includes_command(self):
        error = CommandError("kubectl", "executable not found on PATH")
        assert str(error) == "kubectl: executable not found on PATH"
        assert error.command == "kubectl"

    def test_caught_as_lakeorch_error(self):
        with pytest.raises(LakeorchError):
            raise CommandError("helm", "timed out after 5s")


class TestInvalidTransitionError:
    """Tests for InvalidTransitionError."""

    def test_message_names_both_states(self):
        error = InvalidTransitionError("waiting", "installing")
        assert str(error) == "Invalid transition: waiting -> installing"
        assert error.current == "waiting"
        assert error.target == "installing"
