"""Unit tests for Outcome and Error."""

import pytest

from tenantdb.core.result import Error, ErrorType, Outcome


class TestError:
    """Tests for Error factories."""

    def test_factories_set_type(self):
        """Test that each factory sets its classification."""
        assert Error.validation("A", "a").type is ErrorType.VALIDATION
        assert Error.conflict("A", "a").type is ErrorType.CONFLICT
        assert Error.not_found("A", "a").type is ErrorType.NOT_FOUND
        assert Error.unexpected("A", "a").type is ErrorType.UNEXPECTED

    def test_metadata(self):
        """Test that keyword arguments become metadata."""
        error = Error.unexpected("Tenant.CredentialStorageFailed", "x", written_paths=["p"])

        assert error.metadata == {"written_paths": ["p"]}

    @pytest.mark.parametrize(
        "error_type,status",
        [
            (ErrorType.VALIDATION, 400),
            (ErrorType.CONFLICT, 409),
            (ErrorType.NOT_FOUND, 404),
            (ErrorType.UNEXPECTED, 500),
        ],
    )
    def test_http_status(self, error_type: ErrorType, status: int):
        """Test HTTP status mapping."""
        assert error_type.http_status == status


class TestOutcome:
    """Tests for Outcome."""

    def test_ok(self):
        """Test a successful outcome."""
        outcome = Outcome.ok(5)

        assert not outcome.is_error
        assert outcome.value == 5
        assert outcome.errors == []

    def test_fail(self):
        """Test a failed outcome."""
        outcome = Outcome.fail(Error.not_found("Tenant.NotFound", "missing"))

        assert outcome.is_error
        assert outcome.first_error.code == "Tenant.NotFound"
        with pytest.raises(ValueError):
            _ = outcome.value

    def test_fail_requires_error(self):
        """Test that an empty failure is rejected."""
        with pytest.raises(ValueError):
            Outcome.fail()

    def test_map(self):
        """Test mapping values and passing errors through."""
        assert Outcome.ok(2).map(lambda v: v * 3).value == 6

        failed = Outcome.fail(Error.validation("X", "x")).map(lambda v: v * 3)
        assert failed.first_error.code == "X"
