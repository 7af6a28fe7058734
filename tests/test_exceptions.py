"""Tests for the exposure-chain exception hierarchy."""

import pytest

from exposure_chain.exceptions import (
    AuthorizationError,
    BatcherStateError,
    ChainIntegrityError,
    ConfigurationError,
    ExposureChainError,
    NotFoundError,
    PushDeliveryError,
    StorageError,
    ValidationError,
)


class TestExposureChainError:
    """Tests for the base ExposureChainError class."""

    def test_error_message(self):
        error = ExposureChainError("Something went wrong")
        assert error.message == "Something went wrong"
        assert str(error) == "Something went wrong"

    def test_to_dict(self):
        assert ExposureChainError("boom").to_dict() == {
            "error": {"code": "exposure_chain_error", "message": "boom"}
        }

    def test_inheritance(self):
        """All custom exceptions should inherit from ExposureChainError."""
        exceptions = [
            ValidationError("field", "invalid"),
            NotFoundError("report", "rpt_1"),
            StorageError("failed"),
            PushDeliveryError("failed"),
            ChainIntegrityError("ntf_1", "mismatch"),
            BatcherStateError("reused"),
            ConfigurationError("missing"),
            AuthorizationError("forbidden"),
        ]
        for exc in exceptions:
            assert isinstance(exc, ExposureChainError)

    def test_single_clause_catches_all(self):
        with pytest.raises(ExposureChainError):
            raise StorageError("store unreachable")


class TestValidationError:
    def test_field_in_message(self):
        error = ValidationError("test_date", "cannot be in the future")
        assert error.field == "test_date"
        assert str(error) == "test_date: cannot be in the future"
        assert error.code == "validation_error"

    def test_to_dict(self):
        result = ValidationError("sti_types", "required").to_dict()
        assert result["error"]["field"] == "sti_types"
        assert result["error"]["code"] == "validation_error"


class TestNotFoundError:
    def test_attributes(self):
        error = NotFoundError("report", "rpt_1")
        assert error.resource_type == "report"
        assert error.resource_id == "rpt_1"
        assert str(error) == "report not found: rpt_1"
        assert error.to_dict()["error"]["resource_id"] == "rpt_1"


class TestChainIntegrityError:
    def test_notification_id(self):
        error = ChainIntegrityError("ntf_1", "hop_depth 3 does not match")
        assert error.notification_id == "ntf_1"
        assert str(error) == "ntf_1: hop_depth 3 does not match"
        assert error.code == "chain_integrity_error"
