"""
Tests for error handling classes.

Tests cover:
- ErrorCode values
- TTSError creation and serialization (to_dict)
- Typed subclasses and their codes
- error_for_provider() mapping of provider refusals
"""
import pytest

from tts_relay.services.tts_service import (
    BillingRequiredError,
    ErrorCode,
    InvalidInputError,
    ProviderAuthError,
    QuotaExceededError,
    SynthesisError,
    TTSError,
    error_for_provider,
)
from tts_relay.tts.engine import ProviderError, ProviderErrorKind


class TestErrorCode:
    @pytest.mark.parametrize("name", [
        "VALIDATION_FAILED", "INVALID_INPUT", "SYNTHESIS_FAILED", "QUOTA_EXCEEDED",
        "AUTH_FAILED", "BILLING_REQUIRED", "GENERATION_FAILED", "INTERNAL_ERROR",
    ])
    def test_code_equals_name(self, name):
        assert getattr(ErrorCode, name) == name


class TestTTSError:
    def test_message_and_default_code(self):
        error = TTSError("Something broke")
        assert error.message == "Something broke"
        assert str(error) == "Something broke"
        assert error.code == ErrorCode.INTERNAL_ERROR
        assert error.details == {}

    def test_to_dict_without_details(self):
        assert TTSError("x", ErrorCode.SYNTHESIS_FAILED).to_dict() == {
            "success": False,
            "error": "SYNTHESIS_FAILED",
            "message": "x",
        }

    def test_to_dict_with_details(self):
        data = TTSError("x", details={"count": 3}).to_dict()
        assert data["details"] == {"count": 3}

    @pytest.mark.parametrize("cls,code", [
        (SynthesisError, ErrorCode.SYNTHESIS_FAILED),
        (InvalidInputError, ErrorCode.INVALID_INPUT),
        (QuotaExceededError, ErrorCode.QUOTA_EXCEEDED),
        (ProviderAuthError, ErrorCode.AUTH_FAILED),
        (BillingRequiredError, ErrorCode.BILLING_REQUIRED),
    ])
    def test_subclasses(self, cls, code):
        error = cls("msg", {"k": "v"})
        assert isinstance(error, TTSError)
        assert error.code == code
        assert error.details == {"k": "v"}

    def test_catchable_as_base(self):
        with pytest.raises(TTSError):
            raise QuotaExceededError("quota")


class TestErrorForProvider:
    def test_quota(self):
        error = error_for_provider(ProviderError("429 Resource exhausted", ProviderErrorKind.QUOTA))
        assert isinstance(error, QuotaExceededError)
        assert error.message == "TTS quota exceeded. Please try again later."
        assert error.details["provider_message"] == "429 Resource exhausted"

    def test_authentication(self):
        error = error_for_provider(ProviderError("bad key", ProviderErrorKind.AUTHENTICATION))
        assert isinstance(error, ProviderAuthError)
        assert error.message == "Authentication failed with Google Cloud TTS."

    def test_billing(self):
        error = error_for_provider(ProviderError("billing disabled", ProviderErrorKind.BILLING))
        assert isinstance(error, BillingRequiredError)
        assert error.message == "Billing account required for TTS service."

    def test_other_is_synthesis_error(self):
        error = error_for_provider(ProviderError("503"))
        assert isinstance(error, SynthesisError)
        assert error.code == ErrorCode.SYNTHESIS_FAILED
