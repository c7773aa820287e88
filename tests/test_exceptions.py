"""Tests for the exception hierarchy."""

import pytest

from pay_recon.exceptions import (
    ConfigurationError,
    DuplicateKeyError,
    InconsistentCallbackError,
    InvalidTransitionError,
    MalformedCallbackError,
    PayReconError,
    ProviderError,
    ProviderRejectedError,
    ProviderUnavailableError,
    TransactionNotFoundError,
)


class TestExceptionHierarchy:
    """Tests for exception inheritance."""

    @pytest.mark.parametrize(
        "exc_class",
        [
            ConfigurationError,
            DuplicateKeyError,
            InconsistentCallbackError,
            InvalidTransitionError,
            MalformedCallbackError,
            ProviderError,
            TransactionNotFoundError,
        ],
    )
    def test_inherits_from_base(self, exc_class: type) -> None:
        """Test every exception derives from PayReconError."""
        assert issubclass(exc_class, PayReconError)

    def test_provider_errors(self) -> None:
        """Test provider failures share ProviderError."""
        assert issubclass(ProviderRejectedError, ProviderError)
        assert issubclass(ProviderUnavailableError, ProviderError)

    def test_catch_all_with_base(self) -> None:
        """Test the base class catches specific errors."""
        with pytest.raises(PayReconError):
            raise TransactionNotFoundError("missing")


class TestProviderRejectedError:
    """Tests for ProviderRejectedError details."""

    def test_details(self) -> None:
        """Test provider rejections carry their details."""
        error = ProviderRejectedError("Invalid amount", details={"errorCode": "400.002.02"})

        assert str(error) == "Invalid amount"
        assert error.details == {"errorCode": "400.002.02"}

    def test_details_default(self) -> None:
        """Test details default to an empty dict."""
        assert ProviderRejectedError("nope").details == {}
