"""Provider adapter interface."""

from abc import ABC, abstractmethod
from decimal import Decimal

from pay_recon.models.payment import InitiationResult, Provider, ProviderStatus


class ProviderAdapter(ABC):
    """Outbound side of one payment provider.

    Implementations obtain tokens, sign requests and talk to the provider's
    REST API. The reconciliation engine only relies on this contract and
    never holds a record lock while calling it.
    """

    @property
    @abstractmethod
    def provider(self) -> Provider:
        """Provider this adapter speaks for."""

    @abstractmethod
    def initiate(
        self,
        amount: Decimal,
        currency: str,
        payer_ref: str,
        description: str,
        callback_target: str,
    ) -> InitiationResult:
        """Submit a payment request.

        Raises
        ------
        ProviderRejectedError
            The provider refused the request.
        ProviderUnavailableError
            The provider could not be reached.
        """

    @abstractmethod
    def fetch_status(self, correlation_id: str) -> ProviderStatus:
        """Ask the provider for the current state of a payment.

        Raises
        ------
        ProviderUnavailableError
            The provider could not be reached.
        """
