from abc import ABC, abstractmethod
from decimal import Decimal, ROUND_HALF_UP


def to_minor_units(amount):
    """Dollars to cents, rounded half-up."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


class BasePaymentProvider(ABC):
    """
    Abstract base class for all payment providers.
    Every method returns a dict carrying 'status' ('success' or 'error');
    PaymentService turns error results into PaymentProviderError.
    """

    def __init__(self, **kwargs):
        """Initialize the payment provider with configuration."""
        self.config = kwargs

    @abstractmethod
    def create_escrow_account(self, *, email, project_title, **kwargs):
        """
        Open the account that holds a project's escrowed funds.

        Returns:
            Dict with 'account_id' on success
        """

    @abstractmethod
    def charge(self, user, amount, **kwargs):
        """
        Collect a deposit from a member into escrow.

        Args:
            user: Member making the payment
            amount: Amount to charge (as Decimal)
            **kwargs: Additional parameters specific to the provider

        Returns:
            Dict with the provider reference under 'tx_ref'
        """

    @abstractmethod
    def transfer_to_account(self, recipient, amount, **kwargs):
        """
        Pay funds out of escrow to a member.

        Args:
            recipient: Dict describing the member's payout destination
            amount: Amount to transfer

        Returns:
            Dict with the provider reference under 'reference'
        """

    @abstractmethod
    def refund(self, provider_transaction_id, amount, reason="Escrow refund"):
        """
        Process a refund of an earlier charge.

        Returns:
            Dict containing 'refund_id'
        """

    @abstractmethod
    def verify(self, provider_transaction_id) -> bool:
        """True if the charge succeeded."""

    @abstractmethod
    def get_payment_status(self, provider_transaction_id):
        """Provider-side status string for a charge."""
