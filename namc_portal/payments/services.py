import logging

from django.conf import settings

from .exceptions import PaymentProviderError
from .models import PayoutMethod
from .providers import get_payment_provider

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Provider adapter. This class should NOT create or update escrow or ledger records.
    It only calls the configured payment provider(s) and raises
    PaymentProviderError when a provider reports a failure.
    """
    def __init__(self, provider_name=None):
        self.default_provider_name = provider_name or settings.DEFAULT_PAYMENT_PROVIDER

    def _get_provider(self, provider_name):
        name = provider_name or self.default_provider_name
        return get_payment_provider(name), name

    def _checked(self, result, action):
        if result.get('status') != 'success':
            message = result.get('message') or f'{action} failed'
            logger.error(f"Payment provider {action} failed: {result.get('error', message)}")
            raise PaymentProviderError(message)
        return result

    def open_escrow_account(self, *, project, provider_name=None):
        provider, _ = self._get_provider(provider_name)
        result = provider.create_escrow_account(
            email=project.owner.email,
            project_title=project.title,
            project_id=project.id,
        )
        return self._checked(result, 'escrow account creation')

    def deposit(self, *, user, amount, provider_name=None, **kwargs):
        provider, _ = self._get_provider(provider_name)
        return self._checked(provider.charge(user=user, amount=amount, **kwargs), 'deposit')

    def verify_payment(self, *, provider_name, provider_transaction_id):
        provider, _ = self._get_provider(provider_name)
        return provider.verify(provider_transaction_id)

    def refund(self, *, provider_name, provider_transaction_id, amount=None, reason="Escrow refund"):
        provider, _ = self._get_provider(provider_name)
        return self._checked(provider.refund(provider_transaction_id, amount, reason), 'refund')

    def transfer_to_member(self, member, amount, provider_name=None, **kwargs):
        """
        Transfer escrowed funds to a member's payout method for the given provider.
        """
        provider, resolved_name = self._get_provider(provider_name)

        recipient = self._get_member_payout_recipient(member, resolved_name)
        if recipient is None:
            raise PaymentProviderError(f'No active {resolved_name} payout method found for member {member.email}')

        return self._checked(provider.transfer_to_account(recipient=recipient, amount=amount, **kwargs), 'transfer')

    def _get_member_payout_recipient(self, member, provider_name):
        payout_method = PayoutMethod.objects.filter(
            user=member,
            provider=provider_name,
            is_active=True,
        ).order_by('-is_default', '-created_at').first()

        if provider_name == 'manual':
            # Off-platform payouts only need a reference; a stored method just adds bank details.
            if payout_method is None:
                return {'member_id': str(member.id), 'email': member.email}
            return payout_method.as_recipient()

        if payout_method is None or not payout_method.payouts_enabled or not payout_method.stripe_account_id:
            return None
        return payout_method.as_recipient()
