import logging
import uuid

from .base import BasePaymentProvider

logger = logging.getLogger(__name__)

METHOD_PREFIXES = {
    'ach': 'ACH',
    'wire': 'WIRE',
    'check': 'CHK',
}


class ManualProvider(BasePaymentProvider):
    """
    Off-platform ACH, wire and check payments.

    Money moves outside the portal; the provider only issues the reference
    the bookkeeper reconciles against, so every call succeeds.
    """

    def _reference(self, method):
        prefix = METHOD_PREFIXES.get(method or 'ach', 'MAN')
        return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"

    def create_escrow_account(self, *, email, project_title, **kwargs):
        account_id = f"manual-escrow-{uuid.uuid4().hex[:10]}"
        logger.info(f"Manual escrow ledger opened: {account_id} for project '{project_title}'")
        return {'status': 'success', 'account_id': account_id, 'provider': 'manual'}

    def charge(self, user, amount, **kwargs):
        reference = self._reference(kwargs.get('payment_method'))
        logger.info(f"Recorded manual deposit {reference} from {user.email}, amount: {amount}")
        return {'status': 'success', 'tx_ref': reference, 'provider': 'manual'}

    def transfer_to_account(self, recipient, amount, **kwargs):
        reference = self._reference(recipient.get('method') or kwargs.get('payment_method'))
        logger.info(f"Recorded manual payout {reference} to member {recipient.get('member_id')}, amount: {amount}")
        return {
            'status': 'success',
            'reference': reference,
            'amount': str(amount),
            'provider': 'manual',
        }

    def refund(self, provider_transaction_id, amount, reason="Escrow refund"):
        refund_id = f"REF-{uuid.uuid4().hex[:12].upper()}"
        logger.info(f"Recorded manual refund {refund_id} against {provider_transaction_id}, amount: {amount}")
        return {'status': 'success', 'refund_id': refund_id, 'amount': str(amount), 'provider': 'manual'}

    def verify(self, provider_transaction_id):
        return True

    def get_payment_status(self, provider_transaction_id):
        return 'recorded'
