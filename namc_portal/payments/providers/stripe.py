import logging

import stripe
from django.conf import settings

from .base import BasePaymentProvider, to_minor_units

logger = logging.getLogger(__name__)


class StripeProvider(BasePaymentProvider):
    """
    Stripe implementation for project escrows.

    Each escrow gets a Connect express account; deposits are PaymentIntents,
    releases are Transfers to the recipient's connected account.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        stripe.api_key = settings.STRIPE_SECRET_KEY
        self.publishable_key = settings.STRIPE_PUBLISHABLE_KEY
        self.currency = getattr(settings, 'STRIPE_CURRENCY', 'usd')
        self.country = getattr(settings, 'STRIPE_COUNTRY', 'US')

    def create_escrow_account(self, *, email, project_title, **kwargs):
        try:
            account = stripe.Account.create(
                type='express',
                country=self.country,
                email=email,
                capabilities={'transfers': {'requested': True}},
                metadata={
                    'escrow_account': 'true',
                    'project_id': str(kwargs.get('project_id', '')),
                    'project_title': project_title,
                },
            )
            logger.info(f"Stripe escrow account created: {account.id} for project '{project_title}'")
            return {'status': 'success', 'account_id': account.id, 'provider': 'stripe'}
        except stripe.StripeError as e:
            logger.error(f"Stripe API error creating escrow account: {str(e)}")
            return {'status': 'error', 'message': 'Escrow account creation failed', 'error': str(e)}

    def charge(self, user, amount, **kwargs):
        """
        Create (and, when a payment method is supplied, confirm) a PaymentIntent for an escrow deposit.
        """
        payment_method = kwargs.get('payment_method')
        params = {
            'amount': to_minor_units(amount),
            'currency': self.currency,
            'receipt_email': user.email,
            'description': f"Escrow deposit for {kwargs.get('project_title', 'project')}",
            'metadata': {
                'member_id': str(user.id),
                'escrow_id': str(kwargs.get('escrow_id', '')),
                'escrow_deposit': 'true',
            },
        }
        if payment_method:
            params.update(
                payment_method=payment_method,
                confirm=True,
                automatic_payment_methods={'enabled': True, 'allow_redirects': 'never'},
            )
        else:
            params['automatic_payment_methods'] = {'enabled': True}

        try:
            intent = stripe.PaymentIntent.create(**params)
            logger.info(f"Stripe PaymentIntent created: {intent.id} for member {user.email}, amount: {amount}")
            return {
                'status': 'success',
                'payment_intent_id': intent.id,
                'client_secret': intent.client_secret,
                'tx_ref': intent.id,
                'intent_status': intent.status,
                'provider': 'stripe',
            }
        except stripe.StripeError as e:
            logger.error(f"Stripe API error in charge: {str(e)}")
            return {'status': 'error', 'message': 'Payment initiation failed', 'error': str(e)}

    def transfer_to_account(self, recipient, amount, **kwargs):
        try:
            transfer = stripe.Transfer.create(
                amount=to_minor_units(amount),
                currency=self.currency,
                destination=recipient['stripe_account_id'],
                transfer_group=kwargs.get('transfer_group'),
                metadata={
                    'member_id': recipient.get('member_id', ''),
                    'payment_type': kwargs.get('payment_type', ''),
                    'escrow_id': str(kwargs.get('escrow_id', '')),
                },
            )
            logger.info(f"Stripe transfer created: {transfer.id}, {amount} to {recipient['stripe_account_id']}")
            return {
                'status': 'success',
                'transfer_id': transfer.id,
                'reference': transfer.id,
                'amount': str(amount),
                'provider': 'stripe',
            }
        except stripe.StripeError as e:
            logger.error(f"Stripe transfer error: {str(e)}")
            return {'status': 'error', 'message': 'Transfer failed', 'error': str(e)}

    def refund(self, provider_transaction_id, amount, reason="Escrow refund"):
        try:
            intent = stripe.PaymentIntent.retrieve(provider_transaction_id)
            if intent.status != 'succeeded':
                return {'status': 'error', 'message': 'Cannot refund unsuccessful payment'}

            refund_params = {
                'payment_intent': provider_transaction_id,
                'metadata': {'reason': reason, 'escrow_refund': 'true'},
            }
            if amount:
                refund_params['amount'] = to_minor_units(amount)

            refund = stripe.Refund.create(**refund_params)
            logger.info(f"Stripe refund created: {refund.id} for intent {provider_transaction_id}")
            return {
                'status': 'success',
                'refund_id': refund.id,
                'amount': str(amount) if amount else 'full',
                'provider': 'stripe',
            }
        except stripe.StripeError as e:
            logger.error(f"Stripe refund error: {str(e)}")
            return {'status': 'error', 'message': 'Refund failed', 'error': str(e)}

    def verify(self, provider_transaction_id):
        try:
            intent = stripe.PaymentIntent.retrieve(provider_transaction_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe verification error: {str(e)}")
            return False
        return intent.status == 'succeeded'

    def get_payment_status(self, provider_transaction_id):
        try:
            return stripe.PaymentIntent.retrieve(provider_transaction_id).status
        except stripe.StripeError as e:
            logger.error(f"Stripe status lookup error: {str(e)}")
            return 'error'

    def get_account_link(self, account_id):
        """Onboarding link so a contractor can finish their connected account."""
        try:
            link = stripe.AccountLink.create(
                account=account_id,
                refresh_url=f"{settings.FRONTEND_DOMAIN}/payments/onboarding/refresh",
                return_url=f"{settings.FRONTEND_DOMAIN}/payments/onboarding/complete",
                type='account_onboarding',
            )
            return {'status': 'success', 'url': link.url}
        except stripe.StripeError as e:
            logger.error(f"Stripe account link error for {account_id}: {str(e)}")
            return {'status': 'error', 'message': 'Could not create onboarding link', 'error': str(e)}

    def get_account_status(self, account_id):
        try:
            account = stripe.Account.retrieve(account_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe account lookup failed for {account_id}: {str(e)}")
            return {'status': 'error', 'message': 'Could not reach Stripe', 'error': str(e)}
        return {
            'status': 'success',
            'charges_enabled': bool(account.charges_enabled),
            'payouts_enabled': bool(account.payouts_enabled),
        }
