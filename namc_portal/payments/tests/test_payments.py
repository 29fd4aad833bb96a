from decimal import Decimal
from unittest import mock

import pytest
import stripe
from django.urls import reverse

from payments.exceptions import PaymentProviderError
from payments.models import PayoutMethod
from payments.providers import get_payment_provider
from payments.providers.base import to_minor_units
from payments.providers.manual import ManualProvider
from payments.providers.stripe import StripeProvider
from payments.services import PaymentService


def test_minor_units_round_half_up():
    assert to_minor_units(Decimal('12.345')) == 1235
    assert to_minor_units('0.10') == 10


def test_unknown_provider_is_rejected():
    with pytest.raises(ValueError):
        get_payment_provider('paypal')


def test_manual_references_follow_payment_method():
    provider = ManualProvider()
    member = mock.Mock(email='owner@example.com')

    assert provider.charge(member, Decimal('10'), payment_method='wire')['tx_ref'].startswith('WIRE-')
    assert provider.charge(member, Decimal('10'), payment_method='check')['tx_ref'].startswith('CHK-')
    assert provider.transfer_to_account({'member_id': '1'}, Decimal('10'))['reference'].startswith('ACH-')
    assert provider.refund('ACH-1', Decimal('5'))['refund_id'].startswith('REF-')


@pytest.mark.django_db
def test_stripe_transfer_uses_connected_account(settings, contractor):
    settings.STRIPE_SECRET_KEY = 'sk_test_123'
    PayoutMethod.objects.create(user=contractor, provider='stripe', stripe_account_id='acct_123', payouts_enabled=True)

    with mock.patch('payments.providers.stripe.stripe.Transfer.create', return_value=mock.Mock(id='tr_1')) as create:
        result = PaymentService('stripe').transfer_to_member(contractor, Decimal('1500.50'), payment_type='milestone', escrow_id=4)

    assert result['reference'] == 'tr_1'
    kwargs = create.call_args.kwargs
    assert kwargs['amount'] == 150050
    assert kwargs['destination'] == 'acct_123'
    assert kwargs['metadata']['payment_type'] == 'milestone'


@pytest.mark.django_db
def test_stripe_transfer_needs_enabled_payout_method(contractor):
    PayoutMethod.objects.create(user=contractor, provider='stripe', stripe_account_id='acct_123', payouts_enabled=False)

    with pytest.raises(PaymentProviderError):
        PaymentService('stripe').transfer_to_member(contractor, Decimal('100'))


@pytest.mark.django_db
def test_stripe_errors_become_provider_errors(owner):
    failure = stripe.StripeError('card declined')

    with mock.patch('payments.providers.stripe.stripe.PaymentIntent.create', side_effect=failure):
        with pytest.raises(PaymentProviderError) as exc:
            PaymentService('stripe').deposit(user=owner, amount=Decimal('100'))

    assert exc.value.status_code == 500
    assert str(exc.value.detail) == 'Payment initiation failed'


@pytest.mark.django_db
def test_stripe_deposit_confirms_when_method_given(owner):
    intent = mock.Mock(id='pi_1', client_secret='secret', status='succeeded')

    with mock.patch('payments.providers.stripe.stripe.PaymentIntent.create', return_value=intent) as create:
        result = StripeProvider().charge(owner, Decimal('250'), payment_method='pm_card_visa', escrow_id=9)

    assert result['tx_ref'] == 'pi_1'
    assert create.call_args.kwargs['confirm'] is True
    assert create.call_args.kwargs['amount'] == 25000


def test_stripe_refund_requires_succeeded_intent():
    with mock.patch('payments.providers.stripe.stripe.PaymentIntent.retrieve', return_value=mock.Mock(status='processing')):
        result = StripeProvider().refund('pi_1', Decimal('10'))

    assert result['status'] == 'error'


@pytest.mark.django_db
def test_manual_transfer_works_without_stored_method(contractor):
    result = PaymentService('manual').transfer_to_member(contractor, Decimal('42'))
    assert result['status'] == 'success'


@pytest.mark.django_db
def test_add_payout_methods(auth_client, contractor):
    url = reverse('payout-method-list-create')
    client = auth_client(contractor)

    assert client.post(url, {'provider': 'stripe', 'stripe_account_id': 'bad'}, format='json').status_code == 400
    assert client.post(url, {'provider': 'manual'}, format='json').status_code == 400

    manual = client.post(url, {'provider': 'manual', 'manual_method': 'ach', 'account_last4': '4321', 'is_default': True}, format='json')
    assert manual.status_code == 201
    assert manual.data['payouts_enabled'] is True

    connected = client.post(url, {'provider': 'stripe', 'stripe_account_id': 'acct_999'}, format='json')
    assert connected.status_code == 201
    assert connected.data['payouts_enabled'] is False

    assert len(client.get(url).data) == 2


@pytest.mark.django_db
def test_payout_methods_are_private(auth_client, contractor, outsider):
    method = PayoutMethod.objects.create(user=contractor, provider='manual', manual_method='check', payouts_enabled=True)
    url = reverse('payout-method-detail', kwargs={'method_id': method.id})

    assert auth_client(outsider).delete(url).status_code == 404
    assert auth_client(contractor).patch(url, {'is_active': False}, format='json').data['is_active'] is False


@pytest.mark.django_db
def test_stripe_status_refresh(auth_client, contractor):
    method = PayoutMethod.objects.create(user=contractor, provider='stripe', stripe_account_id='acct_123')
    account = mock.Mock(charges_enabled=True, payouts_enabled=True)

    with mock.patch('payments.providers.stripe.stripe.Account.retrieve', return_value=account):
        response = auth_client(contractor).post(reverse('payout-method-stripe-refresh', kwargs={'method_id': method.id}))

    assert response.status_code == 200
    assert response.data['payouts_enabled'] is True
