from decimal import Decimal

import pytest
from django.contrib.auth.models import Group
from django.core import mail
from django.core.management import call_command
from django.urls import reverse
from django.utils import timezone

from disputes.models import PaymentDispute
from disputes.permissions import MEDIATORS_GROUP
from disputes.services import DisputeService
from escrow.exceptions import EscrowError, EscrowLocked, InvalidStatusTransition
from escrow.services import EscrowService


@pytest.fixture
def service():
    return DisputeService()


@pytest.fixture
def mediator(make_member):
    member = make_member(email='mediator@example.com', first_name='Maya', last_name='Mediator')
    group, _ = Group.objects.get_or_create(name=MEDIATORS_GROUP)
    member.groups.add(group)
    return member


def open_dispute(service, escrow, submitter, amount='2500.00'):
    return service.create_dispute(
        escrow=escrow,
        submitted_by=submitter,
        reason='Drywall left unfinished',
        amount=Decimal(amount),
        evidence=['photo-1.jpg'],
    )


@pytest.mark.django_db
def test_opening_a_dispute_locks_escrow_and_notifies_both_parties(service, funded_escrow, owner, contractor):
    dispute = open_dispute(service, funded_escrow, owner)

    funded_escrow.refresh_from_db()
    assert funded_escrow.is_locked is True
    assert dispute.respondent == contractor
    assert dispute.status == 'submitted'
    assert dispute.response_deadline > dispute.created_at
    assert dispute.hubspot_sync_status == 'skipped'

    assert len(mail.outbox) == 1
    assert set(mail.outbox[0].to) == {owner.email, contractor.email}

    with pytest.raises(EscrowLocked):
        EscrowService().release_payment(funded_escrow, amount=Decimal('10'), recipient=contractor, payment_type='progress_payment')


@pytest.mark.django_db
def test_outsiders_cannot_dispute(service, funded_escrow, outsider):
    with pytest.raises(EscrowError):
        open_dispute(service, funded_escrow, outsider)


@pytest.mark.django_db
def test_review_then_mediation_keeps_reviewer(service, funded_escrow, contractor, mediator):
    dispute = open_dispute(service, funded_escrow, contractor)

    dispute = service.start_review(dispute, reviewer=mediator)
    assert dispute.status == 'under_review'

    dispute = service.request_mediation(dispute)
    assert dispute.status == 'mediation'
    assert dispute.mediator == mediator
    assert dispute.mediation_date is not None

    with pytest.raises(InvalidStatusTransition):
        service.start_review(dispute, reviewer=mediator)


@pytest.mark.django_db
def test_mediation_assigns_least_loaded_mediator(service, funded_escrow, owner, mediator, make_member):
    busy = make_member(email='busy@example.com')
    busy.groups.add(Group.objects.get(name=MEDIATORS_GROUP))
    PaymentDispute.objects.create(
        escrow=funded_escrow, submitted_by=owner, respondent=owner, reason='Old', amount=Decimal('1'),
        mediator=busy, status='mediation', response_deadline=timezone.now(),
    )

    dispute = service.request_mediation(open_dispute(service, funded_escrow, owner))
    assert dispute.mediator == mediator


@pytest.mark.django_db
def test_mediation_without_mediators_fails(service, funded_escrow, owner):
    dispute = open_dispute(service, funded_escrow, owner)
    with pytest.raises(EscrowError):
        service.request_mediation(dispute)


@pytest.mark.django_db
def test_resolution_unlocks_and_refunds_submitter(service, funded_escrow, owner, mediator):
    dispute = open_dispute(service, funded_escrow, owner)

    dispute = service.resolve(dispute, resolution='Partial refund agreed', resolved_by=mediator, resolution_amount=Decimal('1500'))

    funded_escrow.refresh_from_db()
    assert dispute.status == 'resolved'
    assert funded_escrow.is_locked is False
    assert dispute.resolution_payment.payment_type == 'refund'
    assert dispute.resolution_payment.recipient == owner
    assert funded_escrow.escrow_balance == Decimal('48500.00')

    with pytest.raises(InvalidStatusTransition):
        service.resolve(dispute, resolution='Again', resolved_by=mediator)


@pytest.mark.django_db
def test_escrow_stays_locked_while_another_dispute_is_open(service, funded_escrow, owner, contractor, mediator):
    first = open_dispute(service, funded_escrow, owner)
    open_dispute(service, funded_escrow, contractor)

    service.resolve(first, resolution='Withdrawn', resolved_by=mediator)

    funded_escrow.refresh_from_db()
    assert funded_escrow.is_locked is True


@pytest.mark.django_db
def test_resolution_refund_pays_out_while_another_dispute_keeps_escrow_locked(service, funded_escrow, owner, contractor, mediator):
    first = open_dispute(service, funded_escrow, owner)
    second = open_dispute(service, funded_escrow, contractor)

    first = service.resolve(first, resolution='Refund agreed', resolved_by=mediator, resolution_amount=Decimal('100'))

    funded_escrow.refresh_from_db()
    assert first.status == 'resolved'
    assert first.resolution_payment.amount == Decimal('100.00')
    assert first.resolution_payment.recipient == owner
    assert funded_escrow.escrow_balance == Decimal('49900.00')
    assert funded_escrow.total_paid == Decimal('100.00')
    assert funded_escrow.is_locked is True

    second.refresh_from_db()
    assert second.is_open

    with pytest.raises(EscrowLocked):
        EscrowService().release_payment(funded_escrow, amount=Decimal('10'), recipient=contractor, payment_type='progress_payment')


@pytest.mark.django_db
def test_dispute_api_flow(auth_client, funded_escrow, owner, contractor, outsider, mediator):
    create_url = reverse('escrow-disputes-create', kwargs={'escrow_id': funded_escrow.id})

    assert auth_client(outsider).post(create_url, {'reason': 'x', 'amount': '10.00'}, format='json').status_code == 403
    too_much = auth_client(owner).post(create_url, {'reason': 'x', 'amount': '100000.01'}, format='json')
    assert too_much.status_code == 400

    response = auth_client(contractor).post(
        create_url, {'reason': 'Unpaid change order work', 'amount': '4200.00'}, format='json',
    )
    assert response.status_code == 201
    dispute_id = response.data['dispute']['id']

    assert len(auth_client(owner).get(reverse('disputes-list')).data) == 1
    assert auth_client(outsider).get(reverse('disputes-list')).data == []
    assert auth_client(outsider).get(reverse('disputes-detail', kwargs={'id': dispute_id})).status_code == 403

    assert auth_client(owner).post(reverse('disputes-start-review', kwargs={'id': dispute_id})).status_code == 403
    assert auth_client(mediator).post(reverse('disputes-start-review', kwargs={'id': dispute_id})).status_code == 200

    over = auth_client(mediator).post(
        reverse('disputes-resolve', kwargs={'id': dispute_id}),
        {'resolution': 'Pay half', 'resolution_amount': '5000.00'},
        format='json',
    )
    assert over.status_code == 400

    resolved = auth_client(mediator).post(
        reverse('disputes-resolve', kwargs={'id': dispute_id}),
        {'resolution': 'Pay half', 'resolution_amount': '2100.00'},
        format='json',
    )
    assert resolved.status_code == 200
    assert resolved.data['status'] == 'resolved'
    assert resolved.data['resolution_payment'] is not None


@pytest.mark.django_db
def test_create_mediator_group_command(make_member):
    member = make_member(email='newmediator@example.com')

    call_command('create_mediator_group', email=member.email)

    group = Group.objects.get(name=MEDIATORS_GROUP)
    assert member.groups.filter(pk=group.pk).exists()
    assert group.permissions.filter(codename='change_paymentdispute').exists()
