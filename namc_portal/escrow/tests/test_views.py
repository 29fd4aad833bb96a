from decimal import Decimal

import pytest
from django.urls import reverse

from escrow.models import ProjectEscrow
from escrow.services import EscrowService


@pytest.mark.django_db
def test_owner_opens_escrow_for_project(auth_client, owner, project):
    response = auth_client(owner).post(
        reverse('escrow-list'),
        {'project': project.id, 'total_project_value': '80000.00', 'retention_percentage': '5', 'payment_provider': 'manual'},
        format='json',
    )

    assert response.status_code == 201
    assert response.data['retention_amount'] == '4000.00'
    assert response.data['status'] == 'created'


@pytest.mark.django_db
def test_contractor_cannot_open_escrow(auth_client, contractor, project):
    response = auth_client(contractor).post(
        reverse('escrow-list'),
        {'project': project.id, 'total_project_value': '80000.00'},
        format='json',
    )

    assert response.status_code == 400
    assert not ProjectEscrow.objects.exists()


@pytest.mark.django_db
def test_escrow_list_is_scoped_to_participants(auth_client, escrow, contractor, outsider):
    assert len(auth_client(contractor).get(reverse('escrow-list')).data) == 1
    assert auth_client(outsider).get(reverse('escrow-list')).data == []
    assert auth_client(outsider).get(reverse('escrow-detail', kwargs={'pk': escrow.pk})).status_code == 403


@pytest.mark.django_db
def test_only_client_funds(auth_client, escrow, owner, contractor):
    url = reverse('escrow-fund', kwargs={'pk': escrow.pk})

    assert auth_client(contractor).post(url, {'amount': '1000.00'}, format='json').status_code == 403

    response = auth_client(owner).post(url, {'amount': '25000.00', 'payment_method': 'check'}, format='json')
    assert response.status_code == 200
    assert response.data['escrow_balance'] == '25000.00'
    assert response.data['status'] == 'active'


@pytest.mark.django_db
def test_release_validates_against_available_balance(auth_client, funded_escrow, owner):
    url = reverse('escrow-release', kwargs={'pk': funded_escrow.pk})

    response = auth_client(owner).post(url, {'amount': '40000.01'}, format='json')
    assert response.status_code == 400

    response = auth_client(owner).post(url, {'amount': '12000.00', 'notes': 'Progress draw 1'}, format='json')
    assert response.status_code == 200
    assert response.data['payment_type'] == 'progress_payment'
    assert response.data['recipient']['email'] == 'contractor@example.com'


@pytest.mark.django_db
def test_locked_escrow_release_returns_conflict(auth_client, funded_escrow, owner, admin_member):
    lock_url = reverse('escrow-lock', kwargs={'pk': funded_escrow.pk})
    assert auth_client(owner).patch(lock_url, {'is_locked': True}, format='json').status_code == 403
    assert auth_client(admin_member).patch(lock_url, {'is_locked': True}, format='json').data['is_locked'] is True

    response = auth_client(owner).post(
        reverse('escrow-release', kwargs={'pk': funded_escrow.pk}), {'amount': '100.00'}, format='json',
    )
    assert response.status_code == 409


@pytest.mark.django_db
def test_ledger_lists_entries(auth_client, funded_escrow, contractor):
    response = auth_client(contractor).get(reverse('escrow-ledger', kwargs={'pk': funded_escrow.pk}))

    assert response.status_code == 200
    assert [entry['payment_type'] for entry in response.data] == ['deposit']


@pytest.mark.django_db
def test_task_payment_flow_over_the_api(auth_client, funded_escrow, owner, contractor):
    response = auth_client(owner).post(
        reverse('escrow-task-payments', kwargs={'pk': funded_escrow.pk}),
        {'task_reference': 'T-9', 'task_name': 'Install windows', 'payment_amount': '3500.00'},
        format='json',
    )
    assert response.status_code == 201
    task_id = response.data['id']

    submit_url = reverse('task-payment-submit', kwargs={'task_id': task_id})
    assert auth_client(owner).post(submit_url, {}, format='json').status_code == 403

    response = auth_client(contractor).post(submit_url, {'photos': ['w1.jpg'], 'quality_score': 95}, format='json')
    assert response.status_code == 200
    assert response.data['status'] == 'completed'

    response = auth_client(owner).post(reverse('task-payment-verify', kwargs={'task_id': task_id}), {}, format='json')
    assert response.status_code == 200
    assert response.data['status'] == 'paid'


@pytest.mark.django_db
def test_milestone_endpoints(auth_client, funded_escrow, owner, contractor):
    response = auth_client(owner).post(
        reverse('escrow-milestones', kwargs={'pk': funded_escrow.pk}),
        {'name': 'Rough-in inspection', 'payment_percentage': '15'},
        format='json',
    )
    assert response.status_code == 201
    milestone_id = response.data['id']

    complete = auth_client(contractor).post(reverse('milestone-complete', kwargs={'milestone_id': milestone_id}))
    assert complete.data['status'] == 'completed'

    verify = auth_client(owner).post(reverse('milestone-verify', kwargs={'milestone_id': milestone_id}))
    assert verify.status_code == 200
    assert verify.data['status'] == 'paid'


@pytest.mark.django_db
def test_change_order_endpoint(auth_client, escrow, owner, contractor):
    url = reverse('escrow-change-orders', kwargs={'pk': escrow.pk})
    payload = {'change_order_number': 'CO-7', 'description': 'Upgrade HVAC', 'amount_change': '7500.00'}

    assert auth_client(contractor).post(url, payload, format='json').status_code == 403
    response = auth_client(owner).post(url, payload, format='json')
    assert response.status_code == 201
    assert response.data['new_project_value'] == '107500.00'

    assert len(auth_client(contractor).get(url).data) == 1


@pytest.mark.django_db
def test_cash_flow_report_and_dashboard(auth_client, funded_escrow, owner):
    client = auth_client(owner)
    response = client.get(
        reverse('escrow-cash-flow-report', kwargs={'pk': funded_escrow.pk}),
        {'start_date': '2000-01-01', 'end_date': '2100-01-01'},
    )
    assert response.status_code == 200
    assert response.data['summary']['current_balance'] == '50000.00'

    dashboard = client.get(reverse('escrow-cash-flow-dashboard'))
    assert dashboard.status_code == 200
    assert dashboard.data['active_escrows'] == 1


@pytest.mark.django_db
def test_retention_release_endpoint(auth_client, escrow, owner, contractor):
    service = EscrowService()
    service.fund_escrow(escrow, amount=Decimal('100000'))
    service.release_payment(escrow, amount=Decimal('90000'), recipient=contractor, payment_type='progress_payment')

    url = reverse('escrow-retention-release', kwargs={'pk': escrow.pk})
    assert auth_client(owner).post(url).status_code == 400

    assert auth_client(owner).post(reverse('escrow-complete', kwargs={'pk': escrow.pk})).status_code == 200
    response = auth_client(owner).post(url)
    assert response.status_code == 200
    assert response.data['status'] == 'closed'


@pytest.mark.django_db
def test_payment_eligibility_endpoint(auth_client, owner):
    response = auth_client(owner).post(
        reverse('escrow-payment-eligibility'),
        {
            'completion_evidence': {'photos': ['p.jpg'], 'description': 'Framing complete'},
            'required_approvals': ['inspector'],
            'received_approvals': [],
        },
        format='json',
    )

    assert response.status_code == 200
    assert response.data['eligible'] is False
    assert response.data['missing_requirements'] == ['inspector approval']
