from datetime import timedelta
from decimal import Decimal
from unittest import mock

import pytest
from django.db import transaction
from django.utils import timezone

from escrow.exceptions import EscrowError, EscrowLocked, InsufficientBalance, InvalidStatusTransition
from escrow.models import EscrowPayment, ProjectEscrow
from escrow.services import EscrowService, calculate_confidence_score
from escrow.utils import validate_payment_eligibility
from projects.models import Project


@pytest.fixture
def service():
    return EscrowService()


def assert_books_balance(escrow):
    escrow.refresh_from_db()
    assert escrow.escrow_balance + escrow.total_paid == escrow.total_deposited


@pytest.mark.django_db
def test_create_escrow_computes_retention(escrow):
    assert escrow.status == 'created'
    assert escrow.retention_amount == Decimal('10000.00')
    assert escrow.payment_provider == 'manual'
    assert escrow.processor_account_id.startswith('manual-escrow-')
    assert escrow.hubspot_sync_status == 'skipped'


@pytest.mark.django_db
def test_one_escrow_per_project_and_contractor_required(service, escrow, owner):
    with pytest.raises(EscrowError):
        service.create_project_escrow(project=escrow.project, total_project_value=Decimal('1000'))

    unassigned = Project.objects.create(owner=owner, title='Warehouse', description='Roof', budget=Decimal('5000'))
    with pytest.raises(EscrowError):
        service.create_project_escrow(project=unassigned, total_project_value=Decimal('5000'))


@pytest.mark.django_db
def test_retention_percentage_bounds(service, owner, contractor):
    project = Project.objects.create(owner=owner, contractor=contractor, title='Clinic', description='TI', budget=Decimal('1000'))
    with pytest.raises(EscrowError):
        service.create_project_escrow(project=project, total_project_value=Decimal('1000'), retention_percentage=Decimal('101'))


@pytest.mark.django_db
def test_funding_moves_status_and_writes_deposit(service, escrow):
    escrow = service.fund_escrow(escrow, amount=Decimal('40000'), payment_method='wire')
    assert escrow.status == 'active'
    assert escrow.escrow_balance == Decimal('40000.00')

    deposit = escrow.payments.get(payment_type='deposit')
    assert deposit.payment_method == 'wire'
    assert deposit.transaction_reference.startswith('WIRE-')

    escrow = service.fund_escrow(escrow, amount=Decimal('60000'))
    assert escrow.status == 'funded'
    assert escrow.total_deposited == Decimal('100000.00')


@pytest.mark.django_db
def test_fund_rejects_non_positive_amount(service, escrow):
    with pytest.raises(EscrowError):
        service.fund_escrow(escrow, amount=Decimal('0'))


@pytest.mark.django_db
def test_release_holds_back_retention(service, funded_escrow, contractor):
    entry = service.release_payment(
        funded_escrow, amount=Decimal('15000'), recipient=contractor, payment_type='progress_payment',
    )

    assert entry.payment_type == 'progress_payment'
    assert entry.transaction_reference.startswith('ACH-')
    funded_escrow.refresh_from_db()
    assert funded_escrow.escrow_balance == Decimal('35000.00')
    assert funded_escrow.available_for_payment == Decimal('25000.00')
    assert_books_balance(funded_escrow)

    with pytest.raises(InsufficientBalance):
        service.release_payment(
            funded_escrow, amount=Decimal('25000.01'), recipient=contractor, payment_type='progress_payment',
        )


@pytest.mark.django_db
def test_locked_escrow_refuses_releases(service, funded_escrow, contractor):
    ProjectEscrow.objects.filter(pk=funded_escrow.pk).update(is_locked=True)

    with pytest.raises(EscrowLocked):
        service.release_payment(funded_escrow, amount=Decimal('100'), recipient=contractor, payment_type='progress_payment')
    assert not funded_escrow.payments.exclude(payment_type='deposit').exists()


@pytest.fixture
def hubspot():
    hubspot = mock.Mock(is_enabled=True)
    hubspot.create_object.return_value = {'id': 'E-1'}
    return hubspot


@pytest.mark.django_db
def test_release_mirrors_escrow_only_after_commit(funded_escrow, contractor, hubspot, django_capture_on_commit_callbacks):
    service = EscrowService(hubspot=hubspot)

    with django_capture_on_commit_callbacks() as callbacks:
        service.release_payment(funded_escrow, amount=Decimal('1000'), recipient=contractor, payment_type='progress_payment')
        hubspot.create_object.assert_not_called()

    assert len(callbacks) == 1
    callbacks[0]()

    object_type, properties, _ = hubspot.create_object.call_args.args
    assert object_type == 'project_escrows'
    assert properties['escrow_balance'] == '49000.00'
    funded_escrow.refresh_from_db()
    assert funded_escrow.hubspot_object_id == 'E-1'
    assert funded_escrow.hubspot_sync_status == 'synced'


@pytest.mark.django_db
def test_release_inside_rolled_back_transaction_is_not_mirrored(funded_escrow, contractor, hubspot, django_capture_on_commit_callbacks):
    service = EscrowService(hubspot=hubspot)

    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        with pytest.raises(EscrowError):
            with transaction.atomic():
                service.release_payment(funded_escrow, amount=Decimal('1000'), recipient=contractor, payment_type='progress_payment')
                raise EscrowError("Verification failed.")

    assert callbacks == []
    hubspot.create_object.assert_not_called()
    funded_escrow.refresh_from_db()
    assert funded_escrow.escrow_balance == Decimal('50000.00')


@pytest.mark.django_db
def test_nested_milestone_release_mirrors_escrow_once_committed(funded_escrow, owner, hubspot, django_capture_on_commit_callbacks):
    service = EscrowService(hubspot=hubspot)
    milestone = service.create_milestone(funded_escrow, name='Foundation', payment_percentage=Decimal('20'))
    service.complete_milestone(milestone)
    hubspot.reset_mock()

    with django_capture_on_commit_callbacks(execute=True) as callbacks:
        service.verify_milestone(milestone, verified_by=owner)

    assert len(callbacks) == 1
    mirrored = [c.args[0] for c in hubspot.create_object.call_args_list]
    assert mirrored.count('project_escrows') == 1


@pytest.mark.django_db
def test_refund_to_client_goes_back_against_deposit(service, funded_escrow, owner):
    entry = service.release_payment(funded_escrow, amount=Decimal('5000'), recipient=owner, payment_type='refund')

    assert entry.transaction_reference.startswith('REF-')
    assert_books_balance(funded_escrow)


@pytest.mark.django_db
def test_complete_then_release_retention_closes_escrow(service, escrow, contractor, owner):
    service.fund_escrow(escrow, amount=Decimal('100000'))
    service.release_payment(escrow, amount=Decimal('90000'), recipient=contractor, payment_type='progress_payment')

    with pytest.raises(InvalidStatusTransition):
        service.release_retention(escrow, released_by=owner)

    service.complete_escrow(escrow, completed_by=owner)
    escrow = service.release_retention(escrow, released_by=owner)

    assert escrow.status == 'closed'
    assert escrow.closed_at is not None
    assert escrow.escrow_balance == Decimal('0.00')
    assert escrow.payments.filter(payment_type='retention_release', amount=Decimal('10000.00')).exists()
    assert_books_balance(escrow)


@pytest.mark.django_db
def test_complete_requires_active_or_funded(service, escrow, owner):
    with pytest.raises(InvalidStatusTransition):
        service.complete_escrow(escrow, completed_by=owner)


@pytest.mark.django_db
def test_change_order_rescales_pending_milestones(service, escrow, owner):
    escrow.expected_completion_date = timezone.now().date()
    escrow.save()
    pending = service.create_milestone(escrow, name='Framing', payment_percentage=Decimal('25'))

    order = service.process_change_order(
        escrow,
        change_order_number='CO-001',
        description='Add solar array',
        amount_change=Decimal('20000'),
        approved_by=owner,
        schedule_impact_days=14,
    )

    escrow.refresh_from_db()
    pending.refresh_from_db()
    assert order.previous_project_value == Decimal('100000.00')
    assert order.new_project_value == Decimal('120000.00')
    assert escrow.retention_amount == Decimal('12000.00')
    assert escrow.expected_completion_date == timezone.now().date() + timedelta(days=14)
    assert pending.payment_amount == Decimal('30000.00')

    with pytest.raises(EscrowError):
        service.process_change_order(
            escrow, change_order_number='CO-001', description='Dup', amount_change=Decimal('1'), approved_by=owner,
        )
    with pytest.raises(EscrowError):
        service.process_change_order(
            escrow, change_order_number='CO-002', description='Cut', amount_change=Decimal('-120000'), approved_by=owner,
        )


@pytest.mark.django_db
def test_change_order_recomputes_funded_status(service, escrow, owner):
    service.fund_escrow(escrow, amount=Decimal('100000'))
    escrow.refresh_from_db()
    assert escrow.status == 'funded'

    service.process_change_order(
        escrow, change_order_number='CO-001', description='Add carport', amount_change=Decimal('20000'), approved_by=owner,
    )
    escrow.refresh_from_db()
    assert escrow.status == 'active'

    service.process_change_order(
        escrow, change_order_number='CO-002', description='Drop carport', amount_change=Decimal('-20000'), approved_by=owner,
    )
    escrow.refresh_from_db()
    assert escrow.status == 'funded'


@pytest.mark.django_db
def test_change_order_leaves_unfunded_escrow_created(service, escrow, owner):
    service.process_change_order(
        escrow, change_order_number='CO-001', description='Trim scope', amount_change=Decimal('-99000'), approved_by=owner,
    )
    escrow.refresh_from_db()
    assert escrow.status == 'created'


@pytest.mark.django_db
def test_task_without_approval_is_paid_on_verification(service, funded_escrow, owner):
    task = service.create_task_payment(
        funded_escrow, task_reference='T-100', task_name='Pour footings', payment_amount=Decimal('8000'),
    )
    service.submit_task_completion(task, quality_score=92, photos=['https://cdn.example.com/f1.jpg'], notes='Done')
    task = service.verify_task_payment(task, verified_by=owner)

    assert task.status == 'paid'
    assert task.payment_reference
    ledger = EscrowPayment.objects.get(task_payment=task)
    assert ledger.payment_type == 'task_completion'
    assert ledger.amount == Decimal('8000.00')


@pytest.mark.django_db
def test_task_requiring_approval_waits_for_it(service, funded_escrow, owner):
    task = service.create_task_payment(
        funded_escrow, task_reference='T-101', task_name='Rough electrical',
        payment_amount=Decimal('6000'), approval_required=True,
    )
    service.submit_task_completion(task)
    task = service.verify_task_payment(task, verified_by=owner)
    assert task.status == 'verified'
    assert not EscrowPayment.objects.filter(task_payment=task).exists()

    task = service.approve_task_payment(task, approved_by=owner)
    assert task.status == 'paid'
    assert task.approved_by == owner


@pytest.mark.django_db
def test_task_photos_required(service, funded_escrow):
    task = service.create_task_payment(
        funded_escrow, task_reference='T-102', task_name='Drywall', payment_amount=Decimal('100'), photos_required=True,
    )
    with pytest.raises(EscrowError):
        service.submit_task_completion(task)


@pytest.mark.django_db
def test_failed_task_payment_rolls_back_verification(service, funded_escrow, owner):
    task = service.create_task_payment(
        funded_escrow, task_reference='T-103', task_name='Roofing', payment_amount=Decimal('45000'),
    )
    service.submit_task_completion(task)

    with pytest.raises(InsufficientBalance):
        service.verify_task_payment(task, verified_by=owner)

    task.refresh_from_db()
    assert task.status == 'completed'
    assert task.verified_by is None


@pytest.mark.django_db
def test_milestone_percentages_cannot_exceed_100(service, escrow):
    service.create_milestone(escrow, name='Design', payment_percentage=Decimal('60'))
    with pytest.raises(EscrowError):
        service.create_milestone(escrow, name='Build', payment_percentage=Decimal('45'))


@pytest.mark.django_db
def test_milestone_creation_locks_and_reads_current_escrow(service, escrow, owner):
    stale = ProjectEscrow.objects.get(pk=escrow.pk)
    service.process_change_order(
        escrow, change_order_number='CO-010', description='Extra bay', amount_change=Decimal('20000'), approved_by=owner,
    )

    with mock.patch.object(service, '_lock', wraps=service._lock) as lock:
        milestone = service.create_milestone(stale, name='Framing', payment_percentage=Decimal('10'))

    lock.assert_called_once()
    assert milestone.payment_amount == Decimal('12000.00')


@pytest.mark.django_db
def test_milestone_flow_pays_contractor(service, funded_escrow, owner, contractor):
    milestone = service.create_milestone(funded_escrow, name='Foundation', payment_percentage=Decimal('20'))
    assert milestone.payment_amount == Decimal('20000.00')

    with pytest.raises(InvalidStatusTransition):
        service.verify_milestone(milestone, verified_by=owner)

    service.complete_milestone(milestone)
    milestone = service.verify_milestone(milestone, verified_by=owner)

    assert milestone.status == 'paid'
    entry = milestone.ledger_entries.get()
    assert entry.recipient == contractor
    assert entry.payment_type == 'milestone'


@pytest.mark.django_db
def test_cash_flow_report(service, escrow, owner):
    today = timezone.localdate()
    service.fund_escrow(escrow, amount=Decimal('30000'))
    service.create_milestone(escrow, name='Site work', payment_percentage=Decimal('30'), due_date=today - timedelta(days=1))

    report = service.generate_cash_flow_report(escrow, start_date=today - timedelta(days=1), end_date=today + timedelta(days=1))

    assert report['summary']['current_balance'] == '30000.00'
    assert report['summary']['available_for_payment'] == '20000.00'
    assert [p['type'] for p in report['payment_history']] == ['deposit']
    assert report['upcoming_payments'][0]['amount'] == '30000.00'
    assert report['projected_cash_flow'][0]['projected_balance'] == '0.00'
    assert "Upcoming milestone payments exceed the available escrow balance" in report['risk_factors']
    assert "1 milestone(s) past due" in report['risk_factors']
    assert "Escrow is funded below half of the project value" in report['risk_factors']


@pytest.mark.django_db
def test_cash_flow_projection_confidence(service, escrow, owner):
    projection = service.create_cash_flow_projection(
        escrow,
        member=owner,
        projection_date=timezone.now().date(),
        projected_inflow=Decimal('10000'),
        projected_outflow=Decimal('12500'),
        risk_factors=['weather', 'permits'],
    )

    assert projection.net_cash_flow == Decimal('-2500.00')
    assert projection.confidence_score == Decimal('0.6')


def test_confidence_score_is_clamped():
    assert calculate_confidence_score([]) == Decimal('0.8')
    assert calculate_confidence_score(['a'] * 3) == Decimal('0.5')
    assert calculate_confidence_score(['a'] * 12) == Decimal('0.1')


@pytest.mark.django_db
def test_cash_flow_dashboard_totals(service, funded_escrow, contractor):
    dashboard = service.cash_flow_dashboard(contractor)

    assert dashboard['total_escrow_balance'] == '50000.00'
    assert dashboard['active_escrows'] == 1
    assert dashboard['pending_payments'] == 0


def test_payment_eligibility_lists_missing_requirements():
    result = validate_payment_eligibility(
        completion_evidence={'photos': [], 'description': '  '},
        required_approvals=['inspector', 'owner'],
        received_approvals=['owner'],
    )

    assert result['eligible'] is False
    assert result['missing_requirements'] == ['inspector approval', 'completion evidence']
    assert result['recommended_actions'][0] == 'Obtain inspector approval before payment release'


def test_payment_eligibility_when_everything_is_in():
    result = validate_payment_eligibility(
        completion_evidence={'photos': ['a.jpg'], 'description': 'Slab poured', 'quality_score': 88},
        required_approvals=['owner'],
        received_approvals=['owner', 'inspector'],
    )

    assert result == {
        'eligible': True,
        'missing_requirements': [],
        'quality_score': 88,
        'evidence_complete': True,
        'recommended_actions': [],
    }
