import logging
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction
from django.db.models import Q, Sum
from django.utils import timezone

from hubspot.sync import mirror_create, mirror_update
from notifications.utils import notify
from payments.services import PaymentService

from .exceptions import EscrowError, EscrowLocked, InsufficientBalance, InvalidStatusTransition
from .models import (
    CashFlowProjection,
    ChangeOrder,
    EscrowPayment,
    PaymentMilestone,
    ProjectEscrow,
    TaskPayment,
)

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')


def _money(value):
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def _transition(obj, allowed_from, target, label):
    if obj.status not in allowed_from:
        raise InvalidStatusTransition(f"Cannot move {label} from '{obj.status}' to '{target}'.")
    obj.status = target


def calculate_confidence_score(risk_factors):
    score = Decimal('0.8') - Decimal('0.1') * len(risk_factors or [])
    return max(Decimal('0.1'), min(Decimal('1.0'), score))


class EscrowService:
    """
    Escrow bookkeeping: balances, ledger, task/milestone payments, change
    orders and cash flow.

    Money movement is delegated to PaymentService, which raises
    PaymentProviderError on failure so the surrounding transaction rolls
    back. HubSpot mirroring runs once the database write has committed and
    never raises.
    """

    def __init__(self, payment_service=None, hubspot=None):
        self.payment_service = payment_service or PaymentService()
        self.hubspot = hubspot

    def _lock(self, escrow):
        return ProjectEscrow.objects.select_for_update().select_related('project').get(pk=escrow.pk)

    def _payment_method(self, escrow, payment_method):
        if escrow.payment_provider == 'stripe':
            return 'stripe'
        return payment_method if payment_method in ('ach', 'wire', 'check') else 'ach'

    # Escrow lifecycle

    def create_project_escrow(self, *, project, total_project_value, retention_percentage=None,
                              payment_schedule=None, expected_completion_date=None, provider_name=None):
        if hasattr(project, 'escrow'):
            raise EscrowError("This project already has an escrow.")
        if not project.contractor_id:
            raise EscrowError("Assign a contractor before opening an escrow.")

        total_project_value = _money(total_project_value)
        if total_project_value <= 0:
            raise EscrowError("Project value must be greater than zero.")

        if retention_percentage is None:
            retention_percentage = settings.ESCROW_DEFAULT_RETENTION_PERCENTAGE
        retention_percentage = Decimal(str(retention_percentage))
        if not Decimal('0') <= retention_percentage <= Decimal('100'):
            raise EscrowError("Retention percentage must be between 0 and 100.")

        provider_name = provider_name or settings.DEFAULT_PAYMENT_PROVIDER

        with transaction.atomic():
            account = self.payment_service.open_escrow_account(project=project, provider_name=provider_name)
            escrow = ProjectEscrow.objects.create(
                project=project,
                total_project_value=total_project_value,
                retention_percentage=retention_percentage,
                retention_amount=_money(total_project_value * retention_percentage / 100),
                payment_schedule=payment_schedule or [],
                expected_completion_date=expected_completion_date or project.expected_completion_date,
                payment_provider=provider_name,
                processor_account_id=account.get('account_id', ''),
            )

        logger.info(f"Escrow {escrow.id} opened for project {project.id} ({total_project_value}, retention {escrow.retention_amount})")
        mirror_create(escrow, 'project_escrows', escrow.hubspot_properties(), service=self.hubspot)
        return escrow

    def fund_escrow(self, escrow, *, amount, payment_method=None, funded_by=None):
        amount = _money(amount)
        if amount <= 0:
            raise EscrowError("Deposit amount must be greater than zero.")

        with transaction.atomic():
            escrow = self._lock(escrow)
            if escrow.status in ('completed', 'closed'):
                raise EscrowError(f"Cannot fund an escrow that is {escrow.status}.")

            depositor = funded_by or escrow.client
            result = self.payment_service.deposit(
                user=depositor,
                amount=amount,
                provider_name=escrow.payment_provider,
                payment_method=payment_method,
                escrow_id=escrow.id,
                project_title=escrow.project.title,
            )

            escrow.escrow_balance += amount
            escrow.total_deposited += amount
            escrow.status = 'funded' if escrow.escrow_balance >= escrow.total_project_value else 'active'
            escrow.save(update_fields=['escrow_balance', 'total_deposited', 'status', 'updated_at'])

            EscrowPayment.objects.create(
                escrow=escrow,
                recipient=depositor,
                amount=amount,
                payment_type='deposit',
                payment_method=self._payment_method(escrow, payment_method),
                provider=escrow.payment_provider,
                transaction_reference=result.get('tx_ref', ''),
            )

        logger.info(f"Escrow {escrow.id} funded with {amount}; balance {escrow.escrow_balance} ({escrow.status})")
        mirror_update(escrow, 'project_escrows', escrow.hubspot_properties(), service=self.hubspot)
        return escrow

    def release_payment(self, escrow, *, amount, recipient, payment_type, payment_method=None,
                        task_payment=None, milestone=None, notes='', allow_locked=False):
        """
        Pay `amount` out of the escrow to `recipient` and write the ledger entry.

        Releases never dip into the retention except the retention release
        itself. Refunds to the client go back through the processor against
        the latest deposit; everything else is a transfer to the recipient's
        payout method.

        A locked escrow refuses releases unless `allow_locked` is set, which
        dispute resolution uses to pay out while other disputes stay open.
        """
        amount = _money(amount)
        if amount <= 0:
            raise EscrowError("Payment amount must be greater than zero.")

        with transaction.atomic():
            escrow = self._lock(escrow)
            if escrow.is_locked and not allow_locked:
                raise EscrowLocked()

            held = Decimal('0') if payment_type == 'retention_release' else escrow.retention_amount
            if amount > escrow.escrow_balance - held:
                raise InsufficientBalance()

            if payment_type == 'refund' and recipient.id == escrow.project.owner_id:
                reference = self._refund_deposit(escrow, amount, notes)
            else:
                result = self.payment_service.transfer_to_member(
                    recipient,
                    amount,
                    provider_name=escrow.payment_provider,
                    payment_type=payment_type,
                    payment_method=payment_method,
                    escrow_id=escrow.id,
                    transfer_group=f"escrow-{escrow.id}",
                )
                reference = result.get('reference') or result.get('transfer_id', '')

            now = timezone.now()
            escrow.escrow_balance -= amount
            escrow.total_paid += amount
            escrow.last_payment_date = now
            escrow.last_payment_amount = amount
            escrow.save(update_fields=['escrow_balance', 'total_paid', 'last_payment_date', 'last_payment_amount', 'updated_at'])

            entry = EscrowPayment.objects.create(
                escrow=escrow,
                recipient=recipient,
                amount=amount,
                payment_type=payment_type,
                payment_method=self._payment_method(escrow, payment_method),
                provider=escrow.payment_provider,
                transaction_reference=reference,
                task_payment=task_payment,
                milestone=milestone,
                notes=notes,
            )

        logger.info(f"Escrow {escrow.id} released {amount} to {recipient.email} as {payment_type} ({reference})")
        properties = escrow.hubspot_properties()
        transaction.on_commit(
            lambda: mirror_update(escrow, 'project_escrows', properties, service=self.hubspot)
        )
        return entry

    def _refund_deposit(self, escrow, amount, reason):
        deposit = escrow.payments.filter(payment_type='deposit', status='completed').order_by('-created_at').first()
        if deposit is None:
            raise EscrowError("No completed deposit to refund against.")
        result = self.payment_service.refund(
            provider_name=escrow.payment_provider,
            provider_transaction_id=deposit.transaction_reference,
            amount=amount,
            reason=reason or "Escrow refund",
        )
        return result.get('refund_id', '')

    def complete_escrow(self, escrow, completed_by=None):
        with transaction.atomic():
            escrow = self._lock(escrow)
            _transition(escrow, ('active', 'funded'), 'completed', 'escrow')
            escrow.completed_at = timezone.now()
            escrow.save(update_fields=['status', 'completed_at', 'updated_at'])

        logger.info(f"Escrow {escrow.id} marked completed by {getattr(completed_by, 'email', 'system')}")
        mirror_update(escrow, 'project_escrows', escrow.hubspot_properties(), service=self.hubspot)
        return escrow

    def release_retention(self, escrow, released_by):
        with transaction.atomic():
            escrow = self._lock(escrow)
            if escrow.status != 'completed':
                raise InvalidStatusTransition("Project must be completed before releasing retention.")

            if escrow.retention_amount > 0:
                self.release_payment(
                    escrow,
                    amount=escrow.retention_amount,
                    recipient=escrow.contractor,
                    payment_type='retention_release',
                    notes=f"Retention released by {released_by.email}",
                )
                escrow.refresh_from_db()

            escrow.status = 'closed'
            escrow.closed_at = timezone.now()
            escrow.save(update_fields=['status', 'closed_at', 'updated_at'])

        logger.info(f"Escrow {escrow.id} retention {escrow.retention_amount} released; escrow closed")
        mirror_update(escrow, 'project_escrows', escrow.hubspot_properties(), workflow='retention_released', service=self.hubspot)
        return escrow

    def process_change_order(self, escrow, *, change_order_number, description, amount_change,
                             approved_by, schedule_impact_days=0, reason=''):
        amount_change = _money(amount_change)

        with transaction.atomic():
            escrow = self._lock(escrow)
            if escrow.status == 'closed':
                raise EscrowError("Closed escrows cannot take change orders.")
            if escrow.change_orders.filter(change_order_number=change_order_number).exists():
                raise EscrowError(f"Change order {change_order_number} has already been processed.")

            previous_value = escrow.total_project_value
            new_value = previous_value + amount_change
            if new_value <= 0:
                raise EscrowError("Change order would reduce the project value to zero or below.")

            escrow.total_project_value = new_value
            escrow.retention_amount = _money(new_value * escrow.retention_percentage / 100)
            if schedule_impact_days and escrow.expected_completion_date:
                escrow.expected_completion_date += timedelta(days=schedule_impact_days)
            if escrow.status in ('active', 'funded'):
                escrow.status = 'funded' if escrow.escrow_balance >= new_value else 'active'
            escrow.save(update_fields=['total_project_value', 'retention_amount', 'expected_completion_date', 'status', 'updated_at'])

            if amount_change:
                ratio = new_value / previous_value
                for milestone in escrow.milestones.filter(status='pending'):
                    milestone.payment_amount = _money(milestone.payment_amount * ratio)
                    milestone.save(update_fields=['payment_amount', 'updated_at'])

            change_order = ChangeOrder.objects.create(
                escrow=escrow,
                change_order_number=change_order_number,
                description=description,
                amount_change=amount_change,
                schedule_impact_days=schedule_impact_days,
                reason=reason,
                previous_project_value=previous_value,
                new_project_value=new_value,
                approved_by=approved_by,
            )

        logger.info(f"Change order {change_order_number} applied to escrow {escrow.id}: {previous_value} -> {new_value}")
        mirror_create(change_order, 'change_orders', change_order.hubspot_properties(), service=self.hubspot)
        mirror_update(escrow, 'project_escrows', escrow.hubspot_properties(), service=self.hubspot)
        return change_order

    # Task payments

    def create_task_payment(self, escrow, *, task_reference, task_name, payment_amount,
                            completion_requirements=None, verification_criteria=None,
                            approval_required=False, photos_required=False):
        payment_amount = _money(payment_amount)
        if payment_amount <= 0:
            raise EscrowError("Task payment amount must be greater than zero.")
        if escrow.status in ('completed', 'closed'):
            raise EscrowError(f"Cannot add tasks to an escrow that is {escrow.status}.")

        task = TaskPayment.objects.create(
            escrow=escrow,
            contractor=escrow.contractor,
            task_reference=task_reference,
            task_name=task_name,
            payment_amount=payment_amount,
            completion_requirements=completion_requirements or {},
            verification_criteria=verification_criteria or {},
            approval_required=approval_required,
            photos_required=photos_required,
        )
        logger.info(f"Task payment {task.id} '{task_name}' ({payment_amount}) added to escrow {escrow.id}")
        mirror_create(task, 'task_payments', task.hubspot_properties(), service=self.hubspot)
        return task

    def submit_task_completion(self, task, *, quality_score=None, photos=None, notes=''):
        if task.photos_required and not photos:
            raise EscrowError("Completion photos are required for this task.")

        _transition(task, ('pending',), 'completed', 'task payment')
        task.quality_score = quality_score
        task.photos_submitted = photos or []
        task.completion_notes = notes
        task.completed_at = timezone.now()
        task.save(update_fields=['status', 'quality_score', 'photos_submitted', 'completion_notes', 'completed_at', 'updated_at'])

        mirror_update(task, 'task_payments', task.hubspot_properties(), service=self.hubspot)
        return task

    def verify_task_payment(self, task, *, verified_by, quality_score=None, notes=''):
        """
        Verify a completed task. Tasks that need no separate approval are paid straight away.
        """
        with transaction.atomic():
            _transition(task, ('completed',), 'verified', 'task payment')
            if quality_score is not None:
                task.quality_score = quality_score
            task.verification_notes = notes
            task.verified_by = verified_by
            task.verified_at = timezone.now()
            task.save(update_fields=['status', 'quality_score', 'verification_notes', 'verified_by', 'verified_at', 'updated_at'])

            if not task.approval_required:
                self._pay_task(task)

        mirror_update(
            task, 'task_payments', task.hubspot_properties(),
            workflow='task_payment_completed' if task.status == 'paid' else None,
            service=self.hubspot,
        )
        return task

    def approve_task_payment(self, task, *, approved_by):
        with transaction.atomic():
            if task.status != 'verified':
                raise InvalidStatusTransition(f"Cannot move task payment from '{task.status}' to 'paid'.")
            task.approved_by = approved_by
            task.approved_at = timezone.now()
            self._pay_task(task)

        mirror_update(task, 'task_payments', task.hubspot_properties(), workflow='task_payment_completed', service=self.hubspot)
        return task

    def _pay_task(self, task):
        entry = self.release_payment(
            task.escrow,
            amount=task.payment_amount,
            recipient=task.contractor,
            payment_type='task_completion',
            task_payment=task,
            notes=task.task_name,
        )
        task.status = 'paid'
        task.paid_at = entry.created_at
        task.payment_reference = entry.transaction_reference
        task.save()
        return entry

    # Milestones

    def create_milestone(self, escrow, *, name, payment_percentage, payment_amount=None, description='',
                         deliverables=None, verification_criteria=None, due_date=None):
        payment_percentage = Decimal(str(payment_percentage))
        if payment_percentage <= 0:
            raise EscrowError("Milestone percentage must be greater than zero.")

        with transaction.atomic():
            escrow = self._lock(escrow)
            allocated = escrow.milestones.aggregate(total=Sum('payment_percentage'))['total'] or Decimal('0')
            if allocated + payment_percentage > 100:
                raise EscrowError(f"Milestone percentages would total {allocated + payment_percentage}%, which exceeds 100%.")

            if payment_amount is None:
                payment_amount = escrow.total_project_value * payment_percentage / 100

            milestone = PaymentMilestone.objects.create(
                escrow=escrow,
                contractor=escrow.contractor,
                name=name,
                description=description,
                payment_amount=_money(payment_amount),
                payment_percentage=payment_percentage,
                deliverables=deliverables or [],
                verification_criteria=verification_criteria or {},
                due_date=due_date,
            )
        logger.info(f"Milestone {milestone.id} '{name}' ({payment_percentage}%) added to escrow {escrow.id}")
        mirror_create(milestone, 'payment_milestones', milestone.hubspot_properties(), service=self.hubspot)
        return milestone

    def complete_milestone(self, milestone):
        _transition(milestone, ('pending',), 'completed', 'milestone')
        milestone.completed_at = timezone.now()
        milestone.save(update_fields=['status', 'completed_at', 'updated_at'])
        mirror_update(milestone, 'payment_milestones', milestone.hubspot_properties(), service=self.hubspot)
        return milestone

    def verify_milestone(self, milestone, *, verified_by):
        """Verify a completed milestone and release its payment (completed -> verified -> paid)."""
        with transaction.atomic():
            _transition(milestone, ('completed',), 'verified', 'milestone')
            milestone.verified_by = verified_by
            milestone.verified_at = timezone.now()
            milestone.save(update_fields=['status', 'verified_by', 'verified_at', 'updated_at'])

            entry = self.release_payment(
                milestone.escrow,
                amount=milestone.payment_amount,
                recipient=milestone.contractor,
                payment_type='milestone',
                milestone=milestone,
                notes=milestone.name,
            )
            milestone.status = 'paid'
            milestone.paid_at = entry.created_at
            milestone.payment_reference = entry.transaction_reference
            milestone.save(update_fields=['status', 'paid_at', 'payment_reference', 'updated_at'])

        mirror_update(milestone, 'payment_milestones', milestone.hubspot_properties(), workflow='milestone_paid', service=self.hubspot)
        notify(
            milestone.contractor, 'milestone_paid',
            title=f"Milestone \"{milestone.name}\" paid",
            message=f"${milestone.payment_amount} was released for {milestone.name}.",
            project=milestone.escrow.project,
            sender=verified_by,
        )
        return milestone

    # Cash flow

    def generate_cash_flow_report(self, escrow, *, start_date, end_date, include_projections=True):
        history = escrow.payments.filter(
            created_at__date__gte=start_date,
            created_at__date__lte=end_date,
        ).order_by('created_at')

        upcoming = escrow.milestones.exclude(status='paid').order_by('due_date', 'created_at')
        upcoming_payments = [
            {
                'milestone_id': m.id,
                'date': m.due_date.isoformat() if m.due_date else None,
                'amount': str(m.payment_amount),
                'description': m.name,
                'status': m.status,
            }
            for m in upcoming
        ]

        report = {
            'escrow_id': escrow.id,
            'report_period': {'start': start_date.isoformat(), 'end': end_date.isoformat()},
            'summary': {
                'total_project_value': str(escrow.total_project_value),
                'current_balance': str(escrow.escrow_balance),
                'total_paid': str(escrow.total_paid),
                'retention_held': str(escrow.retention_amount),
                'available_for_payment': str(escrow.available_for_payment),
            },
            'payment_history': [
                {
                    'date': p.created_at.date().isoformat(),
                    'amount': str(p.amount),
                    'type': p.payment_type,
                    'reference': p.transaction_reference,
                }
                for p in history
            ],
            'upcoming_payments': upcoming_payments,
            'projected_cash_flow': [],
            'risk_factors': self._risk_factors(escrow, upcoming),
        }

        if include_projections:
            balance = escrow.escrow_balance
            for milestone in upcoming:
                balance -= milestone.payment_amount
                report['projected_cash_flow'].append({
                    'date': milestone.due_date.isoformat() if milestone.due_date else None,
                    'outflow': str(milestone.payment_amount),
                    'projected_balance': str(balance),
                    'description': milestone.name,
                })
        return report

    def _risk_factors(self, escrow, upcoming):
        risks = []
        today = timezone.now().date()
        upcoming_total = sum((m.payment_amount for m in upcoming), Decimal('0'))

        if upcoming_total > escrow.available_for_payment:
            risks.append("Upcoming milestone payments exceed the available escrow balance")
        if escrow.is_locked:
            risks.append("Escrow is locked by an open dispute")
        overdue = [m for m in upcoming if m.due_date and m.due_date < today]
        if overdue:
            risks.append(f"{len(overdue)} milestone(s) past due")
        if escrow.expected_completion_date and escrow.expected_completion_date < today and escrow.status not in ('completed', 'closed'):
            risks.append("Project is past its expected completion date")
        if escrow.total_deposited < escrow.total_project_value / 2 and escrow.status != 'closed':
            risks.append("Escrow is funded below half of the project value")
        return risks

    def create_cash_flow_projection(self, escrow, *, member, projection_date, projected_inflow,
                                    projected_outflow, risk_factors=None, recommendations=None):
        projected_inflow = _money(projected_inflow)
        projected_outflow = _money(projected_outflow)
        return CashFlowProjection.objects.create(
            escrow=escrow,
            member=member,
            projection_date=projection_date,
            projected_inflow=projected_inflow,
            projected_outflow=projected_outflow,
            net_cash_flow=projected_inflow - projected_outflow,
            confidence_score=calculate_confidence_score(risk_factors),
            risk_factors=risk_factors or [],
            recommendations=recommendations or [],
        )

    def cash_flow_dashboard(self, member):
        escrows = ProjectEscrow.objects.filter(
            Q(project__owner=member) | Q(project__contractor=member)
        )

        totals = escrows.aggregate(
            balance=Sum('escrow_balance'),
            value=Sum('total_project_value'),
            paid=Sum('total_paid'),
        )
        pending_payments = (
            TaskPayment.objects.filter(escrow__in=escrows, status__in=['completed', 'verified']).count()
            + PaymentMilestone.objects.filter(escrow__in=escrows, status='completed').count()
        )

        return {
            'total_escrow_balance': str(totals['balance'] or Decimal('0.00')),
            'total_project_value': str(totals['value'] or Decimal('0.00')),
            'total_paid': str(totals['paid'] or Decimal('0.00')),
            'pending_payments': pending_payments,
            'active_escrows': escrows.filter(status__in=['active', 'funded']).count(),
            'recent_projections': CashFlowProjection.objects.filter(escrow__in=escrows).select_related('escrow')[:5],
        }
