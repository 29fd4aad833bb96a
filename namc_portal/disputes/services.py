import logging
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from escrow.exceptions import EscrowError, InvalidStatusTransition
from escrow.models import ProjectEscrow
from escrow.services import EscrowService
from hubspot.sync import mirror_update, open_ticket
from notifications.utils import notify, notify_project_participants

from .models import OPEN_STATUSES, PaymentDispute
from .permissions import MEDIATORS_GROUP
from .utils import send_dispute_notification

logger = logging.getLogger(__name__)
User = get_user_model()

DISPUTE_PIPELINE = 'payment_disputes'

# HubSpot ticket stage per dispute status.
TICKET_STAGES = {
    'submitted': 'submitted',
    'under_review': 'under_review',
    'mediation': 'mediation',
    'resolved': 'resolved',
}


class DisputeService:
    def __init__(self, escrow_service=None, hubspot=None):
        self.escrow_service = escrow_service or EscrowService(hubspot=hubspot)
        self.hubspot = hubspot

    def _sync_ticket(self, dispute):
        mirror_update(
            dispute,
            'tickets',
            {'hs_pipeline_stage': TICKET_STAGES[dispute.status]},
            service=self.hubspot,
        )

    def create_dispute(self, *, escrow, submitted_by, reason, amount, payment=None, evidence=None, supporting_docs=None):
        project = escrow.project
        if not project.is_participant(submitted_by):
            raise EscrowError("Only the project client or contractor can dispute this escrow.")
        if payment is not None and payment.escrow_id != escrow.id:
            raise EscrowError("The disputed payment does not belong to this escrow.")
        if escrow.status == 'closed':
            raise EscrowError("Closed escrows cannot be disputed.")

        respondent = project.contractor if submitted_by.id == project.owner_id else project.owner

        with transaction.atomic():
            locked = ProjectEscrow.objects.select_for_update().get(pk=escrow.pk)
            dispute = PaymentDispute.objects.create(
                escrow=locked,
                payment=payment,
                submitted_by=submitted_by,
                respondent=respondent,
                reason=reason,
                amount=amount,
                evidence=evidence or [],
                supporting_docs=supporting_docs or [],
                response_deadline=timezone.now() + timedelta(days=settings.DISPUTE_RESPONSE_DAYS),
            )
            if not locked.is_locked:
                locked.is_locked = True
                locked.save(update_fields=['is_locked', 'updated_at'])

        logger.info(f"Dispute {dispute.id} opened on escrow {escrow.id} by {submitted_by.email}; escrow locked")
        open_ticket(
            dispute,
            subject=f"Payment Dispute - {reason[:80]}",
            content=f"Dispute Amount: ${amount}\nReason: {reason}",
            pipeline=DISPUTE_PIPELINE,
            stage=TICKET_STAGES['submitted'],
            priority='HIGH',
            category='PAYMENT_DISPUTE',
            contact_id=submitted_by.hubspot_object_id or None,
            service=self.hubspot,
        )
        send_dispute_notification(dispute, 'submitted')
        notify(
            respondent, 'dispute_opened',
            title=f"Payment dispute opened on {project.title}",
            message=f"{submitted_by.get_full_name() or submitted_by.email} disputed ${amount}: {reason}",
            project=project,
            sender=submitted_by,
            priority='high',
        )
        return dispute

    def start_review(self, dispute, *, reviewer):
        if dispute.status != 'submitted':
            raise InvalidStatusTransition(f"Cannot move dispute from '{dispute.status}' to 'under_review'.")

        dispute.status = 'under_review'
        dispute.mediator = reviewer
        dispute.save(update_fields=['status', 'mediator', 'updated_at'])

        logger.info(f"Dispute {dispute.id} under review by {reviewer.email}")
        self._sync_ticket(dispute)
        return dispute

    def assign_mediator(self):
        """The member of the Mediators group with the fewest open disputes."""
        return (
            User.objects.filter(groups__name=MEDIATORS_GROUP, is_active=True)
            .annotate(open_cases=Count('mediated_disputes', filter=Q(mediated_disputes__status__in=OPEN_STATUSES)))
            .order_by('open_cases', 'id')
            .first()
        )

    def request_mediation(self, dispute):
        if dispute.status not in ('submitted', 'under_review'):
            raise InvalidStatusTransition(f"Cannot move dispute from '{dispute.status}' to 'mediation'.")

        mediator = dispute.mediator or self.assign_mediator()
        if mediator is None:
            raise EscrowError("No mediators are available to take this dispute.")

        dispute.status = 'mediation'
        dispute.mediator = mediator
        dispute.mediation_date = timezone.now() + timedelta(days=settings.DISPUTE_MEDIATION_DAYS)
        dispute.save(update_fields=['status', 'mediator', 'mediation_date', 'updated_at'])

        logger.info(f"Dispute {dispute.id} sent to mediation with {mediator.email} on {dispute.mediation_date:%Y-%m-%d}")
        self._sync_ticket(dispute)
        send_dispute_notification(dispute, 'mediation_scheduled')
        return dispute

    def resolve(self, dispute, *, resolution, resolved_by, resolution_amount=None):
        """
        Close the dispute, unlock the escrow once no other dispute is open and
        pay a positive resolution amount back to the submitter.
        """
        if not dispute.is_open:
            raise InvalidStatusTransition(f"Cannot move dispute from '{dispute.status}' to 'resolved'.")

        with transaction.atomic():
            escrow = ProjectEscrow.objects.select_for_update().get(pk=dispute.escrow_id)

            dispute.status = 'resolved'
            dispute.resolution = resolution
            dispute.resolution_amount = resolution_amount
            dispute.resolved_by = resolved_by
            dispute.resolved_at = timezone.now()
            dispute.save()

            still_open = escrow.disputes.filter(status__in=OPEN_STATUSES).exclude(pk=dispute.pk).exists()
            if escrow.is_locked and not still_open:
                escrow.is_locked = False
                escrow.save(update_fields=['is_locked', 'updated_at'])

            if resolution_amount and resolution_amount > 0:
                dispute.resolution_payment = self.escrow_service.release_payment(
                    escrow,
                    amount=resolution_amount,
                    recipient=dispute.submitted_by,
                    payment_type='refund',
                    notes=f"Resolution of dispute #{dispute.id}",
                    allow_locked=True,
                )
                dispute.save(update_fields=['resolution_payment', 'updated_at'])

        logger.info(f"Dispute {dispute.id} resolved by {resolved_by.email} (amount {resolution_amount or 0})")
        self._sync_ticket(dispute)
        send_dispute_notification(dispute, 'resolved')
        notify_project_participants(
            escrow.project, 'dispute_resolved',
            title=f"Dispute #{dispute.id} resolved",
            message=resolution,
            sender=resolved_by,
            data={'dispute_id': dispute.id, 'resolution_amount': str(resolution_amount or 0)},
        )
        return dispute
