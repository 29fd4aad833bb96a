from django.db import models
from django.contrib.auth import get_user_model

from escrow.models import EscrowPayment, ProjectEscrow
from hubspot.models import HubSpotSyncedModel

User = get_user_model()

OPEN_STATUSES = ('submitted', 'under_review', 'mediation')


class PaymentDispute(HubSpotSyncedModel):
    """
    A dispute over escrowed money. While any dispute on an escrow is open the
    escrow is locked. hubspot_object_id holds the id of the HubSpot ticket.
    """
    STATUS_CHOICES = (
        ('submitted', 'Submitted'),
        ('under_review', 'Under Review'),
        ('mediation', 'Mediation'),
        ('resolved', 'Resolved'),
    )

    escrow = models.ForeignKey(ProjectEscrow, on_delete=models.PROTECT, related_name='disputes')
    payment = models.ForeignKey(EscrowPayment, on_delete=models.PROTECT, null=True, blank=True, related_name='disputes')
    submitted_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='submitted_disputes')
    respondent = models.ForeignKey(User, on_delete=models.PROTECT, related_name='responding_disputes')

    reason = models.TextField()
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    evidence = models.JSONField(default=list, blank=True)
    supporting_docs = models.JSONField(default=list, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='submitted')
    response_deadline = models.DateTimeField()
    mediator = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='mediated_disputes')
    mediation_date = models.DateTimeField(null=True, blank=True)

    resolution = models.TextField(blank=True)
    resolution_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    resolution_payment = models.ForeignKey(EscrowPayment, on_delete=models.PROTECT, null=True, blank=True, related_name='resolution_disputes')
    resolved_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='resolved_disputes')
    resolved_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-updated_at']

    def __str__(self):
        return f"Dispute #{self.pk} on {self.escrow.project.title} by {self.submitted_by} ({self.status})"

    @property
    def is_open(self):
        return self.status in OPEN_STATUSES

    def is_participant(self, user):
        return user.id in (self.submitted_by_id, self.respondent_id)
