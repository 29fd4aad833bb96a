from decimal import Decimal

from django.db import models
from django.contrib.auth import get_user_model
from auditlog.registry import auditlog
from auditlog.models import AuditlogHistoryField

from hubspot.models import HubSpotSyncedModel
from projects.models import Project

User = get_user_model()


class ProjectEscrow(HubSpotSyncedModel):
    STATUS_CHOICES = (
        ('created', 'Created'),
        ('active', 'Active'),
        ('funded', 'Funded'),
        ('completed', 'Completed'),
        ('closed', 'Closed'),
    )

    PROVIDER_CHOICES = (
        ('stripe', 'Stripe'),
        ('manual', 'Manual (ACH / wire / check)'),
    )

    project = models.OneToOneField(Project, on_delete=models.PROTECT, related_name='escrow')
    total_project_value = models.DecimalField(max_digits=12, decimal_places=2)
    escrow_balance = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_deposited = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_paid = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    retention_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('10'))
    retention_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    payment_schedule = models.JSONField(default=list, blank=True)
    expected_completion_date = models.DateField(null=True, blank=True)
    payment_provider = models.CharField(max_length=20, choices=PROVIDER_CHOICES, default='stripe')
    processor_account_id = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='created')
    is_locked = models.BooleanField(default=False)  # Lock during disputes
    last_payment_date = models.DateTimeField(null=True, blank=True)
    last_payment_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    closed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    history = AuditlogHistoryField()

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Escrow for {self.project.title} ({self.escrow_balance}/{self.total_project_value})"

    @property
    def client(self):
        return self.project.owner

    @property
    def contractor(self):
        return self.project.contractor

    @property
    def available_for_payment(self):
        return self.escrow_balance - self.retention_amount

    def is_participant(self, user):
        return self.project.is_participant(user)

    def hubspot_properties(self):
        return {
            'project_id': str(self.project_id),
            'project_name': self.project.title,
            'total_project_value': str(self.total_project_value),
            'escrow_balance': str(self.escrow_balance),
            'total_paid': str(self.total_paid),
            'total_deposited': str(self.total_deposited),
            'client_id': str(self.project.owner_id),
            'contractor_id': str(self.project.contractor_id or ''),
            'retention_percentage': str(self.retention_percentage),
            'retention_amount': str(self.retention_amount),
            'escrow_status': self.status,
        }


class TaskPayment(HubSpotSyncedModel):
    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('verified', 'Verified'),
        ('paid', 'Paid'),
    )

    escrow = models.ForeignKey(ProjectEscrow, on_delete=models.PROTECT, related_name='task_payments')
    contractor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='task_payments')
    task_reference = models.CharField(max_length=100)
    task_name = models.CharField(max_length=255)
    payment_amount = models.DecimalField(max_digits=12, decimal_places=2)
    completion_requirements = models.JSONField(default=dict, blank=True)
    verification_criteria = models.JSONField(default=dict, blank=True)
    approval_required = models.BooleanField(default=False)
    photos_required = models.BooleanField(default=False)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    quality_score = models.PositiveSmallIntegerField(null=True, blank=True)
    photos_submitted = models.JSONField(default=list, blank=True)
    completion_notes = models.TextField(blank=True)
    verification_notes = models.TextField(blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    verified_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='verified_task_payments')
    verified_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='approved_task_payments')
    approved_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    payment_reference = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['created_at']

    def __str__(self):
        return f"{self.task_name} - {self.payment_amount} ({self.status})"

    def hubspot_properties(self):
        return {
            'escrow_id': str(self.escrow_id),
            'task_id': self.task_reference,
            'task_name': self.task_name,
            'payment_amount': str(self.payment_amount),
            'contractor_id': str(self.contractor_id),
            'approval_required': self.approval_required,
            'photos_required': self.photos_required,
            'payment_status': self.status,
            'quality_score': self.quality_score if self.quality_score is not None else '',
            'payment_transaction_id': self.payment_reference,
        }


class PaymentMilestone(HubSpotSyncedModel):
    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('verified', 'Verified'),
        ('paid', 'Paid'),
    )

    escrow = models.ForeignKey(ProjectEscrow, on_delete=models.PROTECT, related_name='milestones')
    contractor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='payment_milestones')
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    payment_amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_percentage = models.DecimalField(max_digits=5, decimal_places=2)
    deliverables = models.JSONField(default=list, blank=True)
    verification_criteria = models.JSONField(default=dict, blank=True)
    due_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    completed_at = models.DateTimeField(null=True, blank=True)
    verified_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='verified_milestones')
    verified_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    payment_reference = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['due_date', 'created_at']

    def __str__(self):
        return f"{self.name} ({self.payment_percentage}%) - {self.status}"

    def hubspot_properties(self):
        return {
            'escrow_id': str(self.escrow_id),
            'milestone_name': self.name,
            'payment_amount': str(self.payment_amount),
            'payment_percentage': str(self.payment_percentage),
            'contractor_id': str(self.contractor_id),
            'milestone_status': self.status,
            'due_date': self.due_date.isoformat() if self.due_date else '',
        }


class EscrowPayment(models.Model):
    """
    Ledger entry for money entering or leaving an escrow. Never deleted.
    """
    PAYMENT_TYPE_CHOICES = (
        ('deposit', 'Deposit'),
        ('task_completion', 'Task Completion'),
        ('milestone', 'Milestone'),
        ('progress_payment', 'Progress Payment'),
        ('retention_release', 'Retention Release'),
        ('refund', 'Refund'),
    )

    PAYMENT_METHOD_CHOICES = (
        ('ach', 'ACH'),
        ('wire', 'Wire'),
        ('check', 'Check'),
        ('stripe', 'Stripe'),
    )

    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
    )

    escrow = models.ForeignKey(ProjectEscrow, on_delete=models.PROTECT, related_name='payments')
    recipient = models.ForeignKey(User, on_delete=models.PROTECT, related_name='escrow_payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_type = models.CharField(max_length=20, choices=PAYMENT_TYPE_CHOICES)
    payment_method = models.CharField(max_length=10, choices=PAYMENT_METHOD_CHOICES)
    provider = models.CharField(max_length=20)
    transaction_reference = models.CharField(max_length=255)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='completed')
    task_payment = models.ForeignKey(TaskPayment, on_delete=models.PROTECT, null=True, blank=True, related_name='ledger_entries')
    milestone = models.ForeignKey(PaymentMilestone, on_delete=models.PROTECT, null=True, blank=True, related_name='ledger_entries')
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.get_payment_type_display()} {self.amount} -> {self.recipient}"


class ChangeOrder(HubSpotSyncedModel):
    escrow = models.ForeignKey(ProjectEscrow, on_delete=models.PROTECT, related_name='change_orders')
    change_order_number = models.CharField(max_length=50)
    description = models.TextField()
    amount_change = models.DecimalField(max_digits=12, decimal_places=2)
    schedule_impact_days = models.IntegerField(default=0)
    reason = models.TextField(blank=True)
    previous_project_value = models.DecimalField(max_digits=12, decimal_places=2)
    new_project_value = models.DecimalField(max_digits=12, decimal_places=2)
    approved_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='approved_change_orders')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        unique_together = ('escrow', 'change_order_number')

    def __str__(self):
        return f"CO {self.change_order_number} ({self.amount_change:+})"

    def hubspot_properties(self):
        return {
            'escrow_id': str(self.escrow_id),
            'change_order_number': self.change_order_number,
            'description': self.description,
            'amount_change': str(self.amount_change),
            'schedule_impact': self.schedule_impact_days,
            'reason': self.reason,
            'approved_by': str(self.approved_by_id),
            'status': 'APPROVED',
        }


class CashFlowProjection(models.Model):
    escrow = models.ForeignKey(ProjectEscrow, on_delete=models.CASCADE, related_name='cash_flow_projections')
    member = models.ForeignKey(User, on_delete=models.CASCADE, related_name='cash_flow_projections')
    projection_date = models.DateField()
    projected_inflow = models.DecimalField(max_digits=12, decimal_places=2)
    projected_outflow = models.DecimalField(max_digits=12, decimal_places=2)
    net_cash_flow = models.DecimalField(max_digits=12, decimal_places=2)
    confidence_score = models.DecimalField(max_digits=3, decimal_places=2)
    risk_factors = models.JSONField(default=list, blank=True)
    recommendations = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-projection_date', '-created_at']

    def __str__(self):
        return f"Projection {self.projection_date} for escrow {self.escrow_id}: {self.net_cash_flow}"


auditlog.register(ProjectEscrow, exclude_fields=['hubspot_last_sync', 'hubspot_sync_error'])
auditlog.register(EscrowPayment)
