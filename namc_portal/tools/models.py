from django.db import models
from django.contrib.auth import get_user_model
from auditlog.registry import auditlog

from hubspot.models import HubSpotSyncedModel

User = get_user_model()

CONDITION_CHOICES = (
    ('excellent', 'Excellent'),
    ('good', 'Good'),
    ('fair', 'Fair'),
    ('needs_repair', 'Needs Repair'),
)

ACTIVE_RESERVATION_STATUSES = ('pending', 'confirmed', 'checked_out')
ACTIVE_MAINTENANCE_STATUSES = ('scheduled', 'in_progress')


class Tool(HubSpotSyncedModel):
    name = models.CharField(max_length=200)
    category = models.CharField(max_length=100, db_index=True)
    description = models.TextField(blank=True)
    serial_number = models.CharField(max_length=100, blank=True)
    manufacturer = models.CharField(max_length=100, blank=True)
    model_number = models.CharField(max_length=100, blank=True)
    daily_rate = models.DecimalField(max_digits=8, decimal_places=2)
    condition = models.CharField(max_length=20, choices=CONDITION_CHOICES, default='good')
    location = models.CharField(max_length=200, blank=True)
    requires_training = models.BooleanField(default=False)
    image_url = models.URLField(blank=True)
    specifications = models.JSONField(default=dict, blank=True)
    is_available = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.category})"

    def hubspot_properties(self):
        return {
            'tool_name': self.name,
            'category': self.category,
            'serial_number': self.serial_number,
            'manufacturer': self.manufacturer,
            'model': self.model_number,
            'daily_rate': str(self.daily_rate),
            'condition': self.condition,
            'location': self.location,
            'requires_training': str(self.requires_training).lower(),
            'is_available': str(self.is_available).lower(),
        }


class ToolReservation(HubSpotSyncedModel):
    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('confirmed', 'Confirmed'),
        ('checked_out', 'Checked Out'),
        ('returned', 'Returned'),
        ('cancelled', 'Cancelled'),
    )

    # Allowed next statuses per current status.
    TRANSITIONS = {
        'pending': ('confirmed', 'cancelled'),
        'confirmed': ('checked_out', 'cancelled'),
        'checked_out': ('returned',),
        'returned': (),
        'cancelled': (),
    }

    tool = models.ForeignKey(Tool, on_delete=models.CASCADE, related_name='reservations')
    member = models.ForeignKey(User, on_delete=models.CASCADE, related_name='tool_reservations')
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    total_cost = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    late_fees = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    checkout_condition = models.CharField(max_length=20, choices=CONDITION_CHOICES, blank=True)
    return_condition = models.CharField(max_length=20, choices=CONDITION_CHOICES, blank=True)
    notes = models.TextField(blank=True)
    checked_out_at = models.DateTimeField(null=True, blank=True)
    returned_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-start_date']

    def __str__(self):
        return f"{self.tool.name} for {self.member.email} ({self.status})"

    def can_transition_to(self, status):
        return status in self.TRANSITIONS.get(self.status, ())

    def hubspot_properties(self):
        return {
            'tool_id': str(self.tool_id),
            'tool_name': self.tool.name,
            'member_id': str(self.member_id),
            'member_email': self.member.email,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat(),
            'status': self.status,
            'total_cost': str(self.total_cost),
            'late_fees': str(self.late_fees),
            'checkout_condition': self.checkout_condition,
            'return_condition': self.return_condition,
        }


class ToolMaintenance(models.Model):
    TYPE_CHOICES = (
        ('routine', 'Routine'),
        ('repair', 'Repair'),
        ('inspection', 'Inspection'),
        ('calibration', 'Calibration'),
    )

    STATUS_CHOICES = (
        ('scheduled', 'Scheduled'),
        ('in_progress', 'In Progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    )

    PRIORITY_CHOICES = (
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    )

    TRANSITIONS = {
        'scheduled': ('in_progress', 'cancelled'),
        'in_progress': ('completed', 'cancelled'),
        'completed': (),
        'cancelled': (),
    }

    tool = models.ForeignKey(Tool, on_delete=models.CASCADE, related_name='maintenance_records')
    maintenance_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    description = models.TextField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='scheduled')
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='medium')
    scheduled_date = models.DateTimeField()
    completed_date = models.DateTimeField(null=True, blank=True)
    cost = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    performed_by = models.CharField(max_length=200, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['scheduled_date']
        verbose_name_plural = 'tool maintenance'

    def __str__(self):
        return f"{self.get_maintenance_type_display()} of {self.tool.name} ({self.status})"

    @property
    def is_active(self):
        return self.status in ACTIVE_MAINTENANCE_STATUSES

    def can_transition_to(self, status):
        return status in self.TRANSITIONS.get(self.status, ())


auditlog.register(ToolReservation)
