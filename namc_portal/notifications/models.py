from django.db import models
from django.contrib.auth import get_user_model
from django.utils import timezone

User = get_user_model()


class Notification(models.Model):
    TYPE_CHOICES = (
        ('project_status_change', 'Project Status Change'),
        ('contractor_assigned', 'Contractor Assigned'),
        ('milestone_paid', 'Milestone Paid'),
        ('dispute_opened', 'Dispute Opened'),
        ('dispute_resolved', 'Dispute Resolved'),
        ('committee_invitation', 'Committee Invitation'),
        ('committee_meeting', 'Committee Meeting'),
        ('discussion_reply', 'Discussion Reply'),
        ('general', 'General'),
    )
    PRIORITY_CHOICES = (
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('critical', 'Critical'),
    )

    recipient = models.ForeignKey(User, related_name='notifications', on_delete=models.CASCADE)
    sender = models.ForeignKey(User, related_name='sent_notifications', on_delete=models.SET_NULL, null=True, blank=True)
    project = models.ForeignKey('projects.Project', related_name='notifications', on_delete=models.CASCADE, null=True, blank=True)
    notification_type = models.CharField(max_length=30, choices=TYPE_CHOICES, default='general')
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='medium')
    title = models.CharField(max_length=200)
    message = models.TextField()
    action_url = models.CharField(max_length=500, blank=True)
    data = models.JSONField(default=dict, blank=True)
    read = models.BooleanField(default=False, db_index=True)
    read_at = models.DateTimeField(null=True, blank=True)
    sent_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-sent_at', '-id']

    def __str__(self):
        return f"{self.notification_type} -> {self.recipient} ({'read' if self.read else 'unread'})"

    def set_read(self, read=True):
        self.read = read
        self.read_at = timezone.now() if read else None
        self.save(update_fields=['read', 'read_at'])
