from django.db import models


class HubSpotSyncedModel(models.Model):
    """
    Abstract base for rows mirrored to a HubSpot CRM object.

    The mirror is an external copy: the local row is the source of truth and
    these fields only record the outcome of the last push.
    """
    SYNC_STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('synced', 'Synced'),
        ('error', 'Error'),
        ('skipped', 'Skipped'),
    )

    hubspot_object_id = models.CharField(max_length=64, blank=True)
    hubspot_sync_status = models.CharField(max_length=10, choices=SYNC_STATUS_CHOICES, default='pending')
    hubspot_last_sync = models.DateTimeField(null=True, blank=True)
    hubspot_sync_error = models.TextField(blank=True)

    class Meta:
        abstract = True
