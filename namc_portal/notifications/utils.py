import logging

from .models import Notification

logger = logging.getLogger(__name__)


def notify(recipient, notification_type, title, message, project=None, sender=None, priority='medium', action_url='', data=None):
    """Store an in-portal notification for `recipient`."""
    notification = Notification.objects.create(
        recipient=recipient,
        sender=sender,
        project=project,
        notification_type=notification_type,
        priority=priority,
        title=title,
        message=message,
        action_url=action_url,
        data=data or {},
    )
    logger.info(f"Notification {notification.id} ({notification_type}) stored for {recipient.email}")
    return notification


def notify_project_participants(project, notification_type, title, message, exclude=None, **kwargs):
    recipients = [m for m in (project.owner, project.contractor) if m is not None and m != exclude]
    return [notify(member, notification_type, title, message, project=project, **kwargs) for member in recipients]
