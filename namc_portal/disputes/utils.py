import logging

from django.core.mail import send_mail
from django.conf import settings

logger = logging.getLogger(__name__)

EVENT_SUBJECTS = {
    'submitted': "A Payment Dispute Has Been Opened",
    'mediation_scheduled': "Mediation Scheduled for Your Payment Dispute",
    'resolved': "Your Payment Dispute Has Been Resolved",
}


def send_dispute_notification(dispute, event):
    """Email both parties of a dispute about a status event."""
    lines = [
        f"Dispute #{dispute.id} on \"{dispute.escrow.project.title}\"",
        f"Amount in dispute: ${dispute.amount}",
        f"Reason: {dispute.reason}",
    ]
    if event == 'submitted':
        lines.append(f"The respondent has until {dispute.response_deadline:%B %d, %Y} to respond.")
    elif event == 'mediation_scheduled':
        lines.append(f"Mediation is scheduled for {dispute.mediation_date:%B %d, %Y}.")
        if dispute.mediator:
            lines.append(f"Mediator: {dispute.mediator.get_full_name() or dispute.mediator.email}")
    elif event == 'resolved':
        lines.append(f"Resolution: {dispute.resolution}")
        if dispute.resolution_amount:
            lines.append(f"Amount returned to {dispute.submitted_by.email}: ${dispute.resolution_amount}")

    message = "\n".join(lines) + f"\n\nThe {settings.SITE_NAME} Team"

    send_mail(
        subject=EVENT_SUBJECTS[event],
        message=message,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[dispute.submitted_by.email, dispute.respondent.email],
        fail_silently=False,
    )
    logger.info(f"Dispute {dispute.id} '{event}' notification sent")
