from django.core.mail import send_mail
from django.conf import settings


def send_contractor_assigned_email(contractor, project):
    subject = "You Have Been Assigned to a Project"
    message = f"""
    Hello {contractor.get_full_name() or contractor.email},

    You have been assigned as the contractor on "{project.title}".

    Location: {project.location or 'Not specified'}
    Budget: ${project.budget}

    Sign in to the portal to review the payment schedule and escrow details.

    The {settings.SITE_NAME} Team
    """

    send_mail(
        subject=subject,
        message=message.strip(),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[contractor.email],
        fail_silently=False,
    )
