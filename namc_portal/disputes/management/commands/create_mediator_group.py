from django.core.management.base import BaseCommand
from django.contrib.auth.models import Group, Permission
from django.contrib.contenttypes.models import ContentType
from django.contrib.auth import get_user_model

from disputes.models import PaymentDispute
from disputes.permissions import MEDIATORS_GROUP

User = get_user_model()


class Command(BaseCommand):
    help = "Creates the 'Mediators' group and assigns dispute permissions. Optionally assign a member."

    def add_arguments(self, parser):
        parser.add_argument('--email', type=str, help='Email of member to assign to the Mediators group')

    def handle(self, *args, **options):
        group, created = Group.objects.get_or_create(name=MEDIATORS_GROUP)

        if created:
            self.stdout.write(self.style.SUCCESS(f"Created group: {MEDIATORS_GROUP}"))
        else:
            self.stdout.write(f"Group '{MEDIATORS_GROUP}' already exists.")

        content_type = ContentType.objects.get_for_model(PaymentDispute)
        perms = Permission.objects.filter(
            content_type=content_type,
            codename__in=["view_paymentdispute", "change_paymentdispute"],
        )
        group.permissions.add(*perms)
        self.stdout.write(self.style.SUCCESS("Assigned PaymentDispute permissions to the Mediators group."))

        email = options['email']
        if email:
            try:
                member = User.objects.get(email=email)
            except User.DoesNotExist:
                self.stdout.write(self.style.ERROR(f"Member with email {email} does not exist."))
                return
            member.groups.add(group)
            self.stdout.write(self.style.SUCCESS(f"Member {email} added to the Mediators group."))
