from django.core.management.base import BaseCommand
from django.contrib.auth import get_user_model

from hubspot.services import HubSpotBackboneService
from hubspot.sync import mirror_contact

User = get_user_model()


class Command(BaseCommand):
    help = "Pushes portal members to HubSpot contacts. Use --only-pending to retry unsynced members."

    def add_arguments(self, parser):
        parser.add_argument('--only-pending', action='store_true', help='Only sync members not yet synced')
        parser.add_argument('--email', type=str, help='Sync a single member by email')

    def handle(self, *args, **options):
        service = HubSpotBackboneService()
        if not service.is_enabled:
            self.stdout.write(self.style.ERROR("HUBSPOT_ACCESS_TOKEN is not configured."))
            return

        members = User.objects.filter(deleted_at__isnull=True)
        if options['only_pending']:
            members = members.exclude(hubspot_sync_status='synced')
        if options['email']:
            members = members.filter(email=options['email'])

        synced, failed = 0, 0
        for member in members.order_by('id'):
            if mirror_contact(member, service=service) == 'synced':
                synced += 1
            else:
                failed += 1
                self.stdout.write(self.style.ERROR(f"Failed to sync {member.email}: {member.hubspot_sync_error}"))

        self.stdout.write(self.style.SUCCESS(f"Synced {synced} member(s) to HubSpot, {failed} failed."))
