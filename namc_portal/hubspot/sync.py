"""
Best-effort mirroring of local rows to HubSpot.

Each helper pushes one change, records the outcome on the row's
HubSpotSyncedModel fields and never raises: a failed mirror leaves the
primary write in place with hubspot_sync_status='error'.
"""
import logging

from django.utils import timezone

from .exceptions import HubSpotError
from .services import HubSpotBackboneService

logger = logging.getLogger(__name__)

SYNC_FIELDS = ['hubspot_object_id', 'hubspot_sync_status', 'hubspot_last_sync', 'hubspot_sync_error']


def _record(instance, status, error=''):
    instance.hubspot_sync_status = status
    instance.hubspot_sync_error = error
    if status == 'synced':
        instance.hubspot_last_sync = timezone.now()
    instance.save(update_fields=SYNC_FIELDS)
    return status


def _push(instance, label, call, service):
    if not service.is_enabled:
        return _record(instance, 'skipped'), None

    try:
        result = call(service)
    except HubSpotError as e:
        logger.error(f"HubSpot {label} failed for {instance.__class__.__name__} {instance.pk}: {str(e)}")
        return _record(instance, 'error', str(e)), None

    return 'synced', result


def mirror_create(instance, object_type, properties, associations=None, workflow=None, service=None):
    service = service or HubSpotBackboneService()
    status, result = _push(
        instance,
        f'create {object_type}',
        lambda svc: svc.create_object(object_type, properties, associations),
        service,
    )
    if status != 'synced':
        return status

    instance.hubspot_object_id = str(result.get('id', ''))
    _record(instance, 'synced')
    if workflow:
        service.trigger_workflow(workflow, instance.hubspot_object_id)
    return status


def mirror_update(instance, object_type, properties, workflow=None, service=None):
    service = service or HubSpotBackboneService()
    if not instance.hubspot_object_id and instance.pk:
        # Another copy of the row may have been mirrored since this one was loaded.
        instance.refresh_from_db(fields=['hubspot_object_id'])
    if not instance.hubspot_object_id:
        return mirror_create(instance, object_type, properties, workflow=workflow, service=service)

    status, _ = _push(
        instance,
        f'update {object_type}',
        lambda svc: svc.update_object(object_type, instance.hubspot_object_id, properties),
        service,
    )
    if status != 'synced':
        return status

    _record(instance, 'synced')
    if workflow:
        service.trigger_workflow(workflow, instance.hubspot_object_id)
    return status


def mirror_archive(instance, object_type, service=None):
    """Archive the HubSpot copy before the local row goes away. Nothing is saved."""
    if not instance.hubspot_object_id:
        return 'skipped'
    service = service or HubSpotBackboneService()
    if not service.is_enabled:
        return 'skipped'
    try:
        service.archive_object(object_type, instance.hubspot_object_id)
    except HubSpotError as e:
        logger.error(f"HubSpot archive {object_type} failed for {instance.pk}: {str(e)}")
        return 'error'
    return 'synced'


def mirror_contact(member, service=None):
    """Upsert the member as a HubSpot contact keyed by email."""
    service = service or HubSpotBackboneService()
    status, result = _push(
        member,
        'contact upsert',
        lambda svc: svc.upsert_contact(member.email, member.hubspot_contact_properties()),
        service,
    )
    if status != 'synced':
        return status

    member.hubspot_object_id = str(result.get('id', member.hubspot_object_id))
    _record(member, 'synced')
    return status


def open_ticket(instance, subject, content, pipeline, stage, priority='MEDIUM', category=None, contact_id=None, service=None):
    """Open a HubSpot ticket for the row (disputes) and keep its id."""
    service = service or HubSpotBackboneService()
    status, result = _push(
        instance,
        f'ticket in {pipeline}',
        lambda svc: svc.create_ticket(subject, content, pipeline, stage, priority=priority, category=category, contact_id=contact_id),
        service,
    )
    if status != 'synced':
        return status

    instance.hubspot_object_id = str(result.get('id', ''))
    _record(instance, 'synced')
    return status


def trigger_workflow(instance, workflow, data=None, service=None):
    """Fire a HubSpot workflow for an already mirrored row."""
    if not instance.hubspot_object_id:
        return 'skipped'
    service = service or HubSpotBackboneService()
    if not service.is_enabled:
        return 'skipped'
    service.trigger_workflow(workflow, instance.hubspot_object_id, data)
    return 'synced'
