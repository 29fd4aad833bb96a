from io import StringIO
from unittest import mock

import pytest
import requests
from django.core.management import call_command
from django.utils import timezone

from disputes.models import PaymentDispute
from hubspot.exceptions import HubSpotError
from hubspot.services import HubSpotBackboneService
from hubspot.sync import mirror_archive, mirror_create, mirror_update, open_ticket, trigger_workflow


def hubspot_reply(payload=None, status_code=200):
    response = mock.Mock(status_code=status_code, content=b'{}' if payload is not None else b'')
    response.json.return_value = payload
    return response


@pytest.fixture
def hubspot():
    return HubSpotBackboneService(access_token='pat-test', base_url='https://api.hubapi.test/', timeout=5)


def test_create_object_posts_properties(hubspot):
    with mock.patch('hubspot.services.requests.request', return_value=hubspot_reply({'id': '77'})) as request:
        result = hubspot.create_object('tools', {'tool_name': 'Laser Level'})

    assert result == {'id': '77'}
    method, url = request.call_args.args
    assert method == 'POST'
    assert url == 'https://api.hubapi.test/crm/v3/objects/tools'
    assert request.call_args.kwargs['json'] == {'properties': {'tool_name': 'Laser Level'}}
    assert request.call_args.kwargs['timeout'] == 5


def test_http_failures_raise_hubspot_error(hubspot):
    failing = hubspot_reply({})
    failing.raise_for_status.side_effect = requests.exceptions.HTTPError('429 Too Many Requests', response=mock.Mock(status_code=429))

    with mock.patch('hubspot.services.requests.request', return_value=failing):
        with pytest.raises(HubSpotError) as exc:
            hubspot.update_object('tools', '77', {'condition': 'fair'})

    assert exc.value.status_code == 429


def non_json_reply():
    response = mock.Mock(status_code=200, content=b'<html>Bad Gateway</html>')
    response.json.side_effect = ValueError('Expecting value: line 1 column 1 (char 0)')
    return response


def test_non_json_body_raises_hubspot_error(hubspot):
    with mock.patch('hubspot.services.requests.request', return_value=non_json_reply()):
        with pytest.raises(HubSpotError) as exc:
            hubspot.create_object('tools', {'tool_name': 'Laser Level'})

    assert exc.value.status_code == 200
    assert 'Invalid JSON' in str(exc.value)


@pytest.mark.django_db
def test_mirror_records_error_for_non_json_body(hubspot, tool):
    with mock.patch('hubspot.services.requests.request', return_value=non_json_reply()):
        status = mirror_create(tool, 'tools', tool.hubspot_properties(), service=hubspot)

    tool.refresh_from_db()
    assert status == 'error'
    assert tool.hubspot_sync_status == 'error'
    assert 'Invalid JSON' in tool.hubspot_sync_error


def test_disabled_without_token():
    assert HubSpotBackboneService(access_token='').is_enabled is False


@pytest.mark.django_db
def test_mirror_create_records_success(hubspot, tool):
    with mock.patch('hubspot.services.requests.request', return_value=hubspot_reply({'id': '501'})):
        status = mirror_create(tool, 'tools', tool.hubspot_properties(), service=hubspot)

    tool.refresh_from_db()
    assert status == 'synced'
    assert tool.hubspot_object_id == '501'
    assert tool.hubspot_last_sync is not None


@pytest.mark.django_db
def test_mirror_failure_is_recorded_not_raised(hubspot, tool):
    with mock.patch('hubspot.services.requests.request', side_effect=requests.exceptions.ConnectionError('down')):
        status = mirror_create(tool, 'tools', tool.hubspot_properties(), service=hubspot)

    tool.refresh_from_db()
    assert status == 'error'
    assert tool.hubspot_sync_status == 'error'
    assert 'down' in tool.hubspot_sync_error


@pytest.mark.django_db
def test_mirror_update_creates_when_never_synced(hubspot, tool):
    with mock.patch('hubspot.services.requests.request', return_value=hubspot_reply({'id': '502'})) as request:
        mirror_update(tool, 'tools', tool.hubspot_properties(), service=hubspot)

    assert request.call_args.args[0] == 'POST'
    assert tool.hubspot_object_id == '502'

    with mock.patch('hubspot.services.requests.request', return_value=hubspot_reply({'id': '502'})) as request:
        mirror_update(tool, 'tools', {'condition': 'fair'}, workflow='tool_condition_changed', service=hubspot)

    method, url = request.call_args.args
    assert method == 'PATCH'
    assert url.endswith('/crm/v3/objects/tools/502')


@pytest.mark.django_db
def test_mirror_archive_and_workflow_skip_unsynced_rows(hubspot, tool):
    with mock.patch('hubspot.services.requests.request') as request:
        assert mirror_archive(tool, 'tools', service=hubspot) == 'skipped'
        assert trigger_workflow(tool, 'tool_overdue', service=hubspot) == 'skipped'
    request.assert_not_called()


@pytest.mark.django_db
def test_open_ticket_associates_contact(hubspot, funded_escrow, owner):
    dispute = PaymentDispute.objects.create(
        escrow=funded_escrow, submitted_by=owner, respondent=funded_escrow.contractor,
        reason='Late work', amount='100.00', response_deadline=timezone.now(),
    )

    with mock.patch('hubspot.services.requests.request', return_value=hubspot_reply({'id': 'T-1'})) as request:
        open_ticket(
            dispute, subject='Payment Dispute', content='Late work', pipeline='payment_disputes',
            stage='submitted', priority='HIGH', category='PAYMENT_DISPUTE', contact_id='9001', service=hubspot,
        )

    payload = request.call_args.kwargs['json']
    assert payload['properties']['hs_ticket_priority'] == 'HIGH'
    assert payload['properties']['hs_ticket_category'] == 'PAYMENT_DISPUTE'
    assert payload['associations'][0]['to'] == {'id': '9001'}
    assert dispute.hubspot_object_id == 'T-1'


@pytest.mark.django_db
def test_sync_members_command_requires_token(owner):
    out = StringIO()
    call_command('sync_members_to_hubspot', stdout=out)
    assert 'HUBSPOT_ACCESS_TOKEN is not configured' in out.getvalue()


@pytest.mark.django_db
def test_sync_members_command_pushes_contacts(settings, owner, contractor):
    settings.HUBSPOT_ACCESS_TOKEN = 'pat-test'
    replies = [hubspot_reply({'results': []}), hubspot_reply({'id': '1'}), hubspot_reply({'results': []}), hubspot_reply({'id': '2'})]
    out = StringIO()

    with mock.patch('hubspot.services.requests.request', side_effect=replies):
        call_command('sync_members_to_hubspot', stdout=out)

    assert 'Synced 2 member(s) to HubSpot, 0 failed.' in out.getvalue()
    owner.refresh_from_db()
    assert owner.hubspot_sync_status == 'synced'
