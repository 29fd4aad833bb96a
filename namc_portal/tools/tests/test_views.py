from datetime import timedelta
from decimal import Decimal

import pytest
from django.urls import reverse
from django.utils import timezone

from tools.models import Tool, ToolMaintenance, ToolReservation


def window(start_in_hours=1, days=2):
    start = timezone.now() + timedelta(hours=start_in_hours)
    return start, start + timedelta(days=days)


@pytest.mark.django_db
def test_catalog_lists_tools_with_active_reservation_counts(auth_client, owner, tool):
    start, end = window()
    ToolReservation.objects.create(tool=tool, member=owner, start_date=start, end_date=end, status='confirmed')
    Tool.objects.create(name='Plate Compactor', category='heavy_equipment', daily_rate=Decimal('90'), is_available=False)

    response = auth_client(owner).get(reverse('tool-list'), {'is_available': 'true'})

    assert response.status_code == 200
    results = response.data['results']
    assert [t['name'] for t in results] == [tool.name]
    assert results[0]['active_reservations'] == 1


@pytest.mark.django_db
def test_catalog_search_and_location_filter(auth_client, owner, tool):
    Tool.objects.create(name='Pipe Threader', category='plumbing', daily_rate=Decimal('35'), location='Sacramento Yard')

    client = auth_client(owner)
    assert client.get(reverse('tool-list'), {'search': 'hilti'}).data['count'] == 1
    assert client.get(reverse('tool-list'), {'location__icontains': 'sacramento'}).data['results'][0]['name'] == 'Pipe Threader'


@pytest.mark.django_db
def test_only_admins_manage_the_catalog(auth_client, owner, admin_member, tool):
    payload = {'name': 'Core Drill', 'category': 'power_tools', 'daily_rate': '60.00'}

    assert auth_client(owner).post(reverse('tool-list'), payload, format='json').status_code == 403

    response = auth_client(admin_member).post(reverse('tool-list'), payload, format='json')
    assert response.status_code == 201
    assert response.data['hubspot_sync_status'] == 'skipped'

    response = auth_client(admin_member).patch(
        reverse('tool-detail', kwargs={'id': tool.id}), {'location': 'San Jose Depot'}, format='json',
    )
    assert response.status_code == 200
    assert response.data['location'] == 'San Jose Depot'

    response = auth_client(admin_member).delete(reverse('tool-detail', kwargs={'id': tool.id}))
    assert response.status_code == 204


@pytest.mark.django_db
def test_availability_endpoint(auth_client, owner, tool):
    start, end = window()
    response = auth_client(owner).get(
        reverse('tool-availability', kwargs={'id': tool.id}),
        {'start_date': start.isoformat(), 'end_date': end.isoformat()},
    )

    assert response.status_code == 200
    assert response.data['available'] is True
    assert response.data['conflicts'] == []


@pytest.mark.django_db
def test_member_reserves_and_conflict_returns_409(auth_client, owner, contractor, tool):
    start, end = window()
    ToolReservation.objects.create(tool=tool, member=contractor, start_date=start, end_date=end, status='confirmed')

    response = auth_client(owner).post(
        reverse('tool-reservation-list'),
        {'tool': tool.id, 'start_date': start.isoformat(), 'end_date': end.isoformat()},
        format='json',
    )

    assert response.status_code == 409
    assert response.data['conflicts'][0]['type'] == 'reservation'


@pytest.mark.django_db
def test_reservation_created_with_cost(auth_client, owner, tool):
    start, end = window(days=3)
    response = auth_client(owner).post(
        reverse('tool-reservation-list'),
        {'tool': tool.id, 'start_date': start.isoformat(), 'end_date': end.isoformat(), 'notes': 'Foundation work'},
        format='json',
    )

    assert response.status_code == 201
    assert response.data['status'] == 'pending'
    assert Decimal(response.data['total_cost']) == Decimal('135.00')


@pytest.mark.django_db
def test_members_only_see_and_cancel_their_own_reservations(auth_client, owner, contractor, tool):
    start, end = window()
    mine = ToolReservation.objects.create(tool=tool, member=owner, start_date=start, end_date=end)
    ToolReservation.objects.create(tool=tool, member=contractor, start_date=start, end_date=end)

    client = auth_client(owner)
    listing = client.get(reverse('tool-reservation-list'))
    assert [r['id'] for r in listing.data] == [mine.id]

    url = reverse('tool-reservation-detail', kwargs={'id': mine.id})
    assert client.patch(url, {'status': 'confirmed'}, format='json').status_code == 403
    response = client.patch(url, {'status': 'cancelled'}, format='json')
    assert response.status_code == 200
    assert response.data['status'] == 'cancelled'

    assert client.delete(url).status_code == 204


@pytest.mark.django_db
def test_other_members_reservation_is_forbidden(auth_client, outsider, owner, tool):
    start, end = window()
    reservation = ToolReservation.objects.create(tool=tool, member=owner, start_date=start, end_date=end)

    response = auth_client(outsider).get(reverse('tool-reservation-detail', kwargs={'id': reservation.id}))
    assert response.status_code == 403


@pytest.mark.django_db
def test_admin_checkout_and_return(auth_client, admin_member, owner, tool):
    start, end = window()
    reservation = ToolReservation.objects.create(
        tool=tool, member=owner, start_date=start, end_date=end, status='confirmed', total_cost=Decimal('90'),
    )
    client = auth_client(admin_member)

    response = client.post(
        reverse('tool-reservation-checkout', kwargs={'id': reservation.id}),
        {'checkout_condition': 'good'},
        format='json',
    )
    assert response.status_code == 200
    assert response.data['reservation']['status'] == 'checked_out'

    response = client.post(
        reverse('tool-reservation-return', kwargs={'id': reservation.id}),
        {'return_condition': 'fair', 'staff_notes': 'Cord frayed'},
        format='json',
    )
    assert response.status_code == 200
    assert response.data['is_late'] is False
    assert response.data['maintenance']['maintenance_type'] == 'inspection'
    tool.refresh_from_db()
    assert tool.is_available is False


@pytest.mark.django_db
def test_checkout_is_admin_only(auth_client, owner, tool):
    start, end = window()
    reservation = ToolReservation.objects.create(tool=tool, member=owner, start_date=start, end_date=end, status='confirmed')

    response = auth_client(owner).post(
        reverse('tool-reservation-checkout', kwargs={'id': reservation.id}),
        {'checkout_condition': 'good'},
        format='json',
    )
    assert response.status_code == 403


@pytest.mark.django_db
def test_maintenance_endpoints(auth_client, admin_member, tool):
    client = auth_client(admin_member)
    response = client.post(
        reverse('tool-maintenance-list'),
        {
            'tool': tool.id,
            'maintenance_type': 'repair',
            'description': 'Replace trigger switch',
            'scheduled_date': (timezone.now() + timedelta(days=1)).isoformat(),
            'priority': 'high',
        },
        format='json',
    )
    assert response.status_code == 201
    record_id = response.data['id']
    tool.refresh_from_db()
    assert tool.is_available is False

    url = reverse('tool-maintenance-detail', kwargs={'id': record_id})
    assert client.patch(url, {'status': 'completed'}, format='json').status_code == 400
    assert client.patch(url, {'status': 'cancelled'}, format='json').status_code == 200
    tool.refresh_from_db()
    assert tool.is_available is True

    assert client.delete(url).status_code == 204
    assert not ToolMaintenance.objects.filter(pk=record_id).exists()


@pytest.mark.django_db
def test_utilization_report_requires_admin(auth_client, owner, admin_member, tool):
    params = {
        'start_date': (timezone.now() - timedelta(days=30)).isoformat(),
        'end_date': timezone.now().isoformat(),
    }
    assert auth_client(owner).get(reverse('tool-utilization-report'), params).status_code == 403

    response = auth_client(admin_member).get(reverse('tool-utilization-report'), params)
    assert response.status_code == 200
    assert response.data['summary']['total_tools'] == 1
