from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from tools.exceptions import InvalidTransition, SchedulingConflict, ToolLendingError, ToolUnavailable
from tools.models import Tool, ToolMaintenance, ToolReservation
from tools.services import ToolLendingService, billable_days


@pytest.fixture
def service():
    return ToolLendingService()


def book(service, tool, member, start_in_hours=1, days=3):
    start = timezone.now() + timedelta(hours=start_in_hours)
    return service.create_reservation(tool=tool, member=member, start_date=start, end_date=start + timedelta(days=days))


def test_billable_days_rounds_partial_days_up():
    start = timezone.now()
    assert billable_days(start, start + timedelta(days=2, hours=1)) == 3
    assert billable_days(start, start + timedelta(days=2)) == 2


@pytest.mark.django_db
def test_reservation_cost_is_whole_days_times_rate(service, tool, owner):
    start = timezone.now() + timedelta(hours=1)
    reservation = service.create_reservation(
        tool=tool, member=owner, start_date=start, end_date=start + timedelta(days=2, hours=5),
    )

    assert reservation.status == 'pending'
    assert reservation.total_cost == Decimal('135.00')
    assert reservation.hubspot_sync_status == 'skipped'


@pytest.mark.django_db
def test_reservation_rejects_past_start_and_inverted_range(service, tool, owner):
    now = timezone.now()
    with pytest.raises(ToolLendingError):
        service.create_reservation(tool=tool, member=owner, start_date=now - timedelta(days=1), end_date=now + timedelta(days=1))
    with pytest.raises(ToolLendingError):
        service.create_reservation(tool=tool, member=owner, start_date=now + timedelta(days=2), end_date=now + timedelta(days=1))


@pytest.mark.django_db
def test_unavailable_tool_cannot_be_reserved(service, tool, owner):
    tool.is_available = False
    tool.save()

    with pytest.raises(ToolUnavailable):
        book(service, tool, owner)


@pytest.mark.django_db
def test_overlapping_confirmed_reservation_is_a_conflict(service, tool, owner, contractor):
    first = book(service, tool, owner, days=3)
    service.update_reservation(first, status='confirmed')

    with pytest.raises(SchedulingConflict) as exc:
        book(service, tool, contractor, start_in_hours=24, days=3)

    assert exc.value.status_code == 409
    assert exc.value.conflicts[0]['type'] == 'reservation'
    assert exc.value.conflicts[0]['id'] == first.id


@pytest.mark.django_db
def test_pending_reservation_blocks_overlapping_booking(service, tool, owner, contractor):
    first = book(service, tool, owner, days=3)
    assert first.status == 'pending'

    with pytest.raises(SchedulingConflict) as exc:
        book(service, tool, contractor, start_in_hours=24, days=3)

    assert exc.value.conflicts[0]['id'] == first.id
    assert exc.value.conflicts[0]['status'] == 'pending'


@pytest.mark.django_db
def test_delete_tool_blocked_by_pending_reservation(service, tool, owner):
    book(service, tool, owner)

    with pytest.raises(ToolLendingError):
        service.delete_tool(tool)
    assert Tool.objects.filter(pk=tool.pk).exists()


@pytest.mark.django_db
def test_check_availability_reports_maintenance_window(service, tool):
    start = timezone.now() + timedelta(days=1)
    ToolMaintenance.objects.create(
        tool=tool, maintenance_type='routine', description='Oil change', scheduled_date=start + timedelta(hours=2),
    )

    result = service.check_availability(tool, start, start + timedelta(days=2))

    assert result['available'] is False
    assert [c['type'] for c in result['conflicts']] == ['maintenance']


@pytest.mark.django_db
def test_reservation_transitions_follow_the_map(service, tool, owner):
    reservation = book(service, tool, owner)

    with pytest.raises(InvalidTransition):
        service.update_reservation(reservation, status='returned')

    service.update_reservation(reservation, status='cancelled')
    with pytest.raises(InvalidTransition):
        service.update_reservation(reservation, status='confirmed')


@pytest.mark.django_db
def test_only_pending_or_cancelled_reservations_can_be_deleted(service, tool, owner):
    reservation = book(service, tool, owner)
    service.update_reservation(reservation, status='confirmed')

    with pytest.raises(ToolLendingError):
        service.delete_reservation(reservation)

    service.update_reservation(reservation, status='cancelled')
    service.delete_reservation(reservation)
    assert not ToolReservation.objects.filter(pk=reservation.pk).exists()


@pytest.mark.django_db
def test_checkout_requires_confirmed_and_window(service, tool, owner):
    reservation = book(service, tool, owner)
    with pytest.raises(InvalidTransition):
        service.checkout(reservation, checkout_condition='good')

    far = book(service, tool, owner, start_in_hours=24 * 10)
    service.update_reservation(far, status='confirmed')
    with pytest.raises(ToolLendingError):
        service.checkout(far, checkout_condition='good')

    service.update_reservation(reservation, status='confirmed')
    reservation = service.checkout(reservation, checkout_condition='excellent', staff_notes='Battery charged')

    tool.refresh_from_db()
    assert reservation.status == 'checked_out'
    assert reservation.checked_out_at is not None
    assert 'Battery charged' in reservation.notes
    assert tool.condition == 'excellent'


@pytest.mark.django_db
def test_on_time_return_in_good_condition_keeps_tool_available(service, tool, owner):
    reservation = book(service, tool, owner)
    service.update_reservation(reservation, status='confirmed')
    service.checkout(reservation, checkout_condition='good')

    result = service.return_tool(reservation, return_condition='good')

    tool.refresh_from_db()
    assert result['is_late'] is False
    assert result['late_fees'] == Decimal('0')
    assert result['maintenance'] is None
    assert tool.is_available is True


@pytest.mark.django_db
def test_late_return_charges_half_rate_per_day(service, tool, owner):
    reservation = book(service, tool, owner)
    service.update_reservation(reservation, status='confirmed')
    service.checkout(reservation, checkout_condition='good')

    now = timezone.now()
    ToolReservation.objects.filter(pk=reservation.pk).update(
        start_date=now - timedelta(days=5), end_date=now - timedelta(days=2, hours=3),
    )
    reservation.refresh_from_db()

    result = service.return_tool(reservation, return_condition='good', actual_return_date=now)

    # 2 days 3 hours late rounds up to 3 days at 45.00 * 0.5.
    assert result['is_late'] is True
    assert result['late_fees'] == Decimal('67.50')
    reservation.refresh_from_db()
    assert reservation.end_date == now


@pytest.mark.django_db
def test_damaged_return_schedules_inspection_and_takes_tool_offline(service, tool, owner):
    reservation = book(service, tool, owner)
    service.update_reservation(reservation, status='confirmed')
    service.checkout(reservation, checkout_condition='good')

    result = service.return_tool(reservation, return_condition='needs_repair', damage_assessment='Chuck cracked')

    tool.refresh_from_db()
    maintenance = result['maintenance']
    assert tool.is_available is False
    assert tool.condition == 'needs_repair'
    assert maintenance.maintenance_type == 'inspection'
    assert maintenance.scheduled_date > timezone.now()


@pytest.mark.django_db
def test_tool_returns_to_service_when_last_maintenance_completes(service, tool):
    first = service.create_maintenance(
        tool=tool, maintenance_type='repair', description='Replace brushes', scheduled_date=timezone.now(),
    )
    second = service.create_maintenance(
        tool=tool, maintenance_type='inspection', description='Safety check', scheduled_date=timezone.now(),
    )
    tool.refresh_from_db()
    assert tool.is_available is False

    service.update_maintenance(first, status='in_progress')
    service.update_maintenance(first, status='completed', cost=Decimal('80.00'))
    tool.refresh_from_db()
    assert first.completed_date is not None
    assert tool.is_available is False

    service.delete_maintenance(second)
    tool.refresh_from_db()
    assert tool.is_available is True


@pytest.mark.django_db
def test_maintenance_transitions_follow_the_map(service, tool):
    record = service.create_maintenance(
        tool=tool, maintenance_type='routine', description='Service', scheduled_date=timezone.now(),
    )
    with pytest.raises(InvalidTransition):
        service.update_maintenance(record, status='completed')

    service.update_maintenance(record, status='in_progress')
    with pytest.raises(ToolLendingError):
        service.delete_maintenance(record)


@pytest.mark.django_db
def test_calculate_late_fees_charges_each_overdue_checkout_once(service, tool, owner):
    reservation = book(service, tool, owner)
    service.update_reservation(reservation, status='confirmed')
    service.checkout(reservation, checkout_condition='good')
    ToolReservation.objects.filter(pk=reservation.pk).update(end_date=timezone.now() - timedelta(hours=30))

    charged = service.calculate_late_fees()
    assert len(charged) == 1
    assert charged[0]['late_fees'] == Decimal('45.00')

    assert service.calculate_late_fees() == []


@pytest.mark.django_db
def test_automatic_maintenance_rules(service, owner):
    now = timezone.now()
    heavy = Tool.objects.create(name='Table Saw', category='power_tools', daily_rate=Decimal('30'), condition='good')
    level = Tool.objects.create(name='Laser Level', category='measuring_tools', daily_rate=Decimal('20'), condition='good')
    light = Tool.objects.create(name='Drill', category='power_tools', daily_rate=Decimal('10'), condition='good')

    for tool, days in ((heavy, 65), (level, 25), (light, 3)):
        ToolReservation.objects.create(
            tool=tool, member=owner, status='returned',
            start_date=now - timedelta(days=days + 1), end_date=now - timedelta(days=1),
            returned_at=now - timedelta(days=1),
        )

    scheduled = {m.tool_id: m for m in service.schedule_automatic_maintenance()}

    assert scheduled[heavy.id].maintenance_type == 'routine'
    assert scheduled[heavy.id].priority == 'medium'
    assert scheduled[level.id].maintenance_type == 'calibration'
    assert light.id not in scheduled

    heavy.refresh_from_db()
    assert heavy.is_available is True

    # Tools with active maintenance are skipped on the next run.
    assert service.schedule_automatic_maintenance() == []


@pytest.mark.django_db
def test_utilization_report_sorted_by_rate(service, owner):
    now = timezone.now()
    busy = Tool.objects.create(name='Compressor', category='air', daily_rate=Decimal('25'))
    idle = Tool.objects.create(name='Nailer', category='air', daily_rate=Decimal('15'))
    ToolReservation.objects.create(
        tool=busy, member=owner, status='returned', total_cost=Decimal('125'), late_fees=Decimal('12.50'),
        start_date=now - timedelta(days=8), end_date=now - timedelta(days=3), returned_at=now - timedelta(days=3),
    )
    ToolMaintenance.objects.create(
        tool=busy, maintenance_type='routine', description='Drain tank', status='completed',
        scheduled_date=now - timedelta(days=2), completed_date=now - timedelta(days=2), cost=Decimal('20'),
    )

    report = service.generate_utilization_report(start_date=now - timedelta(days=10), end_date=now)

    assert report['period']['total_days'] == 10
    first, second = report['tools']
    assert first['tool_id'] == busy.id
    assert first['reserved_days'] == 5
    assert first['utilization_rate'] == 50.0
    assert first['revenue'] == Decimal('137.50')
    assert first['net_revenue'] == Decimal('117.50')
    assert second['tool_id'] == idle.id
    assert second['utilization_rate'] == 0


@pytest.mark.django_db
def test_delete_tool_blocked_by_active_reservations(service, tool, owner):
    reservation = book(service, tool, owner)
    service.update_reservation(reservation, status='confirmed')

    with pytest.raises(ToolLendingError):
        service.delete_tool(tool)

    service.update_reservation(reservation, status='cancelled')
    service.delete_tool(tool)
    assert not Tool.objects.filter(pk=tool.pk).exists()


@pytest.mark.django_db
def test_process_daily_tasks_counts(service, tool, owner):
    reservation = book(service, tool, owner)
    service.update_reservation(reservation, status='confirmed')
    service.checkout(reservation, checkout_condition='good')
    ToolReservation.objects.filter(pk=reservation.pk).update(end_date=timezone.now() - timedelta(days=1, hours=1))

    result = service.process_daily_tasks()

    assert result['late_fees_calculated'] == 1
    assert result['overdue_reservations'] == 1
    assert result['overdue_notifications'] == 0
