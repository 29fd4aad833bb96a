import logging
import math
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Q, Sum
from django.utils import timezone

from hubspot.sync import mirror_archive, mirror_create, mirror_update, trigger_workflow

from .exceptions import InvalidTransition, SchedulingConflict, ToolLendingError, ToolUnavailable
from .models import (
    ACTIVE_MAINTENANCE_STATUSES,
    ACTIVE_RESERVATION_STATUSES,
    Tool,
    ToolMaintenance,
    ToolReservation,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60
USAGE_LOOKBACK_DAYS = 90

# Days until an automatically scheduled job, by priority.
PRIORITY_LEAD_DAYS = {
    'urgent': 1,
    'high': 2,
    'medium': 5,
    'low': 7,
}


def billable_days(start, end):
    """Whole days between two datetimes, any part of a day counting as one."""
    return max(0, math.ceil((end - start).total_seconds() / SECONDS_PER_DAY))


def calculate_reservation_cost(tool, start, end):
    return tool.daily_rate * billable_days(start, end)


def calculate_late_fee(tool, end, returned_at):
    days_late = billable_days(end, returned_at)
    return (tool.daily_rate * days_late * settings.TOOL_LATE_FEE_RATE).quantize(Decimal('0.01'))


class ToolLendingService:
    """
    Tool catalog, reservations, checkout/return and maintenance.

    Reservation writes lock the tool row so two members cannot book the same
    dates. Tools and reservations are mirrored to HubSpot after the database
    write; maintenance records stay local.
    """

    def __init__(self, hubspot=None):
        self.hubspot = hubspot

    def _sync_tool(self, tool, created=False):
        if created:
            return mirror_create(tool, 'tools', tool.hubspot_properties(), service=self.hubspot)
        return mirror_update(tool, 'tools', tool.hubspot_properties(), service=self.hubspot)

    def _sync_reservation(self, reservation, workflow=None, created=False):
        if created:
            return mirror_create(
                reservation,
                'tool_reservations',
                reservation.hubspot_properties(),
                workflow=workflow,
                service=self.hubspot,
            )
        return mirror_update(
            reservation,
            'tool_reservations',
            reservation.hubspot_properties(),
            workflow=workflow,
            service=self.hubspot,
        )

    # Catalog

    def create_tool(self, **data):
        tool = Tool.objects.create(**data)
        logger.info(f"Tool {tool.id} '{tool.name}' added to the lending library")
        self._sync_tool(tool, created=True)
        return tool

    def update_tool(self, tool, **changes):
        for field, value in changes.items():
            setattr(tool, field, value)
        tool.save()
        logger.info(f"Tool {tool.id} updated: {', '.join(changes) or 'no changes'}")
        self._sync_tool(tool)
        return tool

    def delete_tool(self, tool):
        if tool.reservations.filter(status__in=ACTIVE_RESERVATION_STATUSES).exists():
            raise ToolLendingError("Cannot delete a tool with active reservations.")

        mirror_archive(tool, 'tools', service=self.hubspot)
        tool_id = tool.id
        tool.delete()
        logger.info(f"Tool {tool_id} removed from the lending library")

    def check_availability(self, tool, start, end, exclude_reservation=None):
        """
        Report whether the tool can be booked for [start, end].

        Conflicts are overlapping pending, confirmed or checked-out reservations and
        active maintenance scheduled before the window ends.
        """
        reservations = tool.reservations.filter(
            status__in=ACTIVE_RESERVATION_STATUSES,
            start_date__lte=end,
            end_date__gte=start,
        )
        if exclude_reservation is not None:
            reservations = reservations.exclude(pk=exclude_reservation.pk)

        maintenance = tool.maintenance_records.filter(
            status__in=ACTIVE_MAINTENANCE_STATUSES,
            scheduled_date__lte=end,
        ).filter(Q(completed_date__gte=start) | Q(completed_date__isnull=True))

        conflicts = [
            {
                'type': 'reservation',
                'id': r.id,
                'start_date': r.start_date,
                'end_date': r.end_date,
                'status': r.status,
            }
            for r in reservations
        ]
        conflicts += [
            {
                'type': 'maintenance',
                'id': m.id,
                'start_date': m.scheduled_date,
                'end_date': m.completed_date,
                'status': m.status,
            }
            for m in maintenance
        ]

        return {
            'tool_id': tool.id,
            'available': tool.is_available and not conflicts,
            'conflicts': conflicts,
        }

    # Reservations

    def create_reservation(self, *, tool, member, start_date, end_date, notes=''):
        if start_date >= end_date:
            raise ToolLendingError("End date must be after start date.")
        if start_date < timezone.now():
            raise ToolLendingError("Start date cannot be in the past.")

        with transaction.atomic():
            tool = Tool.objects.select_for_update().get(pk=tool.pk)
            if not tool.is_available:
                raise ToolUnavailable()

            availability = self.check_availability(tool, start_date, end_date)
            if availability['conflicts']:
                raise SchedulingConflict(availability['conflicts'])

            reservation = ToolReservation.objects.create(
                tool=tool,
                member=member,
                start_date=start_date,
                end_date=end_date,
                total_cost=calculate_reservation_cost(tool, start_date, end_date),
                notes=notes,
            )

        logger.info(
            f"Reservation {reservation.id}: {member.email} booked tool {tool.id} "
            f"from {start_date:%Y-%m-%d} to {end_date:%Y-%m-%d} (${reservation.total_cost})"
        )
        self._sync_reservation(reservation, workflow='tool_reservation_created', created=True)
        return reservation

    def update_reservation(self, reservation, *, status=None, notes=None, checkout_condition=None, return_condition=None):
        if status and status != reservation.status:
            if not reservation.can_transition_to(status):
                raise InvalidTransition(f"Cannot move reservation from '{reservation.status}' to '{status}'.")

            if status == 'confirmed':
                availability = self.check_availability(
                    reservation.tool, reservation.start_date, reservation.end_date, exclude_reservation=reservation,
                )
                if availability['conflicts']:
                    raise SchedulingConflict(availability['conflicts'])
            elif status == 'checked_out':
                reservation.checked_out_at = timezone.now()
            elif status == 'returned':
                now = timezone.now()
                reservation.returned_at = now
                if now > reservation.end_date:
                    reservation.late_fees = calculate_late_fee(reservation.tool, reservation.end_date, now)

            reservation.status = status

        if notes is not None:
            reservation.notes = notes
        if checkout_condition:
            reservation.checkout_condition = checkout_condition
        if return_condition:
            reservation.return_condition = return_condition

        reservation.save()
        logger.info(f"Reservation {reservation.id} updated (status {reservation.status})")
        self._sync_reservation(reservation)
        return reservation

    def delete_reservation(self, reservation):
        if reservation.status not in ('pending', 'cancelled'):
            raise ToolLendingError("Only pending or cancelled reservations can be deleted.")

        mirror_archive(reservation, 'tool_reservations', service=self.hubspot)
        reservation_id = reservation.id
        reservation.delete()
        logger.info(f"Reservation {reservation_id} deleted")

    def checkout(self, reservation, *, checkout_condition, staff_notes='', actual_start_date=None):
        if reservation.status != 'confirmed':
            raise InvalidTransition("Only confirmed reservations can be checked out.")

        now = timezone.now()
        window = timedelta(days=settings.TOOL_CHECKOUT_WINDOW_DAYS)
        if abs(now - reservation.start_date) > window:
            raise ToolLendingError("Checkout is too far from the reservation start date.")

        with transaction.atomic():
            reservation.status = 'checked_out'
            reservation.checkout_condition = checkout_condition
            reservation.checked_out_at = now
            if actual_start_date:
                reservation.start_date = actual_start_date
            if staff_notes:
                reservation.notes = f"{reservation.notes}\nCheckout: {staff_notes}".strip()
            reservation.save()

            tool = reservation.tool
            tool.condition = checkout_condition
            tool.save(update_fields=['condition', 'updated_at'])

        logger.info(f"Reservation {reservation.id} checked out in {checkout_condition} condition")
        self._sync_reservation(reservation, workflow='tool_checked_out')
        return reservation

    def return_tool(self, reservation, *, return_condition, staff_notes='', actual_return_date=None, damage_assessment=''):
        """
        Check a tool back in, charge the late fee and queue an inspection
        when it comes back in fair or worse condition.
        """
        if reservation.status != 'checked_out':
            raise InvalidTransition("Only checked-out reservations can be returned.")

        returned_at = actual_return_date or timezone.now()
        is_late = returned_at > reservation.end_date
        needs_maintenance = return_condition in ('fair', 'needs_repair')
        maintenance = None

        with transaction.atomic():
            tool = Tool.objects.select_for_update().get(pk=reservation.tool_id)

            reservation.status = 'returned'
            reservation.return_condition = return_condition
            reservation.returned_at = returned_at
            if is_late:
                reservation.late_fees = calculate_late_fee(tool, reservation.end_date, returned_at)
                reservation.end_date = returned_at
            notes = [reservation.notes]
            if staff_notes:
                notes.append(f"Return: {staff_notes}")
            if damage_assessment:
                notes.append(f"Damage: {damage_assessment}")
            reservation.notes = "\n".join(n for n in notes if n)
            reservation.save()

            tool.condition = return_condition
            tool.is_available = not needs_maintenance
            tool.save(update_fields=['condition', 'is_available', 'updated_at'])

            if needs_maintenance:
                maintenance = ToolMaintenance.objects.create(
                    tool=tool,
                    maintenance_type='inspection',
                    description=f"Post-return inspection: tool returned in {return_condition} condition",
                    priority='high' if return_condition == 'needs_repair' else 'medium',
                    scheduled_date=timezone.now() + timedelta(days=1),
                    notes=damage_assessment,
                )

        logger.info(
            f"Reservation {reservation.id} returned in {return_condition} condition"
            f"{f' with ${reservation.late_fees} late fees' if is_late else ''}"
        )
        self._sync_reservation(reservation, workflow='tool_returned')
        if is_late:
            trigger_workflow(
                reservation,
                'tool_returned_late',
                {'late_fees': str(reservation.late_fees)},
                service=self.hubspot,
            )

        return {
            'reservation': reservation,
            'late_fees': reservation.late_fees,
            'is_late': is_late,
            'maintenance': maintenance,
        }

    # Maintenance

    def create_maintenance(self, *, tool, maintenance_type, description, scheduled_date,
                           priority='medium', cost=None, performed_by='', notes='', take_offline=True):
        with transaction.atomic():
            record = ToolMaintenance.objects.create(
                tool=tool,
                maintenance_type=maintenance_type,
                description=description,
                scheduled_date=scheduled_date,
                priority=priority,
                cost=cost,
                performed_by=performed_by,
                notes=notes,
            )
            if take_offline and tool.is_available:
                tool.is_available = False
                tool.save(update_fields=['is_available', 'updated_at'])

        logger.info(f"Maintenance {record.id} ({maintenance_type}, {priority}) scheduled for tool {tool.id} on {scheduled_date:%Y-%m-%d}")
        return record

    def _release_tool_if_idle(self, tool, exclude=None):
        others = tool.maintenance_records.filter(status__in=ACTIVE_MAINTENANCE_STATUSES)
        if exclude is not None:
            others = others.exclude(pk=exclude.pk)
        if others.exists() or tool.is_available:
            return False

        tool.is_available = True
        tool.save(update_fields=['is_available', 'updated_at'])
        logger.info(f"Tool {tool.id} back in service")
        self._sync_tool(tool)
        return True

    def update_maintenance(self, record, *, status=None, cost=None, performed_by=None, notes=None, completed_date=None):
        with transaction.atomic():
            if status and status != record.status:
                if not record.can_transition_to(status):
                    raise InvalidTransition(f"Cannot move maintenance from '{record.status}' to '{status}'.")
                record.status = status
                if status == 'completed':
                    record.completed_date = completed_date or timezone.now()

            if cost is not None:
                record.cost = cost
            if performed_by is not None:
                record.performed_by = performed_by
            if notes is not None:
                record.notes = notes
            record.save()

            if not record.is_active:
                self._release_tool_if_idle(record.tool, exclude=record)

        logger.info(f"Maintenance {record.id} updated (status {record.status})")
        return record

    def delete_maintenance(self, record):
        if record.status not in ('scheduled', 'cancelled'):
            raise ToolLendingError("Only scheduled or cancelled maintenance can be deleted.")

        tool = record.tool
        record_id = record.id
        with transaction.atomic():
            record.delete()
            self._release_tool_if_idle(tool)
        logger.info(f"Maintenance {record_id} deleted")

    # Scheduled jobs

    def calculate_late_fees(self):
        """Charge late fees on overdue checkouts that have not been charged yet."""
        now = timezone.now()
        overdue = ToolReservation.objects.select_related('tool', 'member').filter(
            status='checked_out',
            end_date__lt=now,
            late_fees=0,
        )

        charged = []
        for reservation in overdue:
            reservation.late_fees = calculate_late_fee(reservation.tool, reservation.end_date, now)
            reservation.save(update_fields=['late_fees', 'updated_at'])
            trigger_workflow(
                reservation,
                'late_fee_calculated',
                {'late_fees': str(reservation.late_fees)},
                service=self.hubspot,
            )
            charged.append({
                'reservation_id': reservation.id,
                'member_email': reservation.member.email,
                'days_late': billable_days(reservation.end_date, now),
                'late_fees': reservation.late_fees,
            })

        logger.info(f"Late fees charged on {len(charged)} overdue reservations")
        return charged

    def _maintenance_rule(self, tool, usage_days):
        if tool.condition == 'needs_repair':
            return 'repair', 'urgent', "Tool reported as needing repair"
        if tool.condition == 'fair' and usage_days > 30:
            return 'inspection', 'high', f"Inspection after {usage_days} days of use in fair condition"
        if usage_days > 60:
            return 'routine', 'medium', f"Routine service after {usage_days} days of use"
        if tool.category == 'measuring_tools' and usage_days > 20:
            return 'calibration', 'medium', f"Calibration after {usage_days} days of use"
        return None

    def schedule_automatic_maintenance(self):
        """
        Queue maintenance for tools used in the last 90 days based on their
        condition and reserved days. Tools with active maintenance are skipped.
        """
        now = timezone.now()
        since = now - timedelta(days=USAGE_LOOKBACK_DAYS)

        tools = (
            Tool.objects.filter(reservations__status='returned', reservations__returned_at__gte=since)
            .exclude(maintenance_records__status__in=ACTIVE_MAINTENANCE_STATUSES)
            .distinct()
        )

        scheduled = []
        for tool in tools:
            usage_days = sum(
                billable_days(r.start_date, r.end_date)
                for r in tool.reservations.filter(status='returned', returned_at__gte=since)
            )
            rule = self._maintenance_rule(tool, usage_days)
            if rule is None:
                continue

            maintenance_type, priority, description = rule
            record = self.create_maintenance(
                tool=tool,
                maintenance_type=maintenance_type,
                description=description,
                priority=priority,
                scheduled_date=now + timedelta(days=PRIORITY_LEAD_DAYS[priority]),
                notes="Scheduled automatically",
                take_offline=maintenance_type == 'repair',
            )
            scheduled.append(record)

        logger.info(f"Automatic maintenance scheduled for {len(scheduled)} tools")
        return scheduled

    def generate_utilization_report(self, *, start_date, end_date, tools=None):
        if start_date >= end_date:
            raise ToolLendingError("End date must be after start date.")

        total_days = billable_days(start_date, end_date)
        queryset = tools if tools is not None else Tool.objects.all()

        rows = []
        for tool in queryset:
            reservations = list(tool.reservations.filter(
                status='returned',
                start_date__gte=start_date,
                start_date__lt=end_date,
            ))
            reserved_days = sum(billable_days(r.start_date, r.end_date) for r in reservations)
            revenue = sum((r.total_cost + r.late_fees for r in reservations), Decimal('0'))
            maintenance_cost = tool.maintenance_records.filter(
                status='completed',
                completed_date__gte=start_date,
                completed_date__lt=end_date,
            ).aggregate(total=Sum('cost'))['total'] or Decimal('0')

            rows.append({
                'tool_id': tool.id,
                'tool_name': tool.name,
                'category': tool.category,
                'total_reservations': len(reservations),
                'reserved_days': reserved_days,
                'utilization_rate': round(min(reserved_days / total_days * 100, 100), 2) if total_days else 0,
                'revenue': revenue,
                'maintenance_cost': maintenance_cost,
                'net_revenue': revenue - maintenance_cost,
            })

        rows.sort(key=lambda row: row['utilization_rate'], reverse=True)
        return {
            'period': {'start_date': start_date, 'end_date': end_date, 'total_days': total_days},
            'summary': {
                'total_tools': len(rows),
                'total_revenue': sum((row['revenue'] for row in rows), Decimal('0')),
                'total_maintenance_cost': sum((row['maintenance_cost'] for row in rows), Decimal('0')),
            },
            'tools': rows,
        }

    def process_daily_tasks(self):
        late_fees = self.calculate_late_fees()
        maintenance = self.schedule_automatic_maintenance()

        overdue = ToolReservation.objects.filter(status='checked_out', end_date__lt=timezone.now())
        notified = 0
        for reservation in overdue:
            if trigger_workflow(reservation, 'tool_overdue', service=self.hubspot) == 'synced':
                notified += 1

        result = {
            'late_fees_calculated': len(late_fees),
            'maintenance_scheduled': len(maintenance),
            'overdue_reservations': overdue.count(),
            'overdue_notifications': notified,
        }
        logger.info(f"Tool lending daily tasks finished: {result}")
        return result
