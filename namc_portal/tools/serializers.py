from decimal import Decimal

from django.utils import timezone
from rest_framework import serializers

from accounts.serializers import MemberSummarySerializer

from .models import (
    ACTIVE_MAINTENANCE_STATUSES,
    ACTIVE_RESERVATION_STATUSES,
    CONDITION_CHOICES,
    Tool,
    ToolMaintenance,
    ToolReservation,
)


class ToolSerializer(serializers.ModelSerializer):
    active_reservations = serializers.SerializerMethodField()
    upcoming_maintenance = serializers.SerializerMethodField()

    class Meta:
        model = Tool
        fields = (
            "id",
            "name",
            "category",
            "description",
            "serial_number",
            "manufacturer",
            "model_number",
            "daily_rate",
            "condition",
            "location",
            "requires_training",
            "image_url",
            "specifications",
            "is_available",
            "active_reservations",
            "upcoming_maintenance",
            "hubspot_object_id",
            "hubspot_sync_status",
            "created_at",
            "updated_at",
        )
        read_only_fields = ("hubspot_object_id", "hubspot_sync_status", "created_at", "updated_at")

    def validate_daily_rate(self, value):
        if value < 0:
            raise serializers.ValidationError("Daily rate cannot be negative.")
        return value

    def get_active_reservations(self, obj):
        if hasattr(obj, "active_reservations"):
            return obj.active_reservations
        return obj.reservations.filter(status__in=ACTIVE_RESERVATION_STATUSES).count()

    def get_upcoming_maintenance(self, obj):
        if hasattr(obj, "upcoming_maintenance"):
            return obj.upcoming_maintenance
        return obj.maintenance_records.filter(status__in=ACTIVE_MAINTENANCE_STATUSES).count()


class ToolSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Tool
        fields = ("id", "name", "category", "daily_rate", "condition", "location")
        read_only_fields = fields


class AvailabilityQuerySerializer(serializers.Serializer):
    start_date = serializers.DateTimeField()
    end_date = serializers.DateTimeField()

    def validate(self, attrs):
        if attrs["start_date"] >= attrs["end_date"]:
            raise serializers.ValidationError("End date must be after start date.")
        return attrs


class ToolReservationSerializer(serializers.ModelSerializer):
    tool = ToolSummarySerializer(read_only=True)
    member = MemberSummarySerializer(read_only=True)

    class Meta:
        model = ToolReservation
        fields = (
            "id",
            "tool",
            "member",
            "start_date",
            "end_date",
            "status",
            "total_cost",
            "late_fees",
            "checkout_condition",
            "return_condition",
            "notes",
            "checked_out_at",
            "returned_at",
            "hubspot_object_id",
            "hubspot_sync_status",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class ToolReservationCreateSerializer(serializers.Serializer):
    tool = serializers.PrimaryKeyRelatedField(queryset=Tool.objects.all())
    start_date = serializers.DateTimeField()
    end_date = serializers.DateTimeField()
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if attrs["start_date"] >= attrs["end_date"]:
            raise serializers.ValidationError("End date must be after start date.")
        if attrs["start_date"] < timezone.now():
            raise serializers.ValidationError({"start_date": "Start date cannot be in the past."})
        return attrs


class ToolReservationUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ToolReservation.STATUS_CHOICES, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    checkout_condition = serializers.ChoiceField(choices=CONDITION_CHOICES, required=False)
    return_condition = serializers.ChoiceField(choices=CONDITION_CHOICES, required=False)


class CheckoutSerializer(serializers.Serializer):
    checkout_condition = serializers.ChoiceField(choices=CONDITION_CHOICES)
    staff_notes = serializers.CharField(required=False, allow_blank=True, default="")
    actual_start_date = serializers.DateTimeField(required=False, allow_null=True)


class ReturnSerializer(serializers.Serializer):
    return_condition = serializers.ChoiceField(choices=CONDITION_CHOICES)
    staff_notes = serializers.CharField(required=False, allow_blank=True, default="")
    actual_return_date = serializers.DateTimeField(required=False, allow_null=True)
    damage_assessment = serializers.CharField(required=False, allow_blank=True, default="")


class ToolMaintenanceSerializer(serializers.ModelSerializer):
    tool = ToolSummarySerializer(read_only=True)

    class Meta:
        model = ToolMaintenance
        fields = (
            "id",
            "tool",
            "maintenance_type",
            "description",
            "status",
            "priority",
            "scheduled_date",
            "completed_date",
            "cost",
            "performed_by",
            "notes",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class ToolMaintenanceCreateSerializer(serializers.Serializer):
    tool = serializers.PrimaryKeyRelatedField(queryset=Tool.objects.all())
    maintenance_type = serializers.ChoiceField(choices=ToolMaintenance.TYPE_CHOICES)
    description = serializers.CharField()
    scheduled_date = serializers.DateTimeField()
    priority = serializers.ChoiceField(choices=ToolMaintenance.PRIORITY_CHOICES, default="medium")
    cost = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0"), required=False, allow_null=True)
    performed_by = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class ToolMaintenanceUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ToolMaintenance.STATUS_CHOICES, required=False)
    cost = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0"), required=False, allow_null=True)
    performed_by = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    completed_date = serializers.DateTimeField(required=False, allow_null=True)


class UtilizationReportQuerySerializer(serializers.Serializer):
    start_date = serializers.DateTimeField()
    end_date = serializers.DateTimeField()
    tool_ids = serializers.ListField(child=serializers.IntegerField(), required=False)

    def validate(self, attrs):
        if attrs["start_date"] >= attrs["end_date"]:
            raise serializers.ValidationError("End date must be after start date.")
        return attrs
