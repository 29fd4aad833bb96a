from decimal import Decimal

from rest_framework import serializers

from accounts.permissions import is_portal_admin
from accounts.serializers import MemberSummarySerializer
from payments.providers import PROVIDERS
from projects.models import Project

from .models import (
    CashFlowProjection,
    ChangeOrder,
    EscrowPayment,
    PaymentMilestone,
    ProjectEscrow,
    TaskPayment,
)


class EscrowPaymentSerializer(serializers.ModelSerializer):
    recipient = MemberSummarySerializer(read_only=True)

    class Meta:
        model = EscrowPayment
        fields = (
            "id",
            "payment_type",
            "amount",
            "recipient",
            "payment_method",
            "provider",
            "transaction_reference",
            "task_payment",
            "milestone",
            "status",
            "notes",
            "created_at",
        )
        read_only_fields = fields


class ProjectEscrowSerializer(serializers.ModelSerializer):
    project_id = serializers.IntegerField(source="project.id", read_only=True)
    project_title = serializers.CharField(source="project.title", read_only=True)
    client = MemberSummarySerializer(source="project.owner", read_only=True)
    contractor = MemberSummarySerializer(source="project.contractor", read_only=True)
    available_for_payment = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = ProjectEscrow
        fields = (
            "id",
            "project_id",
            "project_title",
            "client",
            "contractor",
            "total_project_value",
            "escrow_balance",
            "total_deposited",
            "total_paid",
            "retention_percentage",
            "retention_amount",
            "available_for_payment",
            "payment_schedule",
            "expected_completion_date",
            "payment_provider",
            "status",
            "is_locked",
            "last_payment_date",
            "last_payment_amount",
            "completed_at",
            "closed_at",
            "hubspot_sync_status",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class ProjectEscrowCreateSerializer(serializers.Serializer):
    project = serializers.PrimaryKeyRelatedField(queryset=Project.objects.select_related("owner", "contractor"))
    total_project_value = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    retention_percentage = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=Decimal("0"), max_value=Decimal("100"), required=False
    )
    payment_schedule = serializers.ListField(child=serializers.DictField(), required=False)
    expected_completion_date = serializers.DateField(required=False)
    payment_provider = serializers.ChoiceField(choices=sorted(PROVIDERS), required=False)

    def validate_project(self, project):
        user = self.context["request"].user
        if project.owner_id != user.id and not is_portal_admin(user):
            raise serializers.ValidationError("Only the project owner can open an escrow.")
        if hasattr(project, "escrow"):
            raise serializers.ValidationError("This project already has an escrow.")
        if not project.contractor_id:
            raise serializers.ValidationError("Assign a contractor before opening an escrow.")
        return project


class EscrowFundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    payment_method = serializers.CharField(
        required=False,
        help_text="Stripe payment method id (pm_...) or ach / wire / check for manual escrows",
    )


class EscrowReleaseSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    payment_method = serializers.ChoiceField(choices=("ach", "wire", "check"), required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_amount(self, amount):
        escrow: ProjectEscrow = self.context["escrow"]
        if amount > escrow.available_for_payment:
            raise serializers.ValidationError("Amount exceeds the escrow balance available above retention.")
        return amount


class EscrowLockSerializer(serializers.Serializer):
    """Serializer to lock or unlock an escrow outside the dispute flow."""

    is_locked = serializers.BooleanField()

    def update(self, instance: ProjectEscrow, validated_data):
        instance.is_locked = validated_data["is_locked"]
        instance.save(update_fields=["is_locked", "updated_at"])
        return instance

    def to_representation(self, instance):
        return {
            "id": instance.id,
            "is_locked": instance.is_locked,
            "status": instance.status,
        }


class ChangeOrderSerializer(serializers.ModelSerializer):
    approved_by = MemberSummarySerializer(read_only=True)

    class Meta:
        model = ChangeOrder
        fields = (
            "id",
            "change_order_number",
            "description",
            "amount_change",
            "schedule_impact_days",
            "reason",
            "previous_project_value",
            "new_project_value",
            "approved_by",
            "hubspot_sync_status",
            "created_at",
        )
        read_only_fields = fields


class ChangeOrderCreateSerializer(serializers.Serializer):
    change_order_number = serializers.CharField(max_length=50)
    description = serializers.CharField()
    amount_change = serializers.DecimalField(max_digits=12, decimal_places=2)
    schedule_impact_days = serializers.IntegerField(required=False, default=0)
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class TaskPaymentSerializer(serializers.ModelSerializer):
    contractor = MemberSummarySerializer(read_only=True)

    class Meta:
        model = TaskPayment
        fields = (
            "id",
            "escrow",
            "contractor",
            "task_reference",
            "task_name",
            "payment_amount",
            "completion_requirements",
            "verification_criteria",
            "approval_required",
            "photos_required",
            "status",
            "quality_score",
            "photos_submitted",
            "completion_notes",
            "verification_notes",
            "completed_at",
            "verified_at",
            "approved_at",
            "paid_at",
            "payment_reference",
            "hubspot_sync_status",
            "created_at",
        )
        read_only_fields = fields


class TaskPaymentCreateSerializer(serializers.Serializer):
    task_reference = serializers.CharField(max_length=100)
    task_name = serializers.CharField(max_length=255)
    payment_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    completion_requirements = serializers.DictField(required=False)
    verification_criteria = serializers.DictField(required=False)
    approval_required = serializers.BooleanField(required=False, default=False)
    photos_required = serializers.BooleanField(required=False, default=False)


class TaskCompletionSerializer(serializers.Serializer):
    quality_score = serializers.IntegerField(min_value=0, max_value=100, required=False)
    photos = serializers.ListField(child=serializers.CharField(max_length=500), required=False, default=list)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class TaskVerificationSerializer(serializers.Serializer):
    quality_score = serializers.IntegerField(min_value=0, max_value=100, required=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class PaymentMilestoneSerializer(serializers.ModelSerializer):
    contractor = MemberSummarySerializer(read_only=True)

    class Meta:
        model = PaymentMilestone
        fields = (
            "id",
            "escrow",
            "contractor",
            "name",
            "description",
            "payment_amount",
            "payment_percentage",
            "deliverables",
            "verification_criteria",
            "due_date",
            "status",
            "completed_at",
            "verified_at",
            "paid_at",
            "payment_reference",
            "hubspot_sync_status",
            "created_at",
        )
        read_only_fields = fields


class PaymentMilestoneCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    payment_percentage = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=Decimal("0.01"), max_value=Decimal("100")
    )
    payment_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0.01"), required=False
    )
    deliverables = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    verification_criteria = serializers.DictField(required=False, default=dict)
    due_date = serializers.DateField(required=False)


class CashFlowReportQuerySerializer(serializers.Serializer):
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    include_projections = serializers.BooleanField(required=False, default=True)

    def validate(self, attrs):
        if attrs["start_date"] > attrs["end_date"]:
            raise serializers.ValidationError("start_date must be on or before end_date.")
        return attrs


class CashFlowProjectionSerializer(serializers.ModelSerializer):
    class Meta:
        model = CashFlowProjection
        fields = (
            "id",
            "escrow",
            "member",
            "projection_date",
            "projected_inflow",
            "projected_outflow",
            "net_cash_flow",
            "confidence_score",
            "risk_factors",
            "recommendations",
            "created_at",
        )
        read_only_fields = ("id", "escrow", "member", "net_cash_flow", "confidence_score", "created_at")


class CompletionEvidenceSerializer(serializers.Serializer):
    photos = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    quality_score = serializers.IntegerField(min_value=0, max_value=100, required=False)


class PaymentEligibilitySerializer(serializers.Serializer):
    completion_evidence = CompletionEvidenceSerializer()
    required_approvals = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    received_approvals = serializers.ListField(child=serializers.CharField(), required=False, default=list)
