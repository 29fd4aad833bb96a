from decimal import Decimal

from rest_framework import serializers

from accounts.serializers import MemberSummarySerializer
from escrow.models import EscrowPayment

from .models import PaymentDispute


class DisputeCreateSerializer(serializers.Serializer):
    """
    Serializer for opening a dispute. Assumes the view provides 'escrow' in the context.
    """
    payment = serializers.PrimaryKeyRelatedField(queryset=EscrowPayment.objects.all(), required=False, allow_null=True)
    reason = serializers.CharField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    evidence = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    supporting_docs = serializers.ListField(child=serializers.CharField(), required=False, default=list)

    def validate_payment(self, payment):
        if payment is not None and payment.escrow_id != self.context['escrow'].id:
            raise serializers.ValidationError("The disputed payment does not belong to this escrow.")
        return payment

    def validate_amount(self, amount):
        escrow = self.context['escrow']
        if amount > escrow.total_project_value:
            raise serializers.ValidationError("Disputed amount cannot exceed the project value.")
        return amount


class DisputeDetailSerializer(serializers.ModelSerializer):
    """
    Serializer for retrieving a single dispute with all its details.
    """
    escrow_id = serializers.IntegerField(source='escrow.id', read_only=True)
    project_title = serializers.CharField(source='escrow.project.title', read_only=True)
    submitted_by = MemberSummarySerializer(read_only=True)
    respondent = MemberSummarySerializer(read_only=True)
    mediator = MemberSummarySerializer(read_only=True)
    resolved_by = serializers.StringRelatedField()
    hubspot_ticket_id = serializers.CharField(source='hubspot_object_id', read_only=True)

    class Meta:
        model = PaymentDispute
        fields = [
            'id', 'escrow_id', 'project_title', 'payment', 'submitted_by', 'respondent',
            'reason', 'amount', 'evidence', 'supporting_docs', 'status', 'response_deadline',
            'mediator', 'mediation_date', 'resolution', 'resolution_amount', 'resolution_payment',
            'resolved_by', 'resolved_at', 'hubspot_ticket_id', 'hubspot_sync_status', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ResolveDisputeSerializer(serializers.Serializer):
    resolution = serializers.CharField()
    resolution_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False, allow_null=True
    )

    def validate_resolution_amount(self, value):
        dispute = self.context['dispute']
        if value is not None and value > dispute.amount:
            raise serializers.ValidationError("Resolution amount cannot exceed the disputed amount.")
        return value
