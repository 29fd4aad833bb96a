from rest_framework import serializers
from django.contrib.auth import get_user_model


from accounts.serializers import MemberSummarySerializer
from .models import Project


User = get_user_model()


class ProjectSerializer(serializers.ModelSerializer):
    """
    Serializer for creating, listing and updating projects.

    Fields:
        - title, description, budget (required inputs)
        - location, start_date, expected_completion_date (optional)
        read-only: owner, contractor, status, timestamps
    The authenticated member becomes the project owner on create.
    """
    owner = MemberSummarySerializer(read_only=True)
    contractor = MemberSummarySerializer(read_only=True)
    has_escrow = serializers.SerializerMethodField()

    class Meta:
        model = Project
        fields = [
            'id', 'title', 'description', 'budget', 'location', 'status',
            'start_date', 'expected_completion_date', 'completed_at',
            'owner', 'contractor', 'has_escrow', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'status', 'completed_at', 'owner', 'contractor', 'created_at', 'updated_at']

    def get_has_escrow(self, obj):
        return hasattr(obj, 'escrow')

    def validate_budget(self, value):
        if value <= 0:
            raise serializers.ValidationError("Please enter a valid budget.")
        return value

    def validate(self, attrs):
        start = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        end = attrs.get('expected_completion_date', getattr(self.instance, 'expected_completion_date', None))
        if start and end and end < start:
            raise serializers.ValidationError("Expected completion date must be after the start date.")
        return attrs

    def create(self, validated_data):
        return Project.objects.create(owner=self.context['request'].user, **validated_data)


class ProjectStatusSerializer(serializers.Serializer):
    """Owner-driven project status change (pending -> active -> completed, or cancelled)."""
    TRANSITIONS = {
        'pending': ['active', 'cancelled'],
        'active': ['completed', 'cancelled'],
        'completed': [],
        'cancelled': [],
    }

    status = serializers.ChoiceField(choices=Project.STATUS_CHOICES)

    def validate_status(self, value):
        project = self.context['project']
        if value not in self.TRANSITIONS[project.status]:
            raise serializers.ValidationError(f"Cannot move a project from '{project.status}' to '{value}'.")
        if value == 'active' and project.contractor_id is None:
            raise serializers.ValidationError("Assign a contractor before starting the project.")
        return value


class AssignContractorSerializer(serializers.Serializer):
    """
    Assigns a contractor member to the project.

    Fields:
        - contractor_id (required): id of an active member with member_type 'contractor'
    """
    contractor_id = serializers.IntegerField()

    def validate_contractor_id(self, value):
        contractor = User.objects.filter(id=value, is_active=True, deleted_at__isnull=True).first()
        if contractor is None:
            raise serializers.ValidationError("Contractor not found.")
        if contractor.member_type != 'contractor':
            raise serializers.ValidationError("Only contractor members can be assigned to a project.")

        project = self.context['project']
        if contractor.id == project.owner_id:
            raise serializers.ValidationError("The project owner cannot be its contractor.")
        if project.status in ('completed', 'cancelled'):
            raise serializers.ValidationError(f"Cannot assign a contractor to a {project.status} project.")

        self.context['contractor'] = contractor
        return value
