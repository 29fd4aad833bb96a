from django.contrib.auth import get_user_model
from rest_framework import serializers

from accounts.permissions import is_portal_admin
from accounts.serializers import MemberSummarySerializer
from projects.models import Project

from .models import Notification

User = get_user_model()


class NotificationSerializer(serializers.ModelSerializer):
    """
    A stored notification. Only `read` is writable; flipping it stamps or
    clears `read_at`.
    """
    sender = MemberSummarySerializer(read_only=True)

    class Meta:
        model = Notification
        fields = [
            'id', 'notification_type', 'priority', 'title', 'message', 'action_url', 'data',
            'project', 'sender', 'read', 'read_at', 'sent_at',
        ]
        read_only_fields = [
            'id', 'notification_type', 'priority', 'title', 'message', 'action_url', 'data',
            'project', 'sender', 'read_at', 'sent_at',
        ]

    def update(self, instance, validated_data):
        if 'read' in validated_data and validated_data['read'] != instance.read:
            instance.set_read(validated_data['read'])
        return instance


class NotificationCreateSerializer(serializers.Serializer):
    """
    Send a notification to the other side of a project.

    Fields:
        - project, recipient_id, title, message (required)
        - notification_type, priority, action_url (optional)
    The sender must take part in the project (or be a portal admin) and the
    recipient must be the project's owner or contractor.
    """
    project = serializers.PrimaryKeyRelatedField(queryset=Project.objects.all())
    recipient_id = serializers.IntegerField()
    notification_type = serializers.ChoiceField(choices=Notification.TYPE_CHOICES, default='general')
    priority = serializers.ChoiceField(choices=Notification.PRIORITY_CHOICES, default='medium')
    title = serializers.CharField(max_length=200)
    message = serializers.CharField()
    action_url = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')

    def validate(self, attrs):
        project = attrs['project']
        user = self.context['request'].user
        if not (project.is_participant(user) or is_portal_admin(user)):
            raise serializers.ValidationError({'project': "You are not part of this project."})

        if attrs['recipient_id'] not in (project.owner_id, project.contractor_id):
            raise serializers.ValidationError({'recipient_id': "Recipient must be the project owner or contractor."})
        attrs['recipient'] = User.objects.get(id=attrs.pop('recipient_id'))
        return attrs
