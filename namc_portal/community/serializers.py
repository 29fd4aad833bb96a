from django.utils import timezone
from rest_framework import serializers

from accounts.permissions import is_portal_admin
from accounts.serializers import MemberSummarySerializer

from .models import Committee, CommitteeMeeting, CommitteeMembership, Discussion, MeetingAttendance


class CommitteeMembershipSerializer(serializers.ModelSerializer):
    member = MemberSummarySerializer(read_only=True)

    class Meta:
        model = CommitteeMembership
        fields = ['id', 'member', 'role', 'status', 'can_post', 'can_invite', 'can_moderate', 'joined_at']
        read_only_fields = fields


class CommitteeSerializer(serializers.ModelSerializer):
    """
    Serializer for creating, listing and updating committees.

    Fields:
        - name (required), description, category, is_public, requires_approval,
          meeting_frequency, max_members
        - status can move between active and inactive; archiving goes through DELETE
        read-only: chair, member_count, is_chair, my_membership, next_meeting
    The authenticated member becomes the chair on create.
    """
    chair = MemberSummarySerializer(read_only=True)
    member_count = serializers.SerializerMethodField()
    is_chair = serializers.SerializerMethodField()
    my_membership = serializers.SerializerMethodField()
    next_meeting = serializers.DateTimeField(read_only=True)

    class Meta:
        model = Committee
        fields = [
            'id', 'name', 'description', 'category', 'status', 'chair', 'is_public', 'requires_approval',
            'meeting_frequency', 'max_members', 'member_count', 'is_chair', 'my_membership', 'next_meeting',
            'hubspot_sync_status', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'chair', 'hubspot_sync_status', 'created_at', 'updated_at']

    def _user(self):
        request = self.context.get('request')
        return request.user if request else None

    def get_member_count(self, obj):
        if hasattr(obj, 'active_members'):
            return obj.active_members
        return obj.member_count

    def get_is_chair(self, obj):
        user = self._user()
        return bool(user and obj.chair_id == user.id)

    def get_my_membership(self, obj):
        membership = obj.active_membership(self._user())
        if membership is None:
            return None
        return {'role': membership.role, 'can_invite': membership.can_invite, 'can_moderate': membership.can_moderate}

    def validate_status(self, value):
        if value == 'archived':
            raise serializers.ValidationError("Delete the committee to archive it.")
        return value

    def validate_max_members(self, value):
        if value is not None and self.instance is not None and value < self.instance.member_count:
            raise serializers.ValidationError("Maximum members cannot be below the current member count.")
        if value is not None and value < 1:
            raise serializers.ValidationError("A committee needs room for at least its chair.")
        return value

    def create(self, validated_data):
        chair = self.context['request'].user
        committee = Committee.objects.create(chair=chair, **validated_data)
        CommitteeMembership.objects.create(
            committee=committee, member=chair, role='chair', **CommitteeMembership.permissions_for('chair'),
        )
        return committee


class AddCommitteeMemberSerializer(serializers.Serializer):
    """
    Invite a member to a committee.

    Fields:
        - member_id (required)
        - role: 'member' (default) or 'moderator'; a committee has a single chair
    """
    member_id = serializers.IntegerField()
    role = serializers.ChoiceField(choices=[('member', 'Member'), ('moderator', 'Moderator')], default='member')


class UpdateCommitteeMembershipSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[('active', 'Active'), ('inactive', 'Inactive')], required=False)
    role = serializers.ChoiceField(choices=[('member', 'Member'), ('moderator', 'Moderator')], required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide a status or a role.")
        if self.context['membership'].role == 'chair':
            raise serializers.ValidationError("The chair's membership cannot be changed.")
        return attrs


class MeetingAttendanceSerializer(serializers.ModelSerializer):
    member = MemberSummarySerializer(read_only=True)

    class Meta:
        model = MeetingAttendance
        fields = ['id', 'member', 'status', 'responded_at']
        read_only_fields = fields


class CommitteeMeetingSerializer(serializers.ModelSerializer):
    """
    Serializer for scheduling committee meetings.

    Fields:
        - title, scheduled_date (required; must be in the future)
        - description, duration_minutes (default 60), location, meeting_type, agenda (optional)
        read-only: attendees, attending_count, my_attendance
    """
    agenda = serializers.ListField(child=serializers.CharField(max_length=500), required=False)
    attendees = MeetingAttendanceSerializer(many=True, read_only=True)
    attending_count = serializers.SerializerMethodField()
    my_attendance = serializers.SerializerMethodField()

    class Meta:
        model = CommitteeMeeting
        fields = [
            'id', 'committee', 'title', 'description', 'scheduled_date', 'duration_minutes', 'location',
            'meeting_type', 'agenda', 'status', 'attendees', 'attending_count', 'my_attendance',
            'hubspot_sync_status', 'created_at',
        ]
        read_only_fields = ['id', 'committee', 'status', 'hubspot_sync_status', 'created_at']

    def get_attending_count(self, obj):
        return sum(1 for a in obj.attendees.all() if a.status in ('attending', 'attended'))

    def get_my_attendance(self, obj):
        request = self.context.get('request')
        if request is None:
            return None
        return next((a.status for a in obj.attendees.all() if a.member_id == request.user.id), None)

    def validate_scheduled_date(self, value):
        if value <= timezone.now():
            raise serializers.ValidationError("Meetings must be scheduled in the future.")
        return value

    def validate_duration_minutes(self, value):
        if value < 1:
            raise serializers.ValidationError("Duration must be at least one minute.")
        return value


class MeetingRSVPSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[('attending', 'Attending'), ('declined', 'Declined')])


class DiscussionReplySerializer(serializers.ModelSerializer):
    author = MemberSummarySerializer(read_only=True)

    class Meta:
        model = Discussion
        fields = ['id', 'content', 'author', 'created_at', 'updated_at']
        read_only_fields = ['id', 'author', 'created_at', 'updated_at']


class DiscussionSerializer(serializers.ModelSerializer):
    """
    Serializer for discussion threads.

    Fields:
        - title, content (required on create)
        - category, discussion_type, tags, is_public, allow_replies (optional)
        - committee (optional): post into a committee the author belongs to
        - status: the author may close or archive the thread
        read-only: author, is_pinned, view_count, reply_count, last_activity_at
    """
    author = MemberSummarySerializer(read_only=True)
    tags = serializers.ListField(child=serializers.CharField(max_length=50), required=False)
    reply_count = serializers.SerializerMethodField()

    class Meta:
        model = Discussion
        fields = [
            'id', 'title', 'content', 'category', 'discussion_type', 'tags', 'is_public', 'allow_replies',
            'is_pinned', 'status', 'committee', 'author', 'view_count', 'reply_count', 'last_activity_at',
            'hubspot_sync_status', 'created_at', 'updated_at',
        ]
        read_only_fields = [
            'id', 'is_pinned', 'author', 'view_count', 'last_activity_at', 'hubspot_sync_status', 'created_at', 'updated_at',
        ]

    def get_reply_count(self, obj):
        if hasattr(obj, 'reply_count'):
            return obj.reply_count
        return obj.replies.filter(status='active').count()

    def validate_title(self, value):
        if not value.strip():
            raise serializers.ValidationError("Title is required.")
        return value

    def validate_committee(self, committee):
        if committee is None:
            return committee
        if self.instance is not None and committee.id != self.instance.committee_id:
            raise serializers.ValidationError("A discussion cannot move to another committee.")
        user = self.context['request'].user
        if is_portal_admin(user):
            return committee
        membership = committee.active_membership(user)
        if membership is None or not membership.can_post:
            raise serializers.ValidationError("You cannot post in this committee.")
        return committee

    def validate(self, attrs):
        if self.instance is None and not attrs.get('title'):
            raise serializers.ValidationError({'title': "Title is required."})
        return attrs

    def create(self, validated_data):
        return Discussion.objects.create(author=self.context['request'].user, **validated_data)


class DiscussionDetailSerializer(DiscussionSerializer):
    replies = serializers.SerializerMethodField()

    class Meta(DiscussionSerializer.Meta):
        fields = DiscussionSerializer.Meta.fields + ['replies']

    def get_replies(self, obj):
        replies = obj.replies.filter(status='active').select_related('author').order_by('created_at')
        return DiscussionReplySerializer(replies, many=True).data
