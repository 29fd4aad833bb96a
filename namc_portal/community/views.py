import logging

from django.contrib.auth import get_user_model
from django.db.models import Case, Count, Exists, F, IntegerField, OuterRef, Q, Value, When
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, status, views
from rest_framework.exceptions import ValidationError
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema

from accounts.permissions import is_portal_admin
from hubspot.sync import mirror_archive, mirror_create, mirror_update
from notifications.utils import notify

from . import serializers as my_serializers
from .models import Committee, CommitteeMeeting, CommitteeMembership, Discussion, MeetingAttendance
from .pagination import CommunityPagination
from .permissions import CanViewCommittee, CanViewDiscussion, IsAuthorOrReadOnly, IsCommitteeLeadOrReadOnly

User = get_user_model()

logger = logging.getLogger(__name__)

ROLE_ORDER = Case(
    When(role='chair', then=Value(0)),
    When(role='moderator', then=Value(1)),
    default=Value(2),
    output_field=IntegerField(),
)


def committee_queryset(user):
    member_of = CommitteeMembership.objects.filter(committee=OuterRef('pk'), member=user, status='active')
    return Committee.objects.select_related('chair').annotate(
        active_members=Count('memberships', filter=Q(memberships__status='active'), distinct=True),
        is_member=Exists(member_of),
    )


def can_manage_members(committee, user, permission):
    if committee.chair_id == user.id or is_portal_admin(user):
        return True
    membership = committee.active_membership(user)
    return membership is not None and getattr(membership, permission)


class CommitteeListCreateAPIView(generics.ListCreateAPIView):
    """
    GET: Committees visible to the current member (public ones plus those they belong to).
    Query params:
        - category, status (filter; defaults to active committees)
        - mine=true (only committees the member chairs or belongs to)
        - search (name, description)
    POST: Creates a committee chaired by the current member.
    """
    serializer_class = my_serializers.CommitteeSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_fields = ['category', 'status']
    search_fields = ['name', 'description']
    ordering_fields = ['name', 'created_at']
    ordering = ['name']
    pagination_class = CommunityPagination

    def get_queryset(self):
        user = self.request.user
        queryset = committee_queryset(user)
        if 'status' not in self.request.query_params:
            queryset = queryset.filter(status='active')
        if self.request.query_params.get('mine') in ('true', '1'):
            queryset = queryset.filter(Q(chair=user) | Q(is_member=True))
        if not is_portal_admin(user):
            queryset = queryset.filter(Q(is_public=True) | Q(chair=user) | Q(is_member=True))
        return queryset

    @swagger_auto_schema(operation_summary="List committees")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_summary="Create a committee",
        request_body=my_serializers.CommitteeSerializer,
        responses={201: my_serializers.CommitteeSerializer(), 400: "Validation error"}
    )
    def post(self, request, *args, **kwargs):
        return super().post(request, *args, **kwargs)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        committee = serializer.save()
        logger.info(f"Committee {committee.id} '{committee.name}' created by {request.user.email}")
        mirror_create(committee, 'committees', committee.hubspot_properties())

        return Response({
            'detail': "Committee created successfully.",
            'committee': self.get_serializer(committee).data
        }, status=status.HTTP_201_CREATED)


class CommitteeDetailAPIView(generics.RetrieveUpdateDestroyAPIView):
    """
    GET: Committee detail; private committees are visible to members only.
    PATCH: Chair or moderators edit the committee.
    DELETE: Chair archives the committee.
    """
    serializer_class = my_serializers.CommitteeSerializer
    permission_classes = [IsAuthenticated, CanViewCommittee, IsCommitteeLeadOrReadOnly]
    lookup_field = 'id'
    http_method_names = ['get', 'patch', 'delete']

    def get_queryset(self):
        return committee_queryset(self.request.user)

    @swagger_auto_schema(operation_summary="Retrieve a committee")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(operation_summary="Update a committee")
    def patch(self, request, *args, **kwargs):
        return super().patch(request, *args, **kwargs)

    @swagger_auto_schema(operation_summary="Archive a committee", responses={204: "Archived", 403: "Chair only"})
    def delete(self, request, *args, **kwargs):
        return super().delete(request, *args, **kwargs)

    def perform_update(self, serializer):
        committee = serializer.save()
        logger.info(f"Committee {committee.id} updated by {self.request.user.email}")
        mirror_update(committee, 'committees', committee.hubspot_properties())

    def perform_destroy(self, instance):
        instance.status = 'archived'
        instance.save(update_fields=['status', 'updated_at'])
        logger.info(f"Committee {instance.id} archived by {self.request.user.email}")
        mirror_archive(instance, 'committees')


class CommitteeMemberListCreateAPIView(generics.ListCreateAPIView):
    """
    GET: Active members, chair first, then moderators, then members by join date.
    Leads may pass status=pending to see requests awaiting approval.
    POST: The chair or a member who can invite adds someone to the committee.
    """
    serializer_class = my_serializers.CommitteeMembershipSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = None

    def get_committee(self):
        committee = get_object_or_404(Committee, id=self.kwargs['id'])
        if not CanViewCommittee().has_object_permission(self.request, self, committee):
            self.permission_denied(self.request, message=CanViewCommittee.message)
        return committee

    def get_queryset(self):
        committee = self.get_committee()
        wanted = self.request.query_params.get('status', 'active')
        if wanted != 'active' and not can_manage_members(committee, self.request.user, 'can_moderate'):
            wanted = 'active'
        return (
            committee.memberships.filter(status=wanted)
            .select_related('member')
            .annotate(role_order=ROLE_ORDER)
            .order_by('role_order', 'joined_at')
        )

    @swagger_auto_schema(operation_summary="List committee members")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_summary="Add a member to a committee",
        request_body=my_serializers.AddCommitteeMemberSerializer,
        responses={201: my_serializers.CommitteeMembershipSerializer(), 400: "Already a member or committee full", 403: "Forbidden", 404: "Member not found"}
    )
    def post(self, request, *args, **kwargs):
        return super().post(request, *args, **kwargs)

    def create(self, request, *args, **kwargs):
        committee = self.get_committee()
        if not can_manage_members(committee, request.user, 'can_invite'):
            self.permission_denied(request, message="Only the chair or members who can invite may add members.")

        serializer = my_serializers.AddCommitteeMemberSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        member = get_object_or_404(User, id=serializer.validated_data['member_id'], is_active=True)
        role = serializer.validated_data['role']

        membership = committee.memberships.filter(member=member).first()
        if membership is not None and membership.status != 'inactive':
            raise ValidationError({'member_id': "This member already belongs to the committee."})
        if committee.max_members is not None and committee.member_count >= committee.max_members:
            raise ValidationError({'detail': "This committee has reached its maximum number of members."})

        if membership is None:
            membership = CommitteeMembership(committee=committee, member=member)
        membership.role = role
        membership.status = 'pending' if committee.requires_approval else 'active'
        membership.invited_by = request.user
        for field, value in CommitteeMembership.permissions_for(role).items():
            setattr(membership, field, value)
        membership.save()

        logger.info(f"{member.email} added to committee {committee.id} as {role} ({membership.status}) by {request.user.email}")
        notify(
            member, 'committee_invitation',
            title=f"You were added to {committee.name}",
            message=f"{request.user.get_full_name() or request.user.email} added you to the {committee.name} committee as {role}.",
            sender=request.user,
            action_url=f"/community/committees/{committee.id}/",
        )
        mirror_update(committee, 'committees', committee.hubspot_properties())

        return Response({
            'detail': "Member added to the committee.",
            'membership': my_serializers.CommitteeMembershipSerializer(membership).data
        }, status=status.HTTP_201_CREATED)


class CommitteeMembershipDetailAPIView(views.APIView):
    permission_classes = [IsAuthenticated]

    def get_membership(self, id, membership_id):
        return get_object_or_404(CommitteeMembership.objects.select_related('committee', 'member'), id=membership_id, committee_id=id)

    @swagger_auto_schema(
        operation_summary="Approve, deactivate or change the role of a committee member",
        request_body=my_serializers.UpdateCommitteeMembershipSerializer,
        responses={200: my_serializers.CommitteeMembershipSerializer(), 400: "Validation error", 403: "Forbidden"}
    )
    def patch(self, request, id, membership_id):
        membership = self.get_membership(id, membership_id)
        if not can_manage_members(membership.committee, request.user, 'can_moderate'):
            self.permission_denied(request, message="Only the chair or a moderator can manage members.")

        serializer = my_serializers.UpdateCommitteeMembershipSerializer(data=request.data, context={'membership': membership})
        serializer.is_valid(raise_exception=True)

        role = serializer.validated_data.get('role')
        if role:
            membership.role = role
            for field, value in CommitteeMembership.permissions_for(role).items():
                setattr(membership, field, value)
        membership.status = serializer.validated_data.get('status', membership.status)
        membership.save()
        logger.info(f"Committee membership {membership.id} now {membership.role}/{membership.status}")

        return Response(my_serializers.CommitteeMembershipSerializer(membership).data, status=status.HTTP_200_OK)

    @swagger_auto_schema(
        operation_summary="Leave a committee or remove a member",
        responses={204: "Removed", 400: "The chair cannot leave", 403: "Forbidden"}
    )
    def delete(self, request, id, membership_id):
        membership = self.get_membership(id, membership_id)
        is_self = membership.member_id == request.user.id
        if not is_self and not can_manage_members(membership.committee, request.user, 'can_moderate'):
            self.permission_denied(request, message="Only the chair or a moderator can remove members.")
        if membership.role == 'chair':
            raise ValidationError({'detail': "The chair cannot leave the committee."})

        membership.status = 'inactive'
        membership.save(update_fields=['status'])
        logger.info(f"{membership.member.email} left committee {membership.committee_id}")
        return Response(status=status.HTTP_204_NO_CONTENT)


class DiscussionListCreateAPIView(generics.ListCreateAPIView):
    """
    GET: Active discussion threads visible to the current member, pinned first,
    then by latest activity.
    Query params:
        - category, discussion_type, committee, author (filter)
        - search (title, content)
        - ordering (last_activity_at, created_at, view_count)
    POST: Start a discussion thread.
    """
    serializer_class = my_serializers.DiscussionSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_fields = ['category', 'discussion_type', 'committee', 'author']
    search_fields = ['title', 'content']
    ordering_fields = ['last_activity_at', 'created_at', 'view_count']
    ordering = ['-is_pinned', '-last_activity_at']
    pagination_class = CommunityPagination

    def get_queryset(self):
        user = self.request.user
        queryset = (
            Discussion.objects.filter(parent__isnull=True, status='active')
            .select_related('author', 'committee')
            .annotate(reply_count=Count('replies', filter=Q(replies__status='active'), distinct=True))
        )
        if is_portal_admin(user):
            return queryset
        my_committees = CommitteeMembership.objects.filter(member=user, status='active').values('committee')
        return queryset.filter(Q(is_public=True) | Q(author=user) | Q(committee__in=my_committees))

    @swagger_auto_schema(operation_summary="List discussions")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_summary="Start a discussion",
        request_body=my_serializers.DiscussionSerializer,
        responses={201: my_serializers.DiscussionSerializer(), 400: "Validation error"}
    )
    def post(self, request, *args, **kwargs):
        return super().post(request, *args, **kwargs)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        discussion = serializer.save()
        logger.info(f"Discussion {discussion.id} '{discussion.title}' started by {request.user.email}")
        mirror_create(discussion, 'discussions', discussion.hubspot_properties())

        return Response({
            'detail': "Discussion created successfully.",
            'discussion': self.get_serializer(discussion).data
        }, status=status.HTTP_201_CREATED)


class DiscussionDetailAPIView(generics.RetrieveUpdateAPIView):
    """
    GET: Thread with its replies; each read counts as a view.
    PATCH: The author edits, closes or archives the thread.
    """
    serializer_class = my_serializers.DiscussionDetailSerializer
    permission_classes = [IsAuthenticated, CanViewDiscussion, IsAuthorOrReadOnly]
    queryset = Discussion.objects.filter(parent__isnull=True).select_related('author', 'committee')
    lookup_field = 'id'
    http_method_names = ['get', 'patch']

    @swagger_auto_schema(operation_summary="Retrieve a discussion")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(operation_summary="Update a discussion")
    def patch(self, request, *args, **kwargs):
        return super().patch(request, *args, **kwargs)

    def retrieve(self, request, *args, **kwargs):
        discussion = self.get_object()
        Discussion.objects.filter(pk=discussion.pk).update(view_count=F('view_count') + 1)
        discussion.view_count += 1
        return Response(self.get_serializer(discussion).data)

    def perform_update(self, serializer):
        discussion = serializer.save()
        logger.info(f"Discussion {discussion.id} updated by {self.request.user.email}")
        mirror_update(discussion, 'discussions', discussion.hubspot_properties())


class DiscussionReplyCreateAPIView(views.APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Reply to a discussion",
        request_body=my_serializers.DiscussionReplySerializer,
        responses={201: my_serializers.DiscussionReplySerializer(), 400: "Replies closed", 403: "Forbidden"}
    )
    def post(self, request, id):
        discussion = get_object_or_404(Discussion, id=id, parent__isnull=True)
        if not CanViewDiscussion().has_object_permission(request, self, discussion):
            self.permission_denied(request, message=CanViewDiscussion.message)
        if discussion.status != 'active' or not discussion.allow_replies:
            raise ValidationError({'detail': "This discussion is not accepting replies."})

        serializer = my_serializers.DiscussionReplySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        now = timezone.now()
        reply = serializer.save(
            author=request.user,
            parent=discussion,
            committee=discussion.committee,
            category=discussion.category,
            is_public=discussion.is_public,
            last_activity_at=now,
        )
        discussion.last_activity_at = now
        discussion.save(update_fields=['last_activity_at', 'updated_at'])
        logger.info(f"{request.user.email} replied to discussion {discussion.id}")

        if discussion.author_id != request.user.id:
            notify(
                discussion.author, 'discussion_reply',
                title=f"New reply on \"{discussion.title}\"",
                message=reply.content[:200],
                sender=request.user,
                priority='low',
                action_url=f"/community/discussions/{discussion.id}/",
            )

        return Response({
            'detail': "Reply posted.",
            'reply': my_serializers.DiscussionReplySerializer(reply).data
        }, status=status.HTTP_201_CREATED)


class CommitteeMeetingListCreateAPIView(generics.ListCreateAPIView):
    """
    GET: Meetings of a committee the member can see, newest first.
    Query params:
        - status (filter)
        - upcoming=true (only future meetings, soonest first)
    POST: The chair or a moderator schedules a meeting; every active member is invited.
    """
    serializer_class = my_serializers.CommitteeMeetingSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = None

    def get_committee(self):
        committee = get_object_or_404(Committee, id=self.kwargs['id'])
        if not CanViewCommittee().has_object_permission(self.request, self, committee):
            self.permission_denied(self.request, message=CanViewCommittee.message)
        return committee

    def get_queryset(self):
        committee = self.get_committee()
        queryset = committee.meetings.prefetch_related('attendees__member')
        wanted = self.request.query_params.get('status')
        if wanted:
            queryset = queryset.filter(status=wanted)
        if self.request.query_params.get('upcoming') in ('true', '1'):
            return queryset.filter(scheduled_date__gte=timezone.now()).order_by('scheduled_date')
        return queryset.order_by('-scheduled_date')

    @swagger_auto_schema(operation_summary="List committee meetings")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_summary="Schedule a committee meeting",
        request_body=my_serializers.CommitteeMeetingSerializer,
        responses={201: my_serializers.CommitteeMeetingSerializer(), 400: "Validation error", 403: "Forbidden"}
    )
    def post(self, request, *args, **kwargs):
        return super().post(request, *args, **kwargs)

    def create(self, request, *args, **kwargs):
        committee = self.get_committee()
        if not can_manage_members(committee, request.user, 'can_moderate'):
            self.permission_denied(request, message="Only the chair or a moderator can schedule meetings.")

        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        meeting = serializer.save(committee=committee, created_by=request.user)

        members = [m.member for m in committee.memberships.filter(status='active').select_related('member')]
        MeetingAttendance.objects.bulk_create([MeetingAttendance(meeting=meeting, member=member) for member in members])
        for member in members:
            if member.id != request.user.id:
                notify(
                    member, 'committee_meeting',
                    title=f"{committee.name}: {meeting.title}",
                    message=f"Meeting scheduled for {timezone.localtime(meeting.scheduled_date):%b %d, %Y %I:%M %p}.",
                    sender=request.user,
                    action_url=f"/community/committees/{committee.id}/meetings/",
                    data={'meeting_id': meeting.id},
                )

        logger.info(f"Meeting {meeting.id} scheduled for committee {committee.id} with {len(members)} invitee(s)")
        mirror_create(meeting, 'committee_meetings', meeting.hubspot_properties())

        return Response({
            'detail': "Meeting scheduled.",
            'meeting': self.get_serializer(meeting).data
        }, status=status.HTTP_201_CREATED)


class MeetingRSVPAPIView(views.APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Accept or decline a meeting invitation",
        request_body=my_serializers.MeetingRSVPSerializer,
        responses={200: my_serializers.MeetingAttendanceSerializer(), 400: "Meeting not open", 404: "Not invited"}
    )
    def post(self, request, id, meeting_id):
        meeting = get_object_or_404(CommitteeMeeting, id=meeting_id, committee_id=id)
        attendance = get_object_or_404(MeetingAttendance, meeting=meeting, member=request.user)
        if meeting.status != 'scheduled':
            raise ValidationError({'detail': f"This meeting is {meeting.status}."})

        serializer = my_serializers.MeetingRSVPSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        attendance.status = serializer.validated_data['status']
        attendance.responded_at = timezone.now()
        attendance.save(update_fields=['status', 'responded_at'])
        logger.info(f"{request.user.email} is {attendance.status} meeting {meeting.id}")

        return Response(my_serializers.MeetingAttendanceSerializer(attendance).data, status=status.HTTP_200_OK)
