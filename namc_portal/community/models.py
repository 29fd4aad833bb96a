from django.db import models
from django.contrib.auth import get_user_model
from django.utils import timezone
from auditlog.registry import auditlog

from hubspot.models import HubSpotSyncedModel

User = get_user_model()


class Committee(HubSpotSyncedModel):
    CATEGORY_CHOICES = (
        ('projects', 'Projects'),
        ('advocacy', 'Advocacy'),
        ('education', 'Education'),
        ('events', 'Events'),
        ('membership', 'Membership'),
        ('finance', 'Finance'),
    )
    STATUS_CHOICES = (
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('archived', 'Archived'),
    )

    name = models.CharField(max_length=200, unique=True)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, default='projects')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='active', db_index=True)
    chair = models.ForeignKey(User, related_name='chaired_committees', on_delete=models.PROTECT)
    is_public = models.BooleanField(default=True)
    requires_approval = models.BooleanField(default=False)
    meeting_frequency = models.CharField(max_length=50, blank=True)
    max_members = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    def active_membership(self, user):
        if not user or not user.is_authenticated:
            return None
        return self.memberships.filter(member=user, status='active').first()

    @property
    def member_count(self):
        return self.memberships.filter(status='active').count()

    @property
    def next_meeting(self):
        upcoming = self.meetings.filter(status='scheduled', scheduled_date__gte=timezone.now()).order_by('scheduled_date').first()
        return upcoming.scheduled_date if upcoming else None

    def hubspot_properties(self):
        return {
            'committee_name': self.name,
            'description': self.description,
            'category': self.category,
            'committee_status': self.status,
            'chair_id': str(self.chair_id),
            'is_public': str(self.is_public).lower(),
            'member_count': str(self.member_count),
        }


class CommitteeMembership(models.Model):
    ROLE_CHOICES = (
        ('chair', 'Chair'),
        ('moderator', 'Moderator'),
        ('member', 'Member'),
    )
    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('active', 'Active'),
        ('inactive', 'Inactive'),
    )

    committee = models.ForeignKey(Committee, related_name='memberships', on_delete=models.CASCADE)
    member = models.ForeignKey(User, related_name='committee_memberships', on_delete=models.CASCADE)
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default='member')
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='active')
    can_post = models.BooleanField(default=True)
    can_invite = models.BooleanField(default=False)
    can_moderate = models.BooleanField(default=False)
    invited_by = models.ForeignKey(User, related_name='+', on_delete=models.SET_NULL, null=True, blank=True)
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('committee', 'member')
        ordering = ['joined_at', 'id']

    def __str__(self):
        return f"{self.member} in {self.committee} ({self.role})"

    @staticmethod
    def permissions_for(role):
        leads = role in ('chair', 'moderator')
        return {'can_post': True, 'can_invite': leads, 'can_moderate': leads}


class CommitteeMeeting(HubSpotSyncedModel):
    TYPE_CHOICES = (
        ('regular', 'Regular'),
        ('special', 'Special'),
        ('workshop', 'Workshop'),
    )
    STATUS_CHOICES = (
        ('scheduled', 'Scheduled'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    )

    committee = models.ForeignKey(Committee, related_name='meetings', on_delete=models.CASCADE)
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    scheduled_date = models.DateTimeField()
    duration_minutes = models.PositiveIntegerField(default=60)
    location = models.CharField(max_length=255, blank=True)
    meeting_type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='regular')
    agenda = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='scheduled')
    created_by = models.ForeignKey(User, related_name='+', on_delete=models.SET_NULL, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-scheduled_date']

    def __str__(self):
        return f"{self.committee}: {self.title} ({self.scheduled_date:%Y-%m-%d})"

    def hubspot_properties(self):
        return {
            'committee_id': str(self.committee_id),
            'title': self.title,
            'scheduled_date': self.scheduled_date.isoformat(),
            'duration_minutes': str(self.duration_minutes),
            'location': self.location,
            'meeting_type': self.meeting_type,
            'meeting_status': self.status,
        }


class MeetingAttendance(models.Model):
    STATUS_CHOICES = (
        ('invited', 'Invited'),
        ('attending', 'Attending'),
        ('declined', 'Declined'),
        ('attended', 'Attended'),
    )

    meeting = models.ForeignKey(CommitteeMeeting, related_name='attendees', on_delete=models.CASCADE)
    member = models.ForeignKey(User, related_name='meeting_attendance', on_delete=models.CASCADE)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='invited')
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        unique_together = ('meeting', 'member')


class Discussion(HubSpotSyncedModel):
    CATEGORY_CHOICES = (
        ('general', 'General'),
        ('projects', 'Projects'),
        ('business', 'Business Development'),
        ('safety', 'Safety'),
        ('networking', 'Networking'),
        ('events', 'Events'),
    )
    TYPE_CHOICES = (
        ('discussion', 'Discussion'),
        ('question', 'Question'),
        ('announcement', 'Announcement'),
        ('opportunity', 'Opportunity'),
    )
    STATUS_CHOICES = (
        ('active', 'Active'),
        ('closed', 'Closed'),
        ('archived', 'Archived'),
    )

    author = models.ForeignKey(User, related_name='discussions', on_delete=models.CASCADE)
    committee = models.ForeignKey(Committee, related_name='discussions', on_delete=models.CASCADE, null=True, blank=True)
    parent = models.ForeignKey('self', related_name='replies', on_delete=models.CASCADE, null=True, blank=True)
    title = models.CharField(max_length=200, blank=True)
    content = models.TextField()
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, default='general')
    discussion_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='discussion')
    tags = models.JSONField(default=list, blank=True)
    is_public = models.BooleanField(default=True)
    allow_replies = models.BooleanField(default=True)
    is_pinned = models.BooleanField(default=False)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default='active', db_index=True)
    view_count = models.PositiveIntegerField(default=0)
    last_activity_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-is_pinned', '-last_activity_at']

    def __str__(self):
        return self.title or f"Reply to #{self.parent_id}"

    def is_visible_to(self, user):
        """Public threads are open to every member; private ones to the author and the committee."""
        if self.is_public or self.author_id == user.id:
            return True
        return self.committee is not None and self.committee.active_membership(user) is not None

    def hubspot_properties(self):
        return {
            'title': self.title,
            'category': self.category,
            'discussion_type': self.discussion_type,
            'author_id': str(self.author_id),
            'committee_id': str(self.committee_id or ''),
            'tags': ';'.join(self.tags or []),
            'discussion_status': self.status,
        }


auditlog.register(Committee)
auditlog.register(CommitteeMembership)
