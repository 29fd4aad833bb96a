from django.db import models
from django.contrib.auth.models import AbstractUser, BaseUserManager, UserManager
from country_list import countries_for_language
from auditlog.registry import auditlog
from auditlog.models import AuditlogHistoryField

from hubspot.models import HubSpotSyncedModel


class MemberManager(BaseUserManager):
    """
    Manager for Member. Handles member and superuser creation using email as the unique identifier.
    """
    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError("Email is required.")
        email = self.normalize_email(email)
        member = self.model(email=email, **extra_fields)
        member.set_password(password)
        member.save(using=self._db)
        return member

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('member_type', 'admin')

        return self.create_user(email, password, **extra_fields)


class ActiveMemberManager(UserManager):
    """
    Manager for active members only (is_active=True, deleted_at=None).
    """
    def get_queryset(self):
        return super().get_queryset().filter(is_active=True, deleted_at__isnull=True)


class Member(AbstractUser, HubSpotSyncedModel):
    """
    Portal member. Logs in with email; member_type drives what the member may do
    (admins run the tool library and see every project, contractors get paid out
    of project escrows). Audit-logged and soft-deleted through deleted_at.
    The HubSpot mirror is the member's CRM contact.
    """
    MEMBER_TYPE_CHOICES = (
        ('admin', 'Admin'),
        ('member', 'Member'),
        ('contractor', 'Contractor'),
        ('sponsor', 'Sponsor'),
    )

    member_type = models.CharField(max_length=20, choices=MEMBER_TYPE_CHOICES, default='member')
    company = models.CharField(max_length=255, blank=True)
    phone_number = models.CharField(max_length=20, blank=True)
    location = models.CharField(max_length=255, blank=True)
    website = models.URLField(blank=True)
    country = models.CharField(max_length=50, choices=countries_for_language('en'), default='US')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    email = models.EmailField(unique=True, blank=False)
    deleted_at = models.DateTimeField(null=True, blank=True)
    username = None

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['first_name', 'last_name']

    objects = MemberManager()
    active_objects = ActiveMemberManager()

    history = AuditlogHistoryField()

    def __str__(self):
        return self.email

    @property
    def is_portal_admin(self):
        return self.is_staff or self.member_type == 'admin'

    def hubspot_contact_properties(self):
        city, _, state = self.location.partition(',')
        return {
            'firstname': self.first_name,
            'lastname': self.last_name,
            'company': self.company,
            'phone': self.phone_number,
            'website': self.website,
            'city': city.strip(),
            'state': state.strip(),
            'namc_member_id': str(self.pk),
            'namc_member_type': self.member_type,
            'namc_join_date': self.created_at.isoformat() if self.created_at else '',
            'namc_is_active': 'true' if self.is_active else 'false',
            'namc_location': self.location,
        }


auditlog.register(Member, exclude_fields=['password', 'last_login', 'hubspot_last_sync'])
