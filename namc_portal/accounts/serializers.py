from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.exceptions import AuthenticationFailed
from django.contrib.auth import authenticate
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoPasswordValidationError
from django.utils import timezone


from .models import Member


class MemberTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Serializer for member login and token generation.

    Fields:
        - email (required)
        - password (required)
    Validates credentials and checks that the account is active before issuing tokens.
    """
    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['email'] = user.email
        token['member_type'] = user.member_type
        return token

    def validate(self, attrs):
        member = Member.objects.filter(email=attrs.get('email')).first()
        if member is None:
            raise serializers.ValidationError("Invalid credentials")
        if not member.is_active:
            raise AuthenticationFailed("Your account is deactivated.")

        if authenticate(email=attrs.get('email'), password=attrs.get('password')) is None:
            raise serializers.ValidationError("Invalid credentials")

        return super().validate(attrs)


class RegistrationSerializer(serializers.ModelSerializer):
    """
    Serializer for member registration.

    Fields :
        required: first_name, last_name, email, password, confirm_password
        optional: member_type (member, contractor or sponsor), company, phone_number, location, country
    Validates password confirmation and creates a new member.
    """
    password = serializers.CharField(required=True, write_only=True)
    confirm_password = serializers.CharField(required=True, write_only=True)

    class Meta:
        model = Member
        fields = ['id', 'first_name', 'last_name', 'member_type', 'company', 'phone_number', 'location', 'country', 'email', 'password', 'confirm_password']
        read_only_fields = ['id']
        extra_kwargs = {
            'first_name': {'required': True},
            'last_name': {'required': True},
            'email': {'required': True},
        }

    def validate_member_type(self, value):
        if value == 'admin':
            raise serializers.ValidationError("Admin accounts cannot be self-registered.")
        return value

    def validate(self, attrs):
        if attrs['password'] != attrs['confirm_password']:
            raise serializers.ValidationError("Passwords do not match.")
        prospective_member = Member(
            email=attrs.get('email'),
            first_name=attrs.get('first_name'),
            last_name=attrs.get('last_name'),
            company=attrs.get('company', ''),
        )

        try:
            validate_password(attrs['password'], user=prospective_member)
        except DjangoPasswordValidationError as exc:
            raise serializers.ValidationError({'password': list(exc.messages)})

        return attrs

    def create(self, validated_data):
        validated_data.pop('confirm_password')
        return Member.objects.create_user(**validated_data)


class MemberProfileSerializer(serializers.ModelSerializer):
    """
    Serializer for member profile retrieval and updates.

    Fields:
        read-only: id, email, member_type, hubspot_sync_status
        - first_name, last_name, company, phone_number, location, website, country
    """
    class Meta:
        model = Member
        fields = ('id', 'first_name', 'last_name', 'email', 'member_type', 'company', 'phone_number', 'location', 'website', 'country', 'hubspot_sync_status')
        read_only_fields = ('id', 'email', 'member_type', 'hubspot_sync_status')


class MemberSummarySerializer(serializers.ModelSerializer):
    """Compact member reference embedded in project, escrow, dispute and reservation payloads."""
    class Meta:
        model = Member
        fields = ['id', 'first_name', 'last_name', 'email', 'company', 'member_type']
        read_only_fields = fields


class ChangePasswordSerializer(serializers.Serializer):
    """
    Serializer for changing a member's password.

    Fields (all are required):
        - old_password
        - new_password
        - confirm_password
    """
    old_password = serializers.CharField(required=True)
    new_password = serializers.CharField(required=True)
    confirm_password = serializers.CharField(required=True)

    def validate(self, attrs):
        member = self.context['request'].user

        if not member.check_password(attrs['old_password']):
            raise serializers.ValidationError("Incorrect password.")

        if attrs['new_password'] != attrs['confirm_password']:
            raise serializers.ValidationError("Passwords do not match.")

        try:
            validate_password(attrs['new_password'], user=member)
        except DjangoPasswordValidationError as exc:
            raise serializers.ValidationError({'new_password': list(exc.messages)})

        return attrs

    def update(self, instance, validated_data):
        instance.set_password(validated_data['new_password'])
        instance.save()

        return instance


class MemberListSerializer(serializers.ModelSerializer):
    """
    Serializer for the admin member directory.
    """
    class Meta:
        model = Member
        fields = ['id', 'email', 'first_name', 'last_name', 'member_type', 'company', 'location', 'is_active', 'hubspot_sync_status', 'created_at', 'updated_at', 'deleted_at']


class MemberDeactivateSerializer(serializers.ModelSerializer):
    """
    Soft-deletes the member: sets deleted_at and deactivates the account.
    """
    class Meta:
        model = Member
        fields = ['id', 'email', 'is_active', 'deleted_at']
        read_only_fields = ['id', 'email', 'is_active', 'deleted_at']

    def update(self, instance, validated_data):
        instance.deleted_at = timezone.now()
        instance.is_active = False
        instance.save(update_fields=['deleted_at', 'is_active', 'updated_at'])
        return instance
