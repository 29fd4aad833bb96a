import logging

from rest_framework_simplejwt import views as jwt_views, tokens, authentication
from rest_framework import views as drf_views, generics, permissions, status
from django.db import transaction
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework.filters import SearchFilter, OrderingFilter
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi


from hubspot.sync import mirror_contact
from . import serializers as my_serializers
from . import models as my_models
from .pagination import MemberListPagination
from .permissions import IsPortalAdmin

logger = logging.getLogger(__name__)


class MemberTokenObtainPairView(jwt_views.TokenObtainPairView):
    serializer_class = my_serializers.MemberTokenObtainPairSerializer


class RegistrationAPIView(generics.CreateAPIView):
    """
    Handles new member registration.

    Accepts a POST request with member details:
        - email, password, confirm_password, first_name, last_name (required)
        - member_type, company, phone_number, location, country (optional)
    Creates the member, mirrors them to a HubSpot contact and returns the
    member's data along with JWT access and refresh tokens.
    """
    serializer_class = my_serializers.RegistrationSerializer
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    @swagger_auto_schema(
        operation_summary="Register a new member",
        responses={
            201: my_serializers.RegistrationSerializer,
            400: "Invalid input"
        }
    )
    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with transaction.atomic():
            member = serializer.save()
            refresh = tokens.RefreshToken.for_user(member)

        mirror_contact(member)
        logger.info(f"Registered member {member.pk} ({member.member_type})")

        return Response(
            {
                'user': serializer.data,
                'refresh': str(refresh),
                'access': str(refresh.access_token)
            },
            status=status.HTTP_201_CREATED
        )


class MemberProfileRetrieveUpdateAPIView(generics.RetrieveUpdateAPIView):
    """
    Allows authenticated members to retrieve and update their own profile.

    GET: Returns the profile of the currently authenticated member.
    PUT/PATCH: Updates the profile and re-syncs the HubSpot contact.
    The 'id', 'email' and 'member_type' fields are read-only.
    """
    serializer_class = my_serializers.MemberProfileSerializer
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(operation_summary="Retrieve member profile")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(operation_summary="Update member profile")
    def put(self, request, *args, **kwargs):
        return super().put(request, *args, **kwargs)

    @swagger_auto_schema(operation_summary="Partially update member profile")
    def patch(self, request, *args, **kwargs):
        return super().patch(request, *args, **kwargs)

    def get_object(self):
        return self.request.user

    def perform_update(self, serializer):
        member = serializer.save()
        mirror_contact(member)


class ChangePasswordAPIView(drf_views.APIView):
    """
    Allows an authenticated member to change their password.
    """
    serializer_class = my_serializers.ChangePasswordSerializer
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Change the current member's password",
        request_body=my_serializers.ChangePasswordSerializer,
        responses={
            200: "Password updated successfully",
            400: "Invalid input"
        }
    )
    def post(self, request, *args, **kwargs):
        serializer = self.serializer_class(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        serializer.update(request.user, serializer.validated_data)
        return Response({
            'detail': "Password updated successfully"
        }, status=status.HTTP_200_OK)


class LogoutAPIView(drf_views.APIView):
    """
    Logs a member out by blacklisting the refresh token sent in X-Refresh-Token.
    """
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Log out by blacklisting the refresh token",
        manual_parameters=[
            openapi.Parameter(
                'X-Refresh-Token',
                openapi.IN_HEADER,
                description="Refresh token to blacklist",
                type=openapi.TYPE_STRING,
                required=True
            )
        ],
        responses={
            200: "Logout successful",
            400: "Invalid token"
        }
    )
    def post(self, request):
        refresh_token = request.headers.get('X-Refresh-Token')
        if not refresh_token:
            return Response({'detail': 'X-Refresh-Token header is required.'}, status=status.HTTP_400_BAD_REQUEST)

        try:
            tokens.RefreshToken(refresh_token).blacklist()
        except tokens.TokenError:
            return Response({'detail': 'Invalid token.'}, status=status.HTTP_400_BAD_REQUEST)

        return Response({'detail': "Logout successful."}, status=status.HTTP_200_OK)


class MemberListAPIView(generics.ListAPIView):
    """
    Member directory for portal admins.

    Query Parameters:
        - member_type, is_active, hubspot_sync_status (filter)
        - search (email, first_name, last_name, company)
        - ordering (id, last_name, first_name, member_type, created_at)
    """
    serializer_class = my_serializers.MemberListSerializer
    permission_classes = [permissions.IsAuthenticated, IsPortalAdmin]

    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_fields = ['member_type', 'is_active', 'hubspot_sync_status']
    search_fields = ['email', 'first_name', 'last_name', 'company']
    ordering_fields = ['id', 'last_name', 'first_name', 'member_type', 'created_at']
    ordering = ['last_name', 'first_name']
    pagination_class = MemberListPagination

    @swagger_auto_schema(
        operation_summary="List members (admin only)",
        responses={
            200: my_serializers.MemberListSerializer(many=True),
            403: "Forbidden"
        }
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        return my_models.Member.objects.all()


class MemberDeactivateAPIView(generics.UpdateAPIView):
    """
    Soft-deletes the current member's account and blacklists the refresh
    token passed in X-Refresh-Token, if any.
    """
    serializer_class = my_serializers.MemberDeactivateSerializer
    permission_classes = [permissions.IsAuthenticated]
    authentication_classes = [authentication.JWTAuthentication]
    http_method_names = ['patch']

    def get_object(self):
        return self.request.user

    @swagger_auto_schema(
        operation_summary="Deactivate the current member's account",
        responses={200: "Account deactivated"}
    )
    def update(self, request, *args, **kwargs):
        member = self.get_object()

        refresh_token = request.headers.get('X-Refresh-Token')
        if refresh_token:
            try:
                tokens.RefreshToken(refresh_token).blacklist()
            except tokens.TokenError:
                logger.info(f"Ignoring invalid refresh token on deactivation of member {member.pk}")

        serializer = self.get_serializer(member, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        self.perform_update(serializer)
        mirror_contact(member)
        return Response({'detail': "Account deactivated."}, status=status.HTTP_200_OK)
