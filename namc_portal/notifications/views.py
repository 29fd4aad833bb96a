import logging

from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, status, views
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema

from . import serializers as my_serializers
from .models import Notification
from .pagination import NotificationPagination
from .utils import notify

logger = logging.getLogger(__name__)


class NotificationListCreateAPIView(generics.ListCreateAPIView):
    """
    GET: The current member's notifications, newest first, with the unread count.
    Query params:
        - read, notification_type, priority, project (filter)
    POST: Notify the other participant of a project.
    """
    serializer_class = my_serializers.NotificationSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['read', 'notification_type', 'priority', 'project']
    pagination_class = NotificationPagination

    def get_queryset(self):
        return Notification.objects.filter(recipient=self.request.user).select_related('sender')

    @swagger_auto_schema(operation_summary="List my notifications")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_summary="Send a project notification",
        request_body=my_serializers.NotificationCreateSerializer,
        responses={201: my_serializers.NotificationSerializer(), 400: "Validation error"}
    )
    def post(self, request, *args, **kwargs):
        return super().post(request, *args, **kwargs)

    def list(self, request, *args, **kwargs):
        response = super().list(request, *args, **kwargs)
        response.data['unread_count'] = self.get_queryset().filter(read=False).count()
        return response

    def create(self, request, *args, **kwargs):
        serializer = my_serializers.NotificationCreateSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)

        notification = notify(sender=request.user, **serializer.validated_data)
        return Response({
            'detail': "Notification sent.",
            'notification': my_serializers.NotificationSerializer(notification).data
        }, status=status.HTTP_201_CREATED)


class NotificationDetailAPIView(generics.RetrieveUpdateAPIView):
    """
    GET: One of the current member's notifications.
    PATCH: Mark it read or unread.
    """
    serializer_class = my_serializers.NotificationSerializer
    permission_classes = [IsAuthenticated]
    lookup_field = 'id'
    http_method_names = ['get', 'patch']

    def get_queryset(self):
        return Notification.objects.filter(recipient=self.request.user).select_related('sender')

    @swagger_auto_schema(operation_summary="Retrieve a notification")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(operation_summary="Mark a notification read or unread")
    def patch(self, request, *args, **kwargs):
        return super().patch(request, *args, **kwargs)


class MarkAllNotificationsReadAPIView(views.APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Mark every unread notification as read",
        responses={200: "Number of notifications updated"}
    )
    def post(self, request):
        updated = Notification.objects.filter(recipient=request.user, read=False).update(read=True, read_at=timezone.now())
        logger.info(f"{request.user.email} marked {updated} notification(s) read")
        return Response({'detail': "Notifications marked as read.", 'updated': updated}, status=status.HTTP_200_OK)
