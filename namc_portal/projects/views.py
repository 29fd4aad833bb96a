import logging

from rest_framework import views as drf_views, generics, status
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework.filters import SearchFilter, OrderingFilter
from django_filters.rest_framework import DjangoFilterBackend
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils import timezone
from drf_yasg.utils import swagger_auto_schema


from accounts.permissions import is_portal_admin
from notifications.utils import notify, notify_project_participants
from . import serializers as my_serializers
from .permissions import IsOwnerOrPortalAdmin, IsProjectParticipantOrPortalAdmin
from .utils import send_contractor_assigned_email
from .models import Project

logger = logging.getLogger(__name__)


class ListCreateProjectAPIView(generics.ListCreateAPIView):
    """
    GET: Projects the member owns or is contracted on; portal admins see every project.
    POST: Creates a project owned by the current member.
    """
    serializer_class = my_serializers.ProjectSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_fields = ['status']
    search_fields = ['title', 'description', 'location']
    ordering_fields = ['created_at', 'budget', 'expected_completion_date']
    ordering = ['-created_at']

    @swagger_auto_schema(operation_summary="List projects visible to the current member")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(operation_summary="Create a project")
    def post(self, request, *args, **kwargs):
        return super().post(request, *args, **kwargs)

    def get_queryset(self):
        queryset = Project.objects.select_related('owner', 'contractor')
        user = self.request.user
        if is_portal_admin(user):
            return queryset
        return queryset.filter(Q(owner=user) | Q(contractor=user))

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self.perform_create(serializer)

        return Response({
            'detail': "Project created successfully.",
            'project': serializer.data
        }, status=status.HTTP_201_CREATED)


class RetrieveUpdateProjectAPIView(generics.RetrieveUpdateAPIView):
    """
    GET: Project detail for participants and portal admins.
    PUT/PATCH: Owner (or admin) edits title, description, budget, location and dates.
    """
    serializer_class = my_serializers.ProjectSerializer
    permission_classes = [IsAuthenticated, IsProjectParticipantOrPortalAdmin]
    queryset = Project.objects.select_related('owner', 'contractor')
    lookup_field = 'id'

    @swagger_auto_schema(operation_summary="Retrieve a project")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(operation_summary="Update a project")
    def put(self, request, *args, **kwargs):
        return super().put(request, *args, **kwargs)

    @swagger_auto_schema(operation_summary="Partially update a project")
    def patch(self, request, *args, **kwargs):
        return super().patch(request, *args, **kwargs)

    def check_object_permissions(self, request, obj):
        super().check_object_permissions(request, obj)
        if request.method in ('PUT', 'PATCH') and not IsOwnerOrPortalAdmin().has_object_permission(request, self, obj):
            self.permission_denied(request, message="Only the project owner can edit this project.")


class ProjectStatusAPIView(drf_views.APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Change a project's status",
        request_body=my_serializers.ProjectStatusSerializer,
        responses={200: my_serializers.ProjectSerializer(), 400: "Invalid transition", 403: "Forbidden"}
    )
    def post(self, request, id):
        project = get_object_or_404(Project, id=id)
        if not IsOwnerOrPortalAdmin().has_object_permission(request, self, project):
            self.permission_denied(request, message="Only the project owner can change its status.")

        serializer = my_serializers.ProjectStatusSerializer(data=request.data, context={'project': project})
        serializer.is_valid(raise_exception=True)

        project.status = serializer.validated_data['status']
        update_fields = ['status', 'updated_at']
        if project.status == 'completed':
            project.completed_at = timezone.now()
            update_fields.append('completed_at')
        project.save(update_fields=update_fields)
        logger.info(f"Project {project.id} moved to {project.status}")
        notify_project_participants(
            project, 'project_status_change',
            title=f"{project.title} is now {project.status}",
            message=f"{request.user.get_full_name() or request.user.email} moved the project to {project.status}.",
            exclude=request.user,
            sender=request.user,
        )

        return Response(my_serializers.ProjectSerializer(project).data, status=status.HTTP_200_OK)


class AssignContractorAPIView(drf_views.APIView):
    permission_classes = [IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Assign a contractor to a project",
        request_body=my_serializers.AssignContractorSerializer,
        responses={200: my_serializers.ProjectSerializer(), 400: "Validation error", 403: "Forbidden", 404: "Not found"}
    )
    def post(self, request, id):
        project = get_object_or_404(Project, id=id)
        if not IsOwnerOrPortalAdmin().has_object_permission(request, self, project):
            self.permission_denied(request, message="Only the project owner can assign a contractor.")

        serializer = my_serializers.AssignContractorSerializer(data=request.data, context={'project': project})
        serializer.is_valid(raise_exception=True)

        contractor = serializer.context['contractor']
        project.contractor = contractor
        project.save(update_fields=['contractor', 'updated_at'])
        send_contractor_assigned_email(contractor, project)
        notify(
            contractor, 'contractor_assigned',
            title=f"Assigned to {project.title}",
            message=f"You are the contractor on \"{project.title}\".",
            project=project,
            sender=request.user,
        )
        logger.info(f"Assigned contractor {contractor.id} to project {project.id}")

        return Response(my_serializers.ProjectSerializer(project).data, status=status.HTTP_200_OK)
