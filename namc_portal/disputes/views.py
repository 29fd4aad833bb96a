from rest_framework import generics, permissions, status, filters, views
from rest_framework.response import Response
from django.shortcuts import get_object_or_404
from django.db.models import Q
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework.permissions import IsAuthenticated
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from . import serializers as my_serializers
from escrow.models import ProjectEscrow
from escrow.permissions import IsEscrowParticipantOrPortalAdmin
from .permissions import IsMediator, IsDisputeParticipantOrMediator, is_mediator
from .models import PaymentDispute
from .services import DisputeService

DISPUTE_QUERYSET = PaymentDispute.objects.select_related(
    'escrow', 'escrow__project', 'submitted_by', 'respondent', 'mediator', 'resolved_by',
)


class CreateDisputeAPIView(views.APIView):
    """
    Allows the client or contractor on an escrow to dispute it.
    The URL must contain the escrow_id. Opening a dispute locks the escrow.
    """
    permission_classes = [permissions.IsAuthenticated, IsEscrowParticipantOrPortalAdmin]

    @swagger_auto_schema(
        operation_summary="Open a payment dispute on an escrow",
        request_body=my_serializers.DisputeCreateSerializer,
        responses={
            201: openapi.Response(description="Dispute created successfully"),
            400: "Validation error"
        }
    )
    def post(self, request, escrow_id):
        escrow = get_object_or_404(ProjectEscrow.objects.select_related('project'), id=escrow_id)
        self.check_object_permissions(request, escrow)

        serializer = my_serializers.DisputeCreateSerializer(data=request.data, context={'escrow': escrow})
        serializer.is_valid(raise_exception=True)
        dispute = DisputeService().create_dispute(escrow=escrow, submitted_by=request.user, **serializer.validated_data)

        return Response({
            "detail": "Dispute created successfully.",
            "dispute": my_serializers.DisputeDetailSerializer(dispute).data
        }, status=status.HTTP_201_CREATED)


class ListDisputesAPIView(generics.ListAPIView):
    """
    List disputes.
    - Mediators/Admins see all disputes.
    - Members see only disputes they submitted or are responding to.
    """
    serializer_class = my_serializers.DisputeDetailSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [filters.OrderingFilter, DjangoFilterBackend]
    filterset_fields = ['status', 'escrow']
    ordering_fields = ['created_at', 'updated_at', 'amount']
    ordering = ['-updated_at']

    @swagger_auto_schema(
        operation_summary="List payment disputes with optional filtering",
        manual_parameters=[
            openapi.Parameter(
                'status',
                openapi.IN_QUERY,
                description="Filter disputes by status",
                type=openapi.TYPE_STRING
            ),
            openapi.Parameter(
                'ordering',
                openapi.IN_QUERY,
                description="Order results by one of: created_at, updated_at, amount",
                type=openapi.TYPE_STRING
            ),
        ],
        responses={200: my_serializers.DisputeDetailSerializer(many=True)}
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        user = self.request.user
        if is_mediator(user):
            return DISPUTE_QUERYSET.all()
        return DISPUTE_QUERYSET.filter(Q(submitted_by=user) | Q(respondent=user))


class RetrieveDisputeAPIView(generics.RetrieveAPIView):
    """
    Retrieve a single dispute's details.
    Accessible only by the parties or mediators.
    """
    serializer_class = my_serializers.DisputeDetailSerializer
    permission_classes = [IsAuthenticated, IsDisputeParticipantOrMediator]
    queryset = DISPUTE_QUERYSET
    lookup_field = 'id'

    @swagger_auto_schema(
        operation_summary="Retrieve a dispute",
        responses={200: my_serializers.DisputeDetailSerializer(), 404: "Not found"}
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class StartReviewAPIView(views.APIView):
    permission_classes = [IsAuthenticated, IsMediator]

    @swagger_auto_schema(
        operation_summary="Take a submitted dispute under review",
        responses={200: my_serializers.DisputeDetailSerializer(), 400: "Invalid status transition"}
    )
    def post(self, request, id):
        dispute = get_object_or_404(DISPUTE_QUERYSET, id=id)
        dispute = DisputeService().start_review(dispute, reviewer=request.user)
        return Response(my_serializers.DisputeDetailSerializer(dispute).data)


class RequestMediationAPIView(views.APIView):
    """Either party, or a mediator, can send an open dispute to mediation."""
    permission_classes = [IsAuthenticated, IsDisputeParticipantOrMediator]

    @swagger_auto_schema(
        operation_summary="Request mediation for a dispute",
        responses={200: my_serializers.DisputeDetailSerializer(), 400: "Invalid status transition or no mediator available"}
    )
    def post(self, request, id):
        dispute = get_object_or_404(DISPUTE_QUERYSET, id=id)
        self.check_object_permissions(request, dispute)
        dispute = DisputeService().request_mediation(dispute)
        return Response(my_serializers.DisputeDetailSerializer(dispute).data)


class ResolveDisputeAPIView(views.APIView):
    permission_classes = [IsAuthenticated, IsMediator]

    @swagger_auto_schema(
        operation_summary="Resolve a dispute and unlock the escrow",
        request_body=my_serializers.ResolveDisputeSerializer,
        responses={200: my_serializers.DisputeDetailSerializer(), 400: "Validation error"}
    )
    def post(self, request, id):
        dispute = get_object_or_404(DISPUTE_QUERYSET, id=id)
        serializer = my_serializers.ResolveDisputeSerializer(data=request.data, context={'dispute': dispute})
        serializer.is_valid(raise_exception=True)

        dispute = DisputeService().resolve(dispute, resolved_by=request.user, **serializer.validated_data)
        return Response(my_serializers.DisputeDetailSerializer(dispute).data)
