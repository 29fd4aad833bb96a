from django.db.models import Count, Q
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, permissions, status, views
from rest_framework.exceptions import PermissionDenied
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from accounts.permissions import IsPortalAdmin, is_portal_admin

from . import serializers as my_serializers
from .models import ACTIVE_MAINTENANCE_STATUSES, ACTIVE_RESERVATION_STATUSES, Tool, ToolMaintenance, ToolReservation
from .pagination import ToolCatalogPagination
from .permissions import IsPortalAdminOrReadOnly, IsReservationOwnerOrPortalAdmin
from .services import ToolLendingService

RESERVATION_QUERYSET = ToolReservation.objects.select_related('tool', 'member')


def catalog_queryset():
    return Tool.objects.annotate(
        active_reservations=Count(
            'reservations', filter=Q(reservations__status__in=ACTIVE_RESERVATION_STATUSES), distinct=True,
        ),
        upcoming_maintenance=Count(
            'maintenance_records', filter=Q(maintenance_records__status__in=ACTIVE_MAINTENANCE_STATUSES), distinct=True,
        ),
    )


class ToolListCreateAPIView(generics.ListCreateAPIView):
    """
    Browse the tool lending library.
    Query params:
        - category, is_available (filter)
        - location__icontains (filter)
        - search (name, description, manufacturer, model_number)
        - ordering (name, daily_rate, created_at)
    Admins can add tools.
    """
    serializer_class = my_serializers.ToolSerializer
    permission_classes = [IsPortalAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_fields = {
        'category': ['exact'],
        'location': ['exact', 'icontains'],
        'is_available': ['exact'],
        'condition': ['exact'],
    }
    search_fields = ['name', 'description', 'manufacturer', 'model_number']
    ordering_fields = ['name', 'daily_rate', 'created_at']
    ordering = ['name']
    pagination_class = ToolCatalogPagination

    def get_queryset(self):
        return catalog_queryset()

    @swagger_auto_schema(
        operation_summary="List tools in the lending library",
        responses={200: my_serializers.ToolSerializer(many=True)}
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_summary="Add a tool to the lending library (admin)",
        request_body=my_serializers.ToolSerializer,
        responses={201: my_serializers.ToolSerializer(), 403: "Admin access required"}
    )
    def post(self, request, *args, **kwargs):
        return super().post(request, *args, **kwargs)

    def perform_create(self, serializer):
        serializer.instance = ToolLendingService().create_tool(**serializer.validated_data)


class ToolDetailAPIView(generics.RetrieveUpdateDestroyAPIView):
    serializer_class = my_serializers.ToolSerializer
    permission_classes = [IsPortalAdminOrReadOnly]
    lookup_field = 'id'
    http_method_names = ['get', 'patch', 'delete']

    def get_queryset(self):
        return catalog_queryset()

    @swagger_auto_schema(
        operation_summary="Retrieve a tool",
        responses={200: my_serializers.ToolSerializer(), 404: "Not found"}
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_summary="Update a tool (admin)",
        request_body=my_serializers.ToolSerializer,
        responses={200: my_serializers.ToolSerializer()}
    )
    def patch(self, request, *args, **kwargs):
        return super().patch(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_summary="Remove a tool from the library (admin)",
        responses={204: "Deleted", 400: "Tool has active reservations"}
    )
    def delete(self, request, *args, **kwargs):
        return super().delete(request, *args, **kwargs)

    def perform_update(self, serializer):
        serializer.instance = ToolLendingService().update_tool(serializer.instance, **serializer.validated_data)

    def perform_destroy(self, instance):
        ToolLendingService().delete_tool(instance)


class ToolAvailabilityAPIView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Check whether a tool can be booked for a date range",
        manual_parameters=[
            openapi.Parameter('start_date', openapi.IN_QUERY, type=openapi.TYPE_STRING, format=openapi.FORMAT_DATETIME, required=True),
            openapi.Parameter('end_date', openapi.IN_QUERY, type=openapi.TYPE_STRING, format=openapi.FORMAT_DATETIME, required=True),
        ],
        responses={200: "Availability and conflicting bookings"}
    )
    def get(self, request, id):
        tool = get_object_or_404(Tool, id=id)
        query = my_serializers.AvailabilityQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        result = ToolLendingService().check_availability(
            tool, query.validated_data['start_date'], query.validated_data['end_date'],
        )
        return Response(result)


class ToolReservationListCreateAPIView(generics.ListCreateAPIView):
    """
    Members see their own reservations; admins see every reservation.
    """
    serializer_class = my_serializers.ToolReservationSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_fields = ['status', 'tool']
    ordering_fields = ['start_date', 'end_date', 'created_at']
    ordering = ['-start_date']

    def get_queryset(self):
        if is_portal_admin(self.request.user):
            return RESERVATION_QUERYSET.all()
        return RESERVATION_QUERYSET.filter(member=self.request.user)

    @swagger_auto_schema(
        operation_summary="List tool reservations",
        responses={200: my_serializers.ToolReservationSerializer(many=True)}
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_summary="Reserve a tool",
        request_body=my_serializers.ToolReservationCreateSerializer,
        responses={
            201: my_serializers.ToolReservationSerializer(),
            400: "Validation error or tool unavailable",
            409: "Scheduling conflict",
        }
    )
    def post(self, request, *args, **kwargs):
        serializer = my_serializers.ToolReservationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        reservation = ToolLendingService().create_reservation(member=request.user, **serializer.validated_data)
        return Response(
            my_serializers.ToolReservationSerializer(reservation).data,
            status=status.HTTP_201_CREATED,
        )


class ToolReservationDetailAPIView(views.APIView):
    permission_classes = [permissions.IsAuthenticated, IsReservationOwnerOrPortalAdmin]

    def get_object(self, id):
        reservation = get_object_or_404(RESERVATION_QUERYSET, id=id)
        self.check_object_permissions(self.request, reservation)
        return reservation

    @swagger_auto_schema(
        operation_summary="Retrieve a tool reservation",
        responses={200: my_serializers.ToolReservationSerializer()}
    )
    def get(self, request, id):
        return Response(my_serializers.ToolReservationSerializer(self.get_object(id)).data)

    @swagger_auto_schema(
        operation_summary="Update a reservation's status or notes",
        request_body=my_serializers.ToolReservationUpdateSerializer,
        responses={200: my_serializers.ToolReservationSerializer(), 400: "Invalid status transition"}
    )
    def patch(self, request, id):
        reservation = self.get_object(id)
        serializer = my_serializers.ToolReservationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        new_status = serializer.validated_data.get('status')
        if not is_portal_admin(request.user) and new_status not in (None, 'cancelled', reservation.status):
            raise PermissionDenied("Members can only cancel their own reservations.")

        reservation = ToolLendingService().update_reservation(reservation, **serializer.validated_data)
        return Response(my_serializers.ToolReservationSerializer(reservation).data)

    @swagger_auto_schema(
        operation_summary="Delete a pending or cancelled reservation",
        responses={204: "Deleted", 400: "Reservation is not pending or cancelled"}
    )
    def delete(self, request, id):
        ToolLendingService().delete_reservation(self.get_object(id))
        return Response(status=status.HTTP_204_NO_CONTENT)


class ToolCheckoutAPIView(views.APIView):
    permission_classes = [permissions.IsAuthenticated, IsPortalAdmin]

    @swagger_auto_schema(
        operation_summary="Hand a tool over for a confirmed reservation (admin)",
        request_body=my_serializers.CheckoutSerializer,
        responses={200: my_serializers.ToolReservationSerializer(), 400: "Not confirmed or outside the checkout window"}
    )
    def post(self, request, id):
        reservation = get_object_or_404(RESERVATION_QUERYSET, id=id)
        serializer = my_serializers.CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        reservation = ToolLendingService().checkout(reservation, **serializer.validated_data)
        return Response({
            "detail": "Tool checked out successfully.",
            "reservation": my_serializers.ToolReservationSerializer(reservation).data,
        })


class ToolReturnAPIView(views.APIView):
    permission_classes = [permissions.IsAuthenticated, IsPortalAdmin]

    @swagger_auto_schema(
        operation_summary="Check a tool back in (admin)",
        request_body=my_serializers.ReturnSerializer,
        responses={200: my_serializers.ToolReservationSerializer(), 400: "Reservation is not checked out"}
    )
    def post(self, request, id):
        reservation = get_object_or_404(RESERVATION_QUERYSET, id=id)
        serializer = my_serializers.ReturnSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = ToolLendingService().return_tool(reservation, **serializer.validated_data)
        maintenance = result['maintenance']
        return Response({
            "detail": "Tool returned successfully.",
            "reservation": my_serializers.ToolReservationSerializer(result['reservation']).data,
            "is_late": result['is_late'],
            "late_fees": result['late_fees'],
            "maintenance": my_serializers.ToolMaintenanceSerializer(maintenance).data if maintenance else None,
        })


class ToolMaintenanceListCreateAPIView(generics.ListCreateAPIView):
    serializer_class = my_serializers.ToolMaintenanceSerializer
    permission_classes = [IsPortalAdminOrReadOnly]
    queryset = ToolMaintenance.objects.select_related('tool')
    filter_backends = [DjangoFilterBackend, OrderingFilter]
    filterset_fields = ['tool', 'status', 'maintenance_type', 'priority']
    ordering_fields = ['scheduled_date', 'priority', 'created_at']
    ordering = ['scheduled_date']

    @swagger_auto_schema(
        operation_summary="List maintenance records",
        responses={200: my_serializers.ToolMaintenanceSerializer(many=True)}
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(
        operation_summary="Schedule maintenance for a tool (admin)",
        request_body=my_serializers.ToolMaintenanceCreateSerializer,
        responses={201: my_serializers.ToolMaintenanceSerializer()}
    )
    def post(self, request, *args, **kwargs):
        serializer = my_serializers.ToolMaintenanceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        record = ToolLendingService().create_maintenance(**serializer.validated_data)
        return Response(my_serializers.ToolMaintenanceSerializer(record).data, status=status.HTTP_201_CREATED)


class ToolMaintenanceDetailAPIView(views.APIView):
    permission_classes = [permissions.IsAuthenticated, IsPortalAdmin]

    @swagger_auto_schema(
        operation_summary="Update a maintenance record (admin)",
        request_body=my_serializers.ToolMaintenanceUpdateSerializer,
        responses={200: my_serializers.ToolMaintenanceSerializer(), 400: "Invalid status transition"}
    )
    def patch(self, request, id):
        record = get_object_or_404(ToolMaintenance.objects.select_related('tool'), id=id)
        serializer = my_serializers.ToolMaintenanceUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        record = ToolLendingService().update_maintenance(record, **serializer.validated_data)
        return Response(my_serializers.ToolMaintenanceSerializer(record).data)

    @swagger_auto_schema(
        operation_summary="Delete a scheduled or cancelled maintenance record (admin)",
        responses={204: "Deleted", 400: "Maintenance already started or completed"}
    )
    def delete(self, request, id):
        record = get_object_or_404(ToolMaintenance.objects.select_related('tool'), id=id)
        ToolLendingService().delete_maintenance(record)
        return Response(status=status.HTTP_204_NO_CONTENT)


class UtilizationReportAPIView(views.APIView):
    permission_classes = [permissions.IsAuthenticated, IsPortalAdmin]

    @swagger_auto_schema(
        operation_summary="Tool utilization, revenue and maintenance cost for a period (admin)",
        query_serializer=my_serializers.UtilizationReportQuerySerializer,
        responses={200: "Utilization report"}
    )
    def get(self, request):
        query = my_serializers.UtilizationReportQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        tool_ids = query.validated_data.get('tool_ids')
        report = ToolLendingService().generate_utilization_report(
            start_date=query.validated_data['start_date'],
            end_date=query.validated_data['end_date'],
            tools=Tool.objects.filter(id__in=tool_ids) if tool_ids else None,
        )
        return Response(report)
