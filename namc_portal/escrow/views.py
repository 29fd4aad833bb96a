from django.db.models import Q
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, permissions, status, views
from rest_framework.filters import OrderingFilter
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from accounts.permissions import IsPortalAdmin, is_portal_admin
from .models import PaymentMilestone, ProjectEscrow, TaskPayment
from .permissions import IsEscrowClientOrPortalAdmin, IsEscrowContractor, IsEscrowParticipantOrPortalAdmin
from .serializers import (
	CashFlowProjectionSerializer,
	CashFlowReportQuerySerializer,
	ChangeOrderCreateSerializer,
	ChangeOrderSerializer,
	EscrowFundSerializer,
	EscrowLockSerializer,
	EscrowPaymentSerializer,
	EscrowReleaseSerializer,
	PaymentEligibilitySerializer,
	PaymentMilestoneCreateSerializer,
	PaymentMilestoneSerializer,
	ProjectEscrowCreateSerializer,
	ProjectEscrowSerializer,
	TaskCompletionSerializer,
	TaskPaymentCreateSerializer,
	TaskPaymentSerializer,
	TaskVerificationSerializer,
)
from .services import EscrowService
from .utils import validate_payment_eligibility

escrow_id_param = openapi.Parameter(
	'pk',
	openapi.IN_PATH,
	description="Project escrow ID",
	type=openapi.TYPE_INTEGER,
)

ESCROW_QUERYSET = ProjectEscrow.objects.select_related(
	"project",
	"project__owner",
	"project__contractor",
)


class EscrowObjectMixin:
	"""Loads the escrow from the URL and runs the view's object permissions on it."""

	def get_escrow(self, pk):
		escrow = get_object_or_404(ESCROW_QUERYSET, pk=pk)
		self.check_object_permissions(self.request, escrow)
		return escrow


class ClientWritesMixin:
	"""Participants read, the project client (or an admin) writes."""

	def get_permissions(self):
		if self.request.method == "POST":
			return [permissions.IsAuthenticated(), IsEscrowClientOrPortalAdmin()]
		return [permissions.IsAuthenticated(), IsEscrowParticipantOrPortalAdmin()]


class EscrowListCreateView(generics.ListCreateAPIView):
	"""List escrows the member is client or contractor on, or open one for a project."""

	serializer_class = ProjectEscrowSerializer
	permission_classes = [permissions.IsAuthenticated]
	filter_backends = [DjangoFilterBackend, OrderingFilter]
	filterset_fields = ["status", "payment_provider", "is_locked"]
	ordering_fields = ["created_at", "total_project_value", "escrow_balance"]
	ordering = ["-created_at"]

	@swagger_auto_schema(
		operation_summary="List project escrows for the current member",
		responses={200: ProjectEscrowSerializer(many=True)}
	)
	def get(self, request, *args, **kwargs):
		return super().get(request, *args, **kwargs)

	@swagger_auto_schema(
		operation_summary="Open an escrow for a project",
		request_body=ProjectEscrowCreateSerializer,
		responses={201: ProjectEscrowSerializer(), 400: "Validation error"}
	)
	def post(self, request, *args, **kwargs):
		serializer = ProjectEscrowCreateSerializer(data=request.data, context={"request": request})
		serializer.is_valid(raise_exception=True)
		data = serializer.validated_data

		escrow = EscrowService().create_project_escrow(
			project=data["project"],
			total_project_value=data["total_project_value"],
			retention_percentage=data.get("retention_percentage"),
			payment_schedule=data.get("payment_schedule"),
			expected_completion_date=data.get("expected_completion_date"),
			provider_name=data.get("payment_provider"),
		)
		return Response(ProjectEscrowSerializer(escrow).data, status=status.HTTP_201_CREATED)

	def get_queryset(self):
		user = self.request.user
		if is_portal_admin(user):
			return ESCROW_QUERYSET.all()
		return ESCROW_QUERYSET.filter(Q(project__owner=user) | Q(project__contractor=user))


class EscrowDetailView(generics.RetrieveAPIView):
	serializer_class = ProjectEscrowSerializer
	permission_classes = [permissions.IsAuthenticated, IsEscrowParticipantOrPortalAdmin]
	queryset = ESCROW_QUERYSET

	@swagger_auto_schema(
		operation_summary="Retrieve a project escrow",
		responses={200: ProjectEscrowSerializer(), 404: "Not found"}
	)
	def get(self, request, *args, **kwargs):
		return super().get(request, *args, **kwargs)


class EscrowFundView(EscrowObjectMixin, views.APIView):
	permission_classes = [permissions.IsAuthenticated, IsEscrowClientOrPortalAdmin]

	@swagger_auto_schema(
		operation_summary="Deposit funds into an escrow",
		manual_parameters=[escrow_id_param],
		request_body=EscrowFundSerializer,
		responses={200: ProjectEscrowSerializer(), 400: "Validation error", 403: "Forbidden"}
	)
	def post(self, request, pk):
		escrow = self.get_escrow(pk)
		serializer = EscrowFundSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)

		escrow = EscrowService().fund_escrow(
			escrow,
			amount=serializer.validated_data["amount"],
			payment_method=serializer.validated_data.get("payment_method"),
			funded_by=request.user,
		)
		return Response(ProjectEscrowSerializer(escrow).data, status=status.HTTP_200_OK)


class EscrowReleaseFundsView(EscrowObjectMixin, views.APIView):
	permission_classes = [permissions.IsAuthenticated, IsEscrowClientOrPortalAdmin]

	@swagger_auto_schema(
		operation_summary="Release a progress payment to the contractor",
		manual_parameters=[escrow_id_param],
		request_body=EscrowReleaseSerializer,
		responses={
			200: EscrowPaymentSerializer(),
			400: "Validation error or insufficient balance",
			403: "Forbidden",
			404: "Not found",
			409: "Escrow locked by a dispute",
		}
	)
	def post(self, request, pk):
		escrow = self.get_escrow(pk)
		serializer = EscrowReleaseSerializer(data=request.data, context={"escrow": escrow})
		serializer.is_valid(raise_exception=True)

		entry = EscrowService().release_payment(
			escrow,
			amount=serializer.validated_data["amount"],
			recipient=escrow.contractor,
			payment_type="progress_payment",
			payment_method=serializer.validated_data.get("payment_method"),
			notes=serializer.validated_data["notes"],
		)
		return Response(EscrowPaymentSerializer(entry).data, status=status.HTTP_200_OK)


class EscrowCompleteView(EscrowObjectMixin, views.APIView):
	permission_classes = [permissions.IsAuthenticated, IsEscrowClientOrPortalAdmin]

	@swagger_auto_schema(
		operation_summary="Mark the escrowed work as complete",
		manual_parameters=[escrow_id_param],
		responses={200: ProjectEscrowSerializer(), 400: "Invalid status transition"}
	)
	def post(self, request, pk):
		escrow = EscrowService().complete_escrow(self.get_escrow(pk), completed_by=request.user)
		return Response(ProjectEscrowSerializer(escrow).data, status=status.HTTP_200_OK)


class EscrowRetentionReleaseView(EscrowObjectMixin, views.APIView):
	permission_classes = [permissions.IsAuthenticated, IsEscrowClientOrPortalAdmin]

	@swagger_auto_schema(
		operation_summary="Release the retention and close the escrow",
		manual_parameters=[escrow_id_param],
		responses={200: ProjectEscrowSerializer(), 400: "Project not completed"}
	)
	def post(self, request, pk):
		escrow = EscrowService().release_retention(self.get_escrow(pk), released_by=request.user)
		return Response(ProjectEscrowSerializer(escrow).data, status=status.HTTP_200_OK)


class EscrowLockToggleView(views.APIView):
	permission_classes = [permissions.IsAuthenticated, IsPortalAdmin]

	@swagger_auto_schema(
		operation_summary="Lock or unlock an escrow",
		manual_parameters=[escrow_id_param],
		request_body=EscrowLockSerializer,
		responses={200: EscrowLockSerializer(), 403: "Forbidden", 404: "Not found"}
	)
	def patch(self, request, pk):
		escrow = get_object_or_404(ProjectEscrow, pk=pk)
		serializer = EscrowLockSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)
		serializer.update(escrow, serializer.validated_data)
		return Response(serializer.to_representation(escrow), status=status.HTTP_200_OK)


class EscrowLedgerView(EscrowObjectMixin, generics.ListAPIView):
	serializer_class = EscrowPaymentSerializer
	permission_classes = [permissions.IsAuthenticated, IsEscrowParticipantOrPortalAdmin]
	filter_backends = [DjangoFilterBackend]
	filterset_fields = ["payment_type", "status"]

	@swagger_auto_schema(
		operation_summary="List ledger entries of an escrow",
		manual_parameters=[escrow_id_param],
		responses={200: EscrowPaymentSerializer(many=True)}
	)
	def get(self, request, *args, **kwargs):
		return super().get(request, *args, **kwargs)

	def get_queryset(self):
		escrow = self.get_escrow(self.kwargs["pk"])
		return escrow.payments.select_related("recipient")


class ChangeOrderListCreateView(ClientWritesMixin, EscrowObjectMixin, views.APIView):

	@swagger_auto_schema(
		operation_summary="List change orders of an escrow",
		manual_parameters=[escrow_id_param],
		responses={200: ChangeOrderSerializer(many=True)}
	)
	def get(self, request, pk):
		escrow = self.get_escrow(pk)
		orders = escrow.change_orders.select_related("approved_by")
		return Response(ChangeOrderSerializer(orders, many=True).data)

	@swagger_auto_schema(
		operation_summary="Apply a change order to an escrow",
		manual_parameters=[escrow_id_param],
		request_body=ChangeOrderCreateSerializer,
		responses={201: ChangeOrderSerializer(), 400: "Validation error"}
	)
	def post(self, request, pk):
		escrow = self.get_escrow(pk)
		serializer = ChangeOrderCreateSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)

		change_order = EscrowService().process_change_order(escrow, approved_by=request.user, **serializer.validated_data)
		return Response(ChangeOrderSerializer(change_order).data, status=status.HTTP_201_CREATED)


class TaskPaymentListCreateView(ClientWritesMixin, EscrowObjectMixin, views.APIView):

	@swagger_auto_schema(
		operation_summary="List task payments of an escrow",
		manual_parameters=[escrow_id_param],
		responses={200: TaskPaymentSerializer(many=True)}
	)
	def get(self, request, pk):
		escrow = self.get_escrow(pk)
		tasks = escrow.task_payments.select_related("contractor")
		return Response(TaskPaymentSerializer(tasks, many=True).data)

	@swagger_auto_schema(
		operation_summary="Add a task payment to an escrow",
		manual_parameters=[escrow_id_param],
		request_body=TaskPaymentCreateSerializer,
		responses={201: TaskPaymentSerializer(), 400: "Validation error"}
	)
	def post(self, request, pk):
		escrow = self.get_escrow(pk)
		serializer = TaskPaymentCreateSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)

		task = EscrowService().create_task_payment(escrow, **serializer.validated_data)
		return Response(TaskPaymentSerializer(task).data, status=status.HTTP_201_CREATED)


class TaskPaymentObjectMixin:

	def get_task(self, task_id):
		task = get_object_or_404(
			TaskPayment.objects.select_related("escrow", "escrow__project", "contractor"),
			pk=task_id,
		)
		self.check_object_permissions(self.request, task)
		return task


class TaskCompletionView(TaskPaymentObjectMixin, views.APIView):
	permission_classes = [permissions.IsAuthenticated, IsEscrowContractor]

	@swagger_auto_schema(
		operation_summary="Submit a task as completed",
		request_body=TaskCompletionSerializer,
		responses={200: TaskPaymentSerializer(), 400: "Invalid status transition or missing photos"}
	)
	def post(self, request, task_id):
		task = self.get_task(task_id)
		serializer = TaskCompletionSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)

		task = EscrowService().submit_task_completion(task, **serializer.validated_data)
		return Response(TaskPaymentSerializer(task).data)


class TaskVerificationView(TaskPaymentObjectMixin, views.APIView):
	permission_classes = [permissions.IsAuthenticated, IsEscrowClientOrPortalAdmin]

	@swagger_auto_schema(
		operation_summary="Verify a completed task (pays it unless approval is required)",
		request_body=TaskVerificationSerializer,
		responses={200: TaskPaymentSerializer(), 400: "Invalid status transition or insufficient balance"}
	)
	def post(self, request, task_id):
		task = self.get_task(task_id)
		serializer = TaskVerificationSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)

		task = EscrowService().verify_task_payment(task, verified_by=request.user, **serializer.validated_data)
		return Response(TaskPaymentSerializer(task).data)


class TaskApprovalView(TaskPaymentObjectMixin, views.APIView):
	permission_classes = [permissions.IsAuthenticated, IsEscrowClientOrPortalAdmin]

	@swagger_auto_schema(
		operation_summary="Approve a verified task and release its payment",
		responses={200: TaskPaymentSerializer(), 400: "Invalid status transition or insufficient balance"}
	)
	def post(self, request, task_id):
		task = EscrowService().approve_task_payment(self.get_task(task_id), approved_by=request.user)
		return Response(TaskPaymentSerializer(task).data)


class MilestoneListCreateView(ClientWritesMixin, EscrowObjectMixin, views.APIView):

	@swagger_auto_schema(
		operation_summary="List payment milestones of an escrow",
		manual_parameters=[escrow_id_param],
		responses={200: PaymentMilestoneSerializer(many=True)}
	)
	def get(self, request, pk):
		escrow = self.get_escrow(pk)
		milestones = escrow.milestones.select_related("contractor")
		return Response(PaymentMilestoneSerializer(milestones, many=True).data)

	@swagger_auto_schema(
		operation_summary="Add a payment milestone to an escrow",
		manual_parameters=[escrow_id_param],
		request_body=PaymentMilestoneCreateSerializer,
		responses={201: PaymentMilestoneSerializer(), 400: "Validation error or percentages over 100"}
	)
	def post(self, request, pk):
		escrow = self.get_escrow(pk)
		serializer = PaymentMilestoneCreateSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)

		milestone = EscrowService().create_milestone(escrow, **serializer.validated_data)
		return Response(PaymentMilestoneSerializer(milestone).data, status=status.HTTP_201_CREATED)


class MilestoneObjectMixin:

	def get_milestone(self, milestone_id):
		milestone = get_object_or_404(
			PaymentMilestone.objects.select_related("escrow", "escrow__project", "contractor"),
			pk=milestone_id,
		)
		self.check_object_permissions(self.request, milestone)
		return milestone


class MilestoneCompleteView(MilestoneObjectMixin, views.APIView):
	permission_classes = [permissions.IsAuthenticated, IsEscrowContractor]

	@swagger_auto_schema(
		operation_summary="Mark a milestone as completed",
		responses={200: PaymentMilestoneSerializer(), 400: "Invalid status transition"}
	)
	def post(self, request, milestone_id):
		milestone = EscrowService().complete_milestone(self.get_milestone(milestone_id))
		return Response(PaymentMilestoneSerializer(milestone).data)


class MilestoneVerifyView(MilestoneObjectMixin, views.APIView):
	permission_classes = [permissions.IsAuthenticated, IsEscrowClientOrPortalAdmin]

	@swagger_auto_schema(
		operation_summary="Verify a completed milestone and release its payment",
		responses={200: PaymentMilestoneSerializer(), 400: "Invalid status transition or insufficient balance"}
	)
	def post(self, request, milestone_id):
		milestone = EscrowService().verify_milestone(self.get_milestone(milestone_id), verified_by=request.user)
		return Response(PaymentMilestoneSerializer(milestone).data)


class CashFlowReportView(EscrowObjectMixin, views.APIView):
	permission_classes = [permissions.IsAuthenticated, IsEscrowParticipantOrPortalAdmin]

	@swagger_auto_schema(
		operation_summary="Cash flow report for an escrow",
		manual_parameters=[escrow_id_param],
		query_serializer=CashFlowReportQuerySerializer,
		responses={200: openapi.Response(description="Summary, payment history, upcoming payments, projection and risks")}
	)
	def get(self, request, pk):
		escrow = self.get_escrow(pk)
		query = CashFlowReportQuerySerializer(data=request.query_params)
		query.is_valid(raise_exception=True)

		report = EscrowService().generate_cash_flow_report(escrow, **query.validated_data)
		return Response(report)


class CashFlowProjectionListCreateView(EscrowObjectMixin, views.APIView):
	permission_classes = [permissions.IsAuthenticated, IsEscrowParticipantOrPortalAdmin]

	@swagger_auto_schema(
		operation_summary="List cash flow projections of an escrow",
		manual_parameters=[escrow_id_param],
		responses={200: CashFlowProjectionSerializer(many=True)}
	)
	def get(self, request, pk):
		escrow = self.get_escrow(pk)
		return Response(CashFlowProjectionSerializer(escrow.cash_flow_projections.all(), many=True).data)

	@swagger_auto_schema(
		operation_summary="Record a cash flow projection",
		manual_parameters=[escrow_id_param],
		request_body=CashFlowProjectionSerializer,
		responses={201: CashFlowProjectionSerializer()}
	)
	def post(self, request, pk):
		escrow = self.get_escrow(pk)
		serializer = CashFlowProjectionSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)

		projection = EscrowService().create_cash_flow_projection(escrow, member=request.user, **serializer.validated_data)
		return Response(CashFlowProjectionSerializer(projection).data, status=status.HTTP_201_CREATED)


class CashFlowDashboardView(views.APIView):
	permission_classes = [permissions.IsAuthenticated]

	@swagger_auto_schema(operation_summary="Cash flow totals across the member's escrows")
	def get(self, request):
		dashboard = EscrowService().cash_flow_dashboard(request.user)
		dashboard["recent_projections"] = CashFlowProjectionSerializer(dashboard["recent_projections"], many=True).data
		return Response(dashboard)


class PaymentEligibilityView(views.APIView):
	permission_classes = [permissions.IsAuthenticated]

	@swagger_auto_schema(
		operation_summary="Check whether completed work is eligible for payment",
		request_body=PaymentEligibilitySerializer,
		responses={200: openapi.Response(description="Eligibility result")}
	)
	def post(self, request):
		serializer = PaymentEligibilitySerializer(data=request.data)
		serializer.is_valid(raise_exception=True)
		return Response(validate_payment_eligibility(**serializer.validated_data))

