from django.urls import path

from . import views

urlpatterns = [
    path("", views.EscrowListCreateView.as_view(), name="escrow-list"),
    path("dashboard/", views.CashFlowDashboardView.as_view(), name="escrow-cash-flow-dashboard"),
    path("eligibility/", views.PaymentEligibilityView.as_view(), name="escrow-payment-eligibility"),
    path("<int:pk>/", views.EscrowDetailView.as_view(), name="escrow-detail"),
    path("<int:pk>/fund/", views.EscrowFundView.as_view(), name="escrow-fund"),
    path("<int:pk>/release/", views.EscrowReleaseFundsView.as_view(), name="escrow-release"),
    path("<int:pk>/complete/", views.EscrowCompleteView.as_view(), name="escrow-complete"),
    path("<int:pk>/retention/release/", views.EscrowRetentionReleaseView.as_view(), name="escrow-retention-release"),
    path("<int:pk>/lock/", views.EscrowLockToggleView.as_view(), name="escrow-lock"),
    path("<int:pk>/payments/", views.EscrowLedgerView.as_view(), name="escrow-ledger"),
    path("<int:pk>/change-orders/", views.ChangeOrderListCreateView.as_view(), name="escrow-change-orders"),
    path("<int:pk>/tasks/", views.TaskPaymentListCreateView.as_view(), name="escrow-task-payments"),
    path("<int:pk>/milestones/", views.MilestoneListCreateView.as_view(), name="escrow-milestones"),
    path("<int:pk>/cash-flow/", views.CashFlowReportView.as_view(), name="escrow-cash-flow-report"),
    path("<int:pk>/projections/", views.CashFlowProjectionListCreateView.as_view(), name="escrow-projections"),
    path("tasks/<int:task_id>/submit/", views.TaskCompletionView.as_view(), name="task-payment-submit"),
    path("tasks/<int:task_id>/verify/", views.TaskVerificationView.as_view(), name="task-payment-verify"),
    path("tasks/<int:task_id>/approve/", views.TaskApprovalView.as_view(), name="task-payment-approve"),
    path("milestones/<int:milestone_id>/complete/", views.MilestoneCompleteView.as_view(), name="milestone-complete"),
    path("milestones/<int:milestone_id>/verify/", views.MilestoneVerifyView.as_view(), name="milestone-verify"),
]
