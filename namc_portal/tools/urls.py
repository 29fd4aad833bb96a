from django.urls import path

from . import views

urlpatterns = [
    path('', views.ToolListCreateAPIView.as_view(), name='tool-list'),
    path('<int:id>/', views.ToolDetailAPIView.as_view(), name='tool-detail'),
    path('<int:id>/availability/', views.ToolAvailabilityAPIView.as_view(), name='tool-availability'),
    path('reservations/', views.ToolReservationListCreateAPIView.as_view(), name='tool-reservation-list'),
    path('reservations/<int:id>/', views.ToolReservationDetailAPIView.as_view(), name='tool-reservation-detail'),
    path('reservations/<int:id>/checkout/', views.ToolCheckoutAPIView.as_view(), name='tool-reservation-checkout'),
    path('reservations/<int:id>/return/', views.ToolReturnAPIView.as_view(), name='tool-reservation-return'),
    path('maintenance/', views.ToolMaintenanceListCreateAPIView.as_view(), name='tool-maintenance-list'),
    path('maintenance/<int:id>/', views.ToolMaintenanceDetailAPIView.as_view(), name='tool-maintenance-detail'),
    path('reports/utilization/', views.UtilizationReportAPIView.as_view(), name='tool-utilization-report'),
]
