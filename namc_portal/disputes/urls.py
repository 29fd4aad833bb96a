from django.urls import path

from . import views

urlpatterns = [
    path(
        'escrow/<int:escrow_id>/disputes/',
        views.CreateDisputeAPIView.as_view(),
        name='escrow-disputes-create',
    ),
    path(
        'disputes/',
        views.ListDisputesAPIView.as_view(),
        name='disputes-list',
    ),
    path(
        'disputes/<int:id>/',
        views.RetrieveDisputeAPIView.as_view(),
        name='disputes-detail',
    ),
    path(
        'disputes/<int:id>/review/',
        views.StartReviewAPIView.as_view(),
        name='disputes-start-review',
    ),
    path(
        'disputes/<int:id>/mediation/',
        views.RequestMediationAPIView.as_view(),
        name='disputes-request-mediation',
    ),
    path(
        'disputes/<int:id>/resolve/',
        views.ResolveDisputeAPIView.as_view(),
        name='disputes-resolve',
    ),
]
