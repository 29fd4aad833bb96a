from django.urls import path

from . import views

urlpatterns = [
    path('payout-methods/', views.PayoutMethodListCreateView.as_view(), name='payout-method-list-create'),
    path('payout-methods/<int:method_id>/', views.PayoutMethodDetailView.as_view(), name='payout-method-detail'),
    path('payout-methods/<int:method_id>/stripe/onboarding/', views.StripeOnboardingLinkView.as_view(), name='payout-method-stripe-onboarding'),
    path('payout-methods/<int:method_id>/stripe/refresh/', views.StripePayoutStatusView.as_view(), name='payout-method-stripe-refresh'),
]
