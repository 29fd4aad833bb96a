from rest_framework_simplejwt.views import TokenRefreshView
from django.urls import path


from . import views as my_views


urlpatterns = [
    path('account/token/', my_views.MemberTokenObtainPairView.as_view(), name='token-obtain-pair'),
    path('account/token/refresh/', TokenRefreshView.as_view(), name='token-refresh'),
    path('account/token/blacklist/', my_views.LogoutAPIView.as_view(), name='logout'),
    path('account/register/', my_views.RegistrationAPIView.as_view(), name='register'),
    path('account/members/me/', my_views.MemberProfileRetrieveUpdateAPIView.as_view(), name='profile-retrieve-update'),
    path('account/members/me/change-password/', my_views.ChangePasswordAPIView.as_view(), name='change-password'),
    path('account/members/me/deactivate/', my_views.MemberDeactivateAPIView.as_view(), name='deactivate-account'),
    path('account/admin/members/', my_views.MemberListAPIView.as_view(), name='list-members'),
]
