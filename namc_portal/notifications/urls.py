from django.urls import path

from . import views as my_views

urlpatterns = [
    path('', my_views.NotificationListCreateAPIView.as_view(), name='notification-list-create'),
    path('<int:id>/', my_views.NotificationDetailAPIView.as_view(), name='notification-detail'),
    path('read-all/', my_views.MarkAllNotificationsReadAPIView.as_view(), name='notification-mark-all-read'),
]
