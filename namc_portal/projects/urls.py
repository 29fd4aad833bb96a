from django.urls import path

from . import views as my_views

urlpatterns = [
    path('', my_views.ListCreateProjectAPIView.as_view(), name='project-list-create'),
    path('<int:id>/', my_views.RetrieveUpdateProjectAPIView.as_view(), name='project-detail'),
    path('<int:id>/status/', my_views.ProjectStatusAPIView.as_view(), name='project-status'),
    path('<int:id>/contractor/', my_views.AssignContractorAPIView.as_view(), name='project-assign-contractor'),
]
