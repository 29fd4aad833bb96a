from django.urls import path

from . import views as my_views

urlpatterns = [
    path('committees/', my_views.CommitteeListCreateAPIView.as_view(), name='committee-list-create'),
    path('committees/<int:id>/', my_views.CommitteeDetailAPIView.as_view(), name='committee-detail'),
    path('committees/<int:id>/members/', my_views.CommitteeMemberListCreateAPIView.as_view(), name='committee-members'),
    path(
        'committees/<int:id>/members/<int:membership_id>/',
        my_views.CommitteeMembershipDetailAPIView.as_view(),
        name='committee-membership-detail',
    ),
    path('committees/<int:id>/meetings/', my_views.CommitteeMeetingListCreateAPIView.as_view(), name='committee-meetings'),
    path(
        'committees/<int:id>/meetings/<int:meeting_id>/rsvp/',
        my_views.MeetingRSVPAPIView.as_view(),
        name='committee-meeting-rsvp',
    ),
    path('discussions/', my_views.DiscussionListCreateAPIView.as_view(), name='discussion-list-create'),
    path('discussions/<int:id>/', my_views.DiscussionDetailAPIView.as_view(), name='discussion-detail'),
    path('discussions/<int:id>/replies/', my_views.DiscussionReplyCreateAPIView.as_view(), name='discussion-replies'),
]
