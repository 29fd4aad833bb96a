from django.contrib import admin
from django.urls import path, include
from rest_framework import permissions
from drf_yasg.views import get_schema_view
from drf_yasg import openapi

schema_view = get_schema_view(
    openapi.Info(
        title="NAMC NorCal Member Portal API",
        default_version='v1',
        description="Members, projects, escrow payments, disputes, the tool lending library and community",
    ),
    public=True,
    permission_classes=(permissions.AllowAny,),
)

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', include('accounts.urls')),
    path('projects/', include('projects.urls')),
    path('escrow/', include('escrow.urls')),
    path('payments/', include('payments.urls')),
    path('', include('disputes.urls')),
    path('tools/', include('tools.urls')),
    path('community/', include('community.urls')),
    path('notifications/', include('notifications.urls')),

    # swagger/openapi routes
    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
    path('redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='schema-redoc'),
    path('openapi.json/', schema_view.without_ui(cache_timeout=0), name='schema-json'),
]
