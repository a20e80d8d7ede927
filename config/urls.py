"""
URL configuration for Gatehouse.
"""
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

urlpatterns = [
    # API Documentation
    path('schema/', SpectacularAPIView.as_view(), name='schema'),
    path('schema/swagger/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),

    # API v1
    path('v1/', include('apps.core.urls')),  # Health check

    # Authentication endpoints
    path('v1/auth/', include('apps.rbac.urls_auth')),  # Login, logout, me

    # RBAC endpoints
    path('v1/', include('apps.rbac.urls')),  # Roles, permissions, role assignments

    # Audit endpoints
    path('v1/', include('apps.audit.urls')),  # Audit trail, login audits

    path('v1/analytics/', include('apps.analytics.urls')),
]
