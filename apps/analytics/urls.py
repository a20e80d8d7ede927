"""
Analytics API URL configuration.

Provides endpoints for:
- Dashboard
- Login trends, hourly distribution, failed attempts, recent activity
- Sessions by login method
- User timeline and tenant rollup
"""
from django.urls import path
from apps.analytics import views

app_name = 'analytics'

urlpatterns = [
    path('dashboard', views.dashboard, name='dashboard'),
    path('trends', views.login_trends, name='trends'),
    path('hourly', views.hourly_distribution, name='hourly'),
    path('failed-attempts', views.failed_attempts, name='failed-attempts'),
    path('recent-activity', views.recent_activity, name='recent-activity'),
    path('sessions/by-method', views.sessions_by_method, name='sessions-by-method'),
    path('users/<uuid:user_id>', views.user_timeline, name='user-timeline'),
    path('tenants/<uuid:tenant_id>', views.tenant_rollup, name='tenant-rollup'),
]
