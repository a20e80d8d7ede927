"""
RBAC API URLs.

Provides endpoints for:
- Role management (CRUD with permission sets)
- Permission catalog
- User role assignments
"""
from django.urls import path
from apps.rbac.views import (
    RoleListView,
    RoleDetailView,
    PermissionListView,
    UserRoleAssignmentView,
)

app_name = 'rbac'

urlpatterns = [
    # Role endpoints
    path('roles', RoleListView.as_view(), name='role-list'),
    path('roles/<uuid:role_id>', RoleDetailView.as_view(), name='role-detail'),

    # Permission catalog
    path('permissions', PermissionListView.as_view(), name='permission-list'),

    # Role assignments
    path('users/<uuid:user_id>/roles', UserRoleAssignmentView.as_view(), name='user-roles'),
]
