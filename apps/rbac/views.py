"""
RBAC REST API views.

Implements endpoints for:
- Role management (list, create, detail, update, delete)
- Permission catalog
- User role assignments (global or tenant-scoped)
"""
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter, OpenApiExample
from drf_spectacular.types import OpenApiTypes

from apps.core.pagination import StandardResultsSetPagination
from apps.core.permissions import requires_scopes, HasTenantScopes
from apps.rbac.services import RoleStore, RoleAssignmentEngine
from apps.rbac.serializers import (
    PermissionSerializer, RoleSerializer, RoleDetailSerializer,
    RoleCreateSerializer, RoleUpdateSerializer,
    RoleAssignmentSerializer, RoleAssignmentRequestSerializer,
)


ERROR_RESPONSES = {
    403: OpenApiTypes.OBJECT,
    404: OpenApiTypes.OBJECT,
    422: OpenApiTypes.OBJECT,
}


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Roles'],
        summary='List roles',
        description='''
List all roles, system and custom.

**Required scope:** `roles:view`

Query parameters:
- `type`: `system` or `custom`
- `include_permissions`: `true` to include permission slugs
        ''',
        parameters=[
            OpenApiParameter('type', OpenApiTypes.STR, enum=['system', 'custom']),
            OpenApiParameter('include_permissions', OpenApiTypes.BOOL),
        ],
        responses={200: RoleSerializer(many=True)},
    ),
    post=extend_schema(
        tags=['RBAC - Roles'],
        summary='Create role',
        description='''
Create a custom role with an initial permission set.

**Required scope:** `roles:manage`

The slug is derived from the name when omitted. Duplicate names or slugs and
unknown permission slugs are rejected with 422 and field errors.
        ''',
        request=RoleCreateSerializer,
        responses={201: RoleDetailSerializer, **ERROR_RESPONSES},
        examples=[
            OpenApiExample(
                'Create Editor',
                value={
                    'name': 'Editor',
                    'description': 'Manages role assignments',
                    'permissions': ['roles:view', 'roles:manage'],
                },
                request_only=True
            )
        ]
    ),
)
@requires_scopes('roles:view')
class RoleListView(APIView):
    """
    GET /v1/roles
    POST /v1/roles
    """
    permission_classes = [HasTenantScopes]
    pagination_class = StandardResultsSetPagination

    def get(self, request):
        """List roles."""
        include_permissions = request.query_params.get('include_permissions') == 'true'
        roles = RoleStore.list_roles(include_permissions=True).order_by('is_system', 'name')

        role_type = request.query_params.get('type')
        if role_type == 'system':
            roles = roles.filter(is_system=True)
        elif role_type == 'custom':
            roles = roles.filter(is_system=False)

        paginator = self.pagination_class()
        page = paginator.paginate_queryset(roles, request, view=self)

        serializer = RoleSerializer(
            page,
            many=True,
            context={'include_permissions': include_permissions}
        )
        return paginator.get_paginated_response(serializer.data)

    @requires_scopes('roles:manage')
    def post(self, request):
        """Create a custom role."""
        serializer = RoleCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        role = RoleStore.create_role(
            name=data['name'],
            slug=data.get('slug') or None,
            description=data.get('description', ''),
            permission_slugs=data.get('permissions', []),
            causer_id=request.user.id,
            request=request,
        )

        return Response(RoleDetailSerializer(role).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Roles'],
        summary='Get role details',
        description='**Required scope:** `roles:view`',
        responses={200: RoleDetailSerializer, 404: OpenApiTypes.OBJECT},
    ),
    put=extend_schema(
        tags=['RBAC - Roles'],
        summary='Update role',
        description='''
Update role attributes and/or replace its permission set.

**Required scope:** `roles:manage`

`permissions`, when present, is the full new permission set. The response
carries the permission diff that was written to the audit trail.

System roles cannot be modified (403 `SYSTEM_ROLE_IMMUTABLE`).
        ''',
        request=RoleUpdateSerializer,
        responses={200: OpenApiTypes.OBJECT, **ERROR_RESPONSES},
    ),
    delete=extend_schema(
        tags=['RBAC - Roles'],
        summary='Delete role',
        description='''
Delete a custom role. Its assignments are removed with it.

**Required scope:** `roles:manage`

System roles cannot be deleted (403 `SYSTEM_ROLE_IMMUTABLE`).
        ''',
        responses={200: OpenApiTypes.OBJECT, 403: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    ),
)
@requires_scopes('roles:view')
class RoleDetailView(APIView):
    """
    GET /v1/roles/{role_id}
    PUT /v1/roles/{role_id}
    DELETE /v1/roles/{role_id}
    """
    permission_classes = [HasTenantScopes]

    def get(self, request, role_id):
        """Get role details with permissions."""
        role = RoleStore.get_role(role_id)
        return Response(RoleDetailSerializer(role).data)

    @requires_scopes('roles:manage')
    def put(self, request, role_id):
        """Update a custom role."""
        serializer = RoleUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = RoleAssignmentEngine.update_role(
            role_id,
            name=data.get('name'),
            slug=data.get('slug'),
            description=data.get('description'),
            permission_slugs=data.get('permissions'),
            causer_id=request.user.id,
            request=request,
        )

        return Response({
            'role': RoleDetailSerializer(result.role).data,
            'changes': result.changes,
            'added_permissions': result.added_permissions,
            'removed_permissions': result.removed_permissions,
        })

    @requires_scopes('roles:manage')
    def delete(self, request, role_id):
        """Delete a custom role."""
        snapshot = RoleAssignmentEngine.delete_role(
            role_id,
            causer_id=request.user.id,
            request=request,
        )
        return Response({
            'message': f"Role '{snapshot['slug']}' deleted",
            'role': snapshot,
        })


@extend_schema(
    tags=['RBAC - Permissions'],
    summary='List permissions',
    description='''
List the permission catalog.

**Required scope:** `roles:view`

Filter with `category` (e.g. `audit`).
    ''',
    parameters=[OpenApiParameter('category', OpenApiTypes.STR)],
    responses={200: PermissionSerializer(many=True)},
)
@requires_scopes('roles:view')
class PermissionListView(APIView):
    """
    GET /v1/permissions
    """
    permission_classes = [HasTenantScopes]

    def get(self, request):
        """List permissions."""
        permissions = RoleStore.list_permissions(category=request.query_params.get('category'))
        serializer = PermissionSerializer(permissions, many=True)
        return Response({
            'count': len(serializer.data),
            'permissions': serializer.data,
        })


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Assignments'],
        summary="List a user's role assignments",
        description='**Required scope:** `roles:view`',
        responses={200: RoleAssignmentSerializer(many=True), 404: OpenApiTypes.OBJECT},
    ),
    post=extend_schema(
        tags=['RBAC - Assignments'],
        summary='Assign role to user',
        description='''
Assign a role to a user, globally or within a tenant.

**Required scope:** `roles:manage`

Omit `tenant_id` for a global assignment. Re-assigning an existing
(user, role, tenant) binding returns 400 `ALREADY_ASSIGNED` and writes no
audit event.
        ''',
        request=RoleAssignmentRequestSerializer,
        responses={200: RoleAssignmentSerializer, 400: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
        examples=[
            OpenApiExample(
                'Tenant-scoped assignment',
                value={'role_slug': 'tenant-admin', 'tenant_id': '123e4567-e89b-12d3-a456-426614174001'},
                request_only=True
            )
        ]
    ),
    delete=extend_schema(
        tags=['RBAC - Assignments'],
        summary='Remove role from user',
        description='''
Remove a role binding.

**Required scope:** `roles:manage`

Returns 404 `NOT_ASSIGNED` when the binding does not exist.
        ''',
        request=RoleAssignmentRequestSerializer,
        responses={200: OpenApiTypes.OBJECT, 404: OpenApiTypes.OBJECT},
    ),
)
@requires_scopes('roles:view')
class UserRoleAssignmentView(APIView):
    """
    GET /v1/users/{user_id}/roles
    POST /v1/users/{user_id}/roles
    DELETE /v1/users/{user_id}/roles
    """
    permission_classes = [HasTenantScopes]

    def get(self, request, user_id):
        """List the user's role assignments."""
        assignments = RoleAssignmentEngine.assignments_for_user(user_id)
        serializer = RoleAssignmentSerializer(assignments, many=True)
        return Response({
            'count': len(serializer.data),
            'assignments': serializer.data,
        })

    @requires_scopes('roles:manage')
    def post(self, request, user_id):
        """Assign a role."""
        serializer = RoleAssignmentRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RoleAssignmentEngine.assign(
            user_id,
            serializer.validated_data['role_slug'],
            tenant_id=serializer.validated_data.get('tenant_id'),
            causer_id=request.user.id,
            request=request,
        )

        return Response({
            'message': 'Role assigned',
            'assignment': RoleAssignmentSerializer(result.assignment).data,
        }, status=status.HTTP_200_OK)

    @requires_scopes('roles:manage')
    def delete(self, request, user_id):
        """Remove a role."""
        serializer = RoleAssignmentRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RoleAssignmentEngine.remove(
            user_id,
            serializer.validated_data['role_slug'],
            tenant_id=serializer.validated_data.get('tenant_id'),
            causer_id=request.user.id,
            request=request,
        )

        return Response({
            'message': 'Role removed',
            'user_id': str(result.user_id),
            'role_slug': result.role_slug,
            'tenant_id': str(result.tenant_id) if result.tenant_id else None,
        })
