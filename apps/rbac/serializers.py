"""
RBAC serializers for REST API endpoints.

Provides serialization for:
- Authentication (login)
- Users and role assignments
- Roles and permissions
"""
from rest_framework import serializers
from apps.rbac.models import User, Permission, Role, RoleAssignment


# ===== AUTHENTICATION SERIALIZERS =====

class LoginSerializer(serializers.Serializer):
    """Serializer for console login."""

    email = serializers.EmailField(required=True)
    password = serializers.CharField(
        required=True,
        write_only=True,
        style={'input_type': 'password'}
    )
    tenant_id = serializers.UUIDField(required=False, allow_null=True)

    def validate_email(self, value):
        """Normalize email to lowercase."""
        return value.lower()


# ===== USER SERIALIZERS =====

class UserSerializer(serializers.ModelSerializer):
    """Serializer for User model (basic info)."""

    full_name = serializers.CharField(source='get_full_name', read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'full_name',
            'is_active', 'is_admin', 'last_login_at', 'created_at'
        ]
        read_only_fields = fields


# ===== PERMISSION / ROLE SERIALIZERS =====

class PermissionSerializer(serializers.ModelSerializer):
    """Serializer for Permission model."""

    class Meta:
        model = Permission
        fields = ['id', 'slug', 'name', 'description', 'category']
        read_only_fields = fields


class RoleSerializer(serializers.ModelSerializer):
    """Serializer for Role model."""

    permission_count = serializers.SerializerMethodField()
    permissions = serializers.SerializerMethodField()

    class Meta:
        model = Role
        fields = [
            'id', 'name', 'slug', 'description', 'is_system',
            'permission_count', 'permissions',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_permission_count(self, obj):
        return len(obj.role_permissions.all())

    def get_permissions(self, obj):
        """Permission slugs, only when requested."""
        if self.context.get('include_permissions', False):
            return sorted(rp.permission.slug for rp in obj.role_permissions.all())
        return None


class RoleDetailSerializer(RoleSerializer):
    """Detailed serializer for Role with full permission list."""

    permissions = PermissionSerializer(
        source='get_permissions',
        many=True,
        read_only=True
    )

    class Meta(RoleSerializer.Meta):
        fields = RoleSerializer.Meta.fields


class RoleCreateSerializer(serializers.Serializer):
    """Input for POST /v1/roles."""

    name = serializers.CharField(max_length=100)
    slug = serializers.SlugField(max_length=100, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    permissions = serializers.ListField(
        child=serializers.CharField(max_length=100),
        required=False,
        default=list,
        help_text='Permission slugs granted by the role'
    )

    def validate_name(self, value):
        if not value.strip():
            raise serializers.ValidationError("Role name cannot be empty.")
        return value.strip()


class RoleUpdateSerializer(serializers.Serializer):
    """Input for PUT /v1/roles/{id}; omitted fields stay unchanged."""

    name = serializers.CharField(max_length=100, required=False)
    slug = serializers.SlugField(max_length=100, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    permissions = serializers.ListField(
        child=serializers.CharField(max_length=100),
        required=False,
        help_text='Full replacement permission set (slugs)'
    )


# ===== ROLE ASSIGNMENT SERIALIZERS =====

class RoleAssignmentSerializer(serializers.ModelSerializer):
    """Serializer for RoleAssignment model."""

    role_slug = serializers.CharField(source='role.slug', read_only=True)
    role_name = serializers.CharField(source='role.name', read_only=True)
    tenant_id = serializers.UUIDField(read_only=True, allow_null=True)
    tenant_slug = serializers.SerializerMethodField()
    scope = serializers.CharField(read_only=True)

    class Meta:
        model = RoleAssignment
        fields = [
            'id', 'user_id', 'role_slug', 'role_name', 'tenant_id', 'tenant_slug',
            'scope', 'assigned_by_id', 'created_at'
        ]
        read_only_fields = fields

    def get_tenant_slug(self, obj):
        return obj.tenant.slug if obj.tenant_id else None


class RoleAssignmentRequestSerializer(serializers.Serializer):
    """Input for POST/DELETE /v1/users/{id}/roles."""

    role_slug = serializers.CharField(max_length=100)
    tenant_id = serializers.UUIDField(required=False, allow_null=True)
