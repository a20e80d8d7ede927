"""
RBAC and Authentication services.

Implements:
- RoleStore: role and permission catalog, role creation, permission sync
- RoleAssignmentEngine: assign/remove role bindings, update/delete roles
- RBACService: scope resolution with versioned caching
- AuthService: JWT issue/validation, console login and logout
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import jwt
from django.conf import settings
from django.contrib.auth import authenticate
from django.core.cache import cache
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Q
from django.utils.text import slugify

from apps.audit.services import AuditRecorder, LoginAuditTracker
from apps.core.exceptions import (
    AlreadyAssigned, NotAssigned, NotFound, StorageUnavailable,
    SystemRoleImmutable, ValidationFailed,
)
from apps.core.logging import SecurityLogger
from apps.rbac.catalog import CONSOLE_SCOPES
from apps.rbac.models import Permission, Role, RoleAssignment, RolePermission, User

logger = logging.getLogger(__name__)

MODULE = 'roles_permissions'


def _lookup(queryset, label: str, identifier, **lookup):
    """
    Fetch one row or raise NotFound.

    Malformed identifiers (e.g. a non-UUID string) are treated as absent.
    """
    try:
        instance = queryset.filter(**lookup).first()
    except (ValueError, DjangoValidationError):
        instance = None
    if instance is None:
        raise NotFound(f'{label} not found', details={label.lower().replace(' ', '_'): str(identifier)})
    return instance


def _get_user(user_id) -> User:
    return _lookup(User.objects.all(), 'User', user_id, id=user_id)


def _get_role_by_slug(role_slug) -> Role:
    return _lookup(Role.objects.all(), 'Role', role_slug, slug=role_slug)


def _get_tenant(tenant_id):
    from apps.tenants.models import Tenant

    if tenant_id in (None, ''):
        return None
    return _lookup(Tenant.objects.all(), 'Tenant', tenant_id, id=tenant_id)


@dataclass
class AssignmentResult:
    """Outcome of a successful assign()."""
    assignment: RoleAssignment
    audit_event_id: Optional[uuid.UUID] = None


@dataclass
class RemovalResult:
    """Outcome of a successful remove()."""
    user_id: uuid.UUID
    role_slug: str
    tenant_id: Optional[uuid.UUID] = None
    audit_event_id: Optional[uuid.UUID] = None


@dataclass
class RoleUpdateResult:
    """Outcome of update_role(): the role plus the attribute and permission diff."""
    role: Role
    changes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    old_permissions: List[str] = field(default_factory=list)
    new_permissions: List[str] = field(default_factory=list)
    added_permissions: List[str] = field(default_factory=list)
    removed_permissions: List[str] = field(default_factory=list)


class RoleStore:
    """
    Service for the role and permission catalog.
    """

    @classmethod
    def list_roles(cls, include_permissions: bool = False):
        queryset = Role.objects.all().order_by('name')
        if include_permissions:
            queryset = queryset.prefetch_related('role_permissions__permission')
        return queryset

    @classmethod
    def list_permissions(cls, category: Optional[str] = None):
        queryset = Permission.objects.by_category(category) if category else Permission.objects.all()
        return queryset.order_by('category', 'slug')

    @classmethod
    def get_role(cls, role_id) -> Role:
        """
        Get role by id.

        Raises:
            NotFound: if no role has this id
        """
        return _lookup(Role.objects.all(), 'Role', role_id, id=role_id)

    @classmethod
    def resolve_permissions(cls, permission_slugs: Iterable[str]) -> List[Permission]:
        """
        Map permission slugs to Permission rows.

        Raises:
            ValidationFailed: if any slug is unknown
        """
        slugs = sorted(set(permission_slugs or []))
        permissions = list(Permission.objects.filter(slug__in=slugs))
        unknown = sorted(set(slugs) - {permission.slug for permission in permissions})
        if unknown:
            raise ValidationFailed(
                'Unknown permissions',
                details={'permissions': [f"Unknown permission: {slug}" for slug in unknown]},
            )
        return permissions

    @classmethod
    def validate_role_fields(cls, name: str, slug: str, exclude_id=None):
        """
        Check name/slug presence and uniqueness.

        Raises:
            ValidationFailed: with field errors for blank or duplicate values
        """
        errors = {}
        if not name or not name.strip():
            errors['name'] = ['This field may not be blank.']
        if not slug:
            errors['slug'] = ['A slug could not be derived; provide one explicitly.']

        others = Role.objects.all()
        if exclude_id is not None:
            others = others.exclude(id=exclude_id)
        if name and others.filter(name__iexact=name.strip()).exists():
            errors['name'] = ['A role with this name already exists.']
        if slug and others.filter(slug=slug).exists():
            errors['slug'] = ['A role with this slug already exists.']

        if errors:
            raise ValidationFailed('Role validation failed', details=errors)

    @classmethod
    def create_role(cls, name: str, slug: Optional[str] = None, description: str = '',
                    permission_slugs: Iterable[str] = (), causer_id=None, request=None) -> Role:
        """
        Create a custom role with an initial permission set.

        Args:
            name: Unique role name
            slug: Unique slug; derived from the name when omitted
            description: Free-text description
            permission_slugs: Permissions granted by the role
            causer_id: Acting user id
            request: Optional request for audit context

        Returns:
            The created Role (never a system role)

        Raises:
            ValidationFailed: for blank/duplicate name or slug, or unknown permissions
        """
        name = (name or '').strip()
        slug = slugify(slug or name)
        cls.validate_role_fields(name, slug)
        permissions = cls.resolve_permissions(permission_slugs)

        try:
            with transaction.atomic():
                role = Role.objects.create(
                    name=name,
                    slug=slug,
                    description=description or '',
                    is_system=False,
                )
                RolePermission.objects.bulk_create([
                    RolePermission(role=role, permission=permission) for permission in permissions
                ])

                AuditRecorder.record(
                    MODULE, 'created', f"Created role {role.name}",
                    submodule='role_created',
                    causer_id=causer_id,
                    subject=role,
                    properties={'name': role.name, 'slug': role.slug, 'description': role.description},
                    request=request,
                )
                if permissions:
                    AuditRecorder.record(
                        MODULE, 'permission_assigned',
                        f"Granted {len(permissions)} permissions to role {role.name}",
                        submodule='permission_assigned',
                        causer_id=causer_id,
                        subject=role,
                        properties={'permissions': sorted(p.slug for p in permissions)},
                        request=request,
                    )
        except IntegrityError:
            raise ValidationFailed(
                'Role validation failed',
                details={'name': ['A role with this name or slug already exists.']},
            )
        except DatabaseError as e:
            raise StorageUnavailable(details={'operation': 'create_role'}) from e

        logger.info(f"Role created: {role.slug}", extra={'role_id': str(role.id)})
        return role

    @classmethod
    def sync_permissions(cls, role: Role, permission_slugs: Iterable[str]) -> Tuple[Set[str], Set[str]]:
        """
        Replace a role's permission set.

        Must run inside the caller's transaction.

        Returns:
            (old, new) permission slug sets
        """
        permissions = cls.resolve_permissions(permission_slugs)
        old = role.permission_slugs()
        new = {permission.slug for permission in permissions}

        RolePermission.objects.filter(role=role).exclude(permission__slug__in=new).delete()
        RolePermission.objects.bulk_create([
            RolePermission(role=role, permission=permission)
            for permission in permissions
            if permission.slug not in old
        ])

        if old != new:
            RBACService.invalidate_all()
        return old, new


class RoleAssignmentEngine:
    """
    Service for role bindings and role mutation.

    Uniqueness of (user, role, tenant) is enforced by partial unique
    constraints; a duplicate insert surfaces as AlreadyAssigned, so two
    concurrent identical assigns yield exactly one success.
    """

    @classmethod
    def assign(cls, user_id, role_slug: str, tenant_id=None, causer_id=None, request=None) -> AssignmentResult:
        """
        Bind a role to a user, globally or within a tenant.

        Raises:
            NotFound: unknown user, role or tenant
            AlreadyAssigned: the binding already exists
            StorageUnavailable: the database rejected the write
        """
        user = _get_user(user_id)
        role = _get_role_by_slug(role_slug)
        tenant = _get_tenant(tenant_id)
        scope = 'tenant' if tenant else 'global'

        try:
            with transaction.atomic():
                assignment = RoleAssignment.objects.create(
                    user=user,
                    role=role,
                    tenant=tenant,
                    assigned_by_id=causer_id,
                )
                event = AuditRecorder.record(
                    MODULE, 'assigned',
                    f"Assigned role {role.name} to {user.email}"
                    + (f" in tenant {tenant.slug}" if tenant else " globally"),
                    submodule='role_assigned',
                    causer_id=causer_id,
                    subject=user,
                    tenant_id=tenant.id if tenant else None,
                    properties={
                        'tenant_id': str(tenant.id) if tenant else None,
                        'tenant_slug': tenant.slug if tenant else None,
                        'role_slug': role.slug,
                        'role_id': str(role.id),
                        'scope': scope,
                    },
                    request=request,
                )
        except IntegrityError:
            logger.info(
                f"Duplicate role assignment rejected: {role.slug}",
                extra={'user_id': str(user.id), 'tenant_id': str(tenant.id) if tenant else None}
            )
            raise AlreadyAssigned(
                f"User already holds role '{role.slug}' in this scope",
                details={
                    'user_id': str(user.id),
                    'role_slug': role.slug,
                    'tenant_id': str(tenant.id) if tenant else None,
                },
            )
        except DatabaseError as e:
            logger.error("Role assignment write failed", exc_info=True)
            raise StorageUnavailable(details={'operation': 'assign'}) from e

        RBACService.invalidate_user(user.id)

        return AssignmentResult(assignment=assignment, audit_event_id=event.id if event else None)

    @classmethod
    def remove(cls, user_id, role_slug: str, tenant_id=None, causer_id=None, request=None) -> RemovalResult:
        """
        Remove a role binding.

        Raises:
            NotFound: unknown user, role or tenant
            NotAssigned: the binding does not exist
            StorageUnavailable: the database rejected the write
        """
        user = _get_user(user_id)
        role = _get_role_by_slug(role_slug)
        tenant = _get_tenant(tenant_id)

        try:
            with transaction.atomic():
                deleted, _ = RoleAssignment.objects.lookup(user, role, tenant).delete()
                if not deleted:
                    raise NotAssigned(
                        f"User does not hold role '{role.slug}' in this scope",
                        details={
                            'user_id': str(user.id),
                            'role_slug': role.slug,
                            'tenant_id': str(tenant.id) if tenant else None,
                        },
                    )
                event = AuditRecorder.record(
                    MODULE, 'removed',
                    f"Removed role {role.name} from {user.email}"
                    + (f" in tenant {tenant.slug}" if tenant else " globally"),
                    submodule='role_removed',
                    causer_id=causer_id,
                    subject=user,
                    tenant_id=tenant.id if tenant else None,
                    properties={
                        'tenant_id': str(tenant.id) if tenant else None,
                        'role_slug': role.slug,
                        'role_id': str(role.id),
                        'scope': 'tenant' if tenant else 'global',
                    },
                    request=request,
                )
        except DatabaseError as e:
            logger.error("Role removal write failed", exc_info=True)
            raise StorageUnavailable(details={'operation': 'remove'}) from e

        RBACService.invalidate_user(user.id)

        return RemovalResult(
            user_id=user.id,
            role_slug=role.slug,
            tenant_id=tenant.id if tenant else None,
            audit_event_id=event.id if event else None,
        )

    @classmethod
    def _reject_system_role(cls, role: Role, operation: str, causer_id=None, request=None):
        SecurityLogger.log_system_role_mutation(role.slug, operation, causer_id)
        AuditRecorder.record_failure(
            'security', 'suspicious_activity', f'{operation} system role',
            f"role '{role.slug}' is a system role",
            causer_id=causer_id,
            subject=role,
            request=request,
        )
        raise SystemRoleImmutable(
            f"System role '{role.slug}' cannot be {'deleted' if operation == 'delete' else 'modified'}",
            details={'role_id': str(role.id), 'role_slug': role.slug},
        )

    @classmethod
    def update_role(cls, role_id, name: Optional[str] = None, slug: Optional[str] = None,
                    description: Optional[str] = None, permission_slugs: Optional[Iterable[str]] = None,
                    causer_id=None, request=None) -> RoleUpdateResult:
        """
        Update role attributes and/or replace its permission set.

        The role row is locked, the previous permission set read, the new set
        written and the diff recorded in one transaction.

        Raises:
            NotFound: unknown role
            SystemRoleImmutable: the role is a system role
            ValidationFailed: blank/duplicate name or slug, unknown permissions
            StorageUnavailable: the database rejected the write
        """
        role = cls._unlocked_role(role_id)
        if role.is_system:
            cls._reject_system_role(role, 'update', causer_id, request)

        try:
            with transaction.atomic():
                role = Role.objects.select_for_update().get(pk=role.pk)
                if role.is_system:
                    cls._reject_system_role(role, 'update', causer_id, request)

                before = {'name': role.name, 'slug': role.slug, 'description': role.description}
                if name is not None:
                    role.name = name.strip()
                if slug is not None:
                    role.slug = slugify(slug)
                if description is not None:
                    role.description = description
                after = {'name': role.name, 'slug': role.slug, 'description': role.description}

                changes = {
                    key: {'old': before[key], 'new': value}
                    for key, value in after.items()
                    if before[key] != value
                }
                if changes:
                    RoleStore.validate_role_fields(role.name, role.slug, exclude_id=role.id)
                    role.save()

                result = RoleUpdateResult(role=role, changes=changes)
                properties = {}

                if permission_slugs is not None:
                    old, new = RoleStore.sync_permissions(role, permission_slugs)
                    result.old_permissions = sorted(old)
                    result.new_permissions = sorted(new)
                    result.added_permissions = sorted(new - old)
                    result.removed_permissions = sorted(old - new)
                    properties.update({
                        'old_permissions': result.old_permissions,
                        'new_permissions': result.new_permissions,
                        'added_permissions': result.added_permissions,
                        'removed_permissions': result.removed_permissions,
                    })

                if changes or properties:
                    AuditRecorder.record_model_change(
                        MODULE, 'role_updated', 'updated', role,
                        old=before if changes else None,
                        new=after if changes else None,
                        description=f"Updated role {role.name}",
                        causer_id=causer_id,
                        properties=properties,
                        request=request,
                    )
        except IntegrityError:
            raise ValidationFailed(
                'Role validation failed',
                details={'name': ['A role with this name or slug already exists.']},
            )
        except DatabaseError as e:
            logger.error("Role update write failed", exc_info=True)
            raise StorageUnavailable(details={'operation': 'update_role'}) from e

        logger.info(
            f"Role updated: {role.slug}",
            extra={
                'role_id': str(role.id),
                'added_permissions': result.added_permissions,
                'removed_permissions': result.removed_permissions,
            }
        )
        return result

    @classmethod
    def delete_role(cls, role_id, causer_id=None, request=None) -> Dict[str, Any]:
        """
        Delete a custom role; its assignments cascade.

        Returns:
            Snapshot of the deleted role

        Raises:
            NotFound: unknown role
            SystemRoleImmutable: the role is a system role
            StorageUnavailable: the database rejected the write
        """
        role = cls._unlocked_role(role_id)
        if role.is_system:
            cls._reject_system_role(role, 'delete', causer_id, request)

        try:
            with transaction.atomic():
                role = Role.objects.select_for_update().get(pk=role.pk)
                if role.is_system:
                    cls._reject_system_role(role, 'delete', causer_id, request)

                snapshot = {
                    'id': str(role.id),
                    'name': role.name,
                    'slug': role.slug,
                    'description': role.description,
                    'permissions': sorted(role.permission_slugs()),
                    'assignment_count': role.assignments.count(),
                }
                AuditRecorder.record(
                    MODULE, 'deleted', f"Deleted role {role.name}",
                    submodule='role_deleted',
                    causer_id=causer_id,
                    subject=role,
                    properties=snapshot,
                    request=request,
                )
                role.delete()
        except DatabaseError as e:
            logger.error("Role delete write failed", exc_info=True)
            raise StorageUnavailable(details={'operation': 'delete_role'}) from e

        RBACService.invalidate_all()
        logger.info(f"Role deleted: {snapshot['slug']}", extra={'role_id': snapshot['id']})
        return snapshot

    @classmethod
    def assignments_for_user(cls, user_id) -> List[RoleAssignment]:
        """
        All bindings held by a user, newest first.

        Raises:
            NotFound: unknown user
        """
        user = _get_user(user_id)
        return list(
            RoleAssignment.objects.for_user(user)
            .select_related('role', 'tenant')
            .order_by('-created_at')
        )

    @staticmethod
    def _unlocked_role(role_id) -> Role:
        return RoleStore.get_role(role_id)


class RBACService:
    """
    Service for scope resolution.

    Resolved scopes are cached under versioned keys. Assign/remove bump the
    user's version; permission changes and role deletion bump the global
    version, which invalidates every cached entry at once.
    """

    SCOPE_CACHE_TTL = 300  # 5 minutes
    GLOBAL_VERSION_KEY = 'rbac:scopes:version'

    @classmethod
    def _user_version_key(cls, user_id) -> str:
        return f"rbac:scopes:user:{user_id}:version"

    @classmethod
    def _cache_key(cls, user, tenant) -> str:
        global_version = cache.get(cls.GLOBAL_VERSION_KEY, 0)
        user_version = cache.get(cls._user_version_key(user.id), 0)
        scope = tenant.id if tenant is not None else 'global'
        return f"rbac:scopes:{user.id}:{scope}:v{global_version}.{user_version}"

    @classmethod
    def _bump(cls, key: str):
        try:
            cache.incr(key)
        except ValueError:
            cache.set(key, 1, None)

    @classmethod
    def invalidate_user(cls, user_id):
        """Invalidate cached scopes for one user."""
        cls._bump(cls._user_version_key(user_id))

    @classmethod
    def invalidate_all(cls):
        """Invalidate cached scopes for every user."""
        cls._bump(cls.GLOBAL_VERSION_KEY)

    @classmethod
    def resolve_scopes(cls, user, tenant=None) -> Set[str]:
        """
        Resolve the permission scopes a user holds in a context.

        Global assignments always count. Assignments in the given tenant
        count only while the tenant is active; a deactivated tenant's
        assignments stay stored but grant nothing. Console administrators
        (is_admin) hold every scope.

        Args:
            user: User instance
            tenant: Optional Tenant selected for the request

        Returns:
            Set of permission slugs (e.g., {'roles:view', 'audit:view'})
        """
        if user is None or not getattr(user, 'is_authenticated', False):
            return set()

        cache_key = cls._cache_key(user, tenant)
        cached_scopes = cache.get(cache_key)
        if cached_scopes is not None:
            return set(cached_scopes)

        if user.is_admin:
            scopes = set(CONSOLE_SCOPES) | set(Permission.objects.values_list('slug', flat=True))
        else:
            assignments = RoleAssignment.objects.filter(user=user)
            if tenant is not None and tenant.is_active():
                assignments = assignments.filter(Q(tenant__isnull=True) | Q(tenant=tenant))
            else:
                assignments = assignments.filter(tenant__isnull=True)

            scopes = set(
                Permission.objects.filter(
                    role_permissions__role_id__in=assignments.values('role_id')
                ).values_list('slug', flat=True).distinct()
            )

        cache.set(cache_key, sorted(scopes), cls.SCOPE_CACHE_TTL)
        return scopes

    @classmethod
    def has_scope(cls, user, scope: str, tenant=None) -> bool:
        return scope in cls.resolve_scopes(user, tenant)


class AuthService:
    """
    Service for console authentication: JWT issue/validation, login, logout.
    """

    @classmethod
    def generate_jwt(cls, user: User, session_key: Optional[str] = None, tenant_id=None) -> str:
        """
        Generate a JWT for a user.

        Args:
            user: User instance
            session_key: Console session bound to the token (claim 'sid')
            tenant_id: Tenant selected at login (claim 'tenant_id')

        Returns:
            JWT token string
        """
        now = datetime.now(dt_timezone.utc)
        payload = {
            'user_id': str(user.id),
            'email': user.email,
            'exp': now + timedelta(hours=settings.JWT_EXPIRATION_HOURS),
            'iat': now,
        }
        if session_key:
            payload['sid'] = session_key
        if tenant_id:
            payload['tenant_id'] = str(tenant_id)

        return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    @classmethod
    def validate_jwt(cls, token: str) -> Optional[Dict[str, Any]]:
        """
        Validate JWT token and return payload.

        Returns:
            Decoded payload dict or None if invalid or expired
        """
        try:
            return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

    @classmethod
    def resolve_bearer(cls, token: str) -> Tuple[Optional[User], Optional[Dict[str, Any]]]:
        """
        Resolve a bearer token to (user, payload).

        Returns:
            (None, None) when the token is invalid or its user is missing or inactive
        """
        payload = cls.validate_jwt(token)
        if not payload or not payload.get('user_id'):
            return None, None

        try:
            user = User.objects.filter(id=payload['user_id'], is_active=True).first()
        except (ValueError, DjangoValidationError):
            user = None
        if user is None:
            return None, None
        return user, payload

    @classmethod
    def login(cls, email: str, password: str, tenant_id=None, method: str = 'direct',
              request=None) -> Optional[Dict[str, Any]]:
        """
        Authenticate a console user and open a session.

        Both outcomes are recorded through the LoginAuditTracker.

        Returns:
            Dict with user, token, session_key and login_audit, or None if
            authentication failed

        Raises:
            NotFound: if tenant_id names no tenant
        """
        from apps.audit.services.audit_recorder import request_context

        tenant = _get_tenant(tenant_id)
        context = request_context(request)

        user = authenticate(request, username=email, password=password)
        if user is None:
            LoginAuditTracker.record_attempt(
                success=False,
                method=method,
                email=email,
                tenant_id=tenant.id if tenant else None,
                ip_address=context['ip_address'],
                user_agent=context['user_agent'],
                failure_reason='Invalid credentials',
            )
            AuditRecorder.record(
                'authentication', 'failed', f"Failed login for {email}",
                submodule='failed_login',
                tenant_id=tenant.id if tenant else None,
                properties={'email': email, 'login_method': method},
                request=request,
            )
            return None

        audit = LoginAuditTracker.record_attempt(
            success=True,
            method=method,
            user_id=user.id,
            tenant_id=tenant.id if tenant else None,
            ip_address=context['ip_address'],
            user_agent=context['user_agent'],
        )
        user.update_last_login()

        token = cls.generate_jwt(user, session_key=audit.session_key, tenant_id=tenant.id if tenant else None)

        AuditRecorder.record(
            'authentication', 'login', f"{user.email} logged in",
            submodule='login',
            causer_id=user.id,
            subject=user,
            tenant_id=tenant.id if tenant else None,
            properties={'login_method': method, 'login_audit_id': str(audit.id)},
            request=request,
        )

        return {
            'user': user,
            'token': token,
            'session_key': audit.session_key,
            'login_audit': audit,
        }

    @classmethod
    def logout(cls, user: User, payload: Optional[Dict[str, Any]], request=None):
        """
        End the console session bound to the caller's token.

        Returns:
            The updated LoginAudit, or None if the token carried no open session
        """
        session_key = (payload or {}).get('sid')
        audit = LoginAuditTracker.record_logout(session_key)

        AuditRecorder.record(
            'authentication', 'logout', f"{user.email} logged out",
            submodule='logout',
            causer_id=user.id,
            subject=user,
            properties={
                'session_duration': audit.session_duration if audit else None,
            },
            request=request,
        )
        return audit
