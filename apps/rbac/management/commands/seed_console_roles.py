"""
Management command to seed console permissions and system roles.

Creates every Permission in the console catalog and the system roles built
from it. This command is idempotent and safe to re-run; system role
permission sets are brought back in line with the catalog.
"""
from django.core.management.base import BaseCommand
from django.db import transaction

from apps.rbac.catalog import CONSOLE_PERMISSIONS, SYSTEM_ROLES
from apps.rbac.models import Permission, Role, RolePermission
from apps.rbac.services import RBACService


class Command(BaseCommand):
    help = 'Seed console permissions and system roles (idempotent)'

    def handle(self, *args, **options):
        """Create or update permissions, then system roles."""
        self.stdout.write('Seeding console permissions...\n')

        with transaction.atomic():
            created_count, updated_count = self._seed_permissions()
            role_changes = self._seed_roles()

        RBACService.invalidate_all()

        self.stdout.write(
            self.style.SUCCESS(
                f'\n✓ Permissions: {created_count} created, {updated_count} updated, '
                f'{len(CONSOLE_PERMISSIONS) - created_count - updated_count} unchanged'
            )
        )
        self.stdout.write(
            self.style.SUCCESS(f'✓ System roles: {role_changes} created or resynced')
        )

        self.stdout.write('\n' + '=' * 70)
        self.stdout.write('System Roles:')
        self.stdout.write('=' * 70)
        for role in Role.objects.system_roles().order_by('name'):
            slugs = sorted(role.permission_slugs())
            self.stdout.write(f'\n{role.name} ({role.slug}): {len(slugs)} permissions')
            for slug in slugs:
                self.stdout.write(f'  • {slug}')

    def _seed_permissions(self):
        created_count = 0
        updated_count = 0

        for perm_data in CONSOLE_PERMISSIONS:
            permission, created = Permission.objects.get_or_create_permission(
                slug=perm_data['slug'],
                name=perm_data['name'],
                description=perm_data['description'],
                category=perm_data['category']
            )

            if created:
                created_count += 1
                self.stdout.write(self.style.SUCCESS(f'✓ Created: {permission.slug}'))
                continue

            changed = [
                field for field in ('name', 'description', 'category')
                if getattr(permission, field) != perm_data[field]
            ]
            if changed:
                for field in changed:
                    setattr(permission, field, perm_data[field])
                permission.save(update_fields=changed + ['updated_at'])
                updated_count += 1
                self.stdout.write(self.style.WARNING(f'↻ Updated: {permission.slug}'))
            else:
                self.stdout.write(self.style.HTTP_INFO(f'  Exists: {permission.slug}'))

        return created_count, updated_count

    def _seed_roles(self):
        changes = 0

        for role_data in SYSTEM_ROLES:
            role, created = Role.objects.get_or_create(
                slug=role_data['slug'],
                defaults={
                    'name': role_data['name'],
                    'description': role_data['description'],
                    'is_system': True,
                }
            )
            if not created and not role.is_system:
                role.is_system = True
                role.save(update_fields=['is_system', 'updated_at'])

            wanted = set(role_data['permissions'])
            current = role.permission_slugs()
            if created or wanted != current:
                RolePermission.objects.filter(role=role).exclude(permission__slug__in=wanted).delete()
                for permission in Permission.objects.filter(slug__in=wanted - current):
                    RolePermission.objects.grant_permission(role, permission)
                changes += 1
                label = 'Created' if created else 'Resynced'
                self.stdout.write(self.style.SUCCESS(f'✓ {label} role: {role.slug}'))

        return changes
