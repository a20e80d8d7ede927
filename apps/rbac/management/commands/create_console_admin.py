"""
Management command to give a user a console role.

Assigns super-admin globally by default, or any role inside a tenant with
--tenant. The assignment goes through the RoleAssignmentEngine so it is
audited like one made over the API.
"""
from collections import defaultdict
from uuid import UUID

from django.core.management.base import BaseCommand, CommandError

from apps.core.exceptions import AlreadyAssigned, NotFound
from apps.rbac.models import Permission, User
from apps.rbac.services import RBACService, RoleAssignmentEngine
from apps.tenants.models import Tenant


class Command(BaseCommand):
    help = 'Assign a console role to a user (super-admin globally by default)'

    def add_arguments(self, parser):
        """Add command arguments."""
        parser.add_argument(
            '--email',
            type=str,
            required=True,
            help='User email address',
        )
        parser.add_argument(
            '--role',
            type=str,
            default='super-admin',
            help='Role slug to assign (default: super-admin)',
        )
        parser.add_argument(
            '--tenant',
            type=str,
            help='Tenant ID or slug; omit for a global assignment',
        )
        parser.add_argument(
            '--create-user',
            action='store_true',
            help='Create user if they do not exist (requires --password)',
        )
        parser.add_argument(
            '--password',
            type=str,
            help='Password for new user (only used with --create-user)',
        )

    def handle(self, *args, **options):
        """Assign the role."""
        email = options['email']
        password = options.get('password')

        if options['create_user'] and not password:
            raise CommandError('--password is required when using --create-user')

        tenant = None
        if options.get('tenant'):
            tenant = self._find_tenant(options['tenant'])
            self.stdout.write(f'Tenant: {tenant.name} ({tenant.slug})')

        user = User.objects.by_email(email)
        if not user:
            if not options['create_user']:
                raise CommandError(
                    f'User not found: {email}\n'
                    f'Use --create-user --password=<password> to create the user'
                )
            user = User.objects.create_user(email=email, password=password)
            self.stdout.write(self.style.SUCCESS(f'✓ Created user: {email}'))
        else:
            self.stdout.write(f'User: {user.email}')

        scope_label = tenant.name if tenant else 'all tenants (global)'
        try:
            RoleAssignmentEngine.assign(
                user.id,
                options['role'],
                tenant_id=tenant.id if tenant else None,
            )
        except AlreadyAssigned:
            self.stdout.write(
                self.style.WARNING(f"\n↻ {options['role']} already assigned to {user.email} for {scope_label}")
            )
        except NotFound as e:
            raise CommandError(f'{e.message}\nRun: python manage.py seed_console_roles')
        else:
            self.stdout.write(
                self.style.SUCCESS(f"\n✓ Assigned {options['role']} to {user.email} for {scope_label}")
            )

        scopes = RBACService.resolve_scopes(user, tenant)
        self.stdout.write(f'\nEffective scopes: {len(scopes)}')

        by_category = defaultdict(list)
        for perm in Permission.objects.filter(slug__in=scopes).order_by('category', 'slug'):
            by_category[perm.category].append(perm.slug)

        for category in sorted(by_category):
            self.stdout.write(f'\n  {category.upper()}:')
            for slug in by_category[category]:
                self.stdout.write(f'    • {slug}')

    @staticmethod
    def _find_tenant(identifier):
        tenant = Tenant.objects.by_slug(identifier)
        if not tenant:
            try:
                tenant = Tenant.objects.filter(id=UUID(identifier)).first()
            except ValueError:
                tenant = None
        if not tenant:
            raise CommandError(f'Tenant not found: {identifier}')
        return tenant
