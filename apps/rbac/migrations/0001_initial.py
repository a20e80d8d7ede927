import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('tenants', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, db_index=True, help_text='Timestamp when the record was last updated')),
                ('deleted_at', models.DateTimeField(blank=True, db_index=True, help_text='Timestamp when the record was soft deleted', null=True)),
                ('email', models.EmailField(help_text='User email address (unique globally)', max_length=254, unique=True)),
                ('password_hash', models.CharField(blank=True, db_column='password_hash', help_text='Hashed password', max_length=255)),
                ('first_name', models.CharField(blank=True, help_text='User first name', max_length=100)),
                ('last_name', models.CharField(blank=True, help_text='User last name', max_length=100)),
                ('is_active', models.BooleanField(db_index=True, default=True, help_text='Whether user account is active')),
                ('is_admin', models.BooleanField(default=False, help_text='Console administrator; holds every scope regardless of roles')),
                ('is_superuser', models.BooleanField(default=False, help_text='Platform superuser (use sparingly in production)')),
                ('last_login_at', models.DateTimeField(blank=True, help_text='Last successful login timestamp', null=True)),
            ],
            options={
                'db_table': 'users',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['is_active', 'created_at'], name='users_active_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Permission',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
                ('slug', models.CharField(help_text="Unique permission slug (e.g., 'audit:view')", max_length=100, unique=True)),
                ('name', models.CharField(help_text="Human-readable name (e.g., 'View Audit Trail')", max_length=255)),
                ('description', models.TextField(blank=True, help_text='What this permission grants')),
                ('category', models.CharField(blank=True, db_index=True, help_text="Permission category (e.g., 'roles', 'audit')", max_length=50)),
            ],
            options={
                'db_table': 'permissions',
                'ordering': ['category', 'slug'],
            },
        ),
        migrations.CreateModel(
            name='Role',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
                ('name', models.CharField(help_text="Role name (e.g., 'Tenant Admin')", max_length=100, unique=True)),
                ('slug', models.SlugField(help_text="Role slug used by the API (e.g., 'tenant-admin')", max_length=100, unique=True)),
                ('description', models.TextField(blank=True, help_text='Role description')),
                ('is_system', models.BooleanField(db_index=True, default=False, help_text='Whether this is a system-seeded, immutable role')),
            ],
            options={
                'db_table': 'roles',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='RolePermission',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
                ('permission', models.ForeignKey(help_text='Permission being granted', on_delete=django.db.models.deletion.CASCADE, related_name='role_permissions', to='rbac.permission')),
                ('role', models.ForeignKey(help_text='Role that grants this permission', on_delete=django.db.models.deletion.CASCADE, related_name='role_permissions', to='rbac.role')),
            ],
            options={
                'db_table': 'role_permissions',
                'ordering': ['role', 'permission'],
                'unique_together': {('role', 'permission')},
            },
        ),
        migrations.CreateModel(
            name='RoleAssignment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
                ('assigned_by_id', models.UUIDField(blank=True, help_text='User who made the assignment (null for system)', null=True)),
                ('role', models.ForeignKey(help_text='Role held', on_delete=django.db.models.deletion.CASCADE, related_name='assignments', to='rbac.role')),
                ('tenant', models.ForeignKey(blank=True, help_text='Tenant scope (null for a global assignment)', null=True, on_delete=django.db.models.deletion.CASCADE, related_name='role_assignments', to='tenants.tenant')),
                ('user', models.ForeignKey(help_text='User who holds the role', on_delete=django.db.models.deletion.CASCADE, related_name='role_assignments', to='rbac.user')),
            ],
            options={
                'db_table': 'role_assignments',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user', 'tenant'], name='role_assign_user_tenant_idx'),
                    models.Index(fields=['tenant'], name='role_assign_tenant_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('tenant__isnull', False)), fields=('user', 'role', 'tenant'), name='uniq_role_assignment_tenant'),
                    models.UniqueConstraint(condition=models.Q(('tenant__isnull', True)), fields=('user', 'role'), name='uniq_role_assignment_global'),
                ],
            },
        ),
    ]
