import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


LOGIN_METHODS = [('sso', 'SSO'), ('direct', 'Direct'), ('api', 'API')]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('tenants', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='AuditEvent',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
                ('module', models.CharField(db_index=True, help_text="Functional area (e.g., 'roles_permissions', 'authentication')", max_length=50)),
                ('submodule', models.CharField(blank=True, db_index=True, help_text="Finer grouping within the module (e.g., 'role_assigned')", max_length=50)),
                ('action', models.CharField(help_text="Verb describing the action (e.g., 'assigned', 'updated')", max_length=50)),
                ('description', models.CharField(help_text='Human-readable description of the action', max_length=500)),
                ('causer_id', models.UUIDField(blank=True, db_index=True, help_text='User who performed the action (null for system actions)', null=True)),
                ('subject_type', models.CharField(blank=True, help_text="Type of the entity acted on (e.g., 'User', 'Role')", max_length=50)),
                ('subject_id', models.CharField(blank=True, help_text='Identifier of the entity acted on', max_length=64)),
                ('tenant_id', models.UUIDField(blank=True, db_index=True, help_text='Tenant the action was scoped to (null for global)', null=True)),
                ('properties', models.JSONField(blank=True, default=dict, help_text='Structured context with string keys and JSON values')),
                ('ip_address', models.GenericIPAddressField(blank=True, help_text='IP address of the request', null=True)),
                ('user_agent', models.TextField(blank=True, help_text='User agent string')),
                ('request_id', models.CharField(blank=True, help_text='Request ID for tracing', max_length=64)),
            ],
            options={
                'db_table': 'audit_events',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['module', 'created_at'], name='audit_module_created_idx'),
                    models.Index(fields=['module', 'submodule', 'created_at'], name='audit_module_sub_created_idx'),
                    models.Index(fields=['causer_id', 'created_at'], name='audit_causer_created_idx'),
                    models.Index(fields=['subject_type', 'subject_id'], name='audit_subject_idx'),
                    models.Index(fields=['tenant_id', 'created_at'], name='audit_tenant_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='LoginAudit',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
                ('user_id', models.UUIDField(blank=True, db_index=True, help_text='Resolved user (null when the email matched nobody)', null=True)),
                ('email', models.EmailField(blank=True, help_text='Email presented at login', max_length=254)),
                ('tenant_id', models.UUIDField(blank=True, db_index=True, help_text='Tenant the login targeted (null for the console itself)', null=True)),
                ('login_method', models.CharField(choices=LOGIN_METHODS, db_index=True, default='direct', help_text='How the user authenticated', max_length=10)),
                ('ip_address', models.GenericIPAddressField(blank=True, help_text='IP address of the attempt', null=True)),
                ('user_agent', models.TextField(blank=True, help_text='User agent string')),
                ('session_key', models.CharField(blank=True, db_index=True, help_text='Session opened by a successful attempt', max_length=100)),
                ('is_successful', models.BooleanField(db_index=True, help_text='Whether the attempt succeeded')),
                ('failure_reason', models.CharField(blank=True, help_text='Why the attempt failed', max_length=255)),
                ('login_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='When the attempt happened')),
                ('logout_at', models.DateTimeField(blank=True, help_text='When the session opened by this attempt ended', null=True)),
                ('session_duration', models.PositiveIntegerField(blank=True, help_text='Session length in seconds', null=True)),
            ],
            options={
                'db_table': 'login_audits',
                'ordering': ['-login_at'],
                'indexes': [
                    models.Index(fields=['is_successful', 'login_at'], name='login_success_at_idx'),
                    models.Index(fields=['user_id', 'login_at'], name='login_user_at_idx'),
                    models.Index(fields=['tenant_id', 'login_at'], name='login_tenant_at_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ActiveSession',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, help_text='Timestamp when the record was last updated')),
                ('session_key', models.CharField(help_text='Opaque session identifier', max_length=100, unique=True)),
                ('login_method', models.CharField(choices=LOGIN_METHODS, default='direct', help_text='How the session was opened', max_length=10)),
                ('login_audit_id', models.UUIDField(blank=True, help_text='Login audit row that opened the session', null=True)),
                ('ip_address', models.GenericIPAddressField(blank=True, help_text='IP address at login', null=True)),
                ('user_agent', models.TextField(blank=True, help_text='User agent at login')),
                ('started_at', models.DateTimeField(default=django.utils.timezone.now, help_text='When the session was opened')),
                ('last_activity', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Last time the session was seen')),
                ('expires_at', models.DateTimeField(db_index=True, help_text='Session expiry; extended on activity')),
                ('status', models.CharField(choices=[('active', 'Active'), ('expired', 'Expired'), ('terminated', 'Terminated')], db_index=True, default='active', help_text='Lifecycle state', max_length=12)),
                ('ended_at', models.DateTimeField(blank=True, help_text='When the session expired or was terminated', null=True)),
                ('activity_data', models.JSONField(blank=True, default=dict, help_text='Last request context (path, method)')),
                ('tenant', models.ForeignKey(blank=True, help_text='Tenant the session is currently working in', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='active_sessions', to='tenants.tenant')),
                ('user', models.ForeignKey(help_text='Session owner', on_delete=django.db.models.deletion.CASCADE, related_name='active_sessions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'active_sessions',
                'ordering': ['-last_activity'],
                'indexes': [
                    models.Index(fields=['status', 'expires_at'], name='session_status_expires_idx'),
                    models.Index(fields=['user', 'status'], name='session_user_status_idx'),
                    models.Index(fields=['tenant', 'status'], name='session_tenant_status_idx'),
                ],
            },
        ),
    ]
