"""
Audit API URLs.
"""
from django.urls import path
from apps.audit.views import (
    AuditLogListView,
    AuditLogDetailView,
    AuditStatisticsView,
    AuditModulesView,
    AuditExportView,
    AuditCleanupView,
    LoginAuditRecordView,
    LoginAuditLogoutView,
    LoginAuditExportView,
    LoginAuditCleanupView,
)

app_name = 'audit'

urlpatterns = [
    # Audit trail
    path('audit-logs', AuditLogListView.as_view(), name='audit-log-list'),
    path('audit-logs/statistics', AuditStatisticsView.as_view(), name='audit-log-statistics'),
    path('audit-logs/modules', AuditModulesView.as_view(), name='audit-log-modules'),
    path('audit-logs/export', AuditExportView.as_view(), name='audit-log-export'),
    path('audit-logs/cleanup', AuditCleanupView.as_view(), name='audit-log-cleanup'),
    path('audit-logs/<uuid:event_id>', AuditLogDetailView.as_view(), name='audit-log-detail'),

    # Login audits
    path('login-audits', LoginAuditRecordView.as_view(), name='login-audit-record'),
    path('login-audits/logout', LoginAuditLogoutView.as_view(), name='login-audit-logout'),
    path('login-audits/export', LoginAuditExportView.as_view(), name='login-audit-export'),
    path('login-audits/cleanup', LoginAuditCleanupView.as_view(), name='login-audit-cleanup'),
]
