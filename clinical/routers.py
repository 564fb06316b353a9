"""
URL mappings for the referral network API.

Paths carry no trailing slash.  ``/metrics`` (Prometheus) and
``/healthz`` sit beside the API for operations tooling.
"""
from django.urls import path, include

from .auth_views import (
    accept_invite_view,
    change_password_view,
    login_view,
    logout_view,
    me_view,
    profile_update_view,
)
from .views import audit_logs, dashboard, documents, emergency, health, hospitals, messages, patients, referrals, staff, tasks


urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz, name='healthz'),
    # Authentication & profile
    path('api/auth/login', login_view, name='login'),
    path('api/auth/logout', logout_view, name='logout'),
    path('api/auth/me', me_view, name='me'),
    path('api/auth/accept-invite', accept_invite_view, name='accept-invite'),
    path('api/profile', profile_update_view, name='profile'),
    path('api/profile/password', change_password_view, name='change-password'),
    # Referrals
    path('api/referrals', referrals.referrals, name='referrals'),
    path('api/referrals/<int:pk>', referrals.referral_detail, name='referral-detail'),
    path('api/referrals/<int:pk>/resolve', referrals.referral_resolve, name='referral-resolve'),
    # Emergency access
    path('api/emergency-access', emergency.emergency_access_logs, name='emergency-access'),
    path('api/emergency-access/open', emergency.emergency_access_open, name='emergency-access-open'),
    path('api/emergency-access/active-count', emergency.emergency_access_active_count, name='emergency-access-active'),
    path('api/emergency-access/<int:pk>/close', emergency.emergency_access_close, name='emergency-access-close'),
    # Patients & documents
    path('api/patients', patients.patients, name='patients'),
    path('api/patients/<int:pk>', patients.patient_detail, name='patient-detail'),
    path('api/patients/<int:pk>/records', patients.patient_records, name='patient-records'),
    path('api/patients/<int:pk>/documents', documents.patient_documents, name='patient-documents'),
    path('api/documents', documents.documents, name='documents'),
    path('api/documents/upload', documents.document_upload, name='document-upload'),
    path('api/documents/<int:pk>', documents.document_detail, name='document-detail'),
    # Staff & departments
    path('api/staff', staff.staff, name='staff'),
    path('api/staff/nurses', staff.nurses, name='staff-nurses'),
    path('api/staff/<int:pk>/role', staff.staff_role, name='staff-role'),
    path('api/departments', staff.departments, name='departments'),
    path('api/departments/<int:pk>', staff.department_detail, name='department-detail'),
    path('api/departments/<int:pk>/toggle', staff.department_toggle, name='department-toggle'),
    # Hospitals
    path('api/hospitals', hospitals.hospitals, name='hospitals'),
    path('api/hospitals/contact', hospitals.public_hospitals, name='hospitals-contact'),
    path('api/hospitals/mine/departments', hospitals.my_departments, name='my-departments'),
    path('api/hospitals/<int:pk>', hospitals.hospital_detail, name='hospital-detail'),
    # System administration
    path('api/admin/hospitals', hospitals.admin_hospitals, name='admin-hospitals'),
    path('api/admin/hospitals/<int:pk>/status', hospitals.admin_hospital_status, name='admin-hospital-status'),
    path('api/admin/stats', hospitals.admin_stats, name='admin-stats'),
    # Messages & tasks
    path('api/messages/staff', messages.message_staff, name='message-staff'),
    path('api/messages/conversations', messages.message_conversations, name='message-conversations'),
    path('api/messages/send', messages.message_send, name='message-send'),
    path('api/messages/read', messages.message_mark_read, name='message-read'),
    path('api/tasks', tasks.tasks, name='tasks'),
    path('api/tasks/<int:pk>/status', tasks.task_status, name='task-status'),
    # Overview
    path('api/dashboard', dashboard.dashboard, name='dashboard'),
    path('api/notifications', dashboard.notifications, name='notifications'),
    path('api/analytics', dashboard.analytics_view, name='analytics'),
    path('api/audit-logs', audit_logs.audit_logs, name='audit-logs'),
]
