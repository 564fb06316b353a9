"""
Django admin registrations for the clinical models.

Referral events and audit log rows are append-only, so their admin
pages are read-only: no add, change or delete. Users, patients and
referrals carry that history and cannot be deleted from the admin either.
"""

from django.contrib import admin

from .models import (
    AuditLog,
    Department,
    EmergencyAccessLog,
    Hospital,
    MedicalDocument,
    MedicalRecord,
    Message,
    Patient,
    Referral,
    ReferralEvent,
    StaffInvitation,
    Task,
    User,
)


class ReadOnlyAdmin(admin.ModelAdmin):
    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class NoDeleteAdmin(admin.ModelAdmin):
    # rows referenced by timelines and audit history are deactivated, not deleted
    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Hospital)
class HospitalAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'type', 'status', 'location', 'created_at')
    list_filter = ('status', 'type')
    search_fields = ('name', 'location')


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ('name', 'hospital', 'status', 'head')
    list_filter = ('status', 'hospital')
    search_fields = ('name',)


@admin.register(User)
class UserAdmin(NoDeleteAdmin):
    list_display = ('email', 'name', 'role', 'hospital', 'is_active', 'must_set_password')
    list_filter = ('role', 'hospital', 'is_active')
    search_fields = ('email', 'name')
    exclude = ('password',)


@admin.register(StaffInvitation)
class StaffInvitationAdmin(admin.ModelAdmin):
    list_display = ('user', 'created_by', 'created_at', 'expires_at', 'used_at')
    readonly_fields = ('token',)


@admin.register(Patient)
class PatientAdmin(NoDeleteAdmin):
    list_display = ('name', 'hospital', 'age', 'gender', 'status', 'last_visit')
    list_filter = ('status', 'hospital')
    search_fields = ('name', 'email', 'phone')


@admin.register(MedicalRecord)
class MedicalRecordAdmin(admin.ModelAdmin):
    list_display = ('title', 'patient', 'record_type', 'date', 'author')
    search_fields = ('title', 'patient__name')


@admin.register(MedicalDocument)
class MedicalDocumentAdmin(admin.ModelAdmin):
    list_display = ('title', 'patient', 'doc_type', 'file_size', 'created_at')


@admin.register(Referral)
class ReferralAdmin(NoDeleteAdmin):
    list_display = ('id', 'patient', 'from_hospital', 'to_hospital', 'priority', 'status', 'created_at')
    list_filter = ('status', 'priority')
    search_fields = ('patient__name', 'reason')
    # status changes go through the API so each one gets its timeline event
    readonly_fields = ('status', 'receiving_doctor', 'rejection_reason')


@admin.register(ReferralEvent)
class ReferralEventAdmin(ReadOnlyAdmin):
    list_display = ('referral', 'type', 'actor_name', 'timestamp')
    list_filter = ('type',)


@admin.register(EmergencyAccessLog)
class EmergencyAccessLogAdmin(ReadOnlyAdmin):
    list_display = ('user', 'patient', 'status', 'start_time', 'end_time')
    list_filter = ('status',)


@admin.register(AuditLog)
class AuditLogAdmin(ReadOnlyAdmin):
    list_display = ('timestamp', 'user', 'action', 'resource', 'ip')
    list_filter = ('action', 'resource')
    search_fields = ('details', 'user__email')


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ('id', 'sender', 'receiver', 'read', 'created_at')


@admin.register(Task)
class TaskAdmin(admin.ModelAdmin):
    list_display = ('title', 'hospital', 'priority', 'status', 'assigned_to', 'due_date')
    list_filter = ('status', 'priority', 'hospital')
