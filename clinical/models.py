"""
Database models for the referral network.

Every clinical record hangs off a :class:`Hospital`.  Staff accounts
belong to one hospital (system administrators to none), patients are
owned by exactly one hospital, and the only cross-hospital link is the
:class:`Referral` with its two hospital references.  Referral events and
audit log rows are append-only.
"""
from __future__ import annotations

import datetime
import os
import secrets
import uuid

from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models
from django.utils import timezone


class Role(models.TextChoices):
    DOCTOR = 'DOCTOR', 'Doctor'
    NURSE = 'NURSE', 'Nurse'
    HOSPITAL_ADMIN = 'HOSPITAL_ADMIN', 'Hospital administrator'
    SYSTEM_ADMIN = 'SYSTEM_ADMIN', 'System administrator'


class Priority(models.TextChoices):
    NORMAL = 'NORMAL', 'Normal'
    URGENT = 'URGENT', 'Urgent'
    EMERGENCY = 'EMERGENCY', 'Emergency'


# Sort rank used for "priority descending" ordering
PRIORITY_RANK = {
    Priority.NORMAL: 0,
    Priority.URGENT: 1,
    Priority.EMERGENCY: 2,
}


class AppendOnlyError(Exception):
    """Raised when code tries to rewrite or remove an append-only row."""


class AppendOnlyModel(models.Model):
    """Rows can be inserted but never updated or deleted through the ORM instance."""

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise AppendOnlyError(f'{type(self).__name__} rows are append-only')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AppendOnlyError(f'{type(self).__name__} rows are append-only')


class Hospital(models.Model):
    TYPE_CHOICES = [
        ('GENERAL', 'General'),
        ('SPECIALTY', 'Specialty'),
        ('CLINIC', 'Clinic'),
        ('REHABILITATION', 'Rehabilitation'),
    ]
    STATUS_CONNECTED = 'CONNECTED'
    STATUS_PENDING = 'PENDING'
    STATUS_INACTIVE = 'INACTIVE'
    STATUS_CHOICES = [
        (STATUS_CONNECTED, 'Connected'),
        (STATUS_PENDING, 'Pending'),
        (STATUS_INACTIVE, 'Inactive'),
    ]

    name = models.CharField(max_length=255)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='GENERAL')
    location = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    specialties = models.JSONField(default=list, blank=True)
    contact_email = models.EmailField(blank=True)
    contact_phone = models.CharField(max_length=32, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class Department(models.Model):
    STATUS_ACTIVE = 'ACTIVE'
    STATUS_INACTIVE = 'INACTIVE'
    STATUS_CHOICES = [(STATUS_ACTIVE, 'Active'), (STATUS_INACTIVE, 'Inactive')]

    hospital = models.ForeignKey(Hospital, on_delete=models.CASCADE, related_name='departments')
    name = models.CharField(max_length=255)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    head = models.ForeignKey(
        'User', null=True, blank=True, on_delete=models.SET_NULL, related_name='headed_departments'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [('hospital', 'name')]

    def __str__(self) -> str:
        return f"{self.name} @ {self.hospital_id}"


class UserManager(BaseUserManager):
    """Manager for email-identified staff accounts."""

    use_in_migrations = True

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError('email is required')
        email = self.normalize_email(email).lower()
        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', False)
        extra_fields.setdefault('is_superuser', False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', Role.SYSTEM_ADMIN)
        return self._create_user(email, password, **extra_fields)


class User(AbstractUser):
    """Staff account.

    Staff log in with their email address.  ``role`` decides which
    operations they may call and ``hospital`` scopes every record they
    can see.  Accounts created through an invitation start with an
    unusable password and ``must_set_password`` until the invitation is
    redeemed.
    """
    username = None
    first_name = None
    last_name = None

    email = models.EmailField(unique=True)
    name = models.CharField(max_length=255)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.NURSE, db_index=True)
    hospital = models.ForeignKey(
        Hospital, null=True, blank=True, on_delete=models.SET_NULL, related_name='users'
    )
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='users'
    )
    must_set_password = models.BooleanField(default=False)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['name']

    objects = UserManager()

    def get_full_name(self) -> str:
        return self.name or self.email

    def get_short_name(self) -> str:
        return self.name or self.email

    def __str__(self) -> str:
        return f"{self.email} ({self.role})"


def _invitation_token() -> str:
    return secrets.token_urlsafe(32)


class StaffInvitation(models.Model):
    """One-time token a new account redeems to set its first password."""
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='invitations')
    token = models.CharField(max_length=64, unique=True, default=_invitation_token)
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='invitations_sent'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField()
    used_at = models.DateTimeField(null=True, blank=True)

    def is_usable(self, now=None) -> bool:
        now = now or timezone.now()
        return self.used_at is None and self.expires_at > now

    def __str__(self) -> str:
        return f"invite {self.user_id} (used={bool(self.used_at)})"


class Patient(models.Model):
    GENDER_CHOICES = [('MALE', 'Male'), ('FEMALE', 'Female'), ('OTHER', 'Other')]
    STATUS_CHOICES = [
        ('ACTIVE', 'Active'),
        ('STABLE', 'Stable'),
        ('CRITICAL', 'Critical'),
        ('DISCHARGED', 'Discharged'),
    ]

    hospital = models.ForeignKey(Hospital, on_delete=models.CASCADE, related_name='patients')
    name = models.CharField(max_length=255)
    age = models.PositiveIntegerField(null=True, blank=True)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES, blank=True)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default='ACTIVE', db_index=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    blood_type = models.CharField(max_length=4, blank=True)
    allergies = models.JSONField(default=list, blank=True)
    chronic_conditions = models.JSONField(default=list, blank=True)
    last_visit = models.DateTimeField(null=True, blank=True)
    emergency_contact_name = models.CharField(max_length=255, blank=True)
    emergency_contact_phone = models.CharField(max_length=32, blank=True)
    emergency_contact_relationship = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=['hospital', 'name'], name='patient_hospital_name_idx')]

    def __str__(self) -> str:
        return f"{self.name} ({self.hospital_id})"


class MedicalRecord(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='medical_records')
    author = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='medical_records')
    date = models.DateTimeField(default=timezone.now)
    record_type = models.CharField(max_length=64, blank=True)
    title = models.CharField(max_length=255)
    notes = models.TextField(blank=True)

    def __str__(self) -> str:
        return f"{self.title} ({self.patient_id})"


def _document_upload(instance, filename: str) -> str:
    ext = os.path.splitext(filename)[1]
    return f"documents/{datetime.date.today().strftime('%Y/%m')}/{uuid.uuid4().hex}{ext}"


class MedicalDocument(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='documents')
    title = models.CharField(max_length=255)
    doc_type = models.CharField(max_length=64)
    file = models.FileField(upload_to=_document_upload, max_length=512)
    content_type = models.CharField(max_length=128, blank=True)
    file_size = models.PositiveIntegerField(default=0)
    uploaded_by = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='documents_uploaded')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.title} ({self.patient_id})"


class Referral(models.Model):
    STATUS_SENT = 'SENT'
    STATUS_ACCEPTED = 'ACCEPTED'
    STATUS_REJECTED = 'REJECTED'
    STATUS_CHOICES = [
        (STATUS_SENT, 'Sent'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='referrals')
    from_hospital = models.ForeignKey(Hospital, on_delete=models.CASCADE, related_name='referrals_sent')
    to_hospital = models.ForeignKey(Hospital, on_delete=models.CASCADE, related_name='referrals_received')
    referring_doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='referrals_made')
    receiving_doctor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='referrals_received'
    )
    department = models.CharField(max_length=255, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_SENT, db_index=True)
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.NORMAL, db_index=True)
    reason = models.TextField()
    notes = models.TextField(blank=True)
    emergency_confirmed = models.BooleanField(default=False)
    emergency_reason = models.TextField(blank=True)
    immediate_risks = models.TextField(blank=True)
    share_lab_results = models.BooleanField(default=True)
    share_imaging = models.BooleanField(default=False)
    share_notes = models.BooleanField(default=True)
    rejection_reason = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['to_hospital', 'status', 'created_at'], name='referral_incoming_idx'),
            models.Index(fields=['from_hospital', 'created_at'], name='referral_outgoing_idx'),
        ]

    def __str__(self) -> str:
        return f"referral {self.pk} {self.from_hospital_id}->{self.to_hospital_id} [{self.status}]"


class ReferralEvent(AppendOnlyModel):
    """One entry of a referral's timeline."""
    TYPE_CREATED = 'CREATED'
    TYPE_ACCEPTED = 'ACCEPTED'
    TYPE_REJECTED = 'REJECTED'
    TYPE_CHOICES = [
        (TYPE_CREATED, 'Created'),
        (TYPE_ACCEPTED, 'Accepted'),
        (TYPE_REJECTED, 'Rejected'),
    ]

    referral = models.ForeignKey(Referral, on_delete=models.PROTECT, related_name='timeline')
    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    actor = models.ForeignKey(User, null=True, blank=True, on_delete=models.PROTECT, related_name='referral_events')
    actor_name = models.CharField(max_length=255, blank=True)
    details = models.TextField(blank=True)
    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['timestamp', 'id']
        indexes = [models.Index(fields=['referral', 'timestamp'], name='refevent_timeline_idx')]

    def __str__(self) -> str:
        return f"{self.referral_id}: {self.type}"


class EmergencyAccessLog(models.Model):
    STATUS_OPEN = 'OPEN'
    STATUS_CLOSED = 'CLOSED'
    STATUS_CHOICES = [(STATUS_OPEN, 'Open'), (STATUS_CLOSED, 'Closed')]

    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name='emergency_access_logs')
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='emergency_access_logs')
    reason = models.TextField()
    start_time = models.DateTimeField(default=timezone.now)
    end_time = models.DateTimeField(null=True, blank=True)
    status = models.CharField(max_length=6, choices=STATUS_CHOICES, default=STATUS_OPEN, db_index=True)

    class Meta:
        indexes = [models.Index(fields=['user', 'patient', 'status'], name='breakglass_user_patient_idx')]

    @property
    def duration_minutes(self) -> int | None:
        if not self.end_time:
            return None
        return round((self.end_time - self.start_time).total_seconds() / 60)

    def __str__(self) -> str:
        return f"break-glass u={self.user_id} p={self.patient_id} [{self.status}]"


class AuditLog(AppendOnlyModel):
    user = models.ForeignKey(User, null=True, blank=True, on_delete=models.PROTECT, related_name='audit_logs')
    action = models.CharField(max_length=64)
    resource = models.CharField(max_length=64)
    details = models.TextField(blank=True)
    ip = models.GenericIPAddressField(blank=True, null=True)
    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'timestamp'], name='audit_action_ts_idx'),
            models.Index(fields=['user', 'timestamp'], name='audit_user_ts_idx'),
        ]

    def __str__(self):
        return f"{self.action}:{self.resource}:{self.user_id}@{self.timestamp:%F %T}"


class Message(models.Model):
    sender = models.ForeignKey(User, on_delete=models.CASCADE, related_name='messages_sent')
    receiver = models.ForeignKey(User, on_delete=models.CASCADE, related_name='messages_received')
    content = models.TextField()
    read = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=['receiver', 'read'], name='message_unread_idx'),
            models.Index(fields=['sender', 'created_at'], name='message_sender_ts_idx'),
        ]

    def __str__(self):
        return f"msg {self.id} {self.sender_id}->{self.receiver_id}"


class Task(models.Model):
    STATUS_PENDING = 'PENDING'
    STATUS_IN_PROGRESS = 'IN_PROGRESS'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_COMPLETED, 'Completed'),
    ]

    hospital = models.ForeignKey(Hospital, on_delete=models.CASCADE, related_name='tasks')
    patient = models.ForeignKey(Patient, null=True, blank=True, on_delete=models.SET_NULL, related_name='tasks')
    assigned_to = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='tasks_assigned')
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='tasks_created')
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    priority = models.CharField(max_length=10, choices=Priority.choices, default=Priority.NORMAL)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_PENDING)
    due_date = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    def __str__(self) -> str:
        return f"{self.title} (#{self.id})"
