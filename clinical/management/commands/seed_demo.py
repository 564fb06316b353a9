"""
Management command to populate the database with demo data.

Accounts are created without a password and get a one-time invitation
token, printed at the end, unless ``--password`` is given.
"""
from django.core.management.base import BaseCommand
from django.db import transaction

from clinical.models import Department, Hospital, Patient, Priority, Referral, Role, User
from clinical.services.referrals import create_referral
from clinical.services.staff import check_password_strength, create_invitation

HOSPITALS = [
    {
        'name': 'Central Medical Center', 'type': 'GENERAL', 'location': '123 Main Street, Downtown',
        'specialties': ['Internal Medicine', 'Surgery', 'Pediatrics', 'Emergency'],
        'contact_email': 'contact@centralmed.com', 'contact_phone': '+1 (555) 100-1000',
    },
    {
        'name': 'Heart Specialist Clinic', 'type': 'SPECIALTY', 'location': '456 Cardiac Way, Midtown',
        'specialties': ['Cardiology', 'Cardiac Surgery', 'Vascular Medicine'],
        'contact_email': 'info@heartclinic.com', 'contact_phone': '+1 (555) 200-2000',
    },
    {
        'name': "St. Mary's Hospital", 'type': 'GENERAL', 'location': '789 Healthcare Blvd, Westside',
        'specialties': ['General Medicine', 'Obstetrics', 'Orthopedics'],
        'contact_email': 'admin@stmarys.com', 'contact_phone': '+1 (555) 300-3000',
    },
]

# (email, name, role, hospital index or None, department)
USERS = [
    ('emily.wilson@centralmed.com', 'Dr. Emily Wilson', Role.DOCTOR, 0, 'Cardiology'),
    ('james.carter@heartclinic.com', 'Dr. James Carter', Role.DOCTOR, 1, 'Cardiology'),
    ('jane.miller@centralmed.com', 'Nurse Jane Miller', Role.NURSE, 0, 'Emergency'),
    ('admin@centralmed.com', 'John Doe', Role.HOSPITAL_ADMIN, 0, 'Administration'),
    ('admin@system.com', 'System Administrator', Role.SYSTEM_ADMIN, None, None),
]

PATIENTS = [
    {'name': 'Sarah Johnson', 'age': 45, 'gender': 'FEMALE', 'status': 'ACTIVE', 'blood_type': 'A+',
     'allergies': ['Penicillin'], 'chronic_conditions': ['Hypertension']},
    {'name': 'Michael Brown', 'age': 62, 'gender': 'MALE', 'status': 'CRITICAL', 'blood_type': 'O-',
     'allergies': [], 'chronic_conditions': ['Coronary artery disease', 'Type 2 diabetes']},
]


class Command(BaseCommand):
    help = 'Populate the database with demo hospitals, staff, patients and referrals (idempotent).'

    def add_arguments(self, parser):
        parser.add_argument('--password', default=None, help='set this password on every demo account')

    @transaction.atomic
    def handle(self, *args, **opts):
        password = opts['password']
        if password:
            check_password_strength(password)

        hospitals = []
        for data in HOSPITALS:
            h, _ = Hospital.objects.get_or_create(
                name=data['name'], defaults={**data, 'status': Hospital.STATUS_CONNECTED}
            )
            for dept in data['specialties']:
                Department.objects.get_or_create(hospital=h, name=dept)
            hospitals.append(h)
        self.stdout.write(f'hospitals: {len(hospitals)}')

        users = {}
        invitations = []
        for email, name, role, h_idx, dept in USERS:
            hospital = hospitals[h_idx] if h_idx is not None else None
            department = None
            if hospital is not None and dept:
                department, _ = Department.objects.get_or_create(hospital=hospital, name=dept)
            user = User.objects.filter(email=email).first()
            if user is None:
                user = User.objects.create_user(
                    email=email, password=password, name=name, role=role,
                    hospital=hospital, department=department, must_set_password=not password,
                    is_staff=role == Role.SYSTEM_ADMIN,
                )
                if not password:
                    invitations.append((email, create_invitation(user).token))
            users[email] = user
        self.stdout.write(f'users: {len(users)}')

        patients = []
        for data in PATIENTS:
            p, _ = Patient.objects.get_or_create(hospital=hospitals[0], name=data['name'], defaults=data)
            patients.append(p)

        doctor = users['emily.wilson@centralmed.com']
        if not Referral.objects.filter(referring_doctor=doctor).exists():
            create_referral(
                doctor, patient_id=patients[1].pk, to_hospital_id=hospitals[1].pk,
                priority=Priority.EMERGENCY, reason='Suspected acute coronary syndrome',
                department='Cardiology', emergency_confirmed=True,
                emergency_reason='Chest pain with ST elevation',
            )
            create_referral(
                doctor, patient_id=patients[0].pk, to_hospital_id=hospitals[2].pk,
                priority=Priority.NORMAL, reason='Orthopedic follow-up',
            )
        self.stdout.write(self.style.SUCCESS('Demo data ready.'))
        for email, token in invitations:
            self.stdout.write(f'  invite {email}: {token}')
