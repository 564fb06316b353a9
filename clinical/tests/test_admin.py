from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from clinical.models import AuditLog, Department, Hospital, Role, StaffInvitation, User

from .factories import make_hospital, make_user


class SystemAdminTests(APITestCase):
    def setUp(self) -> None:
        self.root = make_user('root@system.test', Role.SYSTEM_ADMIN)
        self.h1 = make_hospital('Central Medical Center')
        self.admin1 = make_user('admin@central.test', Role.HOSPITAL_ADMIN, self.h1)

    def _payload(self, email='grace.ho@riverside.test'):
        return {
            'hospital': {
                'name': 'Riverside General',
                'type': 'GENERAL',
                'location': 'Riverside',
                'departments': ['Cardiology', 'Emergency', 'Cardiology', ' '],
                'contactEmail': 'desk@riverside.test',
            },
            'admin': {'name': 'Grace Ho', 'email': email},
        }

    def test_create_hospital_invites_admin(self):
        self.client.force_authenticate(self.root)
        resp = self.client.post(reverse('admin-hospitals'), self._payload(), format='json')
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertNotIn('password', resp.data['admin'])
        self.assertEqual(resp.data['admin']['role'], Role.HOSPITAL_ADMIN)
        token = resp.data['invitation']['token']

        hospital = Hospital.objects.get(pk=resp.data['hospital']['id'])
        self.assertEqual(hospital.status, Hospital.STATUS_CONNECTED)
        self.assertEqual(
            sorted(Department.objects.filter(hospital=hospital).values_list('name', flat=True)),
            ['Cardiology', 'Emergency'],
        )
        admin = User.objects.get(email='grace.ho@riverside.test')
        self.assertEqual(admin.hospital, hospital)
        self.assertFalse(admin.has_usable_password())
        self.assertEqual(StaffInvitation.objects.get(user=admin).token, token)
        self.assertTrue(AuditLog.objects.filter(action='CREATE', resource='Hospital').exists())

    def test_duplicate_admin_email_rolls_back(self):
        self.client.force_authenticate(self.root)
        resp = self.client.post(reverse('admin-hospitals'), self._payload('admin@central.test'), format='json')
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data['error']['message']['email'][0], 'A user with this email already exists')
        self.assertFalse(Hospital.objects.filter(name='Riverside General').exists())

    def test_hospital_admin_cannot_use_admin_routes(self):
        self.client.force_authenticate(self.admin1)
        self.assertEqual(self.client.get(reverse('admin-hospitals')).status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(self.client.get(reverse('admin-stats')).status_code, status.HTTP_403_FORBIDDEN)
        resp = self.client.post(
            reverse('admin-hospital-status', args=[self.h1.id]), {'status': 'INACTIVE'}, format='json'
        )
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)

    def test_status_change_refreshes_public_directory(self):
        self.client.force_authenticate(None)
        names = [h['name'] for h in self.client.get(reverse('hospitals-contact')).data]
        self.assertEqual(names, ['Central Medical Center'])

        self.client.force_authenticate(self.root)
        resp = self.client.post(
            reverse('admin-hospital-status', args=[self.h1.id]), {'status': 'INACTIVE'}, format='json'
        )
        self.assertEqual(resp.status_code, status.HTTP_200_OK)

        self.client.force_authenticate(None)
        self.assertEqual(self.client.get(reverse('hospitals-contact')).data, [])

    def test_stats_and_listing(self):
        make_hospital('Lakeside Clinic', status=Hospital.STATUS_PENDING)
        self.client.force_authenticate(self.root)
        stats = self.client.get(reverse('admin-stats')).data
        self.assertEqual(stats['totalHospitals'], 2)
        self.assertEqual(stats['connectedHospitals'], 1)
        listing = self.client.get(reverse('admin-hospitals')).data
        central = next(h for h in listing if h['name'] == 'Central Medical Center')
        self.assertEqual(central['staffCount'], 1)


class HospitalAdminTests(APITestCase):
    def setUp(self) -> None:
        self.h1 = make_hospital('Central Medical Center')
        self.h2 = make_hospital('Heart Specialist Clinic')
        self.admin1 = make_user('admin@central.test', Role.HOSPITAL_ADMIN, self.h1)
        self.admin2 = make_user('admin@heart.test', Role.HOSPITAL_ADMIN, self.h2)
        self.root = make_user('root@system.test', Role.SYSTEM_ADMIN)
        self.cardiology = Department.objects.create(hospital=self.h1, name='Cardiology')
        self.doctor = make_user('emily.wilson@central.test', Role.DOCTOR, self.h1, department=self.cardiology)
        self.client.force_authenticate(self.admin1)

    def test_department_with_staff_cannot_be_disabled(self):
        resp = self.client.post(reverse('department-toggle', args=[self.cardiology.id]))
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(
            resp.data['error']['message']['status'][0],
            'Cannot disable department with active staff. Reassign staff first.',
        )
        self.doctor.department = None
        self.doctor.save()
        resp = self.client.post(reverse('department-toggle', args=[self.cardiology.id]))
        self.assertEqual(resp.data['status'], Department.STATUS_INACTIVE)
        resp = self.client.post(reverse('department-toggle', args=[self.cardiology.id]))
        self.assertEqual(resp.data['status'], Department.STATUS_ACTIVE)

    def test_department_listing_and_duplicates(self):
        listing = self.client.get(reverse('departments')).data
        self.assertEqual([(d['name'], d['staffCount']) for d in listing], [('Cardiology', 1)])
        dup = self.client.post(reverse('departments'), {'name': 'cardiology'}, format='json')
        self.assertEqual(dup.status_code, status.HTTP_400_BAD_REQUEST)
        created = self.client.post(reverse('departments'), {'name': 'Radiology', 'hospitalId': self.h2.id}, format='json')
        self.assertEqual(created.status_code, status.HTTP_201_CREATED)
        # hospital admins always act on their own hospital
        self.assertEqual(created.data['hospitalId'], self.h1.id)

    def test_delete_department_permissions(self):
        radiology = Department.objects.create(hospital=self.h1, name='Radiology')
        url = reverse('department-detail', args=[radiology.id])
        self.client.force_authenticate(self.admin2)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_403_FORBIDDEN)
        self.client.force_authenticate(self.root)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_403_FORBIDDEN)
        self.client.force_authenticate(self.admin1)
        self.assertEqual(self.client.delete(url).status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Department.objects.filter(pk=radiology.id).exists())

    def test_invite_normalizes_role(self):
        for spelling, expected in (('doctor', Role.DOCTOR), ('Hospital Admin', Role.HOSPITAL_ADMIN), ('hospital-admin', Role.HOSPITAL_ADMIN)):
            email = f'{expected.lower()}.{spelling.replace(" ", "")}@central.test'
            resp = self.client.post(reverse('staff'), {'name': 'New Hire', 'email': email, 'role': spelling}, format='json')
            self.assertEqual(resp.status_code, status.HTTP_201_CREATED, spelling)
            self.assertEqual(resp.data['role'], expected)

    def test_invite_rejects_unknown_and_system_roles(self):
        bad = self.client.post(reverse('staff'), {'name': 'X Y', 'email': 'x@central.test', 'role': 'janitor'}, format='json')
        self.assertEqual(bad.status_code, status.HTTP_400_BAD_REQUEST)
        root = self.client.post(reverse('staff'), {'name': 'X Y', 'email': 'x@central.test', 'role': 'system_admin'}, format='json')
        self.assertEqual(root.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(User.objects.filter(email='x@central.test').exists())

    def test_invite_with_department_of_other_hospital(self):
        other = Department.objects.create(hospital=self.h2, name='Oncology')
        resp = self.client.post(
            reverse('staff'),
            {'name': 'X Y', 'email': 'x@central.test', 'role': 'NURSE', 'departmentId': other.id},
            format='json',
        )
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_role_update_is_hospital_scoped(self):
        url = reverse('staff-role', args=[self.doctor.id])
        self.client.force_authenticate(self.admin2)
        self.assertEqual(self.client.post(url, {'role': 'NURSE'}, format='json').status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin1)
        self.assertEqual(
            self.client.post(url, {'role': 'SYSTEM_ADMIN'}, format='json').status_code, status.HTTP_403_FORBIDDEN
        )
        resp = self.client.post(url, {'role': 'nurse'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.doctor.refresh_from_db()
        self.assertEqual(self.doctor.role, Role.NURSE)

        self.client.force_authenticate(self.root)
        resp = self.client.post(url, {'role': 'DOCTOR'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
