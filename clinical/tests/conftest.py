from types import SimpleNamespace

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from clinical.models import Hospital, Role

from .factories import make_hospital, make_patient, make_user


@pytest.fixture(autouse=True)
def _fresh_cache():
    # throttling and the contact directory live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def world(db):
    """Two connected hospitals with staff and a patient each, plus a pending hospital and a system admin."""
    h1 = make_hospital('Central Medical Center')
    h2 = make_hospital('Heart Specialist Clinic')
    h3 = make_hospital('Lakeside Clinic', status=Hospital.STATUS_PENDING)
    return SimpleNamespace(
        h1=h1,
        h2=h2,
        h3=h3,
        doctor1=make_user('emily.wilson@central.test', Role.DOCTOR, h1),
        nurse1=make_user('jane.miller@central.test', Role.NURSE, h1),
        admin1=make_user('admin@central.test', Role.HOSPITAL_ADMIN, h1),
        doctor2=make_user('james.carter@heart.test', Role.DOCTOR, h2),
        nurse2=make_user('ann.lee@heart.test', Role.NURSE, h2),
        admin2=make_user('admin@heart.test', Role.HOSPITAL_ADMIN, h2),
        sysadmin=make_user('root@system.test', Role.SYSTEM_ADMIN, None),
        patient1=make_patient(h1, 'Sarah Johnson'),
        patient2=make_patient(h2, 'Michael Brown'),
    )


@pytest.fixture
def client_for():
    def _client(user=None):
        c = APIClient()
        if user is not None:
            c.force_authenticate(user)
        return c
    return _client
