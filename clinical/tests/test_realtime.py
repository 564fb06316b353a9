import pytest
from rest_framework.exceptions import PermissionDenied

from clinical.services import realtime
from clinical.services import referrals as referral_service


class RecordingLayer:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def group_send(self, group, message):
        if self.fail:
            raise ConnectionError('redis down')
        self.sent.append((group, message))


def test_push_sends_notify_message(monkeypatch):
    layer = RecordingLayer()
    monkeypatch.setattr(realtime, 'get_channel_layer', lambda: layer)
    realtime.push(realtime.hospital_group(7), 'referral.created', {'referralId': 3})
    assert layer.sent == [('hospital.7', {'type': 'notify', 'event': 'referral.created', 'referralId': 3})]


def test_push_failure_is_not_raised(monkeypatch):
    monkeypatch.setattr(realtime, 'get_channel_layer', lambda: RecordingLayer(fail=True))
    realtime.push(realtime.user_group(1), 'message.new', {})


@pytest.mark.django_db
def test_referral_events_fan_out_after_commit(world, monkeypatch, django_capture_on_commit_callbacks):
    pushed = []
    monkeypatch.setattr(referral_service, 'push', lambda group, event, payload: pushed.append((group, event)))

    with django_capture_on_commit_callbacks(execute=True):
        referral = referral_service.create_referral(
            world.doctor1, patient_id=world.patient1.id, to_hospital_id=world.h2.id, reason='Echo review',
        )
    assert pushed == [(f'hospital.{world.h2.id}', 'referral.created')]

    pushed.clear()
    with django_capture_on_commit_callbacks(execute=True):
        referral_service.resolve_referral(world.doctor2, referral.id, 'ACCEPTED')
    assert pushed == [
        (f'hospital.{world.h1.id}', 'referral.resolved'),
        (f'user.{world.doctor1.id}', 'referral.resolved'),
    ]


@pytest.mark.django_db
def test_nothing_is_pushed_for_a_rejected_call(world, monkeypatch, django_capture_on_commit_callbacks):
    pushed = []
    monkeypatch.setattr(referral_service, 'push', lambda *args: pushed.append(args))
    with django_capture_on_commit_callbacks(execute=True):
        with pytest.raises(PermissionDenied):
            referral_service.create_referral(
                world.nurse1, patient_id=world.patient1.id, to_hospital_id=world.h2.id, reason='Echo review',
            )
    assert pushed == []
