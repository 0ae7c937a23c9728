import json as jsonlib
import re
from datetime import datetime, timedelta

import pytest
import pytz
import requests

from recruit_scheduler.api import ApiClient
from recruit_scheduler.slots import SlotManager


BASE_URL = 'http://api.test/api'
NOW = datetime(2026, 3, 2, 17, 0, tzinfo=pytz.utc)


def _iso(value: datetime) -> str:
    return value.astimezone(pytz.utc).strftime('%Y-%m-%dT%H:%M:%S.000Z')


class FakeResponse:
    def __init__(self, status_code: int, payload=None, text: str = None):
        self.status_code = status_code
        if text is not None:
            self.content = text.encode()
        elif payload is None:
            self.content = b''
        else:
            self.content = jsonlib.dumps(payload).encode()

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self):
        return jsonlib.loads(self.content.decode())


class FakeBackend:
    """In-memory stand-in for the recruiting backend, used as a requests session."""

    def __init__(self):
        self.calls = []
        self.slots = {}
        self.next_slot_id = 1
        self.next_signup_id = 100
        self.active_cycle = None
        self.offline = False
        self.evaluator = {'id': 'eval-1', 'fullName': 'Riley Member'}
        self.applications = [
            {'id': 'app-1', 'name': 'Alice Zhang'},
            {'id': 'app-2', 'name': 'Bob Nguyen'},
            {'id': 'app-3', 'name': 'Cara Diaz'},
        ]
        self.evaluations = []
        self.failing_applications = set()
        self.unavailable = set()

    def add_slot(self, start: datetime, capacity: int = 2, location: str = 'Room A',
                 end: datetime = None, signups=None, created_at: datetime = NOW) -> dict:
        slot = {
            'id': self.next_slot_id,
            'location': location,
            'startTime': _iso(start),
            'endTime': _iso(end) if end else None,
            'capacity': capacity,
            'createdAt': _iso(created_at),
            'signups': list(signups or []),
        }
        self.slots[slot['id']] = slot
        self.next_slot_id += 1
        return slot

    def calls_to(self, method: str, pattern: str):
        return [call for call in self.calls if call[0] == method and re.fullmatch(pattern, call[1])]

    def request(self, method, url, json=None, params=None, headers=None):
        if self.offline:
            raise requests.ConnectionError('connection refused')

        path = url[len(BASE_URL):]
        self.calls.append((method, path, json, params, headers))
        if method == 'GET' and path in self.unavailable:
            return FakeResponse(503, {'error': 'Service unavailable'})

        for route_method, pattern, handler in self._routes():
            if method != route_method:
                continue
            match = re.fullmatch(pattern, path)
            if match:
                return handler(*match.groups(), body=json, params=params)
        return FakeResponse(404, {'error': 'Not found'})

    def _routes(self):
        return [
            ('GET', r'/meeting-slots', self._public_slots),
            ('POST', r'/meeting-slots/(\d+)/signup', self._signup),
            ('GET', r'/member/meeting-slots', self._member_slots),
            ('POST', r'/member/meeting-slots', self._create_slot),
            ('PUT', r'/member/meeting-slots/(\d+)', self._update_slot),
            ('DELETE', r'/member/meeting-slots/(\d+)', self._delete_slot),
            ('PATCH', r'/member/meeting-signups/(\d+)/attendance', self._attendance),
            ('DELETE', r'/member/meeting-signups/(\d+)', self._delete_signup),
            ('GET', r'/active-cycle', self._active_cycle),
            ('GET', r'/admin/profile', lambda body, params: FakeResponse(200, self.evaluator)),
            ('GET', r'/admin/interviews/([\w-]+)', self._interview),
            ('GET', r'/admin/interviews/([\w-]+)/applications', self._applications),
            ('GET', r'/admin/interviews/([\w-]+)/evaluations', self._list_evaluations),
            ('POST', r'/admin/interviews/([\w-]+)/evaluations', self._save_evaluation),
        ]

    def _public_slots(self, body, params):
        listing = []
        for slot in self.slots.values():
            item = {key: value for key, value in slot.items() if key not in ('signups', 'createdAt')}
            item['remaining'] = slot['capacity'] - len(slot['signups'])
            listing.append(item)
        return FakeResponse(200, listing)

    def _member_slots(self, body, params):
        return FakeResponse(200, list(self.slots.values()))

    def _create_slot(self, body, params):
        slot = {
            'id': self.next_slot_id,
            'createdAt': _iso(NOW),
            'signups': [],
            **body,
        }
        self.slots[slot['id']] = slot
        self.next_slot_id += 1
        return FakeResponse(201, slot)

    def _update_slot(self, slot_id, body, params):
        slot = self.slots.get(int(slot_id))
        if slot is None:
            return FakeResponse(404, {'error': 'Meeting slot not found'})
        slot.update(body)
        return FakeResponse(200, slot)

    def _delete_slot(self, slot_id, body, params):
        if self.slots.pop(int(slot_id), None) is None:
            return FakeResponse(404, {'error': 'Meeting slot not found'})
        return FakeResponse(204)

    def _signup(self, slot_id, body, params):
        slot = self.slots.get(int(slot_id))
        if slot is None:
            return FakeResponse(404, {'error': 'Meeting slot not found'})
        if len(slot['signups']) >= slot['capacity']:
            return FakeResponse(400, {'error': 'This meeting slot is full'})
        for other in self.slots.values():
            if any(s['email'] == body['email'] for s in other['signups']):
                return FakeResponse(400, {'error': 'You have already signed up for a meeting slot'})

        slot['signups'].append({
            'id': self.next_signup_id,
            'fullName': body['fullName'],
            'email': body['email'],
            'studentId': body['studentId'],
            'attended': False,
        })
        self.next_signup_id += 1
        return FakeResponse(201, {'message': 'Successfully signed up!', 'needsAccount': True})

    def _find_signup(self, signup_id):
        for slot in self.slots.values():
            for signup in slot['signups']:
                if signup['id'] == int(signup_id):
                    return slot, signup
        return None, None

    def _attendance(self, signup_id, body, params):
        _, signup = self._find_signup(signup_id)
        if signup is None:
            return FakeResponse(404, {'error': 'Signup not found'})
        signup['attended'] = body['attended']
        return FakeResponse(200, signup)

    def _delete_signup(self, signup_id, body, params):
        slot, signup = self._find_signup(signup_id)
        if signup is None:
            return FakeResponse(404, {'error': 'Signup not found'})
        slot['signups'].remove(signup)
        return FakeResponse(204)

    def _active_cycle(self, body, params):
        if self.active_cycle is None:
            return FakeResponse(404, {'error': 'No active cycle'})
        return FakeResponse(200, self.active_cycle)

    def _interview(self, interview_id, body, params):
        return FakeResponse(200, {'id': interview_id, 'title': 'Round One', 'interviewType': 'ROUND_ONE'})

    def _applications(self, interview_id, body, params):
        return FakeResponse(200, self.applications)

    def _list_evaluations(self, interview_id, body, params):
        return FakeResponse(200, self.evaluations)

    def _save_evaluation(self, interview_id, body, params):
        if body['applicationId'] in self.failing_applications:
            return FakeResponse(500, {'error': 'Failed to save evaluation'})
        return FakeResponse(200, {**body, 'evaluatorId': self.evaluator['id']})


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def api(backend):
    return ApiClient(BASE_URL, token='member-token', session=backend)


@pytest.fixture
def manager(api):
    return SlotManager(api, clock=lambda: NOW)


@pytest.fixture
def now():
    return NOW


def hours(n: float) -> timedelta:
    return timedelta(hours=n)
