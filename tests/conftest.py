import os
import re
import sys
import time
from typing import Any, Dict, Iterable, Iterator, Optional

import jwt
import pytest
from fastapi.testclient import TestClient

# Ensure the repository root is on sys.path so tests can import the inforia package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

# Settings are cached on first use, so the test environment must be in place
# before any inforia module is imported.
SUPABASE_URL = 'http://supabase.test'
JWT_SECRET = 'test-jwt-secret'

os.environ['SUPABASE_URL'] = SUPABASE_URL
os.environ['SUPABASE_SERVICE_ROLE_KEY'] = 'service-key'
os.environ['SUPABASE_JWT_SECRET'] = JWT_SECRET
os.environ['OPENROUTER_API_KEY'] = 'test-llm-key'
os.environ.pop('USE_OFFLINE_MODEL', None)
os.environ.pop('ALLOWED_EGRESS_HOSTS', None)

from inforia import store as store_module  # noqa: E402
from inforia.config import get_settings  # noqa: E402

get_settings.cache_clear()

REST_URL = f'{SUPABASE_URL}/rest/v1'
DOCS_URL = 'https://docs.googleapis.com/v1/documents'
DRIVE_URL = 'https://www.googleapis.com/drive/v3/files'

USER_ID = '11111111-2222-4333-8444-555555555555'
PATIENT_ID = '550e8400-e29b-41d4-a716-446655440000'


def make_token(
    user_id: str = USER_ID,
    providers: Iterable[str] = ('email', 'google'),
    *,
    secret: str = JWT_SECRET,
    expires_in: int = 3600,
    **claims: Any,
) -> str:
    payload: Dict[str, Any] = {
        'sub': user_id,
        'aud': 'authenticated',
        'role': 'authenticated',
        'email': 'psico@example.test',
        'exp': int(time.time()) + expires_in,
        'app_metadata': {'provider': 'email', 'providers': list(providers)},
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm='HS256')


def auth_header(token: Optional[str] = None, provider_token: Optional[str] = None) -> Dict[str, str]:
    headers = {'Authorization': f'Bearer {token or make_token()}'}
    if provider_token:
        headers['X-Provider-Token'] = provider_token
    return headers


@pytest.fixture(autouse=True)
def fresh_store() -> Iterator[None]:
    store_module.reset_store()
    yield
    store_module.reset_store()


@pytest.fixture
def client() -> TestClient:
    from inforia import main

    return TestClient(main.app)


@pytest.fixture
def store() -> store_module.HostedStore:
    return store_module.get_store()


class HostedBackend:
    """Registers the hosted store and Google endpoints on ``requests_mock``."""

    def __init__(self, mocker) -> None:
        self.mocker = mocker
        self.inserted_reports = []
        self._doc_counter = 0
        self.subscription(reports_used=5, reports_limit=10)
        self.patient()
        self.reports_table()
        self.increment(reports_used=6, reports_remaining=4)
        self.google()

    def subscription(self, status: str = 'active', **fields: Any):
        row = {
            'id': 'sub-1',
            'user_id': USER_ID,
            'plan_id': 'profesional',
            'status': status,
            'reports_limit': 10,
            'reports_used': 0,
            'current_period_start': '2026-10-01T00:00:00Z',
            'current_period_end': '2026-11-01T00:00:00Z',
        }
        row.update(fields)
        self.subscriptions = self.mocker.get(f'{REST_URL}/subscriptions', json=[row])
        return self.subscriptions

    def no_subscription(self):
        self.subscriptions = self.mocker.get(f'{REST_URL}/subscriptions', json=[])
        return self.subscriptions

    def patient(self, full_name: str = 'Ana López'):
        self.patients = self.mocker.get(
            f'{REST_URL}/patients',
            json=[{'id': PATIENT_ID, 'full_name': full_name}],
        )
        return self.patients

    def no_patient(self):
        self.patients = self.mocker.get(f'{REST_URL}/patients', json=[])
        return self.patients

    def reports_table(self, status_code: int = 201):
        def _insert(request, context):
            context.status_code = status_code
            if status_code >= 400:
                return {'message': 'insert rejected', 'code': '23503'}
            body = request.json()
            row = {
                'id': f'report-{len(self.inserted_reports) + 1}',
                'created_at': '2026-10-19T10:00:00+00:00',
                **body,
            }
            self.inserted_reports.append(row)
            return [row]

        self.reports = self.mocker.post(f'{REST_URL}/reports', json=_insert)
        return self.reports

    def increment(self, status_code: int = 200, **result: Any):
        if status_code >= 400:
            self.increments = self.mocker.post(
                f'{REST_URL}/rpc/increment_reports_used',
                status_code=status_code,
                json={'message': 'function failed'},
            )
        else:
            payload = {'status': 'active', **result}
            self.increments = self.mocker.post(
                f'{REST_URL}/rpc/increment_reports_used', json=payload
            )
        return self.increments

    def google(self, create_status: int = 200, drive_status: int = 200):
        def _create(request, context):
            context.status_code = create_status
            if create_status >= 400:
                return {'error': {'code': create_status, 'message': 'denied'}}
            self._doc_counter += 1
            return {'documentId': f'doc-{self._doc_counter}', 'title': request.json()['title']}

        def _drive(request, context):
            context.status_code = drive_status
            if drive_status >= 400:
                return {'error': {'code': drive_status, 'message': 'drive failure'}}
            doc_id = request.path.rsplit('/', 1)[-1]
            return {
                'id': doc_id,
                'name': 'document',
                'webViewLink': f'https://docs.google.com/document/d/{doc_id}/edit',
                'size': '2048',
            }

        self.docs = self.mocker.post(DOCS_URL, json=_create)
        self.drive = self.mocker.get(
            re.compile(rf'{DRIVE_URL}/.+'), json=_drive
        )
        return self.docs

    def google_calls(self) -> int:
        return self.docs.call_count + self.drive.call_count


@pytest.fixture
def backend(requests_mock) -> HostedBackend:
    return HostedBackend(requests_mock)
