# conftest.py
"""
공용 pytest 픽스처.
Firebase 없이 인메모리 저장소와 가짜 인증 제공자로 앱을 구성합니다.
"""

import pytest

from minifeed import create_app
from minifeed.api.posts.services import FeedStore
from minifeed.core.exceptions import UnauthenticatedError
from minifeed.models.principal import Principal
from minifeed.services.identity_service import IdentityProvider
from minifeed.services.memory_store import InMemoryDocumentStore

ALICE = Principal(user_id='u1', email='alice@x.com')
BOB = Principal(user_id='u2', email='bob@x.com')


class FakeIdentityProvider(IdentityProvider):
    """미리 정해 둔 ID 토큰만 통과시키는 인증 제공자."""

    def __init__(self):
        self.tokens = {
            'token-u1': ALICE,
            'token-u2': BOB,
        }
        self.signed_out = []

    def verify_id_token(self, id_token: str) -> Principal:
        principal = self.tokens.get(id_token)
        if principal is None:
            raise UnauthenticatedError("유효하지 않은 ID 토큰입니다.")
        return principal

    def sign_out(self, user_id: str) -> None:
        self.signed_out.append(user_id)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def feed_store(store):
    return FeedStore(store)


@pytest.fixture
def app(store, identity_provider):
    return create_app('testing', document_store=store, identity_provider=identity_provider)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    """로그인 후 (Authorization 헤더, 응답 본문)을 반환하는 헬퍼."""
    def _login(id_token: str = 'token-u1'):
        response = client.post('/api/auth/login', json={'id_token': id_token})
        assert response.status_code == 200
        body = response.get_json()
        return {'Authorization': f"Bearer {body['access_token']}"}, body
    return _login
