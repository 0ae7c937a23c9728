import pytest

from recruit_scheduler.api import ApiClient
from recruit_scheduler.exceptions import NetworkError, RemoteError

from conftest import BASE_URL, FakeResponse


class ScriptedSession:
    def __init__(self, response: FakeResponse):
        self.response = response
        self.sent = []

    def request(self, method, url, json=None, params=None, headers=None):
        self.sent.append({'method': method, 'url': url, 'json': json, 'params': params, 'headers': headers})
        return self.response


def test_request_sends_json_with_bearer_token() -> None:
    session = ScriptedSession(FakeResponse(200, {'ok': True}))
    client = ApiClient(BASE_URL + '/', token='secret', session=session)

    assert client.post('/member/meeting-slots', {'location': 'Room A'}) == {'ok': True}

    sent = session.sent[0]
    assert sent['method'] == 'POST'
    assert sent['url'] == BASE_URL + '/member/meeting-slots'
    assert sent['json'] == {'location': 'Room A'}
    assert sent['headers']['Authorization'] == 'Bearer secret'
    assert sent['headers']['Content-Type'] == 'application/json'


def test_request_without_token_omits_authorization() -> None:
    session = ScriptedSession(FakeResponse(200, []))
    client = ApiClient(BASE_URL, session=session)

    client.get('/meeting-slots', params={'page': 1})

    assert 'Authorization' not in session.sent[0]['headers']
    assert session.sent[0]['params'] == {'page': 1}


def test_error_message_comes_from_server() -> None:
    client = ApiClient(BASE_URL, session=ScriptedSession(FakeResponse(400, {'error': 'This meeting slot is full'})))

    with pytest.raises(RemoteError) as exception_info:
        client.post('/meeting-slots/1/signup', {})

    assert str(exception_info.value) == 'This meeting slot is full'
    assert exception_info.value.status_code == 400


@pytest.mark.parametrize(
    'response',
    [
        FakeResponse(500, text='<html>Internal Server Error</html>'),
        FakeResponse(403, {'message': 'nope'}),
        FakeResponse(502),
    ],
)
def test_error_without_server_message_is_generic(response: FakeResponse) -> None:
    client = ApiClient(BASE_URL, session=ScriptedSession(response))

    with pytest.raises(RemoteError, match='Request failed'):
        client.get('/active-cycle')


def test_no_content_returns_none() -> None:
    client = ApiClient(BASE_URL, session=ScriptedSession(FakeResponse(204)))

    assert client.delete('/member/meeting-slots/1') is None


def test_invalid_json_body_is_a_remote_error() -> None:
    client = ApiClient(BASE_URL, session=ScriptedSession(FakeResponse(200, text='not json')))

    with pytest.raises(RemoteError, match='invalid response'):
        client.get('/meeting-slots')


def test_unreachable_server_is_a_network_error(backend) -> None:
    backend.offline = True
    client = ApiClient(BASE_URL, session=backend)

    with pytest.raises(NetworkError, match='Could not reach the server'):
        client.get('/meeting-slots')


def test_network_error_can_be_handled_as_remote_error(backend) -> None:
    backend.offline = True
    client = ApiClient(BASE_URL, session=backend)

    with pytest.raises(RemoteError):
        client.get('/meeting-slots')
