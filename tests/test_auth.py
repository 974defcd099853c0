import datetime
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from google.auth.exceptions import RefreshError

from classroom_solver import auth as auth_module
from classroom_solver.auth import SCOPES, AuthService
from classroom_solver.config import Settings
from classroom_solver.errors import AuthError, ConfigurationError
from conftest import make_http_error


@pytest.fixture
def settings(tmp_path):
    return Settings(
        credentials_file=str(tmp_path / 'credentials.json'),
        token_file=str(tmp_path / 'token.json'),
    )


def write_token(path, token='access-123', expiry=None):
    info = {
        'token': token,
        'refresh_token': 'refresh-456',
        'client_id': 'client.apps.googleusercontent.com',
        'client_secret': 'secret',
        'scopes': SCOPES,
    }
    if expiry:
        info['expiry'] = expiry
    path.write_text(json.dumps(info))


class FakeCreds:
    token = 'fresh-token'
    valid = True

    def to_json(self):
        return json.dumps({'token': self.token})


def fake_userinfo_service(monkeypatch, info=None, error=None):
    service = MagicMock()
    execute = service.userinfo.return_value.get.return_value.execute
    if error:
        execute.side_effect = error
    else:
        execute.return_value = info
    monkeypatch.setattr(auth_module, 'build', lambda *args, **kwargs: service)
    return service


def test_init_client_requires_configuration(settings):
    with pytest.raises(ConfigurationError):
        AuthService(settings).init_client()


def test_init_client_without_token_needs_sign_in(settings, tmp_path):
    (tmp_path / 'credentials.json').write_text('{}')

    service = AuthService(settings)

    assert service.init_client() is None
    assert not service.is_signed_in
    assert service.get_access_token() is None


def test_init_client_loads_stored_token(settings, tmp_path):
    write_token(tmp_path / 'token.json')
    service = AuthService(settings)

    creds = service.init_client()

    assert creds is not None
    assert service.is_signed_in
    assert service.get_access_token() == 'access-123'


def test_init_client_refreshes_expired_token(settings, tmp_path, monkeypatch):
    write_token(tmp_path / 'token.json', expiry='2020-01-01T00:00:00Z')

    def refresh(self, request):
        self.token = 'refreshed-789'
        self.expiry = datetime.datetime.utcnow() + datetime.timedelta(hours=1)

    monkeypatch.setattr(auth_module.Credentials, 'refresh', refresh)
    service = AuthService(settings)

    creds = service.init_client()

    assert creds is not None
    assert service.get_access_token() == 'refreshed-789'
    assert json.loads((tmp_path / 'token.json').read_text())['token'] == 'refreshed-789'


def test_init_client_discards_token_that_cannot_refresh(settings, tmp_path, monkeypatch):
    write_token(tmp_path / 'token.json', expiry='2020-01-01T00:00:00Z')
    (tmp_path / 'credentials.json').write_text('{}')

    def refresh(self, request):
        raise RefreshError('invalid_grant: Token has been expired or revoked.')

    monkeypatch.setattr(auth_module.Credentials, 'refresh', refresh)
    service = AuthService(settings)

    assert service.init_client() is None
    assert not service.is_signed_in
    assert not (tmp_path / 'token.json').exists()


def test_init_client_discards_corrupt_token(settings, tmp_path):
    (tmp_path / 'token.json').write_text('{not json')
    (tmp_path / 'credentials.json').write_text('{}')
    service = AuthService(settings)

    assert service.init_client() is None
    assert not service.is_signed_in
    assert not (tmp_path / 'token.json').exists()


def test_sign_in_with_client_config_saves_token(settings, tmp_path, monkeypatch):
    settings.client_id = 'client.apps.googleusercontent.com'
    settings.client_secret = 'secret'
    configs = []

    class FakeFlow:
        @classmethod
        def from_client_config(cls, config, scopes):
            configs.append((config, scopes))
            return cls()

        def run_local_server(self, port):
            return FakeCreds()

    monkeypatch.setattr(auth_module, 'InstalledAppFlow', FakeFlow)
    fake_userinfo_service(monkeypatch, {'name': 'Sam Student', 'email': 'sam@example.edu', 'picture': 'p.png'})
    logins = []
    service = AuthService(settings, on_login=logins.append)

    profile = service.sign_in()

    assert (profile.name, profile.email, profile.picture) == ('Sam Student', 'sam@example.edu', 'p.png')
    assert logins == [profile]
    assert configs[0][0]['installed']['client_id'] == 'client.apps.googleusercontent.com'
    assert configs[0][1] == SCOPES
    assert json.loads((tmp_path / 'token.json').read_text()) == {'token': 'fresh-token'}


def test_sign_in_without_any_client_is_a_configuration_error(settings):
    with pytest.raises(ConfigurationError):
        AuthService(settings).sign_in()


def test_profile_failure_signs_out(settings, tmp_path, monkeypatch):
    write_token(tmp_path / 'token.json')
    fake_userinfo_service(monkeypatch, error=make_http_error(401, 'Invalid Credentials'))
    monkeypatch.setattr(auth_module.requests, 'post', lambda *args, **kwargs: SimpleNamespace(status_code=200))
    logouts = []
    service = AuthService(settings, on_logout=lambda: logouts.append(True))
    service.init_client()

    with pytest.raises(AuthError):
        service.fetch_user_profile()

    assert logouts == [True]
    assert not (tmp_path / 'token.json').exists()


def test_sign_out_revokes_and_forgets_token(settings, tmp_path, monkeypatch):
    write_token(tmp_path / 'token.json')
    posts = []
    monkeypatch.setattr(
        auth_module.requests, 'post',
        lambda url, **kwargs: posts.append((url, kwargs['params'])) or SimpleNamespace(status_code=200),
    )
    service = AuthService(settings)
    service.init_client()

    service.sign_out()

    assert posts == [('https://oauth2.googleapis.com/revoke', {'token': 'access-123'})]
    assert service.credentials is None
    assert not (tmp_path / 'token.json').exists()


def test_sign_out_when_signed_out_does_nothing(settings, monkeypatch):
    monkeypatch.setattr(auth_module.requests, 'post', MagicMock(side_effect=AssertionError('should not revoke')))

    AuthService(settings).sign_out()
