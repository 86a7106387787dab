# tests/test_auth.py

from __future__ import annotations

import pytest

from auth import AuthProvider, SessionState, SessionStatus
from errors import ErrorKind, ProviderError
from models import User, db


@pytest.fixture()
def auth(ctx) -> AuthProvider:
    return AuthProvider(password_min_length=6)


def test_stream_starts_unknown_and_follows_register(auth: AuthProvider) -> None:
    seen: list[SessionState] = []
    auth.session_states(seen.append)

    state = auth.register('a@x.com', 'secret1')

    assert state.status is SessionStatus.ACTIVE
    assert state.uid
    assert seen == [SessionState.unknown(), state]
    assert str(state) == f'session({state.uid})'


def test_passwords_are_stored_hashed(auth: AuthProvider) -> None:
    uid = auth.register('a@x.com', 'secret1').uid
    user = db.session.get(User, uid)
    assert user.password != 'secret1'


def test_sign_out_then_sign_in_returns_same_uid(auth: AuthProvider) -> None:
    uid = auth.register('A@X.com', 'secret1').uid

    auth.sign_out()
    assert auth.current_state == SessionState.none()
    assert auth.current_uid is None

    assert auth.sign_in('a@x.com', 'secret1') == SessionState.active(uid)


@pytest.mark.parametrize(
    ('email', 'password', 'fragment'),
    [
        ('not-an-email', 'secret1', 'badly formatted'),
        ('', 'secret1', 'empty'),
        ('a@x.com', '', 'empty'),
        ('a@x.com', 'abc', 'at least 6'),
    ],
)
def test_register_rejects_bad_credentials(auth: AuthProvider, email, password, fragment) -> None:
    with pytest.raises(ProviderError) as info:
        auth.register(email, password)
    assert info.value.kind is ErrorKind.CREDENTIAL_INVALID
    assert fragment in str(info.value)
    assert auth.current_state == SessionState.unknown()


def test_register_rejects_duplicate_email(auth: AuthProvider) -> None:
    auth.register('a@x.com', 'secret1')
    auth.sign_out()

    with pytest.raises(ProviderError) as info:
        auth.register('a@x.com', 'another1')
    assert info.value.kind is ErrorKind.CREDENTIAL_INVALID
    assert 'already in use' in str(info.value)


def test_sign_in_failures_are_credential_errors(auth: AuthProvider) -> None:
    auth.register('a@x.com', 'secret1')
    auth.sign_out()

    with pytest.raises(ProviderError) as wrong:
        auth.sign_in('a@x.com', 'wrong-password')
    with pytest.raises(ProviderError) as missing:
        auth.sign_in('nobody@x.com', 'secret1')

    assert wrong.value.kind is ErrorKind.CREDENTIAL_INVALID
    assert missing.value.kind is ErrorKind.CREDENTIAL_INVALID
    assert auth.current_state == SessionState.none()


def test_restore_resolves_unknown_state(auth: AuthProvider) -> None:
    uid = auth.register('a@x.com', 'secret1').uid

    other = AuthProvider()
    assert other.current_state == SessionState.unknown()
    assert other.restore(uid) == SessionState.active(uid)

    third = AuthProvider()
    assert third.restore('no-such-user') == SessionState.none()
    assert AuthProvider().restore(None) == SessionState.none()


def test_repeated_state_is_not_republished(auth: AuthProvider) -> None:
    seen: list[SessionState] = []
    auth.restore(None)
    auth.session_states(seen.append)

    auth.sign_out()
    auth.sign_out()

    assert seen == [SessionState.none()]


@pytest.mark.parametrize('email', ['a..b@x.com', 'a@x..com', '.a@x.com', 'a@-x.com', 'a@x', 'a b@x.com'])
def test_malformed_addresses_cannot_register(auth: AuthProvider, email) -> None:
    with pytest.raises(ProviderError) as info:
        auth.register(email, 'secret1')

    assert info.value.kind is ErrorKind.CREDENTIAL_INVALID
    assert 'badly formatted' in str(info.value)
    assert User.query.count() == 0


def test_email_is_stored_normalized(auth: AuthProvider) -> None:
    uid = auth.register('  Someone@Example.ORG ', 'secret1').uid
    assert db.session.get(User, uid).email == 'someone@example.org'


def test_created_at_is_filled_in(auth: AuthProvider) -> None:
    uid = auth.register('a@x.com', 'secret1').uid
    assert db.session.get(User, uid).created_at is not None
