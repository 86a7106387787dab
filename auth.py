import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from errors import ErrorKind, ProviderError, from_database_error
from models import User, db
from streams import Broadcaster

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    UNKNOWN = 'unknown'
    NONE = 'none'
    ACTIVE = 'active'


@dataclass(frozen=True)
class SessionState:
    status: SessionStatus
    uid: Optional[str] = None

    @classmethod
    def unknown(cls):
        return cls(SessionStatus.UNKNOWN)

    @classmethod
    def none(cls):
        return cls(SessionStatus.NONE)

    @classmethod
    def active(cls, uid):
        return cls(SessionStatus.ACTIVE, uid)

    def __str__(self):
        if self.status is SessionStatus.ACTIVE:
            return f'session({self.uid})'
        return self.status.value


def _invalid(message):
    return ProviderError(ErrorKind.CREDENTIAL_INVALID, message)


class AuthProvider:
    """Email/password accounts for one device.

    Accounts live in the ``user`` table. The device's session starts out
    ``unknown`` until ``restore()`` resolves it, and every change is pushed
    to the listeners of ``session_states()``.
    """

    def __init__(self, password_min_length=6):
        self.password_min_length = password_min_length
        self._states = Broadcaster(replay=True)
        self._state = SessionState.unknown()
        self._states.publish(self._state)

    @property
    def current_state(self):
        return self._state

    @property
    def current_uid(self):
        return self._state.uid

    def session_states(self, listener):
        return self._states.subscribe(listener)

    def restore(self, uid=None):
        """Resolve a persisted session, e.g. the uid kept in a cookie."""
        user = None
        if uid:
            try:
                user = db.session.get(User, uid)
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception('Could not restore session uid=%s', uid)
        if user is None:
            self._set_state(SessionState.none())
        else:
            self._set_state(SessionState.active(user.id))
        return self._state

    def register(self, email, password):
        email = self._check_email(email)
        self._check_password(password, creating=True)
        try:
            if User.query.filter_by(email=email).first() is not None:
                raise _invalid('The email address is already in use by another account.')
            user = User(email=email, password=generate_password_hash(password))
            db.session.add(user)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise _invalid('The email address is already in use by another account.')
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise from_database_error(exc) from exc
        logger.info('Registered user uid=%s', user.id)
        return self._set_state(SessionState.active(user.id))

    def sign_in(self, email, password):
        email = self._check_email(email)
        self._check_password(password)
        try:
            user = User.query.filter_by(email=email).first()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise from_database_error(exc) from exc
        if user is None:
            raise _invalid('There is no user record corresponding to this identifier.')
        if not check_password_hash(user.password, password):
            raise _invalid('The password is invalid or the user does not have a password.')
        logger.info('Signed in uid=%s', user.id)
        return self._set_state(SessionState.active(user.id))

    def sign_out(self):
        if self._state.status is SessionStatus.ACTIVE:
            logger.info('Signed out uid=%s', self._state.uid)
        self._set_state(SessionState.none())

    def _check_email(self, email):
        email = (email or '').strip()
        if not email:
            raise _invalid('Given String is empty or null')
        try:
            checked = validate_email(email, check_deliverability=False)
        except EmailNotValidError as exc:
            logger.debug('Rejected email %r: %s', email, exc)
            raise _invalid('The email address is badly formatted.') from exc
        return checked.normalized.lower()

    def _check_password(self, password, creating=False):
        if not password:
            raise _invalid('Given String is empty or null')
        if creating and len(password) < self.password_min_length:
            raise _invalid(f'Password should be at least {self.password_min_length} characters')

    def _set_state(self, state):
        if state != self._state:
            self._state = state
            self._states.publish(state)
        return state
