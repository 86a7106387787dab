import itertools
import logging
import re
import threading
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from errors import ErrorKind, ProviderError, from_database_error
from models import Task, db, new_document_id
from streams import Broadcaster

logger = logging.getLogger(__name__)

TASKS_PATH_RE = re.compile(r'^users/(?P<uid>[^/]+)/tasks$')

FIELDS = {'name': 'name', 'isCompleted': 'is_completed'}


def tasks_path(uid):
    return f'users/{uid}/tasks'


@dataclass(frozen=True)
class TaskDocument:
    id: str
    name: str
    is_completed: bool

    @classmethod
    def from_row(cls, row):
        return cls(id=row.id, name=row.name, is_completed=bool(row.is_completed))

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'isCompleted': self.is_completed}


class Channel:
    """Snapshots of one collection path.

    Every read is stamped with a version while ``lock`` is held, so a higher
    version always means a later read. Listeners drop anything older than
    what they have already seen.
    """

    def __init__(self):
        self.lock = threading.RLock()
        self.stream = Broadcaster(replay=False)
        self._versions = itertools.count(1)

    def read(self, fetch):
        with self.lock:
            version = next(self._versions)
            try:
                return version, fetch()
            except ProviderError as exc:
                return version, exc


class ChangeHub:
    """Snapshot fan-out per collection path, shared by every device."""

    def __init__(self):
        self._channels = {}
        self._lock = threading.Lock()

    def channel(self, path):
        with self._lock:
            if path not in self._channels:
                self._channels[path] = Channel()
            return self._channels[path]

    def listener_count(self, path):
        with self._lock:
            channel = self._channels.get(path)
        return len(channel.stream) if channel is not None else 0

    def notify(self, path, fetch):
        channel = self.channel(path)
        with channel.lock:
            channel.stream.publish(channel.read(fetch))


class DocumentClient:
    """Database handle of one device; access is scoped by its signed-in uid."""

    def __init__(self, hub, auth):
        self.hub = hub
        self.auth = auth

    def collection(self, path):
        match = TASKS_PATH_RE.match(path or '')
        if match is None:
            raise ValueError(f'Unsupported collection path: {path!r}')
        return CollectionRef(self, match.group('uid'))


def _validate(doc, partial):
    unknown = set(doc) - set(FIELDS)
    if unknown:
        raise ValueError(f'Unknown task fields: {sorted(unknown)}')
    if 'name' in doc and not isinstance(doc['name'], str):
        raise ValueError('name must be a string')
    if 'name' in doc and not doc['name'].strip():
        raise ValueError('name must not be blank')
    if 'isCompleted' in doc and not isinstance(doc['isCompleted'], bool):
        raise ValueError('isCompleted must be a boolean')
    if not partial and 'name' not in doc:
        raise ValueError('name is required')


class CollectionRef:

    def __init__(self, client, uid):
        self._client = client
        self.uid = uid
        self.path = tasks_path(uid)

    def __repr__(self):
        return f'<CollectionRef {self.path}>'

    def get(self):
        self._check_access()
        try:
            rows = (Task.query.filter_by(user_id=self.uid)
                    .order_by(Task.created_at.asc(), Task.id.asc())
                    .all())
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise from_database_error(exc) from exc
        return [TaskDocument.from_row(row) for row in rows]

    def add(self, doc):
        _validate(doc, partial=False)
        self._check_access()
        task = Task(id=new_document_id(), user_id=self.uid, name=doc['name'],
                    is_completed=doc.get('isCompleted', False))
        self._commit(lambda: db.session.add(task))
        logger.debug('Added %s/%s', self.path, task.id)
        self._notify()
        return task.id

    def update(self, doc_id, partial):
        _validate(partial, partial=True)
        self._check_access()

        def apply():
            task = Task.query.filter_by(id=doc_id, user_id=self.uid).first()
            if task is None:
                raise ProviderError(ErrorKind.UNKNOWN, f'No document to update: {self.path}/{doc_id}')
            for key, value in partial.items():
                setattr(task, FIELDS[key], value)

        self._commit(apply)
        logger.debug('Updated %s/%s %s', self.path, doc_id, partial)
        self._notify()

    def delete(self, doc_id):
        self._check_access()
        removed = []

        def apply():
            removed.append(Task.query.filter_by(id=doc_id, user_id=self.uid).delete())

        self._commit(apply)
        if removed and removed[0]:
            logger.debug('Deleted %s/%s', self.path, doc_id)
            self._notify()

    def subscribe(self, on_snapshot, on_error=None):
        """Deliver the current snapshot now and a fresh one after every write."""
        self._check_access()

        channel = self._client.hub.channel(self.path)
        seen = [0]

        def deliver(snapshot):
            version, value = snapshot
            if version <= seen[0]:
                logger.debug('Dropped stale snapshot v%s for %s', version, self.path)
                return
            seen[0] = version
            if isinstance(value, ProviderError):
                if on_error is None:
                    logger.warning('Snapshot listener for %s got %r', self.path, value)
                else:
                    on_error(value)
            else:
                on_snapshot(value)

        with channel.lock:
            subscription = channel.stream.subscribe(deliver)
            deliver(channel.read(self.get))
        return subscription

    def _check_access(self):
        if self._client.auth.current_uid != self.uid:
            raise ProviderError(ErrorKind.PERMISSION_DENIED, 'Missing or insufficient permissions.')

    def _commit(self, apply):
        try:
            apply()
            db.session.commit()
        except ProviderError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise from_database_error(exc) from exc

    def _notify(self):
        self._client.hub.notify(self.path, self.get)
