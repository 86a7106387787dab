import logging
import threading

from auth import SessionStatus
from errors import ProviderError
from store import tasks_path

logger = logging.getLogger(__name__)


class LoadingScreen:
    name = 'loading'

    def start(self):
        pass

    def stop(self):
        pass

    def render(self):
        return {'screen': self.name}


class CredentialScreen:
    """Email/password form: sign in or create an account."""

    name = 'credentials'

    def __init__(self, auth):
        self.auth = auth
        self.email = ''
        self.error_message = ''
        self.error_kind = None
        self._in_flight = threading.Lock()

    @property
    def busy(self):
        return self._in_flight.locked()

    def start(self):
        pass

    def stop(self):
        pass

    def login(self, email, password):
        return self._submit('Login', self.auth.sign_in, email, password)

    def register(self, email, password):
        return self._submit('Registration', self.auth.register, email, password)

    def _submit(self, label, call, email, password):
        if not self._in_flight.acquire(blocking=False):
            logger.debug('%s ignored, another request is in flight', label)
            return False
        try:
            self.email = email.strip()
            try:
                call(self.email, password.strip())
            except ProviderError as exc:
                logger.warning('%s error: %s (%s)', label, exc, exc.kind.value)
                self.error_message = str(exc)
                self.error_kind = exc.kind
                return False
            self.error_message = ''
            self.error_kind = None
            return True
        finally:
            self._in_flight.release()

    def render(self):
        return {
            'screen': self.name,
            'email': self.email,
            'error': self.error_message,
            'error_kind': self.error_kind.value if self.error_kind else None,
            'busy': self.busy,
        }


class TaskBoard:
    """Live list of the signed-in user's tasks."""

    name = 'tasks'

    def __init__(self, auth, documents, uid):
        self.auth = auth
        self.uid = uid
        self.collection = documents.collection(tasks_path(uid))
        self.tasks = None
        self.draft = ''
        self.last_error = None
        self.render_count = 0
        self._subscription = None

    @property
    def loading(self):
        return self.tasks is None and self.last_error is None

    def start(self):
        if self._subscription is not None:
            return
        try:
            self._subscription = self.collection.subscribe(self._on_snapshot, self._on_error)
        except ProviderError as exc:
            self._on_error(exc)

    def stop(self):
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def add_task(self, name):
        name = (name or '').strip()
        if not name:
            return None
        task_id = self._run('add', self.collection.add, {'name': name, 'isCompleted': False})
        if task_id is not None:
            self.draft = ''
        return task_id

    def toggle_completion(self, task_id, current_is_completed):
        self._run('toggle', self.collection.update, task_id, {'isCompleted': not current_is_completed})

    def delete_task(self, task_id):
        self._run('delete', self.collection.delete, task_id)

    def logout(self):
        self._run('logout', self.auth.sign_out)

    def _run(self, label, call, *args):
        try:
            result = call(*args)
        except ProviderError as exc:
            logger.warning('Task %s failed for uid=%s: %s', label, self.uid, exc)
            self.last_error = exc
            return None
        self.last_error = None
        return result

    def _on_snapshot(self, documents):
        self.tasks = list(documents)
        self.render_count += 1

    def _on_error(self, exc):
        logger.warning('Task subscription failed for uid=%s: %s', self.uid, exc)
        self.last_error = exc

    def render(self):
        return {
            'screen': self.name,
            'uid': self.uid,
            'loading': self.loading,
            'draft': self.draft,
            'error': str(self.last_error) if self.last_error else '',
            'tasks': [
                dict(task.to_dict(), struck=task.is_completed)
                for task in (self.tasks or [])
            ],
        }


class SessionGate:
    """Root of the UI: mounts a screen for each session state."""

    def __init__(self, auth, documents):
        self.auth = auth
        self.documents = documents
        self.current = None
        self._subscription = None

    def start(self):
        if self._subscription is None:
            self._subscription = self.auth.session_states(self._on_state)

    def stop(self):
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self._mount(None)

    def render(self):
        if self.current is None:
            return LoadingScreen().render()
        return self.current.render()

    def _on_state(self, state):
        current = self.current
        if state.status is SessionStatus.ACTIVE:
            if isinstance(current, TaskBoard) and current.uid == state.uid:
                return
            self._mount(TaskBoard(self.auth, self.documents, state.uid))
        elif state.status is SessionStatus.NONE:
            if isinstance(current, CredentialScreen):
                return
            self._mount(CredentialScreen(self.auth))
        elif not isinstance(current, LoadingScreen):
            self._mount(LoadingScreen())

    def _mount(self, screen):
        if self.current is not None:
            self.current.stop()
        self.current = screen
        if screen is not None:
            logger.info('Showing %s screen', screen.name)
            screen.start()
