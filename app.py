import logging
import threading
import uuid
from collections import OrderedDict

from flask import (Blueprint, Flask, current_app, flash, g, jsonify, redirect,
                   render_template, request, session, url_for)

from auth import AuthProvider
from config import Config
from models import db
from screens import CredentialScreen, SessionGate, TaskBoard
from store import ChangeHub, DocumentClient

logger = logging.getLogger(__name__)

bp = Blueprint('tasks', __name__)

TEMPLATES = {
    'loading': 'loading.html',
    'credentials': 'login.html',
    'tasks': 'tasks.html',
}


class Device:
    """One browser: its own session, database handle and screen tree."""

    def __init__(self, hub, password_min_length):
        self.auth = AuthProvider(password_min_length=password_min_length)
        self.documents = DocumentClient(hub, self.auth)
        self.gate = SessionGate(self.auth, self.documents)


class DeviceRegistry:
    """Devices by browser id, least recently used evicted past ``max_devices``.

    An evicted browser gets a fresh device on its next request, restored
    from the uid kept in its session cookie.
    """

    def __init__(self, password_min_length=6, max_devices=1000):
        self.hub = ChangeHub()
        self.password_min_length = password_min_length
        self.max_devices = max_devices
        self._devices = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._devices)

    def get_or_create(self, device_id):
        evicted = []
        with self._lock:
            device = self._devices.get(device_id)
            if device is not None:
                self._devices.move_to_end(device_id)
                return device, False
            device = Device(self.hub, self.password_min_length)
            self._devices[device_id] = device
            while len(self._devices) > self.max_devices:
                evicted.append(self._devices.popitem(last=False))
        for old_id, old in evicted:
            logger.debug('Evicting device %s', old_id)
            old.gate.stop()
        device.gate.start()
        return device, True

    def close(self):
        with self._lock:
            devices = list(self._devices.values())
            self._devices.clear()
        for device in devices:
            device.gate.stop()


def current_device():
    if 'device' in g:
        return g.device
    registry = current_app.extensions['devices']
    if 'device_id' not in session:
        session['device_id'] = uuid.uuid4().hex
    device, created = registry.get_or_create(session['device_id'])
    if created:
        device.auth.restore(session.get('user_id'))
    g.device = device
    return device


def current_screen(kind):
    screen = current_device().gate.current
    return screen if isinstance(screen, kind) else None


@bp.after_app_request
def remember_session(response):
    device = g.get('device')
    if device is not None:
        uid = device.auth.current_uid
        if uid:
            session['user_id'] = uid
        else:
            session.pop('user_id', None)
    return response


@bp.route('/')
def home():
    view = current_device().gate.render()
    return render_template(TEMPLATES[view['screen']], view=view)


@bp.route('/api/screen')
def screen_state():
    return jsonify(current_device().gate.render())


@bp.route('/login', methods=['POST'])
def login():
    screen = current_screen(CredentialScreen)
    if screen is not None:
        screen.login(request.form.get('email', ''), request.form.get('password', ''))
    return redirect(url_for('tasks.home'))


@bp.route('/register', methods=['POST'])
def register():
    screen = current_screen(CredentialScreen)
    if screen is not None:
        screen.register(request.form.get('email', ''), request.form.get('password', ''))
    return redirect(url_for('tasks.home'))


@bp.route('/tasks', methods=['POST'])
def add_task():
    board = current_screen(TaskBoard)
    if board is not None:
        board.draft = request.form.get('name', '')
        board.add_task(board.draft)
    return redirect(url_for('tasks.home'))


@bp.route('/tasks/<task_id>/toggle', methods=['POST'])
def toggle_task(task_id):
    board = current_screen(TaskBoard)
    if board is not None:
        completed = request.form.get('completed', '').lower() in ('1', 'true', 'on')
        board.toggle_completion(task_id, completed)
    return redirect(url_for('tasks.home'))


@bp.route('/tasks/<task_id>/delete', methods=['POST'])
def delete_task(task_id):
    board = current_screen(TaskBoard)
    if board is not None:
        board.delete_task(task_id)
    return redirect(url_for('tasks.home'))


@bp.route('/logout', methods=['POST'])
def logout():
    board = current_screen(TaskBoard)
    if board is not None:
        board.logout()
        flash('Signed out.', 'info')
    return redirect(url_for('tasks.home'))


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    db.init_app(app)
    with app.app_context():
        db.create_all()

    app.extensions['devices'] = DeviceRegistry(
        password_min_length=app.config['PASSWORD_MIN_LENGTH'],
        max_devices=app.config['MAX_DEVICES'],
    )
    app.register_blueprint(bp)
    return app


if __name__ == '__main__':
    create_app().run(debug=True)
