import secrets
import string
import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy


db = SQLAlchemy()

_ID_ALPHABET = string.ascii_letters + string.digits


def _utcnow():
    return datetime.now(timezone.utc)


def new_uid():
    return uuid.uuid4().hex


def new_document_id():
    return ''.join(secrets.choice(_ID_ALPHABET) for _ in range(20))


class User(db.Model):
    id = db.Column(db.String(32), primary_key=True, default=new_uid)
    email = db.Column(db.String(254), unique=True, nullable=False)
    password = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow)
    tasks = db.relationship('Task', backref='user', lazy=True, cascade='all, delete-orphan')

    def __repr__(self):
        return f'<User {self.email}>'


class Task(db.Model):
    id = db.Column(db.String(20), primary_key=True, default=new_document_id)
    user_id = db.Column(db.String(32), db.ForeignKey('user.id'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    is_completed = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    def __repr__(self):
        return f'<Task {self.id} {self.name!r}>'
