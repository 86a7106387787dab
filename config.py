import os


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-key-placeholder')
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///tasks.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    PASSWORD_MIN_LENGTH = int(os.environ.get('PASSWORD_MIN_LENGTH', '6'))
    MAX_DEVICES = int(os.environ.get('MAX_DEVICES', '1000'))
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
