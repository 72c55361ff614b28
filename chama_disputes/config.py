"""Application configuration.

Values come from environment variables (loaded from .env by create_app).
Select a profile with create_app('development' | 'testing' | 'production').
"""

import os


def _env_bool(name, default='false'):
    return os.getenv(name, default).lower() in ('true', '1', 'yes')


def _database_url():
    url = os.getenv('DATABASE_URL', 'sqlite:///chama_disputes.db')
    # Render/Heroku still hand out postgres:// URLs
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)
    return url


class Config:
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'dev-secret')

    # Users allowed to act as platform admins besides those flagged is_admin
    PLATFORM_ADMIN_EMAILS = [
        e.strip() for e in os.getenv('PLATFORM_ADMIN_EMAILS', '').split(',') if e.strip()
    ]

    # Dispute lifecycle
    DISPUTE_REMINDER_WINDOW_HOURS = int(os.getenv('DISPUTE_REMINDER_WINDOW_HOURS', 24))
    DISPUTE_REMINDER_INTERVAL_HOURS = float(os.getenv('DISPUTE_REMINDER_INTERVAL_HOURS', 1))
    DISPUTE_OVERDUE_INTERVAL_HOURS = float(os.getenv('DISPUTE_OVERDUE_INTERVAL_HOURS', 24))
    DISPUTE_RECENT_COMMENT_HOURS = int(os.getenv('DISPUTE_RECENT_COMMENT_HOURS', 24))
    # Deadline given to a discussion or voting phase opened by a status override
    DISPUTE_OVERRIDE_PHASE_HOURS = int(os.getenv('DISPUTE_OVERRIDE_PHASE_HOURS', 72))
    DISPUTE_ALLOW_PARTY_VOTES = _env_bool('DISPUTE_ALLOW_PARTY_VOTES')
    DISPUTE_SCAN_LOCK_TTL = int(os.getenv('DISPUTE_SCAN_LOCK_TTL', 600))

    # Evidence uploads
    EVIDENCE_BUCKET = os.getenv('EVIDENCE_BUCKET', 'dispute-evidence')
    EVIDENCE_MAX_SIZE = int(os.getenv('EVIDENCE_MAX_SIZE', 10 * 1024 * 1024))  # 10MB
    EVIDENCE_ALLOWED_TYPES = [
        'image/jpeg',
        'image/png',
        'image/gif',
        'application/pdf',
        'text/plain',
        'application/msword',
        'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    ]

    FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:3000')

    RATELIMIT_ENABLED = _env_bool('RATELIMIT_ENABLED', 'true')
    RATELIMIT_STORAGE_URI = os.getenv('REDIS_URL', 'memory://')

    TESTING = False
    DEBUG = False


class DevelopmentConfig(Config):
    DEBUG = _env_bool('FLASK_DEBUG')


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    JWT_SECRET_KEY = 'test-secret-key-for-testing'
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'
    PLATFORM_ADMIN_EMAILS = []


class ProductionConfig(Config):
    pass


CONFIGS = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}
