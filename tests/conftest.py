"""
Pytest configuration and fixtures for testing the chama disputes service.
"""

import os
import sys
from datetime import timedelta

import jwt
import pytest
from faker import Faker

# Add the parent directory to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Keep tests off real Redis, SMTP and web push
for _var in ('REDIS_URL', 'SMTP_USER', 'SMTP_PASSWORD', 'VAPID_PRIVATE_KEY', 'VAPID_PUBLIC_KEY',
             'SUPABASE_URL', 'SUPABASE_SERVICE_KEY'):
    os.environ.pop(_var, None)

from chama_disputes import create_app, db
from chama_disputes.models import User, ChamaMember, ChamaRole
from chama_disputes.services import disputes as dispute_service
from chama_disputes.utils.dates import utcnow

fake = Faker()

TEST_SECRET = 'test-secret-key-for-testing'


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    os.environ['FLASK_ENV'] = 'testing'

    app = create_app('testing')

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client for each test function."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create a fresh database session for each test."""
    with app.app_context():
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        yield db.session
        db.session.rollback()


def create_user(**overrides):
    """Helper to create a user with sensible defaults. Returns the user id."""
    data = {
        'username': fake.user_name() + fake.pystr(min_chars=4, max_chars=6),
        'email': fake.unique.email(),
        'first_name': fake.first_name(),
        'last_name': fake.last_name(),
    }
    data.update(overrides)
    user = User(**data)
    db.session.add(user)
    db.session.commit()
    return user.id


def add_member(chama_id, user_id, role=ChamaRole.MEMBER, status='active'):
    db.session.add(ChamaMember(chama_id=chama_id, user_id=user_id, role=role, status=status))
    db.session.commit()


def make_token(user_id, expires_in=timedelta(hours=1)):
    return jwt.encode({'user_id': user_id, 'exp': utcnow() + expires_in}, TEST_SECRET, algorithm='HS256')


def auth_headers(user_id):
    return {'Authorization': f'Bearer {make_token(user_id)}'}


def future(hours=48):
    return utcnow() + timedelta(hours=hours)


@pytest.fixture
def chama(db_session):
    """A chama with an admin, a secretary and five ordinary members.

    member_ids[0] files disputes against member_ids[1] in the fixtures
    below, which leaves five eligible voters: the two officers and
    member_ids[2:].
    """
    chama_id = fake.random_int(min=1000, max=9999)
    admin_id = create_user()
    secretary_id = create_user()
    member_ids = [create_user() for _ in range(5)]

    add_member(chama_id, admin_id, role=ChamaRole.ADMIN)
    add_member(chama_id, secretary_id, role=ChamaRole.SECRETARY)
    for user_id in member_ids:
        add_member(chama_id, user_id)

    return {
        'id': chama_id,
        'admin_id': admin_id,
        'secretary_id': secretary_id,
        'member_ids': member_ids,
        'filer_id': member_ids[0],
        'accused_id': member_ids[1],
        'voter_ids': [admin_id, secretary_id] + member_ids[2:],
    }


@pytest.fixture
def outsider(db_session):
    """A user with no membership in the chama."""
    return create_user()


@pytest.fixture
def platform_admin(db_session):
    return create_user(is_admin=True)


def file_test_dispute(chama, **overrides):
    data = {
        'filer_id': chama['filer_id'],
        'chama_id': chama['id'],
        'dispute_type': 'payment_dispute',
        'title': fake.sentence(nb_words=5),
        'description': fake.paragraph(),
        'filed_against_user_id': chama['accused_id'],
    }
    data.update(overrides)
    return dispute_service.file_dispute(**data)


def open_voting(chama, required_votes=None, hours=48, **overrides):
    """File a dispute and move it through discussion into voting."""
    dispute = file_test_dispute(chama, **overrides)
    dispute_service.start_discussion(chama['secretary_id'], dispute.id, future(hours))
    dispute_service.start_voting(chama['secretary_id'], dispute.id, future(hours), required_votes)
    return dispute


@pytest.fixture
def filed_dispute(chama):
    return file_test_dispute(chama)


@pytest.fixture
def voting_dispute(chama):
    return open_voting(chama, required_votes=3)
