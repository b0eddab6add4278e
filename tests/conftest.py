"""
Test Configuration and Fixtures
"""
import hashlib
import hmac
import json
import time
import uuid

import pytest

from alia import create_app, db
from alia.domain import Plan
from alia.models import Profile, User

# 1x1 transparent PNG
PNG_BYTES = bytes.fromhex(
    '89504e470d0a1a0a0000000d49484452000000010000000108060000001f15c489'
    '0000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082'
)


@pytest.fixture(scope='function')
def app():
    """Create application for testing"""
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session for testing"""
    yield db.session
    db.session.rollback()


def make_user(email, password='testpassword123', plan=Plan.FREE, full_name='Dra. Teste', with_profile=True, customer_id=None):
    user = User(email=email)
    user.set_password(password)
    if with_profile:
        user.profile = Profile(full_name=full_name, plan=plan, stripe_customer_id=customer_id)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def free_user(app):
    """User on the free plan"""
    return make_user('free@clinica.com', customer_id='cus_free')


@pytest.fixture(scope='function')
def premium_user(app):
    """User on the premium plan"""
    return make_user('premium@clinica.com', plan=Plan.PREMIUM, customer_id='cus_premium')


def login(client, email, password='testpassword123'):
    return client.post('/login', data={'email': email, 'password': password})


@pytest.fixture(scope='function')
def authenticated_client(client, free_user):
    """Client logged in as the free user"""
    login(client, free_user.email)
    return client


@pytest.fixture(scope='function')
def premium_client(client, premium_user):
    """Client logged in as the premium user"""
    login(client, premium_user.email)
    return client


@pytest.fixture
def client_id():
    return uuid.uuid4().hex


def stripe_signature(payload, secret, timestamp=None):
    """Stripe-Signature header for a raw payload"""
    timestamp = int(timestamp or time.time())
    signed = f'{timestamp}.{payload}'.encode('utf-8')
    digest = hmac.new(secret.encode('utf-8'), signed, hashlib.sha256).hexdigest()
    return f't={timestamp},v1={digest}'


def stripe_event(event_type, obj):
    return json.dumps({
        'id': f'evt_{uuid.uuid4().hex[:12]}',
        'object': 'event',
        'type': event_type,
        'data': {'object': obj},
    })
