import os
import sys
import itertools
import flask
import pytest

# Ensure the backend root (containing the `cheesehouse` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from cheesehouse import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    ENV_NAME = 'development'
    LOG_LEVEL = 'DEBUG'
    RESTAURANT_NAME = 'CheeseHouse'
    LOCATION = 'Centro'
    # No token: outbound messages are simulated and only logged
    WHATSAPP_TOKEN = ''
    WHATSAPP_PHONE_NUMBER_ID = ''
    GAMES_REQUIRE_APPROVAL = 3


class SequentialRng:
    """Stands in for ``random`` so voucher codes never collide within one second."""

    def __init__(self):
        self._counter = itertools.count()

    def randint(self, low, high):
        return low + next(self._counter) % (high - low + 1)


def _reset_login_user(sender, **extra):
    flask.g.pop('_login_user', None)


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    application.extensions['cheesehouse'].issuer.rng = SequentialRng()
    with application.app_context():
        # Ensure models are imported so tables are created
        import cheesehouse.models  # noqa: F401
        db.create_all()
        # Client requests run inside this shared app context, so drop the
        # user Flask-Login cached on ``g`` by the previous request.
        flask.request_started.connect(_reset_login_user, application)
        yield application
        flask.request_started.disconnect(_reset_login_user, application)
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


@pytest.fixture()
def roles(flask_app):
    from cheesehouse.models import Role
    admin_role = Role(name=Role.ADMIN, permissions='{"can_manage_users": true, "can_redeem": true, "can_manage_campaigns": true}')
    employee_role = Role(name=Role.EMPLOYEE, permissions='{"can_redeem": true}')
    db.session.add_all([admin_role, employee_role])
    db.session.commit()
    return {'admin': admin_role, 'employee': employee_role}


@pytest.fixture()
def make_staff(roles):
    from cheesehouse.models import StaffUser

    def _make(email, role='employee', password='secret123', active=True, name=None):
        user = StaffUser(name=name or email.split('@')[0].title(), email=email, role=roles[role], active=active)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture()
def admin_user(make_staff):
    return make_staff('admin@cheesehouse.test', role='admin')


@pytest.fixture()
def employee_user(make_staff):
    return make_staff('cashier@cheesehouse.test')


def _bearer(user):
    from cheesehouse.services.auth import issue_token
    return {'Authorization': f'Bearer {issue_token(user)}'}


@pytest.fixture()
def admin_headers(admin_user):
    return _bearer(admin_user)


@pytest.fixture()
def employee_headers(employee_user):
    return _bearer(employee_user)


@pytest.fixture()
def play(client):
    """Submit a game result through the public endpoint."""
    def _play(phone='+5491123456789', target=10.0, achieved=10.05, first_name='Ana', last_name='Gomez'):
        return client.post('/api/game/submit', json={
            'customer': {'first_name': first_name, 'last_name': last_name, 'phone': phone},
            'result': {'target_time': target, 'achieved_time': achieved},
        })
    return _play
