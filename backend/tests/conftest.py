import os, sys, pytest
# Ensure the backend directory is on path so 'factory_admin' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from factory_admin import create_app, get_db
from factory_admin.models.authz import Base
# Import all model modules to ensure tables are registered before create_all
import factory_admin.models.audit  # noqa: F401

TEST_CONFIG = {
    'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
    'JWT_SECRET_KEY': 'test-secret-key-that-is-long-enough-for-hs256',
    'TESTING': True,
}


@pytest.fixture()
def app_instance():
    # fresh in-memory database per test
    app = create_app(dict(TEST_CONFIG))
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app
    get_db().close()


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture()
def seeded(app_instance):
    """Default catalog + presets, one user per preset role (password 'secret123')."""
    from tests.test_utils_seed import seed_catalog, ensure_user
    with app_instance.app_context():
        roles = seed_catalog()
        users = {
            'super-admin': ensure_user('root@factory.test', roles['super-admin']),
            'admin': ensure_user('admin@factory.test', roles['admin']),
            'manager': ensure_user('manager@factory.test', roles['manager']),
            'employee': ensure_user('employee@factory.test', roles['employee']),
        }
    return {'roles': roles, 'users': users}
