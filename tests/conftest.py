import pytest
from datetime import datetime, timedelta
from app import create_app
from models import db

SECRET = 'test-secret'


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{tmp_path / "malt.db"}',
        'MALT_SECRET': SECRET,
    })
    yield app
    with app.app_context():
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth():
    return {'X-MALT-KEY': SECRET}


@pytest.fixture
def clock(monkeypatch):
    '''Make each publish stamp a distinct, increasing time, one minute apart.'''
    import app as malt_app

    times = (datetime(2024, 1, 1, 12, 0) + timedelta(minutes=n) for n in range(1000))
    monkeypatch.setattr(malt_app, 'utcnow', lambda: next(times))
