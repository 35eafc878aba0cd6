"""
Pytest configuration and fixtures for all tests.
"""

import os
import sys
import pytest

# Add src to Python path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

# Set up test environment variables before importing any modules
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-west-2')
os.environ.setdefault('AWS_REGION', 'us-west-2')
os.environ.setdefault('BEDROCK_MODEL_ID', 'amazon.nova-lite-v1:0')
os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('ENVIRONMENT', 'test')
os.environ.setdefault('SEED_ON_STARTUP', 'false')
os.environ.setdefault('MAIL_IMAP_ENABLED', 'false')
os.environ.setdefault('MAIL_USER', 'procurement@example.com')
os.environ.setdefault('MAIL_FROM_ADDRESS', 'procurement@example.com')
os.environ.setdefault('LOG_LEVEL', 'INFO')


@pytest.fixture
def db_session():
    """Fresh in-memory database per test."""
    from persistence import database
    from services import prompts

    database.configure_engine('sqlite://')
    database.init_db()
    prompts.clear_cache()

    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()
        database.drop_db()
        prompts.clear_cache()


@pytest.fixture
def make_vendor(db_session):
    """Factory for persisted vendors."""
    from persistence.models import Vendor

    def _make(name='Acme Supplies', email='sales@acme.com', **kwargs):
        vendor = Vendor(name=name, email=email, **kwargs)
        db_session.add(vendor)
        db_session.commit()
        return vendor

    return _make


@pytest.fixture
def make_rfp(db_session):
    """Factory for persisted RFPs."""
    from persistence.models import RFP

    def _make(title='Office Laptops', description='20 laptops for the sales team', **kwargs):
        kwargs.setdefault('budget', 50000.0)
        kwargs.setdefault('requirements', {'items': ['laptop']})
        rfp = RFP(title=title, description=description, **kwargs)
        db_session.add(rfp)
        db_session.commit()
        return rfp

    return _make
