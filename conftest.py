"""
Root conftest for the Contact Sync test suite.

Handles:
- Django settings (config.test_settings: in-memory SQLite unless DATABASE_URL is set)
- Offline fakes (contacts.tests.fakes) for every external lookup
- Shared fixtures: an in-memory store, a fake-wired validator registry,
  sample contacts
"""

import os
import uuid

import pytest

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.test_settings')


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def user_id():
    return str(uuid.uuid4())


@pytest.fixture
def store():
    from contacts.sync.store import InMemorySyncStore

    return InMemorySyncStore()


@pytest.fixture
def mx_lookup():
    from contacts.tests.fakes import FakeMxLookup

    return FakeMxLookup(answers={'gmail.com': True, 'acmecorp.com': True})


@pytest.fixture
def geocoder():
    from contacts.tests.fakes import FakeGeocoder

    return FakeGeocoder()


@pytest.fixture
def registry(mx_lookup, geocoder):
    """The six standard validators, wired to offline fakes."""
    from contacts.confidence.registry import default_registry

    return default_registry(mx_lookup=mx_lookup, geocoder=geocoder)


@pytest.fixture
def aggregator(store, registry):
    from contacts.confidence.compute import ConfidenceAggregator

    return ConfidenceAggregator(store, registry)


@pytest.fixture
def sample_contact_data():
    """A clean, complete contact."""
    return {
        'name': 'Jane Smith',
        'email': 'jane.smith@acmecorp.com',
        'phone': '+1 650 253 0000',
        'username': 'janesmith',
        'bio': (
            'Founder and CEO of Acme Corp. I love helping small teams ship '
            'better software and I write about product strategy every week.'
        ),
        'location': 'London, UK',
        'platform': 'twitter',
    }
