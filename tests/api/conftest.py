import pytest
from fastapi.testclient import TestClient

from livetrip.api.app import create_app
from livetrip.settings import Settings
from tests.fakes import DRIVER_TOKEN, RIDER_TOKEN, STRANGER_TOKEN, StaticIdentityLookup


@pytest.fixture
def identity_lookup(driver, rider, stranger) -> StaticIdentityLookup:
    return StaticIdentityLookup(
        {DRIVER_TOKEN: driver, RIDER_TOKEN: rider, STRANGER_TOKEN: stranger}
    )


@pytest.fixture
def app(service, identity_lookup):
    return create_app(service, identity_lookup, settings=Settings())


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client
