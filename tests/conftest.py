"""
Shared test configuration and fixtures.
"""

import pytest

from social.graze.atsession.app.config import Settings
from social.graze.atsession.atproto.result import success
from social.graze.atsession.model.identity import ResolvedSubject

from tests.fakes import (
    ALICE_DID,
    ALICE_HANDLE,
    ALICE_PDS,
    FakeClock,
    FakeTransport,
    StaticResolver,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(background_refresh=False)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def alice_resolver() -> StaticResolver:
    return StaticResolver(
        success(ResolvedSubject(did=ALICE_DID, handle=ALICE_HANDLE, pds=ALICE_PDS))
    )
