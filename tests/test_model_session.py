"""
Unit tests for the session models.
"""

from datetime import timedelta

from social.graze.atsession.model.session import Session

from tests.fakes import ALICE_DID, ALICE_HANDLE, ALICE_PDS, T0


def create_session(lifetime: timedelta = timedelta(hours=2)) -> Session:
    return Session(
        did=ALICE_DID,
        handle=ALICE_HANDLE,
        service=ALICE_PDS,
        access_jwt="a",
        access_issued_at=T0,
        access_expires_at=T0 + lifetime,
        refresh_jwt="r",
        refresh_expires_at=T0 + timedelta(days=90),
    )


class TestSession:
    """Test suite for Session timing helpers."""

    def test_refresh_at_ratio(self):
        session = create_session()
        assert session.refresh_at(0.8) == T0 + timedelta(minutes=96)
        assert session.refresh_at(0.5) == T0 + timedelta(hours=1)

    def test_refresh_at_short_lifetime(self):
        session = create_session(timedelta(seconds=720))
        assert session.refresh_at(0.8) == T0 + timedelta(seconds=576)

    def test_access_expired(self):
        session = create_session()
        assert not session.access_expired(T0 + timedelta(minutes=119))
        assert session.access_expired(T0 + timedelta(hours=2))

    def test_refresh_expired(self):
        session = create_session()
        assert not session.refresh_expired(T0 + timedelta(days=89))
        assert session.refresh_expired(T0 + timedelta(days=90, seconds=1))

    def test_active_defaults_true(self):
        assert create_session().active is True
