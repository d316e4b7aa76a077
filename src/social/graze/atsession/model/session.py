"""Session models.

A ``Session`` is immutable: a refresh builds a new one and the store swaps it in
whole, so nobody ever observes a half-updated credential pair.
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict


class Session(BaseModel):
    """The authoritative credential pair for one actor on one PDS."""

    model_config = ConfigDict(frozen=True)

    did: str
    handle: str
    service: str

    access_jwt: str
    access_issued_at: datetime
    access_expires_at: datetime

    refresh_jwt: str
    refresh_expires_at: datetime

    active: bool = True

    def refresh_at(self, ratio: float) -> datetime:
        """When the access credential should be renewed.

        ``ratio`` is the fraction of the access credential's lifetime that may
        elapse before renewal, e.g. 0.8 renews once 80% of the lifetime is used.
        """
        lifetime = self.access_expires_at - self.access_issued_at
        return self.access_issued_at + lifetime * ratio

    def access_expired(self, now: datetime) -> bool:
        return now >= self.access_expires_at

    def refresh_expired(self, now: datetime) -> bool:
        return now >= self.refresh_expires_at


class Credential(BaseModel):
    """What a record operation needs to issue its own request."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    service: str


class SessionCreated(BaseModel):
    """Emitted after a successful login."""

    model_config = ConfigDict(frozen=True)

    did: str
    handle: str
    service: str
    access_jwt: str
    refresh_jwt: str


class SessionRefreshed(BaseModel):
    """Emitted after a successful refresh."""

    model_config = ConfigDict(frozen=True)

    did: str
    service: str
    access_jwt: str
    refresh_jwt: str


SessionEvent = Union[SessionCreated, SessionRefreshed]
