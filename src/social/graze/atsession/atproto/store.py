import logging
import threading
from typing import Optional

from social.graze.atsession.model.session import Session

logger = logging.getLogger(__name__)


class SessionStore:
    """
    Holds the one authoritative Session behind a single lock.

    Sessions are immutable, so swapping the reference under the lock is enough for
    every reader to observe either the old Session or the new one in full.
    """

    def __init__(self, session: Optional[Session] = None) -> None:
        self._lock = threading.Lock()
        self._session = session

    def get(self) -> Optional[Session]:
        with self._lock:
            return self._session

    def replace(self, session: Session) -> None:
        if session is None:
            raise ValueError("use clear() to remove the session")
        with self._lock:
            self._session = session
        logger.debug("session replaced for %s", session.did)

    def clear(self) -> None:
        with self._lock:
            self._session = None
