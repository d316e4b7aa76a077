"""
Session lifecycle for an AT Protocol actor.

``SessionManager`` logs an actor in against its PDS, hands out a currently-valid
access credential to whoever needs to make a call, and keeps that credential fresh:

* Login resolves the actor's handle to a DID, the DID to its identity document, and
  the document to the PDS endpoint, then calls ``com.atproto.server.createSession``.
  Resolution happens only here. A refresh reuses the endpoint found at login.
* At most one refresh is in flight per manager. Callers that ask for a credential
  while a refresh is running wait for that refresh instead of starting their own,
  because the server invalidates a refresh token as soon as it is used.
* A background task renews the access credential once a configurable fraction of
  its lifetime has elapsed, so foreground callers rarely see a stale token.
* A rejected refresh token expires the session. Any other refresh failure keeps
  the existing session, on the assumption that it is still valid.

All of the manager's state lives on one asyncio event loop.
"""

import asyncio
from datetime import datetime, timezone
from enum import IntEnum
from http import HTTPStatus
import inspect
import logging
from types import TracebackType
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from pydantic import ValidationError
import sentry_sdk

from social.graze.atsession.app.config import Settings
from social.graze.atsession.atproto.errors import (
    SESSION_EXPIRED_ERROR_CODES,
    ErrorCode,
)
from social.graze.atsession.atproto.identifiers import Nsid
from social.graze.atsession.atproto.jwt import token_lifetime
from social.graze.atsession.atproto.result import (
    HttpResult,
    failure,
    no_content,
    success,
)
from social.graze.atsession.atproto.store import SessionStore
from social.graze.atsession.atproto.xrpc import XrpcTransport
from social.graze.atsession.model.identity import DidDocument
from social.graze.atsession.model.session import (
    Credential,
    Session,
    SessionCreated,
    SessionEvent,
    SessionRefreshed,
)
from social.graze.atsession.resolve.handle import IdentityResolver

logger = logging.getLogger(__name__)

CREATE_SESSION = Nsid("com.atproto.server.createSession")
REFRESH_SESSION = Nsid("com.atproto.server.refreshSession")
DELETE_SESSION = Nsid("com.atproto.server.deleteSession")

SessionListener = Callable[[SessionEvent], Optional[Awaitable[None]]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def xrpc_url(service: str, method: Nsid) -> str:
    return f"{service.rstrip('/')}/xrpc/{method}"


class SessionState(IntEnum):
    unauthenticated = 1
    authenticating = 2
    authenticated = 3
    refreshing = 4
    expired = 5


class SessionManager:
    """
    Owns one actor's session: the credential pair, its renewal, and its lifecycle
    notifications.

    Args:
        transport: Network layer used for the XRPC session procedures
        resolver: Identity resolver used during login
        settings: Renewal policy and token lifetime fallbacks
        store: Where the session lives, a fresh ``SessionStore`` if omitted
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        transport: XrpcTransport,
        resolver: IdentityResolver,
        settings: Optional[Settings] = None,
        store: Optional[SessionStore] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._transport = transport
        self._resolver = resolver
        self._settings = settings if settings is not None else Settings()
        self._store = store if store is not None else SessionStore()
        self._clock = clock

        self._state = SessionState.unauthenticated
        self._listeners: List[SessionListener] = []
        self._stale_access_token: Optional[str] = None

        self._refresh_task: Optional[asyncio.Task[HttpResult[Session]]] = None
        self._renewal_task: Optional[asyncio.Task[None]] = None
        self._event_tasks: Set[asyncio.Task[None]] = set()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session(self) -> Optional[Session]:
        return self._store.get()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """
        Register a listener for ``SessionCreated`` and ``SessionRefreshed`` events.

        Listeners may be plain functions or coroutines. An exception raised by a
        listener is logged and reported, never propagated to the operation that
        emitted the event.

        ``SessionRefreshed`` is delivered after the refresh has completed, from a
        task of its own.

        Returns:
            A function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _emit(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            try:
                outcome = listener(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                sentry_sdk.capture_exception(e)
                logger.exception("session listener failed on %s", type(event).__name__)

    async def login(
        self,
        identifier: str,
        password: str,
        auth_factor_token: Optional[str] = None,
    ) -> HttpResult[Session]:
        """
        Create a new session for a handle or DID.

        Any existing session is discarded first. If the server requires a second
        factor, the result fails with ``AuthFactorTokenRequired``; call again with
        ``auth_factor_token`` set to the code the user received.

        Raises:
            ValueError: If identifier or password is empty
            RuntimeError: If another login on this manager is in progress
        """
        if not identifier or not password:
            raise ValueError("identifier and password are required")
        if self._state == SessionState.authenticating:
            raise RuntimeError("a login is already in progress")

        self._state = SessionState.authenticating
        try:
            # Clear first so nobody starts a refresh while the old tasks wind down.
            self._store.clear()
            self._stale_access_token = None
            await self._teardown()

            result = await self._create_session(identifier, password, auth_factor_token)
            if not result.succeeded:
                logger.info(
                    "login for %s failed: %s %s", identifier, result.status, result.error
                )
                return result

            session = result.result
            self._store.replace(session)
            self._state = SessionState.authenticated
            self._start_renewal()

            logger.info("session created for %s on %s", session.did, session.service)
            await self._emit(
                SessionCreated(
                    did=session.did,
                    handle=session.handle,
                    service=session.service,
                    access_jwt=session.access_jwt,
                    refresh_jwt=session.refresh_jwt,
                )
            )
            return result
        finally:
            if self._state == SessionState.authenticating:
                self._state = SessionState.unauthenticated

    async def _create_session(
        self,
        identifier: str,
        password: str,
        auth_factor_token: Optional[str],
    ) -> HttpResult[Session]:
        resolved_result = await self._resolver.resolve_subject(identifier)
        if not resolved_result.succeeded:
            return resolved_result.cast()
        resolved = resolved_result.result

        payload: Dict[str, Any] = {"identifier": resolved.did, "password": password}
        if auth_factor_token is not None:
            payload["authFactorToken"] = auth_factor_token

        result = await self._transport.procedure(
            xrpc_url(resolved.pds, CREATE_SESSION),
            json=payload,
            timeout=self._settings.request_timeout,
        )
        if not result.succeeded:
            return result.cast()

        body = result.result
        if not isinstance(body, dict) or body.get("did", None) != resolved.did:
            # It'd be pretty wild if this didn't match, but it would also lead to
            # writes landing in somebody else's repository.
            return failure(
                result.status,
                ErrorCode.INVALID_RESPONSE,
                f"createSession did not return a session for {resolved.did}",
            )

        # The PDS is the authority on where the account lives right now.
        service = self._service_from_did_doc(body.get("didDoc", None), resolved.did)

        return self._build_session(
            body,
            did=resolved.did,
            handle=body.get("handle", None) or resolved.handle or resolved.did,
            service=service or resolved.pds,
            status=result.status,
        )

    def _service_from_did_doc(self, did_doc: Any, did: str) -> Optional[str]:
        if did_doc is None:
            return None
        try:
            document = DidDocument.model_validate(did_doc)
        except ValidationError:
            logger.debug("ignoring malformed didDoc returned for %s", did)
            return None
        if document.id != did:
            return None
        endpoint = self._resolver.resolve_service_endpoint(document)
        return endpoint.result if endpoint.succeeded else None

    def _build_session(
        self,
        body: Dict[str, Any],
        did: str,
        handle: str,
        service: str,
        status: Optional[int],
    ) -> HttpResult[Session]:
        access_jwt = body.get("accessJwt", None)
        refresh_jwt = body.get("refreshJwt", None)
        if not access_jwt or not refresh_jwt:
            return failure(
                status, ErrorCode.INVALID_RESPONSE, "response is missing session tokens"
            )

        now = self._clock()
        access_issued_at, access_expires_at = token_lifetime(
            access_jwt, now, self._settings.access_token_expiry
        )
        _, refresh_expires_at = token_lifetime(
            refresh_jwt, now, self._settings.refresh_token_expiry
        )

        active = body.get("active", True)
        if active is False:
            logger.warning("account %s is not active", did)

        try:
            session = Session(
                did=did,
                handle=handle,
                service=service,
                access_jwt=access_jwt,
                access_issued_at=access_issued_at,
                access_expires_at=access_expires_at,
                refresh_jwt=refresh_jwt,
                refresh_expires_at=refresh_expires_at,
                active=active is not False,
            )
        except ValidationError as e:
            return failure(status, ErrorCode.INVALID_RESPONSE, str(e))
        return success(session, status or HTTPStatus.OK)

    async def get_valid_credential(self) -> HttpResult[Credential]:
        """
        Return an access token and the endpoint to send it to.

        If the access token is within the renewal threshold, or a caller reported
        that the server rejected it, the session is refreshed first. When that
        refresh fails for a transient reason the current token is returned anyway.
        """
        session = self._store.get()
        if session is None:
            return self._missing_session()

        if self._needs_refresh(session):
            refreshed = await self.refresh()
            if refreshed.succeeded:
                session = refreshed.result
            else:
                session = self._store.get()
                if session is None:
                    return self._missing_session()
                logger.warning(
                    "refresh failed (%s %s), using the current access token",
                    refreshed.status,
                    refreshed.error,
                )

        return success(
            Credential(access_token=session.access_jwt, service=session.service)
        )

    def report_call_result(self, access_token: str, was_unauthorized: bool) -> None:
        """
        Tell the manager how a call made with ``access_token`` went.

        If the server rejected a token the manager still considers current, the next
        ``get_valid_credential()`` refreshes before handing out a credential.
        """
        if not was_unauthorized:
            return
        session = self._store.get()
        if session is None or session.access_jwt != access_token:
            return
        logger.info("access token for %s was rejected, forcing a refresh", session.did)
        self._stale_access_token = access_token

    def _needs_refresh(self, session: Session) -> bool:
        if session.access_jwt == self._stale_access_token:
            return True
        return self._clock() >= session.refresh_at(
            self._settings.token_refresh_before_expiry_ratio
        )

    def _missing_session(self) -> HttpResult:
        if self._state == SessionState.expired:
            return failure(
                HTTPStatus.UNAUTHORIZED,
                ErrorCode.SESSION_EXPIRED,
                "the session has expired, log in again",
            )
        return failure(
            HTTPStatus.UNAUTHORIZED,
            ErrorCode.AUTHENTICATION_REQUIRED,
            "there is no session, log in first",
        )

    async def refresh(self) -> HttpResult[Session]:
        """
        Renew the credential pair, or join the renewal already in flight.

        Cancelling the caller only stops the caller from waiting. The shared
        refresh keeps running for everybody else.
        """
        task = self._refresh_task
        if task is None or task.done():
            session = self._store.get()
            if session is None:
                return self._missing_session()
            task = asyncio.create_task(self._refresh(session))
            task.add_done_callback(self._refresh_done)
            self._refresh_task = task

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and (current is None or current.cancelling() == 0):
                return failure(
                    None, ErrorCode.REFRESH_CANCELLED, "the refresh was cancelled"
                )
            raise

    def _refresh_done(self, task: "asyncio.Task[HttpResult[Session]]") -> None:
        # Listeners run after the shared refresh has finished, so one that calls
        # refresh() starts a new refresh instead of waiting on this one.
        if task.cancelled() or task.exception() is not None:
            return
        result = task.result()
        if not result.succeeded:
            return
        session = result.result
        event = SessionRefreshed(
            did=session.did,
            service=session.service,
            access_jwt=session.access_jwt,
            refresh_jwt=session.refresh_jwt,
        )
        notify = asyncio.get_running_loop().create_task(self._emit(event))
        self._event_tasks.add(notify)
        notify.add_done_callback(self._event_tasks.discard)

    async def _refresh(self, session: Session) -> HttpResult[Session]:
        self._state = SessionState.refreshing
        try:
            if session.refresh_expired(self._clock()):
                return self._expire(
                    session,
                    failure(
                        HTTPStatus.UNAUTHORIZED,
                        ErrorCode.EXPIRED_TOKEN,
                        "the refresh token has expired",
                    ),
                )

            result = await self._transport.procedure(
                xrpc_url(session.service, REFRESH_SESSION),
                headers={"Authorization": f"Bearer {session.refresh_jwt}"},
                timeout=self._settings.request_timeout,
            )

            if result.succeeded:
                body = result.result
                if isinstance(body, dict) and body.get("did", None) != session.did:
                    return self._expire(
                        session,
                        failure(
                            result.status,
                            ErrorCode.INVALID_TOKEN,
                            "refreshSession returned a different account",
                        ),
                    )
                return self._refreshed(session, result)

            if self._is_rejection(result):
                return self._expire(session, result)

            logger.warning(
                "refreshing the session for %s failed: %s %s",
                session.did,
                result.status,
                result.error,
            )
            return result.cast()
        finally:
            if self._state == SessionState.refreshing:
                self._state = SessionState.authenticated

    def _is_rejection(self, result: HttpResult) -> bool:
        if result.is_transient:
            return False
        return result.error in SESSION_EXPIRED_ERROR_CODES or result.status in (
            HTTPStatus.BAD_REQUEST,
            HTTPStatus.UNAUTHORIZED,
        )

    def _refreshed(
        self, previous: Session, result: HttpResult[Any]
    ) -> HttpResult[Session]:
        body = result.result
        if not isinstance(body, dict):
            return failure(
                result.status, ErrorCode.INVALID_RESPONSE, "unexpected refresh response"
            )

        built = self._build_session(
            body,
            did=previous.did,
            handle=body.get("handle", None) or previous.handle,
            service=previous.service,
            status=result.status,
        )
        if not built.succeeded:
            return built

        session = built.result
        self._store.replace(session)
        self._stale_access_token = None
        self._state = SessionState.authenticated

        logger.info("session refreshed for %s", session.did)
        return built

    def _expire(self, session: Session, result: HttpResult) -> HttpResult[Session]:
        logger.warning(
            "refresh token for %s was rejected (%s), the session has expired",
            session.did,
            result.error,
        )
        self._store.clear()
        self._stale_access_token = None
        self._state = SessionState.expired

        message = None
        if result.error_detail is not None:
            message = result.error_detail.message or result.error_detail.error
        return failure(
            result.status or HTTPStatus.UNAUTHORIZED,
            ErrorCode.SESSION_EXPIRED,
            message or "the refresh token was rejected",
        )

    async def logout(self) -> HttpResult[None]:
        """
        Discard the session.

        The local session is cleared unconditionally. The server is then asked to
        revoke the refresh token; the result of that request is returned, but a
        failure there does not bring the session back.
        """
        session = self._store.get()

        self._store.clear()
        self._stale_access_token = None
        self._state = SessionState.unauthenticated
        await self._teardown()
        self._state = SessionState.unauthenticated

        if session is None:
            return no_content()

        result = await self._transport.procedure(
            xrpc_url(session.service, DELETE_SESSION),
            headers={"Authorization": f"Bearer {session.refresh_jwt}"},
            timeout=self._settings.request_timeout,
        )
        if result.failed:
            logger.warning(
                "server did not revoke the session for %s: %s %s",
                session.did,
                result.status,
                result.error,
            )
            return result.cast()
        return no_content(result.status)

    def _start_renewal(self) -> None:
        if not self._settings.background_refresh:
            return
        if self._renewal_task is not None and not self._renewal_task.done():
            return
        self._renewal_task = asyncio.create_task(self._renewal_loop())

    async def _renewal_loop(self) -> None:
        """
        Refresh the session shortly before the access credential expires.

        Transient failures are retried with exponential backoff. The loop ends when
        the session is gone or has expired.
        """
        logger.info("Starting session renewal task")

        ratio = self._settings.token_refresh_before_expiry_ratio
        base_delay = self._settings.refresh_retry_base_delay
        attempt = 0
        just_refreshed = False

        while True:
            session = self._store.get()
            if session is None or self._state == SessionState.expired:
                logger.info("Stopping session renewal task")
                return

            try:
                if attempt > 0:
                    retry_exponent = min(attempt - 1, self._settings.refresh_max_retries)
                    delay = base_delay * (2**retry_exponent)
                else:
                    delay = (session.refresh_at(ratio) - self._clock()).total_seconds()
                    if just_refreshed:
                        # Tokens already due on arrival still wait the base delay.
                        delay = max(delay, base_delay)
                just_refreshed = False

                if delay > 0:
                    await asyncio.sleep(delay)

                session = self._store.get()
                if session is None or not self._needs_refresh(session):
                    attempt = 0
                    continue

                result = await self.refresh()
                if result.succeeded:
                    attempt = 0
                    just_refreshed = True
                else:
                    attempt += 1
                    logger.info(
                        "background refresh attempt %d failed: %s", attempt, result.error
                    )
            except Exception as e:
                sentry_sdk.capture_exception(e)
                logger.exception("Error renewing session")
                attempt += 1

    async def _teardown(self) -> None:
        current = asyncio.current_task()
        tasks = [
            task
            for task in (self._refresh_task, self._renewal_task, *self._event_tasks)
            if task is not None and not task.done() and task is not current
        ]
        self._refresh_task = None
        self._renewal_task = None

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        """Stop background work. The session itself is left in place."""
        await self._teardown()

    async def __aenter__(self) -> "SessionManager":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
