"""AT Protocol handle and DID resolution.

Resolves AT Protocol handles to DIDs using HTTPS well-known endpoints and DNS TXT
records, DIDs to their identity documents, and identity documents to the Personal
Data Server endpoint that receives an actor's writes.

Every public coroutine returns an ``HttpResult``. The resolver never retries on its
own: retrying after backoff is the caller's decision.
"""

import asyncio
import logging
from typing import Any, Optional

from aiodns import DNSResolver
from pydantic import HttpUrl, TypeAdapter, ValidationError
import sentry_sdk

from social.graze.atsession.atproto.errors import ErrorCode, IdentifierKind
from social.graze.atsession.atproto.identifiers import (
    Did,
    ParsedIdentifier,
    validate,
)
from social.graze.atsession.atproto.result import HttpResult, failure, success
from social.graze.atsession.atproto.xrpc import DocumentFetcher
from social.graze.atsession.model.identity import DidDocument, ResolvedSubject

logger = logging.getLogger(__name__)

_http_url = TypeAdapter(HttpUrl)


def parse_input(subject: str) -> Optional[ParsedIdentifier]:
    """Parse and classify AT Protocol subject input.

    Normalizes input by removing prefixes and classifies as DID or handle.

    Args:
        subject: Raw subject string (handle, DID, or prefixed)

    Returns:
        ParsedIdentifier with kind and normalized value, None if it is neither
    """
    subject = subject.strip()
    subject = subject.removeprefix("at://")
    subject = subject.removeprefix("@")

    kind = IdentifierKind.did if subject.startswith("did:") else IdentifierKind.handle
    return validate(kind, subject).parsed


def did_web_document_url(did: str) -> str:
    """Build the did.json location for a did:web DID.

    A bare host serves its document from ``/.well-known/did.json``; a DID with path
    segments serves it from ``/<path>/did.json``.
    """
    parts = did.removeprefix("did:web:").split(":")
    parts[0] = parts[0].replace("%3A", ":").replace("%3a", ":")

    if len(parts) == 1:
        parts.append(".well-known")

    return "https://{inner}/did.json".format(inner="/".join(parts))


class IdentityResolver:
    """Turns handles into DIDs, DIDs into documents, and documents into a PDS URL.

    Args:
        fetcher: Network layer used for every HTTP lookup
        plc_hostname: PLC directory hostname for did:plc resolution
        timeout: Upper bound in seconds for each individual lookup
    """

    def __init__(
        self,
        fetcher: DocumentFetcher,
        plc_hostname: str = "plc.directory",
        timeout: float = 10.0,
    ) -> None:
        self._fetcher = fetcher
        self._plc_hostname = plc_hostname
        self._timeout = timeout

    async def resolve_handle_dns(self, handle: str) -> Optional[str]:
        """Resolve AT Protocol handle to DID using DNS TXT record.

        Queries _atproto.{handle} TXT record and extracts DID from did= prefix.

        Returns:
            DID string if found, None if resolution fails
        """
        resolver = DNSResolver(timeout=self._timeout)
        try:
            results = await asyncio.wait_for(
                resolver.query(f"_atproto.{handle}", "TXT"), self._timeout
            )
        except asyncio.TimeoutError:
            logger.debug("DNS lookup for %s timed out", handle)
            return None
        except Exception as e:
            sentry_sdk.capture_exception(e)
            return None
        for result in results or []:
            text = result.text
            if isinstance(text, bytes):
                text = text.decode("utf-8", errors="replace")
            if text.startswith("did="):
                return text.removeprefix("did=").strip()
        return None

    async def resolve_handle_http(self, handle: str) -> Optional[str]:
        """Resolve AT Protocol handle to DID using HTTPS well-known endpoint.

        Fetches DID from https://{handle}/.well-known/atproto-did endpoint.

        Returns:
            DID string if found, None if resolution fails
        """
        result = await self._fetcher.get_text(
            f"https://{handle}/.well-known/atproto-did", timeout=self._timeout
        )
        if not result.succeeded:
            return None
        return result.result.strip()

    async def resolve_handle(self, handle: str) -> HttpResult[str]:
        """Resolve a handle to a DID.

        The HTTPS and DNS lookups run concurrently, each bounded by the resolver
        timeout. A well-formed DID from HTTPS wins, DNS is the fallback. Two
        well-formed but different answers are treated as a failure.
        """
        validation = validate(IdentifierKind.handle, handle)
        if validation.parsed is None:
            return failure(None, ErrorCode.INVALID_IDENTIFIER, str(validation.error))
        handle = validation.parsed.value

        async with asyncio.TaskGroup() as tg:
            http_task = tg.create_task(self.resolve_handle_http(handle))
            dns_task = tg.create_task(self.resolve_handle_dns(handle))

        http_did = Did.try_parse(http_task.result() or "")
        dns_did = Did.try_parse(dns_task.result() or "")

        if http_did is not None and dns_did is not None and http_did != dns_did:
            logger.warning(
                "handle %s resolved to %s over HTTPS but %s over DNS",
                handle,
                http_did,
                dns_did,
            )
            return failure(
                None,
                ErrorCode.HANDLE_RESOLUTION_FAILED,
                f"{handle} resolves to conflicting DIDs",
            )

        did = http_did or dns_did
        if did is None:
            return failure(
                None,
                ErrorCode.HANDLE_RESOLUTION_FAILED,
                f"{handle} could not be resolved to a DID",
            )
        return success(str(did))

    async def resolve_did(self, did: str) -> HttpResult[DidDocument]:
        """Fetch and parse the identity document for a did:plc or did:web DID."""
        parsed = Did.try_parse(did)
        if parsed is None:
            return failure(None, ErrorCode.INVALID_IDENTIFIER, f"{did} is not a valid DID")

        if parsed.method == "plc":
            url = f"https://{self._plc_hostname}/{did}"
        elif parsed.method == "web":
            url = did_web_document_url(did)
        else:
            return failure(
                None,
                ErrorCode.DID_RESOLUTION_FAILED,
                f"unsupported DID method: {parsed.method}",
            )

        result = await self._fetcher.get_json(url, timeout=self._timeout)
        if not result.succeeded:
            logger.debug("fetching %s failed: %s", url, result.error_detail)
            return failure(
                result.status,
                ErrorCode.DID_RESOLUTION_FAILED,
                f"could not fetch the document for {did}",
            )

        return self._parse_document(did, result.result, result.status)

    def _parse_document(
        self, did: str, body: Any, status: Optional[int]
    ) -> HttpResult[DidDocument]:
        try:
            document = DidDocument.model_validate(body)
        except ValidationError as e:
            return failure(status, ErrorCode.DID_DOCUMENT_INVALID, str(e))

        if document.id != did:
            return failure(
                status,
                ErrorCode.DID_DOCUMENT_INVALID,
                f"document id {document.id} does not match {did}",
            )
        return success(document)

    def resolve_service_endpoint(self, document: DidDocument) -> HttpResult[str]:
        """Find the Personal Data Server endpoint declared by a document."""
        for service in document.service:
            if not service.is_personal_data_server():
                continue
            try:
                _http_url.validate_python(service.service_endpoint)
            except ValidationError:
                logger.debug("ignoring malformed endpoint %s", service.service_endpoint)
                continue
            return success(service.service_endpoint.rstrip("/"))

        return failure(
            None,
            ErrorCode.NO_SERVICE_ENDPOINT,
            f"{document.id} declares no personal data server",
        )

    async def resolve_subject(self, subject: str) -> HttpResult[ResolvedSubject]:
        """Resolve AT Protocol subject (handle or DID) to complete information.

        Parses input, resolves handle to DID if needed, then resolves the DID
        document and its PDS endpoint.
        """
        parsed_subject = parse_input(subject)
        if parsed_subject is None:
            return failure(
                None, ErrorCode.INVALID_IDENTIFIER, f"{subject} is not a handle or DID"
            )

        did = parsed_subject.value
        if parsed_subject.kind == IdentifierKind.handle:
            did_result = await self.resolve_handle(parsed_subject.value)
            if not did_result.succeeded:
                return did_result.cast()
            did = did_result.result

        document_result = await self.resolve_did(did)
        if not document_result.succeeded:
            return document_result.cast()
        document = document_result.result

        endpoint_result = self.resolve_service_endpoint(document)
        if not endpoint_result.succeeded:
            return endpoint_result.cast()

        handle = document.handle
        if handle is None and parsed_subject.kind == IdentifierKind.handle:
            handle = parsed_subject.value

        return success(
            ResolvedSubject(did=did, handle=handle, pds=endpoint_result.result)
        )
