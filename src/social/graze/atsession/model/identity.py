"""Identity document models.

Pydantic models for the DID documents served by the PLC directory and by did:web
hosts, and for the fully resolved subject the resolver hands back.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

PDS_SERVICE_ID_SUFFIX = "#atproto_pds"
PDS_SERVICE_TYPE = "AtprotoPersonalDataServer"


class Service(BaseModel):
    """A service entry declared by a DID document."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    type: Any = None
    service_endpoint: Any = Field(default=None, alias="serviceEndpoint")

    def is_personal_data_server(self) -> bool:
        return (
            self.id.endswith(PDS_SERVICE_ID_SUFFIX) or self.type == PDS_SERVICE_TYPE
        ) and isinstance(self.service_endpoint, str)


class DidDocument(BaseModel):
    """A DID document. Fetched, used and discarded; never persisted."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    also_known_as: List[str] = Field(default_factory=list, alias="alsoKnownAs")
    verification_method: List[Any] = Field(
        default_factory=list, alias="verificationMethod"
    )
    service: List[Service] = Field(default_factory=list)

    @property
    def handle(self) -> Optional[str]:
        """The first ``at://`` alias, without its prefix."""
        for alias in self.also_known_as:
            if alias.startswith("at://"):
                return alias.removeprefix("at://")
        return None


class ResolvedSubject(BaseModel):
    """Resolved AT Protocol subject with all identifiers.

    Contains DID, handle, and PDS endpoint for a fully resolved subject.
    """

    did: str
    handle: Optional[str] = None
    pds: str
