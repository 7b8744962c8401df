# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Data transfer objects of the OID4VP verifier.

Models accept camelCase or snake_case keys when validated (e.g. from storage or api callers)
and serialize by their snake_case field names.
"""

import time
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from common import parsing
from common.jose import VerificationMetadata

DEFAULT_EXPIRED_IN = 3600
"""Default lifetime in seconds of requests & responses"""

ClientIdScheme = Literal["redirect_uri", "x509_san_dns", "x509_san_uri", "x509_hash"]


def current_time() -> float:
    """unix epoch in seconds"""
    return time.time()


class VerifierModel(BaseModel):
    model_config = ConfigDict(alias_generator=parsing.snake_to_camel, populate_by_name=True)


class CacheModel(VerifierModel):
    """
    Wrapper for all objects which are cached with a lifetime
    """

    issued_at: float = Field(default_factory=current_time)
    """Creation time as unix epoch"""

    expired_in: int = DEFAULT_EXPIRED_IN
    """Lifetime in seconds"""

    @property
    def expires_at(self) -> float:
        return self.issued_at + self.expired_in

    def is_expired(self, now: float | None = None) -> bool:
        return self.expires_at < (now if now is not None else current_time())


class VpRequest(CacheModel):
    """Transaction as seen by the response endpoint"""

    id: str
    nonce: str | None = None
    response_type: str
    redirect_uri_returned_by_response_uri: str | None = None
    transaction_id: str | None = None
    encryption_public_jwk: dict | None = None
    encryption_private_jwk: dict | None = None
    dcql_query: dict | None = None


class VpRequestAtVerifier(CacheModel):
    """Transaction as seen by the verifier (nonce owner)"""

    id: str
    nonce: str
    session: str | None = None
    transaction_id: str | None = None
    consumed_at: float = 0
    """0 while unconsumed, consumption timestamp afterwards"""
    encryption_private_jwk: dict | None = None


class AuthResponsePayload(VerifierModel):
    """Authorization response parameters as sent by the wallet"""

    model_config = ConfigDict(extra="allow", alias_generator=parsing.snake_to_camel, populate_by_name=True)

    state: str | None = None
    vp_token: dict | list | str | None = None
    presentation_submission: Any | None = None
    id_token: str | None = None
    response: str | None = None
    """Encrypted response (direct_post.jwt)"""


class AuthResponse(CacheModel):
    id: str
    """Response code"""
    request_id: str
    payload: AuthResponsePayload


class PostStateValue(str, Enum):
    started = "started"
    consumed = "consumed"
    committed = "committed"
    expired = "expired"
    canceled = "canceled"
    invalid_submission = "invalid_submission"


TERMINAL_POST_STATES = frozenset({PostStateValue.committed, PostStateValue.expired, PostStateValue.invalid_submission})


class PostState(CacheModel):
    id: str
    """Request id"""
    value: PostStateValue
    target_id: str | None = None


class WaitCommitData(CacheModel):
    """Session data kept after a committed presentation"""

    class Data(BaseModel):
        id_token: str | None = None
        learning_credential: str | None = None
        icon: str | None = None
        claims: dict | None = None

    id: str
    """Request id"""
    data: Data


class DcqlClaimQuery(BaseModel):
    model_config = ConfigDict(extra="allow")

    path: list[str | int | None]


class DcqlCredentialQuery(BaseModel):
    """https://openid.net/specs/openid-4-verifiable-presentations-1_0.html#name-credential-query"""

    model_config = ConfigDict(extra="allow")

    id: str
    format: str
    meta: dict | None = None
    claims: list[DcqlClaimQuery] | None = None


class DcqlQuery(BaseModel):
    model_config = ConfigDict(extra="allow")

    credentials: list[DcqlCredentialQuery]


class ClientMetadata(VerifierModel):
    model_config = ConfigDict(extra="allow", alias_generator=parsing.snake_to_camel, populate_by_name=True)

    client_id: str | None = None
    vp_formats: dict | None = None
    client_name: str | None = None
    logo_uri: str | None = None
    policy_uri: str | None = None
    tos_uri: str | None = None
    jwks: dict | None = None
    encrypted_response_enc_values_supported: list[str] | None = None


class X509CertificateInfo(VerifierModel):
    x5u: str | None = None
    x5c: list[str] | None = None


class RequestObjectOptions(VerifierModel):
    """Options for building an authorization request object"""

    iss: str | None = None
    aud: str | None = None
    nonce: str | None = None
    state: str | None = None
    scope: str | None = None
    response_type: str | None = None
    response_mode: str | None = None
    redirect_uri: str | None = None
    response_uri: str | None = None
    client_metadata: ClientMetadata | None = None
    client_metadata_uri: str | None = None
    dcql_query: DcqlQuery | None = None
    x509_certificate_info: X509CertificateInfo | None = None
    client_id_scheme: ClientIdScheme | None = None


class RequestObject(VerifierModel):
    """Authorization request parameters"""

    client_id: str
    nonce: str
    state: str
    response_type: str
    response_mode: str
    scope: str | None = None
    response_uri: str | None = None
    redirect_uri: str | None = None
    client_metadata: ClientMetadata | None = None
    client_metadata_uri: str | None = None
    dcql_query: DcqlQuery | None = None
    iss: str | None = None
    aud: str | None = None

    def to_wire(self) -> dict:
        """snake_case parameters as sent to the wallet"""
        return parsing.convert_keys(self.model_dump(exclude_none=True), parsing.camel_to_snake)


class AuthorizationRequest(VerifierModel):
    """
    Result of starting a request.
    Either the parameters (redirect_uri scheme) or a signed request object (x509 schemes).
    """

    client_id: str
    params: dict | None = None
    request: str | None = None
    request_uri: str | None = None


class CredentialVerificationStatus(str, Enum):
    verified = "verified"
    invalid = "invalid"
    not_found = "not_found"


class CredentialVerification(BaseModel):
    """Outcome of a VpTokenVerificationCallback"""

    ok: bool
    decoded_payload: dict | None = None
    verification_metadata: VerificationMetadata | None = None
    error: str | None = None


class CredentialVerificationResult(BaseModel):
    status: CredentialVerificationStatus
    credential: str | None = None
    payload: dict | None = None
    error: str | None = None
    verification_metadata: VerificationMetadata | None = None


class VpTokenVerificationResult(BaseModel):
    credentials: dict[str, list[CredentialVerificationResult]] = Field(default_factory=dict)


class ReceiveAuthResponseResult(BaseModel):
    id: str
    """Response code"""
    request_id: str
    redirect_uri: str | None = None
    verification_result: VpTokenVerificationResult | None = None


class ExtractedCredential(BaseModel):
    credential: str
    icon: str | None = None
    claims: dict | None = None


class GeneratedAuthRequest(BaseModel):
    authorization_request: AuthorizationRequest
    request_id: str
    transaction_id: str | None = None


class Claimer(BaseModel):
    """Data of the holder handed out by the response code exchange"""

    id_token: str | None = None
    sub: str = ""
    learning_credential: str | None = None


class ExchangedAuthResponse(BaseModel):
    request_id: str
    claimer: Claimer
