# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Authorization Request Object (JAR, RFC 9101) as used by OpenID4VP
https://openid.net/specs/openid-4-verifiable-presentations-1_0.html#name-authorization-request
"""

import logging
import secrets

from jwcrypto import jwk

from common import jose
import verifier.models as models
from verifier.exception.request_object_errors import MissingUriError, UnsupportedClientIdSchemeError
from verifier.oid4vp.client_id import parse_client_id

_logger = logging.getLogger(__name__)

SELF_ISSUED_AUDIENCE = "https://self-issued.me/v2"
DEFAULT_RESPONSE_TYPE = "vp_token"
DEFAULT_RESPONSE_MODE = "fragment"


def _random_string() -> str:
    return secrets.token_urlsafe(32)


def generate_request_object_payload(client_id: str, options: models.RequestObjectOptions | None = None) -> models.RequestObject:
    """
    Builds the authorization request parameters.

    Exactly one of redirect_uri & response_uri must be set and the client id must carry a
    Client Identifier Prefix. nonce & state are random if not given.
    """
    options = options or models.RequestObjectOptions()
    if not options.redirect_uri and not options.response_uri:
        raise MissingUriError("Either redirect_uri or response_uri must be provided.")
    if options.redirect_uri and options.response_uri:
        raise MissingUriError("Both redirect_uri and response_uri cannot be provided simultaneously.")

    parsed = parse_client_id(client_id)
    if parsed is None:
        raise UnsupportedClientIdSchemeError(f"Client ID must include a valid prefix (redirect_uri:, x509_san_dns:, or x509_hash:). Got: {client_id}")
    if parsed.prefix == "redirect_uri" and options.x509_certificate_info:
        _logger.warning("redirect_uri prefix cannot be used with signed requests. Signature will be ignored by Wallet.")

    return models.RequestObject(
        client_id=client_id,
        nonce=options.nonce or _random_string(),
        state=options.state or _random_string(),
        response_type=options.response_type or DEFAULT_RESPONSE_TYPE,
        response_mode=options.response_mode or DEFAULT_RESPONSE_MODE,
        scope=options.scope or None,
        response_uri=options.response_uri or None,
        redirect_uri=None if options.response_uri else options.redirect_uri,
        client_metadata=options.client_metadata,
        client_metadata_uri=options.client_metadata_uri,
        dcql_query=options.dcql_query,
    )


def select_x509_certificate_info(info: models.X509CertificateInfo | None) -> dict:
    """x5u is preferred over x5c, empty values are ignored"""
    if info is None:
        return {}
    if info.x5u:
        return {"x5u": info.x5u}
    if info.x5c:
        return {"x5c": info.x5c}
    return {}


def generate_request_object_jwt(client_id: str, issuer_jwk: jwk.JWK | dict, options: models.RequestObjectOptions | None = None) -> str:
    """
    Signs the request object with the verifier key.
    The certificate (chain) of the key is referenced in the header by x5u or x5c.
    """
    options = options or models.RequestObjectOptions()
    header = {"alg": jose.get_key_algorithm(issuer_jwk), "typ": "JWT"}
    header.update(select_x509_certificate_info(options.x509_certificate_info))

    request_object = generate_request_object_payload(client_id, options)
    request_object.iss = options.iss or client_id
    request_object.aud = options.aud or SELF_ISSUED_AUDIENCE
    return jose.issue_jwt(header, request_object.to_wire(), issuer_jwk)


def generate_client_metadata(
    client_id: str,
    client_name: str | None = None,
    logo_uri: str | None = None,
    policy_uri: str | None = None,
    tos_uri: str | None = None,
) -> models.ClientMetadata:
    return models.ClientMetadata(
        client_id=client_id,
        vp_formats={"jwt_vp": {"alg": ["ES256"]}},
        client_name=client_name or None,
        logo_uri=logo_uri or None,
        policy_uri=policy_uri or None,
        tos_uri=tos_uri or None,
    )
