# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Client Identifier Prefixes
https://openid.net/specs/openid-4-verifiable-presentations-1_0.html#name-client-identifier-prefix-an
"""

import logging
from typing import Literal
from urllib.parse import urlparse

from pydantic import BaseModel

from common import x509

_logger = logging.getLogger(__name__)

ClientIdPrefix = Literal["redirect_uri", "x509_san_dns", "x509_hash"]
CLIENT_ID_PREFIXES: tuple[ClientIdPrefix, ...] = ("redirect_uri", "x509_san_dns", "x509_hash")


class ParsedClientId(BaseModel):
    prefix: ClientIdPrefix
    value: str
    raw: str


class ValidationResult(BaseModel):
    valid: bool
    error: str | None = None


def parse_client_id(client_id: str) -> ParsedClientId | None:
    """Returns None if the client id has no known prefix"""
    for prefix in CLIENT_ID_PREFIXES:
        if client_id.startswith(f"{prefix}:"):
            return ParsedClientId(prefix=prefix, value=client_id[len(prefix) + 1:], raw=client_id)
    return None


def format_client_id(prefix: ClientIdPrefix, value: str) -> str:
    return f"{prefix}:{value}"


def calculate_x509_hash(certificate: str | bytes) -> str:
    """
    base64url encoded SHA-256 hash of the DER encoded certificate (PEM, base64 DER or DER input)
    """
    return x509.calculate_hash(x509.load_certificate(certificate))


def _is_absolute_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc or parsed.path)


def _validate_san_dns(value: str, x5c: list[str] | None) -> ValidationResult:
    if not x5c:
        return ValidationResult(valid=False, error="x5c header is required for x509_san_dns prefix")
    try:
        dns_names = x509.get_san_dns_names(x509.load_certificate(x5c[0]))
    except ValueError as e:
        return ValidationResult(valid=False, error=f"Failed to validate SAN DNS name: {e}")
    if value not in dns_names:
        return ValidationResult(valid=False, error=f"Client ID DNS name '{value}' does not match SAN DNS names: {', '.join(dns_names)}")
    return ValidationResult(valid=True)


def _validate_hash(value: str, x5c: list[str] | None) -> ValidationResult:
    if not x5c:
        return ValidationResult(valid=False, error="x5c header is required for x509_hash prefix")
    try:
        certificate_hash = calculate_x509_hash(x5c[0])
    except ValueError as e:
        return ValidationResult(valid=False, error=f"Failed to calculate certificate hash: {e}")
    if value != certificate_hash:
        return ValidationResult(valid=False, error=f"Certificate hash mismatch. Expected: {value}, Got: {certificate_hash}")
    return ValidationResult(valid=True)


def validate_client_id(client_id: str, x5c: list[str] | None = None) -> ValidationResult:
    """
    Checks that the client id is bound to the request: a valid url for redirect_uri,
    a SAN dns name resp. the hash of the leaf certificate of x5c for the x509 prefixes.
    """
    parsed = parse_client_id(client_id)
    if parsed is None:
        return ValidationResult(valid=False, error="No valid Client Identifier Prefix found")
    if parsed.prefix == "x509_san_dns":
        return _validate_san_dns(parsed.value, x5c)
    if parsed.prefix == "x509_hash":
        return _validate_hash(parsed.value, x5c)
    if not _is_absolute_url(parsed.value):
        return ValidationResult(valid=False, error="Invalid URL in redirect_uri prefix")
    return ValidationResult(valid=True)
