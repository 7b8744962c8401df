# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import base64
import hashlib

import pytest
from cryptography.hazmat.primitives import serialization

from common.test_helpers.certificates import create_pki
from verifier.oid4vp import client_id


@pytest.fixture(scope="module")
def pki():
    return create_pki(dns_names=["verifier.example.com", "www.verifier.example.com"])


@pytest.mark.parametrize(
    "raw, prefix, value",
    [
        ("redirect_uri:https://verifier.example.com/cb", "redirect_uri", "https://verifier.example.com/cb"),
        ("x509_san_dns:verifier.example.com", "x509_san_dns", "verifier.example.com"),
        ("x509_hash:abc", "x509_hash", "abc"),
    ],
)
def test_parse_client_id(raw, prefix, value):
    parsed = client_id.parse_client_id(raw)
    assert parsed.prefix == prefix
    assert parsed.value == value
    assert parsed.raw == raw
    assert client_id.format_client_id(parsed.prefix, parsed.value) == raw


@pytest.mark.parametrize("raw", ["https://verifier.example.com", "did:example:123", "x509_san_uri:https://verifier.example.com", ""])
def test_parse_client_id_without_prefix(raw):
    assert client_id.parse_client_id(raw) is None


def test_calculate_x509_hash(pki):
    der = pki.leaf.public_bytes(serialization.Encoding.DER)
    expected = base64.urlsafe_b64encode(hashlib.sha256(der).digest()).decode().rstrip("=")
    assert client_id.calculate_x509_hash(der) == expected
    assert client_id.calculate_x509_hash(pki.x5c[0]) == expected
    assert client_id.calculate_x509_hash(pki.leaf.public_bytes(serialization.Encoding.PEM).decode()) == expected
    assert "=" not in expected


def test_validate_redirect_uri():
    assert client_id.validate_client_id("redirect_uri:https://verifier.example.com/cb").valid
    result = client_id.validate_client_id("redirect_uri:not a url")
    assert not result.valid
    assert result.error == "Invalid URL in redirect_uri prefix"


def test_validate_without_prefix():
    result = client_id.validate_client_id("verifier.example.com")
    assert not result.valid
    assert result.error == "No valid Client Identifier Prefix found"


def test_validate_san_dns(pki):
    assert client_id.validate_client_id("x509_san_dns:www.verifier.example.com", pki.x5c).valid

    result = client_id.validate_client_id("x509_san_dns:other.example.com", pki.x5c)
    assert not result.valid
    assert result.error == "Client ID DNS name 'other.example.com' does not match SAN DNS names: verifier.example.com, www.verifier.example.com"

    # case sensitive comparison
    assert not client_id.validate_client_id("x509_san_dns:Verifier.example.com", pki.x5c).valid

    result = client_id.validate_client_id("x509_san_dns:verifier.example.com")
    assert result.error == "x5c header is required for x509_san_dns prefix"


def test_validate_hash_binding(pki):
    certificate_hash = client_id.calculate_x509_hash(pki.x5c[0])
    assert client_id.validate_client_id(f"x509_hash:{certificate_hash}", pki.x5c).valid

    # A chain with another leaf certificate is not bound to the client id
    other = create_pki(dns_names=["verifier.example.com"])
    result = client_id.validate_client_id(f"x509_hash:{certificate_hash}", other.x5c)
    assert not result.valid
    assert result.error == f"Certificate hash mismatch. Expected: {certificate_hash}, Got: {client_id.calculate_x509_hash(other.x5c[0])}"

    assert client_id.validate_client_id(f"x509_hash:{certificate_hash}", []).error == "x5c header is required for x509_hash prefix"
