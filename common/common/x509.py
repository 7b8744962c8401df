# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
X.509 certificate handling: parsing of x5c chains, trust anchors and path validation.

Path validation is delegated to `cryptography.x509.verification`.
"""

import base64
import datetime
import hashlib
import logging
import os
from functools import cache
from pathlib import Path

import certifi
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID
from cryptography.x509.verification import ExtensionPolicy, PolicyBuilder, Store, VerificationError
from pydantic import BaseModel

from common import parsing as prs

_logger = logging.getLogger(__name__)

_PEM_BEGIN = "-----BEGIN CERTIFICATE-----"
_PEM_END = "-----END CERTIFICATE-----"

TRUSTED_CERTIFICATE_SUFFIXES = (".cer", ".crt", ".pem")


class CertificateChainError(Exception):
    """Raised when no valid certification path to a trust anchor exists."""


class CertificateName(BaseModel):
    common_name: str | None = None
    organization: str | None = None
    organizational_unit: str | None = None
    country: str | None = None
    state: str | None = None
    locality: str | None = None


class CertificateInfo(BaseModel):
    subject: CertificateName
    issuer: CertificateName
    serial_number: str
    not_before: datetime.datetime
    not_after: datetime.datetime


def certificate_str_to_array(certificates: str) -> list[str]:
    """
    Splits a PEM chain (e.g. from an environment variable, where newlines may be escaped as literal \\n)
    into a list of base64 DER certificates as used in the x5c header.
    """
    normalized = certificates.replace("\\n", "\n")
    chain = []
    for block in normalized.split(_PEM_END):
        body = "".join(block.replace(_PEM_BEGIN, "").split())
        if body:
            chain.append(body)
    return chain


def load_certificate(certificate: str | bytes) -> x509.Certificate:
    """
    Loads a certificate from PEM, base64 DER (x5c entry) or raw DER.
    Raises ValueError if the data is not a certificate.
    """
    if isinstance(certificate, bytes):
        if certificate.lstrip().startswith(_PEM_BEGIN.encode()):
            return x509.load_pem_x509_certificate(certificate)
        return x509.load_der_x509_certificate(certificate)
    if _PEM_BEGIN in certificate:
        return x509.load_pem_x509_certificate(certificate.replace("\\n", "\n").encode())
    return x509.load_der_x509_certificate(base64.b64decode(certificate, validate=True))


def to_x5c_entry(certificate: x509.Certificate) -> str:
    """Returns the base64 (not url safe) DER encoding used in x5c headers"""
    return base64.b64encode(certificate.public_bytes(serialization.Encoding.DER)).decode()


def calculate_hash(certificate: x509.Certificate) -> str:
    """base64url (no padding) SHA-256 of the DER encoding"""
    return prs.bytes_to_url_safe(hashlib.sha256(certificate.public_bytes(serialization.Encoding.DER)).digest())


def get_san_dns_names(certificate: x509.Certificate) -> list[str]:
    try:
        san = certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return []
    return san.get_values_for_type(x509.DNSName)


def _name_info(name: x509.Name) -> CertificateName:
    def first(oid) -> str | None:
        attributes = name.get_attributes_for_oid(oid)
        return str(attributes[0].value) if attributes else None

    return CertificateName(
        common_name=first(NameOID.COMMON_NAME),
        organization=first(NameOID.ORGANIZATION_NAME),
        organizational_unit=first(NameOID.ORGANIZATIONAL_UNIT_NAME),
        country=first(NameOID.COUNTRY_NAME),
        state=first(NameOID.STATE_OR_PROVINCE_NAME),
        locality=first(NameOID.LOCALITY_NAME),
    )


def get_certificates_info(certificates: list[str]) -> list[CertificateInfo]:
    infos = []
    for certificate in map(load_certificate, certificates):
        infos.append(
            CertificateInfo(
                subject=_name_info(certificate.subject),
                issuer=_name_info(certificate.issuer),
                serial_number=format(certificate.serial_number, "x"),
                not_before=certificate.not_valid_before_utc,
                not_after=certificate.not_valid_after_utc,
            )
        )
    return infos


@cache
def get_system_root_certificates() -> tuple[x509.Certificate, ...]:
    """Root certificates shipped by certifi (Mozilla trust store)"""
    with open(certifi.where(), "rb") as bundle:
        return tuple(x509.load_pem_x509_certificates(bundle.read()))


def load_trusted_certificates(directory: str | None) -> list[x509.Certificate]:
    """
    Loads every certificate file (.cer, .crt, .pem) of the directory.
    Files may contain PEM chains or a single DER certificate.
    """
    if not directory:
        return []
    if not os.path.isdir(directory):
        raise FileNotFoundError(f"Trusted certificates directory {directory} does not exist")
    certificates = []
    for path in sorted(Path(directory).iterdir()):
        if path.suffix.lower() not in TRUSTED_CERTIFICATE_SUFFIXES:
            continue
        content = path.read_bytes()
        if _PEM_BEGIN.encode() in content:
            certificates.extend(x509.load_pem_x509_certificates(content))
        else:
            certificates.append(x509.load_der_x509_certificate(content))
        _logger.info(f"Loaded trusted certificate(s) from {path.name}")
    return certificates


class CertificateChainValidator:
    """
    Validates x5c chains against the system roots together with custom trust anchors.
    Trust anchors are fixed at construction (process start).
    """

    def __init__(self, custom_trusted_certificates: list[x509.Certificate] | None = None, include_system_roots: bool = True):
        self.trust_anchors: list[x509.Certificate] = list(custom_trusted_certificates or [])
        if include_system_roots:
            self.trust_anchors.extend(get_system_root_certificates())
        if not self.trust_anchors:
            raise ValueError("At least one trust anchor is required")
        self._store = Store(self.trust_anchors)

    def verify(self, chain: list[str], validation_time: datetime.datetime | None = None) -> list[x509.Certificate]:
        """
        Verifies the chain (leaf first, base64 DER or PEM entries) up to a trust anchor.
        Returns the parsed chain. Raises CertificateChainError on failure.
        """
        if not chain:
            raise CertificateChainError("Certificate chain verification failed: empty chain")
        try:
            certificates = [load_certificate(entry) for entry in chain]
        except ValueError as e:
            raise CertificateChainError(f"Certificate chain verification failed: {e}") from e

        leaf, intermediates = certificates[0], certificates[1:]
        verifier = (
            PolicyBuilder()
            .store(self._store)
            .time(validation_time or datetime.datetime.now(datetime.timezone.utc))
            .extension_policies(ca_policy=ExtensionPolicy.webpki_defaults_ca(), ee_policy=ExtensionPolicy.permit_all())
            .build_client_verifier()
        )
        try:
            verifier.verify(leaf, intermediates)
        except VerificationError as e:
            _logger.warning(f"Certificate chain verification failed for {leaf.subject.rfc4514_string()}: {e}")
            raise CertificateChainError(f"Certificate chain verification failed: {e}") from e
        return certificates
