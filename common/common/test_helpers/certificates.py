# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Creates throw away certificate chains (root -> intermediate -> leaf) for tests.
"""

import datetime
from typing import NamedTuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from jwcrypto import jwk

from common import x509 as common_x509


class TestPki(NamedTuple):
    root: x509.Certificate
    intermediate: x509.Certificate
    leaf: x509.Certificate
    leaf_key: ec.EllipticCurvePrivateKey

    @property
    def x5c(self) -> list[str]:
        """Leaf first chain without the trust anchor"""
        return [common_x509.to_x5c_entry(self.leaf), common_x509.to_x5c_entry(self.intermediate)]

    @property
    def leaf_jwk(self) -> jwk.JWK:
        return jwk.JWK.from_pyca(self.leaf_key)


def _name(common_name: str) -> x509.Name:
    return x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Test Organisation"),
        x509.NameAttribute(NameOID.COUNTRY_NAME, "CH"),
    ])


def _certificate(
    subject: str,
    public_key: ec.EllipticCurvePublicKey,
    issuer: x509.Certificate | None,
    issuer_key: ec.EllipticCurvePrivateKey,
    is_ca: bool,
    dns_names: list[str] | None = None,
    not_valid_after: datetime.datetime | None = None,
) -> x509.Certificate:
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(subject))
        .issuer_name(issuer.subject if issuer else _name(subject))
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(not_valid_after or now + datetime.timedelta(days=30))
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
    )
    if issuer:
        builder = builder.add_extension(x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()), critical=False)
    if is_ca:
        builder = builder.add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True).add_extension(
            x509.KeyUsage(
                digital_signature=False,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
    else:
        builder = builder.add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
    if dns_names:
        builder = builder.add_extension(x509.SubjectAlternativeName([x509.DNSName(name) for name in dns_names]), critical=False)
    return builder.sign(issuer_key, hashes.SHA256())


def create_pki(dns_names: list[str] | None = None, leaf_not_valid_after: datetime.datetime | None = None) -> TestPki:
    root_key = ec.generate_private_key(ec.SECP256R1())
    intermediate_key = ec.generate_private_key(ec.SECP256R1())
    leaf_key = ec.generate_private_key(ec.SECP256R1())

    root = _certificate("Test Root CA", root_key.public_key(), None, root_key, is_ca=True)
    intermediate = _certificate("Test Intermediate CA", intermediate_key.public_key(), root, root_key, is_ca=True)
    leaf = _certificate(
        "Test Leaf",
        leaf_key.public_key(),
        intermediate,
        intermediate_key,
        is_ca=False,
        dns_names=dns_names or ["verifier.example.com"],
        not_valid_after=leaf_not_valid_after,
    )
    return TestPki(root, intermediate, leaf, leaf_key)
