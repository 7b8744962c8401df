# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Collection for loading and returning the signing key of the verifier in the required formats.

The private key and the certificate chain are read once at startup, either from an environment
variable holding the PEM or from a file.
"""

import logging
import os

from jwcrypto import jwk

from common import jose
from common import x509

_logger = logging.getLogger(__name__)


def _load_pem_file(file: str) -> str:
    with open(file) as f:
        return f.read()


def _load_pem(env_var: str, file: str | None) -> str | None:
    pem = os.getenv(env_var)
    if not pem and file and os.path.exists(file):
        pem = _load_pem_file(file)
    return pem.replace("\\n", "\n") if pem else None


class KeyConfiguration:
    """
    Holds the private signing key (request objects) and its certificate chain
    """

    @staticmethod
    def load(private_key_file: str | None = None, certificate_file: str | None = None) -> "KeyConfiguration":
        """
        Loads VERIFIER_PRIVATE_KEY / VERIFIER_CERTIFICATE or the given PEM files.
        A missing private key results in a configuration without signing capability.
        """
        private_key = _load_pem(env_var="VERIFIER_PRIVATE_KEY", file=private_key_file)
        certificate_chain = _load_pem(env_var="VERIFIER_CERTIFICATE", file=certificate_file)
        if not private_key:
            _logger.warning("No verifier private key configured, signed request objects are not available.")
            return KeyConfiguration(None, [])
        return KeyConfiguration(
            jwk.JWK.from_pem(private_key.encode()),
            x509.certificate_str_to_array(certificate_chain) if certificate_chain else [],
        )

    def __init__(self, private_jwk: jwk.JWK | None, x5c: list[str]):
        """
        x5c is the certificate chain of the signing key, leaf first, base64 DER
        """
        self.private_jwk: jwk.JWK | None = private_jwk
        self.x5c: list[str] = x5c

    @property
    def can_sign(self) -> bool:
        return self.private_jwk is not None

    @property
    def signing_algorithm(self) -> str:
        return jose.get_key_algorithm(self.private_jwk)

    @property
    def x509_hash(self) -> str | None:
        """base64url sha-256 hash of the leaf certificate, the value of an x509_hash client id"""
        if not self.x5c:
            return None
        return x509.calculate_hash(x509.load_certificate(self.x5c[0]))

    @property
    def x509_hash_client_id(self) -> str | None:
        return f"x509_hash:{self.x509_hash}" if self.x5c else None

    @property
    def jwks(self) -> dict:
        """
        JSON Web Key Set with public signing key
        """
        return {"keys": [self.private_jwk.export_public(as_dict=True)]} if self.can_sign else {"keys": []}
