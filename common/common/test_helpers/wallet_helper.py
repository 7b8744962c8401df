# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Minimal wallet & issuer used by the tests.
Issues SD-JWT credentials, creates presentations with key binding and encrypts authorization responses.
"""

import json
import time

from jwcrypto import jwk

from common import jose
from common import jwt_utils
from common import parsing as prs
from common.test_helpers.certificates import TestPki, create_pki

LEARNING_CREDENTIAL_CLAIMS = {
    "vct": "urn:eu.europa.ec.eudi:learning:credential:1",
    "iss": "https://issuer.example.com",
    "issuing_authority": "Test University",
    "issuing_country": "CH",
    "date_of_issuance": "2024-09-01",
    "family_name": "Muster",
    "given_name": "Max",
    "achievement_title": "Applied Cryptography",
    "achievement_description": "Introductory course",
    "learning_outcomes": "Knows JOSE",
    "assessment_grade": "5.5",
    "portrait": "data:image/png;base64,iVBORw0KGgo=",
}


class Wallet:
    def __init__(self, holder_key: jwk.JWK | None = None):
        self.holder_key = holder_key or jwk.JWK.generate(kty="EC", crv="P-256")


class Issuer:
    def __init__(self, pki: TestPki | None = None):
        self.pki = pki or create_pki(dns_names=["issuer.example.com"])

    def issue(self, wallet: Wallet, claims: dict | None = None, disclosed: list[str] | None = None) -> str:
        claims = claims or LEARNING_CREDENTIAL_CLAIMS
        disclosed = disclosed if disclosed is not None else [name for name in claims if name not in ("vct", "iss")]
        return jose.issue_sd_jwt(
            {"typ": "dc+sd-jwt", "x5c": self.pki.x5c},
            claims,
            {"_sd": disclosed},
            self.pki.leaf_jwk,
            holder_key=wallet.holder_key,
        )

    def issue_with_embedded_key(self, wallet: Wallet, claims: dict | None = None) -> tuple[str, jwk.JWK]:
        """SD-JWT whose issuer key is carried in the jwk header instead of a certificate"""
        issuer_key = jwk.JWK.generate(kty="EC", crv="P-256")
        claims = claims or LEARNING_CREDENTIAL_CLAIMS
        credential = jose.issue_sd_jwt(
            {"typ": "dc+sd-jwt", "jwk": issuer_key.export_public(as_dict=True)},
            claims,
            {"_sd": [name for name in claims if name not in ("vct", "iss")]},
            issuer_key,
            holder_key=wallet.holder_key,
        )
        return credential, issuer_key


def create_presentation(credential: str, wallet: Wallet, nonce: str, aud: str = "x509_san_dns:verifier.example.com", key_binding_typ: str = "kb+jwt") -> str:
    """Appends a key binding JWT to the issued credential (all disclosures presented)"""
    presentation = jwt_utils.get_presentation_without_key_binding(credential)
    key_binding_jwt = jose.issue_jwt(
        {"typ": key_binding_typ, "alg": "ES256"},
        {"nonce": nonce, "aud": aud, "iat": int(time.time()), "sd_hash": jwt_utils.hash(presentation)},
        wallet.holder_key,
    )
    return presentation + key_binding_jwt


def create_vp_token(presentation: str, credential_query_id: str = "learning_credential") -> dict:
    return {credential_query_id: [presentation]}


def create_response_form(vp_token: dict, state: str) -> dict:
    """direct_post form parameters, vp_token is JSON encoded"""
    return {"vp_token": json.dumps(vp_token), "state": state}


def create_encrypted_response_form(vp_token: dict, state: str, encryption_jwk: dict) -> dict:
    """direct_post.jwt form parameters, state stays readable to look up the decryption key"""
    return {"response": jose.encrypt_jwe({"vp_token": vp_token}, encryption_jwk), "state": state}


def replace_issuer_header(credential: str, header: dict) -> str:
    """Swaps the protected header of the issuer JWT, the signature is kept and no longer matches"""
    parts = jwt_utils.split_sd_jwt(credential)
    _, payload, signature = jwt_utils.split_jwt(parts.issuer_jwt)
    return jwt_utils.compose_sd_jwt(".".join([prs.object_to_url_safe(header), payload, signature]), parts.disclosures)
