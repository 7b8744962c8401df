# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import pytest

from common import jwt_utils
from common.test_helpers import wallet_helper
from common.test_helpers.certificates import create_pki
from common import x509
import verifier.models as models
from verifier.oid4vp import credential as cred
from verifier.result import ErrorType

NONCE = "nonce-1"


@pytest.fixture
def presentation(issuer, wallet):
    return wallet_helper.create_presentation(issuer.issue(wallet), wallet, NONCE)


@pytest.mark.parametrize(
    "vp_token, expected",
    [
        ('{"q": ["a"]}', {"q": ["a"]}),
        ({"q": ["a"]}, {"q": ["a"]}),
        ("a~b~", "a~b~"),
        (None, None),
    ],
)
def test_parse_vp_token(vp_token, expected):
    assert cred.parse_vp_token(vp_token) == expected


def test_sd_jwt_verification_callback(chain_validator, presentation):
    verification = cred.SdJwtVerificationCallback(chain_validator).verify_credential(presentation, NONCE)
    assert verification.ok
    assert verification.decoded_payload["family_name"] == "Muster"
    assert verification.verification_metadata.key_source == "x5c"
    assert verification.verification_metadata.certificate_chain_verified


def test_sd_jwt_verification_callback_untrusted_issuer(presentation):
    untrusted = x509.CertificateChainValidator([create_pki().root], include_system_roots=False)
    verification = cred.SdJwtVerificationCallback(untrusted).verify_credential(presentation, NONCE)
    assert not verification.ok
    assert verification.error


def test_sd_jwt_verification_callback_tampered_key_binding(chain_validator, issuer, wallet):
    # key binding signed by another holder key
    other_wallet = wallet_helper.Wallet()
    presentation = wallet_helper.create_presentation(issuer.issue(wallet), other_wallet, NONCE)
    verification = cred.SdJwtVerificationCallback(chain_validator).verify_credential(presentation, NONCE)
    assert not verification.ok
    assert verification.verification_metadata.key_source == "x5c"


def test_verify_key_binding_nonce(presentation):
    assert cred.verify_key_binding_nonce(presentation, NONCE, "request-1")
    assert not cred.verify_key_binding_nonce(presentation, "other", "request-1")
    assert not cred.verify_key_binding_nonce(jwt_utils.get_presentation_without_key_binding(presentation), NONCE, "request-1")


class _FailingCallback:
    def verify_credential(self, credential: str, nonce: str) -> models.CredentialVerification:
        raise RuntimeError("resolver unavailable")


def test_verify_vp_token(chain_validator, presentation):
    vp_token = {
        "learning_credential": [presentation, jwt_utils.get_presentation_without_key_binding(presentation)],
        "single": presentation,
        "empty": [],
    }
    result = cred.verify_vp_token(vp_token, NONCE, cred.SdJwtVerificationCallback(chain_validator), "request-1")

    first, second = result.credentials["learning_credential"]
    assert first.status == models.CredentialVerificationStatus.verified
    assert first.credential == presentation
    assert first.payload["given_name"] == "Max"
    assert second.status == models.CredentialVerificationStatus.invalid
    assert second.error == cred.NONCE_MISMATCH
    assert result.credentials["single"][0].status == models.CredentialVerificationStatus.verified
    assert result.credentials["empty"] == [models.CredentialVerificationResult(status=models.CredentialVerificationStatus.not_found)]


def test_verify_vp_token_callback_error(presentation):
    result = cred.verify_vp_token({"q": [presentation]}, NONCE, _FailingCallback(), "request-1")
    assert result.credentials["q"][0].status == models.CredentialVerificationStatus.invalid
    assert result.credentials["q"][0].error == "resolver unavailable"


def test_extract_credential(chain_validator, presentation):
    result = cred.extract_credential_from_vp_token(wallet_helper.create_vp_token(presentation), "learning_credential", NONCE, chain_validator)
    assert result.ok
    assert result.payload.credential == presentation
    assert result.payload.icon == wallet_helper.LEARNING_CREDENTIAL_CLAIMS["portrait"]
    assert result.payload.claims["achievement_title"] == "Applied Cryptography"


def test_extract_credential_without_portrait(chain_validator, issuer, wallet):
    claims = {k: v for k, v in wallet_helper.LEARNING_CREDENTIAL_CLAIMS.items() if k != "portrait"}
    presentation = wallet_helper.create_presentation(issuer.issue(wallet, claims=claims), wallet, NONCE)
    result = cred.extract_credential_from_vp_token(presentation, "learning_credential", NONCE, chain_validator)
    assert result.ok
    assert result.payload.icon is None


@pytest.mark.parametrize(
    "vp_token, message",
    [
        (None, "vp_token is empty"),
        ({}, "vp_token is empty"),
        ({"learning_credential": []}, "vp_token is empty"),
        ({"other": ["a~b~"]}, "vp_token is empty"),
    ],
)
def test_extract_credential_empty(chain_validator, vp_token, message):
    result = cred.extract_credential_from_vp_token(vp_token, "learning_credential", NONCE, chain_validator)
    assert result.error.type == ErrorType.INVALID_PARAMETER
    assert result.error.message == message


def test_extract_credential_nonce(chain_validator, presentation):
    without_key_binding = jwt_utils.get_presentation_without_key_binding(presentation)
    assert cred.extract_credential_from_vp_token([without_key_binding], "learning_credential", NONCE, chain_validator).error.message == "key binding JWT is missing"
    assert cred.extract_credential_from_vp_token([presentation], "learning_credential", "other", chain_validator).error.message == "nonce mismatch"


def test_extract_credential_untrusted(presentation):
    untrusted = x509.CertificateChainValidator([create_pki().root], include_system_roots=False)
    result = cred.extract_credential_from_vp_token([presentation], "learning_credential", NONCE, untrusted)
    assert result.error.type == ErrorType.INVALID_PARAMETER
    assert result.error.message == "credential verification failed"
    assert isinstance(result.error.cause, x509.CertificateChainError)


def test_extract_credential_malformed_issuer_key(chain_validator, issuer, wallet):
    credential = wallet_helper.replace_issuer_header(issuer.issue(wallet), {"alg": "ES256", "jwk": {"kty": "foo"}})
    presentation = wallet_helper.create_presentation(credential, wallet, NONCE)
    result = cred.extract_credential_from_vp_token({"learning_credential": [presentation]}, "learning_credential", NONCE, chain_validator)
    assert result.error.type == ErrorType.INVALID_PARAMETER
    assert result.error.message == "credential verification failed"

    verification = cred.SdJwtVerificationCallback(chain_validator).verify_credential(presentation, NONCE)
    assert not verification.ok
    assert "Invalid jwk header" in verification.error
