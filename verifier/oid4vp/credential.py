# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Verification of the credentials presented in a vp_token.

A DCQL vp_token is a JSON object mapping the credential query id to the presented credentials,
e.g. {"learning_credential": ["<SD-JWT>~<disclosures>~<KB-JWT>"]}
https://openid.net/specs/openid-4-verifiable-presentations-1_0.html#name-response-parameters
"""

import json
import logging
from typing import Protocol

from jwcrypto.common import JWException

from common import jose
from common import jwt_utils
from common import x509
import verifier.models as models
from verifier.result import ErrorType, Result

_logger = logging.getLogger(__name__)

NONCE_MISMATCH = "nonce_mismatch"


class VpTokenVerificationCallback(Protocol):
    def verify_credential(self, credential: str, nonce: str) -> models.CredentialVerification: ...


class SdJwtVerificationCallback:
    """Verifies SD-JWT presentations against the trust anchors of the chain validator"""

    def __init__(self, chain_validator: x509.CertificateChainValidator):
        self.chain_validator = chain_validator

    def verify_credential(self, credential: str, nonce: str) -> models.CredentialVerification:
        try:
            verified = jose.verify_sd_jwt(credential, self.chain_validator, expected_nonce=nonce)
        except jose.SdJwtVerificationError as e:
            return models.CredentialVerification(ok=False, error=str(e), verification_metadata=e.verification_metadata)
        except (jose.JoseError, JWException, x509.CertificateChainError, TypeError, ValueError) as e:
            return models.CredentialVerification(ok=False, error=str(e))
        return models.CredentialVerification(ok=True, decoded_payload=verified.decoded_payload, verification_metadata=verified.verification_metadata)


def parse_vp_token(vp_token: dict | list | str | None) -> dict | list | str | None:
    """
    Form encoded responses carry the vp_token as JSON string.
    A string which is no JSON (a plain presentation) is returned unchanged.
    """
    if not isinstance(vp_token, str):
        return vp_token
    try:
        return json.loads(vp_token)
    except ValueError:
        return vp_token


def _describe(metadata: jose.VerificationMetadata | None) -> str:
    if metadata is None:
        return "N/A"
    return f"keySource={metadata.key_source}, alg={metadata.algorithm or 'N/A'}, certChainVerified={metadata.certificate_chain_verified if metadata.certificate_chain_verified is not None else 'N/A'}"


def verify_key_binding_nonce(credential: str, expected_nonce: str, request_id: str) -> bool:
    """Checks the nonce of the key binding JWT, without verifying any signature"""
    try:
        key_binding_jwt = jwt_utils.get_key_binding_jwt(credential)
        if not key_binding_jwt:
            _logger.info(f"[requestId={request_id}] Key binding JWT is missing")
            return False
        nonce = jwt_utils.get_unverified_payload(key_binding_jwt).get("nonce")
    except (ValueError, IndexError, AttributeError) as e:
        _logger.error(f"[requestId={request_id}] Failed to verify key binding nonce: {e}")
        return False
    if nonce != expected_nonce:
        _logger.info(f"[requestId={request_id}] Nonce mismatch: expected {expected_nonce}, got {nonce}")
        return False
    return True


def _verify_credential(credential: str, nonce: str, callback: VpTokenVerificationCallback, request_id: str, query_id: str, index: int) -> models.CredentialVerificationResult:
    if not isinstance(credential, str) or not verify_key_binding_nonce(credential, nonce, request_id):
        return models.CredentialVerificationResult(status=models.CredentialVerificationStatus.invalid, error=NONCE_MISMATCH)
    try:
        verification = callback.verify_credential(credential, nonce)
    except Exception as e:
        _logger.error(f"[requestId={request_id}] Credential verification failed: {e}")
        return models.CredentialVerificationResult(status=models.CredentialVerificationStatus.invalid, error=str(e))
    if verification.ok:
        _logger.info(f"[requestId={request_id}] Credential {index + 1} verified for queryId: {query_id} ({_describe(verification.verification_metadata)})")
        return models.CredentialVerificationResult(
            status=models.CredentialVerificationStatus.verified,
            credential=credential,
            payload=verification.decoded_payload,
            verification_metadata=verification.verification_metadata,
        )
    _logger.info(f"[requestId={request_id}] Credential {index + 1} invalid for queryId: {query_id}: {verification.error} ({_describe(verification.verification_metadata)})")
    return models.CredentialVerificationResult(
        status=models.CredentialVerificationStatus.invalid,
        error=verification.error,
        verification_metadata=verification.verification_metadata,
    )


def verify_vp_token(vp_token: dict, nonce: str, callback: VpTokenVerificationCallback, request_id: str) -> models.VpTokenVerificationResult:
    """
    Verifies every presented credential of every credential query, keeping the order of presentation.
    A query without credentials results in a single not_found entry.
    """
    result = models.VpTokenVerificationResult()
    for query_id, credentials in vp_token.items():
        if isinstance(credentials, str):
            credentials = [credentials]
        if not credentials:
            _logger.info(f"[requestId={request_id}] No credentials found for queryId: {query_id}")
            result.credentials[query_id] = [models.CredentialVerificationResult(status=models.CredentialVerificationStatus.not_found)]
            continue
        result.credentials[query_id] = [_verify_credential(credential, nonce, callback, request_id, query_id, index) for index, credential in enumerate(credentials)]
    return result


def _select_presentation(vp_token: dict | list | str | None, credential_query_id: str) -> str | None:
    vp_token = parse_vp_token(vp_token)
    if isinstance(vp_token, dict):
        vp_token = vp_token.get(credential_query_id)
    if isinstance(vp_token, list):
        vp_token = vp_token[0] if vp_token else None
    return vp_token if isinstance(vp_token, str) and vp_token else None


def extract_credential_from_vp_token(
    vp_token: dict | list | str | None,
    credential_query_id: str,
    nonce: str,
    chain_validator: x509.CertificateChainValidator,
) -> Result[models.ExtractedCredential]:
    """
    Verifies the first presentation of the credential query and returns it with its disclosed claims.
    The disclosed portrait is returned as icon.
    """
    presentation = _select_presentation(vp_token, credential_query_id)
    if presentation is None:
        _logger.info("VP Token is empty")
        return Result.failure(ErrorType.INVALID_PARAMETER, message="vp_token is empty")
    try:
        key_binding_jwt = jwt_utils.get_key_binding_jwt(presentation)
        if not key_binding_jwt:
            _logger.info("Key binding JWT is missing")
            return Result.failure(ErrorType.INVALID_PARAMETER, message="key binding JWT is missing")
        key_binding_nonce = jwt_utils.get_unverified_payload(key_binding_jwt).get("nonce")
        if key_binding_nonce != nonce:
            _logger.info(f"Nonce mismatch: expected {nonce}, got {key_binding_nonce}")
            return Result.failure(ErrorType.INVALID_PARAMETER, message="nonce mismatch")
        verified = jose.verify_sd_jwt(presentation, chain_validator, expected_nonce=nonce)
        icon = jwt_utils.find_disclosure(presentation, "portrait")
    except (jose.JoseError, JWException, x509.CertificateChainError, TypeError, ValueError, IndexError) as e:
        _logger.info(f"SD-JWT verification failed: {e}")
        return Result.failure(ErrorType.INVALID_PARAMETER, message="credential verification failed", cause=e)
    return Result.success(
        models.ExtractedCredential(
            credential=presentation,
            icon=icon if isinstance(icon, str) else None,
            claims=verified.decoded_payload,
        )
    )
