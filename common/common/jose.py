# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Signing, verification and encryption of JOSE objects (JWT, SD-JWT, JWE).

Verification resolves the issuer key from the token itself:
x5c header (chain validated against the trust anchors), then jwk header, then a shared secret.
"""

import json
import logging
import time
import uuid
from typing import Literal

from cryptography import x509 as crypto_x509
from jwcrypto import jwe, jwk, jws, jwt
from jwcrypto.common import JWException, json_encode
from pydantic import BaseModel
from sd_jwt.common import SDObj
from sd_jwt.issuer import SDJWTIssuer

from common import jwt_utils
from common import parsing as prs
from common import x509

_logger = logging.getLogger(__name__)

JWT_LIFETIME = 600
"""Lifetime in seconds of issued JWTs without explicit exp"""

JWE_ALG = "ECDH-ES"
JWE_ENC = "A128GCM"
KEY_BINDING_JWT_TYPE = "kb+jwt"


class JoseError(Exception):
    pass


class UnsupportedKeyTypeError(JoseError):
    pass


class UnsupportedPublicKeyTypeError(JoseError):
    pass


class UnsupportedJweAlgorithmError(JoseError):
    pass


class JweDecryptionError(JoseError):
    pass


class SdJwtVerificationError(JoseError):
    def __init__(self, message: str, verification_metadata: "VerificationMetadata | None" = None):
        super().__init__(message)
        self.verification_metadata = verification_metadata


class VerificationMetadata(BaseModel):
    key_source: Literal["x5c", "jwk", "secret"]
    algorithm: str | None = None
    certificate_chain_verified: bool | None = None


class JwtVerification(BaseModel):
    ok: bool
    payload: dict | None = None
    header: dict | None = None
    verification_metadata: VerificationMetadata
    error: str | None = None


class SdJwtVerification(BaseModel):
    decoded_payload: dict
    verification_metadata: VerificationMetadata


class EphemeralKeyPair(BaseModel):
    public_jwk: dict
    private_jwk: dict
    kid: str


SigningKey = jwk.JWK | dict | bytes


def _as_jwk(key: SigningKey) -> jwk.JWK:
    if isinstance(key, jwk.JWK):
        return key
    if isinstance(key, bytes):
        return jwk.JWK(kty="oct", k=prs.bytes_to_url_safe(key))
    return jwk.JWK(**key)


def get_key_algorithm(key: SigningKey) -> str:
    """
    Signing algorithm of a key
    EC P-256 -> ES256, other EC curves -> ES256K, OKP -> EdDSA
    """
    public = _as_jwk(key).export_public(as_dict=True)
    if public["kty"] == "EC":
        return "ES256" if public.get("crv") == "P-256" else "ES256K"
    if public["kty"] == "OKP":
        return "EdDSA"
    raise UnsupportedKeyTypeError("Unsupported key type")


def _sign(header: dict, payload: dict, key: jwk.JWK) -> str:
    signer = jws.JWS(json_encode(payload))
    signer.add_signature(key=key, protected=json_encode(header))
    return signer.serialize(compact=True)


def issue_jwt(header: dict, payload: dict, key: SigningKey) -> str:
    """
    Signs the payload as compact JWS. iat and exp (iat + 600s) are filled if absent.
    The key is a private JWK or a shared secret (HS256).
    """
    signing_key = _as_jwk(key)
    header = dict(header)
    if "alg" not in header:
        header["alg"] = "HS256" if signing_key.key_type == "oct" else get_key_algorithm(signing_key)
    payload = dict(payload)
    payload.setdefault("iat", int(time.time()))
    payload.setdefault("exp", payload["iat"] + JWT_LIFETIME)
    return _sign(header, payload, signing_key)


def _apply_disclosure_frame(payload: dict, frame: dict) -> dict:
    """
    Marks the claims listed in frame["_sd"] as selectively disclosable.
    Nested objects are handled by nested frames, e.g. {"address": {"_sd": ["street"]}}.
    """
    disclosable = set(frame.get("_sd", []))
    result = {}
    for name, value in payload.items():
        if isinstance(value, dict) and isinstance(frame.get(name), dict):
            value = _apply_disclosure_frame(value, frame[name])
        result[SDObj(name) if name in disclosable else name] = value
    return result


def issue_sd_jwt(header: dict, payload: dict, disclosure_frame: dict, issuer_key: SigningKey, holder_key: SigningKey | None = None) -> str:
    """
    Issues an SD-JWT (sha-256 disclosures) ending with ~.
    If a holder key is given, its public part is bound with the cnf claim.
    """
    signing_key = _as_jwk(issuer_key)
    header = dict(header)
    sign_alg = header.pop("alg", None) or get_key_algorithm(signing_key)
    issuer = SDJWTIssuer(
        _apply_disclosure_frame(payload, disclosure_frame),
        signing_key,
        holder_key=jwk.JWK(**_as_jwk(holder_key).export_public(as_dict=True)) if holder_key is not None else None,
        sign_alg=sign_alg,
        extra_header_parameters=header,
    )
    return issuer.sd_jwt_issuance


def _resolve_verification_key(header, chain_validator: x509.CertificateChainValidator, secret: bytes | None) -> tuple[jwk.JWK, VerificationMetadata]:
    if header.x5c:
        # Raises CertificateChainError, there is no way to skip the chain validation
        certificates: list[crypto_x509.Certificate] = chain_validator.verify(header.x5c)
        return jwk.JWK.from_pyca(certificates[0].public_key()), VerificationMetadata(key_source="x5c", algorithm=header.alg, certificate_chain_verified=True)
    if header.jwk:
        try:
            header_key = jwk.JWK(**header.jwk)
        except (JWException, TypeError, ValueError) as e:
            raise UnsupportedPublicKeyTypeError(f"Invalid jwk header: {e}") from e
        return header_key, VerificationMetadata(key_source="jwk", algorithm=header.alg)
    if secret is not None:
        return _as_jwk(secret), VerificationMetadata(key_source="secret", algorithm=header.alg)
    raise UnsupportedPublicKeyTypeError("Unsupported public key type")


def verify_jwt(token: str, chain_validator: x509.CertificateChainValidator, secret: bytes | None = None) -> JwtVerification:
    """
    Verifies the signature (and exp/nbf if present) of a compact JWS.
    A bad signature is reported as JwtVerification with ok=False, an unresolvable key or
    an untrusted certificate chain raise.
    """
    header = jwt_utils.get_header(token)
    key, metadata = _resolve_verification_key(header, chain_validator, secret)
    _logger.debug(f"Verifying JWT with key source {metadata.key_source}, alg={header.alg}, kid={header.kid}")
    try:
        verified = jwt.JWT(jwt=token, key=key, expected_type="JWS")
    except (JWException, TypeError, ValueError) as e:
        _logger.info(f"JWT verification failed: {e}")
        return JwtVerification(ok=False, verification_metadata=metadata, error=str(e) or type(e).__name__)
    return JwtVerification(
        ok=True,
        payload=json.loads(verified.claims),
        header=json.loads(verified.header),
        verification_metadata=metadata,
    )


def _verify_key_binding(presentation: str, key_binding_jwt: str, holder_jwk: dict, expected_nonce: str | None, expected_aud: str | None) -> None:
    header = jwt_utils.get_header(key_binding_jwt)
    try:
        holder_key = jwk.JWK(**holder_jwk)
    except (JWException, TypeError, ValueError) as e:
        raise SdJwtVerificationError(f"Invalid holder key (cnf.jwk): {e}") from e
    _logger.debug(f"Verifying key binding JWT alg={header.alg}, kid={header.kid} with holder key kty={holder_key.key_type}, crv={holder_key.get('crv')}, kid={holder_key.key_id}")
    if header.typ != KEY_BINDING_JWT_TYPE:
        raise SdJwtVerificationError(f"Invalid key binding JWT type {header.typ}")
    try:
        payload = json.loads(jwt.JWT(jwt=key_binding_jwt, key=holder_key, expected_type="JWS").claims)
    except (JWException, TypeError, ValueError) as e:
        raise SdJwtVerificationError(f"Key binding JWT verification failed: {e}") from e
    if expected_nonce is not None and payload.get("nonce") != expected_nonce:
        raise SdJwtVerificationError("Key binding JWT nonce mismatch")
    if expected_aud is not None and payload.get("aud") != expected_aud:
        raise SdJwtVerificationError("Key binding JWT audience mismatch")
    if "sd_hash" in payload and payload["sd_hash"] != jwt_utils.hash(jwt_utils.get_presentation_without_key_binding(presentation)):
        raise SdJwtVerificationError("Key binding JWT sd_hash mismatch")


def verify_sd_jwt(
    presentation: str,
    chain_validator: x509.CertificateChainValidator,
    secret: bytes | None = None,
    expected_nonce: str | None = None,
    expected_aud: str | None = None,
) -> SdJwtVerification:
    """
    Verifies the issuer signature and, if present, the key binding JWT of an SD-JWT presentation.
    Returns the payload with all disclosed claims resolved.
    A key binding JWT is mandatory if an expected nonce is given.
    """
    parts = jwt_utils.split_sd_jwt(presentation)
    result = verify_jwt(parts.issuer_jwt, chain_validator, secret)
    if not result.ok:
        raise SdJwtVerificationError(f"SD-JWT signature verification failed: {result.error}", result.verification_metadata)

    try:
        decoded_payload = decode_sd_jwt(presentation)
    except Exception as e:
        raise SdJwtVerificationError(f"Invalid SD-JWT disclosures: {e}", result.verification_metadata) from e

    if parts.key_binding_jwt:
        holder_jwk = (result.payload.get("cnf") or {}).get("jwk")
        if not holder_jwk:
            raise SdJwtVerificationError("SD-JWT has a key binding JWT but no holder key (cnf.jwk)", result.verification_metadata)
        try:
            _verify_key_binding(presentation, parts.key_binding_jwt, holder_jwk, expected_nonce, expected_aud)
        except SdJwtVerificationError as e:
            e.verification_metadata = result.verification_metadata
            raise
    elif expected_nonce is not None:
        raise SdJwtVerificationError("Key binding JWT is missing", result.verification_metadata)

    return SdJwtVerification(decoded_payload=decoded_payload, verification_metadata=result.verification_metadata)


def decode_sd_jwt(presentation: str) -> dict:
    """Resolves the disclosures without any signature verification."""
    return jwt_utils.SDJWT_Unpacker(presentation).extract_sd_claims()


def generate_ephemeral_key_pair() -> EphemeralKeyPair:
    """
    Fresh P-256 key pair for the encryption of one authorization response.
    """
    key = jwk.JWK.generate(kty="EC", crv="P-256")
    kid = str(uuid.uuid4())
    public_jwk = key.export_public(as_dict=True)
    public_jwk.update({"kid": kid, "use": "enc", "alg": JWE_ALG})
    private_jwk = key.export_private(as_dict=True)
    private_jwk["kid"] = kid
    return EphemeralKeyPair(public_jwk=public_jwk, private_jwk=private_jwk, kid=kid)


def decrypt_jwe(token: str, private_jwk: dict | jwk.JWK) -> dict:
    """
    Decrypts a compact JWE (ECDH-ES + A128GCM only) and parses the plaintext as JSON.
    Other algorithms are rejected before any decryption is attempted.
    """
    header = jwt_utils.get_header(token)
    if header.alg != JWE_ALG or header.enc != JWE_ENC:
        raise UnsupportedJweAlgorithmError(f"Unsupported JWE algorithm alg={header.alg} enc={header.enc}")
    decryptor = jwe.JWE()
    decryptor.allowed_algs = [JWE_ALG, JWE_ENC]
    try:
        decryptor.deserialize(token, key=_as_jwk(private_jwk))
    except JWException as e:
        raise JweDecryptionError(f"JWE decryption failed: {e}") from e
    return json.loads(decryptor.payload)


def encrypt_jwe(payload: dict, public_jwk: dict | jwk.JWK) -> str:
    """Wallet side of the response encryption"""
    recipient = _as_jwk(public_jwk)
    protected = {"alg": JWE_ALG, "enc": JWE_ENC}
    if recipient.key_id:
        protected["kid"] = recipient.key_id
    encryptor = jwe.JWE(json.dumps(payload).encode(), protected=json_encode(protected))
    encryptor.add_recipient(recipient)
    return encryptor.serialize(compact=True)
