# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Verifier side of the OpenID4VP flow.
Owns the nonce of a transaction, emits the authorization request and guards the one time consumption.
"""

import logging
import uuid
from typing import Callable

from jwcrypto import jwk

from common import jose
import verifier.models as models
from verifier.cache.verifier_cache import VerifierRequestService
from verifier.exception.request_object_errors import MissingSignerKey, UnsupportedClientIdSchemeError
from verifier.oid4vp import request_object
from verifier.result import ErrorType, Result

_logger = logging.getLogger(__name__)

SIGNED_REQUEST_SCHEMES = ("x509_san_dns", "x509_san_uri", "x509_hash")


class Verifier:
    def __init__(self, datastore: VerifierRequestService):
        self.datastore = datastore

    def start_request(
        self,
        request: models.VpRequest,
        client_id: str,
        expired_in: int = models.DEFAULT_EXPIRED_IN,
        issuer_jwk: jwk.JWK | dict | None = None,
        request_object_options: models.RequestObjectOptions | None = None,
        generate_id: Callable[[], str] | None = None,
        x5c: list[str] | None = None,
    ) -> models.AuthorizationRequest:
        """
        Stores the nonce of the transaction and generates the authorization request.

        redirect_uri client ids get the plain request parameters, the x509 schemes a request object
        signed with issuer_jwk. If the transaction has an encryption key, the wallet is asked for an
        encrypted response (direct_post.jwt) and the public key is published in the client metadata.

        Raises:
            MissingSignerKey: x509 scheme without issuer_jwk
            UnsupportedClientIdSchemeError: unknown client_id_scheme
            MissingUriError: neither or both of response_uri & redirect_uri
        """
        verifier_request = models.VpRequestAtVerifier(
            id=request.id,
            nonce=generate_id() if generate_id else str(uuid.uuid4()),
            expired_in=expired_in,
            transaction_id=request.transaction_id,
            encryption_private_jwk=request.encryption_private_jwk if request.encryption_public_jwk else None,
        )
        self.datastore.save_request(verifier_request)

        options = request_object_options or models.RequestObjectOptions()
        update = {
            "state": options.state or verifier_request.id,
            "nonce": options.nonce or verifier_request.nonce,
        }
        if request.encryption_public_jwk:
            client_metadata = options.client_metadata or models.ClientMetadata()
            update["response_mode"] = "direct_post.jwt"
            update["client_metadata"] = client_metadata.model_copy(
                update={
                    "jwks": {"keys": [request.encryption_public_jwk]},
                    "encrypted_response_enc_values_supported": [jose.JWE_ENC],
                }
            )
        options = options.model_copy(update=update)

        client_id_scheme = options.client_id_scheme or "redirect_uri"
        if client_id_scheme == "redirect_uri":
            payload = request_object.generate_request_object_payload(client_id, options)
            return models.AuthorizationRequest(client_id=client_id, params=payload.to_wire())
        if client_id_scheme in SIGNED_REQUEST_SCHEMES:
            if issuer_jwk is None:
                raise MissingSignerKey("The provided client_id_scheme needs to sign request object")
            options = options.model_copy(update={"x509_certificate_info": models.X509CertificateInfo(x5c=x5c)})
            return models.AuthorizationRequest(
                client_id=client_id,
                request=request_object.generate_request_object_jwt(client_id, issuer_jwk, options),
            )
        raise UnsupportedClientIdSchemeError("The provided client_id_scheme is not supported in the current implementation.")

    def get_request(self, request_id: str) -> Result[models.VpRequestAtVerifier]:
        subject = "VpRequest"
        try:
            request = self.datastore.get_request(request_id)
        except Exception as e:
            _logger.exception(f"Failed to load request {request_id}")
            return Result.failure(ErrorType.UNEXPECTED_ERROR, cause=e)
        if request is None:
            return Result.failure(ErrorType.NOT_FOUND, subject=subject, identifier=request_id)
        if request.is_expired():
            return Result.failure(ErrorType.EXPIRED, subject=subject, identifier=request_id)
        if request.consumed_at > 0:
            return Result.failure(ErrorType.CONSUMED, subject=subject, identifier=request_id)
        return Result.success(request)

    def consume_request(self, request_id: str) -> Result[models.VpRequestAtVerifier]:
        """
        Marks the request as consumed. Only one of concurrent callers succeeds, the others get CONSUMED.
        """
        result = self.get_request(request_id)
        if not result.ok:
            return result
        consumed_at = models.current_time()
        try:
            claimed = self.datastore.mark_consumed(request_id, consumed_at)
        except Exception as e:
            _logger.exception(f"Failed to consume request {request_id}")
            return Result.failure(ErrorType.UNEXPECTED_ERROR, cause=e)
        if not claimed:
            return Result.failure(ErrorType.CONSUMED, subject="VpRequest", identifier=request_id)
        return Result.success(result.payload.model_copy(update={"consumed_at": consumed_at}))

    @staticmethod
    def generate_dcql_query(credential_queries: list[models.DcqlCredentialQuery | dict]) -> models.DcqlQuery:
        return models.DcqlQuery(credentials=credential_queries)
