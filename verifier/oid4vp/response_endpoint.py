# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Response Endpoint (response_mode direct_post / direct_post.jwt)
https://openid.net/specs/openid-4-verifiable-presentations-1_0.html#name-response-mode-direct_post

Receives the authorization responses of the wallets, keeps them under a one time response code
and hands them out once to the verifier frontend.
"""

import logging
import uuid
from typing import Callable

import pydantic

from common import jose
import verifier.models as models
from verifier.cache.verifier_cache import RequestService, ResponseService
from verifier.oid4vp.credential import VpTokenVerificationCallback, parse_vp_token, verify_vp_token
from verifier.result import ErrorType, Result

_logger = logging.getLogger(__name__)

SUPPORTED_RESPONSE_TYPES = ("vp_token", "vp_token id_token", "id_token")


def _has_required_tokens(response_type: str, payload: models.AuthResponsePayload) -> bool:
    if response_type == "vp_token":
        return bool(payload.vp_token)
    if response_type == "vp_token id_token":
        return bool(payload.vp_token) and bool(payload.id_token)
    if response_type == "id_token":
        return bool(payload.id_token)
    return False


class ResponseEndpoint:
    def __init__(self, request_service: RequestService, response_service: ResponseService):
        self.request_service = request_service
        self.response_service = response_service

    def initiate_transaction(
        self,
        response_type: str,
        redirect_uri_returned_by_response_uri: str | None = None,
        use_transaction_id: bool = False,
        expired_in: int = models.DEFAULT_EXPIRED_IN,
        generate_id: Callable[[], str] | None = None,
        enable_encryption: bool = False,
    ) -> models.VpRequest:
        """
        Creates and stores a new transaction. The request id doubles as state parameter.
        With encryption enabled a fresh ephemeral key pair is generated for this transaction only.
        """
        new_id = generate_id or (lambda: str(uuid.uuid4()))
        request = models.VpRequest(
            id=new_id(),
            response_type=response_type,
            redirect_uri_returned_by_response_uri=redirect_uri_returned_by_response_uri,
            expired_in=expired_in,
        )
        if use_transaction_id:
            request.transaction_id = new_id()
        if enable_encryption:
            key_pair = jose.generate_ephemeral_key_pair()
            request.encryption_public_jwk = key_pair.public_jwk
            request.encryption_private_jwk = key_pair.private_jwk
        self.request_service.save_request(request)
        return request

    def get_request(self, request_id: str) -> models.VpRequest | None:
        return self.request_service.get_request(request_id)

    def save_request(self, request: models.VpRequest) -> None:
        self.request_service.save_request(request)

    def _decrypt(self, payload: dict) -> Result[dict]:
        state = payload.get("state")
        if not state:
            _logger.info("Encrypted response received without state")
            return Result.failure(ErrorType.INVALID_AUTH_RESPONSE_PAYLOAD)
        request = self.request_service.get_request(state)
        if request is None:
            return Result.failure(ErrorType.REQUEST_ID_IS_NOT_FOUND)
        if not request.encryption_private_jwk:
            _logger.error(f"[requestId={state}] Encrypted response received but no encryption key found")
            return Result.failure(ErrorType.INVALID_AUTH_RESPONSE_PAYLOAD)
        _logger.info(f"[requestId={state}] Attempting JWE decryption")
        try:
            decrypted = jose.decrypt_jwe(payload["response"], request.encryption_private_jwk)
        except (jose.JoseError, ValueError, IndexError) as e:
            _logger.error(f"[requestId={state}] JWE decryption failed: {e}")
            return Result.failure(ErrorType.INVALID_AUTH_RESPONSE_PAYLOAD)
        if not isinstance(decrypted, dict):
            return Result.failure(ErrorType.INVALID_AUTH_RESPONSE_PAYLOAD)
        _logger.info(f"[requestId={state}] JWE decryption successful")
        # The key of a transaction decrypts one response only
        self.request_service.save_request(request.model_copy(update={"encryption_private_jwk": None}))
        return Result.success({**decrypted, "state": state})

    def receive_auth_response(
        self,
        payload: dict,
        expired_in: int = models.DEFAULT_EXPIRED_IN,
        generate_id: Callable[[], str] | None = None,
        verification_callback: VpTokenVerificationCallback | None = None,
    ) -> Result[models.ReceiveAuthResponseResult]:
        """
        Stores the authorization response of a wallet and issues its response code.

        An encrypted response (direct_post.jwt) is decrypted with the key of the transaction named by
        the plain state parameter. The response has to contain the tokens required by the
        response_type of the transaction. If a verification callback is given the credentials of the
        vp_token are verified against the nonce of the transaction.
        """
        if payload.get("response"):
            decrypted = self._decrypt(payload)
            if not decrypted.ok:
                return decrypted
            payload = decrypted.payload

        try:
            response_payload = models.AuthResponsePayload.model_validate(payload)
        except pydantic.ValidationError as e:
            _logger.info(f"Invalid authorization response payload: {e}")
            return Result.failure(ErrorType.INVALID_AUTH_RESPONSE_PAYLOAD)

        state = response_payload.state
        if not state:
            return Result.failure(ErrorType.INVALID_AUTH_RESPONSE_PAYLOAD)
        request = self.request_service.get_request(state)
        if request is None:
            return Result.failure(ErrorType.REQUEST_ID_IS_NOT_FOUND)
        if not _has_required_tokens(request.response_type, response_payload):
            _logger.info(f"[requestId={state}] Response does not match response_type {request.response_type}")
            return Result.failure(ErrorType.INVALID_AUTH_RESPONSE_PAYLOAD)

        response = models.AuthResponse(
            id=generate_id() if generate_id else str(uuid.uuid4()),
            request_id=state,
            payload=models.AuthResponsePayload(
                vp_token=response_payload.vp_token,
                presentation_submission=response_payload.presentation_submission,
                id_token=response_payload.id_token,
            ),
            expired_in=expired_in,
        )
        self.response_service.save_response(response)

        verification_result = None
        if verification_callback is not None and response_payload.vp_token and request.nonce:
            _logger.info(f"[requestId={state}] Starting VP Token verification")
            vp_token = parse_vp_token(response_payload.vp_token)
            verification_result = verify_vp_token(vp_token if isinstance(vp_token, dict) else {}, request.nonce, verification_callback, state)
            summary = {query_id: [r.status.value for r in results] for query_id, results in verification_result.credentials.items()}
            _logger.info(f"[requestId={state}] VP Token verification completed: {summary}")

        return Result.success(
            models.ReceiveAuthResponseResult(
                id=response.id,
                request_id=state,
                redirect_uri=request.redirect_uri_returned_by_response_uri,
                verification_result=verification_result,
            )
        )

    def exchange_response_code_for_auth_response(self, response_code: str, transaction_id: str | None = None) -> Result[models.AuthResponse]:
        """
        Redeems a response code. A response code can be exchanged once, also under concurrent calls.
        If the transaction was started with a transaction id, the same transaction id has to be presented.
        The saved response is checked against the response_type of the request once more.
        """
        try:
            response = self.response_service.redeem_response(response_code)
            if response is None:
                return Result.failure(ErrorType.NOT_FOUND, subject="response-code", identifier=response_code)
            if response.is_expired():
                return Result.failure(ErrorType.EXPIRED, subject="VpResponse", identifier=response_code)
            request = self.request_service.get_request(response.request_id)
            if request is None:
                _logger.info(f"[requestId={response.request_id}] Request of response code {response_code} is not found")
                return Result.failure(ErrorType.NOT_FOUND, subject="VpRequest", identifier=response.request_id)
            if request.transaction_id and request.transaction_id != transaction_id:
                return Result.failure(ErrorType.NOT_FOUND, subject="transaction-id")
            if not _has_required_tokens(request.response_type, response.payload):
                _logger.info(f"[requestId={response.request_id}] Saved response does not match response_type {request.response_type}")
                return Result.failure(ErrorType.INVALID_AUTH_RESPONSE_PAYLOAD)
            response.payload.vp_token = parse_vp_token(response.payload.vp_token)
            return Result.success(response)
        except Exception as e:
            _logger.exception(f"Failed to exchange response code {response_code}")
            return Result.failure(ErrorType.UNEXPECTED_ERROR, cause=e)
