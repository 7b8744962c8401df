# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Use cases of the verifier frontend & the wallets, orchestrating verifier, response endpoint and the
post state of a transaction.
"""

import logging
import uuid
from typing import Annotated

from fastapi import Depends

from common import x509
from common.key_configuration import KeyConfiguration
import verifier.cache.verifier_cache as cache
import verifier.config as conf
import verifier.models as models
from verifier.logging import VerifierOperationsLogEntry
from verifier.oid4vp.credential import SdJwtVerificationCallback, extract_credential_from_vp_token
from verifier.oid4vp.request_object import generate_client_metadata
from verifier.oid4vp.response_endpoint import ResponseEndpoint
from verifier.oid4vp.verifier import Verifier
from verifier.repository import PostStateMachine, SessionRepository
from verifier.result import ErrorType, OperationError, Result

_logger = logging.getLogger(__name__)

RESPONSE_TYPE = "vp_token"

LEARNING_CREDENTIAL_VCT = "urn:eu.europa.ec.eudi:learning:credential:1"

DEFAULT_DCQL_CREDENTIAL_QUERIES = [
    {
        "id": "learning_credential",
        "format": "dc+sd-jwt",
        "meta": {"vct_values": [LEARNING_CREDENTIAL_VCT]},
        "claims": [
            {"path": ["issuing_authority"]},
            {"path": ["issuing_country"]},
            {"path": ["date_of_issuance"]},
            {"path": ["family_name"]},
            {"path": ["given_name"]},
            {"path": ["achievement_title"]},
            {"path": ["achievement_description"]},
            {"path": ["learning_outcomes"]},
            {"path": ["assessment_grade"]},
        ],
    }
]


def handle_request_error(request_id: str, error: OperationError) -> OperationError:
    """Maps the errors of the verifier request to use case errors"""
    if error.type == ErrorType.NOT_FOUND:
        _logger.info(f"{error.subject} is not found")
        return OperationError(type=ErrorType.NOT_FOUND)
    if error.type == ErrorType.EXPIRED:
        return OperationError(type=ErrorType.EXPIRED)
    if error.type == ErrorType.CONSUMED:
        return OperationError(type=ErrorType.CONFLICT, message=f"request {request_id} is already consumed")
    return OperationError(type=ErrorType.UNEXPECTED_ERROR, cause=error.cause)


def handle_endpoint_error(error: OperationError) -> OperationError:
    """Maps the errors of the response endpoint to use case errors"""
    if error.type == ErrorType.NOT_FOUND:
        _logger.info(f"{error.subject} is not found")
        return OperationError(type=ErrorType.NOT_FOUND, message="authorization response is not found.")
    if error.type == ErrorType.EXPIRED:
        return OperationError(type=ErrorType.EXPIRED, message="authorization response is expired.")
    if error.type == ErrorType.INVALID_AUTH_RESPONSE_PAYLOAD:
        return OperationError(type=ErrorType.UNEXPECTED_ERROR, message="invalid authorization response has been saved.")
    return OperationError(type=ErrorType.UNEXPECTED_ERROR, cause=error.cause)


def _operations_log(message: str, step: VerifierOperationsLogEntry.Step, request_id: str | None, error_code: str | None = None) -> VerifierOperationsLogEntry:
    return VerifierOperationsLogEntry(
        message=message,
        status=VerifierOperationsLogEntry.Status.error if error_code else VerifierOperationsLogEntry.Status.success,
        operation=VerifierOperationsLogEntry.Operation.verification,
        step=step,
        request_id=request_id,
        error_code=error_code,
    )


class OID4VPInteractor:
    def __init__(
        self,
        config: conf.VerifierConfig,
        verifier: Verifier,
        response_endpoint: ResponseEndpoint,
        state_machine: PostStateMachine,
        session_repository: SessionRepository,
        key_configuration: KeyConfiguration,
        chain_validator: x509.CertificateChainValidator,
    ):
        self.config = config
        self.verifier = verifier
        self.response_endpoint = response_endpoint
        self.state_machine = state_machine
        self.session_repository = session_repository
        self.key_configuration = key_configuration
        self.chain_validator = chain_validator

    def _client_metadata(self) -> models.ClientMetadata:
        return generate_client_metadata(
            self.config.client_id,
            client_name=self.config.client_name,
            logo_uri=self.config.logo_uri,
            policy_uri=self.config.policy_uri,
            tos_uri=self.config.tos_uri,
        )

    def _request_object_options(self, dcql_query: models.DcqlQuery) -> models.RequestObjectOptions:
        return models.RequestObjectOptions(
            response_type=RESPONSE_TYPE,
            response_mode="direct_post.jwt" if self.config.enable_encryption else "direct_post",
            response_uri=self.config.response_uri,
            client_metadata=self._client_metadata(),
            dcql_query=dcql_query,
            client_id_scheme=self.config.client_id_scheme,
        )

    def generate_auth_request(self, dcql_credential_queries: list[dict] | None = None) -> Result[models.GeneratedAuthRequest]:
        """
        Starts a transaction.

        For the x509 client id schemes the wallet gets a request_uri to fetch the signed request object,
        otherwise the request parameters are returned directly. Without credential queries all claims
        of the learning credential are requested.
        """
        request = self.response_endpoint.initiate_transaction(
            response_type=RESPONSE_TYPE,
            redirect_uri_returned_by_response_uri=self.config.redirect_uri_returned_by_response_uri or None,
            use_transaction_id=self.config.use_transaction_id,
            expired_in=self.config.request_expired_in_at_response_endpoint,
            enable_encryption=self.config.enable_encryption,
        )
        dcql_query = self.verifier.generate_dcql_query(dcql_credential_queries or DEFAULT_DCQL_CREDENTIAL_QUERIES)

        nonce = None
        if self.config.signs_request_object:
            authorization_request = models.AuthorizationRequest(
                client_id=self.config.client_id,
                request_uri=f"{self.config.request_uri}?id={request.id}",
            )
        else:
            nonce = str(uuid.uuid4())
            authorization_request = self.verifier.start_request(
                request,
                self.config.client_id,
                expired_in=self.config.request_expired_in_at_verifier,
                request_object_options=self._request_object_options(dcql_query),
                generate_id=lambda: nonce,
            )

        # The signed request object is generated later on, with the credential queries chosen here
        self.response_endpoint.save_request(request.model_copy(update={"dcql_query": dcql_query.model_dump(exclude_none=True), "nonce": nonce}))
        self.state_machine.put_state(request.id, models.PostStateValue.started, expired_in=self.config.post_session_expired_in)

        _logger.info(_operations_log("Authorization request generated.", VerifierOperationsLogEntry.Step.authorization_request, request.id))
        return Result.success(
            models.GeneratedAuthRequest(
                authorization_request=authorization_request,
                request_id=request.id,
                transaction_id=request.transaction_id,
            )
        )

    def get_request_object(self, request_id: str) -> Result[str]:
        """
        Signed request object of a transaction started with an x509 client id scheme.
        Each call issues a new nonce, a request already consumed is not reissued.
        """
        request = self.response_endpoint.get_request(request_id)
        if request is None:
            return Result.failure(ErrorType.INVALID_PARAMETER, message="request is not found.")
        if request.is_expired():
            return Result.failure(ErrorType.EXPIRED)
        previous = self.verifier.get_request(request_id)
        if not previous.ok and previous.error.type == ErrorType.CONSUMED:
            return Result.of_error(handle_request_error(request_id, previous.error))

        dcql_query = models.DcqlQuery.model_validate(request.dcql_query) if request.dcql_query else self.verifier.generate_dcql_query(DEFAULT_DCQL_CREDENTIAL_QUERIES)
        nonce = str(uuid.uuid4())
        authorization_request = self.verifier.start_request(
            request,
            self.config.client_id,
            expired_in=self.config.request_expired_in_at_verifier,
            issuer_jwk=self.key_configuration.private_jwk,
            request_object_options=self._request_object_options(dcql_query),
            generate_id=lambda: nonce,
            x5c=self.key_configuration.x5c,
        )
        self.response_endpoint.save_request(request.model_copy(update={"nonce": nonce}))

        _logger.info(_operations_log("Request object delivered.", VerifierOperationsLogEntry.Step.request_object, request_id))
        return Result.success(authorization_request.request)

    def receive_auth_response(self, payload: dict) -> Result[models.ReceiveAuthResponseResult]:
        result = self.response_endpoint.receive_auth_response(
            payload,
            expired_in=self.config.response_expired_in,
            verification_callback=SdJwtVerificationCallback(self.chain_validator),
        )
        if not result.ok:
            error_type = result.error.type
            _logger.info(_operations_log("Authorization response rejected.", VerifierOperationsLogEntry.Step.authorization_response, payload.get("state"), error_type.value))
            if error_type == ErrorType.REQUEST_ID_IS_NOT_FOUND:
                return Result.failure(ErrorType.NOT_FOUND)
            return Result.failure(ErrorType.INVALID_PARAMETER)

        self.state_machine.put_state(result.payload.request_id, models.PostStateValue.consumed)
        _logger.info(_operations_log("Authorization response received.", VerifierOperationsLogEntry.Step.authorization_response, result.payload.request_id))
        return result

    def _mark_invalid_submission(self, request_id: str) -> None:
        try:
            self.state_machine.put_state(request_id, models.PostStateValue.invalid_submission)
        except Exception:
            _logger.exception(f"[requestId={request_id}] Failed to update post state to invalid_submission")

    def exchange_auth_response(self, response_code: str, transaction_id: str | None = None) -> Result[models.ExchangedAuthResponse]:
        """
        Redeems the response code, verifies the presented credential and commits the transaction.
        """
        exchange = self.response_endpoint.exchange_response_code_for_auth_response(response_code, transaction_id)
        if not exchange.ok:
            return Result.of_error(handle_endpoint_error(exchange.error))
        request_id = exchange.payload.request_id
        payload = exchange.payload.payload

        verifier_request = self.verifier.get_request(request_id)
        if not verifier_request.ok:
            return Result.of_error(handle_request_error(request_id, verifier_request.error))

        credential = extract_credential_from_vp_token(payload.vp_token, self.config.credential_query_id, verifier_request.payload.nonce, self.chain_validator)
        if not credential.ok:
            _logger.info(
                _operations_log(
                    f"Credential extraction failed: {credential.error.message}",
                    VerifierOperationsLogEntry.Step.credential_extraction,
                    request_id,
                    credential.error.type.value,
                )
            )
            self._mark_invalid_submission(request_id)
            return Result.of_error(OperationError(type=credential.error.type, message=credential.error.message))

        consumed = self.verifier.consume_request(request_id)
        if not consumed.ok:
            _logger.info(f"[requestId={request_id}] consume request failed: {consumed.error.type.value}")
            return Result.of_error(handle_request_error(request_id, consumed.error))

        self.session_repository.put_wait_commit_data(
            request_id,
            payload.id_token,
            credential.payload.credential,
            icon=credential.payload.icon,
            claims=credential.payload.claims,
            expired_in=self.config.post_session_expired_in,
        )
        self.state_machine.put_state(request_id, models.PostStateValue.committed)

        _logger.info(_operations_log("Presentation committed.", VerifierOperationsLogEntry.Step.response_code_exchange, request_id))
        return Result.success(
            models.ExchangedAuthResponse(
                request_id=request_id,
                claimer=models.Claimer(id_token=payload.id_token, learning_credential=credential.payload.credential),
            )
        )

    def get_states(self, request_id: str) -> models.PostState | None:
        return self.state_machine.get_state(request_id)

    def get_credential_data(self, request_id: str) -> Result[models.WaitCommitData.Data]:
        session = self.session_repository.get_session(request_id)
        if not session.ok:
            if session.error.type in (ErrorType.NOT_FOUND, ErrorType.EXPIRED):
                return Result.failure(session.error.type)
            return Result.failure(ErrorType.UNEXPECTED_ERROR)
        return Result.success(session.payload.data)


def get_interactor(
    config: conf.inject,
    key_configuration: Annotated[KeyConfiguration, Depends(conf.get_key_configuration)],
    chain_validator: Annotated[x509.CertificateChainValidator, Depends(conf.get_chain_validator)],
) -> OID4VPInteractor:
    retention = config.storage_retention
    return OID4VPInteractor(
        config,
        Verifier(cache.VerifierRequestService(cache.cache, retention)),
        ResponseEndpoint(cache.RequestService(cache.cache, retention), cache.ResponseService(cache.cache, retention)),
        PostStateMachine(cache.PostStateService(cache.cache, retention), config.post_session_expired_in),
        SessionRepository(cache.SessionService(cache.cache, retention)),
        key_configuration,
        chain_validator,
    )


inject = Annotated[OID4VPInteractor, Depends(get_interactor)]
