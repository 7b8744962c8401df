# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Endpoints called by the relying party frontend. The transaction is followed with the
request_id & transaction_id cookies set when the authorization request is generated.
"""

import logging
from typing import Annotated

import fastapi
from fastapi import Cookie, Query, Response, status

from common.apikey import require_api_key
import verifier.config as conf
import verifier.exception as ex
import verifier.interactor as interactor
import verifier.models as models
from verifier.presenters import auth_request_presenter, exchange_response_code_presenter, post_state_presenter

_logger = logging.getLogger(__name__)

TAG = "Verification Management"

REQUEST_ID_COOKIE = "request_id"
TRANSACTION_ID_COOKIE = "transaction_id"

router = fastapi.APIRouter(prefix="/oid4vp", dependencies=[fastapi.Security(require_api_key)], tags=[TAG])


def _set_cookie(response: Response, name: str, value: str) -> None:
    response.set_cookie(name, value, httponly=True, samesite="lax")


def _request_id(cookie: str | None, query: str | None) -> str:
    request_id = cookie or query
    if not request_id:
        raise ex.MissingSessionError()
    return request_id


@router.post(
    "/auth-request",
    description="Starts a transaction and returns the authorization request url for the wallet (QR code).",
)
def create_auth_request(
    response: Response,
    oid4vp: interactor.inject,
    config: conf.inject,
    dcql_credential_queries: list[models.DcqlCredentialQuery] | None = fastapi.Body(default=None, embed=True),
) -> dict:
    queries = [query.model_dump(exclude_none=True) for query in dcql_credential_queries] if dcql_credential_queries else None
    result = oid4vp.generate_auth_request(queries)
    if not result.ok:
        raise ex.error_to_exception(result.error)
    generated = result.payload
    _set_cookie(response, REQUEST_ID_COOKIE, generated.request_id)
    if generated.transaction_id:
        _set_cookie(response, TRANSACTION_ID_COOKIE, generated.transaction_id)
    return {"value": auth_request_presenter(generated.authorization_request, config.request_host)}


@router.post(
    "/response-code/exchange",
    responses={
        status.HTTP_404_NOT_FOUND: {"model": ex.OpenIdError},
        status.HTTP_409_CONFLICT: {"model": ex.OpenIdError},
        status.HTTP_410_GONE: {"model": ex.OpenIdError},
    },
)
def exchange_response_code(
    response: Response,
    oid4vp: interactor.inject,
    response_code: str | None = None,
    transaction_id: Annotated[str | None, Cookie()] = None,
) -> dict:
    """Exchanges the response code the wallet redirected the user with for the presented data."""
    if not response_code:
        raise ex.InvalidRequestError(additional_error_description="response_code should be specified.")
    result = oid4vp.exchange_auth_response(response_code, transaction_id)
    if not result.ok:
        _logger.info(f"response-code/exchange failed: {result.error.type.value}")
        raise ex.error_to_exception(result.error)
    _set_cookie(response, REQUEST_ID_COOKIE, result.payload.request_id)
    return exchange_response_code_presenter(result.payload)


@router.get("/states", responses={status.HTTP_404_NOT_FOUND: {"model": None}})
def get_states(
    oid4vp: interactor.inject,
    request_id: Annotated[str | None, Cookie()] = None,
    request_id_query: Annotated[str | None, Query(alias="request_id")] = None,
) -> dict:
    """Progress of the transaction, polled by the frontend while the wallet is in use."""
    request_id = _request_id(request_id, request_id_query)
    state = post_state_presenter(oid4vp.get_states(request_id))
    if state is None:
        raise ex.TransactionNotFoundError()
    return {**state, "request_id": request_id}


@router.get(
    "/credential-data",
    responses={
        status.HTTP_404_NOT_FOUND: {"model": ex.OpenIdError},
        status.HTTP_410_GONE: {"model": ex.OpenIdError},
    },
)
def get_credential_data(
    oid4vp: interactor.inject,
    request_id: Annotated[str | None, Cookie()] = None,
    request_id_query: Annotated[str | None, Query(alias="request_id")] = None,
) -> models.WaitCommitData.Data:
    """Data of a committed presentation"""
    result = oid4vp.get_credential_data(_request_id(request_id, request_id_query))
    if not result.ok:
        raise ex.error_to_exception(result.error)
    return result.payload
