# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Endpoints called by the wallets
"""

import json
import logging
from typing import Annotated

import fastapi
from fastapi import Depends, Request, Response, status

import verifier.exception as ex
import verifier.interactor as interactor
from verifier.presenters import auth_response_presenter

TAG = "OpenID"

REQUEST_OBJECT_MEDIA_TYPE = "application/oauth-authz-req+jwt"

_logger = logging.getLogger(__name__)

router = fastapi.APIRouter(prefix="/oid4vp", tags=[TAG])


@router.get(
    "/request",
    responses={
        status.HTTP_200_OK: {"content": {REQUEST_OBJECT_MEDIA_TYPE: {}}},
        status.HTTP_400_BAD_REQUEST: {"model": ex.OpenIdError},
        status.HTTP_410_GONE: {"model": ex.OpenIdError},
    },
)
def get_request_object(oid4vp: interactor.inject, id: str | None = None) -> Response:
    """
    Returns the signed Request Object referenced by the request_uri of the authorization request.
    https://openid.net/specs/openid-4-verifiable-presentations-1_0.html#name-request-uri-method-get
    """
    if not id:
        raise ex.InvalidRequestError(additional_error_description="id should be specified.")
    result = oid4vp.get_request_object(id)
    if not result.ok:
        raise ex.error_to_exception(result.error)
    return Response(content=result.payload, media_type=REQUEST_OBJECT_MEDIA_TYPE, headers={"Cache-Control": "no-store"})


async def _read_payload(request: Request) -> dict:
    """Authorization responses are form encoded, JSON bodies are accepted as well"""
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            payload = await request.json()
        except ValueError:
            raise ex.InvalidRequestError(additional_error_description="Body is no valid JSON.")
        if not isinstance(payload, dict):
            raise ex.InvalidRequestError(additional_error_description="Body has to be a JSON object.")
        return payload
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


@router.post(
    "/responses",
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ex.OpenIdError},
        status.HTTP_404_NOT_FOUND: {"model": ex.OpenIdError},
    },
)
def receive_authorization_response(payload: Annotated[dict, Depends(_read_payload)], oid4vp: interactor.inject) -> dict:
    """
    Response Endpoint for response_mode direct_post & direct_post.jwt.
    https://openid.net/specs/openid-4-verifiable-presentations-1_0.html#name-response-mode-direct_post
    """
    if not payload:
        raise ex.InvalidRequestError(additional_error_description="Body is missing.")
    _logger.info(f"Authorization response received from wallet with parameters {sorted(payload)}")
    _logger.debug(f"Authorization response: {json.dumps(payload)}")

    result = oid4vp.receive_auth_response(payload)
    if not result.ok:
        raise ex.error_to_exception(result.error)
    return auth_response_presenter(result.payload.redirect_uri, result.payload.id)
