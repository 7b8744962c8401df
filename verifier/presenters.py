# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Presentation of the use case results in the http responses
"""

import json
from urllib.parse import urlencode

import verifier.models as models


def auth_request_presenter(authorization_request: models.AuthorizationRequest, request_host: str) -> str:
    """
    Authorization request url for the wallet (QR code / deeplink).
    Object valued parameters (client_metadata, dcql_query) are JSON encoded.
    """
    if authorization_request.request_uri:
        query = urlencode({"client_id": authorization_request.client_id, "request_uri": authorization_request.request_uri})
    else:
        params = {"client_id": authorization_request.client_id}
        for name, value in (authorization_request.params or {}).items():
            params[name] = json.dumps(value) if isinstance(value, (dict, list)) else value
        query = urlencode(params)
    return f"{request_host}?{query}"


def auth_response_presenter(redirect_uri: str | None, response_code: str) -> dict:
    """
    https://openid.net/specs/openid-4-verifiable-presentations-1_0.html#name-response-mode-direct_post
    Without redirect uri the wallet gets an empty object.
    """
    if not redirect_uri:
        return {}
    return {"redirect_uri": f"{redirect_uri}#response_code={response_code}"}


def exchange_response_code_presenter(exchanged: models.ExchangedAuthResponse) -> dict:
    return exchanged.claimer.model_dump()


def post_state_presenter(state: models.PostState | None) -> dict | None:
    return {"value": state.value.value} if state else None
