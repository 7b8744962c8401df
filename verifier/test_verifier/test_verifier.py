# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Tests Verification Flow
"""

import inspect
import json
from unittest import mock
from urllib.parse import parse_qs, urlsplit

from fastapi import status
from fastapi.testclient import TestClient
from jwcrypto import jwk, jwt
import pytest

import common.config as common_conf
from common import jwt_utils
from common.key_configuration import KeyConfiguration
from common.test_helpers import wallet_helper
import verifier.cache.verifier_cache as cache
import verifier.config as conf
from verifier.config import VerifierConfig
from verifier.oid4vp import client_id as client_id_validation
from verifier.route import openid

RESPONSE_URI = "https://verifier.example.com/oid4vp/responses"
REQUEST_URI = "https://verifier.example.com/oid4vp/request"
REDIRECT_URI = "https://verifier.example.com/callback"

DEFAULT_CONFIG = {
    "client_id": f"redirect_uri:{RESPONSE_URI}",
    "response_uri": RESPONSE_URI,
    "redirect_uri_returned_by_response_uri": REDIRECT_URI,
    "include_system_roots": False,
}
X509_CONFIG = {
    **DEFAULT_CONFIG,
    "client_id": "x509_san_dns:verifier.example.com",
    "client_id_scheme": "x509_san_dns",
    "request_uri": REQUEST_URI,
}
ENCRYPTION_CONFIG = {**DEFAULT_CONFIG, "enable_encryption": True}
TRANSACTION_ID_CONFIG = {**DEFAULT_CONFIG, "use_transaction_id": True}


@pytest.fixture
def client(request, redis_cache, chain_validator, verifier_pki) -> TestClient:
    from verifier.verifier import app

    config = VerifierConfig(**getattr(request, "param", DEFAULT_CONFIG))
    key_configuration = KeyConfiguration(verifier_pki.leaf_jwk, verifier_pki.x5c)

    # The openid sub application shares the overrides of the app
    original_overrides = dict(app.dependency_overrides)
    app.dependency_overrides.update(
        {
            conf.get_config: lambda: config,
            common_conf.get_config: lambda: config,
            conf.get_key_configuration: lambda: key_configuration,
            conf.get_chain_validator: lambda: chain_validator,
        }
    )

    with mock.patch.object(cache, "cache", redis_cache):
        client = TestClient(app, headers={"x-api-key": "tergum_dev_key"})
        yield client
        client.close()

    app.dependency_overrides.clear()
    app.dependency_overrides.update(original_overrides)


def _query(url: str) -> dict:
    return {name: values[0] for name, values in parse_qs(urlsplit(url).query).items()}


def _create_auth_request(client: TestClient, body: dict | None = None) -> dict:
    response = client.post("/oid4vp/auth-request", json=body)
    assert response.status_code == status.HTTP_200_OK
    value = response.json()["value"]
    assert value.startswith("openid4vp://authorize?")
    return _query(value)


def _present(client: TestClient, issuer, wallet, nonce: str, state: str) -> dict:
    presentation = wallet_helper.create_presentation(issuer.issue(wallet), wallet, nonce)
    response = client.post("/oid4vp/responses", data=wallet_helper.create_response_form(wallet_helper.create_vp_token(presentation), state))
    assert response.status_code == status.HTTP_200_OK
    return {"presentation": presentation, **response.json()}


def _response_code(redirect_uri: str) -> str:
    assert redirect_uri.startswith(f"{REDIRECT_URI}#response_code=")
    return redirect_uri.split("#response_code=")[1]


def _state(client: TestClient) -> str:
    response = client.get("/oid4vp/states")
    assert response.status_code == status.HTTP_200_OK
    return response.json()["value"]


def test_verification_flow(client, issuer, wallet):
    params = _create_auth_request(client)
    assert params["client_id"] == DEFAULT_CONFIG["client_id"]
    assert params["response_type"] == "vp_token"
    assert params["response_mode"] == "direct_post"
    assert params["response_uri"] == RESPONSE_URI
    dcql_query = json.loads(params["dcql_query"])
    assert dcql_query["credentials"][0]["meta"]["vct_values"] == ["urn:eu.europa.ec.eudi:learning:credential:1"]
    assert len(dcql_query["credentials"][0]["claims"]) == 9
    request_id = params["state"]
    assert client.cookies.get("request_id") == request_id
    assert _state(client) == "started"

    wallet_response = _present(client, issuer, wallet, params["nonce"], request_id)
    assert _state(client) == "consumed"

    response = client.post("/oid4vp/response-code/exchange", params={"response_code": _response_code(wallet_response["redirect_uri"])})
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"id_token": None, "sub": "", "learning_credential": wallet_response["presentation"]}
    assert _state(client) == "committed"

    response = client.get("/oid4vp/credential-data")
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["learning_credential"] == wallet_response["presentation"]
    assert data["icon"] == wallet_helper.LEARNING_CREDENTIAL_CLAIMS["portrait"]
    assert data["claims"]["achievement_title"] == "Applied Cryptography"

    # the state is also available with the request id as query parameter
    client.cookies.clear()
    response = client.get("/oid4vp/states", params={"request_id": request_id})
    assert response.json() == {"value": "committed", "request_id": request_id}


def test_custom_credential_queries(client):
    query = {"id": "learning_credential", "format": "dc+sd-jwt", "claims": [{"path": ["given_name"]}]}
    params = _create_auth_request(client, {"dcql_credential_queries": [query]})
    assert json.loads(params["dcql_query"]) == {"credentials": [query]}


def test_response_code_is_exchanged_once(client, issuer, wallet):
    params = _create_auth_request(client)
    response_code = _response_code(_present(client, issuer, wallet, params["nonce"], params["state"])["redirect_uri"])

    assert client.post("/oid4vp/response-code/exchange", params={"response_code": response_code}).status_code == status.HTTP_200_OK
    response = client.post("/oid4vp/response-code/exchange", params={"response_code": response_code})
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error"] == "not_found"


def test_nonce_mismatch(client, issuer, wallet):
    params = _create_auth_request(client)
    wallet_response = _present(client, issuer, wallet, "another nonce", params["state"])

    response = client.post("/oid4vp/response-code/exchange", params={"response_code": _response_code(wallet_response["redirect_uri"])})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "invalid_request"
    assert response.json()["additional_error_description"] == "nonce mismatch"
    assert _state(client) == "invalid_submission"
    assert client.get("/oid4vp/credential-data").status_code == status.HTTP_404_NOT_FOUND


def test_malformed_issuer_key(client, issuer, wallet):
    params = _create_auth_request(client)
    credential = wallet_helper.replace_issuer_header(issuer.issue(wallet), {"alg": "ES256", "typ": "dc+sd-jwt", "jwk": {"kty": "foo"}})
    presentation = wallet_helper.create_presentation(credential, wallet, params["nonce"])
    response = client.post("/oid4vp/responses", data=wallet_helper.create_response_form(wallet_helper.create_vp_token(presentation), params["state"]))
    assert response.status_code == status.HTTP_200_OK

    response = client.post("/oid4vp/response-code/exchange", params={"response_code": _response_code(response.json()["redirect_uri"])})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "invalid_request"
    assert response.json()["additional_error_description"] == "credential verification failed"
    assert _state(client) == "invalid_submission"


@pytest.mark.parametrize("client", [X509_CONFIG], indirect=True)
def test_signed_request_object_flow(client, issuer, wallet, verifier_pki):
    params = _create_auth_request(client)
    assert params["client_id"] == X509_CONFIG["client_id"]
    assert "nonce" not in params
    request_uri = params["request_uri"]
    assert request_uri.startswith(f"{REQUEST_URI}?id=")
    request_id = _query(request_uri)["id"]

    response = client.get("/oid4vp/request", params={"id": request_id})
    assert response.status_code == status.HTTP_200_OK
    assert response.headers["content-type"].startswith("application/oauth-authz-req+jwt")
    assert response.headers["cache-control"] == "no-store"
    request_object = response.text

    # wallet side checks of the request object
    header = jwt_utils.get_header(request_object)
    assert header.alg == "ES256"
    assert client_id_validation.validate_client_id(X509_CONFIG["client_id"], header.x5c).valid
    claims = json.loads(jwt.JWT(jwt=request_object, key=jwk.JWK.from_pyca(verifier_pki.leaf.public_key())).claims)
    assert claims["state"] == request_id
    assert claims["response_mode"] == "direct_post"
    assert claims["client_metadata"]["vp_formats"] == {"jwt_vp": {"alg": ["ES256"]}}

    wallet_response = _present(client, issuer, wallet, claims["nonce"], request_id)
    response = client.post("/oid4vp/response-code/exchange", params={"response_code": _response_code(wallet_response["redirect_uri"])})
    assert response.status_code == status.HTTP_200_OK

    # a consumed request is not issued again
    response = client.get("/oid4vp/request", params={"id": request_id})
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"] == "conflict"


@pytest.mark.parametrize("client", [X509_CONFIG], indirect=True)
def test_request_object_has_fresh_nonce(client, issuer, wallet):
    request_id = _query(_create_auth_request(client)["request_uri"])["id"]
    first = jwt_utils.get_unverified_payload(client.get("/oid4vp/request", params={"id": request_id}).text)
    second = jwt_utils.get_unverified_payload(client.get("/oid4vp/request", params={"id": request_id}).text)
    assert first["nonce"] != second["nonce"]

    # only the nonce of the latest request object is accepted
    wallet_response = _present(client, issuer, wallet, first["nonce"], request_id)
    response = client.post("/oid4vp/response-code/exchange", params={"response_code": _response_code(wallet_response["redirect_uri"])})
    assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.parametrize("client", [ENCRYPTION_CONFIG], indirect=True)
def test_encrypted_response_flow(client, issuer, wallet):
    params = _create_auth_request(client)
    assert params["response_mode"] == "direct_post.jwt"
    client_metadata = json.loads(params["client_metadata"])
    encryption_jwk = client_metadata["jwks"]["keys"][0]
    assert encryption_jwk["alg"] == "ECDH-ES"
    assert "d" not in encryption_jwk
    assert client_metadata["encrypted_response_enc_values_supported"] == ["A128GCM"]

    presentation = wallet_helper.create_presentation(issuer.issue(wallet), wallet, params["nonce"])
    form = wallet_helper.create_encrypted_response_form(wallet_helper.create_vp_token(presentation), params["state"], encryption_jwk)
    response = client.post("/oid4vp/responses", data=form)
    assert response.status_code == status.HTTP_200_OK
    response_code = _response_code(response.json()["redirect_uri"])

    # a replayed response is not decrypted again
    replayed = client.post("/oid4vp/responses", data=form)
    assert replayed.status_code == status.HTTP_400_BAD_REQUEST

    response = client.post("/oid4vp/response-code/exchange", params={"response_code": response_code})
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["learning_credential"] == presentation


@pytest.mark.parametrize("client", [ENCRYPTION_CONFIG], indirect=True)
def test_encrypted_response_with_foreign_key(client):
    params = _create_auth_request(client)
    foreign_key = jwk.JWK.generate(kty="EC", crv="P-256").export_public(as_dict=True)
    form = wallet_helper.create_encrypted_response_form({"learning_credential": ["a~b~"]}, params["state"], foreign_key)
    response = client.post("/oid4vp/responses", data=form)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "invalid_request"


@pytest.mark.parametrize("client", [TRANSACTION_ID_CONFIG], indirect=True)
def test_transaction_id_binding(client, issuer, wallet):
    params = _create_auth_request(client)
    assert client.cookies.get("transaction_id")
    wallet_response = _present(client, issuer, wallet, params["nonce"], params["state"])

    # another browser session only knows the response code
    client.cookies.delete("transaction_id")
    response = client.post("/oid4vp/response-code/exchange", params={"response_code": _response_code(wallet_response["redirect_uri"])})
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_json_authorization_response(client, issuer, wallet):
    params = _create_auth_request(client)
    presentation = wallet_helper.create_presentation(issuer.issue(wallet), wallet, params["nonce"])
    response = client.post("/oid4vp/responses", json={"vp_token": wallet_helper.create_vp_token(presentation), "state": params["state"]})
    assert response.status_code == status.HTTP_200_OK
    assert "redirect_uri" in response.json()


@pytest.mark.parametrize("client", [{**DEFAULT_CONFIG, "redirect_uri_returned_by_response_uri": ""}], indirect=True)
def test_authorization_response_without_redirect(client, issuer, wallet):
    params = _create_auth_request(client)
    presentation = wallet_helper.create_presentation(issuer.issue(wallet), wallet, params["nonce"])
    response = client.post("/oid4vp/responses", data=wallet_helper.create_response_form(wallet_helper.create_vp_token(presentation), params["state"]))
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {}


@pytest.mark.parametrize(
    "data, status_code, error",
    [
        ({}, status.HTTP_400_BAD_REQUEST, "invalid_request"),
        ({"vp_token": "{}"}, status.HTTP_400_BAD_REQUEST, "invalid_request"),
        ({"vp_token": '{"learning_credential": ["a~b~"]}', "state": "unknown"}, status.HTTP_404_NOT_FOUND, "not_found"),
    ],
)
def test_invalid_authorization_response(client, data, status_code, error):
    response = client.post("/oid4vp/responses", data=data)
    assert response.status_code == status_code
    assert response.json()["error"] == error
    assert response.headers["cache-control"] == "no-store"


@pytest.mark.parametrize(
    "content, description",
    [
        ("[]", "Body has to be a JSON object."),
        ("{", "Body is no valid JSON."),
        ("{}", "Body is missing."),
    ],
)
def test_invalid_json_authorization_response(client, content, description):
    response = client.post("/oid4vp/responses", content=content, headers={"content-type": "application/json"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["additional_error_description"] == description


def test_authorization_response_is_processed_in_threadpool():
    # blocking crypto and storage calls must not run on the event loop
    assert not inspect.iscoroutinefunction(openid.receive_authorization_response)


@pytest.mark.parametrize("client", [X509_CONFIG], indirect=True)
def test_invalid_request_object_request(client):
    assert client.get("/oid4vp/request").status_code == status.HTTP_400_BAD_REQUEST
    response = client.get("/oid4vp/request", params={"id": "unknown"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["additional_error_description"] == "request is not found."


def test_management_requires_api_key(client):
    assert client.post("/oid4vp/auth-request", headers={"x-api-key": "wrong"}).status_code == status.HTTP_401_UNAUTHORIZED
    assert client.get("/oid4vp/states", headers={"x-api-key": ""}).status_code == status.HTTP_401_UNAUTHORIZED


def test_missing_transaction(client):
    response = client.get("/oid4vp/states")
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "invalid_request"
    assert client.get("/oid4vp/states", params={"request_id": "unknown"}).status_code == status.HTTP_404_NOT_FOUND
    assert client.get("/oid4vp/credential-data", params={"request_id": "unknown"}).status_code == status.HTTP_404_NOT_FOUND
    assert client.post("/oid4vp/response-code/exchange").status_code == status.HTTP_400_BAD_REQUEST
    assert client.post("/oid4vp/response-code/exchange", params={"response_code": "unknown"}).status_code == status.HTTP_404_NOT_FOUND


def test_health(client):
    response = client.get("/health/readiness")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "http_server_connectivity": "HEALTHY",
        "configuration_verifier_has_minimum_config": "HEALTHY",
        "configuration_verifier_has_signing_key": "HEALTHY",
        "storage_connectivity": "HEALTHY",
    }
    assert client.get("/health/liveness").json() == {"http_server_connectivity": "HEALTHY"}


@pytest.mark.parametrize("client", [{**DEFAULT_CONFIG, "response_uri": ""}], indirect=True)
def test_health_incomplete_config(client):
    response = client.get("/health/readiness")
    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json()["configuration_verifier_has_minimum_config"] == "UNHEALTHY"
