# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import os
from functools import cache
from typing import Annotated, Any

from fastapi import Depends

import common.config as conf
from common import x509
from common.key_configuration import KeyConfiguration
from common.parsing import interpret_as_bool
from verifier.models import ClientIdScheme


def _int(value: str | None) -> int | None:
    return int(value) if value is not None else None


class VerifierConfig(conf.Config):
    app_name: str = "OID4VP Verifier"

    client_id: str = ""
    '''Client identifier including its prefix, e.g. x509_san_dns:verifier.example.com'''
    client_id_scheme: ClientIdScheme = "redirect_uri"
    '''redirect_uri: unsigned request parameters. x509_*: request_uri pointing to a signed request object.'''

    request_host: str = "openid4vp://authorize"
    '''Base of the authorization request url handed to the wallet'''
    request_uri: str = ""
    '''Public url of GET /oid4vp/request'''
    response_uri: str = ""
    '''Public url of the response endpoint (POST /oid4vp/responses)'''
    redirect_uri_returned_by_response_uri: str = ""
    '''Frontend url the wallet is redirected to, extended by #response_code=<code>'''

    enable_encryption: bool = False
    '''Request encrypted responses (direct_post.jwt, ECDH-ES + A128GCM)'''
    use_transaction_id: bool = False
    '''Bind the response code exchange to the browser session starting the transaction (transaction_id cookie)'''

    request_expired_in_at_verifier: int = 600
    request_expired_in_at_response_endpoint: int = 600
    response_expired_in: int = 600
    post_session_expired_in: int = 600

    storage_retention: int = 86400
    '''
    Data lives 1 day (60*60*24 = 86400 secs) beyond its expiry in the storage,
    so that it is reported as expired and not as unknown
    '''

    verifier_private_key_file: str | None = None
    '''PEM file of the request object signing key, alternatively VERIFIER_PRIVATE_KEY'''
    verifier_certificate_file: str | None = None
    '''PEM file of the certificate chain of the signing key (leaf first), alternatively VERIFIER_CERTIFICATE'''
    trusted_certificates_dir: str | None = None
    '''Directory with additional trust anchors (.cer, .crt, .pem) for credential issuer chains'''
    include_system_roots: bool = True

    client_name: str | None = None
    logo_uri: str | None = None
    policy_uri: str | None = None
    tos_uri: str | None = None

    credential_query_id: str = "learning_credential"
    '''Id of the DCQL credential query the presented credential is taken from'''

    @classmethod
    def _environment(cls) -> dict[str, Any]:
        environment = super()._environment()
        environment.update(
            {
                "client_id": os.getenv("OID4VP_CLIENT_ID"),
                "client_id_scheme": os.getenv("OID4VP_CLIENT_ID_SCHEME"),
                "request_host": os.getenv("OID4VP_REQUEST_HOST"),
                "request_uri": os.getenv("OID4VP_REQUEST_URI"),
                "response_uri": os.getenv("OID4VP_RESPONSE_URI"),
                "redirect_uri_returned_by_response_uri": os.getenv("OID4VP_REDIRECT_URI_RETURNED_BY_RESPONSE_URI"),
                "enable_encryption": interpret_as_bool(os.getenv("OID4VP_VP_TOKEN_ENCRYPTION_ENABLED", "False")),
                "use_transaction_id": interpret_as_bool(os.getenv("OID4VP_USE_TRANSACTION_ID", "False")),
                "request_expired_in_at_verifier": _int(os.getenv("OID4VP_REQUEST_EXPIRED_IN_AT_VERIFIER")),
                "request_expired_in_at_response_endpoint": _int(os.getenv("OID4VP_REQUEST_EXPIRED_IN_AT_RESPONSE_ENDPOINT")),
                "response_expired_in": _int(os.getenv("OID4VP_RESPONSE_EXPIRED_IN")),
                "post_session_expired_in": _int(os.getenv("POST_SESSION_EXPIRED_IN")),
                "storage_retention": _int(os.getenv("STORAGE_RETENTION")),
                "verifier_private_key_file": os.getenv("OID4VP_VERIFIER_PRIVATE_KEY_FILE"),
                "verifier_certificate_file": os.getenv("OID4VP_VERIFIER_CERTIFICATE_FILE"),
                "trusted_certificates_dir": os.getenv("TRUSTED_CERTIFICATES_DIR"),
                "include_system_roots": interpret_as_bool(os.getenv("INCLUDE_SYSTEM_ROOT_CERTIFICATES", "True")),
                "client_name": os.getenv("OID4VP_CLIENT_METADATA_NAME"),
                "logo_uri": os.getenv("OID4VP_CLIENT_METADATA_LOGO_URI"),
                "policy_uri": os.getenv("OID4VP_CLIENT_METADATA_POLICY_URI"),
                "tos_uri": os.getenv("OID4VP_CLIENT_METADATA_TOS_URI"),
                "credential_query_id": os.getenv("OID4VP_CREDENTIAL_QUERY_ID"),
            }
        )
        return environment

    @property
    def signs_request_object(self) -> bool:
        return self.client_id_scheme != "redirect_uri"

    def has_minimum_config(self) -> bool:
        return all([self.client_id, self.response_uri, self.api_key])


@cache
def get_config() -> VerifierConfig:
    return VerifierConfig.from_env()


inject = Annotated[VerifierConfig, Depends(get_config)]


@cache
def get_key_configuration() -> KeyConfiguration:
    config = get_config()
    return KeyConfiguration.load(config.verifier_private_key_file, config.verifier_certificate_file)


@cache
def get_chain_validator() -> x509.CertificateChainValidator:
    """Trust anchors are loaded once at startup"""
    config = get_config()
    return x509.CertificateChainValidator(
        x509.load_trusted_certificates(config.trusted_certificates_dir),
        include_system_roots=config.include_system_roots,
    )
