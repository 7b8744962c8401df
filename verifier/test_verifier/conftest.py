# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import fakeredis
import pytest

from common import x509
from common.test_helpers import wallet_helper
from common.test_helpers.certificates import create_pki
import verifier.cache.verifier_cache as cache

VERIFIER_DNS_NAME = "verifier.example.com"
RESPONSE_URI = "https://verifier.example.com/oid4vp/responses"
REDIRECT_URI = "https://verifier.example.com/callback"


@pytest.fixture
def redis_cache():
    return fakeredis.FakeStrictRedis(version=6)


@pytest.fixture
def request_service(redis_cache):
    return cache.RequestService(redis_cache)


@pytest.fixture
def response_service(redis_cache):
    return cache.ResponseService(redis_cache)


@pytest.fixture
def verifier_request_service(redis_cache):
    return cache.VerifierRequestService(redis_cache)


@pytest.fixture(scope="session")
def issuer():
    return wallet_helper.Issuer()


@pytest.fixture(scope="session")
def verifier_pki():
    return create_pki(dns_names=[VERIFIER_DNS_NAME])


@pytest.fixture(scope="session")
def chain_validator(issuer):
    return x509.CertificateChainValidator([issuer.pki.root], include_system_roots=False)


@pytest.fixture
def wallet():
    return wallet_helper.Wallet()
