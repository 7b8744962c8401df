# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""This file defines the custom health checks for the application."""

import logging

import redis
from common.health import base

from verifier import config as conf
import verifier.cache.verifier_cache as cache

_logger = logging.getLogger(__name__)


class HealthResponse(base.HealthResponse):
    """Response body model for health request operation."""

    configuration_verifier_has_minimum_config: base.HealthStatus = base.HealthStatus.unhealthy
    configuration_verifier_has_signing_key: base.HealthStatus = base.HealthStatus.unhealthy
    storage_connectivity: base.HealthStatus = base.HealthStatus.unhealthy


def has_minimum_config(config: conf.VerifierConfig) -> bool:
    return config.has_minimum_config()


def has_signing_key(config: conf.VerifierConfig) -> bool:
    """Only the x509 client id schemes sign request objects"""
    return not config.signs_request_object or conf.get_key_configuration().can_sign


def storage_is_reachable(config: conf.VerifierConfig) -> bool:
    try:
        return bool(cache.cache.ping())
    except redis.RedisError as e:
        _logger.warning(f"Storage is not reachable: {e}")
        return False


router = base.HealthAPIRouter(
    response_model=HealthResponse,
    readiness_checks={
        "configuration_verifier_has_minimum_config": has_minimum_config,
        "configuration_verifier_has_signing_key": has_signing_key,
        "storage_connectivity": storage_is_reachable,
    },
)
