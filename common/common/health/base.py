# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

from enum import Enum
from typing import Callable

from pydantic import BaseModel

from fastapi import APIRouter, status, Response

import common.config as conf


class HealthStatus(Enum):
    """Indicator of system health."""

    healthy = "HEALTHY"
    unhealthy = "UNHEALTHY"

    @classmethod
    def of(cls, value: bool) -> "HealthStatus":
        return cls.healthy if value else cls.unhealthy


HealthCheck = Callable[[conf.Config], bool]
"""A single probe, gets the application configuration and tells whether the checked part works."""


class HealthResponse(BaseModel):
    """Response body model for health request operation.

    May only contain `HealthStatus` fields, one per check registered at the `HealthAPIRouter`."""

    http_server_connectivity: HealthStatus = HealthStatus.unhealthy
    """Can only be returned from the http server if healthy"""

    def is_healthy(self, fields: set[str] | None = None) -> bool:
        """Summarizes the checks performed, all fields if none are named."""
        return all(v == HealthStatus.healthy for k, v in iter(self) if fields is None or k in fields)


class HealthAPIRouter(APIRouter):
    """Api router for the common health endpoints
    `/health/debug`, `/health/liveness` and `/health/readiness`.

    Application specific checks are registered by name, the name being a field of
    the `response_model` (a child class of `HealthResponse`).
    Liveness only reports the http server, readiness runs the readiness checks and
    debug runs the readiness checks together with the debug checks.
    """

    def __init__(
        self,
        response_model: type[HealthResponse] = HealthResponse,
        readiness_checks: dict[str, HealthCheck] | None = None,
        debug_checks: dict[str, HealthCheck] | None = None,
        *args,
        **kwargs,
    ) -> None:
        super().__init__(prefix="/health", tags=["Health"], *args, **kwargs)
        self.health_response_model = response_model
        self.readiness_checks = readiness_checks or {}
        self.debug_checks = {**self.readiness_checks, **(debug_checks or {})}
        unknown = set(self.debug_checks) - set(response_model.model_fields)
        if unknown:
            raise ValueError(f"Health checks without response field: {sorted(unknown)}")

        responses = {
            status.HTTP_200_OK: {"model": response_model},
            status.HTTP_503_SERVICE_UNAVAILABLE: {"model": response_model},
        }
        self.add_api_route(
            "/debug",
            endpoint=self.get_debug_probe,
            description="Provides information regarding debug and config states.",
            responses=responses,
        )
        self.add_api_route(
            "/liveness",
            endpoint=self.get_liveness_probe,
            description="Determines whether the application instance needs to be restarted.",
            responses=responses,
        )
        self.add_api_route(
            "/readiness",
            endpoint=self.get_readiness_probe,
            description="Determines whether the application instance is ready to accept requests.",
            responses=responses,
        )

    def _run(self, checks: dict[str, HealthCheck], response: Response, config: conf.Config) -> dict:
        """Runs the `checks`, sets the http code of `response` and returns the statuses of the checks run."""
        result = self.health_response_model(
            http_server_connectivity=HealthStatus.healthy,
            **{name: HealthStatus.of(check(config)) for name, check in checks.items()},
        )
        reported = {"http_server_connectivity", *checks}
        response.status_code = status.HTTP_200_OK if result.is_healthy(reported) else status.HTTP_503_SERVICE_UNAVAILABLE
        return result.model_dump(mode="json", include=reported)

    def get_debug_probe(self, response: Response, config: conf.inject) -> dict:
        """Provides information regarding debug and config states."""
        return self._run(self.debug_checks, response, config)

    def get_liveness_probe(self, response: Response, config: conf.inject) -> dict:
        """Determines whether the application instance needs to be restarted."""
        return self._run({}, response, config)

    def get_readiness_probe(self, response: Response, config: conf.inject) -> dict:
        """Determines whether the application instance is ready to accept requests.

        Also checks external systems if they are available
        """
        return self._run(self.readiness_checks, response, config)
