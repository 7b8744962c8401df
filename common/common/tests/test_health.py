# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

from fastapi import FastAPI
from fastapi.testclient import TestClient
import pytest

from common.health import base


class _Response(base.HealthResponse):
    database: base.HealthStatus = base.HealthStatus.unhealthy
    debug_flag: base.HealthStatus = base.HealthStatus.unhealthy


def _client(database_ok: bool) -> TestClient:
    app = FastAPI()
    app.include_router(
        base.HealthAPIRouter(
            response_model=_Response,
            readiness_checks={"database": lambda config: database_ok},
            debug_checks={"debug_flag": lambda config: config.enable_debug_mode},
        )
    )
    return TestClient(app)


def test_liveness_reports_http_server_only():
    response = _client(database_ok=False).get("/health/liveness")
    assert response.status_code == 200
    assert response.json() == {"http_server_connectivity": "HEALTHY"}


@pytest.mark.parametrize("database_ok, status_code, database", [(True, 200, "HEALTHY"), (False, 503, "UNHEALTHY")])
def test_readiness(database_ok, status_code, database):
    response = _client(database_ok).get("/health/readiness")
    assert response.status_code == status_code
    assert response.json() == {"http_server_connectivity": "HEALTHY", "database": database}


def test_debug_runs_all_checks():
    response = _client(database_ok=True).get("/health/debug")
    # debug mode is disabled by default
    assert response.status_code == 503
    assert response.json()["debug_flag"] == "UNHEALTHY"
    assert response.json()["database"] == "HEALTHY"


def test_check_without_field():
    with pytest.raises(ValueError, match="without response field"):
        base.HealthAPIRouter(readiness_checks={"database": lambda config: True})
