# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import contextlib
import logging
from typing import Callable

from fastapi import APIRouter, FastAPI, Request, HTTPException
from fastapi.exception_handlers import http_exception_handler

from common.logging.setup import configure_logging, get_log_id
from common.version import get_version
from common import config as conf

_logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def _lifespan(app: "ExtendedFastAPI"):
    configure_logging(app.config_instance)
    with contextlib.ExitStack() as stack:
        for lifespan_function in app.lifespan_functions:
            stack.enter_context(lifespan_function)
        yield


class ExtendedFastAPI(FastAPI):
    """
    FastAPI application configured from the (immutable) application configuration.

    Features, enabled by the config:
     - Documentation endpoints
     - App name as title & automatic version detection
     - Logging output (on startup)
     - CORS
    The shared dependencies of `common` (api key, health) get the application configuration injected.
    """

    def __init__(
        self,
        config: Callable[[], conf.Config],
        lifespan_functions: list[contextlib.AbstractContextManager] | None = None,
        *args,
        **kwargs,
    ) -> None:
        """
        `config` is the factory of the application configuration, usually the cached `get_config` of the application.
        For further keywords please refer to `FastAPI` https://fastapi.tiangolo.com/reference/fastapi/
        """
        self.config_instance = config()
        self.lifespan_functions = list(lifespan_functions or [])

        if not self.config_instance.enable_documentation_endpoints:
            _logger.info("Deactivate documentation endpoints.")
            kwargs.update(docs_url=None, redoc_url=None, openapi_url=None)
        kwargs.setdefault("title", self.config_instance.app_name)
        kwargs.setdefault("version", get_version())
        kwargs.setdefault("lifespan", _lifespan)

        super().__init__(*args, **kwargs)

        if config is not conf.get_config:
            self.dependency_overrides[conf.get_config] = config

        if self.config_instance.enable_cors:
            self._add_cors()
        self.add_exception_handler(Exception, self.unhandled_exception_handler)

    def _add_cors(self) -> None:
        _logger.info("Activate CORs support.")
        from fastapi.middleware.cors import CORSMiddleware

        allowed_origins = [self.config_instance.external_url or '*']
        if self.config_instance.additional_allowed_origins:
            allowed_origins += self.config_instance.additional_allowed_origins.split(',')
        self.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def mount_sub_application(self, sub_application: "ExtendedFastAPI", *routers: APIRouter, path: str = "") -> None:
        """
        Mounts an application with its own exception handlers.

        The sub application shares the dependency overrides of this application.
        Its `routers` are additionally listed in the documentation of this application,
        requests are still served by the sub application as the mount takes precedence.
        """
        sub_application.dependency_overrides = self.dependency_overrides
        self.mount(path, sub_application)
        for router in routers:
            self.include_router(router)

    async def unhandled_exception_handler(self, request: Request, exc: Exception):
        if not isinstance(exc, HTTPException):
            _logger.error("Unhandled exception detected.")
            # logging of the original error is done by fastapi/starlette
            exc = HTTPException(
                500,
                f'Could not process the request. Please contact support with request id {get_log_id()}',
            )

        return await http_exception_handler(request, exc)
