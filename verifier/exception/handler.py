# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import logging
from fastapi import Request, FastAPI
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from .authorization_response_errors import OpenIdVerificationError, InvalidRequestError

_logger = logging.getLogger(__name__)


def configure_exception_handlers(app: FastAPI) -> None:
    """
    Configure exception handlers on the FastAPI app instance to conform to OID4VP Standard.
    Changed 422 Unprocessable Entity to 400 Bad Request

    Args:
        app (FastAPI): the instance to configure the handlers for.
    """

    @app.exception_handler(OpenIdVerificationError)
    async def openid_verification_exception_handler(request: Request, exc: OpenIdVerificationError):
        content = exc.to_content()
        _logger.info(f"OID4VP Exception {exc.status_code=} {content}")
        return JSONResponse(
            status_code=exc.status_code,
            headers=exc.headers,
            content=content,
        )

    @app.exception_handler(RequestValidationError)
    async def openid_invalid_request_exception_handler(request: Request, exc: RequestValidationError):
        """
        Recasts Validation Errors to OpenID4VP conform exceptions
        """
        wrapper_exception = InvalidRequestError(additional_error_description=f"Details: {exc.errors()}")
        return await openid_verification_exception_handler(request, wrapper_exception)
