# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
OID4VP Verifier
Using Specifications

OpenID for Verifiable Presentations 1.0
https://openid.net/specs/openid-4-verifiable-presentations-1_0.html

Selective Disclosure for JWTs (SD-JWT)
https://datatracker.ietf.org/doc/rfc9901/

Digital Credentials Query Language (DCQL)
https://openid.net/specs/openid-4-verifiable-presentations-1_0.html#name-digital-credentials-query-l

JSON Web Encryption (JWE)
https://www.rfc-editor.org/rfc/rfc7516
"""

# FastAPI
from asgi_correlation_id import CorrelationIdMiddleware

from common.fastapi_extensions import ExtendedFastAPI

from verifier.exception.handler import configure_exception_handlers

import verifier.route.management as management
import verifier.route.openid as openid
import verifier.route.health as health

from verifier import config as conf


app = ExtendedFastAPI(conf.get_config)
app.include_router(management.router)
app.include_router(health.router)
configure_exception_handlers(app)

app.add_middleware(CorrelationIdMiddleware)


"""
    Reason for sub application:
    To render errors as OpenID4VP error responses we need to overwrite the
    exception handling of pydantic model validation. This is only possible
    on application level, and not on router level.
    The wallet facing routes live in their own application so that their
    error responses are independent of the management routes.
"""
openid_app = ExtendedFastAPI(conf.get_config, title="OpenID conform verifier")
openid_app.include_router(openid.router)
configure_exception_handlers(openid_app)
# Existing Routes are not overwritten. The openid routes are just added to the OpenAPI docs...
app.mount_sub_application(openid_app, openid.router)
