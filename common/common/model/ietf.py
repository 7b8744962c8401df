# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Collection of Pydantic models for IETF (JOSE) Objects
"""
from pydantic import BaseModel, ConfigDict


class JoseHeader(BaseModel):
    """
    Protected header of a JWS or JWE
    https://datatracker.ietf.org/doc/html/rfc7515#section-4
    https://datatracker.ietf.org/doc/html/rfc7516#section-4
    """

    model_config = ConfigDict(extra='allow')

    alg: str | None = None
    enc: str | None = None
    """Content encryption algorithm, only present in JWE"""
    typ: str | None = None
    kid: str | None = None
    x5c: list[str] | None = None
    """Certificate chain of the signing key, leaf first"""
    x5u: str | None = None
    jwk: dict | None = None
    """Public key embedded in the header"""
