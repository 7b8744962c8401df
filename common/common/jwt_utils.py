# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Helpers to take apart JWTs and SD-JWTs without verifying them.

SD-JWT has the form <jwt>~<disclosure 1>~...~<disclosure n>~<optional key binding jwt>
https://datatracker.ietf.org/doc/html/draft-ietf-oauth-selective-disclosure-jwt
"""

import json
import logging
from typing import NamedTuple

# SD JWT Unpacker
from sd_jwt.common import SDJWTCommon
from sd_jwt.verifier import SDJWTVerifier
from jwcrypto.jws import JWS

from common import parsing as prs
from common.model import ietf

SD_JWT_SEPARATOR = "~"

_sdjwt_common = SDJWTCommon("compact")
_logger = logging.getLogger(__name__)


class SDJWT_Unpacker(SDJWTVerifier):
    """
    This removes the verification functionality from the SDJWTVerifier.
    So one can use it to extract the sd_claims without verify the sdjwt.
    Signatures are checked separately (see common.jose.verify_sd_jwt).
    TODO: Replace once the sd-jwt library allows to resolve disclosures with an externally verified issuer jwt.
    """

    def __init__(
        self,
        sd_jwt_presentation: str,
        serialization_format: str = "compact",
    ):
        SDJWTCommon.__init__(self, serialization_format=serialization_format)

        self._parse_sd_jwt(sd_jwt_presentation)
        self._create_hash_mappings(self._input_disclosures)
        parsed_input_sd_jwt = JWS()
        parsed_input_sd_jwt.deserialize(self._unverified_input_sd_jwt)
        self._sd_jwt_payload = json.loads(parsed_input_sd_jwt.objects["payload"].decode("utf-8"))

    def extract_sd_claims(self) -> dict:
        """
        Returns the body of the SDJWT where all the disclosed values are replaced with the actual values
        """
        claims = self._extract_sd_claims()
        claims.pop("_sd_alg", None)
        return claims


class SdJwtParts(NamedTuple):
    issuer_jwt: str
    disclosures: list[str]
    key_binding_jwt: str | None


def hash(value: str) -> str:
    """
    Returns the base64url encoded sha-256 hash of the value, as used for disclosure digests and sd_hash.
    """
    return _sdjwt_common._b64hash(value.encode("ascii"))


def split_jwt(jwt: str) -> list[str]:
    """
    Splits a JWT into its head at index 0, body at index 1, signature at index 2.
    """
    return jwt.split(".")


def get_header(jwt: str) -> ietf.JoseHeader:
    """
    Decodes the protected header of a compact JWS or JWE without any verification.
    """
    return ietf.JoseHeader.model_validate(prs.object_from_url_safe(split_jwt(jwt)[0]))


def get_unverified_payload(jwt: str) -> dict:
    return prs.object_from_url_safe(split_jwt(jwt)[1])


def compose_sd_jwt(jwt: str, disclosures: list[str], key_binding_jwt: str = "") -> str:
    """
    Composes a SD-JWT from a JWT, a list of disclosures and an optional key binding jwt.
    """
    return SD_JWT_SEPARATOR.join([jwt, *disclosures, key_binding_jwt])


def split_sd_jwt(sdjwt: str) -> SdJwtParts:
    """
    Ommits empty disclosures (eg ~~). The key binding jwt is None if the SD-JWT ends with ~
    """
    issuer_jwt, *disclosures, key_binding_jwt = sdjwt.split(SD_JWT_SEPARATOR)
    return SdJwtParts(issuer_jwt, [disclosure for disclosure in disclosures if disclosure], key_binding_jwt or None)


def get_jwt_of_sdjwt(sdjwt: str) -> str:
    """
    This will return the <jwt> part.
    """
    return sdjwt.split(SD_JWT_SEPARATOR)[0]


def get_key_binding_jwt(sdjwt: str) -> str | None:
    return split_sd_jwt(sdjwt).key_binding_jwt


def get_presentation_without_key_binding(sdjwt: str) -> str:
    """
    Returns <jwt>~<disclosure 1>~...~<disclosure n>~ which is the input of the key binding sd_hash.
    """
    return sdjwt[:sdjwt.rindex(SD_JWT_SEPARATOR) + 1]


def decode_disclosures(sdjwt: str) -> list[tuple[str, str | None, object]]:
    """
    Decodes the disclosures as (salt, claim name, claim value).
    Array element disclosures have no claim name.
    """
    decoded = []
    for disclosure in split_sd_jwt(sdjwt).disclosures:
        content = prs.object_from_url_safe(disclosure)
        if len(content) == 3:
            decoded.append(tuple(content))
        else:
            salt, value = content
            decoded.append((salt, None, value))
    return decoded


def find_disclosure(sdjwt: str, claim_name: str) -> object | None:
    """
    Returns the value of the first disclosure for claim_name
    """
    for _, name, value in decode_disclosures(sdjwt):
        if name == claim_name:
            return value
    return None
