# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Errors raised while building an authorization request object.
These are programming or configuration errors of the verifier, not errors of the wallet.
"""


class RequestObjectError(Exception):
    """Base class of the request object errors"""


class UnsupportedClientIdSchemeError(RequestObjectError):
    """The client id has no supported Client Identifier Prefix or the scheme is unknown."""


class MissingUriError(RequestObjectError):
    """Neither or both of redirect_uri & response_uri are given."""


class MissingSignerKey(RequestObjectError):
    """The client id scheme requires a signed request object but no signing key is configured."""
