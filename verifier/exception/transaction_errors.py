# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Errors of the verification transactions (request, response code, post state & session)
and their mapping from the use case results.
"""

from fastapi import status

from verifier.result import ErrorType, OperationError
from .authorization_response_errors import InvalidRequestError, OpenIdVerificationError


class TransactionNotFoundError(OpenIdVerificationError):
    error = "not_found"
    error_description = "The transaction or response code with the specified identifier wasn't found"

    def __init__(self, additional_error_description: str = None) -> None:
        super().__init__(status.HTTP_404_NOT_FOUND, additional_error_description)


class TransactionExpiredError(OpenIdVerificationError):
    error = "expired"
    error_description = "The transaction has been expired"

    def __init__(self, additional_error_description: str = None) -> None:
        super().__init__(status.HTTP_410_GONE, additional_error_description)


class TransactionConflictError(OpenIdVerificationError):
    error = "conflict"
    error_description = "The transaction is already completed. Additional responses are not allowed."

    def __init__(self, additional_error_description: str = None) -> None:
        super().__init__(status.HTTP_409_CONFLICT, additional_error_description)


class UnexpectedError(OpenIdVerificationError):
    error = "server_error"
    error_description = "The verifier encountered an unexpected condition that prevented it from fulfilling the request."

    def __init__(self, additional_error_description: str = None) -> None:
        super().__init__(status.HTTP_500_INTERNAL_SERVER_ERROR, additional_error_description)


class MissingSessionError(InvalidRequestError):
    """Neither the request_id cookie nor the query parameter is present"""

    error_description = "The request_id of the transaction is missing."


def error_to_exception(error: OperationError) -> OpenIdVerificationError:
    """
    Translates a use case error. The cause of an error is never rendered, only the message.
    """
    if error.type in (ErrorType.NOT_FOUND, ErrorType.REQUEST_ID_IS_NOT_FOUND):
        return TransactionNotFoundError(error.message)
    if error.type == ErrorType.EXPIRED:
        return TransactionExpiredError(error.message)
    if error.type in (ErrorType.CONFLICT, ErrorType.CONSUMED):
        return TransactionConflictError(error.message)
    if error.type in (ErrorType.INVALID_PARAMETER, ErrorType.INVALID_AUTH_RESPONSE_PAYLOAD):
        return InvalidRequestError(error.message)
    return UnexpectedError(error.message)
