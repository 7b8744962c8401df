# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

from enum import Enum

from common.logging import operations


class VerifierOperationsLogEntry(operations.OperationsLogEntry):
    """Container for verifier operations specific logging."""

    class Operation(Enum):
        verification = "VERIFICATION"

    class Step(Enum):
        authorization_request = "AUTHORIZATION_REQUEST"
        request_object = "REQUEST_OBJECT"
        authorization_response = "AUTHORIZATION_RESPONSE"
        response_code_exchange = "RESPONSE_CODE_EXCHANGE"
        credential_extraction = "CREDENTIAL_EXTRACTION"

    operation: Operation
    step: Step

    error_code: str | None = None
