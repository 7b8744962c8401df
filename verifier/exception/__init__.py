# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Collection of Exceptions & Errors
"""
from .authorization_response_errors import *
from .transaction_errors import *
from .request_object_errors import *
