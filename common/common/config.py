# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Provides general Environment Variables for FastAPI dependency injection.

The configuration is read once (see get_config) and is immutable afterwards.
Components receive it as an argument instead of reading the environment themselves.
"""

import os
from functools import cache
from typing import Annotated, Any

from fastapi import Depends
from pydantic import BaseModel, ConfigDict

from common.parsing import interpret_as_bool


class Config(BaseModel):
    model_config = ConfigDict(frozen=True)

    enable_debug_mode: bool = False
    '''General debug mode configuration enabler.'''

    external_url: str | None = None
    '''Public base url of the application.'''

    api_key: str = "tergum_dev_key"
    '''Apikey to use for the application. Default: "tergum_dev_key".'''

    app_name: str = "anonymous"
    '''
    Human readable application name used for logging
    '''
    log_level: str = "INFO"

    enable_documentation_endpoints: bool = False
    '''
    Enable /doc and /redoc endpoint.
    Default is False, but True in DEBUG_MODE.
    '''
    enable_cors: bool = False
    '''
    Enable CORs for incoming openapi requests
    Default is False, but True in DEBUG_MODE.
    '''
    additional_allowed_origins: str = ""
    '''
    If CORs is enabled additional allowed origins e.g confluence can be defined as comma separated list of url (e.g. URL,URL,URL)
    '''
    enable_splunk_log: bool = False
    '''
    Enable Splunk compatible log format.
    Default is True, but False in DEBUG_MODE.
    '''

    @classmethod
    def _environment(cls) -> dict[str, Any]:
        enable_debug_mode = interpret_as_bool(os.getenv("ENABLE_DEBUG_MODE", "False"))
        return {
            "enable_debug_mode": enable_debug_mode,
            "external_url": os.getenv("EXTERNAL_URL"),
            "api_key": os.getenv("API_KEY"),
            "app_name": os.getenv("APP_NAME"),
            "log_level": os.getenv("LOG_LEVEL"),
            "enable_documentation_endpoints": interpret_as_bool(os.getenv("ENABLE_DOCUMENTATION_ENDPOINTS", enable_debug_mode)),
            "enable_cors": interpret_as_bool(os.getenv("ENABLE_CORS", enable_debug_mode)),
            "additional_allowed_origins": os.getenv("ADDITIONAL_ALLOWED_ORIGINS"),
            "enable_splunk_log": interpret_as_bool(os.getenv("ENABLE_SPLUNK_LOG", not enable_debug_mode)),
        }

    @classmethod
    def from_env(cls):
        """Builds the configuration from the environment. Unset variables keep the field default."""
        return cls(**{name: value for name, value in cls._environment().items() if value is not None})


@cache
def get_config() -> Config:
    return Config.from_env()


inject = Annotated[Config, Depends(get_config)]
