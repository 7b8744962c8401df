# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Splunk compatible (single line JSON) log output.
"""

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel


class SplunkExtendedLogEntry(BaseModel):
    """
    Log message carrying additional structured fields.
    Passed directly to the logger, e.g. `_logger.info(SplunkExtendedLogEntry(message="..."))`.
    """

    message: str

    def extra_fields(self) -> dict[str, Any]:
        fields = {}
        for name, value in self:
            if name == "message" or value is None:
                continue
            fields[name] = value.value if isinstance(value, Enum) else value
        return fields

    def __str__(self) -> str:
        details = " ".join(f"{name}={value}" for name, value in self.extra_fields().items())
        return f"{self.message} {details}" if details else self.message


class SplunkFormatter(logging.Formatter):
    def __init__(self, defaults: dict[str, str] | None = None):
        super().__init__()
        self._defaults = defaults or {}

    def _field(self, record: logging.LogRecord, name: str) -> str | None:
        return getattr(record, name, None) or self._defaults.get(name)

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "message": record.getMessage(),
            "level": record.levelname,
            "hash": self._field(record, "correlation_id"),
            # e.g. 2024-02-07T14:38:19.565+01:00
            "@timestamp": datetime.fromtimestamp(record.created).astimezone().isoformat(timespec="milliseconds"),
            "app": self._field(record, "app_name"),
            "logger": record.name,
        }
        if isinstance(record.msg, SplunkExtendedLogEntry):
            entry.update(record.msg.extra_fields())
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        elif record.stack_info:
            entry["exception"] = self.formatStack(record.stack_info)
        return json.dumps(entry, default=str)
