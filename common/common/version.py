# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import os
from importlib import metadata

DISTRIBUTION_NAME = "oid4vp-verifier"


def get_version() -> str:
    """
    Version reported in the openapi document.
    Set by the deployment (VERSION, COMMIT_HASH, COMMIT_TIMESTAMP), falls back to the installed distribution.
    """
    version = os.getenv("VERSION")
    if version is None:
        try:
            version = metadata.version(DISTRIBUTION_NAME)
        except metadata.PackageNotFoundError:
            version = "no version"
    commit = " ".join(filter(None, [os.getenv("COMMIT_HASH"), os.getenv("COMMIT_TIMESTAMP")]))
    return f"{version} ({commit})" if commit else version
