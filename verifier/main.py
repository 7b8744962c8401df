# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import dotenv

if __name__ == '__main__':
    # The configuration is read on import of the app
    dotenv.load_dotenv(".env")

    import uvicorn

    from verifier.verifier import app

    # HTTP
    uvicorn.run(app, host="0.0.0.0", port=8001)
