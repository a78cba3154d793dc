# src/corpdao/api/__main__.py
from __future__ import annotations

import os

import uvicorn

from corpdao.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so CORPDAO_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load (prevents "config read before env" surprises)
    from corpdao.api.app import create_app_from_env
    from corpdao.runtime.dao_config import load_config

    node = load_config().node
    host = os.getenv("CORPDAO_API_HOST", node.api_host)
    port = int(os.getenv("CORPDAO_API_PORT", str(node.api_port)))

    uvicorn.run(create_app_from_env(), host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
