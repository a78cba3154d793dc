from __future__ import annotations

import os

from fastapi import FastAPI

from corpdao.api.errors import ApiError, api_error_handler
from corpdao.api.routes_public import public_router
from corpdao.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from corpdao.runtime.dao_config import apply_node_config_to_env, load_config
from corpdao.runtime.errors import ApplyError
from corpdao.runtime.executor import DaoExecutor


def build_executor() -> DaoExecutor:
    """Build a DaoExecutor from the config file and CORPDAO_* env.

    This wrapper exists so tests can monkeypatch `corpdao.api.app.build_executor`
    without reaching into runtime modules.

    CORPDAO_DB_PATH overrides node.db_path; ":memory:" keeps the ledger in
    process memory.
    """
    cfg = load_config()
    db_path = (os.environ.get("CORPDAO_DB_PATH") or cfg.node.db_path).strip()
    if db_path == ":memory:":
        return DaoExecutor(dao_config=cfg.dao)
    return DaoExecutor(db_path=db_path, dao_config=cfg.dao)


def create_app(*, boot_runtime: bool = True, executor: DaoExecutor | None = None) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load config and attach an executor via build_executor()
      - False: keep lightweight; pass `executor` explicitly or leave it unset
    """
    configure_structured_logging()
    mode = (os.environ.get("CORPDAO_MODE") or "prod").strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="CorpDAO API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="CorpDAO API")

    if executor is not None:
        app.state.executor = executor
    elif boot_runtime:
        app.state.executor = build_executor()
    else:
        app.state.executor = None

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(ApplyError, api_error_handler)

    app.add_middleware(RequestLogMiddleware)

    app.include_router(public_router)

    return app


def create_app_from_env() -> FastAPI:
    """Entry point used by __main__: exports node config to env, then boots."""
    cfg = load_config()
    apply_node_config_to_env(cfg.node)
    return create_app(boot_runtime=True)
