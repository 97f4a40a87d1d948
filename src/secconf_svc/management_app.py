"""Management FastAPI entry point for the security configuration.

Start with:
    PYTHONPATH=src uvicorn secconf_svc.management_app:app --host 0.0.0.0 --port 8052

This process serves the control-plane endpoints:
- GET /health         - liveness plus the published generation
- GET /config         - secret-free summary of the published snapshot
- POST /config/reload - publish a new generation from a JSON body or the file (authenticated)
- GET /authinfo       - who the request authenticates as
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Body, Depends, FastAPI, HTTPException, Request

from . import __version__
from . import _bootstrap as bs
from .auth import (
    AuthResult,
    ConfigSnapshot,
    DynamicConfigHolder,
    get_snapshot,
    require_auth,
    require_authenticated_user,
    set_auth_chain,
)
from .auth.dependencies import get_config_holder
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the service config, publish the first generation, bind the chain."""
    config, config_path = bs.load_config()
    bs.configure_logging(config)
    logger.info("Starting security configuration service...")

    holder, security_config_path = bs.build_config_holder(config, config_path)
    bs.configure_auth(holder)
    app.state.security_config_path = security_config_path

    logger.info("Security configuration service started (generation %d)", holder.generation)
    yield

    set_auth_chain(None)
    logger.info("Security configuration service stopped")


app = FastAPI(
    title="Security Configuration",
    description="Control plane for the dynamic authentication and authorization configuration.",
    version=__version__,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Config", "description": "Published security configuration"},
        {"name": "Auth", "description": "Authentication introspection"},
        {"name": "Health", "description": "Liveness"},
    ],
)


@app.get("/health", tags=["Health"])
async def health(snapshot: Annotated[ConfigSnapshot, Depends(get_snapshot)]) -> dict[str, Any]:
    return {"status": "ok", "generation": snapshot.generation}


@app.get("/config", tags=["Config"])
async def get_config(snapshot: Annotated[ConfigSnapshot, Depends(get_snapshot)]) -> dict[str, Any]:
    """Summary of the published snapshot (no keys, hashes or secrets)."""
    return snapshot.describe()


@app.post("/config/reload", tags=["Config"])
async def reload_config(
    request: Request,
    holder: Annotated[DynamicConfigHolder, Depends(get_config_holder)],
    auth: Annotated[AuthResult, Depends(require_authenticated_user)],
    payload: Annotated[dict[str, Any] | None, Body()] = None,
) -> dict[str, Any]:
    """
    Publish a new generation.

    With a JSON body the body is the new config; without one the configured
    security config file is re-read. An invalid config answers 400 and the
    previous generation stays published. Only an authenticated principal may
    reload; anonymous callers get 401.
    """
    logger.info("Config reload requested by %s via %s", auth.principal, auth.domain)
    try:
        if payload is not None:
            snapshot = holder.reload(payload)
        else:
            path = getattr(request.app.state, "security_config_path", None)
            if path is None:
                raise HTTPException(status_code=400, detail="No security config file configured and no body given")
            snapshot = holder.reload_from_file(path)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except FileNotFoundError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return {"status": "reloaded", "generation": snapshot.generation}


@app.get("/authinfo", tags=["Auth"])
async def authinfo(
    auth: Annotated[AuthResult, Depends(require_auth)],
    snapshot: Annotated[ConfigSnapshot, Depends(get_snapshot)],
) -> dict[str, Any]:
    """The authenticated principal and its roles."""
    return {
        "user_name": auth.principal,
        "backend_roles": sorted(auth.backend_roles),
        "roles": sorted(auth.roles),
        "auth_domain": auth.domain,
        "auth_method": auth.method.value,
        "anonymous": auth.is_anonymous,
        "sign_in_options": [o.value for o in snapshot.sign_in_options],
    }
