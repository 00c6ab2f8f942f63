"""FastAPI dependencies for the application environment."""

from typing import Annotated

from fastapi import Depends
from fastapi import FastAPI
from fastapi import HTTPException
from fastapi import Request

from blueboxy.environment import AppEnvironment
from blueboxy.exceptions import AuthExpiredError
from blueboxy.manager import CacheManager
from blueboxy.session import SessionStore

ENVIRONMENT_STATE_KEY = "blueboxy_environment"


def attach_environment(app: FastAPI, environment: AppEnvironment) -> None:
    """Make ``environment`` available to this app's dependencies."""
    setattr(app.state, ENVIRONMENT_STATE_KEY, environment)


def get_environment(request: Request) -> AppEnvironment:
    environment = getattr(request.app.state, ENVIRONMENT_STATE_KEY, None)
    if environment is None:
        raise HTTPException(status_code=503, detail="Application environment not configured")
    return environment


def get_cache_manager(
    environment: Annotated[AppEnvironment, Depends(get_environment)],
) -> CacheManager:
    return environment.cache


def get_session_store(
    environment: Annotated[AppEnvironment, Depends(get_environment)],
) -> SessionStore:
    return environment.session


async def require_bearer_token(
    session: Annotated[SessionStore, Depends(get_session_store)],
) -> str:
    """Current access token; 401 when there is no valid session."""
    try:
        return await session.bearer_token()
    except AuthExpiredError as e:
        raise HTTPException(status_code=401, detail="Authentication required") from e
