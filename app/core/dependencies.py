from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header

from app.config import settings
from app.db.session import async_session_factory
from app.gateway.service import ProviderFactory
from app.logs.service import LogWriter
from app.providers.registry import get_provider

log_writer = LogWriter(async_session_factory, enabled=settings.persist_logs)


@dataclass(frozen=True)
class RequestContext:
    """Caller identity, already resolved by the authentication layer in front of the gateway."""
    organization_id: str
    project_id: str
    api_key_id: str


async def get_request_context(
    x_organization_id: Annotated[str, Header()] = "default",
    x_project_id: Annotated[str, Header()] = "default",
    x_api_key_id: Annotated[str, Header()] = "default",
) -> RequestContext:
    return RequestContext(
        organization_id=x_organization_id,
        project_id=x_project_id,
        api_key_id=x_api_key_id,
    )


def get_provider_factory() -> ProviderFactory:
    return get_provider


def get_log_writer() -> LogWriter:
    return log_writer


Context = Annotated[RequestContext, Depends(get_request_context)]
Providers = Annotated[ProviderFactory, Depends(get_provider_factory)]
ActivityLogWriter = Annotated[LogWriter, Depends(get_log_writer)]
