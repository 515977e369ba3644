"""
Service container and FastAPI dependencies.

Everything stateful (token cache, job registry, verification pool) is built
once per application in the lifespan hook and cached on ``app.state``;
routes and socket sessions reach it through these dependencies.
"""

from dataclasses import dataclass

import httpx
from fastapi.requests import HTTPConnection

from bulkdesk.config import settings
from bulkdesk.infrastructure.observability.logging import get_logger
from bulkdesk.jobs.bulk_job_runner import BulkJobRunner
from bulkdesk.jobs.job_registry import JobRegistry
from bulkdesk.jobs.verification_worker import VerificationPool
from bulkdesk.services.profile_store import ProfileStore
from bulkdesk.services.ticket_log import TicketLog
from bulkdesk.services.ticket_service import TicketService
from bulkdesk.services.token_cache import TokenCache
from bulkdesk.services.zoho_desk_service import ZohoDeskService
from bulkdesk.services.zoho_oauth_service import ZohoOAuthService

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    http_client: httpx.AsyncClient
    profile_store: ProfileStore
    ticket_log: TicketLog
    token_cache: TokenCache
    desk_service: ZohoDeskService
    ticket_service: TicketService
    registry: JobRegistry
    verification_pool: VerificationPool
    runner: BulkJobRunner


def build_container(http_client: httpx.AsyncClient | None = None) -> ServiceContainer:
    """
    Wire the service graph around one shared HTTP client.

    Args:
        http_client: Client to use for every Zoho call; a new one honouring
            ZOHO_REQUEST_TIMEOUT_SECONDS is created when omitted
    """
    http_client = http_client or httpx.AsyncClient(timeout=settings.request_timeout())

    profile_store = ProfileStore(settings.PROFILES_PATH)
    ticket_log = TicketLog(settings.TICKET_LOG_PATH)
    token_cache = TokenCache(ZohoOAuthService(http_client))
    desk_service = ZohoDeskService(token_cache, http_client)
    ticket_service = TicketService(desk_service, ticket_log)
    registry = JobRegistry()
    verification_pool = VerificationPool(desk_service)
    runner = BulkJobRunner(registry, profile_store, ticket_service, verification_pool)

    logger.info(
        "Service container built",
        profiles_path=str(settings.PROFILES_PATH),
        ticket_log_path=str(settings.TICKET_LOG_PATH),
        verify_max_concurrent=verification_pool.max_concurrent,
    )
    return ServiceContainer(
        http_client=http_client,
        profile_store=profile_store,
        ticket_log=ticket_log,
        token_cache=token_cache,
        desk_service=desk_service,
        ticket_service=ticket_service,
        registry=registry,
        verification_pool=verification_pool,
        runner=runner,
    )


async def close_container(container: ServiceContainer) -> None:
    """Cancel background verifications, then close the HTTP client."""
    await container.verification_pool.shutdown()
    await container.http_client.aclose()


def get_container(connection: HTTPConnection) -> ServiceContainer:
    """FastAPI dependency (HTTP and WebSocket): the app's service container."""
    container = getattr(connection.app.state, "services", None)
    if not isinstance(container, ServiceContainer):
        raise RuntimeError("Service container is not initialized")
    return container


def get_profile_store(connection: HTTPConnection) -> ProfileStore:
    return get_container(connection).profile_store


def get_ticket_service(connection: HTTPConnection) -> TicketService:
    return get_container(connection).ticket_service
