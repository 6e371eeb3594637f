import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from mcp_oauth.models.persistance.oauth import McpEndpoint
from mcp_oauth.repositories import endpoint_repo

logger = logging.getLogger(__name__)


async def register(
    db: AsyncSession,
    *,
    name: str,
    plugin_id: str,
    path: str,
    description: Optional[str] = None,
) -> McpEndpoint:
    """Register an MCP endpoint, or update and reactivate an existing one."""
    existing = await endpoint_repo.get_endpoint_by_path(db, path)

    if existing is not None:
        existing.name = name
        existing.plugin_id = plugin_id
        existing.description = description
        existing.active = True
        endpoint = await endpoint_repo.save_endpoint(db, existing)
        logger.info("Updated MCP endpoint %s", path)
        return endpoint

    endpoint = await endpoint_repo.create_endpoint(
        db,
        name=name,
        plugin_id=plugin_id,
        path=path,
        description=description,
    )
    logger.info("Registered MCP endpoint %s for %s", path, plugin_id)
    return endpoint


async def unregister(db: AsyncSession, path: str) -> bool:
    endpoint = await endpoint_repo.get_endpoint_by_path(db, path)
    if endpoint is None:
        return False

    endpoint.active = False
    await endpoint_repo.save_endpoint(db, endpoint)
    logger.info("Unregistered MCP endpoint %s", path)
    return True


async def get_all(db: AsyncSession, active_only: bool = True) -> list[McpEndpoint]:
    return await endpoint_repo.list_endpoints(db, active_only=active_only)


async def get_by_plugin(
    db: AsyncSession,
    plugin_id: str,
    active_only: bool = True,
) -> list[McpEndpoint]:
    return await endpoint_repo.list_endpoints(db, plugin_id=plugin_id, active_only=active_only)


async def is_protected(db: AsyncSession, path: str) -> bool:
    """True if ``path`` contains the path of any active endpoint."""
    endpoints = await get_all(db)
    return any(endpoint.path in path for endpoint in endpoints)
