from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mcp_oauth.models.persistance.oauth import McpEndpoint


async def get_endpoint_by_path(
    db: AsyncSession,
    path: str,
) -> McpEndpoint | None:
    stmt = select(McpEndpoint).where(McpEndpoint.path == path)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def create_endpoint(
    db: AsyncSession,
    *,
    name: str,
    plugin_id: str,
    path: str,
    description: str | None,
) -> McpEndpoint:
    endpoint = McpEndpoint(
        name=name,
        plugin_id=plugin_id,
        path=path,
        description=description,
        active=True,
    )

    db.add(endpoint)
    await db.commit()
    await db.refresh(endpoint)
    return endpoint


async def save_endpoint(
    db: AsyncSession,
    endpoint: McpEndpoint,
) -> McpEndpoint:
    await db.commit()
    await db.refresh(endpoint)
    return endpoint


async def list_endpoints(
    db: AsyncSession,
    *,
    plugin_id: str | None = None,
    active_only: bool = True,
) -> list[McpEndpoint]:
    stmt = select(McpEndpoint).order_by(McpEndpoint.id)
    if plugin_id is not None:
        stmt = stmt.where(McpEndpoint.plugin_id == plugin_id)
    if active_only:
        stmt = stmt.where(McpEndpoint.active.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().all())
