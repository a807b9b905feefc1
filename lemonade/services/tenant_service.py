"""
Tenant (app) lookups.

``resolve`` maps an API key to its tenant record whatever its active state;
the active-flag policy lives in ``lemonade.api.deps.get_current_tenant``.
"""

import logging
from typing import List, Tuple

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from lemonade.core.exceptions import NotFound
from lemonade.models.tenant import App
from lemonade.models.user import User, UserApp

logger = logging.getLogger(__name__)


class TenantService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(self, api_key: str) -> App:
        """Exact-match API key lookup."""
        if not api_key:
            raise NotFound("App not found")
        result = await self.db.execute(select(App).where(App.api_key == api_key))
        app = result.scalar_one_or_none()
        if not app:
            raise NotFound("App not found")
        return app

    async def get_app(self, app_id: int) -> App:
        app = await self.db.get(App, app_id)
        if not app:
            raise NotFound("App not found")
        return app

    async def list_apps(self) -> List[App]:
        result = await self.db.execute(select(App).order_by(desc(App.created_at), desc(App.id)))
        return list(result.scalars().all())

    async def list_app_users(self, app_id: int) -> List[Tuple[User, UserApp]]:
        await self.get_app(app_id)
        result = await self.db.execute(
            select(User, UserApp)
            .join(UserApp, UserApp.user_id == User.id)
            .where(UserApp.app_id == app_id)
            .order_by(desc(UserApp.enabled_at), desc(UserApp.id))
        )
        return [(row[0], row[1]) for row in result.all()]

    async def is_linked(self, user_id: int, app_id: int) -> bool:
        result = await self.db.execute(
            select(UserApp.id).where(UserApp.user_id == user_id, UserApp.app_id == app_id)
        )
        return result.scalar_one_or_none() is not None
