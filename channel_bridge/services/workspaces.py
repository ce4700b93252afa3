"""Workspace Directory: Slack credentials per team."""

import logging

import httpx

from ..core.exceptions import TeamNotFound
from ..integrations.slack import SlackClient
from ..models import SlackTeam
from .store import BridgeStore

logger = logging.getLogger(__name__)


class WorkspaceDirectory:
    """Resolves a Slack team id to an authenticated SlackClient."""

    def __init__(self, store: BridgeStore, http_client: httpx.AsyncClient):
        self._store = store
        self._http = http_client

    async def get_team(self, team_id: str) -> SlackTeam:
        team = await self._store.get_team(team_id)
        if team is None:
            raise TeamNotFound(team_id)
        return team

    async def client_for(self, team_id: str) -> SlackClient:
        team = await self.get_team(team_id)
        return SlackClient(team.access_token, self._http)

    async def record_install(
        self,
        team_id: str,
        team_name: str | None,
        access_token: str,
        bot_user_id: str,
    ) -> None:
        """Store credentials from an OAuth install; reinstalls overwrite."""
        await self._store.upsert_team(team_id, team_name, access_token, bot_user_id)
        logger.info(f"Slack app installed for team {team_id}")
