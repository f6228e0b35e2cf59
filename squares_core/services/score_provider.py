"""HTTP client for the external score provider (ESPN site API)."""

import logging
from typing import Optional

import httpx

from squares_core.domain.score_normalizer import parse_provider_summary
from squares_core.models.dc_models import League, ProviderScoreModel

LEAGUE_PATHS = {
    League.nfl.value: "nfl",
    League.college.value: "college-football",
    "ncaa": "college-football",
}


class ScoreProvider:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def summary_url(self, league: str) -> str:
        return f"{self.base_url}/{LEAGUE_PATHS.get(league, 'nfl')}/summary"

    async def fetch_scores(self, game_id: str, league: str) -> Optional[ProviderScoreModel]:
        """Fetch and normalize one game summary.

        Any network error, non-200 response or malformed body is logged and
        reported as None so the caller can skip the pool for this cycle.

        Args:
            game_id (str): Provider event id
            league (str): "nfl" or "college"

        Returns:
            Optional[ProviderScoreModel]: Normalized scores, or None on failure
        """
        url = self.summary_url(league)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.get(url, params={"event": game_id})
        except httpx.HTTPError as e:
            logging.warning(f"[ScoreSync] Provider fetch failed for game {game_id}: {e}")
            return None

        if resp.status_code != 200:
            logging.warning(f"[ScoreSync] Provider error {resp.status_code} for game {game_id}")
            return None
        try:
            data = resp.json()
        except ValueError as e:
            logging.warning(f"[ScoreSync] Provider sent invalid JSON for game {game_id}: {e}")
            return None

        scores = parse_provider_summary(data)
        if scores is None:
            logging.warning(f"[ScoreSync] Provider summary for game {game_id} is malformed")
        return scores
