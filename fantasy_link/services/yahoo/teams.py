from __future__ import annotations

import logging

from fantasy_link.core.errors import AmbiguousLookup, NotFound, UpstreamError
from fantasy_link.services.yahoo.client import YahooClient
from fantasy_link.services.yahoo.leagues import disambiguate_league
from fantasy_link.services.yahoo.parsers import TEAM_KEY_RE, league_key_of, parse_team

log = logging.getLogger(__name__)


def fetch_team(client: YahooClient, user_id: str, team_key: str) -> dict:
    """Team metadata, standings and current roster."""
    key = (team_key or "").strip()
    if not TEAM_KEY_RE.match(key):
        raise NotFound(f"Malformed Yahoo team key {team_key!r}")

    try:
        payload = client.get(user_id, f"/team/{key};out=standings,roster")
    except AmbiguousLookup as exc:
        # Team missing vs league hidden: check the league first
        league_key = league_key_of(key)
        try:
            client.get(user_id, f"/league/{league_key}/metadata")
        except AmbiguousLookup as league_exc:
            raise disambiguate_league(client, user_id, league_key, league_exc) from exc
        raise NotFound(
            f"Team {key} not found in league {league_key} :: {exc.details}",
            provider_status=exc.provider_status,
            provider_body=exc.provider_body,
        ) from exc

    try:
        return parse_team(payload)
    except ValueError as exc:
        raise UpstreamError(f"Could not parse team {key}: {exc}") from exc
