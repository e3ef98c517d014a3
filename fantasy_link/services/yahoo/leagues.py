from __future__ import annotations

import logging
from typing import List, Optional

from fantasy_link.core.errors import (
    AmbiguousLookup,
    FantasyLinkError,
    NoTokenError,
    NotFound,
    PermissionDenied,
    ReauthorizationRequired,
    UpstreamError,
)
from fantasy_link.services.yahoo.client import YahooClient
from fantasy_link.services.yahoo.parsers import (
    LEAGUE_KEY_RE,
    commissioner_from_team,
    find_commissioner,
    game_key_of,
    parse_league,
    parse_leagues,
    parse_team,
    parse_teams,
)

log = logging.getLogger(__name__)


def _require_league_key(league_key: str) -> str:
    key = (league_key or "").strip()
    if not LEAGUE_KEY_RE.match(key):
        raise NotFound(f"Malformed Yahoo league key {league_key!r}")
    return key


def disambiguate_league(client: YahooClient, user_id: str, league_key: str, original: AmbiguousLookup) -> FantasyLinkError:
    """
    Yahoo answers 400 both for keys that do not exist and for leagues the user
    cannot see. Probe the league's game: an unknown game means the key cannot
    exist (NotFound); a known game means the league is hidden from this user
    (PermissionDenied). Best effort only.
    """
    game_key = game_key_of(league_key)
    try:
        client.get(user_id, f"/game/{game_key}")
    except (NoTokenError, ReauthorizationRequired):
        raise
    except AmbiguousLookup:
        return NotFound(
            f"League {league_key} not found (unknown game {game_key}) :: {original.details}",
            provider_status=original.provider_status,
            provider_body=original.provider_body,
        )
    except FantasyLinkError as probe_error:
        log.warning("Game probe for %s inconclusive (%s); reporting not found", league_key, probe_error.kind)
        return NotFound(
            f"League {league_key} not found or not accessible :: {original.details}",
            provider_status=original.provider_status,
            provider_body=original.provider_body,
        )
    return PermissionDenied(
        f"League {league_key} exists in game {game_key} but is not accessible to this user :: {original.details}",
        provider_status=original.provider_status,
        provider_body=original.provider_body,
    )


def _lookup_commissioner(client: YahooClient, user_id: str, league_key: str, settings_obj: dict) -> Optional[dict]:
    """Secondary, best-effort: any failure leaves the commissioner out."""
    try:
        team_id = settings_obj.get("commissioner_team_id")
        if team_id:
            payload = client.get(user_id, f"/team/{league_key}.t.{team_id}/metadata")
            return commissioner_from_team(parse_team(payload))
        payload = client.get(user_id, f"/league/{league_key}/teams")
        return find_commissioner(parse_teams(payload), payload)
    except Exception as exc:
        log.warning("Commissioner lookup failed for league=%s: %s", league_key, exc)
        return None


def fetch_league(client: YahooClient, user_id: str, league_key: str) -> dict:
    key = _require_league_key(league_key)
    try:
        payload = client.get(user_id, f"/league/{key}/settings")
    except AmbiguousLookup as exc:
        raise disambiguate_league(client, user_id, key, exc) from exc

    try:
        league, settings_obj = parse_league(payload)
    except ValueError as exc:
        raise UpstreamError(f"Could not parse league {key}: {exc}") from exc

    league["commissioner"] = _lookup_commissioner(client, user_id, key, settings_obj)
    return league


def fetch_league_teams(client: YahooClient, user_id: str, league_key: str) -> List[dict]:
    key = _require_league_key(league_key)
    try:
        payload = client.get(user_id, f"/league/{key}/teams")
    except AmbiguousLookup as exc:
        raise disambiguate_league(client, user_id, key, exc) from exc
    try:
        teams = parse_teams(payload)
    except ValueError as exc:
        raise UpstreamError(f"Could not parse teams for league {key}: {exc}") from exc
    log.debug("Found %d teams in league=%s", len(teams), key)
    return teams


def fetch_user_leagues(client: YahooClient, user_id: str, game_keys: Optional[List[str]] = None) -> List[dict]:
    """Leagues the connected Yahoo user belongs to, optionally limited to game keys."""
    if game_keys:
        path = f"/users;use_login=1/games;game_keys={','.join(game_keys)}/leagues"
    else:
        path = "/users;use_login=1/games/leagues"
    payload = client.get(user_id, path)
    try:
        return parse_leagues(payload)
    except ValueError as exc:
        raise UpstreamError(f"Could not parse leagues for user {user_id}: {exc}") from exc

