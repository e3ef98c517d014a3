# fantasy_link/api/routes_league.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from fantasy_link.deps import get_user_id, get_yahoo_client
from fantasy_link.schemas.league import League, LeagueSummary
from fantasy_link.schemas.team import Team
from fantasy_link.services.yahoo import (
    YahooClient,
    fetch_league,
    fetch_league_teams,
    fetch_team,
    fetch_user_leagues,
)

router = APIRouter(prefix="/yahoo", tags=["yahoo"])


@router.get("/leagues", response_model=List[LeagueSummary])
def my_leagues(
    game_keys: Optional[str] = Query(default=None, description="Comma-separated Yahoo game keys, e.g. 449,454"),
    user_id: str = Depends(get_user_id),
    client: YahooClient = Depends(get_yahoo_client),
):
    """Leagues of the connected Yahoo account."""
    keys = [k.strip() for k in game_keys.split(",") if k.strip()] if game_keys else None
    return [LeagueSummary(**lg) for lg in fetch_user_leagues(client, user_id, keys)]


@router.get("/leagues/{league_key}", response_model=League)
def league_details(
    league_key: str,
    user_id: str = Depends(get_user_id),
    client: YahooClient = Depends(get_yahoo_client),
):
    return League(**fetch_league(client, user_id, league_key))


@router.get("/leagues/{league_key}/teams", response_model=List[Team])
def league_teams(
    league_key: str,
    user_id: str = Depends(get_user_id),
    client: YahooClient = Depends(get_yahoo_client),
):
    return [Team(**t) for t in fetch_league_teams(client, user_id, league_key)]


@router.get("/teams/{team_key}", response_model=Team)
def team_details(
    team_key: str,
    user_id: str = Depends(get_user_id),
    client: YahooClient = Depends(get_yahoo_client),
):
    """Team metadata, standings and roster."""
    return Team(**fetch_team(client, user_id, team_key))
