from typing import List, Optional
from pydantic import BaseModel


class Commissioner(BaseModel):
    name: str
    email: Optional[str] = None
    guid: Optional[str] = None
    team_id: Optional[str] = None
    team_key: Optional[str] = None


class LeagueSummary(BaseModel):
    id: str
    league_key: str
    name: str
    season: str
    scoring_type: str
    categories: List[str] = []


class League(BaseModel):
    id: str
    league_key: str
    league_id: str
    name: str
    season: str = ""
    sport: str = ""
    url: Optional[str] = None
    logo_url: Optional[str] = None
    num_teams: int = 0
    scoring_type: str = ""
    draft_status: Optional[str] = None
    is_finished: bool = False
    current_week: Optional[int] = None
    start_week: Optional[int] = None
    end_week: Optional[int] = None
    playoff_start_week: Optional[int] = None
    commissioner: Optional[Commissioner] = None
