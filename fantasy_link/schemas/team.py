from pydantic import BaseModel
from typing import List, Optional


class RosterPlayer(BaseModel):
    id: str
    player_key: str
    player_id: str
    name: str
    positions: List[str] = []
    display_position: Optional[str] = None
    status: str = "Active"
    team_abbr: Optional[str] = None
    selected_position: str = "BN"


class Team(BaseModel):
    id: str
    team_key: str
    team_id: str
    league_key: str
    name: str
    manager_name: str = "Unknown Manager"
    manager_guid: Optional[str] = None
    manager_email: Optional[str] = None
    logo_url: Optional[str] = None
    waiver_priority: Optional[int] = None
    standing: Optional[int] = None
    record: Optional[str] = None
    points: Optional[float] = None
    roster: List[RosterPlayer] = []
