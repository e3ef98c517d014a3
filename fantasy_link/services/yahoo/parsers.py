from __future__ import annotations
import re
from typing import Any, Dict, List, Optional, Tuple

LEAGUE_KEY_RE = re.compile(r"^[a-z0-9]+\.l\.\d+$", re.IGNORECASE)
TEAM_KEY_RE = re.compile(r"^[a-z0-9]+\.l\.\d+\.t\.\d+$", re.IGNORECASE)


def stable_id(provider_key: str) -> str:
    """Deterministic app id for a Yahoo key, e.g. 449.l.1234 -> yahoo-449-l-1234."""
    return "yahoo-" + str(provider_key).strip().lower().replace(".", "-")


def game_key_of(league_key: str) -> str:
    return league_key.split(".l.", 1)[0]


def league_key_of(team_key: str) -> str:
    return team_key.split(".t.", 1)[0]


# ---------------- Small utils ----------------
def _get(d: Any, *keys) -> Any:
    cur = d
    for k in keys:
        if isinstance(cur, dict) and k in cur:
            cur = cur[k]
        elif isinstance(cur, list) and isinstance(k, int) and -len(cur) <= k < len(cur):
            cur = cur[k]
        else:
            return None
    return cur

def _as_list(x: Any) -> List:
    if x is None:
        return []
    if isinstance(x, list):
        return x
    return [x]

def _coalesce_str(*vals):
    for v in vals:
        if isinstance(v, str) and v.strip():
            return v.strip()
    return None

def _to_int(v: Any) -> Optional[int]:
    try:
        return int(v)
    except (TypeError, ValueError):
        return None

def _to_float(v: Any) -> Optional[float]:
    try:
        return float(v)
    except (TypeError, ValueError):
        return None

def _merge_parts(node: Any) -> dict:
    """
    Yahoo encodes one entity as a list of single-key dicts, sometimes wrapped in
    another list: [[{team_key}, {name}, [], ...], {team_standings}, ...]. Merge them.
    """
    agg: dict = {}
    if isinstance(node, dict):
        agg.update(node)
        return agg
    if not isinstance(node, list):
        return agg
    for part in node:
        if isinstance(part, dict):
            agg.update(part)
        elif isinstance(part, list):
            for sub in part:
                if isinstance(sub, dict):
                    agg.update(sub)
    return agg

def _indexed(container: Any, item_key: str) -> List[Any]:
    """Items of a Yahoo {"0": {item_key: ...}, "1": ..., "count": N} collection."""
    out: List[Any] = []
    if isinstance(container, dict):
        for k in sorted((k for k in container if str(k).isdigit()), key=int):
            v = container[k]
            if isinstance(v, dict) and item_key in v:
                out.append(v[item_key])
    elif isinstance(container, list):
        for v in container:
            if isinstance(v, dict) and item_key in v:
                out.append(v[item_key])
    return out

def _name_of(obj: dict) -> Optional[str]:
    nm = obj.get("name")
    if isinstance(nm, str):
        return nm
    if isinstance(nm, dict):
        return _coalesce_str(nm.get("full"), nm.get("name"))
    return None

def _deep_first_position(val) -> str | None:
    """
    Recursively search dict/list nodes for a string under common keys ONLY:
    'position', 'abbr', 'pos', 'display_position'.
    """
    KEYS = ("position", "abbr", "pos", "display_position")

    if isinstance(val, str) and val.strip():
        return val.strip()

    if isinstance(val, dict):
        for k in KEYS:
            v = val.get(k)
            if isinstance(v, str) and v.strip():
                return v.strip()
            if isinstance(v, (dict, list)):
                got = _deep_first_position(v)
                if got:
                    return got
        # only recurse into containers; avoid returning e.g. coverage_type="date"
        for v in val.values():
            if isinstance(v, (dict, list)):
                got = _deep_first_position(v)
                if got:
                    return got
        return None

    if isinstance(val, list):
        for item in val:
            got = _deep_first_position(item)
            if got:
                return got
        return None

    return None

def _extract_selected_slot(container: Any) -> str | None:
    node = None
    if isinstance(container, list):
        for part in container[1:]:
            if isinstance(part, dict) and "selected_position" in part:
                node = part["selected_position"]
                break
    elif isinstance(container, dict):
        node = container.get("selected_position")
    if node is None:
        return None
    pos = _deep_first_position(node)
    return pos.upper() if pos else None


# ---------------- Managers ----------------
def _managers(team_obj: dict) -> List[dict]:
    mgrs = team_obj.get("managers")
    out: List[dict] = []
    if isinstance(mgrs, list):
        items = mgrs
    elif isinstance(mgrs, dict):
        items = [mgrs[k] for k in mgrs if str(k).isdigit()] or [mgrs]
    else:
        items = []
    for item in items:
        if isinstance(item, dict):
            m = item.get("manager")
            if isinstance(m, dict):
                out.append(m)
    return out

def _primary_manager(team_obj: dict) -> dict:
    mgrs = _managers(team_obj)
    return mgrs[0] if mgrs else {}

def _logo_url(team_obj: dict) -> Optional[str]:
    for item in _as_list(team_obj.get("team_logos")):
        if isinstance(item, dict):
            url = _get(item, "team_logo", "url")
            if isinstance(url, str) and url:
                return url
    return None


# ---------------- Leagues ----------------
def parse_leagues(payload: dict) -> List[dict]:
    """
    League summaries whether Yahoo nests them under users→games or at top-level.
    ValueError when neither node is present; an empty collection is fine.
    """
    fc = payload.get("fantasy_content") if isinstance(payload, dict) else None
    if not isinstance(fc, dict) or ("leagues" not in fc and "users" not in fc):
        raise ValueError("Yahoo payload has no users or leagues node")
    out: List[dict] = []

    def _extract_from_leagues(leagues_node: Any):
        for node in _indexed(leagues_node, "league"):
            L = _merge_parts(node)
            league_key = _get(L, "league_key")
            name = _get(L, "name")
            season = _get(L, "season")
            settings_obj = _merge_parts(L.get("settings"))
            scoring_type = _get(L, "scoring_type") or settings_obj.get("scoring_type")
            cats: List[str] = []
            stats = _as_list(_get(settings_obj, "stat_categories", "stats"))
            for s in stats:
                stat = s.get("stat", s) if isinstance(s, dict) else None
                if isinstance(stat, dict):
                    dn = stat.get("display_name") or stat.get("name")
                    if dn:
                        cats.append(str(dn))
            if league_key and name:
                out.append({
                    "id": stable_id(league_key),
                    "league_key": str(league_key),
                    "name": str(name),
                    "season": str(season) if season is not None else "",
                    "scoring_type": str(scoring_type) if scoring_type is not None else "",
                    "categories": cats,
                })

    # Top-level
    top = _get(fc, "leagues")
    if top is not None:
        _extract_from_leagues(top)

    # Nested under users → games
    for user in _indexed(_get(fc, "users"), "user"):
        for item in _as_list(user):
            if not isinstance(item, dict) or "games" not in item:
                continue
            for game in _indexed(item["games"], "game"):
                for part in _as_list(game):
                    if isinstance(part, dict) and "leagues" in part:
                        _extract_from_leagues(part["leagues"])

    seen: set[str] = set()
    deduped: List[dict] = []
    for lg in out:
        if lg["league_key"] in seen:
            continue
        seen.add(lg["league_key"])
        deduped.append(lg)
    return deduped


def parse_league(payload: dict) -> Tuple[dict, dict]:
    """
    /league/{key}/settings -> (league fields, raw settings object).
    Raises ValueError when the payload has no league.
    """
    node = _get(payload, "fantasy_content", "league")
    if not isinstance(node, (list, dict)):
        raise ValueError("Yahoo payload has no league node")

    meta = node[0] if isinstance(node, list) and node else node
    meta = _merge_parts(meta)
    settings_obj: dict = {}
    if isinstance(node, list):
        for part in node[1:]:
            if isinstance(part, dict) and "settings" in part:
                settings_obj = _merge_parts(part["settings"])
                break
    elif isinstance(node.get("settings"), (list, dict)):
        settings_obj = _merge_parts(node["settings"])

    league_key = meta.get("league_key")
    if not league_key:
        raise ValueError("Yahoo league payload has no league_key")

    league = {
        "id": stable_id(league_key),
        "league_key": str(league_key),
        "league_id": str(meta.get("league_id") or league_key.split(".l.")[-1]),
        "name": _name_of(meta) or str(league_key),
        "season": str(meta.get("season") or ""),
        "sport": str(meta.get("game_code") or ""),
        "url": meta.get("url"),
        "logo_url": meta.get("logo_url") or None,
        "num_teams": _to_int(meta.get("num_teams")) or 0,
        "scoring_type": str(meta.get("scoring_type") or ""),
        "draft_status": meta.get("draft_status"),
        "is_finished": str(meta.get("is_finished") or "0") == "1",
        "current_week": _to_int(meta.get("current_week")),
        "start_week": _to_int(meta.get("start_week") or settings_obj.get("start_week")),
        "end_week": _to_int(meta.get("end_week") or settings_obj.get("end_week")),
        "playoff_start_week": _to_int(settings_obj.get("playoff_start_week")),
        "commissioner": None,
    }
    return league, settings_obj


# ---------------- Teams ----------------
def _team_from_node(team_node: Any) -> Optional[dict]:
    if isinstance(team_node, list) and team_node:
        core = _merge_parts(team_node[0] if isinstance(team_node[0], list) else team_node)
        extras = _merge_parts([p for p in team_node[1:] if isinstance(p, dict)]) if isinstance(team_node[0], list) else {}
    else:
        core = _merge_parts(team_node)
        extras = {}
    team_key = core.get("team_key")
    name = _name_of(core)
    if not team_key or not name:
        return None

    mgr = _primary_manager(core)
    standings = extras.get("team_standings") or core.get("team_standings") or {}
    points_node = extras.get("team_points") or core.get("team_points") or {}
    record = None
    totals = standings.get("outcome_totals") if isinstance(standings, dict) else None
    if isinstance(totals, dict) and totals.get("wins") is not None:
        record = f"{totals.get('wins')}-{totals.get('losses', 0)}"
        if _to_int(totals.get("ties")):
            record += f"-{totals.get('ties')}"

    points = None
    if isinstance(points_node, dict):
        points = _to_float(points_node.get("total"))
    if points is None and isinstance(standings, dict):
        points = _to_float(standings.get("points_for"))

    return {
        "id": stable_id(team_key),
        "team_key": str(team_key),
        "team_id": str(core.get("team_id") or team_key.split(".t.")[-1]),
        "league_key": league_key_of(str(team_key)),
        "name": str(name),
        "manager_name": _coalesce_str(mgr.get("nickname"), mgr.get("name")) or "Unknown Manager",
        "manager_guid": mgr.get("guid"),
        "manager_email": mgr.get("email"),
        "logo_url": _logo_url(core),
        "waiver_priority": _to_int(core.get("waiver_priority")),
        "standing": _to_int(standings.get("rank")) if isinstance(standings, dict) else None,
        "record": record,
        "points": points,
        "roster": parse_roster(extras.get("roster")) if extras.get("roster") else [],
    }


def parse_teams(payload: dict) -> List[dict]:
    """/league/{key}/teams -> normalized teams, in Yahoo order, deduped by key."""
    league = _get(payload, "fantasy_content", "league")
    teams_container = None
    if isinstance(league, list):
        for part in league[1:]:
            if isinstance(part, dict) and "teams" in part:
                teams_container = part["teams"]
                break
    elif isinstance(league, dict):
        teams_container = league.get("teams")
    if teams_container is None:
        raise ValueError("Yahoo payload has no league teams node")

    out: List[dict] = []
    seen: set[str] = set()
    for node in _indexed(teams_container, "team"):
        team = _team_from_node(node)
        if team and team["team_key"] not in seen:
            seen.add(team["team_key"])
            out.append(team)
    return out


def parse_team(payload: dict) -> dict:
    """/team/{key};out=standings,roster -> one normalized team. ValueError if absent."""
    node = _get(payload, "fantasy_content", "team")
    team = _team_from_node(node) if node is not None else None
    if team is None:
        raise ValueError("Yahoo payload has no team")
    return team


def find_commissioner(teams: List[dict], raw_payload: dict) -> Optional[dict]:
    """Commissioner from a /league/{key}/teams payload (manager flagged is_commissioner)."""
    league = _get(raw_payload, "fantasy_content", "league")
    containers = [p["teams"] for p in _as_list(league) if isinstance(p, dict) and "teams" in p]
    for container in containers:
        for node in _indexed(container, "team"):
            core = _merge_parts(node[0] if isinstance(node, list) and node and isinstance(node[0], list) else node)
            for m in _managers(core):
                if str(m.get("is_commissioner") or "0") == "1":
                    team_key = core.get("team_key")
                    return {
                        "name": m.get("nickname") or "Unknown",
                        "email": m.get("email"),
                        "guid": m.get("guid"),
                        "team_id": str(core.get("team_id")) if core.get("team_id") is not None else None,
                        "team_key": team_key,
                    }
    return None


def commissioner_from_team(team: dict) -> dict:
    return {
        "name": team.get("manager_name") or "Unknown",
        "email": team.get("manager_email"),
        "guid": team.get("manager_guid"),
        "team_id": team.get("team_id"),
        "team_key": team.get("team_key"),
    }


# ---------------- Roster ----------------
def _positions(obj: dict) -> List[str]:
    positions: List[str] = []
    for pr in _as_list(obj.get("eligible_positions")):
        if isinstance(pr, dict) and "position" in pr:
            positions.append(str(pr["position"]))
        elif isinstance(pr, str):
            positions.append(pr)
    return positions

def parse_roster(roster_node: Any) -> List[dict]:
    """
    Roster block of a team payload ({"0": {"players": {...}}, "date": ...}).
    Players without a key or name are skipped.
    """
    if isinstance(roster_node, list):
        roster_node = _merge_parts(roster_node)
    if not isinstance(roster_node, dict):
        return []

    players_container = _get(roster_node, "0", "players") or roster_node.get("players")
    out: List[dict] = []
    for pnode in _indexed(players_container, "player"):
        core = _merge_parts(pnode[0] if isinstance(pnode, list) and pnode and isinstance(pnode[0], list) else pnode)
        player_key = core.get("player_key")
        pname = _name_of(core)
        if not player_key or not pname:
            continue
        out.append({
            "id": stable_id(player_key),
            "player_key": str(player_key),
            "player_id": str(core.get("player_id") or str(player_key).split(".p.")[-1]),
            "name": pname,
            "positions": _positions(core),
            "display_position": core.get("display_position"),
            "status": core.get("status") or "Active",
            "team_abbr": core.get("editorial_team_abbr"),
            "selected_position": _extract_selected_slot(pnode) or "BN",
        })
    return out
