"""
Group standings from completed match results.
"""
from typing import Dict, List, Optional, Tuple

from .models import CompletedMatch, TeamStanding

POINTS_WIN = 3
POINTS_DRAW = 1
POINTS_LOSS = 0


def _apply(standing: TeamStanding, scored: int, conceded: int):
    standing.played += 1
    standing.goals_for += scored
    standing.goals_against += conceded
    if scored > conceded:
        standing.won += 1
        standing.points += POINTS_WIN
    elif scored == conceded:
        standing.drawn += 1
        standing.points += POINTS_DRAW
    else:
        standing.lost += 1
        standing.points += POINTS_LOSS


def _head_to_head(team_ids: List[str], matches: List[CompletedMatch]) -> Dict[str, Tuple[int, int, int]]:
    """Mini table among tied teams: (points, goal difference, goals for) from their mutual matches."""
    tied = set(team_ids)
    mini = {team_id: TeamStanding(team_id) for team_id in team_ids}
    for match in matches:
        if match.home_id in tied and match.away_id in tied:
            _apply(mini[match.home_id], match.result.home_score, match.result.away_score)
            _apply(mini[match.away_id], match.result.away_score, match.result.home_score)
    return {
        team_id: (row.points, row.goal_difference, row.goals_for)
        for team_id, row in mini.items()
    }


def calculate_standings(group_id: Optional[str], completed_matches: List[CompletedMatch],
                        teams: Optional[List[str]] = None,
                        head_to_head: bool = False,
                        stage_id: Optional[str] = None) -> List[TeamStanding]:
    """
    Rank the teams of one group.

    Win = 3, draw = 1, loss = 0. Only matches tagged with ``group_id`` count,
    and with ``stage_id`` too when one is given (group ids repeat across stages).
    Ordering: points, then (when ``head_to_head`` is set) the mini table of
    matches among teams level on points, then goal difference, goals for and
    finally registration order. ``teams`` gives registration order; without
    it, teams are ranked in order of first appearance.
    """
    matches = [m for m in completed_matches
               if m.group_id == group_id and (stage_id is None or m.stage_id == stage_id)]

    order: List[str] = list(teams or [])
    for match in matches:
        for team_id in (match.home_id, match.away_id):
            if team_id not in order:
                order.append(team_id)

    table = {team_id: TeamStanding(team_id) for team_id in order}
    for match in matches:
        _apply(table[match.home_id], match.result.home_score, match.result.away_score)
        _apply(table[match.away_id], match.result.away_score, match.result.home_score)

    h2h: Dict[str, Tuple[int, int, int]] = {}
    if head_to_head:
        by_points: Dict[int, List[str]] = {}
        for team_id, row in table.items():
            by_points.setdefault(row.points, []).append(team_id)
        for tied in by_points.values():
            if len(tied) > 1:
                h2h.update(_head_to_head(tied, matches))

    def sort_key(row: TeamStanding):
        mini = h2h.get(row.team_id, (0, 0, 0))
        return (
            -row.points,
            -mini[0], -mini[1], -mini[2],
            -row.goal_difference,
            -row.goals_for,
            order.index(row.team_id),
        )

    ranked = sorted(table.values(), key=sort_key)
    for position, row in enumerate(ranked, start=1):
        row.position = position
    return ranked
