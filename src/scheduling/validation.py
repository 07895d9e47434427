"""
Constraint checks over an allocated plan.

Used after allocation and on plans edited or loaded from storage.
"""
from datetime import timedelta
from typing import Dict, List, Optional

from .models import (
    AllocatedMatch,
    IssueKind,
    RestConstraint,
    ScheduleIssue,
    Severity,
    TimingConfig,
)


def check_pitch_conflicts(matches: List[AllocatedMatch], transition_minutes: int) -> List[ScheduleIssue]:
    """Overlaps and too-short transitions between neighbours on one pitch."""
    transition = timedelta(minutes=transition_minutes)
    by_pitch: Dict[str, List[AllocatedMatch]] = {}
    for match in matches:
        if match.is_allocated:
            by_pitch.setdefault(match.pitch_id, []).append(match)

    issues = []
    for pitch_id, pitch_matches in by_pitch.items():
        pitch_matches.sort(key=lambda m: m.start)
        for prev, nxt in zip(pitch_matches, pitch_matches[1:]):
            if nxt.start < prev.end + transition:
                kind = "overlaps" if nxt.start < prev.end else "follows too closely"
                issues.append(ScheduleIssue(
                    kind=IssueKind.PITCH_CONFLICT,
                    severity=Severity.ERROR,
                    message=f"Match {nxt.match_id} {kind} {prev.match_id} on pitch {pitch_id}",
                    match_id=nxt.match_id,
                    stage_id=nxt.stage_id,
                    group_id=nxt.group_id,
                    details={'pitch_id': pitch_id, 'conflicting_match_id': prev.match_id},
                ))
    return issues


def check_dependencies(matches: List[AllocatedMatch]) -> List[ScheduleIssue]:
    """A match may not start before the matches feeding it have finished."""
    by_id = {m.match_id: m for m in matches}
    issues = []
    for match in matches:
        if not match.is_allocated:
            continue
        for dep_id in match.fixture.depends_on:
            dep = by_id.get(dep_id)
            if dep is None or not dep.is_allocated:
                continue
            if dep.end > match.start:
                issues.append(ScheduleIssue(
                    kind=IssueKind.DEPENDENCY,
                    severity=Severity.ERROR,
                    message=f"Match {match.match_id} starts before {dep_id} has finished",
                    match_id=match.match_id,
                    stage_id=match.stage_id,
                    group_id=match.group_id,
                    details={'depends_on': dep_id},
                ))
    return issues


def check_rest_times(matches: List[AllocatedMatch], rest: RestConstraint) -> List[ScheduleIssue]:
    by_team: Dict[str, List[AllocatedMatch]] = {}
    for match in matches:
        if match.is_allocated:
            for team_id in match.fixture.known_team_ids:
                by_team.setdefault(team_id, []).append(match)

    issues = []
    for team_id, team_matches in by_team.items():
        team_matches.sort(key=lambda m: m.start)
        for prev, nxt in zip(team_matches, team_matches[1:]):
            rested = int((nxt.start - prev.end).total_seconds() // 60)
            if rested < rest.minimum_minutes:
                severity, limit = Severity.ERROR, rest.minimum_minutes
            elif rest.preferred_minutes is not None and rested < rest.preferred_minutes:
                severity, limit = Severity.WARNING, rest.preferred_minutes
            else:
                continue
            issues.append(ScheduleIssue(
                kind=IssueKind.REST_TIME,
                severity=severity,
                message=f"{team_id} rests {rested} min between {prev.match_id} and {nxt.match_id} (needs {limit})",
                match_id=nxt.match_id,
                stage_id=nxt.stage_id,
                group_id=nxt.group_id,
                team_ids=[team_id],
                details={'conflicting_match_id': prev.match_id, 'rest_minutes': rested},
            ))
    return issues


def validate_plan(matches: List[AllocatedMatch], timing: TimingConfig,
                  rest: Optional[RestConstraint] = None, check_rest: bool = True) -> List[ScheduleIssue]:
    issues = check_pitch_conflicts(matches, timing.transition_minutes)
    issues.extend(check_dependencies(matches))
    if check_rest:
        issues.extend(check_rest_times(matches, rest or RestConstraint()))
    return issues
