"""
Time and pitch allocation.

Allocation is a single pass over the fixtures in dependency-safe order. Each
fixture gets the earliest (pitch, start) that keeps the pitch free for the
match plus transition time and gives every participant its minimum rest.
All bookings go through an explicit ``Timeline`` so the pass can be resumed
later from an existing plan.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from .models import (
    AllocatedMatch,
    ConfigurationError,
    Fixture,
    FixtureState,
    GroupScheduling,
    IssueKind,
    Known,
    Pending,
    Pitch,
    RestConstraint,
    ScheduleIssue,
    ScheduleStats,
    Severity,
    SourceRole,
    StageConfig,
    TimingConfig,
)

logger = logging.getLogger(__name__)

Interval = Tuple[datetime, datetime, str]


@dataclass
class Timeline:
    """Bookings made so far: pitch intervals, last match per team, end of every match and group."""
    pitches: Dict[str, List[Interval]] = field(default_factory=dict)
    team_last: Dict[str, Tuple[datetime, str]] = field(default_factory=dict)
    match_end: Dict[str, datetime] = field(default_factory=dict)
    group_end: Dict[Tuple[str, str], Tuple[datetime, str]] = field(default_factory=dict)
    latest_end: Optional[datetime] = None

    @classmethod
    def from_matches(cls, pitches: List[Pitch], matches: List[AllocatedMatch]) -> 'Timeline':
        timeline = cls(pitches={p.pitch_id: [] for p in pitches})
        for match in sorted((m for m in matches if m.is_allocated), key=lambda m: m.start):
            timeline.book(match)
        return timeline

    def book(self, match: AllocatedMatch):
        intervals = self.pitches.setdefault(match.pitch_id, [])
        intervals.append((match.start, match.end, match.match_id))
        intervals.sort()
        self.match_end[match.match_id] = match.end
        for team_id in match.fixture.known_team_ids:
            last = self.team_last.get(team_id)
            if last is None or match.end > last[0]:
                self.team_last[team_id] = (match.end, match.match_id)
        if match.group_id is not None:
            key = (match.stage_id, match.group_id)
            last = self.group_end.get(key)
            if last is None or match.end > last[0]:
                self.group_end[key] = (match.end, match.match_id)
        if self.latest_end is None or match.end > self.latest_end:
            self.latest_end = match.end

    def pitch_free_at(self, pitch_id: str) -> Optional[datetime]:
        intervals = self.pitches.get(pitch_id)
        return intervals[-1][1] if intervals else None

    def match_count(self, pitch_id: str) -> int:
        return len(self.pitches.get(pitch_id, []))

    def earliest_on_pitch(self, pitch: Pitch, not_before: datetime,
                          duration: timedelta, transition: timedelta) -> datetime:
        """Earliest start >= not_before leaving transition time around every booked interval."""
        candidate = not_before
        if pitch.available_from is not None and pitch.available_from > candidate:
            candidate = pitch.available_from
        for start, end, _ in self.pitches.get(pitch.pitch_id, []):
            if candidate + duration + transition <= start:
                break
            candidate = max(candidate, end + transition)
        return candidate


@dataclass
class AllocationResult:
    matches: List[AllocatedMatch]
    timeline: Timeline
    warnings: List[ScheduleIssue] = field(default_factory=list)
    errors: List[ScheduleIssue] = field(default_factory=list)
    stats: ScheduleStats = field(default_factory=ScheduleStats)


# (end, prior match id, team id or placeholder label)
RestClaim = Tuple[datetime, str, str]


def allocation_order(fixtures: List[Fixture], stages: Optional[List[StageConfig]] = None) -> List[Fixture]:
    """
    Sort fixtures so that prerequisites always come first.

    Stage order, then round, group order, bracket position and generation
    order. Stages scheduling groups sequentially put group before round.
    """
    sequential = {s.stage_id for s in (stages or [])
                  if s.group_scheduling is GroupScheduling.SEQUENTIAL}

    def key(fixture: Fixture):
        position = fixture.position.sort_key() if fixture.position else (0, 0, 0)
        if fixture.stage_id in sequential:
            return (fixture.stage_order, fixture.group_order, fixture.round_number, position, fixture.sequence)
        return (fixture.stage_order, fixture.round_number, fixture.group_order, position, fixture.sequence)

    return sorted(fixtures, key=key)


def _rest_claims(fixture: Fixture, timeline: Timeline) -> List[RestClaim]:
    """Previous matches each participant must rest after."""
    claims = []
    for participant in fixture.participants:
        if isinstance(participant, Known):
            last = timeline.team_last.get(participant.team_id)
            if last is not None:
                claims.append((last[0], last[1], participant.team_id))
        elif isinstance(participant, Pending):
            source = participant.source
            if source.role in (SourceRole.WINNER, SourceRole.LOSER):
                end = timeline.match_end.get(source.match_id)
                if end is not None:
                    claims.append((end, source.match_id, participant.label))
            elif source.role is SourceRole.GROUP_RANK:
                last = timeline.group_end.get((source.stage_id, source.group_id))
                if last is not None:
                    claims.append((last[0], last[1], participant.label))
    return claims


def _find_slot(timeline: Timeline, pitches: List[Pitch], not_before: datetime,
               duration: timedelta, transition: timedelta,
               horizon: Optional[datetime]) -> Optional[Tuple[Pitch, datetime]]:
    best = None
    best_key = None
    for index, pitch in enumerate(pitches):
        start = timeline.earliest_on_pitch(pitch, not_before, duration, transition)
        latest = pitch.available_to
        if horizon is not None and (latest is None or horizon < latest):
            latest = horizon
        if latest is not None and start + duration > latest:
            continue
        free_at = timeline.pitch_free_at(pitch.pitch_id) or pitch.available_from or datetime.min
        key = (start, free_at, timeline.match_count(pitch.pitch_id), index)
        if best_key is None or key < best_key:
            best, best_key = (pitch, start), key
    return best


def _issue(kind: IssueKind, severity: Severity, message: str, fixture: Fixture, **details) -> ScheduleIssue:
    return ScheduleIssue(
        kind=kind,
        severity=severity,
        message=message,
        match_id=fixture.match_id,
        stage_id=fixture.stage_id,
        group_id=fixture.group_id,
        team_ids=fixture.known_team_ids,
        details=details,
    )


def number_matches(matches: List[AllocatedMatch], pitches: List[Pitch]) -> List[AllocatedMatch]:
    """Chronological numbering; unallocated matches follow unnumbered."""
    pitch_index = {p.pitch_id: i for i, p in enumerate(pitches)}
    allocated = sorted(
        (m for m in matches if m.is_allocated),
        key=lambda m: (m.start, pitch_index.get(m.pitch_id, len(pitch_index)), m.match_id),
    )
    for number, match in enumerate(allocated, start=1):
        match.match_number = number
    unallocated = [m for m in matches if not m.is_allocated]
    for match in unallocated:
        match.match_number = 0
    return allocated + unallocated


def compute_stats(matches: List[AllocatedMatch], pitches: List[Pitch]) -> ScheduleStats:
    allocated = [m for m in matches if m.is_allocated]
    stats = ScheduleStats(pitch_minutes={p.pitch_id: 0 for p in pitches},
                          pitch_utilization={p.pitch_id: 0.0 for p in pitches})
    if not allocated:
        return stats

    first_start = min(m.start for m in allocated)
    last_end = max(m.end for m in allocated)
    span = int((last_end - first_start).total_seconds() // 60)

    for match in allocated:
        minutes = int((match.end - match.start).total_seconds() // 60)
        stats.pitch_minutes[match.pitch_id] = stats.pitch_minutes.get(match.pitch_id, 0) + minutes
    for pitch_id, minutes in stats.pitch_minutes.items():
        stats.pitch_utilization[pitch_id] = round(minutes / span, 3) if span else 0.0

    by_team: Dict[str, List[AllocatedMatch]] = {}
    for match in allocated:
        for team_id in match.fixture.known_team_ids:
            by_team.setdefault(team_id, []).append(match)
    gaps = []
    for team_matches in by_team.values():
        team_matches.sort(key=lambda m: m.start)
        for prev, nxt in zip(team_matches, team_matches[1:]):
            gaps.append((nxt.start - prev.end).total_seconds() / 60)

    stats.total_matches = len(allocated)
    stats.total_duration_minutes = span
    stats.average_rest_minutes = round(sum(gaps) / len(gaps), 1) if gaps else 0.0
    stats.estimated_end_time = last_end
    return stats


def allocate(fixtures: List[Fixture], timing: TimingConfig, rest: Optional[RestConstraint] = None,
             stages: Optional[List[StageConfig]] = None,
             timeline: Optional[Timeline] = None) -> AllocationResult:
    """
    Give every playable fixture a pitch and a time window.

    Byes, conditional and void fixtures are carried through unallocated.
    Problems are collected as issues on the result, never raised.
    """
    if timing.start_time is None:
        raise ConfigurationError("No start time configured")
    if not timing.pitches:
        raise ConfigurationError("No active pitches configured")

    rest = rest or RestConstraint()
    timeline = timeline or Timeline(pitches={p.pitch_id: [] for p in timing.pitches})
    duration = timedelta(minutes=timing.match_duration_minutes)
    transition = timedelta(minutes=timing.transition_minutes)
    min_rest = timedelta(minutes=rest.minimum_minutes)
    preferred = rest.preferred_minutes
    horizon = timing.horizon()
    gaps = {s.stage_id: s.gap_before_minutes for s in (stages or [])}
    batch_ids = {f.match_id for f in fixtures}

    result = AllocationResult(matches=[], timeline=timeline)
    stage_start: Dict[str, datetime] = {}

    for fixture in allocation_order(fixtures, stages):
        match = AllocatedMatch(fixture)
        result.matches.append(match)
        if fixture.state is not FixtureState.PLAYABLE:
            continue

        if fixture.stage_id not in stage_start:
            start = timing.start_time
            gap = gaps.get(fixture.stage_id, 0)
            if gap and timeline.latest_end is not None:
                start = max(start, timeline.latest_end + timedelta(minutes=gap))
            stage_start[fixture.stage_id] = start

        missing = [dep for dep in fixture.depends_on
                   if dep not in timeline.match_end and dep in batch_ids]
        if missing:
            result.errors.append(_issue(
                IssueKind.DEPENDENCY, Severity.ERROR,
                f"Match {fixture.match_id} depends on unscheduled match(es) {', '.join(missing)}",
                fixture, depends_on=missing,
            ))
            continue

        claims = _rest_claims(fixture, timeline)
        not_before = stage_start[fixture.stage_id]
        for end, _, _ in claims:
            not_before = max(not_before, end + min_rest)

        slot = _find_slot(timeline, timing.pitches, not_before, duration, transition, horizon)
        if slot is None:
            # Minimum rest cannot be met in time: fall back to the first slot without overlap
            relaxed = stage_start[fixture.stage_id]
            for end, _, _ in claims:
                relaxed = max(relaxed, end)
            slot = _find_slot(timeline, timing.pitches, relaxed, duration, transition, horizon)
            if slot is None:
                result.errors.append(_issue(
                    IssueKind.NO_SLOT, Severity.ERROR,
                    f"No pitch slot for match {fixture.match_id} before {horizon}", fixture,
                ))
                logger.warning("No slot for %s", fixture.match_id)
                continue

        pitch, start = slot
        match.pitch_id = pitch.pitch_id
        match.start = start
        match.end = start + duration
        timeline.book(match)

        for end, prior_id, who in claims:
            rested = int((start - end).total_seconds() // 60)
            if start - end < min_rest:
                result.errors.append(_issue(
                    IssueKind.REST_TIME, Severity.ERROR,
                    f"{who} rests {rested} min between {prior_id} and {fixture.match_id} "
                    f"(minimum {rest.minimum_minutes})",
                    fixture, conflicting_match_id=prior_id, participant=who, rest_minutes=rested,
                ))
            elif preferred is not None and rested < preferred:
                result.warnings.append(_issue(
                    IssueKind.REST_TIME, Severity.WARNING,
                    f"{who} rests {rested} min between {prior_id} and {fixture.match_id} "
                    f"(preferred {preferred})",
                    fixture, conflicting_match_id=prior_id, participant=who, rest_minutes=rested,
                ))

    counts = {p.pitch_id: 0 for p in timing.pitches}
    for match in result.matches:
        if match.is_allocated:
            counts[match.pitch_id] = counts.get(match.pitch_id, 0) + 1
    if counts and max(counts.values()) - min(counts.values()) > 1:
        result.warnings.append(ScheduleIssue(
            kind=IssueKind.PITCH_LOAD,
            severity=Severity.WARNING,
            message=f"Uneven pitch load: {counts}",
            details={'match_counts': counts},
        ))

    result.matches = number_matches(result.matches, timing.pitches)
    result.stats = compute_stats(result.matches, timing.pitches)
    logger.info("Allocated %d of %d fixtures, %d errors, %d warnings",
                result.stats.total_matches, len(fixtures), len(result.errors), len(result.warnings))
    return result
