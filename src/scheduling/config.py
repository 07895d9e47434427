"""
Loading tournament configuration from YAML (and pitches from CSV).

Example tournament file::

    tournament:
      start_time: 2024-06-01 09:00
      match_duration_minutes: 20
      transition_minutes: 5
    rest:
      minimum_minutes: 15
      preferred_minutes: 30
    pitches:
      - id: p1
        name: Pitch 1
    stages:
      - id: groups
        name: Group Stage
        order: 1
        format: group_stage
        groups:
          - id: A
            name: Group A
            teams: [t1, t2, t3, t4]
      - id: ko
        name: Knockout
        order: 2
        format: knockout
        advancing_team_count: 4
        third_place: true
"""
import csv
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .models import (
    ConfigurationError,
    GroupConfig,
    GroupScheduling,
    Pitch,
    RestConstraint,
    RoundRobinType,
    StageConfig,
    StageFormat,
    TeamAssignment,
    TimingConfig,
)

DATETIME_FORMATS = ('%Y-%m-%d %H:%M', '%Y-%m-%d %H:%M:%S', '%Y-%m-%dT%H:%M')


def parse_datetime(value: Any, base_date: Optional[date] = None) -> Optional[datetime]:
    """Accept datetimes, ISO strings, 'YYYY-MM-DD HH:MM', or 'HH:MM' on ``base_date``."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if base_date is not None and len(text) <= 5 and ':' in text:
        return datetime.combine(base_date, datetime.strptime(text, '%H:%M').time())
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise ConfigurationError(f"Invalid date/time: {value!r}")


def _parse_team(entry: Any) -> TeamAssignment:
    if isinstance(entry, dict):
        return TeamAssignment(team_id=str(entry['id']), name=entry.get('name'), seed=entry.get('seed'))
    return TeamAssignment(team_id=str(entry))


def _parse_group(entry: Dict[str, Any], index: int) -> GroupConfig:
    group_id = str(entry.get('id', index + 1))
    try:
        round_robin = RoundRobinType(entry.get('round_robin', 'single'))
    except ValueError:
        raise ConfigurationError(f"Unknown round robin type {entry.get('round_robin')!r}")
    return GroupConfig(
        group_id=group_id,
        name=entry.get('name', f"Group {group_id}"),
        order=entry.get('order', index + 1),
        round_robin=round_robin,
        teams=[_parse_team(t) for t in entry.get('teams') or []],
    )


def _parse_stage(entry: Dict[str, Any], index: int) -> StageConfig:
    if 'id' not in entry or 'format' not in entry:
        raise ConfigurationError(f"Stage #{index + 1} needs an id and a format")
    try:
        stage_format = StageFormat(entry['format'])
    except ValueError:
        raise ConfigurationError(f"Unknown stage format {entry['format']!r}", stage_id=str(entry['id']))

    try:
        group_scheduling = GroupScheduling(entry.get('group_scheduling', 'interleaved'))
    except ValueError:
        raise ConfigurationError(f"Unknown group scheduling {entry.get('group_scheduling')!r}",
                                 stage_id=str(entry['id']))

    groups = [_parse_group(g, i) for i, g in enumerate(entry.get('groups') or [])]
    # Elimination stages may list their entrants directly
    if entry.get('teams') and not groups:
        groups = [GroupConfig(group_id='main', name=entry.get('name', ''),
                              teams=[_parse_team(t) for t in entry['teams']])]

    return StageConfig(
        stage_id=str(entry['id']),
        name=entry.get('name', str(entry['id'])),
        order=entry.get('order', index + 1),
        format=stage_format,
        gap_before_minutes=entry.get('gap_before_minutes', 0),
        groups=groups,
        advancing_team_count=entry.get('advancing_team_count'),
        third_place=bool(entry.get('third_place', False)),
        bracket_reset=bool(entry.get('bracket_reset', True)),
        group_scheduling=group_scheduling,
    )


def _parse_pitch(entry: Any, base_date: Optional[date]) -> Pitch:
    if not isinstance(entry, dict):
        return Pitch(pitch_id=str(entry), name=str(entry))
    pitch_id = str(entry.get('id') or entry.get('name'))
    return Pitch(
        pitch_id=pitch_id,
        name=entry.get('name', pitch_id),
        available_from=parse_datetime(entry.get('available_from'), base_date),
        available_to=parse_datetime(entry.get('available_to'), base_date),
    )


def parse_tournament_config(data: Dict[str, Any],
                            pitches: Optional[List[Pitch]] = None
                            ) -> Tuple[List[StageConfig], TimingConfig, RestConstraint]:
    """Build stage, timing and rest configuration from a plain dict."""
    if not isinstance(data, dict):
        raise ConfigurationError("Tournament configuration must be a mapping")

    tournament = data.get('tournament') or {}
    start_time = parse_datetime(tournament.get('start_time'))
    base_date = start_time.date() if start_time else None

    if pitches is None:
        pitches = [_parse_pitch(p, base_date) for p in data.get('pitches') or []]

    timing = TimingConfig(
        start_time=start_time,
        match_duration_minutes=int(tournament.get('match_duration_minutes', 60)),
        transition_minutes=int(tournament.get('transition_minutes', 0)),
        pitches=pitches,
        end_time=parse_datetime(tournament.get('end_time'), base_date),
    )

    rest_data = data.get('rest') or {}
    rest = RestConstraint(
        minimum_minutes=int(rest_data.get('minimum_minutes', 15)),
        preferred_minutes=rest_data.get('preferred_minutes', 30),
    )

    stages = [_parse_stage(s, i) for i, s in enumerate(data.get('stages') or [])]
    return stages, timing, rest


def load_pitches_csv(file_path: str, base_date: Optional[date] = None) -> List[Pitch]:
    """Read pitches from a CSV with columns pitch_id, name and optional available_from/available_to."""
    pitches = []
    with open(file_path, mode='r', encoding='utf-8') as file:
        reader = csv.DictReader(file)
        for row in reader:
            pitch_id = (row.get('pitch_id') or row.get('name') or '').strip()
            if not pitch_id:
                continue
            pitches.append(Pitch(
                pitch_id=pitch_id,
                name=(row.get('name') or pitch_id).strip(),
                available_from=parse_datetime((row.get('available_from') or '').strip(), base_date),
                available_to=parse_datetime((row.get('available_to') or '').strip(), base_date),
            ))
    return pitches


def load_tournament(file_path: str, pitches_file: Optional[str] = None
                    ) -> Tuple[List[StageConfig], TimingConfig, RestConstraint]:
    with open(file_path, mode='r', encoding='utf-8') as file:
        data = yaml.safe_load(file) or {}
    stages, timing, rest = parse_tournament_config(data)
    if pitches_file:
        base_date = timing.start_time.date() if timing.start_time else None
        timing.pitches = load_pitches_csv(pitches_file, base_date)
    return stages, timing, rest
