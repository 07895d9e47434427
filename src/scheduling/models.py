"""
Data model for the scheduling engine.

Configuration objects (stages, groups, pitches, timing, rest rules) are
read-only inputs. Fixtures are generated per call; allocated matches wrap
them with a pitch and a time window.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class SchedulingError(Exception):
    """Base class for engine errors."""


class ConfigurationError(SchedulingError):
    """Tournament configuration cannot be scheduled at all."""

    def __init__(self, message: str, stage_id: Optional[str] = None, group_id: Optional[str] = None):
        super().__init__(message)
        self.stage_id = stage_id
        self.group_id = group_id


class GenerationError(SchedulingError):
    """A single stage could not produce its pairings."""

    def __init__(self, message: str, stage_id: Optional[str] = None, group_id: Optional[str] = None):
        super().__init__(message)
        self.stage_id = stage_id
        self.group_id = group_id


class AdvancementError(SchedulingError):
    """A result cannot be applied to the bracket."""


class StageFormat(Enum):
    ROUND_ROBIN = 'round_robin'
    GROUP_STAGE = 'group_stage'
    KNOCKOUT = 'knockout'
    DOUBLE_ELIMINATION = 'double_elimination'
    GSL_GROUPS = 'gsl_groups'
    FINAL = 'final'

    @property
    def is_group_format(self) -> bool:
        return self in (StageFormat.ROUND_ROBIN, StageFormat.GROUP_STAGE, StageFormat.GSL_GROUPS)


class RoundRobinType(Enum):
    SINGLE = 'single'
    DOUBLE = 'double'


class GroupScheduling(Enum):
    """Whether groups of a stage share rounds or run one after another."""
    INTERLEAVED = 'interleaved'
    SEQUENTIAL = 'sequential'


@dataclass
class TeamAssignment:
    team_id: str
    name: Optional[str] = None
    seed: Optional[int] = None

    @property
    def display_name(self) -> str:
        return self.name or self.team_id


@dataclass
class GroupConfig:
    group_id: str
    name: str
    order: int = 0
    round_robin: RoundRobinType = RoundRobinType.SINGLE
    teams: List[TeamAssignment] = field(default_factory=list)


@dataclass
class StageConfig:
    stage_id: str
    name: str
    order: int
    format: StageFormat
    gap_before_minutes: int = 0
    groups: List[GroupConfig] = field(default_factory=list)
    advancing_team_count: Optional[int] = None
    third_place: bool = False
    bracket_reset: bool = True
    group_scheduling: GroupScheduling = GroupScheduling.INTERLEAVED

    def sorted_groups(self) -> List[GroupConfig]:
        return sorted(self.groups, key=lambda g: g.order)

    def team_count(self) -> int:
        return sum(len(g.teams) for g in self.groups)


@dataclass
class Pitch:
    pitch_id: str
    name: str = ''
    available_from: Optional[datetime] = None
    available_to: Optional[datetime] = None


@dataclass
class TimingConfig:
    start_time: Optional[datetime]
    match_duration_minutes: int
    transition_minutes: int = 0
    pitches: List[Pitch] = field(default_factory=list)
    end_time: Optional[datetime] = None

    def horizon(self) -> Optional[datetime]:
        """Latest instant a match may end (defaults to the end of the start day)."""
        if self.end_time is not None:
            return self.end_time
        if self.start_time is None:
            return None
        return self.start_time.replace(hour=23, minute=59, second=59, microsecond=0)


@dataclass
class RestConstraint:
    minimum_minutes: int = 15
    preferred_minutes: Optional[int] = 30


# ==========================================
# Participants and bracket positions
# ==========================================

class SourceRole(Enum):
    WINNER = 'winner'
    LOSER = 'loser'
    GROUP_RANK = 'group-rank'
    SEED = 'seed'


class BracketRole(Enum):
    WINNERS = 'winners'
    LOSERS = 'losers'
    GRAND_FINAL = 'grand_final'
    GRAND_FINAL_RESET = 'grand_final_reset'
    THIRD_PLACE = 'third_place'


# Allocation tie-break within a round: third place goes before the final
_ROLE_SORT = {
    BracketRole.THIRD_PLACE: 0,
    BracketRole.WINNERS: 1,
    BracketRole.LOSERS: 2,
    BracketRole.GRAND_FINAL: 3,
    BracketRole.GRAND_FINAL_RESET: 4,
}

_POSITION_RE = re.compile(r'^(W|L)-(\d+)-(\d+)$')


@dataclass(frozen=True)
class BracketPosition:
    """Structural role of a match inside an elimination bracket."""
    role: BracketRole
    round: int = 0
    index: int = 0

    @property
    def label(self) -> str:
        if self.role is BracketRole.WINNERS:
            return f"W-{self.round}-{self.index}"
        if self.role is BracketRole.LOSERS:
            return f"L-{self.round}-{self.index}"
        if self.role is BracketRole.GRAND_FINAL:
            return 'GF'
        if self.role is BracketRole.GRAND_FINAL_RESET:
            return 'GF-R'
        return '3P'

    def sort_key(self) -> Tuple[int, int, int]:
        return (_ROLE_SORT[self.role], self.round, self.index)

    @classmethod
    def parse(cls, label: str) -> 'BracketPosition':
        """Parse a display label back into a position (for external callers)."""
        fixed = {
            'GF': BracketRole.GRAND_FINAL,
            'GF-R': BracketRole.GRAND_FINAL_RESET,
            '3P': BracketRole.THIRD_PLACE,
        }
        if label in fixed:
            return cls(fixed[label])
        match = _POSITION_RE.match(label)
        if not match:
            raise ValueError(f"Unknown bracket position: {label!r}")
        role = BracketRole.WINNERS if match.group(1) == 'W' else BracketRole.LOSERS
        return cls(role, int(match.group(2)), int(match.group(3)))

    def __str__(self):
        return self.label


@dataclass(frozen=True)
class SourceRef:
    """Where a not-yet-known participant will come from."""
    role: SourceRole
    stage_id: str
    match_id: Optional[str] = None
    position: Optional[BracketPosition] = None
    group_id: Optional[str] = None
    rank: Optional[int] = None

    def key(self) -> Tuple:
        if self.role in (SourceRole.WINNER, SourceRole.LOSER):
            return (self.role.value, self.match_id)
        if self.role is SourceRole.GROUP_RANK:
            return (self.role.value, self.stage_id, self.group_id, self.rank)
        return (self.role.value, self.stage_id, self.rank)

    def to_dict(self) -> Dict[str, Any]:
        data = {'role': self.role.value, 'stage_id': self.stage_id}
        if self.match_id is not None:
            data['match_id'] = self.match_id
        if self.position is not None:
            data['position'] = self.position.label
        if self.group_id is not None:
            data['group_id'] = self.group_id
        if self.rank is not None:
            data['rank'] = self.rank
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SourceRef':
        position = data.get('position')
        return cls(
            role=SourceRole(data['role']),
            stage_id=data['stage_id'],
            match_id=data.get('match_id'),
            position=BracketPosition.parse(position) if position else None,
            group_id=data.get('group_id'),
            rank=data.get('rank'),
        )


@dataclass(frozen=True)
class Known:
    team_id: str

    def __str__(self):
        return self.team_id


@dataclass(frozen=True)
class Pending:
    source: SourceRef
    label: str

    def __str__(self):
        return self.label


Participant = Union[Known, Pending]


def participant_to_dict(participant: Optional[Participant]) -> Optional[Dict[str, Any]]:
    if participant is None:
        return None
    if isinstance(participant, Known):
        return {'team_id': participant.team_id}
    return {'source': participant.source.to_dict(), 'label': participant.label}


def participant_from_dict(data: Optional[Dict[str, Any]]) -> Optional[Participant]:
    if data is None:
        return None
    if 'team_id' in data:
        return Known(data['team_id'])
    return Pending(SourceRef.from_dict(data['source']), data['label'])


# ==========================================
# Fixtures and allocated matches
# ==========================================

class FixtureState(Enum):
    PLAYABLE = 'playable'
    BYE = 'bye'
    CONDITIONAL = 'conditional'  # not yet materialized (e.g. GF-R)
    VOID = 'void'  # condition observed not to hold


@dataclass
class Fixture:
    """A generated match without pitch or time."""
    match_id: str
    stage_id: str
    round_number: int
    home: Optional[Participant]
    away: Optional[Participant]
    stage_order: int = 0
    group_id: Optional[str] = None
    group_order: int = 0
    position: Optional[BracketPosition] = None
    round_name: str = ''
    state: FixtureState = FixtureState.PLAYABLE
    sequence: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def participants(self) -> List[Participant]:
        return [p for p in (self.home, self.away) if p is not None]

    @property
    def known_team_ids(self) -> List[str]:
        return [p.team_id for p in self.participants if isinstance(p, Known)]

    @property
    def is_resolved(self) -> bool:
        return isinstance(self.home, Known) and isinstance(self.away, Known)

    @property
    def depends_on(self) -> List[str]:
        """Match ids whose outcome feeds this fixture."""
        deps = []
        for participant in self.participants:
            if isinstance(participant, Pending) and participant.source.match_id:
                if participant.source.match_id not in deps:
                    deps.append(participant.source.match_id)
        return deps

    def to_dict(self) -> Dict[str, Any]:
        return {
            'match_id': self.match_id,
            'stage_id': self.stage_id,
            'stage_order': self.stage_order,
            'group_id': self.group_id,
            'group_order': self.group_order,
            'round_number': self.round_number,
            'round_name': self.round_name,
            'position': self.position.label if self.position else None,
            'home': participant_to_dict(self.home),
            'away': participant_to_dict(self.away),
            'state': self.state.value,
            'sequence': self.sequence,
            'metadata': dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Fixture':
        position = data.get('position')
        return cls(
            match_id=data['match_id'],
            stage_id=data['stage_id'],
            round_number=data['round_number'],
            home=participant_from_dict(data.get('home')),
            away=participant_from_dict(data.get('away')),
            stage_order=data.get('stage_order', 0),
            group_id=data.get('group_id'),
            group_order=data.get('group_order', 0),
            position=BracketPosition.parse(position) if position else None,
            round_name=data.get('round_name', ''),
            state=FixtureState(data.get('state', FixtureState.PLAYABLE.value)),
            sequence=data.get('sequence', 0),
            metadata=dict(data.get('metadata') or {}),
        )

    def __repr__(self):
        label = self.position.label if self.position else f"R{self.round_number}"
        return f"Fixture({self.match_id}, {label}, {self.home} vs {self.away}, {self.state.value})"


@dataclass
class AllocatedMatch:
    fixture: Fixture
    pitch_id: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    match_number: int = 0

    @property
    def is_allocated(self) -> bool:
        return self.pitch_id is not None and self.start is not None

    @property
    def match_id(self) -> str:
        return self.fixture.match_id

    @property
    def stage_id(self) -> str:
        return self.fixture.stage_id

    @property
    def group_id(self) -> Optional[str]:
        return self.fixture.group_id

    @property
    def round_number(self) -> int:
        return self.fixture.round_number

    @property
    def position(self) -> Optional[BracketPosition]:
        return self.fixture.position

    @property
    def home(self) -> Optional[Participant]:
        return self.fixture.home

    @property
    def away(self) -> Optional[Participant]:
        return self.fixture.away

    @property
    def state(self) -> FixtureState:
        return self.fixture.state

    def to_dict(self) -> Dict[str, Any]:
        data = self.fixture.to_dict()
        data.update({
            'pitch_id': self.pitch_id,
            'start': self.start.isoformat() if self.start else None,
            'end': self.end.isoformat() if self.end else None,
            'match_number': self.match_number,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AllocatedMatch':
        return cls(
            fixture=Fixture.from_dict(data),
            pitch_id=data.get('pitch_id'),
            start=datetime.fromisoformat(data['start']) if data.get('start') else None,
            end=datetime.fromisoformat(data['end']) if data.get('end') else None,
            match_number=data.get('match_number', 0),
        )


@dataclass
class MatchResult:
    home_score: int
    away_score: int
    home_penalties: Optional[int] = None
    away_penalties: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'home_score': self.home_score,
            'away_score': self.away_score,
            'home_penalties': self.home_penalties,
            'away_penalties': self.away_penalties,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MatchResult':
        """Build a result from request or storage data; scores must be non-negative."""
        penalties = {}
        for name in ('home_penalties', 'away_penalties'):
            if data.get(name) is not None:
                penalties[name] = _score(data[name], name)
        return cls(
            home_score=_score(data['home_score'], 'home_score'),
            away_score=_score(data['away_score'], 'away_score'),
            **penalties,
        )


def _score(value: Any, name: str) -> int:
    score = int(value)
    if score < 0:
        raise ValueError(f"{name} must not be negative")
    return score


@dataclass
class CompletedMatch:
    """A group match with both participants known and a result."""
    match_id: str
    group_id: Optional[str]
    home_id: str
    away_id: str
    result: MatchResult
    stage_id: Optional[str] = None


@dataclass
class TeamStanding:
    team_id: str
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    points: int = 0
    position: int = 0

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against

    def to_dict(self) -> Dict[str, Any]:
        return {
            'team_id': self.team_id,
            'played': self.played,
            'won': self.won,
            'drawn': self.drawn,
            'lost': self.lost,
            'goals_for': self.goals_for,
            'goals_against': self.goals_against,
            'goal_difference': self.goal_difference,
            'points': self.points,
            'position': self.position,
        }


# ==========================================
# Plans and issues
# ==========================================

class Severity(Enum):
    ERROR = 'error'
    WARNING = 'warning'


class IssueKind(Enum):
    CONFIGURATION = 'CONFIGURATION'
    INSUFFICIENT_TEAMS = 'INSUFFICIENT_TEAMS'
    REST_TIME = 'REST_TIME'
    NO_SLOT = 'NO_SLOT'
    DEPENDENCY = 'DEPENDENCY'
    PITCH_CONFLICT = 'PITCH_CONFLICT'
    PITCH_LOAD = 'PITCH_LOAD'
    THIRD_PLACE_SKIPPED = 'THIRD_PLACE_SKIPPED'


@dataclass
class ScheduleIssue:
    kind: IssueKind
    severity: Severity
    message: str
    match_id: Optional[str] = None
    stage_id: Optional[str] = None
    group_id: Optional[str] = None
    team_ids: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'severity': self.severity.value,
            'message': self.message,
            'match_id': self.match_id,
            'stage_id': self.stage_id,
            'group_id': self.group_id,
            'team_ids': list(self.team_ids),
            'details': dict(self.details),
        }


@dataclass
class ScheduleStats:
    total_matches: int = 0
    total_duration_minutes: int = 0
    pitch_minutes: Dict[str, int] = field(default_factory=dict)
    pitch_utilization: Dict[str, float] = field(default_factory=dict)
    average_rest_minutes: float = 0.0
    estimated_end_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_matches': self.total_matches,
            'total_duration_minutes': self.total_duration_minutes,
            'pitch_minutes': dict(self.pitch_minutes),
            'pitch_utilization': dict(self.pitch_utilization),
            'average_rest_minutes': self.average_rest_minutes,
            'estimated_end_time': self.estimated_end_time.isoformat() if self.estimated_end_time else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScheduleStats':
        end = data.get('estimated_end_time')
        return cls(
            total_matches=data.get('total_matches', 0),
            total_duration_minutes=data.get('total_duration_minutes', 0),
            pitch_minutes=dict(data.get('pitch_minutes') or {}),
            pitch_utilization=dict(data.get('pitch_utilization') or {}),
            average_rest_minutes=data.get('average_rest_minutes', 0.0),
            estimated_end_time=datetime.fromisoformat(end) if end else None,
        )


@dataclass
class SchedulePlan:
    matches: List[AllocatedMatch] = field(default_factory=list)
    stats: ScheduleStats = field(default_factory=ScheduleStats)
    warnings: List[ScheduleIssue] = field(default_factory=list)
    errors: List[ScheduleIssue] = field(default_factory=list)
    preview: bool = False

    @property
    def success(self) -> bool:
        return not self.errors

    def fixtures(self) -> List[Fixture]:
        return [m.fixture for m in self.matches]

    def get(self, match_id: str) -> Optional[AllocatedMatch]:
        for match in self.matches:
            if match.match_id == match_id:
                return match
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'preview': self.preview,
            'matches': [m.to_dict() for m in self.matches],
            'stats': self.stats.to_dict(),
            'warnings': [w.to_dict() for w in self.warnings],
            'errors': [e.to_dict() for e in self.errors],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SchedulePlan':
        # Persisted plans only carry matches and stats; issues are not replayed
        return cls(
            matches=[AllocatedMatch.from_dict(m) for m in data.get('matches', [])],
            stats=ScheduleStats.from_dict(data.get('stats') or {}),
            preview=data.get('preview', False),
        )
