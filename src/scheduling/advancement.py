"""
Advancement between matches.

Fixtures whose participants are not known yet carry ``Pending`` participants
that point at their source: the winner or loser of an earlier match, a final
rank in a group, or an entry seed. The resolver indexes every waiting slot by
its source and fills the real team in once the source is decided.
"""
import logging
from typing import Dict, List, Optional, Tuple

from .models import (
    AdvancementError,
    BracketRole,
    CompletedMatch,
    Fixture,
    FixtureState,
    GroupConfig,
    Known,
    MatchResult,
    Pending,
    SourceRef,
    SourceRole,
    TeamStanding,
)
from .standings import calculate_standings

logger = logging.getLogger(__name__)


def ordinal(n: int) -> str:
    """1 -> '1st', 2 -> '2nd', 11 -> '11th'."""
    if 10 <= n % 100 <= 20:
        suffix = 'th'
    else:
        suffix = {1: 'st', 2: 'nd', 3: 'rd'}.get(n % 10, 'th')
    return f"{n}{suffix}"


def _match_label(fixture: Fixture) -> str:
    label = fixture.position.label if fixture.position else fixture.match_id
    group_name = fixture.metadata.get('group_name')
    if group_name:
        return f"{group_name} {label}"
    return label


def winner_of(fixture: Fixture) -> Pending:
    source = SourceRef(SourceRole.WINNER, fixture.stage_id, match_id=fixture.match_id,
                       position=fixture.position, group_id=fixture.group_id)
    return Pending(source, f"Winner of {_match_label(fixture)}")


def loser_of(fixture: Fixture) -> Pending:
    source = SourceRef(SourceRole.LOSER, fixture.stage_id, match_id=fixture.match_id,
                       position=fixture.position, group_id=fixture.group_id)
    return Pending(source, f"Loser of {_match_label(fixture)}")


def group_rank_source(stage_id: str, group: GroupConfig, rank: int, gsl: bool = False) -> Pending:
    """Placeholder for the team finishing ``rank`` in a group ('Group A 1st', 'Group A Winner')."""
    if gsl and rank == 1:
        label = f"{group.name} Winner"
    elif gsl and rank == 2:
        label = f"{group.name} Runner-up"
    else:
        label = f"{group.name} {ordinal(rank)}"
    source = SourceRef(SourceRole.GROUP_RANK, stage_id, group_id=group.group_id, rank=rank)
    return Pending(source, label)


def seed_source(stage_id: str, seed: int) -> Pending:
    return Pending(SourceRef(SourceRole.SEED, stage_id, rank=seed), f"Seed {seed}")


def decide(fixture: Fixture, result: MatchResult) -> Tuple[str, str]:
    """Return (winner_id, loser_id) of an elimination match; penalties break a level score."""
    home, away = fixture.home.team_id, fixture.away.team_id
    if result.home_score != result.away_score:
        home_won = result.home_score > result.away_score
    elif (result.home_penalties is not None and result.away_penalties is not None
          and result.home_penalties != result.away_penalties):
        home_won = result.home_penalties > result.away_penalties
    else:
        raise AdvancementError(f"Match {fixture.match_id} ended level with no penalty winner")
    return (home, away) if home_won else (away, home)


GroupKey = Tuple[str, Optional[str]]


def _origin(fixture: Fixture, side: str) -> Optional[Pending]:
    """The placeholder a slot was generated with, if it had one."""
    participant = getattr(fixture, side)
    if isinstance(participant, Pending):
        return participant
    ref = fixture.metadata.get(f'{side}_ref')
    if ref:
        return Pending(SourceRef.from_dict(ref), fixture.metadata.get(f'{side}_source', ''))
    return None


def _gsl_ranks(label: str, winner: Optional[str], loser: Optional[str]) -> Dict[int, Optional[str]]:
    """Final group ranks settled by a GSL match."""
    if label == 'W-2-1':
        return {1: winner}
    if label == 'L-2-1':
        return {2: winner, 3: loser}
    if label == 'L-1-1':
        return {4: loser}
    return {}


class AdvancementResolver:
    """
    Tracks which fixture slots wait on which source and fills them as results arrive.

    ``fixtures`` are updated in place. ``results`` pre-loads results that were
    already applied (their downstream slots are assumed filled).
    ``group_teams`` maps (stage id, group id) to the group's team ids in
    registration order, used to break full ties in standings.
    """

    def __init__(self, fixtures: List[Fixture], results: Optional[Dict[str, MatchResult]] = None,
                 group_teams: Optional[Dict[GroupKey, List[str]]] = None, head_to_head: bool = False):
        self.fixtures: Dict[str, Fixture] = {f.match_id: f for f in fixtures}
        self.results: Dict[str, MatchResult] = dict(results or {})
        self.group_teams = group_teams or {}
        self.head_to_head = head_to_head
        self._waiting: Dict[Tuple, List[Tuple[Fixture, str]]] = {}
        # Every slot fed by a source, filled or not, and the placeholder it started with
        self._fed: Dict[Tuple, List[Tuple[Fixture, str]]] = {}
        self._origins: Dict[Tuple[str, str], Pending] = {}
        for fixture in self.fixtures.values():
            for side in ('home', 'away'):
                origin = _origin(fixture, side)
                if origin is None:
                    continue
                key = origin.source.key()
                self._origins[(fixture.match_id, side)] = origin
                self._fed.setdefault(key, []).append((fixture, side))
                if isinstance(getattr(fixture, side), Pending):
                    self._waiting.setdefault(key, []).append((fixture, side))

    def waiting_on(self, match_id: str) -> List[Tuple[Fixture, str]]:
        """Slots (fixture, side) still waiting on the winner or loser of ``match_id``."""
        slots = []
        for role in (SourceRole.WINNER, SourceRole.LOSER):
            slots.extend(self._waiting.get((role.value, match_id), []))
        return slots

    def ready_fixtures(self) -> List[Fixture]:
        """Playable fixtures with both teams known and no result yet."""
        return [
            f for f in self.fixtures.values()
            if f.state is FixtureState.PLAYABLE and f.is_resolved and f.match_id not in self.results
        ]

    def completed_matches(self, stage_id: Optional[str] = None,
                          group_id: Optional[str] = None) -> List[CompletedMatch]:
        completed = []
        for match_id, result in self.results.items():
            fixture = self.fixtures.get(match_id)
            if fixture is None or not fixture.is_resolved:
                continue
            if stage_id is not None and fixture.stage_id != stage_id:
                continue
            if group_id is not None and fixture.group_id != group_id:
                continue
            completed.append(CompletedMatch(match_id, fixture.group_id, fixture.home.team_id,
                                            fixture.away.team_id, result, stage_id=fixture.stage_id))
        return completed

    def standings(self, stage_id: str, group_id: str) -> List[TeamStanding]:
        return calculate_standings(group_id, self.completed_matches(stage_id, group_id),
                                   teams=self.group_teams.get((stage_id, group_id)),
                                   head_to_head=self.head_to_head, stage_id=stage_id)

    def assign_entrant(self, stage_id: str, seed: int, team_id: str) -> List[Fixture]:
        """Fill every 'Seed k' placeholder of a stage with a real team."""
        return self._fill(SourceRef(SourceRole.SEED, stage_id, rank=seed).key(), team_id)

    def record_result(self, match_id: str, result: MatchResult) -> List[Fixture]:
        """
        Apply a result and propagate it downstream.

        Returns the fixtures whose participants or state changed.
        """
        fixture = self._fixture(match_id)
        if fixture.state is not FixtureState.PLAYABLE:
            raise AdvancementError(f"Match {match_id} is not playable ({fixture.state.value})")
        if not fixture.is_resolved:
            raise AdvancementError(f"Match {match_id} still has undecided participants")
        if match_id in self.results:
            raise AdvancementError(f"Match {match_id} already has a result")

        if fixture.position is None:
            self.results[match_id] = result
            logger.info("Recorded group result %s: %d-%d", match_id, result.home_score, result.away_score)
            return self._complete_group(fixture)

        winner, loser = decide(fixture, result)
        self.results[match_id] = result
        logger.info("Recorded %s: %s beat %s", match_id, winner, loser)

        updated: List[Fixture] = []
        if fixture.position.role is BracketRole.GRAND_FINAL:
            updated.extend(self._settle_reset(fixture, winner))
        updated.extend(self._fill((SourceRole.WINNER.value, match_id), winner))
        updated.extend(self._fill((SourceRole.LOSER.value, match_id), loser))
        if fixture.group_id is not None:
            for rank, team_id in _gsl_ranks(fixture.position.label, winner, loser).items():
                updated.extend(self._fill(self._rank_key(fixture, rank), team_id))
        return _unique(updated)

    def update_result(self, match_id: str, result: MatchResult) -> List[Fixture]:
        """
        Replace a recorded result.

        When an elimination match changes winner, the old result is withdrawn
        and the new one applied, so every slot it fed is refilled. A group
        result re-ranks a complete group and refills the ranks that moved.
        Raises AdvancementError when a slot that would change already belongs
        to a match with a result.
        """
        fixture = self._fixture(match_id)
        previous = self.results.get(match_id)
        if previous is None:
            raise AdvancementError(f"Match {match_id} has no result to update")

        if fixture.position is None:
            return self._rerank_group(fixture, result, previous)

        winner, _ = decide(fixture, result)
        if winner == decide(fixture, previous)[0]:
            self.results[match_id] = result
            logger.info("Updated %s, %s still wins", match_id, winner)
            return []
        updated = self.clear_result(match_id)
        updated.extend(self.record_result(match_id, result))
        return _unique(updated)

    def clear_result(self, match_id: str) -> List[Fixture]:
        """
        Withdraw a recorded result.

        Slots it filled get their placeholders back and a grand final reset it
        settled is conditional again. Only direct dependents are released: if
        one of them already has a result, that result must be cleared first.
        """
        fixture = self._fixture(match_id)
        if match_id not in self.results:
            raise AdvancementError(f"Match {match_id} has no result to clear")

        keys = self._keys_settled_by(fixture)
        self._check_unplayed(keys)
        del self.results[match_id]
        logger.info("Cleared result of %s", match_id)

        updated = self._release(keys)
        if fixture.position is not None and fixture.position.role is BracketRole.GRAND_FINAL:
            for reset in self._resets(fixture):
                if reset.state is not FixtureState.CONDITIONAL:
                    reset.state = FixtureState.CONDITIONAL
                    logger.info("Grand final reset %s is open again", reset.match_id)
                    updated.append(reset)
        return _unique(updated)

    def _fixture(self, match_id: str) -> Fixture:
        fixture = self.fixtures.get(match_id)
        if fixture is None:
            raise AdvancementError(f"Unknown match {match_id}")
        return fixture

    def _rank_key(self, fixture: Fixture, rank: int) -> Tuple:
        return SourceRef(SourceRole.GROUP_RANK, fixture.stage_id, group_id=fixture.group_id, rank=rank).key()

    def _keys_settled_by(self, fixture: Fixture) -> List[Tuple]:
        if fixture.position is None:
            prefix = (SourceRole.GROUP_RANK.value, fixture.stage_id, fixture.group_id)
            return [key for key in self._fed if key[:3] == prefix]
        keys = [(SourceRole.WINNER.value, fixture.match_id), (SourceRole.LOSER.value, fixture.match_id)]
        if fixture.group_id is not None:
            keys.extend(self._rank_key(fixture, rank) for rank in _gsl_ranks(fixture.position.label, None, None))
        return keys

    def _check_unplayed(self, keys: List[Tuple]):
        for key in keys:
            for fixture, side in self._fed.get(key, []):
                if isinstance(getattr(fixture, side), Known) and fixture.match_id in self.results:
                    raise AdvancementError(f"Match {fixture.match_id} already has a result, clear it first")

    def _fill(self, key: Tuple, team_id: str) -> List[Fixture]:
        updated = []
        for fixture, side in self._waiting.pop(key, []):
            setattr(fixture, side, Known(team_id))
            updated.append(fixture)
        return updated

    def _release(self, keys: List[Tuple]) -> List[Fixture]:
        updated = []
        for key in keys:
            for fixture, side in self._fed.get(key, []):
                if isinstance(getattr(fixture, side), Known):
                    setattr(fixture, side, self._origins[(fixture.match_id, side)])
                    self._waiting.setdefault(key, []).append((fixture, side))
                    updated.append(fixture)
        return updated

    def _resets(self, grand_final: Fixture) -> List[Fixture]:
        return [
            f for f in self.fixtures.values()
            if f.stage_id == grand_final.stage_id and f.position is not None
            and f.position.role is BracketRole.GRAND_FINAL_RESET
        ]

    def _settle_reset(self, grand_final: Fixture, winner: str) -> List[Fixture]:
        # The winners-bracket champion is the home side of the grand final
        reset_needed = winner != grand_final.home.team_id
        updated = []
        for fixture in self._resets(grand_final):
            if fixture.state is FixtureState.CONDITIONAL:
                fixture.state = FixtureState.PLAYABLE if reset_needed else FixtureState.VOID
                logger.info("Grand final reset %s is %s", fixture.match_id, fixture.state.value)
                updated.append(fixture)
        return updated

    def _group_complete(self, fixture: Fixture) -> bool:
        return all(
            f.match_id in self.results for f in self.fixtures.values()
            if f.stage_id == fixture.stage_id and f.group_id == fixture.group_id
            and f.position is None and f.state is FixtureState.PLAYABLE
        )

    def _complete_group(self, fixture: Fixture) -> List[Fixture]:
        if not self._group_complete(fixture):
            return []

        table = self.standings(fixture.stage_id, fixture.group_id)
        logger.info("Group %s/%s complete, winner %s", fixture.stage_id, fixture.group_id,
                    table[0].team_id if table else None)
        updated = []
        for row in table:
            updated.extend(self._fill(self._rank_key(fixture, row.position), row.team_id))
        return _unique(updated)

    def _rerank_group(self, fixture: Fixture, result: MatchResult, previous: MatchResult) -> List[Fixture]:
        if not self._group_complete(fixture):
            self.results[fixture.match_id] = result
            logger.info("Updated group result %s: %d-%d", fixture.match_id,
                        result.home_score, result.away_score)
            return []

        before = {row.position: row.team_id for row in self.standings(fixture.stage_id, fixture.group_id)}
        self.results[fixture.match_id] = result
        moved = {
            row.position: row.team_id for row in self.standings(fixture.stage_id, fixture.group_id)
            if before.get(row.position) != row.team_id
        }
        keys = {rank: self._rank_key(fixture, rank) for rank in moved}
        try:
            self._check_unplayed(list(keys.values()))
        except AdvancementError:
            self.results[fixture.match_id] = previous
            raise
        logger.info("Updated group result %s, ranks %s moved", fixture.match_id, sorted(moved))

        updated = self._release(list(keys.values()))
        for rank, team_id in moved.items():
            updated.extend(self._fill(keys[rank], team_id))
        return _unique(updated)


def _unique(fixtures: List[Fixture]) -> List[Fixture]:
    seen = set()
    unique = []
    for fixture in fixtures:
        if fixture.match_id not in seen:
            seen.add(fixture.match_id)
            unique.append(fixture)
    return unique
