"""
Single elimination bracket generation.

Brackets are sized to the next power of two. Empty slots are byes: the
present entrant advances immediately and no match is played. Seeding follows
the standard bracket order so that, if all higher seeds win, seed 1 meets
seed 2 only in the final.
"""
import logging
import math
from typing import Dict, List, Optional, Tuple

from .advancement import loser_of, winner_of
from .models import (
    BracketPosition,
    BracketRole,
    Fixture,
    FixtureState,
    GenerationError,
    GroupConfig,
    Participant,
    Pending,
    StageConfig,
    TeamAssignment,
)

logger = logging.getLogger(__name__)


def get_round_name(teams_in_round: int) -> str:
    """Get the name of a round based on number of teams."""
    if teams_in_round == 2:
        return "Final"
    elif teams_in_round == 4:
        return "Semifinal"
    elif teams_in_round == 8:
        return "Quarterfinal"
    else:
        return f"Round of {teams_in_round}"


def calculate_bracket_size(num_teams: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_teams <= 0:
        return 0
    return 2 ** math.ceil(math.log2(num_teams))


def calculate_byes(num_teams: int) -> int:
    """Calculate number of byes needed."""
    return calculate_bracket_size(num_teams) - num_teams


def generate_bracket_order(bracket_size: int) -> List[int]:
    """
    Generate the standard tournament bracket order.

    For 8 teams: [1, 8, 4, 5, 2, 7, 3, 6]
    This gives matchups: 1v8, 4v5, 2v7, 3v6
    Winners: 1v4 side, 2v3 side
    Final: 1v2 (if chalk)
    """
    if bracket_size <= 1:
        return [1] if bracket_size == 1 else []
    if bracket_size == 2:
        return [1, 2]

    upper_half = generate_bracket_order(bracket_size // 2)
    lower_half = [bracket_size + 1 - seed for seed in upper_half]

    result = []
    for u, l in zip(upper_half, lower_half):
        result.extend([u, l])
    return result


def seeded_teams(teams: List[TeamAssignment]) -> List[TeamAssignment]:
    """Order team assignments by seed; unseeded teams follow in registration order."""
    indexed = list(enumerate(teams))
    indexed.sort(key=lambda item: (item[1].seed is None, item[1].seed or 0, item[0]))
    return [team for _, team in indexed]


class BracketBuilder:
    """Accumulates fixtures for one stage (or one group) in generation order."""

    def __init__(self, stage: StageConfig, group: Optional[GroupConfig] = None):
        self.stage = stage
        self.group = group
        self.fixtures: List[Fixture] = []

    def match_id(self, label: str) -> str:
        parts = [self.stage.stage_id]
        if self.group is not None:
            parts.append(self.group.group_id)
        parts.append(label)
        return '/'.join(parts)

    def add(self, label: str, round_number: int, round_name: str,
            home: Optional[Participant], away: Optional[Participant],
            position: Optional[BracketPosition] = None,
            state: FixtureState = FixtureState.PLAYABLE) -> Fixture:
        metadata = {}
        # The source survives the slot being filled, so a result can be withdrawn
        for side, participant in (('home', home), ('away', away)):
            if isinstance(participant, Pending):
                metadata[f'{side}_source'] = participant.label
                metadata[f'{side}_ref'] = participant.source.to_dict()
        if self.group is not None:
            metadata['group_name'] = self.group.name
        fixture = Fixture(
            match_id=self.match_id(label),
            stage_id=self.stage.stage_id,
            round_number=round_number,
            home=home,
            away=away,
            stage_order=self.stage.order,
            group_id=self.group.group_id if self.group else None,
            group_order=self.group.order if self.group else 0,
            position=position,
            round_name=round_name,
            state=state,
            sequence=len(self.fixtures) + 1,
            metadata=metadata,
        )
        self.fixtures.append(fixture)
        return fixture

    def pair(self, position: BracketPosition, round_number: int, round_name: str,
             home: Optional[Participant], away: Optional[Participant],
             state: FixtureState = FixtureState.PLAYABLE
             ) -> Tuple[Optional[Participant], Optional[Participant]]:
        """
        Place two feeds into a bracket slot.

        Returns the (winner, loser) feeds of the slot. A slot with a single
        feed is a bye: that feed advances and there is no loser. A slot with
        no feed produces nothing.
        """
        if home is None and away is None:
            return None, None
        if home is None or away is None:
            present = home if home is not None else away
            self.add(position.label, round_number, round_name, present, None, position, FixtureState.BYE)
            return present, None
        fixture = self.add(position.label, round_number, round_name, home, away, position, state)
        return winner_of(fixture), loser_of(fixture)


def play_winners_bracket(builder: BracketBuilder, entrants: List[Participant],
                         round_namer=get_round_name
                         ) -> Tuple[Participant, Dict[int, List[Optional[Participant]]]]:
    """
    Build every winners-bracket round.

    Returns the champion feed and, per round, the loser feeds in bracket
    order (None where the slot was a bye).
    """
    bracket_size = calculate_bracket_size(len(entrants))
    total_rounds = int(math.log2(bracket_size))
    order = generate_bracket_order(bracket_size)
    feeds: List[Optional[Participant]] = [
        entrants[seed - 1] if seed <= len(entrants) else None for seed in order
    ]

    losers: Dict[int, List[Optional[Participant]]] = {}
    for round_number in range(1, total_rounds + 1):
        round_name = round_namer(len(feeds))
        next_feeds = []
        round_losers = []
        for i in range(0, len(feeds), 2):
            position = BracketPosition(BracketRole.WINNERS, round_number, i // 2 + 1)
            winner, loser = builder.pair(position, round_number, round_name, feeds[i], feeds[i + 1])
            next_feeds.append(winner)
            round_losers.append(loser)
        losers[round_number] = round_losers
        feeds = next_feeds

    return feeds[0], losers


def generate_knockout_matches(stage: StageConfig, entrants: List[Participant]) -> List[Fixture]:
    """
    Generate a single elimination bracket for the given seeded entrants.

    Entrants are in seed order (index 0 is seed 1). A third-place match is
    added when the stage asks for one and both semifinals are real matches.
    """
    if len(entrants) < 2:
        raise GenerationError(
            f"Stage '{stage.name}' has insufficient teams for a knockout ({len(entrants)} < 2)",
            stage_id=stage.stage_id,
        )

    builder = BracketBuilder(stage)
    _, losers = play_winners_bracket(builder, entrants)
    total_rounds = len(losers)

    if stage.third_place:
        semifinal_losers = losers.get(total_rounds - 1, [])
        if len(semifinal_losers) == 2 and all(l is not None for l in semifinal_losers):
            builder.add(
                '3P', total_rounds, 'Third Place',
                semifinal_losers[0], semifinal_losers[1],
                BracketPosition(BracketRole.THIRD_PLACE),
            )
        else:
            logger.warning("Stage %s: third-place match needs two played semifinals, skipping",
                           stage.stage_id)

    return builder.fixtures


def generate_final_matches(stage: StageConfig, entrants: List[Participant]) -> List[Fixture]:
    """Generate a final (seeds 1 v 2) and, if requested, a third-place match (seeds 3 v 4)."""
    if len(entrants) < 2:
        raise GenerationError(
            f"Stage '{stage.name}' has insufficient teams for a final ({len(entrants)} < 2)",
            stage_id=stage.stage_id,
        )

    builder = BracketBuilder(stage)
    builder.pair(BracketPosition(BracketRole.WINNERS, 1, 1), 1, 'Final', entrants[0], entrants[1])
    if stage.third_place:
        if len(entrants) >= 4:
            builder.pair(BracketPosition(BracketRole.THIRD_PLACE), 1, 'Third Place',
                         entrants[2], entrants[3])
        else:
            logger.warning("Stage %s: third-place match needs four entrants, skipping", stage.stage_id)
    return builder.fixtures
