"""
Double elimination bracket generation.

In double elimination:
- Teams must lose twice to be eliminated
- Winners Bracket: Teams that haven't lost yet
- Losers Bracket: Teams that have lost once
- Grand Final: Winners bracket champion vs Losers bracket champion
- Bracket Reset: If losers bracket winner wins Grand Final, a final match decides the champion

GSL groups are a four-team double elimination that stops once two
qualifiers are known.
"""
import math
from typing import Dict, List, Optional

from .elimination import (
    BracketBuilder,
    calculate_bracket_size,
    play_winners_bracket,
    seeded_teams,
)
from .models import (
    BracketPosition,
    BracketRole,
    ConfigurationError,
    Fixture,
    FixtureState,
    GenerationError,
    GroupConfig,
    Known,
    Participant,
    StageConfig,
)
from .advancement import loser_of, winner_of

GSL_GROUP_SIZE = 4


def get_losers_round_name(round_num: int, total_losers_rounds: int) -> str:
    """Get the name for a losers bracket round (0-indexed)."""
    rounds_from_end = total_losers_rounds - round_num - 1
    if rounds_from_end == 0:
        return "Losers Final"
    elif rounds_from_end == 1:
        return "Losers Semifinal"
    else:
        return f"Losers Round {round_num + 1}"


def get_winners_round_name(teams_in_round: int) -> str:
    """Get the name for a winners bracket round."""
    if teams_in_round == 2:
        return "Winners Final"
    elif teams_in_round == 4:
        return "Winners Semifinal"
    elif teams_in_round == 8:
        return "Winners Quarterfinal"
    else:
        return f"Winners Round of {teams_in_round}"


def calculate_losers_bracket_rounds(bracket_size: int) -> int:
    """
    Calculate number of rounds in losers bracket.
    For N teams in winners bracket (power of 2):
    - Winners bracket has log2(N) rounds
    - Losers bracket has 2 * (log2(N) - 1) rounds

    Pattern: minor, major, minor, major, ... ending with a major round
    """
    if bracket_size < 2:
        return 0
    winners_rounds = int(math.log2(bracket_size))
    return 2 * (winners_rounds - 1)


def _play_losers_bracket(builder: BracketBuilder,
                         wb_losers: Dict[int, List[Optional[Participant]]],
                         total_losers_rounds: int) -> Optional[Participant]:
    """
    Build the losers bracket and return the feed of its champion.

    Round 1 pairs the first-round winners-bracket losers. After that,
    even rounds take the losers dropping from the next winners round and
    odd rounds are played between losers-bracket survivors. Drop-ins are
    reversed on alternate drop rounds so teams do not immediately meet
    an opponent they already played.
    """
    if total_losers_rounds == 0:
        # Two-team bracket: the only winners-bracket loser goes straight to the grand final
        return wb_losers[1][0]

    feeds = wb_losers[1]
    next_wb_round = 2
    for lb_round in range(1, total_losers_rounds + 1):
        round_name = get_losers_round_name(lb_round - 1, total_losers_rounds)
        next_feeds = []
        if lb_round > 1 and lb_round % 2 == 0:
            drops = list(wb_losers[next_wb_round])
            if (lb_round // 2) % 2 == 1:
                drops.reverse()
            for i, survivor in enumerate(feeds):
                position = BracketPosition(BracketRole.LOSERS, lb_round, i + 1)
                winner, _ = builder.pair(position, lb_round, round_name, survivor, drops[i])
                next_feeds.append(winner)
            next_wb_round += 1
        else:
            for i in range(0, len(feeds), 2):
                position = BracketPosition(BracketRole.LOSERS, lb_round, i // 2 + 1)
                winner, _ = builder.pair(position, lb_round, round_name, feeds[i], feeds[i + 1])
                next_feeds.append(winner)
        feeds = next_feeds
    return feeds[0]


def generate_double_elimination_matches(stage: StageConfig, entrants: List[Participant]) -> List[Fixture]:
    """
    Generate winners bracket, losers bracket, grand final and (optionally)
    the conditional grand final reset for seeded entrants.

    Any bracket of n entrants holds 2n - 2 real matches plus the reset.
    """
    if len(entrants) < 2:
        raise GenerationError(
            f"Stage '{stage.name}' has insufficient teams for double elimination ({len(entrants)} < 2)",
            stage_id=stage.stage_id,
        )

    bracket_size = calculate_bracket_size(len(entrants))
    total_winners_rounds = int(math.log2(bracket_size))
    total_losers_rounds = calculate_losers_bracket_rounds(bracket_size)

    builder = BracketBuilder(stage)
    wb_champion, wb_losers = play_winners_bracket(builder, entrants, get_winners_round_name)
    lb_champion = _play_losers_bracket(builder, wb_losers, total_losers_rounds)

    gf_round = max(total_winners_rounds, total_losers_rounds) + 1
    grand_final = builder.add('GF', gf_round, 'Grand Final', wb_champion, lb_champion,
                              BracketPosition(BracketRole.GRAND_FINAL))

    if stage.bracket_reset:
        builder.add('GF-R', gf_round + 1, 'Grand Final Reset',
                    winner_of(grand_final), loser_of(grand_final),
                    BracketPosition(BracketRole.GRAND_FINAL_RESET),
                    state=FixtureState.CONDITIONAL)

    return builder.fixtures


def generate_gsl_group_matches(stage: StageConfig, group: GroupConfig) -> List[Fixture]:
    """
    Generate the five matches of a GSL group.

    Opening matches are seeds 1 v 4 and 2 v 3. Their winners meet for
    first place, their losers meet for survival, and the decider between
    the two produces the runner-up.
    """
    if len(group.teams) != GSL_GROUP_SIZE:
        raise ConfigurationError(
            f"GSL group '{group.name}' must have exactly {GSL_GROUP_SIZE} teams, has {len(group.teams)}",
            stage_id=stage.stage_id, group_id=group.group_id,
        )

    seeds = [Known(team.team_id) for team in seeded_teams(group.teams)]
    builder = BracketBuilder(stage, group)

    opening_1_winner, opening_1_loser = builder.pair(
        BracketPosition(BracketRole.WINNERS, 1, 1), 1, 'Opening Match', seeds[0], seeds[3])
    opening_2_winner, opening_2_loser = builder.pair(
        BracketPosition(BracketRole.WINNERS, 1, 2), 1, 'Opening Match', seeds[1], seeds[2])
    _, winners_match_loser = builder.pair(
        BracketPosition(BracketRole.WINNERS, 2, 1), 2, 'Winners Match', opening_1_winner, opening_2_winner)
    elimination_winner, _ = builder.pair(
        BracketPosition(BracketRole.LOSERS, 1, 1), 2, 'Elimination Match', opening_1_loser, opening_2_loser)
    builder.pair(
        BracketPosition(BracketRole.LOSERS, 2, 1), 3, 'Decider Match', winners_match_loser, elimination_winner)

    return builder.fixtures
