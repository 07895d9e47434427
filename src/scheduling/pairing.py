"""
Pairing generation per stage.

Round robin uses the circle method; elimination formats are delegated to
the bracket modules. Everything here is pure: the same configuration in the
same order always yields the same fixtures.
"""
import logging
import math
from typing import List, Optional, Tuple

from .advancement import group_rank_source, seed_source
from .double_elimination import generate_double_elimination_matches, generate_gsl_group_matches
from .elimination import (
    BracketBuilder,
    generate_final_matches,
    generate_knockout_matches,
    seeded_teams,
)
from .models import (
    Fixture,
    GenerationError,
    GroupConfig,
    Known,
    Participant,
    RoundRobinType,
    StageConfig,
    StageFormat,
)

logger = logging.getLogger(__name__)


def round_robin_rounds(num_teams: int) -> List[List[Tuple[int, int]]]:
    """
    Pair team indices round by round using the circle method.

    Index 0 stays fixed while the others rotate. With an odd count a dummy
    slot is added; whoever meets it sits the round out. Each pair is
    returned as (home, away): for indices i < j the home side is i when
    i + j is odd and j otherwise, which gives every team an equal share of
    home matches, plus or minus one.
    """
    slots: List[Optional[int]] = list(range(num_teams))
    if num_teams % 2 == 1:
        slots.append(None)
    size = len(slots)

    rounds = []
    for _ in range(size - 1):
        pairs = []
        for k in range(size // 2):
            a, b = slots[k], slots[size - 1 - k]
            if a is None or b is None:
                continue
            i, j = min(a, b), max(a, b)
            pairs.append((i, j) if (i + j) % 2 == 1 else (j, i))
        rounds.append(pairs)
        slots = [slots[0], slots[-1]] + slots[1:-1]
    return rounds


def generate_round_robin_matches(stage: StageConfig, group: GroupConfig) -> List[Fixture]:
    """All pairings of one group; a double round robin repeats them with home and away swapped."""
    if len(group.teams) < 2:
        raise GenerationError(
            f"Group '{group.name}' in stage '{stage.name}' has insufficient teams ({len(group.teams)} < 2)",
            stage_id=stage.stage_id, group_id=group.group_id,
        )

    teams = [Known(t.team_id) for t in group.teams]
    rounds = round_robin_rounds(len(teams))
    legs = 2 if group.round_robin is RoundRobinType.DOUBLE else 1

    builder = BracketBuilder(stage, group)
    for leg in range(legs):
        for r, pairs in enumerate(rounds, start=1):
            round_number = leg * len(rounds) + r
            for k, (home, away) in enumerate(pairs, start=1):
                if leg == 1:
                    home, away = away, home
                builder.add(f"R{round_number}-{k}", round_number, f"Round {round_number}",
                            teams[home], teams[away])

    logger.debug("Group %s: %d matches over %d rounds", group.group_id, len(builder.fixtures),
                 len(rounds) * legs)
    return builder.fixtures


def previous_group_stage(stage: StageConfig, stages: List[StageConfig]) -> Optional[StageConfig]:
    """The most recent group-type stage before ``stage``."""
    earlier = [s for s in stages if s.order < stage.order and s.format.is_group_format]
    if not earlier:
        return None
    return max(earlier, key=lambda s: s.order)


def build_entrants(stage: StageConfig, stages: List[StageConfig]) -> List[Participant]:
    """
    Seeded entrants of an elimination stage.

    Teams assigned to the stage itself come first. Otherwise
    ``advancing_team_count`` qualifiers are drawn from the previous group
    stage, all group winners before any runner-up, so that bracket seeding
    keeps teams from one group apart. Without a group stage to draw from,
    the stage gets 'Seed k' placeholders.
    """
    assigned = [team for group in stage.sorted_groups() for team in group.teams]
    if assigned:
        return [Known(team.team_id) for team in seeded_teams(assigned)]

    count = stage.advancing_team_count or 0
    if count <= 0:
        return []

    source = previous_group_stage(stage, stages)
    if source is None or not source.groups:
        return [seed_source(stage.stage_id, seed) for seed in range(1, count + 1)]

    groups = source.sorted_groups()
    gsl = source.format is StageFormat.GSL_GROUPS
    per_group = math.ceil(count / len(groups))
    entrants: List[Participant] = []
    for rank in range(1, per_group + 1):
        for group in groups:
            if rank <= len(group.teams):
                entrants.append(group_rank_source(source.stage_id, group, rank, gsl))
    if len(entrants) < count:
        logger.warning("Stage %s wants %d qualifiers but %s only provides %d",
                       stage.stage_id, count, source.stage_id, len(entrants))
    return entrants[:count]


def generate_group_matches(stage: StageConfig, group: GroupConfig) -> List[Fixture]:
    if stage.format is StageFormat.GSL_GROUPS:
        return generate_gsl_group_matches(stage, group)
    return generate_round_robin_matches(stage, group)


def generate_stage_matches(stage: StageConfig, entrants: Optional[List[Participant]] = None,
                           stages: Optional[List[StageConfig]] = None) -> List[Fixture]:
    """Generate the fixtures of one stage according to its format."""
    if stage.format.is_group_format:
        if not stage.groups:
            raise GenerationError(f"Stage '{stage.name}' has no groups", stage_id=stage.stage_id)
        fixtures = []
        for group in stage.sorted_groups():
            fixtures.extend(generate_group_matches(stage, group))
        return fixtures

    if entrants is None:
        entrants = build_entrants(stage, stages or [stage])
    if stage.format is StageFormat.KNOCKOUT:
        return generate_knockout_matches(stage, entrants)
    if stage.format is StageFormat.DOUBLE_ELIMINATION:
        return generate_double_elimination_matches(stage, entrants)
    return generate_final_matches(stage, entrants)


def generate_all_matches(stages: List[StageConfig]) -> Tuple[List[Fixture], List[GenerationError]]:
    """
    Generate every stage in stage order.

    Generation errors are scoped: a failing group or stage is reported and
    the rest of the tournament is still generated.
    """
    fixtures: List[Fixture] = []
    errors: List[GenerationError] = []
    for stage in sorted(stages, key=lambda s: s.order):
        if stage.format.is_group_format and stage.groups:
            for group in stage.sorted_groups():
                try:
                    fixtures.extend(generate_group_matches(stage, group))
                except GenerationError as e:
                    logger.warning("Skipping group %s/%s: %s", stage.stage_id, group.group_id, e)
                    errors.append(e)
            continue
        try:
            fixtures.extend(generate_stage_matches(stage, stages=stages))
        except GenerationError as e:
            logger.warning("Skipping stage %s: %s", stage.stage_id, e)
            errors.append(e)
    return fixtures, errors
