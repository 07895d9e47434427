"""
Unit tests for round robin pairing, entrant construction and stage dispatch.
"""
import pytest
from collections import Counter
from itertools import combinations

from scheduling.models import (
    GenerationError,
    Known,
    Pending,
    RoundRobinType,
    SourceRole,
    StageFormat,
)
from scheduling.pairing import (
    build_entrants,
    generate_all_matches,
    generate_round_robin_matches,
    generate_stage_matches,
    previous_group_stage,
    round_robin_rounds,
)


class TestCircleMethod:
    """Tests for round_robin_rounds."""

    @pytest.mark.parametrize('n', range(2, 11))
    def test_every_pair_once(self, n):
        """Each unordered pair appears exactly once."""
        pairs = [frozenset(p) for rnd in round_robin_rounds(n) for p in rnd]
        assert len(pairs) == n * (n - 1) // 2
        assert set(pairs) == {frozenset(p) for p in combinations(range(n), 2)}

    @pytest.mark.parametrize('n', range(2, 11))
    def test_home_share_balanced(self, n):
        """Every team's home count is within one of its away count."""
        home = Counter()
        away = Counter()
        for rnd in round_robin_rounds(n):
            for h, a in rnd:
                home[h] += 1
                away[a] += 1
        for team in range(n):
            assert abs(home[team] - away[team]) <= 1

    @pytest.mark.parametrize('n', [3, 5, 7])
    def test_odd_count_gives_each_team_one_bye(self, n):
        """With an odd count there are n rounds and each team sits out exactly one."""
        rounds = round_robin_rounds(n)
        assert len(rounds) == n
        sat_out = Counter()
        for rnd in rounds:
            playing = {t for pair in rnd for t in pair}
            for team in set(range(n)) - playing:
                sat_out[team] += 1
        assert all(sat_out[t] == 1 for t in range(n))

    @pytest.mark.parametrize('n', [4, 6, 8])
    def test_even_count_everyone_plays_every_round(self, n):
        """With an even count every team plays once per round."""
        for rnd in round_robin_rounds(n):
            playing = [t for pair in rnd for t in pair]
            assert sorted(playing) == list(range(n))


class TestRoundRobinStage:
    """Tests for generate_round_robin_matches."""

    def test_single_round_robin_count(self, make_stage, make_group):
        """Single round robin of n teams has n(n-1)/2 matches."""
        group = make_group('A', 6)
        stage = make_stage('groups', StageFormat.GROUP_STAGE, groups=[group])
        fixtures = generate_round_robin_matches(stage, group)
        assert len(fixtures) == 15
        assert all(f.group_id == 'A' and f.position is None for f in fixtures)

    def test_double_round_robin_reverses_home_away(self, make_stage, make_group):
        """Double round robin plays every ordered pairing once."""
        group = make_group('A', 4, round_robin=RoundRobinType.DOUBLE)
        stage = make_stage('league', StageFormat.ROUND_ROBIN, groups=[group])
        fixtures = generate_round_robin_matches(stage, group)
        assert len(fixtures) == 12
        ordered = {(f.home.team_id, f.away.team_id) for f in fixtures}
        assert len(ordered) == 12
        for home, away in ordered:
            assert (away, home) in ordered

    def test_second_leg_rounds_follow_first(self, make_stage, make_group):
        """Second-leg rounds continue numbering after the first leg."""
        group = make_group('A', 4, round_robin=RoundRobinType.DOUBLE)
        stage = make_stage('league', StageFormat.ROUND_ROBIN, groups=[group])
        fixtures = generate_round_robin_matches(stage, group)
        assert sorted({f.round_number for f in fixtures}) == [1, 2, 3, 4, 5, 6]

    def test_match_ids(self, make_stage, make_group):
        """Group match ids are stage/group/R<round>-<k>."""
        group = make_group('A', 4)
        stage = make_stage('groups', StageFormat.GROUP_STAGE, groups=[group])
        fixtures = generate_round_robin_matches(stage, group)
        assert fixtures[0].match_id == 'groups/A/R1-1'
        assert len({f.match_id for f in fixtures}) == len(fixtures)

    def test_round_numbers_ascend(self, make_stage, make_group):
        """Fixtures come out in ascending round order."""
        group = make_group('A', 5)
        stage = make_stage('groups', StageFormat.GROUP_STAGE, groups=[group])
        rounds = [f.round_number for f in generate_round_robin_matches(stage, group)]
        assert rounds == sorted(rounds)
        assert max(rounds) == 5

    def test_insufficient_teams(self, make_stage, make_group):
        """A group of one team cannot be paired."""
        group = make_group('A', 1)
        stage = make_stage('groups', StageFormat.GROUP_STAGE, groups=[group])
        with pytest.raises(GenerationError) as exc:
            generate_round_robin_matches(stage, group)
        assert exc.value.group_id == 'A'

    def test_regeneration_is_identical(self, make_stage, make_group):
        """Same input, same fixtures."""
        group = make_group('A', 7)
        stage = make_stage('groups', StageFormat.GROUP_STAGE, groups=[group])
        first = [f.to_dict() for f in generate_stage_matches(stage)]
        second = [f.to_dict() for f in generate_stage_matches(stage)]
        assert first == second


class TestEntrants:
    """Tests for build_entrants."""

    def test_assigned_teams_in_seed_order(self, make_stage, make_group):
        """Stage teams are ordered by seed, unseeded last."""
        group = make_group('main', 3, prefix='t')
        group.teams[0].seed = None
        group.teams[1].seed = 2
        group.teams[2].seed = 1
        stage = make_stage('ko', StageFormat.KNOCKOUT, groups=[group])
        assert build_entrants(stage, [stage]) == [Known('t3'), Known('t2'), Known('t1')]

    def test_group_qualifiers_cross_seeded(self, make_stage, make_group):
        """Group winners come before runners-up."""
        groups = make_stage('groups', StageFormat.GROUP_STAGE, order=1,
                            groups=[make_group('A', 4, order=1), make_group('B', 4, order=2)])
        ko = make_stage('ko', StageFormat.KNOCKOUT, order=2, advancing_team_count=4)
        entrants = build_entrants(ko, [groups, ko])
        assert [e.label for e in entrants] == ['Group A 1st', 'Group B 1st', 'Group A 2nd', 'Group B 2nd']
        assert all(isinstance(e, Pending) and e.source.role is SourceRole.GROUP_RANK for e in entrants)
        assert entrants[0].source.stage_id == 'groups'

    def test_gsl_qualifier_labels(self, make_stage, make_group):
        """GSL qualifiers are labelled winner and runner-up."""
        gsl = make_stage('gsl', StageFormat.GSL_GROUPS, order=1, groups=[make_group('A', 4)])
        final = make_stage('final', StageFormat.FINAL, order=2, advancing_team_count=2)
        entrants = build_entrants(final, [gsl, final])
        assert [e.label for e in entrants] == ['Group A Winner', 'Group A Runner-up']

    def test_seed_placeholders_without_source(self, make_stage):
        """With no earlier group stage, entrants are seed placeholders."""
        ko = make_stage('ko', StageFormat.KNOCKOUT, advancing_team_count=3)
        entrants = build_entrants(ko, [ko])
        assert [e.label for e in entrants] == ['Seed 1', 'Seed 2', 'Seed 3']

    def test_previous_group_stage_is_most_recent(self, make_stage, make_group):
        first = make_stage('first', StageFormat.GROUP_STAGE, order=1, groups=[make_group('A', 4)])
        second = make_stage('second', StageFormat.GROUP_STAGE, order=2, groups=[make_group('B', 4)])
        ko = make_stage('ko', StageFormat.KNOCKOUT, order=3, advancing_team_count=2)
        assert previous_group_stage(ko, [first, second, ko]) is second
        assert previous_group_stage(first, [first, second, ko]) is None


class TestAllMatches:
    """Tests for generate_all_matches."""

    def test_errors_are_scoped(self, make_stage, make_group):
        """A failing group is reported while the other groups are generated."""
        groups = make_stage('groups', StageFormat.GROUP_STAGE, order=1,
                            groups=[make_group('A', 4, order=1), make_group('B', 1, order=2)])
        ko = make_stage('ko', StageFormat.KNOCKOUT, order=2, groups=[make_group('main', 1, prefix='k')])
        fixtures, errors = generate_all_matches([groups, ko])
        assert len(fixtures) == 6
        assert {(e.stage_id, e.group_id) for e in errors} == {('groups', 'B'), ('ko', None)}

    def test_stage_order(self, make_stage, make_group):
        """Stages are generated in stage order regardless of list order."""
        groups = make_stage('groups', StageFormat.GROUP_STAGE, order=1, groups=[make_group('A', 4)])
        final = make_stage('final', StageFormat.FINAL, order=2, advancing_team_count=2)
        fixtures, errors = generate_all_matches([final, groups])
        assert not errors
        assert fixtures[0].stage_id == 'groups'
        assert fixtures[-1].stage_id == 'final'
        assert fixtures[-1].home.label == 'Group A 1st'
