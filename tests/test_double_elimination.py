"""
Tests for double elimination and GSL group generation.
"""
import pytest

from scheduling.advancement import AdvancementResolver
from scheduling.double_elimination import (
    calculate_losers_bracket_rounds,
    generate_double_elimination_matches,
    generate_gsl_group_matches,
    get_losers_round_name,
    get_winners_round_name,
)
from scheduling.models import (
    BracketRole,
    ConfigurationError,
    FixtureState,
    GenerationError,
    Known,
    MatchResult,
    StageFormat,
)
from scheduling.pairing import build_entrants


def de_fixtures(bracket_stage, n, **kwargs):
    stage = bracket_stage(n, stage_format=StageFormat.DOUBLE_ELIMINATION, stage_id='de', **kwargs)
    return generate_double_elimination_matches(stage, build_entrants(stage, [stage]))


def by_label(fixtures):
    return {f.position.label: f for f in fixtures}


class TestLosersRoundName:
    """Tests for get_losers_round_name."""

    def test_losers_final(self):
        """Last round (round_num == total - 1) is Losers Final."""
        assert get_losers_round_name(3, 4) == "Losers Final"
        assert get_losers_round_name(1, 2) == "Losers Final"

    def test_losers_semifinal(self):
        """Second to last is Losers Semifinal."""
        assert get_losers_round_name(2, 4) == "Losers Semifinal"

    def test_losers_numbered_round(self):
        """Earlier rounds are numbered."""
        assert get_losers_round_name(0, 4) == "Losers Round 1"
        assert get_losers_round_name(1, 4) == "Losers Round 2"


class TestWinnersRoundName:
    """Tests for get_winners_round_name."""

    def test_names(self):
        assert get_winners_round_name(2) == "Winners Final"
        assert get_winners_round_name(4) == "Winners Semifinal"
        assert get_winners_round_name(8) == "Winners Quarterfinal"
        assert get_winners_round_name(16) == "Winners Round of 16"


class TestLosersBracketRounds:
    """Tests for calculate_losers_bracket_rounds."""

    def test_rounds(self):
        assert calculate_losers_bracket_rounds(2) == 0
        assert calculate_losers_bracket_rounds(4) == 2
        assert calculate_losers_bracket_rounds(8) == 4
        assert calculate_losers_bracket_rounds(16) == 6


class TestDoubleElimination:
    """Tests for generate_double_elimination_matches."""

    @pytest.mark.parametrize('n', range(2, 17))
    def test_match_count(self, bracket_stage, n):
        """2n - 2 real matches plus one conditional reset."""
        fixtures = de_fixtures(bracket_stage, n)
        playable = [f for f in fixtures if f.state is FixtureState.PLAYABLE]
        conditional = [f for f in fixtures if f.state is FixtureState.CONDITIONAL]
        assert len(playable) == 2 * n - 2
        assert [f.position.label for f in conditional] == ['GF-R']

    def test_five_teams(self, bracket_stage):
        """Five teams: winners-bracket byes, a grand final and a conditional reset."""
        fixtures = de_fixtures(bracket_stage, 5)
        byes = [f for f in fixtures if f.state is FixtureState.BYE
                and f.position.role is BracketRole.WINNERS]
        assert byes
        labels = by_label(fixtures)
        assert labels['GF'].state is FixtureState.PLAYABLE
        assert labels['GF'].home.label == 'Winner of W-3-1'
        assert labels['GF'].away.label == 'Winner of L-4-1'
        assert labels['GF-R'].state is FixtureState.CONDITIONAL
        assert labels['GF-R'].home.label == 'Winner of GF'
        assert labels['GF-R'].away.label == 'Loser of GF'
        assert labels['GF-R'].round_number == labels['GF'].round_number + 1

    def test_drop_ins_reversed(self, bracket_stage):
        """The first drop-in round meets losers from the opposite half."""
        labels = by_label(de_fixtures(bracket_stage, 8))
        assert labels['L-1-1'].home.label == 'Loser of W-1-1'
        assert labels['L-1-1'].away.label == 'Loser of W-1-2'
        assert labels['L-2-1'].home.label == 'Winner of L-1-1'
        assert labels['L-2-1'].away.label == 'Loser of W-2-2'
        assert labels['L-2-2'].away.label == 'Loser of W-2-1'
        assert labels['L-4-1'].away.label == 'Loser of W-3-1'

    def test_two_teams(self, bracket_stage):
        """Two teams: the winners-bracket loser goes straight to the grand final."""
        labels = by_label(de_fixtures(bracket_stage, 2))
        assert labels['GF'].home.label == 'Winner of W-1-1'
        assert labels['GF'].away.label == 'Loser of W-1-1'

    def test_no_reset(self, bracket_stage):
        """Without bracket reset there is no GF-R."""
        fixtures = de_fixtures(bracket_stage, 4, bracket_reset=False)
        assert 'GF-R' not in by_label(fixtures)

    def test_insufficient_teams(self, bracket_stage):
        with pytest.raises(GenerationError):
            de_fixtures(bracket_stage, 1)

    def test_reset_void_when_winners_champion_wins(self, bracket_stage):
        """The reset is voided when the unbeaten team wins the grand final."""
        fixtures = de_fixtures(bracket_stage, 5)
        resolver = AdvancementResolver(fixtures)
        ready = resolver.ready_fixtures()
        while ready:
            for fixture in ready:
                home_better = int(fixture.home.team_id[1:]) < int(fixture.away.team_id[1:])
                resolver.record_result(fixture.match_id, MatchResult(1, 0) if home_better else MatchResult(0, 1))
            ready = resolver.ready_fixtures()
        labels = by_label(fixtures)
        assert labels['GF'].home == Known('t1')
        assert labels['GF'].away == Known('t2')
        assert labels['GF-R'].state is FixtureState.VOID

    def test_reset_materializes_when_losers_champion_wins(self, bracket_stage):
        """The reset becomes playable once the losers-bracket champion wins the grand final."""
        fixtures = de_fixtures(bracket_stage, 2)
        resolver = AdvancementResolver(fixtures)
        resolver.record_result('de/W-1-1', MatchResult(2, 1))
        labels = by_label(fixtures)
        assert labels['GF-R'].state is FixtureState.CONDITIONAL
        resolver.record_result('de/GF', MatchResult(0, 1))
        assert labels['GF-R'].state is FixtureState.PLAYABLE
        assert labels['GF-R'].home == Known('t2')
        assert labels['GF-R'].away == Known('t1')
        assert labels['GF-R'] in resolver.ready_fixtures()


class TestGSLGroups:
    """Tests for generate_gsl_group_matches."""

    def make(self, make_stage, make_group, count=4):
        group = make_group('A', count, seeded=True)
        stage = make_stage('gsl', StageFormat.GSL_GROUPS, groups=[group])
        return stage, group

    def test_five_matches(self, make_stage, make_group):
        stage, group = self.make(make_stage, make_group)
        fixtures = generate_gsl_group_matches(stage, group)
        labels = by_label(fixtures)
        assert set(labels) == {'W-1-1', 'W-1-2', 'W-2-1', 'L-1-1', 'L-2-1'}
        assert [labels[l].round_number for l in ['W-1-1', 'W-1-2', 'W-2-1', 'L-1-1', 'L-2-1']] == [1, 1, 2, 2, 3]
        assert labels['W-1-1'].match_id == 'gsl/A/W-1-1'

    def test_opening_seeding(self, make_stage, make_group):
        """Opening matches are 1 v 4 and 2 v 3."""
        stage, group = self.make(make_stage, make_group)
        labels = by_label(generate_gsl_group_matches(stage, group))
        assert labels['W-1-1'].known_team_ids == ['a1', 'a4']
        assert labels['W-1-2'].known_team_ids == ['a2', 'a3']
        assert labels['L-2-1'].home.label == 'Loser of Group A W-2-1'
        assert labels['L-2-1'].away.label == 'Winner of Group A L-1-1'

    @pytest.mark.parametrize('count', [3, 5])
    def test_wrong_group_size(self, make_stage, make_group, count):
        stage, group = self.make(make_stage, make_group, count)
        with pytest.raises(ConfigurationError) as exc:
            generate_gsl_group_matches(stage, group)
        assert exc.value.group_id == 'A'
