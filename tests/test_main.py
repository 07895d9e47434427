"""
Tests for the command-line entry point.
"""
import pytest

from main import main


@pytest.fixture
def tournament_file(tmp_path):
    path = tmp_path / 'tournament.yaml'
    path.write_text(
        "tournament:\n"
        "  start_time: 2024-06-01 09:00\n"
        "  match_duration_minutes: 20\n"
        "pitches: [p1, p2]\n"
        "stages:\n"
        "  - id: ko\n"
        "    format: knockout\n"
        "    teams: [t1, t2, t3]\n"
    )
    return str(path)


class TestMain:
    def test_usage(self, capsys):
        assert main([]) == 2
        assert 'Usage' in capsys.readouterr().out

    def test_prints_schedule(self, tournament_file, capsys):
        assert main([tournament_file]) == 0
        out = capsys.readouterr().out
        assert '--- Final Schedule ---' in out
        assert 'Pitch: p1' in out
        assert 'ko/W-1-2' in out
        # seed 1 has a bye
        assert 'Not scheduled:' in out
        assert '2 matches' in out

    def test_invalid_configuration(self, tmp_path, capsys):
        path = tmp_path / 'bad.yaml'
        path.write_text("stages:\n  - id: x\n    format: swiss\n")
        assert main([str(path)]) == 1
        assert 'Invalid configuration' in capsys.readouterr().out
