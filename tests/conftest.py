"""
Shared pytest fixtures for tournament scheduler tests.

Running tests:
    pytest tests/
"""
import pytest
import sys
import os
from datetime import datetime

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from scheduling.models import (
    GroupConfig,
    Pitch,
    RestConstraint,
    RoundRobinType,
    StageConfig,
    StageFormat,
    TeamAssignment,
    TimingConfig,
)


@pytest.fixture
def start():
    """Tournament start: 1 June 2024, 09:00."""
    return datetime(2024, 6, 1, 9, 0)


@pytest.fixture
def two_pitches():
    return [Pitch('p1', 'Pitch 1'), Pitch('p2', 'Pitch 2')]


@pytest.fixture
def four_pitches():
    return [Pitch(f'p{i}', f'Pitch {i}') for i in range(1, 5)]


@pytest.fixture
def timing(start, two_pitches):
    """20-minute matches, 5-minute transition, two pitches."""
    return TimingConfig(start_time=start, match_duration_minutes=20, transition_minutes=5,
                        pitches=two_pitches)


@pytest.fixture
def rest():
    return RestConstraint(minimum_minutes=15, preferred_minutes=30)


@pytest.fixture
def make_group():
    """Factory for a group of ``count`` teams named <prefix>1..<prefix>n."""
    def _make(group_id='A', count=4, order=1, round_robin=RoundRobinType.SINGLE,
              prefix=None, seeded=False):
        prefix = prefix or group_id.lower()
        teams = [
            TeamAssignment(f"{prefix}{i}", name=f"Team {prefix.upper()}{i}", seed=i if seeded else None)
            for i in range(1, count + 1)
        ]
        return GroupConfig(group_id=group_id, name=f"Group {group_id}", order=order,
                           round_robin=round_robin, teams=teams)
    return _make


@pytest.fixture
def make_stage():
    """Factory for a stage of the given format."""
    def _make(stage_id, stage_format, order=1, groups=None, **kwargs):
        return StageConfig(stage_id=stage_id, name=stage_id.title(), order=order,
                           format=stage_format, groups=groups or [], **kwargs)
    return _make


@pytest.fixture
def bracket_stage(make_stage, make_group):
    """Factory for an elimination stage with ``count`` seeded teams t1..tn."""
    def _make(count, stage_format=StageFormat.KNOCKOUT, stage_id='ko', order=1, **kwargs):
        group = make_group('main', count, prefix='t', seeded=True)
        return make_stage(stage_id, stage_format, order=order, groups=[group], **kwargs)
    return _make


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Flask test client storing tournaments under a temporary directory."""
    import app as app_module
    monkeypatch.setattr(app_module, 'DATA_DIR', str(tmp_path))
    app_module.app.config['TESTING'] = True
    with app_module.app.test_client() as client:
        yield client
