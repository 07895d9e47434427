"""
Flask JSON API for the tournament scheduler.

The engine never persists anything; this module is the caller that stores
accepted plans and results as YAML, one directory per tournament. Every
read-modify-write of a tournament runs under that tournament's file lock so
two regenerations cannot interleave.
"""
import os
import re

import yaml
from filelock import FileLock
from flask import Flask, jsonify, request

from scheduling.advancement import AdvancementResolver
from scheduling.config import parse_tournament_config
from scheduling.models import (
    AdvancementError,
    ConfigurationError,
    MatchResult,
    SchedulePlan,
)
from scheduling.orchestrator import generate_schedule, preview_schedule, schedule_materialized

app = Flask(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('TOURNAMENT_DATA_DIR', os.path.join(BASE_DIR, 'data'))
LOCK_TIMEOUT = 10

_TOURNAMENT_ID_RE = re.compile(r'^[a-z0-9][a-z0-9-]*$')


def _tournament_dir(tournament_id: str) -> str:
    return os.path.join(DATA_DIR, 'tournaments', tournament_id)


def _schedule_file(tournament_id: str) -> str:
    return os.path.join(_tournament_dir(tournament_id), 'schedule.yaml')


def _lock(tournament_id: str) -> FileLock:
    """Advisory lock serializing writes to one tournament."""
    directory = _tournament_dir(tournament_id)
    os.makedirs(directory, exist_ok=True)
    return FileLock(os.path.join(directory, '.lock'), timeout=LOCK_TIMEOUT)


def _valid_id(tournament_id: str) -> bool:
    return bool(_TOURNAMENT_ID_RE.match(tournament_id))


def load_stored(tournament_id: str):
    """Load the persisted config, plan and results of a tournament, or None."""
    path = _schedule_file(tournament_id)
    if not os.path.exists(path):
        return None
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    return data or None


def save_stored(tournament_id: str, config: dict, plan: SchedulePlan, results: dict):
    """Save config, plan and results to YAML."""
    with open(_schedule_file(tournament_id), 'w', encoding='utf-8') as f:
        yaml.dump({
            'config': config,
            'schedule': plan.to_dict(),
            'results': results,
        }, f, default_flow_style=False)


def _group_teams(stages: list) -> dict:
    """Registration order per (stage id, group id); group ids repeat across stages."""
    teams = {}
    for stage in stages:
        if stage.format.is_group_format:
            for group in stage.groups:
                teams[(stage.stage_id, group.group_id)] = [t.team_id for t in group.teams]
    return teams


def _head_to_head(config: dict) -> bool:
    return bool((config.get('standings') or {}).get('head_to_head', False))


def _resolver(stored: dict, plan: SchedulePlan, stages: list) -> AdvancementResolver:
    results = {
        match_id: MatchResult.from_dict(result)
        for match_id, result in (stored.get('results') or {}).items()
    }
    return AdvancementResolver(plan.fixtures(), results, group_teams=_group_teams(stages),
                               head_to_head=_head_to_head(stored.get('config') or {}))


@app.route('/api/schedule/preview', methods=['POST'])
def preview():
    """Return a plan without storing anything."""
    config = request.get_json(silent=True) or {}
    try:
        stages, timing, rest = parse_tournament_config(config)
    except ConfigurationError as e:
        return jsonify({'error': str(e)}), 400
    plan = preview_schedule(stages, timing, rest)
    return jsonify(plan.to_dict())


@app.route('/api/schedule/<tournament_id>/generate', methods=['POST'])
def generate(tournament_id):
    """Generate and store a plan; a plan with errors is returned but not stored."""
    if not _valid_id(tournament_id):
        return jsonify({'error': 'Invalid tournament id'}), 400
    config = request.get_json(silent=True) or {}
    try:
        stages, timing, rest = parse_tournament_config(config)
    except ConfigurationError as e:
        return jsonify({'error': str(e)}), 400

    with _lock(tournament_id):
        plan = generate_schedule(stages, timing, rest)
        if not plan.success:
            app.logger.warning(f'Schedule for {tournament_id} has {len(plan.errors)} errors, not saved')
            return jsonify({**plan.to_dict(), 'saved': False}), 409
        # Regeneration replaces the previous plan and its results
        save_stored(tournament_id, config, plan, {})

    app.logger.info(f'Saved schedule for {tournament_id}: {plan.stats.total_matches} matches')
    return jsonify({**plan.to_dict(), 'saved': True})


@app.route('/api/schedule/<tournament_id>', methods=['GET'])
def get_schedule(tournament_id):
    if not _valid_id(tournament_id):
        return jsonify({'error': 'Invalid tournament id'}), 400
    stored = load_stored(tournament_id)
    if stored is None:
        return jsonify({'error': 'No schedule'}), 404
    return jsonify({**stored['schedule'], 'results': stored.get('results') or {}})


@app.route('/api/schedule/<tournament_id>', methods=['DELETE'])
def clear_schedule(tournament_id):
    """Remove every stored match and result of a tournament."""
    if not _valid_id(tournament_id):
        return jsonify({'error': 'Invalid tournament id'}), 400
    with _lock(tournament_id):
        path = _schedule_file(tournament_id)
        existed = os.path.exists(path)
        if existed:
            os.remove(path)
    app.logger.info(f'Cleared schedule for {tournament_id}')
    return jsonify({'success': True, 'cleared': existed})


def _read_result(data: dict):
    """Parse scores from a request body; returns (result, error message)."""
    if data.get('home_score') is None or data.get('away_score') is None:
        return None, 'Missing scores'
    try:
        return MatchResult.from_dict(data), None
    except (TypeError, ValueError):
        return None, 'Scores must be non-negative integers'


def _change_result(tournament_id: str, change):
    """
    Apply ``change(resolver)`` to a stored tournament under its lock, then
    reschedule and persist. ``change`` returns the fixtures it updated.
    """
    with _lock(tournament_id):
        stored = load_stored(tournament_id)
        if stored is None:
            return jsonify({'error': 'No schedule'}), 404
        config = stored.get('config') or {}
        stages, timing, rest = parse_tournament_config(config)
        plan = SchedulePlan.from_dict(stored['schedule'])
        resolver = _resolver(stored, plan, stages)
        try:
            updated = change(resolver)
        except AdvancementError as e:
            return jsonify({'error': str(e)}), 400

        plan = schedule_materialized(plan, timing, rest, stages)
        results = {mid: r.to_dict() for mid, r in resolver.results.items()}
        save_stored(tournament_id, config, plan, results)

    return jsonify({
        'success': True,
        'updated': [f.match_id for f in updated],
        'errors': [e.to_dict() for e in plan.errors],
        'schedule': plan.to_dict(),
    })


@app.route('/api/schedule/<tournament_id>/results', methods=['POST'])
def record_result(tournament_id):
    """Record a match result, advance teams and schedule matches that became playable."""
    if not _valid_id(tournament_id):
        return jsonify({'error': 'Invalid tournament id'}), 400
    data = request.get_json(silent=True) or {}
    match_id = data.get('match_id')
    if not match_id:
        return jsonify({'error': 'Missing match_id'}), 400
    result, error = _read_result(data)
    if error:
        return jsonify({'error': error}), 400
    return _change_result(tournament_id, lambda resolver: resolver.record_result(match_id, result))


@app.route('/api/schedule/<tournament_id>/results/<path:match_id>', methods=['PUT'])
def update_result(tournament_id, match_id):
    """Correct a recorded result; teams it advanced are replaced where they changed."""
    if not _valid_id(tournament_id):
        return jsonify({'error': 'Invalid tournament id'}), 400
    result, error = _read_result(request.get_json(silent=True) or {})
    if error:
        return jsonify({'error': error}), 400
    return _change_result(tournament_id, lambda resolver: resolver.update_result(match_id, result))


@app.route('/api/schedule/<tournament_id>/results/<path:match_id>', methods=['DELETE'])
def clear_result(tournament_id, match_id):
    """Withdraw a recorded result and put back the placeholders it filled."""
    if not _valid_id(tournament_id):
        return jsonify({'error': 'Invalid tournament id'}), 400
    return _change_result(tournament_id, lambda resolver: resolver.clear_result(match_id))


@app.route('/api/schedule/<tournament_id>/standings/<stage_id>/<group_id>', methods=['GET'])
def group_standings(tournament_id, stage_id, group_id):
    if not _valid_id(tournament_id):
        return jsonify({'error': 'Invalid tournament id'}), 400
    stored = load_stored(tournament_id)
    if stored is None:
        return jsonify({'error': 'No schedule'}), 404
    stages, _, _ = parse_tournament_config(stored.get('config') or {})
    plan = SchedulePlan.from_dict(stored['schedule'])
    resolver = _resolver(stored, plan, stages)
    return jsonify({
        'stage_id': stage_id,
        'group_id': group_id,
        'standings': [row.to_dict() for row in resolver.standings(stage_id, group_id)],
    })


if __name__ == '__main__':
    app.run(debug=True)
