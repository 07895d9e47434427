# Entry point for generating a tournament schedule from the command line
#
# Usage: python src/main.py tournament.yaml [pitches.csv]

import logging
import os
import sys

from scheduling.config import load_tournament
from scheduling.models import ConfigurationError
from scheduling.orchestrator import generate_schedule


def describe(participant):
    return str(participant) if participant is not None else 'BYE'


def print_plan(plan, timing):
    print("\n--- Final Schedule ---")
    by_pitch = {p.pitch_id: [] for p in timing.pitches}
    for match in plan.matches:
        if match.is_allocated:
            by_pitch.setdefault(match.pitch_id, []).append(match)

    for pitch in timing.pitches:
        print(f"\nPitch: {pitch.name or pitch.pitch_id}")
        matches = by_pitch.get(pitch.pitch_id, [])
        if not matches:
            print("  No matches scheduled.")
        for match in matches:
            print(f"  #{match.match_number:<3} {match.start.strftime('%H:%M')} - {match.end.strftime('%H:%M')}: "
                  f"{describe(match.home)} vs {describe(match.away)} ({match.match_id})")

    unallocated = [m for m in plan.matches if not m.is_allocated]
    if unallocated:
        print("\nNot scheduled:")
        for match in unallocated:
            print(f"  {match.match_id} [{match.state.value}]: {describe(match.home)} vs {describe(match.away)}")

    stats = plan.stats
    print(f"\n{stats.total_matches} matches over {stats.total_duration_minutes} minutes, "
          f"average rest {stats.average_rest_minutes} min")
    if stats.estimated_end_time:
        print(f"Estimated end: {stats.estimated_end_time.strftime('%Y-%m-%d %H:%M')}")

    for warning in plan.warnings:
        print(f"WARNING [{warning.kind.value}] {warning.message}")
    for error in plan.errors:
        print(f"ERROR [{error.kind.value}] {error.message}")


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    logging.basicConfig(level=os.environ.get('LOG_LEVEL', 'WARNING'),
                        format='%(levelname)s %(name)s: %(message)s')

    if not argv:
        print("Usage: main.py tournament.yaml [pitches.csv]")
        return 2

    pitches_file = argv[1] if len(argv) > 1 else None
    try:
        stages, timing, rest = load_tournament(argv[0], pitches_file)
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}")
        return 1

    plan = generate_schedule(stages, timing, rest)
    print_plan(plan, timing)
    return 0 if plan.success else 1


if __name__ == '__main__':
    sys.exit(main())
