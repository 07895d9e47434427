"""
Schedule orchestration: configuration checks, pairing generation per stage,
allocation and validation, combined into one plan.

The returned plan is advisory. Callers persist it only when ``plan.success``.
"""
import logging
from typing import List, Optional

from .allocation import Timeline, allocate, compute_stats, number_matches
from .double_elimination import GSL_GROUP_SIZE
from .models import (
    BracketRole,
    ConfigurationError,
    Fixture,
    FixtureState,
    GenerationError,
    IssueKind,
    RestConstraint,
    ScheduleIssue,
    SchedulePlan,
    Severity,
    StageConfig,
    StageFormat,
    TimingConfig,
)
from .pairing import generate_all_matches
from .validation import validate_plan

logger = logging.getLogger(__name__)


def check_configuration(stages: List[StageConfig], timing: TimingConfig):
    """Raise ConfigurationError for anything that makes the whole tournament unschedulable."""
    if not stages:
        raise ConfigurationError("No stages configured")
    if not timing.pitches:
        raise ConfigurationError("No active pitches configured")
    if timing.start_time is None:
        raise ConfigurationError("No start time configured")
    if timing.match_duration_minutes <= 0:
        raise ConfigurationError("Match duration must be positive")

    orders = [s.order for s in stages]
    if len(set(orders)) != len(orders):
        raise ConfigurationError("Stage order must be unique per stage")

    for stage in stages:
        if stage.format is StageFormat.GSL_GROUPS:
            for group in stage.groups:
                if len(group.teams) != GSL_GROUP_SIZE:
                    raise ConfigurationError(
                        f"GSL group '{group.name}' must have exactly {GSL_GROUP_SIZE} teams, "
                        f"has {len(group.teams)}",
                        stage_id=stage.stage_id, group_id=group.group_id,
                    )


def _generation_issue(error: GenerationError) -> ScheduleIssue:
    return ScheduleIssue(
        kind=IssueKind.INSUFFICIENT_TEAMS,
        severity=Severity.ERROR,
        message=str(error),
        stage_id=error.stage_id,
        group_id=error.group_id,
    )


def _skipped_third_place(stages: List[StageConfig], fixtures: List[Fixture]) -> List[ScheduleIssue]:
    """Warn for stages that asked for a third-place match but generated none."""
    issues = []
    for stage in stages:
        if not stage.third_place or stage.format not in (StageFormat.KNOCKOUT, StageFormat.FINAL):
            continue
        own = [f for f in fixtures if f.stage_id == stage.stage_id]
        # a stage that failed to generate is already reported as an error
        if own and not any(f.position and f.position.role is BracketRole.THIRD_PLACE for f in own):
            issues.append(ScheduleIssue(
                kind=IssueKind.THIRD_PLACE_SKIPPED,
                severity=Severity.WARNING,
                message=f"Stage '{stage.name}' has too few entrants for a third-place match",
                stage_id=stage.stage_id,
            ))
    return issues


def _file(plan: SchedulePlan, issues: List[ScheduleIssue]):
    for issue in issues:
        if issue.is_error:
            plan.errors.append(issue)
        else:
            plan.warnings.append(issue)


def generate_schedule(stages: List[StageConfig], timing: TimingConfig,
                      rest: Optional[RestConstraint] = None, preview: bool = False) -> SchedulePlan:
    """
    Build a complete plan for the given stages.

    Configuration errors abort with a plan holding a single error and no
    matches. Generation and allocation errors are collected and the rest
    of the tournament is still scheduled.
    """
    plan = SchedulePlan(preview=preview)
    try:
        check_configuration(stages, timing)
    except ConfigurationError as e:
        logger.error("Cannot schedule: %s", e)
        plan.errors.append(ScheduleIssue(
            kind=IssueKind.CONFIGURATION,
            severity=Severity.ERROR,
            message=str(e),
            stage_id=e.stage_id,
            group_id=e.group_id,
        ))
        return plan

    fixtures, generation_errors = generate_all_matches(stages)
    plan.errors.extend(_generation_issue(e) for e in generation_errors)
    plan.warnings.extend(_skipped_third_place(stages, fixtures))

    result = allocate(fixtures, timing, rest, stages)
    plan.matches = result.matches
    plan.stats = result.stats
    plan.warnings.extend(result.warnings)
    plan.errors.extend(result.errors)
    _file(plan, validate_plan(plan.matches, timing, rest, check_rest=False))

    logger.info("%s: %d matches, %d errors, %d warnings",
                "Preview" if preview else "Schedule", plan.stats.total_matches,
                len(plan.errors), len(plan.warnings))
    return plan


def preview_schedule(stages: List[StageConfig], timing: TimingConfig,
                     rest: Optional[RestConstraint] = None) -> SchedulePlan:
    """Same as generate_schedule, flagged as a preview that must not be persisted."""
    return generate_schedule(stages, timing, rest, preview=True)


def schedule_materialized(plan: SchedulePlan, timing: TimingConfig,
                          rest: Optional[RestConstraint] = None,
                          stages: Optional[List[StageConfig]] = None) -> SchedulePlan:
    """
    Allocate playable fixtures that have no slot yet, e.g. a grand final reset
    that became necessary, around the matches already in the plan. Matches
    that stopped being playable (a reset reopened or voided by a corrected
    grand final) give their slot back first.
    """
    released = [m for m in plan.matches if m.is_allocated and m.state is not FixtureState.PLAYABLE]
    for match in released:
        logger.info("Releasing slot of %s (%s)", match.match_id, match.state.value)
        match.pitch_id, match.start, match.end = None, None, None

    pending = [m.fixture for m in plan.matches if not m.is_allocated and m.state is FixtureState.PLAYABLE]
    if not pending:
        if released:
            plan.matches = number_matches(plan.matches, timing.pitches)
            plan.stats = compute_stats(plan.matches, timing.pitches)
        return plan

    timeline = Timeline.from_matches(timing.pitches, plan.matches)
    result = allocate(pending, timing, rest, stages, timeline)

    allocated = {m.match_id: m for m in result.matches}
    plan.matches = number_matches([allocated.get(m.match_id, m) for m in plan.matches], timing.pitches)
    plan.stats = compute_stats(plan.matches, timing.pitches)
    plan.warnings.extend(result.warnings)
    plan.errors.extend(result.errors)
    logger.info("Scheduled %d newly playable match(es)",
                sum(1 for m in result.matches if m.is_allocated))
    return plan
