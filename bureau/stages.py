"""Engagement stage checklists and automatic stage advance."""
from __future__ import annotations

import json
import logging

from bureau.models import PROJECT_STAGES, Project
from bureau.utils import bump_version, json_parse

log = logging.getLogger(__name__)

REQUIRED_TASKS: dict[str, tuple[str, ...]] = {
    "invoicing": (
        "initial_invoice_sent", "final_invoice_sent", "kickoff_meeting_planned", "project_setup_complete",
    ),
    "logistics_planning": (
        "details_confirmed", "av_requirements_gathered", "press_pack_sent", "calendar_confirmed",
        "client_contact_obtained", "speaker_materials_ready",
    ),
    "pre_event": ("logistics_confirmed", "speaker_prepared", "client_materials_sent", "ready_for_execution"),
    "event_week": ("final_preparations_complete", "event_executed", "support_provided"),
    "follow_up": (
        "follow_up_sent", "client_feedback_requested", "speaker_feedback_requested", "lessons_documented",
    ),
}


def next_stage(stage: str) -> str | None:
    if stage not in PROJECT_STAGES:
        return None
    idx = PROJECT_STAGES.index(stage)
    return PROJECT_STAGES[idx + 1] if idx + 1 < len(PROJECT_STAGES) else None


def stage_complete(stage: str, tasks: dict[str, bool]) -> bool:
    required = REQUIRED_TASKS.get(stage)
    if not required:
        return False
    return all(tasks.get(key) is True for key in required)


def set_task(proj: Project, stage: str, task: str, completed: bool) -> tuple[dict, str | None]:
    """Record a checklist flag; advance the project when its current stage is done.

    Returns the full completion map and the stage advanced to, if any
    (caller must commit).
    """
    completion = json_parse(proj.stage_completion_json, {})
    if not isinstance(completion, dict):
        completion = {}
    completion.setdefault(stage, {})[task] = completed
    proj.stage_completion_json = json.dumps(completion)
    bump_version(proj)

    advanced_to = None
    if proj.status == stage and stage_complete(stage, completion[stage]):
        advanced_to = next_stage(stage)
        if advanced_to:
            log.info("Project %s advanced %s -> %s", proj.id, stage, advanced_to)
            proj.status = advanced_to
    return completion, advanced_to
