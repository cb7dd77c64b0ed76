"""
Scheduled learning notification jobs.

Three independent entry points, each meant to be triggered once per tick by a
single external scheduler instance (Celery beat, cron, or the jobs API):

- run_reminders:  every 2 days per employee while the plan is open
- run_milestones: day 30 / 60 / 90 reports, exact-day match only
- run_expiry:     one-shot notice after the deadline passes

Candidates are processed strictly one at a time. A failure on one candidate is
rolled back, logged and skipped; only a failure while listing candidates
aborts the run. Guard fields are written last-write-wins, so overlapping runs
of the same job can double-send.

Milestones have no persisted guard: a day that the job does not run on is a
milestone that is never sent for the employees who hit it that day.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from actions.learning_assignment import employee_view
from actions.learning_progress import compute_stats
from services import learning_store as store
from services.learning_roster import CATEGORY_DEADLINE, CATEGORY_PROGRESS_REPORTS, list_opted_in_members
from utils import parse_datetime_maybe, to_iso_utc, utc_now


_log = logging.getLogger("scheduler")


MOTIVATION_TIERS: list[tuple[Callable[[int], bool], dict[str, str]]] = [
    (lambda pct: pct >= 75, {"tier": "ALMOST_THERE", "icon": "🌟", "motivation": "You're almost there! Just a little more effort to complete your learning journey!"}),
    (lambda pct: pct >= 50, {"tier": "PAST_HALFWAY", "icon": "🚀", "motivation": "Great progress! You've crossed the halfway mark. Keep up the momentum!"}),
    (lambda pct: pct >= 25, {"tier": "STEADY", "icon": "⭐", "motivation": "You're making steady progress! Stay focused and you'll reach your goal!"}),
    (lambda pct: pct > 0, {"tier": "STARTED", "icon": "🌱", "motivation": "Every learning journey starts with a single step. Keep going!"}),
    (lambda pct: True, {"tier": "NOT_STARTED", "icon": "💡", "motivation": "Time to get started! Your learning adventure awaits!"}),
]


def motivation_tier(progress_pct: int) -> dict[str, str]:
    for predicate, tier in MOTIVATION_TIERS:
        if predicate(int(progress_pct or 0)):
            return dict(tier)
    return dict(MOTIVATION_TIERS[-1][1])


def urgency_tier(days_left: Optional[int]) -> dict[str, str]:
    days = int(days_left or 0)
    # Not reachable from run_reminders today (it only selects future deadlines).
    if days <= 0:
        return {"urgency_tier": "OVERDUE", "urgency": "Your deadline has passed! Please complete your learning plan as soon as possible."}
    if days <= 3:
        return {"urgency_tier": "CRITICAL", "urgency": f"Only {days} day{'' if days == 1 else 's'} left! Complete your learning plan urgently."}
    if days <= 7:
        return {"urgency_tier": "SOON", "urgency": f"{days} days remaining. Time to accelerate your learning!"}
    return {"urgency_tier": "ON_TRACK", "urgency": f"You have {days} days to complete your learning plan."}


def reminder_tiers(stats: dict[str, Any]) -> dict[str, str]:
    info = motivation_tier(stats.get("progressPercentage") or 0)
    info.update(urgency_tier(stats.get("daysRemaining")))
    return info


def _resolve_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return utc_now()
    return parse_datetime_maybe(now, app_timezone="UTC")


def _summary(job: str, candidates: int) -> dict[str, Any]:
    return {"ok": True, "job": job, "candidates": candidates, "processed": 0, "failed": 0, "stopped": False}


def _stop_requested(should_stop: Optional[Callable[[], bool]]) -> bool:
    return bool(should_stop and should_stop())


def run_reminders(
    db,
    *,
    cfg: Any,
    notifier: Any,
    now: Optional[datetime] = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> dict[str, Any]:
    now_dt = _resolve_now(now)
    now_iso = to_iso_utc(now_dt)

    candidates = [(a.fresher_id, a.deadline) for a in store.list_reminder_candidates(db, now_dt)]
    summary = _summary("reminders", len(candidates))
    _log.info("learning reminders: %s candidate(s) at %s", len(candidates), now_iso)

    for fresher_id, deadline in candidates:
        if _stop_requested(should_stop):
            summary["stopped"] = True
            break
        try:
            stats = compute_stats(store.list_progress_items(db, fresher_id), deadline=deadline, now=now_dt)
            employee = employee_view(db, fresher_id)
            if not notifier.send_reminder(employee, stats, reminder_tiers(stats)):
                summary["failed"] += 1
                _log.warning("reminder not delivered fresher=%s; will retry next run", fresher_id)
                continue
            store.mark_reminder_sent(db, fresher_id, now_iso)
            db.commit()
            summary["processed"] += 1
            _log.info("reminder sent fresher=%s progress=%s%%", fresher_id, stats["progressPercentage"])
        except Exception:
            db.rollback()
            summary["failed"] += 1
            _log.exception("reminder failed fresher=%s", fresher_id)

    _log.info("learning reminders done: %s", summary)
    return summary


def module_breakdown(items) -> dict[str, list[dict[str, Any]]]:
    completed, pending = [], []
    for row in items:
        entry = {
            "id": row.item_id,
            "title": row.title or "",
            "durationMinutes": int(row.duration_minutes or 0),
            "completedAt": row.completed_at or None,
        }
        (completed if row.is_completed else pending).append(entry)
    return {"completed": completed, "pending": pending}


def run_milestones(
    db,
    *,
    cfg: Any,
    notifier: Any,
    now: Optional[datetime] = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> dict[str, Any]:
    now_dt = _resolve_now(now)

    candidates = [(a.fresher_id, a.deadline, day) for a, day in store.list_milestone_candidates(db, now_dt, store.MILESTONE_DAYS)]
    summary = _summary("milestones", len(candidates))
    _log.info("learning milestones: %s candidate(s) at %s", len(candidates), to_iso_utc(now_dt))

    for fresher_id, deadline, day in candidates:
        if _stop_requested(should_stop):
            summary["stopped"] = True
            break
        try:
            items = store.list_progress_items(db, fresher_id)
            stats = compute_stats(items, deadline=deadline, now=now_dt)
            breakdown = module_breakdown(items)
            employee = employee_view(db, fresher_id)

            all_ok = notifier.send_milestone_report(employee, stats, breakdown, day, employee=employee)
            if not all_ok:
                _log.warning("%s-day report to employee not delivered fresher=%s", day, fresher_id)

            # Each reviewer is independent of the employee and of each other.
            for member in list_opted_in_members(db, CATEGORY_PROGRESS_REPORTS):
                if not notifier.send_milestone_report(member, stats, breakdown, day, employee=employee):
                    all_ok = False
                    _log.warning("%s-day report to %s not delivered fresher=%s", day, member["email"], fresher_id)

            if all_ok:
                summary["processed"] += 1
            else:
                summary["failed"] += 1
        except Exception:
            db.rollback()
            summary["failed"] += 1
            _log.exception("%s-day report failed fresher=%s", day, fresher_id)

    _log.info("learning milestones done: %s", summary)
    return summary


def _expiry_recipients(db, cfg: Any) -> list[dict[str, str]]:
    members = list_opted_in_members(db, CATEGORY_DEADLINE)
    fallback = str(getattr(cfg, "LD_FALLBACK_EMAIL", "") or "").strip()
    if not members and fallback:
        members = [{"email": fallback, "name": "L&D Team"}]
    return members


def run_expiry(
    db,
    *,
    cfg: Any,
    notifier: Any,
    now: Optional[datetime] = None,
    should_stop: Optional[Callable[[], bool]] = None,
) -> dict[str, Any]:
    now_dt = _resolve_now(now)
    now_iso = to_iso_utc(now_dt)

    candidates = [(a.fresher_id, a.deadline, a.duration_days) for a in store.list_expiry_candidates(db, now_dt)]
    summary = _summary("expiry", len(candidates))
    _log.info("learning expiry: %s candidate(s) at %s", len(candidates), now_iso)

    for fresher_id, deadline, duration_days in candidates:
        if _stop_requested(should_stop):
            summary["stopped"] = True
            break
        try:
            stats = compute_stats(store.list_progress_items(db, fresher_id), deadline=deadline, now=now_dt)
            stats["durationDays"] = int(duration_days or 0)
            employee = employee_view(db, fresher_id)

            recipients = _expiry_recipients(db, cfg)
            if not recipients:
                summary["failed"] += 1
                _log.warning("expiry report has no roster recipients fresher=%s", fresher_id)
                continue

            roster_ok = True
            for member in recipients:
                if not notifier.send_expiry_report(member, stats, employee=employee, audience="roster"):
                    roster_ok = False
            if not roster_ok:
                # Employee is only told after the roster has been.
                summary["failed"] += 1
                _log.warning("expiry report to roster failed fresher=%s; employee notice skipped", fresher_id)
                continue

            employee_recipient = {"email": employee["email"], "name": employee["name"]}
            if not notifier.send_expiry_report(employee_recipient, stats, employee=employee, audience="employee"):
                summary["failed"] += 1
                _log.warning("expiry notice to employee failed fresher=%s; will retry next run", fresher_id)
                continue

            store.mark_expiry_notified(db, fresher_id, now_iso)
            db.commit()
            summary["processed"] += 1
            _log.info("expiry notices sent fresher=%s progress=%s%%", fresher_id, stats["progressPercentage"])
        except Exception:
            db.rollback()
            summary["failed"] += 1
            _log.exception("expiry notice failed fresher=%s", fresher_id)

    _log.info("learning expiry done: %s", summary)
    return summary


JOBS: dict[str, Callable[..., dict[str, Any]]] = {
    "reminders": run_reminders,
    "milestones": run_milestones,
    "expiry": run_expiry,
}
