"""
Scheduled jobs: reminders, milestone reports and deadline-expiry notices.
"""
from __future__ import annotations

import dataclasses
import json
from datetime import datetime, timedelta, timezone

import pytest

from actions import learning_jobs
from actions.learning_jobs import motivation_tier, run_expiry, run_milestones, run_reminders, urgency_tier
from models import Fresher, LearningAssignment, LearningProgressItem, RosterMember
from services import learning_store as store
from utils import PersistenceError, to_iso_utc


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _seed_plan(
    db,
    fresher_id: str,
    *,
    assigned_at: datetime = NOW - timedelta(days=5),
    deadline: datetime = NOW + timedelta(days=10),
    completed: tuple[bool, ...] = (True, False),
    last_reminder_sent: datetime | None = None,
    is_active: bool = True,
) -> None:
    db.add(
        Fresher(
            fresher_id=fresher_id,
            first_name="Meera",
            last_name=fresher_id,
            email=f"{fresher_id.lower()}@example.com",
            designation="Analyst",
            department="Data Analytics",
            created_at=to_iso_utc(assigned_at),
        )
    )
    db.add(
        LearningAssignment(
            fresher_id=fresher_id,
            department="Data Analytics",
            catalog_key="data_analytics",
            assigned_at=to_iso_utc(assigned_at),
            duration_days=7,
            deadline=to_iso_utc(deadline),
            last_reminder_sent=to_iso_utc(last_reminder_sent) if last_reminder_sent else None,
            is_active=is_active,
            updated_at=to_iso_utc(assigned_at),
        )
    )
    for idx, done in enumerate(completed, start=1):
        db.add(
            LearningProgressItem(
                fresher_id=fresher_id,
                item_id=idx,
                title=f"Module {idx}",
                link=f"https://learn.example.com/{idx}",
                duration_minutes=60,
                is_completed=done,
                completed_at=to_iso_utc(assigned_at) if done else None,
                created_at=to_iso_utc(assigned_at),
                updated_at=to_iso_utc(assigned_at),
            )
        )
    db.commit()


def _seed_member(db, email: str, *, preferences=None, is_active: bool = True, first_name: str = "") -> None:
    db.add(
        RosterMember(
            email=email,
            first_name=first_name or email.split("@")[0].title(),
            last_name="LD",
            role="L&D Coordinator",
            is_active=is_active,
            notification_preferences=preferences if isinstance(preferences, str) else json.dumps(preferences or {}),
            created_at=to_iso_utc(NOW),
            updated_at=to_iso_utc(NOW),
        )
    )
    db.commit()


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "pct, tier",
    [(100, "ALMOST_THERE"), (75, "ALMOST_THERE"), (74, "PAST_HALFWAY"), (50, "PAST_HALFWAY"), (25, "STEADY"), (1, "STARTED"), (0, "NOT_STARTED")],
)
def test_motivation_tier(pct, tier):
    assert motivation_tier(pct)["tier"] == tier


@pytest.mark.parametrize(
    "days, tier",
    [(1, "CRITICAL"), (3, "CRITICAL"), (4, "SOON"), (7, "SOON"), (8, "ON_TRACK"), (0, "OVERDUE"), (-2, "OVERDUE")],
)
def test_urgency_tier(days, tier):
    assert urgency_tier(days)["urgency_tier"] == tier


def test_urgency_message_singular_day():
    assert "Only 1 day left!" in urgency_tier(1)["urgency"]


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


def test_reminder_sent_and_guard_stamped(db, cfg, notifier):
    _seed_plan(db, "F-1")

    summary = run_reminders(db, cfg=cfg, notifier=notifier, now=NOW)

    assert summary["candidates"] == 1
    assert summary["processed"] == 1
    assert notifier.recipients("reminder") == ["f-1@example.com"]
    sent = notifier.sent[0]
    assert sent["stats"]["progressPercentage"] == 50
    assert sent["stats"]["daysRemaining"] == 10
    assert sent["tier"]["tier"] == "PAST_HALFWAY"
    assert sent["tier"]["urgency_tier"] == "ON_TRACK"
    assert store.get_assignment(db, "F-1").last_reminder_sent == to_iso_utc(NOW)


def test_reminder_not_sent_once_deadline_passed(db, cfg, notifier):
    _seed_plan(db, "F-1", deadline=NOW - timedelta(hours=1))
    _seed_plan(db, "F-2", deadline=NOW)

    summary = run_reminders(db, cfg=cfg, notifier=notifier, now=NOW)

    assert summary["candidates"] == 0
    assert notifier.sent == []


def test_reminder_not_sent_for_completed_plan(db, cfg, notifier):
    _seed_plan(db, "F-1", completed=(True, True))
    _seed_plan(db, "F-2", completed=())

    run_reminders(db, cfg=cfg, notifier=notifier, now=NOW)

    assert notifier.sent == []


def test_reminder_waits_two_days_between_sends(db, cfg, notifier):
    _seed_plan(db, "F-1", last_reminder_sent=NOW - timedelta(hours=47))
    _seed_plan(db, "F-2", last_reminder_sent=NOW - timedelta(hours=48))

    run_reminders(db, cfg=cfg, notifier=notifier, now=NOW)

    assert notifier.recipients("reminder") == ["f-2@example.com"]


def test_reminder_second_run_same_day_is_noop(db, cfg, notifier):
    _seed_plan(db, "F-1")

    run_reminders(db, cfg=cfg, notifier=notifier, now=NOW)
    summary = run_reminders(db, cfg=cfg, notifier=notifier, now=NOW + timedelta(hours=6))

    assert summary["candidates"] == 0
    assert len(notifier.recipients("reminder")) == 1


def test_failed_reminder_leaves_guard_for_retry(db, cfg, notifier_factory):
    _seed_plan(db, "F-1")
    failing = notifier_factory(fail_for=("f-1@example.com",))

    summary = run_reminders(db, cfg=cfg, notifier=failing, now=NOW)

    assert summary["failed"] == 1
    assert store.get_assignment(db, "F-1").last_reminder_sent is None

    healthy = notifier_factory()
    run_reminders(db, cfg=cfg, notifier=healthy, now=NOW + timedelta(hours=1))
    assert healthy.recipients("reminder") == ["f-1@example.com"]


def test_reminder_error_on_one_candidate_does_not_stop_others(db, cfg, notifier_factory):
    class FlakyNotifier(notifier_factory):
        def send_reminder(self, employee, stats, tier_info):
            if employee["email"] == "f-1@example.com":
                raise RuntimeError("template blew up")
            return super().send_reminder(employee, stats, tier_info)

    _seed_plan(db, "F-1", deadline=NOW + timedelta(days=3))
    _seed_plan(db, "F-2", deadline=NOW + timedelta(days=4))
    flaky = FlakyNotifier()

    summary = run_reminders(db, cfg=cfg, notifier=flaky, now=NOW)

    assert summary == {"ok": True, "job": "reminders", "candidates": 2, "processed": 1, "failed": 1, "stopped": False}
    assert store.get_assignment(db, "F-1").last_reminder_sent is None
    assert store.get_assignment(db, "F-2").last_reminder_sent == to_iso_utc(NOW)


def test_should_stop_halts_between_candidates(db, cfg, notifier):
    _seed_plan(db, "F-1", deadline=NOW + timedelta(days=3))
    _seed_plan(db, "F-2", deadline=NOW + timedelta(days=4))

    summary = run_reminders(db, cfg=cfg, notifier=notifier, now=NOW, should_stop=lambda: len(notifier.sent) >= 1)

    assert summary["stopped"] is True
    assert summary["processed"] == 1
    assert store.get_assignment(db, "F-2").last_reminder_sent is None


def test_candidate_listing_failure_propagates(db, cfg, notifier, monkeypatch):
    def boom(*_args, **_kwargs):
        raise PersistenceError("list_reminder_candidates failed: OperationalError")

    monkeypatch.setattr(learning_jobs.store, "list_reminder_candidates", boom)

    with pytest.raises(PersistenceError):
        run_reminders(db, cfg=cfg, notifier=notifier, now=NOW)


# ---------------------------------------------------------------------------
# Milestones
# ---------------------------------------------------------------------------


def test_milestone_day_boundaries(db, cfg, notifier):
    _seed_plan(db, "D29", assigned_at=NOW - timedelta(days=30) + timedelta(seconds=1))
    _seed_plan(db, "D30", assigned_at=NOW - timedelta(days=30))
    _seed_plan(db, "D30-LATE", assigned_at=NOW - timedelta(days=30, hours=23))
    _seed_plan(db, "D31", assigned_at=NOW - timedelta(days=31))

    summary = run_milestones(db, cfg=cfg, notifier=notifier, now=NOW)

    assert summary["candidates"] == 2
    assert sorted(notifier.recipients("milestone")) == ["d30-late@example.com", "d30@example.com"]
    assert {s["day"] for s in notifier.sent} == {30}


def test_milestone_sixty_and_ninety(db, cfg, notifier):
    _seed_plan(db, "D60", assigned_at=NOW - timedelta(days=60, hours=2))
    _seed_plan(db, "D90", assigned_at=NOW - timedelta(days=90, hours=5))
    _seed_plan(db, "D45", assigned_at=NOW - timedelta(days=45))

    run_milestones(db, cfg=cfg, notifier=notifier, now=NOW)

    assert {(s["to"], s["day"]) for s in notifier.sent} == {("d60@example.com", 60), ("d90@example.com", 90)}


def test_milestone_reports_go_to_opted_in_roster(db, cfg, notifier):
    _seed_plan(db, "D30", assigned_at=NOW - timedelta(days=30), completed=(True, False, False, False))
    _seed_member(db, "anita@example.com", first_name="Anita")
    _seed_member(db, "bala@example.com", first_name="Bala", preferences={"progress_reports": False})
    _seed_member(db, "chitra@example.com", first_name="Chitra", preferences="{not json")
    _seed_member(db, "dev@example.com", first_name="Dev", is_active=False)

    run_milestones(db, cfg=cfg, notifier=notifier, now=NOW)

    assert notifier.recipients("milestone") == ["d30@example.com", "anita@example.com", "chitra@example.com"]
    report = notifier.sent[0]
    assert report["stats"]["progressPercentage"] == 25
    assert [m["id"] for m in report["breakdown"]["completed"]] == [1]
    assert [m["id"] for m in report["breakdown"]["pending"]] == [2, 3, 4]


def test_milestone_roster_sends_are_independent(db, cfg, notifier_factory):
    _seed_plan(db, "D30", assigned_at=NOW - timedelta(days=30))
    _seed_member(db, "anita@example.com", first_name="Anita")
    _seed_member(db, "chitra@example.com", first_name="Chitra")
    notifier = notifier_factory(fail_for=("anita@example.com",))

    summary = run_milestones(db, cfg=cfg, notifier=notifier, now=NOW)

    assert notifier.recipients("milestone") == ["d30@example.com", "anita@example.com", "chitra@example.com"]
    assert [s["ok"] for s in notifier.sent] == [True, False, True]
    assert summary["failed"] == 1


def test_milestone_has_no_persisted_guard(db, cfg, notifier):
    _seed_plan(db, "D30", assigned_at=NOW - timedelta(days=30))

    run_milestones(db, cfg=cfg, notifier=notifier, now=NOW)
    run_milestones(db, cfg=cfg, notifier=notifier, now=NOW + timedelta(hours=1))

    assert notifier.recipients("milestone") == ["d30@example.com", "d30@example.com"]


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


def test_expiry_notifies_roster_then_employee_and_sets_guard(db, cfg, notifier):
    _seed_plan(db, "F-1", deadline=NOW - timedelta(hours=2))
    _seed_member(db, "anita@example.com", first_name="Anita")
    _seed_member(db, "bala@example.com", first_name="Bala", preferences={"deadline_notifications": False})

    summary = run_expiry(db, cfg=cfg, notifier=notifier, now=NOW)

    assert summary["processed"] == 1
    assert [s["kind"] for s in notifier.sent] == ["expiry_roster", "expiry_employee"]
    assert notifier.recipients("expiry_roster") == ["anita@example.com"]
    assert notifier.recipients("expiry_employee") == ["f-1@example.com"]
    assert notifier.sent[0]["stats"]["durationDays"] == 7
    assert store.get_assignment(db, "F-1").deadline_notification_sent == to_iso_utc(NOW)

    again = run_expiry(db, cfg=cfg, notifier=notifier, now=NOW + timedelta(days=1))
    assert again["candidates"] == 0
    assert len(notifier.sent) == 2


def test_expiry_roster_failure_skips_employee(db, cfg, notifier_factory):
    _seed_plan(db, "F-1", deadline=NOW - timedelta(hours=2))
    _seed_member(db, "anita@example.com", first_name="Anita")
    _seed_member(db, "chitra@example.com", first_name="Chitra")
    notifier = notifier_factory(fail_for=("anita@example.com",))

    summary = run_expiry(db, cfg=cfg, notifier=notifier, now=NOW)

    assert summary["failed"] == 1
    assert notifier.recipients("expiry_roster") == ["anita@example.com", "chitra@example.com"]
    assert notifier.recipients("expiry_employee") == []
    assert store.get_assignment(db, "F-1").deadline_notification_sent is None


def test_expiry_employee_failure_leaves_guard_unset(db, cfg, notifier_factory):
    _seed_plan(db, "F-1", deadline=NOW - timedelta(hours=2))
    _seed_member(db, "anita@example.com", first_name="Anita")
    notifier = notifier_factory(fail_for=("f-1@example.com",))

    summary = run_expiry(db, cfg=cfg, notifier=notifier, now=NOW)

    assert summary["failed"] == 1
    assert store.get_assignment(db, "F-1").deadline_notification_sent is None

    # Retry resends to the roster as well.
    retry = notifier_factory()
    run_expiry(db, cfg=cfg, notifier=retry, now=NOW + timedelta(days=1))
    assert [s["kind"] for s in retry.sent] == ["expiry_roster", "expiry_employee"]


def test_expiry_without_recipients_is_a_failure(db, cfg, notifier):
    _seed_plan(db, "F-1", deadline=NOW - timedelta(hours=2))
    _seed_member(db, "bala@example.com", preferences={"deadline_notifications": False})

    summary = run_expiry(db, cfg=cfg, notifier=notifier, now=NOW)

    assert summary["failed"] == 1
    assert notifier.sent == []
    assert store.get_assignment(db, "F-1").deadline_notification_sent is None


def test_expiry_uses_fallback_address_for_empty_roster(db, cfg, notifier):
    _seed_plan(db, "F-1", deadline=NOW - timedelta(hours=2))
    cfg = dataclasses.replace(cfg, LD_FALLBACK_EMAIL="ld-team@example.com")

    summary = run_expiry(db, cfg=cfg, notifier=notifier, now=NOW)

    assert summary["processed"] == 1
    assert notifier.recipients("expiry_roster") == ["ld-team@example.com"]


def test_expiry_ignores_future_and_inactive_plans(db, cfg, notifier):
    _seed_plan(db, "F-1", deadline=NOW + timedelta(hours=2))
    _seed_plan(db, "F-2", deadline=NOW - timedelta(days=1), is_active=False)
    _seed_member(db, "anita@example.com")

    summary = run_expiry(db, cfg=cfg, notifier=notifier, now=NOW)

    assert summary["candidates"] == 0
    assert notifier.sent == []


# ---------------------------------------------------------------------------
# Task wrapper
# ---------------------------------------------------------------------------


def test_run_learning_job_uses_own_session(db, cfg, monkeypatch):
    from app.tasks.learning_tasks import run_learning_job

    monkeypatch.setenv("DATABASE_URL", cfg.DATABASE_URL)
    monkeypatch.setenv("MAIL_MODE", "log")
    _seed_plan(db, "F-1")

    summary = run_learning_job("reminders", now=to_iso_utc(NOW))

    assert summary["processed"] == 1
    db.expire_all()
    assert store.get_assignment(db, "F-1").last_reminder_sent == to_iso_utc(NOW)


def test_run_learning_job_rejects_unknown_job():
    from app.tasks.learning_tasks import run_learning_job

    with pytest.raises(ValueError):
        run_learning_job("payroll")
