"""
Outbound learning notifications.

Builds plain-text subject/body pairs and hands them to a transport:
- MAIL_MODE=log: message is written to the `notifier` logger only
- MAIL_MODE=webhook: JSON POST to MAIL_WEBHOOK_URL (mail relay)

Every send_* method returns True/False and never raises.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import requests


_log = logging.getLogger("notifier")


class NotificationError(RuntimeError):
    pass


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


class LogTransport:
    def __call__(self, message: dict[str, Any]) -> None:
        _log.info("mail(log) to=%s subject=%s", message["to"], message["subject"])


class WebhookTransport:
    def __init__(self, url: str, timeout: int):
        self.url = str(url or "").strip()
        self.timeout = max(1, int(timeout or 15))

    def __call__(self, message: dict[str, Any]) -> None:
        if not self.url:
            raise NotificationError("MAIL_WEBHOOK_URL is not configured")
        try:
            resp = requests.post(self.url, json=message, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise NotificationError(f"mail relay request failed: {e}") from e


class Notifier:
    def __init__(self, cfg: Any, transport: Optional[Callable[[dict[str, Any]], None]] = None):
        self.cfg = cfg
        self.transport = transport or LogTransport()
        self.sender = str(getattr(cfg, "MAIL_FROM", "") or "")
        self.frontend_url = str(getattr(cfg, "FRONTEND_URL", "") or "").rstrip("/")

    def _send(self, to: str, subject: str, body: str, *, kind: str) -> bool:
        to = str(to or "").strip()
        if not to:
            _log.warning("skip %s: recipient has no email", kind)
            return False
        message = {"from": self.sender, "to": to, "subject": subject, "text": body, "kind": kind}
        try:
            self.transport(message)
        except NotificationError as e:
            _log.error("%s to %s failed: %s", kind, to, e)
            return False
        except Exception:
            _log.exception("%s to %s failed", kind, to)
            return False
        return True

    def send_assigned(self, employee: dict[str, Any], module_count: int) -> bool:
        subject = "Your learning plan is ready"
        body = (
            f"Hi {employee.get('name') or 'there'},\n\n"
            f"A learning plan with {_plural(int(module_count), 'module')} has been assigned to you.\n"
            f"Start here: {self.frontend_url}/dashboard/learning\n\n"
            "Learning & Development Team"
        )
        return self._send(employee.get("email"), subject, body, kind="LEARNING_ASSIGNED")

    def send_reminder(self, employee: dict[str, Any], stats: dict[str, Any], tier_info: dict[str, Any]) -> bool:
        pct = int(stats.get("progressPercentage") or 0)
        total = int(stats.get("totalCount") or 0)
        done = int(stats.get("completedCount") or 0)
        remaining = total - done
        subject = f"{tier_info.get('icon', '')} Learning Progress Reminder - {pct}% Complete".strip()
        body = (
            f"Hi {employee.get('name') or 'there'},\n\n"
            f"You have completed {pct}% ({done}/{total} modules). "
            f"Still {100 - pct}% to go - {_plural(remaining, 'module')} remaining!\n\n"
            f"{tier_info.get('motivation', '')}\n"
            f"{tier_info.get('urgency', '')}\n\n"
            f"Continue learning: {self.frontend_url}/dashboard/learning\n\n"
            "Reminders are sent every 2 days until completion.\n"
            "Learning & Development Team"
        )
        return self._send(employee.get("email"), subject, body, kind="LEARNING_REMINDER")

    def send_milestone_report(
        self,
        recipient: dict[str, Any],
        stats: dict[str, Any],
        breakdown: dict[str, list[dict[str, Any]]],
        milestone_day: int,
        *,
        employee: Optional[dict[str, Any]] = None,
    ) -> bool:
        subject_who = ""
        if employee and recipient.get("email") != employee.get("email"):
            subject_who = f" - {employee.get('name') or employee.get('fresherId')}"
        subject = f"{milestone_day}-Day Learning Progress Report{subject_who}"

        lines = [
            f"Dear {recipient.get('name') or 'colleague'},",
            "",
            f"{milestone_day} days have passed since the learning plan was assigned.",
            f"Progress: {stats.get('progressPercentage', 0)}% "
            f"({stats.get('completedCount', 0)}/{stats.get('totalCount', 0)} modules), "
            f"days remaining: {stats.get('daysRemaining')}",
            "",
            "Completed:",
        ]
        lines += [f"  [x] {m['title']}" for m in breakdown.get("completed") or []] or ["  (none)"]
        lines += ["", "Pending:"]
        lines += [f"  [ ] {m['title']}" for m in breakdown.get("pending") or []] or ["  (none)"]
        lines += ["", "Learning & Development Team"]
        return self._send(recipient.get("email"), subject, "\n".join(lines), kind="LEARNING_MILESTONE")

    def send_expiry_report(
        self,
        recipient: dict[str, Any],
        stats: dict[str, Any],
        *,
        employee: Optional[dict[str, Any]] = None,
        audience: str = "roster",
    ) -> bool:
        pct = stats.get("progressPercentage", 0)
        done = stats.get("completedCount", 0)
        total = stats.get("totalCount", 0)
        if audience == "employee":
            subject = "Learning plan deadline reached - status update"
            body = (
                f"Hi {recipient.get('name') or 'there'},\n\n"
                f"The planned completion date for your learning plan has passed. "
                f"You completed {pct}% ({done}/{total} modules).\n"
                "There is no penalty; the L&D team has been informed and may reach out to help you finish.\n\n"
                f"Your plan remains available: {self.frontend_url}/dashboard/learning\n\n"
                "Learning & Development Team"
            )
            kind = "LEARNING_EXPIRY_EMPLOYEE"
        else:
            emp = employee or {}
            subject = f"Learning deadline expired - {emp.get('name') or emp.get('fresherId') or 'employee'}"
            body = (
                f"Dear {recipient.get('name') or 'colleague'},\n\n"
                f"The learning deadline for {emp.get('name') or emp.get('fresherId')} "
                f"({emp.get('email') or 'no email'}, {emp.get('department') or 'no department'}) has expired.\n"
                f"Completion: {pct}% ({done}/{total} modules), allotted days: {stats.get('durationDays')}\n\n"
                "Learning & Development Team"
            )
            kind = "LEARNING_EXPIRY_ROSTER"
        return self._send(recipient.get("email"), subject, body, kind=kind)


def get_notifier(cfg: Any) -> Notifier:
    mode = str(getattr(cfg, "MAIL_MODE", "") or "log").strip().lower()
    if mode == "webhook":
        transport = WebhookTransport(getattr(cfg, "MAIL_WEBHOOK_URL", ""), getattr(cfg, "MAIL_TIMEOUT_SECONDS", 15))
        return Notifier(cfg, transport=transport)
    return Notifier(cfg)
