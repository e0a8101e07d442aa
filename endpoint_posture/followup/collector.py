from __future__ import annotations
import logging
from typing import Iterable, Protocol

from endpoint_posture.core.models import ComplianceReport, FollowUpOutcome

logger = logging.getLogger(__name__)


class FormPresenter(Protocol):
    def ask(self, title: str, intro: str, questions: list[str]) -> dict[str, str] | None:
        """
        Show every question at once and block until the user is done.
        Returns question -> answer on submit, or None if the form was cancelled.
        """
        ...


def question_label(name: str, detail: str) -> str:
    return f"{name}: {detail}"


def select_flagged(report: ComplianceReport, always_ask: Iterable[str] = ()) -> list[str]:
    """
    Labels for every entry needing a justification: NON_COMPLIANT entries,
    plus the always-ask names whatever their kind (unless skipped).
    """
    always = set(always_ask)
    labels = []
    for name, verdict in report.entries():
        if verdict.kind == "SKIPPED":
            continue
        if verdict.kind == "NON_COMPLIANT" or name in always:
            labels.append(question_label(name, verdict.detail))
    return labels


def collect_followup(
    report: ComplianceReport,
    presenter: FormPresenter,
    title: str,
    intro: str,
    always_ask: Iterable[str] = (),
) -> FollowUpOutcome:
    questions = select_flagged(report, always_ask)
    if not questions:
        logger.info("Follow-up form not shown: no flagged checks")
        return FollowUpOutcome("NOT_SHOWN")

    logger.info("Showing follow-up form with %d question(s)", len(questions))
    raw = presenter.ask(title, intro, questions)
    if raw is None:
        logger.info("Follow-up form cancelled by user; no answers collected")
        return FollowUpOutcome("CANCELLED")

    # every question gets an entry, even if the user left it blank
    answers = {q: str(raw.get(q, "") or "").strip() for q in questions}
    logger.info("Follow-up form submitted: %d of %d answered",
                sum(1 for a in answers.values() if a), len(answers))
    return FollowUpOutcome("SUBMITTED", answers)
