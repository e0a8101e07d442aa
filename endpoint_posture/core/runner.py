from __future__ import annotations
import logging
from datetime import datetime
from functools import partial
from typing import Any, Callable, Literal

from endpoint_posture.checks.accounts import check_admin_account, check_mfa
from endpoint_posture.checks.base import Provider
from endpoint_posture.checks.software import check_app_whitelisting, check_daily_backup, check_protection_software
from endpoint_posture.checks.system import check_office_macros, check_unnecessary_services, check_windows_updates
from endpoint_posture.core.models import CheckDefinition, ComplianceReport, Verdict
from endpoint_posture.core.settings import Settings

logger = logging.getLogger(__name__)

__version__ = "1.0.0"

RunState = Literal["IDLE", "RUNNING", "DONE"]
CheckState = Literal["PENDING", "EXECUTING", "COMPLETED"]

# (report name, Settings toggle, check function) in registration order
CHECK_CATALOGUE: tuple[tuple[str, str, Callable[[Provider, Settings], Verdict]], ...] = (
    ("Application Whitelisting", "check_app_whitelisting", check_app_whitelisting),
    ("Secure Admin Access", "check_admin_account", check_admin_account),
    ("Windows Updates", "check_windows_updates", check_windows_updates),
    ("Office Macros", "check_office_macros", check_office_macros),
    ("Protection Software", "check_protection_software", check_protection_software),
    ("Unnecessary Services", "check_unnecessary_services", check_unnecessary_services),
    ("MFA", "check_mfa", check_mfa),
    ("Daily Backup", "check_daily_backup", check_daily_backup),
)

CHECK_NAMES: tuple[str, ...] = tuple(name for name, _, _ in CHECK_CATALOGUE)


def build_definitions(settings: Settings, provider: Provider) -> list[CheckDefinition]:
    """Bind every catalogue check to the provider and settings, honouring the toggles."""
    return [
        CheckDefinition(name=name, enabled=bool(getattr(settings, toggle)), evaluate=partial(fn, provider, settings))
        for name, toggle, fn in CHECK_CATALOGUE
    ]


class CheckRunner:
    """
    Runs a fixed set of checks one after another and aggregates the verdicts.

    A fault in one check becomes an ERROR verdict for that check only; the
    runner always continues to the end. The report is ordered by
    registration order, independent of execution order.
    """

    def __init__(
        self,
        definitions: list[CheckDefinition],
        host_info: Callable[[], dict[str, Any]] | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        names = [d.name for d in definitions]
        if len(set(names)) != len(names):
            raise ValueError("Check names must be unique")
        self.definitions = list(definitions)
        self.host_info = host_info
        self.meta = dict(meta or {})
        self.state: RunState = "IDLE"
        self.check_states: dict[str, CheckState] = {n: "PENDING" for n in names}

    def _execute(self, definition: CheckDefinition) -> Verdict:
        self.check_states[definition.name] = "EXECUTING"
        logger.info("Running check: %s", definition.name)
        verdict = definition.run()
        self.check_states[definition.name] = "COMPLETED"
        if verdict.kind == "ERROR":
            logger.warning("%s: %s - %s", definition.name, verdict.kind, verdict.detail)
        else:
            logger.info("%s: %s - %s", definition.name, verdict.kind, verdict.detail)
        return verdict

    def run(self) -> ComplianceReport:
        self.state = "RUNNING"
        self.check_states = {d.name: "PENDING" for d in self.definitions}
        started = datetime.now()

        results: dict[str, Verdict] = {}
        for definition in self.definitions:
            results[definition.name] = self._execute(definition)

        host: dict[str, Any] = {}
        if self.host_info is not None:
            try:
                host = self.host_info()
            except Exception:
                logger.exception("Host information could not be collected")
                host = {"error": "host information unavailable"}

        meta = {
            "tool_version": __version__,
            "started": started.isoformat(timespec="seconds"),
            "finished": datetime.now().isoformat(timespec="seconds"),
            **self.meta,
        }
        report = ComplianceReport(
            [(d.name, results[d.name]) for d in self.definitions],
            meta=meta,
            host=host,
        )
        self.state = "DONE"
        logger.info("Run complete: %s", report.counts())
        return report
