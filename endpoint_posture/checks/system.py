"""
    Checks about operating system and Office configuration:
    patch recency, Office macro security, unwanted services.
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Callable

from endpoint_posture.checks.base import Provider, join_names, unavailable_verdict
from endpoint_posture.core.models import ProviderResult, Verdict
from endpoint_posture.core.settings import Settings

# Formats produced by the Windows Update registry value and by Get-HotFix
# on en-US and ISO locales.
UPDATE_TIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y",
    "%Y-%m-%d",
)

# VBAWarnings: 1 enable all, 2 disable with notification,
# 3 disable except digitally signed, 4 disable without notification
VBA_DISABLED_WITH_NOTIFICATION = 2
VBA_LEVELS = {
    1: "all macros enabled",
    2: "disabled with notification",
    3: "disabled except digitally signed",
    4: "disabled without notification",
}
OFFICE_CLICK_TO_RUN_KEY = r"HKLM\SOFTWARE\Microsoft\Office\ClickToRun\Configuration"


def parse_update_timestamp(raw: str) -> datetime | None:
    """Parse a last-update timestamp; returns None if no known encoding matches."""
    s = (raw or "").strip()
    if not s:
        return None
    for fmt in UPDATE_TIME_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def check_windows_updates(
    provider: Provider,
    settings: Settings,
    now: Callable[[], datetime] = _utc_now,
) -> Verdict:
    """
    Compliant iff the last successful update is no older than patch_max_age_days.

    Ages are computed in naive UTC. LastSuccessTime is stored in UTC; hotfix
    InstalledOn dates are local time and are converted first.
    """
    result = provider.last_update_success()
    if result.is_unavailable:
        return unavailable_verdict("the last Windows Update date", result)
    if not result.is_present:
        return Verdict.non_compliant("No record of a successful Windows Update was found.")

    info = result.value if isinstance(result.value, dict) else {"raw": str(result.value)}
    raw = str(info.get("raw", ""))
    when = parse_update_timestamp(raw)
    if when is None:
        return Verdict.error(f"Could not parse the last Windows Update date: {raw!r}", raw=raw)
    if info.get("source") == "hotfix":
        when = when.astimezone(timezone.utc).replace(tzinfo=None)

    age_days = max((now() - when).days, 0)
    limit = settings.patch_max_age_days
    evidence = {"last_success": when.isoformat(), "age_days": age_days,
                "max_age_days": limit, "source": info.get("source")}
    if age_days <= limit:
        return Verdict.compliant(
            f"Windows was last updated {age_days} day(s) ago ({when:%Y-%m-%d}); limit is {limit} days.",
            **evidence,
        )
    return Verdict.non_compliant(
        f"Windows was last updated {age_days} days ago ({when:%Y-%m-%d}); limit is {limit} days.",
        **evidence,
    )


def _installed_office_version(provider: Provider, settings: Settings) -> ProviderResult:
    failed: list[ProviderResult] = []
    for version in settings.office_versions:
        r = provider.registry_key_exists(rf"HKLM\SOFTWARE\Microsoft\Office\{version}\Common\InstallRoot")
        if r.is_present:
            return ProviderResult.present(version)
        if r.is_unavailable:
            failed.append(r)
    # Click-to-Run carries no version number; it maps to office_versions[0].
    if failed:
        return ProviderResult.unavailable("; ".join(r.error or "" for r in failed))
    c2r = provider.registry_key_exists(OFFICE_CLICK_TO_RUN_KEY)
    if c2r.is_unavailable:
        return c2r
    if c2r.is_present and settings.office_versions:
        return ProviderResult.present(settings.office_versions[0])
    return ProviderResult.absent()


def check_office_macros(provider: Provider, settings: Settings) -> Verdict:
    """
    Compliant iff every configured Office application has VBAWarnings set to
    "disabled with notification". Group Policy values take precedence over
    the user's own setting.

    Office not installed at all is Compliant: there is no macro surface.
    """
    office = _installed_office_version(provider, settings)
    if office.is_unavailable:
        return unavailable_verdict("whether Microsoft Office is installed", office)
    if not office.is_present:
        return Verdict.compliant("Microsoft Office is not installed; no macro surface to secure.")

    version = office.value
    bad: list[str] = []
    levels: dict[str, int | None] = {}
    for app in settings.office_apps:
        policy = provider.registry_value(
            rf"HKCU\Software\Policies\Microsoft\Office\{version}\{app}\Security", "VBAWarnings")
        if policy.is_unavailable:
            return unavailable_verdict(f"the {app} macro policy", policy, office_version=version)
        r = policy if policy.is_present else provider.registry_value(
            rf"HKCU\Software\Microsoft\Office\{version}\{app}\Security", "VBAWarnings")
        if r.is_unavailable:
            return unavailable_verdict(f"the {app} macro setting", r, office_version=version)
        if not r.is_present:
            levels[app] = None
            bad.append(f"{app} (not configured)")
            continue
        try:
            level = int(r.value)
        except (TypeError, ValueError):
            return Verdict.error(f"Unexpected {app} VBAWarnings value: {r.value!r}")
        levels[app] = level
        if level != VBA_DISABLED_WITH_NOTIFICATION:
            bad.append(f"{app} ({VBA_LEVELS.get(level, f'level {level}')})")

    if bad:
        return Verdict.non_compliant(
            f"Office {version} macro security is not 'disabled with notification' for: {join_names(bad)}.",
            office_version=version, levels=levels,
        )
    return Verdict.compliant(
        f"Office {version} macros are disabled with notification for {join_names(settings.office_apps)}.",
        office_version=version, levels=levels,
    )


def check_unnecessary_services(provider: Provider, settings: Settings) -> Verdict:
    """Compliant iff no deny-listed service is running; every running match is listed."""
    running: list[str] = []
    failed: list[ProviderResult] = []
    for name in settings.denied_services:
        r = provider.service_status(name)
        if r.is_running:
            running.append(name)
        elif r.is_unavailable:
            failed.append(r)

    if running:
        return Verdict.non_compliant(
            f"Unnecessary services running: {join_names(running)}.",
            running=running,
        )
    if failed:
        return unavailable_verdict("the state of unnecessary services", *failed)
    return Verdict.compliant(
        f"None of the unnecessary services are running ({len(settings.denied_services)} checked).",
        checked=list(settings.denied_services),
    )
