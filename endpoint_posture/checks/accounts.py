from __future__ import annotations

from endpoint_posture.checks.base import Provider, join_names, unavailable_verdict
from endpoint_posture.core.models import Verdict
from endpoint_posture.core.settings import Settings

# BUILTIN\Administrators, identical on every Windows language edition
ADMINISTRATORS_SID = "S-1-5-32-544"
WELL_KNOWN_ADMIN_NAME = "administrator"


def check_admin_account(provider: Provider, settings: Settings) -> Verdict:
    """
    Compliant iff the built-in administrator (RID 500) no longer carries its
    well-known name AND the invoking user is not in BUILTIN\\Administrators.
    Both conditions are reported.
    """
    admin = provider.builtin_admin_name()
    groups = provider.current_group_sids()
    if admin.is_unavailable or groups.is_unavailable:
        return unavailable_verdict("administrator account configuration", admin, groups)

    if admin.is_present:
        info = admin.value or {}
        name = str(info.get("name", ""))
        renamed = name.lower() != WELL_KNOWN_ADMIN_NAME
        if renamed:
            part_a = f"Built-in administrator account is renamed to '{name}'."
        else:
            part_a = "Built-in administrator account still uses the default name 'Administrator'."
        if info.get("disabled"):
            part_a = part_a[:-1] + " (account disabled)."
    else:
        renamed = True
        part_a = "No built-in administrator account (RID 500) was found."

    sids = [s.upper() for s in (groups.value or [])]
    is_admin = ADMINISTRATORS_SID in sids
    if is_admin:
        part_b = "Current user is a member of the local Administrators group."
    else:
        part_b = "Current user is not a member of the local Administrators group."

    detail = f"{part_a} {part_b}"
    if renamed and not is_admin:
        return Verdict.compliant(detail, admin_renamed=renamed, user_is_admin=is_admin)
    return Verdict.non_compliant(detail, admin_renamed=renamed, user_is_admin=is_admin)


def check_mfa(provider: Provider, settings: Settings) -> Verdict:
    """
    Best-effort MFA indicator: looks for local traces of an MFA-capable
    credential provider or Windows Hello for Business provisioning. It does
    not prove MFA is enforced on sign-in.
    """
    found: list[str] = []
    failed = []

    for marker in settings.mfa_registry_markers:
        r = provider.registry_key_exists(marker)
        if r.is_present:
            found.append(marker)
        elif r.is_unavailable:
            failed.append(r)

    if settings.check_windows_hello:
        js = provider.join_status()
        if js.is_present and str((js.value or {}).get("NgcSet", "")).upper() == "YES":
            found.append("Windows Hello for Business (NgcSet)")
        elif js.is_unavailable:
            failed.append(js)

    if found:
        return Verdict.compliant(
            f"MFA indicator found (best-effort): {join_names(found)}.",
            markers=found,
        )
    if failed:
        return unavailable_verdict("MFA indicators", *failed)
    return Verdict.non_compliant(
        "No MFA indicator found on this computer (best-effort check of local credential providers).",
        checked=list(settings.mfa_registry_markers),
    )
