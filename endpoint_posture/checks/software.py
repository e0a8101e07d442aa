"""
    Checks about installed and running security software:
    application allow-listing, endpoint protection, backup agent.
"""
from __future__ import annotations

from endpoint_posture.checks.base import Provider, join_names, unavailable_verdict
from endpoint_posture.collectors.windows import service_or_process_running
from endpoint_posture.core.models import ProviderResult, Verdict
from endpoint_posture.core.settings import Settings


def check_app_whitelisting(provider: Provider, settings: Settings) -> Verdict:
    """Compliant iff at least one configured allow-listing product is running."""
    products = settings.whitelisting_products
    if not products:
        return Verdict.error("No application whitelisting products are configured.")

    running: list[str] = []
    failed: list[ProviderResult] = []
    for product in products:
        r = service_or_process_running(provider, product)
        if r.is_running:
            running.append(product)
        elif r.is_unavailable:
            failed.append(r)

    if running:
        detail = f"Application whitelisting is active: {running[0]} is running."
        if len(running) > 1:
            detail += f" Also running: {join_names(running[1:])}."
        return Verdict.compliant(detail, running=running)
    if failed:
        return unavailable_verdict("application whitelisting status", *failed, checked=list(products))
    return Verdict.non_compliant(
        f"No application whitelisting product is running (checked: {join_names(products)}).",
        checked=list(products),
    )


def check_protection_software(provider: Provider, settings: Settings) -> Verdict:
    """
    Compliant on the first configured product found as a running process, an
    installed program, or a Security Center antivirus registration.
    """
    products = settings.protection_products
    if not products:
        return Verdict.error("No protection software products are configured.")

    av = provider.antivirus_products()
    registered = [str(n) for n in av.value] if av.is_present and av.value else []
    failed: list[ProviderResult] = []

    for product in products:
        needle = product.lower()
        proc = provider.process_running(product)
        if proc.is_running:
            return Verdict.compliant(f"Protection software running: {proc.value or product}.",
                                     product=product, source="process")
        installed = provider.installed_program(product)
        if installed.is_present:
            return Verdict.compliant(f"Protection software installed: {installed.value or product}.",
                                     product=product, source="installed_programs")
        for name in registered:
            if needle in name.lower():
                return Verdict.compliant(f"Protection software registered with Security Center: {name}.",
                                         product=product, source="security_center")
        failed.extend(r for r in (proc, installed) if r.is_unavailable)

    if failed:
        return unavailable_verdict("protection software status", *failed, checked=list(products))
    return Verdict.non_compliant(
        f"No protection software found (checked: {join_names(products)}).",
        checked=list(products),
        security_center=registered,
    )


def check_daily_backup(provider: Provider, settings: Settings) -> Verdict:
    """
    Compliant iff a configured backup agent is installed and running.

    "Installed but not running" is always a finding. "Not installed" follows
    settings.backup_not_installed_policy.
    """
    agents = settings.backup_agents
    if not agents:
        return Verdict.error("No backup agents are configured.")

    stopped: list[str] = []
    failed: list[ProviderResult] = []

    for agent in agents:
        if agent.paths:
            lookups = [provider.path_exists(p) for p in agent.paths]
        else:
            lookups = [provider.installed_program(agent.name)]
        if not any(r.is_present for r in lookups):
            failed.extend(r for r in lookups if r.is_unavailable)
            continue

        states = [provider.service_status(s) for s in agent.services]
        states += [provider.process_running(p) for p in agent.processes]
        if any(r.is_running for r in states):
            return Verdict.compliant(f"Backup agent {agent.name} is installed and running.", agent=agent.name)
        unknown = [r for r in states if r.is_unavailable]
        if unknown:
            return unavailable_verdict(f"whether {agent.name} is running", *unknown, agent=agent.name)
        stopped.append(agent.name)

    if stopped:
        return Verdict.non_compliant(
            f"Backup agent installed but not running: {join_names(stopped)}.",
            installed=stopped,
        )
    if failed:
        return unavailable_verdict("backup agent installation", *failed)
    names = join_names(a.name for a in agents)
    if settings.backup_not_installed_policy == "assume_not_required":
        return Verdict.compliant(
            f"No backup agent installed ({names}); backup is assumed not required by policy.",
            policy=settings.backup_not_installed_policy,
        )
    return Verdict.non_compliant(
        f"No backup agent installed (expected one of: {names}).",
        policy=settings.backup_not_installed_policy,
    )
