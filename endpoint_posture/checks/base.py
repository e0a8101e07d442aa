"""
    Shared verdict helpers for the compliance checks.

    Every check is a plain function (provider, settings) -> Verdict. Provider
    results that are UNAVAILABLE must become ERROR verdicts, never findings:
    "could not tell" is not the same as "not compliant".
"""
from __future__ import annotations
from typing import Any, Iterable, Protocol

from endpoint_posture.core.models import ProviderResult, Verdict


class Provider(Protocol):
    def service_status(self, name: str) -> ProviderResult: ...
    def process_running(self, name: str) -> ProviderResult: ...
    def path_exists(self, path: str) -> ProviderResult: ...
    def registry_value(self, path: str, value_name: str) -> ProviderResult: ...
    def registry_key_exists(self, path: str) -> ProviderResult: ...
    def installed_program(self, name: str) -> ProviderResult: ...
    def builtin_admin_name(self) -> ProviderResult: ...
    def current_group_sids(self) -> ProviderResult: ...
    def last_update_success(self) -> ProviderResult: ...
    def antivirus_products(self) -> ProviderResult: ...
    def policy_report(self) -> ProviderResult: ...
    def join_status(self) -> ProviderResult: ...


def unavailable_verdict(what: str, *results: ProviderResult, **evidence: Any) -> Verdict:
    causes = "; ".join(r.error or "unknown failure" for r in results if r.is_unavailable)
    return Verdict.error(f"Could not determine {what}: {causes or 'provider unavailable'}", **evidence)


def join_names(names: Iterable[str]) -> str:
    return ", ".join(names)
