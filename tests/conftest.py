import pytest

from endpoint_posture.core.models import ProviderResult
from endpoint_posture.core.settings import BackupAgent, Settings

UNAVAILABLE = ProviderResult.unavailable("Access denied")


class FakeProvider:
    """In-memory provider: every lookup is ABSENT unless configured."""

    def __init__(self, **answers):
        self.services = answers.pop("services", {})
        self.processes = answers.pop("processes", {})
        self.paths = answers.pop("paths", {})
        self.registry_values = answers.pop("registry_values", {})
        self.registry_keys = answers.pop("registry_keys", {})
        self.installed = answers.pop("installed", {})
        self.admin = answers.pop("admin", ProviderResult.present({"name": "localsupport", "sid": "S-1-5-21-1-2-3-500"}))
        self.groups = answers.pop("groups", ProviderResult.present(["S-1-1-0", "S-1-5-32-545"]))
        self.last_update = answers.pop("last_update", ProviderResult.absent())
        self.antivirus = answers.pop("antivirus", ProviderResult.absent())
        self.policy = answers.pop("policy", ProviderResult.present({"applied_gpos": ["Default Domain Policy"]}))
        self.join = answers.pop("join", ProviderResult.present({"DomainJoined": "YES", "AzureAdJoined": "NO"}))
        self.all_unavailable = answers.pop("all_unavailable", False)
        assert not answers, f"unknown fake answers: {answers}"
        self.calls = []

    def _lookup(self, kind, table, key):
        self.calls.append((kind, key))
        if self.all_unavailable:
            return UNAVAILABLE
        return table.get(key, ProviderResult.absent())

    def _single(self, kind, value):
        self.calls.append((kind, None))
        return UNAVAILABLE if self.all_unavailable else value

    def service_status(self, name):
        return self._lookup("service", self.services, name)

    def process_running(self, name):
        return self._lookup("process", self.processes, name)

    def path_exists(self, path):
        return self._lookup("path", self.paths, path)

    def registry_value(self, path, value_name):
        return self._lookup("registry_value", self.registry_values, (path, value_name))

    def registry_key_exists(self, path):
        return self._lookup("registry_key", self.registry_keys, path)

    def installed_program(self, name):
        return self._lookup("installed", self.installed, name)

    def builtin_admin_name(self):
        return self._single("admin", self.admin)

    def current_group_sids(self):
        return self._single("groups", self.groups)

    def last_update_success(self):
        return self._single("last_update", self.last_update)

    def antivirus_products(self):
        return self._single("antivirus", self.antivirus)

    def policy_report(self):
        return self._single("policy", self.policy)

    def join_status(self):
        return self._single("join", self.join)


class ExplodingProvider:
    """Any provider call is a test failure."""

    def __getattr__(self, name):
        def _boom(*args, **kwargs):
            raise RuntimeError(f"provider.{name} must not be called")
        return _boom


class FakePresenter:
    def __init__(self, answers=None, cancel=False):
        self.answers = answers or {}
        self.cancel = cancel
        self.calls = []

    def ask(self, title, intro, questions):
        self.calls.append((title, intro, list(questions)))
        if self.cancel:
            return None
        return {q: self.answers.get(q.split(":", 1)[0], "") for q in questions}


@pytest.fixture
def settings():
    return Settings(
        whitelisting_products=("AppIDSvc", "ThreatLockerService"),
        protection_products=("MsMpEng", "CrowdStrike"),
        denied_services=("XblAuthManager", "RemoteRegistry"),
        mfa_registry_markers=(r"HKLM\SOFTWARE\Duo Security\DuoCredProv",),
        backup_agents=(
            BackupAgent(name="Veeam Agent", paths=(r"C:\Veeam\agent.exe",), services=("VeeamSvc",)),
        ),
        office_versions=("16.0",),
        office_apps=("Word", "Excel"),
    )


@pytest.fixture
def provider():
    return FakeProvider()
