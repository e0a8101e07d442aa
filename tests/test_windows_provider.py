import sys
import types

import psutil
import pytest

from endpoint_posture.collectors import windows
from endpoint_posture.collectors.windows import (
    WindowsProvider,
    parse_applied_gpos,
    parse_key_value_lines,
    service_or_process_running,
    split_registry_path,
)
from endpoint_posture.core.errors import ProviderUnavailable
from endpoint_posture.core.models import ProviderResult

GPRESULT_OUTPUT = """
COMPUTER SETTINGS
------------------
    CN=WS-042,OU=Workstations,DC=corp,DC=example

    Applied Group Policy Objects
    -----------------------------
        Workstation Baseline
        Default Domain Policy

    The following GPOs were not applied because they were filtered out
    -------------------------------------------------------------------
        Local Group Policy
"""

DSREG_OUTPUT = """
+----------------------------------------------------------------------+
| Device State                                                         |
+----------------------------------------------------------------------+

             AzureAdJoined : YES
          EnterpriseJoined : NO
              DomainJoined : YES
                DomainName : CORP

+----------------------------------------------------------------------+
| User State                                                           |
+----------------------------------------------------------------------+

                    NgcSet : YES
"""


class _Key:
    def __init__(self, hive, path):
        self.hive, self.path = hive, path

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def make_fake_winreg(tree, denied=()):
    """tree: {(hive, path): {"values": {...}, "subkeys": [...]}}"""
    mod = types.ModuleType("winreg")
    mod.HKEY_LOCAL_MACHINE = "HKEY_LOCAL_MACHINE"
    mod.HKEY_CURRENT_USER = "HKEY_CURRENT_USER"
    mod.HKEY_USERS = "HKEY_USERS"
    mod.KEY_READ = 1
    mod.KEY_WOW64_64KEY = 2

    def OpenKey(parent, sub_key, reserved=0, access=0):
        if isinstance(parent, _Key):
            hive, path = parent.hive, f"{parent.path}\\{sub_key}"
        else:
            hive, path = parent, sub_key
        if (hive, path) in denied:
            raise PermissionError(5, "Access is denied")
        if (hive, path) not in tree:
            raise FileNotFoundError(2, "The system cannot find the file specified")
        return _Key(hive, path)

    def QueryValueEx(key, name):
        values = tree[(key.hive, key.path)].get("values", {})
        if name not in values:
            raise FileNotFoundError(2, "The system cannot find the file specified")
        return values[name], 1

    def QueryInfoKey(key):
        return (len(tree[(key.hive, key.path)].get("subkeys", [])), 0, 0)

    def EnumKey(key, i):
        return tree[(key.hive, key.path)]["subkeys"][i]

    mod.OpenKey, mod.QueryValueEx, mod.QueryInfoKey, mod.EnumKey = OpenKey, QueryValueEx, QueryInfoKey, EnumKey
    return mod


@pytest.fixture
def provider():
    return WindowsProvider(timeout_s=5)


def test_split_registry_path():
    assert split_registry_path(r"HKLM\SOFTWARE\Duo") == ("HKEY_LOCAL_MACHINE", r"SOFTWARE\Duo")
    assert split_registry_path(r"hkcu\Software\X") == ("HKEY_CURRENT_USER", r"Software\X")
    with pytest.raises(ProviderUnavailable):
        split_registry_path(r"HKXX\Software")


def test_registry_value_present_absent_and_denied(monkeypatch, provider):
    tree = {("HKEY_CURRENT_USER", r"Software\Microsoft\Office\16.0\Word\Security"): {"values": {"VBAWarnings": 2}}}
    denied = {("HKEY_LOCAL_MACHINE", r"SOFTWARE\Locked")}
    monkeypatch.setitem(sys.modules, "winreg", make_fake_winreg(tree, denied))

    assert provider.registry_value(r"HKCU\Software\Microsoft\Office\16.0\Word\Security", "VBAWarnings") == \
        ProviderResult.present(2)
    assert provider.registry_value(r"HKCU\Software\Microsoft\Office\16.0\Word\Security", "Other").state == "ABSENT"
    assert provider.registry_key_exists(r"HKLM\SOFTWARE\Nothing").state == "ABSENT"
    locked = provider.registry_key_exists(r"HKLM\SOFTWARE\Locked")
    assert locked.state == "UNAVAILABLE"
    assert "Access denied" in locked.error


def test_installed_program_scans_uninstall_display_names(monkeypatch, provider):
    base = r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall"
    tree = {
        ("HKEY_LOCAL_MACHINE", base): {"subkeys": ["{A}", "{B}"]},
        ("HKEY_LOCAL_MACHINE", base + r"\{A}"): {"values": {}},
        ("HKEY_LOCAL_MACHINE", base + r"\{B}"): {"values": {"DisplayName": "CrowdStrike Windows Sensor"}},
    }
    monkeypatch.setitem(sys.modules, "winreg", make_fake_winreg(tree))
    assert provider.installed_program("crowdstrike") == ProviderResult.present("CrowdStrike Windows Sensor")
    assert provider.installed_program("Sophos").state == "ABSENT"


def test_installed_program_unavailable_when_no_hive_readable(monkeypatch, provider):
    monkeypatch.setitem(sys.modules, "winreg", make_fake_winreg({}))
    assert provider.installed_program("Sophos").state == "UNAVAILABLE"


def test_service_status_maps_psutil_states(monkeypatch, provider):
    class _Svc:
        def __init__(self, status):
            self._status = status

        def status(self):
            return self._status

    services = {"XblAuthManager": "running", "Spooler": "stopped"}

    def fake_get(name):
        if name not in services:
            raise psutil.NoSuchProcess(pid=None, name=name, msg="service not found")
        return _Svc(services[name])

    monkeypatch.setattr(psutil, "win_service_get", fake_get, raising=False)
    assert provider.service_status("XblAuthManager") == ProviderResult.running("running")
    assert provider.service_status("Spooler") == ProviderResult.present("stopped")
    assert provider.service_status("Nope").state == "ABSENT"


def test_service_status_unavailable_off_windows(monkeypatch, provider):
    monkeypatch.delattr(psutil, "win_service_get", raising=False)
    assert provider.service_status("Spooler").state == "UNAVAILABLE"


def test_process_running_matches_image_name_case_insensitively(monkeypatch, provider):
    procs = [types.SimpleNamespace(info={"name": "explorer.exe"}), types.SimpleNamespace(info={"name": "MsMpEng.exe"})]
    monkeypatch.setattr(psutil, "process_iter", lambda attrs=None: iter(procs))
    assert provider.process_running("msmpeng").is_running
    assert provider.process_running("MsMpEng.exe").value == "MsMpEng.exe"
    assert provider.process_running("sentinelagent").state == "ABSENT"


def test_process_listing_denied_is_unavailable(monkeypatch, provider):
    def denied(attrs=None):
        raise psutil.AccessDenied()

    monkeypatch.setattr(psutil, "process_iter", denied)
    assert provider.process_running("MsMpEng").state == "UNAVAILABLE"


def test_path_exists_expands_environment(monkeypatch, tmp_path, provider):
    (tmp_path / "agent.exe").write_text("")
    monkeypatch.setenv("BACKUP_HOME", str(tmp_path))
    assert provider.path_exists("$BACKUP_HOME/agent.exe").is_present
    assert provider.path_exists("$BACKUP_HOME/missing.exe").state == "ABSENT"


def test_current_group_sids_from_whoami(monkeypatch, provider):
    out = '"Everyone","Well-known group","S-1-1-0","Mandatory group"\n' \
          '"BUILTIN\\Administrators","Alias","S-1-5-32-544","Group used for deny only"'
    monkeypatch.setattr(windows, "run_cmd", lambda cmd, timeout_s=None: (0, out, ""))
    assert provider.current_group_sids() == ProviderResult.present(["S-1-1-0", "S-1-5-32-544"])


def test_command_failure_is_unavailable(monkeypatch, provider):
    monkeypatch.setattr(windows, "run_cmd", lambda cmd, timeout_s=None: (1, "", "ERROR: Access denied"))
    result = provider.join_status()
    assert result.state == "UNAVAILABLE"
    assert "Access denied" in result.error


def test_missing_wmi_module_is_unavailable(monkeypatch, provider):
    monkeypatch.setitem(sys.modules, "wmi", None)
    monkeypatch.setitem(sys.modules, "pythoncom", None)
    assert provider.builtin_admin_name().state == "UNAVAILABLE"
    assert provider.antivirus_products().state == "UNAVAILABLE"


def test_builtin_admin_found_by_rid(monkeypatch, provider):
    accounts = [
        types.SimpleNamespace(Name="Guest", SID="S-1-5-21-1-2-3-501", Disabled=True),
        types.SimpleNamespace(Name="localsupport", SID="S-1-5-21-1-2-3-500", Disabled=False),
    ]
    fake_wmi = types.ModuleType("wmi")
    fake_wmi.WMI = lambda **kw: types.SimpleNamespace(Win32_UserAccount=lambda **kw: accounts)
    fake_com = types.ModuleType("pythoncom")
    fake_com.CoInitialize = fake_com.CoUninitialize = lambda: None
    monkeypatch.setitem(sys.modules, "wmi", fake_wmi)
    monkeypatch.setitem(sys.modules, "pythoncom", fake_com)

    result = provider.builtin_admin_name()
    assert result.is_present
    assert result.value == {"name": "localsupport", "sid": "S-1-5-21-1-2-3-500", "disabled": False}


def test_last_update_prefers_registry_then_hotfix(monkeypatch, provider):
    monkeypatch.setattr(provider, "registry_value", lambda path, name: ProviderResult.present("2024-06-01 08:00:00"))
    assert provider.last_update_success().value == {"source": "registry", "raw": "2024-06-01 08:00:00"}

    monkeypatch.setattr(provider, "registry_value", lambda path, name: ProviderResult.absent())
    monkeypatch.setattr(windows, "run_powershell", lambda script, timeout_s=None: "2024-05-20 00:00:00")
    assert provider.last_update_success().value == {"source": "hotfix", "raw": "2024-05-20 00:00:00"}


def test_parse_dsregcmd_status():
    parsed = parse_key_value_lines(DSREG_OUTPUT)
    assert parsed["AzureAdJoined"] == "YES"
    assert parsed["DomainName"] == "CORP"
    assert parsed["NgcSet"] == "YES"


def test_parse_gpresult_applied_gpos():
    assert parse_applied_gpos(GPRESULT_OUTPUT) == ["Workstation Baseline", "Default Domain Policy"]


def test_service_or_process_prefers_running():
    class _P:
        def service_status(self, name):
            return ProviderResult.unavailable("denied")

        def process_running(self, name):
            return ProviderResult.running("x.exe")

    assert service_or_process_running(_P(), "x").is_running


def test_service_or_process_denied_service_is_unavailable_not_absent():
    class _P:
        def service_status(self, name):
            return ProviderResult.unavailable("Access denied: service manager")

        def process_running(self, name):
            return ProviderResult.absent()

    result = service_or_process_running(_P(), "AppIDSvc")
    assert result.is_unavailable
    assert result.error == "service: Access denied: service manager"
