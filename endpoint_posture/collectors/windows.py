"""
    Windows provider adapters.

    Each public method answers one question about local OS state and returns a
    ProviderResult. Nothing here raises: a missing resource is ABSENT, and any
    failure to ask (access denied, timeout, tool or module missing) is
    UNAVAILABLE with the cause attached.
"""
from __future__ import annotations
import csv
import io
import logging
import os
from typing import Any, Callable

import psutil

from endpoint_posture.core.errors import ProviderUnavailable
from endpoint_posture.core.models import ProviderResult
from endpoint_posture.helpers.shell import DEFAULT_TIMEOUT_S, call_with_timeout, get_evidence, run_cmd, run_powershell

logger = logging.getLogger(__name__)

UNINSTALL_KEYS = (
    r"HKLM\SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall",
    r"HKLM\SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall",
    r"HKCU\Software\Microsoft\Windows\CurrentVersion\Uninstall",
)
WU_LAST_SUCCESS_KEY = r"HKLM\SOFTWARE\Microsoft\Windows\CurrentVersion\WindowsUpdate\Auto Update\Results\Install"
HOTFIX_QUERY = (
    "Get-HotFix | Where-Object { $_.InstalledOn } | Sort-Object InstalledOn -Descending | "
    "Select-Object -First 1 -ExpandProperty InstalledOn | ForEach-Object { $_.ToString('yyyy-MM-dd HH:mm:ss') }"
)

# Well-known RID of the built-in Administrator account
BUILTIN_ADMIN_RID = "500"

_HIVE_NAMES = {
    "HKLM": "HKEY_LOCAL_MACHINE",
    "HKEY_LOCAL_MACHINE": "HKEY_LOCAL_MACHINE",
    "HKCU": "HKEY_CURRENT_USER",
    "HKEY_CURRENT_USER": "HKEY_CURRENT_USER",
    "HKU": "HKEY_USERS",
    "HKEY_USERS": "HKEY_USERS",
}


def split_registry_path(path: str) -> tuple[str, str]:
    """'HKLM\\SOFTWARE\\X' -> ('HKEY_LOCAL_MACHINE', 'SOFTWARE\\X')"""
    hive, _, sub_key = path.replace("/", "\\").partition("\\")
    try:
        return _HIVE_NAMES[hive.upper()], sub_key
    except KeyError:
        raise ProviderUnavailable(f"Unsupported registry hive in {path!r}")


def _normalise_image(name: str) -> str:
    n = name.strip().lower()
    return n[:-4] if n.endswith(".exe") else n


def parse_key_value_lines(text: str) -> dict[str, str]:
    """Parse 'Key : Value' lines (dsregcmd style) into a dict."""
    parsed: dict[str, str] = {}
    for line in text.splitlines():
        s = line.strip()
        if ":" not in s or s.startswith("+") or s.startswith("|"):
            continue
        key, val = s.split(":", 1)
        key = key.strip()
        if key:
            parsed[key] = val.strip()
    return parsed


def parse_applied_gpos(text: str) -> list[str]:
    """Extract the 'Applied Group Policy Objects' list from `gpresult /r` output."""
    gpos: list[str] = []
    in_block = False
    for line in text.splitlines():
        s = line.strip()
        if s.startswith("Applied Group Policy Objects"):
            in_block = True
            continue
        if not in_block:
            continue
        if set(s) <= {"-"} and s:
            continue
        if not s:
            if gpos:
                break
            continue
        if s.endswith(":") or s.startswith("The following GPOs"):
            break
        gpos.append(s)
    return gpos


class WindowsProvider:
    """Adapter over the Windows service manager, registry, process table, WMI and CLI tools."""

    def __init__(self, timeout_s: float = DEFAULT_TIMEOUT_S) -> None:
        self.timeout_s = timeout_s

    def _guard(self, label: str, fn: Callable[[], ProviderResult]) -> ProviderResult:
        try:
            result = call_with_timeout(fn, self.timeout_s, label)
        except ProviderUnavailable as e:
            result = ProviderResult.unavailable(str(e))
        except PermissionError as e:
            result = ProviderResult.unavailable(f"Access denied: {e}")
        except psutil.AccessDenied as e:
            result = ProviderResult.unavailable(f"Access denied: {e}")
        except Exception as e:
            result = ProviderResult.unavailable(f"{type(e).__name__}: {e}")
        if result.is_unavailable:
            logger.warning("Provider %s unavailable: %s", label, result.error)
        else:
            logger.debug("Provider %s -> %s", label, result.state)
        return result

    # ---- Service manager ----
    def service_status(self, name: str) -> ProviderResult:
        def _query() -> ProviderResult:
            if not hasattr(psutil, "win_service_get"):
                raise ProviderUnavailable("Windows service manager is not available on this platform")
            try:
                status = psutil.win_service_get(name).status()
            except psutil.NoSuchProcess:
                return ProviderResult.absent()
            if status == "running":
                return ProviderResult.running(status)
            return ProviderResult.present(status)

        return self._guard(f"service:{name}", _query)

    # ---- Process table ----
    def process_running(self, name: str) -> ProviderResult:
        wanted = _normalise_image(name)

        def _query() -> ProviderResult:
            for proc in psutil.process_iter(["name"]):
                proc_name = proc.info.get("name")
                if proc_name and _normalise_image(proc_name) == wanted:
                    return ProviderResult.running(proc_name)
            return ProviderResult.absent()

        return self._guard(f"process:{name}", _query)

    # ---- File system ----
    def path_exists(self, path: str) -> ProviderResult:
        expanded = os.path.expandvars(path)

        def _query() -> ProviderResult:
            if os.path.exists(expanded):
                return ProviderResult.present(expanded)
            return ProviderResult.absent()

        return self._guard(f"path:{path}", _query)

    # ---- Registry ----
    def registry_value(self, path: str, value_name: str) -> ProviderResult:
        def _query() -> ProviderResult:
            import winreg

            hive_name, sub_key = split_registry_path(path)
            try:
                with winreg.OpenKey(getattr(winreg, hive_name), sub_key, 0,
                                    winreg.KEY_READ | winreg.KEY_WOW64_64KEY) as key:
                    value, _ = winreg.QueryValueEx(key, value_name)
            except FileNotFoundError:
                return ProviderResult.absent()
            return ProviderResult.present(value)

        return self._guard(f"registry:{path}\\{value_name}", _query)

    def registry_key_exists(self, path: str) -> ProviderResult:
        def _query() -> ProviderResult:
            import winreg

            hive_name, sub_key = split_registry_path(path)
            try:
                with winreg.OpenKey(getattr(winreg, hive_name), sub_key, 0,
                                    winreg.KEY_READ | winreg.KEY_WOW64_64KEY):
                    return ProviderResult.present(path)
            except FileNotFoundError:
                return ProviderResult.absent()

        return self._guard(f"registry:{path}", _query)

    def installed_program(self, name: str) -> ProviderResult:
        """Case-insensitive substring match on DisplayName under the Uninstall keys."""
        needle = name.strip().lower()

        def _query() -> ProviderResult:
            import winreg

            readable = 0
            for uninstall in UNINSTALL_KEYS:
                hive_name, sub_key = split_registry_path(uninstall)
                try:
                    root = winreg.OpenKey(getattr(winreg, hive_name), sub_key, 0,
                                          winreg.KEY_READ | winreg.KEY_WOW64_64KEY)
                except FileNotFoundError:
                    continue
                readable += 1
                with root:
                    count = winreg.QueryInfoKey(root)[0]
                    for i in range(count):
                        try:
                            with winreg.OpenKey(root, winreg.EnumKey(root, i)) as entry:
                                display, _ = winreg.QueryValueEx(entry, "DisplayName")
                        except OSError:
                            # entry without DisplayName, or removed mid-scan
                            continue
                        if needle in str(display).lower():
                            return ProviderResult.present(str(display))
            if not readable:
                raise ProviderUnavailable("No Uninstall registry key could be opened")
            return ProviderResult.absent()

        return self._guard(f"installed:{name}", _query)

    # ---- Accounts / identity ----
    def builtin_admin_name(self) -> ProviderResult:
        """Current name of the local account whose SID ends in -500."""
        def _query() -> ProviderResult:
            import pythoncom
            import wmi

            pythoncom.CoInitialize()
            try:
                c = wmi.WMI()
                for user in c.Win32_UserAccount(LocalAccount=True):
                    if str(user.SID).rsplit("-", 1)[-1] == BUILTIN_ADMIN_RID:
                        return ProviderResult.present({"name": user.Name, "sid": user.SID,
                                                       "disabled": bool(user.Disabled)})
            finally:
                pythoncom.CoUninitialize()
            return ProviderResult.absent()

        return self._guard("wmi:Win32_UserAccount", _query)

    def current_group_sids(self) -> ProviderResult:
        """SIDs in the invoking identity's token, from `whoami /groups`."""
        def _query() -> ProviderResult:
            cmd = ["whoami", "/groups", "/fo", "csv", "/nh"]
            rc, stdout, stderr = run_cmd(cmd, self.timeout_s)
            if rc != 0:
                raise ProviderUnavailable(stderr or stdout or f"whoami exited with {rc}")
            sids = []
            for row in csv.reader(io.StringIO(stdout)):
                # Group Name, Type, SID, Attributes
                if len(row) >= 3 and row[2].startswith("S-"):
                    sids.append(row[2].strip())
            return ProviderResult.present(sids)

        return self._guard("whoami:groups", _query)

    # ---- Windows Update ----
    def last_update_success(self) -> ProviderResult:
        """
        Raw timestamp of the last successful update install.

        Prefers the Windows Update agent's LastSuccessTime registry value and
        falls back to the newest hotfix InstalledOn date. The value is returned
        unparsed; interpreting it is the caller's job.
        """
        reg = self.registry_value(WU_LAST_SUCCESS_KEY, "LastSuccessTime")
        if reg.is_present and reg.value:
            return ProviderResult.present({"source": "registry", "raw": str(reg.value)})

        def _query() -> ProviderResult:
            out = run_powershell(HOTFIX_QUERY, self.timeout_s)
            if not out:
                return ProviderResult.absent()
            return ProviderResult.present({"source": "hotfix", "raw": out.splitlines()[0].strip()})

        return self._guard("powershell:Get-HotFix", _query)

    # ---- Security Center ----
    def antivirus_products(self) -> ProviderResult:
        def _query() -> ProviderResult:
            import pythoncom
            import wmi

            pythoncom.CoInitialize()
            try:
                c = wmi.WMI(namespace="root\\SecurityCenter2")
                names = [av.displayName for av in c.AntiVirusProduct()]
            finally:
                pythoncom.CoUninitialize()
            return ProviderResult.present(names) if names else ProviderResult.absent()

        return self._guard("wmi:AntiVirusProduct", _query)

    # ---- Policy report / join status ----
    def policy_report(self) -> ProviderResult:
        def _query() -> ProviderResult:
            cmd = ["gpresult", "/scope", "computer", "/r"]
            rc, stdout, stderr = run_cmd(cmd, max(self.timeout_s, 60.0))
            if rc != 0:
                raise ProviderUnavailable(stderr or stdout or f"gpresult exited with {rc}")
            return ProviderResult.present({
                "applied_gpos": parse_applied_gpos(stdout),
                "evidence": get_evidence(" ".join(cmd), rc, stdout[:2000], stderr),
            })

        return self._guard("gpresult", _query)

    def join_status(self) -> ProviderResult:
        def _query() -> ProviderResult:
            cmd = ["dsregcmd", "/status"]
            rc, stdout, stderr = run_cmd(cmd, self.timeout_s)
            if rc != 0:
                raise ProviderUnavailable(stderr or stdout or f"dsregcmd exited with {rc}")
            return ProviderResult.present(parse_key_value_lines(stdout))

        return self._guard("dsregcmd", _query)


def service_or_process_running(provider: Any, name: str) -> ProviderResult:
    """
    Resolve a product identifier that may be either a service name or a
    process image name. RUNNING wins; otherwise any failed lookup makes the
    answer UNAVAILABLE, since a service hosted in svchost never shows up in
    the process table under its own name.
    """
    svc = provider.service_status(name)
    if svc.is_running:
        return svc
    proc = provider.process_running(name)
    if proc.is_running:
        return proc
    failed = [f"{kind}: {r.error}" for kind, r in (("service", svc), ("process", proc)) if r.is_unavailable]
    if failed:
        return ProviderResult.unavailable("; ".join(failed))
    if svc.is_present:
        return svc
    return ProviderResult.absent()
