from __future__ import annotations
import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Literal

from endpoint_posture.core.errors import ConfigError

BackupPolicy = Literal["assume_not_required", "require"]
ReportFormat = Literal["html", "json"]

DEFAULT_OUTPUT_DIR = Path.home() / "Documents" / "SecurityReviews"

# camelCase names accepted in config files -> Settings field names
TOGGLE_ALIASES = {
    "checkAppWhitelisting": "check_app_whitelisting",
    "checkAdminAccount": "check_admin_account",
    "checkWindowsUpdates": "check_windows_updates",
    "checkOfficeMacros": "check_office_macros",
    "checkProtectionSoftware": "check_protection_software",
    "checkUnnecessaryServices": "check_unnecessary_services",
    "checkMFA": "check_mfa",
    "checkDailyBackup": "check_daily_backup",
}


@dataclass(frozen=True)
class BackupAgent:
    name: str
    paths: tuple[str, ...] = ()
    processes: tuple[str, ...] = ()
    services: tuple[str, ...] = ()


@dataclass(frozen=True)
class Settings:
    # Toggles
    check_app_whitelisting: bool = True
    check_admin_account: bool = True
    check_windows_updates: bool = True
    check_office_macros: bool = True
    check_protection_software: bool = True
    check_unnecessary_services: bool = True
    check_mfa: bool = True
    check_daily_backup: bool = True

    # Organization lists
    whitelisting_products: tuple[str, ...] = ("AppIDSvc", "ThreatLockerService", "AirlockClient")
    protection_products: tuple[str, ...] = (
        "MsMpEng", "Windows Defender", "CrowdStrike", "CSFalconService",
        "SentinelAgent", "SentinelOne", "Sophos", "Bitdefender",
    )
    denied_services: tuple[str, ...] = (
        "XblAuthManager", "XblGameSave", "XboxNetApiSvc", "RemoteRegistry", "TlntSvr", "SNMP",
    )
    mfa_registry_markers: tuple[str, ...] = (
        r"HKLM\SOFTWARE\Duo Security\DuoCredProv",
        r"HKLM\SOFTWARE\Okta\Okta Windows Credential Provider",
        r"HKLM\SOFTWARE\Microsoft\Policies\PassportForWork",
        r"HKLM\SOFTWARE\Policies\Microsoft\PassportForWork",
    )
    check_windows_hello: bool = True
    backup_agents: tuple[BackupAgent, ...] = (
        BackupAgent(
            name="Veeam Agent",
            paths=(r"%ProgramFiles%\Veeam\Endpoint Backup\Veeam.EndPoint.Service.exe",),
            services=("VeeamEndpointBackupSvc",),
        ),
        BackupAgent(
            name="Acronis Cyber Protect",
            paths=(r"%ProgramFiles%\Acronis\BackupAndRecovery\mms.exe",),
            services=("MMS",),
        ),
    )
    office_versions: tuple[str, ...] = ("16.0", "15.0")
    office_apps: tuple[str, ...] = ("Word", "Excel", "PowerPoint")

    # Policy parameters
    patch_max_age_days: int = 7
    backup_not_installed_policy: BackupPolicy = "require"
    always_ask: tuple[str, ...] = ()

    # Run / output
    profile: str = "it"
    output_dir: Path = DEFAULT_OUTPUT_DIR
    report_format: ReportFormat = "html"
    provider_timeout_s: float = 15.0
    followup_enabled: bool = False
    review_name: str = "Endpoint Security Review"
    intro_text: str = (
        "The checks below were found non-compliant on this computer. "
        "Please explain why each one applies, or describe the mitigation in place."
    )

    def toggles(self) -> dict[str, bool]:
        return {alias: getattr(self, name) for alias, name in TOGGLE_ALIASES.items()}


PROFILES: dict[str, Settings] = {
    "it": Settings(),
    "end_user": Settings(
        profile="end_user",
        patch_max_age_days=30,
        backup_not_installed_policy="assume_not_required",
        always_ask=("Daily Backup",),
        followup_enabled=True,
        review_name="Endpoint Security Self-Review",
    ),
}


def _coerce(name: str, value: Any, current: Any) -> Any:
    """Validate a raw config value against the type of the field's current value."""
    if name == "backup_agents":
        if not isinstance(value, list):
            raise ConfigError(f"{name} must be a list of objects")
        agents = []
        for raw in value:
            if not isinstance(raw, dict) or not raw.get("name"):
                raise ConfigError(f"{name} entries need at least a 'name'")
            agents.append(BackupAgent(
                name=str(raw["name"]),
                paths=tuple(raw.get("paths", ())),
                processes=tuple(raw.get("processes", ())),
                services=tuple(raw.get("services", ())),
            ))
        return tuple(agents)
    if name == "backup_not_installed_policy" and value not in ("assume_not_required", "require"):
        raise ConfigError(f"{name} must be 'assume_not_required' or 'require', got {value!r}")
    if name == "report_format" and value not in ("html", "json"):
        raise ConfigError(f"{name} must be 'html' or 'json', got {value!r}")
    if isinstance(current, bool):
        if not isinstance(value, bool):
            raise ConfigError(f"{name} must be true/false, got {value!r}")
        return value
    if isinstance(current, tuple):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigError(f"{name} must be a list of strings")
        return tuple(value)
    if isinstance(current, Path):
        return Path(os.path.expandvars(os.path.expanduser(str(value))))
    if isinstance(current, (int, float)):
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise ConfigError(f"{name} must be a non-negative number, got {value!r}")
        return type(current)(value)
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{name} must be a non-empty string")
    return value


def apply_overrides(base: Settings, overrides: dict[str, Any]) -> Settings:
    known = {f.name for f in fields(Settings)}
    changes: dict[str, Any] = {}
    for key, value in overrides.items():
        name = TOGGLE_ALIASES.get(key, key)
        if name not in known or name == "profile":
            raise ConfigError(f"Unknown configuration key: {key}")
        changes[name] = _coerce(name, value, getattr(base, name))
    return replace(base, **changes)


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read config file {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return data


def load_settings(
    profile: str | None = None,
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """
    Build the immutable run configuration.

    Precedence, lowest first: profile defaults, JSON config file,
    POSTURE_* environment variables, explicit overrides (CLI flags).
    """
    name = profile or os.getenv("POSTURE_PROFILE", "it").strip()
    if name not in PROFILES:
        raise ConfigError(f"Unknown profile {name!r}; expected one of {sorted(PROFILES)}")
    settings = PROFILES[name]

    if config_path:
        settings = apply_overrides(settings, _read_config_file(Path(config_path)))

    env: dict[str, Any] = {}
    if os.getenv("POSTURE_OUTPUT_DIR"):
        env["output_dir"] = os.environ["POSTURE_OUTPUT_DIR"]
    if os.getenv("POSTURE_REPORT_FORMAT"):
        env["report_format"] = os.environ["POSTURE_REPORT_FORMAT"].lower().strip()
    if env:
        settings = apply_overrides(settings, env)

    if overrides:
        settings = apply_overrides(settings, {k: v for k, v in overrides.items() if v is not None})
    return settings


def default_log_level() -> str:
    return os.getenv("POSTURE_LOG_LEVEL", "INFO").upper().strip() or "INFO"
