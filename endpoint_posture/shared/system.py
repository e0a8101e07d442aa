"""
    Host context recorded alongside the check results.
"""
import getpass
import platform
import socket


def get_system_info():
    """Retrieve basic system information."""
    try:
        user = getpass.getuser()
    except Exception:
        user = "unknown"
    system_info = {
        "hostname": socket.gethostname(),
        "user": user,
        "os": platform.system(),
        "os_version": platform.version(),
        "os_release": platform.release(),
        "machine": platform.machine(),
    }
    return system_info


def get_host_context(provider):
    """
        System info plus domain/Azure AD join state and applied computer GPOs.
        Provider failures are recorded as None rather than raised.
    """
    host = get_system_info()

    join = provider.join_status()
    if join.is_present:
        status = join.value or {}
        host["domain_joined"] = status.get("DomainJoined", "").upper() == "YES"
        host["azure_ad_joined"] = status.get("AzureAdJoined", "").upper() == "YES"
        host["domain_name"] = status.get("DomainName") or None
    else:
        host["domain_joined"] = None
        host["azure_ad_joined"] = None
        host["domain_name"] = None

    policy = provider.policy_report()
    if policy.is_present:
        host["applied_gpos"] = (policy.value or {}).get("applied_gpos", [])
    else:
        host["applied_gpos"] = None
    return host
