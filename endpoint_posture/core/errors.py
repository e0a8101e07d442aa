class PostureError(Exception):
    """Base application error"""


class ConfigError(PostureError):
    """Missing or invalid configuration"""


class ProviderUnavailable(PostureError):
    """An OS state query could not be answered (access denied, timeout, tool missing)"""


class CatastrophicSetupError(PostureError):
    """The run cannot produce a trustworthy artifact (output location, form)"""


class ReportFormatError(PostureError):
    """An archived report document could not be parsed"""
