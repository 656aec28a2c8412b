"""Error taxonomy for a flatdock run.

Every fatal condition raises a FlatdockError subclass. The orchestrator tags
the error with the step it happened in; the CLI reports it and exits non-zero.
"""


class FlatdockError(Exception):
    """Base class for all fatal run errors."""

    step: str | None = None


# ── Configuration ─────────────────────────────────────────────────


class ConfigError(FlatdockError):
    """Missing or invalid setting in the config file."""


# ── Cloud resolution and operations ───────────────────────────────


class CloudAPIError(FlatdockError):
    """The cloud API rejected a request or could not be reached."""

    def __init__(self, message, code=None, status_code=None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class LookupFailed(FlatdockError):
    def __init__(self, kind, name, cause):
        super().__init__(f"error looking up {kind} '{name}': {cause}")
        self.kind = kind
        self.name = name
        self.cause = cause


class ResourceNotFound(FlatdockError):
    def __init__(self, kind, name):
        super().__init__(f"{kind} '{name}' doesn't exist")
        self.kind = kind
        self.name = name


class OperationFailed(FlatdockError):
    """An asynchronous cloud action finished without succeeding."""

    def __init__(self, command, cause):
        super().__init__(f"action '{command}' failed: {cause}")
        self.command = command
        self.cause = cause


class RescueEnableFailed(FlatdockError):
    pass


# ── Configuration pipeline ────────────────────────────────────────


class TemplateRenderFailed(FlatdockError):
    pass


class ConfigParseFailed(FlatdockError):
    def __init__(self, report):
        super().__init__(f"config parsing failed:\n{report}")
        self.report = report


class ConfigConvertFailed(FlatdockError):
    def __init__(self, report):
        super().__init__(f"config conversion failed:\n{report}")
        self.report = report


# ── Remote session ────────────────────────────────────────────────


class SSHAuthError(FlatdockError):
    """No usable SSH credential (bad key file, empty agent)."""


class SSHConnectFailed(FlatdockError):
    """Non-retryable failure while establishing the SSH session."""


class ConnectionExhausted(FlatdockError):
    def __init__(self, address, attempts, last_error):
        super().__init__(f"ssh connection to {address} wasn't successful after {attempts} attempts: {last_error}")
        self.address = address
        self.attempts = attempts
        self.last_error = last_error


class UploadFailed(FlatdockError):
    pass


class CommandFailed(FlatdockError):
    def __init__(self, command, exit_status=None, cause=None):
        if cause is not None:
            super().__init__(f"error running command '{command}': {cause}")
        else:
            super().__init__(f"command '{command}' exited with status {exit_status}")
        self.command = command
        self.exit_status = exit_status
