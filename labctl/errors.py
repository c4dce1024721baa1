class LabctlError(Exception):
    """Base class for errors reported by the `labctl` command."""

    exit_code: int = 1


class PrerequisiteError(LabctlError):
    pass


class NotAuthenticatedError(LabctlError):
    pass


class CredentialsError(LabctlError):
    pass


class SubscriptionError(LabctlError):
    pass


class ConfigurationError(LabctlError):
    pass


class EngineError(LabctlError):
    """The provisioning engine exited with a non-zero status."""

    def __init__(self, message: str, returncode: int = 1):
        super().__init__(message)
        self.returncode = returncode
        # Killed by a signal: exit like a shell would.
        if returncode < 0:
            self.exit_code = 128 - returncode
        else:
            self.exit_code = returncode or 1


class ReportError(LabctlError):
    pass
