"""Errors raised by opswand operations."""


class OpsWandError(Exception):
    """Base class for failures the CLI reports and exits on."""


class NotFound(OpsWandError):
    """A cluster object does not exist."""


class AlreadyExists(OpsWandError):
    """A cluster object that must be unique already exists."""


class ReadinessTimeout(OpsWandError):
    """A bounded poll ran out of attempts."""


class MigrationValidationError(OpsWandError):
    """Source and target instance names do not describe a valid migration."""


class ResolutionError(OpsWandError):
    """Cluster state needed to fill in the migration config is missing."""


class UserCancelled(OpsWandError):
    """The operator declined to continue. Not a failure."""


class StepError(OpsWandError):
    """An unclassified failure, labeled with the step that raised it."""

    def __init__(self, step: str, cause: BaseException):
        self.step = step
        super().__init__(f"{step}: {cause}")
