"""Exception hierarchy for provisioning and registration runs."""


class ProvisionError(Exception):
    """Base class for every error raised while reconciling host state."""


class ValidationError(ProvisionError):
    """Bad arguments or environment. Raised before any state is mutated."""


class ProbeError(ProvisionError):
    """The current state of a resource could not be determined."""


class ApplyError(ProvisionError):
    """A command failed or a step did not converge after being applied."""


class NonFatalWarning(ProvisionError):
    """A failure that is reported but does not stop the run."""
