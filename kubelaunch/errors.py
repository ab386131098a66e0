"""Exception types shared across kubelaunch."""
from typing import Optional


class KubelaunchError(Exception):
    """Base class for kubelaunch errors."""


class FatalStepError(KubelaunchError):
    """A bring-up step failed and the run must stop."""

    def __init__(self, step: str, cause: Optional[BaseException] = None, message: Optional[str] = None):
        self.step = step
        self.cause = cause
        detail = message or (str(cause) if cause is not None else "failed")
        super().__init__(f"{step}: {detail}")


class ProfileLoadError(KubelaunchError):
    """The persisted profile exists but could not be decoded."""


class CommandError(KubelaunchError):
    """A command on the provisioned host exited nonzero or the channel failed."""

    def __init__(self, command: str, returncode: int, output: str = ""):
        self.command = command
        self.returncode = returncode
        self.output = output
        msg = f"Command '{command}' failed with exit status {returncode}"
        if output:
            msg += f": {output.strip()}"
        super().__init__(msg)


class UnsupportedDriverError(KubelaunchError):
    """No provisioner is registered for the requested driver."""


class UnsupportedBootstrapperError(KubelaunchError):
    """No bootstrapper is registered for the requested name."""
