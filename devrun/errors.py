from __future__ import annotations


class DevRunError(Exception):
    """Base class for every failure that terminates a run."""


class ContextError(DevRunError):
    """The command was invoked outside a service root."""


class ProbeError(DevRunError):
    """A liveness probe failed for a reason other than connection refused."""


class InstallationError(DevRunError):
    """A backend binary could not be installed or its version resolved."""


class SpawnError(DevRunError):
    """A backend process could not be started."""


class DeploymentError(DevRunError):
    """A function could not be deployed to the emulator."""


class RegistrationError(DevRunError):
    """The gateway could not be reset or configured."""
