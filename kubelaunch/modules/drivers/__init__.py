"""Machine drivers.

- multipass: Ubuntu VMs through the multipass CLI
- generic: an existing machine over SSH
- none: the local machine
"""
from kubelaunch.errors import UnsupportedDriverError

from .base import Host, HostProvisioner
from .generic import GenericProvisioner, SSHHost
from .multipass import MultipassHost, MultipassProvisioner
from .none import LocalHost, NoneProvisioner

PROVISIONERS = {
    MultipassProvisioner.driver_name: MultipassProvisioner,
    GenericProvisioner.driver_name: GenericProvisioner,
    NoneProvisioner.driver_name: NoneProvisioner,
}


def get_provisioner(driver: str) -> HostProvisioner:
    """Return the provisioner for ``driver``.

    Raises:
        UnsupportedDriverError: If no provisioner handles the driver
    """
    try:
        return PROVISIONERS[driver]()
    except KeyError:
        raise UnsupportedDriverError(
            f"Unsupported driver {driver!r}: must be one of {', '.join(sorted(PROVISIONERS))}"
        ) from None


__all__ = [
    'Host',
    'HostProvisioner',
    'GenericProvisioner',
    'SSHHost',
    'MultipassHost',
    'MultipassProvisioner',
    'LocalHost',
    'NoneProvisioner',
    'PROVISIONERS',
    'get_provisioner',
]
