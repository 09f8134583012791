"""Access to the remote host."""
from wpzip.systems.ssh import SshSystem, ssh_system

__all__ = ["SshSystem", "ssh_system"]
