"""Supervisor for OpenVPN tunnel processes launched by a privileged helper."""

__version__ = "0.1.0"
