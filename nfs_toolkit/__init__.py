"""Provision a two-role NFS cluster: one master export server and N compute clients."""

__version__ = "0.1.0"
