"""NFS master and compute node provisioning."""

from .compute import render_client_script, render_fstab_entries, setup_compute_node
from .config import ClusterConfig, ConfigError, load_cluster_config
from .master import export_client_spec, render_exports, setup_master, write_exports
from .orchestrator import NodeResult, format_summary, provision_compute_nodes, provision_node
from .ssh import SshAgent, bootstrap_node, ensure_key_pair

__all__ = [
    "ClusterConfig",
    "ConfigError",
    "NodeResult",
    "SshAgent",
    "bootstrap_node",
    "ensure_key_pair",
    "export_client_spec",
    "format_summary",
    "load_cluster_config",
    "provision_compute_nodes",
    "provision_node",
    "render_client_script",
    "render_exports",
    "render_fstab_entries",
    "setup_compute_node",
    "setup_master",
    "write_exports",
]
