from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

try:
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError as exc:  # pragma: no cover - Python < 3.11 guard
    raise SystemExit("python 3.11+ is required to load TOML cluster configs") from exc

from ..runner import ProvisionError

DEFAULT_BASE_PATH = Path("/shared")
DEFAULT_MASTER_ADDRESS = "10.0.0.1"
DEFAULT_SUBNET_MASK = 24
DEFAULT_SHARES = ("data", "scripts")
DEFAULT_SHARE_OWNER = "nobody:nogroup"
DEFAULT_SHARE_MODE = "770"
DEFAULT_EXPORT_OPTIONS = ("rw", "sync", "no_root_squash", "no_subtree_check")
DEFAULT_SSH_USER = "root"
DEFAULT_SSH_KEY = Path.home() / ".ssh" / "id_rsa"
DEFAULT_CONNECT_TIMEOUT = 10
DEFAULT_REMOTE_SCRIPT_PATH = "/tmp/nfs_client_setup.sh"

ENV_PREFIX = "NFS_CLUSTER_"


class ConfigError(ProvisionError):
    """Raised when the cluster configuration cannot be loaded."""

    def __init__(self, message: str) -> None:
        super().__init__("configuration", message)


@dataclass(slots=True, frozen=True)
class ClusterConfig:
    """Settings shared by the master and compute procedures for one run."""

    base_path: Path = DEFAULT_BASE_PATH
    master_address: str = DEFAULT_MASTER_ADDRESS
    subnet_mask: int = DEFAULT_SUBNET_MASK
    shares: tuple[str, ...] = DEFAULT_SHARES
    share_owner: str = DEFAULT_SHARE_OWNER
    share_mode: str = DEFAULT_SHARE_MODE
    export_options: tuple[str, ...] = DEFAULT_EXPORT_OPTIONS
    exports_file: Path = Path("/etc/exports")
    fstab_file: Path = Path("/etc/fstab")
    mount_options: str = "defaults"
    server_package: str = "nfs-kernel-server"
    client_package: str = "nfs-common"
    server_service: str = "nfs-kernel-server"
    ssh_user: str = DEFAULT_SSH_USER
    ssh_key: Path = field(default=DEFAULT_SSH_KEY)
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    remote_script_path: str = DEFAULT_REMOTE_SCRIPT_PATH

    def share_paths(self) -> list[Path]:
        return [self.base_path / share for share in self.shares]

    @property
    def public_key(self) -> Path:
        return self.ssh_key.with_name(self.ssh_key.name + ".pub")

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, *, base: "ClusterConfig | None" = None
    ) -> "ClusterConfig":
        """Apply ``NFS_CLUSTER_*`` overrides on top of ``base`` (or the defaults)."""

        env = os.environ if environ is None else environ
        config = base or cls()
        overrides: dict[str, Any] = {}

        base_path = env.get(f"{ENV_PREFIX}BASE_PATH")
        if base_path:
            overrides["base_path"] = Path(base_path)
        master = env.get(f"{ENV_PREFIX}MASTER_ADDRESS")
        if master:
            overrides["master_address"] = master.strip()
        mask = env.get(f"{ENV_PREFIX}SUBNET_MASK")
        if mask:
            overrides["subnet_mask"] = _parse_int(mask, "subnet mask")
        user = env.get(f"{ENV_PREFIX}SSH_USER")
        if user:
            overrides["ssh_user"] = user.strip()
        key = env.get(f"{ENV_PREFIX}SSH_KEY")
        if key:
            overrides["ssh_key"] = Path(key).expanduser()
        timeout = env.get(f"{ENV_PREFIX}CONNECT_TIMEOUT")
        if timeout:
            overrides["connect_timeout"] = _parse_int(timeout, "connect timeout")

        return replace(config, **overrides) if overrides else config


def _parse_int(value: object, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        return int(str(value).strip().lstrip("/"))
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


def _expand_path(value: str, *, base: Path) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base / path).resolve()
    return path


def _string_list(value: object, name: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"{name} must be a list of strings")
    return tuple(item.strip() for item in value if item.strip())


def _table(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def load_cluster_config(
    path: Path, environ: Mapping[str, str] | None = None
) -> ClusterConfig:
    """Load a TOML cluster configuration, then apply environment overrides."""

    if not path.exists():
        raise ConfigError(f"Cluster configuration not found: {path}")

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
    base_dir = path.parent
    overrides: dict[str, Any] = {}

    cluster = _table(data, "cluster")
    if cluster.get("base_path"):
        overrides["base_path"] = Path(str(cluster["base_path"]))
    if cluster.get("master_address"):
        overrides["master_address"] = str(cluster["master_address"]).strip()
    if cluster.get("subnet_mask") is not None:
        overrides["subnet_mask"] = _parse_int(cluster["subnet_mask"], "subnet mask")
    if cluster.get("exports_file"):
        overrides["exports_file"] = _expand_path(str(cluster["exports_file"]), base=base_dir)
    if cluster.get("fstab_file"):
        overrides["fstab_file"] = Path(str(cluster["fstab_file"]))
    for key in ("server_package", "client_package", "server_service"):
        if cluster.get(key):
            overrides[key] = str(cluster[key])

    shares = _table(data, "shares")
    if "names" in shares:
        names = _string_list(shares["names"], "shares.names")
        if not names:
            raise ConfigError("shares.names must list at least one share")
        overrides["shares"] = names
    if shares.get("owner"):
        overrides["share_owner"] = str(shares["owner"])
    if shares.get("mode"):
        overrides["share_mode"] = str(shares["mode"])
    if "export_options" in shares:
        overrides["export_options"] = _string_list(
            shares["export_options"], "shares.export_options"
        )
    if shares.get("mount_options"):
        overrides["mount_options"] = str(shares["mount_options"])

    ssh = _table(data, "ssh")
    if ssh.get("user"):
        overrides["ssh_user"] = str(ssh["user"])
    if ssh.get("key"):
        overrides["ssh_key"] = _expand_path(str(ssh["key"]), base=base_dir)
    if ssh.get("connect_timeout") is not None:
        overrides["connect_timeout"] = _parse_int(ssh["connect_timeout"], "connect timeout")
    if ssh.get("remote_script_path"):
        overrides["remote_script_path"] = str(ssh["remote_script_path"])

    return ClusterConfig.from_env(environ, base=ClusterConfig(**overrides))


__all__ = [
    "ClusterConfig",
    "ConfigError",
    "load_cluster_config",
]
