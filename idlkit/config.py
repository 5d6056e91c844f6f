"""Settings loading for idlkit."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .constants import (
    ALLOWED_COMMITMENTS,
    CLUSTER_URLS,
    DEFAULT_CLUSTER,
    DEFAULT_COMMITMENT,
    SETTINGS_FILENAME,
)


@dataclass
class Settings:
    rpc_url: str = CLUSTER_URLS[DEFAULT_CLUSTER]
    commitment: str = DEFAULT_COMMITMENT
    idl_path: Optional[str] = None
    concurrent_fetch: bool = True


def _load_toml(path: Path) -> Dict[str, Any]:
    try:
        import tomllib  # Python 3.11+
    except ImportError:  # pragma: no cover
        import tomli as tomllib  # type: ignore
    return tomllib.loads(path.read_text())


def cluster_url(value: str) -> str:
    """Map a cluster moniker to its RPC URL; URLs pass through."""
    key = value.strip().lower()
    if key in ("mainnet-beta", "m"):
        key = "mainnet"
    elif key in ("localhost", "l"):
        key = "localnet"
    elif key == "d":
        key = "devnet"
    elif key == "t":
        key = "testnet"
    if key in CLUSTER_URLS:
        return CLUSTER_URLS[key]
    if "://" in value:
        return value.strip()
    raise ValueError(f"Unknown cluster: {value}")


def load_solana_cli_config(env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    env = os.environ if env is None else env
    path = env.get("SOLANA_CONFIG") or env.get("SOLANA_CONFIG_FILE")
    if path:
        cfg_path = Path(path)
    else:
        cfg_path = Path.home() / ".config" / "solana" / "cli" / "config.yml"
    try:
        text = cfg_path.read_text()
    except OSError:
        return {}
    cfg: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        key = key.strip()
        value = value.strip().strip("\"'")
        if key:
            cfg[key] = value
    return cfg


def _apply_table(settings: Settings, data: Dict[str, Any], source: str) -> None:
    rpc = data.get("rpc") if isinstance(data.get("rpc"), dict) else {}
    if isinstance(rpc.get("cluster"), str) and rpc["cluster"]:
        settings.rpc_url = cluster_url(rpc["cluster"])
    if isinstance(rpc.get("url"), str) and rpc["url"]:
        settings.rpc_url = rpc["url"]
    if "commitment" in rpc:
        settings.commitment = _commitment(rpc["commitment"], source)

    derive = data.get("derive") if isinstance(data.get("derive"), dict) else {}
    if "concurrent" in derive:
        if not isinstance(derive["concurrent"], bool):
            raise ValueError(f"{source}: derive.concurrent must be true or false")
        settings.concurrent_fetch = derive["concurrent"]

    idl = data.get("idl") if isinstance(data.get("idl"), dict) else {}
    if isinstance(idl.get("path"), str) and idl["path"]:
        settings.idl_path = idl["path"]


def _commitment(value: Any, source: str) -> str:
    if not isinstance(value, str) or value not in ALLOWED_COMMITMENTS:
        raise ValueError(f"{source}: commitment must be one of {', '.join(sorted(ALLOWED_COMMITMENTS))}")
    return value


def load_settings(path: str | Path | None = None, env: Optional[Mapping[str, str]] = None) -> Settings:
    """Resolve settings from defaults, Solana CLI config, idlkit.toml and env vars.

    Later sources win. An explicit ``path`` must exist; otherwise
    ``idlkit.toml`` in the working directory is read when present.
    """
    env = os.environ if env is None else env
    settings = Settings()

    cli_cfg = load_solana_cli_config(env)
    if cli_cfg.get("json_rpc_url"):
        settings.rpc_url = cli_cfg["json_rpc_url"]
    if cli_cfg.get("commitment") in ALLOWED_COMMITMENTS:
        settings.commitment = cli_cfg["commitment"]

    if path is not None:
        settings_path = Path(path)
        if not settings_path.exists():
            raise FileNotFoundError(f"Settings file not found: {settings_path}")
    else:
        settings_path = Path.cwd() / SETTINGS_FILENAME
    if settings_path.exists():
        _apply_table(settings, _load_toml(settings_path), str(settings_path))

    if env.get("IDLKIT_CLUSTER"):
        settings.rpc_url = cluster_url(env["IDLKIT_CLUSTER"])
    if env.get("IDLKIT_RPC_URL"):
        settings.rpc_url = env["IDLKIT_RPC_URL"]
    if env.get("IDLKIT_COMMITMENT"):
        settings.commitment = _commitment(env["IDLKIT_COMMITMENT"], "IDLKIT_COMMITMENT")
    return settings
