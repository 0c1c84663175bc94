"""Application configuration read from environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

_DEFAULT_HOST = "192.168.2.24"


@dataclass(frozen=True)
class HBaseConfig:
    """Connection settings for the HBase cluster."""

    host: str = _DEFAULT_HOST
    zk_quorum: str = _DEFAULT_HOST
    zk_port: str = "2181"
    master_port: str = "16000"
    thrift_port: str = "9090"

    @property
    def zk_address(self) -> str:
        """The ZooKeeper quorum address in ``host:port`` form."""
        return f"{self.zk_quorum}:{self.zk_port}"


@dataclass(frozen=True)
class ServerConfig:
    """HTTP server settings."""

    port: str = "5000"


@dataclass(frozen=True)
class Config:
    """The complete application configuration."""

    hbase: HBaseConfig
    server: ServerConfig


def _lookup(environ: Mapping[str, str], key: str, default: str) -> str:
    # An empty variable counts as unset.
    return environ.get(key) or default


def get_config(environ: Mapping[str, str] | None = None) -> Config:
    """Build the configuration from ``environ`` (``os.environ`` by default)."""
    env = os.environ if environ is None else environ
    defaults = HBaseConfig()
    return Config(
        hbase=HBaseConfig(
            host=_lookup(env, "HBASE_HOST", defaults.host),
            zk_quorum=_lookup(env, "HBASE_ZKQUORUM", defaults.zk_quorum),
            zk_port=_lookup(env, "HBASE_ZKPORT", defaults.zk_port),
            master_port=_lookup(env, "HBASE_MASTERPORT", defaults.master_port),
            thrift_port=_lookup(env, "HBASE_THRIFTPORT", defaults.thrift_port),
        ),
        server=ServerConfig(port=_lookup(env, "SERVER_PORT", ServerConfig().port)),
    )