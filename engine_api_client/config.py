"""
Configuration Management
========================

This module defines the configuration object for the Engine API client.
Configuration can be loaded from environment variables or from a
YAML/JSON file.

The configuration fields include:

* ``base_url`` – Base URL of the Engine REST API including the version
  number, e.g. ``http://localhost:8080/engine/v2``.  Every endpoint used
  by the client (``/jobs``, ``/data``, ``/results`` ...) is appended to it.
* ``timeout`` – Timeout in seconds for ordinary requests.
* ``upload_timeout`` – How long to wait for a streaming upload to be
  acknowledged once all data has been sent.  ``None`` waits forever.
* ``chunk_size`` – Size of the blocks sent by ``chunked_upload``.  It can
  never exceed the 4 MiB maximum buffer size.
* ``pool_connections``, ``pool_maxsize`` – Sizing of the HTTP connection
  pool owned by each client.

The ``Config`` class will read matching environment variables if they
exist.  It also provides a ``from_file`` class method to load the
configuration from a JSON or YAML file.  Unsupported keys are ignored.

```
ENGINE_API_URL=http://engine-host:8080/engine/v2
ENGINE_API_TIMEOUT=30
ENGINE_API_UPLOAD_TIMEOUT=600
ENGINE_API_CHUNK_SIZE=4194304
ENGINE_API_POOL_CONNECTIONS=1
ENGINE_API_POOL_MAXSIZE=4
```
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_BASE_URL = "http://localhost:8080/engine/v2"
MAX_BUFFER_SIZE = 4096 * 1024


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


@dataclass
class Config:
    """Dataclass encapsulating the runtime configuration of a client."""

    base_url: str = DEFAULT_BASE_URL
    timeout: float = 30.0
    upload_timeout: Optional[float] = None
    chunk_size: int = MAX_BUFFER_SIZE
    pool_connections: int = 1
    pool_maxsize: int = 4

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")
        if self.chunk_size <= 0 or self.chunk_size > MAX_BUFFER_SIZE:
            self.chunk_size = MAX_BUFFER_SIZE

    @classmethod
    def from_env(cls) -> "Config":
        """Create a Config instance from environment variables.

        Each attribute looks up the corresponding ``ENGINE_API_*``
        variable.  If a variable is not defined, the default value remains.
        """
        return cls(
            base_url=os.getenv("ENGINE_API_URL", DEFAULT_BASE_URL),
            timeout=float(os.getenv("ENGINE_API_TIMEOUT", "30")),
            upload_timeout=_optional_float(os.getenv("ENGINE_API_UPLOAD_TIMEOUT")),
            chunk_size=int(os.getenv("ENGINE_API_CHUNK_SIZE", str(MAX_BUFFER_SIZE))),
            pool_connections=int(os.getenv("ENGINE_API_POOL_CONNECTIONS", "1")),
            pool_maxsize=int(os.getenv("ENGINE_API_POOL_MAXSIZE", "4")),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from a JSON or YAML file.

        :param path: Path to a JSON or YAML configuration file.  Unknown
            keys are ignored.  File values override environment variables.
        :returns: Config instance.
        :raises FileNotFoundError: If ``path`` does not exist.
        :raises ValueError: If the file extension is not ``.json`` or
            ``.yaml``/``.yml``.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        data: Dict[str, Any]
        if path.suffix.lower() == ".json":
            data = json.loads(path.read_text())
        elif path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(path.read_text()) or {}
        else:
            raise ValueError(
                "Unsupported configuration file format: expected .json or .yaml/.yml"
            )
        cfg = cls.from_env()
        for key, value in data.items():
            key_lower = key.lower()
            if hasattr(cfg, key_lower):
                setattr(cfg, key_lower, value)
        # re-apply normalisation to file supplied values
        cfg.__post_init__()
        return cfg

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the configuration to a dictionary."""
        return {
            "base_url": self.base_url,
            "timeout": self.timeout,
            "upload_timeout": self.upload_timeout,
            "chunk_size": self.chunk_size,
            "pool_connections": self.pool_connections,
            "pool_maxsize": self.pool_maxsize,
        }
