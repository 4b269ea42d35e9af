"""
YAML endpoint config source

endpoints.yaml format:

    endpoints:
      - id: eth-mainnet-primary
        owner_id: org-acme
        name: Ethereum Mainnet (primary)
        url: https://eth.example.com
        network: ethereum
        chain_id: 1
        timeout_ms: 10000
        enabled: true
        priority: 1
"""

from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from rpcwatch.exceptions import ConfigurationException
from rpcwatch.infrastructure.logging import get_logger
from rpcwatch.models.interfaces import IConfigSource


class YamlConfigSource(IConfigSource):
    """Reads endpoint records from a YAML file on every load()."""

    def __init__(self, path: Union[str, Path]):
        self.logger = get_logger(__name__)
        self.path = Path(path)

    async def load(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            self.logger.warning("endpoint_config_not_found", path=str(self.path))
            return []

        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationException(
                f"Cannot read endpoint config {self.path}: {e}",
                details={"path": str(self.path)}
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationException(
                f"Endpoint config {self.path} must be a mapping with an 'endpoints' list",
                details={"path": str(self.path)}
            )

        records = data.get("endpoints") or []
        if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
            raise ConfigurationException(
                f"'endpoints' in {self.path} must be a list of mappings",
                details={"path": str(self.path)}
            )

        self.logger.info("endpoint_config_loaded", path=str(self.path), count=len(records))
        return records
