"""Tests for the YAML endpoint config source."""

import pytest

from rpcwatch.exceptions import ConfigurationException
from rpcwatch.infrastructure.config_source import YamlConfigSource

ENDPOINTS_YAML = """
endpoints:
  - id: eth-mainnet
    owner_id: org-1
    name: Ethereum Mainnet
    url: https://eth.rpc.test
    chain_id: 1
  - id: polygon
    owner_id: org-1
    name: Polygon
    url: https://polygon.rpc.test
    chain_id: 137
    network: polygon
    priority: 2
"""


class TestYamlConfigSource:

    @pytest.mark.asyncio
    async def test_loads_records(self, tmp_path):
        path = tmp_path / "endpoints.yaml"
        path.write_text(ENDPOINTS_YAML, encoding="utf-8")

        records = await YamlConfigSource(path).load()

        assert [r["id"] for r in records] == ["eth-mainnet", "polygon"]
        assert records[1]["chain_id"] == 137

    @pytest.mark.asyncio
    async def test_missing_file_yields_no_records(self, tmp_path):
        assert await YamlConfigSource(tmp_path / "absent.yaml").load() == []

    @pytest.mark.asyncio
    async def test_empty_file_yields_no_records(self, tmp_path):
        path = tmp_path / "endpoints.yaml"
        path.write_text("", encoding="utf-8")

        assert await YamlConfigSource(path).load() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["endpoints: [unclosed", "- just\n- a list\n", "endpoints: 5\n"])
    async def test_malformed_files_raise(self, tmp_path, content):
        path = tmp_path / "endpoints.yaml"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(ConfigurationException):
            await YamlConfigSource(path).load()
