from __future__ import annotations
import socket

import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError

from _util import cert_pem, key_pem, make_cert, rsa_key, write_pair


@pytest.mark.asyncio
async def test_check_pair_tool(tmp_path):
    cert, key = write_pair(tmp_path, "console", rsa_key("a"), 90)
    (tmp_path / "other.key").write_bytes(key_pem(rsa_key("b")))

    from certrotate.server import mcp
    async with Client(mcp) as client:
        res = await client.call_tool("check_pair", {"cert_path": str(cert), "key_path": str(key)})
        assert res.data["matches"] is True
        assert res.data["certificate_digest"] == res.data["key_digest"]

        res = await client.call_tool("check_pair", {"cert_path": str(cert), "key_path": str(tmp_path / "other.key")})
        assert res.data["matches"] is False


@pytest.mark.asyncio
async def test_check_pair_never_returns_key_material(tmp_path):
    cert, key = write_pair(tmp_path, "console", rsa_key("a"), 90)
    from certrotate.server import mcp
    async with Client(mcp) as client:
        res = await client.call_tool("check_pair", {"cert_path": str(cert), "key_path": str(key)})
        assert "PRIVATE KEY" not in str(res.data)


@pytest.mark.asyncio
async def test_expiry_status_tool(tmp_path):
    p = tmp_path / "cert.pem"
    p.write_bytes(cert_pem(make_cert(rsa_key("a"), 400)))
    from certrotate.server import mcp
    async with Client(mcp) as client:
        res = await client.call_tool("expiry_status", {"cert_path": str(p)})
        assert res.data["tier"] == "SAFE"
        assert res.data["expires_at"].endswith("Z")


@pytest.mark.asyncio
async def test_garbage_is_a_tool_error(tmp_path):
    p = tmp_path / "cert.pem"
    p.write_text("garbage")
    from certrotate.server import mcp
    async with Client(mcp) as client:
        with pytest.raises(ToolError):
            await client.call_tool("expiry_status", {"cert_path": str(p)})


@pytest.mark.asyncio
async def test_service_status_tool(tmp_path):
    import datetime as dt

    now = dt.datetime.now(dt.timezone.utc).replace(microsecond=0)
    write_pair(tmp_path, socket.gethostname(), rsa_key("a"), 45, now=now)
    from certrotate.server import mcp
    async with Client(mcp) as client:
        res = await client.call_tool("service_status", {"service": "cockpit", "cert_dir": str(tmp_path)})
        report = res.data
        assert report["present"] is True
        assert report["matches"] is True
        assert report["expiry"]["tier"] == "WARNING"

        res = await client.call_tool("service_status", {"service": "portainer", "cert_dir": str(tmp_path / "none")})
        assert res.data["present"] is False
        assert res.data["expiry"] is None
