#!/usr/bin/env python3
"""
Live tests for the quickserve server using an aiohttp client
"""
import asyncio
import json

import aiohttp
import pytest
import pytest_asyncio

from quickserve.core.config import ServerConfig
from quickserve.core.server_core import Server, parse_args


def build_server(tmp_path, **config_kwargs):
    public = tmp_path / "public"
    public.mkdir()
    (public / "hello.txt").write_text("hello from disk")
    config = ServerConfig(port=0, public_dir=str(public), upload_dir=str(tmp_path / "uploads"),
                          json_logs=False, log_level="WARNING", **config_kwargs)
    server = Server(config)

    @server.get("/users/:id", docs="Fetch a user")
    async def get_user(ctx, response):
        await response.json({"id": ctx.captures["id"], "request_id": ctx.request_id})

    @server.post("/items")
    async def create_item(ctx, response):
        await response.json({"created": ctx.body}, status=201)

    @server.post("/upload")
    async def upload(ctx, response):
        await response.json({
            "title": ctx.body.get("title"),
            "files": [f.to_dict() for f in ctx.files],
        })

    @server.any("/fail")
    async def fail(ctx, response):
        raise RuntimeError("handler exploded")

    server.set_index_predicate(lambda path: path == "/")
    server.expose_metrics()
    return server


async def start_server(server):
    task = asyncio.create_task(server.start())
    for _ in range(200):
        if server.bound_port is not None:
            break
        if task.done():
            task.result()
        await asyncio.sleep(0.01)
    return task


@pytest_asyncio.fixture
async def live(tmp_path):
    server = build_server(tmp_path)
    task = await start_server(server)
    base = f"http://127.0.0.1:{server.bound_port}"
    async with aiohttp.ClientSession() as session:
        yield server, session, base
    await server.shutdown()
    await asyncio.wait_for(task, timeout=5)


@pytest.mark.asyncio
async def test_route_with_capture(live):
    server, session, base = live
    async with session.get(f"{base}/users/42") as resp:
        assert resp.status == 200
        assert resp.headers["Connection"] == "close"
        data = await resp.json()
    assert data["id"] == "42"
    assert isinstance(data["request_id"], int)


@pytest.mark.asyncio
async def test_request_ids_are_distinct(live):
    server, session, base = live
    ids = set()
    for _ in range(3):
        async with session.get(f"{base}/users/1") as resp:
            ids.add((await resp.json())["request_id"])
    assert len(ids) == 3


@pytest.mark.asyncio
async def test_json_post(live):
    server, session, base = live
    async with session.post(f"{base}/items", json={"name": "widget"}) as resp:
        assert resp.status == 201
        assert await resp.json() == {"created": {"name": "widget"}}


@pytest.mark.asyncio
async def test_multipart_upload(live, tmp_path):
    server, session, base = live
    form = aiohttp.FormData()
    form.add_field("title", "report")
    form.add_field("doc", b"first", filename="one.txt", content_type="text/plain")
    form.add_field("doc", b"second", filename="two.txt", content_type="text/plain")
    async with session.post(f"{base}/upload", data=form) as resp:
        assert resp.status == 200
        data = await resp.json()

    assert data["title"] == "report"
    assert [f["file"].rsplit("/", 1)[-1] for f in data["files"]] == ["one.txt", "two.txt"]
    assert (tmp_path / "uploads" / "one.txt").read_bytes() == b"first"
    assert (tmp_path / "uploads" / "two.txt").read_bytes() == b"second"


@pytest.mark.asyncio
async def test_static_file_and_not_found(live):
    server, session, base = live
    async with session.get(f"{base}/hello.txt") as resp:
        assert resp.status == 200
        assert resp.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert await resp.text() == "hello from disk"

    async with session.get(f"{base}/nope.txt") as resp:
        assert resp.status == 404
        assert await resp.text() == "Not Found"


@pytest.mark.asyncio
async def test_index_redirect(live):
    server, session, base = live
    async with session.get(f"{base}/", allow_redirects=False) as resp:
        assert resp.status == 302
        assert resp.headers["Location"] == "/index.html"


@pytest.mark.asyncio
async def test_handler_fault(live):
    server, session, base = live
    async with session.put(f"{base}/fail") as resp:
        assert resp.status == 500
        assert await resp.text() == "handler exploded"


@pytest.mark.asyncio
async def test_maintenance_mode(live):
    server, session, base = live
    server.down()
    assert server.maintenance
    async with session.get(f"{base}/users/1") as resp:
        assert resp.status == 503
        assert await resp.text() == "Under Maintenance"
    server.up()
    async with session.get(f"{base}/users/1") as resp:
        assert resp.status == 200


@pytest.mark.asyncio
async def test_metrics_endpoint(live):
    server, session, base = live
    async with session.get(f"{base}/users/1") as resp:
        await resp.read()
    async with session.get(f"{base}/metrics") as resp:
        assert resp.status == 200
        body = await resp.text()
    assert "quickserve_requests_total" in body


@pytest.mark.asyncio
async def test_registration_after_start_rejected(live):
    server, session, base = live
    with pytest.raises(RuntimeError):
        server.get("/late", lambda ctx, response: None)


@pytest.mark.asyncio
async def test_cors_preflight_registered(tmp_path):
    server = build_server(tmp_path, cors_enabled=True)
    routes = server.router.describe()
    assert ("OPTIONS", "/items", "CORS preflight") in routes
    # One preflight route per pattern
    assert sum(1 for method, pattern, _ in routes if method == "OPTIONS" and pattern == "/items") == 1

    task = await start_server(server)
    base = f"http://127.0.0.1:{server.bound_port}"
    try:
        async with aiohttp.ClientSession() as session:
            async with session.options(f"{base}/items") as resp:
                assert resp.status == 204
                assert resp.headers["Access-Control-Allow-Origin"] == "*"
            async with session.post(f"{base}/items", data=json.dumps({"a": 1}),
                                    headers={"Content-Type": "application/json"}) as resp:
                assert resp.status == 201
                assert resp.headers["Access-Control-Allow-Origin"] == "*"
    finally:
        await server.shutdown()
        await asyncio.wait_for(task, timeout=5)


def test_route_decorator_returns_handler(tmp_path):
    server = Server(ServerConfig(public_dir=str(tmp_path)))

    async def handler(ctx, response):
        pass

    assert server.delete("/x", handler) is handler
    assert server.route("/y", "PATCH")(handler) is handler
    assert [m for m, _, _ in server.router.describe()] == ["DELETE", "PATCH"]


def test_parse_args():
    args = parse_args(["--port", "9000", "--cors", "--no-json-logs", "--public-dir", "www"])
    assert args.port == 9000
    assert args.cors is True
    assert args.json_logs is False
    assert args.public_dir == "www"
    assert args.host is None
