"""Shared test fixtures for the unit-storage test suite."""

import re

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from unit_storage import crypto
from unit_storage.api.auth import CloudAuthenticator
from unit_storage.api.cloud import CloudDrive
from unit_storage.api.remote import RemoteRepository
from unit_storage.storage.preferences import LocalStore, SessionStore


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def key_pair():
    return crypto.generate_key_pair()


@pytest.fixture
def session_store(clock):
    return SessionStore(clock=clock)


@pytest.fixture
def local_store(tmp_path, clock):
    return LocalStore(tmp_path / "store", clock=clock)


# ── Fake GitHub (Pages host + contents API) ──


class FakeGitHub:
    """Serves files below the ``data`` directory of one repository."""

    def __init__(self):
        self.files: dict[str, str] = {}
        self.status_overrides: dict[str, int] = {}
        self.requests: list[str] = []
        self.auth_headers: list[str | None] = []
        self.refs: list[str | None] = []
        self.base_url = ""

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/repos/{owner}/{repo}/contents/{path:.*}", self.contents)
        app.router.add_get("/{repo}/{path:.*}", self.pages)
        return app

    @staticmethod
    def _relative(path: str) -> str | None:
        path = path.strip("/")
        if path == "data":
            return ""
        if path.startswith("data/"):
            return path[len("data/") :]
        return None

    async def pages(self, request: web.Request) -> web.Response:
        rel = self._relative(request.match_info["path"])
        self.requests.append(f"pages:{rel}")
        if rel in self.status_overrides:
            return web.Response(status=self.status_overrides[rel], text="error")
        if rel not in self.files:
            return web.Response(status=404, text="Not Found")
        return web.Response(text=self.files[rel])

    async def contents(self, request: web.Request) -> web.Response:
        rel = self._relative(request.match_info["path"])
        self.requests.append(f"contents:{rel}")
        self.auth_headers.append(request.headers.get("Authorization"))
        self.refs.append(request.query.get("ref"))
        if rel in self.status_overrides:
            return web.json_response(
                {"message": "error"}, status=self.status_overrides[rel]
            )
        if rel is None:
            return web.json_response({"message": "Not Found"}, status=404)
        if rel in self.files:
            return web.json_response(self._item(rel))

        entries = []
        for name in sorted(self.files):
            parent, _, _ = name.rpartition("/")
            if parent == rel:
                entries.append(self._item(name))
        if rel and not entries:
            return web.json_response({"message": "Not Found"}, status=404)
        return web.json_response(entries)

    def _item(self, name: str) -> dict:
        return {
            "name": name.rpartition("/")[2],
            "path": f"data/{name}",
            "type": "file",
            "size": len(self.files[name]),
        }


@pytest_asyncio.fixture
async def github():
    fake = FakeGitHub()
    server = TestServer(fake.app())
    await server.start_server()
    fake.base_url = str(server.make_url("/")).rstrip("/")
    yield fake
    await server.close()


@pytest_asyncio.fixture
async def repository(github):
    repo = RemoteRepository(
        "octo",
        "UnitRepo",
        pages_base_url=github.base_url,
        api_base_url=github.base_url,
        max_retries=1,
        backoff_ms=0,
    )
    yield repo
    await repo.close()


# ── Fake Google Drive ──

_NAME_QUERY = re.compile(r"name\s*=\s*'([^']*)'")


class FakeDrive:
    """Minimal Drive v3 endpoints backed by a dict."""

    def __init__(self, token: str = "good-token"):
        self.token = token
        self.files: dict[str, dict] = {}
        self.fail_writes = False
        self.base_url = ""
        self._next_id = 0

    def app(self) -> web.Application:
        @web.middleware
        async def check_token(request, handler):
            if request.headers.get("Authorization") != f"Bearer {self.token}":
                return web.json_response({"error": "unauthorized"}, status=401)
            return await handler(request)

        app = web.Application(middlewares=[check_token])
        app.router.add_post("/upload/drive/v3/files", self.create)
        app.router.add_patch("/upload/drive/v3/files/{id}", self.update)
        app.router.add_get("/drive/v3/files", self.list_files)
        app.router.add_get("/drive/v3/files/{id}", self.read)
        app.router.add_delete("/drive/v3/files/{id}", self.delete)
        return app

    def add_file(self, name: str, content: str, mime_type: str = "application/json") -> str:
        self._next_id += 1
        file_id = f"file-{self._next_id}"
        self.files[file_id] = {"name": name, "mimeType": mime_type, "content": content}
        return file_id

    async def create(self, request: web.Request) -> web.Response:
        if self.fail_writes:
            return web.Response(status=500)
        reader = await request.multipart()
        metadata = await (await reader.next()).json()
        content = await (await reader.next()).text()
        file_id = self.add_file(metadata["name"], content, metadata.get("mimeType"))
        return web.json_response({"id": file_id})

    async def update(self, request: web.Request) -> web.Response:
        if self.fail_writes:
            return web.Response(status=500)
        file_id = request.match_info["id"]
        if file_id not in self.files:
            return web.json_response({"error": "notFound"}, status=404)
        self.files[file_id]["content"] = await request.text()
        return web.json_response({"id": file_id})

    async def read(self, request: web.Request) -> web.Response:
        file_id = request.match_info["id"]
        meta = self.files.get(file_id)
        if meta is None:
            return web.json_response({"error": "notFound"}, status=404)
        if request.query.get("alt") == "media":
            return web.Response(text=meta["content"])
        return web.json_response(
            {"id": file_id, "name": meta["name"], "mimeType": meta["mimeType"]}
        )

    async def list_files(self, request: web.Request) -> web.Response:
        match = _NAME_QUERY.search(request.query.get("q", ""))
        files = [
            {"id": file_id, "name": meta["name"], "mimeType": meta["mimeType"]}
            for file_id, meta in self.files.items()
            if match is None or meta["name"] == match.group(1)
        ]
        page_size = int(request.query.get("pageSize", "10"))
        return web.json_response({"files": files[:page_size]})

    async def delete(self, request: web.Request) -> web.Response:
        if self.files.pop(request.match_info["id"], None) is None:
            return web.json_response({"error": "notFound"}, status=404)
        return web.Response(status=204)


@pytest_asyncio.fixture
async def drive_server():
    fake = FakeDrive()
    server = TestServer(fake.app())
    await server.start_server()
    fake.base_url = str(server.make_url("/")).rstrip("/")
    yield fake
    await server.close()


@pytest_asyncio.fixture
async def drive(drive_server):
    auth = CloudAuthenticator()
    auth.set_token(drive_server.token)
    client = CloudDrive(auth, base_url=drive_server.base_url, max_retries=0, backoff_ms=0)
    yield client
    await client.close()
