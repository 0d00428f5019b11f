# Test configuration to spin up the FastAPI app with a real uvicorn server
# and provide helper fixtures.

import os
import sys
import socket
import subprocess
import time
import uuid
from contextlib import closing
from pathlib import Path
from typing import Iterator, Optional

# Must be in place before taskboard.config is imported anywhere
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
import logging
import requests

from taskboard.security import create_access_token

ROOT = Path(__file__).resolve().parents[1]
logger = logging.getLogger(__name__)


def _get_free_port() -> int:
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture(scope="session")
def base_url(tmp_path_factory: pytest.TempPathFactory) -> Iterator[str]:
    # Each session gets a fresh SQLite file; override with TEST_DATABASE_URL
    db_url = os.environ.get("TEST_DATABASE_URL")
    if not db_url:
        db_url = "sqlite:///" + str(tmp_path_factory.mktemp("data") / "taskboard.db")
    logger.info("[tests] Using DATABASE_URL=%s", db_url)

    env = os.environ.copy()
    env["DATABASE_URL"] = db_url
    env["AUTO_CREATE_TABLES"] = "true"

    port = _get_free_port()

    # Start uvicorn pointing to our app module
    cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        "taskboard.main:app",
        "--host",
        "127.0.0.1",
        "--port",
        str(port),
        "--log-level",
        "warning",
    ]
    proc = subprocess.Popen(
        cmd,
        cwd=str(ROOT),
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    logger.info("[tests] Started uvicorn (pid=%s)", proc.pid)

    # Wait for health endpoint
    url = f"http://127.0.0.1:{port}"
    for _ in range(120):
        try:
            r = requests.get(url + "/health", timeout=1.0)
            if r.status_code == 200:
                break
        except requests.RequestException:
            pass
        # If process died early, surface logs
        if proc.poll() is not None:
            out, err = proc.communicate(timeout=2)
            raise RuntimeError(f"Server exited early (code={proc.returncode}). STDOUT:\n{out}\nSTDERR:\n{err}")
        time.sleep(0.25)
    else:
        proc.terminate()
        try:
            out, err = proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            out, err = ("", "")
        raise RuntimeError(f"Server did not start in time. STDOUT:\n{out}\nSTDERR:\n{err}")

    try:
        yield url
    finally:
        proc.terminate()
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()


@pytest.fixture()
def http(base_url: str):
    session = requests.Session()
    default_timeout = 5

    class Client:
        def __init__(self, base: str):
            self.base = base

        def new_user(self, name: Optional[str] = None) -> str:
            """Token for a fresh provider identity; the API provisions the user row."""
            uid = uuid.uuid4()
            return create_access_token(uid, f"{uid.hex[:12]}@example.com", name=name)

        def auth_headers(self, token: Optional[str]):
            return {"Authorization": f"Bearer {token}"} if token else {}

        def request(self, method: str, path: str, token: Optional[str], **kwargs) -> requests.Response:
            return session.request(
                method,
                self.base + path,
                headers=self.auth_headers(token),
                timeout=default_timeout,
                **kwargs,
            )

        def create_todo(self, token: str, **fields) -> dict:
            r = self.request("POST", "/todos", token, json=fields)
            assert r.status_code == 201, r.text
            return r.json()["todo"]

        def create_category(self, token: str, name: str, color: Optional[str] = None) -> dict:
            body = {"name": name}
            if color:
                body["color"] = color
            r = self.request("POST", "/categories", token, json=body)
            assert r.status_code == 201, r.text
            return r.json()["category"]

        def list_todos(self, token: str, **params) -> dict:
            r = self.request("GET", "/todos", token, params=params)
            r.raise_for_status()
            return r.json()

        def patch_todo(self, token: str, todo_id: str, body: dict) -> requests.Response:
            return self.request("PATCH", f"/todos/{todo_id}", token, json=body)

    yield Client(base_url)
    session.close()
