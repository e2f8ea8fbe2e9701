from collections import defaultdict

import pytest
from fastapi.testclient import TestClient

from app import create_app
from backend import ConnectionTracker, RoomRegistry
from relay import RelayEngine


class RecordingTransport:
    """Collects outbound frames per connection instead of writing to sockets."""

    def __init__(self):
        self.frames = defaultdict(list)
        self.busy = set()

    def send(self, connection_id, event, droppable=False):
        if droppable and connection_id in self.busy:
            return False
        self.frames[connection_id].append(event.model_dump(mode="json"))
        return True

    def broadcast(self, connection_ids, event, exclude=(), droppable=False):
        delivered = 0
        for connection_id in list(connection_ids):
            if connection_id in exclude:
                continue
            if self.send(connection_id, event, droppable):
                delivered += 1
        return delivered

    def events(self, connection_id):
        return [frame["event"] for frame in self.frames[connection_id]]

    def last(self, connection_id):
        return self.frames[connection_id][-1]

    def clear(self):
        self.frames.clear()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def relay(transport):
    return RelayEngine(RoomRegistry(), ConnectionTracker(), transport)


@pytest.fixture
def public_dir(tmp_path):
    directory = tmp_path / "public"
    directory.mkdir()
    (directory / "index.html").write_text("<h1>home</h1>")
    (directory / "room.html").write_text("<h1>room</h1>")
    (directory / "style.css").write_text("body {}")
    return directory


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def app(upload_dir, public_dir):
    return create_app(upload_dir=str(upload_dir), public_dir=str(public_dir))


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client
