import pytest
import requests
from dataclasses import dataclass, field
from app import ApplicationState


class FakeRaw:
    """
    Stands in for urllib3's response, handing the body
    out in chunks. Set .error to fail the next read.
    """
    def __init__(self, content: bytes, chunk: int = 4):
        self.content = content
        self.chunk = chunk
        self.error = None

    def read1(self, amt=None, decode_content=None):
        if self.error is not None:
            raise self.error
        piece = self.content[:self.chunk]
        self.content = self.content[self.chunk:]
        return piece


@dataclass
class FakeResponse:
    status_code: int = 200
    content: bytes = b"{}"
    reason: str = "OK"
    raw: FakeRaw = field(init=False, repr=False)

    def __post_init__(self):
        self.raw = FakeRaw(self.content)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


@pytest.fixture
def state():
    return ApplicationState()


@pytest.fixture
def fake_get(monkeypatch):
    """
    Replaces requests.get, recording every call. Set
    .response or .error on the returned object.
    """
    class FakeGet:
        def __init__(self):
            self.calls = []
            self.response = FakeResponse()
            self.error = None

        def __call__(self, url, **kwargs):
            self.calls.append((url, kwargs))
            if self.error is not None:
                raise self.error
            return self.response

    fake = FakeGet()
    monkeypatch.setattr(requests, "get", fake)
    return fake


def editing(state, url=""):
    state.begin_edit()
    for ch in url:
        state.append_to_draft(ch)
    return state
