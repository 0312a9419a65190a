"""
Pytest configuration and fixtures.

Backend traffic is served by `httpx.MockTransport`; controller tests
replace services with `AsyncMock` objects.
"""
import json
from typing import Callable, List

import httpx
import pytest

from circuit.backend import BackendClient


class RecordingHandler:
    """MockTransport handler that records requests and answers from a callback."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]):
        self.respond = respond
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last.content)


@pytest.fixture
def make_backend():
    """Build a BackendClient whose requests are answered by `respond`."""
    def _make(respond):
        handler = RecordingHandler(respond)
        client = BackendClient(
            "https://project.example.co",
            "anon-key",
            transport=httpx.MockTransport(handler),
        )
        return client, handler

    return _make
