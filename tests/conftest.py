from typing import Iterator

import pytest

from tests.fakes import CollectingSink, LineServer


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def line_server() -> Iterator[LineServer]:
    server = LineServer()
    yield server
    server.close()
