import os

os.environ.setdefault("TRANSPORT_TYPE", "http")
os.environ.setdefault("LOG_LEVEL", "info")

import pytest

from core.db import CredentialStrategy, DurableConnection
from core.services.note_repository import NoteRepository, set_repository
from core.services.note_stores import DurableStore, TransientStore


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'notes.sqlite'}"


@pytest.fixture
def unreachable_url(tmp_path):
    # SQLite cannot create a database inside a directory that does not exist
    return f"sqlite:///{tmp_path / 'missing' / 'notes.sqlite'}"


@pytest.fixture
def durable_connection(sqlite_url):
    connection = DurableConnection([CredentialStrategy("ambient", sqlite_url)])
    yield connection
    connection.dispose()


@pytest.fixture
def unreachable_connection(unreachable_url):
    return DurableConnection([CredentialStrategy("ambient", unreachable_url)])


@pytest.fixture
def durable_repository(durable_connection):
    return NoteRepository(durable=DurableStore(durable_connection), transient=TransientStore())


@pytest.fixture
def unreachable_repository(unreachable_connection):
    return NoteRepository(durable=DurableStore(unreachable_connection), transient=TransientStore())


@pytest.fixture
def transient_repository():
    return NoteRepository()


@pytest.fixture
def installed_repository(transient_repository):
    set_repository(transient_repository)
    try:
        yield transient_repository
    finally:
        set_repository(None)
