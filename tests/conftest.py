"""Shared fixtures for the pipekit test suite."""

import pytest

from pipekit.config import ImportSettings
from pipekit.ingest import InMemoryClient
from pipekit.milestones import STANDARD_TEMPLATES
from pipekit.service import ImportService

PROJECT_ID = "project-1"


@pytest.fixture
def project_id():
    return PROJECT_ID


@pytest.fixture
def seed():
    """Seed a client with the standard templates and drawings DWG-100 / DWG-200."""
    def apply(client):
        for record in STANDARD_TEMPLATES:
            client.add_template(PROJECT_ID, record)
        client.add_drawing(PROJECT_ID, "DWG-100")
        client.add_drawing(PROJECT_ID, "DWG-200")
        return client
    return apply


@pytest.fixture
def db(seed):
    return seed(InMemoryClient())


@pytest.fixture
def settings():
    # Generous soft budget so staging always completes inside the call
    return ImportSettings(soft_budget=30.0, lock_retry_backoff=0.01)


@pytest.fixture
def service(db, settings):
    svc = ImportService(db, settings=settings)
    yield svc
    svc.close()


@pytest.fixture
def csv_bytes():
    """Build CSV bytes from lines of text."""
    def build(*lines):
        return ("\n".join(lines) + "\n").encode("utf-8")
    return build
