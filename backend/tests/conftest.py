"""Pytest fixtures for Loreline tests."""

import asyncio
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from loreline.app import create_app
from loreline.config import Settings
from loreline.database.db import DatabaseRegistry
from loreline.models import (
    NodeCreate,
    SubjectType,
    TimelineAxisInput,
    TimelineEraInput,
    TimelineMarkerInput,
    TimelineSegmentInput,
)
from loreline.services.graph_nodes import NodeService
from loreline.services.timeline_dual_write import TimelineDualWriteService
from loreline.services.timeline_state_changes import TimelineStateChangeService
from loreline.services.timeline_structure import TimelineStructureService

DB_NAME = "testworld"


@pytest.fixture
def run():
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run


@pytest.fixture
def databases(tmp_path):
    return DatabaseRegistry(str(tmp_path / "databases"))


@pytest.fixture
def structure(databases):
    return TimelineStructureService(databases)


@pytest.fixture
def ledger(databases):
    return TimelineStateChangeService(databases)


@pytest.fixture
def nodes(databases):
    return NodeService(databases)


@pytest.fixture
def dual_write(ledger):
    return TimelineDualWriteService(ledger, enabled=True)


@pytest.fixture
def world(run, structure, nodes):
    """Main axis A1 with era E1, segment S1 and marker M1 at tick 10, plus a character and an event."""
    axis = run(structure.create_axis(DB_NAME, TimelineAxisInput(name="Prime")))
    era = run(structure.create_era(DB_NAME, TimelineEraInput(axis_id=axis.id, name="Age of Dawn", order=0)))
    segment = run(structure.create_segment(
        DB_NAME, TimelineSegmentInput(era_id=era.id, name="First Years", duration_years=100)
    ))
    marker = run(structure.create_marker(
        DB_NAME, TimelineMarkerInput(segment_id=segment.id, label="Coronation", tick=10)
    ))
    character = run(nodes.create_node(
        DB_NAME, SubjectType.CHARACTER, NodeCreate(id="c1", name="Aria", properties={"title": "squire"})
    ))
    event = run(nodes.create_node(DB_NAME, SubjectType.EVENT, NodeCreate(id="ev1", name="The Crowning")))
    return SimpleNamespace(
        axis=axis,
        era=era,
        segment=segment,
        marker=marker,
        character=character,
        event=event,
    )


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_DIR=str(tmp_path / "api-databases"),
        DEFAULT_DATABASE=DB_NAME,
        TIMELINE_WRITE_MODE="dual-write",
        TIMELINE_AUDIT_ENABLED=True,
    )


@pytest.fixture
def client(settings):
    """HTTP client bound to the test database through the database header."""
    app = create_app(settings)
    with TestClient(app, headers={"x-database": DB_NAME}) as test_client:
        yield test_client
