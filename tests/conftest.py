"""Shared fixtures and environment setup for client data service tests."""

import os

# Set environment variables BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("AUTH_BASE_URL", "http://localhost:8007")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("DISABLE_AUTH", "false")
os.environ.setdefault("EXCEL_CACHE_TTL", "300000")

from pathlib import Path
from typing import Any, List, Sequence

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook, load_workbook

from app.auth import get_current_user
from app.auth_cache import AuthCache, set_auth_cache
from app.cache import TableCache
from app.fusion import ResourceDefaults
from app.gateway import MutationGateway
from app.repository import RecordsRepository
from app.store import ExcelTableStore


def write_workbook(path: Path, sheet_name: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> Path:
    """Create a single-sheet workbook with a header row and data rows."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_name
    sheet.append(list(columns))
    for row in rows:
        sheet.append(list(row))
    workbook.save(path)
    return path


def read_sheet(path: Path, sheet_name: str) -> List[tuple]:
    """Read every row of a sheet as raw tuples (header included)."""
    workbook = load_workbook(path, read_only=True, data_only=True)
    try:
        return list(workbook[sheet_name].iter_rows(values_only=True))
    finally:
        workbook.close()


SAMPLE_WORKBOOKS = {
    "companies.xlsx": (
        "Companies",
        ["Company Name", "Abbrv", "Group", "Status"],
        [
            ["Zulu Logistics", "ZU", "West", 2],
            ["Acme Corp", "ACME", "East", 0],
            ["Beta Tech", "BT", None, 1],
            [None, "NONAME", None, None],
        ],
    ),
    "Core.xlsx": (
        "Infrastructure",
        ["Client", "SubName", "Name", "IP address", "Description", "Login", "Notes", "Cores", "Ram (GB)", "Inactive"],
        [
            ["ACME", "Main", "HV01", "10.0.0.5", "Hyper-V host", "admin", None, 4, 32, None],
            ["ACME", "Main", "NAS01", "10.0.1.10", "Storage", "root", None, 2, 8, None],
            ["ACME", "Main", "DUP", "10.0.5.1", "First copy", None, None, None, None, None],
            ["ACME", "Main", "DUP", "10.0.5.2", "Second copy", None, None, None, None, None],
            ["ACME", "Old", "OLD01", "10.0.7.1", "Retired box", None, None, 1, 2, 1],
            ["BT", "HQ", "FW01", "192.168.1.1", "Firewall", "admin", None, 1, 1, None],
        ],
    ),
    "Users.xlsx": (
        "Users",
        ["Client", "SubName", "Computer Name", "Name", "Login", "Phone", "Cell", "Active"],
        [
            ["ACME", "Main", "W1", "Alice", "alice", "100", None, 1],
            ["ACME", "Main", "W1", "Bob", "bob", "101", None, 1],
            ["ACME", "Main", "W2", "Carol", "carol", "102", "555-0102", 1],
            ["BT", "HQ", "W1", "Dave", "dave", "200", None, 1],
            ["ACME", "Main", None, "Eve", "eve", None, None, 0],
        ],
    ),
    "Workstations.xlsx": (
        "Workstations",
        ["Client", "Computer Name", "IP Address", "Description", "Active"],
        [
            ["ACME", "W1", "10.0.2.1", "Front desk", 1],
            ["ACME", "W2", "10.0.2.2", "Office", 1],
            ["ACME", "W3", "10.0.2.3", "Spare", 0],
            ["BT", "W1", "192.168.1.50", "Reception", 1],
        ],
    ),
    "VMs.xlsx": (
        "VMs",
        ["Client", "Name", "IP", "Host", "Type", "Grouping", "Startup memory (GB)", "Assigned cores", "Active"],
        [
            ["ACME", "V1", "10.0.9.9", "HV01", "Gen2", None, 8, 2, 1],
            ["ACME", "V2", "10.0.0.77", None, "Gen2", None, 4, 2, 1],
            ["ACME", "V3", "172.16.0.1", None, "Gen1", None, 2, 1, 1],
            ["ACME", "V4", "10.0.0.78", None, "Gen1", None, 2, 1, 0],
        ],
    ),
    "Containers.xlsx": (
        "Containers",
        ["Client", "Name", "IP", "Port", "Grouping", "Host"],
        [
            ["ACME", "C1", None, 80, "hv01-docker", None],
            ["ACME", "C2", None, 8080, "misc", None],
        ],
    ),
    "Daemons.xlsx": (
        "Daemons",
        ["Client", "Name", "IP", "Host", "User", "Inactive"],
        [
            ["ACME", "D1", "10.0.1.20", None, "svc", None],
        ],
    ),
    "Admin Emails.xlsx": (
        "Admin Emails",
        ["Client", "Name", "Email", "Password", "Inactive"],
        [
            ["ACME", "Admin", "admin@acme.test", "s3cret", None],
            ["ACME", "Old Admin", "old@acme.test", "old", 1],
            ["BT", "Admin", "admin@bt.test", "bt-pass", None],
        ],
    ),
    "Admin Mitel Logins.xlsx": (
        "Mitel Admins",
        ["Client", "Login", "Password"],
        [
            ["ACME", "mitel", "mitel-pw"],
        ],
    ),
    "Acronis Backups.xlsx": (
        "Sheet1",
        ["Client", "UserName", "Password", "Encrypt PW"],
        [
            ["ACME", "backup", "acr-pw", "enc-pw"],
        ],
    ),
    "Cloudflare_Admins.xlsx": (
        "CF Admins",
        ["Client", "username", "Password"],
        [
            ["ACME", "cf-admin", "cf-pw"],
        ],
    ),
}


@pytest.fixture
def data_dir(tmp_path) -> Path:
    """Directory of sample workbooks."""
    for file_name, (sheet_name, columns, rows) in SAMPLE_WORKBOOKS.items():
        write_workbook(tmp_path / file_name, sheet_name, columns, rows)
    return tmp_path


@pytest.fixture
def store(data_dir) -> ExcelTableStore:
    return ExcelTableStore(str(data_dir))


@pytest.fixture
def cache() -> TableCache:
    return TableCache(default_ttl=300000)


@pytest.fixture
def repository(store, cache) -> RecordsRepository:
    return RecordsRepository(store, cache, defaults=ResourceDefaults())


@pytest.fixture
def gateway(store, cache) -> MutationGateway:
    return MutationGateway(store, cache)


@pytest.fixture
def test_user() -> dict:
    return {"id": "user-1", "username": "tech", "role": "admin"}


@pytest.fixture
def mock_auth(test_user):
    """Override get_current_user to always succeed."""
    async def _override():
        return test_user

    return _override


@pytest.fixture
def client(mock_auth, repository, gateway):
    """TestClient with auth overridden and data services wired to the sample workbooks."""
    import app.main as main_module
    from contextlib import asynccontextmanager
    from app.db.models import Base
    from app.db.session import engine
    from app.services.preferences_service import reset_preferences_service

    # Replace lifespan to avoid reading real config paths
    @asynccontextmanager
    async def _test_lifespan(app):
        yield

    Base.metadata.create_all(bind=engine)
    reset_preferences_service()

    original_lifespan = main_module.app.router.lifespan_context
    main_module.app.router.lifespan_context = _test_lifespan
    main_module.repository = repository
    main_module.gateway = gateway
    main_module.app.dependency_overrides[get_current_user] = mock_auth

    with TestClient(main_module.app) as tc:
        yield tc

    main_module.app.dependency_overrides.clear()
    main_module.repository = None
    main_module.gateway = None
    main_module.app.router.lifespan_context = original_lifespan
    Base.metadata.drop_all(bind=engine)
    reset_preferences_service()


@pytest.fixture
def auth_cache():
    """Fresh AuthCache instance installed globally."""
    cache = AuthCache(success_ttl=60, failure_ttl=10)
    set_auth_cache(cache)
    return cache


@pytest.fixture
def make_workbook():
    """Helper to create single-sheet workbooks inside a test."""
    return write_workbook


@pytest.fixture
def sheet_rows():
    """Helper to read raw sheet rows inside a test."""
    return read_sheet
