"""FastAPI application for the Client Data Service."""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request, Depends, Query
from fastapi.responses import JSONResponse

# Note: .env is loaded in app.config before config is initialized
from app.config import config
from app.models import (
    AddColumnRequest, AddRowRequest, CellUpdateRequest, ClientsResponse,
    ConfigResponse, HealthResponse, HostGroupsResponse, MutationResponse,
    PreferenceSetRequest, PreferenceValueRequest, RowUpdateRequest,
    SetInactiveRequest, TableResponse,
)
from app.auth import get_current_user
from app.cache import TableCache
from app.exceptions import (
    AmbiguousMatchError, MalformedTableError, NotFoundError,
    RecordsException, StorageIOError, ValidationError,
)
from app.gateway import MutationGateway, MutationResult
from app.repository import RecordsRepository
from app.services.preferences_service import DEFAULT_PREFERENCES, get_preferences_service
from app.store import ExcelTableStore
from app.tables import TABLES

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

# Global data access objects
repository: Optional[RecordsRepository] = None
gateway: Optional[MutationGateway] = None

ERROR_STATUS = [
    (AmbiguousMatchError, 409),
    (NotFoundError, 404),
    (ValidationError, 400),
    (MalformedTableError, 422),
    (StorageIOError, 500),
]


def build_services(base_path: str, path_overrides=None, cache_ttl: int = 300000, defaults=None):
    """Wire a store, cache, repository and gateway sharing one cache."""
    store = ExcelTableStore(base_path, path_overrides=path_overrides)
    cache = TableCache(default_ttl=cache_ttl)
    return RecordsRepository(store, cache, defaults=defaults), MutationGateway(store, cache)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    global repository, gateway

    # Startup
    logger.info("Starting Client Data Service...")

    try:
        config.validate()
        logger.info("Configuration validated")
    except ValueError as e:
        logger.error(f"Configuration validation failed: {e}")
        sys.exit(1)

    repository, gateway = build_services(
        config.EXCEL_BASE_PATH,
        path_overrides=config.get_path_overrides(),
        cache_ttl=config.EXCEL_CACHE_TTL,
        defaults=config.get_resource_defaults(),
    )
    logger.info(f"Serving spreadsheets from {config.EXCEL_BASE_PATH} (cache TTL: {config.EXCEL_CACHE_TTL}ms)")

    from app.auth_cache import AuthCache, set_auth_cache
    set_auth_cache(AuthCache(success_ttl=config.AUTH_CACHE_TTL_SECONDS, failure_ttl=10))
    logger.info(f"Initialized auth cache (success TTL: {config.AUTH_CACHE_TTL_SECONDS}s)")
    if config.DISABLE_AUTH:
        logger.warning("Authentication is disabled - all requests run as guest admin")

    from app.db.session import init_db
    init_db()

    yield

    # Shutdown
    logger.info("Shutting down Client Data Service...")


# Create FastAPI app
app = FastAPI(
    title="Client Data Service",
    description="Per-client IT infrastructure records backed by spreadsheets",
    version="1.0.0",
    lifespan=lifespan
)


def _http_error(e: RecordsException) -> HTTPException:
    """Translate a domain error into an HTTP error with a machine-readable code."""
    status_code = 500
    for exc_type, code in ERROR_STATUS:
        if isinstance(e, exc_type):
            status_code = code
            break
    if status_code >= 500:
        logger.error(f"{e.error_code}: {e}")
    else:
        logger.warning(f"{e.error_code}: {e}")
    detail = {"error_code": e.error_code, "error_message": str(e)}
    if isinstance(e, AmbiguousMatchError):
        detail["match_count"] = e.match_count
    return HTTPException(status_code=status_code, detail=detail)


def _require_repository() -> RecordsRepository:
    if repository is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return repository


def _require_gateway() -> MutationGateway:
    if gateway is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return gateway


def _mutation_response(result: MutationResult) -> MutationResponse:
    return MutationResponse(
        success=result.success,
        table=result.table,
        value=result.value,
        row_index=result.row_index,
        changed=result.changed,
    )


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    return HealthResponse(status="ok")


@app.get("/api/config", response_model=ConfigResponse)
async def get_public_config():
    """Public settings the UI needs before login."""
    return ConfigResponse(authDisabled=config.DISABLE_AUTH, appName=config.APP_NAME)


@app.get("/api/auth/me")
async def get_me(user: dict = Depends(get_current_user)):
    """Get the signed-in user."""
    return {"user": user}


# --- Spreadsheet data -----------------------------------------------------


@app.get("/api/data/clients", response_model=ClientsResponse)
def list_clients(_: dict = Depends(get_current_user)):
    """Get the client picker entries from the companies table."""
    repo = _require_repository()
    try:
        return ClientsResponse(data=repo.list_clients())
    except RecordsException as e:
        raise _http_error(e)


@app.get("/api/data/tables")
async def list_tables(_: dict = Depends(get_current_user)):
    """Get the registered table keys."""
    return {
        "data": [
            {
                "key": spec.key,
                "file": spec.file_name,
                "sheet": spec.sheet_name,
                "naturalKey": list(spec.natural_key),
                "flagColumn": spec.flag_column,
            }
            for spec in TABLES.values()
        ]
    }


@app.get("/api/data/workstations-users", response_model=TableResponse)
def get_workstations_users(
    client: Optional[str] = None,
    active: bool = False,
    _: dict = Depends(get_current_user),
):
    """Get workstations with their users attached."""
    repo = _require_repository()
    try:
        fused = repo.read_fused_workstations_users(client, active_only=active)
    except RecordsException as e:
        raise _http_error(e)
    data = [item.to_dict() for item in fused]
    return TableResponse(data=data, count=len(data))


@app.get("/api/data/host-groups", response_model=HostGroupsResponse)
def get_host_groups(
    client: Optional[str] = None,
    search: Optional[str] = None,
    mask: bool = False,
    _: dict = Depends(get_current_user),
):
    """Get VMs, containers and daemons grouped by their inferred host."""
    repo = _require_repository()
    try:
        groups = repo.read_host_groups(client, search=search, mask=mask)
    except RecordsException as e:
        raise _http_error(e)
    data = [group.to_dict() for group in groups.values()]
    return HostGroupsResponse(data=data, count=len(data))


@app.get("/api/data/admin-credentials")
def get_admin_credentials(
    client: Optional[str] = None,
    mask: bool = False,
    _: dict = Depends(get_current_user),
):
    """Get every admin-credential table for one client."""
    repo = _require_repository()
    try:
        return {"data": repo.read_admin_credentials(client, mask=mask)}
    except RecordsException as e:
        raise _http_error(e)


@app.get("/api/data/{table_key}", response_model=TableResponse)
def read_table(
    table_key: str,
    client: Optional[str] = None,
    active: bool = False,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    direction: str = Query("asc", pattern="^(asc|desc)$"),
    mask: bool = False,
    _: dict = Depends(get_current_user),
):
    """Read one table, filtered to a client."""
    repo = _require_repository()
    try:
        rows = repo.read_table(
            table_key,
            client=client,
            active_only=active,
            search=search,
            sort=sort,
            direction=direction,
            mask=mask,
        )
    except RecordsException as e:
        raise _http_error(e)
    return TableResponse(data=rows, count=len(rows))


@app.put("/api/data/{table_key}/cell", response_model=MutationResponse)
def update_cell(table_key: str, request: CellUpdateRequest, user: dict = Depends(get_current_user)):
    """Update one cell of the row matching the identifier."""
    gw = _require_gateway()
    logger.info(f"Cell update on {table_key} by {user.get('username', user.get('id'))}")
    try:
        result = gw.update_cell(table_key, request.identifier, request.column, request.value)
    except RecordsException as e:
        raise _http_error(e)
    return _mutation_response(result)


@app.patch("/api/data/{table_key}/row", response_model=MutationResponse)
def update_row(table_key: str, request: RowUpdateRequest, user: dict = Depends(get_current_user)):
    """Update several cells of the row matching the identifier."""
    gw = _require_gateway()
    logger.info(f"Row update on {table_key} by {user.get('username', user.get('id'))}")
    try:
        result = gw.update_row(table_key, request.identifier, request.updates)
    except RecordsException as e:
        raise _http_error(e)
    return _mutation_response(result)


@app.post("/api/data/{table_key}/rows", response_model=MutationResponse, status_code=201)
def add_row(table_key: str, request: AddRowRequest, user: dict = Depends(get_current_user)):
    """Append a row to a table."""
    gw = _require_gateway()
    logger.info(f"Row insert on {table_key} by {user.get('username', user.get('id'))}")
    try:
        result = gw.add_row(table_key, request.data, client=request.client)
    except RecordsException as e:
        raise _http_error(e)
    return _mutation_response(result)


@app.post("/api/data/{table_key}/inactive", response_model=MutationResponse)
def set_inactive(table_key: str, request: SetInactiveRequest, user: dict = Depends(get_current_user)):
    """Archive or restore the row matching the identifier."""
    gw = _require_gateway()
    logger.info(f"Set inactive={request.inactive} on {table_key} by {user.get('username', user.get('id'))}")
    try:
        result = gw.set_inactive(table_key, request.identifier, inactive=request.inactive)
    except RecordsException as e:
        raise _http_error(e)
    return _mutation_response(result)


@app.post("/api/data/{table_key}/columns", response_model=MutationResponse)
def add_column(table_key: str, request: AddColumnRequest, _: dict = Depends(get_current_user)):
    """Add a header column to a table if it is missing."""
    gw = _require_gateway()
    try:
        result = gw.ensure_column(table_key, request.column)
    except RecordsException as e:
        raise _http_error(e)
    return _mutation_response(result)


# --- Cache ----------------------------------------------------------------


@app.get("/api/cache/stats")
def get_cache_stats(_: dict = Depends(get_current_user)):
    """Get age, TTL and size of every cached table."""
    repo = _require_repository()
    return {"data": repo.cache_stats()}


@app.delete("/api/cache")
def clear_cache(table: Optional[str] = None, _: dict = Depends(get_current_user)):
    """Clear one table from the cache, or the whole cache."""
    repo = _require_repository()
    try:
        repo.invalidate(table)
    except RecordsException as e:
        raise _http_error(e)
    return {"success": True, "cleared": table or "all"}


# --- Preferences ----------------------------------------------------------


@app.get("/api/preferences")
def get_preferences(user: dict = Depends(get_current_user)):
    """Get all preferences of the signed-in user, defaults included."""
    stored = get_preferences_service().get_all(user["id"])
    return {"data": {**DEFAULT_PREFERENCES, **stored}}


@app.post("/api/preferences")
def set_preference(request: PreferenceSetRequest, user: dict = Depends(get_current_user)):
    """Set one preference of the signed-in user."""
    get_preferences_service().set(user["id"], request.key, request.value)
    return {"success": True, "key": request.key, "value": request.value}


@app.delete("/api/preferences")
def delete_preferences(user: dict = Depends(get_current_user)):
    """Reset every preference of the signed-in user."""
    deleted = get_preferences_service().delete_all(user["id"])
    return {"success": True, "deleted": deleted}


@app.get("/api/preferences/{key}")
def get_preference(key: str, user: dict = Depends(get_current_user)):
    """Get one preference, falling back to its default."""
    value = get_preferences_service().get(user["id"], key)
    if value is None:
        value = DEFAULT_PREFERENCES.get(key)
    if value is None:
        raise HTTPException(
            status_code=404,
            detail={"error_code": "not_found", "error_message": f"Preference not found: {key}"}
        )
    return {"key": key, "value": value}


@app.put("/api/preferences/{key}")
def put_preference(key: str, request: PreferenceValueRequest, user: dict = Depends(get_current_user)):
    """Set one preference of the signed-in user."""
    get_preferences_service().set(user["id"], key, request.value)
    return {"success": True, "key": key, "value": request.value}


@app.delete("/api/preferences/{key}")
def delete_preference(key: str, user: dict = Depends(get_current_user)):
    """Delete one preference of the signed-in user."""
    if not get_preferences_service().delete(user["id"], key):
        raise HTTPException(
            status_code=404,
            detail={"error_code": "not_found", "error_message": f"Preference not found: {key}"}
        )
    return {"success": True}


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=config.PORT,
        log_level=config.LOG_LEVEL.lower()
    )
