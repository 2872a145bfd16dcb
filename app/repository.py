"""Read path: cache-first table loads plus filtering, joining and masking."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence

from app.cache import TableCache
from app.exceptions import NotFoundError
from app.filters import by_active, by_client, mask_sensitive, search_rows, sort_rows
from app.fusion import FusedWorkstation, HostGroup, ResourceDefaults, fuse_workstations_users, group_by_host
from app.records import Company
from app.store import Row, Table, TableStore
from app.tables import ADMIN_CREDENTIAL_TABLES, ACTIVE, TableSpec, get_table_spec

logger = logging.getLogger(__name__)

MAX_LOAD_WORKERS = 4


class RecordsRepository:
    """Composes the store, cache, client filter and fusion engine for reads."""

    def __init__(
        self,
        store: TableStore,
        cache: TableCache,
        defaults: Optional[ResourceDefaults] = None,
        tables: Optional[Dict[str, TableSpec]] = None,
    ):
        self.store = store
        self.cache = cache
        self.defaults = defaults or ResourceDefaults()
        self.tables = tables

    def spec(self, table_key: str) -> TableSpec:
        return get_table_spec(table_key, self.tables)

    def load_table(self, table_key: str, use_cache: bool = True) -> Table:
        """
        Load a table, serving it from the cache when a live entry exists.

        The returned snapshot is a copy; callers may modify it freely.
        """
        self.spec(table_key)
        if use_cache:
            cached = self.cache.get(table_key)
            if cached is not None:
                logger.debug(f"Cache hit for {table_key}")
                return cached.copy()

        # Taken before loading: a write committed during the load bumps it
        generation = self.cache.generation(table_key)
        table = self.store.load(table_key)
        self.cache.set_if_current(table_key, table.copy(), generation)
        return table

    def load_tables(self, table_keys: Sequence[str], use_cache: bool = True) -> Dict[str, Table]:
        """Load several independent tables concurrently. All loads finish before this returns."""
        if len(table_keys) <= 1:
            return {key: self.load_table(key, use_cache) for key in table_keys}
        with ThreadPoolExecutor(max_workers=min(MAX_LOAD_WORKERS, len(table_keys))) as executor:
            futures = {key: executor.submit(self.load_table, key, use_cache) for key in table_keys}
            return {key: future.result() for key, future in futures.items()}

    def read_table(
        self,
        table_key: str,
        client: Optional[str] = None,
        active_only: bool = False,
        search: Optional[str] = None,
        sort: Optional[str] = None,
        direction: str = "asc",
        use_cache: bool = True,
        mask: bool = False,
    ) -> List[Row]:
        """
        Read the rows of one table for display.

        Args:
            table_key: Table to read
            client: Restrict to one tenant (ignored for tables that are not client scoped)
            active_only: Drop soft-deleted rows
            search: Case-insensitive search over the table's search fields
            sort: Column to sort by
            direction: "asc" or "desc"
            use_cache: Serve from the cache when possible
            mask: Replace password-like values with a mask

        Returns:
            Matching rows in table order unless sorted
        """
        spec = self.spec(table_key)
        rows = self.load_table(table_key, use_cache).rows

        if spec.client_scoped:
            rows = by_client(rows, client)
        if active_only:
            rows = by_active(rows, True, spec.flag_column)
        rows = search_rows(rows, search, spec.search_fields)
        if sort:
            rows = sort_rows(rows, sort, direction)
        if mask:
            rows = [mask_sensitive(row, spec.sensitive_fields) for row in rows]
        return rows

    def read_fused_workstations_users(self, client: Optional[str], active_only: bool = False) -> List[FusedWorkstation]:
        """Workstations of a client with their users attached."""
        tables = self.load_tables(["workstations", "users"])
        workstations = tables["workstations"].rows
        users = tables["users"].rows
        if active_only:
            workstations = by_active(by_client(workstations, client), True, ACTIVE)
            users = by_active(by_client(users, client), True, ACTIVE)
        return fuse_workstations_users(workstations, users, client)

    def read_host_groups(
        self, client: Optional[str], search: Optional[str] = None, mask: bool = False
    ) -> Dict[str, HostGroup]:
        """
        Group a client's VMs, containers and daemons by their inferred host.

        With mask=True password-like values are masked in every row, including
        the core row attached to each group as its host info.
        """
        keys = ["vms", "containers", "daemons", "core"]
        tables = self.load_tables(keys)
        scoped = {}
        for key in keys:
            spec = self.spec(key)
            scoped[key] = by_active(by_client(tables[key].rows, client), True, spec.flag_column)
            if mask:
                scoped[key] = [mask_sensitive(row, spec.sensitive_fields) for row in scoped[key]]

        return group_by_host(
            scoped["vms"],
            scoped["containers"],
            scoped["daemons"],
            scoped["core"],
            defaults=self.defaults,
            search=search,
        )

    def read_admin_credentials(self, client: Optional[str], mask: bool = False) -> Dict[str, List[Row]]:
        """Active rows of every admin-credential table for one client."""
        tables = self.load_tables(ADMIN_CREDENTIAL_TABLES)
        result = {}
        for key in ADMIN_CREDENTIAL_TABLES:
            spec = self.spec(key)
            rows = by_active(by_client(tables[key].rows, client), True, spec.flag_column)
            if mask:
                rows = [mask_sensitive(row, spec.sensitive_fields) for row in rows]
            result[key] = rows
        return result

    def list_clients(self) -> List[Dict[str, Any]]:
        """Client dropdown entries built from the companies table, sorted by label."""
        clients = []
        for row in self.load_table("companies").rows:
            company = Company.from_row(row)
            if not company.abbrv or not company.company_name:
                continue
            clients.append({
                "value": company.abbrv,
                "label": f"{company.company_name} ({company.abbrv})",
                "group": company.group or None,
                "status": int(company.status) if company.status is not None else 0,
            })
        clients.sort(key=lambda c: c["label"].lower())
        return clients

    def is_valid_client(self, client: str) -> bool:
        if not client:
            return False
        try:
            return any(c["value"] == client for c in self.list_clients())
        except NotFoundError:
            logger.warning("Companies table not found, cannot validate client")
            return False

    def cache_stats(self) -> Dict[str, Dict[str, Any]]:
        return self.cache.stats()

    def invalidate(self, table_key: Optional[str] = None) -> None:
        """Drop one table from the cache, or every table when no key is given."""
        if table_key is None:
            self.cache.invalidate_all()
            logger.info("Cleared table cache")
            return
        self.spec(table_key)
        self.cache.invalidate(table_key)
        logger.info(f"Cleared cache for {table_key}")
