"""Registry of spreadsheet-backed tables."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from app.exceptions import ValidationError

ACTIVE = "Active"
INACTIVE = "Inactive"

DEFAULT_SENSITIVE_FIELDS = ("Password", "PW", "pass", "passwd", "Alt Passwd", "VPN Password")


@dataclass(frozen=True)
class TableSpec:
    """
    Describes one table: a workbook file plus a sheet inside it.

    natural_key lists the columns that together identify a row. Nothing
    enforces their uniqueness; lookups that match more than one row are
    reported as ambiguous by the mutation gateway.

    flag_column is the soft-delete column. "Active" tables mark live rows
    with Active=1; "Inactive" tables mark archived rows with Inactive=1.
    """
    key: str
    file_name: str
    sheet_name: str
    natural_key: Tuple[str, ...]
    flag_column: str = INACTIVE
    client_scoped: bool = True
    path: Optional[str] = None
    search_fields: Tuple[str, ...] = ()
    sensitive_fields: Tuple[str, ...] = field(default=DEFAULT_SENSITIVE_FIELDS)

    @property
    def uses_active_flag(self) -> bool:
        return self.flag_column == ACTIVE


TABLES: Dict[str, TableSpec] = {
    spec.key: spec
    for spec in [
        TableSpec(
            key="companies",
            file_name="companies.xlsx",
            sheet_name="Companies",
            natural_key=("Abbrv",),
            client_scoped=False,
            search_fields=("Company Name", "Abbrv", "Group"),
        ),
        TableSpec(
            key="core",
            file_name="Core.xlsx",
            sheet_name="Infrastructure",
            natural_key=("Client", "Name"),
            search_fields=("Name", "SubName", "IP address", "Description", "Notes"),
        ),
        TableSpec(
            key="users",
            file_name="Users.xlsx",
            sheet_name="Users",
            natural_key=("Client", "Login"),
            flag_column=ACTIVE,
            search_fields=("Name", "Login", "Computer Name", "Phone", "Cell"),
        ),
        TableSpec(
            key="workstations",
            file_name="Workstations.xlsx",
            sheet_name="Workstations",
            natural_key=("Client", "Computer Name"),
            flag_column=ACTIVE,
            search_fields=("Computer Name", "IP Address", "Service Tag", "Description"),
        ),
        TableSpec(
            key="phone_numbers",
            file_name="Phone Numbers.xlsx",
            sheet_name="Sheet1",
            natural_key=("Client", "Name"),
            search_fields=("Name", "Number", "Other"),
        ),
        TableSpec(
            key="emails",
            file_name="Emails.xlsx",
            sheet_name="Email Addresses",
            natural_key=("Client", "Email"),
            flag_column=ACTIVE,
            search_fields=("Username", "Email", "Name"),
        ),
        TableSpec(
            key="external_info",
            file_name="External_Info.xlsx",
            sheet_name="External Info",
            natural_key=("Client", "Connection Type", "IP address"),
            search_fields=("SubName", "Connection Type", "Device Type", "IP address"),
        ),
        TableSpec(
            key="managed_info",
            file_name="Managed_Info.xlsx",
            sheet_name="Sheet1",
            natural_key=("Client", "Provider"),
            flag_column=ACTIVE,
            search_fields=("Provider", "IP 1", "IP 2", "Account #", "Type"),
        ),
        TableSpec(
            key="admin_emails",
            file_name="Admin Emails.xlsx",
            sheet_name="Admin Emails",
            natural_key=("Client", "Email"),
            search_fields=("Name", "Email"),
        ),
        TableSpec(
            key="admin_mitel_logins",
            file_name="Admin Mitel Logins.xlsx",
            sheet_name="Mitel Admins",
            natural_key=("Client", "Login"),
            search_fields=("Login",),
        ),
        TableSpec(
            key="acronis_backups",
            file_name="Acronis Backups.xlsx",
            sheet_name="Sheet1",
            natural_key=("Client", "UserName"),
            search_fields=("UserName",),
        ),
        TableSpec(
            key="cloudflare_admins",
            file_name="Cloudflare_Admins.xlsx",
            sheet_name="CF Admins",
            natural_key=("Client", "username"),
            search_fields=("username",),
        ),
        TableSpec(
            key="guacamole_hosts",
            file_name="GuacamoleHosts.xlsx",
            sheet_name="Sheet1",
            natural_key=("Client", "Cloud Name"),
            search_fields=("Cloud Name", "IP", "Hard Coded IP"),
        ),
        TableSpec(
            key="vms",
            file_name="VMs.xlsx",
            sheet_name="VMs",
            natural_key=("Client", "Name"),
            flag_column=ACTIVE,
            search_fields=("Name", "Host", "IP", "Type"),
        ),
        TableSpec(
            key="containers",
            file_name="Containers.xlsx",
            sheet_name="Containers",
            natural_key=("Client", "Name"),
            search_fields=("Name", "IP", "Grouping", "Host"),
        ),
        TableSpec(
            key="daemons",
            file_name="Daemons.xlsx",
            sheet_name="Daemons",
            natural_key=("Client", "Name"),
            search_fields=("Name", "Host", "IP", "User"),
        ),
    ]
}

ADMIN_CREDENTIAL_TABLES: List[str] = [
    "admin_emails",
    "admin_mitel_logins",
    "acronis_backups",
    "cloudflare_admins",
]


def get_table_spec(table_key: str, tables: Optional[Dict[str, TableSpec]] = None) -> TableSpec:
    """Look up a table by key, raising ValidationError for unknown keys."""
    registry = TABLES if tables is None else tables
    spec = registry.get(table_key)
    if spec is None:
        raise ValidationError(f"Unknown table: {table_key}")
    return spec
