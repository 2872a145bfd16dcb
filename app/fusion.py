"""Cross-table views: workstation/user fusion and host grouping.

Everything here is pure in-memory computation over rows that have already
been loaded. A join that finds nothing is a valid result, never an error.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from app.filters import by_client, search_rows
from app.records import Container, CoreInfrastructure, Daemon, User, VirtualMachine
from app.utils import ip_prefix, is_ipv4, to_text

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

UNKNOWN_HOST = "Unknown Host"
UNASSIGNED_CONTAINERS = "Unassigned Containers"
SYNTHETIC_HOSTS = (UNKNOWN_HOST, UNASSIGNED_CONTAINERS)

WINDOWS_TOKENS = ("windows", "hyper-v", "hyperv")


@dataclass
class ResourceDefaults:
    """Per-unit allocations for rows without resource columns, and host OS overhead (GB)."""
    container_cores: float = 0
    container_ram: float = 1
    daemon_cores: float = 1
    daemon_ram: float = 2
    windows_os_ram: float = 4
    other_os_ram: float = 1


def _clean_number(value: Optional[float]):
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


# --- Workstation <-> User -------------------------------------------------


@dataclass
class UserSummary:
    """Display fields of one user attached to a workstation."""
    name: str
    login: str
    phone: str
    cell: str
    active: bool

    @classmethod
    def from_row(cls, row: Row) -> "UserSummary":
        user = User.from_row(row)
        return cls(
            name=user.name,
            login=user.login,
            phone=user.phone,
            cell=user.cell,
            active=user.active is None or user.active == 1,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Name": self.name,
            "Login": self.login,
            "Phone": self.phone,
            "Cell": self.cell,
            "Active": 1 if self.active else 0,
        }


@dataclass
class FusedWorkstation:
    """One workstation row with the users signed in to it."""
    workstation: Row
    users: List[UserSummary] = field(default_factory=list)

    @property
    def user_count(self) -> int:
        return len(self.users)

    @property
    def single_user(self) -> Optional[UserSummary]:
        return self.users[0] if self.user_count == 1 else None

    def to_dict(self) -> Dict[str, Any]:
        """
        Flatten for single-line display.

        With exactly one user its fields are copied onto the record; with
        several, they are listed under "users" for expansion.
        """
        single = self.single_user
        return {
            **self.workstation,
            "userCount": self.user_count,
            "UserName": single.name if single else "",
            "UserLogin": single.login if single else "",
            "UserPhone": single.phone if single else "",
            "UserCell": single.cell if single else "",
            "users": [u.to_dict() for u in self.users] if self.user_count > 1 else [],
        }


def fuse_workstations_users(
    workstations: Sequence[Row],
    users: Sequence[Row],
    client: Optional[str] = None,
) -> List[FusedWorkstation]:
    """
    Attach users to workstations by Computer Name.

    A user belongs to a workstation when both Client and Computer Name are
    equal (exact, case-sensitive). All matches are kept in user table order.

    Args:
        workstations: Workstation rows
        users: User rows
        client: Optional tenant to scope both tables to

    Returns:
        One FusedWorkstation per workstation, in workstation table order
    """
    users_by_computer: Dict[Tuple[str, str], List[Row]] = {}
    for row in by_client(users, client):
        computer = to_text(row.get("Computer Name"))
        if not computer:
            continue
        users_by_computer.setdefault((to_text(row.get("Client")), computer), []).append(row)

    fused = []
    for row in by_client(workstations, client):
        key = (to_text(row.get("Client")), to_text(row.get("Computer Name")))
        matches = users_by_computer.get(key, []) if key[1] else []
        fused.append(FusedWorkstation(workstation=row, users=[UserSummary.from_row(u) for u in matches]))

    logger.debug(f"Fused {len(fused)} workstations with {sum(f.user_count for f in fused)} users")
    return fused


# --- Host grouping --------------------------------------------------------


def is_windows_host(host_info: Optional[Row]) -> bool:
    """Guess whether a host runs Windows from its Description, Name and Notes."""
    if not host_info:
        return False
    host = CoreInfrastructure.from_row(host_info)
    text = " ".join([host.description, host.name, host.notes]).lower()
    return any(token in text for token in WINDOWS_TOKENS)


@dataclass
class HostGroup:
    """VMs, containers and daemons inferred to run on one host."""
    name: str
    host_info: Optional[Row] = None
    os_overhead_ram: float = 0
    synthetic: bool = False
    vms: List[Row] = field(default_factory=list)
    containers: List[Row] = field(default_factory=list)
    daemons: List[Row] = field(default_factory=list)
    allocated_cores: float = 0
    allocated_ram: float = 0

    @property
    def host_cores(self) -> Optional[float]:
        return CoreInfrastructure.from_row(self.host_info).cores if self.host_info else None

    @property
    def host_ram(self) -> Optional[float]:
        return CoreInfrastructure.from_row(self.host_info).ram_gb if self.host_info else None

    @property
    def available_ram(self) -> Optional[float]:
        """Host RAM minus the OS overhead, or None when the host RAM is unknown."""
        host_ram = self.host_ram
        if host_ram is None:
            return None
        return host_ram - self.os_overhead_ram

    @property
    def cores_over_allocated(self) -> bool:
        host_cores = self.host_cores
        return host_cores is not None and self.allocated_cores > host_cores

    @property
    def ram_over_allocated(self) -> bool:
        available = self.available_ram
        return available is not None and self.allocated_ram > available

    @property
    def total_items(self) -> int:
        return len(self.vms) + len(self.containers) + len(self.daemons)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "synthetic": self.synthetic,
            "hostInfo": self.host_info,
            "vms": self.vms,
            "containers": self.containers,
            "daemons": self.daemons,
            "allocatedCores": _clean_number(self.allocated_cores),
            "allocatedRam": _clean_number(self.allocated_ram),
            "osOverheadRam": _clean_number(self.os_overhead_ram),
            "hostCores": _clean_number(self.host_cores),
            "hostRam": _clean_number(self.host_ram),
            "availableRam": _clean_number(self.available_ram),
            "coresOverAllocated": self.cores_over_allocated,
            "ramOverAllocated": self.ram_over_allocated,
        }


class HostResolver:
    """
    Resolves the owning host of a VM, container or daemon row.

    Rules are tried in order and the first hit wins:
      1. explicit Host column
      2. row IP equal to a known host IP
      3. row IP in the same /24 (first three octets) as a known host IP
      4. containers only: Grouping and an already discovered host name contain
         one another (case-insensitive), first discovered host wins

    Known host IPs come from hosts named in a VM Host column (their core row
    IP, or the name itself when it is a dotted IPv4 address) and then from
    core rows; VM-discovered hosts take priority. Each index keeps the first
    host seen for an IP or prefix.
    """

    def __init__(self, core_rows: Sequence[Row]):
        self.core_rows = list(core_rows)
        self.by_ip: Dict[str, str] = {}
        self.by_prefix: Dict[str, str] = {}
        self.host_by_ip: Dict[str, str] = {}
        self.host_by_prefix: Dict[str, str] = {}
        for row in self.core_rows:
            host = CoreInfrastructure.from_row(row)
            if not host.ip_address:
                continue
            target = host.name or host.ip_address
            self.by_ip.setdefault(host.ip_address, target)
            if is_ipv4(host.ip_address):
                self.by_prefix.setdefault(ip_prefix(host.ip_address), target)

    def register_host(self, name: str, host_info: Optional[Row] = None) -> None:
        """Index the IPs of a host discovered from a VM Host column."""
        ips = []
        if host_info:
            ip = to_text(host_info.get("IP address")).strip()
            if ip:
                ips.append(ip)
        if is_ipv4(name):
            ips.append(name)
        for ip in ips:
            self.host_by_ip.setdefault(ip, name)
            if is_ipv4(ip):
                self.host_by_prefix.setdefault(ip_prefix(ip), name)

    def resolve(
        self,
        host: str,
        ip: str,
        grouping: str = "",
        discovered: Sequence[str] = (),
    ) -> Optional[str]:
        if host:
            return host
        if ip:
            exact = self.host_by_ip.get(ip) or self.by_ip.get(ip)
            if exact:
                return exact
            if is_ipv4(ip):
                prefix = ip_prefix(ip)
                near = self.host_by_prefix.get(prefix) or self.by_prefix.get(prefix)
                if near:
                    return near
        if grouping:
            needle = grouping.lower()
            for name in discovered:
                candidate = name.lower()
                if candidate in needle or needle in candidate:
                    return name
        return None

    def find_host_info(self, host_name: str) -> Optional[Row]:
        """First core row whose Name matches case-insensitively or whose IP address equals host_name."""
        wanted = host_name.lower()
        for row in self.core_rows:
            host = CoreInfrastructure.from_row(row)
            if (host.name and host.name.lower() == wanted) or (host.ip_address and host.ip_address == host_name):
                return row
        return None


def group_by_host(
    vms: Sequence[Row],
    containers: Sequence[Row],
    daemons: Sequence[Row],
    core: Sequence[Row],
    defaults: Optional[ResourceDefaults] = None,
    search: Optional[str] = None,
) -> Dict[str, HostGroup]:
    """
    Bucket VMs, containers and daemons under their inferred host.

    Rows are processed VMs first, then containers, then daemons, each in
    table order; this order decides which host is "already discovered" for
    the container Grouping match. Unmatched VMs and daemons go to
    "Unknown Host", unmatched containers to "Unassigned Containers".

    Args:
        vms: VM rows
        containers: Container rows
        daemons: Daemon rows
        core: Core infrastructure rows used as the host catalogue
        defaults: Resource defaults (containers/daemons) and OS overheads
        search: Optional case-insensitive filter applied before grouping

    Returns:
        Groups keyed by host name; real hosts alphabetically, synthetic buckets last
    """
    defaults = defaults or ResourceDefaults()
    resolver = HostResolver(core)
    groups: Dict[str, HostGroup] = {}

    if search:
        vms = search_rows(vms, search, ("Name", "Host", "IP"))
        containers = search_rows(containers, search, ("Name", "IP"))
        daemons = search_rows(daemons, search, ("Name", "Host", "IP"))

    def _group(name: str) -> HostGroup:
        if name not in groups:
            synthetic = name in SYNTHETIC_HOSTS
            host_info = None if synthetic else resolver.find_host_info(name)
            overhead = defaults.windows_os_ram if is_windows_host(host_info) else defaults.other_os_ram
            groups[name] = HostGroup(
                name=name,
                host_info=host_info,
                os_overhead_ram=0 if synthetic else overhead,
                synthetic=synthetic,
            )
        return groups[name]

    def _discovered() -> List[str]:
        return [name for name, group in groups.items() if not group.synthetic]

    for row in vms:
        vm = VirtualMachine.from_row(row)
        host_name = resolver.resolve(vm.host, vm.ip) or UNKNOWN_HOST
        is_new = host_name not in groups
        group = _group(host_name)
        if is_new and not group.synthetic:
            resolver.register_host(host_name, group.host_info)
        group.vms.append(row)
        group.allocated_cores += vm.assigned_cores or 0
        group.allocated_ram += vm.startup_memory_gb or 0

    for row in containers:
        container = Container.from_row(row)
        host_name = resolver.resolve(
            container.host, container.ip, container.grouping, _discovered()
        ) or UNASSIGNED_CONTAINERS
        group = _group(host_name)
        group.containers.append(row)
        group.allocated_cores += defaults.container_cores
        group.allocated_ram += defaults.container_ram

    for row in daemons:
        daemon = Daemon.from_row(row)
        host_name = resolver.resolve(daemon.host, daemon.ip) or UNKNOWN_HOST
        group = _group(host_name)
        group.daemons.append(row)
        group.allocated_cores += defaults.daemon_cores
        group.allocated_ram += defaults.daemon_ram

    ordered = sorted(groups.values(), key=lambda g: (g.synthetic, g.name.lower(), g.name))
    for group in ordered:
        if group.cores_over_allocated or group.ram_over_allocated:
            logger.info(
                f"Host {group.name} over-allocated: cores {group.allocated_cores}/{group.host_cores}, "
                f"RAM {group.allocated_ram}/{group.available_ram}GB"
            )
    return {group.name: group for group in ordered}
