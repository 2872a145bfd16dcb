"""Tests for app/fusion.py - workstation/user fusion and host grouping."""

from app.fusion import (
    UNASSIGNED_CONTAINERS,
    UNKNOWN_HOST,
    HostResolver,
    ResourceDefaults,
    fuse_workstations_users,
    group_by_host,
    is_windows_host,
)


class TestFuseWorkstationsUsers:
    """Tests for fuse_workstations_users()."""

    workstations = [
        {"Client": "ACME", "Computer Name": "W1"},
        {"Client": "ACME", "Computer Name": "W2"},
        {"Client": "ACME", "Computer Name": "W3"},
        {"Client": "BT", "Computer Name": "W1"},
    ]
    users = [
        {"Client": "ACME", "Computer Name": "W1", "Name": "U1", "Login": "u1", "Phone": "100"},
        {"Client": "ACME", "Computer Name": "W1", "Name": "U2", "Login": "u2"},
        {"Client": "ACME", "Computer Name": "W2", "Name": "U3", "Login": "u3", "Cell": "555"},
        {"Client": "BT", "Computer Name": "W1", "Name": "U4", "Login": "u4"},
        {"Client": "ACME", "Computer Name": "w3", "Name": "U5", "Login": "u5"},
    ]

    def test_two_users_on_one_workstation(self):
        fused = fuse_workstations_users(self.workstations, self.users, "ACME")
        w1 = fused[0]
        assert w1.user_count == 2
        assert [u.name for u in w1.users] == ["U1", "U2"]

        record = w1.to_dict()
        assert record["userCount"] == 2
        assert [u["Name"] for u in record["users"]] == ["U1", "U2"]
        assert record["UserName"] == ""

    def test_single_user_flattened(self):
        record = fuse_workstations_users(self.workstations, self.users, "ACME")[1].to_dict()
        assert record["userCount"] == 1
        assert record["UserName"] == "U3"
        assert record["UserLogin"] == "u3"
        assert record["UserCell"] == "555"
        assert record["users"] == []
        assert record["Computer Name"] == "W2"

    def test_computer_name_is_case_sensitive(self):
        w3 = fuse_workstations_users(self.workstations, self.users, "ACME")[2]
        assert w3.user_count == 0
        assert w3.to_dict()["UserName"] == ""

    def test_client_scoped(self):
        fused = fuse_workstations_users(self.workstations, self.users, "BT")
        assert len(fused) == 1
        assert [u.name for u in fused[0].users] == ["U4"]

    def test_without_client_still_matches_on_client(self):
        fused = fuse_workstations_users(self.workstations, self.users)
        assert [f.user_count for f in fused] == [2, 1, 0, 1]

    def test_blank_computer_names_never_match(self):
        workstations = [{"Client": "ACME"}]
        users = [{"Client": "ACME", "Name": "Nobody"}]
        assert fuse_workstations_users(workstations, users)[0].user_count == 0

    def test_keeps_workstation_order(self):
        fused = fuse_workstations_users(self.workstations, self.users, "ACME")
        assert [f.workstation["Computer Name"] for f in fused] == ["W1", "W2", "W3"]


CORE = [
    {"Client": "ACME", "Name": "H1", "IP address": "10.0.0.5", "Description": "Hyper-V", "Cores": 4, "Ram (GB)": 32},
    {"Client": "ACME", "Name": "H2", "IP address": "10.0.1.5", "Description": "Ubuntu", "Cores": 8, "Ram (GB)": 16},
]


class TestGroupByHost:
    """Tests for group_by_host()."""

    def test_resolution_rules(self):
        vms = [
            {"Name": "V1", "Host": "H1"},
            {"Name": "V2", "IP": "10.0.0.77"},
        ]
        containers = [{"Name": "C1", "Grouping": "h1-docker"}]
        groups = group_by_host(vms, containers, [], CORE)

        assert [r["Name"] for r in groups["H1"].vms] == ["V1", "V2"]
        assert [r["Name"] for r in groups["H1"].containers] == ["C1"]

    def test_exact_ip_match(self):
        groups = group_by_host([{"Name": "V1", "IP": "10.0.1.5"}], [], [], CORE)
        assert list(groups) == ["H2"]

    def test_explicit_host_wins_over_ip(self):
        groups = group_by_host([{"Name": "V1", "Host": "Other", "IP": "10.0.0.5"}], [], [], CORE)
        assert list(groups) == ["Other"]
        assert groups["Other"].host_info is None

    def test_fuzzy_match_first_discovered_wins(self):
        vms = [{"Name": "V1", "Host": "HV01-B"}, {"Name": "V2", "Host": "HV01"}]
        containers = [{"Name": "C1", "Grouping": "hv01"}]
        groups = group_by_host(vms, containers, [], [])
        assert [r["Name"] for r in groups["HV01-B"].containers] == ["C1"]
        assert groups["HV01"].containers == []

    def test_fuzzy_match_only_for_containers(self):
        vms = [{"Name": "V1", "Host": "H1"}]
        daemons = [{"Name": "D1", "Grouping": "h1"}]
        groups = group_by_host(vms, [], daemons, CORE)
        assert [r["Name"] for r in groups[UNKNOWN_HOST].daemons] == ["D1"]

    def test_fuzzy_match_ignores_undiscovered_hosts(self):
        containers = [{"Name": "C1", "Grouping": "h2"}]
        groups = group_by_host([], containers, [], CORE)
        assert list(groups) == [UNASSIGNED_CONTAINERS]

    def test_dotted_ip_host_name_is_a_known_host(self):
        vms = [{"Name": "V1", "Host": "10.0.0.50"}]
        containers = [{"Name": "C1", "IP": "10.0.0.9"}]
        groups = group_by_host(vms, containers, [], [])
        assert list(groups) == ["10.0.0.50"]
        assert [r["Name"] for r in groups["10.0.0.50"].containers] == ["C1"]

    def test_vm_discovered_host_beats_core_prefix(self):
        vms = [{"Name": "V1", "Host": "10.0.0.7"}]
        containers = [
            {"Name": "C1", "IP": "10.0.0.9"},
            {"Name": "C2", "IP": "10.0.0.5"},
        ]
        groups = group_by_host(vms, containers, [], CORE)
        assert [r["Name"] for r in groups["10.0.0.7"].containers] == ["C1"]
        assert [r["Name"] for r in groups["H1"].containers] == ["C2"]

    def test_vm_discovered_host_ip_from_core_row(self):
        core = [
            {"Name": "A", "IP address": "10.3.0.1"},
            {"Name": "B", "IP address": "10.3.0.2"},
        ]
        vms = [{"Name": "V1", "Host": "B"}]
        daemons = [{"Name": "D1", "IP": "10.3.0.200"}]
        groups = group_by_host(vms, [], daemons, core)
        assert list(groups) == ["B"]
        assert [r["Name"] for r in groups["B"].daemons] == ["D1"]

    def test_unmatched_buckets(self):
        groups = group_by_host(
            [{"Name": "V9", "IP": "172.16.0.1"}],
            [{"Name": "C9"}],
            [{"Name": "D9"}],
            CORE,
        )
        assert [r["Name"] for r in groups[UNKNOWN_HOST].vms] == ["V9"]
        assert [r["Name"] for r in groups[UNKNOWN_HOST].daemons] == ["D9"]
        assert [r["Name"] for r in groups[UNASSIGNED_CONTAINERS].containers] == ["C9"]

    def test_ordering(self):
        vms = [
            {"Name": "V1", "Host": "zeta"},
            {"Name": "V2", "IP": "192.168.99.1"},
            {"Name": "V3", "Host": "Alpha"},
        ]
        groups = group_by_host(vms, [{"Name": "C1"}], [], [])
        assert list(groups) == ["Alpha", "zeta", UNASSIGNED_CONTAINERS, UNKNOWN_HOST]

    def test_allocations_with_defaults(self):
        vms = [{"Name": "V1", "Host": "H2", "Assigned cores": 2, "Startup memory (GB)": 4}]
        containers = [{"Name": "C1", "Host": "H2"}]
        daemons = [{"Name": "D1", "Host": "H2"}]
        group = group_by_host(vms, containers, daemons, CORE)["H2"]
        assert group.allocated_cores == 3
        assert group.allocated_ram == 7
        assert group.total_items == 3

    def test_custom_defaults(self):
        defaults = ResourceDefaults(container_cores=1, container_ram=0.5, daemon_cores=0, daemon_ram=1)
        group = group_by_host([], [{"Name": "C1", "Host": "H2"}], [{"Name": "D1", "Host": "H2"}], CORE, defaults)["H2"]
        assert group.allocated_cores == 1
        assert group.allocated_ram == 1.5

    def test_core_over_allocation(self):
        vms = [{"Name": f"V{i}", "Host": "H1", "Assigned cores": 2} for i in range(3)]
        group = group_by_host(vms, [], [], CORE)["H1"]
        assert group.allocated_cores == 6
        assert group.host_cores == 4
        assert group.cores_over_allocated is True
        assert group.to_dict()["allocatedCores"] == 6

    def test_ram_over_allocation_uses_os_overhead(self):
        vms = [{"Name": "V1", "Host": "H1", "Startup memory (GB)": 29}]
        group = group_by_host(vms, [], [], CORE)["H1"]
        assert group.os_overhead_ram == 4
        assert group.available_ram == 28
        assert group.ram_over_allocated is True

    def test_non_windows_overhead(self):
        group = group_by_host([{"Name": "V1", "Host": "H2", "Startup memory (GB)": 15}], [], [], CORE)["H2"]
        assert group.os_overhead_ram == 1
        assert group.available_ram == 15
        assert group.ram_over_allocated is False

    def test_unknown_capacity_never_flags(self):
        vms = [{"Name": "V1", "Host": "Mystery", "Assigned cores": 64, "Startup memory (GB)": 512}]
        group = group_by_host(vms, [], [], CORE)["Mystery"]
        assert group.cores_over_allocated is False
        assert group.ram_over_allocated is False
        assert group.available_ram is None

    def test_synthetic_buckets_have_no_overhead(self):
        group = group_by_host([{"Name": "V1"}], [], [], CORE)[UNKNOWN_HOST]
        assert group.synthetic is True
        assert group.os_overhead_ram == 0

    def test_search_narrows_before_grouping(self):
        vms = [{"Name": "web01", "Host": "H1"}, {"Name": "db01", "Host": "H2"}]
        groups = group_by_host(vms, [], [], CORE, search="WEB")
        assert list(groups) == ["H1"]

    def test_string_resource_values(self):
        vms = [{"Name": "V1", "Host": "H2", "Assigned cores": "2", "Startup memory (GB)": "8 GB"}]
        group = group_by_host(vms, [], [], CORE)["H2"]
        assert group.allocated_cores == 2
        assert group.allocated_ram == 8

    def test_empty_input(self):
        assert group_by_host([], [], [], CORE) == {}


class TestHostResolver:
    """Tests for HostResolver."""

    def test_first_core_row_wins_for_prefix(self):
        core = [
            {"Name": "A", "IP address": "10.0.0.1"},
            {"Name": "B", "IP address": "10.0.0.2"},
        ]
        resolver = HostResolver(core)
        assert resolver.resolve("", "10.0.0.99") == "A"
        assert resolver.resolve("", "10.0.0.2") == "B"

    def test_find_host_info_by_name_or_ip(self):
        resolver = HostResolver(CORE)
        assert resolver.find_host_info("h1")["Name"] == "H1"
        assert resolver.find_host_info("10.0.1.5")["Name"] == "H2"
        assert resolver.find_host_info("nope") is None

    def test_registered_host_takes_priority(self):
        resolver = HostResolver(CORE)
        resolver.register_host("HOSTX", {"Name": "HOSTX", "IP address": "10.0.0.6"})
        assert resolver.resolve("", "10.0.0.6") == "HOSTX"
        assert resolver.resolve("", "10.0.0.99") == "HOSTX"
        assert resolver.resolve("", "10.0.0.5") == "H1"

    def test_register_dotted_ip_name(self):
        resolver = HostResolver([])
        resolver.register_host("192.168.4.10")
        assert resolver.resolve("", "192.168.4.10") == "192.168.4.10"
        assert resolver.resolve("", "192.168.4.77") == "192.168.4.10"

    def test_register_keeps_first_host(self):
        resolver = HostResolver([])
        resolver.register_host("A", {"IP address": "10.2.0.1"})
        resolver.register_host("B", {"IP address": "10.2.0.2"})
        assert resolver.resolve("", "10.2.0.50") == "A"
        assert resolver.resolve("", "10.2.0.2") == "B"

    def test_non_ipv4_not_prefix_matched(self):
        resolver = HostResolver([{"Name": "A", "IP address": "fe80::1"}])
        assert resolver.resolve("", "fe80::2") is None


class TestIsWindowsHost:
    """Tests for is_windows_host()."""

    def test_tokens(self):
        assert is_windows_host({"Description": "Windows Server 2022"})
        assert is_windows_host({"Name": "HYPERV-01"})
        assert is_windows_host({"Notes": "runs hyper-v role"})
        assert not is_windows_host({"Description": "Proxmox"})
        assert not is_windows_host(None)
