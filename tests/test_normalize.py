"""Tests for the field-normalization layer."""

import json
import math
from datetime import datetime, timezone

import pytest

from fakes import UnreadableBody
from vitals.models import ProcessEntry, Source, Status
from vitals.normalize import (
    clamp_percent,
    first_present,
    normalize_cpu,
    normalize_disk,
    normalize_memory,
    normalize_process,
    normalize_processes,
    normalize_snapshot,
    pick_bytes,
    pick_number,
    rank_processes,
    select_filesystem,
)


class TestPickNumber:
    """Tests for the first-finite-number resolver."""

    def test_returns_first_finite(self):
        """Test the first finite number wins."""
        assert pick_number(None, 12.5, 40) == 12.5

    def test_priority_order(self):
        """Test candidates are tried in order."""
        assert pick_number(1, 2, 3) == 1

    def test_skips_nan_and_infinity(self):
        """Test NaN and infinities are skipped."""
        assert pick_number(math.nan, math.inf, -math.inf, 7) == 7

    def test_skips_non_numbers(self):
        """Test strings, containers and booleans are skipped."""
        assert pick_number("42", [1], {"a": 1}, True, 3.0) == 3.0

    def test_all_missing_returns_none(self):
        """Test None when no candidate qualifies."""
        assert pick_number(None, math.nan, "x") is None
        assert pick_number() is None

    def test_zero_is_a_value(self):
        """Test zero is not treated as missing."""
        assert pick_number(None, 0) == 0

    def test_skips_integers_beyond_float_range(self):
        """Test JSON integers too large for a float are skipped, not raised."""
        huge = json.loads("1" + "0" * 400)
        assert pick_number(huge, 5) == 5
        assert pick_number(10**400) is None
        assert pick_bytes(10**400, 2048) == 2048


class TestClampPercent:
    """Tests for percentage saturation."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(-5.0, 0.0), (0.0, 0.0), (42.7, 42.7), (100.0, 100.0), (100.4, 100.0), (1e9, 100.0)],
    )
    def test_saturates(self, value, expected):
        """Test values saturate into [0, 100]."""
        assert clamp_percent(value) == expected

    def test_none_passes_through(self):
        """Test None stays None."""
        assert clamp_percent(None) is None


def test_pick_bytes_skips_negative():
    """Test negative byte counts are skipped."""
    assert pick_bytes(-1, 2048) == 2048
    assert pick_bytes(-1) is None
    assert pick_bytes(0) == 0


def test_first_present_keeps_falsy_values():
    """Test empty strings count as present."""
    assert first_present(None, "", "/") == ""
    assert first_present(None, None) is None


class TestNormalizeCpu:
    """Tests for the CPU source mapping."""

    def test_canonical_keys(self):
        """Test the canonical cpu keys."""
        cpu = normalize_cpu({"total": 42.7, "user": 30, "system": 10, "iowait": 2.5})
        assert cpu.total == 42.7
        assert cpu.user == 30
        assert cpu.system == 10
        assert cpu.iowait == 2.5

    def test_alias_keys(self):
        """Test the alias cpu keys."""
        cpu = normalize_cpu(
            {"cpu_percent": 55, "user_percent": 40, "system_percent": 12, "iowait_percent": 3}
        )
        assert (cpu.total, cpu.user, cpu.system, cpu.iowait) == (55, 40, 12, 3)

    def test_canonical_key_wins_over_alias(self):
        """Test the canonical key takes priority."""
        assert normalize_cpu({"total": 10, "cpu_percent": 90}).total == 10

    def test_falls_back_when_canonical_key_is_not_numeric(self):
        """Test a non-numeric canonical key falls through to the alias."""
        assert normalize_cpu({"total": None, "total_percent": 33}).total == 33

    def test_clamps(self):
        """Test cpu percentages are clamped."""
        cpu = normalize_cpu({"total": 100.3, "user": -0.1})
        assert cpu.total == 100.0
        assert cpu.user == 0.0

    @pytest.mark.parametrize("raw", [None, [], "oops", 17])
    def test_unusable_input_is_all_none(self, raw):
        """Test non-object bodies map to an empty record."""
        cpu = normalize_cpu(raw)
        assert (cpu.total, cpu.user, cpu.system, cpu.iowait) == (None, None, None, None)


class TestNormalizeMemory:
    """Tests for the memory source mapping."""

    def test_aliases(self):
        """Test the memory aliases."""
        memory = normalize_memory(
            {"mem_percent": 61.2, "used_memory": 2048, "total_memory": 4096, "available_memory": 1024}
        )
        assert memory.percent == 61.2
        assert memory.used == 2048
        assert memory.total == 4096
        assert memory.available == 1024

    def test_only_percent_is_clamped(self):
        """Test byte counts are not clamped."""
        memory = normalize_memory({"used_percent": 130, "total": 16 * 1024**3})
        assert memory.percent == 100.0
        assert memory.total == 16 * 1024**3

    def test_oversized_byte_count_is_none(self):
        """Test an out-of-range integer blanks only its own field."""
        memory = normalize_memory({"percent": 10, "used": 10**400, "total": 8192})
        assert memory.used is None
        assert memory.percent == 10
        assert memory.total == 8192

    def test_missing_fields_are_none(self):
        """Test absent memory fields are None."""
        memory = normalize_memory({"percent": 10})
        assert memory.used is None
        assert memory.available is None


class TestNormalizeDisk:
    """Tests for the filesystem source mapping."""

    def test_prefers_root_mount(self):
        """Test the root mount is chosen over earlier entries."""
        fs = [
            {"mnt_point": "/data", "percent": 20, "size": 100, "used": 20},
            {"mnt_point": "/", "percent": 61, "size": 200, "used": 122},
        ]
        disk = normalize_disk(fs)
        assert disk.mount == "/"
        assert disk.percent == 61
        assert disk.total == 200
        assert disk.used == 122

    def test_mountpoint_alias_selects_root(self):
        """Test the mountpoint alias also identifies root."""
        fs = [{"mountpoint": "/boot", "percent": 5}, {"mountpoint": "/", "used_percent": 48}]
        disk = normalize_disk(fs)
        assert disk.mount == "/"
        assert disk.percent == 48

    def test_falls_back_to_first_entry(self):
        """Test the first entry is used without a root mount."""
        fs = [{"device_name": "sda1", "percent": 30, "total_bytes": 10}, {"mnt_point": "/srv", "percent": 90}]
        disk = normalize_disk(fs)
        assert disk.mount == "sda1"
        assert disk.percent == 30
        assert disk.total == 10

    def test_wrapped_list(self):
        """Test a list wrapped under filesystems."""
        disk = normalize_disk({"filesystems": [{"mnt_point": "/", "percent": 12}]})
        assert disk.mount == "/"
        assert disk.percent == 12

    def test_empty_list_is_all_none(self):
        """Test an empty list yields an empty record."""
        disk = normalize_disk([])
        assert (disk.percent, disk.used, disk.total, disk.mount) == (None, None, None, None)

    def test_bare_object_is_single_entry(self):
        """Test a bare object is read as one filesystem."""
        assert select_filesystem({"mnt_point": "/", "percent": 3}) == {"mnt_point": "/", "percent": 3}

    def test_non_mapping_entries_ignored(self):
        """Test non-object entries are skipped."""
        disk = normalize_disk([None, "junk", {"mnt_point": "/home", "percent": 70}])
        assert disk.mount == "/home"

    def test_failed_source(self):
        """Test a failed fs source yields an empty record."""
        assert normalize_disk(None).percent is None


class TestNormalizeProcesses:
    """Tests for the process-list mapping and ranking."""

    def test_aliases(self):
        """Test the process aliases."""
        entry = normalize_process({"PID": 7, "command": "nginx: worker", "cpu": 3.5, "mem": 1.25})
        assert entry == ProcessEntry(
            name="nginx: worker",
            pid=7,
            cpu_percent=3.5,
            memory_percent=1.25,
            command="nginx: worker",
        )

    def test_cmdline_list_is_joined(self):
        """Test an argv list becomes one command string."""
        entry = normalize_process({"pid": 9, "cmdline": ["python", "-m", "http.server"]})
        assert entry.name == "python -m http.server"
        assert entry.command == "python -m http.server"

    def test_nameless_entries_dropped(self):
        """Test rows without a name are dropped."""
        raw = [{"pid": 1}, {"pid": 2, "name": ""}, {"pid": 3, "name": "   "}, None, {"pid": 4, "name": "ok"}]
        names = [proc.name for proc in normalize_processes(raw, limit=10)]
        assert names == ["ok"]

    def test_percentages_clamped(self):
        """Test process percentages are clamped."""
        entry = normalize_process({"name": "spin", "cpu_percent": 390.0, "memory_percent": -1})
        assert entry.cpu_percent == 100.0
        assert entry.memory_percent == 0.0

    def test_wrapped_list(self):
        """Test a list wrapped under processlist."""
        procs = normalize_processes({"processlist": [{"name": "a", "cpu_percent": 1}]})
        assert [proc.name for proc in procs] == ["a"]

    def test_unusable_input(self):
        """Test non-list bodies yield no processes."""
        assert normalize_processes(None) == []
        assert normalize_processes({"unexpected": 1}) == []

    def test_memory_breaks_cpu_tie(self):
        """Test memory orders processes with equal cpu."""
        raw = [{"name": "a", "cpu": 10, "mem": 5}, {"name": "b", "cpu": 10, "mem": 50}]
        assert [proc.name for proc in normalize_processes(raw, limit=2)] == ["b", "a"]

    def test_ranking_is_stable(self):
        """Test full ties keep their reported order."""
        procs = [
            ProcessEntry(name="first", cpu_percent=5.0, memory_percent=1.0),
            ProcessEntry(name="second", cpu_percent=5.0, memory_percent=1.0),
            ProcessEntry(name="busy", cpu_percent=50.0),
            ProcessEntry(name="third", cpu_percent=5.0, memory_percent=1.0),
        ]
        ranked = rank_processes(procs, limit=10)
        assert [proc.name for proc in ranked] == ["busy", "first", "second", "third"]

    def test_missing_percentages_rank_as_zero(self):
        """Test missing percentages rank as zero."""
        procs = [
            ProcessEntry(name="unknown"),
            ProcessEntry(name="idle", cpu_percent=0.0, memory_percent=0.0),
            ProcessEntry(name="light", cpu_percent=0.1),
        ]
        ranked = rank_processes(procs, limit=10)
        assert [proc.name for proc in ranked] == ["light", "unknown", "idle"]

    def test_truncates_to_limit(self):
        """Test the ranking keeps at most limit entries."""
        procs = [ProcessEntry(name=f"p{i}", cpu_percent=float(i)) for i in range(10)]
        ranked = rank_processes(procs, limit=4)
        assert [proc.name for proc in ranked] == ["p9", "p8", "p7", "p6"]
        assert rank_processes(procs, limit=0) == []


class TestNormalizeSnapshot:
    """End-to-end mapping of one cycle's raw responses."""

    def test_only_cpu_succeeds(self):
        """Test a cycle where only cpu answered."""
        snapshot, outcome = normalize_snapshot(
            {Source.CPU: {"total": 42.7}, Source.MEMORY: None, Source.DISK: None, Source.PROCESSES: None}
        )
        assert snapshot.cpu.total == pytest.approx(42.7)
        assert snapshot.memory.percent is None
        assert snapshot.disk.percent is None
        assert snapshot.processes == ()
        assert outcome.succeeded == frozenset({Source.CPU})
        assert outcome.status is Status.ONLINE

    def test_all_fail(self):
        """Test a cycle where every source failed."""
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        snapshot, outcome = normalize_snapshot({}, captured_at=now)
        assert outcome.status is Status.OFFLINE
        assert snapshot.cpu.total is None
        assert snapshot.memory.percent is None
        assert snapshot.memory.used is None
        assert snapshot.disk.total is None
        assert snapshot.processes == ()
        assert snapshot.captured_at == now

    def test_empty_object_counts_as_success(self):
        """Test an empty object still counts as an answer."""
        _, outcome = normalize_snapshot({Source.MEMORY: {}})
        assert outcome.status is Status.ONLINE

    def test_top_count(self):
        """Test top_count limits the snapshot's processes."""
        raw = {Source.PROCESSES: [{"name": str(i), "cpu": i} for i in range(8)]}
        snapshot, _ = normalize_snapshot(raw, top_count=5)
        assert [proc.name for proc in snapshot.processes] == ["7", "6", "5", "4", "3"]

    def test_unreadable_body_fails_only_its_source(self):
        """Test a body the normalizer cannot map is treated as a failed source."""
        snapshot, outcome = normalize_snapshot(
            {
                Source.CPU: {"total": 12},
                Source.MEMORY: UnreadableBody(),
                Source.DISK: [{"mnt_point": "/", "percent": 40}],
            }
        )
        assert snapshot.cpu.total == 12
        assert snapshot.memory.percent is None
        assert snapshot.disk.percent == 40
        assert outcome.succeeded == frozenset({Source.CPU, Source.DISK})
        assert outcome.status is Status.ONLINE
