"""
Tests for the hot-reloadable SQL trap.
"""

import logging
import threading

from sqlspy.trace_gate import TraceGate


def count_reads(gate, monkeypatch) -> list:
    """Record every read of the config source made by ``gate``."""
    reads = []
    original = gate._read_match_text

    def counting_read():
        reads.append(1)
        return original()

    monkeypatch.setattr(gate, "_read_match_text", counting_read)
    return reads


class TestMatching:
    """Test pattern matching against the config file."""

    def test_no_config_never_matches(self, gate):
        """Without a config file nothing matches."""
        assert gate.matches("SELECT 1 FROM t") is False
        assert gate.matches("") is False
        assert gate.config.pattern is None
        assert gate.config.match_text is None

    def test_missing_key_never_matches(self, gate, write_config):
        """A config file without matchText disables the trap."""
        write_config("otherKey=SELECT .*\n")

        assert gate.matches("SELECT 1") is False

    def test_full_string_match_required(self, gate, write_config):
        """The pattern must match the whole text."""
        write_config("matchText=SELECT .* FROM t\n")

        assert gate.matches("SELECT 1 FROM t") is True
        assert gate.matches("xSELECT 1 FROM t") is False
        assert gate.matches("SELECT 1 FROM tx") is False

    def test_backslashes_kept_literally(self, gate, write_config):
        """Regex escapes in the file should reach the compiler unchanged."""
        write_config("matchText=SELECT\\s+.*\\s+FROM\\s+tblSomething\n")

        assert gate.matches("SELECT  a,b\nFROM tblSomething") is True
        assert gate.matches("SELECT a FROM tblOther") is False

    def test_pattern_and_text_consistent(self, gate, write_config):
        """The compiled pattern always corresponds to the stored text."""
        write_config("matchText=UPDATE .*\n")

        gate.matches("UPDATE t")

        assert gate.config.match_text == "UPDATE .*"
        assert gate.config.pattern.pattern == "UPDATE .*"


class TestReloadThrottle:
    """Test how often the config file is read."""

    def test_one_read_per_window(self, gate, clock, monkeypatch):
        """Calls within the reload interval share a single read."""
        reads = count_reads(gate, monkeypatch)

        gate.matches("a")
        gate.matches("b")
        clock.advance(29.9)
        gate.matches("c")

        assert len(reads) == 1

    def test_reread_after_interval(self, gate, clock, monkeypatch):
        """Once the interval has elapsed the file is read again."""
        reads = count_reads(gate, monkeypatch)

        gate.matches("a")
        clock.advance(30)
        gate.matches("b")

        assert len(reads) == 2

    def test_change_picked_up_after_interval(self, gate, clock, write_config):
        """A new pattern takes effect only after the interval."""
        write_config("matchText=SELECT .*\n")
        assert gate.matches("SELECT 1") is True

        write_config("matchText=DELETE .*\n")
        assert gate.matches("SELECT 1") is True

        clock.advance(30)
        assert gate.matches("SELECT 1") is False
        assert gate.matches("DELETE FROM t") is True

    def test_concurrent_callers_read_once(self, gate, monkeypatch, write_config):
        """Threads racing on a stale config trigger a single read."""
        write_config("matchText=SELECT .*\n")
        reads = count_reads(gate, monkeypatch)
        barrier = threading.Barrier(8)
        results = []

        def worker():
            barrier.wait()
            results.append(gate.matches("SELECT 1"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(reads) == 1
        assert results == [True] * 8

    def test_unchanged_value_keeps_pattern(self, gate, clock, write_config):
        """Rereading the same value keeps the compiled pattern and refreshes the timestamp."""
        write_config("matchText=SELECT .*\n")
        gate.matches("SELECT 1")
        pattern = gate.config.pattern

        clock.advance(30)
        gate.matches("SELECT 1")

        assert gate.config.pattern is pattern
        assert gate.config.loaded_at == clock.now


class TestReloadFailures:
    """Test degraded behavior on bad configuration."""

    def test_removed_file_disables(self, gate, clock, write_config):
        """Deleting the config file turns the trap off."""
        path = write_config("matchText=SELECT .*\n")
        assert gate.matches("SELECT 1") is True

        path.unlink()
        clock.advance(30)

        assert gate.matches("SELECT 1") is False
        assert gate.config.match_text is None

    def test_invalid_pattern_keeps_previous(self, gate, clock, write_config, caplog):
        """A broken pattern is ignored and the previous one stays in force."""
        write_config("matchText=SELECT .*\n")
        assert gate.matches("SELECT 1") is True

        write_config("matchText=SELECT (\n")
        clock.advance(30)
        with caplog.at_level(logging.WARNING, logger="sqlspy.trace_gate"):
            assert gate.matches("SELECT 1") is True

        assert gate.config.match_text == "SELECT .*"
        assert any("ignored" in r.getMessage() for r in caplog.records)

    def test_invalid_pattern_without_previous_stays_disabled(self, gate, write_config):
        """A broken first pattern leaves the trap disabled."""
        write_config("matchText=(\n")

        assert gate.matches("(") is False
        assert gate.config.pattern is None
        assert gate.config.match_text is None

    def test_unreadable_source_leaves_config_unchanged(
        self, gate, clock, config_path, write_config, caplog
    ):
        """An I/O error is logged and the loaded pattern kept."""
        write_config("matchText=SELECT .*\n")
        assert gate.matches("SELECT 1") is True

        config_path.unlink()
        config_path.mkdir()
        clock.advance(30)
        with caplog.at_level(logging.WARNING, logger="sqlspy.trace_gate"):
            assert gate.matches("SELECT 1") is True

        assert gate.config.match_text == "SELECT .*"
        assert gate.config.loaded_at == clock.now
        assert any("cannot read" in r.getMessage() for r in caplog.records)

    def test_undecodable_source_leaves_config_unchanged(self, gate, clock, config_path, caplog):
        """A file that is not UTF-8 is logged and the loaded pattern kept."""
        config_path.write_text("matchText=SELECT .*\n", encoding="utf-8")
        assert gate.matches("SELECT 1") is True

        config_path.write_bytes("matchText=SELECT caf\xe9 .*\n".encode("latin-1"))
        clock.advance(30)
        with caplog.at_level(logging.WARNING, logger="sqlspy.trace_gate"):
            assert gate.matches("SELECT 1") is True

        assert gate.config.match_text == "SELECT .*"
        assert gate.config.loaded_at == clock.now
        assert any("cannot read" in r.getMessage() for r in caplog.records)

    def test_undecodable_first_source_stays_disabled(self, gate, config_path):
        """Bad bytes in the first file read leave the trap off."""
        config_path.write_bytes(b"matchText=\xff\xfe\n")

        assert gate.matches("SELECT 1") is False
        assert gate.config.pattern is None

    def test_reset_forces_reread(self, gate, monkeypatch):
        """reset() makes the next call reload regardless of the interval."""
        reads = count_reads(gate, monkeypatch)

        gate.matches("a")
        gate.reset()
        gate.matches("a")

        assert len(reads) == 2


class TestDefaults:
    """Test default construction."""

    def test_default_interval_is_thirty_seconds(self, tmp_path):
        """The default reload interval is 30 seconds."""
        gate = TraceGate(config_path=tmp_path / "missing.properties")

        assert gate.reload_interval == 30
        assert gate.matches("anything") is False
