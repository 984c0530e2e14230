"""
Tests for xlat464.notify module.
"""

from xlat464.config import (
    ACTION_NAT_464XLAT_STATE_CHANGED,
    DATA_CLAT_INTERFACE,
    DATA_STATE,
    DATA_UPSTREAM_INTERFACE,
)
from xlat464.notify import (
    BroadcastNotifier,
    CompositeNotifier,
    StateChange,
    StateFileNotifier,
)

from conftest import RecordingNotifier


class TestStateChange:
    """Tests for StateChange."""

    def test_extras(self):
        """Payload uses the broadcast keys."""
        change = StateChange("running", "rmnet0", "clat")

        assert change.action == ACTION_NAT_464XLAT_STATE_CHANGED
        assert change.to_extras() == {
            DATA_STATE: "running",
            DATA_UPSTREAM_INTERFACE: "rmnet0",
            DATA_CLAT_INTERFACE: "clat",
        }


class TestBroadcastNotifier:
    """Tests for BroadcastNotifier."""

    def test_fan_out(self):
        """Every subscriber receives the change."""
        notifier = BroadcastNotifier()
        first, second = [], []
        notifier.subscribe(first.append)
        notifier.subscribe(second.append)

        notifier.notify("running", "rmnet0", "clat")

        assert [c.state for c in first] == ["running"]
        assert [c.upstream_interface for c in second] == ["rmnet0"]

    def test_unsubscribe(self):
        """Unsubscribed callbacks are not called."""
        notifier = BroadcastNotifier()
        seen = []
        notifier.subscribe(seen.append)
        notifier.unsubscribe(seen.append)

        notifier.notify("stopping", "rmnet0", "clat")

        assert seen == []

    def test_failing_subscriber_contained(self):
        """A raising subscriber does not block the others."""
        notifier = BroadcastNotifier()
        seen = []

        def broken(change):
            raise RuntimeError("boom")

        notifier.subscribe(broken)
        notifier.subscribe(seen.append)

        notifier.notify("running", "rmnet0", "clat")

        assert len(seen) == 1

    def test_history_bounded(self):
        """History keeps only the most recent changes."""
        notifier = BroadcastNotifier(history_size=2)
        for state in ("running", "stopping", "running"):
            notifier.notify(state, "rmnet0", "clat")

        assert [c.state for c in notifier.history()] == ["stopping", "running"]
        assert notifier.last().state == "running"

    def test_last_empty(self):
        """No announcements means no last change."""
        assert BroadcastNotifier().last() is None


class TestStateFileNotifier:
    """Tests for StateFileNotifier."""

    def test_writes_latest(self, tmp_path):
        """The status file holds the latest announcement."""
        path = tmp_path / "run" / "status.json"
        notifier = StateFileNotifier(str(path))

        assert notifier.read() is None

        notifier.notify("running", "rmnet0", "clat")
        notifier.notify("stopping", "rmnet0", "clat")

        record = notifier.read()
        assert record["state"] == "stopping"
        assert record["action"] == ACTION_NAT_464XLAT_STATE_CHANGED
        assert record["extras"][DATA_UPSTREAM_INTERFACE] == "rmnet0"
        assert not (tmp_path / "run" / "status.json.tmp").exists()


class TestCompositeNotifier:
    """Tests for CompositeNotifier."""

    def test_forwards_to_all(self):
        """Each sink receives each announcement."""
        a, b = RecordingNotifier(), RecordingNotifier()
        CompositeNotifier(a, b).notify("running", "rmnet0", "clat")

        assert a.calls == b.calls == [("running", "rmnet0", "clat")]

    def test_failing_sink_contained(self, tmp_path):
        """A sink that cannot write does not stop later sinks."""
        blocker = tmp_path / "file"
        blocker.write_text("x")
        broken = StateFileNotifier(str(blocker / "status.json"))
        good = RecordingNotifier()

        CompositeNotifier(broken, good).notify("running", "rmnet0", "clat")

        assert good.calls == [("running", "rmnet0", "clat")]
