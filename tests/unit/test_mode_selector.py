# =============================================================================
# tests/unit/test_mode_selector.py
# Unit Tests for Storage Mode Selection
# =============================================================================


class TestInitialMode:
    """Test the starting mode"""

    def test_cloud_when_remote_configured(self):
        from booktalk_core.offline import ModeSelector, StorageMode

        selector = ModeSelector(remote_configured=True)

        assert selector.mode is StorageMode.CLOUD
        assert selector.is_cloud
        assert not selector.is_downgraded

    def test_local_without_remote(self):
        from booktalk_core.offline import ModeSelector, StorageMode

        selector = ModeSelector(remote_configured=False)

        assert selector.mode is StorageMode.LOCAL
        assert not selector.is_downgraded


class TestDowngrade:
    """Test the one-way CLOUD -> LOCAL switch"""

    def test_downgrade_switches_to_local(self):
        from booktalk_core.offline import ModeSelector, StorageMode

        selector = ModeSelector(remote_configured=True)

        assert selector.downgrade("continue offline") is True
        assert selector.mode is StorageMode.LOCAL
        assert selector.state.reason == "continue offline"
        assert selector.is_downgraded

    def test_downgrade_is_idempotent(self):
        from booktalk_core.offline import ModeSelector

        selector = ModeSelector(remote_configured=True)
        selector.downgrade("first")

        assert selector.downgrade("second") is False
        assert selector.state.reason == "first"

    def test_mode_never_returns_to_cloud(self):
        from booktalk_core.offline import ModeSelector, StorageMode

        selector = ModeSelector(remote_configured=True)
        seen = [selector.mode]
        for reason in ("a", "b", "c"):
            selector.downgrade(reason)
            seen.append(selector.mode)

        assert seen == [StorageMode.CLOUD] + [StorageMode.LOCAL] * 3


class TestCallbacks:
    """Test downgrade notifications"""

    def test_callback_receives_state_once(self):
        from booktalk_core.offline import ModeSelector

        selector = ModeSelector(remote_configured=True)
        received = []
        selector.register_callback(received.append)

        selector.downgrade("schema missing")
        selector.downgrade("again")

        assert len(received) == 1
        assert received[0].reason == "schema missing"

    def test_failing_callback_does_not_block_others(self):
        from booktalk_core.offline import ModeSelector

        selector = ModeSelector(remote_configured=True)
        received = []

        def broken(state):
            raise RuntimeError("boom")

        selector.register_callback(broken)
        selector.register_callback(received.append)
        selector.downgrade("offline")

        assert len(received) == 1

    def test_unregistered_callback_not_called(self):
        from booktalk_core.offline import ModeSelector

        selector = ModeSelector(remote_configured=True)
        received = []
        selector.register_callback(received.append)
        selector.unregister_callback(received.append)

        selector.downgrade("offline")

        assert received == []


class TestStatusDisplay:
    def test_labels(self):
        from booktalk_core.offline import ModeSelector

        selector = ModeSelector(remote_configured=True)
        assert selector.get_status_display()["label"] == "Cloud Synced"

        selector.downgrade("offline")
        status = selector.get_status_display()
        assert status["label"] == "Local Storage"
        assert status["mode"] == "local"
        assert status["downgraded_at"] is not None
