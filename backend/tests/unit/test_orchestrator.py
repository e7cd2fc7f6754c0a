"""Unit tests for the sync run loop (sync/orchestrator.py)"""
import pytest
from unittest.mock import MagicMock, call, patch

from crowdsec_dashboard.lapi.client import LapiError
from crowdsec_dashboard.schemas.lapi_schemas import DecisionStream
from crowdsec_dashboard.sync.orchestrator import SyncOrchestrator, SyncState


@pytest.fixture
def reconciler():
    reconciler = MagicMock()
    reconciler.deactivate_stale_decisions.return_value = 0
    reconciler.prune_old_decisions.return_value = []
    return reconciler


@pytest.fixture
def decision_service():
    service = MagicMock()
    service.decisions_payload.return_value = [{"id": 1}]
    service.hosts_payload.return_value = [{"ip": "1.2.3.4"}]
    return service


@pytest.fixture
def patched(reconciler, decision_service):
    with patch("crowdsec_dashboard.sync.orchestrator.DecisionReconciler", return_value=reconciler), \
         patch("crowdsec_dashboard.sync.orchestrator.DecisionService", return_value=decision_service), \
         patch("crowdsec_dashboard.sync.orchestrator.build_decision_to_alert_map", return_value={}) as linker:
        yield linker


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def broadcaster():
    return MagicMock()


def _orchestrator(client, session, broadcaster, retention_limit=None):
    return SyncOrchestrator(
        session_factory=lambda: session,
        client_factory=lambda: client,
        broadcaster=broadcaster,
        retention_limit=retention_limit,
    )


@pytest.mark.unit
class TestStartupFlag:
    """Full vs delta stream requests"""

    def test_first_run_is_full_then_delta(self, patched, mock_lapi_client, session, broadcaster):
        orchestrator = _orchestrator(mock_lapi_client, session, broadcaster)

        first = orchestrator.run()
        second = orchestrator.run()

        startups = [c.kwargs["startup"] for c in mock_lapi_client.get_decision_stream.call_args_list]
        assert startups == [True, False]
        assert first.full_sync is True
        assert second.full_sync is False
        assert orchestrator.first_fetch is False

    def test_force_full_sync(self, patched, mock_lapi_client, session, broadcaster):
        orchestrator = _orchestrator(mock_lapi_client, session, broadcaster)
        orchestrator.run()

        result = orchestrator.run(force_full_sync=True)

        assert mock_lapi_client.get_decision_stream.call_args.kwargs["startup"] is True
        assert result.full_sync is True

    def test_origins_passed_to_stream(self, patched, mock_lapi_client, session, broadcaster):
        _orchestrator(mock_lapi_client, session, broadcaster).run()

        assert mock_lapi_client.get_decision_stream.call_args.kwargs["origins"] == "crowdsec,cscli"


@pytest.mark.unit
class TestMutualExclusion:
    """At most one run in flight"""

    def test_run_while_running_is_skipped(self, patched, mock_lapi_client, session, broadcaster, reconciler):
        orchestrator = _orchestrator(mock_lapi_client, session, broadcaster)
        orchestrator._lock.acquire()
        try:
            assert orchestrator.run() is None
        finally:
            orchestrator._lock.release()

        mock_lapi_client.get_decision_stream.assert_not_called()
        reconciler.upsert_hosts.assert_not_called()
        broadcaster.broadcast.assert_not_called()

    def test_forced_sync_during_run_applies_to_next_run(self, patched, mock_lapi_client, session, broadcaster):
        orchestrator = _orchestrator(mock_lapi_client, session, broadcaster)
        orchestrator.run()

        orchestrator._lock.acquire()
        orchestrator.run(force_full_sync=True)
        orchestrator._lock.release()
        assert orchestrator.pending_full_sync is True

        result = orchestrator.run()

        assert result.full_sync is True
        assert orchestrator.pending_full_sync is False

    def test_state_returns_to_idle(self, patched, mock_lapi_client, session, broadcaster):
        orchestrator = _orchestrator(mock_lapi_client, session, broadcaster)
        states = []
        mock_lapi_client.get_decision_stream.side_effect = (
            lambda **kwargs: states.append(orchestrator.state) or DecisionStream()
        )

        orchestrator.run()

        assert states == [SyncState.RUNNING]
        assert orchestrator.state == SyncState.IDLE


@pytest.mark.unit
class TestRunSteps:
    """Order and content of one run"""

    def test_new_and_deleted_decisions(
        self, patched, mock_lapi_client, session, broadcaster, reconciler, decision_factory
    ):
        new = [decision_factory(1, "1.1.1.1"), decision_factory(2, "1.1.1.1")]
        deleted = [decision_factory(3, "3.3.3.3")]
        mock_lapi_client.get_decision_stream.return_value = DecisionStream(new=new, deleted=deleted)
        patched.return_value = {1: []}

        result = _orchestrator(mock_lapi_client, session, broadcaster).run()

        patched.assert_called_once_with(new, mock_lapi_client)
        assert reconciler.mock_calls[:8] == [
            call.upsert_hosts(new, {1: []}),
            call.upsert_alerts(new, {1: []}),
            call.upsert_active_decisions(new, {1: []}),
            call.update_host_ban_counts(["1.1.1.1"]),
            call.ensure_hosts_exist(deleted),
            call.upsert_inactive_decisions(deleted),
            call.update_host_ban_counts(["3.3.3.3"]),
            call.deactivate_stale_decisions(reconciler.deactivate_stale_decisions.call_args.args[0]),
        ]
        assert list(reconciler.deactivate_stale_decisions.call_args.args[0]) == [1, 2]
        assert result.new_count == 2
        assert result.deleted_count == 1
        session.close.assert_called_once()

    def test_empty_stream_skips_writes(self, patched, mock_lapi_client, session, broadcaster, reconciler):
        orchestrator = _orchestrator(mock_lapi_client, session, broadcaster)
        orchestrator.first_fetch = False

        orchestrator.run()

        patched.assert_not_called()
        reconciler.upsert_hosts.assert_not_called()
        reconciler.upsert_inactive_decisions.assert_not_called()
        reconciler.deactivate_stale_decisions.assert_not_called()

    def test_stale_deactivation_only_on_full_sync(self, patched, mock_lapi_client, session, broadcaster, reconciler):
        orchestrator = _orchestrator(mock_lapi_client, session, broadcaster)
        reconciler.deactivate_stale_decisions.return_value = 4

        first = orchestrator.run()
        orchestrator.run()

        assert reconciler.deactivate_stale_decisions.call_count == 1
        assert first.stale_count == 4

    def test_prune_with_retention_limit(self, patched, mock_lapi_client, session, broadcaster, reconciler):
        reconciler.prune_old_decisions.return_value = ["5.5.5.5"]

        result = _orchestrator(mock_lapi_client, session, broadcaster, retention_limit=100).run()

        reconciler.prune_old_decisions.assert_called_once_with(100)
        reconciler.update_host_ban_counts.assert_called_with(["5.5.5.5"])
        assert result.pruned_hosts == 1

    def test_no_prune_without_retention_limit(self, patched, mock_lapi_client, session, broadcaster, reconciler):
        _orchestrator(mock_lapi_client, session, broadcaster).run()

        reconciler.prune_old_decisions.assert_not_called()

    def test_broadcasts_current_state(self, patched, mock_lapi_client, session, broadcaster):
        result = _orchestrator(mock_lapi_client, session, broadcaster).run()

        assert broadcaster.broadcast.call_args_list == [
            call("decisions", [{"id": 1}]),
            call("hosts", [{"ip": "1.2.3.4"}]),
        ]
        assert result.active_decisions == 1
        assert result.hosts == 1


@pytest.mark.unit
class TestFailures:
    """Errors abort the run and propagate"""

    def test_stream_failure_propagates(self, patched, mock_lapi_client, session, broadcaster):
        mock_lapi_client.get_decision_stream.side_effect = LapiError("Failed to fetch decision stream: 403 Forbidden")
        orchestrator = _orchestrator(mock_lapi_client, session, broadcaster)

        with pytest.raises(LapiError):
            orchestrator.run()

        assert orchestrator.state == SyncState.IDLE
        assert orchestrator.first_fetch is True
        broadcaster.broadcast.assert_not_called()

    def test_next_run_after_failure_proceeds(self, patched, mock_lapi_client, session, broadcaster):
        mock_lapi_client.get_decision_stream.side_effect = [LapiError("boom"), DecisionStream()]
        orchestrator = _orchestrator(mock_lapi_client, session, broadcaster)

        with pytest.raises(LapiError):
            orchestrator.run()
        result = orchestrator.run()

        assert result is not None
        assert result.full_sync is True

    def test_reconciler_failure_closes_session(
        self, patched, mock_lapi_client, session, broadcaster, reconciler, decision_factory
    ):
        mock_lapi_client.get_decision_stream.return_value = DecisionStream(new=[decision_factory(1)])
        reconciler.upsert_active_decisions.side_effect = RuntimeError("disk full")

        with pytest.raises(RuntimeError):
            _orchestrator(mock_lapi_client, session, broadcaster).run()

        session.close.assert_called_once()
        reconciler.deactivate_stale_decisions.assert_not_called()

    def test_failed_forced_sync_is_retried(self, patched, mock_lapi_client, session, broadcaster):
        orchestrator = _orchestrator(mock_lapi_client, session, broadcaster)
        orchestrator.run()
        mock_lapi_client.get_decision_stream.side_effect = [LapiError("boom"), DecisionStream()]

        with pytest.raises(LapiError):
            orchestrator.run(force_full_sync=True)
        result = orchestrator.run()

        assert result.full_sync is True
