import subprocess
from unittest.mock import MagicMock, patch

import pytest

from opswand.debug import run_debug_session, tidy_debug_pods
from opswand.errors import NotFound, OpsWandError, ReadinessTimeout, StepError
from opswand.types import (
    ContainerPhase,
    DebugSessionConfig,
    PodInfo,
    WorkloadReference,
)


def _config(copy_pod: bool = False, by_pod: bool = False) -> DebugSessionConfig:
    return DebugSessionConfig(
        workload=WorkloadReference("myapp", "team-a", "prod"),
        debug_image="busybox:stable",
        copy_pod=copy_pod,
        by_pod=by_pod,
    )


def _pod(
    name: str,
    ephemeral: list[str] | None = None,
    debugger: ContainerPhase | None = None,
) -> PodInfo:
    phases = {"debugger": debugger} if debugger else {}
    return PodInfo(
        name=name,
        namespace="team-a",
        node_name="node-1",
        status="Running",
        labels={"app": "myapp"},
        creation_time="2025-01-01T00:00:00Z",
        ephemeral_containers=ephemeral or [],
        container_phases=phases,
    )


def _launcher(exit_code: int = 0) -> MagicMock:
    launcher = MagicMock()
    launcher.attach.return_value = exit_code
    launcher.create_debug_target.return_value = exit_code
    return launcher


class TestRunDebugSession:
    """Tests for pod lookup and selection."""

    @patch("opswand.debug.locate_workload_pods")
    def test_no_pods_is_a_clean_noop(self, mock_locate: MagicMock):
        launcher = _launcher()
        mock_locate.return_value = []

        run_debug_session(_config(), launcher=launcher)

        launcher.attach.assert_not_called()
        launcher.create_debug_target.assert_not_called()

    @patch("opswand.debug.locate_workload_pods")
    def test_pod_lookup_error_is_wrapped(self, mock_locate: MagicMock):
        mock_locate.side_effect = subprocess.CalledProcessError(1, ["kubectl"])

        with pytest.raises(StepError, match="failed to get pods"):
            run_debug_session(_config(), launcher=_launcher())
        mock_locate.assert_called_once()

    @patch("opswand.debug.get_pod")
    @patch("opswand.debug.select_pod")
    @patch("opswand.debug.locate_workload_pods")
    def test_first_pod_used_without_by_pod(
        self, mock_locate: MagicMock, mock_select: MagicMock, mock_get_pod: MagicMock
    ):
        launcher = _launcher()
        mock_locate.return_value = [_pod("pod-1"), _pod("pod-2")]
        mock_get_pod.return_value = _pod("pod-1")

        run_debug_session(_config(), launcher=launcher)

        mock_select.assert_not_called()
        assert launcher.create_debug_target.call_args.args[1] == "pod-1"

    @patch("opswand.debug.get_pod")
    @patch("opswand.debug.select_pod")
    @patch("opswand.debug.locate_workload_pods")
    def test_by_pod_prompts_for_pod(
        self, mock_locate: MagicMock, mock_select: MagicMock, mock_get_pod: MagicMock
    ):
        launcher = _launcher()
        pods = [_pod("pod-1"), _pod("pod-2")]
        mock_locate.return_value = pods
        mock_select.return_value = pods[1]
        mock_get_pod.return_value = pods[1]

        run_debug_session(_config(by_pod=True), launcher=launcher)

        mock_select.assert_called_once_with(pods)
        assert launcher.create_debug_target.call_args.args[1] == "pod-2"


class TestCopyPodMode:
    """Tests for attaching to or creating a debugger pod copy."""

    @patch("opswand.debug.get_pod")
    @patch("opswand.debug.locate_workload_pods")
    def test_attaches_once_debugger_is_running(
        self, mock_locate: MagicMock, mock_get_pod: MagicMock
    ):
        launcher = _launcher()
        sleep = MagicMock()
        mock_locate.return_value = [_pod("pod-1")]
        copy = "pod-1-nais-debugger"
        mock_get_pod.side_effect = [
            _pod(copy),  # existence check
            _pod(copy, debugger=ContainerPhase.PENDING),
            _pod(copy, debugger=ContainerPhase.PENDING),
            _pod(copy, debugger=ContainerPhase.RUNNING),
        ]

        run_debug_session(_config(copy_pod=True), launcher=launcher, sleep=sleep)

        launcher.attach.assert_called_once_with("team-a", copy, "debugger", "prod")
        launcher.create_debug_target.assert_not_called()
        assert sleep.call_count == 2
        mock_get_pod.assert_called_with(copy, "team-a", "prod")

    @patch("opswand.debug.get_pod")
    @patch("opswand.debug.locate_workload_pods")
    def test_times_out_after_six_polls(
        self, mock_locate: MagicMock, mock_get_pod: MagicMock
    ):
        launcher = _launcher()
        sleep = MagicMock()
        mock_locate.return_value = [_pod("pod-1")]
        mock_get_pod.return_value = _pod(
            "pod-1-nais-debugger", debugger=ContainerPhase.PENDING
        )

        with pytest.raises(ReadinessTimeout):
            run_debug_session(_config(copy_pod=True), launcher=launcher, sleep=sleep)

        # one existence check plus six polls
        assert mock_get_pod.call_count == 7
        assert [c.args[0] for c in sleep.call_args_list] == [5] * 6
        launcher.attach.assert_not_called()

    @patch("opswand.debug.get_pod")
    @patch("opswand.debug.locate_workload_pods")
    def test_poll_lookup_error_is_fatal(
        self, mock_locate: MagicMock, mock_get_pod: MagicMock
    ):
        mock_locate.return_value = [_pod("pod-1")]
        mock_get_pod.side_effect = [
            _pod("pod-1-nais-debugger"),
            subprocess.CalledProcessError(1, ["kubectl"]),
        ]

        with pytest.raises(StepError, match="failed to get debug pod copy"):
            run_debug_session(
                _config(copy_pod=True), launcher=_launcher(), sleep=MagicMock()
            )

    @patch("opswand.debug.print_info")
    @patch("opswand.debug.get_pod")
    @patch("opswand.debug.locate_workload_pods")
    def test_creates_copy_when_missing(
        self, mock_locate: MagicMock, mock_get_pod: MagicMock, mock_info: MagicMock
    ):
        launcher = _launcher()
        mock_locate.return_value = [_pod("pod-1")]
        mock_get_pod.side_effect = NotFound("pods not found")

        run_debug_session(_config(copy_pod=True), launcher=launcher)

        launcher.create_debug_target.assert_called_once_with(
            "team-a",
            "pod-1",
            "busybox:stable",
            context="prod",
            copy_to="pod-1-nais-debugger",
            container="debugger",
        )
        messages = [c.args[0] for c in mock_info.call_args_list]
        assert any("--copy-pod" in m and "to attach" in m for m in messages)

    @patch("opswand.debug.get_pod")
    @patch("opswand.debug.locate_workload_pods")
    def test_other_lookup_errors_are_fatal(
        self, mock_locate: MagicMock, mock_get_pod: MagicMock
    ):
        launcher = _launcher()
        mock_locate.return_value = [_pod("pod-1")]
        mock_get_pod.side_effect = subprocess.CalledProcessError(1, ["kubectl"])

        with pytest.raises(StepError, match="existing debug pod copy"):
            run_debug_session(_config(copy_pod=True), launcher=launcher)
        launcher.create_debug_target.assert_not_called()

    @patch("opswand.debug.get_pod")
    @patch("opswand.debug.locate_workload_pods")
    def test_failed_attach_is_fatal(
        self, mock_locate: MagicMock, mock_get_pod: MagicMock
    ):
        mock_locate.return_value = [_pod("pod-1")]
        mock_get_pod.return_value = _pod(
            "pod-1-nais-debugger", debugger=ContainerPhase.RUNNING
        )

        with pytest.raises(OpsWandError, match="attach command failed"):
            run_debug_session(
                _config(copy_pod=True), launcher=_launcher(exit_code=1), sleep=MagicMock()
            )


class TestEphemeralContainerMode:
    """Tests for debugging the live pod with an ephemeral container."""

    @patch("opswand.debug.print_info")
    @patch("opswand.debug.print_warning")
    @patch("opswand.debug.get_pod")
    @patch("opswand.debug.locate_workload_pods")
    def test_warns_about_existing_debug_containers(
        self,
        mock_locate: MagicMock,
        mock_get_pod: MagicMock,
        mock_warning: MagicMock,
        mock_info: MagicMock,
    ):
        launcher = _launcher()
        mock_locate.return_value = [_pod("pod-1")]
        mock_get_pod.return_value = _pod("pod-1", ephemeral=["debugger-x", "debugger-y"])

        run_debug_session(_config(), launcher=launcher)

        mock_warning.assert_called_once()
        assert "2 debug containers" in mock_warning.call_args.args[0]
        messages = [c.args[0] for c in mock_info.call_args_list]
        assert any("opswand tidy myapp -n team-a -c prod" in m for m in messages)
        launcher.create_debug_target.assert_called_once_with(
            "team-a", "pod-1", "busybox:stable", context="prod", target="myapp"
        )

    @patch("opswand.debug.print_warning")
    @patch("opswand.debug.get_pod")
    @patch("opswand.debug.locate_workload_pods")
    def test_no_warning_without_debug_containers(
        self, mock_locate: MagicMock, mock_get_pod: MagicMock, mock_warning: MagicMock
    ):
        launcher = _launcher()
        mock_locate.return_value = [_pod("pod-1")]
        mock_get_pod.return_value = _pod("pod-1")

        run_debug_session(_config(), launcher=launcher)

        mock_warning.assert_not_called()
        launcher.create_debug_target.assert_called_once()

    @patch("opswand.debug.get_pod")
    @patch("opswand.debug.locate_workload_pods")
    def test_interactive_cancel_exit_is_clean(
        self, mock_locate: MagicMock, mock_get_pod: MagicMock
    ):
        mock_locate.return_value = [_pod("pod-1")]
        mock_get_pod.return_value = _pod("pod-1")

        run_debug_session(_config(), launcher=_launcher(exit_code=1))

    @patch("opswand.debug.get_pod")
    @patch("opswand.debug.locate_workload_pods")
    def test_other_exit_codes_are_fatal(
        self, mock_locate: MagicMock, mock_get_pod: MagicMock
    ):
        mock_locate.return_value = [_pod("pod-1")]
        mock_get_pod.return_value = _pod("pod-1")

        with pytest.raises(OpsWandError, match="exit status 2"):
            run_debug_session(_config(), launcher=_launcher(exit_code=2))

    @patch("opswand.debug.get_pod")
    @patch("opswand.debug.locate_workload_pods")
    def test_launcher_start_failure_is_wrapped(
        self, mock_locate: MagicMock, mock_get_pod: MagicMock
    ):
        launcher = _launcher()
        launcher.create_debug_target.side_effect = FileNotFoundError("kubectl")
        mock_locate.return_value = [_pod("pod-1")]
        mock_get_pod.return_value = _pod("pod-1")

        with pytest.raises(StepError, match="failed to start debug command"):
            run_debug_session(_config(), launcher=launcher)


class TestTidyDebugPods:
    @patch("opswand.debug.delete_pod")
    @patch("opswand.debug.locate_workload_pods")
    def test_deletes_existing_copies(
        self, mock_locate: MagicMock, mock_delete: MagicMock
    ):
        mock_locate.return_value = [_pod("pod-1"), _pod("pod-2")]
        mock_delete.side_effect = [None, NotFound("not found")]

        deleted = tidy_debug_pods(WorkloadReference("myapp", "team-a"))

        assert deleted == ["pod-1-nais-debugger"]
        assert mock_delete.call_count == 2

    @patch("opswand.debug.delete_pod")
    @patch("opswand.debug.locate_workload_pods")
    def test_skips_pods_that_are_copies(
        self, mock_locate: MagicMock, mock_delete: MagicMock
    ):
        mock_locate.return_value = [_pod("pod-1-nais-debugger")]

        assert tidy_debug_pods(WorkloadReference("myapp", "team-a")) == []
        mock_delete.assert_not_called()
