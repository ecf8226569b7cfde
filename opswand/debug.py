"""Ephemeral debug containers for running workloads."""

import subprocess
import time
from typing import Callable

from opswand.errors import NotFound, OpsWandError, StepError
from opswand.kubernetes import delete_pod, get_pod, select_pod
from opswand.launcher import KubectlLauncher, RemoteProcessLauncher
from opswand.locator import locate_workload_pods
from opswand.polling import poll_until
from opswand.types import (
    DEBUGGER_CONTAINER_NAME,
    DEBUGGER_SUFFIX,
    ContainerPhase,
    DebugContainer,
    DebugSessionConfig,
    WorkloadReference,
    debugger_pod_name,
)
from opswand.ui import print_info, print_step, print_success, print_warning

POLL_ATTEMPTS = 6
POLL_INTERVAL = 5  # seconds

# kubectl debug exits with 1 when the operator leaves the debugger shell
EXPECTED_CANCEL_EXIT_CODE = 1


def _command_hint(command: str, workload: WorkloadReference, *flags: str) -> str:
    cmd = f"opswand {command} {workload.workload_name} -n {workload.namespace}"
    if workload.context:
        cmd += f" -c {workload.context}"
    return " ".join([cmd, *flags])


def _find_pods(workload: WorkloadReference):
    print_step("Fetching workload...")
    try:
        return locate_workload_pods(workload)
    except (subprocess.CalledProcessError, OpsWandError) as e:
        raise StepError("failed to get pods", e) from e


def wait_for_debugger(
    config: DebugSessionConfig,
    container: DebugContainer,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Poll the copy pod until its debugger container is Running.

    Raises ReadinessTimeout after POLL_ATTEMPTS misses.
    """
    workload = config.workload
    copy_name = container.generated_name

    def debugger_running() -> bool:
        try:
            pod = get_pod(copy_name, workload.namespace, workload.context)
        except (subprocess.CalledProcessError, OpsWandError) as e:
            raise StepError(f"failed to get debug pod copy {copy_name}", e) from e
        container.phase = pod.container_phases.get(
            DEBUGGER_CONTAINER_NAME, ContainerPhase.UNKNOWN
        )
        return container.phase is ContainerPhase.RUNNING

    def report(attempt: int, attempts: int) -> None:
        remaining = (attempts - attempt + 1) * POLL_INTERVAL
        print_info(f"Attempt {attempt}/{attempts}: Time remaining: {remaining} seconds")

    poll_until(
        debugger_running,
        attempts=POLL_ATTEMPTS,
        interval=POLL_INTERVAL,
        sleep=sleep,
        on_attempt=report,
        what=f"Container '{DEBUGGER_CONTAINER_NAME}' in {copy_name} running",
    )
    print_success("Container is running. Attaching...")


def attach_to_debug_container(
    config: DebugSessionConfig, pod_name: str, launcher: RemoteProcessLauncher
) -> None:
    workload = config.workload
    print_step(f"Attaching to pod [blue]{pod_name}[/blue]...")
    try:
        exit_code = launcher.attach(
            workload.namespace, pod_name, DEBUGGER_CONTAINER_NAME, workload.context
        )
    except OSError as e:
        raise StepError("failed to start attach command", e) from e

    if exit_code != 0:
        raise OpsWandError(f"attach command failed: exit status {exit_code}")


def create_debug_container(
    config: DebugSessionConfig, pod_name: str, launcher: RemoteProcessLauncher
) -> None:
    workload = config.workload
    if config.copy_pod:
        copy_name = debugger_pod_name(pod_name)
        print_step(f"Creating debugging pod copy [blue]{copy_name}[/blue]...")
        kwargs = {"copy_to": copy_name, "container": DEBUGGER_CONTAINER_NAME}
    else:
        print_step(f"Creating debugging container in pod [blue]{pod_name}[/blue]...")
        kwargs = {"target": workload.workload_name}
    print_info(f"Using debugger image [cyan]{config.debug_image}[/cyan]")

    try:
        exit_code = launcher.create_debug_target(
            workload.namespace,
            pod_name,
            config.debug_image,
            context=workload.context,
            **kwargs,
        )
    except OSError as e:
        raise StepError("failed to start debug command", e) from e

    if exit_code == EXPECTED_CANCEL_EXIT_CODE:
        print_info("Debugging container exited")
        return
    if exit_code != 0:
        raise OpsWandError(f"debug command failed: exit status {exit_code}")

    if config.copy_pod:
        print_info(
            f"Run '{_command_hint('debug', workload, '--copy-pod')}' to attach to the debug pod"
        )


def debug_pod(
    config: DebugSessionConfig,
    pod_name: str,
    launcher: RemoteProcessLauncher,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    workload = config.workload

    if config.copy_pod:
        container = DebugContainer(owner_pod_name=pod_name)
        copy_name = container.generated_name
        try:
            get_pod(copy_name, workload.namespace, workload.context)
        except NotFound:
            pass
        except (subprocess.CalledProcessError, OpsWandError) as e:
            raise StepError(
                f"failed to check for existing debug pod copy {copy_name}", e
            ) from e
        else:
            print_info(f"{copy_name} already exists, trying to attach...")
            wait_for_debugger(config, container, sleep)
            attach_to_debug_container(config, copy_name, launcher)
            return
    else:
        try:
            pod = get_pod(pod_name, workload.namespace, workload.context)
        except (subprocess.CalledProcessError, OpsWandError) as e:
            raise StepError(f"failed to get pod {pod_name}", e) from e

        if pod.ephemeral_containers:
            print_warning(
                f"The pod {pod_name} already has {len(pod.ephemeral_containers)} debug containers."
            )
            print_info(
                f"Please consider using '{_command_hint('tidy', workload)}' to clean up"
            )

    create_debug_container(config, pod_name, launcher)


def run_debug_session(
    config: DebugSessionConfig,
    launcher: RemoteProcessLauncher | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Attach to or create a debug container for one of the workload's pods.

    Returns quietly when the workload has no pods. Raises OpsWandError on any
    fatal failure.
    """
    launcher = launcher or KubectlLauncher()

    pods = _find_pods(config.workload)
    if not pods:
        print_info("No pods found.")
        return

    pod_name = pods[0].name
    if config.by_pod and len(pods) > 1:
        pod_name = select_pod(pods).name

    debug_pod(config, pod_name, launcher, sleep)


def tidy_debug_pods(workload: WorkloadReference) -> list[str]:
    """Delete the debugger pod copies of every pod in the workload."""
    deleted: list[str] = []
    for pod in _find_pods(workload):
        if pod.name.endswith(DEBUGGER_SUFFIX):
            continue
        copy_name = debugger_pod_name(pod.name)
        try:
            delete_pod(copy_name, workload.namespace, workload.context)
        except NotFound:
            continue
        except subprocess.CalledProcessError as e:
            raise StepError(f"failed to delete debug pod copy {copy_name}", e) from e
        print_success(f"Deleted [blue]{copy_name}[/blue]")
        deleted.append(copy_name)
    return deleted
