"""Kubernetes operations for opswand, backed by kubectl JSON output."""

import json
import logging
import os
import subprocess
from typing import Any

import typer

from opswand.errors import AlreadyExists, NotFound, OpsWandError
from opswand.types import ContainerPhase, PodInfo

logger = logging.getLogger(__name__)


# ===== kubectl invocation =====


def _kubectl(args: list[str], context: str = "", stdin: str | None = None) -> str:
    cmd = ["kubectl"] + args
    if context:
        cmd.extend(["--context", context])

    logger.debug("Running %s", " ".join(cmd))
    try:
        result = subprocess.run(
            cmd, input=stdin, capture_output=True, text=True, check=False
        )
    except OSError as e:
        raise OpsWandError(f"failed to run kubectl: {e}") from e

    if result.returncode != 0:
        stderr = result.stderr or ""
        if "NotFound" in stderr or "not found" in stderr:
            raise NotFound(stderr.strip())
        if "AlreadyExists" in stderr or "already exists" in stderr:
            raise AlreadyExists(stderr.strip())
        raise subprocess.CalledProcessError(
            result.returncode, cmd, result.stdout, result.stderr
        )
    return result.stdout


def _get_json(args: list[str], context: str = "") -> dict[str, Any]:
    return json.loads(_kubectl(args + ["-o", "json"], context=context))


# ===== Pods =====


def _container_phase(state: dict[str, Any]) -> ContainerPhase:
    if "running" in state:
        return ContainerPhase.RUNNING
    if "waiting" in state:
        return ContainerPhase.PENDING
    if "terminated" in state:
        return ContainerPhase.TERMINATED
    return ContainerPhase.UNKNOWN


def _parse_pod(item: dict[str, Any]) -> PodInfo:
    spec = item.get("spec", {})
    status = item.get("status", {})

    phases: dict[str, ContainerPhase] = {}
    for container_status in status.get("containerStatuses", []) + status.get(
        "ephemeralContainerStatuses", []
    ):
        phases[container_status["name"]] = _container_phase(
            container_status.get("state", {})
        )

    return PodInfo(
        name=item["metadata"]["name"],
        namespace=item["metadata"]["namespace"],
        node_name=spec.get("nodeName", ""),
        status=status.get("phase", "Unknown"),
        labels=item["metadata"].get("labels", {}),
        creation_time=item["metadata"].get("creationTimestamp", ""),
        ephemeral_containers=[c["name"] for c in spec.get("ephemeralContainers", [])],
        container_phases=phases,
    )


def get_pods_by_label(
    namespace: str | None, label_selector: str | None, context: str = ""
) -> list[PodInfo]:
    cmd = ["get", "pods"]
    if namespace:
        cmd.extend(["-n", namespace])
    if label_selector:
        cmd.extend(["-l", label_selector])

    pods_json = _get_json(cmd, context=context)
    return [_parse_pod(item) for item in pods_json.get("items", [])]


def get_pod(name: str, namespace: str, context: str = "") -> PodInfo:
    """Fetch a single pod. Raises NotFound if it does not exist."""
    return _parse_pod(_get_json(["get", "pod", name, "-n", namespace], context=context))


def delete_pod(name: str, namespace: str, context: str = "") -> None:
    _kubectl(["delete", "pod", name, "-n", namespace, "--wait=false"], context=context)


def current_context() -> str:
    return _kubectl(["config", "current-context"]).strip()


def select_pod(pods: list[PodInfo]) -> PodInfo:
    if not pods:
        raise ValueError("No pods available to select from.")

    if len(pods) == 1 or os.environ.get("OPSWAND_AUTO_SELECT_POD") == "1":
        return pods[0]

    typer.echo("❔ Multiple pods found. Please select one:")
    for idx, pod in enumerate(pods):
        typer.echo(
            f"{idx + 1}: {pod.name} (Namespace: {pod.namespace}, Status: {pod.status})"
        )

    selection = int(typer.prompt("Enter the number of the pod to select")) - 1
    if selection < 0 or selection >= len(pods):
        raise ValueError("Invalid selection.")

    return pods[selection]


# ===== Migration resources =====


def list_config_maps(
    namespace: str, label_selector: str, context: str = ""
) -> list[dict[str, Any]]:
    result = _get_json(
        ["get", "configmaps", "-n", namespace, "-l", label_selector], context=context
    )
    return result.get("items", [])


def create_object(manifest: dict[str, Any], context: str = "") -> dict[str, Any]:
    """Create an object from a manifest. Fails with AlreadyExists instead of updating."""
    output = _kubectl(
        ["create", "-f", "-", "-o", "json"], context=context, stdin=json.dumps(manifest)
    )
    return json.loads(output)


def get_job(name: str, namespace: str, context: str = "") -> dict[str, Any]:
    return _get_json(["get", "job", name, "-n", namespace], context=context)


def get_application(name: str, namespace: str, context: str = "") -> dict[str, Any]:
    return _get_json(["get", "application", name, "-n", namespace], context=context)


def get_namespace_annotations(namespace: str, context: str = "") -> dict[str, str]:
    ns = _get_json(["get", "namespace", namespace], context=context)
    return ns.get("metadata", {}).get("annotations", {})


def delete_config_map(name: str, namespace: str, context: str = "") -> None:
    _kubectl(["delete", "configmap", name, "-n", namespace], context=context)
