"""Interactive kubectl processes that take over the caller's terminal."""

import logging
import subprocess
from typing import Protocol

logger = logging.getLogger(__name__)


class RemoteProcessLauncher(Protocol):
    def attach(self, namespace: str, pod_name: str, container: str, context: str = "") -> int:
        ...

    def create_debug_target(
        self,
        namespace: str,
        pod_name: str,
        image: str,
        context: str = "",
        copy_to: str | None = None,
        container: str | None = None,
        target: str | None = None,
    ) -> int:
        ...


def attach_args(namespace: str, pod_name: str, container: str, context: str = "") -> list[str]:
    args = [
        "kubectl",
        "attach",
        "-n",
        namespace,
        f"pod/{pod_name}",
        "-c",
        container,
        "-i",
        "-t",
    ]
    if context:
        args.extend(["--context", context])
    return args


def debug_args(
    namespace: str,
    pod_name: str,
    image: str,
    context: str = "",
    copy_to: str | None = None,
    container: str | None = None,
    target: str | None = None,
) -> list[str]:
    args = [
        "kubectl",
        "debug",
        "-n",
        namespace,
        f"pod/{pod_name}",
        "-it",
        "--stdin",
        "--tty",
        "--profile=restricted",
        "-q",
        "--image",
        image,
    ]
    if context:
        args.extend(["--context", context])
    if copy_to:
        args.extend(["--copy-to", copy_to])
    if container:
        args.extend(["-c", container])
    if target:
        args.extend(["--target", target])
    return args


class KubectlLauncher:
    """Runs kubectl with stdin/stdout/stderr inherited and waits for it to exit.

    Raises OSError if kubectl cannot be started.
    """

    def _run(self, args: list[str]) -> int:
        logger.debug("Launching %s", " ".join(args))
        proc = subprocess.Popen(args)
        return proc.wait()

    def attach(self, namespace: str, pod_name: str, container: str, context: str = "") -> int:
        return self._run(attach_args(namespace, pod_name, container, context))

    def create_debug_target(
        self,
        namespace: str,
        pod_name: str,
        image: str,
        context: str = "",
        copy_to: str | None = None,
        container: str | None = None,
        target: str | None = None,
    ) -> int:
        return self._run(
            debug_args(namespace, pod_name, image, context, copy_to, container, target)
        )
