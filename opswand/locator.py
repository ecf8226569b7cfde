"""Find the pods that belong to a workload."""

from typing import Callable

from opswand.kubernetes import get_pods_by_label
from opswand.types import PodInfo, WorkloadReference

ListPods = Callable[[str], list[PodInfo]]


def workload_selectors(workload_name: str) -> list[str]:
    """Label selectors to try, most specific first."""
    return [
        f"app.kubernetes.io/name={workload_name}",
        f"app={workload_name}",
    ]


def first_matching(selectors: list[str], list_pods: ListPods) -> list[PodInfo]:
    """Return the pods matched by the first selector that matches any.

    Selectors after the first non-empty match are never queried. Lookup
    errors propagate on the first failure.
    """
    for selector in selectors:
        pods = list_pods(selector)
        if pods:
            return pods
    return []


def locate_workload_pods(workload: WorkloadReference) -> list[PodInfo]:
    return first_matching(
        workload_selectors(workload.workload_name),
        lambda selector: get_pods_by_label(
            namespace=workload.namespace,
            label_selector=selector,
            context=workload.context,
        ),
    )
