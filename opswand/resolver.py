"""Resolve database instance configuration from the app's Application resource."""

from typing import Any, Protocol

from opswand.errors import ResolutionError
from opswand.kubernetes import get_application
from opswand.types import InstanceConfig


class InstanceConfigResolver(Protocol):
    def resolve(
        self, app_name: str, namespace: str, partial: InstanceConfig
    ) -> InstanceConfig:
        ...


class ApplicationInstanceResolver:
    """Fill in an InstanceConfig from `spec.gcp.sqlInstances[0]` of the Application.

    Values already set on the partial config win. The source instance name
    defaults to the app name when the Application does not declare one; the
    target instance name is only ever taken from the caller.
    """

    def __init__(self, role: str, context: str = ""):
        if role not in ("source", "target"):
            raise ValueError(f"Unknown instance role: {role}")
        self.role = role
        self.context = context

    def _declared_instance(self, app_name: str, namespace: str) -> dict[str, Any]:
        app = get_application(app_name, namespace, self.context)
        instances = app.get("spec", {}).get("gcp", {}).get("sqlInstances") or []
        if not instances:
            raise ResolutionError(
                f"application '{app_name}' in namespace '{namespace}' has no sqlInstances"
            )
        return instances[0]

    def resolve(
        self, app_name: str, namespace: str, partial: InstanceConfig
    ) -> InstanceConfig:
        declared = self._declared_instance(app_name, namespace)

        name = partial.instance_name
        if self.role == "source" and not name:
            name = declared.get("name") or app_name

        return InstanceConfig(
            instance_name=name,
            tier=partial.tier or declared.get("tier", ""),
            disk_size=partial.disk_size or declared.get("diskSize"),
            type=partial.type or declared.get("type", ""),
        )
