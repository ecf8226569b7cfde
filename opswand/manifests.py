"""Kubernetes manifests for the migration setup step."""

from typing import Any

from opswand.types import InstanceConfig, MigrationConfig

APP_NAME_LABEL = "migrator.nais.io/app-name"
TARGET_INSTANCE_LABEL = "migrator.nais.io/target-instance-name"
STAGE_LABEL = "migrator.nais.io/migration-stage"

SETUP_STAGE = "setup"
MIGRATOR_CLUSTER_ROLE = "nais:cloudsql-migrator"


def label_selector(labels: dict[str, str]) -> str:
    return ",".join(f"{key}={value}" for key, value in labels.items())


def marker_selector(app_name: str) -> str:
    return label_selector({APP_NAME_LABEL: app_name})


def migration_labels(config: MigrationConfig, stage: str | None = None) -> dict[str, str]:
    labels = {
        APP_NAME_LABEL: config.app_name,
        TARGET_INSTANCE_LABEL: config.target.instance_name,
    }
    if stage:
        labels[STAGE_LABEL] = stage
    return labels


def marker_name(config: MigrationConfig) -> str:
    return f"migration-{config.app_name}-{config.target.instance_name}"


def service_account_name(config: MigrationConfig) -> str:
    return f"migrator-{config.app_name}"


def job_name(config: MigrationConfig, stage: str) -> str:
    return f"{marker_name(config)}-{stage}"


def _instance_data(prefix: str, instance: InstanceConfig) -> dict[str, str]:
    data = {f"{prefix}_INSTANCE_NAME": instance.instance_name}
    if instance.tier:
        data[f"{prefix}_INSTANCE_TIER"] = instance.tier
    if instance.disk_size:
        data[f"{prefix}_INSTANCE_DISK_SIZE"] = str(instance.disk_size)
    if instance.type:
        data[f"{prefix}_INSTANCE_TYPE"] = instance.type
    return data


def marker_config_map(config: MigrationConfig) -> dict[str, Any]:
    """The ConfigMap whose presence marks a migration in progress for the app."""
    data = {"APP_NAME": config.app_name, "NAMESPACE": config.namespace}
    data.update(_instance_data("SOURCE", config.source))
    data.update(_instance_data("TARGET", config.target))
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {
            "name": marker_name(config),
            "namespace": config.namespace,
            "labels": migration_labels(config),
        },
        "data": data,
    }


def service_account(config: MigrationConfig) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": {
            "name": service_account_name(config),
            "namespace": config.namespace,
            "labels": migration_labels(config),
        },
    }


def role_binding(config: MigrationConfig) -> dict[str, Any]:
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "RoleBinding",
        "metadata": {
            "name": service_account_name(config),
            "namespace": config.namespace,
            "labels": migration_labels(config),
        },
        "roleRef": {
            "apiGroup": "rbac.authorization.k8s.io",
            "kind": "ClusterRole",
            "name": MIGRATOR_CLUSTER_ROLE,
        },
        "subjects": [
            {
                "kind": "ServiceAccount",
                "name": service_account_name(config),
                "namespace": config.namespace,
            }
        ],
    }


def migration_job(config: MigrationConfig, stage: str, image: str) -> dict[str, Any]:
    labels = migration_labels(config, stage)
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": {
            "name": job_name(config, stage),
            "namespace": config.namespace,
            "labels": labels,
        },
        "spec": {
            "backoffLimit": 0,
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "serviceAccountName": service_account_name(config),
                    "restartPolicy": "Never",
                    "containers": [
                        {
                            "name": "migrator",
                            "image": image,
                            "args": [stage],
                            "envFrom": [
                                {"configMapRef": {"name": marker_name(config)}}
                            ],
                        }
                    ],
                },
            },
        },
    }
