"""Set up a Cloud SQL Postgres migration for an application."""

import random
import subprocess
from enum import Enum
from typing import Callable, Protocol

import typer
from rich.errors import LiveError

from opswand.errors import (
    AlreadyExists,
    MigrationValidationError,
    OpsWandError,
    ResolutionError,
    StepError,
    UserCancelled,
)
from opswand.kubernetes import (
    create_object,
    current_context,
    delete_config_map,
    get_job,
    get_namespace_annotations,
    list_config_maps,
)
from opswand.manifests import (
    SETUP_STAGE,
    job_name,
    label_selector,
    marker_config_map,
    marker_selector,
    migration_job,
    migration_labels,
    role_binding,
    service_account,
)
from opswand.polling import ProgressFeed
from opswand.resolver import ApplicationInstanceResolver, InstanceConfigResolver
from opswand.types import MigrationConfig
from opswand.ui import (
    print_completion_message,
    print_error,
    print_info,
    print_step,
    print_success,
    print_warning,
    progress_spinner,
    render_migration_config,
)

PROJECT_ID_ANNOTATION = "cnrm.cloud.google.com/project-id"
CONSOLE_REGION = "europe-north1"

SETUP_SUCCESS_MESSAGE = """Migration setup has been started successfully.

To monitor the migration, run the following command:
    {log_command}

The setup will take some time to complete, you can check completion status with the following command:
    {status_command}

When setup is complete, a new instance has been created and replication of data has started.
You can check the replication progress in the Google Cloud Console:
    {console_url}

When the migration has Status Running and is in the CDC or Ready to Promote phase,
you can proceed with the next step of the migration:
    {promote_command}

Be aware that during promotion (the next step), your instance will be unavailable for some time."""


class MigrationState(str, Enum):
    IDLE = "Idle"
    PRECONDITION_CHECKED = "PreconditionChecked"
    RESOLVED = "Resolved"
    VALIDATED = "Validated"
    CONFIRMED = "Confirmed"
    OBSERVING = "Observing"
    REPORTED = "Reported"
    DONE = "Done"
    FAILED = "Failed"


# ===== Mutation step =====


class MigrationSetup(Protocol):
    def apply(self, config: MigrationConfig) -> str | None:
        """Start the migration. Returns the setup job name, if one was created."""
        ...


class ClusterMigrationSetup:
    """Create the marker ConfigMap, migrator RBAC and the setup Job."""

    def __init__(self, image: str, context: str = ""):
        self.image = image
        self.context = context

    def _create(self, manifest: dict, tolerate_existing: bool = False) -> None:
        kind = manifest["kind"]
        name = manifest["metadata"]["name"]
        print_step(f"Creating {kind} [blue]{name}[/blue]")
        try:
            create_object(manifest, self.context)
        except AlreadyExists:
            if not tolerate_existing:
                raise
            print_info(f"{kind} {name} already exists, reusing it")
        except subprocess.CalledProcessError as e:
            raise StepError(f"failed to create {kind} {name}", e) from e

    def _remove_marker(self, config: MigrationConfig) -> None:
        name = marker_config_map(config)["metadata"]["name"]
        try:
            delete_config_map(name, config.namespace, self.context)
        except (subprocess.CalledProcessError, OpsWandError) as e:
            print_warning(
                f"Failed to remove migration config {name}, delete it with "
                f"'kubectl delete configmap {name} -n {config.namespace}': {e}"
            )
        else:
            print_info(f"Removed migration config {name}")

    def apply(self, config: MigrationConfig) -> str | None:
        # Creating the marker fails if another setup won the race since the precondition check
        try:
            self._create(marker_config_map(config))
        except AlreadyExists as e:
            raise AlreadyExists(
                "migration config already exists for this application"
            ) from e

        job = migration_job(config, SETUP_STAGE, self.image)
        try:
            self._create(service_account(config), tolerate_existing=True)
            self._create(role_binding(config), tolerate_existing=True)
            self._create(job)
        except Exception:
            # the marker must not outlive a failed setup
            self._remove_marker(config)
            raise
        return job["metadata"]["name"]


class NoopMigrationSetup:
    """Leaves the cluster untouched."""

    def apply(self, config: MigrationConfig) -> str | None:
        print_warning(
            "Cluster changes are disabled: no migration config, role binding or setup job was created."
        )
        return None


def job_finished(name: str, namespace: str, context: str = "") -> bool:
    status = get_job(name, namespace, context).get("status", {})
    return bool(status.get("succeeded") or status.get("failed"))


def _prompt(text: str) -> str:
    return typer.prompt(text, default="", show_default=False)


# ===== Orchestration =====


class Migrator:
    def __init__(
        self,
        config: MigrationConfig,
        setup: MigrationSetup | None = None,
        source_resolver: InstanceConfigResolver | None = None,
        target_resolver: InstanceConfigResolver | None = None,
        prompt: Callable[[str], str] = _prompt,
        rng: random.Random | None = None,
        progress_wait: Callable[[float], bool] | None = None,
    ):
        self.config = config
        self.setup_step = setup or NoopMigrationSetup()
        self.source_resolver = source_resolver or ApplicationInstanceResolver(
            "source", config.context
        )
        self.target_resolver = target_resolver or ApplicationInstanceResolver(
            "target", config.context
        )
        self.prompt = prompt
        self.rng = rng or random.Random()
        self.progress_wait = progress_wait
        self.cluster = config.context
        self.state = MigrationState.IDLE

    # ----- steps -----

    def check_no_existing_migration(self) -> None:
        cfg = self.config
        try:
            existing = list_config_maps(
                cfg.namespace, marker_selector(cfg.app_name), cfg.context
            )
        except (subprocess.CalledProcessError, OpsWandError) as e:
            raise StepError("failed to check for existing migration", e) from e

        if existing:
            raise AlreadyExists("migration config already exists for this application")
        self.state = MigrationState.PRECONDITION_CHECKED

    def resolve_instances(self) -> None:
        cfg = self.config

        print_step("Resolving target instance config")
        try:
            cfg.target = self.target_resolver.resolve(
                cfg.app_name, cfg.namespace, cfg.target
            )
        except (subprocess.CalledProcessError, OpsWandError) as e:
            raise StepError("resolve target instance", e) from e

        print_step("Resolving source instance config")
        try:
            cfg.source = self.source_resolver.resolve(
                cfg.app_name, cfg.namespace, cfg.source
            )
        except (subprocess.CalledProcessError, OpsWandError) as e:
            raise StepError("resolve source instance", e) from e

        self.state = MigrationState.RESOLVED

    def validate(self) -> None:
        source_name = self.config.source.instance_name
        target_name = self.config.target.instance_name

        if not source_name:
            raise MigrationValidationError("source instance name is empty")
        if not target_name:
            raise MigrationValidationError("target instance name is required")
        if source_name == target_name:
            raise MigrationValidationError(
                "source and target instance names cannot be the same"
            )
        self.state = MigrationState.VALIDATED

    def lookup_gcp_project_id(self) -> str:
        print_step("Looking up GCP project ID")
        try:
            annotations = get_namespace_annotations(
                self.config.namespace, self.config.context
            )
            project_id = annotations.get(PROJECT_ID_ANNOTATION, "")
            if not project_id:
                raise ResolutionError(
                    f"namespace '{self.config.namespace}' has no {PROJECT_ID_ANNOTATION} annotation"
                )
        except (subprocess.CalledProcessError, OpsWandError) as e:
            raise StepError("failed to lookup GCP project ID", e) from e
        return project_id

    def resolve_cluster(self) -> str:
        """The kubectl context the migration runs in, resolved when none was given."""
        if not self.cluster:
            try:
                self.cluster = current_context()
            except (subprocess.CalledProcessError, OpsWandError) as e:
                raise StepError("failed to resolve current kubectl context", e) from e
        return self.cluster

    def confirm(self) -> None:
        print_info(
            "This will create a new database instance and start replication of data from the source instance."
        )
        answer = self.prompt("Are you sure you want to continue (y/N)")
        if answer.strip() not in ("y", "Y"):
            raise UserCancelled("cancelled by user")
        self.state = MigrationState.CONFIRMED

    def _log_at_random_severity(self, message: str) -> None:
        log = self.rng.choice([print_info, print_warning, print_error])
        log(message)

    def watch_progress(self, setup_job: str | None) -> bool:
        """Show a spinner fed with progress lines. Returns False if it could not run."""
        cfg = self.config
        is_complete = None
        if setup_job:

            def is_complete() -> bool:
                return job_finished(setup_job, cfg.namespace, cfg.context)

        feed = ProgressFeed(
            rng=random.Random(self.rng.random()),
            is_complete=is_complete,
            wait=self.progress_wait,
        )

        try:
            spinner = progress_spinner("Setting up migration")
        except LiveError as e:
            print_error(f"Failed to start spinner: {e}")
            return False

        print_info("Migration setup has started")
        feed.start()
        previous = ""
        try:
            for line in feed:
                if previous:
                    self._log_at_random_severity(previous)
                spinner.update(line)
                previous = line
        except KeyboardInterrupt:
            feed.stop()
            print_info("Stopped watching. The migration setup continues in the cluster.")
            return False
        finally:
            spinner.stop()

        if feed.completed:
            print_success("Migration setup complete")
        else:
            print_info("Stopped watching migration setup progress")
        return True

    def completion_message(self, gcp_project_id: str) -> str:
        cfg = self.config
        source = cfg.source.instance_name
        target = cfg.target.instance_name
        context_flag = f" --context {cfg.context}" if cfg.context else ""

        selector = label_selector(migration_labels(cfg, SETUP_STAGE))
        console_url = (
            f"https://console.cloud.google.com/dbmigration/migrations/locations/"
            f"{CONSOLE_REGION}/instances/{source}-{target}?project={gcp_project_id}"
        )
        promote_command = (
            f"opswand migrate promote {cfg.app_name} {cfg.namespace} {target}"
            f" --context {self.cluster}"
        )

        return SETUP_SUCCESS_MESSAGE.format(
            log_command=f"kubectl logs -f -l {selector} -n {cfg.namespace}{context_flag}",
            status_command=f"kubectl get job {job_name(cfg, SETUP_STAGE)} -n {cfg.namespace}{context_flag}",
            console_url=console_url,
            promote_command=promote_command,
        )

    # ----- flow -----

    def setup(self, wait: bool = True) -> None:
        try:
            self.check_no_existing_migration()
            self.resolve_instances()
            self.validate()
            gcp_project_id = self.lookup_gcp_project_id()
            self.resolve_cluster()
            render_migration_config(self.config, gcp_project_id)
            self.confirm()
            setup_job = self.setup_step.apply(self.config)
        except UserCancelled:
            raise
        except Exception:
            self.state = MigrationState.FAILED
            raise

        observed = False
        if wait:
            self.state = MigrationState.OBSERVING
            observed = self.watch_progress(setup_job)

        if not observed:
            self.state = MigrationState.REPORTED
            print_completion_message(self.completion_message(gcp_project_id))

        self.state = MigrationState.DONE


def setup_migration(
    config: MigrationConfig, wait: bool, setup: MigrationSetup
) -> Migrator:
    migrator = Migrator(config, setup=setup)
    migrator.setup(wait)
    return migrator
