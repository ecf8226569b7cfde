import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from opswand.debug import run_debug_session, tidy_debug_pods
from opswand.errors import OpsWandError, UserCancelled
from opswand.migrate import (
    ClusterMigrationSetup,
    MigrationSetup,
    NoopMigrationSetup,
    setup_migration,
)
from opswand.types import (
    DebugSessionConfig,
    InstanceConfig,
    MigrationConfig,
    WorkloadReference,
)
from opswand.ui import print_info, print_success

app = typer.Typer()
migrate_app = typer.Typer(help="Migrate a Postgres database to a new instance.")
app.add_typer(migrate_app, name="migrate")


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log every kubectl command issued."
    ),
):
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


def run_debug_session_handler(config: DebugSessionConfig) -> None:
    try:
        run_debug_session(config)
    except (OpsWandError, ValueError) as e:
        typer.echo(
            f"❌ Failed to debug {config.workload.workload_name}: {e}", err=True
        )
        raise typer.Exit(code=1)


def setup_migration_handler(
    config: MigrationConfig, wait: bool, setup: MigrationSetup
) -> None:
    try:
        setup_migration(config, wait=wait, setup=setup)
    except UserCancelled:
        print_info("Migration setup cancelled by user.")
    except OpsWandError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)


@app.command(help="Attach to or create a debug container in a workload's pod.")
def debug(
    workload: str = typer.Argument(..., help="Name of the workload to debug."),
    namespace: str = typer.Option(
        ..., "--namespace", "-n", help="The namespace of the workload."
    ),
    context: str = typer.Option(
        "", "--context", "-c", help="The kubectl context to use."
    ),
    image: str = typer.Option(
        "busybox:stable",
        "--image",
        "-i",
        envvar="OPSWAND_DEBUG_IMAGE",
        help="The image to run the debugger container with.",
    ),
    copy_pod: bool = typer.Option(
        False,
        "--copy-pod",
        help="Debug a copy of the pod instead of the running pod.",
    ),
    by_pod: bool = typer.Option(
        False, "--by-pod", "-b", help="Choose which pod to debug."
    ),
):
    config = DebugSessionConfig(
        workload=WorkloadReference(
            workload_name=workload, namespace=namespace, context=context
        ),
        debug_image=image,
        copy_pod=copy_pod,
        by_pod=by_pod,
    )
    run_debug_session_handler(config)


@app.command(help="Delete the debugger pod copies of a workload.")
def tidy(
    workload: str = typer.Argument(..., help="Name of the workload to tidy."),
    namespace: str = typer.Option(
        ..., "--namespace", "-n", help="The namespace of the workload."
    ),
    context: str = typer.Option(
        "", "--context", "-c", help="The kubectl context to use."
    ),
):
    ref = WorkloadReference(workload_name=workload, namespace=namespace, context=context)
    try:
        deleted = tidy_debug_pods(ref)
    except OpsWandError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)

    if deleted:
        print_success(f"Deleted {len(deleted)} debugger pod copies.")
    else:
        print_info("No debugger pod copies found.")
    print_info("Ephemeral debug containers are removed when their pod restarts.")


@migrate_app.command(help="Start migrating an app's database to a new instance.")
def setup(
    app_name: str = typer.Argument(..., help="The application owning the database."),
    target_instance: str = typer.Argument(..., help="Name of the new instance."),
    namespace: str = typer.Option(
        ..., "--namespace", "-n", help="The namespace of the application."
    ),
    context: str = typer.Option(
        "", "--context", "-c", help="The kubectl context to use."
    ),
    tier: str = typer.Option("", "--tier", help="Tier of the new instance."),
    disk_size: int = typer.Option(
        None, "--disk-size", help="Disk size of the new instance in GB."
    ),
    instance_type: str = typer.Option(
        "", "--type", help="Postgres version of the new instance, e.g. POSTGRES_16."
    ),
    no_wait: bool = typer.Option(
        False, "--no-wait", help="Do not watch the setup progress."
    ),
    no_mutate: bool = typer.Option(
        False,
        "--no-mutate",
        help="Validate and report without creating anything in the cluster.",
    ),
    migrator_image: str = typer.Option(
        "",
        "--migrator-image",
        envvar="OPSWAND_MIGRATOR_IMAGE",
        help="Image for the migration setup job.",
    ),
):
    config = MigrationConfig(
        app_name=app_name,
        namespace=namespace,
        context=context,
        target=InstanceConfig(
            instance_name=target_instance,
            tier=tier,
            disk_size=disk_size,
            type=instance_type,
        ),
    )

    if no_mutate:
        migration_setup: MigrationSetup = NoopMigrationSetup()
    elif not migrator_image:
        typer.echo(
            "❌ No migrator image configured. Use --migrator-image or OPSWAND_MIGRATOR_IMAGE.",
            err=True,
        )
        raise typer.Exit(code=1)
    else:
        migration_setup = ClusterMigrationSetup(image=migrator_image, context=context)

    setup_migration_handler(config, wait=not no_wait, setup=migration_setup)


if __name__ == "__main__":
    app()
