"""
CLI interface for dfsubmit.

Provides commands to submit (or dry-run) a pipeline, inspect capture hooks,
stream a file through a capture hook, and initialize configuration.

Collaborators (compiler, translator, executor, image resolver) are loaded
from the factory paths in config.yaml.
"""


import click
from pathlib import Path

from dfsubmit import __version__


@click.group()
@click.version_option(version=__version__, prog_name="dfsubmit")
@click.pass_context
def main(ctx):
    """
    dfsubmit - Remote job submission orchestrator.

    Validates launch options, names staged artifacts and submits a compiled
    pipeline to the remote job service.
    """
    from dfsubmit.config import load_config

    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config()
    except Exception as e:
        # init does not need a config; submit reports the error itself
        ctx.obj["config_error"] = str(e)


def _build_orchestrator(config, inputs):
    from dfsubmit.capture import new_default_registry
    from dfsubmit.collaborators import build_collaborator
    from dfsubmit.orchestrator import SubmissionOrchestrator

    def load(path):
        return build_collaborator(path, config.factory_modules) if path else None

    if not config.compiler:
        raise click.UsageError("No compiler configured. Set 'compiler' in config.yaml.")

    return SubmissionOrchestrator(
        inputs,
        compiler=load(config.compiler),
        translator=load(config.translator) if inputs.dry_run else None,
        executor=None if inputs.dry_run else load(config.executor),
        image_resolver=load(config.image_resolver),
        hooks=new_default_registry(),
    )


@main.command("submit")
@click.argument("pipeline")
@click.option("--project", help="Google Cloud project (required)")
@click.option("--staging-location", help="GCS staging location, gs://<bucket>/<path> (required)")
@click.option("--worker-image", help="Worker harness container image")
@click.option("--job-name", help="Job name (generated if omitted)")
@click.option("--labels", help="JSON object of job labels, e.g. '{\"team\": \"data\"}'")
@click.option("--num-workers", type=click.IntRange(min=0), help="Number of workers")
@click.option("--machine-type", help="Worker machine type")
@click.option("--zone", help="Compute zone")
@click.option("--region", help="Compute region (default us-central1)")
@click.option("--network", help="Compute network")
@click.option("--temp-location", help="Temp location (default <staging>/tmp)")
@click.option("--min-cpu-platform", help="Minimum CPU platform")
@click.option("--teardown-policy", help="Job teardown policy")
@click.option("--experiments", multiple=True, help="Experiment flag (repeatable)")
@click.option("--worker-binary", help="Worker payload to stage")
@click.option("--endpoint", help="Job service endpoint override")
@click.option("--cpu-profiling", help="Record CPU profiles under this gs:// location")
@click.option("--session-recording", help="Record session transcripts (not supported)")
@click.option("--dry-run", is_flag=True, help="Print the job without submitting it")
@click.option("--async", "async_submit", is_flag=True, help="Return without waiting for the job")
@click.option("--timeout", type=float, help="Abort if not submitted within this many seconds")
@click.pass_context
def submit(ctx, pipeline: str, dry_run: bool, async_submit: bool, timeout: float, **flags):
    """
    Submit PIPELINE to the remote job service.

    PIPELINE is passed to the configured compiler unchanged.

    Examples:

        dfsubmit submit wordcount --project my-proj --staging-location gs://b/staging

        dfsubmit submit wordcount --dry-run --labels '{"team": "data"}'
    """
    from dfsubmit.config import build_launch_inputs
    from dfsubmit.context import RunContext
    from dfsubmit.orchestrator import Previewed
    from dfsubmit.utils import print_banner, setup_logging

    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Run 'dfsubmit init' to create a configuration file.", err=True)
        raise SystemExit(1)

    config = ctx.obj["config"]
    setup_logging(config.get_log_level(), config.get_log_format(), config.get_log_file())

    flags["experiments"] = list(flags["experiments"])
    overrides = dict(flags, dry_run=dry_run, async_submit=async_submit)
    inputs = build_launch_inputs(config, overrides)

    if dry_run:
        print_banner("DRY RUN MODE (no job submitted)")

    run_ctx = RunContext.with_timeout(timeout) if timeout else RunContext()
    try:
        orchestrator = _build_orchestrator(config, inputs)
        outcome = orchestrator.execute(run_ctx, pipeline)
    except click.UsageError:
        raise
    except Exception as e:
        click.echo(f"✗ {pipeline} failed: {e}", err=True)
        raise SystemExit(1)

    if isinstance(outcome, Previewed):
        click.echo(f"\n[DRY-RUN] {outcome.config.job_name} translated (not submitted)")
    else:
        click.echo(f"✓ Submitted {outcome.config.job_name}: {outcome.job}")


@main.command("hooks")
def list_hooks():
    """List registered capture hooks."""
    from dfsubmit.capture import new_default_registry

    registry = new_default_registry()
    for name in sorted(registry.list_hooks()):
        click.echo(name)


@main.command("capture")
@click.argument("destination")
@click.argument("spec")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--chunk-size", type=int, help="Upload chunk size in bytes (multiple of 262144)")
def capture(destination: str, spec: str, file: Path, chunk_size: int):
    """
    Stream FILE to DESTINATION/SPEC through the profile capture hook.

    Example:

        dfsubmit capture gs://my-bucket/profiles/run42 trace-1 ./cpu.prof
    """
    from dfsubmit.capture import PROFILE_WRITER, new_default_registry
    from dfsubmit.context import RunContext

    registry = new_default_registry()
    args = [destination] if chunk_size is None else [destination, str(chunk_size)]
    try:
        registry.enable(PROFILE_WRITER, *args)
        hook = registry.capture_hook(PROFILE_WRITER)
        with open(file, "rb") as reader:
            hook(RunContext(), spec, reader)
    except Exception as e:
        click.echo(f"✗ capture failed: {e}", err=True)
        raise SystemExit(1)

    click.echo(f"✓ Captured {file} as {spec}")


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize dfsubmit configuration."""
    from dfsubmit.config import DEFAULT_IMAGE_RESOLVER, get_dfsubmit_home
    import yaml

    home = get_dfsubmit_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    default_cfg = {
        "project": "",
        "staging_location": "",
        "region": "us-central1",
        "labels": {},
        "experiments": [],
        "compiler": "",
        "translator": "",
        "executor": "",
        "image_resolver": DEFAULT_IMAGE_RESOLVER,
        "factory_modules": [],
        "env_file": str(home / ".env"),
        "logging": {"level": "INFO", "format": "pretty"},
    }
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))

    env_path = home / ".env"
    if not env_path.exists():
        env_path.write_text("# DFSUBMIT_PROJECT=...\n# DFSUBMIT_CONTAINER_IMAGE=...\n")

    click.echo(f"Initialized dfsubmit config at {cfg_path}")


if __name__ == "__main__":
    main()
