#!/usr/bin/env python3
"""
davit - a safe Kubernetes deployment wrapper with a live rollout monitor.

Commands:
- deploy: patch a service's image tag, show the diff, confirm, write,
  optionally commit/push and apply, then watch the rollout.
- watch: only run the rollout monitor.
- images: list registry images for a service.
- config show|path: inspect the configuration file.
"""

import argparse
import sys
from typing import List, Optional

from pydantic import ValidationError
from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.table import Table

from davit import __version__, blueprint, git, registry
from davit.dashboard import Dashboard, MonitorState
from davit.errors import ConfigError, DavitError
from davit.kube import ClusterClient, apply_manifest
from davit.logs import setup_logging
from davit.models import RolloutTarget
from davit.settings import Config, DavitSettings, Environment, Service, get_config_path, load_config

IMAGE_CHOICES = 10


# =========================
# Resolution helpers
# =========================

def _choose(console: Console, label: str, names: List[str], interactive: bool) -> str:
    if len(names) == 1:
        return names[0]
    if not interactive:
        raise ConfigError(f"{label} is ambiguous ({', '.join(names)}); pass it explicitly")
    return Prompt.ask(label, choices=names, console=console)


def resolve_environment(config: Config, name: Optional[str], interactive: bool, console: Console) -> Environment:
    if name is None:
        if not config.environments:
            raise ConfigError("No environments configured")
        name = _choose(console, "Environment", [e.name for e in config.environments], interactive)
    env = config.environment(name)
    if env is None:
        raise ConfigError(f"Unknown environment {name!r}")
    return env


def resolve_service(config: Config, name: Optional[str], interactive: bool, console: Console) -> Service:
    if name is None:
        if not config.services:
            raise ConfigError("No services configured")
        name = _choose(console, "Service", [s.name for s in config.services], interactive)
    service = config.service(name)
    if service is None:
        raise ConfigError(f"Unknown service {name!r}")
    return service


def choose_tag(service: Service, interactive: bool, console: Console) -> str:
    if not interactive:
        raise ConfigError("--tag is required when not running interactively")
    images = [img for img in registry.fetch_images(service.image) if img.tags][:IMAGE_CHOICES]
    if not images:
        raise ConfigError(f"No tagged images found for {service.image}; pass --tag")
    console.print(images_table(service.image, images))
    choice = Prompt.ask(
        "Image #",
        choices=[str(i) for i in range(1, len(images) + 1)],
        default="1",
        console=console,
    )
    return images[int(choice) - 1].tags[0]


def images_table(image: str, images: List[registry.ImageMetadata]) -> Table:
    table = Table(title=image, title_justify="left")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Tags", style="bold cyan")
    table.add_column("Digest")
    table.add_column("Updated", style="dim")
    for i, img in enumerate(images, start=1):
        table.add_row(str(i), img.display_tag(), img.short_hash(), img.age_string())
    return table


def confirm_deploy(env: Environment, assume_yes: bool, interactive: bool, console: Console) -> bool:
    """Protected environments always require the environment name typed back."""
    if env.protected:
        if not interactive:
            raise ConfigError(f"Environment {env.name!r} is protected; deploy interactively")
        typed = Prompt.ask(
            f"[bold red]{env.name} is protected.[/bold red] Type the environment name to continue",
            console=console,
        )
        return typed.strip() == env.name
    if assume_yes:
        return True
    if not interactive:
        raise ConfigError("Confirmation required; pass --yes")
    return Confirm.ask(f"Deploy to {env.name}?", console=console)


def build_target(env: Environment, service: Service, tag: str) -> RolloutTarget:
    return RolloutTarget(
        service=service.name,
        environment=env.name,
        tag=tag,
        namespace=service.namespace or env.namespace,
        selector=service.selector,
        container=service.container,
    )


def run_monitor(target: RolloutTarget, context: str, settings: DavitSettings, console: Console) -> int:
    client = ClusterClient.from_context(context)
    state = Dashboard(target, client, settings=settings, console=console).run()
    return 0 if state is MonitorState.TERMINATED else 1


# =========================
# Commands
# =========================

def cmd_deploy(args, settings: DavitSettings, console: Console) -> int:
    config = load_config(get_config_path(settings))
    interactive = config.defaults.interactive and console.is_terminal
    env = resolve_environment(config, args.env, interactive, console)
    service = resolve_service(config, args.service, interactive, console)
    tag = args.tag or choose_tag(service, interactive, console)

    manifest = env.repo_root / service.manifest
    try:
        old = manifest.read_text()
    except OSError as exc:
        raise ConfigError(f"Failed to read manifest {manifest}: {exc}") from exc
    new = blueprint.update_image_tag(old, service.image, tag)
    previous = blueprint.current_tag(old, service.image) or "(digest)"
    console.print(f"[bold]{service.name}[/bold]: {previous} -> {tag}")

    changed = blueprint.render_diff(old, new, str(service.manifest), console=console)
    if changed:
        if not confirm_deploy(env, args.yes, interactive, console):
            console.print("[yellow]Aborted.[/yellow]")
            return 1
        manifest.write_text(new)
        console.print(f"[green]Updated {manifest}[/green]")
        if args.push:
            git.commit_and_push(env.repo_root, f"Deploy {service.name} {tag} to {env.name}", manifest)
            console.print("[green]Committed and pushed.[/green]")
    else:
        console.print(f"[dim]{service.name} already at {tag} in {env.name}[/dim]")

    if args.apply:
        console.print(apply_manifest(manifest, env.kubectl_context, service.namespace or env.namespace))

    if args.no_watch:
        return 0
    return run_monitor(build_target(env, service, tag), env.kubectl_context, settings, console)


def cmd_watch(args, settings: DavitSettings, console: Console) -> int:
    config = load_config(get_config_path(settings))
    interactive = config.defaults.interactive and console.is_terminal
    env = resolve_environment(config, args.env, interactive, console)
    service = resolve_service(config, args.service, interactive, console)
    return run_monitor(build_target(env, service, args.tag), env.kubectl_context, settings, console)


def cmd_images(args, settings: DavitSettings, console: Console) -> int:
    config = load_config(get_config_path(settings))
    interactive = config.defaults.interactive and console.is_terminal
    service = resolve_service(config, args.service, interactive, console)
    images = registry.fetch_images(service.image)[: args.limit]
    console.print(images_table(service.image, images))
    return 0


def cmd_config(args, settings: DavitSettings, console: Console) -> int:
    path = get_config_path(settings)
    if args.config_command == "path":
        console.print(str(path), highlight=False)
        return 0
    config = load_config(path)
    console.print_json(config.model_dump_json())
    return 0


# =========================
# Entry point
# =========================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="davit", description="A safe Kubernetes deployment wrapper & TUI")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    deploy = sub.add_parser("deploy", help="Deploy a service to an environment")
    deploy.add_argument("-e", "--env", help="Target environment (e.g., staging, production)")
    deploy.add_argument("-s", "--service", help="Service name to deploy")
    deploy.add_argument("-t", "--tag", help="Image tag to deploy")
    deploy.add_argument("-y", "--yes", action="store_true", help="Skip the confirmation prompt")
    deploy.add_argument("--push", action="store_true", help="Commit and push the manifest change")
    deploy.add_argument("--apply", action="store_true", help="Run kubectl apply on the manifest")
    deploy.add_argument("--no-watch", action="store_true", help="Do not start the rollout monitor")
    deploy.set_defaults(func=cmd_deploy)

    watch = sub.add_parser("watch", help="Watch a rollout without changing anything")
    watch.add_argument("-e", "--env", help="Environment")
    watch.add_argument("-s", "--service", help="Service name")
    watch.add_argument("-t", "--tag", required=True, help="Image tag being rolled out")
    watch.set_defaults(func=cmd_watch)

    images = sub.add_parser("images", help="List registry images for a service")
    images.add_argument("-s", "--service", help="Service name")
    images.add_argument("-n", "--limit", type=int, default=20, help="Number of images to show")
    images.set_defaults(func=cmd_images)

    cfg = sub.add_parser("config", help="Configuration management")
    cfg_sub = cfg.add_subparsers(dest="config_command", required=True)
    cfg_sub.add_parser("show", help="Show current configuration")
    cfg_sub.add_parser("path", help="Get path to configuration file")
    cfg.set_defaults(func=cmd_config)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    console = Console()
    err_console = Console(stderr=True)
    try:
        settings = DavitSettings()
    except ValidationError as e:
        err_console.print(f"[red]Invalid DAVIT_* settings:[/red] {e}")
        return 2
    setup_logging(settings)

    try:
        return args.func(args, settings, console)
    except DavitError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        return 1
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Exiting...[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
