"""
Command-line interface for the klauncher profile store.

Notes
-----
The CLI is intentionally thin. It parses arguments, opens the engine through
``open_launcher``, and delegates. Every subcommand accepts ``--data-root`` so
it can be pointed at a scratch directory.

Exit codes
----------
- 0: success
- 2: engine error (validation, constraint, not found, storage)
"""

from __future__ import annotations

import argparse
from pathlib import Path

from launcher_engine.bootstrap import LauncherCore, open_launcher
from launcher_engine.data_models import Profile, ProfileKind
from launcher_engine.errors import LauncherError
from launcher_engine.logging_setup import configure_logging
from launcher_engine.paths_and_safety import resolve_launcher_paths


def build_parser() -> argparse.ArgumentParser:
    """
    Build and return the top-level argument parser.

    Returns
    -------
    argparse.ArgumentParser
        Configured parser.
    """
    parser = argparse.ArgumentParser(
        prog="klauncher",
        description="klauncher profile store",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    def _add(name: str, help_text: str) -> argparse.ArgumentParser:
        p = sub.add_parser(name, help=help_text)
        p.add_argument(
            "--data-root",
            default=None,
            help="Override the launcher data root (primarily for testing). If omitted, defaults are used.",
        )
        return p

    init_p = _add("init", help_text="Create or migrate the store and bootstrap the default profile")
    init_p.add_argument("--print-paths", action="store_true", help="Print resolved paths")

    _add("status", help_text="Show schema version, store health and the active profile")
    _add("list", help_text="List profiles (active profile marked with '*')")

    create_p = _add("create", help_text="Create a profile")
    create_p.add_argument("--name", required=True, help="Unique profile name (also the folder name)")
    create_p.add_argument("--display-name", required=True, help="Label shown in the launcher")
    create_p.add_argument(
        "--kind",
        choices=[k.value for k in ProfileKind],
        default=ProfileKind.OFFLINE.value,
        help="Profile kind (default: offline)",
    )

    activate_p = _add("activate", help_text="Make a profile the active one")
    activate_p.add_argument("--id", type=int, required=True, help="Profile id")

    delete_p = _add("delete", help_text="Delete a profile and its directory tree")
    delete_p.add_argument("--id", type=int, required=True, help="Profile id")

    duplicate_p = _add("duplicate", help_text="Copy a profile under a new name")
    duplicate_p.add_argument("--id", type=int, required=True, help="Source profile id")
    duplicate_p.add_argument("--name", required=True, help="New profile name")
    duplicate_p.add_argument("--display-name", required=True, help="New display name")

    settings_p = _add("settings", help_text="Show or change launcher settings")
    settings_p.add_argument(
        "--set",
        dest="assignments",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Set a setting. Repeatable.",
    )

    return parser


def format_profile(profile: Profile) -> str:
    """Render a profile as a single list line."""
    marker = "*" if profile.is_active else " "
    return (
        f"{marker} {profile.id:>4}  {profile.name:<20} {profile.display_name:<24} "
        f"{profile.profile_kind.value:<9} {profile.min_memory_mb}-{profile.max_memory_mb}MB"
    )


def main(argv: list[str] | None = None) -> int:
    """
    CLI entry point.

    Parameters
    ----------
    argv:
        Optional argument vector. If None, argparse uses sys.argv.

    Returns
    -------
    int
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    data_root = Path(args.data_root) if args.data_root else None

    if args.command == "settings":
        for assignment in args.assignments:
            if "=" not in assignment:
                print(f"ERROR: expected KEY=VALUE, got {assignment!r}")
                return 2

    try:
        paths = resolve_launcher_paths(data_root)
        configure_logging(verbose=args.verbose, logs_root=paths.logs_root)
        with open_launcher(paths.data_root) as core:
            return _dispatch(args, core)
    except LauncherError as exc:
        print(f"ERROR: {exc}")
        return 2


def _dispatch(args: argparse.Namespace, core: LauncherCore) -> int:
    service = core.service

    if args.command == "init":
        if args.print_paths:
            print(f"data_root: {core.paths.data_root}")
            print(f"store_path: {core.paths.store_path}")
            print(f"profiles_root: {core.paths.profiles_root}")
            print(f"logs_root: {core.paths.logs_root}")
        return 0

    if args.command == "status":
        active = service.get_active_profile()
        print(f"schema_version: {core.schema.current_version()}")
        print(f"store_healthy: {core.connection.test_connection()}")
        print(f"profiles: {core.profiles.count()}")
        print(f"active: {active.name if active else '-'}")
        return 0

    if args.command == "list":
        for profile in service.get_all_profiles():
            print(format_profile(profile))
        return 0

    if args.command == "create":
        created = service.create_profile(args.name, args.display_name, args.kind).result()
        print(f"Created profile {created.name!r} (id={created.id})")
        return 0

    if args.command == "activate":
        active = service.set_active_profile(args.id).result()
        print(f"Active profile: {active.name!r} (id={active.id})")
        return 0

    if args.command == "delete":
        deleted = service.delete_profile(args.id).result()
        if not deleted:
            print(f"No profile with id {args.id}")
            return 2
        print(f"Deleted profile id={args.id}")
        return 0

    if args.command == "duplicate":
        copy = service.duplicate_profile(args.id, args.name, args.display_name).result()
        print(f"Created profile {copy.name!r} (id={copy.id}) from id={args.id}")
        return 0

    if args.command == "settings":
        for assignment in args.assignments:
            key, _, value = assignment.partition("=")
            core.settings.set(key, value)
        for setting in core.settings.all():
            print(f"{setting.key} = {setting.value} ({setting.value_type.value})")
        return 0

    return 0
