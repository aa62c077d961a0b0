#!/usr/bin/env python3
"""Plugin management CLI tool."""

import argparse
import asyncio
import sys
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from sourcehub.dependencies import get_plugin_config_service, get_plugin_manager
from sourcehub.plugins.errors import PluginError, ValidationFailedError
from sourcehub.plugins.integrity import sha256_hex, verify
from sourcehub.plugins.validator import validate


def _print_progress(percent: int, label: str) -> None:
    print(f"  [{percent:>3}%] {label}")


def _print_descriptors(descriptors) -> None:
    if not descriptors:
        print("No plugins found.")
        return

    print(f"{'ID':<24} {'Name':<30} {'Version':<10} {'Languages':<12} {'Capabilities'}")
    print("-" * 100)
    for d in descriptors:
        languages = ",".join(d.languages) or "-"
        capabilities = ",".join(sorted(d.capabilities.enabled())) or "-"
        print(f"{d.id:<24} {d.display_name:<30} {d.version:<10} {languages:<12} {capabilities}")


def cmd_catalog(args):
    """List the plugin catalog."""
    manager = get_plugin_manager()
    if args.sync:
        descriptors = asyncio.run(manager.sync_catalog())
    else:
        descriptors = asyncio.run(manager.browse())
    _print_descriptors(descriptors)


def cmd_search(args):
    """Search the plugin catalog."""
    manager = get_plugin_manager()
    descriptors = asyncio.run(
        manager.search_catalog(
            args.query,
            language=args.language,
            tag=args.tag,
            official=args.official,
            nsfw=args.nsfw,
        )
    )
    _print_descriptors(descriptors)


def cmd_stats(args):
    """Show catalog statistics."""
    manager = get_plugin_manager()
    stats = asyncio.run(manager.catalog_statistics())

    print(f"Total plugins:     {stats['total']}")
    print(f"  Official:        {stats['official']}")
    print(f"  Community:       {stats['community']}")
    print(f"  NSFW:            {stats['nsfw']}")
    print(f"  SFW:             {stats['sfw']}")
    if stats["languages"]:
        print("Languages:")
        for lang, count in sorted(stats["languages"].items(), key=lambda kv: (-kv[1], kv[0])):
            print(f"  {lang:<16} {count}")


def cmd_install(args):
    """Install a plugin from the catalog and record it as installed."""
    manager = get_plugin_manager()
    print(f"Installing '{args.plugin_id}'...")
    instance = asyncio.run(manager.install(args.plugin_id, on_progress=_print_progress))
    print(f"Plugin '{instance.id}' v{instance.version} installed.")
    print(f"  Capabilities: {', '.join(sorted(instance.capabilities)) or 'none'}")
    print(f"  SHA-256:      {instance.digest}")


def cmd_updates(args):
    """Check installed plugins for newer catalog versions."""
    manager = get_plugin_manager()
    config = get_plugin_config_service()

    async def _check():
        await manager.restore_installed()
        return await manager.check_for_updates(refresh=True)

    if not config.get_installed():
        print("No plugins installed.")
        return

    updates = asyncio.run(_check())
    if not updates:
        print("All installed plugins are up to date.")
        return

    print(f"{'ID':<24} {'Installed':<12} {'Available'}")
    print("-" * 50)
    for u in updates:
        print(f"{u.id:<24} {u.installed_version:<12} {u.available_version}")


def cmd_verify(args):
    """Print or check the SHA-256 digest of a local plugin file."""
    content = Path(args.path).read_bytes()
    digest = sha256_hex(content)
    print(f"SHA-256: {digest}")
    if args.expected:
        if verify(content, args.expected):
            print("Digest matches.")
        else:
            print(f"Digest mismatch: expected {args.expected.strip().lower()}")
            sys.exit(1)


def cmd_validate(args):
    """Run the capability validator on a local plugin file."""
    verdict = validate(Path(args.path).read_text(encoding="utf-8-sig"))
    if verdict.ok:
        print("Validation passed.")
        return

    print(f"Validation failed with {len(verdict.reasons)} issue(s):")
    for i, reason in enumerate(verdict.reasons, 1):
        print(f"  {i}. {reason}")
    sys.exit(1)


def main():
    parser = argparse.ArgumentParser(description="SourceHub Plugin Manager")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # catalog
    catalog_parser = subparsers.add_parser("catalog", help="List catalog plugins")
    catalog_parser.add_argument("--sync", action="store_true", help="Re-fetch the catalog first")

    # search
    search_parser = subparsers.add_parser("search", help="Search the catalog")
    search_parser.add_argument("query", nargs="?", default="", help="Search text")
    search_parser.add_argument("--language", help="Language code filter")
    search_parser.add_argument("--tag", help="Tag filter")
    origin = search_parser.add_mutually_exclusive_group()
    origin.add_argument("--official", dest="official", action="store_const", const=True, help="Official plugins only")
    origin.add_argument("--community", dest="official", action="store_const", const=False, help="Community plugins only")
    rating = search_parser.add_mutually_exclusive_group()
    rating.add_argument("--nsfw", dest="nsfw", action="store_const", const=True, help="NSFW plugins only")
    rating.add_argument("--sfw", dest="nsfw", action="store_const", const=False, help="Safe-for-work plugins only")

    # stats
    subparsers.add_parser("stats", help="Show catalog statistics")

    # install
    install_parser = subparsers.add_parser("install", help="Install a plugin from the catalog")
    install_parser.add_argument("plugin_id", help="Plugin ID")

    # updates
    subparsers.add_parser("updates", help="Check installed plugins for updates")

    # verify
    verify_parser = subparsers.add_parser("verify", help="Compute or check a file's SHA-256")
    verify_parser.add_argument("path", help="Path to plugin source file")
    verify_parser.add_argument("--expected", help="Expected hex SHA-256 digest")

    # validate
    validate_parser = subparsers.add_parser("validate", help="Validate a local plugin file")
    validate_parser.add_argument("path", help="Path to plugin source file")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "catalog": cmd_catalog,
        "search": cmd_search,
        "stats": cmd_stats,
        "install": cmd_install,
        "updates": cmd_updates,
        "verify": cmd_verify,
        "validate": cmd_validate,
    }

    try:
        commands[args.command](args)
    except ValidationFailedError as e:
        print(f"Error ({e.stage}): {e}")
        for reason in e.reasons:
            print(f"  - {reason}")
        sys.exit(1)
    except PluginError as e:
        print(f"Error ({e.stage}): {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
