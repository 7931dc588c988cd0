#!/usr/bin/env python3
"""
Avatar registry CLI

Usage:
  avatarreg identity create <name>
  avatarreg identity list
  avatarreg create <name> <content_hash> [-a <attr>...] (--as <name> | --caller <address>)
  avatarreg update <id> [--name N] [--content-hash H] [--level-increase N] [-a <attr>...] --as <name>
  avatarreg transfer <id> <new_owner> --as <name>
  avatarreg deactivate <id> --as <name>
  avatarreg reactivate <id> --as <name>
  avatarreg show <id>
  avatarreg owned <identity>
  avatarreg total
  avatarreg pause --as <name>
  avatarreg events [--avatar <id>]
  avatarreg serve [--host H] [--port P]

Identity arguments accept either a stored identity name or a raw address.
"""

import argparse
import json
import logging
import sys
from typing import Optional

import yaml

from .config import RegistryConfig, open_registry, resolve_identity
from .errors import RegistryError
from .identity import IdentityStore
from .registry import Registry


def _caller(args, identities: IdentityStore) -> Optional[str]:
    """Resolve --as / --caller into an address."""
    if getattr(args, "as_identity", None):
        identity = identities.get(args.as_identity)
        if identity is None:
            raise RegistryError(f"Unknown identity: {args.as_identity}")
        return identity.address
    return getattr(args, "caller", None)


def _print_json(data):
    print(json.dumps(data, indent=2))


def cmd_identity(args, config: RegistryConfig):
    identities = IdentityStore(config.identities_path)
    if args.identity_command == "create":
        try:
            identity = identities.create(args.name)
        except ValueError as e:
            raise RegistryError(str(e))
        print(f"Created identity {identity.name}")
        print(f"Address: {identity.address}")
    else:
        for identity in identities.list():
            print(f"{identity.name}\t{identity.address}")


def cmd_create(args, registry: Registry, identities: IdentityStore):
    avatar_id = registry.create(
        args.name,
        args.content_hash,
        args.attribute or [],
        caller=_caller(args, identities),
    )
    print(f"Created avatar {avatar_id}")


def cmd_update(args, registry: Registry, identities: IdentityStore):
    avatar = registry.update(
        args.avatar_id,
        new_name=args.new_name,
        new_content_hash=args.content_hash,
        level_increase=args.level_increase,
        new_attributes=args.attribute or [],
        caller=_caller(args, identities),
    )
    print(f"Updated avatar {avatar.avatar_id}: {avatar.name} (level {avatar.level})")


def cmd_transfer(args, registry: Registry, identities: IdentityStore):
    new_owner = resolve_identity(identities, args.new_owner)
    registry.transfer(args.avatar_id, new_owner, caller=_caller(args, identities))
    print(f"Transferred avatar {args.avatar_id} to {new_owner}")


def cmd_deactivate(args, registry: Registry, identities: IdentityStore):
    registry.deactivate(args.avatar_id, caller=_caller(args, identities))
    print(f"Deactivated avatar {args.avatar_id}")


def cmd_reactivate(args, registry: Registry, identities: IdentityStore):
    registry.reactivate(args.avatar_id, caller=_caller(args, identities))
    print(f"Reactivated avatar {args.avatar_id}")


def cmd_show(args, registry: Registry, identities: IdentityStore):
    _print_json(registry.get_avatar(args.avatar_id).to_dict())


def cmd_owned(args, registry: Registry, identities: IdentityStore):
    identity = resolve_identity(identities, args.identity)
    _print_json(registry.get_owned_ids(identity))


def cmd_total(args, registry: Registry, identities: IdentityStore):
    print(registry.get_total_records())


def cmd_pause(args, registry: Registry, identities: IdentityStore):
    registry.emergency_pause(caller=_caller(args, identities))
    print("Emergency pause acknowledged")


def cmd_events(args, registry: Registry, identities: IdentityStore):
    if args.avatar is not None:
        events = registry.events.find_by_avatar(args.avatar)
    else:
        events = registry.events.list()
    _print_json([e.to_dict() for e in events])


def cmd_serve(args, registry: Registry, config: RegistryConfig):
    from .server import RegistryServer

    server = RegistryServer(
        registry,
        host=args.host or config.host,
        port=args.port if args.port is not None else config.port,
    )
    server.start()


REGISTRY_COMMANDS = {
    "create": cmd_create,
    "update": cmd_update,
    "transfer": cmd_transfer,
    "deactivate": cmd_deactivate,
    "reactivate": cmd_reactivate,
    "show": cmd_show,
    "owned": cmd_owned,
    "total": cmd_total,
    "pause": cmd_pause,
    "events": cmd_events,
}


def _add_caller_args(parser: argparse.ArgumentParser):
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--as", dest="as_identity", help="Act as a stored identity")
    group.add_argument("--caller", help="Act as a raw caller address")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="avatarreg",
        description="Avatar registry - ownership and metadata for avatars",
    )
    parser.add_argument("--config", help="Config YAML file")
    parser.add_argument("--registry-dir", help="Registry directory (overrides config)")
    parser.add_argument("--admin", help="Admin identity for a new registry (overrides config)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # identity command
    identity_parser = subparsers.add_parser("identity", help="Manage local identities")
    identity_sub = identity_parser.add_subparsers(dest="identity_command", required=True)
    identity_create = identity_sub.add_parser("create", help="Generate a new identity")
    identity_create.add_argument("name", help="Identity name")
    identity_sub.add_parser("list", help="List identities")

    # create command
    create_parser = subparsers.add_parser("create", help="Create an avatar")
    create_parser.add_argument("name", help="Avatar name")
    create_parser.add_argument("content_hash", help="Content hash (e.g. IPFS CID)")
    create_parser.add_argument("-a", "--attribute", action="append", help="Initial attribute")
    _add_caller_args(create_parser)

    # update command
    update_parser = subparsers.add_parser("update", help="Update an avatar")
    update_parser.add_argument("avatar_id", type=int, help="Avatar id")
    update_parser.add_argument("--name", dest="new_name", default="", help="New name")
    update_parser.add_argument("--content-hash", default="", help="New content hash")
    update_parser.add_argument("--level-increase", type=int, default=0, help="Levels to add")
    update_parser.add_argument("-a", "--attribute", action="append", help="Attribute to append")
    _add_caller_args(update_parser)

    # transfer command
    transfer_parser = subparsers.add_parser("transfer", help="Transfer an avatar")
    transfer_parser.add_argument("avatar_id", type=int, help="Avatar id")
    transfer_parser.add_argument("new_owner", help="Recipient identity name or address")
    _add_caller_args(transfer_parser)

    for name, help_text in (("deactivate", "Deactivate an avatar"), ("reactivate", "Reactivate an avatar")):
        state_parser = subparsers.add_parser(name, help=help_text)
        state_parser.add_argument("avatar_id", type=int, help="Avatar id")
        _add_caller_args(state_parser)

    show_parser = subparsers.add_parser("show", help="Show an avatar")
    show_parser.add_argument("avatar_id", type=int, help="Avatar id")

    owned_parser = subparsers.add_parser("owned", help="List avatar ids owned by an identity")
    owned_parser.add_argument("identity", help="Identity name or address")

    subparsers.add_parser("total", help="Total avatars ever created")

    pause_parser = subparsers.add_parser("pause", help="Emergency pause (admin only)")
    _add_caller_args(pause_parser)

    events_parser = subparsers.add_parser("events", help="List emitted events")
    events_parser.add_argument("--avatar", type=int, help="Only events for this avatar")

    serve_parser = subparsers.add_parser("serve", help="Serve the registry over HTTP")
    serve_parser.add_argument("--host", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, help="Port to bind to")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = RegistryConfig.discover(args.config)
        if args.registry_dir:
            config.registry_dir = args.registry_dir
        if args.admin:
            config.admin = args.admin

        logging.basicConfig(
            level=logging.DEBUG if args.verbose else getattr(logging, config.log_level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )

        if args.command == "identity":
            cmd_identity(args, config)
            return 0

        registry = open_registry(config)
        if args.command == "serve":
            cmd_serve(args, registry, config)
            return 0

        identities = IdentityStore(config.identities_path)
        REGISTRY_COMMANDS[args.command](args, registry, identities)
        return 0

    except (RegistryError, OSError, ValueError, yaml.YAMLError) as e:
        # Bad config files and stored data are reported like registry errors
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
