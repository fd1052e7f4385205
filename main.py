#!/usr/bin/env python3
"""
AccessGate -- administration CLI for the identity and role stores.

Uses the same Settings (DATABASE_URL, SECRET_KEY, ...) as the API, so it
operates on whichever database the server is configured for.

Usage:
  python main.py seed
  python main.py create-user 0900000001 --password secret123 --role manager
  python main.py assign-role 0900000001 staff
  python main.py unassign-role 0900000001 staff
  python main.py grant staff orders:update
  python main.py revoke staff orders:update
  python main.py deactivate 0900000001
  python main.py activate 0900000001
  python main.py permissions 0900000001
  python main.py roles
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

from auth.errors import AuthError, StoreUnavailable
from auth.hashing import PASSWORD_MAX_BYTES
from auth.models import Principal
from core.config import get_settings
from rbac.seed import seed_defaults
from rbac.services import Services, build_services


def _find_principal(services: Services, phone_number: str) -> Optional[Principal]:
    principal = services.user_store.find_by_identity_key(phone_number)
    if principal is None:
        print(f"  [!] No user with phone number '{phone_number}'.")
    return principal


def _cmd_seed(services: Services, args: argparse.Namespace) -> int:
    added = seed_defaults(services.role_store)
    print(f"  Seeded default roles and permissions ({added} new grant(s)).")
    return 0


def _cmd_create_user(services: Services, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("  Password: ")
    if len(password) < 6:
        print("  [!] Password must be at least 6 characters.")
        return 1
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        print(f"  [!] Password must be at most {PASSWORD_MAX_BYTES} bytes.")
        return 1

    role = None
    if args.role:
        role = services.role_store.get_role_by_name(args.role)
        if role is None:
            print(f"  [!] Unknown role '{args.role}'. Run 'python main.py roles' to list them.")
            return 1

    result = services.sessions.register(args.phone_number, password, email=args.email)
    if isinstance(result, AuthError):
        print(f"  [!] {result.message}")
        return 1
    # The CLI only provisions the account; it does not hand out a session.
    services.sessions.logout(result.principal.id)

    print(f"  Created user {result.principal.id} ({args.phone_number}).")
    if role is not None:
        services.permission_reader.assign_role(result.principal.id, role.id)
        print(f"  Assigned role '{role.name}'.")
    return 0


def _cmd_assign_role(services: Services, args: argparse.Namespace) -> int:
    principal = _find_principal(services, args.phone_number)
    role = services.role_store.get_role_by_name(args.role)
    if role is None:
        print(f"  [!] Unknown role '{args.role}'.")
    if principal is None or role is None:
        return 1
    if args.command == "assign-role":
        changed = services.permission_reader.assign_role(principal.id, role.id)
        print(f"  Role '{role.name}' {'assigned' if changed else 'was already assigned'}.")
    else:
        changed = services.permission_reader.unassign_role(principal.id, role.id)
        print(f"  Role '{role.name}' {'removed' if changed else 'was not assigned'}.")
    return 0


def _cmd_grant(services: Services, args: argparse.Namespace) -> int:
    role = services.role_store.get_role_by_name(args.role)
    permission = services.role_store.get_permission_by_key(args.key)
    if role is None:
        print(f"  [!] Unknown role '{args.role}'.")
    if permission is None:
        print(f"  [!] Unknown permission '{args.key}'. Run 'python main.py roles' to see the keys in use.")
    if role is None or permission is None:
        return 1
    if args.command == "grant":
        changed = services.permission_reader.grant(role.id, permission.id)
        print(f"  '{args.key}' {'granted to' if changed else 'was already granted to'} '{role.name}'.")
    else:
        changed = services.permission_reader.revoke(role.id, permission.id)
        print(f"  '{args.key}' {'revoked from' if changed else 'was not granted to'} '{role.name}'.")
    return 0


def _cmd_set_active(services: Services, args: argparse.Namespace) -> int:
    principal = _find_principal(services, args.phone_number)
    if principal is None:
        return 1
    active = args.command == "activate"
    services.sessions.set_active(principal.id, active)
    print(f"  User {principal.id} {'activated' if active else 'deactivated'}.")
    return 0


def _cmd_permissions(services: Services, args: argparse.Namespace) -> int:
    principal = _find_principal(services, args.phone_number)
    if principal is None:
        return 1
    roles = services.role_store.role_names_of(principal.id)
    keys = services.role_store.permission_keys_for_principal(principal.id)
    print(f"\n  {principal.phone_number} (id {principal.id}, {'active' if principal.is_active else 'inactive'})")
    print(f"  Roles: {', '.join(roles) or '(none)'}")
    print("  Permissions:")
    for key in keys:
        print(f"    {key}")
    if not keys:
        print("    (none)")
    print()
    return 0


def _cmd_roles(services: Services, args: argparse.Namespace) -> int:
    for role in services.role_store.list_roles():
        print(f"\n  {role.name} -- {role.description}")
        for key in role.permissions:
            print(f"    {key}")
    print()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="accessgate",
        description="Manage AccessGate users, roles and permissions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py seed
  python main.py create-user 0900000001 --password secret123 --role manager
  python main.py permissions 0900000001
  DATABASE_URL=sqlite:///prod.db python main.py deactivate 0900000001
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    sub.add_parser("seed", help="Create the default permission catalogue and roles")
    sub.add_parser("roles", help="List roles and their permission keys")

    create = sub.add_parser("create-user", help="Create an active user")
    create.add_argument("phone_number", metavar="PHONE")
    create.add_argument("--password", help="Password (prompted for when omitted)")
    create.add_argument("--email", default=None)
    create.add_argument("--role", default=None, help="Role name to assign after creation")

    for name, text in (("assign-role", "Assign a role to a user"), ("unassign-role", "Remove a role from a user")):
        p = sub.add_parser(name, help=text)
        p.add_argument("phone_number", metavar="PHONE")
        p.add_argument("role", metavar="ROLE")

    for name, text in (("grant", "Grant a permission to a role"), ("revoke", "Revoke a permission from a role")):
        p = sub.add_parser(name, help=text)
        p.add_argument("role", metavar="ROLE")
        p.add_argument("key", metavar="KEY", help='Permission key, e.g. "bookings:read"')

    for name, text in (("activate", "Re-enable a user"), ("deactivate", "Disable a user")):
        p = sub.add_parser(name, help=text)
        p.add_argument("phone_number", metavar="PHONE")

    perms = sub.add_parser("permissions", help="Show a user's roles and effective permissions")
    perms.add_argument("phone_number", metavar="PHONE")

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING, format="%(levelname)-5s %(name)s %(message)s")
    if not args.command:
        parser.print_help()
        return 0

    handlers = {
        "seed": _cmd_seed,
        "roles": _cmd_roles,
        "create-user": _cmd_create_user,
        "assign-role": _cmd_assign_role,
        "unassign-role": _cmd_assign_role,
        "grant": _cmd_grant,
        "revoke": _cmd_grant,
        "activate": _cmd_set_active,
        "deactivate": _cmd_set_active,
        "permissions": _cmd_permissions,
    }

    services = build_services(get_settings())
    try:
        return handlers[args.command](services, args)
    except StoreUnavailable as e:
        print(f"  [!] Database unavailable: {e}")
        return 2
    finally:
        services.close()


if __name__ == "__main__":
    sys.exit(main())
