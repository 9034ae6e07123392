#!/usr/bin/env python
"""Idempotent seed script for the permission catalog, system roles and first admin.

Usage:
    python backend/scripts/seed_authz.py               # seed normally
    python backend/scripts/seed_authz.py --show-roles  # print role -> permission counts (after ensuring seed)
    python backend/scripts/seed_authz.py --dry-run     # run logic then rollback (no DB changes)
    python backend/scripts/seed_authz.py --export-json roles.json

The admin account comes from SEED_ADMIN_EMAIL / SEED_ADMIN_PASSWORD.
"""
from __future__ import annotations
import os, sys, argparse, textwrap, json, hashlib
from sqlalchemy import inspect

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from factory_admin import create_app, get_db  # type: ignore
from factory_admin.models.authz import Base
import factory_admin.models.audit  # noqa: F401
from factory_admin.constants.permissions import CATEGORIES, ACTIONS
from factory_admin.services.seed import seed_defaults, role_permission_map


def print_role_summary(mapping):
    if not mapping:
        print("[INFO] No roles present.")
        return
    name_w = max(len(name) for name in mapping)
    print(f"{'Role'.ljust(name_w)} | Count | Sample (up to 8)")
    print('-' * (name_w + 40))
    for name, perms in mapping.items():
        print(f"{name.ljust(name_w)} | {str(len(perms)).rjust(5)} | {', '.join(perms[:8])}")


def validate(session, mapping):
    from factory_admin.models.authz import Permission
    problems = []
    for p in session.query(Permission).all():
        if p.category not in CATEGORIES:
            problems.append(f"Unknown category '{p.category}' on {p.name}")
        if p.action not in ACTIONS:
            problems.append(f"Unknown action '{p.action}' on {p.name}")
        if p.name != f'{p.action}_{p.resource}':
            problems.append(f"Name {p.name} does not match {p.action}_{p.resource}")
    if not mapping.get('super-admin'):
        problems.append('super-admin role has no permissions')
    return problems


def parse_args():
    p = argparse.ArgumentParser(
        description="Seed RBAC permissions & roles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_authz.py\n  dry run: seed_authz.py --dry-run\n  show roles: seed_authz.py --show-roles\n""")
    )
    p.add_argument('--show-roles', action='store_true', help='Print role permission counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--export-json', nargs='?', const='-', metavar='FILE', help='Export role->permissions JSON (to FILE or stdout if omitted)')
    p.add_argument('--validate', action='store_true', help='Validate stored permissions; exits non-zero on problems')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    with app.app_context():
        session = get_db()
        engine = session.get_bind()
        if not inspect(engine).has_table('permissions'):
            # bootstrap fallback; real deployments run `alembic upgrade head`
            Base.metadata.create_all(engine)
        try:
            result = seed_defaults(
                session,
                admin_email=os.getenv('SEED_ADMIN_EMAIL'),
                admin_password=os.getenv('SEED_ADMIN_PASSWORD'),
            )
            mapping = role_permission_map(session)
            if args.validate:
                problems = validate(session, mapping)
                if problems:
                    print('\n[VALIDATION] FAIL:')
                    for p in problems:
                        print(' -', p)
                    session.rollback()
                    sys.exit(2)
                print('[VALIDATION] OK')
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) Permissions would create: {result['permissions_created']}, Roles would create: {result['roles_created']}")
            else:
                session.commit()
                print(f"[DONE] Permissions created: {result['permissions_created']}, Roles created: {result['roles_created']}")
                if result['admin'] is not None:
                    print(f"[INFO] Created initial admin user {result['admin'].email}")
            if args.show_roles:
                print('\nRole Permission Summary:')
                print_role_summary(mapping)
            if args.export_json is not None:
                canonical = json.dumps(mapping, sort_keys=True, separators=(',', ':'))
                payload = {
                    'roles': mapping,
                    'meta': {
                        'roles_checksum_sha256': hashlib.sha256(canonical.encode('utf-8')).hexdigest(),
                        'dry_run': args.dry_run,
                    }
                }
                if args.export_json == '-':
                    print(json.dumps(payload, indent=2, sort_keys=True))
                else:
                    with open(args.export_json, 'w', encoding='utf-8') as f:
                        json.dump(payload, f, indent=2, sort_keys=True)
                    print(f"[INFO] Exported JSON to {args.export_json}")
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


if __name__ == '__main__':
    main()
