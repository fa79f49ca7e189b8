"""One-time migration tool: move relay users from a JSON store to an SQL database.

Usage:
  python scripts/migrate_users_json_to_sql.py --from /path/to/users.json --to sqlite:////path/to/users.db [--backup]

If `--from` is omitted the script will look at env `USER_STORE_PATH` (defaults to .users.json).
If `--to` is omitted the script will use env `USER_DB_URL` or `sqlite:///.users.db` in cwd.

Password hashes and API keys are copied as-is, so existing clients keep working.
Users already present in the database are left untouched.
"""
import argparse
import json
import os
import shutil
import sys
import time
from typing import Dict

from geminipocket.user_store import UserExistsError, UserStore


def load_json(path: str) -> Dict[str, dict]:
    if not os.path.exists(path):
        print(f"JSON source not found: {path}")
        return {}
    with open(path, "r") as f:
        try:
            data = json.load(f)
        except ValueError as e:
            print(f"Failed to read JSON store: {e}")
            return {}
    if not isinstance(data, dict):
        print("JSON store must be an object mapping email -> user record")
        return {}
    return data


def compare_json_vs_db(json_path: str, db_url: str) -> dict:
    """Compare the JSON store against the database.

    Summary keys:
      - total_json: number of users in JSON
      - total_db: number of users in the database
      - to_add: emails present in JSON but not in the database
      - conflicting: emails present in both with a different API key
      - identical: emails present in both with the same API key
    """
    data = load_json(json_path)
    db = {u["email"]: u for u in UserStore(db_url=db_url).all()}

    to_add, conflicting, identical = [], [], []
    for email, record in data.items():
        if email not in db:
            to_add.append(email)
        elif db[email]["api_key"] == record.get("api_key"):
            identical.append(email)
        else:
            conflicting.append(email)

    return {
        "total_json": len(data),
        "total_db": len(db),
        "to_add": to_add,
        "conflicting": conflicting,
        "identical": identical,
    }


def migrate(json_path: str, db_url: str, backup: bool = False, dry_run: bool = False, verify: bool = False) -> int:
    print(f"Migrating users from JSON: {json_path} -> {db_url}")
    data = load_json(json_path)
    if not data:
        print("No data to migrate.")
        return 0

    if dry_run:
        summary = compare_json_vs_db(json_path, db_url)
        print("Dry-run summary:")
        print(f" JSON users: {summary['total_json']}")
        print(f" DB users: {summary['total_db']}")
        print(f" To add: {len(summary['to_add'])} -> {summary['to_add']}")
        print(f" Conflicting: {len(summary['conflicting'])} -> {summary['conflicting']}")
        print(f" Identical: {len(summary['identical'])}")
        return 0

    if backup:
        bak = f"{json_path}.bak.{int(time.time())}"
        shutil.copy2(json_path, bak)
        print(f"Backup written to {bak}")

    store = UserStore(db_url=db_url)
    migrated = 0
    for email, record in data.items():
        try:
            store.import_record(dict(record, email=email))
            migrated += 1
        except UserExistsError:
            print(f"Skipping existing user: {email}")
    print(f"Migrated {migrated} users.")

    if verify:
        summary = compare_json_vs_db(json_path, db_url)
        if summary["to_add"] or summary["conflicting"]:
            print("Verify: FAILED - database does not match JSON after migration.")
            print(f"Missing: {summary['to_add']}")
            print(f"Conflicting: {summary['conflicting']}")
            return -1
        print("Verify: OK - database matches JSON.")

    return migrated


def main(argv=None):
    parser = argparse.ArgumentParser()
    parser.add_argument("--from", dest="src", help="Path to JSON user store")
    parser.add_argument("--to", dest="dst", help="SQLAlchemy database URL (or .db path)")
    parser.add_argument("--backup", action="store_true", help="Create a backup of the JSON before migrating")
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", help="Only compare JSON vs DB and print a summary")
    parser.add_argument("--verify", action="store_true", help="After migrating, verify the database matches the JSON")
    args = parser.parse_args(argv)

    src = args.src or os.getenv("USER_STORE_PATH") or os.path.join(os.getcwd(), ".users.json")
    dst = args.dst or os.getenv("USER_DB_URL") or f"sqlite:///{os.path.join(os.getcwd(), '.users.db')}"

    migrated = migrate(src, dst, backup=args.backup, dry_run=args.dry_run, verify=args.verify)
    if args.dry_run:
        return 0
    if migrated == -1:
        print("Migration failed verification.")
        return 2
    if migrated > 0:
        print("Migration completed successfully.")
        return 0
    print("Nothing migrated.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
