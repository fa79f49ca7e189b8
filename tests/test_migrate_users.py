from geminipocket.user_store import UserStore
from scripts.migrate_users_json_to_sql import compare_json_vs_db, main, migrate


def _seed_json(path):
    store = UserStore(path=str(path))
    keys = {
        "aria@example.com": store.register("aria@example.com", "s3cret"),
        "sam@example.com": store.register("sam@example.com", "hunter2"),
    }
    return keys


def test_migrate_keeps_hashes_and_api_keys(tmp_path):
    src = tmp_path / "users.json"
    db_url = f"sqlite:///{tmp_path / 'users.db'}"
    keys = _seed_json(src)

    migrated = migrate(str(src), db_url, backup=True, verify=True)
    assert migrated == 2
    assert list(tmp_path.glob("users.json.bak.*"))

    sql_store = UserStore(db_url=db_url)
    assert sql_store.login("aria@example.com", "s3cret") == keys["aria@example.com"]
    assert sql_store.verify_api_key(keys["sam@example.com"]) == "sam@example.com"


def test_dry_run_writes_nothing(tmp_path):
    src = tmp_path / "users.json"
    db_url = f"sqlite:///{tmp_path / 'users.db'}"
    _seed_json(src)

    assert migrate(str(src), db_url, dry_run=True) == 0
    summary = compare_json_vs_db(str(src), db_url)
    assert summary["total_db"] == 0
    assert sorted(summary["to_add"]) == ["aria@example.com", "sam@example.com"]


def test_rerun_skips_existing_users(tmp_path):
    src = tmp_path / "users.json"
    db_url = f"sqlite:///{tmp_path / 'users.db'}"
    _seed_json(src)

    assert migrate(str(src), db_url) == 2
    assert migrate(str(src), db_url) == 0
    summary = compare_json_vs_db(str(src), db_url)
    assert summary["to_add"] == [] and summary["conflicting"] == []
    assert len(summary["identical"]) == 2


def test_conflicting_key_fails_verification(tmp_path):
    src = tmp_path / "users.json"
    db_url = f"sqlite:///{tmp_path / 'users.db'}"
    _seed_json(src)
    UserStore(db_url=db_url).register("aria@example.com", "different")

    assert migrate(str(src), db_url, verify=True) == -1
    assert main(["--from", str(src), "--to", db_url, "--verify"]) == 2


def test_missing_or_broken_source(tmp_path):
    db_url = f"sqlite:///{tmp_path / 'users.db'}"
    assert migrate(str(tmp_path / "absent.json"), db_url) == 0

    broken = tmp_path / "broken.json"
    broken.write_text("[1, 2, 3]")
    assert migrate(str(broken), db_url) == 0
    assert main(["--from", str(broken), "--to", db_url]) == 1
