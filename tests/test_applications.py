import pytest

from fplusdb.applications import (
    create_application,
    delete_application,
    get_active_applications,
    get_application,
    get_application_by_issue_number,
    get_application_by_pr_number,
    get_applications,
    get_applications_by_client_id,
    get_distinct_applications_by_clients_addresses,
    get_merged_applications,
    git_blob_sha,
    merge_application_by_pr_number,
    update_application,
)
from fplusdb.connection import DatabaseError, setup
from fplusdb.models import Base


@pytest.fixture
def db(tmp_path):
    engine = setup(f"sqlite:///{tmp_path / 'apps.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


def _make(id="client1", owner="owner", repo="repo", pr=5, issue=1, body="{}", path="a.json"):
    return create_application(id, owner, repo, pr, issue, body, path, "reporter")


def test_git_blob_sha_empty():
    assert git_blob_sha("") == "e69de29bb2d1d6434b8b29ae775ad8c2e48c5391"


def test_git_blob_sha_text():
    assert git_blob_sha("hello world\n") == "3b18e512dba79e4c8300dd08aeb37f8e728b8dad"


def test_create_stores_blob_sha(db):
    created = _make(body='{"a": 1}')
    assert created.sha == git_blob_sha('{"a": 1}')
    fetched = get_application("client1", "owner", "repo")
    assert fetched.application == '{"a": 1}'
    assert fetched.issue_reporter_handle == "reporter"
    assert fetched.path == "a.json"


def test_create_duplicate_raises(db):
    _make()
    with pytest.raises(DatabaseError):
        _make()


def test_get_application_highest_pr(db):
    _make(pr=0)
    _make(pr=7)
    _make(pr=3)
    assert get_application("client1", "owner", "repo").pr_number == 7
    assert get_application("client1", "owner", "repo", 3).pr_number == 3


def test_get_application_owner_substring(db):
    _make(owner="someowner", repo="somerepo")
    found = get_application("client1", "owner", "repo")
    assert found.owner == "someowner"


def test_get_application_missing(db):
    with pytest.raises(DatabaseError, match="Application not found"):
        get_application("nobody", "owner", "repo")


def test_get_by_pr_and_issue(db):
    _make(pr=9, issue=42)
    assert get_application_by_pr_number("owner", "repo", 9).issue_number == 42
    assert get_application_by_issue_number("owner", "repo", 42).pr_number == 9
    with pytest.raises(DatabaseError):
        get_application_by_pr_number("owner", "repo", 10)
    with pytest.raises(DatabaseError):
        get_application_by_issue_number("own", "repo", 42)


def test_merged_and_active(db):
    _make(id="a", pr=0)
    _make(id="b", pr=4)
    _make(id="c", owner="other", repo="thing", pr=0)
    merged = get_merged_applications()
    assert sorted(app.id for app in merged) == ["a", "c"]
    assert [app.owner for app in merged] == sorted(app.owner for app in merged)
    assert [app.id for app in get_merged_applications("owner", "repo")] == ["a"]
    assert [app.id for app in get_active_applications("owner")] == ["b"]


def test_repo_without_owner_raises(db):
    with pytest.raises(DatabaseError, match="Owner is required"):
        get_merged_applications(None, "repo")
    with pytest.raises(DatabaseError, match="Owner is required"):
        get_active_applications(None, "repo")


def test_get_applications_one_per_id(db):
    _make(id="x", pr=0)
    _make(id="x", pr=6)
    _make(id="y", pr=0)
    apps = get_applications()
    assert [(app.id, app.pr_number) for app in apps] == [("x", 6), ("y", 0)]


def test_merge_without_existing(db):
    _make(pr=8, body="new")
    merge_application_by_pr_number("owner", "repo", 8)
    merged = get_application("client1", "owner", "repo", 0)
    assert merged.application == "new"
    assert merged.issue_number == 1
    assert merged.sha == git_blob_sha("new")
    with pytest.raises(DatabaseError):
        get_application_by_pr_number("owner", "repo", 8)


def test_merge_into_existing(db):
    _make(pr=0, body="old", path="old.json")
    _make(pr=8, body="new", path="new.json")
    merge_application_by_pr_number("owner", "repo", 8)
    rows = get_applications_by_client_id("client1")
    assert len(rows) == 1
    assert rows[0].pr_number == 0
    assert rows[0].application == "new"
    assert rows[0].sha == git_blob_sha("new")
    assert rows[0].path == "old.json"


def test_merge_missing_pr_raises(db):
    with pytest.raises(DatabaseError):
        merge_application_by_pr_number("owner", "repo", 99)


def test_update_application_computes_sha(db):
    _make(pr=2)
    updated = update_application("client1", "owner", "repo", 2, "body", None, None, "f1contract")
    assert updated.sha == git_blob_sha("body")
    assert updated.path == "a.json"
    assert updated.client_contract_address == "f1contract"


def test_update_application_given_sha_and_clears_contract(db):
    _make(pr=2)
    update_application("client1", "owner", "repo", 2, "body", "b.json", "abc", "f1contract")
    updated = update_application("client1", "owner", "repo", 2, "body2", "c.json", "def")
    assert updated.sha == "def"
    assert updated.path == "c.json"
    assert updated.client_contract_address is None
    assert get_application("client1", "owner", "repo", 2).application == "body2"


def test_update_missing_raises(db):
    with pytest.raises(DatabaseError):
        update_application("client1", "owner", "repo", 2, "body")


def test_delete_application(db):
    _make(pr=2)
    _make(pr=0)
    delete_application("client1", "owner", "repo", 2)
    assert [app.pr_number for app in get_applications_by_client_id("client1")] == [0]
    with pytest.raises(DatabaseError):
        delete_application("client1", "owner", "repo", 2)


def test_distinct_by_clients_addresses(db):
    _make(id="a", pr=0)
    _make(id="a", pr=1)
    _make(id="b", pr=0)
    _make(id="c", pr=0)
    apps = get_distinct_applications_by_clients_addresses(["a", "b", "zzz"])
    assert [app.id for app in apps] == ["a", "b"]
    assert get_distinct_applications_by_clients_addresses([]) == []