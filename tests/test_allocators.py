import pytest

from fplusdb import allocators
from fplusdb.connection import DatabaseError, setup
from fplusdb.models import Base

OWNER = "test_owner"
REPO = "test_repo"
DATA_TYPES = [
    "Public Open Dataset (Research/Non-Profit)",
    "Public Open Commercial/Enterprise",
]


@pytest.fixture(autouse=True)
def database(tmp_path):
    engine = setup(f"sqlite:///{tmp_path / 'db.sqlite'}")
    Base.metadata.create_all(engine)
    return engine


def _create(**overrides):
    values = dict(
        owner=OWNER,
        repo=REPO,
        installation_id=1234,
        multisig_address="0x1234567890",
        verifiers_gh_handles="test_verifier_1, test_verifier_2",
        multisig_threshold=2,
        allocation_amount_type="Fixed",
        address="0x1234567890",
        tooling="common_ui, smart_contract_allocator",
        data_types=DATA_TYPES,
        required_sps="5+",
        required_replicas="5+",
        registry_file_path="Allocators/123.json",
        client_contract_address="f1owcbryeqlq3vl7kydzax7r75sbtyvgpnny7fswy",
    )
    values.update(overrides)
    return allocators.create_or_update_allocator(**values)


def test_create_allocator():
    created = _create()
    assert created.owner == OWNER
    assert created.repo == REPO
    assert created.installation_id == 1234
    assert created.multisig_threshold == 2
    assert created.allocation_amount_type == "fixed"
    assert created.data_types == DATA_TYPES
    assert created.registry_file_path == "Allocators/123.json"
    assert created.client_contract_address == "f1owcbryeqlq3vl7kydzax7r75sbtyvgpnny7fswy"


def test_get_allocators():
    assert allocators.get_allocators() == []
    _create()
    _create(owner="other_owner")
    found = allocators.get_allocators()
    assert sorted(a.owner for a in found) == ["other_owner", OWNER]


def test_get_allocator():
    _create()
    last = allocators.get_allocators().pop()
    fetched = allocators.get_allocator(last.owner, last.repo)
    assert fetched.id == last.id
    assert fetched.verifiers_gh_handles == "test_verifier_1, test_verifier_2"


def test_get_missing_allocator_is_none():
    assert allocators.get_allocator(OWNER, REPO) is None


def test_delete_allocator():
    _create()
    allocators.delete_allocator(OWNER, REPO)
    assert allocators.get_allocator(OWNER, REPO) is None


def test_delete_missing_allocator_raises():
    with pytest.raises(DatabaseError, match="Allocator not found"):
        allocators.delete_allocator(OWNER, REPO)


def test_update_keeps_fields_not_given():
    first = _create()
    updated = allocators.create_or_update_allocator(OWNER, REPO, multisig_threshold=3)
    assert updated.id == first.id
    assert updated.multisig_threshold == 3
    assert updated.installation_id == 1234
    assert updated.tooling == "common_ui, smart_contract_allocator"
    assert updated.allocation_amount_type is None
    assert updated.client_contract_address is None
    assert len(allocators.get_allocators()) == 1


def test_empty_client_contract_address_is_stored_as_none():
    created = _create(client_contract_address="")
    assert created.client_contract_address is None


def test_update_installation_ids():
    _create()
    allocators.update_allocator_installation_ids(OWNER, REPO, 99)
    assert allocators.get_allocator(OWNER, REPO).installation_id == 99
    allocators.update_allocator_installation_ids(OWNER, REPO, None)
    assert allocators.get_allocator(OWNER, REPO).installation_id == 99


def test_update_installation_ids_for_missing_allocator_does_nothing():
    allocators.update_allocator_installation_ids(OWNER, REPO, 5)
    assert allocators.get_allocators() == []


def test_update_threshold():
    _create()
    updated = allocators.update_allocator_threshold(OWNER, REPO, 7)
    assert updated.multisig_threshold == 7
    assert allocators.get_allocator(OWNER, REPO).multisig_threshold == 7


def test_update_threshold_missing_raises():
    with pytest.raises(DatabaseError, match="Allocator not found"):
        allocators.update_allocator_threshold(OWNER, REPO, 2)