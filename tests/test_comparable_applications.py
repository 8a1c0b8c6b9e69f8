import pytest

from fplusdb import comparable_applications
from fplusdb.connection import DatabaseError, setup
from fplusdb.models import ApplicationComparableData, Base


@pytest.fixture(autouse=True)
def database(tmp_path):
    engine = setup(f"sqlite:///{tmp_path / 'db.sqlite'}")
    Base.metadata.create_all(engine)
    return engine


def _data(project="short", stored="short"):
    return ApplicationComparableData(
        project_desc=project,
        stored_data_desc=stored,
        data_owner_name="Example Owner",
        data_set_sample="sample",
    )


def test_round_trip_keeps_data():
    data = _data(project="p" * 41)
    comparable_applications.create_comparable_application("f1client", data)
    rows = comparable_applications.get_comparable_applications()
    assert [(r.client_address, r.application) for r in rows] == [("f1client", data)]


def test_only_long_descriptions_are_returned():
    comparable_applications.create_comparable_application("a", _data(project="p" * 41))
    comparable_applications.create_comparable_application("b", _data(stored="s" * 41))
    comparable_applications.create_comparable_application("c", _data(project="p" * 40, stored="s" * 40))
    comparable_applications.create_comparable_application("d", _data())
    rows = comparable_applications.get_comparable_applications()
    assert sorted(r.client_address for r in rows) == ["a", "b"]


def test_duplicate_client_address_raises():
    comparable_applications.create_comparable_application("a", _data())
    with pytest.raises(DatabaseError):
        comparable_applications.create_comparable_application("a", _data())