"""Tests for building registry access."""

from sqlalchemy.exc import OperationalError

from deal_finder.analysis.models import RegistryRecord
from deal_finder.registry import SqlRegistry, StaticRegistry, load_registry


def test_sql_registry_add_and_lookup(db_session):
    registry = SqlRegistry(db_session)
    registry.add("123 E 7th St", "MN", unit_count=24, built_year=1910)
    registry.add("123 E 7th St", "MN", unit_count=26)

    records = registry.lookup()

    assert records == [RegistryRecord("123 E 7th St", "MN", unit_count=26, built_year=None)]


def test_load_registry_static():
    records = [RegistryRecord("400 W 50th St", "MN")]
    assert load_registry(StaticRegistry(records)) == records


def test_load_registry_none_is_unavailable():
    assert load_registry(None) is None


def test_database_error_means_unavailable(mocker):
    session = mocker.Mock()
    session.execute.side_effect = OperationalError("SELECT", {}, Exception("no such table"))

    assert load_registry(SqlRegistry(session)) is None
