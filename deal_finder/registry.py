"""Building registry access.

The registry lists rent-regulated buildings. It is read once per run; when it
cannot be read the run continues with the registry treated as unavailable.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from deal_finder.analysis.models import RegistryRecord
from deal_finder.db.models import RegistryBuilding
from deal_finder.errors import RegistryUnavailable

logger = logging.getLogger(__name__)


class BuildingRegistry(ABC):
    """Abstract source of registry records."""

    @abstractmethod
    def lookup(self) -> List[RegistryRecord]:
        """Return all registry records.

        Raises:
            RegistryUnavailable: If the registry cannot be read
        """
        pass


class StaticRegistry(BuildingRegistry):
    """In-memory registry, mainly for tests and small fixed datasets."""

    def __init__(self, records: Iterable[RegistryRecord]):
        self._records = list(records)

    def lookup(self) -> List[RegistryRecord]:
        return list(self._records)


class SqlRegistry(BuildingRegistry):
    """Registry backed by the ``registry_buildings`` table."""

    def __init__(self, session: Session):
        self.session = session

    def lookup(self) -> List[RegistryRecord]:
        try:
            rows = self.session.execute(select(RegistryBuilding)).scalars().all()
        except SQLAlchemyError as e:
            raise RegistryUnavailable(f"Failed to read registry: {e}") from e

        return [
            RegistryRecord(
                address=row.address,
                jurisdiction_code=row.jurisdiction_code,
                unit_count=row.unit_count,
                built_year=row.built_year,
            )
            for row in rows
        ]

    def add(
        self,
        address: str,
        jurisdiction_code: str,
        unit_count: Optional[int] = None,
        built_year: Optional[int] = None,
    ) -> RegistryBuilding:
        """Insert or update a registry building."""
        stmt = select(RegistryBuilding).where(
            RegistryBuilding.address == address,
            RegistryBuilding.jurisdiction_code == jurisdiction_code,
        )
        building = self.session.execute(stmt).scalar_one_or_none()
        if building is None:
            building = RegistryBuilding(address=address, jurisdiction_code=jurisdiction_code)
            self.session.add(building)
        building.unit_count = unit_count
        building.built_year = built_year
        self.session.commit()
        return building


def load_registry(registry: Optional[BuildingRegistry]) -> Optional[List[RegistryRecord]]:
    """Load registry records, returning None when the registry is unavailable."""
    if registry is None:
        logger.warning("No building registry configured; stabilization estimates capped")
        return None
    try:
        records = registry.lookup()
    except RegistryUnavailable as e:
        logger.warning(f"Building registry unavailable: {e}")
        return None

    logger.info(f"Loaded {len(records)} registry buildings")
    return records
