"""
System settings stored in the document store.

A single ``system_settings/general`` document holds the years and months
for which monthly dues are collected. The recycle bin uses this service to
re-apply removed years and months on restore.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .document_store import DocumentStore, collections, utc_now

logger = logging.getLogger(__name__)

GENERAL_DOC_ID = "general"
ALL_MONTHS = list(range(1, 13))


class SystemSettings(BaseModel):
    """Contents of the general settings document."""

    model_config = ConfigDict(populate_by_name=True)

    collection_years: List[int] = Field(default_factory=list, alias="collectionYears")
    collection_months: Dict[int, List[int]] = Field(
        default_factory=dict,
        alias="collectionMonths",
        description="Active months (1-12) per year; a missing year means all",
    )
    currency_symbol: str = Field("৳", alias="currencySymbol")

    @field_validator("collection_months")
    @classmethod
    def validate_months(cls, v: Dict[int, List[int]]) -> Dict[int, List[int]]:
        """Months must be calendar months."""
        for year, months in v.items():
            bad = [m for m in months if m not in ALL_MONTHS]
            if bad:
                raise ValueError(f"Invalid months for {year}: {bad}")
        return v

    def active_months(self, year: int) -> List[int]:
        """Months collected in ``year``."""
        return list(self.collection_months.get(year, ALL_MONTHS))

    def to_document(self) -> Dict[str, Any]:
        """Wire form; map keys become strings as the store requires."""
        return {
            "collectionYears": list(self.collection_years),
            "collectionMonths": {
                str(year): list(months) for year, months in self.collection_months.items()
            },
            "currencySymbol": self.currency_symbol,
        }


def default_settings(now: Optional[datetime] = None) -> SystemSettings:
    """Previous, current and next year, nothing else configured."""
    year = (now or utc_now()).year
    return SystemSettings(collection_years=[year - 1, year, year + 1])


class SettingsService:
    """Reads and changes the general settings document."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.clock = clock or store.clock

    async def get_settings(self) -> SystemSettings:
        """
        Load the settings, writing the defaults on first use.

        Returns:
            Current settings
        """
        doc = await self.store.get(collections.SYSTEM_SETTINGS, GENERAL_DOC_ID)
        if doc is not None:
            return SystemSettings.model_validate(doc.to_dict())

        settings = default_settings(self.clock())
        await self.store.set(
            collections.SYSTEM_SETTINGS, GENERAL_DOC_ID, settings.to_document()
        )
        logger.info("Initialized default system settings")
        return settings

    async def update_settings(self, **changes: Any) -> None:
        """
        Merge changed fields into the settings document.

        Args:
            **changes: Field names of ``SystemSettings`` (snake case)
        """
        unknown = set(changes) - set(SystemSettings.model_fields)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

        current = await self.get_settings()
        document = current.model_copy(update=changes).to_document()

        payload: Dict[str, Any] = {}
        for name in changes:
            key = SystemSettings.model_fields[name].alias or name
            payload[key] = document[key]

        await self.store.set(
            collections.SYSTEM_SETTINGS, GENERAL_DOC_ID, payload, merge=True
        )

    async def add_collection_year(self, year: int) -> List[int]:
        """
        Add a collection year with all twelve months enabled.

        Adding a year that is already configured changes nothing.

        Returns:
            The configured years, sorted
        """
        settings = await self.get_settings()
        if year in settings.collection_years:
            return settings.collection_years

        years = sorted(settings.collection_years + [year])
        months = dict(settings.collection_months)
        months[year] = list(ALL_MONTHS)
        await self.update_settings(collection_years=years, collection_months=months)
        logger.info("Added collection year %s", year)
        return years

    async def toggle_collection_month(
        self, year: int, month: int, enabled: bool
    ) -> List[int]:
        """
        Enable or disable one month of a year.

        Returns:
            The year's active months, sorted
        """
        if month not in ALL_MONTHS:
            raise ValueError(f"Month must be between 1 and 12, got {month}")

        settings = await self.get_settings()
        active = settings.active_months(year)

        if enabled and month not in active:
            active = sorted(active + [month])
        elif not enabled:
            active = [m for m in active if m != month]

        months = dict(settings.collection_months)
        months[year] = active
        await self.update_settings(collection_months=months)
        return active

    async def remove_collection_year(self, year: int) -> List[int]:
        """
        Stop collecting for a year.

        Returns:
            The remaining years
        """
        settings = await self.get_settings()
        years = [y for y in settings.collection_years if y != year]
        await self.update_settings(collection_years=years)
        logger.info("Removed collection year %s", year)
        return years
