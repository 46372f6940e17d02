"""
Sources of the read-only scheduler settings.
"""

import logging
from typing import Dict, Iterable, Mapping, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..domain.exceptions import StoreError
from .tables import SystemSetting

logger = logging.getLogger(__name__)


class SettingsProvider(Protocol):
    """Protocol describing a key/value settings source."""

    def get_settings(self, keys: Iterable[str]) -> Dict[str, Optional[str]]:
        """Return the raw values for ``keys``; absent keys are omitted."""


class StaticSettingsProvider:
    """Settings held in memory, e.g. from the YAML config or in tests."""

    def __init__(self, values: Optional[Mapping[str, object]] = None):
        self.values = dict(values or {})

    def get_settings(self, keys):
        return {key: self.values[key] for key in keys if key in self.values}


class DatabaseSettingsProvider:
    """Reads settings from the ``system_settings`` table on every call."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_settings(self, keys):
        keys = list(keys)
        session = self.session_factory()
        try:
            rows = session.execute(
                select(SystemSetting.setting_key, SystemSetting.setting_value).where(
                    SystemSetting.setting_key.in_(keys)
                )
            ).all()
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(f"Unable to read system settings: {exc}") from exc
        finally:
            session.close()

        values = {key: value for key, value in rows}
        missing = [key for key in keys if key not in values]
        if missing:
            logger.debug("Settings not configured, fallbacks apply: %s", ", ".join(missing))
        return values

    def set_settings(self, values: Mapping[str, object]) -> None:
        """Upsert ``values`` into ``system_settings``."""
        session = self.session_factory()
        try:
            for key, value in values.items():
                row = session.get(SystemSetting, key)
                if row is None:
                    session.add(SystemSetting(setting_key=key, setting_value=str(value)))
                else:
                    row.setting_value = str(value)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(f"Unable to write system settings: {exc}") from exc
        finally:
            session.close()
