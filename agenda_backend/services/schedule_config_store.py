import logging
from datetime import time

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agenda_backend.database import storage_errors
from agenda_backend.models.schedule_config import DEFAULT_SLOT_DURATION_MINUTES, ScheduleConfig
from agenda_backend.scheduling.slots import WEEKDAYS

logger = logging.getLogger(__name__)

DAY_START = time(8, 0)
DAY_END = time(18, 0)
LAST_DAY_END = time(17, 0)
DEFAULT_WORKING_DAYS = WEEKDAYS[:5]

CONFIG_FIELDS = tuple(
    f'{day}_{bound}' for day in WEEKDAYS for bound in ('start', 'end')
) + ('slot_duration', 'break_start', 'break_end')


def default_schedule_values() -> dict:
    """Monday to Friday from 08:00 to 18:00, with the last working day closing at 17:00."""
    values: dict = {field: None for field in CONFIG_FIELDS}
    for day in DEFAULT_WORKING_DAYS:
        values[f'{day}_start'] = DAY_START
        values[f'{day}_end'] = DAY_END
    values[f'{DEFAULT_WORKING_DAYS[-1]}_end'] = LAST_DAY_END
    values['slot_duration'] = DEFAULT_SLOT_DURATION_MINUTES
    return values


def _apply(config: ScheduleConfig, values: dict) -> None:
    for field in CONFIG_FIELDS:
        setattr(config, field, values.get(field))
    if not config.slot_duration:
        config.slot_duration = DEFAULT_SLOT_DURATION_MINUTES


class ScheduleConfigStore:
    def __init__(self, db: Session):
        self.db = db

    def _find(self, professional_id: int) -> ScheduleConfig | None:
        return self.db.query(ScheduleConfig).filter(ScheduleConfig.professional_id == professional_id).first()

    def get(self, professional_id: int) -> ScheduleConfig:
        with storage_errors(self.db):
            config = self._find(professional_id)
            if config is not None:
                return config

            config = ScheduleConfig(professional_id=professional_id, **default_schedule_values())
            self.db.add(config)
            try:
                self.db.commit()
            except IntegrityError:
                # A concurrent request created the default first.
                self.db.rollback()
                return self._find(professional_id)

            self.db.refresh(config)
            logger.info('Created default schedule for professional %s', professional_id)
            return config

    def put(self, professional_id: int, values: dict) -> ScheduleConfig:
        """Replace the whole template; fields left out are cleared."""
        with storage_errors(self.db):
            config = self._find(professional_id)
            if config is None:
                config = ScheduleConfig(professional_id=professional_id)
                self.db.add(config)

            _apply(config, values)

            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                config = self._find(professional_id)
                _apply(config, values)
                self.db.commit()

            self.db.refresh(config)
            return config
