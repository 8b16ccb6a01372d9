"""Load sync configuration from environment variables or a JSON file."""
import json
import logging
import os
from typing import Any, Dict, List, Mapping, Optional

from processor.models import (
    ConfigurationError,
    EventMappingOptions,
    PrivacyMode,
    SourceCalendarConfig,
    SyncConfig,
    SyncOptions,
)

logger = logging.getLogger(__name__)

TRUE_VALUES = {'1', 'true', 'yes', 'on'}
FALSE_VALUES = {'0', 'false', 'no', 'off', ''}

SYNC_OPTION_ENV = {
    'sync_window_days': 'SYNC_WINDOW_DAYS',
    'sync_past_days': 'SYNC_PAST_DAYS',
    'include_all_day_events': 'INCLUDE_ALL_DAY_EVENTS',
    'include_declined_events': 'INCLUDE_DECLINED_EVENTS',
    'batch_size': 'BATCH_SIZE',
    'retry_attempts': 'RETRY_ATTEMPTS',
    'retry_delay_ms': 'RETRY_DELAY_MS',
}

MAPPING_OPTION_ENV = {
    'prefix_format': 'PREFIX_FORMAT',
    'copy_description': 'COPY_DESCRIPTION',
    'copy_location': 'COPY_LOCATION',
    'copy_attendees': 'COPY_ATTENDEES',
    'copy_reminders': 'COPY_REMINDERS',
    'set_as_private': 'SET_AS_PRIVATE',
    'busy_label': 'BUSY_LABEL',
}

SYNC_OPTION_KEYS = {
    'syncWindowDays': 'sync_window_days',
    'syncPastDays': 'sync_past_days',
    'includeAllDayEvents': 'include_all_day_events',
    'includeDeclinedEvents': 'include_declined_events',
    'batchSize': 'batch_size',
    'retryAttempts': 'retry_attempts',
    'retryDelayMs': 'retry_delay_ms',
}

MAPPING_OPTION_KEYS = {
    'prefixFormat': 'prefix_format',
    'copyDescription': 'copy_description',
    'copyLocation': 'copy_location',
    'copyAttendees': 'copy_attendees',
    'copyReminders': 'copy_reminders',
    'setAsPrivate': 'set_as_private',
    'busyLabel': 'busy_label',
    'untitledLabel': 'untitled_label',
}


def load_config(environ: Optional[Mapping[str, str]] = None) -> SyncConfig:
    """
    Build the sync configuration.

    SYNC_CONFIG_FILE, when set, points to a JSON document that holds the
    whole configuration. Otherwise individual environment variables are read.

    Args:
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated SyncConfig

    Raises:
        ConfigurationError: If the configuration is missing or invalid
    """
    environ = os.environ if environ is None else environ

    config_file = environ.get('SYNC_CONFIG_FILE')
    if config_file:
        logger.info(f"Loading sync configuration from {config_file}")
        try:
            with open(config_file, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot read config file {config_file}: {e}") from e
        return config_from_dict(data)

    calendars_json = environ.get('SOURCE_CALENDARS', '')
    try:
        calendars = json.loads(calendars_json) if calendars_json else []
    except ValueError as e:
        raise ConfigurationError(f"SOURCE_CALENDARS is not valid JSON: {e}") from e

    sync_options = {
        field_name: _coerce(field_name, environ[env_name], SyncOptions)
        for field_name, env_name in SYNC_OPTION_ENV.items()
        if env_name in environ
    }
    mapping_options = {
        field_name: _coerce(field_name, environ[env_name], EventMappingOptions)
        for field_name, env_name in MAPPING_OPTION_ENV.items()
        if env_name in environ
    }

    return build_config(
        destination_calendar_id=environ.get('DESTINATION_CALENDAR_ID', ''),
        calendars=calendars,
        sync_options=sync_options,
        mapping_options=mapping_options
    )


def config_from_dict(data: Dict[str, Any]) -> SyncConfig:
    """
    Build the sync configuration from a camelCase JSON document.

    Args:
        data: Parsed document with destinationCalendarId, calendars,
            syncOptions and eventMapping

    Returns:
        Validated SyncConfig
    """
    if not isinstance(data, dict):
        raise ConfigurationError("Sync configuration must be a JSON object")

    sync_options = _rename(data.get('syncOptions') or {}, SYNC_OPTION_KEYS, SyncOptions)
    mapping_options = _rename(data.get('eventMapping') or {}, MAPPING_OPTION_KEYS, EventMappingOptions)

    return build_config(
        destination_calendar_id=data.get('destinationCalendarId', ''),
        calendars=data.get('calendars') or [],
        sync_options=sync_options,
        mapping_options=mapping_options
    )


def build_config(
    destination_calendar_id: str,
    calendars: List[Dict[str, Any]],
    sync_options: Dict[str, Any],
    mapping_options: Dict[str, Any]
) -> SyncConfig:
    """Validate raw values and assemble a SyncConfig."""
    if not destination_calendar_id:
        raise ConfigurationError("Destination calendar id is required")

    if not isinstance(calendars, list) or not calendars:
        raise ConfigurationError("At least one source calendar must be configured")

    parsed_calendars = tuple(_parse_calendar(entry) for entry in calendars)

    seen = set()
    for calendar in parsed_calendars:
        if calendar.calendar_id in seen:
            raise ConfigurationError(f"Duplicate source calendar: {calendar.calendar_id}")
        if calendar.calendar_id == destination_calendar_id:
            raise ConfigurationError(
                f"Source calendar {calendar.calendar_id} is also the destination"
            )
        seen.add(calendar.calendar_id)

    options = SyncOptions(**sync_options)
    for name in ('sync_window_days', 'batch_size', 'retry_attempts'):
        if getattr(options, name) < 1:
            raise ConfigurationError(f"{name} must be positive")
    for name in ('sync_past_days', 'retry_delay_ms'):
        if getattr(options, name) < 0:
            raise ConfigurationError(f"{name} must not be negative")

    mapping = EventMappingOptions(**mapping_options)
    if mapping.copy_attendees or mapping.copy_reminders:
        logger.warning("copyAttendees and copyReminders are not supported and will be ignored")

    return SyncConfig(
        destination_calendar_id=destination_calendar_id,
        calendars=parsed_calendars,
        sync_options=options,
        mapping_options=mapping
    )


def _parse_calendar(entry: Dict[str, Any]) -> SourceCalendarConfig:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Calendar entry must be an object: {entry!r}")

    calendar_id = entry.get('calendarId')
    if not calendar_id:
        raise ConfigurationError(f"Calendar entry missing calendarId: {entry!r}")

    enabled = entry.get('enabled', True)
    if isinstance(enabled, str):
        enabled = _parse_bool('enabled', enabled)

    return SourceCalendarConfig(
        calendar_id=calendar_id,
        label=entry.get('label') or calendar_id,
        privacy_mode=PrivacyMode.parse(entry.get('privacyMode')),
        enabled=bool(enabled),
        color_id=str(entry['colorId']) if entry.get('colorId') else None
    )


def _rename(values: Dict[str, Any], keys: Dict[str, str], options_class) -> Dict[str, Any]:
    renamed = {}
    for key, value in values.items():
        if key not in keys:
            raise ConfigurationError(f"Unknown option: {key}")
        field_name = keys[key]
        renamed[field_name] = _coerce(field_name, value, options_class)
    return renamed


def _coerce(field_name: str, value: Any, options_class) -> Any:
    default = options_class.__dataclass_fields__[field_name].default
    if isinstance(default, bool):
        return value if isinstance(value, bool) else _parse_bool(field_name, str(value))
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{field_name} must be an integer, got {value!r}")
    return str(value)


def _parse_bool(name: str, value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")
