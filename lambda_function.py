"""AWS Lambda handler for Calendar Mirror Sync."""
import json
import logging
import os
import time
from typing import Dict, Any

from gateway.google_calendar import GoogleCalendarGateway
from processor.models import ConfigurationError
from storage.dynamodb_manager import DynamoDBManager
from storage.mapping_store import MappingStore
from sync.config import load_config
from sync.orchestrator import SyncOrchestrator


# Attributes present on every LogRecord; anything else came in through extra=
_STANDARD_RECORD_ATTRS = frozenset(
    logging.LogRecord('', logging.INFO, '', 0, '', None, None).__dict__
) | {'message', 'asctime'}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for Calendar Mirror Sync.

    The optional 'action' field of the event selects the operation:
    'sync' (default), 'sync_calendar', 'reset_calendar', 'clear' or 'status'.
    'sync_calendar' and 'reset_calendar' also need 'calendarId'.

    Args:
        event: EventBridge or notification event payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body
    """
    table_name = os.environ.get('TABLE_NAME', 'calendar-mirror-sync')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    access_token = os.environ.get('GOOGLE_ACCESS_TOKEN', '')

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    event = event or {}
    action = event.get('action', 'sync')

    start_time = time.time()
    logger.info(
        "Lambda execution started",
        extra={'table_name': table_name, 'action': action}
    )

    try:
        config = load_config()
        mapping_store = MappingStore(DynamoDBManager(table_name=table_name))
        gateway = GoogleCalendarGateway(access_token=access_token, timeout=timeout_seconds)
        orchestrator = SyncOrchestrator(config, gateway, mapping_store)

        if action == 'sync':
            result = orchestrator.run()
            body = {'message': 'Sync completed', 'summary': result.to_summary()}
        elif action == 'sync_calendar':
            result = orchestrator.sync_calendar(_require_calendar_id(event))
            body = {'message': 'Calendar sync completed', 'summary': result.to_summary()}
        elif action == 'reset_calendar':
            calendar_id = _require_calendar_id(event)
            orchestrator.reset_calendar(calendar_id)
            body = {'message': f'Change token reset for {calendar_id}'}
        elif action == 'clear':
            deleted = orchestrator.clear_all_sync_data()
            body = {'message': 'Sync data cleared', 'keys_deleted': deleted}
        elif action == 'status':
            body = {'message': 'Sync status', 'status': orchestrator.get_status()}
        else:
            raise ConfigurationError(f"Unknown action: {action}")

        duration = time.time() - start_time
        body['duration_seconds'] = round(duration, 2)
        logger.info(
            "Lambda execution completed successfully",
            extra={'duration_seconds': round(duration, 2), 'action': action}
        )
        return _response(200, body)

    except ConfigurationError as e:
        duration = time.time() - start_time
        logger.error(
            f"Invalid configuration: {str(e)}",
            extra={'error_type': type(e).__name__}
        )
        return _response(400, {
            'message': 'Invalid configuration',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })

    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'message': 'Sync failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })


def _require_calendar_id(event: Dict[str, Any]) -> str:
    calendar_id = event.get('calendarId')
    if not calendar_id:
        raise ConfigurationError("calendarId is required for this action")
    return calendar_id
