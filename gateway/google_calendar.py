"""Google Calendar API gateway."""
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from gateway.errors import (
    GatewayError,
    NotFoundError,
    PermissionDeniedError,
    TokenInvalidatedError,
)

logger = logging.getLogger(__name__)

RATE_LIMIT_REASONS = {'rateLimitExceeded', 'userRateLimitExceeded'}


class GoogleCalendarGateway:
    """Thin client for the Google Calendar v3 events API."""

    BASE_URL = "https://www.googleapis.com/calendar/v3"

    def __init__(
        self,
        access_token: str,
        timeout: int = 30,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the gateway.

        Args:
            access_token: OAuth bearer token for the Calendar API
            timeout: HTTP request timeout in seconds (default: 30)
            session: Optional pre-configured requests session
        """
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Authorization': f'Bearer {access_token}'})

    def list_events(
        self,
        calendar_id: str,
        sync_token: Optional[str] = None,
        time_min: Optional[str] = None,
        time_max: Optional[str] = None,
        page_token: Optional[str] = None,
        max_results: int = 250,
        single_events: bool = True,
        show_deleted: bool = True
    ) -> Dict[str, Any]:
        """
        Fetch one page of events.

        Args:
            calendar_id: Calendar to list
            sync_token: Change token for incremental listing
            time_min: RFC 3339 lower bound (full listing only)
            time_max: RFC 3339 upper bound (full listing only)
            page_token: Token of the page to fetch
            max_results: Page size
            single_events: Expand recurring events into instances
            show_deleted: Include cancelled events

        Returns:
            Dict with 'items' and optional 'nextPageToken' / 'nextSyncToken'

        Raises:
            TokenInvalidatedError: If the change token has expired (HTTP 410)
        """
        params = {
            'maxResults': max_results,
            'singleEvents': 'true' if single_events else 'false',
            'showDeleted': 'true' if show_deleted else 'false',
        }
        if sync_token:
            params['syncToken'] = sync_token
        else:
            if time_min:
                params['timeMin'] = time_min
            if time_max:
                params['timeMax'] = time_max
        if page_token:
            params['pageToken'] = page_token

        response = self._request('GET', self._events_url(calendar_id), params=params)

        if response.status_code == 410:
            raise TokenInvalidatedError(
                f"Change token invalidated for calendar {calendar_id}",
                status_code=410
            )
        self._raise_for_status(response)

        data = response.json()
        data.setdefault('items', [])
        return data

    def get_event(self, calendar_id: str, event_id: str) -> Dict[str, Any]:
        """
        Fetch a single event.

        Raises:
            NotFoundError: If the event does not exist
        """
        response = self._request('GET', self._events_url(calendar_id, event_id))
        self._raise_not_found(response, calendar_id, event_id)
        self._raise_for_status(response)
        return response.json()

    def insert_event(self, calendar_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an event.

        Returns:
            Created event resource including its 'id'
        """
        response = self._request('POST', self._events_url(calendar_id), json=body)
        self._raise_for_status(response)
        return response.json()

    def patch_event(self, calendar_id: str, event_id: str, body: Dict[str, Any]) -> None:
        """
        Patch an existing event.

        Raises:
            NotFoundError: If the event does not exist
        """
        response = self._request(
            'PATCH', self._events_url(calendar_id, event_id), json=body
        )
        self._raise_not_found(response, calendar_id, event_id)
        self._raise_for_status(response)

    def remove_event(self, calendar_id: str, event_id: str) -> None:
        """
        Delete an event.

        Raises:
            NotFoundError: If the event does not exist or is already deleted
        """
        response = self._request('DELETE', self._events_url(calendar_id, event_id))
        self._raise_not_found(response, calendar_id, event_id)
        self._raise_for_status(response)

    def _events_url(self, calendar_id: str, event_id: Optional[str] = None) -> str:
        url = f"{self.BASE_URL}/calendars/{quote(calendar_id, safe='')}/events"
        if event_id:
            url = f"{url}/{quote(event_id, safe='')}"
        return url

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        logger.debug(f"{method} {url}")
        return self.session.request(method, url, timeout=self.timeout, **kwargs)

    def _raise_not_found(self, response: requests.Response, calendar_id: str, event_id: str) -> None:
        # Deleted events answer 410 Gone
        if response.status_code in (404, 410):
            raise NotFoundError(
                f"Event {event_id} not found in calendar {calendar_id}",
                status_code=response.status_code
            )

    def _raise_for_status(self, response: requests.Response) -> None:
        """
        Translate an HTTP error response into a gateway error.

        Raises:
            PermissionDeniedError: For 401 and non rate-limit 403 responses
            GatewayError: For any other error status; 429 and 5xx are retryable
        """
        status = response.status_code
        if status < 400:
            return

        reason = self._error_reason(response)
        message = f"Calendar API error {status}: {reason or response.text[:200]}"

        if status == 401 or (status == 403 and reason not in RATE_LIMIT_REASONS):
            raise PermissionDeniedError(message, status_code=status)

        if status == 404:
            raise NotFoundError(message, status_code=status)

        retryable = status == 429 or status >= 500 or reason in RATE_LIMIT_REASONS
        raise GatewayError(message, status_code=status, retryable=retryable)

    def _error_reason(self, response: requests.Response) -> Optional[str]:
        try:
            errors = response.json().get('error', {}).get('errors', [])
        except (ValueError, AttributeError):
            return None
        if errors:
            return errors[0].get('reason')
        return None
