# carebook/services/event_sink.py
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import structlog

from .. import models

BOOKING_CREATED = "booking.created"
BOOKING_RESCHEDULED = "booking.rescheduled"
BOOKING_CANCELLED = "booking.cancelled"
BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_COMPLETED = "booking.completed"
SCHEDULE_UPDATED = "schedule.updated"
HOME_VISITS_TOGGLED = "home_visits.toggled"

Subscriber = Callable[[str, Dict[str, Any]], None]


class EventSink:
	"""Fire-and-forget fan-out of lifecycle events to notification and audit consumers.

	Events are published after the store commit. A failing subscriber is logged and skipped;
	it can never undo or fail the operation that produced the event.
	"""

	def __init__(self, source: str = 'carebook-engine'):
		self.source = source
		self.logger = structlog.get_logger('carebook.events')
		self._subscribers: List[Subscriber] = []

	def subscribe(self, subscriber: Subscriber) -> None:
		self._subscribers.append(subscriber)

	def unsubscribe(self, subscriber: Subscriber) -> None:
		if subscriber in self._subscribers:
			self._subscribers.remove(subscriber)

	def emit(self, event_type: str, payload: Dict[str, Any], actor_id: Optional[str] = None) -> None:
		message = {
			'event': event_type,
			'source': self.source,
			'actor_id': actor_id,
			'occurred_at': datetime.now(timezone.utc).isoformat(),
			**payload,
		}
		self.logger.info(event_type, **{k: v for k, v in message.items() if k != 'event'})
		for subscriber in list(self._subscribers):
			try:
				subscriber(event_type, message)
			except Exception:
				self.logger.exception('event_subscriber_failed', event_type=event_type, subscriber=repr(subscriber))

	def emit_booking(self, event_type: str, booking: models.Booking, actor_id: Optional[str] = None, **extra: Any) -> None:
		self.emit(event_type, {'booking': booking_payload(booking), **extra}, actor_id=actor_id)


def booking_payload(booking: models.Booking) -> Dict[str, Any]:
	return {
		'id': booking.id,
		'booking_type': booking.booking_type.value,
		'provider_key': booking.provider_key,
		'location_key': booking.location_key,
		'patient_id': booking.patient_id,
		'date': booking.booking_date.isoformat(),
		'time': booking.booking_time.strftime('%H:%M'),
		'duration_minutes': booking.duration_minutes,
		'status': booking.status.value,
		'fee': str(booking.fee),
	}


# Singleton instance for global import
event_sink = EventSink()
