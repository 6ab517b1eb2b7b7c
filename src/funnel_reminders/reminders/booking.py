"""
Booking confirmation message.

Sent once when a meeting is booked. When the booking carries the calendar
event id, the confirmation goes through the same ledger under kind
``booking``, so a replayed booking never confirms twice.
"""
import logging

from funnel_reminders.core.models import BookingConfirmation, DispatchOutcome
from funnel_reminders.reminders.dispatcher import ReminderDispatcher
from funnel_reminders.reminders.templates import MessageContext, render

logger = logging.getLogger(__name__)

BOOKING_KIND = "booking"


async def send_booking_confirmation(
    booking: BookingConfirmation,
    dispatcher: ReminderDispatcher,
) -> DispatchOutcome:
    """
    Confirm a booked meeting to the client.

    Args:
        booking: Client, responsible and start of the booked meeting.
        dispatcher: Dispatcher holding the config, ledger and messenger.

    Returns:
        DispatchOutcome of the delivery.
    """
    config = dispatcher.config
    ctx = MessageContext(
        start=booking.start,
        timezone=config.timezone,
        program_name=config.program_name,
        client_name=booking.client_name.strip(),
        responsible_name=booking.responsible_name.strip(),
        phone=booking.client_phone,
        city=booking.city,
    )
    text = render("booking_confirmation", ctx)

    # without an event id there is nothing stable to deduplicate on
    event_id = booking.event_id or "unbooked"
    outcome = await dispatcher.deliver(
        event_id=event_id,
        occurrence_key=booking.occurrence_key,
        kind=BOOKING_KIND,
        instance=config.whatsapp.default_instance,
        recipient=booking.client_phone,
        text=text,
        record=booking.event_id is not None,
    )
    logger.info("Booking confirmation for %s (%s): %s", booking.client_name, event_id, outcome.value)
    return outcome
