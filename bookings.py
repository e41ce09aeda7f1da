"""
Plot reservations and cancellations.

All shared state (plot counters, live bookings) lives in the database, so
the only concurrency control here is the conditional UPDATE issued inside
each transaction: ``available_plots`` is decremented only while it is still
positive, and a booking flips to cancelled only if it was not cancelled
already. A caller that loses either race gets a domain error instead of
corrupting the counters.
"""

import calendar
import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError

from errors import (AlreadyCancelled, DuplicateBooking, Forbidden, NotFound, PolicyRejected,
                    StoreUnavailable)
from models import STATUS_CANCELLED, STATUS_CONFIRMED, Booking, Garden, db, utcnow
from validation import (DEFAULT_MAX_MONTHS, DEFAULT_MIN_EXPIRY_YEAR, validate_booking,
                        validate_duration)

logger = logging.getLogger(__name__)

PAYMENT_METHOD_CARD = 'credit_card'


def add_months(start, months):
    """Same day ``months`` later, pulled back to the month's last day if needed."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def total_price_for(garden, duration_months):
    return Decimal(garden.base_price_per_month) * duration_months


class BookingManager:
    def __init__(self, min_expiry_year=DEFAULT_MIN_EXPIRY_YEAR, max_months=DEFAULT_MAX_MONTHS,
                 today=None):
        self.min_expiry_year = min_expiry_year
        # the booking table only accepts 1..12
        self.max_months = min(max_months, DEFAULT_MAX_MONTHS)
        self._today = today or date.today

    @classmethod
    def from_config(cls, config):
        return cls(
            min_expiry_year=config.get('CARD_EXPIRY_MIN_YEAR', DEFAULT_MIN_EXPIRY_YEAR),
            max_months=config.get('MAX_BOOKING_MONTHS', DEFAULT_MAX_MONTHS),
        )

    def today(self):
        return self._today()

    def _get_garden(self, garden_id):
        garden = db.session.get(Garden, garden_id)
        if garden is None:
            raise NotFound(f'Garden {garden_id} not found')
        return garden

    def _get_booking(self, booking_id):
        booking = db.session.get(Booking, booking_id)
        if booking is None:
            raise NotFound(f'Booking {booking_id} not found')
        return booking

    def live_booking(self, user_id, garden_id):
        return Booking.query.filter(
            Booking.user_id == user_id,
            Booking.garden_id == garden_id,
            Booking.status != STATUS_CANCELLED,
        ).first()

    def quote(self, garden_id, duration_months):
        garden = self._get_garden(garden_id)
        validate_duration(duration_months, max_months=self.max_months)
        start = self.today()
        return {
            'garden_id': garden.id,
            'duration_months': duration_months,
            'total_price': total_price_for(garden, duration_months),
            'start_date': start,
            'end_date': add_months(start, duration_months),
        }

    def reserve(self, ctx, garden_id, duration_months, payment):
        garden = self._get_garden(garden_id)
        if garden.available_plots <= 0:
            raise PolicyRejected('No plots available in this garden')
        if self.live_booking(ctx.user_id, garden_id) is not None:
            raise DuplicateBooking('You already have a booking for this garden')

        start = self.today()
        validate_booking(payment, duration_months, today=start,
                         min_year=self.min_expiry_year, max_months=self.max_months)

        booking = Booking(
            garden_id=garden.id,
            user_id=ctx.user_id,
            start_date=start,
            end_date=add_months(start, duration_months),
            duration_months=duration_months,
            total_price=total_price_for(garden, duration_months),
            status=STATUS_CONFIRMED,
            payment_method=PAYMENT_METHOD_CARD,
            card_last4=payment.last4,
        )

        try:
            claimed = db.session.execute(
                update(Garden)
                .where(Garden.id == garden_id, Garden.available_plots > 0)
                .values(available_plots=Garden.available_plots - 1)
                .execution_options(synchronize_session=False)
            ).rowcount
            if claimed != 1:
                db.session.rollback()
                raise PolicyRejected('No plots available in this garden')

            db.session.add(booking)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.info('Duplicate booking rejected for user %s garden %s', ctx.user_id, garden_id)
            raise DuplicateBooking('You already have a booking for this garden')
        except OperationalError as exc:
            db.session.rollback()
            logger.exception('Store failure reserving garden %s', garden_id)
            raise StoreUnavailable('Booking store is unavailable, please retry') from exc

        logger.info('Booking %s confirmed: user %s garden %s for %s months',
                    booking.id, ctx.user_id, garden_id, duration_months)
        return booking

    def cancel(self, ctx, booking_id):
        booking = self._get_booking(booking_id)
        if booking.user_id != ctx.user_id:
            raise Forbidden('You can only cancel your own bookings')
        if booking.status == STATUS_CANCELLED:
            raise AlreadyCancelled('Booking is already cancelled')

        held_plot = booking.status == STATUS_CONFIRMED
        garden_id = booking.garden_id
        try:
            changed = db.session.execute(
                update(Booking)
                .where(Booking.id == booking_id, Booking.status != STATUS_CANCELLED)
                .values(status=STATUS_CANCELLED, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            ).rowcount
            if changed != 1:
                db.session.rollback()
                raise AlreadyCancelled('Booking is already cancelled')

            if held_plot:
                db.session.execute(
                    update(Garden)
                    .where(Garden.id == garden_id, Garden.available_plots < Garden.total_plots)
                    .values(available_plots=Garden.available_plots + 1)
                    .execution_options(synchronize_session=False)
                )
            db.session.commit()
        except OperationalError as exc:
            db.session.rollback()
            logger.exception('Store failure cancelling booking %s', booking_id)
            raise StoreUnavailable('Booking store is unavailable, please retry') from exc

        logger.info('Booking %s cancelled by user %s', booking_id, ctx.user_id)
        return self._get_booking(booking_id)

    def get(self, ctx, booking_id):
        booking = self._get_booking(booking_id)
        if booking.user_id != ctx.user_id and not ctx.is_admin:
            raise Forbidden('Not your booking')
        return booking

    def list_for_user(self, user_id):
        return (Booking.query.filter_by(user_id=user_id)
                .order_by(Booking.created_at.desc(), Booking.id.desc())
                .all())

    def list_for_garden(self, ctx, garden_id):
        if not ctx.is_admin:
            raise Forbidden('Admin access required')
        self._get_garden(garden_id)
        return (Booking.query.filter_by(garden_id=garden_id)
                .order_by(Booking.created_at.desc(), Booking.id.desc())
                .all())
