import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import delete, update
from sqlalchemy.exc import OperationalError

from errors import InvalidRequest, NotFound, PolicyRejected, StoreUnavailable
from models import STATUS_CANCELLED, Booking, Garden, db

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    'name', 'description', 'address', 'latitude', 'longitude',
    'base_price_per_month', 'size_sqm', 'amenities', 'images',
)


def _decimal(value, field, required=False):
    if value is None or value == '':
        if required:
            raise InvalidRequest(f'{field} is required')
        return None
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise InvalidRequest(f'{field} must be a number')
    if not result.is_finite() or result <= 0:
        raise InvalidRequest(f'{field} must be a positive number')
    return result


def _text(value, field, required=False):
    if value is None:
        value = ''
    if not isinstance(value, str):
        raise InvalidRequest(f'{field} must be a string')
    value = value.strip()
    if required and not value:
        raise InvalidRequest(f'{field} is required')
    return value


def _float(value, field, low, high):
    if value is None or value == '':
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise InvalidRequest(f'{field} must be a number')
    if not low <= result <= high:
        raise InvalidRequest(f'{field} must be between {low} and {high}')
    return result


def _string_list(value, field):
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise InvalidRequest(f'{field} must be a list of strings')
    return [v.strip() for v in value if v.strip()]


def _plots(value):
    try:
        plots = int(value)
    except (TypeError, ValueError):
        raise InvalidRequest('total_plots must be a whole number')
    if plots < 1:
        raise InvalidRequest('total_plots must be at least 1')
    return plots


def _clean(data):
    cleaned = {}
    for field in EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in ('name', 'address'):
            value = _text(value, field, required=True)
        elif field == 'description':
            value = _text(value, field)
        elif field == 'latitude':
            value = _float(value, field, -90, 90)
        elif field == 'longitude':
            value = _float(value, field, -180, 180)
        elif field == 'base_price_per_month':
            value = _decimal(value, field, required=True)
        elif field == 'size_sqm':
            value = _decimal(value, field)
        else:
            value = _string_list(value, field)
        cleaned[field] = value
    return cleaned


def list_gardens(available_only=False, query=None, owner_id=None):
    gardens = Garden.query
    if available_only:
        gardens = gardens.filter(Garden.available_plots > 0)
    if query:
        gardens = gardens.filter(Garden.name.ilike(f'%{query}%'))
    if owner_id is not None:
        gardens = gardens.filter(Garden.owner_id == owner_id)
    return gardens.order_by(Garden.created_at.desc(), Garden.id.desc()).all()


def get_garden(garden_id):
    garden = db.session.get(Garden, garden_id)
    if garden is None:
        raise NotFound(f'Garden {garden_id} not found')
    return garden


def live_booking_count(garden_id):
    return Booking.query.filter(
        Booking.garden_id == garden_id,
        Booking.status != STATUS_CANCELLED,
    ).count()


def create_garden(ctx, data):
    missing = [f for f in ('name', 'address', 'base_price_per_month') if f not in data]
    if missing:
        raise InvalidRequest(f'Missing fields: {", ".join(missing)}')

    fields = _clean(data)
    total_plots = _plots(data.get('total_plots', 1))
    garden = Garden(
        owner_id=ctx.user_id,
        total_plots=total_plots,
        available_plots=total_plots,
        **fields,
    )
    db.session.add(garden)
    try:
        db.session.commit()
    except OperationalError as exc:
        db.session.rollback()
        logger.exception('Store failure creating garden')
        raise StoreUnavailable('Garden store is unavailable, please retry') from exc

    logger.info('Garden %s created by user %s with %s plots', garden.id, ctx.user_id, total_plots)
    return garden


def update_garden(ctx, garden_id, data):
    garden = get_garden(garden_id)
    fields = _clean(data)
    try:
        for field, value in fields.items():
            setattr(garden, field, value)

        if 'total_plots' in data:
            new_total = _plots(data['total_plots'])
            old_total = garden.total_plots
            # Shift availability by the same delta, as long as every live booking still fits
            resized = db.session.execute(
                update(Garden)
                .where(Garden.id == garden_id,
                       Garden.total_plots == old_total,
                       Garden.total_plots - Garden.available_plots <= new_total)
                .values(total_plots=new_total,
                        available_plots=Garden.available_plots + (new_total - old_total))
                .execution_options(synchronize_session=False)
            ).rowcount
            if resized != 1:
                db.session.rollback()
                raise PolicyRejected('total_plots cannot be lower than the number of active bookings, '
                                     'or the garden changed meanwhile')

        db.session.commit()
    except InvalidRequest:
        db.session.rollback()
        raise
    except OperationalError as exc:
        db.session.rollback()
        logger.exception('Store failure updating garden %s', garden_id)
        raise StoreUnavailable('Garden store is unavailable, please retry') from exc

    logger.info('Garden %s updated by user %s', garden_id, ctx.user_id)
    return get_garden(garden_id)


def delete_garden(ctx, garden_id):
    get_garden(garden_id)
    try:
        db.session.execute(
            delete(Booking)
            .where(Booking.garden_id == garden_id, Booking.status == STATUS_CANCELLED)
            .execution_options(synchronize_session=False)
        )
        # A garden with every plot free has no live bookings
        deleted = db.session.execute(
            delete(Garden)
            .where(Garden.id == garden_id, Garden.available_plots == Garden.total_plots)
            .execution_options(synchronize_session=False)
        ).rowcount
        if deleted != 1:
            db.session.rollback()
            raise PolicyRejected('Cannot delete garden. Some plots are still booked.')
        db.session.commit()
    except OperationalError as exc:
        db.session.rollback()
        logger.exception('Store failure deleting garden %s', garden_id)
        raise StoreUnavailable('Garden store is unavailable, please retry') from exc

    db.session.expunge_all()
    logger.info('Garden %s deleted by user %s', garden_id, ctx.user_id)
