from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import update

import gardens
from conftest import plots_left
from errors import InvalidRequest, NotFound, PolicyRejected
from models import Booking, Garden, db


def garden_payload(**overrides):
    payload = {
        'name': 'Hillside Community Garden',
        'description': 'South-facing terraces',
        'address': '12 Hill St',
        'latitude': 47.5,
        'longitude': 19.05,
        'base_price_per_month': '18.50',
        'total_plots': 4,
        'amenities': ['water', ' compost ', ''],
        'images': ['https://img.example.com/1.jpg'],
    }
    payload.update(overrides)
    return payload


def test_create_garden_starts_fully_available(admin_ctx):
    garden = gardens.create_garden(admin_ctx, garden_payload())

    assert garden.owner_id == admin_ctx.user_id
    assert garden.total_plots == garden.available_plots == 4
    assert garden.base_price_per_month == Decimal('18.50')
    assert garden.amenities == ['water', 'compost']


def test_create_garden_requires_core_fields(admin_ctx):
    with pytest.raises(InvalidRequest):
        gardens.create_garden(admin_ctx, {'name': 'No address'})


@pytest.mark.parametrize('overrides', [
    {'total_plots': 0},
    {'total_plots': 'many'},
    {'base_price_per_month': '-1'},
    {'base_price_per_month': 'NaN'},
    {'latitude': 120},
    {'name': '   '},
    {'amenities': 'water'},
    {'name': 5},
    {'address': ['x']},
    {'description': 7},
    {'base_price_per_month': '0'},
])
def test_create_garden_rejects_bad_values(admin_ctx, overrides):
    with pytest.raises(InvalidRequest):
        gardens.create_garden(admin_ctx, garden_payload(**overrides))
    assert Garden.query.count() == 0


def test_update_garden_fields(admin_ctx, make_garden):
    garden = make_garden()

    updated = gardens.update_garden(admin_ctx, garden.id, {'name': 'Renamed', 'base_price_per_month': 40})

    assert updated.name == 'Renamed'
    assert updated.base_price_per_month == Decimal('40.00')


def test_growing_a_garden_adds_free_plots(admin_ctx, alice_ctx, manager, make_garden, card):
    garden = make_garden(total_plots=2)
    manager.reserve(alice_ctx, garden.id, 1, card)

    updated = gardens.update_garden(admin_ctx, garden.id, {'total_plots': 5})

    assert updated.total_plots == 5
    assert updated.available_plots == 4


def test_shrinking_keeps_live_bookings(admin_ctx, alice_ctx, bob_ctx, manager, make_garden, card):
    garden = make_garden(total_plots=4)
    manager.reserve(alice_ctx, garden.id, 1, card)
    manager.reserve(bob_ctx, garden.id, 1, card)

    updated = gardens.update_garden(admin_ctx, garden.id, {'total_plots': 2})
    assert (updated.total_plots, updated.available_plots) == (2, 0)

    with pytest.raises(PolicyRejected):
        gardens.update_garden(admin_ctx, garden.id, {'total_plots': 1, 'name': 'Too small'})
    db.session.expire_all()
    garden = db.session.get(Garden, garden.id)
    assert (garden.total_plots, garden.available_plots) == (2, 0)
    assert garden.name != 'Too small'


def test_resize_against_stale_total_is_rejected(admin_ctx, make_garden, monkeypatch):
    garden = make_garden(total_plots=4)
    stale = SimpleNamespace(total_plots=4)
    # another admin grows the garden after this request loaded it
    db.session.execute(update(Garden).where(Garden.id == garden.id).values(total_plots=6, available_plots=6))
    db.session.commit()
    monkeypatch.setattr(gardens, 'get_garden', lambda garden_id: stale)

    with pytest.raises(PolicyRejected):
        gardens.update_garden(admin_ctx, garden.id, {'total_plots': 5})

    db.session.expire_all()
    garden = db.session.get(Garden, garden.id)
    assert (garden.total_plots, garden.available_plots) == (6, 6)


def test_update_garden_rejects_non_text_name(admin_ctx, make_garden):
    garden = make_garden()
    with pytest.raises(InvalidRequest):
        gardens.update_garden(admin_ctx, garden.id, {'name': 5})
    db.session.expire_all()
    assert db.session.get(Garden, garden.id).name == 'Riverside Allotments'


def test_update_unknown_garden(admin_ctx):
    with pytest.raises(NotFound):
        gardens.update_garden(admin_ctx, 404, {'name': 'Ghost'})


def test_delete_garden_with_live_booking_is_rejected(admin_ctx, alice_ctx, manager, make_garden, card):
    garden = make_garden()
    manager.reserve(alice_ctx, garden.id, 1, card)

    with pytest.raises(PolicyRejected):
        gardens.delete_garden(admin_ctx, garden.id)
    assert plots_left(garden.id) == garden.total_plots - 1


def test_delete_garden_after_cancellation(admin_ctx, alice_ctx, manager, make_garden, card):
    garden = make_garden()
    garden_id = garden.id
    booking = manager.reserve(alice_ctx, garden_id, 1, card)
    manager.cancel(alice_ctx, booking.id)

    gardens.delete_garden(admin_ctx, garden_id)

    assert db.session.get(Garden, garden_id) is None
    assert Booking.query.filter_by(garden_id=garden_id).count() == 0


def test_list_gardens_filters(admin_ctx, alice_ctx, manager, make_garden, card):
    full = make_garden(total_plots=1, name='Tiny Plot Yard')
    roomy = make_garden(total_plots=3, name='Big Meadow')
    manager.reserve(alice_ctx, full.id, 1, card)

    assert [g.id for g in gardens.list_gardens()] == [roomy.id, full.id]
    assert [g.id for g in gardens.list_gardens(available_only=True)] == [roomy.id]
    assert [g.id for g in gardens.list_gardens(query='meadow')] == [roomy.id]
    assert gardens.list_gardens(owner_id=alice_ctx.user_id) == []
    assert gardens.live_booking_count(full.id) == 1
