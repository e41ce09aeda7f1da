from flask import Flask, jsonify, request, current_app
from datetime import datetime, timezone
import logging

from auth import (admin_required, authenticate, login_required, login_user, logout_user,
                  register_user)
from bookings import BookingManager
from config import Config
from errors import InvalidRequest, NotFound, Unauthorized, register_error_handlers
from models import ROLE_ADMIN, User, db
from validation import PaymentInfo
import gardens
import messaging

logger = logging.getLogger(__name__)


def create_app(config_object=Config, overrides=None):
    app = Flask(__name__)
    app.config.from_object(config_object)
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    app.logger.setLevel(app.config['LOG_LEVEL'])

    db.init_app(app)
    app.extensions['booking_manager'] = BookingManager.from_config(app.config)
    register_error_handlers(app)
    register_routes(app)

    with app.app_context():
        db.create_all()
        ensure_admin(app)
    return app


def ensure_admin(app):
    email, password = app.config.get('ADMIN_EMAIL'), app.config.get('ADMIN_PASSWORD')
    if not email or not password:
        return
    if User.query.filter_by(email=email.strip().lower()).first():
        return
    register_user(email, password, 'Administrator', role=ROLE_ADMIN)
    logger.info('Created admin account %s', email)


def booking_manager():
    return current_app.extensions['booking_manager']


def request_data():
    return request.get_json(silent=True) or request.form.to_dict()


def int_arg(value, field):
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    raise InvalidRequest(f'{field} must be a whole number')


def months_arg(value):
    # Left for the validator to reject with InvalidDuration
    if isinstance(value, str) and value.strip().lstrip('-').isdigit():
        return int(value)
    return value


def since_arg(value):
    if not value:
        return None
    try:
        since = datetime.fromisoformat(value)
    except ValueError:
        raise InvalidRequest('since must be an ISO 8601 timestamp')
    if since.tzinfo is not None:
        since = since.astimezone(timezone.utc).replace(tzinfo=None)
    return since


def register_routes(app):

    @app.route('/')
    def index():
        return jsonify({'message': 'GardenSpace API is running'})

    @app.route('/auth/register', methods=['POST'])
    def register():
        data = request_data()
        user = register_user(data.get('email'), data.get('password'), data.get('full_name'))
        login_user(user)
        return jsonify(user.to_dict()), 201

    @app.route('/auth/login', methods=['POST'])
    def login():
        data = request_data()
        user = authenticate(data.get('email'), data.get('password'))
        login_user(user)
        logger.info('User %s logged in', user.id)
        return jsonify(user.to_dict())

    @app.route('/auth/logout', methods=['POST'])
    def logout():
        logout_user()
        return jsonify({'status': 'ok'})

    @app.route('/me')
    @login_required
    def me(ctx):
        user = db.session.get(User, ctx.user_id)
        if user is None:
            logout_user()
            raise Unauthorized('Please login first')
        return jsonify(user.to_dict())

    @app.route('/me', methods=['PATCH'])
    @login_required
    def update_me(ctx):
        full_name = request_data().get('full_name')
        if not isinstance(full_name, (str, type(None))):
            raise InvalidRequest('full_name must be a string')
        full_name = (full_name or '').strip()
        if not full_name:
            raise InvalidRequest('full_name is required')
        user = db.session.get(User, ctx.user_id)
        user.full_name = full_name
        db.session.commit()
        return jsonify(user.to_dict())

    @app.route('/users/<int:user_id>')
    def public_profile(user_id):
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFound(f'User {user_id} not found')
        return jsonify({
            'id': user.id,
            'full_name': user.full_name,
            'is_admin': user.is_admin,
            'gardens': [g.to_dict() for g in gardens.list_gardens(owner_id=user.id)],
        })

    # Gardens

    @app.route('/gardens')
    def list_gardens():
        owner = request.args.get('owner')
        results = gardens.list_gardens(
            available_only=request.args.get('available') in ('1', 'true'),
            query=request.args.get('q'),
            owner_id=int_arg(owner, 'owner') if owner else None,
        )
        return jsonify([g.to_dict() for g in results])

    @app.route('/gardens/<int:garden_id>')
    def garden_detail(garden_id):
        return jsonify(gardens.get_garden(garden_id).to_dict())

    @app.route('/gardens/<int:garden_id>/quote')
    def garden_quote(garden_id):
        quote = booking_manager().quote(garden_id, months_arg(request.args.get('months', '1')))
        return jsonify({
            'garden_id': quote['garden_id'],
            'duration_months': quote['duration_months'],
            'total_price': str(quote['total_price']),
            'start_date': quote['start_date'].isoformat(),
            'end_date': quote['end_date'].isoformat(),
        })

    # Bookings

    @app.route('/gardens/<int:garden_id>/bookings', methods=['POST'])
    @login_required
    def book_plot(ctx, garden_id):
        data = request_data()
        booking = booking_manager().reserve(
            ctx,
            garden_id,
            months_arg(data.get('duration_months')),
            PaymentInfo.from_form(data),
        )
        return jsonify(booking.to_dict()), 201

    @app.route('/bookings')
    @login_required
    def my_bookings(ctx):
        return jsonify([b.to_dict() for b in booking_manager().list_for_user(ctx.user_id)])

    @app.route('/bookings/<int:booking_id>')
    @login_required
    def booking_detail(ctx, booking_id):
        return jsonify(booking_manager().get(ctx, booking_id).to_dict())

    @app.route('/bookings/<int:booking_id>/cancel', methods=['POST'])
    @login_required
    def cancel_booking(ctx, booking_id):
        return jsonify(booking_manager().cancel(ctx, booking_id).to_dict())

    # Admin

    @app.route('/admin/gardens', methods=['POST'])
    @admin_required
    def add_garden(ctx):
        garden = gardens.create_garden(ctx, request_data())
        return jsonify(garden.to_dict()), 201

    @app.route('/admin/gardens/<int:garden_id>', methods=['PATCH'])
    @admin_required
    def edit_garden(ctx, garden_id):
        return jsonify(gardens.update_garden(ctx, garden_id, request_data()).to_dict())

    @app.route('/admin/gardens/<int:garden_id>', methods=['DELETE'])
    @admin_required
    def delete_garden(ctx, garden_id):
        gardens.delete_garden(ctx, garden_id)
        return '', 204

    @app.route('/admin/gardens/<int:garden_id>/bookings')
    @admin_required
    def garden_bookings(ctx, garden_id):
        return jsonify([b.to_dict() for b in booking_manager().list_for_garden(ctx, garden_id)])

    # Messages

    @app.route('/messages')
    @login_required
    def inbox(ctx):
        return jsonify(messaging.conversations(ctx))

    @app.route('/messages/<int:user_id>')
    @login_required
    def read_conversation(ctx, user_id):
        messages = messaging.conversation(ctx, user_id, since=since_arg(request.args.get('since')))
        return jsonify({
            'conversation_id': messaging.conversation_id(ctx.user_id, user_id),
            'messages': [m.to_dict() for m in messages],
        })

    @app.route('/messages/<int:user_id>', methods=['POST'])
    @login_required
    def send_message(ctx, user_id):
        message = messaging.send(ctx, user_id, request_data().get('content'))
        return jsonify(messaging.to_event(message)), 201


if __name__ == '__main__':
    app = create_app()
    app.run(debug=True)
