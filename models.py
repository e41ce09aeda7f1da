# models.py
from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone

db = SQLAlchemy()

ROLE_USER = 'user'
ROLE_ADMIN = 'admin'

STATUS_PENDING = 'pending'
STATUS_CONFIRMED = 'confirmed'
STATUS_CANCELLED = 'cancelled'
BOOKING_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED)


def utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value is not None else None


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(120), nullable=False)
    password = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=ROLE_USER)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    bookings = db.relationship('Booking', backref='user', lazy=True)
    gardens = db.relationship('Garden', backref='owner', lazy=True)

    __table_args__ = (
        db.CheckConstraint("role IN ('user', 'admin')", name='ck_user_role'),
    )

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'role': self.role,
        }

    def __repr__(self):
        return f'<User {self.email}>'


class Garden(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False, default='')
    address = db.Column(db.String(200), nullable=False)
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    base_price_per_month = db.Column(db.Numeric(10, 2), nullable=False)
    total_plots = db.Column(db.Integer, nullable=False, default=1)
    available_plots = db.Column(db.Integer, nullable=False, default=1)
    size_sqm = db.Column(db.Numeric(10, 2))
    amenities = db.Column(db.JSON, nullable=False, default=list)
    images = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    bookings = db.relationship('Booking', backref='garden', lazy=True)

    __table_args__ = (
        db.CheckConstraint('total_plots >= 1', name='ck_garden_total_plots'),
        db.CheckConstraint('available_plots >= 0', name='ck_garden_available_nonnegative'),
        db.CheckConstraint('available_plots <= total_plots', name='ck_garden_available_le_total'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'owner_id': self.owner_id,
            'name': self.name,
            'description': self.description,
            'address': self.address,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'base_price_per_month': str(self.base_price_per_month),
            'total_plots': self.total_plots,
            'available_plots': self.available_plots,
            'size_sqm': str(self.size_sqm) if self.size_sqm is not None else None,
            'amenities': list(self.amenities or []),
            'images': list(self.images or []),
            'created_at': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<Garden {self.name}>'


class Booking(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    garden_id = db.Column(db.Integer, db.ForeignKey('garden.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    duration_months = db.Column(db.Integer, nullable=False)
    total_price = db.Column(db.Numeric(10, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING)  # pending, confirmed, cancelled
    payment_method = db.Column(db.String(30))
    card_last4 = db.Column(db.String(4))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        # One live booking per user per garden; cancelled rows don't count
        db.Index(
            'uq_booking_live_user_garden', 'user_id', 'garden_id',
            unique=True,
            sqlite_where=db.text("status != 'cancelled'"),
            postgresql_where=db.text("status != 'cancelled'"),
        ),
        db.CheckConstraint('duration_months BETWEEN 1 AND 12', name='ck_booking_duration'),
        db.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled')", name='ck_booking_status'
        ),
    )

    @property
    def is_live(self):
        return self.status != STATUS_CANCELLED

    def to_dict(self):
        return {
            'id': self.id,
            'garden_id': self.garden_id,
            'user_id': self.user_id,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'duration_months': self.duration_months,
            'total_price': str(self.total_price),
            'status': self.status,
            'payment_method': self.payment_method,
            'card_last4': self.card_last4,
            'created_at': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<Booking {self.id} user={self.user_id} garden={self.garden_id} {self.status}>'


class Message(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    receiver_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    content = db.Column(db.Text, nullable=False)
    read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'sender_id': self.sender_id,
            'receiver_id': self.receiver_id,
            'content': self.content,
            'read': self.read,
            'timestamp': _iso(self.created_at),
        }
