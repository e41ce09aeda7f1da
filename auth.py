from dataclasses import dataclass
from functools import wraps
import logging

from flask import session
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from errors import Forbidden, InvalidRequest, PolicyRejected, Unauthorized
from models import ROLE_ADMIN, ROLE_USER, User, db

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """Who is making the request. Passed explicitly into the booking layer."""

    user_id: int
    role: str = ROLE_USER

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN


def current_context():
    if 'user_id' not in session:
        return None
    return RequestContext(user_id=session['user_id'], role=session.get('role', ROLE_USER))


# Login decorator
def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        ctx = current_context()
        if ctx is None:
            raise Unauthorized('Please login first')
        return f(ctx, *args, **kwargs)
    return decorated_function


# Admin decorator
def admin_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        ctx = current_context()
        if ctx is None:
            raise Unauthorized('Please login first')
        if not ctx.is_admin:
            raise Forbidden('Admin access required')
        return f(ctx, *args, **kwargs)
    return decorated_function


def _text_field(value, field):
    if value is None:
        return ''
    if not isinstance(value, str):
        raise InvalidRequest(f'{field} must be a string')
    return value.strip()


def _email_taken(email):
    return User.query.filter_by(email=email).first() is not None


def register_user(email, password, full_name, role=ROLE_USER):
    email = _text_field(email, 'email').lower()
    if not isinstance(password, (str, type(None))):
        raise InvalidRequest('password must be a string')
    if not email or not password:
        raise InvalidRequest('Email and password are required')
    if _email_taken(email):
        raise PolicyRejected('Email already registered')

    user = User(
        email=email,
        full_name=_text_field(full_name, 'full_name') or email.split('@')[0],
        password=generate_password_hash(password),
        role=role,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # lost a race with another registration for the same email
        db.session.rollback()
        raise PolicyRejected('Email already registered')
    logger.info('Registered user %s', user.id)
    return user


def authenticate(email, password):
    if not isinstance(password, (str, type(None))):
        raise Unauthorized('Invalid email or password')
    user = User.query.filter_by(email=_text_field(email, 'email').lower()).first()
    if user and check_password_hash(user.password, password or ''):
        return user
    raise Unauthorized('Invalid email or password')


def login_user(user):
    session['user_id'] = user.id
    session['role'] = user.role


def logout_user():
    session.clear()
