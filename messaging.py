"""
Direct messages between users.

Clients poll ``conversation(..., since=...)`` for new messages instead of
holding a live subscription. A conversation is identified by the pair of
user ids, lowest first.
"""

import logging

from sqlalchemy import and_, or_, update
from sqlalchemy.exc import OperationalError

from errors import InvalidMessage, NotFound, PolicyRejected, StoreUnavailable
from models import Message, User, db

logger = logging.getLogger(__name__)


def conversation_id(user_a, user_b):
    low, high = sorted((user_a, user_b))
    return f'{low}:{high}'


def to_event(message):
    """Shape a stored message the way pollers receive it."""
    return {
        'conversation_id': conversation_id(message.sender_id, message.receiver_id),
        'sender_id': message.sender_id,
        'content': message.content,
        'timestamp': message.created_at.isoformat(),
    }


def _between(user_a, user_b):
    return or_(
        and_(Message.sender_id == user_a, Message.receiver_id == user_b),
        and_(Message.sender_id == user_b, Message.receiver_id == user_a),
    )


def send(ctx, receiver_id, content):
    content = (content or '').strip()
    if not content:
        raise InvalidMessage('Message cannot be empty')
    if receiver_id == ctx.user_id:
        raise PolicyRejected('You cannot message yourself')
    if db.session.get(User, receiver_id) is None:
        raise NotFound(f'User {receiver_id} not found')

    message = Message(sender_id=ctx.user_id, receiver_id=receiver_id, content=content)
    db.session.add(message)
    try:
        db.session.commit()
    except OperationalError as exc:
        db.session.rollback()
        logger.exception('Store failure sending message to %s', receiver_id)
        raise StoreUnavailable('Message store is unavailable, please retry') from exc

    logger.debug('Message %s sent in conversation %s',
                 message.id, conversation_id(ctx.user_id, receiver_id))
    return message


def conversation(ctx, other_user_id, since=None):
    if db.session.get(User, other_user_id) is None:
        raise NotFound(f'User {other_user_id} not found')

    query = Message.query.filter(_between(ctx.user_id, other_user_id))
    if since is not None:
        query = query.filter(Message.created_at > since)
    messages = query.order_by(Message.created_at.asc(), Message.id.asc()).all()

    unread = [m.id for m in messages if m.receiver_id == ctx.user_id and not m.read]
    if unread:
        db.session.execute(
            update(Message)
            .where(Message.id.in_(unread))
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
    return messages


def conversations(ctx):
    """Latest message and unread count per conversation partner, newest first."""
    messages = (Message.query
                .filter(or_(Message.sender_id == ctx.user_id, Message.receiver_id == ctx.user_id))
                .order_by(Message.created_at.desc(), Message.id.desc())
                .all())

    summaries = {}
    for message in messages:
        partner_id = message.receiver_id if message.sender_id == ctx.user_id else message.sender_id
        summary = summaries.get(partner_id)
        if summary is None:
            summary = summaries[partner_id] = {
                'conversation_id': conversation_id(ctx.user_id, partner_id),
                'user_id': partner_id,
                'last_message': message.to_dict(),
                'unread': 0,
            }
        if message.receiver_id == ctx.user_id and not message.read:
            summary['unread'] += 1

    partners = {}
    if summaries:
        partners = {u.id: u for u in User.query.filter(User.id.in_(list(summaries))).all()}
    for partner_id, summary in summaries.items():
        partner = partners.get(partner_id)
        summary['full_name'] = partner.full_name if partner else None
    return list(summaries.values())
