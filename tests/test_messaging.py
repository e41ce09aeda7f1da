import pytest

import messaging
from errors import InvalidMessage, NotFound, PolicyRejected
from models import Message


def test_conversation_id_is_order_independent():
    assert messaging.conversation_id(7, 3) == messaging.conversation_id(3, 7) == '3:7'


def test_send_and_read_conversation(alice_ctx, bob_ctx):
    first = messaging.send(alice_ctx, bob_ctx.user_id, '  Is plot 4 sunny?  ')
    messaging.send(bob_ctx, alice_ctx.user_id, 'Afternoons only')

    assert first.content == 'Is plot 4 sunny?'
    event = messaging.to_event(first)
    assert event['conversation_id'] == messaging.conversation_id(alice_ctx.user_id, bob_ctx.user_id)
    assert event['sender_id'] == alice_ctx.user_id

    thread = messaging.conversation(bob_ctx, alice_ctx.user_id)
    assert [m.content for m in thread] == ['Is plot 4 sunny?', 'Afternoons only']
    # reading marks only the reader's incoming messages as read
    assert Message.query.filter_by(receiver_id=bob_ctx.user_id, read=True).count() == 1
    assert Message.query.filter_by(receiver_id=alice_ctx.user_id, read=False).count() == 1


def test_conversation_since_returns_only_newer(alice_ctx, bob_ctx):
    first = messaging.send(alice_ctx, bob_ctx.user_id, 'one')
    messaging.send(alice_ctx, bob_ctx.user_id, 'two')

    newer = messaging.conversation(bob_ctx, alice_ctx.user_id, since=first.created_at)

    assert [m.content for m in newer] == ['two']


def test_conversations_summary(alice_ctx, bob_ctx, admin_ctx):
    messaging.send(alice_ctx, bob_ctx.user_id, 'hello bob')
    messaging.send(alice_ctx, bob_ctx.user_id, 'are you there?')
    messaging.send(admin_ctx, bob_ctx.user_id, 'welcome')

    summaries = messaging.conversations(bob_ctx)

    by_partner = {s['user_id']: s for s in summaries}
    assert by_partner[alice_ctx.user_id]['unread'] == 2
    assert by_partner[alice_ctx.user_id]['last_message']['content'] == 'are you there?'
    assert by_partner[alice_ctx.user_id]['full_name'] == 'Alice'
    assert summaries[0]['user_id'] == admin_ctx.user_id


def test_send_rejects_bad_messages(alice_ctx, bob_ctx):
    with pytest.raises(InvalidMessage):
        messaging.send(alice_ctx, bob_ctx.user_id, '   ')
    with pytest.raises(PolicyRejected):
        messaging.send(alice_ctx, alice_ctx.user_id, 'note to self')
    with pytest.raises(NotFound):
        messaging.send(alice_ctx, 999, 'anyone?')
    assert Message.query.count() == 0
