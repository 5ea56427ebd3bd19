import json

from services.realtime_service import VISITORS_TOPIC, RealtimeService


def _service():
    return RealtimeService(url='ws://localhost:4000/realtime/v1/websocket?apikey=k&vsn=1.0.0')


def _change(change_type, record, old=None, table='visitors'):
    return json.dumps({
        'topic': VISITORS_TOPIC,
        'event': 'postgres_changes',
        'payload': {'data': {
            'schema': 'public', 'table': table, 'type': change_type,
            'record': record, 'old_record': old or {}
        }},
        'ref': None
    })


def test_join_message_requests_visitor_changes():
    service = _service()
    service.access_token = 'jwt'
    message = service.join_message()
    assert message['event'] == 'phx_join'
    assert message['topic'] == VISITORS_TOPIC
    assert message['payload']['config']['postgres_changes'] == [
        {'event': '*', 'schema': 'public', 'table': 'visitors'}
    ]
    assert message['payload']['access_token'] == 'jwt'
    assert service.heartbeat_message()['ref'] != message['ref']


def test_insert_is_dispatched_to_subscribers():
    service = _service()
    received = []
    service.subscribe_to_visitors(received.append)

    event = service.handle_message(_change('INSERT', {
        'id': 'v1', 'name': 'Jane', 'host_id': 'h1', 'floor_number': '3',
        'status': 'checked_in', 'guest_code': None, 'company': 'Acme', 'is_blacklisted': 'yes'
    }))

    assert received == [event]
    assert event.event_type == 'insert'
    assert event.new.name == 'Jane'
    assert event.new.floor_number == '3'
    assert event.new.is_blacklisted is True
    assert event.new.guest_code is None


def test_update_keeps_old_record():
    service = _service()
    event = service.handle_message(_change('UPDATE', {'id': 'v1', 'status': 'checked_in'}, old={'status': 'pending'}))
    assert event.event_type == 'update'
    assert event.old.status == 'pending'


def test_delete_and_other_tables_are_ignored():
    service = _service()
    received = []
    service.subscribe_to_visitors(received.append)
    assert service.handle_message(_change('DELETE', {'id': 'v1'})) is None
    assert service.handle_message(_change('INSERT', {'id': 'b1'}, table='badges')) is None
    assert service.handle_message('not json') is None
    assert received == []


def test_join_reply_marks_channel_joined():
    service = _service()
    service.handle_message(json.dumps({
        'topic': VISITORS_TOPIC, 'event': 'phx_reply', 'payload': {'status': 'ok', 'response': {}}, 'ref': '1'
    }))
    assert service.joined is True
    service.handle_message(json.dumps({'topic': VISITORS_TOPIC, 'event': 'phx_close', 'payload': {}}))
    assert service.joined is False


def test_unsubscribe_is_idempotent():
    service = _service()
    received = []
    subscription = service.subscribe_to_visitors(received.append)
    subscription.unsubscribe()
    subscription.unsubscribe()
    service.handle_message(_change('INSERT', {'id': 'v1'}))
    assert received == []
    assert service.get_state()['subscribers'] == 0


def test_failing_subscriber_does_not_block_others():
    service = _service()
    received = []

    def broken(_event):
        raise RuntimeError('boom')

    service.subscribe_to_visitors(broken)
    service.subscribe_to_visitors(received.append)
    service.handle_message(_change('INSERT', {'id': 'v1'}))
    assert len(received) == 1


def test_state_hides_api_key():
    assert 'apikey' not in _service().get_state()['url']


def test_app_joins_realtime_with_configured_token():
    from app import create_app

    app = create_app({'TESTING': True, 'REALTIME_ACCESS_TOKEN': 'service-jwt', 'CONTEXT_FACTORY': object})
    message = app.extensions['realtime_service'].join_message()
    assert message['payload']['access_token'] == 'service-jwt'
