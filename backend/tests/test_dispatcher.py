import pytest

from scrumpoker.dispatcher import RoomEventDispatcher
from scrumpoker.protocol import INBOUND_EVENTS
from scrumpoker.sessions import SessionRegistry


def join(dispatcher, sid, name, room='ROOM-1', role='voter', **extra):
    payload = {'roomId': room, 'userName': name, 'userRole': role}
    payload.update(extra)
    return dispatcher.handle(sid, 'join-room', payload)


def test_every_inbound_event_has_a_handler(dispatcher):
    assert set(INBOUND_EVENTS.values()) <= set(dispatcher._handlers)


def test_missing_handler_is_refused_at_construction(store, broadcaster, timers, monkeypatch):
    monkeypatch.setitem(INBOUND_EVENTS, 'mystery-event', type('Mystery', (), {}))
    with pytest.raises(RuntimeError):
        RoomEventDispatcher(store, SessionRegistry(), timers, broadcaster)


def test_join_sends_snapshot_to_joiner_and_notice_to_others(dispatcher, broadcaster):
    join(dispatcher, 'a', 'Ann')
    join(dispatcher, 'b', 'Bob', room='room-1')

    snapshot = broadcaster.received('b', 'room-joined')[0]['room']
    assert snapshot['id'] == 'ROOM-1'
    assert [p['name'] for p in snapshot['participants']] == ['Ann', 'Bob']
    assert broadcaster.received('a', 'participant-joined')[0]['participant']['name'] == 'Bob'
    # The joiner is not told about itself
    assert broadcaster.received('b', 'participant-joined') == []


def test_join_requires_room_and_name(dispatcher, broadcaster):
    join(dispatcher, 'a', '')
    assert broadcaster.received('a') == [{'message': 'Room ID and username are required'}]
    assert 'a' not in dispatcher.sessions


def test_rejoin_is_a_rebind_without_join_notice(dispatcher, broadcaster):
    join(dispatcher, 'a1', 'Ann')
    join(dispatcher, 'b', 'Bob')
    broadcaster.clear()

    join(dispatcher, 'a2', 'Ann')

    room = dispatcher.store.get('ROOM-1')
    assert [p.name for p in room.participants].count('Ann') == 1
    assert broadcaster.received('b', 'participant-joined') == []
    rebound = broadcaster.received('b', 'participant-rebound')[0]
    assert rebound['previousId'] == 'a1'
    assert rebound['participant']['id'] == 'a2'
    # The old connection is no longer bound to the room
    assert 'a1' not in dispatcher.sessions
    dispatcher.handle('a1', 'cast-vote', {'roomId': 'ROOM-1', 'card': '3'})
    assert broadcaster.received('a1', 'error') == [{'message': 'Not joined to this room'}]
    # ...and its late disconnect does not remove the rebound participant
    dispatcher.disconnect('a1')
    assert [p.name for p in room.participants] == ['Ann', 'Bob']


def test_switching_name_does_not_carry_the_old_vote(dispatcher):
    join(dispatcher, 'b1', 'Bob')
    join(dispatcher, 'a', 'Ann')
    dispatcher.handle('a', 'cast-vote', {'roomId': 'ROOM-1', 'card': '3'})

    # Connection 'a' now speaks for Bob, who never voted
    join(dispatcher, 'a', 'Bob')

    room = dispatcher.store.get('ROOM-1')
    assert [p.name for p in room.participants] == ['Bob']
    assert room.find_by_name('Bob').id == 'a'
    assert room.votes == {}


def test_switching_to_a_new_name_starts_without_a_vote(dispatcher):
    join(dispatcher, 'a', 'Ann')
    dispatcher.handle('a', 'cast-vote', {'roomId': 'ROOM-1', 'card': '5'})

    join(dispatcher, 'a', 'Annie')

    room = dispatcher.store.get('ROOM-1')
    assert [p.name for p in room.participants] == ['Annie']
    assert room.votes == {}


def test_same_connection_role_change_reaches_others(dispatcher, broadcaster):
    join(dispatcher, 'a', 'Ann')
    join(dispatcher, 'b', 'Bob')
    broadcaster.clear()

    join(dispatcher, 'a', 'Ann')
    assert broadcaster.events_for('b') == []

    join(dispatcher, 'a', 'Ann', role='observer')
    rebound = broadcaster.received('b', 'participant-rebound')
    assert len(rebound) == 1
    assert rebound[0]['previousId'] == 'a'
    assert rebound[0]['participant']['role'] == 'observer'
    assert dispatcher.sessions.get('a').user_role == 'observer'
    assert broadcaster.received('a', 'participant-rebound') == []


def test_events_for_another_room_are_rejected_to_sender_only(dispatcher, broadcaster):
    join(dispatcher, 'a', 'Ann')
    join(dispatcher, 'b', 'Bob')
    broadcaster.clear()

    dispatcher.handle('a', 'clear-votes', {'roomId': 'OTHER-ROOM'})
    dispatcher.handle('stranger', 'toggle-reveal-cards', {'roomId': 'ROOM-1'})

    assert broadcaster.received('a') == [{'message': 'Not joined to this room'}]
    assert broadcaster.received('stranger') == [{'message': 'Not joined to this room'}]
    assert broadcaster.received('b') == []
    assert dispatcher.store.get('ROOM-1').cards_revealed is False


def test_vote_reveal_and_clear_reach_everyone(dispatcher, broadcaster):
    join(dispatcher, 'a', 'Ann')
    join(dispatcher, 'b', 'Bob')
    join(dispatcher, 'c', 'Cid')
    broadcaster.clear()

    dispatcher.handle('a', 'cast-vote', {'roomId': 'room-1', 'card': '3', 'confidence': 'high'})
    dispatcher.handle('b', 'cast-vote', {'roomId': 'ROOM-1', 'card': '5'})
    dispatcher.handle('c', 'cast-vote', {'roomId': 'ROOM-1', 'card': '?'})
    dispatcher.handle('a', 'toggle-reveal-cards', {'roomId': 'ROOM-1'})

    for sid in ('a', 'b', 'c'):
        assert broadcaster.events_for(sid) == ['vote-cast'] * 3 + ['cards-revealed']
    cast = broadcaster.received('b', 'vote-cast')[0]
    assert cast['participantId'] == 'a'
    assert cast['card'] == '3'
    assert cast['confidence'] == 'high'
    revealed = broadcaster.received('c', 'cards-revealed')[0]
    assert revealed['revealed'] is True
    assert revealed['by'] == 'Ann'
    assert revealed['summary']['average'] == 4.0
    assert revealed['summary']['range'] == '3-5'
    assert revealed['summary']['consensus'] is False

    broadcaster.clear()
    dispatcher.handle('b', 'clear-votes', {'roomId': 'ROOM-1'})
    assert broadcaster.received('a', 'votes-cleared') == [{'by': 'Bob'}]
    assert broadcaster.received('b', 'votes-cleared') == [{'by': 'Bob'}]


def test_story_update_goes_to_others_only(dispatcher, broadcaster):
    join(dispatcher, 'a', 'Ann')
    join(dispatcher, 'b', 'Bob')
    broadcaster.clear()

    dispatcher.handle('a', 'update-story', {'roomId': 'ROOM-1', 'updates': {'title': 'Checkout'}})

    assert broadcaster.received('a') == []
    update = broadcaster.received('b', 'story-updated')[0]
    assert update['story']['title'] == 'Checkout'
    assert update['by'] == 'Ann'


def test_card_set_change_broadcasts_and_clears(dispatcher, broadcaster):
    join(dispatcher, 'a', 'Ann')
    dispatcher.handle('a', 'cast-vote', {'roomId': 'ROOM-1', 'card': '3'})
    broadcaster.clear()

    dispatcher.handle('a', 'change-card-set', {'roomId': 'ROOM-1', 'cardSet': 'custom', 'customCards': ['A', 'B']})

    assert broadcaster.received('a', 'card-set-changed') == [{'cardSet': 'custom', 'customCards': ['A', 'B'], 'by': 'Ann'}]
    assert dispatcher.store.get('ROOM-1').votes == {}


def test_estimation_type_change(dispatcher, broadcaster):
    join(dispatcher, 'a', 'Ann')
    join(dispatcher, 'b', 'Bob')
    broadcaster.clear()
    dispatcher.handle('b', 'change-estimation-type', {'roomId': 'ROOM-1', 'estimationType': 'unknowns'})
    expected = [{'estimationType': 'unknowns', 'by': 'Bob'}]
    assert broadcaster.received('a', 'estimation-type-changed') == expected
    assert broadcaster.received('b', 'estimation-type-changed') == expected


def test_complete_story_broadcasts_snapshot_stats_and_timer_stop(dispatcher, broadcaster):
    join(dispatcher, 'a', 'Ann')
    join(dispatcher, 'b', 'Bob')
    dispatcher.handle('a', 'toggle-timer', {'roomId': 'ROOM-1', 'duration': 120})
    dispatcher.handle('a', 'update-story', {'roomId': 'ROOM-1', 'updates': {'title': 'Export'}})
    dispatcher.handle('a', 'cast-vote', {'roomId': 'ROOM-1', 'card': '8'})
    dispatcher.handle('b', 'cast-vote', {'roomId': 'ROOM-1', 'card': '8'})
    dispatcher.handle('a', 'toggle-reveal-cards', {'roomId': 'ROOM-1'})
    broadcaster.clear()

    dispatcher.handle('b', 'complete-story', {'roomId': 'ROOM-1', 'estimate': '8', 'consensus': True})

    assert broadcaster.events_for('a') == ['story-completed', 'timer-updated']
    completed = broadcaster.received('a', 'story-completed')[0]
    assert completed['story']['title'] == 'Export'
    assert completed['story']['estimate'] == '8'
    assert completed['stats']['totalStories'] == 1
    assert completed['stats']['consensusRate'] == 100
    assert completed['by'] == 'Bob'
    assert broadcaster.received('a', 'timer-updated')[0]['timer']['active'] is False


def test_toggle_timer_broadcasts_start_and_stop(dispatcher, broadcaster):
    join(dispatcher, 'a', 'Ann')
    join(dispatcher, 'b', 'Bob')
    broadcaster.clear()

    dispatcher.handle('a', 'toggle-timer', {'roomId': 'ROOM-1', 'duration': 300})
    dispatcher.handle('b', 'toggle-timer', {'roomId': 'ROOM-1'})

    updates = broadcaster.received('b', 'timer-updated')
    assert updates[0] == {'timer': {'active': True, 'remaining': 300, 'duration': 300}, 'by': 'Ann'}
    assert updates[1] == {'timer': {'active': False, 'remaining': 0, 'duration': 300}, 'by': 'Bob'}

    dispatcher.handle('a', 'toggle-timer', {'roomId': 'ROOM-1', 'duration': 'soon'})
    assert broadcaster.received('a', 'error')[-1] == {'message': 'Timer duration must be a number of seconds'}
    dispatcher.handle('a', 'toggle-timer', {'roomId': 'ROOM-1', 'duration': True})
    assert broadcaster.received('a', 'error')[-1] == {'message': 'Timer duration must be a number of seconds'}
    assert dispatcher.store.get('ROOM-1').timer.active is False


def test_disconnect_notifies_remaining_members(dispatcher, broadcaster):
    join(dispatcher, 'a', 'Ann')
    join(dispatcher, 'b', 'Bob')
    broadcaster.clear()

    dispatcher.disconnect('a')

    assert broadcaster.received('b', 'participant-left') == [{'participantId': 'a', 'participantName': 'Ann'}]
    assert 'a' not in dispatcher.sessions
    assert [p.name for p in dispatcher.store.get('ROOM-1').participants] == ['Bob']
    # Unknown connections are ignored
    assert dispatcher.disconnect('never-joined') == []


def test_last_disconnect_cancels_running_timer(dispatcher, broadcaster, timers):
    join(dispatcher, 'a', 'Ann')
    dispatcher.handle('a', 'toggle-timer', {'roomId': 'ROOM-1', 'duration': 60})
    room = dispatcher.store.get('ROOM-1')
    generation = room.timer.generation

    dispatcher.disconnect('a')
    broadcaster.clear()

    assert room.timer.active is False
    assert timers.tick('ROOM-1', generation=generation) == []
    assert broadcaster.deliveries == []


def test_joining_another_room_leaves_the_first(dispatcher, broadcaster):
    join(dispatcher, 'a', 'Ann', room='FIRST')
    join(dispatcher, 'b', 'Bob', room='FIRST')
    broadcaster.clear()

    join(dispatcher, 'a', 'Ann', room='SECOND')

    assert broadcaster.received('b', 'participant-left') == [{'participantId': 'a', 'participantName': 'Ann'}]
    assert [p.name for p in dispatcher.store.get('FIRST').participants] == ['Bob']
    assert dispatcher.sessions.get('a').room_code == 'SECOND'
    assert 'a' not in broadcaster.channels['FIRST']
    dispatcher.handle('a', 'clear-votes', {'roomId': 'FIRST'})
    assert broadcaster.received('a', 'error') == [{'message': 'Not joined to this room'}]


def test_leave_room_acknowledges_and_unbinds(dispatcher, broadcaster):
    join(dispatcher, 'a', 'Ann')
    join(dispatcher, 'b', 'Bob')
    broadcaster.clear()

    dispatcher.handle('a', 'leave-room', {'roomId': 'ROOM-1'})

    assert broadcaster.received('a') == [{'roomId': 'ROOM-1'}]
    assert broadcaster.events_for('b') == ['participant-left']
    assert 'a' not in dispatcher.sessions


def test_evicted_room_reports_room_not_found(dispatcher, broadcaster):
    join(dispatcher, 'a', 'Ann')
    dispatcher.store.remove('ROOM-1')
    broadcaster.clear()
    dispatcher.handle('a', 'cast-vote', {'roomId': 'ROOM-1', 'card': '5'})
    assert broadcaster.received('a') == [{'message': 'Room not found'}]


def test_unexpected_failure_becomes_generic_error(dispatcher, broadcaster, monkeypatch):
    join(dispatcher, 'a', 'Ann')
    join(dispatcher, 'b', 'Bob')
    broadcaster.clear()

    def explode(*args, **kwargs):
        raise KeyError('boom')

    monkeypatch.setattr(dispatcher.store, 'clear_votes', explode)
    dispatcher.handle('a', 'clear-votes', {'roomId': 'ROOM-1'})

    assert broadcaster.received('a') == [{'message': 'Failed to clear votes'}]
    assert broadcaster.received('b') == []


def test_invalid_payload_is_rejected(dispatcher, broadcaster):
    dispatcher.handle('a', 'join-room', ['not', 'an', 'object'])
    assert broadcaster.received('a') == [{'message': 'Event payload must be an object'}]
