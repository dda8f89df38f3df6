def drain(test_client, name=None):
    """Return payloads received since the last call, optionally for one event name."""
    received = test_client.get_received()
    return [pkt['args'][0] for pkt in received if name is None or pkt['name'] == name]


def received_names(test_client):
    return [pkt['name'] for pkt in test_client.get_received()]


def create_room(host, **options):
    host.get_received()
    host.emit('createGame', options)
    created = drain(host, 'gameCreated')
    assert len(created) == 1
    return created[0]


def test_connect_greets_the_connection(sio_client):
    assert sio_client.is_connected()
    connected = drain(sio_client, 'connected')
    assert len(connected) == 1 and connected[0]['sid']


def test_ping(sio_client):
    sio_client.get_received()
    sio_client.emit('ping', {'n': 1})
    assert drain(sio_client, 'pong') == [{'n': 1}]


def test_full_game_over_sockets(seeded_questions, sio_factory):
    host, ann, bo = sio_factory(), sio_factory(), sio_factory()
    created = create_room(host)
    pin = created['pin']
    assert created['questionCount'] == 2
    assert created['hostToken']

    ann.get_received()
    ann.emit('joinGame', {'pin': pin.lower(), 'playerName': 'Ann'})
    joined = drain(ann)
    assert any(p.get('name') == 'Ann' and p.get('playerId') for p in joined)

    bo.get_received()
    bo.emit('joinGame', {'pin': pin, 'playerName': 'Bo'})
    bo.get_received()

    lobby = drain(host, 'roomUpdate')
    assert [p['name'] for p in lobby[-1]['players']] == ['Ann', 'Bo']
    assert lobby[-1]['state'] == 'lobby'

    host.emit('startGame', {'pin': pin})
    questions = drain(ann, 'newQuestion')
    assert len(questions) == 1
    assert questions[0]['text'] == 'Red planet?'
    assert 'correctIndex' not in questions[0]
    drain(bo)
    drain(host)

    ann.emit('submitAnswer', {'pin': pin, 'answerIndex': 1, 'clientTimeLeft': 19})
    results = drain(ann, 'answerResult')
    assert len(results) == 1
    assert results[0]['isCorrect'] is True
    assert results[0]['points'] > 0
    # Others are not told how Ann did
    assert 'answerResult' not in received_names(bo)

    bo.emit('submitAnswer', {'pin': pin, 'answerIndex': 0})
    bo_result = drain(bo)
    assert [p for p in bo_result if 'isCorrect' in p][0]['isCorrect'] is False

    boards = drain(host, 'leaderboard')
    assert len(boards) == 1
    assert [p['name'] for p in boards[0]['players']] == ['Ann', 'Bo']
    assert boards[0]['correctIndex'] == 1
    assert boards[0]['final'] is False

    host.emit('nextQuestion', {'pin': pin})
    second = drain(ann, 'newQuestion')
    assert second[0]['text'] == 'Capital of Australia?'
    ann.emit('submitAnswer', {'pin': pin, 'answerIndex': 2})
    bo.emit('submitAnswer', {'pin': pin, 'answerIndex': 2})
    host.get_received()

    host.emit('nextQuestion', {'pin': pin})
    final = drain(host, 'leaderboard')
    assert final[-1]['final'] is True
    assert final[-1]['phase'] == 'ended'


def test_join_errors_reach_only_the_joiner(seeded_questions, sio_factory):
    host, ann, other = sio_factory(), sio_factory(), sio_factory()
    pin = create_room(host)['pin']

    other.get_received()
    other.emit('joinGame', {'pin': 'ZZZZZZ', 'playerName': 'Cy'})
    errors = drain(other, 'joinError')
    assert errors and errors[0]['code'] == 'not_found'

    ann.emit('joinGame', {'pin': pin, 'playerName': 'Ann'})
    other.emit('joinGame', {'pin': pin, 'playerName': 'ANN'})
    errors = drain(other, 'joinError')
    assert errors[0]['code'] == 'validation'

    other.emit('joinGame', {'pin': pin})
    assert drain(other, 'joinError')[0]['code'] == 'validation'
    assert 'joinError' not in received_names(host)


def test_only_the_host_can_drive_the_game(seeded_questions, sio_factory):
    host, ann = sio_factory(), sio_factory()
    pin = create_room(host)['pin']
    ann.emit('joinGame', {'pin': pin, 'playerName': 'Ann'})
    ann.get_received()

    ann.emit('startGame', {'pin': pin})
    errors = drain(ann, 'hostError')
    assert errors[0]['code'] == 'authorization'
    assert 'newQuestion' not in received_names(host)


def test_start_with_no_players_is_rejected(seeded_questions, sio_factory):
    host = sio_factory()
    pin = create_room(host)['pin']
    host.emit('startGame', {'pin': pin})
    assert drain(host, 'hostError')[0]['code'] == 'state_conflict'


def test_answer_outside_a_question(seeded_questions, sio_factory):
    host, ann = sio_factory(), sio_factory()
    pin = create_room(host)['pin']
    ann.emit('joinGame', {'pin': pin, 'playerName': 'Ann'})
    ann.get_received()

    ann.emit('submitAnswer', {'pin': pin, 'answerIndex': 0})
    assert drain(ann, 'answerError')[0]['code'] == 'state_conflict'

    host.emit('startGame', {'pin': pin})
    ann.get_received()
    ann.emit('submitAnswer', {'pin': pin, 'answerIndex': 'b'})
    assert drain(ann, 'answerError')[0]['code'] == 'validation'


def test_create_game_without_questions(sio_client):
    sio_client.get_received()
    sio_client.emit('createGame', {})
    errors = drain(sio_client, 'hostError')
    assert errors[0]['code'] == 'validation'


def test_create_game_with_selection(seeded_questions, sio_factory):
    host = sio_factory()
    created = create_room(host, category='Geography')
    assert created['questionCount'] == 1

    host.emit('createGame', {'questionIds': [seeded_questions[1]['id'], 9999]})
    assert drain(host, 'hostError')[0]['code'] == 'not_found'

    host.emit('createGame', {'questionIds': 'all'})
    assert drain(host, 'hostError')[0]['code'] == 'validation'


def test_host_disconnect_ends_the_game(seeded_questions, sio_factory):
    host, ann = sio_factory(), sio_factory()
    pin = create_room(host)['pin']
    ann.emit('joinGame', {'pin': pin, 'playerName': 'Ann'})
    ann.get_received()

    host.disconnect()
    ended = drain(ann, 'gameEnded')
    assert ended == [{'pin': pin, 'reason': 'host_left'}]

    ann.emit('joinGame', {'pin': pin, 'playerName': 'Ann2'})
    assert drain(ann, 'joinError')[0]['code'] == 'not_found'


def test_leave_game(seeded_questions, sio_factory):
    host, ann = sio_factory(), sio_factory()
    pin = create_room(host)['pin']
    ann.emit('joinGame', {'pin': pin, 'playerName': 'Ann'})
    ann.get_received()
    host.get_received()

    ann.emit('leaveGame', {'pin': pin})
    assert drain(ann, 'left') == [{'pin': pin}]
    update = drain(host, 'roomUpdate')[-1]
    assert update['players'] == []

    ann.emit('leaveGame', {'pin': pin})
    assert drain(ann, 'error')[0]['code'] == 'not_found'

    # The name is free again and the connection no longer hears the room
    ann.emit('joinGame', {'pin': pin, 'playerName': 'Ann'})
    assert [p['name'] for p in drain(ann, 'roomUpdate')[-1]['players']] == ['Ann']


def test_departed_connection_leaves_the_socketio_room(seeded_questions, sio_factory):
    host, ann, bo = sio_factory(), sio_factory(), sio_factory()
    pin = create_room(host)['pin']
    ann.emit('joinGame', {'pin': pin, 'playerName': 'Ann'})
    bo.emit('joinGame', {'pin': pin, 'playerName': 'Bo'})
    ann.emit('leaveGame', {'pin': pin})
    ann.get_received()
    bo.get_received()

    host.emit('startGame', {'pin': pin})
    assert len(drain(bo, 'newQuestion')) == 1
    assert drain(ann, 'newQuestion') == []


def test_game_state_over_http(seeded_questions, sio_factory, client):
    host = sio_factory()
    pin = create_room(host)['pin']

    res = client.get(f'/api/games/{pin.lower()}')
    assert res.status_code == 200
    state = res.get_json()
    assert state['pin'] == pin
    assert state['state'] == 'lobby'
    assert state['questionCount'] == 2
    assert state['scoring'] == {'max': 1000, 'min': 500}
