def create_session(host_client, quiz):
    res = host_client.post('/api/games/create-session', json={'quizId': quiz.id})
    assert res.status_code == 201
    return res.get_json()


def test_index(client):
    res = client.get('/')
    assert res.status_code == 200
    assert 'message' in res.get_json()


def test_create_session_requires_login(client, quiz):
    res = client.post('/api/games/create-session', json={'quizId': quiz.id})
    assert res.status_code == 401
    assert res.get_json()['kind'] == 'Unauthorized'


def test_create_session_only_for_owner(quiz, make_user, login):
    make_user('intruder')
    res = login('intruder').post('/api/games/create-session', json={'quizId': quiz.id})
    assert res.status_code == 403
    assert res.get_json()['kind'] == 'Forbidden'


def test_create_session_unknown_quiz(host_client, quiz):
    res = host_client.post('/api/games/create-session', json={'quizId': 9999})
    assert res.status_code == 404
    assert res.get_json()['kind'] == 'NotFound'


def test_create_session_hides_quiz_until_teardown(flask_app, host_client, quiz, engine):
    from livequiz.models import Quiz
    from livequiz import db
    created = create_session(host_client, quiz)
    assert len(created['PIN']) == 6
    assert created['quizTitle'] == 'General Knowledge'
    assert created['totalQuestions'] == 4
    with flask_app.app_context():
        assert db.session.get(Quiz, quiz.id).is_published is False
        engine.teardown(created['sessionId'])
    with flask_app.app_context():
        assert db.session.get(Quiz, quiz.id).is_published is True


def test_join_and_state(client, host_client, quiz):
    created = create_session(host_client, quiz)
    res = client.post('/api/games/join', json={'PIN': created['PIN'], 'displayName': 'Alice'})
    assert res.status_code == 200
    joined = res.get_json()
    assert joined['sessionId'] == created['sessionId']
    assert joined['totalPlayers'] == 1
    assert joined['isGuest'] is True

    state = client.get(f"/api/games/session/{created['sessionId']}").get_json()
    assert state['status'] == 'waiting'
    assert [p['playerName'] for p in state['players']] == ['Alice']
    assert 'correctAnswer' not in state['quiz']['questions'][0]

    as_host = host_client.get(f"/api/games/session/{created['sessionId']}").get_json()
    assert as_host['quiz']['questions'][0]['correctAnswer'] == 1


def test_join_errors(client, host_client, quiz):
    created = create_session(host_client, quiz)
    res = client.post('/api/games/join', json={'displayName': 'Alice'})
    assert res.status_code == 400
    assert res.get_json()['kind'] == 'ValidationError'

    res = client.post('/api/games/join', json={'PIN': 'nope', 'displayName': 'Alice'})
    assert res.status_code == 404

    client.post('/api/games/join', json={'PIN': created['PIN'], 'displayName': 'Alice'})
    res = client.post('/api/games/join', json={'PIN': created['PIN'], 'playerName': 'alice'})
    assert res.status_code == 409
    assert res.get_json()['kind'] == 'DuplicateParticipant'

    host_client.post(f"/api/games/session/{created['sessionId']}/start")
    res = client.post('/api/games/join', json={'PIN': created['PIN'], 'displayName': 'Late'})
    assert res.status_code == 409
    assert res.get_json()['kind'] == 'AlreadyStarted'


def test_start_requires_host(client, host_client, quiz, make_user, login):
    created = create_session(host_client, quiz)
    make_user('player1')
    res = login('player1').post(f"/api/games/session/{created['sessionId']}/start")
    assert res.status_code == 403
    res = client.post(f"/api/games/session/{created['sessionId']}/start")
    assert res.status_code == 401
    res = host_client.post(f"/api/games/session/{created['sessionId']}/start")
    assert res.status_code == 200
    assert res.get_json()['status'] == 'running'
    res = host_client.post(f"/api/games/session/{created['sessionId']}/start")
    assert res.status_code == 409
    assert res.get_json()['kind'] == 'InvalidState'


def test_unknown_session(client):
    res = client.get('/api/games/session/does-not-exist')
    assert res.status_code == 404
    assert res.get_json() == {'error': 'Game not found', 'kind': 'NotFound'}


def test_full_game_flow(client, host_client, quiz, question_ids, make_user, login):
    created = create_session(host_client, quiz)
    sid = created['sessionId']
    make_user('player1')
    player = login('player1')
    assert player.post('/api/games/join', json={'PIN': created['PIN'], 'displayName': 'Pat'}).status_code == 200
    assert client.post('/api/games/join', json={'PIN': created['PIN'], 'displayName': 'Gina'}).status_code == 200
    assert host_client.post(f'/api/games/session/{sid}/start').status_code == 200

    # Question 1: Pat answers correctly, Gina only leaves a draft
    res = player.post(f'/api/games/session/{sid}/submit',
                      json={'questionId': question_ids[0], 'answer': 'paris', 'timeSpent': 3})
    assert res.get_json() == {
        'isCorrect': True, 'pointsAwarded': 1, 'currentScore': 1, 'timeSpent': 3.0, 'alreadyAnswered': False,
    }
    res = client.post(f'/api/games/session/{sid}/save-draft',
                      json={'displayName': 'Gina', 'questionId': question_ids[0], 'value': 'Paris'})
    assert res.get_json() == {'saved': True}

    # Retry of the same submission is not scored twice
    again = player.post(f'/api/games/session/{sid}/submit',
                        json={'questionId': question_ids[0], 'answer': 'Rome'}).get_json()
    assert again['alreadyAnswered'] is True
    assert again['currentScore'] == 1

    res = host_client.post(f'/api/games/session/{sid}/advance')
    assert res.get_json() == {'currentQuestionIndex': 1, 'totalQuestions': 4}

    res = client.post(f'/api/games/session/{sid}/submit',
                      json={'displayName': 'Gina', 'questionId': question_ids[1], 'value': ['5', '2']})
    assert res.get_json()['pointsAwarded'] == 2
    assert res.get_json()['currentScore'] == 3

    host_client.post(f'/api/games/session/{sid}/advance')
    player.post(f'/api/games/session/{sid}/submit', json={'questionId': question_ids[2], 'value': 'benar'})
    host_client.post(f'/api/games/session/{sid}/advance')
    player.post(f'/api/games/session/{sid}/submit', json={'questionId': question_ids[3], 'value': 'Gold (Au)'})

    ended = host_client.post(f'/api/games/session/{sid}/advance').get_json()
    assert ended['gameEnded'] is True
    players = ended['results']['players']
    assert [(p['playerName'], p['score'], p['rank']) for p in players] == [('Pat', 3, 1), ('Gina', 3, 2)]
    assert players[0]['userId'] is not None
    assert players[1]['isGuest'] is True
    assert len(players[1]['answers']) == 4
    assert players[1]['answers'][2]['answered'] is False

    state = client.get(f'/api/games/session/{sid}').get_json()
    assert state['status'] == 'ended'
    assert state['historyId'] == ended['historyId']

    res = host_client.post(f'/api/games/session/{sid}/end')
    assert res.status_code == 409

    late = client.post('/api/games/join', json={'PIN': created['PIN'], 'displayName': 'Late'})
    assert late.status_code == 409
    assert late.get_json()['kind'] == 'AlreadyEnded'

    res = client.post(f'/api/games/session/{sid}/submit',
                      json={'displayName': 'Gina', 'questionId': question_ids[2], 'value': True})
    assert res.status_code == 409
    assert res.get_json()['kind'] == 'AlreadyEnded'

    record = client.get(f"/api/games/history/{ended['historyId']}").get_json()
    assert record['sessionId'] == sid
    assert record['totalPlayers'] == 2
    assert record['quizTitle'] == 'General Knowledge'
    assert [p['rank'] for p in record['playerResults']] == [1, 2]

    mine = player.get('/api/games/history/mine').get_json()
    assert mine['playerGames'] == 1
    assert mine['hostGames'] == 0
    assert mine['history'][0]['yourRank'] == 1
    assert mine['history'][0]['yourScore'] == 3

    hosted = host_client.get('/api/games/history/mine').get_json()
    assert hosted['hostGames'] == 1
    assert hosted['history'][0]['role'] == 'host'
    assert hosted['history'][0]['topScore'] == 3


def test_submit_requires_participant(client, host_client, quiz, question_ids):
    created = create_session(host_client, quiz)
    client.post('/api/games/join', json={'PIN': created['PIN'], 'displayName': 'Alice'})
    host_client.post(f"/api/games/session/{created['sessionId']}/start")
    res = client.post(f"/api/games/session/{created['sessionId']}/submit",
                      json={'displayName': 'Eve', 'questionId': question_ids[0], 'value': 'Paris'})
    assert res.status_code == 403
    assert res.get_json()['kind'] == 'NotInGame'


def test_end_persists_history(flask_app, client, host_client, quiz, question_ids):
    created = create_session(host_client, quiz)
    sid = created['sessionId']
    client.post('/api/games/join', json={'PIN': created['PIN'], 'displayName': 'Alice'})
    host_client.post(f'/api/games/session/{sid}/start')
    client.post(f'/api/games/session/{sid}/save-draft',
                json={'displayName': 'Alice', 'questionId': question_ids[3], 'value': 'au'})

    res = host_client.post(f'/api/games/session/{sid}/end')
    assert res.status_code == 200
    ended = res.get_json()
    alice = ended['results']['players'][0]
    assert alice['score'] == 1
    assert alice['answers'][3]['isCorrect'] is True

    from livequiz.models import GameHistory
    with flask_app.app_context():
        assert GameHistory.query.count() == 1


def test_long_and_blank_names_fit_history(flask_app, host_client, quiz):
    created = create_session(host_client, quiz)
    sid = created['sessionId']
    guests = [flask_app.test_client() for _ in range(3)]
    for c, name in zip(guests, ['y' * 100, '', '   ']):
        assert c.post('/api/games/join', json={'PIN': created['PIN'], 'displayName': name}).status_code == 200
    host_client.post(f'/api/games/session/{sid}/start')

    res = host_client.post(f'/api/games/session/{sid}/end')
    assert res.status_code == 200
    names = [p['playerName'] for p in res.get_json()['results']['players']]
    assert names == ['y' * 64, 'Player', 'Player 2']

    from livequiz.models import GameHistoryPlayer
    with flask_app.app_context():
        stored = sorted(p.player_name for p in GameHistoryPlayer.query.all())
    assert stored == ['Player', 'Player 2', 'y' * 64]


def test_anonymous_client_stays_guest_after_host_login(client, host_client, quiz):
    created = create_session(host_client, quiz)
    joined = client.post('/api/games/join', json={'PIN': created['PIN'], 'displayName': 'Alice'}).get_json()
    assert joined['isGuest'] is True
    assert client.post(f"/api/games/session/{created['sessionId']}/start").status_code == 401
    assert client.get('/me').status_code == 401


def test_end_before_start_is_invalid(host_client, quiz):
    created = create_session(host_client, quiz)
    res = host_client.post(f"/api/games/session/{created['sessionId']}/end")
    assert res.status_code == 409


def test_leave_lobby(client, host_client, quiz):
    created = create_session(host_client, quiz)
    client.post('/api/games/join', json={'PIN': created['PIN'], 'displayName': 'Alice'})
    res = client.post(f"/api/games/session/{created['sessionId']}/leave", json={'displayName': 'Alice'})
    assert res.get_json() == {'left': True, 'totalPlayers': 0}


def test_history_not_found(client):
    res = client.get('/api/games/history/12345')
    assert res.status_code == 404
    assert res.get_json()['kind'] == 'NotFound'


def test_history_mine_requires_login(client):
    assert client.get('/api/games/history/mine').status_code == 401


def test_user_signup_and_login(client):
    res = client.post('/users/add', json={'username': 'newbie', 'password': 'pw'})
    assert res.status_code == 201
    assert client.post('/users/add', json={'username': 'newbie', 'password': 'pw'}).status_code == 400
    assert client.post('/login', json={'username': 'newbie', 'password': 'wrong'}).status_code == 401
    assert client.post('/login', json={'username': 'newbie', 'password': 'pw'}).status_code == 200
    assert client.get('/me').get_json()['username'] == 'newbie'
