import pytest
from backend.app import create_app, db
from backend.models import Event, EventParticipant, GuestPlayer, User
from backend.time_utils import utcnow_naive


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _auth(user):
    from backend.auth_utils import generate_token
    token = generate_token(user.id)
    return {'Authorization': f'Bearer {token}', 'Content-Type': 'application/json'}


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make(name=None, skill_rating=1000, matches_played=0, is_admin=False):
        counter['n'] += 1
        username = name or f'user{counter["n"]}'
        user = User(
            username=username, email=f'{username}@example.com', name=username,
            skill_rating=skill_rating, matches_played=matches_played, is_admin=is_admin,
        )
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def host(make_user):
    return make_user('host')


@pytest.fixture
def host_headers(host):
    return _auth(host)


@pytest.fixture
def auth_headers_for():
    return _auth


@pytest.fixture
def event(host):
    """Published singles event with four courts and a 200 tolerance."""
    event = Event(
        host_user_id=host.id, title='Friday Ladder', status='published',
        max_courts=4, match_type='singles', skill_tolerance=200,
    )
    db.session.add(event)
    db.session.commit()
    return event


@pytest.fixture
def make_player(make_user, event):
    """Create a user registered for ``event`` (confirmed by default)."""
    def _make(skill_rating=1000, status='confirmed', matches_played=0, name=None, target_event=None):
        user = make_user(name=name, skill_rating=skill_rating, matches_played=matches_played)
        participant = EventParticipant(
            event_id=(target_event or event).id, user_id=user.id, status=status,
        )
        if status == 'checked_in':
            participant.checked_in_at = utcnow_naive()
        db.session.add(participant)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def make_guest(event, host):
    def _make(name='Walk-in', estimated_mmr=1000, is_active=True, expires_at=None,
              deleted_at=None):
        guest = GuestPlayer(
            event_id=event.id, added_by_user_id=host.id, name=name,
            estimated_mmr=estimated_mmr, is_active=is_active,
            expires_at=expires_at, deleted_at=deleted_at,
            checked_in_at=utcnow_naive(),
        )
        db.session.add(guest)
        db.session.commit()
        return guest
    return _make
