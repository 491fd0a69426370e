import pytest

from parcelops.auth import SessionManager
from parcelops.models import Snapshot, UserRole
from parcelops.seed import seed_users
from parcelops.services.auth_service import AuthService
from parcelops.storage import RecordStoreError


@pytest.fixture
def auth(services):
    return services["auth_service"]


def test_offline_login_with_seed_password(auth, session):
    result = auth.login("  Malabo@SM-Global.com ", "123")

    assert result.success
    assert result.data.id == "u-2"
    assert result.data.password_hash is None
    assert session.get_current_user().id == "u-2"


def test_online_login_uses_hashed_store_record(auth, record_store, user_repo):
    record_store.apply_snapshot(Snapshot(users=seed_users()), client_id="dev", sequence=1)
    user_repo.replace_all([])

    result = auth.login("admin@sm-global.com", "123")

    assert result.success
    assert result.data.role == UserRole.SUPER_ADMIN


@pytest.mark.parametrize("email, password", [
    ("malabo@sm-global.com", "wrong"),
    ("nobody@sm-global.com", "123"),
])
def test_bad_credentials(auth, session, email, password):
    result = auth.login(email, password)

    assert result.status_code == 401
    assert not session.is_authenticated


@pytest.mark.parametrize("email, password", [("", "123"), ("a@b.com", ""), ("   ", "x")])
def test_missing_credentials(auth, email, password):
    assert auth.login(email, password).status_code == 400


class _DownStore:
    def find_user_by_email(self, email):
        raise RecordStoreError("timeout")


def test_login_falls_back_when_store_is_down(session, user_repo, logger, services):
    auth = AuthService(session=session, user_repo=user_repo, logger=logger, record_store=_DownStore())

    assert auth.login("bata@sm-global.com", "123").success


def test_session_survives_restart(auth, cache):
    auth.login("bata@sm-global.com", "123")

    restored = SessionManager(cache).restore()

    assert restored is not None
    assert restored.id == "u-3"
    assert restored.password_hash is None


def test_logout_clears_persisted_session(auth, session, cache):
    auth.login("bata@sm-global.com", "123")

    auth.logout()

    assert not session.is_authenticated
    assert SessionManager(cache).restore() is None
    with pytest.raises(RuntimeError):
        session.get_current_user()


def test_restore_session_without_login(auth):
    assert auth.restore_session() is None
