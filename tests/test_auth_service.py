from dataclasses import replace
from datetime import datetime

from hearth.db.models import UserRole
from hearth.seed import seed_data
from hearth.services.auth_service import decode_session, encode_session, find_user, login

USERS = seed_data(datetime(2024, 7, 13))["users"]


def test_login_success_hides_password():
    user = login(USERS, "admin", "admin123")
    assert user is not None
    assert user.id == "u1"
    assert user.password is None
    assert user.role == UserRole.ADMIN


def test_login_username_case_insensitive():
    user = login(USERS, "  USER ", "user123")
    assert user is not None
    assert user.assigned_house_ids == ("h1",)


def test_login_wrong_password():
    assert login(USERS, "admin", "Admin123") is None


def test_login_unknown_user():
    assert login(USERS, "ghost", "admin123") is None


def test_find_user_reads_current_record():
    users = [replace(USERS[1], assigned_house_ids=("h2",)), USERS[0]]
    user = find_user(users, "u2")
    assert user.assigned_house_ids == ("h2",)
    assert user.password is None
    assert find_user(users, "u9") is None
    assert find_user(users, None) is None


def test_session_round_trip():
    user = login(USERS, "user", "user123")
    assert decode_session(encode_session(user)) == "u2"


def test_session_payload_carries_no_role():
    user = login(USERS, "admin", "admin123")
    assert "role" not in encode_session(user)


def test_decode_empty_session():
    assert decode_session(None) is None
    assert decode_session("") is None


def test_decode_garbage_session():
    assert decode_session("{not json") is None
    assert decode_session('{"username": "admin"}') is None
    assert decode_session("[1, 2]") is None
    assert decode_session('{"id": ""}') is None
    assert decode_session('{"id": 7}') is None
