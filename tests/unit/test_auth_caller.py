import pytest
from fastapi import HTTPException

from app.auth.verify import caller_from_claims


def test_role_and_name_from_metadata():
    caller = caller_from_claims(
        {"sub": "u-1", "user_metadata": {"user_type": "trainer", "full_name": "Coach Ali"}}
    )

    assert caller.user_id == "u-1"
    assert caller.role == "trainer"
    assert caller.display_name == "Coach Ali"


def test_top_level_claims_win_over_metadata():
    caller = caller_from_claims(
        {"sub": "u-1", "user_type": "admin", "user_metadata": {"user_type": "trainer"}}
    )

    assert caller.role == "admin"


def test_player_is_a_student_and_name_falls_back_to_id():
    caller = caller_from_claims({"sub": "u-1", "user_type": "player"})

    assert caller.role == "student"
    assert caller.display_name == "u-1"


def test_missing_subject_is_unauthorized():
    with pytest.raises(HTTPException) as exc_info:
        caller_from_claims({"user_type": "trainer"})

    assert exc_info.value.status_code == 401
