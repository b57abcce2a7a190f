import pytest

from backend.app.utils.error_handlers import (
    ConflictError,
    ForbiddenError,
    RateLimitedError,
    UnauthorizedError,
    ValidationError,
    get_error_message,
)
from backend.app.utils.roles import ensure_capability
from backend.app.utils.validation import (
    validate_id,
    validate_integer_field,
    validate_opportunity_type,
    validate_string_field,
)


def test_string_validation():
    assert validate_string_field("Test", "Field", min_length=2, max_length=50) == "Test"
    # Test trimming
    assert validate_string_field("  test  ", "Field") == "test"
    assert validate_string_field(None, "Field", required=False) is None


@pytest.mark.parametrize("value", ["A", "", "   ", None, 12])
def test_string_rejected(value):
    with pytest.raises(ValidationError) as exc:
        validate_string_field(value, "Field", min_length=2)
    assert exc.value.status_code == 400


def test_integer_validation():
    assert validate_integer_field(42, "Count", min_value=1, max_value=100) == 42
    assert validate_integer_field("7", "Count") == 7


@pytest.mark.parametrize("value", [0, -3, "abc", True, None])
def test_invalid_ids(value):
    with pytest.raises(ValidationError):
        validate_id(value, "Company ID")


def test_opportunity_type_is_normalized():
    assert validate_opportunity_type("  PFE ") == "pfe"
    assert validate_opportunity_type("employment") == "employment"
    with pytest.raises(ValidationError):
        validate_opportunity_type("internship")


def test_error_status_codes():
    assert ConflictError("x").status_code == 409
    assert ForbiddenError().status_code == 403
    assert isinstance(ForbiddenError(), UnauthorizedError)
    err = RateLimitedError(retry_after=0)
    assert err.status_code == 429
    assert err.retry_after == 1
    assert err.details["retry_after"] == 1


def test_unknown_message_key_falls_back():
    assert get_error_message("no_such_key") == get_error_message("server_error")
    assert get_error_message("no_such_key", "custom") == "custom"


def test_capability_check():
    student = {"sub": "1", "role": "student"}
    admin = {"sub": "2", "role": "admin"}

    assert ensure_capability(student, "student") is student
    with pytest.raises(UnauthorizedError) as exc:
        ensure_capability(None, "student")
    assert exc.value.status_code == 401
    with pytest.raises(ForbiddenError):
        ensure_capability(student, "committee")
    with pytest.raises(ForbiddenError):
        ensure_capability(admin, "committee")
    assert ensure_capability(admin, "committee", allow_admin=True) is admin
    with pytest.raises(ForbiddenError):
        ensure_capability(student, "student", owns=lambda u: u["sub"] == "99")
