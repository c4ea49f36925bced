from http import HTTPStatus

import pytest

from ghstats.errors import AppError, not_found


def test_not_found_status_and_body():
    err = not_found()
    assert err.status_code == 404
    assert err.status is HTTPStatus.NOT_FOUND
    assert err.body == "404 Not Found"


def test_not_found_can_be_raised():
    err = not_found()
    with pytest.raises(AppError) as info:
        raise err
    assert info.value is err
    assert info.value.status_code == 404
    assert info.value.body == "404 Not Found"


def test_wrapped_exception_is_internal_error():
    err = AppError(ValueError("boom"))
    assert err.status_code == 500
    assert err.body == "Something went wrong: boom"
    assert str(err) == "boom"


def test_explicit_status_uses_reason_phrase():
    err = AppError("denied", HTTPStatus.FORBIDDEN)
    assert err.status_code == int(HTTPStatus.FORBIDDEN)
    assert err.body.startswith(str(int(HTTPStatus.FORBIDDEN)))
    assert err.body.endswith(HTTPStatus.FORBIDDEN.phrase)