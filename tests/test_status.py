import pytest

from ebscsi.status import Code, StatusError


def test_code_numbers_follow_grpc():
    assert Code(3) is Code.INVALID_ARGUMENT
    assert Code.ABORTED == 10


def test_status_error_keeps_code_and_message():
    err = StatusError(Code.NOT_FOUND, "Volume not found")
    assert err.code is Code.NOT_FOUND
    assert err.message == "Volume not found"


def test_status_error_accepts_integer_code():
    err = StatusError(int(Code.INTERNAL), "boom")
    assert err.code is Code.INTERNAL


def test_status_error_string_contains_code_and_message():
    err = StatusError(Code.ALREADY_EXISTS, "exists already")
    text = str(err)
    assert "ALREADY_EXISTS" in text
    assert text.endswith("exists already")


def test_status_error_default_message_is_empty():
    err = StatusError(Code.UNIMPLEMENTED)
    assert err.message == ""
    assert err.args == ("",)


def test_invalid_code_rejected():
    with pytest.raises(ValueError):
        StatusError(99, "bad")