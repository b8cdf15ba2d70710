"""Tests for client fault classification."""

import errno

from integration.mc_client import ConnectionErrorClass, classify_error


class ProtocolError(Exception):
    def __init__(self, message, code):
        super().__init__(message)
        self.errno = code


def test_builtin_connection_errors_are_classified():
    assert classify_error(ConnectionRefusedError("refused")) == ConnectionErrorClass.REFUSED
    assert classify_error(ConnectionResetError("reset")) == ConnectionErrorClass.RESET


def test_errno_decides_for_other_exceptions():
    refused = ProtocolError("connect failed", errno.ECONNREFUSED)
    reset = ProtocolError("read failed", errno.ECONNRESET)

    assert classify_error(refused) == ConnectionErrorClass.REFUSED
    assert classify_error(reset) == ConnectionErrorClass.RESET
    assert classify_error(ProtocolError("timed out", errno.ETIMEDOUT)) == ConnectionErrorClass.OTHER


def test_unrelated_errors_are_other():
    assert classify_error(ValueError("bad packet")) == ConnectionErrorClass.OTHER
    assert classify_error(OSError("disk")) == ConnectionErrorClass.OTHER
