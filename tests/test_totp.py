"""
Tests for HOTP/TOTP derivation, windows and progress.
"""
import pendulum
import pyotp
import pytest

from conftest import RFC_SECRET
from utils import base32
from utils.Credential import Credential
from utils.totp import (MAX_COUNTER, TotpToken, current_token, derive, from_time,
                        progress, remaining_seconds, system_clock, window)


class TestDerive:
    @pytest.mark.parametrize("counter, expected", list(enumerate([
        755224, 287082, 359152, 969429, 338314,
        254676, 287922, 162583, 399871, 520489,
    ])))
    def test_rfc4226_vectors(self, counter, expected):
        assert derive(RFC_SECRET, counter, 6) == expected

    @pytest.mark.parametrize("counter, expected", [(0, 1284755224), (1, 1094287082), (2, 137359152)])
    def test_ten_digits_keep_truncated_value(self, counter, expected):
        assert derive(RFC_SECRET, counter, 10) == expected
        assert derive(RFC_SECRET, counter, 32) == expected

    def test_nine_digits_drop_leading_digit(self):
        assert derive(RFC_SECRET, 0, 9) == 284755224

    def test_ten_digit_code_is_zero_padded(self):
        token = TotpToken(number=derive(RFC_SECRET, 2, 10), digits=10,
                          window_start=pendulum.from_timestamp(0),
                          window_end=pendulum.from_timestamp(30))
        assert token.code == "0137359152"

    @pytest.mark.parametrize("counter", [-1, MAX_COUNTER])
    def test_counter_out_of_range(self, counter):
        with pytest.raises(ValueError):
            derive(RFC_SECRET, counter, 6)

    def test_largest_counter(self):
        assert 0 <= derive(RFC_SECRET, MAX_COUNTER - 1, 6) < 10 ** 6


class TestFromTime:
    def test_short_secret(self):
        assert from_time(b"\x21\x22", 1678732967, 6) == 486091

    def test_many_digits_keep_truncated_value(self):
        assert from_time(b"\x21\x22", 1678732967, 32) == 783486091

    @pytest.mark.parametrize("unix_seconds, expected", [
        (59, 94287082),
        (1111111109, 7081804),
        (1111111111, 14050471),
        (1234567890, 89005924),
        (2000000000, 69279037),
        (20000000000, 65353130),
    ])
    def test_rfc6238_sha1_vectors(self, unix_seconds, expected):
        assert from_time(RFC_SECRET, unix_seconds, 8) == expected

    @pytest.mark.parametrize("unix_seconds", [0, 29, 30, 1678732967, 1893456000])
    @pytest.mark.parametrize("period", [30, 60])
    def test_matches_pyotp(self, unix_seconds, period):
        secret = b"\x32\x92\x44\x5F\x2F\xED\xD8\xCD\xFD\x84\x72\x19"
        oracle = pyotp.TOTP(base32.encode(secret), digits=6, interval=period)
        assert f"{from_time(secret, unix_seconds, 6, period):06d}" == oracle.at(unix_seconds)


class TestWindow:
    def test_boundaries(self):
        assert window(59) == (30, 60)
        assert window(60) == (60, 90)
        assert window(60.999, 60) == (60, 120)

    def test_remaining_seconds(self):
        assert remaining_seconds(30) == 30
        assert remaining_seconds(59) == 1
        assert remaining_seconds(59.5) == 1


class TestProgress:
    def test_fixed_clock(self):
        assert progress(lambda: 1000.5) == pytest.approx(0.35)

    def test_non_decreasing_then_resets(self):
        times = [30.0, 31.25, 45.0, 59.999, 60.0, 60.001]
        values = [progress(lambda t=t: t) for t in times]

        assert values[:4] == sorted(values[:4])
        assert values[4] == 0.0
        assert values[5] < 0.001
        assert all(0.0 <= v < 1.0 for v in values)

    def test_period(self):
        assert progress(lambda: 90.0, period=60) == pytest.approx(0.5)

    def test_system_clock_is_unix_seconds(self):
        assert system_clock() > 1_600_000_000


class TestCurrentToken:
    def test_token_at_fixed_time(self, rfc_credential):
        token = current_token(rfc_credential, now=59)

        assert token.number == 94287082
        assert token.code == "94287082"
        assert token.window_start.int_timestamp == 30
        assert token.window_end.int_timestamp == 60

    def test_code_zero_padded(self, rfc_credential):
        assert current_token(rfc_credential, now=1111111109).code == "07081804"

    def test_clock_used_when_now_missing(self, rfc_credential):
        token = current_token(rfc_credential, clock=lambda: 1234567890.4)
        assert token.code == "89005924"

    def test_period_from_credential(self):
        credential = Credential(issuer="X", secret=RFC_SECRET, period_seconds=60)
        token = current_token(credential, now=119)
        assert token.window_start.int_timestamp == 60
        assert token.number == derive(RFC_SECRET, 1, 6)

    def test_to_dict(self, rfc_credential):
        data = current_token(rfc_credential, now=59).to_dict()

        assert data["code"] == "94287082"
        assert data["digits"] == 8
        assert data["valid_from"].startswith("1970-01-01T00:00:30")
        assert data["valid_until"].startswith("1970-01-01T00:01:00")

    def test_token_is_frozen(self, rfc_credential):
        token = current_token(rfc_credential, now=59)
        with pytest.raises(AttributeError):
            token.number = 1
        assert isinstance(token, TotpToken)
