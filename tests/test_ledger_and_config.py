"""Tests for the request state machine and configuration helpers."""

import pytest

from lms_client.client.http_client import is_auth_endpoint
from lms_client.client.ledger import TERMINAL_STATES, RequestLedger, RequestState
from lms_client.config.settings import (
    API_BASE_URL,
    API_ENDPOINTS,
    DEV_PROXY_BASE_URL,
    PRODUCTION_FALLBACK_URL,
    get_api_base_url,
)
from lms_client.exceptions.errors import InvalidTransitionError


def test_happy_path_transitions():
    ledger = RequestLedger()
    record = ledger.open("GET", "/v1/dashboard")
    assert record.request_id == 1
    assert record.state == RequestState.INITIAL

    record.transition(RequestState.SENT)
    record.transition(RequestState.SUCCESS)

    assert record.is_terminal
    assert ledger.last("/v1/dashboard") is record


@pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES, key=lambda s: s.value))
def test_terminal_states_cannot_be_left(terminal):
    ledger = RequestLedger()
    record = ledger.open("GET", "/v1/x")
    record.state = terminal

    for target in RequestState:
        with pytest.raises(InvalidTransitionError):
            record.transition(target)


def test_refresh_cannot_be_entered_twice():
    record = RequestLedger().open("GET", "/v1/x")
    record.transition(RequestState.SENT)
    record.transition(RequestState.FAILED_401_FIRST)
    record.transition(RequestState.REFRESHING)

    with pytest.raises(InvalidTransitionError):
        record.transition(RequestState.FAILED_401_FIRST)


def test_ledger_is_bounded():
    ledger = RequestLedger(max_records=3)
    for i in range(5):
        ledger.open("GET", f"/v1/{i}")

    assert [r.path for r in ledger.records] == ["/v1/2", "/v1/3", "/v1/4"]
    ledger.clear()
    assert ledger.last() is None


def test_auth_endpoints_are_recognized():
    assert is_auth_endpoint("/v1/users/login")
    assert is_auth_endpoint("/v1/users/refresh/")
    assert is_auth_endpoint("/v1/users/refresh?x=1")
    assert not is_auth_endpoint(API_ENDPOINTS["getUserInfo"])


def test_base_url_by_mode():
    assert get_api_base_url(dev_mode=True) == DEV_PROXY_BASE_URL
    assert get_api_base_url(dev_mode=False) == API_BASE_URL
    assert PRODUCTION_FALLBACK_URL.startswith("https://")


def test_config_exports_only_client_settings():
    import lms_client.config as config

    for name in config.__all__:
        assert hasattr(config, name), name
    assert "BASE_DIR" not in config.__all__
    assert not hasattr(config, "BASE_DIR")
