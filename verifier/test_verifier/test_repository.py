# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

import time

import pytest

import verifier.cache.verifier_cache as cache
import verifier.models as models
from verifier.repository import PostStateMachine, SessionRepository
from verifier.result import ErrorType

State = models.PostStateValue


@pytest.fixture
def state_machine(redis_cache):
    return PostStateMachine(cache.PostStateService(redis_cache), default_expired_in=600)


@pytest.fixture
def sessions(redis_cache):
    return SessionRepository(cache.SessionService(redis_cache))


def test_state_transitions(state_machine):
    assert state_machine.get_state("request-1") is None

    started = state_machine.put_state("request-1", State.started)
    assert started.expired_in == 600
    assert state_machine.get_state("request-1").value == State.started

    state_machine.put_state("request-1", State.consumed, expired_in=10)
    consumed = state_machine.get_state("request-1")
    assert consumed.value == State.consumed
    # lifetime is kept from the first state
    assert consumed.issued_at == started.issued_at
    assert consumed.expired_in == 600

    state_machine.put_state("request-1", State.committed, target_id="session-1")
    committed = state_machine.get_state("request-1")
    assert committed.value == State.committed
    assert committed.target_id == "session-1"


@pytest.mark.parametrize("terminal", [State.committed, State.expired, State.invalid_submission])
@pytest.mark.parametrize("later", [State.started, State.consumed, State.canceled])
def test_terminal_states_are_kept(state_machine, caplog, terminal, later):
    state_machine.put_state("request-1", terminal)
    returned = state_machine.put_state("request-1", later)
    assert returned.value == terminal
    assert state_machine.get_state("request-1").value == terminal
    assert "is final" in caplog.text


def test_expiry_on_read(state_machine):
    state_machine.put_state("request-1", State.started, issued_at=time.time() - 20, expired_in=10)
    assert state_machine.get_state("request-1").value == State.expired
    # the expired state is persisted
    assert state_machine.service.get("request-1").value == State.expired


def test_expiry_on_read_overrides_terminal_state(state_machine):
    state_machine.put_state("request-1", State.committed, issued_at=time.time() - 20, expired_in=10)
    assert state_machine.get_state("request-1").value == State.expired


def test_session(sessions):
    saved = sessions.put_wait_commit_data("request-1", None, "credential", icon="data:image/png;base64,AA==", claims={"given_name": "Max"})
    result = sessions.get_session("request-1")
    assert result.ok
    assert result.payload == saved
    assert result.payload.data.learning_credential == "credential"
    assert result.payload.data.claims == {"given_name": "Max"}


def test_session_not_found(sessions):
    result = sessions.get_session("request-1")
    assert result.error.type == ErrorType.NOT_FOUND
    assert result.error.subject == "session"


def test_session_expired(sessions):
    sessions.put_wait_commit_data("request-1", None, "credential", expired_in=-1)
    assert sessions.get_session("request-1").error.type == ErrorType.EXPIRED
