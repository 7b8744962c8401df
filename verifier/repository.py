# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Progress of the transactions as seen by the verifier frontend (post state) and the data of
committed presentations (session).
"""

import logging

import verifier.models as models
from verifier.cache.verifier_cache import PostStateService, SessionService
from verifier.result import ErrorType, Result

_logger = logging.getLogger(__name__)

DEFAULT_POST_STATE_EXPIRED_IN = 600


class PostStateMachine:
    """
    started -> consumed -> committed, or one of the failure states.
    committed, expired & invalid_submission are terminal and not overwritten by later transitions.
    """

    def __init__(self, service: PostStateService, default_expired_in: int = DEFAULT_POST_STATE_EXPIRED_IN):
        self.service = service
        self.default_expired_in = default_expired_in

    def put_state(
        self,
        request_id: str,
        value: models.PostStateValue,
        issued_at: float | None = None,
        expired_in: int | None = None,
        target_id: str | None = None,
    ) -> models.PostState:
        """
        The lifetime is fixed by the first state of the transaction, later calls keep it.
        """
        value = models.PostStateValue(value)
        previous = self.service.get(request_id)
        if previous is not None:
            if previous.value in models.TERMINAL_POST_STATES and previous.value != value:
                _logger.warning(f"[requestId={request_id}] Post state {previous.value.value} is final, transition to {value.value} ignored")
                return previous
            issued_at = previous.issued_at
            expired_in = previous.expired_in

        state = models.PostState(
            id=request_id,
            value=value,
            issued_at=issued_at if issued_at is not None else models.current_time(),
            expired_in=expired_in if expired_in is not None else self.default_expired_in,
            target_id=target_id,
        )
        self.service.set(state, request_id)
        return state

    def get_state(self, request_id: str) -> models.PostState | None:
        """
        Returns None for unknown transactions. A state whose lifetime elapsed is turned into expired.
        """
        state = self.service.get(request_id)
        if state is None:
            return None
        if state.is_expired() and state.value != models.PostStateValue.expired:
            state = state.model_copy(update={"value": models.PostStateValue.expired})
            self.service.set(state, request_id)
        return state


class SessionRepository:
    def __init__(self, service: SessionService):
        self.service = service

    def put_wait_commit_data(
        self,
        request_id: str,
        id_token: str | None,
        credential: str | None,
        icon: str | None = None,
        claims: dict | None = None,
        expired_in: int = DEFAULT_POST_STATE_EXPIRED_IN,
    ) -> models.WaitCommitData:
        session = models.WaitCommitData(
            id=request_id,
            data=models.WaitCommitData.Data(id_token=id_token, learning_credential=credential, icon=icon, claims=claims),
            expired_in=expired_in,
        )
        self.service.set(session, request_id)
        return session

    def get_session(self, request_id: str) -> Result[models.WaitCommitData]:
        session = self.service.get(request_id)
        if session is None:
            return Result.failure(ErrorType.NOT_FOUND, subject="session", identifier=request_id)
        if session.is_expired():
            return Result.failure(ErrorType.EXPIRED, subject="session", identifier=request_id)
        return Result.success(session)
