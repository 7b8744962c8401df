# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Storage of the verification transactions.

Every record type has its own "Service" object which manages the keys of its cache namespace,
e.g. RequestService manages all entries saved in the cache with the key 'request:{id}'.
The data themselves are converted as follows: pydantic model -> model_dump -> stored as json with
the RedisJSON functionality provided by redis/fakeredis.
https://developer.redis.com/howtos/redisjson/using-python/#installing-redis

Caching / TTL: records carry their logical lifetime (issued_at + expired_in). The redis key itself
is kept `retention` seconds longer so that an expired record can still be reported as EXPIRED
instead of NOT_FOUND.

About fakeRedis: Fake redis mocks the actual redis interface. When an actual redis connection
is used only the initialization of `cache` at the end of this file needs to be replaced.
"""

import logging
from typing import Generic, TypeVar

import fakeredis
import redis

import verifier.models as models

_logger = logging.getLogger(__name__)

DEFAULT_RETENTION = 86400
"""Records live 1 day (60*60*24 = 86400 secs) beyond their expiry"""

M = TypeVar("M", bound=models.CacheModel)


class BaseService(Generic[M]):
    model: type[M]

    def __init__(self, cache: redis.Redis, cache_namespace: str, retention: int = DEFAULT_RETENTION) -> None:
        self.cache = cache
        self.cache_namespace = cache_namespace
        self.retention = retention

    def _get_key(self, id: str) -> str:
        return f'{self.cache_namespace}:{id}'

    def _get_raw(self, id: str) -> dict | None:
        return self.cache.json().get(self._get_key(id))

    def _eviction_time(self, obj: M) -> int:
        return int(obj.expires_at) + self.retention

    def get(self, id: str) -> M | None:
        raw = self._get_raw(id)
        return self.model.model_validate(raw) if raw is not None else None

    def set(self, obj: M, id: str) -> None:
        """
        Args:
            obj (CacheModel): Cached object, evicted `retention` seconds after its expiry
            id (str): Cache identifier
        """
        key = self._get_key(id)
        pipe = self.cache.json().pipeline(transaction=True)
        pipe.set(key, '$', obj.model_dump(mode="json"))
        # Redis takes an unix epoch as format for the expiration time https://redis.io/commands/expireat/
        pipe.expireat(key, self._eviction_time(obj))
        pipe.execute()


class RequestService(BaseService[models.VpRequest]):
    """Requests as seen by the response endpoint"""

    model = models.VpRequest

    def __init__(self, cache: redis.Redis, retention: int = DEFAULT_RETENTION) -> None:
        super().__init__(cache, 'request', retention)

    def save_request(self, request: models.VpRequest) -> None:
        self.set(request, request.id)

    def get_request(self, request_id: str) -> models.VpRequest | None:
        return self.get(request_id)


class ResponseService(BaseService[models.AuthResponse]):
    """Authorization responses addressed by their response code"""

    model = models.AuthResponse

    def __init__(self, cache: redis.Redis, retention: int = DEFAULT_RETENTION) -> None:
        super().__init__(cache, 'response_code', retention)

    def save_response(self, response: models.AuthResponse) -> None:
        self.set(response, response.id)

    def redeem_response(self, response_code: str) -> models.AuthResponse | None:
        """
        Reads and deletes the response in one MULTI/EXEC transaction.
        Of concurrent callers only the one which actually deleted the key gets the response.
        """
        key = self._get_key(response_code)
        pipe = self.cache.json().pipeline(transaction=True)
        pipe.get(key)
        pipe.delete(key)
        raw, removed = pipe.execute()
        if raw is None or not removed:
            return None
        return self.model.model_validate(raw)


class VerifierRequestService(BaseService[models.VpRequestAtVerifier]):
    """Requests as seen by the verifier"""

    model = models.VpRequestAtVerifier

    def __init__(self, cache: redis.Redis, retention: int = DEFAULT_RETENTION) -> None:
        super().__init__(cache, 'verifier_request', retention)

    def save_request(self, request: models.VpRequestAtVerifier) -> None:
        self.set(request, request.id)

    def get_request(self, request_id: str) -> models.VpRequestAtVerifier | None:
        return self.get(request_id)

    def mark_consumed(self, request_id: str, consumed_at: float) -> bool:
        """
        Sets consumed_at once. Returns False if the request was consumed before (or vanished).
        """
        request = self.get(request_id)
        if request is None:
            return False
        claimed = self.cache.set(self._get_key(request_id) + ':consumed', consumed_at, nx=True, exat=self._eviction_time(request))
        if not claimed:
            return False
        self.cache.json().set(self._get_key(request_id), '$.consumed_at', consumed_at)
        return True


class PostStateService(BaseService[models.PostState]):
    model = models.PostState

    def __init__(self, cache: redis.Redis, retention: int = DEFAULT_RETENTION) -> None:
        super().__init__(cache, 'post_state', retention)


class SessionService(BaseService[models.WaitCommitData]):
    model = models.WaitCommitData

    def __init__(self, cache: redis.Redis, retention: int = DEFAULT_RETENTION) -> None:
        super().__init__(cache, 'session', retention)


# TODO Replace this initialization with an actual redis connection
cache = fakeredis.FakeStrictRedis(version=6)
