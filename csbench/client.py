from __future__ import annotations

import base64
import datetime
import hashlib
import hmac
import logging
import time
from typing import Any, Mapping
from urllib.parse import quote

import requests

from .config import Profile

LOGGER = logging.getLogger("csbench.client")

POLL_INTERVAL_S_DEFAULT = 1.0
MAX_POLL_INTERVAL_S = 10.0

JOB_PENDING = 0
JOB_SUCCEEDED = 1
JOB_FAILED = 2


class CloudStackError(Exception):
    """Raised when an API call fails or returns an error response."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message if code is None else f"{message} (errorcode {code})")
        self.code = code
        self.text = message


class AsyncJobTimeout(CloudStackError):
    """Raised when an asynchronous job does not finish in time."""


def format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_query(params: Mapping[str, Any]) -> str:
    items = sorted(params.items(), key=lambda kv: kv[0].lower())
    return "&".join(f"{key}={quote(format_value(value), safe='*')}" for key, value in items)


def sign(query: str, secret_key: str) -> str:
    digest = hmac.new(secret_key.encode("utf-8"), query.lower().encode("utf-8"), hashlib.sha1).digest()
    return base64.b64encode(digest).decode("ascii")


def expires_at(seconds: int, now: datetime.datetime | None = None) -> str:
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return (now + datetime.timedelta(seconds=seconds)).strftime("%Y-%m-%dT%H:%M:%S+0000")


class CloudStackClient:
    """Signed JSON client for the management server API.

    Calls answering with a ``jobid`` are treated as asynchronous and polled
    through ``queryAsyncJobResult`` until they complete, so every call looks
    synchronous to the caller.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        secret_key: str,
        *,
        expires: int = 600,
        signature_version: int = 3,
        timeout: float = 60.0,
        async_timeout: float = 3600.0,
        poll_interval: float = POLL_INTERVAL_S_DEFAULT,
        session: requests.Session | None = None,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._secret_key = secret_key
        self._expires = expires
        self._signature_version = signature_version
        self._timeout = timeout
        self._async_timeout = async_timeout
        self._poll_interval = poll_interval
        self._session = session or requests.Session()

    @classmethod
    def from_profile(
        cls,
        url: str,
        profile: Profile,
        *,
        timeout: float = 60.0,
        async_timeout: float = 3600.0,
    ) -> CloudStackClient:
        return cls(
            url,
            profile.api_key,
            profile.secret_key,
            expires=profile.expires,
            signature_version=profile.signature_version,
            timeout=timeout,
            async_timeout=async_timeout,
        )

    def request(self, command: str, **params: Any) -> dict[str, Any]:
        result = self._call(command, params)
        job_id = result.get("jobid")
        if job_id and command != "queryAsyncJobResult":
            return self._wait_for_job(command, job_id)
        return result

    def close(self) -> None:
        self._session.close()

    def signed_url(self, command: str, params: Mapping[str, Any]) -> str:
        payload = {key: value for key, value in params.items() if value is not None}
        payload["command"] = command
        payload["apiKey"] = self._api_key
        payload["response"] = "json"
        if self._signature_version == 3:
            payload["signatureVersion"] = "3"
            payload["expires"] = expires_at(self._expires)

        query = build_query(payload)
        signature = sign(query, self._secret_key)
        return f"{self._url}?{query}&signature={quote(signature, safe='')}"

    def _call(self, command: str, params: Mapping[str, Any]) -> dict[str, Any]:
        url = self.signed_url(command, params)
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.exceptions.RequestException as exc:
            raise CloudStackError(f"{command}: request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise CloudStackError(
                f"{command}: HTTP {response.status_code}: {response.text[:200]}"
            ) from exc

        result = _unwrap(command, body)
        if response.status_code >= 400 or "errorcode" in result:
            raise CloudStackError(
                f"{command}: {result.get('errortext', 'HTTP %d' % response.status_code)}",
                code=result.get("errorcode", response.status_code),
            )
        return result

    def _wait_for_job(self, command: str, job_id: str) -> dict[str, Any]:
        backoff = self._poll_interval
        deadline = time.monotonic() + self._async_timeout

        while True:
            job = self._call("queryAsyncJobResult", {"jobid": job_id})
            status = job.get("jobstatus", JOB_PENDING)
            if status == JOB_SUCCEEDED:
                return job.get("jobresult") or {}
            if status == JOB_FAILED:
                jobresult = job.get("jobresult") or {}
                raise CloudStackError(
                    f"{command}: async job {job_id} failed: {jobresult.get('errortext', 'unknown error')}",
                    code=jobresult.get("errorcode"),
                )

            if time.monotonic() >= deadline:
                raise AsyncJobTimeout(
                    f"{command}: async job {job_id} did not finish within {self._async_timeout:.0f} seconds"
                )

            time.sleep(backoff)
            backoff = min(backoff * 1.5, MAX_POLL_INTERVAL_S)


def _unwrap(command: str, body: Any) -> dict[str, Any]:
    if not isinstance(body, Mapping):
        raise CloudStackError(f"{command}: unexpected response body: {body!r}")

    key = f"{command.lower()}response"
    if key in body:
        return dict(body[key])
    if len(body) == 1:
        (value,) = body.values()
        if isinstance(value, Mapping):
            return dict(value)
    return dict(body)
