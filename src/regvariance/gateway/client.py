"""
AgileReporter API client.

Handles OAuth authentication, token refresh, per-request timeouts and retry
with exponential backoff. All network calls are async and share a single
httpx.AsyncClient, so one client can serve many concurrent form analyses.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar
from urllib.parse import quote

import httpx

from regvariance.config.settings import ApiConfig, AuthConfig
from regvariance.data.models import Instance, ValidationResult, VarianceRow
from regvariance.gateway.base import ReportingGateway
from regvariance.gateway.errors import GatewayError, GatewayErrorCode
from regvariance.gateway.parsing import parse_instances, parse_validation_results, parse_variance_records

T = TypeVar('T')

USER_AGENT = 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36'
TOKEN_REFRESH_BUFFER_SECONDS = 300

RETURNS_PATH = '/agilereporter/rest/api/returns'
CELL_ANALYSES_PATH = '/agilereporter/rest/api/analysis/cellAnalyses'
VALIDATION_PATH = '/agilereporter/rest/api/v1/returns/{instance_id}/validation'


@dataclass(frozen=True)
class RetryPolicy:
    """Retry behaviour for idempotent-enough API calls."""
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0


class AgileReporterClient(ReportingGateway):
    """Async client for the AgileReporter REST API."""

    def __init__(self, auth: AuthConfig, api: ApiConfig,
                 retry: Optional[RetryPolicy] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.auth = auth
        self.api = api
        self.retry = retry or RetryPolicy()
        self.logger = logging.getLogger(__name__)

        self._http = httpx.AsyncClient(
            base_url=api.base_url,
            timeout=api.request_timeout,
            transport=transport,
            headers={'User-Agent': USER_AGENT},
        )
        self._token: Optional[str] = None
        self._token_expiry: Optional[float] = None
        self._auth_lock = asyncio.Lock()

    async def __aenter__(self) -> 'AgileReporterClient':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.aclose()

    # Authentication

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None and not self._token_expired()

    def _token_expired(self) -> bool:
        if self._token_expiry is None:
            return False
        return time.monotonic() > self._token_expiry - TOKEN_REFRESH_BUFFER_SECONDS

    def clear_authentication(self) -> None:
        self._token = None
        self._token_expiry = None
        self.logger.debug("Authentication state cleared")

    async def authenticate(self) -> str:
        """
        Obtain an access token with the password grant.

        Returns:
            The access token

        Raises:
            GatewayError: AUTH_FAILED or INVALID_RESPONSE
        """
        data = {
            'username': self.auth.username,
            'password': self.auth.password,
            'grant_type': self.auth.grant_type,
            'client_id': self.auth.client_id,
            'client_secret': self.auth.client_secret,
        }
        self.logger.info("Authenticating with AgileReporter...")
        try:
            response = await self._http.post(
                self.auth.url,
                data=data,
                headers={'Accept': 'application/json, text/plain, */*'},
            )
        except httpx.HTTPError as e:
            raise GatewayError.from_httpx_error(e) from e

        if response.status_code != 200:
            raise GatewayError(f"Authentication failed with status {response.status_code}",
                               GatewayErrorCode.AUTH_FAILED, response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError('Invalid token response format', GatewayErrorCode.INVALID_RESPONSE,
                               response.status_code) from e

        token = body.get('access_token') if isinstance(body, dict) else None
        if not isinstance(token, str) or not token:
            raise GatewayError('Invalid token response format', GatewayErrorCode.INVALID_RESPONSE,
                               response.status_code)

        self._token = token
        expires_in = body.get('expires_in')
        if isinstance(expires_in, (int, float)) and expires_in > 0:
            self._token_expiry = time.monotonic() + expires_in
            self.logger.debug(f"Token expires in {expires_in} seconds")
        else:
            self._token_expiry = None

        self.logger.info("Authentication successful")
        return token

    async def _ensure_authenticated(self) -> str:
        async with self._auth_lock:
            if not self.is_authenticated:
                self.logger.debug("Token expired or missing, re-authenticating...")
                await self.authenticate()
            return self._token

    # Requests

    async def _request_json(self, method: str, path: str, params: Optional[Dict[str, str]] = None,
                            timeout: Optional[float] = None) -> Any:
        token = await self._ensure_authenticated()
        headers = {
            'Authorization': f"Bearer {token}",
            'Accept': 'application/json, text/plain, */*',
        }
        request_timeout = timeout if timeout is not None else self.api.request_timeout

        try:
            response = await self._http.request(method, path, params=params, headers=headers,
                                                timeout=request_timeout)
        except httpx.HTTPError as e:
            raise GatewayError.from_httpx_error(e) from e

        self.logger.debug(f"API Response {response.status_code} {method} {path}")
        if response.status_code == 401:
            self.clear_authentication()
        if response.status_code != 200:
            raise GatewayError.from_status(response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise GatewayError('Response is not valid JSON', GatewayErrorCode.INVALID_RESPONSE,
                               response.status_code) from e

    async def _with_retry(self, operation: Callable[[], Awaitable[T]], operation_name: str) -> T:
        delay = self.retry.initial_delay
        attempts = max(1, self.retry.max_retries)

        for attempt in range(1, attempts + 1):
            try:
                result = await operation()
            except GatewayError as e:
                if not e.is_retryable():
                    self.logger.debug(f"{operation_name} failed with non-retryable error: {e}")
                    raise
                if attempt == attempts:
                    self.logger.error(f"{operation_name} failed after {attempts} attempts")
                    raise
                self.logger.warning(f"{operation_name} failed (attempt {attempt}/{attempts}), "
                                    f"retrying in {delay:.1f}s: {e}")
                await asyncio.sleep(delay)
                delay = min(delay * self.retry.backoff_multiplier, self.retry.max_delay)
                continue

            if attempt > 1:
                self.logger.info(f"{operation_name} succeeded on attempt {attempt}")
            return result

        raise GatewayError(f"{operation_name} failed after retries")

    # Gateway operations

    async def list_instances(self, form_code: str) -> List[Instance]:
        self.logger.info(f"Fetching form versions for {form_code}")
        payload = await self._request_json('GET', RETURNS_PATH, params={
            'productPrefix': self.api.product_prefix,
            'entityCode': self.api.entity_code,
            'formCode': form_code,
        })
        instances = parse_instances(payload)
        self.logger.debug(f"Retrieved {len(instances)} versions for {form_code}")
        return instances

    async def compare_instances(self, form_code: str, from_instance: Instance,
                                to_instance: Instance) -> List[VarianceRow]:
        async def fetch() -> List[VarianceRow]:
            self.logger.info(f"Fetching variance analysis for {form_code}")
            payload = await self._request_json('GET', CELL_ANALYSES_PATH, params={
                'formInstances': f"{from_instance.id},{to_instance.id}",
                'pageInstance': '1',
                'constraintType': 'CELLGROUP',
                'constraintId': 'ALL',
            })
            rows = parse_variance_records(payload, from_instance, to_instance)
            self.logger.info(f"Retrieved {len(rows)} variance records for {form_code}")
            return rows

        return await self._with_retry(fetch, f"compare_instances({form_code})")

    async def validate(self, instance: Instance) -> List[ValidationResult]:
        async def run() -> List[ValidationResult]:
            self.logger.info(f"Fetching validation results for {instance.id}")
            payload = await self._request_json(
                'PUT',
                VALIDATION_PATH.format(instance_id=quote(instance.id, safe="")),
                params={'validationResultDetails': 'true'},
                timeout=self.api.validation_timeout,
            )
            return parse_validation_results(payload, instance)

        return await self._with_retry(run, f"validate({instance.id})")
