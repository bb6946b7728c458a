"""
Middleware API Directory
Talks to the serverless middleware (/auth/*, /sync/users, /health) over HTTPS
"""
from typing import Any, Dict, List, Optional

import requests

from pos_core.errors import (
    ConflictError,
    InvalidCredentials,
    RemoteError,
    ServerUnavailable,
    ValidationError,
)
from pos_core.logging import get_logger
from pos_core.offline.models import (
    HealthReport,
    RegistrationResult,
    RemoteLogin,
    User,
    UserFilters,
)

from .base_directory import DirectoryConfig, Registration, RemoteDirectory

logger = get_logger(__name__)


class ApiDirectory(RemoteDirectory):
    """
    Remote directory backed by the middleware REST API.

    Expected login response:
        {"user": {...}, "token": "jwt_...", "source": "supabase"}

    Expected sync response:
        {"users": [...], "count": 4, "total": 4, "sync_timestamp": "...", "filters": {...}}
    """

    def __init__(self, config: DirectoryConfig):
        super().__init__(config)
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    def _make_request(
        self,
        endpoint: str,
        method: str = "GET",
        token: Optional[str] = None,
        params: Optional[Dict] = None,
        data: Optional[Dict] = None,
        timeout: Optional[float] = None,
    ) -> requests.Response:
        """
        Make an HTTP request and classify failures.

        Returns:
            Response with a 2xx status
        """
        url = f"{self.config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        headers = {"Authorization": f"Bearer {token}"} if token else {}

        logger.debug(f"API Request: {method} {endpoint}")
        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=data,
                headers=headers,
                timeout=timeout or self.config.request_timeout,
            )
        except requests.exceptions.Timeout as e:
            raise ServerUnavailable(f"Request to {endpoint} timed out", endpoint=endpoint, details={"cause": str(e)})
        except requests.exceptions.RequestException as e:
            raise ServerUnavailable(f"Network error calling {endpoint}", endpoint=endpoint, details={"cause": str(e)})

        logger.debug(f"API Response: {response.status_code} {endpoint}")
        if response.ok:
            return response

        self._raise_for_status(response, endpoint)

    @staticmethod
    def _error_text(response: requests.Response) -> Optional[str]:
        try:
            body = response.json()
        except ValueError:
            return None
        return body.get("error") if isinstance(body, dict) else None

    def _raise_for_status(self, response: requests.Response, endpoint: str) -> None:
        """Map an error status to the error taxonomy."""
        status = response.status_code
        text = self._error_text(response)

        if status in (401, 403):
            raise InvalidCredentials(text or "Invalid credentials", source="remote", details={"status_code": status})
        if status == 400:
            raise ValidationError(text or "Invalid request data", details={"endpoint": endpoint})
        if status == 409:
            raise ConflictError(endpoint=endpoint)
        if status >= 500:
            raise ServerUnavailable(
                text or f"Server error ({status})",
                status_code=status,
                endpoint=endpoint,
            )
        raise RemoteError(text or f"Unexpected response ({status})", status_code=status, endpoint=endpoint)

    @staticmethod
    def _json(response: requests.Response, endpoint: str) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            raise ServerUnavailable("Invalid response from server", endpoint=endpoint)
        if not isinstance(body, dict):
            raise ServerUnavailable("Invalid response from server", endpoint=endpoint)
        return body

    # =========================================================================
    # DIRECTORY OPERATIONS
    # =========================================================================

    def login(self, email: str, secret: str) -> RemoteLogin:
        response = self._make_request(
            "auth/login",
            method="POST",
            data={"email": email.strip().lower(), "password": secret.strip()},
        )
        body = self._json(response, "auth/login")

        if not isinstance(body.get("user"), dict) or not body.get("token"):
            raise ServerUnavailable("Invalid response from server", endpoint="auth/login")

        return RemoteLogin(
            user=User.from_remote(body["user"]),
            token=str(body["token"]),
            source=body.get("source") or "supabase",
        )

    def fetch_profile(self, token: str) -> User:
        try:
            response = self._make_request("auth/profile", token=token)
        except RemoteError as e:
            if e.status_code == 404:
                raise InvalidCredentials("User for this session no longer exists", source="remote")
            raise
        body = self._json(response, "auth/profile")

        if not isinstance(body.get("user"), dict):
            raise ServerUnavailable("Invalid response from server", endpoint="auth/profile")
        return User.from_remote(body["user"])

    def list_users(self, token: Optional[str] = None, filters: Optional[UserFilters] = None) -> List[User]:
        response = self._make_request(
            "sync/users",
            token=token,
            params=filters.to_params() if filters else None,
        )
        try:
            body = response.json()
        except ValueError:
            logger.warning("Sync response is not JSON")
            return []

        users = self.users_from_payload(body.get("users") if isinstance(body, dict) else None)
        logger.info(f"Sync data received: {len(users)} users")
        return users

    def register(self, registration: Registration) -> RegistrationResult:
        response = self._make_request("auth/register", method="POST", data=registration.to_payload())
        body = self._json(response, "auth/register")

        if not isinstance(body.get("user"), dict):
            raise RemoteError("Registration response did not include a user", endpoint="auth/register")

        return RegistrationResult(
            user=User.from_remote(body["user"]),
            token=body.get("token"),
            source=body.get("source") or "supabase",
            message=body.get("message") or RegistrationResult.message,
        )

    def logout(self, token: Optional[str]) -> None:
        self._make_request(
            "auth/logout",
            method="POST",
            token=token,
            data={},
            timeout=self.config.logout_timeout,
        )

    def health_check(self) -> HealthReport:
        try:
            response = self._make_request("health", timeout=self.config.health_timeout)
        except ServerUnavailable as e:
            if e.status_code == 503:
                logger.info("Server returned 503 (degraded or cold start)")
            raise
        return HealthReport.from_payload(self._json(response, "health"))

    def close(self) -> None:
        self.session.close()
