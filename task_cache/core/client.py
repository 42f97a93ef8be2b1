"""HTTP client wrapper for the GitHub REST API."""

import logging
from typing import Any

import requests

from .auth import GitHubAuth
from .errors import NetworkOrAuthError

logger = logging.getLogger(__name__)

REPO_DESCRIPTION = "Task Cache - Developer Task Logs"


class GitHubAPIError(NetworkOrAuthError):
    """Exception raised for GitHub API errors."""

    def __init__(self, message: str, status_code: int | None = None, response: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class GitHubClient:
    """HTTP client for the repository endpoints of the GitHub API."""

    def __init__(self, auth: GitHubAuth | None = None, timeout: float = 30) -> None:
        """Initialize client with authentication.

        Args:
            auth: GitHubAuth instance (creates one from env if not provided)
            timeout: Per-request timeout in seconds
        """
        self.auth = auth or GitHubAuth()
        self.timeout = timeout
        self.session = requests.Session()

    def _request(
        self,
        method: str,
        path: str,
        json_data: dict[str, Any] | None = None,
        expected: tuple[int, ...] = (200,),
    ) -> requests.Response:
        """Make an authenticated request to the GitHub API.

        Args:
            method: HTTP method
            path: API path (without base URL)
            json_data: Optional JSON body data
            expected: Status codes treated as success

        Returns:
            The response

        Raises:
            GitHubAPIError: On transport errors or an unexpected status
        """
        content_type = "application/json" if json_data is not None else None
        headers = self.auth.get_headers(content_type=content_type)
        url = self.auth.get_full_url(path)

        try:
            response = self.session.request(
                method=method,
                url=url,
                headers=headers,
                json=json_data,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise GitHubAPIError(f"Request failed: {e}") from e

        logger.debug("%s %s -> %d", method, path, response.status_code)
        if response.status_code not in expected:
            error_msg = f"API error {response.status_code}: {response.text[:500]}"
            raise GitHubAPIError(error_msg, response.status_code, response)
        return response

    def repository_exists(self, repository_id: str) -> bool:
        """Check whether owner/name exists and is visible to the token.

        Returns:
            True on 200, False on 404

        Raises:
            GitHubAPIError: On any other status
        """
        response = self._request("GET", f"/repos/{repository_id}", expected=(200, 404))
        return response.status_code == 200

    def create_repository(self, name: str, description: str = REPO_DESCRIPTION) -> dict[str, Any]:
        """Create a private repository owned by the authenticated user.

        Returns:
            Repository metadata from the API
        """
        response = self._request(
            "POST",
            "/user/repos",
            json_data={"name": name, "private": True, "description": description},
            expected=(201,),
        )
        if not response.content:
            return {}
        return response.json()  # type: ignore[no-any-return]

    def ensure_repository(self, repository_id: str) -> bool:
        """Create the repository unless it already exists.

        Returns:
            True if a repository was created, False if it already existed
        """
        if self.repository_exists(repository_id):
            return False
        name = repository_id.split("/", 1)[-1]
        self.create_repository(name)
        return True
