"""Token authentication for the GitHub API."""

import os

from dotenv import load_dotenv

USER_AGENT = "task-cache-sync"


class GitHubAuth:
    """Builds authenticated request headers from a personal access token."""

    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
    ) -> None:
        """Initialize authentication with credentials.

        Args:
            token: GitHub personal access token (or load from GITHUB_TOKEN env)
            base_url: API base URL (or load from GITHUB_API_URL env)
        """
        load_dotenv()

        self.token = token or os.getenv("GITHUB_TOKEN", "")
        self.base_url = (base_url or os.getenv("GITHUB_API_URL", "https://api.github.com")).rstrip("/")

        if not self.token:
            raise ValueError(
                "Missing GitHub token. Run 'tcache github setup' or set the "
                "GITHUB_TOKEN environment variable."
            )

    def get_headers(self, content_type: str | None = None) -> dict[str, str]:
        """Generate headers for an API request.

        Args:
            content_type: Optional Content-Type header value

        Returns:
            Dictionary of headers including Authorization
        """
        headers = {
            "Authorization": f"token {self.token}",
            "User-Agent": USER_AGENT,
            "Accept": "application/vnd.github+json",
        }
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def get_full_url(self, path: str) -> str:
        """Build full URL from base URL and path."""
        return f"{self.base_url}{path}"
