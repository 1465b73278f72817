"""
HTTP client for pushing exported tasks to a task-activity server.
"""

import logging

import requests

logger = logging.getLogger(__name__)


class ImportClientError(Exception):
    """Base exception for import client errors."""

    def __init__(self, message: str, details: list | None = None):
        super().__init__(message)
        self.details = details or []


class ImportClient:
    """Client for the task-activity import endpoint."""

    IMPORT_PATH = "/api/import"

    def __init__(self, base_url: str, token: str, timeout: float = 30.0):
        """
        Initialize the import client.

        Args:
            base_url: Server URL, e.g. http://localhost:8000
            token: Shared import secret sent as a bearer token
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )

    def push_tasks(self, tasks: list[dict]) -> dict:
        """
        Send a batch of task records to the server.

        Args:
            tasks: Task records in export format

        Returns:
            Response body with the number of tasks imported

        Raises:
            ImportClientError: If the request fails or the server rejects the batch
        """
        url = f"{self.base_url}{self.IMPORT_PATH}"
        logger.info("Pushing %d tasks to %s", len(tasks), url)

        try:
            response = self.session.post(url, json={"tasks": tasks}, timeout=self.timeout)
        except requests.RequestException as e:
            raise ImportClientError(f"Could not reach {url}: {e}") from e

        if response.status_code == 400:
            details = _response_detail(response)
            raise ImportClientError(
                "Server rejected the batch: invalid task records",
                details=details.get("details", []) if isinstance(details, dict) else [],
            )
        elif response.status_code == 401:
            raise ImportClientError(
                "Authentication failed. Check the import token matches IMPORT_API_SECRET."
            )
        elif not response.ok:
            detail = _response_detail(response)
            raise ImportClientError(
                f"Import failed: {response.status_code} - {detail or response.text}"
            )

        return response.json()


def _response_detail(response):
    try:
        body = response.json()
    except ValueError:
        return None
    return body.get("detail") if isinstance(body, dict) else None
