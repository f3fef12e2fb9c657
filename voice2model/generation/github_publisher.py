"""GitHub contents API publisher."""

import base64
import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from .base import ArtifactPublisher
from .._http import read_error_message
from ..errors import PublishError

logger = logging.getLogger(__name__)


class GitHubPublisher(ArtifactPublisher):
    """Publishes files into a GitHub repository, updating them when they already exist."""

    def __init__(self,
                 token: str,
                 owner: str,
                 repo: str,
                 branch: str = "main",
                 commit_message: str = "Update Model",
                 base_url: str = "https://api.github.com",
                 timeout_seconds: float = 60.0):
        """Initialize GitHub publisher.

        Args:
            token: GitHub token with contents write access
            owner: Repository owner
            repo: Repository name
            branch: Branch to commit to
            commit_message: Message used for every commit
            base_url: API root, overridable for tests
            timeout_seconds: Total timeout for one request
        """
        if not token:
            raise ValueError("GitHub token is required for publishing")
        self.token = token
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.commit_message = commit_message
        self.base_url = base_url.rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    def contents_url(self, remote_path: str) -> str:
        return f"{self.base_url}/repos/{self.owner}/{self.repo}/contents/{remote_path.lstrip('/')}"

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
        }

    async def get_version(self, remote_path: str) -> Optional[str]:
        """Return the blob sha at ``remote_path``; a 404 means the file does not exist yet."""
        url = self.contents_url(remote_path)
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(url, headers=self.headers, params={"ref": self.branch}) as response:
                    if response.status == 404:
                        logger.info(f"No existing file at {remote_path}; will create new")
                        return None
                    if response.status != 200:
                        message = await read_error_message(response)
                        raise PublishError(f"Failed to retrieve file sha: {response.status} - {message}",
                                           status=response.status)
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PublishError(f"GitHub request failed: {e}") from e

        sha = data.get("sha") if isinstance(data, dict) else None
        logger.debug(f"File sha retrieved for {remote_path}: {sha}")
        return sha or None

    def build_payload(self, content: bytes, previous_version: Optional[str]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "message": self.commit_message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": self.branch,
        }
        if previous_version:
            payload["sha"] = previous_version
        return payload

    async def upload(self, remote_path: str, content: bytes,
                     previous_version: Optional[str] = None) -> Optional[str]:
        payload = self.build_payload(content, previous_version)
        if previous_version:
            logger.info(f"Updating {remote_path} (previous sha {previous_version})")
        else:
            logger.info(f"Creating {remote_path}")

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.put(self.contents_url(remote_path), headers=self.headers,
                                       json=payload) as response:
                    if response.status not in (200, 201):
                        message = await read_error_message(response)
                        raise PublishError(f"Failed to upload {remote_path}: {response.status} - {message}",
                                           status=response.status)
                    data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PublishError(f"GitHub request failed: {e}") from e

        content_info = data.get("content") if isinstance(data, dict) else None
        return content_info.get("sha") if isinstance(content_info, dict) else None
