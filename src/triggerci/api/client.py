# api/client.py
from __future__ import annotations

import http.client
import json
import re
import socket
import time
import urllib.error
import urllib.request
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote, urlencode

from pydantic import ValidationError as PydanticValidationError

from ..errors import TransientError, error_for_status
from ..model import PipelineVariable
from .models import CreatePipelineRequest, JobRecord, PipelineRecord, ProjectRecord, VariableBody

PER_PAGE = 100  # maximum page size the platform allows
_LAST_PAGE_RE = re.compile(r'[?&]page=(\d+)[^>]*>;\s*rel="last"')


class APIClient:
    """HTTP client for the GitLab REST API (v4)."""

    def __init__(
        self,
        host: str,
        token: str,
        *,
        timeout: float = 30.0,
        opener: Callable = urllib.request.urlopen,
        page_delay: float = 0.5,
    ):
        """
        Initialize API client.

        Args:
            host: Platform URL (e.g., "https://gitlab.example.com")
            token: Private or project access token, sent as a bearer token
            timeout: Per-request timeout in seconds
            opener: urlopen-compatible callable, swapped out in tests
            page_delay: Seconds to pause between pages when listing projects
        """
        self.host = host.rstrip("/")
        self.base_url = f"{self.host}/api/v4"
        self._token = token
        self.timeout = timeout
        self._opener = opener
        self.page_delay = page_delay

    def _request(
        self,
        method: str,
        path: str,
        data: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Tuple[object, Dict[str, str]]:
        """
        Make an HTTP request to the API.

        Returns:
            (parsed JSON body or None, response headers)

        Raises:
            TriggerError subclass matching the failure (see errors.error_for_status)
        """
        url = self.base_url + "/" + path.lstrip("/")
        if params:
            url = f"{url}?{urlencode(params)}"

        req_headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        req_data = None
        if data is not None:
            req_data = json.dumps(data).encode("utf-8")

        req = urllib.request.Request(url, data=req_data, headers=req_headers, method=method)

        try:
            with self._opener(req, timeout=self.timeout) as response:
                headers = {k.lower(): v for k, v in response.headers.items()}
                body = response.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", errors="replace") if e.fp else ""
            raise error_for_status(
                e.code,
                f"{method} {path} failed: {e.code} {_platform_message(error_body) or e.reason}",
                details={"url": url},
            ) from e
        except urllib.error.URLError as e:
            if isinstance(e.reason, (socket.timeout, TimeoutError)):
                raise TransientError(
                    f"{method} {path} timed out after {self.timeout}s", details={"url": url}
                ) from e
            raise TransientError(f"Network error: {e.reason}", details={"url": url}) from e
        except (socket.timeout, TimeoutError) as e:
            raise TransientError(
                f"{method} {path} timed out after {self.timeout}s", details={"url": url}
            ) from e
        except UnicodeDecodeError as e:
            raise TransientError(f"Response body is not UTF-8: {e}", details={"url": url}) from e
        except (http.client.HTTPException, OSError) as e:
            # connection dropped or truncated after the status line
            raise TransientError(
                f"{method} {path} failed while reading the response: {e!r}", details={"url": url}
            ) from e

        if not body:
            return None, headers
        try:
            return json.loads(body), headers
        except json.JSONDecodeError as e:
            raise TransientError(f"Invalid JSON response: {e}", details={"url": url}) from e

    # ------------------------------------------------------------------
    # Pipelines and jobs
    # ------------------------------------------------------------------

    def create_pipeline(
        self,
        project_id: str,
        ref: str,
        variables: Sequence[PipelineVariable] = (),
    ) -> PipelineRecord:
        """
        Create a pipeline for `ref`. Not idempotent, so never retried here.
        """
        body = CreatePipelineRequest(
            ref=ref,
            variables=[VariableBody(**v.to_dict()) for v in variables] or None,
        )
        data, _ = self._request("POST", f"/projects/{_project_path(project_id)}/pipeline", data=body.to_json())
        return _parse(PipelineRecord, data)

    def list_jobs(self, project_id: str, pipeline_id: int) -> List[JobRecord]:
        """List the jobs of a pipeline in the order the platform reports them."""
        items = self._get_all(
            f"/projects/{_project_path(project_id)}/pipelines/{pipeline_id}/jobs",
            {},
            page_delay=0,
        )
        return [_parse(JobRecord, item) for item in items]

    def play_job(self, project_id: str, job_id: int) -> None:
        """Start one manual job."""
        self._request("POST", f"/projects/{_project_path(project_id)}/jobs/{job_id}/play")

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def list_projects(self, search: Optional[str] = None) -> List[ProjectRecord]:
        """
        Fetch every visible project, following pagination.
        """
        params = {"order_by": "name", "sort": "asc"}
        if search:
            params["search"] = search
        items = self._get_all("/projects", params, page_delay=self.page_delay)
        return [_parse(ProjectRecord, item) for item in items]

    def _get_all(self, path: str, params: dict, page_delay: float) -> list:
        """
        GET every page of a list endpoint.

        The last page comes from the `Link` header when present; otherwise a
        page shorter than PER_PAGE ends the listing.
        """
        items: list = []
        page = 1
        total_pages = 1

        while page <= total_pages:
            data, headers = self._request("GET", path, params={**params, "per_page": PER_PAGE, "page": page})
            batch = _as_list(data)

            last = _last_page(headers.get("link"))
            if last is not None:
                total_pages = last
            elif len(batch) == PER_PAGE:
                total_pages = page + 1

            items.extend(batch)
            page += 1

            # stay under the platform's rate limit
            if page <= total_pages and page_delay:
                time.sleep(page_delay)

        return items


def _project_path(project_id: str) -> str:
    # numeric ids pass through; "group/project" paths must be encoded
    return quote(str(project_id), safe="")


def _platform_message(body: str) -> str:
    if not body:
        return ""
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        return body.strip()[:200]
    if isinstance(payload, dict):
        msg = payload.get("message") or payload.get("error")
        if msg is not None:
            return msg if isinstance(msg, str) else json.dumps(msg)
    return body.strip()[:200]


def _last_page(link_header: Optional[str]) -> Optional[int]:
    if not link_header:
        return None
    match = _LAST_PAGE_RE.search(link_header)
    return int(match.group(1)) if match else None


def _as_list(data: object) -> list:
    if data is None:
        return []
    if not isinstance(data, list):
        raise TransientError(f"Expected a JSON array, got {type(data).__name__}")
    return data


def _parse(model, data):
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise TransientError(
            f"Unexpected {model.__name__} payload",
            details={"errors": e.error_count()},
        ) from e
