"""Redmine REST API access: issue listing, issue detail and attachment download."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final

import requests

from .exceptions import ConnectivityError, SourceError
from .models import AttachmentRef, CustomFieldValue, Journal, JournalDetail, RelationRef, SourceRecord

if TYPE_CHECKING:
    from .protocols import Pacer

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

PAGE_SIZE: Final[int] = 100
DETAIL_INCLUDES: Final[str] = "attachments,relations,children,journals"
_TIMEOUT_SECONDS: Final[int] = 60
_HTTP_NOT_FOUND: Final[int] = 404
_HTTP_FORBIDDEN: Final[int] = 403


def _name(ref: Any) -> str | None:  # noqa: ANN401 - raw JSON
    """Return ``ref["name"]`` for Redmine's ``{"id": .., "name": ..}`` references."""
    if isinstance(ref, dict):
        return ref.get("name") or None
    return None


def _to_float(value: object) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)  # pyright: ignore[reportArgumentType]
    except (TypeError, ValueError):
        return None


def _to_int(value: object) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)  # pyright: ignore[reportArgumentType]
    except (TypeError, ValueError):
        return None


def parse_journal(raw: dict[str, Any]) -> Journal:
    details = tuple(
        JournalDetail(
            name=str(detail.get("name") or ""),
            old_value=detail.get("old_value"),
            new_value=detail.get("new_value"),
        )
        for detail in raw.get("details") or []
    )
    return Journal(
        author=_name(raw.get("user")) or "",
        created_on=raw.get("created_on"),
        notes=raw.get("notes") or "",
        details=details,
    )


def parse_issue(raw: dict[str, Any]) -> SourceRecord:
    """Convert a Redmine issue JSON object into a SourceRecord."""
    parent = raw.get("parent")
    return SourceRecord(
        id=int(raw["id"]),
        type=_name(raw.get("tracker")) or "Task",
        title=raw.get("subject") or "",
        description=raw.get("description") or "",
        status=_name(raw.get("status")),
        priority=_name(raw.get("priority")),
        assignee=_name(raw.get("assigned_to")),
        author=_name(raw.get("author")),
        created_on=raw.get("created_on") or None,
        updated_on=raw.get("updated_on") or None,
        closed_on=raw.get("closed_on") or None,
        start_date=raw.get("start_date") or None,
        due_date=raw.get("due_date") or None,
        estimated_hours=_to_float(raw.get("estimated_hours")),
        done_ratio=_to_int(raw.get("done_ratio")),
        custom_fields=tuple(
            CustomFieldValue(name=str(cf.get("name") or ""), value=cf.get("value"))
            for cf in raw.get("custom_fields") or []
        ),
        journals=tuple(parse_journal(j) for j in raw.get("journals") or []),
        attachments=tuple(
            AttachmentRef(
                filename=str(a.get("filename") or f"attachment-{a.get('id')}"),
                content_url=str(a.get("content_url") or ""),
                filesize=_to_int(a.get("filesize")) or 0,
            )
            for a in raw.get("attachments") or []
        ),
        parent_id=_to_int(parent.get("id")) if isinstance(parent, dict) else None,
        relations=tuple(
            RelationRef(
                issue_id=int(r["issue_id"]),
                issue_to_id=int(r["issue_to_id"]),
                relation_type=str(r.get("relation_type") or "relates"),
            )
            for r in raw.get("relations") or []
            if r.get("issue_id") is not None and r.get("issue_to_id") is not None
        ),
        children_ids=tuple(int(c["id"]) for c in raw.get("children") or [] if c.get("id") is not None),
    )


class RedmineClient:
    """Reads issues from a Redmine instance. Implements the SourceReader protocol."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        verify_ssl: bool = True,
        pacer: Pacer | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url: str = base_url.rstrip("/")
        self._pacer: Pacer | None = pacer
        self._session: requests.Session = session or requests.Session()
        self._session.headers.update({"X-Redmine-API-Key": api_key})
        self._session.verify = verify_ssl
        if not verify_ssl:
            logger.warning(f"TLS certificate verification disabled for {self.base_url}")

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _get(self, path: str, params: dict[str, Any] | None = None) -> requests.Response:
        url = self._url(path)
        try:
            response = self._session.get(url, params=params, timeout=_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            msg = f"Redmine request to {url} failed: {e}"
            raise SourceError(msg) from e
        return response

    def _get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        response = self._get(path, params)
        try:
            response.raise_for_status()
            return response.json()
        except (requests.HTTPError, ValueError) as e:
            msg = f"Redmine request to {path} failed: {e}"
            raise SourceError(msg) from e

    def validate_access(self) -> None:
        """Check that the API key is accepted."""
        try:
            _ = self._get_json("/users/current.json")
        except SourceError as e:
            msg = f"Redmine API access failed: {e}"
            raise ConnectivityError(msg) from e
        logger.info("Redmine API access validated")

    def list_records(self, scope: str | None = None) -> list[SourceRecord]:
        """Page through /issues.json until a short page or the reported total is reached."""
        params: dict[str, Any] = {"limit": PAGE_SIZE, "status_id": "*", "include": DETAIL_INCLUDES}
        if scope:
            params["project_id"] = scope

        records: list[SourceRecord] = []
        offset = 0
        while True:
            params["offset"] = offset
            data = self._get_json("/issues.json", params)
            page = data.get("issues") or []
            records.extend(parse_issue(issue) for issue in page)

            total = _to_int(data.get("total_count"))
            logger.debug(f"Fetched {len(records)}/{total if total is not None else '?'} Redmine issues")
            if len(page) < PAGE_SIZE or (total is not None and len(records) >= total):
                break

            offset += PAGE_SIZE
            if self._pacer is not None:
                self._pacer.pace()

        logger.info(f"Fetched {len(records)} issues from Redmine")
        return records

    def get_record_detail(self, record_id: int) -> SourceRecord | None:
        response = self._get(f"/issues/{record_id}.json", {"include": DETAIL_INCLUDES})
        if response.status_code == _HTTP_NOT_FOUND:
            logger.debug(f"Redmine issue #{record_id} not found")
            return None
        try:
            response.raise_for_status()
            return parse_issue(response.json()["issue"])
        except (requests.HTTPError, ValueError, KeyError) as e:
            msg = f"Error fetching Redmine issue #{record_id}: {e}"
            raise SourceError(msg) from e

    def download_attachment_content(self, content_url: str) -> bytes | None:
        response = self._get(content_url)
        if response.status_code == _HTTP_NOT_FOUND:
            logger.warning(f"Attachment not found: {content_url}")
            return None
        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            msg = f"Error downloading attachment {content_url}: {e}"
            raise SourceError(msg) from e
        return response.content

    def _get_list(self, path: str, key: str) -> list[dict[str, Any]]:
        return list(self._get_json(path).get(key) or [])

    def get_trackers(self) -> list[dict[str, Any]]:
        return self._get_list("/trackers.json", "trackers")

    def get_issue_statuses(self) -> list[dict[str, Any]]:
        return self._get_list("/issue_statuses.json", "issue_statuses")

    def get_priorities(self) -> list[dict[str, Any]]:
        return self._get_list("/enumerations/issue_priorities.json", "issue_priorities")

    def get_custom_fields(self) -> list[dict[str, Any]]:
        """List custom field definitions. Needs admin rights; returns [] without them."""
        response = self._get("/custom_fields.json")
        if response.status_code == _HTTP_FORBIDDEN:
            logger.warning("Cannot fetch Redmine custom fields (admin rights required)")
            return []
        try:
            response.raise_for_status()
            return list(response.json().get("custom_fields") or [])
        except (requests.HTTPError, ValueError) as e:
            msg = f"Error fetching Redmine custom fields: {e}"
            raise SourceError(msg) from e
