"""Azure DevOps work item tracking REST API access.

Work items are written with JSON-Patch documents. Comments go through the
``System.History`` field, attachments and links through ``/relations/-``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final
from urllib.parse import quote

import requests

from .exceptions import ConnectivityError, TargetError

if TYPE_CHECKING:
    from .models import TargetFieldSet

# Module-wide logger
logger: logging.Logger = logging.getLogger(__name__)

API_VERSION: Final[str] = "7.1"
ATTACHED_FILE_REL: Final[str] = "AttachedFile"
_JSON_PATCH: Final[str] = "application/json-patch+json"
_TIMEOUT_SECONDS: Final[int] = 60


def build_patch_document(fields: TargetFieldSet) -> list[dict[str, Any]]:
    """Build ``add`` operations for every field that has a value."""
    return [
        {"op": "add", "path": f"/fields/{field_path}", "value": value}
        for field_path, value in fields.items()
        if value is not None
    ]


class AdoClient:
    """Writes work items to an Azure DevOps project. Implements the TargetWriter protocol."""

    def __init__(
        self,
        organization_url: str,
        project: str,
        pat: str,
        *,
        session: requests.Session | None = None,
    ) -> None:
        self.organization_url: str = organization_url.rstrip("/")
        self.project: str = project
        self._session: requests.Session = session or requests.Session()
        self._session.auth = ("", pat)

    @property
    def project_url(self) -> str:
        return f"{self.organization_url}/{quote(self.project)}"

    def work_item_api_url(self, work_item_id: int) -> str:
        return f"{self.project_url}/_apis/wit/workitems/{work_item_id}"

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,  # noqa: ANN401 - JSON body
        data: bytes | None = None,
        content_type: str | None = None,
        action: str,
    ) -> requests.Response:
        headers = {"Content-Type": content_type} if content_type else None
        all_params = {"api-version": API_VERSION} | (params or {})
        try:
            response = self._session.request(
                method,
                url,
                params=all_params,
                json=json,
                data=data,
                headers=headers,
                timeout=_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except requests.HTTPError as e:
            detail = ""
            if e.response is not None:
                detail = f" ({e.response.status_code}: {e.response.text[:500]})"
            msg = f"Azure DevOps failed to {action}{detail}"
            raise TargetError(msg) from e
        except requests.RequestException as e:
            msg = f"Azure DevOps failed to {action}: {e}"
            raise TargetError(msg) from e
        return response

    def _patch_work_item(self, work_item_id: int, document: list[dict[str, Any]], action: str) -> None:
        _ = self._request(
            "PATCH",
            self.work_item_api_url(work_item_id),
            json=document,
            content_type=_JSON_PATCH,
            action=action,
        )

    def validate_access(self) -> None:
        """Validate that the PAT can read the target project."""
        try:
            _ = self._request(
                "GET",
                f"{self.organization_url}/_apis/projects/{quote(self.project)}",
                action=f"read project {self.project}",
            )
        except TargetError as e:
            msg = f"Azure DevOps API access failed: {e}"
            raise ConnectivityError(msg) from e
        logger.info("Azure DevOps API access validated")

    def create_record(self, work_item_type: str, fields: TargetFieldSet, *, bypass_rules: bool = True) -> int:
        """Create a work item; area and iteration default to the project root."""
        document = build_patch_document(fields)
        paths = {op["path"] for op in document}
        for default_field in ("System.AreaPath", "System.IterationPath"):
            if f"/fields/{default_field}" not in paths:
                document.append({"op": "add", "path": f"/fields/{default_field}", "value": self.project})

        response = self._request(
            "POST",
            f"{self.project_url}/_apis/wit/workitems/${quote(work_item_type)}",
            params={"bypassRules": str(bypass_rules).lower()},
            json=document,
            content_type=_JSON_PATCH,
            action=f"create {work_item_type}",
        )
        try:
            work_item_id = int(response.json()["id"])
        except (ValueError, KeyError, TypeError) as e:
            msg = f"Azure DevOps returned no id for the created {work_item_type}"
            raise TargetError(msg) from e

        logger.debug(f"Created work item: {work_item_id} - {fields.get('System.Title', 'No Title')}")
        return work_item_id

    def update_record(self, work_item_id: int, fields: TargetFieldSet, *, bypass_rules: bool = True) -> None:
        _ = self._request(
            "PATCH",
            self.work_item_api_url(work_item_id),
            params={"bypassRules": str(bypass_rules).lower()},
            json=build_patch_document(fields),
            content_type=_JSON_PATCH,
            action=f"update work item {work_item_id}",
        )
        logger.debug(f"Updated work item: {work_item_id}")

    def get_record(self, work_item_id: int) -> dict[str, Any]:
        response = self._request("GET", self.work_item_api_url(work_item_id), action=f"read work item {work_item_id}")
        return response.json()

    def add_comment(self, record_id: int, text: str) -> None:
        document = [{"op": "add", "path": "/fields/System.History", "value": text}]
        self._patch_work_item(record_id, document, f"add comment to work item {record_id}")
        logger.debug(f"Added comment to work item {record_id}")

    def upload_attachment(self, content: bytes, filename: str) -> str:
        response = self._request(
            "POST",
            f"{self.project_url}/_apis/wit/attachments",
            params={"fileName": filename},
            data=content,
            content_type="application/octet-stream",
            action=f"upload attachment {filename}",
        )
        try:
            url = str(response.json()["url"])
        except (ValueError, KeyError) as e:
            msg = f"Azure DevOps returned no URL for uploaded attachment {filename}"
            raise TargetError(msg) from e
        logger.debug(f"Uploaded attachment: {filename}")
        return url

    def link_attachment(self, record_id: int, attachment_url: str, filename: str) -> None:
        document = [
            {
                "op": "add",
                "path": "/relations/-",
                "value": {
                    "rel": ATTACHED_FILE_REL,
                    "url": attachment_url,
                    "attributes": {"comment": f"Attachment: {filename}"},
                },
            }
        ]
        self._patch_work_item(record_id, document, f"attach {filename} to work item {record_id}")
        logger.debug(f"Attached file {filename} to work item {record_id}")

    def create_link(self, from_id: int, to_id: int, link_type: str, comment: str = "") -> bool:
        """Add a ``link_type`` relation from one work item to another. Self-links are refused."""
        if from_id == to_id:
            logger.info(f"Skipping link: source and target are the same ({from_id})")
            return False

        document = [
            {
                "op": "add",
                "path": "/relations/-",
                "value": {
                    "rel": link_type,
                    "url": self.work_item_api_url(to_id),
                    "attributes": {"comment": comment or f"Link: {link_type}"},
                },
            }
        ]
        self._patch_work_item(from_id, document, f"link work item {from_id} -> {to_id} ({link_type})")
        logger.debug(f"Created link: {from_id} -> {to_id} ({link_type})")
        return True

    def get_fields(self) -> list[dict[str, Any]]:
        response = self._request("GET", f"{self.organization_url}/_apis/wit/fields", action="list fields")
        return list(response.json().get("value") or [])

    def get_work_item_types(self) -> list[dict[str, Any]]:
        response = self._request(
            "GET", f"{self.project_url}/_apis/wit/workitemtypes", action="list work item types"
        )
        return list(response.json().get("value") or [])
