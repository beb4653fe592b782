"""Tests for Azure DevOps API access."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest
import requests

from redmine_to_ado_migrator.ado_utils import API_VERSION, AdoClient, build_patch_document
from redmine_to_ado_migrator.exceptions import ConnectivityError, TargetError


def _response(status_code: int = 200, payload: Any = None) -> MagicMock:  # noqa: ANN401
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = "error body"
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error", response=response)
    return response


@pytest.mark.unit
class TestBuildPatchDocument:
    def test_add_operations_in_field_order(self) -> None:
        document = build_patch_document({"System.Title": "t", "Microsoft.VSTS.Common.Priority": 2})
        assert document == [
            {"op": "add", "path": "/fields/System.Title", "value": "t"},
            {"op": "add", "path": "/fields/Microsoft.VSTS.Common.Priority", "value": 2},
        ]

    def test_none_values_skipped(self) -> None:
        assert build_patch_document({"System.Title": "t", "System.AssignedTo": None}) == [
            {"op": "add", "path": "/fields/System.Title", "value": "t"}
        ]


@pytest.mark.unit
class TestAdoClient:
    def setup_method(self) -> None:
        self.session = MagicMock()
        self.client = AdoClient("https://dev.azure.com/my-org/", "My Project", "pat-token", session=self.session)

    def test_pat_used_for_basic_auth(self) -> None:
        assert self.session.auth == ("", "pat-token")

    def test_project_url_is_quoted(self) -> None:
        assert self.client.project_url == "https://dev.azure.com/my-org/My%20Project"

    def test_validate_access(self) -> None:
        self.session.request.return_value = _response(payload={"id": "abc"})
        self.client.validate_access()

        method, url = self.session.request.call_args.args
        assert method == "GET"
        assert url == "https://dev.azure.com/my-org/_apis/projects/My%20Project"
        assert self.session.request.call_args.kwargs["params"]["api-version"] == API_VERSION

    def test_validate_access_failure(self) -> None:
        self.session.request.return_value = _response(401)
        with pytest.raises(ConnectivityError):
            self.client.validate_access()

    def test_create_record(self) -> None:
        self.session.request.return_value = _response(payload={"id": 500})

        work_item_id = self.client.create_record("User Story", {"System.Title": "Crash on save"})

        assert work_item_id == 500
        method, url = self.session.request.call_args.args
        kwargs = self.session.request.call_args.kwargs
        assert method == "POST"
        assert url == "https://dev.azure.com/my-org/My%20Project/_apis/wit/workitems/$User%20Story"
        assert kwargs["headers"] == {"Content-Type": "application/json-patch+json"}
        assert kwargs["params"]["bypassRules"] == "true"
        paths = [op["path"] for op in kwargs["json"]]
        assert paths == ["/fields/System.Title", "/fields/System.AreaPath", "/fields/System.IterationPath"]

    def test_create_record_keeps_explicit_area_path(self) -> None:
        self.session.request.return_value = _response(payload={"id": 1})

        _ = self.client.create_record("Issue", {"System.Title": "t", "System.AreaPath": "My Project\\Team"})

        document = self.session.request.call_args.kwargs["json"]
        area_ops = [op for op in document if op["path"] == "/fields/System.AreaPath"]
        assert area_ops == [{"op": "add", "path": "/fields/System.AreaPath", "value": "My Project\\Team"}]

    def test_create_record_rejected(self) -> None:
        self.session.request.return_value = _response(400)
        with pytest.raises(TargetError, match="400: error body"):
            _ = self.client.create_record("Issue", {"System.Title": "t"})

    def test_create_record_without_id(self) -> None:
        self.session.request.return_value = _response(payload={})
        with pytest.raises(TargetError, match="no id"):
            _ = self.client.create_record("Issue", {"System.Title": "t"})

    def test_network_error_becomes_target_error(self) -> None:
        self.session.request.side_effect = requests.ConnectionError("reset")
        with pytest.raises(TargetError, match="reset"):
            _ = self.client.create_record("Issue", {"System.Title": "t"})

    def test_add_comment_uses_history_field(self) -> None:
        self.session.request.return_value = _response(payload={"id": 500})

        self.client.add_comment(500, "<b>hello</b>")

        method, url = self.session.request.call_args.args
        assert method == "PATCH"
        assert url.endswith("/_apis/wit/workitems/500")
        assert self.session.request.call_args.kwargs["json"] == [
            {"op": "add", "path": "/fields/System.History", "value": "<b>hello</b>"}
        ]

    def test_upload_and_link_attachment(self) -> None:
        self.session.request.return_value = _response(payload={"id": "guid", "url": "https://ado/attachments/guid"})

        url = self.client.upload_attachment(b"data", "log.txt")
        upload_kwargs = self.session.request.call_args.kwargs
        self.client.link_attachment(500, url, "log.txt")
        link_kwargs = self.session.request.call_args.kwargs

        assert url == "https://ado/attachments/guid"
        assert upload_kwargs["data"] == b"data"
        assert upload_kwargs["params"]["fileName"] == "log.txt"
        assert upload_kwargs["headers"] == {"Content-Type": "application/octet-stream"}
        relation = link_kwargs["json"][0]["value"]
        assert relation["rel"] == "AttachedFile"
        assert relation["url"] == "https://ado/attachments/guid"

    def test_create_link(self) -> None:
        self.session.request.return_value = _response(payload={"id": 502})

        created = self.client.create_link(502, 501, "System.LinkTypes.Hierarchy-Reverse", "Parent-Child")

        assert created
        method, url = self.session.request.call_args.args
        assert method == "PATCH"
        assert url.endswith("/workitems/502")
        relation = self.session.request.call_args.kwargs["json"][0]["value"]
        assert relation == {
            "rel": "System.LinkTypes.Hierarchy-Reverse",
            "url": "https://dev.azure.com/my-org/My%20Project/_apis/wit/workitems/501",
            "attributes": {"comment": "Parent-Child"},
        }

    def test_self_link_makes_no_request(self) -> None:
        assert not self.client.create_link(7, 7, "System.LinkTypes.Related")
        self.session.request.assert_not_called()

    def test_create_link_failure(self) -> None:
        self.session.request.return_value = _response(400)
        with pytest.raises(TargetError):
            _ = self.client.create_link(1, 2, "System.LinkTypes.Related")

    def test_get_fields_and_types(self) -> None:
        self.session.request.return_value = _response(payload={"value": [{"name": "Bug"}]})

        assert self.client.get_work_item_types() == [{"name": "Bug"}]
        assert self.client.get_fields() == [{"name": "Bug"}]
