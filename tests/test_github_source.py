import json
from unittest.mock import MagicMock

import pytest
import requests

from csinstaller.exceptions import CatalogFetchError
from csinstaller.github_source import GithubTagSource

pytestmark = [pytest.mark.unit]

TAGS_URL = "https://api.github.com/repos/DCC-EX/CommandStation-EX/git/refs/tags"


def _response(payload, links=None):
    response = MagicMock()
    response.json.return_value = payload
    response.links = links or {}
    return response


def test_list_tags_single_page(mocker, tag_records):
    mock_request = mocker.patch(
        "csinstaller.github_source.make_github_api_request",
        return_value=_response(tag_records),
    )
    session = MagicMock()
    source = GithubTagSource({"REQUEST_TIMEOUT": 5, "GITHUB_TOKEN": "t"}, session=session)

    assert source.list_tags() == tag_records

    args, kwargs = mock_request.call_args
    assert args == (TAGS_URL, "t")
    assert kwargs["timeout"] == 5
    assert kwargs["session"] is session
    assert kwargs["params"] == {"per_page": 100}


def test_list_tags_follows_pagination(mocker):
    page_two_url = f"{TAGS_URL}?per_page=100&page=2"
    mock_request = mocker.patch(
        "csinstaller.github_source.make_github_api_request",
        side_effect=[
            _response([{"ref": "refs/tags/v1.0.0-Prod"}], {"next": {"url": page_two_url}}),
            _response([{"ref": "refs/tags/v2.0.0-Prod"}]),
        ],
    )

    records = GithubTagSource({}).list_tags()

    assert [r["ref"] for r in records] == ["refs/tags/v1.0.0-Prod", "refs/tags/v2.0.0-Prod"]
    second_args, second_kwargs = mock_request.call_args_list[1]
    assert second_args[0] == page_two_url
    assert second_kwargs["params"] is None


def test_list_tags_single_object_payload(mocker):
    mocker.patch(
        "csinstaller.github_source.make_github_api_request",
        return_value=_response({"ref": "refs/tags/v1.0.0-Prod"}),
    )

    assert GithubTagSource({}).list_tags() == [{"ref": "refs/tags/v1.0.0-Prod"}]


def test_list_tags_unexpected_payload(mocker):
    mocker.patch(
        "csinstaller.github_source.make_github_api_request",
        return_value=_response("nope"),
    )

    with pytest.raises(CatalogFetchError, match="Unexpected response"):
        GithubTagSource({}).list_tags()


@pytest.mark.parametrize(
    "error",
    [
        requests.ConnectionError("down"),
        requests.Timeout("slow"),
        requests.HTTPError("GitHub API access forbidden"),
    ],
)
def test_list_tags_request_errors(mocker, error):
    mocker.patch("csinstaller.github_source.make_github_api_request", side_effect=error)

    with pytest.raises(CatalogFetchError) as excinfo:
        GithubTagSource({}).list_tags()

    assert excinfo.value.__cause__ is error


def test_list_tags_invalid_json(mocker):
    response = MagicMock()
    response.json.side_effect = json.JSONDecodeError("bad", "", 0)
    mocker.patch("csinstaller.github_source.make_github_api_request", return_value=response)

    with pytest.raises(CatalogFetchError):
        GithubTagSource({}).list_tags()


def test_archive_url():
    source = GithubTagSource({})

    assert source.archive_url("refs/tags/v4.2.1-Prod") == (
        "https://github.com/DCC-EX/CommandStation-EX/archive/refs/tags/v4.2.1-Prod.zip"
    )
