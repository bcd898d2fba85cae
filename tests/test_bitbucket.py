"""
Tests for the Bitbucket Pipelines variables client with a mocked requests session.
"""

import json
from unittest.mock import MagicMock

import pytest
import requests

from deploythis.bitbucket import (
    BitbucketService,
    VariableScope,
    is_secured_key,
    is_uuid,
    mask_variable,
)
from deploythis.errors import BitbucketError

API = "https://api.bitbucket.org/2.0/repositories/acme/my-project"
STAGING_UUID = "{11111111-2222-3333-4444-555555555555}"
STAGING_PATH = f"{API}/deployments_config/environments/%7B11111111-2222-3333-4444-555555555555%7D/variables"
REPOSITORY_PATH = f"{API}/pipelines_config/variables"

ENVIRONMENTS = {
    "values": [
        {
            "type": "deployment_environment",
            "uuid": STAGING_UUID,
            "name": "Staging",
            "slug": "staging",
        },
        {"type": "pipeline_environment", "uuid": "{other}", "name": "x", "slug": "x"},
    ]
}


def response(data=None, status_code=200):
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.content = json.dumps(data).encode() if data is not None else b""
    mock_response.json.return_value = data
    if status_code >= 400:
        mock_response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Client Error"
        )
    return mock_response


def variable(key, value="v", uuid=None, secured=False):
    return {
        "type": "pipeline_variable",
        "uuid": uuid or "{" + key.lower() + "}",
        "key": key,
        "value": value,
        "secured": secured,
    }


@pytest.fixture
def routes():
    """(method, url) -> response; unknown routes fail with 404."""
    return {
        ("GET", f"{API}/environments"): response(ENVIRONMENTS),
        ("GET", STAGING_PATH): response(
            {"values": [variable("AWS_REGION", "us-east-1")]}
        ),
        ("GET", REPOSITORY_PATH): response({"values": [variable("PROJECT_NAME", "shop")]}),
    }


@pytest.fixture
def session(routes):
    mock_session = MagicMock()
    mock_session.headers = {}

    def request(method, url, json=None, timeout=None):
        return routes.get((method, url)) or response(status_code=404)

    mock_session.request.side_effect = request
    return mock_session


@pytest.fixture
def service(session):
    return BitbucketService("deployer", "app-password", "acme", "my-project", session=session)


def requests_made(session, method=None):
    return [
        (call.args[0], call.args[1], call.kwargs.get("json"))
        for call in session.request.call_args_list
        if method is None or call.args[0] == method
    ]


@pytest.mark.parametrize(
    "value, expected",
    [
        ("11111111-2222-3333-4444-555555555555", True),
        (STAGING_UUID, True),
        ("{11111111-2222-3333-4444-55555555555}", False),
        ("staging", False),
        (None, False),
    ],
)
def test_is_uuid(value, expected):
    assert is_uuid(value) is expected


@pytest.mark.parametrize(
    "key, expected",
    [
        ("AWS_SECRET_KEY", True),
        ("AWS_ACCESS_KEY", True),
        ("BITBUCKET_APP_PASSWORD", True),
        ("AWS_REGION", False),
    ],
)
def test_is_secured_key(key, expected):
    assert is_secured_key(key) is expected


def test_mask_variable():
    assert mask_variable(variable("AWS_SECRET_KEY", "s3cr3t", secured=True))["value"] == "********"
    assert mask_variable(variable("AWS_REGION", "us-east-1"))["value"] == "us-east-1"


class TestListing:
    def test_session_is_authenticated(self, service, session):
        assert session.auth == ("deployer", "app-password")
        assert session.headers["Content-Type"] == "application/json"

    def test_environments_are_filtered(self, service):
        assert service.get_environments() == [
            {"uuid": STAGING_UUID, "name": "Staging", "slug": "staging"}
        ]

    def test_list_all(self, service):
        result = service.list_variables()

        staging = result["deployments"]["staging"]
        assert [v["key"] for v in staging] == ["AWS_REGION"]
        assert staging[0]["scope"] == VariableScope.DEPLOYMENT
        assert staging[0]["name"] == "Staging"
        assert [v["key"] for v in result["repository"]] == ["PROJECT_NAME"]

    def test_repository_scope_only(self, service, session):
        result = service.list_variables(scope=VariableScope.REPOSITORY)
        assert result["deployments"] is None
        assert len(result["repository"]) == 1
        assert [url for _, url, _ in requests_made(session)] == [REPOSITORY_PATH]

    def test_deployment_scope_by_stage_name(self, service):
        result = service.list_variables(scope=VariableScope.DEPLOYMENT, stage="STAGING")
        assert list(result["deployments"]) == ["STAGING"]
        assert result["repository"] is None

    def test_stage_uuid_skips_lookup(self, service, session):
        service.get_deployment_variables(STAGING_UUID)
        assert [url for _, url, _ in requests_made(session)] == [STAGING_PATH]

    def test_pagination(self, service, routes):
        routes[("GET", REPOSITORY_PATH)] = response(
            {"values": [variable("PROJECT_NAME")], "next": f"{REPOSITORY_PATH}?page=2"}
        )
        routes[("GET", f"{REPOSITORY_PATH}?page=2")] = response(
            {"values": [variable("DEPLOYER")]}
        )
        keys = [v["key"] for v in service.get_repository_variables()]
        assert keys == ["PROJECT_NAME", "DEPLOYER"]

    def test_http_errors_raise(self, service, routes):
        routes[("GET", REPOSITORY_PATH)] = response(status_code=401)
        with pytest.raises(BitbucketError, match="401"):
            service.get_repository_variables()

    def test_connection_errors_raise(self, service, session):
        session.request.side_effect = requests.exceptions.ConnectionError("offline")
        with pytest.raises(BitbucketError, match="offline"):
            service.get_environments()


class TestEnvironmentLookup:
    def test_unknown_environment_is_created(self, service, session, routes):
        routes[("POST", f"{API}/environments")] = response(
            {"uuid": "{new}", "name": "test", "slug": "test"}
        )
        assert service.get_environment("test")["uuid"] == "{new}"
        assert requests_made(session, "POST") == [
            ("POST", f"{API}/environments", {"type": "deployment_environment", "name": "test"})
        ]

    def test_name_is_required(self, service):
        with pytest.raises(BitbucketError):
            service.get_environment("")


class TestEnsureVariable:
    def test_updates_existing_key(self, service, session, routes):
        put_url = f"{STAGING_PATH}/%7Baws_region%7D"
        routes[("PUT", put_url)] = response({"key": "AWS_REGION"})

        service.ensure_variable(
            {"key": "AWS_REGION", "value": "eu-west-1"}, VariableScope.DEPLOYMENT, "staging"
        )

        assert requests_made(session, "PUT") == [
            (
                "PUT",
                put_url,
                {
                    "type": "pipeline_variable",
                    "key": "AWS_REGION",
                    "value": "eu-west-1",
                    "secured": False,
                },
            )
        ]
        assert requests_made(session, "POST") == []

    def test_creates_missing_key(self, service, session, routes):
        routes[("POST", STAGING_PATH)] = response({"key": "AWS_SECRET_KEY"})

        service.ensure_variable(
            {"key": "AWS_SECRET_KEY", "value": "s3cr3t", "secured": True},
            VariableScope.DEPLOYMENT,
            "staging",
        )

        [(_, url, payload)] = requests_made(session, "POST")
        assert url == STAGING_PATH
        assert payload["secured"] is True

    def test_repository_scope(self, service, session, routes):
        routes[("PUT", f"{REPOSITORY_PATH}/%7Bproject_name%7D")] = response({})
        service.ensure_variable({"key": "PROJECT_NAME", "value": "shop"}, "repository")
        assert len(requests_made(session, "PUT")) == 1

    def test_deployment_scope_requires_stage(self, service):
        with pytest.raises(BitbucketError, match="Stage is required"):
            service.ensure_variable({"key": "A", "value": "1"}, VariableScope.DEPLOYMENT)

    def test_invalid_scope(self, service):
        with pytest.raises(BitbucketError, match="Invalid scope"):
            service.ensure_variable({"key": "A", "value": "1"}, "workspace", "staging")


class TestRemoveVariable:
    def test_deletes_by_uuid(self, service, session, routes):
        delete_url = f"{REPOSITORY_PATH}/%7Bproject_name%7D"
        routes[("DELETE", delete_url)] = response(status_code=204)

        service.remove_variable("PROJECT_NAME", VariableScope.REPOSITORY)
        assert requests_made(session, "DELETE") == [("DELETE", delete_url, None)]

    def test_unknown_key(self, service):
        with pytest.raises(BitbucketError, match="Variable MISSING not found"):
            service.remove_variable("MISSING", VariableScope.REPOSITORY)


class TestInitializeFromEnvironment:
    def test_splits_repository_and_deployment_keys(self, service):
        service.ensure_variable = MagicMock()

        written = service.initialize_from_environment(
            {"PROJECT_NAME": "shop", "AWS_REGION": "us-east-1", "AWS_PROFILE": ""},
            stages=["staging", "production"],
        )

        assert written == 3
        calls = [call.args for call in service.ensure_variable.call_args_list]
        assert calls == [
            ({"key": "PROJECT_NAME", "value": "shop", "secured": False}, "repository"),
            ({"key": "AWS_REGION", "value": "us-east-1", "secured": False}, "deployment", "staging"),
            (
                {"key": "AWS_REGION", "value": "us-east-1", "secured": False},
                "deployment",
                "production",
            ),
        ]

    def test_default_stages_and_secured_keys(self, service):
        service.ensure_variable = MagicMock()
        service.initialize_from_environment({"AWS_SECRET_KEY": "s3cr3t"})

        stages = [call.args[2] for call in service.ensure_variable.call_args_list]
        assert stages == ["staging", "test"]
        assert service.ensure_variable.call_args.args[0]["secured"] is True
