"""
Bitbucket Pipelines variables over the Bitbucket Cloud REST API.
"""

import logging
import re
from typing import Dict, List, Mapping, Optional
from urllib.parse import quote

import requests

from . import config
from .errors import BitbucketError

logger = logging.getLogger(__name__)

_UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
_BRACED_UUID_PATTERN = re.compile(
    r"^\{[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\}$"
)

PIPELINE_VARIABLE = "pipeline_variable"
DEPLOYMENT_ENVIRONMENT = "deployment_environment"


class VariableScope:
    DEPLOYMENT = "deployment"
    REPOSITORY = "repository"

    ALL = [DEPLOYMENT, REPOSITORY]


def is_uuid(value: Optional[str]) -> bool:
    """Plain (8-4-4-4-12) or braced ({8-4-4-4-12}) hexadecimal UUID"""
    if not value:
        return False
    return bool(_UUID_PATTERN.match(value) or _BRACED_UUID_PATTERN.match(value))


def is_secured_key(key: str) -> bool:
    return any(marker in key.lower() for marker in config.BITBUCKET_SECURED_MARKERS)


def mask_variable(variable: Dict) -> Dict:
    """Row for display; secured values are hidden"""
    return {
        "key": variable.get("key"),
        "value": "********" if variable.get("secured") else variable.get("value"),
        "secured": bool(variable.get("secured")),
    }


class BitbucketService:
    def __init__(
        self,
        username: str,
        app_password: str,
        workspace: str,
        repo_slug: str,
        session: Optional[requests.Session] = None,
    ):
        self.workspace = workspace
        self.repo_slug = repo_slug
        self.session = session or requests.Session()
        self.session.auth = (username, app_password)
        self.session.headers.update({"Content-Type": "application/json"})

    @property
    def repository_path(self) -> str:
        return f"/repositories/{self.workspace}/{self.repo_slug}"

    def _request(self, method: str, path: str, payload: Optional[Dict] = None) -> Dict:
        url = path if path.startswith("http") else f"{config.BITBUCKET_API_URL}{path}"
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(
                method, url, json=payload, timeout=config.BITBUCKET_TIMEOUT
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise BitbucketError(f"Bitbucket API request failed ({method} {url}): {e}") from e

        if not response.content:
            return {}
        return response.json()

    def _get_values(self, path: str) -> List[Dict]:
        """Collect `values` across every page of a paginated listing"""
        values: List[Dict] = []
        next_url: Optional[str] = path
        while next_url:
            data = self._request("GET", next_url)
            values.extend(data.get("values", []))
            next_url = data.get("next")
        return values

    def _deployment_variables_path(self, environment_uuid: str) -> str:
        return (
            f"{self.repository_path}/deployments_config/environments/"
            f"{quote(environment_uuid, safe='')}/variables"
        )

    @property
    def _repository_variables_path(self) -> str:
        return f"{self.repository_path}/pipelines_config/variables"

    def get_environments(self) -> List[Dict]:
        environments = self._get_values(f"{self.repository_path}/environments")
        return [
            {"uuid": env.get("uuid"), "name": env.get("name"), "slug": env.get("slug")}
            for env in environments
            if env.get("type") == DEPLOYMENT_ENVIRONMENT
        ]

    def get_environment(self, name: str) -> Dict:
        """Find a deployment environment by name or slug, creating it when absent"""
        if not name:
            raise BitbucketError("Environment name is required")

        for env in self._get_values(f"{self.repository_path}/environments"):
            if (env.get("name") or "").lower() == name.lower() or (
                env.get("slug") or ""
            ).lower() == name.lower():
                return env

        logger.info("Creating Bitbucket deployment environment %s", name)
        return self._request(
            "POST",
            f"{self.repository_path}/environments",
            {"type": DEPLOYMENT_ENVIRONMENT, "name": name},
        )

    def _resolve_stage(self, stage: str) -> Dict:
        if is_uuid(stage):
            return {"uuid": stage, "name": stage, "slug": stage}
        return self.get_environment(stage)

    def get_deployment_variables(self, stage: Optional[str] = None) -> Dict[str, List[Dict]]:
        """Pipeline variables per deployment environment, keyed by stage"""
        if stage:
            environments = [self._resolve_stage(stage)]
        else:
            environments = self.get_environments()

        deployments = {}
        for env in environments:
            key = stage or env.get("slug")
            variables = self._get_values(self._deployment_variables_path(env["uuid"]))
            deployments[key] = [
                {
                    "scope": VariableScope.DEPLOYMENT,
                    "name": env.get("name"),
                    "stage": key,
                    **variable,
                }
                for variable in variables
                if variable.get("type") == PIPELINE_VARIABLE
            ]
        return deployments

    def get_repository_variables(self) -> List[Dict]:
        return [
            {"scope": VariableScope.REPOSITORY, **variable}
            for variable in self._get_values(self._repository_variables_path)
            if variable.get("type") == PIPELINE_VARIABLE
        ]

    def list_variables(
        self, scope: Optional[str] = None, stage: Optional[str] = None
    ) -> Dict[str, Optional[object]]:
        """
        Returns {"deployments": {stage: [...]}, "repository": [...]}.
        A scope restricts the listing; the other entry is None.
        """
        deployments = None
        repository = None
        if scope in (None, VariableScope.DEPLOYMENT):
            deployments = self.get_deployment_variables(stage)
        if scope in (None, VariableScope.REPOSITORY):
            repository = self.get_repository_variables()
        return {"deployments": deployments, "repository": repository}

    def _scope_target(self, scope: str, stage: Optional[str]):
        """Return (variables endpoint, existing variables) for a scope"""
        if scope == VariableScope.REPOSITORY:
            return self._repository_variables_path, self.get_repository_variables()

        if scope != VariableScope.DEPLOYMENT:
            raise BitbucketError(
                'Invalid scope. Must be either "deployment" or "repository"'
            )
        if not stage:
            raise BitbucketError("Stage is required for deployment variables")

        env = self._resolve_stage(stage)
        path = self._deployment_variables_path(env["uuid"])
        existing = [
            variable
            for variable in self._get_values(path)
            if variable.get("type") == PIPELINE_VARIABLE
        ]
        return path, existing

    def ensure_variable(
        self, variable: Mapping, scope: str, stage: Optional[str] = None
    ) -> Dict:
        """Update the variable when its key exists in the scope, create it otherwise"""
        path, existing = self._scope_target(scope, stage)
        payload = {
            "type": PIPELINE_VARIABLE,
            "key": variable["key"],
            "value": variable["value"],
            "secured": bool(variable.get("secured", False)),
        }

        current = next((v for v in existing if v.get("key") == variable["key"]), None)
        if current and current.get("uuid"):
            return self._request(
                "PUT", f"{path}/{quote(current['uuid'], safe='')}", payload
            )
        return self._request("POST", path, payload)

    def remove_variable(self, key: str, scope: str, stage: Optional[str] = None) -> None:
        path, existing = self._scope_target(scope, stage)

        current = next((v for v in existing if v.get("key") == key), None)
        if not current or not current.get("uuid"):
            raise BitbucketError(f"Variable {key} not found")
        self._request("DELETE", f"{path}/{quote(current['uuid'], safe='')}")

    def initialize_from_environment(
        self,
        variables: Mapping[str, str],
        stages: Optional[List[str]] = None,
    ) -> int:
        """
        Push non-empty variables to Bitbucket: repository-level keys to the
        repository scope, the rest to every deployment stage.
        Returns the number of variables written.
        """
        stages = stages or config.BITBUCKET_DEFAULT_STAGES
        written = 0

        for key, value in variables.items():
            if not value:
                continue

            variable = {"key": key, "value": value, "secured": is_secured_key(key)}
            if key in config.BITBUCKET_REPOSITORY_KEYS:
                self.ensure_variable(variable, VariableScope.REPOSITORY)
                written += 1
            else:
                for stage in stages:
                    self.ensure_variable(variable, VariableScope.DEPLOYMENT, stage)
                    written += 1
        return written
