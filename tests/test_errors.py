import pytest

from deploythis.errors import (
    AWSCredentialsError,
    DeployThisError,
    EnvironmentValidationError,
    TerraformPlanError,
    guidance_for,
    handle_error,
)


class TestGuidance:
    def test_specific_error(self):
        assert "Terraform plan generation failed" in guidance_for(
            TerraformPlanError("x"), "Deployment failed"
        )

    def test_credentials_error(self):
        assert "AWS credentials" in guidance_for(AWSCredentialsError("x"), "fallback")

    @pytest.mark.parametrize("error", [DeployThisError("x"), ValueError("x")])
    def test_fallback(self, error):
        assert guidance_for(error, "Deployment failed") == "Deployment failed"


class TestHandleError:
    def test_exits_with_details(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            handle_error("Deployment failed", EnvironmentValidationError("NODE_ENV is not set"))

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "Error: Deployment failed" in err
        assert "Details: NODE_ENV is not set" in err
        assert "Stack trace" not in err

    def test_stack_trace_in_debug(self, capsys, monkeypatch):
        monkeypatch.setenv("DEBUG", "1")
        try:
            raise DeployThisError("boom")
        except DeployThisError as e:
            with pytest.raises(SystemExit):
                handle_error("Deployment failed", e)

        assert "Stack trace" in capsys.readouterr().err

    def test_string_details(self, capsys):
        with pytest.raises(SystemExit):
            handle_error("Rollback failed", "bucket not empty")
        assert "Additional info: bucket not empty" in capsys.readouterr().err
