from unittest.mock import patch

import pytest

from deploythis.config import PARTIAL_DESTROY_TARGETS
from deploythis.errors import DeployThisError, EnvironmentValidationError
from deploythis.rollback import Rollback


@pytest.fixture
def mock_terraform():
    with patch("deploythis.rollback.TerraformRunner") as mock_cls:
        yield mock_cls.return_value


@pytest.fixture
def mock_cleanup():
    with patch("deploythis.rollback.create_session"), patch(
        "deploythis.rollback.AWSResourceCleanup"
    ) as mock_cls:
        cleanup = mock_cls.return_value
        cleanup.empty_s3_bucket.return_value = True
        cleanup.delete_ecr_images.return_value = True
        yield cleanup


class TestRollback:
    """Full and partial destroys of a stage."""

    def test_full_destroy(self, project_root, mock_terraform, mock_cleanup):
        assert Rollback("staging", "full", force=True, project_root=project_root).run()

        mock_cleanup.empty_s3_bucket.assert_called_once_with("my-project-codedeploy")
        mock_cleanup.delete_ecr_images.assert_called_once_with("my-project")
        mock_terraform.init.assert_called_once()
        mock_terraform.destroy.assert_called_once_with(auto_approve=True)

    def test_partial_destroy_keeps_network(self, project_root, mock_terraform, mock_cleanup):
        assert Rollback("staging", "partial", force=True, project_root=project_root).run()

        mock_cleanup.empty_s3_bucket.assert_not_called()
        mock_cleanup.delete_ecr_images.assert_called_once_with("my-project")
        mock_terraform.destroy.assert_called_once_with(
            targets=PARTIAL_DESTROY_TARGETS, auto_approve=True
        )
        assert "aws_vpc.VPC" not in PARTIAL_DESTROY_TARGETS
        assert "aws_internet_gateway.InternetGateway" not in PARTIAL_DESTROY_TARGETS

    @patch("deploythis.rollback.prompts.confirm", return_value=False)
    def test_declined(self, mock_confirm, project_root, mock_terraform, mock_cleanup, capsys):
        assert Rollback("staging", "full", project_root=project_root).run() is False
        mock_cleanup.empty_s3_bucket.assert_not_called()
        mock_terraform.destroy.assert_not_called()
        assert "Rollback cancelled." in capsys.readouterr().out

    @patch("deploythis.rollback.prompts.confirm", return_value=True)
    def test_confirmed_destroy_stays_interactive(
        self, mock_confirm, project_root, mock_terraform, mock_cleanup
    ):
        Rollback("staging", "full", project_root=project_root).run()
        mock_terraform.destroy.assert_called_once_with(auto_approve=False)

    def test_unknown_destroy_type(self, project_root, mock_terraform, mock_cleanup):
        with pytest.raises(DeployThisError, match="Unknown destroy type"):
            Rollback("staging", "everything", force=True, project_root=project_root).run()

    def test_missing_stage_directory(self, project_root, mock_terraform, mock_cleanup):
        with pytest.raises(EnvironmentValidationError, match="production"):
            Rollback("production", "full", force=True, project_root=project_root).run()

    def test_failed_cleanup_still_destroys(self, project_root, mock_terraform, mock_cleanup, capsys):
        mock_cleanup.empty_s3_bucket.return_value = False

        assert Rollback("staging", "full", force=True, project_root=project_root).run()
        mock_terraform.destroy.assert_called_once()
        assert "could not be emptied" in capsys.readouterr().out


class TestPrompts:
    @patch("deploythis.rollback.prompts.select", side_effect=["staging", "partial"])
    def test_selects_stage_and_type(self, mock_select, project_root, mock_terraform, mock_cleanup):
        rollback = Rollback(force=True, project_root=project_root)
        assert rollback.run() is True
        assert rollback.target_environment == "staging"
        assert rollback.destroy_type == "partial"

    @patch("deploythis.rollback.prompts.select", return_value=None)
    def test_stage_exit(self, mock_select, project_root, mock_terraform):
        assert Rollback(project_root=project_root).run() is False
        mock_terraform.destroy.assert_not_called()

    @patch("deploythis.rollback.prompts.select", side_effect=["staging", None])
    def test_type_exit(self, mock_select, project_root, mock_terraform):
        assert Rollback(project_root=project_root).run() is False
        mock_terraform.destroy.assert_not_called()
