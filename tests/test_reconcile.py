import json
from unittest.mock import MagicMock, patch

import pytest
from conftest import tf_state

from deploythis.configuration import Configuration
from deploythis.reconcile import (
    NetworkAction,
    NetworkReconciler,
    backup_state_file,
    decide_network_action,
)
from deploythis.validation import Validation

STATE_VPC = "vpc-0aaaaaaaaaaaaaaaa"
STATE_IGW = "igw-0aaaaaaaaaaaaaaaa"
CONFIGURED_VPC = "vpc-0123456789abcdef0"
CONFIGURED_IGW = "igw-0123456789abcdef0"


class TestDecideNetworkAction:
    def test_state_wins(self):
        assert decide_network_action(STATE_VPC, STATE_IGW, CONFIGURED_VPC, CONFIGURED_IGW) == {
            "action": NetworkAction.USE_STATE,
            "vpc_id": STATE_VPC,
            "igw_id": STATE_IGW,
        }

    def test_import_configured(self):
        assert decide_network_action(STATE_VPC, None, CONFIGURED_VPC, CONFIGURED_IGW) == {
            "action": NetworkAction.IMPORT,
            "vpc_id": CONFIGURED_VPC,
            "igw_id": CONFIGURED_IGW,
        }

    @pytest.mark.parametrize(
        "ids",
        [
            (None, None, None, None),
            (STATE_VPC, None, CONFIGURED_VPC, None),
            (None, STATE_IGW, None, CONFIGURED_IGW),
        ],
    )
    def test_create_new(self, ids):
        assert decide_network_action(*ids) == {
            "action": NetworkAction.CREATE_NEW,
            "vpc_id": None,
            "igw_id": None,
        }


class TestBackupStateFile:
    def test_renames_state(self, tmp_path):
        (tmp_path / "terraform.tfstate").write_text("{}", encoding="utf-8")
        backup = backup_state_file(tmp_path)

        assert not (tmp_path / "terraform.tfstate").exists()
        assert backup.name.startswith("terraform.tfstate.")
        assert backup.name.endswith(".backup")
        assert backup.read_text(encoding="utf-8") == "{}"

    def test_no_state(self, tmp_path):
        assert backup_state_file(tmp_path) is None


@pytest.fixture
def stage_dir(project_root):
    return project_root / ".terraforms" / "staging"


@pytest.fixture
def live_ids():
    """Ids that exist in the mocked AWS account."""
    return set()


@pytest.fixture
def reconciler(project_root, stage_dir, live_ids):
    configuration = Configuration(project_root)

    def check(ids):
        resource_id = ids[0]
        return (True, resource_id) if resource_id in live_ids else (False, None)

    aws = MagicMock()
    aws.check_vpc.side_effect = check
    aws.check_igw.side_effect = check

    terraform = MagicMock()
    terraform.working_dir = stage_dir

    env_vars = {"VPC_ID": CONFIGURED_VPC, "IGW_ID": CONFIGURED_IGW}
    return NetworkReconciler(
        "staging",
        env_vars,
        configuration,
        Validation(configuration),
        aws,
        terraform,
    )


def write_state(stage_dir, vpc_id, igw_id):
    (stage_dir / "terraform.tfstate").write_text(
        json.dumps(tf_state(vpc_id, igw_id)), encoding="utf-8"
    )


class TestNetworkReconciler:
    """Reconciliation of state ids, configured ids and live AWS resources."""

    def test_live_state_syncs_env_file(self, reconciler, stage_dir, live_ids, project_root):
        write_state(stage_dir, STATE_VPC, STATE_IGW)
        live_ids.update([STATE_VPC, STATE_IGW])

        decision = reconciler.reconcile()

        assert decision["action"] == NetworkAction.USE_STATE
        dt_env = Configuration(project_root).dt_env_config
        assert dt_env["VPC_ID"] == STATE_VPC
        assert dt_env["IGW_ID"] == STATE_IGW
        assert reconciler.env_vars["VPC_ID"] == STATE_VPC
        reconciler.terraform.import_resource.assert_not_called()

    def test_matching_state_leaves_env_file(self, reconciler, stage_dir, live_ids, project_root):
        write_state(stage_dir, CONFIGURED_VPC, CONFIGURED_IGW)
        live_ids.update([CONFIGURED_VPC, CONFIGURED_IGW])
        before = (project_root / ".env.dt.staging").read_text(encoding="utf-8")

        assert reconciler.reconcile()["action"] == NetworkAction.USE_STATE
        assert (project_root / ".env.dt.staging").read_text(encoding="utf-8") == before

    def test_stale_state_imports_configured(self, reconciler, stage_dir, live_ids):
        write_state(stage_dir, STATE_VPC, STATE_IGW)
        live_ids.update([CONFIGURED_VPC, CONFIGURED_IGW])

        decision = reconciler.reconcile()

        assert decision["action"] == NetworkAction.IMPORT
        assert not (stage_dir / "terraform.tfstate").exists()
        assert list(stage_dir.glob("terraform.tfstate.*.backup"))
        reconciler.terraform.import_resource.assert_any_call("aws_vpc.VPC", CONFIGURED_VPC)
        reconciler.terraform.import_resource.assert_any_call(
            "aws_internet_gateway.InternetGateway", CONFIGURED_IGW
        )

    def test_no_state_imports_configured(self, reconciler, live_ids):
        live_ids.update([CONFIGURED_VPC, CONFIGURED_IGW])
        assert reconciler.reconcile()["action"] == NetworkAction.IMPORT
        assert reconciler.terraform.import_resource.call_count == 2

    @patch("deploythis.reconcile.prompts.confirm", return_value=True)
    def test_create_new_confirmed(self, mock_confirm, reconciler):
        assert reconciler.reconcile()["action"] == NetworkAction.CREATE_NEW
        mock_confirm.assert_called_once()

    @patch("deploythis.reconcile.prompts.confirm", return_value=False)
    def test_create_new_declined(self, mock_confirm, reconciler, capsys):
        assert reconciler.reconcile() is None
        assert "Deployment cancelled by user" in capsys.readouterr().out

    @patch("deploythis.reconcile.prompts.confirm")
    def test_create_new_vpc_flag_skips_prompt(self, mock_confirm, reconciler):
        reconciler.create_new_vpc = True
        assert reconciler.reconcile()["action"] == NetworkAction.CREATE_NEW
        mock_confirm.assert_not_called()

    def test_status_is_printed(self, reconciler, live_ids, capsys):
        live_ids.update([CONFIGURED_VPC, CONFIGURED_IGW])
        reconciler.reconcile()
        out = capsys.readouterr().out
        assert "Terraform state file not exists" in out
        assert f"- VPC: ✅ - {CONFIGURED_VPC}" in out
        assert "- IGW: ❌ - None" in out


class TestSyncCreatedNetwork:
    def test_writes_new_ids(self, reconciler, stage_dir, project_root):
        write_state(stage_dir, STATE_VPC, STATE_IGW)

        assert reconciler.sync_created_network() == {"vpc_id": STATE_VPC, "igw_id": STATE_IGW}
        dt_env = Configuration(project_root).dt_env_config
        assert dt_env["VPC_ID"] == STATE_VPC
        assert dt_env["IGW_ID"] == STATE_IGW

    def test_missing_ids_warn(self, reconciler, project_root, capsys):
        assert reconciler.sync_created_network() == {"vpc_id": None, "igw_id": None}
        assert "not found in Terraform state" in capsys.readouterr().out
