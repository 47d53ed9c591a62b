"""Tests for publishing to Cloudflare Pages through the wrangler CLI.

subprocess.run is mocked; no wrangler binary is needed.
"""

import subprocess
from unittest.mock import MagicMock, patch

from app.services.publish_service import delete_project, deploy_site, project_name_for


def _proc(returncode=0, stdout="", stderr=""):
    proc = MagicMock()
    proc.returncode = returncode
    proc.stdout = stdout
    proc.stderr = stderr
    return proc


DEPLOY_OUTPUT = (
    "Uploading... (1/1)\n"
    "✨ Success! Uploaded 1 files\n"
    "✨ Deployment complete! Take a peek over at https://a1b2c3.llc-acme-roofing.pages.dev\n"
)


class TestDeploySite:
    @patch("app.services.publish_service.subprocess.run")
    def test_success(self, mock_run):
        mock_run.side_effect = [_proc(0), _proc(0, stdout=DEPLOY_OUTPUT)]

        result = deploy_site("acme-roofing", "<html>hi</html>")

        assert result["success"] is True
        assert result["error"] is None
        assert result["project_name"] == "llc-acme-roofing"
        assert result["url"] == "https://acme-roofing.llc-us.com"
        assert result["pages_url"] == "https://a1b2c3.llc-acme-roofing.pages.dev"

        create_cmd = mock_run.call_args_list[0][0][0]
        assert create_cmd[:2] == ["npx", "wrangler"]
        assert create_cmd[2:5] == ["pages", "project", "create"]

        deploy_cmd = mock_run.call_args_list[1][0][0]
        assert deploy_cmd[2:4] == ["pages", "deploy"]
        assert "--project-name=llc-acme-roofing" in deploy_cmd

        env = mock_run.call_args_list[1][1]["env"]
        assert env["CLOUDFLARE_API_TOKEN"] == "cf_token_test"
        assert env["CLOUDFLARE_ACCOUNT_ID"] == "cf_account_test"
        assert mock_run.call_args_list[1][1]["timeout"] == 120

    @patch("app.services.publish_service.subprocess.run")
    def test_existing_project_is_fine(self, mock_run):
        mock_run.side_effect = [
            _proc(1, stderr="A project with this name already exists"),
            _proc(0, stdout="done"),
        ]

        result = deploy_site("acme-roofing", "<html></html>")
        assert result["success"] is True
        assert result["pages_url"] == "https://llc-acme-roofing.pages.dev"

    @patch("app.services.publish_service.subprocess.run")
    def test_writes_index_html(self, mock_run):
        written = {}

        def fake_run(cmd, **kwargs):
            if cmd[2:4] == ["pages", "deploy"]:
                with open(f"{cmd[4]}/index.html", encoding="utf-8") as f:
                    written["html"] = f.read()
            return _proc(0)

        mock_run.side_effect = fake_run
        deploy_site("acme-roofing", "<html>Smith Electric</html>")
        assert written["html"] == "<html>Smith Electric</html>"

    @patch("app.services.publish_service.subprocess.run")
    def test_nonzero_exit(self, mock_run):
        mock_run.side_effect = [_proc(0), _proc(1, stderr="Authentication error [code: 10000]")]

        result = deploy_site("acme-roofing", "<html></html>")
        assert result["success"] is False
        assert result["url"] is None
        assert result["error"].startswith("wrangler exited with 1")
        assert "Authentication error" in result["error"]

    @patch("app.services.publish_service.subprocess.run")
    def test_timeout(self, mock_run):
        mock_run.side_effect = [
            _proc(0),
            subprocess.TimeoutExpired(cmd="wrangler", timeout=120),
        ]

        result = deploy_site("acme-roofing", "<html></html>")
        assert result["success"] is False
        assert result["error"] == "wrangler timed out after 120s"

    @patch("app.services.publish_service.subprocess.run")
    def test_missing_binary(self, mock_run):
        mock_run.side_effect = FileNotFoundError("npx")

        result = deploy_site("acme-roofing", "<html></html>")
        assert result["success"] is False
        assert "Could not run wrangler" in result["error"]


class TestDeleteProject:
    @patch("app.services.publish_service.subprocess.run")
    def test_success(self, mock_run):
        mock_run.return_value = _proc(0)
        assert delete_project("llc-acme-roofing") is True
        cmd = mock_run.call_args[0][0]
        assert cmd[2:] == ["pages", "project", "delete", "llc-acme-roofing", "--yes"]

    @patch("app.services.publish_service.subprocess.run")
    def test_failure(self, mock_run):
        mock_run.return_value = _proc(1, stderr="not found")
        assert delete_project("llc-acme-roofing") is False

    @patch("app.services.publish_service.subprocess.run")
    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="wrangler", timeout=120)
        assert delete_project("llc-acme-roofing") is False


def test_project_name_uses_prefix():
    assert project_name_for("acme-roofing") == "llc-acme-roofing"
