"""Tests for the command line interface.

The remote client is replaced by a mock that "downloads" by writing local
files, so the real LocalFileSystem is exercised end to end.
"""

import json
from unittest.mock import Mock, patch

import pytest
from typer.testing import CliRunner

from table_export import __version__
from table_export.adapters.filesystem import LocalFileSystem
from table_export.cli import app
from table_export.domain.models import BulkFileDownloadResponse, FileDownloadSummary
from table_export.domain.ports import RemoteServiceError, RemoteTablePort
from table_export.infrastructure.config_manager import RemoteClientConfig
from table_export.infrastructure.settings import settings

runner = CliRunner()

TABLE_CSV = "healthCode,photo,answer\nabc123,fh1,yes\nabc123,,no\n"


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch("table_export.cli.setup_logging"):
        yield


@pytest.fixture
def schema_file(tmp_path):
    path = tmp_path / "schema.json"
    path.write_text(json.dumps({
        "key": {"studyId": "study", "schemaId": "survey", "revision": 2},
        "fieldTypeMap": {"photo": "attachment_blob", "answer": "string"},
    }))
    return path


def make_remote(csv_content):
    remote = Mock(spec=RemoteTablePort)
    remote.generate_file_handle_from_table_query.return_value = "csv-fh"
    remote.generate_bulk_download_file_handle.return_value = BulkFileDownloadResponse(
        result_zip_file_handle_id="zip-fh",
        file_summary=[FileDownloadSummary(file_handle_id="fh1", zip_entry_name="1/photo.jpg")],
    )
    contents = {"csv-fh": csv_content, "zip-fh": "zip bytes"}

    def download(file_handle_id, destination):
        destination.write_text(contents[file_handle_id])

    remote.download_file_handle.side_effect = download
    return remote


def invoke_export(schema_file, *extra_args, start="2024-01-01", end="2024-01-31"):
    return runner.invoke(
        app,
        ["export", "syn123", "abc123", start, end, "--schema", str(schema_file), *extra_args],
    )


class TestExportCommand:
    """Test the export command."""

    def test_export_with_attachments(self, tmp_path, schema_file):
        out_dir = tmp_path / "out"
        remote = make_remote(TABLE_CSV)

        with patch("table_export.cli.create_remote_client", return_value=remote):
            result = invoke_export(schema_file, "--output-dir", str(out_dir))

        assert result.exit_code == 0, result.output
        assert "Export completed successfully" in result.output
        assert sorted(p.name for p in out_dir.iterdir()) == ["study-survey-v2.csv", "study-survey-v2.zip"]
        assert (out_dir / "study-survey-v2.csv").read_text() == "healthCode,photo,answer\n,1/photo.jpg,yes\n,,no\n"
        assert "abc123" not in result.output

    def test_export_without_attachments(self, tmp_path, schema_file):
        out_dir = tmp_path / "out"
        remote = make_remote("healthCode,photo,answer\nabc123,,yes\n")

        with patch("table_export.cli.create_remote_client", return_value=remote):
            result = invoke_export(schema_file, "-o", str(out_dir))

        assert result.exit_code == 0, result.output
        assert "no zip produced" in result.output
        assert [p.name for p in out_dir.iterdir()] == ["study-survey-v2.csv"]
        remote.generate_bulk_download_file_handle.assert_not_called()

    def test_no_data_removes_temp_dir(self, tmp_path, schema_file):
        """Test that a temp dir created by the command is removed when there is no data."""
        temp_root = tmp_path / "tmp"
        temp_root.mkdir()
        remote = make_remote("healthCode,photo,answer\n")

        with patch.object(settings, "temp_dir", temp_root), \
                patch("table_export.cli.create_remote_client", return_value=remote):
            result = invoke_export(schema_file)

        assert result.exit_code == 0, result.output
        assert "No data found" in result.output
        assert list(temp_root.iterdir()) == []

    def test_remote_failure(self, tmp_path, schema_file):
        out_dir = tmp_path / "out"
        remote = make_remote(TABLE_CSV)
        remote.generate_file_handle_from_table_query.side_effect = RemoteServiceError(
            "Remote request failed with HTTP 403", status_code=403
        )

        with patch("table_export.cli.create_remote_client", return_value=remote):
            result = invoke_export(schema_file, "-o", str(out_dir))

        assert result.exit_code == 1
        assert "Export failed" in result.output
        assert list(out_dir.iterdir()) == []

    def test_failure_with_undeletable_temp_dir(self, tmp_path, schema_file):
        """Test that a temp dir left non-empty still ends in exit code 1, not a traceback."""
        temp_root = tmp_path / "tmp"
        temp_root.mkdir()
        remote = make_remote(TABLE_CSV)
        remote.generate_file_handle_from_table_query.side_effect = RemoteServiceError("forbidden", status_code=403)

        with patch.object(settings, "temp_dir", temp_root), \
                patch("table_export.cli.create_remote_client", return_value=remote), \
                patch.object(LocalFileSystem, "delete_dir", side_effect=OSError("Directory not empty")):
            result = invoke_export(schema_file)

        assert result.exit_code == 1
        assert "Export failed" in result.output
        assert "Could not remove temp directory" in result.output
        assert not isinstance(result.exception, OSError)

    def test_inverted_date_range(self, tmp_path, schema_file):
        with patch("table_export.cli.create_remote_client") as create:
            result = invoke_export(schema_file, "-o", str(tmp_path / "out"), start="2024-02-01", end="2024-01-01")

        assert result.exit_code == 1
        assert "Invalid export parameters" in result.output
        create.assert_not_called()

    def test_bad_date_format(self, schema_file):
        result = invoke_export(schema_file, start="01/01/2024")
        assert result.exit_code == 2

    def test_invalid_schema_file(self, tmp_path):
        schema_file = tmp_path / "schema.json"
        schema_file.write_text("{not json")

        result = invoke_export(schema_file)

        assert result.exit_code == 1
        assert "Invalid schema file" in result.output


class TestInfoAndVersion:
    """Test the info command and --version."""

    def test_info_masks_token(self):
        config = RemoteClientConfig(endpoint="https://synapse.example.org", auth_token="very-secret")
        with patch.object(settings, "_remote_config", config):
            result = runner.invoke(app, ["info"])

        assert result.exit_code == 0, result.output
        assert "https://synapse.example.org" in result.output
        assert "********" in result.output
        assert "very-secret" not in result.output

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"Table-Export v{__version__}" in result.output
