"""Tests for the batch export runner.

Multiple independent exports share one file system and one remote client;
each one gets its own result, in request order.
"""

from datetime import date
from unittest.mock import Mock, patch

import pytest

from table_export.adapters.filesystem import InMemoryFileSystem
from table_export.adapters.remote import SynapseRestClient
from table_export.domain.models import (
    DownloadFromTableParameters,
    ExportResult,
    UploadSchema,
    UploadSchemaKey,
)
from table_export.domain.ports import AsyncTaskExecutionError, RemoteServiceError, RemoteTablePort
from table_export.infrastructure.config_manager import RemoteClientConfig
from table_export.main import create_remote_client, process_export, run_exports

SCHEMA = UploadSchema(
    key=UploadSchemaKey(study_id="study", schema_id="survey", revision=1),
    field_type_map={"answer": "string"},
)

TABLE_CONTENTS = {
    "synData": "healthCode,answer\nabc123,yes\n",
    "synEmpty": "healthCode,answer\n",
}


@pytest.fixture
def fs():
    return InMemoryFileSystem()


@pytest.fixture
def remote(fs):
    """Mock remote whose tables are TABLE_CONTENTS; any other table ID is rejected."""
    remote = Mock(spec=RemoteTablePort)

    def query(sql, table_id):
        if table_id not in TABLE_CONTENTS:
            raise RemoteServiceError(f"Table {table_id} not found", status_code=404)
        return f"{table_id}-csv"

    def download(file_handle_id, destination):
        fs.write_text(destination, TABLE_CONTENTS[file_handle_id[:-len("-csv")]])

    remote.generate_file_handle_from_table_query.side_effect = query
    remote.download_file_handle.side_effect = download
    return remote


def make_params(fs, table_id):
    return DownloadFromTableParameters(
        synapse_table_id=table_id,
        health_code="abc123",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        upload_schema=SCHEMA,
        temp_dir=fs.create_temp_dir(),
    )


class TestProcessExport:
    """Test a single export run."""

    def test_with_data(self, fs, remote):
        params = make_params(fs, "synData")
        result = process_export(params, file_system=fs, remote=remote)
        assert result.csv_file == params.temp_dir / "study-survey-v1.csv"
        assert fs.read_text(result.csv_file) == "healthCode,answer\n,yes\n"

    def test_no_data(self, fs, remote):
        result = process_export(make_params(fs, "synEmpty"), file_system=fs, remote=remote)
        assert result == ExportResult.empty()
        assert fs.file_paths() == []

    def test_failure_raises(self, fs, remote):
        with pytest.raises(AsyncTaskExecutionError):
            process_export(make_params(fs, "synMissing"), file_system=fs, remote=remote)


class TestRunExports:
    """Test the concurrent batch runner."""

    def test_results_in_request_order(self, fs, remote):
        """Test that a failed export does not affect the others."""
        params_list = [
            make_params(fs, "synData"),
            make_params(fs, "synMissing"),
            make_params(fs, "synEmpty"),
            make_params(fs, "synData"),
        ]

        results = run_exports(params_list, file_system=fs, remote=remote, max_workers=2)

        assert [r.is_success() for r in results] == [True, False, True, True]
        assert results[0].value.csv_file == params_list[0].temp_dir / "study-survey-v1.csv"
        assert results[2].value.is_empty
        assert results[3].value.csv_file == params_list[3].temp_dir / "study-survey-v1.csv"

        failure = results[1]
        assert failure.error_type == "AsyncTaskExecutionError"
        assert "synMissing" in failure.error
        assert failure.error_details == {
            "request_index": 1,
            "synapse_table_id": "synMissing",
            "schema_key": "study-survey-v1",
        }
        assert not any(path.parent == params_list[1].temp_dir for path in fs.file_paths())

    def test_empty_batch(self, fs, remote):
        assert run_exports([], file_system=fs, remote=remote) == []
        remote.generate_file_handle_from_table_query.assert_not_called()

    def test_default_remote_is_created(self, fs, remote):
        with patch("table_export.main.create_remote_client", return_value=remote) as create:
            results = run_exports([make_params(fs, "synData")], file_system=fs)
        create.assert_called_once_with(fs)
        assert results[0].is_success()


class TestCreateRemoteClient:
    """Test remote client wiring."""

    def test_explicit_config(self, fs):
        config = RemoteClientConfig(endpoint="https://synapse.example.org")
        client = create_remote_client(fs, config=config)
        assert isinstance(client, SynapseRestClient)
