"""Tests for the command-line entry point."""

import json
import os
from unittest.mock import patch

import pytest
import yaml
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError

from dataload import cli
from dataload.ingestion.error_logger import get_load_errors
from dataload.utils.database_client import reset_engine


@pytest.fixture(autouse=True)
def fresh_engine():
    """Drop the cached engine so each test sees its own database."""
    reset_engine()
    yield
    reset_engine()


@pytest.fixture
def database_url(tmp_path, clean_env):
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    with patch.dict(os.environ, {"DATALOAD_DATABASE_URL": url}):
        yield url


@pytest.fixture
def job_file(tmp_path, orders_csv):
    data = {
        "name": "daily_orders",
        "source": {"type": "delimited", "path": os.path.basename(orders_csv), "first_row": 2},
        "target": {"table": "orders"},
        "schema": {
            "fields": [
                {"name": "order_id", "type": "integer", "nullable": False},
                {"name": "customer_id", "type": "string"},
                {"name": "order_date", "type": "date"},
                {"name": "amount", "type": "decimal", "precision": 10, "scale": 2},
                {"name": "status", "type": "string"},
            ]
        },
        "bulk_copy": {"server": "sql01", "database": "sales", "trusted_connection": True},
    }
    path = tmp_path / "orders.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


def _with_predicate(job_file):
    data = yaml.safe_load(job_file.read_text())
    data["validation"] = {"predicates": [{"description": "Non-negative", "condition": "amount >= 0"}]}
    job_file.write_text(yaml.safe_dump(data))


class TestCli:
    """Tests for cli.main."""

    def test_run_success(self, database_url, job_file, capsys):
        exit_code = cli.main(["--database-url", database_url, "run", str(job_file)])

        assert exit_code == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["rows_written"] == 4
        assert summary["validation_passed"] is True

    def test_run_with_violations_fails(self, database_url, job_file, capsys):
        _with_predicate(job_file)

        exit_code = cli.main(["--database-url", database_url, "run", str(job_file)])

        assert exit_code == 1
        summary = json.loads(capsys.readouterr().out)
        assert summary["validation_passed"] is False
        assert len(summary["violations"]) == 1

    def test_run_invalid_job(self, database_url, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("name: broken\n")

        assert cli.main(["--database-url", database_url, "run", str(bad)]) == 1

    def test_run_source_failure(self, database_url, job_file, tmp_path):
        os.unlink(tmp_path / "orders.csv")

        assert cli.main(["--database-url", database_url, "run", str(job_file)]) == 1

    def test_init_and_errors(self, database_url, job_file, capsys):
        assert cli.main(["--database-url", database_url, "init"]) == 0
        assert cli.main(["--database-url", database_url, "errors"]) == 0
        assert "No load errors logged" in capsys.readouterr().out

        _with_predicate(job_file)
        cli.main(["--database-url", database_url, "run", str(job_file)])
        capsys.readouterr()

        assert cli.main(["--database-url", database_url, "errors", "--source", "orders.csv"]) == 0
        assert "Non-negative" in capsys.readouterr().out

    def test_errors_use_configured_database(self, database_url, job_file):
        _with_predicate(job_file)

        cli.main(["run", str(job_file)])

        engine = create_engine(database_url)
        try:
            assert len(get_load_errors(engine=engine)) == 1
        finally:
            engine.dispose()

    def test_infer_schema(self, clean_env, orders_csv, capsys):
        assert cli.main(["infer-schema", orders_csv]) == 0

        schema = yaml.safe_load(capsys.readouterr().out)
        types = {f["name"]: f["type"] for f in schema["fields"]}
        assert types == {
            "order_id": "integer",
            "customer_id": "string",
            "order_date": "date",
            "amount": "float",
            "status": "string",
        }

    def test_infer_schema_missing_file(self, clean_env):
        assert cli.main(["infer-schema", "/nonexistent/orders.csv"]) == 1

    @patch("dataload.cli.run_bulk_copy")
    def test_bcp(self, mock_bcp, clean_env, job_file, capsys):
        mock_bcp.return_value = 4

        assert cli.main(["bcp", str(job_file), "--timeout", "60"]) == 0

        options = mock_bcp.call_args[0][0]
        assert options.table == "orders"
        assert options.first_row == 2
        assert mock_bcp.call_args[1] == {"timeout": 60}
        assert json.loads(capsys.readouterr().out)["rows_copied"] == 4

    @patch("dataload.loaders.bulk_copy.subprocess.run")
    def test_bcp_without_credentials(self, mock_run, clean_env, job_file):
        data = yaml.safe_load(job_file.read_text())
        data["bulk_copy"] = {"server": "sql01", "database": "sales"}
        job_file.write_text(yaml.safe_dump(data))

        assert cli.main(["bcp", str(job_file)]) == 1
        mock_run.assert_not_called()

    def test_errors_before_init(self, database_url, capsys):
        assert cli.main(["--database-url", database_url, "errors"]) == 1
        assert "No load errors logged" not in capsys.readouterr().out

    def test_run_invalid_source_option(self, database_url, job_file):
        data = yaml.safe_load(job_file.read_text())
        data["source"]["first_row"] = 0
        job_file.write_text(yaml.safe_dump(data))

        assert cli.main(["--database-url", database_url, "run", str(job_file)]) == 1

    @patch("dataload.cli.get_engine")
    def test_database_error(self, mock_engine, database_url):
        mock_engine.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))

        assert cli.main(["--database-url", database_url, "init"]) == 1

    def test_invalid_environment(self, capsys):
        with patch.dict(os.environ, {"DATALOAD_WRITE_MODE": "fast"}):
            assert cli.main(["init"]) == 2
        assert "Write mode must be one of" in capsys.readouterr().err

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.main([])
