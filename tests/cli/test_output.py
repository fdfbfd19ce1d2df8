"""Tests for CLI output formatting."""

import json

import pytest

from willregistry.cli.output import (
    format_fix_preview,
    format_issue_table,
    format_job_detail,
    format_job_errors,
    format_job_table,
    format_progress,
    format_validation_stats,
)
from willregistry.services.bulk_fix import preview_postcode_fix
from willregistry.services.column_mapping import detect_column_mapping
from willregistry.services.field_catalog import FIELD_NAMES
from willregistry.services.job_service import JobService
from willregistry.services.row_validator import ValidationStats, validate_rows


@pytest.fixture
def job(db_session, record_factory):
    service = JobService(db_session)
    created = service.create_job(
        file_name="wills.csv",
        firm_id="FIRM-1",
        firm_name="Smith & Co",
        user_id="jane@smith.example",
        user_name="Jane Smith",
        data=[record_factory(i) for i in range(4)],
    )
    service.start_job(created.id)
    service.record_progress(created.id, 1, 3, 1)
    return service.complete_job(
        created.id, 3, 1, [{"row": 2, "reason": "Duplicate will", "data": record_factory(2)}]
    )


class TestFormatJobTable:
    """Tests for job list rendering."""

    def test_renders_jobs_as_text(self, job):
        output = format_job_table([job])
        assert job.id in output
        assert "wills.csv" in output
        assert "complete" in output
        assert "4/4 (100%)" in output

    def test_renders_jobs_as_json(self, job):
        parsed = json.loads(format_job_table([job], as_json=True))
        assert parsed[0]["id"] == job.id
        assert parsed[0]["failed_records"] == 1
        assert "errors" not in parsed[0]

    def test_empty(self):
        assert format_job_table([]) == "No jobs found."


class TestFormatJobDetail:
    def test_text_includes_activity(self, job):
        output = format_job_detail(job)
        assert "Job Detail" in output
        assert "Smith & Co (FIRM-1)" in output
        assert "Job completed: 3 successful, 1 failed" in output

    def test_json(self, job):
        parsed = json.loads(format_job_detail(job, as_json=True))
        assert parsed["status"] == "complete"
        assert parsed["errors"][0]["reason"] == "Duplicate will"
        assert parsed["activity_log"][-1]["message"].startswith("Job completed")


def test_format_job_errors(job):
    output = format_job_errors(job)
    assert "Failed Records (1)" in output
    assert "Testator Number2" in output
    assert "Duplicate will" in output


def test_format_progress(job):
    assert format_progress(job) == "100%"


class TestValidationOutput:
    @pytest.fixture
    def rows(self, record_factory):
        mappings = detect_column_mapping(list(FIELD_NAMES))
        return validate_rows([record_factory(), record_factory(postcode="sw1a1aa")], mappings)

    def test_stats_with_recommendation(self):
        output = format_validation_stats(ValidationStats(total=100, valid=40, warnings=0, errors=60))
        assert "Errors:" in output
        assert "60" in output
        assert "Recommendation:" in output

    def test_stats_without_errors(self):
        output = format_validation_stats(ValidationStats(total=2, valid=2, warnings=0, errors=0))
        assert "Recommendation" not in output

    def test_issue_table(self, rows):
        output = format_issue_table(rows)
        assert "Postcode format issue" in output
        assert "SW1A 1AA" in output
        assert "E-2002" in output

    def test_issue_table_empty(self, rows):
        assert format_issue_table(rows[:1]) == "No issues found."

    def test_fix_preview(self, rows):
        output = format_fix_preview(preview_postcode_fix(rows))
        assert "sw1a1aa" in output
        assert "SW1A 1AA" in output

    def test_fix_preview_empty(self, rows):
        assert format_fix_preview(preview_postcode_fix(rows[:1])) == "No postcode issues to fix."
