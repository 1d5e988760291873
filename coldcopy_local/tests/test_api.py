from pathlib import Path
import sys

import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from conftest import FakeCompletionClient, FakeScraper

from coldcopy_local.api import (
    ConfigValidationError,
    ResourceNotFoundError,
    build_config,
    delete_job,
    export_job_csv,
    generate_single,
    get_job_rows,
    get_job_status,
    list_jobs,
    pause_job,
    prepare_data_directory,
    resume_job,
    run_job,
    start_job,
    upload_file,
    validate_config,
)


SINGLE_EMAIL = (
    "Subject: Denver ramp for Acme\n\n"
    "Hi Dana,\n\nCongrats on the Denver facility.\n\nRamp ups bring pick errors.\n\nOpen to a call?"
)


@pytest.fixture
def config(tmp_path, data_manager):
    return build_config({"data_dir": str(tmp_path)}, environ={})


@pytest.fixture
def uploaded(config, data_manager, prospects_csv):
    return upload_file(config, str(prospects_csv), data_manager=data_manager)


def test_build_config_layers_env_and_options(tmp_path):
    config = build_config(
        {"data_dir": str(tmp_path), "worker_concurrency": 6, "log_level": "debug"},
        environ={"DEEPSEEK_API_KEY": "sk-env", "WORKER_CONCURRENCY": "4", "LOG_BULK_PROMPT": "1"},
    )

    assert config["llm_api_key"] == "sk-env"
    assert config["worker_concurrency"] == 6
    assert config["log_bulk_prompt"] is True
    assert config["log_level"] == "DEBUG"
    assert config["llm_base_url"] == "https://api.deepseek.com"
    assert config["run_id"].startswith("coldcopy_")
    assert config["output_format"] == "json"


def test_validate_config_reports_bad_values(tmp_path):
    config = build_config({"data_dir": str(tmp_path), "worker_concurrency": 0, "llm_base_url": "ftp://x"},
                          environ={})

    valid, errors = validate_config(config)

    assert not valid
    assert "Worker concurrency must be a positive integer" in errors
    assert "LLM base URL must start with http:// or https://" in errors


def test_prepare_data_directory_sets_default_log(tmp_path):
    config = build_config({"data_dir": str(tmp_path / "session-data")}, environ={})

    data_dir = prepare_data_directory(config)

    assert (data_dir / "uploads").is_dir()
    assert Path(config["log_file"]).parent == (data_dir / "logs").resolve()
    assert Path(config["log_file"]).name == f"coldcopy_{config['run_id']}.log"


def test_upload_file_returns_preview(uploaded):
    assert uploaded["file"]["original_filename"] == "prospects.csv"
    assert uploaded["file"]["total_rows"] == 2
    assert uploaded["file"]["column_map"]["website"] == "Website"
    assert len(uploaded["preview"]) == 2


def test_upload_file_validation_error(config, data_manager, tmp_path):
    bad = tmp_path / "bad.csv"
    bad.write_text("Name\nDana\n", encoding="utf-8")

    with pytest.raises(ConfigValidationError, match="Missing required columns"):
        upload_file(config, str(bad), data_manager=data_manager)


def test_start_job_creates_queued_rows_and_reuses(config, data_manager, uploaded, job_settings):
    file_id = uploaded["file"]["id"]

    started = start_job(config, file_id, job_settings, data_manager=data_manager)

    job = started["job"]
    assert not started["reused"]
    assert job["status"] == "queued"
    assert job["total_rows"] == 2
    assert job["settings"]["followUpCount"] == 2
    prospects = data_manager.get_job_outputs(job["id"])
    assert prospects[0]["website"] == "https://acme.example.com/"
    assert prospects[1]["activity_context"].startswith("Posted about scaling")

    again = start_job(config, file_id, job_settings, data_manager=data_manager)
    assert again["reused"]
    assert again["job"]["id"] == job["id"]


def test_start_job_validates(config, data_manager, uploaded, job_settings):
    job_settings["tone"] = ""
    with pytest.raises(ConfigValidationError, match="Tone is required"):
        start_job(config, uploaded["file"]["id"], job_settings, data_manager=data_manager)

    job_settings["tone"] = "Casual"
    with pytest.raises(ResourceNotFoundError):
        start_job(config, 999, job_settings, data_manager=data_manager)


def test_job_lifecycle(config, data_manager, uploaded, job_settings, company_page, tmp_path):
    job_settings["followUpCount"] = 0
    job_id = start_job(config, uploaded["file"]["id"], job_settings, data_manager=data_manager)["job"]["id"]

    assert pause_job(config, job_id, data_manager=data_manager)["status"] == "paused"
    assert resume_job(config, job_id, data_manager=data_manager)["status"] == "running"

    job = run_job(
        config, job_id, timeout=30,
        llm_client=FakeCompletionClient(default=SINGLE_EMAIL),
        scraper=FakeScraper({"https://acme.example.com/": company_page}),
    )
    assert job["status"] == "completed"
    assert job["processed_rows"] == 2
    assert get_job_status(config, job_id, data_manager=data_manager)["status"] == "completed"
    assert resume_job(config, job_id, data_manager=data_manager)["status"] == "completed"
    assert [j["id"] for j in list_jobs(config, data_manager=data_manager)] == [job_id]

    page = get_job_rows(config, job_id, limit=500, offset=-3, data_manager=data_manager)
    assert page["limit"] == 200
    assert page["offset"] == 0
    assert [row["subject"] for row in page["rows"]] == ["Denver ramp for Acme"] * 2

    exported = export_job_csv(config, job_id, data_manager=data_manager)
    assert exported["path"] == str(tmp_path / "exports" / f"job_{job_id}_results.csv")
    df = pd.read_csv(exported["path"], dtype=str, keep_default_na=False)
    assert list(df["Company"]) == ["Acme Robotics", "Globex"]
    assert list(df["first_copy_subject"]) == ["Denver ramp for Acme"] * 2
    assert "followup_1_subject" not in df.columns

    assert delete_job(config, job_id, data_manager=data_manager)
    with pytest.raises(ResourceNotFoundError):
        get_job_status(config, job_id, data_manager=data_manager)


def test_unknown_job_raises(config, data_manager):
    for call in (get_job_status, pause_job, resume_job, delete_job, export_job_csv):
        with pytest.raises(ResourceNotFoundError):
            call(config, 42, data_manager=data_manager)


def test_generate_single(config, data_manager):
    request = {
        "recipientName": "Dana",
        "companyName": "Acme",
        "activityText": "Opened a Denver facility",
        "callToAction": "Open to a call?",
        "tone": "Casual",
        "senderName": "Sam",
        "senderTitle": "AE",
        "senderCompany": "Initech",
    }
    client = FakeCompletionClient([SINGLE_EMAIL])
    scraper = FakeScraper()

    result = generate_single(config, request, data_manager=data_manager, llm_client=client, scraper=scraper)

    assert result["subject"] == "Denver ramp for Acme"
    assert scraper.closed

    with pytest.raises(ConfigValidationError, match="Unknown fields: nickname"):
        generate_single(config, dict(request, nickname="D"), data_manager=data_manager)
