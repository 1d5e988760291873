from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from coldcopy_local.utils.data_manager import LocalDataManager
from coldcopy_local.utils.llm_client import CompletionError
from coldcopy_local.utils.scraper import ScrapeError


class FakeCompletionClient:
    """
    Scripted stand-in for CompletionClient.

    ``responses`` is consumed in order; a callable entry is called with
    ``(prompt, request_id)``. Request ids listed in ``fail_on`` raise
    CompletionError when their prefix matches.
    """

    def __init__(self, responses=None, default="", fail_on=()):
        self.responses = list(responses or [])
        self.default = default
        self.fail_on = tuple(fail_on)
        self.calls = []

    def complete(self, prompt, request_id=None):
        self.calls.append((prompt, request_id))
        if request_id and any(str(request_id).startswith(prefix) for prefix in self.fail_on):
            raise CompletionError(f"scripted failure for {request_id}")
        if self.responses:
            response = self.responses.pop(0)
        else:
            response = self.default
        if callable(response):
            return response(prompt, request_id)
        return response

    @property
    def request_ids(self):
        return [request_id for _, request_id in self.calls]


class FakeScraper:
    """Returns canned page text per URL; unknown URLs raise ScrapeError."""

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.scraped = []
        self.closed = False

    def scrape(self, url):
        self.scraped.append(url)
        if url not in self.pages:
            raise ScrapeError(f"Not able to open the URL or extract content: {url}")
        return self.pages[url]

    def close(self):
        self.closed = True


COMPANY_PAGE = (
    "Title: Acme Robotics\n\n"
    "Meta: Warehouse robots that pick, pack and ship.\n\n"
    "Headings: Autonomous picking | New Denver facility | Hiring robotics engineers\n\n"
    "Page Text:\nAcme Robotics builds autonomous picking robots for mid-size warehouses. "
    "This spring the team opened a Denver facility and is hiring twenty engineers."
)


@pytest.fixture
def data_manager(tmp_path):
    """Provide an isolated LocalDataManager instance backed by a temporary directory."""
    LocalDataManager._initialized_databases.clear()
    LocalDataManager._initialization_lock = False
    return LocalDataManager(data_dir=str(tmp_path))


@pytest.fixture
def base_config(tmp_path):
    return {
        "data_dir": str(tmp_path),
        "llm_api_key": None,
        "worker_concurrency": 2,
        "scrape_concurrency": 2,
        "scrape_timeout_ms": 1000,
        "ai_timeout_ms": 1000,
        "max_scraped_chars": 6000,
        "log_activity_context": False,
        "log_bulk_prompt": False,
    }


@pytest.fixture
def job_settings():
    return {
        "valueProp": "We cut pick errors in half",
        "callToAction": "Open to a 15 minute call next week?",
        "subject": "",
        "followUpCount": 2,
        "followUpPrompts": "",
        "tone": "Friendly & Conversational",
        "length": "Short",
        "customLength": "",
        "instructions": "",
    }


@pytest.fixture
def prospects_csv(tmp_path):
    path = tmp_path / "prospects.csv"
    path.write_text(
        "First Name,Last Name,Company,Website,Activity Context\n"
        "Dana,Lee,Acme Robotics,acme.example.com,\n"
        "Sam,Ortiz,Globex,,Posted about scaling their support team to three shifts\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def company_page():
    return COMPANY_PAGE


def create_job_with_rows(data_manager, settings, rows, stored_path="unused.csv"):
    """Insert a file, a job and its prospect rows; returns (job_id, prospect_ids)."""
    file_id = data_manager.save_file(
        "prospects.csv", stored_path, ["First Name", "Last Name", "Company", "Website"], {}
    )
    job_id = data_manager.create_job(file_id, settings)
    prospect_rows = []
    for row in rows:
        prospect = {"first_name": "Dana", "last_name": "Lee", "company": "Acme", "website": "", "activity_context": ""}
        prospect.update(row)
        prospect.setdefault("original_row", {})
        prospect_rows.append(prospect)
    data_manager.insert_job_rows(job_id, file_id, prospect_rows)
    return job_id, data_manager.list_pending_prospect_ids(job_id)
