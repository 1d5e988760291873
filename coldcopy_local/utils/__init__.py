"""
ColdCopy Utilities - Common utilities and helper functions
"""

from .data_manager import LocalDataManager
from .llm_client import CompletionClient, CompletionError, normalize_llm_base_url
from .validators import InputValidator
from .logger import setup_logging
from .scraper import ScrapeError, WebsiteScraper
from .email_parser import EmailBlock, EmailKind, parse_emails, format_emails
from .file_ingest import UploadValidationError, store_upload
from .output_helpers import write_export_csv

__all__ = [
    'LocalDataManager',
    'CompletionClient',
    'CompletionError',
    'normalize_llm_base_url',
    'InputValidator',
    'setup_logging',
    'ScrapeError',
    'WebsiteScraper',
    'EmailBlock',
    'EmailKind',
    'parse_emails',
    'format_emails',
    'UploadValidationError',
    'store_upload',
    'write_export_csv',
]
