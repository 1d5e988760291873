"""
Input validation utilities for ColdCopy Local
"""

import re
import urllib.parse
from typing import Any, Dict, List, Optional
import logging

from ..config.settings import map_copy_length, parse_follow_up_count


_UNSUPPORTED_SCHEME = re.compile(r'^(mailto:|tel:|javascript:|data:)', re.IGNORECASE)
_HTTP_SCHEME = re.compile(r'^https?://', re.IGNORECASE)

JOB_SETTING_FIELDS = (
    'valueProp', 'callToAction', 'subject', 'followUpPrompts',
    'tone', 'length', 'customLength', 'instructions',
)

SINGLE_REQUEST_FIELDS = (
    'recipientName', 'recipientRole', 'companyName', 'companyUrl', 'activityText',
    'valueProp', 'callToAction', 'subject', 'followUpCount', 'followUpPrompts',
    'tone', 'length', 'customLength', 'instructions',
    'senderName', 'senderTitle', 'senderCompany',
)


def _blank(value: Any) -> bool:
    return not str(value if value is not None else '').strip()


class InputValidator:
    """
    Validates job settings, single-copy requests, runtime configuration and URLs.
    """

    def __init__(self):
        self.logger = logging.getLogger("coldcopy.validator")

    def validate_url(self, url: str) -> bool:
        """
        Validate URL format.

        Args:
            url: URL string to validate

        Returns:
            True if URL is a well formed http(s) URL, False otherwise
        """
        if not url or not isinstance(url, str):
            return False

        try:
            parsed = urllib.parse.urlparse(url)

            if not parsed.scheme or not parsed.netloc:
                return False

            if parsed.scheme.lower() not in ['http', 'https']:
                return False

            domain = (parsed.hostname or '').lower()
            if not re.match(r'^[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$', domain):
                return False

            return True

        except ValueError as e:
            self.logger.debug(f"URL validation failed for {url}: {str(e)}")
            return False

    def normalize_website_url(self, raw_url: Optional[str]) -> str:
        """
        Normalize a website cell from an upload.

        ``mailto:``, ``tel:``, ``javascript:`` and ``data:`` values become
        blank, a missing scheme gets ``https://``, and unparsable values
        become blank. Paths are preserved.

        Args:
            raw_url: Cell value

        Returns:
            Normalized URL or an empty string
        """
        raw = str(raw_url or '').strip()
        if not raw or _UNSUPPORTED_SCHEME.match(raw):
            return ''

        candidate = raw if _HTTP_SCHEME.match(raw) else f"https://{raw}"
        try:
            parsed = urllib.parse.urlparse(candidate)
        except ValueError:
            return ''

        if parsed.scheme.lower() not in ('http', 'https') or not parsed.netloc or re.search(r'\s', parsed.netloc):
            return ''
        if not parsed.path:
            parsed = parsed._replace(path='/')
        return urllib.parse.urlunparse(parsed)

    def looks_like_single_url(self, value: Optional[str]) -> bool:
        """A value without whitespace that contains a dot is taken as a URL, anything else as pasted context."""
        s = str(value or '').strip()
        if not s or re.search(r'\s', s):
            return False
        return '.' in s

    def validate_job_settings(self, settings: Dict[str, Any]) -> List[str]:
        """
        Validate bulk job settings.

        Args:
            settings: Settings with camelCase keys as stored on the job

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        required_fields = {
            'valueProp': 'Offer summary',
            'callToAction': 'Call to action',
            'tone': 'Tone',
            'length': 'Copy length',
        }
        for field, description in required_fields.items():
            if _blank(settings.get(field)):
                errors.append(f"{description} is required")

        try:
            parse_follow_up_count(settings.get('followUpCount'))
        except ValueError:
            errors.append("Follow-up count must be a number >= 0")

        return errors

    def normalize_job_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        """
        Trim settings into the stored shape. Call after validate_job_settings.

        Returns:
            Settings dictionary ready for ``settings_json``
        """
        normalized = {
            field: str(settings.get(field) if settings.get(field) is not None else '').strip()
            for field in JOB_SETTING_FIELDS
        }
        normalized['followUpCount'] = parse_follow_up_count(settings.get('followUpCount'))
        return normalized

    def validate_single_request(self, request: Dict[str, Any]) -> List[str]:
        """
        Validate a single-copy request.

        Args:
            request: Request fields with camelCase keys

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        unknown = sorted(set(request.keys()) - set(SINGLE_REQUEST_FIELDS))
        if unknown:
            errors.append(f"Unknown fields: {', '.join(unknown)}")

        if _blank(request.get('recipientName')):
            errors.append("Recipient first name is required")
        if _blank(request.get('companyName')):
            errors.append("Company name is required")
        if _blank(request.get('callToAction')):
            errors.append("Call to action is required")
        if _blank(request.get('tone')):
            errors.append("Tone is required")
        if any(_blank(request.get(field)) for field in ('senderName', 'senderTitle', 'senderCompany')):
            errors.append("Sender name, title, and company are required")

        if _blank(request.get('activityText')) and _blank(request.get('companyUrl')):
            errors.append("Please add activity context (URL or pasted text).")

        try:
            parse_follow_up_count(request.get('followUpCount'))
        except ValueError:
            errors.append("Follow-up count must be a number >= 0")

        try:
            map_copy_length(request.get('length'), request.get('customLength'), strict=True)
        except ValueError:
            errors.append("Custom word count must be a positive number")

        return errors

    def validate_runtime_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Validate runtime configuration values.

        Args:
            config: Configuration dictionary from ``api.build_config``

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        positive_ints = {
            'worker_concurrency': 'Worker concurrency',
            'scrape_concurrency': 'Scrape concurrency',
            'scrape_timeout_ms': 'Scrape timeout',
            'ai_timeout_ms': 'AI timeout',
            'max_scraped_chars': 'Max scraped chars',
        }
        for field, description in positive_ints.items():
            value = config.get(field)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                errors.append(f"{description} must be a positive integer")

        if not config.get('data_dir'):
            errors.append("Missing required configuration: data_dir")

        base_url = config.get('llm_base_url')
        if base_url and not _HTTP_SCHEME.match(str(base_url)):
            errors.append("LLM base URL must start with http:// or https://")

        proxy = config.get('scrape_proxy_url')
        if proxy and '://' not in str(proxy):
            errors.append("Scrape proxy URL must include a scheme")

        return errors
