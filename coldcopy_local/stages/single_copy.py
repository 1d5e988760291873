"""
Single Copy Stage - Generates one email sequence for a manually entered prospect
"""

import re
import urllib.parse
from typing import Any, Dict, Optional

from .base_stage import BaseStage
from ..config.settings import get_tone_guidance, map_copy_length, parse_follow_up_count
from ..utils.email_parser import EmailBlock, EmailKind, HeaderStrategy, format_emails, parse_emails
from ..utils.llm_client import CompletionError
from ..utils.scraper import WebsiteScraper
from ..utils.validators import InputValidator


SINGLE_REQUEST_ID = "single_generate"
_HTTP_URL = re.compile(r'^https?://', re.IGNORECASE)


class SingleCopyStage(BaseStage):
    """
    One-off generation: the sender identity goes into the prompt and the
    emails are returned as generated, signature included.
    """

    def __init__(self, config: Dict[str, Any], data_manager=None, llm_client=None,
                 prompt_manager=None, scraper: Optional[WebsiteScraper] = None):
        super().__init__(config, data_manager=data_manager, llm_client=llm_client,
                         prompt_manager=prompt_manager)
        self.scraper = scraper or WebsiteScraper.from_config(config)
        self.validator = InputValidator()

    def validate_input(self, context: Dict[str, Any]) -> bool:
        request = context.get('request')
        return isinstance(request, dict) and not self.validator.validate_single_request(request)

    def execute(self, context: Dict[str, Any]) -> Dict[str, Any]:
        request = context.get('request') or {}
        errors = self.validator.validate_single_request(request)
        if errors:
            raise ValueError('; '.join(errors))
        return self.create_success_result(self.generate(request), context)

    def resolve_url(self, raw: str) -> str:
        """
        URL to scrape from the company URL field, or '' when the field holds
        pasted context. Bare domains become their https homepage.
        """
        value = str(raw or '').strip()
        if not value or not self.validator.looks_like_single_url(value):
            return ''
        if _HTTP_URL.match(value) and self.validator.validate_url(value):
            return value

        normalized = self.validator.normalize_website_url(value)
        if not normalized:
            return ''
        parsed = urllib.parse.urlparse(normalized)
        return f"{parsed.scheme}://{parsed.netloc}/"

    def generate(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """
        Generate the initial email and follow-ups for one request.

        Args:
            request: Validated request fields

        Returns:
            ``{'subject', 'email', 'emails', 'text'}``

        Raises:
            ValueError: When no personalization context is available
            ScrapeError: When the URL cannot be read
            CompletionError: When generation fails or returns no body
        """
        text_field = str(request.get('activityText') or '').strip()
        url_field = str(request.get('companyUrl') or '').strip()

        url_to_scrape = self.resolve_url(url_field)
        pasted_context = '' if url_to_scrape else url_field
        if not text_field and not pasted_context and not url_to_scrape:
            raise ValueError("Please add activity context (URL or pasted text).")

        url_summary = self.scraper.scrape(url_to_scrape).strip() if url_to_scrape else ''
        summary = '\n\n'.join(part for part in (text_field, pasted_context, url_summary) if part)
        if not summary.strip():
            raise ValueError("Not able to read the content for personalization. "
                             "Please paste activity context instead.")

        copy_length = map_copy_length(request.get('length'), request.get('customLength'), strict=True)
        follow_up_count = parse_follow_up_count(request.get('followUpCount'))

        prompt = self.prompt_manager.build_single_prompt({
            'copy_length': str(copy_length),
            'follow_up_count': str(follow_up_count),
            'follow_up_prompts': str(request.get('followUpPrompts') or '').strip(),
            'tone_type': str(request.get('tone') or '').strip(),
            'tone_guidance': get_tone_guidance(request.get('tone')),
            'recipient_first_name': str(request.get('recipientName') or '').strip(),
            'recipient_job_title': str(request.get('recipientRole') or '').strip(),
            'recipient_company_name': str(request.get('companyName') or '').strip(),
            'activity_text_or_URL_content_summary': summary,
            'value_proposition': str(request.get('valueProp') or '').strip(),
            'call_to_action': str(request.get('callToAction') or '').strip(),
            'sender_name': str(request.get('senderName') or '').strip(),
            'sender_title': str(request.get('senderTitle') or '').strip(),
            'sender_company': str(request.get('senderCompany') or '').strip(),
            'subject': str(request.get('subject') or '').strip(),
            'additional_instructions': str(request.get('instructions') or '').strip(),
        })

        text = self.call_llm(prompt, SINGLE_REQUEST_ID)
        emails = parse_emails(text, follow_up_count, strategies=(HeaderStrategy(),))
        if not emails:
            emails = [EmailBlock(EmailKind.initial(), '', str(text or '').strip())]

        initial = emails[0]
        subject = initial.subject.strip() or str(request.get('subject') or '').strip()
        initial.subject = subject
        if not initial.email.strip():
            raise CompletionError("AI returned an empty email body. Please try again.")

        self.logger.info(f"Generated single copy with {len(emails) - 1} follow-up(s)")
        return {
            'subject': subject,
            'email': initial.email.strip(),
            'emails': [email.to_dict() for email in emails],
            'text': format_emails(emails),
        }
