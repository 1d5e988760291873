"""
Email Generation Stage - Turns one queued prospect row into a finished email sequence
"""

import time
from typing import Any, Dict, List, Optional

from .base_stage import BaseStage
from .gap_repair import GapRepairer
from ..config.settings import get_tone_guidance, map_copy_length, parse_follow_up_count
from ..utils.email_parser import EmailBlock, EmailKind, parse_emails
from ..utils.logger import log_row_outcome, truncate_for_log
from ..utils.sanitizer import clean_email_body, is_blank, normalize_subject_line
from ..utils.scraper import ScrapeError, WebsiteScraper, looks_like_unreachable_or_parked_page
from ..utils.structure import (
    INITIAL_PARAGRAPHS,
    apply_length_decay,
    enforce_email_paragraphs,
    follow_up_target_paragraphs,
)


PLACEHOLDER_SUBJECT = "Context unavailable"
PLACEHOLDER_BODY = "Not able to check personalized context."

MISSING_SETTINGS_ERROR = "Missing job settings (settings_json). Please restart this job."
MISSING_CONTEXT_ERROR = (
    "Missing activity context (URL unreachable/expired and no Activity Context provided)"
)


class EmailGenerationStage(BaseStage):
    """
    Drives a prospect row through scrape, prompt, generation, cleanup,
    gap repair and structure enforcement, then persists the result.

    Row failures are recorded on the row and never raised to the caller.
    """

    # Logged once per process when context logging is on and prompt logging is off.
    _prompt_hint_logged = False

    def __init__(self, config: Dict[str, Any], data_manager=None, llm_client=None,
                 prompt_manager=None, scraper: Optional[WebsiteScraper] = None):
        super().__init__(config, data_manager=data_manager, llm_client=llm_client,
                         prompt_manager=prompt_manager)
        self.scraper = scraper or WebsiteScraper.from_config(config)
        self.repairer = GapRepairer(self.call_llm, self.prompt_manager)

    def validate_input(self, context: Dict[str, Any]) -> bool:
        return context.get('prospect_id') is not None

    def execute(self, context: Dict[str, Any]) -> Dict[str, Any]:
        """
        Process the prospect named by ``context['prospect_id']``.

        Returns:
            Skip result when the row or its job should not advance, otherwise a
            success result whose data carries the final row status
        """
        if not self.validate_input(context):
            return self.create_skip_result("No prospect_id in context", context)

        outcome = self.process_prospect_row(context['prospect_id'])
        if outcome is None:
            return self.create_skip_result("Row or job not eligible for processing", context)
        return self.create_success_result(outcome, context)

    def process_prospect_row(self, prospect_id: int) -> Optional[Dict[str, Any]]:
        """
        Run the row state machine for one prospect.

        Args:
            prospect_id: Prospect id

        Returns:
            ``{'prospect_id', 'status', 'error'}`` or None when skipped
        """
        prospect = self.data_manager.get_prospect(prospect_id)
        if not prospect or prospect.get('status') == 'completed':
            return None

        job = self.data_manager.get_job(prospect['job_id'])
        if not job:
            return None
        job_status = str(job.get('status') or '').lower()
        if job_status in ('paused', 'completed'):
            self.logger.debug(f"Skipping row {prospect['row_index']}: job {job['id']} is {job_status}")
            return None

        job_id = job['id']
        start_time = time.time()
        self.data_manager.update_prospect(prospect_id, status='running', error=None)

        status = 'completed'
        error: Optional[str] = None
        try:
            self._generate_for_row(prospect, job)
        except Exception as e:
            status = 'failed'
            error = str(e)
            self.data_manager.update_prospect(prospect_id, status='failed', error=error)
            # error_count is final once processed_rows reaches total_rows.
            self.data_manager.increment_errors(job_id)
            self.data_manager.increment_processed(job_id)

        log_row_outcome(job_id, prospect['row_index'], status, time.time() - start_time, error)

        if self.data_manager.complete_job_if_done(job_id):
            finished = self.data_manager.get_job(job_id) or {}
            self.logger.info(f"Job {job_id} completed: {finished.get('processed_rows')} rows processed, "
                             f"{finished.get('error_count')} failed")

        return {'prospect_id': prospect_id, 'status': status, 'error': error}

    def _resolve_activity_summary(self, prospect: Dict[str, Any]):
        activity_context = str(prospect.get('activity_context') or '').strip()
        activity_url = str(prospect.get('website') or '').strip()

        url_summary = ''
        scrape_failed = False
        if activity_url:
            try:
                url_summary = self.scraper.scrape(activity_url)
            except ScrapeError as e:
                self.logger.info(f"No web content for row {prospect['row_index']}: {str(e)}")
                scrape_failed = True
        if url_summary and looks_like_unreachable_or_parked_page(url_summary):
            url_summary = ''
            scrape_failed = True

        summary = '\n\n'.join(part for part in (activity_context, url_summary) if part).strip()
        return summary, activity_context, activity_url, scrape_failed

    def _generate_for_row(self, prospect: Dict[str, Any], job: Dict[str, Any]) -> None:
        prospect_id = prospect['id']
        job_id = job['id']
        settings = job.get('settings')
        if not settings:
            raise ValueError(MISSING_SETTINGS_ERROR)

        copy_length = map_copy_length(settings.get('length'), settings.get('customLength'))
        try:
            desired = parse_follow_up_count(settings.get('followUpCount'))
        except ValueError:
            desired = 0

        summary, activity_context, activity_url, scrape_failed = self._resolve_activity_summary(prospect)
        if is_blank(summary):
            if activity_url and scrape_failed and not activity_context:
                self.data_manager.update_prospect(
                    prospect_id,
                    status='completed',
                    error=None,
                    scraped_content='',
                    subject=PLACEHOLDER_SUBJECT,
                    email_body=PLACEHOLDER_BODY,
                    followups=[],
                )
                self.data_manager.increment_processed(job_id)
                return
            raise ValueError(MISSING_CONTEXT_ERROR)

        request_id = f"job_{job_id}_row_{prospect['row_index']}"
        self._log_diagnostics(request_id, 'activity_text_or_URL_content_summary', summary)

        prompt = self.prompt_manager.build_bulk_prompt({
            'copy_length': str(copy_length),
            'follow_up_count': str(desired),
            'follow_up_prompts': str(settings.get('followUpPrompts') or '').strip(),
            'tone_type': str(settings.get('tone') or '').strip(),
            'tone_guidance': get_tone_guidance(settings.get('tone')),
            'recipient_first_name': str(prospect.get('first_name') or '').strip(),
            'recipient_job_title': '',
            'recipient_company_name': str(prospect.get('company') or '').strip(),
            'activity_text_or_URL_content_summary': summary,
            'value_proposition': str(settings.get('valueProp') or '').strip(),
            'call_to_action': str(settings.get('callToAction') or '').strip(),
            'subject': str(settings.get('subject') or '').strip(),
            'additional_instructions': str(settings.get('instructions') or '').strip(),
        })
        if self.config.get('log_bulk_prompt'):
            self.logger.info(f"[{request_id}] prompt:\n"
                             f"{truncate_for_log(prompt, self.config.get('log_bulk_prompt_max_chars', 4000))}")

        text = self.call_llm(prompt, request_id)
        initial, follow_ups = self._first_pass(text, desired, settings)

        company = str(prospect.get('company') or '').strip()
        self.repairer.fill_missing_subjects(summary, settings, company, initial, follow_ups, desired, request_id)

        follow_ups = follow_ups[:desired]
        if len(follow_ups) < desired:
            missing = self.repairer.generate_missing_follow_ups(
                activity_summary=summary,
                settings=settings,
                copy_length=copy_length,
                recipient_first_name=str(prospect.get('first_name') or '').strip(),
                company=company,
                previous_emails=[initial] + follow_ups,
                start_index=len(follow_ups) + 1,
                missing_count=desired - len(follow_ups),
                request_id=request_id,
            )
            follow_ups = self._relabel(follow_ups + missing)[:desired]

        follow_ups = self.repairer.repair_incomplete_follow_ups(
            summary, settings, copy_length, prospect, initial, follow_ups, desired, request_id
        )
        self.repairer.fill_missing_subjects(
            summary, settings, company, initial, follow_ups, desired, request_id, include_initial=False
        )

        for follow_up in follow_ups:
            follow_up.email = apply_length_decay(initial.email, follow_up.email)

        initial.email = enforce_email_paragraphs(initial.email.strip(), INITIAL_PARAGRAPHS)
        for idx, follow_up in enumerate(follow_ups):
            follow_up.email = enforce_email_paragraphs(
                follow_up.email.strip(), follow_up_target_paragraphs(idx + 1, desired)
            )

        # Repairs can reintroduce raw subjects; normalize once more before storing.
        initial.subject = normalize_subject_line(initial.subject)
        for follow_up in follow_ups:
            follow_up.subject = normalize_subject_line(follow_up.subject)

        self.data_manager.update_prospect(
            prospect_id,
            status='completed',
            error=None,
            scraped_content=summary,
            subject=initial.subject.strip(),
            email_body=initial.email.strip(),
            followups=[follow_up.to_dict() for follow_up in follow_ups],
        )
        self.data_manager.increment_processed(job_id)

    def _first_pass(self, text: str, desired: int, settings: Dict[str, Any]):
        """Parse and clean the main completion into the initial email and follow-ups."""
        emails = parse_emails(text, desired)
        if emails:
            initial = EmailBlock(EmailKind.initial(), emails[0].subject, emails[0].email)
        else:
            initial = EmailBlock(EmailKind.initial(), '', str(text or '').strip())

        initial.subject = normalize_subject_line(initial.subject)
        if is_blank(initial.subject) and not is_blank(settings.get('subject')):
            initial.subject = normalize_subject_line(settings.get('subject'))
        initial.email = clean_email_body(initial.email.strip())

        follow_ups = [
            EmailBlock(EmailKind.follow_up(idx + 1), normalize_subject_line(block.subject),
                       clean_email_body(block.email.strip()))
            for idx, block in enumerate(emails[1:])
        ]
        return initial, follow_ups

    def _relabel(self, follow_ups: List[EmailBlock]) -> List[EmailBlock]:
        return [
            EmailBlock(EmailKind.follow_up(idx + 1), normalize_subject_line(block.subject),
                       clean_email_body(block.email.strip()))
            for idx, block in enumerate(follow_ups)
        ]

    def _log_diagnostics(self, request_id: str, label: str, summary: str) -> None:
        if not self.config.get('log_activity_context'):
            return
        max_chars = self.config.get('log_activity_context_max_chars', 2000)
        self.logger.info(f"[{request_id}] {label}:\n{truncate_for_log(summary, max_chars)}")

        if not self.config.get('log_bulk_prompt') and not EmailGenerationStage._prompt_hint_logged:
            EmailGenerationStage._prompt_hint_logged = True
            self.logger.info("Prompt logging is off. Enable it with LOG_BULK_PROMPT=1 "
                             "(optionally set LOG_BULK_PROMPT_MAX_CHARS).")
