"""
Gap repair for generated email sequences.

Issues narrowly scoped completion calls for whatever the first pass left
out: missing subjects, missing trailing follow-ups and follow-ups whose
subject or body is still blank.
"""

from typing import Any, Callable, Dict, List, Sequence

from ..config.prompts import PromptManager
from ..utils.email_parser import EmailBlock, EmailKind, format_emails_for_context, parse_emails
from ..utils.llm_client import CompletionError
from ..utils.logger import LoggerMixin
from ..utils.sanitizer import clean_email_body, is_blank, normalize_newlines, normalize_subject_line


class GapRepairer(LoggerMixin):
    """
    Fills gaps in a parsed sequence with follow-up completion calls.

    A failed repair call leaves its gap in place; it never fails the row.
    """

    def __init__(self, complete: Callable[[str, str], str], prompt_manager: PromptManager):
        """
        Args:
            complete: ``complete(prompt, request_id)`` returning raw completion text
            prompt_manager: Builds the repair prompts
        """
        self.complete = complete
        self.prompt_manager = prompt_manager

    def generate_missing_subjects(
        self,
        activity_summary: str,
        settings: Dict[str, Any],
        company: str,
        initial: EmailBlock,
        follow_ups: Sequence[EmailBlock],
        desired_follow_ups: int,
        request_id: str,
    ) -> List[str]:
        """
        Ask for one subject per email, initial first.

        Returns:
            Normalized, non-blank subject lines in the order returned; empty on failure
        """
        bodies = [
            follow_ups[i].email.strip() if i < len(follow_ups) else ''
            for i in range(max(0, desired_follow_ups))
        ]
        prompt = self.prompt_manager.build_missing_subjects_prompt(
            activity_summary=activity_summary,
            tone=settings.get('tone', ''),
            company=company,
            initial_subject=initial.subject,
            initial_body=initial.email,
            follow_up_bodies=bodies,
        )

        try:
            text = self.complete(prompt, f"{request_id}_subjects")
        except CompletionError as e:
            self.logger.warning(f"Subject generation failed [{request_id}]: {str(e)}")
            return []

        subjects = [normalize_subject_line(line) for line in normalize_newlines(text).split('\n')]
        return [subject for subject in subjects if subject]

    def fill_missing_subjects(
        self,
        activity_summary: str,
        settings: Dict[str, Any],
        company: str,
        initial: EmailBlock,
        follow_ups: List[EmailBlock],
        desired_follow_ups: int,
        request_id: str,
        include_initial: bool = True,
    ) -> bool:
        """
        Fill blank subjects in place. Subjects the model already gave are kept.

        Args:
            include_initial: Also fill a blank initial subject

        Returns:
            True if a subject call was made
        """
        initial_missing = include_initial and is_blank(initial.subject)
        follow_up_missing = any(is_blank(fu.subject) for fu in follow_ups)
        if not initial_missing and not follow_up_missing:
            return False

        subjects = self.generate_missing_subjects(
            activity_summary, settings, company, initial, follow_ups, desired_follow_ups, request_id
        )

        if initial_missing and subjects:
            initial.subject = subjects[0]
        for i, follow_up in enumerate(follow_ups[:max(0, desired_follow_ups)]):
            if is_blank(follow_up.subject) and i + 1 < len(subjects):
                follow_up.subject = subjects[i + 1]
        return True

    def generate_missing_follow_ups(
        self,
        activity_summary: str,
        settings: Dict[str, Any],
        copy_length: int,
        recipient_first_name: str,
        company: str,
        previous_emails: Sequence[EmailBlock],
        start_index: int,
        missing_count: int,
        request_id: str,
    ) -> List[EmailBlock]:
        """
        Generate follow-ups ``start_index`` .. ``start_index + missing_count - 1``.

        Args:
            previous_emails: Initial email and every accepted follow-up, for continuity
            start_index: 1-based position of the first missing follow-up
            missing_count: How many follow-ups to generate

        Returns:
            At most ``missing_count`` blocks labelled by their true position;
            empty when the call fails
        """
        if missing_count <= 0:
            return []

        missing_to = start_index + missing_count - 1
        prompt = self.prompt_manager.build_missing_follow_ups_prompt(
            activity_summary=activity_summary,
            tone=settings.get('tone', ''),
            copy_length=copy_length,
            recipient_first_name=recipient_first_name,
            company=company,
            value_prop=settings.get('valueProp', ''),
            call_to_action=settings.get('callToAction', ''),
            previous_emails_text=format_emails_for_context(previous_emails),
            start_index=start_index,
            missing_count=missing_count,
        )

        try:
            text = self.complete(prompt, f"{request_id}_missing_followups_{start_index}_{missing_to}")
        except CompletionError as e:
            self.logger.warning(
                f"Follow-up generation {start_index}-{missing_to} failed [{request_id}]: {str(e)}"
            )
            return []

        # The model may still label these as the initial email; position decides.
        generated = []
        for offset, block in enumerate(parse_emails(text, missing_count)):
            candidate = EmailBlock(
                EmailKind.follow_up(start_index + offset),
                block.subject.strip(),
                clean_email_body(block.email.strip()),
            )
            if not is_blank(candidate.subject) or not is_blank(candidate.email):
                generated.append(candidate)

        return [
            EmailBlock(EmailKind.follow_up(start_index + i), block.subject, block.email)
            for i, block in enumerate(generated[:missing_count])
        ]

    def repair_incomplete_follow_ups(
        self,
        activity_summary: str,
        settings: Dict[str, Any],
        copy_length: int,
        prospect: Dict[str, Any],
        initial: EmailBlock,
        follow_ups: Sequence[EmailBlock],
        desired_follow_ups: int,
        request_id: str,
    ) -> List[EmailBlock]:
        """
        Regenerate, once and in order, each follow-up missing a subject or body.

        A slot is replaced only when the regenerated body is non-blank.

        Returns:
            Follow-ups truncated to ``desired_follow_ups``
        """
        if desired_follow_ups <= 0:
            return list(follow_ups)

        repaired = list(follow_ups)
        while len(repaired) < desired_follow_ups:
            repaired.append(EmailBlock(EmailKind.follow_up(len(repaired) + 1)))

        for i in range(desired_follow_ups):
            if not repaired[i].is_incomplete:
                continue

            previous = [initial] + repaired[:i]
            generated = self.generate_missing_follow_ups(
                activity_summary=activity_summary,
                settings=settings,
                copy_length=copy_length,
                recipient_first_name=str(prospect.get('first_name') or '').strip(),
                company=str(prospect.get('company') or '').strip(),
                previous_emails=previous,
                start_index=i + 1,
                missing_count=1,
                request_id=f"{request_id}_repair_followup_{i + 1}",
            )

            if generated and not is_blank(generated[0].email):
                block = EmailBlock(
                    EmailKind.follow_up(i + 1),
                    generated[0].subject.strip(),
                    clean_email_body(generated[0].email.strip()),
                )
                repaired[i] = block
                self.logger.debug(f"Repaired follow-up {i + 1} [{request_id}]")

        return repaired[:desired_follow_ups]
