"""
Prompt Manager for ColdCopy Local
Handles cold email prompt templates and placeholder substitution
"""

from typing import Dict, Any, List, Optional, Sequence
import logging

from .settings import ConfigManager, get_tone_guidance


_SHARED_PERSONALIZATION = [
    'Before writing, silently pick out the strongest personalization signals in the context (do NOT output them):',
    '- Look for launches, announcements, hiring, new product or pricing pages, partnerships, events, content activity or role-specific pain points, but only when they appear in the context.',
    '- Never invent signals such as funding rounds or news, and do not browse the web.',
    '- Without a strong signal, open with the company\'s core product or mission in neutral wording; avoid "I saw" or "I imagine".',
    '- Ignore navigation text, footers, legal text and generic marketing copy.',
    '- Use at most two signals in the opening hook.',
    '- No flattery. Say why you are reaching out based on one specific signal.',
    '- Open with the prospect\'s situation, never with what you do ("We help...", "Our company...").',
    '',
]

_SHARED_LANGUAGE = [
    'Language rules:',
    '- Plain English at a grade 6-8 reading level, short sentences, contractions where natural.',
    '- No emojis, no ALL CAPS, no exclamation marks, no excessive punctuation.',
    '- Avoid spam trigger words ("free", "guaranteed", "act now", "limited time", "urgent", "risk-free", "click here").',
    '- Do not invent facts, metrics, customers, links or case studies. Only use links given in the inputs, two at most.',
    '- Keep the initial email about {copy_length} words; every follow-up must be shorter.',
    '',
]

_SHARED_SUBJECTS = [
    'Subject line rules:',
    '- If the Subject field above is filled in, use it exactly for the initial email only.',
    '- Every follow-up gets a NEW subject of 3-6 words that reflects its new insight; never reuse the initial subject.',
    '- A generated initial subject is 1-8 words and under 50 characters.',
    '- Every generated subject includes the company name or a concrete signal, pain point or benefit from the context.',
    '- No generic subjects ("Quick question", "Hello", "Following up", "Checking in").',
    '- No question marks or exclamation points.',
    '- No prefixes or tags such as "Re:", "Fwd:", "FW:", "[EXTERNAL]"; plain words only.',
    '',
]

BULK_TEMPLATE = '\n'.join([
    'You are an experienced B2B email copywriter.',
    'Write a {copy_length}-word cold email in a {tone_type} tone.',
    'Tone guidance (follow exactly): {tone_guidance}.',
    'Follow-up count: {follow_up_count}. When it is above 0, also write that many follow-up emails to send after the initial email.',
    'CRITICAL: output exactly 1 initial email and exactly {follow_up_count} follow-up emails. Do not skip any email.',
    'Each follow-up builds on the previous message, is shorter than the one before it, and gets slightly more direct toward the last one.',
    'Length targets: Initial about {copy_length} words. Follow-up 1 about 60-75% of the initial, Follow-up 2 about 45-60%, Follow-up 3 about 35-50% (only when there are 4 or more), the final follow-up about 25-35%.',
    '',
    'Recipient details:',
    '- First name: {recipient_first_name}',
    '- Job title/role: {recipient_job_title}',
    '- Company: {recipient_company_name}',
    '- Website or activity context (the only source for personalization): {activity_text_or_URL_content_summary}',
    '',
    *_SHARED_PERSONALIZATION,
    'Offer details:',
    '- Value proposition: {value_proposition}',
    '- Call-to-action: {call_to_action} (one clear, low-friction ask)',
    '',
    'Follow-up instructions (optional): {follow_up_prompts}',
    '',
    'Subject (optional): {subject}',
    '',
    'Additional instructions (optional): {additional_instructions}',
    '',
    'Initial email rules:',
    '- Start with "Hi {recipient_first_name}," on its own line, or "Hi," when the first name is missing.',
    '- Plain text only with real newlines; no HTML such as <br> or <p>. Separate paragraphs with one blank line.',
    '- The body has EXACTLY 3 short paragraphs of 1-2 sentences each.',
    '- Flow: personal hook, why it matters for their role, how the offer helps, soft call-to-action.',
    '- Use "you/your" more than "we/our" and pick the single most relevant angle of the offer.',
    '- At most one question in the whole email, and only in the call-to-action line.',
    '- End after the call-to-action line. No signature, sign-off, sender details or separator lines.',
    '',
    'Follow-up rules:',
    '- Start with "Hi {recipient_first_name}," (or "Hi,") and briefly refer back to the previous message without pressure.',
    '- Paragraphs are micro-paragraphs of one sentence, at most 18 words, separated by a blank line.',
    '  - With 1 or 2 follow-ups: every follow-up has EXACTLY 2 micro-paragraphs.',
    '  - With 3 follow-ups: follow-ups 1 and 2 have EXACTLY 2, follow-up 3 has EXACTLY 1.',
    '  - With 4 or more: every follow-up except the final one has EXACTLY 2, the final one has EXACTLY 1.',
    '- Each follow-up adds ONE new insight or suggestion tied to the original signals; do not just repeat the offer.',
    '- No filler like "just following up" or "bumping this".',
    '',
    *_SHARED_LANGUAGE,
    *_SHARED_SUBJECTS,
    'Output format:',
    '- Plain text only, no JSON and no markdown.',
    '- Begin EVERY email (initial and each follow-up) with a line exactly like: Subject: <subject text>',
    '- Then a blank line, then the email body.',
    '- Separate emails with a blank line.',
    '- Output only the emails: no commentary, headings or numbering, and no signatures or sign-offs such as "Best," or "Regards,".',
])

SINGLE_TEMPLATE = '\n'.join([
    'You are an experienced B2B email copywriter.',
    'Write a {copy_length}-word cold email in a {tone_type} tone.',
    'Tone guidance (follow exactly): {tone_guidance}.',
    'Follow-up count: {follow_up_count}. When it is above 0, also write that many follow-up emails to send after the initial email.',
    'Each follow-up builds on the previous message, is shorter than the one before it, and gets slightly more direct toward the last one.',
    '',
    'Recipient details:',
    '- First name: {recipient_first_name}',
    '- Job title/role: {recipient_job_title}',
    '- Company: {recipient_company_name}',
    '- Website or activity context (the only source for personalization): {activity_text_or_URL_content_summary}',
    '',
    *_SHARED_PERSONALIZATION,
    'Offer details:',
    '- Value proposition: {value_proposition}',
    '- Call-to-action: {call_to_action} (one clear, low-friction ask)',
    '',
    'Follow-up instructions (optional): {follow_up_prompts}',
    '',
    'Sender details:',
    '- Sender name: {sender_name}',
    '- Sender title: {sender_title}',
    '- Sender company: {sender_company}',
    '',
    'Subject (optional): {subject}',
    '',
    'Additional instructions (optional): {additional_instructions}',
    '',
    'Email rules:',
    '- Start with "Hi {recipient_first_name}," on its own line, or "Hi," when the first name is missing.',
    '- Four short beats: personal hook, why it matters for their role, how the offer helps, soft call-to-action.',
    '- Use "you/your" more than "we/our" and pick the single most relevant angle of the offer.',
    '- At most one question in the whole email, and only in the call-to-action line.',
    '- End with "Best," or "Regards," followed by the sender\'s signature.',
    '',
    'Follow-up rules:',
    '- Start with "Hi {recipient_first_name}," (or "Hi,") and briefly refer back to the previous message without pressure.',
    '- Each follow-up adds ONE new insight or suggestion tied to the original signals; do not just repeat the offer.',
    '- Keep each follow-up shorter than the last and vary the call-to-action slightly.',
    '',
    *_SHARED_LANGUAGE,
    *_SHARED_SUBJECTS,
    'Output format:',
    '- Plain text only, no JSON and no markdown.',
    '- Begin every email (initial and follow-ups) with a line: Subject: <subject text>',
    '- Then a blank line, then the email body.',
    '- Separate emails with a blank line.',
])

DEFAULT_TEMPLATES: Dict[str, str] = {
    'bulk': BULK_TEMPLATE,
    'single': SINGLE_TEMPLATE,
}

# Percent of the initial length for follow-ups 1..4 in repair prompts.
FOLLOW_UP_LENGTH_PERCENTS = (75, 60, 45, 35)


def fill_template(template: str, values: Dict[str, Any]) -> str:
    """
    Replace every ``{name}`` occurrence for the given names.

    None becomes an empty string. Placeholders without a value are left as is.
    """
    out = str(template)
    for key, value in values.items():
        out = out.replace('{' + key + '}', '' if value is None else str(value))
    return out


class PromptManager:
    """
    Builds the prompts sent to the completion API.
    """

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        """
        Initialize prompt manager.

        Args:
            config_manager: Optional configuration manager for template overrides
        """
        self.config_manager = config_manager
        self.logger = logging.getLogger("coldcopy.prompts")

    def get_template(self, name: str) -> str:
        """Return the named template, preferring an override from ``config/prompts.json``."""
        if self.config_manager is not None:
            override = self.config_manager.get_prompt_overrides().get(name)
            if isinstance(override, list):
                override = '\n'.join(str(line) for line in override)
            if isinstance(override, str) and override.strip():
                return override

        if name not in DEFAULT_TEMPLATES:
            raise KeyError(f"Unknown prompt template: {name}")
        return DEFAULT_TEMPLATES[name]

    def build_bulk_prompt(self, values: Dict[str, Any]) -> str:
        return fill_template(self.get_template('bulk'), values)

    def build_single_prompt(self, values: Dict[str, Any]) -> str:
        return fill_template(self.get_template('single'), values)

    def build_missing_subjects_prompt(
        self,
        activity_summary: str,
        tone: str,
        company: str,
        initial_subject: str,
        initial_body: str,
        follow_up_bodies: Sequence[str],
    ) -> str:
        """
        Prompt asking for one subject line per email, initial first.

        Args:
            activity_summary: Personalization context
            tone: Job tone
            company: Recipient company
            initial_subject: Current initial subject, may be blank
            initial_body: Initial email body
            follow_up_bodies: Bodies of every follow-up slot in order

        Returns:
            Prompt text
        """
        lines: List[str] = [
            'You are an expert B2B email copywriter.',
            'Write subject lines for an initial cold email and its follow-ups.',
            '',
            'Rules (follow exactly):',
            '- Return ONLY the subject lines, one per line, without labels or numbering.',
            f'- Return exactly {1 + len(follow_up_bodies)} lines: the initial email first, then each follow-up in order.',
            '- Each subject is 1-8 words and under 50 characters.',
            '- No question marks or exclamation points.',
            '- No generic subjects like "Checking in" or "Following up".',
            '- No reply or forward prefixes like "Re:", "Fwd:" or "FW:".',
            '- A follow-up subject continues from the previous email and introduces a NEW angle.',
            '- Never reuse the initial subject for a follow-up.',
            '- Each subject includes the company name or a concrete signal, pain point or benefit from the context.',
            f'- Tone: {str(tone or "").strip() or "neutral"}.',
            '',
            f'Company: {str(company or "").strip()}',
            '',
            'Context for personalization (only source):',
            str(activity_summary or '').strip(),
            '',
            f'Initial subject (may be blank): {str(initial_subject or "").strip()}',
            '',
            'Initial email body:',
            str(initial_body or '').strip(),
        ]

        for i, body in enumerate(follow_up_bodies):
            previous = 'Initial email' if i == 0 else f'Follow-up {i}'
            lines.extend([
                '',
                f'Follow-up {i + 1} context: (this follow-up must build on {previous})',
                f'Follow-up {i + 1} email body:',
                str(body or '').strip(),
            ])

        return '\n'.join(lines)

    def build_missing_follow_ups_prompt(
        self,
        activity_summary: str,
        tone: str,
        copy_length: int,
        recipient_first_name: str,
        company: str,
        value_prop: str,
        call_to_action: str,
        previous_emails_text: str,
        start_index: int,
        missing_count: int,
    ) -> str:
        """
        Prompt asking for follow-ups ``start_index`` .. ``start_index + missing_count - 1``.

        Returns:
            Prompt text
        """
        missing_to = start_index + missing_count - 1
        percents = ', '.join(
            f'Follow-up {n} about {pct}%' for n, pct in enumerate(FOLLOW_UP_LENGTH_PERCENTS, start=1)
        )
        tone = str(tone or '').strip()

        lines = [
            'You are an experienced B2B email copywriter.',
            '',
            f'Task: write follow-up emails {start_index} through {missing_to} of a cold outreach sequence.',
            'They MUST build on the previous emails below and keep continuity.',
            '',
            'Rules (follow exactly):',
            f'- Tone: {tone}. Tone guidance: {get_tone_guidance(tone)}.',
            f'- Write exactly {missing_count} follow-up(s) now. Do not output the initial email.',
            '- Each follow-up is shorter than the previous email and slightly more direct.',
            f'- Length targets: Initial about {copy_length} words. {percents}.',
            '- Give ONE new insight or suggestion per follow-up instead of repeating the offer.',
            '- One low-friction call-to-action line with at most one question.',
            '- No signatures, no separators (--- or ***), no sign-offs such as "Best," or "Regards,".',
            '',
            'Recipient and context:',
            f'- First name: {str(recipient_first_name or "").strip()}',
            f'- Company: {str(company or "").strip()}',
            f'- Context (only source):\n{str(activity_summary or "").strip()}',
            '',
            'Offer:',
            f'- Value proposition: {str(value_prop or "").strip()}',
            f'- Call-to-action: {str(call_to_action or "").strip()}',
            '',
            'Previous emails (do not repeat them verbatim):',
            previous_emails_text,
            '',
            'Output format:',
            '- Plain text only.',
            '- Begin EACH follow-up with: Subject: <subject text>',
            '- Then a blank line, then the email body.',
            '- Separate follow-ups with a blank line.',
        ]
        return '\n'.join(lines)
