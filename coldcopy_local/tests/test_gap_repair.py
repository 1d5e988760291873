from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from conftest import FakeCompletionClient

from coldcopy_local.config.prompts import PromptManager
from coldcopy_local.stages.gap_repair import GapRepairer
from coldcopy_local.utils.email_parser import EmailBlock, EmailKind


SETTINGS = {"tone": "Casual", "valueProp": "Fewer pick errors", "callToAction": "Chat next week?"}
PROSPECT = {"first_name": "Dana", "company": "Acme"}


def initial_email(subject="Acme's Denver move"):
    return EmailBlock(EmailKind.initial(), subject, "Hi Dana,\n\nCongrats on Denver.")


def follow_up(index, subject="", email=""):
    return EmailBlock(EmailKind.follow_up(index), subject, email)


def make_repairer(client):
    return GapRepairer(client.complete, PromptManager())


class TestSubjects:
    def test_fills_only_blank_subjects(self):
        client = FakeCompletionClient(["Re: Denver robots\nPick accuracy for Acme\n- Last Denver note"])
        repairer = make_repairer(client)
        initial = initial_email(subject="")
        follow_ups = [follow_up(1, "Kept subject", "Body one"), follow_up(2, "", "Body two")]

        called = repairer.fill_missing_subjects("ctx", SETTINGS, "Acme", initial, follow_ups, 2, "job_1_row_0")

        assert called
        assert client.request_ids == ["job_1_row_0_subjects"]
        assert initial.subject == "Denver robots"
        assert follow_ups[0].subject == "Kept subject"
        assert follow_ups[1].subject == "Last Denver note"

    def test_no_call_when_nothing_missing(self):
        client = FakeCompletionClient()
        repairer = make_repairer(client)

        called = repairer.fill_missing_subjects(
            "ctx", SETTINGS, "Acme", initial_email(), [follow_up(1, "S", "B")], 1, "rid"
        )

        assert not called
        assert client.calls == []

    def test_initial_excluded_on_second_pass(self):
        client = FakeCompletionClient(["Ignored initial\nNew follow-up subject"])
        repairer = make_repairer(client)
        initial = initial_email(subject="")
        follow_ups = [follow_up(1, "", "Body")]

        repairer.fill_missing_subjects("ctx", SETTINGS, "Acme", initial, follow_ups, 1, "rid",
                                       include_initial=False)

        assert initial.subject == ""
        assert follow_ups[0].subject == "New follow-up subject"

    def test_failed_subject_call_leaves_gaps(self):
        client = FakeCompletionClient(fail_on=["rid_subjects"])
        repairer = make_repairer(client)
        initial = initial_email(subject="")

        assert repairer.generate_missing_subjects("ctx", SETTINGS, "Acme", initial, [], 0, "rid") == []
        repairer.fill_missing_subjects("ctx", SETTINGS, "Acme", initial, [], 0, "rid")
        assert initial.subject == ""


class TestMissingFollowUps:
    def test_generates_and_relabels_by_position(self):
        client = FakeCompletionClient([
            "Type: Initial | Subject: Picking tip\n\nHi Dana,\n\nTip body.\n\nBest,\nSam\n\n"
            "Subject: Final Denver note\n\nHi Dana,\n\nLast body.\n\n"
            "Subject: Extra\n\nHi Dana,\n\nShould be dropped."
        ])
        repairer = make_repairer(client)

        generated = repairer.generate_missing_follow_ups(
            activity_summary="ctx",
            settings=SETTINGS,
            copy_length=65,
            recipient_first_name="Dana",
            company="Acme",
            previous_emails=[initial_email(), follow_up(1, "S1", "B1")],
            start_index=2,
            missing_count=2,
            request_id="job_1_row_0",
        )

        assert client.request_ids == ["job_1_row_0_missing_followups_2_3"]
        assert [block.type for block in generated] == ["Follow-up 2", "Follow-up 3"]
        assert generated[0].email == "Hi Dana,\n\nTip body."
        assert generated[1].subject == "Final Denver note"

    def test_zero_missing_makes_no_call(self):
        client = FakeCompletionClient()
        generated = make_repairer(client).generate_missing_follow_ups(
            "ctx", SETTINGS, 65, "Dana", "Acme", [initial_email()], 1, 0, "rid"
        )
        assert generated == []
        assert client.calls == []

    def test_failed_call_returns_nothing(self):
        client = FakeCompletionClient(fail_on=["rid_missing"])
        generated = make_repairer(client).generate_missing_follow_ups(
            "ctx", SETTINGS, 65, "Dana", "Acme", [initial_email()], 1, 2, "rid"
        )
        assert generated == []


class TestRepairIncomplete:
    def test_repairs_blank_slots_in_order(self):
        client = FakeCompletionClient([
            "Subject: Fresh angle\n\nHi Dana,\n\nRepaired body.",
        ])
        repairer = make_repairer(client)
        follow_ups = [follow_up(1, "Good", "Fine body"), follow_up(2, "Subject only", "")]

        repaired = repairer.repair_incomplete_follow_ups(
            "ctx", SETTINGS, 65, PROSPECT, initial_email(), follow_ups, 2, "job_1_row_0"
        )

        assert len(repaired) == 2
        assert repaired[0].subject == "Good"
        assert repaired[1].subject == "Fresh angle"
        assert repaired[1].email == "Hi Dana,\n\nRepaired body."
        assert client.request_ids == ["job_1_row_0_repair_followup_2_missing_followups_2_2"]

        prompt = client.calls[0][0]
        assert "Follow-up 1 subject: Good" in prompt

    def test_pads_to_desired_count(self):
        client = FakeCompletionClient(default="")
        repaired = make_repairer(client).repair_incomplete_follow_ups(
            "ctx", SETTINGS, 65, PROSPECT, initial_email(), [], 3, "rid"
        )

        assert [block.type for block in repaired] == ["Follow-up 1", "Follow-up 2", "Follow-up 3"]
        assert all(block.email == "" for block in repaired)
        assert len(client.calls) == 3

    def test_blank_regeneration_keeps_original_slot(self):
        client = FakeCompletionClient(["Subject: Only a subject"])
        follow_ups = [follow_up(1, "", "Existing body")]

        repaired = make_repairer(client).repair_incomplete_follow_ups(
            "ctx", SETTINGS, 65, PROSPECT, initial_email(), follow_ups, 1, "rid"
        )

        assert repaired[0].subject == ""
        assert repaired[0].email == "Existing body"

    def test_failure_is_not_raised(self):
        client = FakeCompletionClient(fail_on=["rid_repair"])
        repaired = make_repairer(client).repair_incomplete_follow_ups(
            "ctx", SETTINGS, 65, PROSPECT, initial_email(), [follow_up(1)], 1, "rid"
        )
        assert repaired[0].is_incomplete

    @pytest.mark.parametrize("desired", [0, -1])
    def test_no_follow_ups_requested(self, desired):
        client = FakeCompletionClient()
        repaired = make_repairer(client).repair_incomplete_follow_ups(
            "ctx", SETTINGS, 65, PROSPECT, initial_email(), [], desired, "rid"
        )
        assert repaired == []
        assert client.calls == []
