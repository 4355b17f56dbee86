import uuid
from unittest.mock import patch

import pytest
from sqlalchemy import update

from app.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from app.models.workflow import (
    CoverState,
    DocumentState,
    DocumentVariant,
    WorkflowAction,
    WorkflowDocument,
    WorkflowHistory,
)
from app.schemas.workflow import DocumentCreate, DocumentUpdate
from app.services.actor import Actor
from app.services.document_router import DocumentRouter
from app.services.workflow import workflow


def _event_types(published):
    return [c.kwargs["event_type"] for c in published.call_args_list]


class TestCreate:
    def test_create_draft(self, db_session, author, org_x):
        doc = workflow.create(
            db_session,
            author,
            DocumentCreate(
                variant="activity",
                origin_org_id=org_x,
                subject="Orientation",
                payload={"description": "Welcome week"},
            ),
        )
        assert doc.state == DocumentState.draft
        assert doc.revision_no == 0
        assert doc.cover_state == CoverState.none
        assert doc.created_by == author.id
        assert doc.history == []

    def test_create_requires_origin_membership(self, db_session, outsider, org_x):
        with pytest.raises(PermissionDenied):
            workflow.create(
                db_session,
                outsider,
                DocumentCreate(variant="letter", origin_org_id=org_x),
            )

    def test_admin_outside_org_cannot_create(self, db_session, admin, org_x):
        with pytest.raises(PermissionDenied):
            workflow.create(
                db_session,
                admin,
                DocumentCreate(variant="letter", origin_org_id=org_x),
            )

    def test_target_must_differ_from_origin(self, db_session, author, org_x):
        with pytest.raises(ValidationError) as exc:
            workflow.create(
                db_session,
                author,
                DocumentCreate(
                    variant="letter", origin_org_id=org_x, target_org_id=org_x
                ),
            )
        assert exc.value.detail["details"] == {"field": "target_org_id"}

    def test_only_letters_have_targets(self, db_session, author, org_x, org_y):
        with pytest.raises(ValidationError):
            workflow.create(
                db_session,
                author,
                DocumentCreate(
                    variant="activity", origin_org_id=org_x, target_org_id=org_y
                ),
            )

    def test_report_links_to_activity(self, db_session, author, org_x, make_document):
        activity = make_document(author)
        report = make_document(
            author, variant=DocumentVariant.report, parent_id=activity.id
        )
        assert report.parent_id == activity.id
        assert report.parent.variant == DocumentVariant.activity

    def test_report_parent_must_be_activity(self, db_session, author, make_document):
        letter = make_document(author, variant=DocumentVariant.letter)
        with pytest.raises(ValidationError):
            make_document(author, variant=DocumentVariant.report, parent_id=letter.id)

    def test_report_parent_must_share_org(self, db_session, org_y, make_document):
        other = Actor.build(uuid.uuid4(), memberships=[(org_y, "MEMBER")])
        activity = make_document(other)
        author = Actor.build(uuid.uuid4(), memberships=[(uuid.uuid4(), "MEMBER")])
        with pytest.raises(ValidationError):
            make_document(author, variant=DocumentVariant.report, parent_id=activity.id)

    def test_create_publishes_event(self, published, author, make_document):
        make_document(author)
        assert _event_types(published) == ["document.created"]


class TestUpdate:
    def test_author_edits_draft(self, db_session, co_author, author, make_document):
        doc = make_document(author)
        updated = workflow.update(
            db_session, co_author, doc.id, DocumentUpdate(subject="New title")
        )
        assert updated.subject == "New title"
        assert updated.last_actor_id == co_author.id

    def test_cannot_edit_pending(self, db_session, author, make_document):
        doc = make_document(author, submit=True)
        with pytest.raises(InvalidTransitionError) as exc:
            workflow.update(db_session, author, doc.id, DocumentUpdate(subject="x"))
        assert exc.value.detail["details"]["current_state"] == "pending"

    def test_edit_during_revision(self, db_session, author, reviewer, make_document):
        doc = make_document(author, submit=True)
        workflow.request_revision(db_session, reviewer, doc.id, "add a location")
        updated = workflow.update(
            db_session,
            author,
            doc.id,
            DocumentUpdate(payload={"description": "x", "location": "Hall A"}),
        )
        assert updated.payload["location"] == "Hall A"

    def test_outsider_sees_not_found(self, db_session, author, outsider, make_document):
        doc = make_document(author)
        with pytest.raises(NotFoundError):
            workflow.update(db_session, outsider, doc.id, DocumentUpdate(subject="x"))


class TestTransitions:
    def test_round_trip(self, db_session, author, reviewer, make_document):
        doc = make_document(author)
        workflow.submit(db_session, author, doc.id)
        workflow.request_revision(db_session, reviewer, doc.id, "fix X")
        workflow.resubmit(db_session, author, doc.id)
        doc = workflow.approve(db_session, reviewer, doc.id, "ok")

        assert doc.state == DocumentState.approved
        assert doc.revision_no == 1
        assert doc.decision_note == "ok"
        history = workflow.history(db_session, author, doc.id)
        assert [h.action for h in history] == [
            WorkflowAction.submit,
            WorkflowAction.revise,
            WorkflowAction.resubmit,
            WorkflowAction.approve,
        ]
        assert [h.revision_no for h in history] == [0, 0, 1, 1]
        assert history[1].note == "fix X"
        assert history[3].from_state == "pending"
        assert history[3].to_state == "approved"

    def test_resubmit_clears_decision_note(
        self, db_session, author, reviewer, make_document
    ):
        doc = make_document(author, submit=True)
        workflow.request_revision(db_session, reviewer, doc.id, "fix X")
        doc = workflow.resubmit(db_session, author, doc.id)
        assert doc.decision_note is None
        assert doc.decided_at is None

    def test_approve_defaults_note(self, db_session, author, reviewer, make_document):
        doc = make_document(author, submit=True)
        doc = workflow.approve(db_session, reviewer, doc.id)
        assert doc.decision_note == "Approved"

    def test_approve_twice(self, db_session, author, reviewer, published, make_document):
        doc = make_document(author, submit=True)
        workflow.approve(db_session, reviewer, doc.id)
        with pytest.raises(InvalidTransitionError) as exc:
            workflow.approve(db_session, reviewer, doc.id)
        assert exc.value.detail["details"]["current_state"] == "approved"
        assert _event_types(published).count("document.approved") == 1

    def test_reject_requires_note(self, db_session, author, reviewer, make_document):
        doc = make_document(author, submit=True)
        with pytest.raises(ValidationError):
            workflow.reject(db_session, reviewer, doc.id, "")
        db_session.refresh(doc)
        assert doc.state == DocumentState.pending

    def test_reviewer_cannot_submit(self, db_session, author, reviewer, make_document):
        doc = make_document(author, submit=True)
        workflow.request_revision(db_session, reviewer, doc.id, "more detail")
        with pytest.raises(PermissionDenied):
            workflow.resubmit(db_session, reviewer, doc.id)

    def test_permission_checked_before_state(
        self, db_session, author, reviewer, make_document
    ):
        doc = make_document(author, submit=True)
        workflow.approve(db_session, reviewer, doc.id)
        with pytest.raises(PermissionDenied):
            workflow.approve(db_session, author, doc.id)

    def test_hidden_report_is_not_found(
        self, db_session, author, dema_reviewer, make_document
    ):
        doc = make_document(author, variant=DocumentVariant.report, submit=True)
        with pytest.raises(NotFoundError):
            workflow.approve(db_session, dema_reviewer, doc.id)

    def test_complete_activity(self, db_session, author, reviewer, make_document):
        doc = make_document(author, submit=True)
        workflow.approve(db_session, reviewer, doc.id)
        doc = workflow.complete(db_session, author, doc.id)
        assert doc.state == DocumentState.completed

    def test_letter_cannot_complete(self, db_session, author, reviewer, make_document):
        doc = make_document(author, variant=DocumentVariant.letter, submit=True)
        workflow.approve(db_session, reviewer, doc.id)
        with pytest.raises(InvalidTransitionError):
            workflow.complete(db_session, author, doc.id)

    def test_draft_invisible_to_reviewer(self, db_session, author, reviewer, make_document):
        doc = make_document(author)
        with pytest.raises(NotFoundError):
            workflow.get(db_session, reviewer, doc.id)

    def test_unknown_and_malformed_ids(self, db_session, reviewer):
        with pytest.raises(NotFoundError):
            workflow.approve(db_session, reviewer, uuid.uuid4())
        with pytest.raises(NotFoundError):
            workflow.approve(db_session, reviewer, "not-a-uuid")

    def test_failed_call_leaves_no_history(
        self, db_session, author, reviewer, make_document
    ):
        doc = make_document(author, submit=True)
        with pytest.raises(ValidationError):
            workflow.request_revision(db_session, reviewer, doc.id, " ")
        count = (
            db_session.query(WorkflowHistory)
            .filter(WorkflowHistory.document_id == doc.id)
            .count()
        )
        assert count == 1


class TestLetterScenario:
    def test_reject_letter_to_other_org(
        self, db_session, author, org_reviewer, org_y, make_document
    ):
        doc = make_document(author, variant=DocumentVariant.letter, target_org_id=org_y)
        workflow.submit(db_session, author, doc.id)

        inbox, _ = DocumentRouter.mailbox(db_session, org_reviewer, "inbox")
        archive, _ = DocumentRouter.mailbox(db_session, org_reviewer, "archive")
        assert doc.id in {d.id for d in inbox}
        assert doc.id not in {d.id for d in archive}

        doc = workflow.reject(db_session, org_reviewer, doc.id, "wrong format")
        assert doc.state == DocumentState.rejected

        for actor in (author, org_reviewer):
            inbox, _ = DocumentRouter.mailbox(db_session, actor, "inbox")
            archive, _ = DocumentRouter.mailbox(db_session, actor, "archive")
            assert doc.id not in {d.id for d in inbox}
            assert doc.id in {d.id for d in archive}

        with pytest.raises(InvalidTransitionError):
            workflow.approve(db_session, org_reviewer, doc.id)


class TestConcurrency:
    def test_second_approver_gets_conflict(
        self, session_factory, author, reviewer, second_reviewer, make_document
    ):
        doc_id = make_document(author, submit=True).id
        first = session_factory()
        second = session_factory()

        # both reviewers have read the pending document
        assert workflow.get(first, reviewer, doc_id).state == DocumentState.pending
        assert workflow.get(second, second_reviewer, doc_id).state == (
            DocumentState.pending
        )

        workflow.approve(first, reviewer, doc_id, "first")
        with pytest.raises(ConflictError) as exc:
            workflow.approve(second, second_reviewer, doc_id, "second")
        assert exc.value.status_code == 409
        assert exc.value.detail["details"] == {
            "expected_state": "pending",
            "retryable": True,
        }

        second.expire_all()
        doc = second.get(WorkflowDocument, doc_id)
        assert doc.decision_note == "first"
        approvals = [h for h in doc.history if h.action == WorkflowAction.approve]
        assert len(approvals) == 1

    def test_stale_write_is_rolled_back(
        self, db_session, author, reviewer, published, make_document
    ):
        doc = make_document(author, submit=True)
        # another writer moves the row without this session noticing
        db_session.execute(
            update(WorkflowDocument)
            .where(WorkflowDocument.id == doc.id)
            .values(state=DocumentState.revision_requested)
            .execution_options(synchronize_session=False)
        )
        published.reset_mock()
        with pytest.raises(ConflictError):
            workflow.reject(db_session, reviewer, doc.id, "late")
        assert published.call_count == 0

    def test_conflict_counts_metric(self, db_session, author, reviewer, make_document):
        doc = make_document(author, submit=True)
        db_session.execute(
            update(WorkflowDocument)
            .where(WorkflowDocument.id == doc.id)
            .values(revision_no=5)
            .execution_options(synchronize_session=False)
        )
        with patch("app.services.workflow.WORKFLOW_CONFLICTS") as conflicts:
            with pytest.raises(ConflictError):
                workflow.approve(db_session, reviewer, doc.id)
        conflicts.labels.assert_called_once_with(variant="activity")

    def test_only_conflicts_are_marked_retryable(self):
        conflict = ConflictError("changed", details={"expected_state": "pending"})
        assert conflict.retryable is True
        assert conflict.detail["details"] == {
            "expected_state": "pending",
            "retryable": True,
        }
        invalid = InvalidTransitionError("nope", details={"state": "approved"})
        assert invalid.retryable is False
        assert invalid.detail["details"] == {"state": "approved"}
        assert ConflictError("changed").details == {"retryable": True}


class TestCover:
    def test_cover_cycle(self, db_session, author, reviewer, make_document):
        doc = make_document(author, submit=True)
        doc = workflow.upload_cover(db_session, author, doc.id, "covers/a.png")
        assert doc.cover_state == CoverState.pending
        doc = workflow.decide_cover(db_session, reviewer, doc.id, False, "too dark")
        assert doc.cover_state == CoverState.rejected
        assert doc.cover_note == "too dark"
        doc = workflow.upload_cover(db_session, author, doc.id, "covers/b.png")
        doc = workflow.decide_cover(db_session, reviewer, doc.id, True)
        assert doc.cover_state == CoverState.approved
        assert doc.cover_decided_by == reviewer.id
        assert doc.state == DocumentState.pending

    def test_cover_history_uses_cover_states(
        self, db_session, author, reviewer, make_document
    ):
        doc = make_document(author, submit=True)
        workflow.upload_cover(db_session, author, doc.id, "covers/a.png")
        history = workflow.history(db_session, author, doc.id)
        assert history[-1].action == WorkflowAction.upload_cover
        assert (history[-1].from_state, history[-1].to_state) == ("none", "pending")

    def test_cover_on_letter_is_invalid_for_everyone(
        self, db_session, author, admin, outsider, make_document
    ):
        doc = make_document(author, variant=DocumentVariant.letter, submit=True)
        for actor in (admin, outsider):
            with pytest.raises(InvalidTransitionError):
                workflow.decide_cover(db_session, actor, doc.id, True)

    def test_dema_cannot_decide_cover(
        self, db_session, author, dema_reviewer, make_document
    ):
        doc = make_document(author, submit=True)
        workflow.upload_cover(db_session, author, doc.id, "covers/a.png")
        with pytest.raises(PermissionDenied):
            workflow.decide_cover(db_session, dema_reviewer, doc.id, True)

    def test_document_decision_keeps_cover(
        self, db_session, author, reviewer, make_document
    ):
        doc = make_document(author, submit=True)
        workflow.upload_cover(db_session, author, doc.id, "covers/a.png")
        doc = workflow.approve(db_session, reviewer, doc.id)
        assert doc.cover_state == CoverState.pending


class TestEvents:
    def test_decision_notifies_author(
        self, db_session, author, reviewer, published, make_document
    ):
        doc = make_document(author, submit=True)
        published.reset_mock()
        workflow.reject(db_session, reviewer, doc.id, "wrong format")
        kwargs = published.call_args.kwargs
        assert kwargs["event_type"] == "document.rejected"
        assert kwargs["payload"]["recipient_ids"] == [str(author.id)]
        assert kwargs["payload"]["note"] == "wrong format"

    def test_submit_notifies_submitter(self, author, published, make_document):
        make_document(author, submit=True)
        kwargs = published.call_args.kwargs
        assert kwargs["event_type"] == "document.submitted"
        assert kwargs["payload"]["recipient_ids"] == [str(author.id)]

    def test_event_failure_does_not_undo_commit(
        self, db_session, author, reviewer, published, make_document
    ):
        doc = make_document(author, submit=True)
        published.side_effect = RuntimeError("broker down")
        doc = workflow.approve(db_session, reviewer, doc.id)
        assert doc.state == DocumentState.approved


class TestDownload:
    def test_locator_falls_back_to_key(self, db_session, author, make_document):
        doc = make_document(author, file_key="docs/a.pdf")
        result = workflow.get_download_locator(db_session, author, doc.id)
        assert result["locator"] == "docs/a.pdf"

    @patch("app.services.storage.StorageService.generate_download_url")
    @patch("app.services.storage.StorageService.is_configured", return_value=True)
    def test_locator_presigned(
        self, _configured, mock_url, db_session, author, make_document
    ):
        mock_url.return_value = "https://s3.example.com/docs/a.pdf?sig=1"
        doc = make_document(author, file_key="docs/a.pdf")
        result = workflow.get_download_locator(db_session, author, doc.id)
        assert result["locator"].startswith("https://s3.example.com/")
        mock_url.assert_called_once_with("docs/a.pdf")

    def test_missing_file(self, db_session, author, make_document):
        doc = make_document(author)
        with pytest.raises(NotFoundError):
            workflow.get_download_locator(db_session, author, doc.id)

    def test_invisible_document(self, db_session, author, outsider, make_document):
        doc = make_document(author, file_key="docs/a.pdf")
        with pytest.raises(NotFoundError):
            workflow.get_download_locator(db_session, outsider, doc.id)
