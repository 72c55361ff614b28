"""Test suite for the dispute lifecycle controller."""
from datetime import timedelta

import pytest

from chama_disputes import db
from chama_disputes.models import (
    Dispute, DisputeAuditLog, DisputeStatus, DisputeVote, Notification, NotificationType, ResolutionType,
)
from chama_disputes.services import disputes as dispute_service
from chama_disputes.services import storage
from chama_disputes.services.errors import (
    Conflict, Forbidden, InvalidArgument, InvalidTransition, NotFound, Unavailable,
)
from chama_disputes.utils.dates import utcnow

from conftest import create_user, file_test_dispute, future, open_voting


class TestFileDispute:

    def test_file_dispute(self, chama):
        dispute = file_test_dispute(chama, amount_disputed='1500.50', related_loan_id='LN-42')

        assert dispute.status == DisputeStatus.FILED
        assert dispute.priority == 'normal'
        assert float(dispute.amount_disputed) == 1500.50
        assert dispute.related_loan_id == 'LN-42'
        assert dispute.discussion_deadline is None and dispute.voting_deadline is None

        audit = DisputeAuditLog.query.filter_by(dispute_id=dispute.id).all()
        assert [a.action for a in audit] == ['filed']

    def test_members_except_filer_are_notified(self, chama):
        dispute = file_test_dispute(chama)

        notified = {n.user_id for n in Notification.query.filter_by(
            related_id=dispute.id, type=NotificationType.DISPUTE_FILED
        ).all()}
        assert chama['filer_id'] not in notified
        assert chama['accused_id'] in notified
        assert chama['admin_id'] in notified

    def test_non_member_cannot_file(self, chama, outsider):
        with pytest.raises(Forbidden):
            file_test_dispute(chama, filer_id=outsider)

    def test_inactive_member_cannot_file(self, chama):
        from conftest import add_member
        former = create_user()
        add_member(chama['id'], former, status='left')

        with pytest.raises(Forbidden):
            file_test_dispute(chama, filer_id=former)

    def test_empty_title_rejected(self, chama):
        with pytest.raises(InvalidArgument):
            file_test_dispute(chama, title='   ')

    def test_invalid_type_rejected(self, chama):
        with pytest.raises(InvalidArgument):
            file_test_dispute(chama, dispute_type='noise_complaint')

    def test_cannot_accuse_self(self, chama):
        with pytest.raises(InvalidArgument):
            file_test_dispute(chama, filed_against_user_id=chama['filer_id'])

    def test_accused_must_be_member(self, chama, outsider):
        with pytest.raises(InvalidArgument):
            file_test_dispute(chama, filed_against_user_id=outsider)

    def test_negative_amount_rejected(self, chama):
        with pytest.raises(InvalidArgument):
            file_test_dispute(chama, amount_disputed=-5)


class TestPhaseTransitions:

    def test_start_discussion(self, chama, filed_dispute):
        deadline = future(72)
        dispute = dispute_service.start_discussion(chama['secretary_id'], filed_dispute.id, deadline)

        assert dispute.status == DisputeStatus.DISCUSSION
        assert dispute.discussion_deadline == deadline

    def test_only_officers_start_discussion(self, chama, filed_dispute):
        with pytest.raises(Forbidden):
            dispute_service.start_discussion(chama['member_ids'][3], filed_dispute.id, future())

    def test_discussion_deadline_must_be_future(self, chama, filed_dispute):
        with pytest.raises(InvalidArgument):
            dispute_service.start_discussion(chama['secretary_id'], filed_dispute.id, utcnow() - timedelta(minutes=1))

        assert Dispute.query.get(filed_dispute.id).status == DisputeStatus.FILED

    def test_past_voting_deadline_keeps_discussion(self, chama, filed_dispute):
        dispute_service.start_discussion(chama['secretary_id'], filed_dispute.id, future())

        with pytest.raises(InvalidArgument):
            dispute_service.start_voting(chama['secretary_id'], filed_dispute.id, utcnow() - timedelta(hours=1), 3)

        dispute = Dispute.query.get(filed_dispute.id)
        assert dispute.status == DisputeStatus.DISCUSSION
        assert dispute.voting_deadline is None

    def test_start_voting_clears_discussion_deadline(self, chama, filed_dispute):
        dispute_service.start_discussion(chama['secretary_id'], filed_dispute.id, future())
        dispute = dispute_service.start_voting(chama['secretary_id'], filed_dispute.id, future(24), 2)

        assert dispute.status == DisputeStatus.VOTING
        assert dispute.discussion_deadline is None
        assert dispute.voting_deadline is not None
        assert dispute.required_votes == 2

    def test_default_required_votes_is_majority_of_eligible(self, chama, filed_dispute):
        dispute_service.start_discussion(chama['secretary_id'], filed_dispute.id, future())
        dispute = dispute_service.start_voting(chama['secretary_id'], filed_dispute.id, future())

        # Five eligible voters once filer and accused are excluded
        assert dispute.required_votes == 3

    def test_invalid_required_votes(self, chama, filed_dispute):
        dispute_service.start_discussion(chama['secretary_id'], filed_dispute.id, future())
        with pytest.raises(InvalidArgument):
            dispute_service.start_voting(chama['secretary_id'], filed_dispute.id, future(), 0)

    def test_start_voting_from_filed_is_invalid(self, chama, filed_dispute):
        with pytest.raises(InvalidTransition) as exc:
            dispute_service.start_voting(chama['secretary_id'], filed_dispute.id, future(), 3)

        assert isinstance(exc.value, Conflict)
        assert exc.value.from_status == DisputeStatus.FILED

    def test_start_discussion_twice_is_invalid(self, chama, filed_dispute):
        dispute_service.start_discussion(chama['secretary_id'], filed_dispute.id, future())
        with pytest.raises(InvalidTransition):
            dispute_service.start_discussion(chama['secretary_id'], filed_dispute.id, future())

    def test_unknown_dispute(self, chama):
        with pytest.raises(NotFound):
            dispute_service.start_discussion(chama['secretary_id'], 999999, future())


class TestVoting:

    def test_two_for_one_against_upholds(self, chama, voting_dispute):
        voters = chama['voter_ids']
        dispute_service.cast_vote(voters[0], voting_dispute.id, 'for')
        dispute_service.cast_vote(voters[1], voting_dispute.id, 'against')
        vote, dispute = dispute_service.cast_vote(voters[2], voting_dispute.id, 'for', 'Receipts check out')

        assert vote.reason == 'Receipts check out'
        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.resolution_type == ResolutionType.UPHELD
        assert dispute.voting_deadline is None
        assert dispute.resolved_at is not None

    def test_below_quorum_stays_in_voting(self, chama, voting_dispute):
        _, dispute = dispute_service.cast_vote(chama['voter_ids'][0], voting_dispute.id, 'for')
        assert dispute.status == DisputeStatus.VOTING

    def test_non_member_cannot_vote(self, outsider, voting_dispute):
        with pytest.raises(Forbidden):
            dispute_service.cast_vote(outsider, voting_dispute.id, 'for')

        assert DisputeVote.query.filter_by(dispute_id=voting_dispute.id).count() == 0

    def test_parties_cannot_vote(self, chama, voting_dispute):
        with pytest.raises(Forbidden):
            dispute_service.cast_vote(chama['filer_id'], voting_dispute.id, 'for')
        with pytest.raises(Forbidden):
            dispute_service.cast_vote(chama['accused_id'], voting_dispute.id, 'against')

    def test_party_votes_allowed_when_configured(self, app, chama, voting_dispute, monkeypatch):
        monkeypatch.setitem(app.config, 'DISPUTE_ALLOW_PARTY_VOTES', True)

        vote, _ = dispute_service.cast_vote(chama['filer_id'], voting_dispute.id, 'for')
        assert vote.id is not None

    def test_duplicate_vote_conflicts(self, chama, voting_dispute):
        voter = chama['voter_ids'][0]
        dispute_service.cast_vote(voter, voting_dispute.id, 'for')

        with pytest.raises(Conflict):
            dispute_service.cast_vote(voter, voting_dispute.id, 'against')

        assert DisputeVote.query.filter_by(dispute_id=voting_dispute.id, user_id=voter).count() == 1

    def test_concurrent_duplicate_vote_hits_unique_constraint(self, chama, voting_dispute, monkeypatch):
        voter = chama['voter_ids'][0]
        dispute_service.cast_vote(voter, voting_dispute.id, 'for')

        class NoExistingVote:
            def filter_by(self, **kwargs):
                return self

            def first(self):
                return None

        # Both requests passed the existence check before either committed
        monkeypatch.setattr(DisputeVote, 'query', NoExistingVote())

        with pytest.raises(Conflict):
            dispute_service.cast_vote(voter, voting_dispute.id, 'against')

        votes = db.session.query(DisputeVote).filter_by(dispute_id=voting_dispute.id, user_id=voter).all()
        assert [v.decision for v in votes] == ['for']

    def test_finalize_losing_race_is_noop(self, chama, voting_dispute):
        for voter in chama['voter_ids'][:3]:
            db.session.add(DisputeVote(dispute_id=voting_dispute.id, user_id=voter, decision='for'))
        db.session.commit()

        # Another worker resolved the dispute after we loaded it
        Dispute.query.filter_by(id=voting_dispute.id).update({'status': DisputeStatus.RESOLVED})
        db.session.commit()
        voting_dispute.status = DisputeStatus.VOTING

        with db.session.no_autoflush:
            dispute = dispute_service.finalize(voting_dispute.id)

        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.resolution_type is None
        assert Notification.query.filter_by(
            related_id=voting_dispute.id, type=NotificationType.DISPUTE_RESOLVED
        ).count() == 0
        assert DisputeAuditLog.query.filter_by(
            dispute_id=voting_dispute.id, action='vote_finalized'
        ).count() == 0

    def test_invalid_decision(self, chama, voting_dispute):
        with pytest.raises(InvalidArgument):
            dispute_service.cast_vote(chama['voter_ids'][0], voting_dispute.id, 'maybe')

    def test_vote_outside_voting_phase(self, chama, filed_dispute):
        with pytest.raises(InvalidTransition):
            dispute_service.cast_vote(chama['voter_ids'][0], filed_dispute.id, 'for')

    def test_vote_after_deadline(self, chama, voting_dispute):
        voting_dispute.voting_deadline = utcnow() - timedelta(minutes=5)
        db.session.commit()

        with pytest.raises(Conflict):
            dispute_service.cast_vote(chama['voter_ids'][0], voting_dispute.id, 'for')

    def test_finalize_is_idempotent(self, chama, voting_dispute):
        for voter in chama['voter_ids'][:3]:
            dispute_service.cast_vote(voter, voting_dispute.id, 'for')

        def resolved_notices():
            return Notification.query.filter_by(
                related_id=voting_dispute.id, type=NotificationType.DISPUTE_RESOLVED
            ).count()

        before = resolved_notices()
        assert before > 0

        dispute = dispute_service.finalize(voting_dispute.id)
        dispute = dispute_service.finalize(voting_dispute.id)

        assert dispute.status == DisputeStatus.RESOLVED
        assert resolved_notices() == before
        assert DisputeAuditLog.query.filter_by(
            dispute_id=voting_dispute.id, action='vote_finalized'
        ).count() == 1

    def test_finalize_before_deadline_without_quorum_is_noop(self, chama, voting_dispute):
        dispute_service.cast_vote(chama['voter_ids'][0], voting_dispute.id, 'for')

        dispute = dispute_service.finalize(voting_dispute.id)
        assert dispute.status == DisputeStatus.VOTING

    def test_finalize_after_deadline_without_quorum_escalates(self, chama, voting_dispute):
        dispute_service.cast_vote(chama['voter_ids'][0], voting_dispute.id, 'for')

        dispute = dispute_service.finalize(voting_dispute.id, now=future(72))

        assert dispute.status == DisputeStatus.ESCALATED
        assert dispute.escalated_at is not None
        assert dispute.resolution_type is None
        assert dispute.voting_deadline is None

    def test_list_votes(self, chama, voting_dispute):
        dispute_service.cast_vote(chama['voter_ids'][0], voting_dispute.id, 'for')
        dispute_service.cast_vote(chama['voter_ids'][1], voting_dispute.id, 'abstain')

        votes = dispute_service.list_votes(chama['filer_id'], voting_dispute.id)
        assert [v.decision for v in votes] == ['for', 'abstain']


class TestResolveAndOverride:

    def test_officer_resolves(self, chama, filed_dispute):
        dispute = dispute_service.resolve_dispute(
            chama['admin_id'], filed_dispute.id, ResolutionType.REPAYMENT_PLAN, 'Agreed schedule'
        )

        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.resolution_type == ResolutionType.REPAYMENT_PLAN
        assert dispute.resolved_by_user_id == chama['admin_id']

    def test_resolution_freezes_votes_and_comments(self, chama, voting_dispute):
        dispute_service.resolve_dispute(chama['admin_id'], voting_dispute.id, ResolutionType.MEDIATION)

        with pytest.raises(InvalidTransition):
            dispute_service.cast_vote(chama['voter_ids'][0], voting_dispute.id, 'for')
        with pytest.raises(InvalidTransition):
            dispute_service.add_comment(chama['voter_ids'][0], voting_dispute.id, 'Too late?')

    def test_member_cannot_resolve(self, chama, filed_dispute):
        with pytest.raises(Forbidden):
            dispute_service.resolve_dispute(chama['member_ids'][2], filed_dispute.id, ResolutionType.NO_ACTION)

    def test_resolve_twice_is_invalid(self, chama, filed_dispute):
        dispute_service.resolve_dispute(chama['admin_id'], filed_dispute.id, ResolutionType.NO_ACTION)
        with pytest.raises(InvalidTransition):
            dispute_service.resolve_dispute(chama['admin_id'], filed_dispute.id, ResolutionType.NO_ACTION)

    def test_invalid_resolution_type(self, chama, filed_dispute):
        with pytest.raises(InvalidArgument):
            dispute_service.resolve_dispute(chama['admin_id'], filed_dispute.id, 'coin_toss')

    def test_chama_admin_override_is_audited(self, chama, voting_dispute):
        dispute = dispute_service.update_dispute_status(
            chama['admin_id'], voting_dispute.id, DisputeStatus.DISCUSSION, notes='More evidence needed'
        )

        assert dispute.status == DisputeStatus.DISCUSSION
        assert dispute.voting_deadline is None

        entry = DisputeAuditLog.query.filter_by(dispute_id=dispute.id, action='status_override').one()
        assert entry.actor_user_id == chama['admin_id']
        assert entry.from_status == DisputeStatus.VOTING
        assert entry.to_status == DisputeStatus.DISCUSSION

    def test_secretary_cannot_override(self, chama, filed_dispute):
        with pytest.raises(Forbidden):
            dispute_service.update_dispute_status(chama['secretary_id'], filed_dispute.id, DisputeStatus.REJECTED)

    def test_platform_admin_can_override(self, chama, filed_dispute, platform_admin):
        dispute = dispute_service.update_dispute_status(platform_admin, filed_dispute.id, DisputeStatus.REJECTED)
        assert dispute.status == DisputeStatus.REJECTED

    def test_override_from_terminal_is_invalid(self, chama, filed_dispute):
        dispute_service.update_dispute_status(chama['admin_id'], filed_dispute.id, DisputeStatus.REJECTED)

        with pytest.raises(InvalidTransition):
            dispute_service.update_dispute_status(chama['admin_id'], filed_dispute.id, DisputeStatus.FILED)

    def test_override_to_resolved_needs_resolution_type(self, chama, filed_dispute):
        with pytest.raises(InvalidArgument):
            dispute_service.update_dispute_status(chama['admin_id'], filed_dispute.id, DisputeStatus.RESOLVED)

    def test_override_into_voting_gets_default_deadline(self, app, chama, filed_dispute):
        before = utcnow()
        dispute = dispute_service.update_dispute_status(chama['admin_id'], filed_dispute.id, DisputeStatus.VOTING)

        hours = app.config['DISPUTE_OVERRIDE_PHASE_HOURS']
        assert dispute.voting_deadline >= before + timedelta(hours=hours)
        assert dispute.discussion_deadline is None
        assert dispute.required_votes == 3

    def test_override_into_discussion_with_deadline(self, chama, filed_dispute):
        deadline = future(10)
        dispute = dispute_service.update_dispute_status(
            chama['admin_id'], filed_dispute.id, DisputeStatus.DISCUSSION, deadline=deadline
        )
        assert dispute.discussion_deadline == deadline

    def test_override_deadline_must_be_future(self, chama, filed_dispute):
        with pytest.raises(InvalidArgument):
            dispute_service.update_dispute_status(
                chama['admin_id'], filed_dispute.id, DisputeStatus.VOTING, deadline=future(-1)
            )
        assert Dispute.query.get(filed_dispute.id).status == DisputeStatus.FILED


class TestEvidenceAndComments:

    def test_add_evidence_reference(self, chama, filed_dispute):
        evidence = dispute_service.add_evidence(
            chama['filer_id'], filed_dispute.id, 'M-Pesa statement',
            evidence_type='transaction_record', external_reference='QWE123RTY'
        )

        assert evidence.external_reference == 'QWE123RTY'
        assert [e.id for e in dispute_service.list_evidence(chama['accused_id'], filed_dispute.id)] == [evidence.id]

    def test_add_evidence_with_upload(self, chama, filed_dispute, monkeypatch):
        calls = {}

        def fake_upload(file_data, file_name, content_type, folder, allowed_types, max_size):
            calls['folder'] = folder
            return {'url': 'https://files.example/abc.pdf', 'key': f'{folder}/abc.pdf',
                    'size': len(file_data), 'mime_type': content_type}

        monkeypatch.setattr(storage, 'upload', fake_upload)

        evidence = dispute_service.add_evidence(
            chama['filer_id'], filed_dispute.id, 'Receipt',
            file_data=b'%PDF-1.4', file_name='receipt.pdf', content_type='application/pdf'
        )

        assert calls['folder'] == f'disputes/{filed_dispute.id}/evidence'
        assert evidence.file_url == 'https://files.example/abc.pdf'
        assert evidence.file_size == 8

    def test_storage_failure_surfaces(self, chama, filed_dispute, monkeypatch):
        def failing_upload(*args, **kwargs):
            raise Unavailable('Storage service not configured')

        monkeypatch.setattr(storage, 'upload', failing_upload)

        with pytest.raises(Unavailable):
            dispute_service.add_evidence(
                chama['filer_id'], filed_dispute.id, 'Receipt',
                file_data=b'data', file_name='r.pdf', content_type='application/pdf'
            )

    def test_evidence_requires_title(self, chama, filed_dispute):
        with pytest.raises(InvalidArgument):
            dispute_service.add_evidence(chama['filer_id'], filed_dispute.id, '')

    def test_outsider_cannot_add_evidence(self, outsider, filed_dispute):
        with pytest.raises(Forbidden):
            dispute_service.add_evidence(outsider, filed_dispute.id, 'Hearsay')

    def test_comments_listed_flat_in_order(self, chama, filed_dispute):
        first = dispute_service.add_comment(chama['filer_id'], filed_dispute.id, 'I paid on the 5th')
        reply = dispute_service.add_comment(
            chama['accused_id'], filed_dispute.id, 'Not received', parent_comment_id=first.id
        )

        comments = dispute_service.list_comments(chama['member_ids'][3], filed_dispute.id)
        assert [c.id for c in comments] == [first.id, reply.id]
        assert comments[1].parent_comment_id == first.id

    def test_parent_must_belong_to_dispute(self, chama, filed_dispute):
        other = file_test_dispute(chama)
        foreign = dispute_service.add_comment(chama['filer_id'], other.id, 'Elsewhere')

        with pytest.raises(NotFound):
            dispute_service.add_comment(chama['filer_id'], filed_dispute.id, 'Reply', parent_comment_id=foreign.id)

    def test_internal_comments_hidden_from_members(self, chama, filed_dispute):
        dispute_service.add_comment(chama['secretary_id'], filed_dispute.id, 'Officers only', is_internal=True)
        dispute_service.add_comment(chama['filer_id'], filed_dispute.id, 'Public')

        member_view = dispute_service.list_comments(chama['member_ids'][3], filed_dispute.id)
        officer_view = dispute_service.list_comments(chama['admin_id'], filed_dispute.id)

        assert [c.content for c in member_view] == ['Public']
        assert len(officer_view) == 2

    def test_members_cannot_post_internal(self, chama, filed_dispute):
        with pytest.raises(Forbidden):
            dispute_service.add_comment(chama['filer_id'], filed_dispute.id, 'Secret', is_internal=True)

    def test_empty_comment_rejected(self, chama, filed_dispute):
        with pytest.raises(InvalidArgument):
            dispute_service.add_comment(chama['filer_id'], filed_dispute.id, '  ')


class TestQueries:

    def test_list_chama_disputes(self, chama):
        file_test_dispute(chama)
        second = file_test_dispute(chama, dispute_type='loan_default')
        dispute_service.start_discussion(chama['secretary_id'], second.id, future())

        disputes, total = dispute_service.list_chama_disputes(chama['member_ids'][4], chama['id'])
        assert total == 2

        disputes, total = dispute_service.list_chama_disputes(
            chama['member_ids'][4], chama['id'], status=DisputeStatus.DISCUSSION
        )
        assert [d.id for d in disputes] == [second.id]

    def test_outsider_cannot_list(self, chama, outsider):
        with pytest.raises(Forbidden):
            dispute_service.list_chama_disputes(outsider, chama['id'])

    def test_list_user_disputes(self, chama):
        mine = file_test_dispute(chama)
        file_test_dispute(chama, filer_id=chama['member_ids'][3], filed_against_user_id=chama['member_ids'][4])

        disputes = dispute_service.list_user_disputes(chama['accused_id'])
        assert [d.id for d in disputes] == [mine.id]

    def test_stats(self, chama):
        file_test_dispute(chama)
        resolved = file_test_dispute(chama, dispute_type='rule_violation')
        dispute_service.resolve_dispute(chama['admin_id'], resolved.id, ResolutionType.NO_ACTION)

        stats = dispute_service.chama_dispute_stats(chama['filer_id'], chama['id'])
        assert stats['total'] == 2
        assert stats['active'] == 1
        assert stats['by_status'][DisputeStatus.RESOLVED] == 1
        assert stats['by_type']['rule_violation'] == 1
        assert stats['avg_resolution_days'] is not None

    def test_get_dispute_requires_membership(self, filed_dispute, outsider):
        with pytest.raises(Forbidden):
            dispute_service.get_dispute(outsider, filed_dispute.id)

    def test_get_dispute_open_to_platform_admin(self, filed_dispute, platform_admin):
        assert dispute_service.get_dispute(platform_admin, filed_dispute.id).id == filed_dispute.id


def test_vote_summary(chama):
    dispute = open_voting(chama, required_votes=4)
    dispute_service.cast_vote(chama['voter_ids'][0], dispute.id, 'for')

    summary = dispute_service.vote_summary(dispute)
    assert summary['for'] == 1
    assert summary['required_votes'] == 4
    assert summary['quorum_reached'] is False
