"""Test suite for the dispute deadline scanner."""
from datetime import timedelta

from chama_disputes import db
from chama_disputes.models import (
    Dispute, DisputeComment, DisputeEscalation, DisputeStatus, DisputeVote,
    Notification, NotificationType, ResolutionType,
)
from chama_disputes.services import dispute_reminders
from chama_disputes.services import disputes as dispute_service
from chama_disputes.utils.dates import utcnow

from conftest import file_test_dispute, future, open_voting


def _expire_voting(dispute, votes=()):
    """Put raw votes on a voting dispute and move its deadline into the past."""
    for user_id, decision in votes:
        db.session.add(DisputeVote(dispute_id=dispute.id, user_id=user_id, decision=decision))
    dispute.voting_deadline = utcnow() - timedelta(hours=1)
    db.session.commit()


def _count(notification_type, dispute_id=None):
    query = Notification.query.filter_by(type=notification_type)
    if dispute_id is not None:
        query = query.filter_by(related_id=dispute_id)
    return query.count()


class TestOverdueDisputes:

    def test_tie_after_deadline_is_dismissed(self, chama):
        dispute = open_voting(chama, required_votes=4)
        voters = chama['voter_ids']
        _expire_voting(dispute, [(voters[0], 'for'), (voters[1], 'for'),
                                 (voters[2], 'against'), (voters[3], 'against')])

        summary = dispute_reminders.check_overdue_disputes()

        dispute = Dispute.query.get(dispute.id)
        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.resolution_type == ResolutionType.DISMISSED
        assert summary['resolved'] == 1
        assert summary['errors'] == 0

    def test_no_quorum_after_deadline_escalates(self, chama):
        dispute = open_voting(chama, required_votes=4)
        _expire_voting(dispute, [(chama['voter_ids'][0], 'for')])

        summary = dispute_reminders.check_overdue_disputes()

        dispute = Dispute.query.get(dispute.id)
        assert dispute.status == DisputeStatus.ESCALATED
        assert summary['escalated'] == 1

        escalation = DisputeEscalation.query.filter_by(dispute_id=dispute.id).one()
        assert escalation.escalated_by_user_id is None
        assert escalation.reason == 'quorum not reached'

    def test_nothing_left_in_voting(self, chama):
        disputes = [open_voting(chama, required_votes=3) for _ in range(3)]
        _expire_voting(disputes[0], [(v, 'for') for v in chama['voter_ids'][:3]])
        _expire_voting(disputes[1], [(chama['voter_ids'][0], 'against')])
        _expire_voting(disputes[2])

        summary = dispute_reminders.check_overdue_disputes()

        assert summary['finalized'] == 3
        assert Dispute.query.filter(
            Dispute.status == DisputeStatus.VOTING,
            Dispute.voting_deadline <= utcnow()
        ).count() == 0

    def test_second_pass_is_noop(self, chama):
        dispute = open_voting(chama, required_votes=4)
        _expire_voting(dispute)

        dispute_reminders.check_overdue_disputes()
        escalations = _count(NotificationType.DISPUTE_ESCALATED, dispute.id)

        summary = dispute_reminders.check_overdue_disputes()

        assert summary['finalized'] == 0
        assert _count(NotificationType.DISPUTE_ESCALATED, dispute.id) == escalations
        assert DisputeEscalation.query.filter_by(dispute_id=dispute.id).count() == 1

    def test_overridden_into_voting_is_finalized_later(self, chama):
        dispute = file_test_dispute(chama)
        dispute_service.update_dispute_status(chama['admin_id'], dispute.id, DisputeStatus.VOTING)

        summary = dispute_reminders.check_overdue_disputes(now=future(24 * 365))

        assert summary['finalized'] == 1
        assert Dispute.query.get(dispute.id).status == DisputeStatus.ESCALATED

    def test_future_deadline_untouched(self, chama):
        dispute = open_voting(chama, required_votes=4)

        dispute_reminders.check_overdue_disputes()

        assert Dispute.query.get(dispute.id).status == DisputeStatus.VOTING

    def test_one_failure_does_not_stop_the_pass(self, chama, monkeypatch):
        broken = open_voting(chama, required_votes=4)
        healthy = open_voting(chama, required_votes=4)
        _expire_voting(broken)
        _expire_voting(healthy)

        real_finalize = dispute_service.finalize

        def flaky_finalize(dispute_id, now=None):
            if dispute_id == broken.id:
                raise RuntimeError('database hiccup')
            return real_finalize(dispute_id, now=now)

        monkeypatch.setattr(dispute_service, 'finalize', flaky_finalize)

        summary = dispute_reminders.check_overdue_disputes()

        assert summary['errors'] == 1
        assert Dispute.query.get(healthy.id).status == DisputeStatus.ESCALATED
        assert Dispute.query.get(broken.id).status == DisputeStatus.VOTING

    def test_overdue_discussion_notifies_officers_once(self, chama):
        dispute = file_test_dispute(chama)
        dispute_service.start_discussion(chama['secretary_id'], dispute.id, future())
        dispute.discussion_deadline = utcnow() - timedelta(hours=2)
        db.session.commit()

        first = dispute_reminders.check_overdue_disputes()
        second = dispute_reminders.check_overdue_disputes()

        assert first['overdue_notices'] == 2
        assert second['overdue_notices'] == 0
        notified = {n.user_id for n in Notification.query.filter_by(
            type=NotificationType.DISPUTE_OVERDUE, related_id=dispute.id
        ).all()}
        assert notified == {chama['admin_id'], chama['secretary_id']}

        # Discussion never advances on its own
        assert Dispute.query.get(dispute.id).status == DisputeStatus.DISCUSSION

    def test_overdue_notice_repeats_after_interval(self, chama):
        dispute = file_test_dispute(chama)
        dispute_service.start_discussion(chama['secretary_id'], dispute.id, future())
        dispute.discussion_deadline = utcnow() - timedelta(hours=2)
        db.session.commit()

        dispute_reminders.check_overdue_disputes()
        summary = dispute_reminders.check_overdue_disputes(now=utcnow() + timedelta(hours=25))

        assert summary['overdue_notices'] == 2

    def test_skipped_when_another_scanner_holds_the_lock(self, chama, monkeypatch):
        dispute = open_voting(chama, required_votes=4)
        _expire_voting(dispute)
        monkeypatch.setattr(dispute_reminders, 'acquire_scan_lock', lambda name, ttl: None)

        summary = dispute_reminders.check_overdue_disputes()

        assert summary['skipped'] is True
        assert Dispute.query.get(dispute.id).status == DisputeStatus.VOTING


class TestApproachingDeadlines:

    def test_voting_reminders_go_to_non_voters_once(self, chama):
        dispute = open_voting(chama, required_votes=4, hours=5)
        dispute_service.cast_vote(chama['voter_ids'][0], dispute.id, 'for')

        first = dispute_reminders.check_approaching_deadlines()
        second = dispute_reminders.check_approaching_deadlines()

        reminded = {n.user_id for n in Notification.query.filter_by(
            type=NotificationType.DISPUTE_VOTE_REMINDER, related_id=dispute.id
        ).all()}
        assert reminded == set(chama['voter_ids'][1:])
        assert first['reminded'] == 4
        assert second['reminded'] == 0
        assert _count(NotificationType.DISPUTE_VOTE_REMINDER, dispute.id) == 4

    def test_voting_reminders_repeat_after_interval(self, chama):
        dispute = open_voting(chama, required_votes=4, hours=5)

        dispute_reminders.check_approaching_deadlines()
        summary = dispute_reminders.check_approaching_deadlines(now=utcnow() + timedelta(hours=2))

        assert summary['reminded'] == 5
        assert _count(NotificationType.DISPUTE_VOTE_REMINDER, dispute.id) == 10

    def test_deadline_outside_window_not_reminded(self, chama):
        dispute = open_voting(chama, required_votes=4, hours=72)

        summary = dispute_reminders.check_approaching_deadlines()

        assert summary['checked'] == 0
        assert _count(NotificationType.DISPUTE_VOTE_REMINDER, dispute.id) == 0

    def test_discussion_reminders_skip_recent_commenters(self, chama):
        dispute = file_test_dispute(chama)
        dispute_service.start_discussion(chama['secretary_id'], dispute.id, future(6))
        dispute_service.add_comment(chama['filer_id'], dispute.id, 'My side of the story')

        dispute_reminders.check_approaching_deadlines()

        reminded = {n.user_id for n in Notification.query.filter_by(
            type=NotificationType.DISPUTE_DISCUSSION_REMINDER, related_id=dispute.id
        ).all()}
        assert reminded == {chama['accused_id'], chama['admin_id'], chama['secretary_id']}

    def test_old_comment_does_not_count_as_recent(self, chama):
        dispute = file_test_dispute(chama)
        dispute_service.start_discussion(chama['secretary_id'], dispute.id, future(6))
        comment = dispute_service.add_comment(chama['filer_id'], dispute.id, 'Said this long ago')
        DisputeComment.query.filter_by(id=comment.id).update({'created_at': utcnow() - timedelta(days=3)})
        db.session.commit()

        dispute_reminders.check_approaching_deadlines()

        assert chama['filer_id'] in {n.user_id for n in Notification.query.filter_by(
            type=NotificationType.DISPUTE_DISCUSSION_REMINDER, related_id=dispute.id
        ).all()}
