"""
Deadline reminders and notifier safety
"""
from datetime import timedelta

import pytest

from backend.src.extensions import db
from backend.src.models.task import Task
from backend.src.services.authorization import AuthorizationGate
from backend.src.services.notification_service import (
    DEADLINE_REMINDER,
    NotificationService,
    Notifier,
    SafeNotifier,
)
from backend.src.utils.errors import ForbiddenError, ValidationError


class TestDeadlineReminders:

    def test_reminds_tasks_due_within_window(self, notifier, org, make_task, now):
        soon = make_task('Due soon', deadline=now + timedelta(hours=6))
        make_task('Due later', deadline=now + timedelta(days=3))
        make_task('Already late', deadline=now - timedelta(hours=1))
        make_task('Done', deadline=now + timedelta(hours=2), status='Done')
        make_task('No deadline')

        service = NotificationService(SafeNotifier(notifier), window_hours=24)
        assert service.check_deadlines(now) == 1
        assert notifier.sent == [(DEADLINE_REMINDER, soon.id, org['member'].id)]
        assert db.session.get(Task, soon.id).reminder_sent is True

    def test_second_scan_sends_nothing(self, notifier, make_task, now):
        make_task('Due soon', deadline=now + timedelta(hours=6))
        service = NotificationService(SafeNotifier(notifier))

        assert service.check_deadlines(now) == 1
        assert service.check_deadlines(now) == 0
        assert len(notifier.sent) == 1

    def test_claim_is_one_shot(self, notifier, make_task, now):
        task = make_task('Due soon', deadline=now + timedelta(hours=6))
        service = NotificationService(SafeNotifier(notifier))
        assert service.claim_reminder(task.id) is True
        assert service.claim_reminder(task.id) is False


class TestSafeNotifier:

    def test_swallows_delivery_failures(self, make_task):
        class BrokenNotifier(Notifier):
            def notify(self, kind, task, recipient_id):
                raise RuntimeError('mail server down')

        SafeNotifier(BrokenNotifier()).notify('task_assigned', make_task(), 1)

    def test_skips_missing_recipient(self, notifier, make_task):
        SafeNotifier(notifier).notify('task_assigned', make_task(), None)
        assert notifier.sent == []


class TestFeeds:

    @pytest.fixture
    def feeds(self, services):
        return services.notifications

    def test_upcoming_deadlines_follow_scope(self, feeds, principals, org, make_task, now):
        soon = make_task('Due in two days', deadline=now + timedelta(days=2))
        make_task('Due next month', deadline=now + timedelta(days=30))
        make_task('Already done', deadline=now + timedelta(days=1), status='Done')
        make_task('Not mine', assigned_to=org['member2'], deadline=now + timedelta(days=1))

        items = feeds.upcoming_deadlines(principals['member'])
        assert [item['id'] for item in items] == [soon.id]
        assert items[0]['deadline'] == soon.deadline.isoformat()
        assert len(feeds.upcoming_deadlines(principals['manager'])) == 2
        assert feeds.upcoming_deadlines(principals['outsider']) == []

    def test_submission_feed(self, feeds, principals, org, make_task, now):
        pending = make_task('Pending', submission_status='Pending Review', submission_date=now)
        make_task('Reviewed', submission_status='Accepted', submission_date=now - timedelta(days=2))
        make_task('Reviewed long ago', submission_status='Rejected', submission_date=now - timedelta(days=20))
        make_task('Someone else', assigned_by=org['other_manager'], assigned_to=org['outsider'],
                  submission_status='Pending Review', submission_date=now)

        feed = feeds.submission_feed(principals['manager'], now)
        assert feed['pending_count'] == 1
        assert feed['pending_submissions'][0]['id'] == pending.id
        assert [item['title'] for item in feed['recent_reviews']] == ['Reviewed']

    def test_status_feed(self, feeds, principals, make_task, now):
        make_task('Rejected', submission_status='Rejected', submission_date=now - timedelta(days=1),
                  manager_feedback='Add tests')
        make_task('Waiting', submission_status='Pending Review', submission_date=now)

        updates = feeds.status_feed(principals['member'], now)
        assert len(updates) == 1
        assert updates[0]['manager_feedback'] == 'Add tests'

    def test_feeds_are_role_specific(self, feeds, principals):
        with pytest.raises(ForbiddenError):
            feeds.submission_feed(principals['member'])
        with pytest.raises(ForbiddenError):
            feeds.status_feed(principals['manager'])

    def test_manual_reminder(self, notifier, principals, org, make_task, now):
        feeds = NotificationService(notifier, gate=AuthorizationGate())
        task = make_task('Due soon', deadline=now + timedelta(days=1), reminder_sent=True)

        feeds.send_reminder(principals['manager'], task.id)
        assert notifier.sent == [(DEADLINE_REMINDER, task.id, org['member'].id)]

        with pytest.raises(ForbiddenError):
            feeds.send_reminder(principals['outsider'], task.id)
        with pytest.raises(ValidationError):
            feeds.send_reminder(principals['manager'], make_task('No deadline').id)
