"""
🎫 Ticket Lifecycle Tests

Covers TicketLifecycleService end to end:
1. Creation with attachments and ticket number format
2. Assignment, status changes and timestamps
3. Comments and ratings
4. Atomicity: a failing write leaves nothing behind
5. Notifications scheduled only after a successful commit
"""

import re
from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import patch

from django.db import DatabaseError, OperationalError
from django.test import TestCase

from apps.audit.models import AuditEvent
from apps.common.types import AuthorizationError
from apps.notifications.services import TICKET_EVENT_TASK
from apps.tickets.exceptions import (
    DuplicateRatingError,
    InvalidFileError,
    InvalidRatingError,
    InvalidStatusError,
    NotFoundError,
    OperationTimeoutError,
    StorageError,
    TicketValidationError,
    TooManyFilesError,
)
from apps.tickets.models import Ticket, TicketAttachment, TicketRating, TicketUpdate
from apps.tickets.repository import TicketStore
from apps.tickets.services import TicketLifecycleService
from apps.users.models import ServiceProvider
from tests.factories.support_desk import (
    RecordingScheduler,
    create_admin,
    create_device_type,
    create_employee,
    create_provider,
    create_ticket,
    exe_upload,
    pdf_upload,
    png_upload,
)


class RatingWriteFailsStore(TicketStore):
    """Store whose rating insert hits a dead connection"""

    def insert_rating(self, *args, **kwargs):
        raise DatabaseError('connection reset')


class FailingTrail:
    """History writer that blows up on the first append"""

    def __init__(self, error):
        self.error = error

    def append(self, *args, **kwargs):
        raise self.error


class LifecycleTestCase(TestCase):
    def setUp(self):
        self.scheduler = RecordingScheduler()
        self.service = TicketLifecycleService(scheduler=self.scheduler)
        self.employee = create_employee()
        self.provider = create_provider()
        self.admin = create_admin()
        self.device_type = create_device_type('Laptop')

    def ticket_data(self, **overrides):
        data = {
            'device_type_id': self.device_type.id,
            'device_name': 'Dell Latitude 5420',
            'issue_description': 'Laptop will not boot past the BIOS screen',
            'priority': 'high',
        }
        data.update(overrides)
        return data


class TicketCreateTest(LifecycleTestCase):
    """🆕 Ticket submission"""

    def test_create_ticket_success(self):
        result = self.service.create(self.employee.id, self.ticket_data())

        self.assertTrue(result.is_ok())
        payload = result.unwrap()
        self.assertRegex(payload['ticket_number'], r'^TKT-\d{8}-[A-Z0-9]{4}$')

        ticket = Ticket.objects.get(pk=payload['ticket_id'])
        self.assertEqual(ticket.status, Ticket.STATUS_PENDING)
        self.assertEqual(ticket.priority, 'high')
        self.assertEqual(ticket.department_id, self.employee.department_id)
        self.assertIsNone(ticket.assigned_provider_id)

        updates = list(ticket.updates.all())
        self.assertEqual(len(updates), 1)
        self.assertEqual(updates[0].update_type, TicketUpdate.TYPE_COMMENT)
        self.assertEqual(updates[0].message, 'Ticket created')
        self.assertEqual(updates[0].user_id, self.employee.user_id)

        self.assertEqual(self.scheduler.events, [('ticket_created', ticket.id, {})])

    def test_invalid_priority_falls_back_to_medium(self):
        result = self.service.create(self.employee.id, self.ticket_data(priority='whenever'))

        ticket = Ticket.objects.get(pk=result.unwrap()['ticket_id'])
        self.assertEqual(ticket.priority, 'medium')

    def test_non_string_priority_falls_back_to_medium(self):
        for priority in (True, ['high'], {'level': 'high'}, 3, None):
            with self.subTest(priority=priority):
                result = self.service.create(self.employee.id, self.ticket_data(priority=priority))

                self.assertTrue(result.is_ok())
                ticket = Ticket.objects.get(pk=result.unwrap()['ticket_id'])
                self.assertEqual(ticket.priority, 'medium')

    def test_priority_is_case_insensitive(self):
        result = self.service.create(self.employee.id, self.ticket_data(priority=' CRITICAL '))

        self.assertEqual(Ticket.objects.get(pk=result.unwrap()['ticket_id']).priority, 'critical')

    def test_missing_priority_defaults_to_medium(self):
        data = self.ticket_data()
        del data['priority']

        result = self.service.create(self.employee.id, data)

        ticket = Ticket.objects.get(pk=result.unwrap()['ticket_id'])
        self.assertEqual(ticket.priority, 'medium')

    def test_ticket_number_uses_clock_date(self):
        service = TicketLifecycleService(
            scheduler=self.scheduler,
            clock=lambda: datetime(2025, 3, 14, 9, 30, tzinfo=UTC),
        )

        number = service.generate_ticket_number()

        self.assertTrue(re.match(r'^TKT-20250314-[A-Z0-9]{4}$', number))

    def test_create_with_attachments_stores_files(self):
        result = self.service.create(
            self.employee.id,
            self.ticket_data(),
            attachments=[pdf_upload('invoice.pdf'), png_upload('screen.png')],
        )

        ticket_id = result.unwrap()['ticket_id']
        attachments = list(TicketAttachment.objects.filter(ticket_id=ticket_id).order_by('id'))
        self.assertEqual([a.file_name for a in attachments], ['invoice.pdf', 'screen.png'])
        self.assertEqual([a.mime_type for a in attachments], ['application/pdf', 'image/png'])
        for attachment in attachments:
            self.assertTrue(attachment.stored_path.startswith('tickets/attachments/'))
            self.assertNotIn(attachment.file_name, attachment.stored_path)

    def test_missing_description_rejected(self):
        result = self.service.create(self.employee.id, self.ticket_data(issue_description=''))

        self.assertTrue(result.is_err())
        self.assertIsInstance(result.unwrap_err(), TicketValidationError)
        self.assertTrue(result.unwrap_err().message.startswith('issue_description:'))
        self.assertEqual(Ticket.objects.count(), 0)
        self.assertEqual(self.scheduler.events, [])

    def test_unknown_employee_writes_nothing(self):
        result = self.service.create(999_999, self.ticket_data())

        self.assertTrue(result.is_err())
        self.assertIsInstance(result.unwrap_err(), NotFoundError)
        self.assertEqual(result.unwrap_err().message, 'Employee not found')
        self.assertEqual(Ticket.objects.count(), 0)
        self.assertEqual(TicketUpdate.objects.count(), 0)
        self.assertEqual(self.scheduler.events, [])

    def test_unknown_device_type(self):
        result = self.service.create(self.employee.id, self.ticket_data(device_type_id=999_999))

        self.assertEqual(result.unwrap_err().message, 'Device type not found')
        self.assertEqual(Ticket.objects.count(), 0)

    def test_six_attachments_rejected(self):
        files = [pdf_upload(f'doc{i}.pdf') for i in range(6)]

        result = self.service.create(self.employee.id, self.ticket_data(), attachments=files)

        self.assertIsInstance(result.unwrap_err(), TooManyFilesError)
        self.assertEqual(result.unwrap_err().message, 'Maximum 5 files allowed')
        self.assertEqual(Ticket.objects.count(), 0)

    def test_executable_attachment_rejects_whole_ticket(self):
        """🚨 One bad file means no ticket and no attachment rows"""
        files = [pdf_upload('invoice.pdf'), exe_upload('malware.exe'), png_upload('photo.png')]

        result = self.service.create(self.employee.id, self.ticket_data(), attachments=files)

        error = result.unwrap_err()
        self.assertIsInstance(error, InvalidFileError)
        self.assertTrue(all('malware.exe' in message for message in error.errors))
        self.assertEqual(Ticket.objects.count(), 0)
        self.assertEqual(TicketAttachment.objects.count(), 0)

    def test_history_failure_rolls_back_ticket(self):
        """🔥 A failed history write leaves no ticket, attachment or audit row"""
        service = TicketLifecycleService(scheduler=self.scheduler, trail=FailingTrail(DatabaseError('disk full')))

        result = service.create(self.employee.id, self.ticket_data(), attachments=[pdf_upload()])

        error = result.unwrap_err()
        self.assertIsInstance(error, StorageError)
        self.assertNotIn('disk full', error.message)
        self.assertEqual(Ticket.objects.count(), 0)
        self.assertEqual(TicketAttachment.objects.count(), 0)
        self.assertEqual(AuditEvent.objects.count(), 0)
        self.assertEqual(self.scheduler.events, [])

    def test_statement_timeout_reported_as_timeout(self):
        error = OperationalError('canceling statement due to statement timeout')
        service = TicketLifecycleService(scheduler=self.scheduler, trail=FailingTrail(error))

        result = service.create(self.employee.id, self.ticket_data())

        self.assertIsInstance(result.unwrap_err(), OperationTimeoutError)
        self.assertEqual(Ticket.objects.count(), 0)

    def test_scheduler_failure_does_not_fail_creation(self):
        def broken_scheduler(event, ticket_id, **context):
            raise RuntimeError('queue down')

        service = TicketLifecycleService(scheduler=broken_scheduler)

        result = service.create(self.employee.id, self.ticket_data())

        self.assertTrue(result.is_ok())
        self.assertEqual(Ticket.objects.count(), 1)


class TicketAssignTest(LifecycleTestCase):
    """👷 Provider assignment"""

    def test_assign_pending_ticket(self):
        ticket = create_ticket(self.employee, self.device_type)

        result = self.service.assign(ticket.id, self.provider.id, self.admin.id)

        self.assertTrue(result.is_ok())
        ticket.refresh_from_db()
        self.assertEqual(ticket.status, Ticket.STATUS_ASSIGNED)
        self.assertEqual(ticket.assigned_provider_id, self.provider.id)
        self.assertIsNotNone(ticket.assigned_at)

        entry = ticket.updates.get()
        self.assertEqual(entry.update_type, TicketUpdate.TYPE_ASSIGNMENT)
        self.assertEqual(entry.user_id, self.admin.id)
        self.assertEqual((entry.old_value, entry.new_value), ('pending', 'assigned'))

        self.assertEqual(self.scheduler.events, [('ticket_assigned', ticket.id, {'provider_id': self.provider.id})])

    def test_reassign_in_progress_ticket(self):
        other = create_provider(email='other@example.com', provider_name='Byte Fixers')
        ticket = create_ticket(self.employee, self.device_type, status=Ticket.STATUS_IN_PROGRESS, provider=other)

        result = self.service.assign(ticket.id, self.provider.id, self.admin.id)

        self.assertTrue(result.is_ok())
        ticket.refresh_from_db()
        self.assertEqual(ticket.status, Ticket.STATUS_ASSIGNED)
        self.assertEqual(ticket.assigned_provider_id, self.provider.id)

    def test_resolved_ticket_cannot_be_reassigned(self):
        ticket = create_ticket(self.employee, self.device_type, status=Ticket.STATUS_RESOLVED, provider=self.provider)

        result = self.service.assign(ticket.id, self.provider.id, self.admin.id)

        self.assertIsInstance(result.unwrap_err(), InvalidStatusError)
        self.assertEqual(ticket.updates.count(), 0)
        self.assertEqual(self.scheduler.events, [])

    def test_unknown_provider(self):
        ticket = create_ticket(self.employee, self.device_type)

        result = self.service.assign(ticket.id, 999_999, self.admin.id)

        self.assertEqual(result.unwrap_err().message, 'Service provider not found')
        ticket.refresh_from_db()
        self.assertEqual(ticket.status, Ticket.STATUS_PENDING)

    def test_unknown_ticket(self):
        result = self.service.assign(999_999, self.provider.id, self.admin.id)

        self.assertIsInstance(result.unwrap_err(), NotFoundError)
        self.assertEqual(result.unwrap_err().message, 'Ticket not found')


class TicketStatusTest(LifecycleTestCase):
    """🔄 Status transitions"""

    def test_invalid_status_value(self):
        ticket = create_ticket(self.employee, self.device_type, status=Ticket.STATUS_ASSIGNED, provider=self.provider)

        result = self.service.update_status(ticket.id, 'archived', self.provider.user_id)

        self.assertIsInstance(result.unwrap_err(), InvalidStatusError)
        self.assertEqual(result.unwrap_err().message, 'Invalid status: archived')

    def test_pending_is_not_a_target(self):
        ticket = create_ticket(self.employee, self.device_type, status=Ticket.STATUS_ASSIGNED, provider=self.provider)

        result = self.service.update_status(ticket.id, Ticket.STATUS_PENDING, self.provider.user_id)

        self.assertIsInstance(result.unwrap_err(), InvalidStatusError)

    def test_unassigned_ticket_cannot_change_status(self):
        ticket = create_ticket(self.employee, self.device_type)

        result = self.service.update_status(ticket.id, Ticket.STATUS_IN_PROGRESS, self.admin.id)

        self.assertIsInstance(result.unwrap_err(), InvalidStatusError)
        ticket.refresh_from_db()
        self.assertEqual(ticket.status, Ticket.STATUS_PENDING)

    def test_default_history_message_and_context(self):
        ticket = create_ticket(self.employee, self.device_type, status=Ticket.STATUS_ASSIGNED, provider=self.provider)

        result = self.service.update_status(ticket.id, Ticket.STATUS_IN_PROGRESS, self.provider.user_id)

        self.assertEqual(result.unwrap()['old_status'], 'assigned')
        entry = ticket.updates.get()
        self.assertEqual(entry.message, 'Status changed from assigned to in_progress')
        self.assertEqual(entry.update_type, TicketUpdate.TYPE_STATUS_CHANGE)
        self.assertEqual(
            self.scheduler.events,
            [
                (
                    'ticket_status_changed',
                    ticket.id,
                    {'old_status': 'assigned', 'new_status': 'in_progress', 'comment': None},
                )
            ],
        )

    def test_comment_becomes_history_message(self):
        ticket = create_ticket(self.employee, self.device_type, status=Ticket.STATUS_IN_PROGRESS, provider=self.provider)

        self.service.update_status(ticket.id, Ticket.STATUS_RESOLVED, self.provider.user_id, comment='  Replaced the SSD  ')

        self.assertEqual(ticket.updates.get().message, 'Replaced the SSD')

    def test_resolution_timestamps_are_never_cleared(self):
        ticket = create_ticket(self.employee, self.device_type, status=Ticket.STATUS_IN_PROGRESS, provider=self.provider)

        self.service.update_status(ticket.id, Ticket.STATUS_RESOLVED, self.provider.user_id)
        ticket.refresh_from_db()
        resolved_at = ticket.resolved_at
        self.assertIsNotNone(resolved_at)
        self.assertIsNone(ticket.closed_at)

        self.service.update_status(ticket.id, Ticket.STATUS_CLOSED, self.admin.id)
        ticket.refresh_from_db()
        self.assertEqual(ticket.resolved_at, resolved_at)
        self.assertIsNotNone(ticket.closed_at)

        self.service.update_status(ticket.id, Ticket.STATUS_RESOLVED, self.admin.id)
        ticket.refresh_from_db()
        self.assertEqual(ticket.resolved_at, resolved_at)
        self.assertIsNotNone(ticket.closed_at)


class TicketCommentTest(LifecycleTestCase):
    """💬 Comments"""

    def test_add_comment(self):
        ticket = create_ticket(self.employee, self.device_type)

        result = self.service.add_comment(ticket.id, self.employee.user_id, 'Still broken after restart')

        entry = TicketUpdate.objects.get(pk=result.unwrap()['update_id'])
        self.assertEqual(entry.update_type, TicketUpdate.TYPE_COMMENT)
        self.assertEqual(entry.message, 'Still broken after restart')
        self.assertEqual(self.scheduler.events, [])

    def test_blank_comment_rejected(self):
        ticket = create_ticket(self.employee, self.device_type)

        result = self.service.add_comment(ticket.id, self.employee.user_id, '   ')

        self.assertIsInstance(result.unwrap_err(), TicketValidationError)
        self.assertEqual(ticket.updates.count(), 0)

    def test_comment_on_unknown_ticket(self):
        result = self.service.add_comment(999_999, self.employee.user_id, 'Hello?')

        self.assertIsInstance(result.unwrap_err(), NotFoundError)

    def test_comment_notification_is_opt_in(self):
        ticket = create_ticket(self.employee, self.device_type, status=Ticket.STATUS_ASSIGNED, provider=self.provider)

        self.service.add_comment(ticket.id, self.provider.user_id, 'On my way', notify=True)

        self.assertEqual(
            self.scheduler.events,
            [('ticket_commented', ticket.id, {'author_user_id': self.provider.user_id, 'comment': 'On my way'})],
        )


class TicketRatingTest(LifecycleTestCase):
    """⭐ Ratings"""

    def setUp(self):
        super().setUp()
        self.ticket = create_ticket(
            self.employee, self.device_type, status=Ticket.STATUS_RESOLVED, provider=self.provider
        )

    def test_rating_updates_provider_aggregate(self):
        result = self.service.submit_rating(self.ticket.id, self.employee.id, self.provider.id, 4, 'Quick fix')

        payload = result.unwrap()
        self.assertEqual(payload['rating_average'], Decimal('4.00'))
        self.assertEqual(payload['total_ratings'], 1)
        rating = TicketRating.objects.get(pk=payload['rating_id'])
        self.assertEqual(rating.feedback, 'Quick fix')

    def test_invalid_scores_rejected(self):
        for score in (0, 6, True, '5', 4.5, None):
            with self.subTest(score=score):
                result = self.service.submit_rating(self.ticket.id, self.employee.id, self.provider.id, score)

                self.assertIsInstance(result.unwrap_err(), InvalidRatingError)
                self.assertEqual(result.unwrap_err().message, 'Rating must be an integer between 1 and 5')

        self.assertEqual(TicketRating.objects.count(), 0)

    def test_second_rating_is_duplicate(self):
        self.service.submit_rating(self.ticket.id, self.employee.id, self.provider.id, 5)

        result = self.service.submit_rating(self.ticket.id, self.employee.id, self.provider.id, 1)

        self.assertIsInstance(result.unwrap_err(), DuplicateRatingError)
        self.provider.refresh_from_db()
        self.assertEqual(self.provider.rating_average, Decimal('5.00'))
        self.assertEqual(self.provider.total_ratings, 1)

    def test_open_ticket_cannot_be_rated(self):
        ticket = create_ticket(self.employee, self.device_type, status=Ticket.STATUS_IN_PROGRESS, provider=self.provider)

        result = self.service.submit_rating(ticket.id, self.employee.id, self.provider.id, 5)

        self.assertIsInstance(result.unwrap_err(), InvalidStatusError)

    def test_only_ticket_owner_can_rate(self):
        stranger = create_employee(email='stranger@example.com', department=self.employee.department)

        result = self.service.submit_rating(self.ticket.id, stranger.id, self.provider.id, 5)

        self.assertIsInstance(result.unwrap_err(), AuthorizationError)
        self.assertEqual(TicketRating.objects.count(), 0)

    def test_provider_must_be_assigned_to_ticket(self):
        other = create_provider(email='other@example.com', provider_name='Byte Fixers')

        result = self.service.submit_rating(self.ticket.id, self.employee.id, other.id, 5)

        self.assertIsInstance(result.unwrap_err(), TicketValidationError)
        other.refresh_from_db()
        self.assertEqual(other.total_ratings, 0)

    def test_rating_written_through_store(self):
        service = TicketLifecycleService(scheduler=self.scheduler, store=RatingWriteFailsStore())

        result = service.submit_rating(self.ticket.id, self.employee.id, self.provider.id, 5)

        self.assertIsInstance(result.unwrap_err(), StorageError)
        self.assertEqual(TicketRating.objects.count(), 0)
        self.provider.refresh_from_db()
        self.assertEqual(self.provider.total_ratings, 0)


class TicketEndToEndTest(LifecycleTestCase):
    """🎯 Full journey from submission to rating"""

    def test_full_lifecycle(self):
        ticket_id = self.service.create(self.employee.id, self.ticket_data()).unwrap()['ticket_id']

        self.assertTrue(self.service.assign(ticket_id, self.provider.id, self.admin.id).is_ok())
        self.assertTrue(self.service.update_status(ticket_id, Ticket.STATUS_IN_PROGRESS, self.provider.user_id).is_ok())
        self.assertTrue(
            self.service.update_status(ticket_id, Ticket.STATUS_RESOLVED, self.provider.user_id, 'Fixed').is_ok()
        )
        rating = self.service.submit_rating(ticket_id, self.employee.id, self.provider.id, 5).unwrap()

        ticket = Ticket.objects.get(pk=ticket_id)
        self.assertEqual(ticket.status, Ticket.STATUS_RESOLVED)
        self.assertEqual(
            list(ticket.updates.order_by('created_at', 'id').values_list('update_type', flat=True)),
            ['comment', 'assignment', 'status_change', 'status_change'],
        )
        self.assertEqual(rating['rating_average'], Decimal('5.00'))
        self.assertEqual(TicketRating.objects.filter(ticket=ticket).count(), 1)
        self.assertEqual(ServiceProvider.objects.get(pk=self.provider.id).total_ratings, 1)
        self.assertEqual(
            sorted(AuditEvent.objects.values_list('action', flat=True)),
            ['ticket_assigned', 'ticket_created', 'ticket_rated', 'ticket_status_updated', 'ticket_status_updated'],
        )
        self.assertEqual(
            self.scheduler.names,
            ['ticket_created', 'ticket_assigned', 'ticket_status_changed', 'ticket_status_changed'],
        )


class AfterCommitSchedulingTest(LifecycleTestCase):
    """📨 The real scheduler hands work to Django-Q2 only once the transaction commits"""

    def test_event_submitted_on_commit(self):
        service = TicketLifecycleService()

        with patch('apps.notifications.services.async_task') as async_task:
            with self.captureOnCommitCallbacks(execute=False) as callbacks:
                result = service.create(self.employee.id, self.ticket_data())
            async_task.assert_not_called()

            for callback in callbacks:
                callback()

        ticket_id = result.unwrap()['ticket_id']
        async_task.assert_called_once()
        args = async_task.call_args.args
        self.assertEqual(args, (TICKET_EVENT_TASK, 'ticket_created', ticket_id, {}))

    def test_failed_operation_submits_nothing(self):
        service = TicketLifecycleService()

        with patch('apps.notifications.services.async_task') as async_task:
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                service.create(999_999, self.ticket_data())

        self.assertEqual(callbacks, [])
        async_task.assert_not_called()
