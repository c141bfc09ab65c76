"""
📊 Ticket Store and Query Service Tests

Filtered listings, detail enrichment, statistics and pagination.
"""

from django.test import TestCase

from apps.tickets.exceptions import NotFoundError, TicketValidationError
from apps.tickets.models import Ticket, TicketAttachment, TicketRating, TicketUpdate
from apps.tickets.repository import TicketFilters, TicketStore
from apps.tickets.services import TicketQueryService
from tests.factories.support_desk import (
    create_admin,
    create_department,
    create_device_type,
    create_employee,
    create_provider,
    create_ticket,
)


class TicketFiltersTest(TestCase):
    def test_from_dict_drops_empty_values(self):
        filters = TicketFilters.from_dict({'status': '', 'priority': None, 'search': '   ', 'employee_id': 0})

        self.assertEqual(filters, TicketFilters())

    def test_from_dict_strips_search(self):
        self.assertEqual(TicketFilters.from_dict({'search': '  printer '}).search, 'printer')


class TicketStoreQueryTest(TestCase):
    """🔍 AND-combined filters over the joined listing"""

    def setUp(self):
        self.store = TicketStore()
        self.device_type = create_device_type('Printer')
        self.ana = create_employee(email='ana@example.com', first_name='Ana', last_name='Popescu')
        self.ion = create_employee(
            email='ion@example.com', first_name='Ion', last_name='Ionescu', department=create_department('Sales')
        )
        self.provider = create_provider()

        self.paper_jam = create_ticket(
            self.ana, self.device_type, issue_description='Paper jam in tray 2', priority='low'
        )
        self.toner = create_ticket(
            self.ana,
            self.device_type,
            status=Ticket.STATUS_ASSIGNED,
            provider=self.provider,
            issue_description='Toner streaks on every page',
            priority='high',
        )
        self.offline = create_ticket(
            self.ion,
            self.device_type,
            status=Ticket.STATUS_IN_PROGRESS,
            provider=self.provider,
            issue_description='Printer shows as offline',
            priority='high',
        )

    def ids(self, **filters):
        return [ticket.id for ticket in self.store.query(TicketFilters(**filters))]

    def test_no_filters_returns_most_recent_first(self):
        self.assertEqual(self.ids(), [self.offline.id, self.toner.id, self.paper_jam.id])

    def test_filter_by_employee(self):
        self.assertEqual(self.ids(employee_id=self.ana.id), [self.toner.id, self.paper_jam.id])

    def test_filter_by_provider(self):
        self.assertEqual(self.ids(provider_id=self.provider.id), [self.offline.id, self.toner.id])

    def test_filters_are_combined(self):
        self.assertEqual(self.ids(employee_id=self.ana.id, priority='high'), [self.toner.id])
        self.assertEqual(self.ids(employee_id=self.ion.id, status=Ticket.STATUS_PENDING), [])

    def test_search_is_case_insensitive_across_fields(self):
        self.assertEqual(self.ids(search='PAPER JAM'), [self.paper_jam.id])
        self.assertEqual(self.ids(search='ionescu'), [self.offline.id])
        self.assertEqual(self.ids(search=self.toner.ticket_number.lower()), [self.toner.id])

    def test_limit_and_offset(self):
        page = self.store.query(TicketFilters(), limit=1, offset=1)

        self.assertEqual([ticket.id for ticket in page], [self.toner.id])
        self.assertEqual(self.store.count(TicketFilters()), 3)

    def test_listing_is_a_single_query(self):
        with self.assertNumQueries(1):
            tickets = self.store.query(TicketFilters())
            names = [(t.employee.full_name, t.department.name, t.device_type.type_name) for t in tickets]

        self.assertEqual(len(names), 3)

    def test_statistics(self):
        stats = self.store.statistics()

        self.assertEqual(stats['total'], 3)
        self.assertEqual(stats['by_status'], {'pending': 1, 'assigned': 1, 'in_progress': 1})
        self.assertEqual(stats['by_priority'], {'low': 1, 'high': 2})

    def test_statistics_scoped_to_employee(self):
        stats = self.store.statistics(employee_id=self.ion.id)

        self.assertEqual(stats, {'total': 1, 'by_status': {'in_progress': 1}, 'by_priority': {'high': 1}})

    def test_statistics_when_empty(self):
        Ticket.objects.all().delete()

        self.assertEqual(self.store.statistics(), {'total': 0, 'by_status': {}, 'by_priority': {}})


class TicketStoreDetailTest(TestCase):
    """🧾 get_by_id enrichment"""

    def setUp(self):
        self.store = TicketStore()
        self.employee = create_employee()
        self.provider = create_provider()
        self.admin = create_admin()

    def test_ticket_without_children_has_empty_collections(self):
        ticket = create_ticket(self.employee)

        with self.assertNumQueries(3):
            loaded = self.store.get_by_id(ticket.id)
            self.assertEqual(list(loaded.attachments.all()), [])
            self.assertEqual(list(loaded.updates.all()), [])
            self.assertIsNone(loaded.get_rating())

    def test_missing_ticket(self):
        self.assertIsNone(self.store.get_by_id(999_999))

    def test_history_is_chronological_with_authors(self):
        ticket = create_ticket(self.employee, status=Ticket.STATUS_RESOLVED, provider=self.provider)
        TicketUpdate.objects.create(ticket=ticket, user=self.employee.user, update_type='comment', message='first')
        TicketUpdate.objects.create(ticket=ticket, user=self.provider.user, update_type='comment', message='second')
        TicketRating.objects.create(ticket=ticket, employee=self.employee, provider=self.provider, score=4)

        loaded = self.store.get_by_id(ticket.id)

        with self.assertNumQueries(0):
            authors = [update.user.get_display_name() for update in loaded.updates.all()]
            score = loaded.get_rating().score
        self.assertEqual(authors, ['Ana Popescu', 'FixIt Services'])
        self.assertEqual(score, 4)

    def test_rating_insert_and_lookup(self):
        ticket = create_ticket(self.employee, status=Ticket.STATUS_RESOLVED, provider=self.provider)
        self.assertFalse(self.store.rating_exists(ticket.id))

        rating = self.store.insert_rating(
            ticket, employee_id=self.employee.id, provider=self.provider, score=5, feedback=None
        )

        self.assertTrue(self.store.rating_exists(ticket.id))
        self.assertEqual(rating.provider_id, self.provider.id)
        self.assertIsNone(rating.feedback)

    def test_status_timestamps_set_once(self):
        ticket = create_ticket(self.employee, status=Ticket.STATUS_IN_PROGRESS, provider=self.provider)
        first = ticket.created_at

        self.store.update_status(ticket, Ticket.STATUS_RESOLVED, first)
        self.store.update_status(ticket, Ticket.STATUS_IN_PROGRESS, first)
        ticket.refresh_from_db()

        self.assertEqual(ticket.resolved_at, first)
        self.assertEqual(ticket.status, Ticket.STATUS_IN_PROGRESS)


class TicketQueryServiceTest(TestCase):
    def setUp(self):
        self.service = TicketQueryService()
        self.employee = create_employee()
        self.device_type = create_device_type('Monitor')

    def test_list_tickets_paginates(self):
        for _ in range(5):
            create_ticket(self.employee, self.device_type)

        result = self.service.list_tickets({'employee_id': self.employee.id}, page=2, page_size=2)

        payload = result.unwrap()
        self.assertEqual(len(payload['items']), 2)
        self.assertEqual(payload['pagination'], {'page': 2, 'page_size': 2, 'total': 5, 'pages': 3})
        self.assertEqual(payload['items'][0]['employee_name'], 'Ana Popescu')
        self.assertEqual(payload['items'][0]['device_type_name'], 'Monitor')
        self.assertIsNone(payload['items'][0]['provider_name'])

    def test_numeric_page_strings_are_accepted(self):
        create_ticket(self.employee, self.device_type)

        payload = self.service.list_tickets(page='1', page_size='10').unwrap()

        self.assertEqual(payload['pagination']['page_size'], 10)
        self.assertEqual(len(payload['items']), 1)

    def test_non_numeric_page_rejected(self):
        for page, page_size in (('last', 20), (1, 'all'), (None, 20)):
            with self.subTest(page=page, page_size=page_size):
                result = self.service.list_tickets(page=page, page_size=page_size)

                self.assertIsInstance(result.unwrap_err(), TicketValidationError)
                self.assertTrue(result.unwrap_err().message.startswith('page:'))

    def test_empty_listing(self):
        payload = self.service.list_tickets().unwrap()

        self.assertEqual(payload['items'], [])
        self.assertEqual(payload['pagination']['pages'], 0)

    def test_get_ticket_detail(self):
        ticket = create_ticket(self.employee, self.device_type)
        TicketAttachment.objects.create(
            ticket=ticket, file_name='photo.png', stored_path='tickets/attachments/x.png',
            mime_type='image/png', size_bytes=2048,
        )

        detail = self.service.get_ticket(ticket.id).unwrap()

        self.assertEqual(detail['ticket_number'], ticket.ticket_number)
        self.assertEqual(detail['attachments'][0]['file_size_display'], '2.0 KB')
        self.assertEqual(detail['updates'], [])
        self.assertIsNone(detail['rating'])

    def test_get_missing_ticket(self):
        result = self.service.get_ticket(999_999)

        self.assertIsInstance(result.unwrap_err(), NotFoundError)

    def test_device_types_alphabetical(self):
        create_device_type('Desktop')

        names = [row['type_name'] for row in self.service.get_device_types()]

        self.assertEqual(names, ['Desktop', 'Monitor'])
