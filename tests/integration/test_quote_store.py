"""
Integration tests for the SQLAlchemy quote store.
"""

import pytest
from decimal import Decimal
from unittest.mock import patch
from sqlalchemy.exc import OperationalError

from app.services import quote_service
from app.services.quote_store import QuoteStore
from app.services.pricing_service import quote_totals
from app.utils.number_format import to_decimal
from app.exceptions import NotFoundError, PersistenceError, ValidationError


class TestQuoteStore:
    """Tests for create / get / update / delete / list."""

    def test_create_and_get(self, session, draft_quote):
        store = QuoteStore(session)
        stored = store.create(draft_quote)

        assert stored['id'] is not None
        assert stored['cotizacion_id'] == draft_quote['cotizacion_id']
        assert stored['totalGeneral'] == 500000.0
        assert stored['rows'][0]['pvpTotal'] == 500000.0
        assert store.get(stored['id']) == stored
        assert store.get_by_business_id(draft_quote['cotizacion_id'])['id'] == stored['id']

    def test_create_requires_business_key(self, session, draft_quote):
        with pytest.raises(ValidationError):
            QuoteStore(session).create(dict(draft_quote, cotizacion_id=''))

    def test_update_merges_and_keeps_identity(self, session, draft_quote):
        store = QuoteStore(session)
        stored = store.create(draft_quote)

        updated = store.update(stored['id'], {
            'clienteName': 'Universidad Nacional',
            'cotizacion_id': '',
            'date': None,
        })

        assert updated['clienteName'] == 'Universidad Nacional'
        assert updated['cotizacion_id'] == stored['cotizacion_id']
        assert updated['date'] == stored['date']
        assert updated['rows'] == stored['rows']

    def test_update_missing(self, session):
        with pytest.raises(NotFoundError):
            QuoteStore(session).update(12345, {'clienteName': 'X'})

    def test_delete(self, session, draft_quote):
        store = QuoteStore(session)
        stored = store.create(draft_quote)
        store.delete(stored['id'])

        assert store.get(stored['id']) is None
        with pytest.raises(NotFoundError):
            store.delete(stored['id'])

    def test_list_filters_by_status(self, session, draft_quote, vendedor):
        store = QuoteStore(session)
        store.create(draft_quote)
        other = quote_service.new_quote('Otro cliente', vendedor)
        store.create(dict(other, status='sent_for_approval'))

        assert len(store.list_all()) == 2
        pending = store.list_all(status='pending_approval')
        assert [q['clienteName'] for q in pending] == ['Otro cliente']

    def test_duplicate_business_key_is_a_persistence_error(self, session, draft_quote):
        store = QuoteStore(session)
        store.create(draft_quote)

        with pytest.raises(PersistenceError) as exc_info:
            store.create(draft_quote)
        assert exc_info.value.operation == 'create'
        assert exc_info.value.status_code == 503

    def test_backend_failure_surfaces_operation(self, session):
        store = QuoteStore(session)
        with patch.object(session, 'get', side_effect=OperationalError('SELECT', {}, Exception('down'))):
            with pytest.raises(PersistenceError) as exc_info:
                store.get(7)

        assert exc_info.value.operation == 'get'
        assert exc_info.value.quote_id == 7


class TestPersistQuote:
    """Tests for the aggregate's save/load flow over the real store."""

    def test_workflow_round_trip(self, session, draft_quote, vendedor):
        from app.services.approval_service import submit_for_approval

        store = QuoteStore(session)
        stored = quote_service.persist_quote(store, draft_quote)
        loaded = quote_service.load_quote(store, stored['id'])

        submitted = submit_for_approval(loaded, vendedor)
        saved = quote_service.persist_quote(store, submitted)

        assert saved['status'] == 'pending_approval'
        assert saved['vendorEmail'] == vendedor['email']
        assert saved['cotizacion_id'] == draft_quote['cotizacion_id']
        assert saved['dateFormatted'] == draft_quote['dateFormatted']

    def test_approved_total_matches_rows_after_reload(self, session, vendedor, revisor, fixed_now):
        """Totals stay exact through the Numeric and JSON columns at a non-round TRM."""
        from app.services.approval_service import submit_for_approval, approve_quote

        quote = quote_service.new_quote('Colegio San José', vendedor, trm_global=4123.37, now=fixed_now)
        first = quote['rows'][0]
        quote = quote_service.update_row(quote, first['id'], 'costoUSD', 1234.57)
        quote = quote_service.update_row(quote, first['id'], 'margen', 27)
        for costo, margen in ((1199.99, 23), (1310.13, 31), (1250.5, 17)):
            quote = quote_service.add_option(quote, first['itemId'], costoUSD=costo, margen=margen, ivaPercentPVP=19)
        quote = quote_service.add_product(quote, 'Monitor', costoUSD=187.33, margen=29, cantidad=3)

        store = QuoteStore(session)
        pending = quote_service.persist_quote(store, submit_for_approval(quote, vendedor))
        rows = pending['rows']
        approved = approve_quote(
            pending,
            {first['itemId']: rows[2]['id'], rows[4]['itemId']: rows[4]['id']},
            {},
            revisor,
        )
        quote_service.persist_quote(store, approved)

        session.expire_all()
        loaded = store.get(pending['id'])

        assert len(loaded['rows']) == 2
        assert to_decimal(loaded['totalGeneral']) == quote_totals(loaded['rows'])['totalGeneral']
        assert to_decimal(loaded['totalGeneral']) == approved['totalGeneral']
        assert to_decimal(loaded['trmGlobal']) == Decimal('4123.37')
