"""
SQLAlchemy store for quote documents.

Implements the persistence contract consumed by the quote aggregate:
create / get / update (merge) / get_by_business_id / delete / list_all.
Concurrent writers are last-write-wins; there is no conflict resolution.
"""
import logging
from typing import Dict, Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.quote import Quote, QuoteStatus, IDENTITY_FIELDS
from app.exceptions import PersistenceError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class QuoteStore:
    """Quote persistence over a SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    def _fail(self, operation, quote_id, error):
        self.session.rollback()
        logger.error(f"Store {operation} failed for quote {quote_id}: {error}")
        raise PersistenceError(operation, quote_id) from error

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a new quote; every submitted field is kept verbatim."""
        if not data.get('cotizacion_id'):
            raise ValidationError('cotizacion_id es obligatorio.')

        try:
            quote = Quote(cotizacion_id=data['cotizacion_id'])
            quote.apply_changes(data)
            self.session.add(quote)
            self.session.commit()
            return quote.to_dict()
        except SQLAlchemyError as e:
            self._fail('create', data.get('cotizacion_id'), e)

    def get(self, quote_id) -> Optional[Dict[str, Any]]:
        try:
            quote = self.session.get(Quote, quote_id)
        except SQLAlchemyError as e:
            self._fail('get', quote_id, e)
        return quote.to_dict() if quote else None

    def get_by_business_id(self, cotizacion_id: str) -> Optional[Dict[str, Any]]:
        try:
            quote = self.session.query(Quote).filter(Quote.cotizacion_id == cotizacion_id).first()
        except SQLAlchemyError as e:
            self._fail('get_by_business_id', cotizacion_id, e)
        return quote.to_dict() if quote else None

    def update(self, quote_id, partial: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge ``partial`` onto the stored quote.

        Identity fields (cotizacion_id, date...) only change when explicitly
        given a non-empty value; an update can never clear them.
        """
        try:
            quote = self.session.get(Quote, quote_id)
            if quote is None:
                raise NotFoundError(f'Cotización {quote_id} no encontrada.')

            changes = {
                key: value for key, value in partial.items()
                if key not in IDENTITY_FIELDS or value
            }
            quote.apply_changes(changes)
            self.session.commit()
            return quote.to_dict()
        except SQLAlchemyError as e:
            self._fail('update', quote_id, e)

    def delete(self, quote_id) -> None:
        try:
            quote = self.session.get(Quote, quote_id)
            if quote is None:
                raise NotFoundError(f'Cotización {quote_id} no encontrada.')
            self.session.delete(quote)
            self.session.commit()
            logger.info(f"Quote {quote_id} deleted")
        except SQLAlchemyError as e:
            self._fail('delete', quote_id, e)

    def list_all(self, status=None) -> List[Dict[str, Any]]:
        """All quotes, most recently updated first, optionally filtered by status."""
        try:
            query = self.session.query(Quote)
            if status:
                query = query.filter(Quote.status == QuoteStatus.normalize(status).value)
            quotes = query.order_by(Quote.updated_at.desc(), Quote.id.desc()).all()
        except SQLAlchemyError as e:
            self._fail('list_all', None, e)
        return [quote.to_dict() for quote in quotes]
