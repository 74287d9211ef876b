"""Quotes blueprint: JSON API over the quote workflow services."""
from flask import Blueprint, request, g, jsonify, current_app
import logging

from app.database import get_session
from app.middleware import require_login
from app.decorators.permissions import require_permission, require_any_permission
from app.models import QuoteStatus
from app.services import quote_service, approval_service, purchase_service
from app.services.quote_store import QuoteStore
from app.exceptions import UnauthorizedError, ValidationError, NotFoundError

logger = logging.getLogger(__name__)

quotes_bp = Blueprint('quotes', __name__, url_prefix='/api/quotes')

VIEW_PERMISSIONS = ('view_all_quotes', 'view_own_quotes', 'view_pending_quotes', 'view_approved_quotes')


def get_store():
    return QuoteStore(get_session())


def get_payload():
    return request.get_json(silent=True) or {}


def _respond(quote, status_code=200, **extra):
    body = {'status': 'success', 'quote': quote}
    body.update(extra)
    return jsonify(body), status_code


def _is_visible(quote, user):
    """Which quotes each role may see."""
    if user.has_permission('view_all_quotes'):
        return True
    status = QuoteStatus.normalize(quote.get('status'))
    if user.has_permission('view_approved_quotes') and status == QuoteStatus.APPROVED:
        return True
    if user.has_permission('view_pending_quotes') and status == QuoteStatus.PENDING_APPROVAL:
        return True
    if user.has_permission('view_own_quotes') and quote.get('createdBy') == user.email:
        return True
    return False


def _load_visible(quote_id):
    quote = quote_service.load_quote(get_store(), quote_id)
    if not _is_visible(quote, g.user):
        raise UnauthorizedError('No tienes permisos para ver esta cotización.')
    return quote


def _load_own(quote_id):
    """Load a quote the current seller created."""
    quote = quote_service.load_quote(get_store(), quote_id)
    if quote.get('createdBy') and quote['createdBy'] != g.user.email:
        raise UnauthorizedError('Solo puedes modificar tus propias cotizaciones.')
    return quote


def _save(quote):
    return quote_service.persist_quote(get_store(), quote)


@quotes_bp.route('/')
@require_login
@require_any_permission(*VIEW_PERMISSIONS)
def list_quotes():
    """List quotes visible to the current user, optionally filtered by status."""
    status_filter = request.args.get('status', '').strip() or None
    if status_filter:
        try:
            QuoteStatus.normalize(status_filter)
        except ValueError:
            raise ValidationError(f'Estado inválido: {status_filter}')

    quotes = [q for q in get_store().list_all(status=status_filter) if _is_visible(q, g.user)]
    return jsonify({'status': 'success', 'quotes': quotes, 'stats': quote_service.quote_stats(quotes)})


@quotes_bp.route('/', methods=['POST'])
@require_login
@require_permission('create_quotes')
def create_quote():
    data = get_payload()
    quote = quote_service.new_quote(
        data.get('clienteName', ''),
        g.user,
        trm_global=data.get('trmGlobal') or current_app.config.get('DEFAULT_TRM'),
        prefix=current_app.config.get('QUOTE_ID_PREFIX', quote_service.QUOTE_ID_PREFIX),
    )
    return _respond(_save(quote), 201)


@quotes_bp.route('/<int:quote_id>')
@require_login
def view_quote(quote_id):
    quote = _load_visible(quote_id)
    return _respond(quote, summary=quote_service.quote_summary(quote))


@quotes_bp.route('/<int:quote_id>/items')
@require_login
def list_items(quote_id):
    """Rows grouped by item, each with its competing options."""
    quote = _load_visible(quote_id)
    return jsonify({'status': 'success', 'items': quote_service.grouped_rows(quote)})


@quotes_bp.route('/by-code/<cotizacion_id>')
@require_login
def view_quote_by_code(cotizacion_id):
    quote = get_store().get_by_business_id(cotizacion_id)
    if quote is None or not _is_visible(quote, g.user):
        raise NotFoundError(f'Cotización {cotizacion_id} no encontrada.')
    return _respond(quote)


@quotes_bp.route('/<int:quote_id>', methods=['DELETE'])
@require_login
@require_permission('edit_own_quotes')
def delete_quote(quote_id):
    quote = _load_own(quote_id)
    approval_service.ensure_editable(quote)
    get_store().delete(quote_id)
    logger.info(f"Quote {quote.get('cotizacion_id')} deleted by {g.user.email}")
    return jsonify({'status': 'success'})


@quotes_bp.route('/<int:quote_id>', methods=['PATCH'])
@require_login
@require_permission('edit_own_quotes')
def update_quote(quote_id):
    """Update quote-level fields: clienteName and/or trmGlobal."""
    data = get_payload()
    quote = _load_own(quote_id)

    if 'clienteName' in data:
        quote = quote_service.set_cliente_name(quote, data['clienteName'])
    if 'trmGlobal' in data:
        quote = quote_service.set_global_trm(quote, data['trmGlobal'])

    return _respond(_save(quote))


@quotes_bp.route('/<int:quote_id>/items', methods=['POST'])
@require_login
@require_permission('edit_own_quotes')
def add_item(quote_id):
    data = dict(get_payload())
    item_name = data.pop('itemName', '')
    item_description = data.pop('itemDescription', '')
    data.pop('id', None)

    quote = quote_service.add_product(_load_own(quote_id), item_name, item_description, **data)
    return _respond(_save(quote), 201)


@quotes_bp.route('/<int:quote_id>/items/<item_id>/options', methods=['POST'])
@require_login
@require_permission('edit_own_quotes')
def add_item_option(quote_id, item_id):
    data = dict(get_payload())
    data.pop('id', None)

    quote = quote_service.add_option(_load_own(quote_id), item_id, **data)
    return _respond(_save(quote), 201)


@quotes_bp.route('/<int:quote_id>/rows/<row_id>', methods=['PATCH'])
@require_login
@require_permission('edit_own_quotes')
def update_row(quote_id, row_id):
    """Apply one or more raw-field edits to a row, in payload order."""
    data = get_payload()
    if not data:
        raise ValidationError('No hay cambios para aplicar.')

    quote = _load_own(quote_id)
    for field, value in data.items():
        quote = quote_service.update_row(quote, row_id, field, value)
    return _respond(_save(quote))


@quotes_bp.route('/<int:quote_id>/rows/<row_id>/additional-costs', methods=['PUT'])
@require_login
@require_permission('edit_own_quotes')
def set_row_additional_costs(quote_id, row_id):
    costs = get_payload().get('additionalCosts') or []
    quote = quote_service.set_additional_costs(_load_own(quote_id), row_id, costs)
    return _respond(_save(quote))


@quotes_bp.route('/<int:quote_id>/rows/<row_id>', methods=['DELETE'])
@require_login
@require_permission('edit_own_quotes')
def delete_row(quote_id, row_id):
    quote = quote_service.remove_row(_load_own(quote_id), row_id)
    return _respond(_save(quote))


@quotes_bp.route('/<int:quote_id>/duplicate', methods=['POST'])
@require_login
@require_permission('duplicate_quotes')
def duplicate(quote_id):
    quote = quote_service.duplicate_quote(
        _load_visible(quote_id), g.user,
        prefix=current_app.config.get('QUOTE_ID_PREFIX', quote_service.QUOTE_ID_PREFIX),
    )
    return _respond(_save(quote), 201)


# ============================================================================
# APPROVAL WORKFLOW
# ============================================================================

@quotes_bp.route('/<int:quote_id>/submit', methods=['POST'])
@require_login
def submit(quote_id):
    quote = approval_service.submit_for_approval(_load_own(quote_id), g.user)
    return _respond(_save(quote))


@quotes_bp.route('/<int:quote_id>/reopen', methods=['POST'])
@require_login
def reopen(quote_id):
    quote = approval_service.reopen_quote(_load_own(quote_id), g.user)
    return _respond(_save(quote))


@quotes_bp.route('/<int:quote_id>/approve', methods=['POST'])
@require_login
def approve(quote_id):
    data = get_payload()
    quote = approval_service.approve_quote(
        quote_service.load_quote(get_store(), quote_id),
        data.get('selectedOptions') or {},
        data.get('itemComments') or {},
        g.user,
    )
    return _respond(_save(quote))


@quotes_bp.route('/<int:quote_id>/request-revision', methods=['POST'])
@require_login
def request_revision(quote_id):
    data = get_payload()
    quote = approval_service.request_revision(
        quote_service.load_quote(get_store(), quote_id),
        data.get('itemComments') or {},
        g.user,
    )
    return _respond(_save(quote))


@quotes_bp.route('/<int:quote_id>/deny', methods=['POST'])
@require_login
def deny(quote_id):
    data = get_payload()
    quote = approval_service.deny_quote(
        quote_service.load_quote(get_store(), quote_id),
        g.user,
        reason=data.get('reason'),
    )
    return _respond(_save(quote))


# ============================================================================
# PURCHASES
# ============================================================================

@quotes_bp.route('/<int:quote_id>/purchases')
@require_login
@require_permission('view_margin_differences')
def purchases(quote_id):
    quote = _load_visible(quote_id)
    return jsonify({
        'status': 'success',
        'purchaseStatus': quote.get('purchaseStatus'),
        'items': purchase_service.purchase_summary(quote),
    })


@quotes_bp.route('/<int:quote_id>/purchases/<int:row_index>', methods=['POST'])
@require_login
def record_purchase(quote_id, row_index):
    data = get_payload()
    quote, entry = purchase_service.record_final_price(
        quote_service.load_quote(get_store(), quote_id),
        row_index,
        data.get('finalPrice'),
        g.user,
        notes=data.get('notes', ''),
    )
    stored = _save(quote)
    row = stored['rows'][row_index]
    analysis = purchase_service.calculate_margin_difference(
        row.get('pvpTotal'), entry['finalPurchasePrice'], row.get('margen')
    )
    return _respond(stored, entry=entry, analysis=analysis)


@quotes_bp.route('/<int:quote_id>/purchases/finalize', methods=['POST'])
@require_login
def finalize_purchase(quote_id):
    quote = purchase_service.finalize_purchase(
        quote_service.load_quote(get_store(), quote_id),
        g.user,
        notes=get_payload().get('notes', ''),
    )
    return _respond(_save(quote))
