"""
Approval state machine for quotes.

    draft -> pending_approval -> approved | revision_requested | denied
    revision_requested -> pending_approval (resubmission) | draft (reopen)

approved and denied are read-only. Every transition works on a copy of the
quote document: when a guard fails the caller's document is left untouched.
"""
import copy
import logging
from typing import Dict, Any, Optional

from app.models.quote import QuoteStatus
from app.services.auth_service import ensure_permission, actor_email, actor_display_name
from app.services.grouping_service import group_by_item
from app.services.selection_service import resolve_approval, missing_selections, unmatched_selections
from app.utils.formatters import now_stamps
from app.exceptions import (
    ValidationError, IncompleteSelectionError, MissingCommentsError,
    InvalidTransitionError, ReadOnlyQuoteError
)

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    QuoteStatus.DRAFT: {QuoteStatus.PENDING_APPROVAL},
    QuoteStatus.PENDING_APPROVAL: {
        QuoteStatus.APPROVED, QuoteStatus.REVISION_REQUESTED, QuoteStatus.DENIED
    },
    QuoteStatus.REVISION_REQUESTED: {QuoteStatus.PENDING_APPROVAL, QuoteStatus.DRAFT},
    QuoteStatus.APPROVED: set(),
    QuoteStatus.DENIED: set(),
}

EDITABLE_STATUSES = {QuoteStatus.DRAFT, QuoteStatus.REVISION_REQUESTED}
READ_ONLY_STATUSES = {QuoteStatus.APPROVED, QuoteStatus.DENIED}

# itemComments key used for a comment that applies to the whole quote
GENERAL_COMMENT_KEY = '_general'


def quote_status(quote: Dict[str, Any]) -> QuoteStatus:
    return QuoteStatus.normalize(quote.get('status'))


def can_transition(current, target) -> bool:
    """Check the transition table."""
    return QuoteStatus.normalize(target) in ALLOWED_TRANSITIONS[QuoteStatus.normalize(current)]


def _ensure_transition(quote, target: QuoteStatus) -> QuoteStatus:
    current = quote_status(quote)
    if not can_transition(current, target):
        logger.warning(f"Rejected transition {current.value} -> {target.value} for {quote.get('cotizacion_id')}")
        raise InvalidTransitionError(current.value, target.value)
    return current


def is_editable(quote: Dict[str, Any]) -> bool:
    return quote_status(quote) in EDITABLE_STATUSES


def ensure_editable(quote: Dict[str, Any]) -> None:
    """Raise ReadOnlyQuoteError unless the seller may still edit the rows."""
    status = quote_status(quote)
    if status not in EDITABLE_STATUSES:
        raise ReadOnlyQuoteError(status.value)


def _ensure_mapping(value, name):
    if value is not None and not isinstance(value, dict):
        raise ValidationError(f'{name} debe ser un objeto con una entrada por producto.')


def _clean_comments(item_comments) -> Dict[str, str]:
    _ensure_mapping(item_comments, 'itemComments')
    return {
        str(key): str(comment).strip()
        for key, comment in (item_comments or {}).items()
        if comment is not None and str(comment).strip()
    }


def submit_for_approval(quote: Dict[str, Any], actor, now=None) -> Dict[str, Any]:
    """
    Send a draft (or a quote under revision) to the reviewers.

    Raises:
        PermissionDeniedError / InactiveUserError: actor cannot send for approval
        InvalidTransitionError: quote is not draft or revision_requested
        ValidationError: missing client name or no rows
    """
    ensure_permission(actor, 'send_for_approval')
    _ensure_transition(quote, QuoteStatus.PENDING_APPROVAL)

    if not str(quote.get('clienteName') or '').strip():
        raise ValidationError('Por favor ingresa el nombre del cliente')
    if not quote.get('rows'):
        raise ValidationError('La cotización debe tener al menos un producto')

    sent_at, _ = now_stamps(now)
    updated = copy.deepcopy(quote)
    updated.update({
        'status': QuoteStatus.PENDING_APPROVAL.value,
        'vendorName': actor_display_name(actor),
        'vendorEmail': actor_email(actor),
        'sentForApprovalAt': sent_at,
    })

    logger.info(f"Quote {quote.get('cotizacion_id')} sent for approval by {actor_email(actor)}")
    return updated


def approve_quote(quote: Dict[str, Any], selected_options: Dict[str, Any],
                  item_comments: Optional[Dict[str, Any]] = None, actor=None, now=None) -> Dict[str, Any]:
    """
    Approve a pending quote keeping one selected option per item.

    Rows collapse to the selected options and totalGeneral is recomputed from
    them.

    Raises:
        PermissionDeniedError / InactiveUserError: actor cannot approve
        InvalidTransitionError: quote is not pending approval
        ValidationError: selections or comments are not objects
        IncompleteSelectionError: some item has no selected option, or the
            selection names no option of that item
    """
    ensure_permission(actor, 'approve_quotes')
    _ensure_transition(quote, QuoteStatus.APPROVED)
    _ensure_mapping(selected_options, 'selectedOptions')
    _ensure_mapping(item_comments, 'itemComments')

    rows = quote.get('rows') or []
    missing = missing_selections(rows, selected_options) + unmatched_selections(rows, selected_options)
    if missing:
        logger.warning(f"Approval of {quote.get('cotizacion_id')} missing selections for {missing}")
        raise IncompleteSelectionError(missing)

    known_items = {group['item']['id'] for group in group_by_item(rows)}
    selections = {
        str(item_id): row_id for item_id, row_id in (selected_options or {}).items()
        if str(item_id) in known_items
    }
    resolved = resolve_approval(copy.deepcopy(rows), selections)
    approval_date, approval_date_formatted = now_stamps(now)

    updated = copy.deepcopy(quote)
    updated.update({
        'rows': resolved['rows'],
        'totalGeneral': resolved['total'],
        'status': QuoteStatus.APPROVED.value,
        'selectedOptions': selections,
        'itemComments': _clean_comments(item_comments),
        'approvalDate': approval_date,
        'approvalDateFormatted': approval_date_formatted,
        'approvedBy': actor_email(actor),
    })

    logger.info(
        f"Quote {quote.get('cotizacion_id')} approved by {actor_email(actor)}: "
        f"{len(rows)} options -> {len(resolved['rows'])} rows, total {resolved['total']}"
    )
    return updated


def request_revision(quote: Dict[str, Any], item_comments: Dict[str, Any], actor, now=None) -> Dict[str, Any]:
    """
    Send a pending quote back to the seller with per-item comments.

    Rows and total are left as they are.

    Raises:
        PermissionDeniedError / InactiveUserError: actor cannot request revisions
        InvalidTransitionError: quote is not pending approval
        MissingCommentsError: no non-blank comment was given
    """
    ensure_permission(actor, 'request_revisions')
    _ensure_transition(quote, QuoteStatus.REVISION_REQUESTED)

    comments = _clean_comments(item_comments)
    if not comments:
        raise MissingCommentsError()

    revision_date, revision_date_formatted = now_stamps(now)
    updated = copy.deepcopy(quote)
    updated.update({
        'status': QuoteStatus.REVISION_REQUESTED.value,
        'itemComments': comments,
        'revisionDate': revision_date,
        'revisionDateFormatted': revision_date_formatted,
        'revisedBy': actor_email(actor),
    })

    logger.info(f"Revision requested on {quote.get('cotizacion_id')} by {actor_email(actor)} ({len(comments)} comments)")
    return updated


def deny_quote(quote: Dict[str, Any], actor, reason: Optional[str] = None, now=None) -> Dict[str, Any]:
    """Reject a pending quote for good. Rows and total are left as they are."""
    ensure_permission(actor, 'reject_quotes')
    _ensure_transition(quote, QuoteStatus.DENIED)
    if reason is not None and not isinstance(reason, str):
        raise ValidationError('El motivo del rechazo debe ser texto.')

    denial_date, denial_date_formatted = now_stamps(now)
    updated = copy.deepcopy(quote)
    comments = _clean_comments(updated.get('itemComments'))
    if reason and reason.strip():
        comments[GENERAL_COMMENT_KEY] = reason.strip()

    updated.update({
        'status': QuoteStatus.DENIED.value,
        'itemComments': comments,
        'deniedBy': actor_email(actor),
        'denialDate': denial_date,
        'denialDateFormatted': denial_date_formatted,
    })

    logger.info(f"Quote {quote.get('cotizacion_id')} denied by {actor_email(actor)}")
    return updated


def reopen_quote(quote: Dict[str, Any], actor) -> Dict[str, Any]:
    """Move a quote under revision back to draft. Reviewer comments are kept."""
    ensure_permission(actor, 'edit_own_quotes')
    _ensure_transition(quote, QuoteStatus.DRAFT)

    updated = copy.deepcopy(quote)
    updated['status'] = QuoteStatus.DRAFT.value
    logger.info(f"Quote {quote.get('cotizacion_id')} reopened by {actor_email(actor)}")
    return updated
