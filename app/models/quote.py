"""Quote model for cotizaciones and their approval artifacts."""
import enum
from decimal import Decimal
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, Text, JSON
from sqlalchemy.sql import func
from app.database import Base


class QuoteStatus(enum.Enum):
    """Quote lifecycle status."""
    DRAFT = 'draft'
    PENDING_APPROVAL = 'pending_approval'
    APPROVED = 'approved'
    REVISION_REQUESTED = 'revision_requested'
    DENIED = 'denied'

    @classmethod
    def normalize(cls, value):
        """Map stored status strings (including legacy aliases) to a QuoteStatus."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.DRAFT
        value = str(value).strip().lower()
        if value in LEGACY_PENDING_STATUSES:
            return cls.PENDING_APPROVAL
        return cls(value)


LEGACY_PENDING_STATUSES = ('pending', 'sent_for_approval')


# Document key -> column attribute
FIELD_MAP = {
    'cotizacion_id': 'cotizacion_id',
    'clienteName': 'cliente_name',
    'trmGlobal': 'trm_global',
    'rows': 'rows',
    'totalGeneral': 'total_general',
    'status': 'status',
    'date': 'date',
    'dateFormatted': 'date_formatted',
    'createdBy': 'created_by',
    'vendorName': 'vendor_name',
    'vendorEmail': 'vendor_email',
    'sentForApprovalAt': 'sent_for_approval_at',
    'selectedOptions': 'selected_options',
    'itemComments': 'item_comments',
    'approvalDate': 'approval_date',
    'approvalDateFormatted': 'approval_date_formatted',
    'approvedBy': 'approved_by',
    'revisionDate': 'revision_date',
    'revisionDateFormatted': 'revision_date_formatted',
    'revisedBy': 'revised_by',
    'deniedBy': 'denied_by',
    'denialDate': 'denial_date',
    'denialDateFormatted': 'denial_date_formatted',
    'purchaseData': 'purchase_data',
    'purchaseStatus': 'purchase_status',
    'purchaseHistory': 'purchase_history',
    'purchaseCompletedAt': 'purchase_completed_at',
    'purchaseCompletedBy': 'purchase_completed_by',
    'purchaseNotes': 'purchase_notes',
}

# Fields that identify a quote for its whole life
IDENTITY_FIELDS = ('cotizacion_id', 'date', 'dateFormatted', 'createdAt')


def json_safe(value):
    """Convert Decimals (at any depth) to floats for JSON columns and stored documents."""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {str(k): json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value


class Quote(Base):
    """
    Quote (Cotización).

    Rows (line-item options) and approval/purchase artifacts are stored as JSON
    documents; the quote is read and written as a whole document through
    to_dict() and apply_changes().
    """

    __tablename__ = 'quote'

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    cotizacion_id = Column(String(64), nullable=False, unique=True, index=True)
    cliente_name = Column(String(255), nullable=False, default='')
    trm_global = Column(Numeric(12, 2), nullable=False, default=0)
    rows = Column(JSON, nullable=False, default=list)
    total_general = Column(Numeric(16, 2), nullable=False, default=0)
    status = Column(String(30), nullable=False, default=QuoteStatus.DRAFT.value, index=True)
    date = Column(String(40), nullable=True)
    date_formatted = Column(String(60), nullable=True)
    created_by = Column(String(255), nullable=True)

    # Submission
    vendor_name = Column(String(200), nullable=True)
    vendor_email = Column(String(255), nullable=True)
    sent_for_approval_at = Column(String(40), nullable=True)

    # Review
    selected_options = Column(JSON, nullable=True)
    item_comments = Column(JSON, nullable=True)
    approval_date = Column(String(40), nullable=True)
    approval_date_formatted = Column(String(60), nullable=True)
    approved_by = Column(String(255), nullable=True)
    revision_date = Column(String(40), nullable=True)
    revision_date_formatted = Column(String(60), nullable=True)
    revised_by = Column(String(255), nullable=True)
    denied_by = Column(String(255), nullable=True)
    denial_date = Column(String(40), nullable=True)
    denial_date_formatted = Column(String(60), nullable=True)

    # Purchase
    purchase_data = Column(JSON, nullable=True)
    purchase_status = Column(String(20), nullable=True)
    purchase_history = Column(JSON, nullable=True)
    purchase_completed_at = Column(String(40), nullable=True)
    purchase_completed_by = Column(String(255), nullable=True)
    purchase_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def apply_changes(self, changes):
        """Merge a (partial) document onto the columns. Unknown keys are ignored."""
        for key, value in changes.items():
            attr = FIELD_MAP.get(key)
            if attr is None:
                continue
            if attr == 'status' and value is not None:
                value = QuoteStatus.normalize(value).value
            setattr(self, attr, json_safe(value))

    def to_dict(self):
        """Return the quote as a document keyed like the client payloads."""
        data = {'id': self.id}
        for key, attr in FIELD_MAP.items():
            data[key] = json_safe(getattr(self, attr))
        data['rows'] = list(self.rows or [])
        data['status'] = QuoteStatus.normalize(self.status).value
        data['createdAt'] = self.created_at.isoformat() if self.created_at else None
        data['updatedAt'] = self.updated_at.isoformat() if self.updated_at else None
        return data

    def __repr__(self):
        return f"<Quote(id={self.id}, cotizacion_id='{self.cotizacion_id}', status='{self.status}', total={self.total_general})>"
