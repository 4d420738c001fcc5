"""
splitsmart core pipeline.

Orchestrates: parsed receipt → normalize → replace ledger.  Claims,
allocation and suggestions read from the resulting ledger.
"""
import logging

from sqlalchemy.orm import Session

from splitsmart.models import SessionModel
from splitsmart.pipeline.ledger import normalize, replace_ledger
from splitsmart.pipeline.sessions import get_or_create_session
from splitsmart.schemas import ParsedReceipt

logger = logging.getLogger(__name__)


def apply_receipt(db: Session, code: str, parsed: ParsedReceipt) -> SessionModel:
    """Normalize *parsed* and make it the session's ledger.

    Creates the session when the code is unknown.  Totals and items are
    replaced wholesale, never merged.
    """
    session = get_or_create_session(db, code, currency=parsed.currency)

    logger.info("Pipeline — normalize %d parsed items", len(parsed.items))
    items, totals = normalize(parsed)

    logger.info("Pipeline — replace ledger for %s", session.code)
    return replace_ledger(db, session, items, totals)
