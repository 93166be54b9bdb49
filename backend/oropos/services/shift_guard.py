# Overview: Cash-drawer session guard run before every monetary write.

"""
Cash-Drawer Session Guard

Every monetary mutation (sale commit, refund, no-sale drawer open, drawer
recount) names the cash-drawer session it happens in. The guard refuses the
operation unless that session exists in the caller's tenant and is still
open.

Callers run it as the first step inside the same store transaction as the
write it protects (after begin_write_transaction()), so a shift closed
concurrently cannot slip between the check and the write.
"""

from ..errors import NoOpenShift, ShiftClosed
from ..extensions import db
from ..models import CashDrawerSession
from .concurrency import lock_for_update


def require_open_session(cash_drawer_session_id, tenant_id: int) -> CashDrawerSession:
    """
    Return the locked, open session or raise.

    Raises:
        NoOpenShift: no session id supplied
        ShiftClosed: unknown id, other tenant, or the session has ended
    """
    if cash_drawer_session_id is None or cash_drawer_session_id == "":
        raise NoOpenShift()

    try:
        session_id = int(cash_drawer_session_id)
    except (TypeError, ValueError):
        raise ShiftClosed()

    session = lock_for_update(
        db.session.query(CashDrawerSession).filter_by(id=session_id)
    ).first()

    if session is None or session.tenant_id != tenant_id:
        raise ShiftClosed()

    if session.end_time is not None:
        raise ShiftClosed()

    return session
