"""Points ledger: one point per participant per distinct target.

The redeemed-target set is the only duplicate guard. The check and the
increment run under one lock, and the ``(participant_id, target_id)``
unique constraint backs it up at the database level.
"""

import logging
import threading
from typing import List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from rendezvous import db
from rendezvous.errors import Unavailable
from rendezvous.models import PointsRecord, Redemption
from rendezvous.utils import now_ms

log = logging.getLogger(__name__)


class PointsLedger:
    def __init__(self) -> None:
        self._lock = threading.Lock()

    def increment(self, participant_id: str, target_id: str) -> bool:
        """Grant one point for ``target_id``.

        Returns False, without touching the total, when the participant
        already redeemed that target.
        """
        with self._lock:
            now = now_ms()
            try:
                record = db.session.get(PointsRecord, participant_id)
                if record is None:
                    record = PointsRecord(participant_id=participant_id, points=0, last_updated=now)
                    db.session.add(record)
                if target_id in record.redeemed_targets:
                    db.session.commit()
                    log.info(f"[ledger-duplicate] participant={participant_id} target={target_id}")
                    return False
                record.redemptions.append(Redemption(target_id=target_id, redeemed_at=now))
                record.points = (record.points or 0) + 1
                record.last_updated = now
                total = record.points
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                log.info(f"[ledger-duplicate] participant={participant_id} target={target_id} source=constraint")
                return False
            except SQLAlchemyError as exc:
                db.session.rollback()
                log.critical(f"[ledger-unavailable] participant={participant_id} target={target_id} error={exc!r}")
                raise Unavailable('points ledger unavailable', code='ledger_unavailable') from exc
        log.info(f"[ledger-grant] participant={participant_id} target={target_id} total={total}")
        return True

    def get(self, participant_id: str) -> PointsRecord:
        """The stored record, or an unsaved zero record for unknown participants."""
        try:
            record = db.session.get(PointsRecord, participant_id)
        except SQLAlchemyError as exc:
            db.session.rollback()
            log.critical(f"[ledger-unavailable] participant={participant_id} error={exc!r}")
            raise Unavailable('points ledger unavailable', code='ledger_unavailable') from exc
        if record is None:
            record = PointsRecord(participant_id=participant_id, points=0, last_updated=None)
        return record

    def leaderboard(self) -> List[PointsRecord]:
        """Highest total first; ties go to whoever reached it earliest, then by id."""
        try:
            return (
                PointsRecord.query
                .order_by(
                    PointsRecord.points.desc(),
                    PointsRecord.last_updated.asc(),
                    PointsRecord.participant_id.asc(),
                )
                .all()
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            log.critical(f"[ledger-unavailable] action=leaderboard error={exc!r}")
            raise Unavailable('points ledger unavailable', code='ledger_unavailable') from exc
