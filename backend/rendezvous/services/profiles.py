"""Read/write access to participant profiles.

Profiles are filled in by whatever imports them (scraper, admin, seed
command); the game only needs ids, categories and tokens. A token clash
surfaces as ``Conflict``; every other database failure, including a
timed-out connection, as ``Unavailable``.
"""

import logging
from contextlib import contextmanager
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from rendezvous import db
from rendezvous.errors import Conflict, InvalidInput, NotFound, Unavailable
from rendezvous.models import CATEGORIES, Profile
from rendezvous.utils import now_ms

log = logging.getLogger(__name__)


@contextmanager
def _store_guard(action: str):
    try:
        yield
    except IntegrityError as exc:
        db.session.rollback()
        raise Conflict('token already assigned to another participant', code='token_taken') from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        log.error(f"[profile-store] action={action} error={exc!r}")
        raise Unavailable('profile store unavailable', code='profile_store_unavailable') from exc


def validate_category(category) -> str:
    value = (category or '').strip().upper() if isinstance(category, str) else None
    if value not in CATEGORIES:
        raise InvalidInput(
            f"category must be one of {', '.join(CATEGORIES)}",
            code='invalid_category',
            category=category,
        )
    return value


class ProfileStore:
    def all(self) -> List[Profile]:
        with _store_guard('all'):
            return Profile.query.order_by(Profile.participant_id).all()

    def population(self) -> Dict[str, str]:
        """participant_id -> category for every categorized profile."""
        with _store_guard('population'):
            rows = (
                db.session.query(Profile.participant_id, Profile.category)
                .filter(Profile.category.in_(CATEGORIES))
                .all()
            )
        return {participant_id: category for participant_id, category in rows}

    def get(self, participant_id: str) -> Optional[Profile]:
        with _store_guard('get'):
            return db.session.get(Profile, participant_id)

    def find_by_token(self, token: str) -> Optional[Profile]:
        with _store_guard('find_by_token'):
            return Profile.query.filter_by(token=token).first()

    def resolve(self, identity: str) -> Optional[Profile]:
        """Look a participant up by id first, then by token."""
        return self.get(identity) or self.find_by_token(identity)

    def save(self, participant_id: str, **fields) -> Profile:
        """Create or update a profile.

        ``category`` and ``token`` are kept when the update leaves them
        out or passes None, so a refreshed import never wipes them.
        """
        if fields.get('category') is not None:
            fields['category'] = validate_category(fields['category'])
        with _store_guard('save'):
            profile = db.session.get(Profile, participant_id)
            if profile is None:
                profile = Profile(participant_id=participant_id)
                db.session.add(profile)
            for key in ('name', 'avatar_url', 'bio'):
                if key in fields:
                    setattr(profile, key, fields[key])
            for key in ('category', 'token'):
                if fields.get(key) is not None:
                    setattr(profile, key, fields[key])
            profile.updated_at = now_ms()
            db.session.commit()
        log.info(f"[profile-save] participant={participant_id} category={profile.category}")
        return profile

    def set_category(self, participant_id: str, category: str, token: Optional[str] = None) -> Profile:
        category = validate_category(category)
        if self.get(participant_id) is None:
            raise NotFound('profile not found', code='profile_not_found', participant_id=participant_id)
        return self.save(participant_id, category=category, token=token)
