"""Proximity checks, target lookup and scan confirmation.

A scan counts only when the scanned participant is exactly the target
currently selected for the scanner's opposite category. The token scan is
taken as proof of presence; live proximity is re-checked at scan time only
when ``require_proximity_on_scan`` is set.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from rendezvous.errors import InvalidInput, NotFound
from .geo import haversine_m
from .selection import opposite_category

log = logging.getLogger(__name__)

# Token URLs look like https://<host>/connect/<participant_id>
CONNECT_PATTERN = re.compile(r'/connect/([^/?#]+)')

WRONG_TARGET = 'wrong_target'
NO_TARGET_SELECTED = 'no_target_selected'
DUPLICATE_REDEMPTION = 'duplicate_redemption'
TOO_FAR = 'too_far'

REJECTION_REASONS = {
    WRONG_TARGET: 'Scanned participant is not your current target',
    NO_TARGET_SELECTED: 'No target is currently selected for your category',
    DUPLICATE_REDEMPTION: 'You have already redeemed this target',
    TOO_FAR: 'You are not close enough to your target',
}


@dataclass(frozen=True)
class ProximityResult:
    verified: bool
    distance: float
    threshold: float
    location_a: Any = None
    location_b: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'verified': self.verified,
            'distance': round(self.distance, 2),
            'threshold': self.threshold,
            'locations': [self.location_a.to_dict(), self.location_b.to_dict()],
        }


@dataclass
class ScanOutcome:
    success: bool
    scanner_id: str
    scanned_target_id: str
    reason: Optional[str] = None
    expected_target_id: Optional[str] = None
    total_points: Optional[int] = None
    redeemed_targets: List[str] = field(default_factory=list)
    distance: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'success': self.success,
            'scanner_id': self.scanner_id,
            'scanned_target_id': self.scanned_target_id,
        }
        if self.success:
            data.update({
                'points_earned': 1,
                'total_points': self.total_points,
                'redeemed_count': len(self.redeemed_targets),
                'redeemed_targets': list(self.redeemed_targets),
            })
        else:
            data.update({'error': self.reason, 'reason': REJECTION_REASONS.get(self.reason, self.reason)})
            if self.expected_target_id is not None:
                data['expected_target_id'] = self.expected_target_id
            if self.distance is not None:
                data['distance'] = round(self.distance, 2)
        return data


class ProximityVerifier:
    def __init__(self, locations, selection, profiles, ledger,
                 threshold_m: float = 100.0, require_proximity_on_scan: bool = False):
        self.locations = locations
        self.selection = selection
        self.profiles = profiles
        self.ledger = ledger
        self.threshold_m = threshold_m
        self.require_proximity_on_scan = require_proximity_on_scan

    def verify_proximity(self, participant_a: str, participant_b: str) -> ProximityResult:
        location_a = self.locations.get(participant_a)
        location_b = self.locations.get(participant_b)
        if location_a is None or location_b is None:
            missing = [pid for pid, loc in ((participant_a, location_a), (participant_b, location_b)) if loc is None]
            raise NotFound(
                'location data not found for one or both participants',
                code='location_not_found',
                missing=missing,
                verified=False,
            )
        distance = haversine_m(location_a.fix.point, location_b.fix.point)
        return ProximityResult(
            verified=distance <= self.threshold_m,
            distance=distance,
            threshold=self.threshold_m,
            location_a=location_a,
            location_b=location_b,
        )

    def _require_profile(self, identity: str):
        profile = self.profiles.resolve(identity)
        if profile is None:
            raise NotFound('participant profile not found', code='profile_not_found', identity=identity)
        if not profile.category:
            raise NotFound('participant category not set', code='category_not_set', identity=identity)
        return profile

    def lookup_target(self, identity: str) -> Dict[str, Any]:
        profile = self._require_profile(identity)
        target_category = opposite_category(profile.category)
        selection = self.selection.current()
        target_id = selection.target_for(target_category)
        if target_id is None:
            raise NotFound(
                f"no {target_category} target currently selected",
                code=NO_TARGET_SELECTED,
                participant_id=profile.participant_id,
                category=profile.category,
                target_category=target_category,
            )
        location = self.locations.get(target_id)
        if location is None:
            raise NotFound(
                'target has not shared a location yet',
                code='target_location_unavailable',
                participant_id=profile.participant_id,
                target_id=target_id,
            )
        target_profile = self.profiles.get(target_id)
        return {
            'participant_id': profile.participant_id,
            'category': profile.category,
            'target_category': target_category,
            'target_id': target_id,
            'target_profile': target_profile.summary() if target_profile else None,
            'coordinates': location.fix.to_dict(),
            'last_updated': location.last_updated,
            'selected_at': selection.selected_at,
        }

    def resolve_scanned_token(self, token: str) -> str:
        """Map whatever was scanned to a participant id."""
        token = (token or '').strip()
        if not token:
            raise InvalidInput('scanned token is empty', code='invalid_token')
        match = CONNECT_PATTERN.search(token)
        if match:
            return match.group(1)
        if token.startswith(('http://', 'https://')):
            raise InvalidInput('could not extract a participant from the scanned URL', code='invalid_token', token=token)
        profile = self.profiles.find_by_token(token)
        return profile.participant_id if profile else token

    def confirm_scan(self, scanner: str, scanned_token: str) -> ScanOutcome:
        profile = self._require_profile(scanner)
        scanner_id = profile.participant_id
        target_id = self.resolve_scanned_token(scanned_token)
        target_category = opposite_category(profile.category)
        expected = self.selection.current().target_for(target_category)

        if expected is None:
            outcome = ScanOutcome(False, scanner_id, target_id, reason=NO_TARGET_SELECTED)
        elif target_id != expected:
            outcome = ScanOutcome(False, scanner_id, target_id, reason=WRONG_TARGET, expected_target_id=expected)
        else:
            outcome = self._redeem(scanner_id, target_id)

        log.info(
            f"[scan] scanner={scanner_id} target={target_id} success={outcome.success} reason={outcome.reason}"
        )
        return outcome

    def _redeem(self, scanner_id: str, target_id: str) -> ScanOutcome:
        if self.require_proximity_on_scan:
            proximity = self.verify_proximity(scanner_id, target_id)
            if not proximity.verified:
                return ScanOutcome(False, scanner_id, target_id, reason=TOO_FAR, distance=proximity.distance)
        if not self.ledger.increment(scanner_id, target_id):
            return ScanOutcome(False, scanner_id, target_id, reason=DUPLICATE_REDEMPTION)
        record = self.ledger.get(scanner_id)
        return ScanOutcome(
            True,
            scanner_id,
            target_id,
            total_points=record.points,
            redeemed_targets=record.redeemed_targets,
        )
