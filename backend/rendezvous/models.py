from rendezvous import db

CATEGORY_A = 'A'
CATEGORY_B = 'B'
CATEGORIES = (CATEGORY_A, CATEGORY_B)


class Profile(db.Model):
    __tablename__ = 'profile'
    participant_id = db.Column(db.String(128), primary_key=True)
    name = db.Column(db.String(128), nullable=True)
    category = db.Column(db.String(1), nullable=True, index=True)  # A, B or unset
    # Identity printed on the participant's physical token
    token = db.Column(db.String(128), unique=True, nullable=True, index=True)
    avatar_url = db.Column(db.String(512), nullable=True)
    bio = db.Column(db.Text, nullable=True)
    updated_at = db.Column(db.BigInteger, nullable=True)

    def summary(self):
        return {
            'name': self.name,
            'avatar_url': self.avatar_url,
            'bio': self.bio,
        }

    def to_dict(self):
        return {
            'participant_id': self.participant_id,
            'name': self.name,
            'category': self.category,
            'token': self.token,
            'avatar_url': self.avatar_url,
            'bio': self.bio,
            'updated_at': self.updated_at,
        }


class PointsRecord(db.Model):
    __tablename__ = 'points_record'
    participant_id = db.Column(db.String(128), primary_key=True)
    points = db.Column(db.Integer, default=0, nullable=False)
    last_updated = db.Column(db.BigInteger, nullable=True)
    redemptions = db.relationship(
        'Redemption',
        backref='record',
        order_by='Redemption.id',
        cascade='all, delete-orphan',
    )

    @property
    def redeemed_targets(self):
        return [r.target_id for r in self.redemptions]

    def to_dict(self, include_targets=True):
        data = {
            'participant_id': self.participant_id,
            'points': self.points or 0,
            'redeemed_count': len(self.redemptions),
            'last_updated': self.last_updated,
        }
        if include_targets:
            data['redeemed_targets'] = self.redeemed_targets
        return data


class Redemption(db.Model):
    __tablename__ = 'redemption'
    __table_args__ = (
        db.UniqueConstraint('participant_id', 'target_id', name='uq_redemption_participant_target'),
    )
    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(db.String(128), db.ForeignKey('points_record.participant_id'), nullable=False, index=True)
    target_id = db.Column(db.String(128), nullable=False)
    redeemed_at = db.Column(db.BigInteger, nullable=False)
