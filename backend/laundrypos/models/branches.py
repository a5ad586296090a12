from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Branch(db.Model):
    """
    Physical or logical shop. Partition key for every money-bearing row.
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_branches_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(32), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class BranchFeature(db.Model):
    """
    Per-branch capability switch (cash_management, collection, loyalty).

    A branch with no row for a feature has it enabled.
    """
    __tablename__ = "branch_features"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "feature_key", name="uq_branch_features_branch_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    feature_key = db.Column(db.String(64), nullable=False)
    is_enabled = db.Column(db.Boolean, nullable=False, default=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    branch = db.relationship("Branch", backref=db.backref("features", lazy=True))

    def to_dict(self) -> dict:
        return {
            "branch_id": self.branch_id,
            "feature_key": self.feature_key,
            "is_enabled": self.is_enabled,
            "updated_at": to_utc_z(self.updated_at),
        }
