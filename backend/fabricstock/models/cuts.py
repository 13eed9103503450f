from __future__ import annotations

from ..extensions import db
from fabricstock.time_utils import to_utc_z


class FabricCut(db.Model):
    """
    Yardage cut from a bolt outside the sales flow.

    Creating a cut deducts stock through a `cut` ledger entry referencing
    "cut-<id>". Marking it used only removes the row: the material was
    consumed, so nothing is restored.
    """
    __tablename__ = "fabric_cuts"
    __table_args__ = (
        db.Index("ix_fabric_cuts_user_date", "user_id", "cut_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    yards = db.Column(db.Integer, nullable=False)

    cut_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def reference_id(self) -> str:
        return f"cut-{self.id}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "yards": self.yards,
            "cut_date": to_utc_z(self.cut_date),
            "reference_id": self.reference_id,
        }
