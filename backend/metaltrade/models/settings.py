from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class AppSettingRecord(db.Model):
    """
    Key-value overrides for pricing settings.

    Keys without a row fall back to the Flask config defaults.
    """
    __tablename__ = "app_settings"
    __table_args__ = (
        db.UniqueConstraint("key", name="uq_app_settings_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), nullable=False)
    value = db.Column(db.Text, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "key": self.key,
            "value": self.value,
            "updated_at": to_utc_z(self.updated_at),
        }
