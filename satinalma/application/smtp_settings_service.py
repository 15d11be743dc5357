from __future__ import annotations

from typing import Any, Dict

from satinalma.domain.contracts import ServiceOutput
from satinalma.errors import ConflictError, NotFoundError, ValidationError
from satinalma.infrastructure.repositories.mail_repository import SmtpSettingsRepository
from satinalma.procurement.validators import clean_text, parse_positive_int


PASSWORD_MASK = "********"

# request field -> column
_REQUIRED_FIELDS = {
    "key": "key",
    "host": "host",
    "port": "port",
    "user": "user_name",
    "from": "from_address",
}
_FLAG_FIELDS = ("secure", "is_default", "active")


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def mask_setting(row: Dict[str, Any]) -> Dict[str, Any]:
    masked = dict(row)
    masked["password"] = PASSWORD_MASK if row.get("password") else None
    for flag in _FLAG_FIELDS:
        if flag in masked:
            masked[flag] = bool(masked[flag])
    return masked


class SmtpSettingsService:
    def __init__(self, repository: SmtpSettingsRepository | None = None) -> None:
        self.repository = repository or SmtpSettingsRepository()

    def list(self, db) -> ServiceOutput:
        return ServiceOutput(payload={"items": [mask_setting(row) for row in self.repository.list_all(db)]})

    def create(self, db, *, payload: Dict[str, Any]) -> ServiceOutput:
        values = self._values(payload, partial=False)
        if self.repository.get_by_key(db, values["key"]):
            raise ConflictError(code="duplicate", details={"field": "key"})
        setting_id = self.repository.create(db, values=values)
        db.commit()
        return ServiceOutput(payload=mask_setting(self.repository.get_by_id(db, setting_id)), status_code=201)

    def update(self, db, *, setting_id: int, payload: Dict[str, Any]) -> ServiceOutput:
        current = self._load(db, setting_id)
        values = self._values(payload, partial=True)
        if not values:
            raise ValidationError(code="no_changes")
        if values.get("key") and values["key"] != current["key"] and self.repository.get_by_key(db, values["key"]):
            raise ConflictError(code="duplicate", details={"field": "key"})
        self.repository.update(db, setting_id, values=values)
        db.commit()
        return ServiceOutput(payload=mask_setting(self.repository.get_by_id(db, setting_id)))

    def delete(self, db, *, setting_id: int) -> ServiceOutput:
        self._load(db, setting_id)
        self.repository.delete(db, setting_id)
        db.commit()
        return ServiceOutput(payload={"ok": True, "id": setting_id})

    def _load(self, db, setting_id: int) -> dict:
        setting = self.repository.get_by_id(db, setting_id)
        if not setting:
            raise NotFoundError(code="smtp_setting_not_found")
        return setting

    @staticmethod
    def _values(payload: Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        missing = []
        for field, column in _REQUIRED_FIELDS.items():
            if partial and field not in payload:
                continue
            value = parse_positive_int(payload.get(field)) if field == "port" else clean_text(payload.get(field))
            if not value:
                missing.append(field)
                continue
            values[column] = value
        if missing:
            raise ValidationError(code="missing_fields", details=missing)

        if "from_name" in payload:
            values["from_name"] = clean_text(payload.get("from_name"))
        # the masked placeholder means "keep the stored password"
        password = payload.get("password")
        if "password" in payload and password != PASSWORD_MASK:
            values["password"] = clean_text(password)
        for flag in _FLAG_FIELDS:
            if flag in payload:
                values[flag] = _as_bool(payload.get(flag))
        return values
