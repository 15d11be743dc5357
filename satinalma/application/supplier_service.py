from __future__ import annotations

from typing import Any, Dict

from satinalma.domain.contracts import ListQuery, ServiceOutput
from satinalma.errors import ConflictError, NotFoundError, ValidationError
from satinalma.infrastructure.repositories.evaluation_repository import EvaluationRepository
from satinalma.infrastructure.repositories.supplier_repository import CategoryRepository, SupplierRepository
from satinalma.procurement.validators import clean_text, contact_errors, parse_positive_int


REGISTRATION_STATUSES = {"pending", "approved", "rejected"}
_TEXT_FIELDS = ("name", "tax_id", "email", "phone", "address", "contact_name")


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


class SupplierService:
    def list(self, db, *, tenant_id: str, query: ListQuery) -> ServiceOutput:
        page = SupplierRepository(tenant_id=tenant_id).list_page(db, query)
        return ServiceOutput(payload=page.as_payload())

    def get(self, db, *, tenant_id: str, supplier_id: int) -> ServiceOutput:
        return ServiceOutput(payload=self._load(db, tenant_id, supplier_id))

    def create(self, db, *, tenant_id: str, payload: Dict[str, Any]) -> ServiceOutput:
        values = self._normalize(db, tenant_id, payload, partial=False)
        repository = SupplierRepository(tenant_id=tenant_id)
        if values.get("tax_id") and repository.find_by_tax_id(db, values["tax_id"]):
            raise ConflictError(code="duplicate", details={"field": "tax_id"})
        supplier_id = repository.create(db, values=values)
        db.commit()
        return ServiceOutput(payload=repository.get_by_id(db, supplier_id), status_code=201)

    def update(self, db, *, tenant_id: str, supplier_id: int, payload: Dict[str, Any]) -> ServiceOutput:
        self._load(db, tenant_id, supplier_id)
        values = self._normalize(db, tenant_id, payload, partial=True)
        if not values:
            raise ValidationError(code="no_changes")
        repository = SupplierRepository(tenant_id=tenant_id)
        if values.get("tax_id") and repository.find_by_tax_id(db, values["tax_id"], exclude_id=supplier_id):
            raise ConflictError(code="duplicate", details={"field": "tax_id"})
        if "active" in values:
            values["active"] = 1 if values["active"] else 0
        repository.update_fields(db, supplier_id, values)
        db.commit()
        return ServiceOutput(payload=repository.get_by_id(db, supplier_id))

    def delete(self, db, *, tenant_id: str, supplier_id: int) -> ServiceOutput:
        self._load(db, tenant_id, supplier_id)
        repository = SupplierRepository(tenant_id=tenant_id)
        linked_orders = repository.count_orders(db, supplier_id)
        if linked_orders:
            raise ConflictError(code="linked_records", details={"orders": linked_orders})
        repository.delete_by_id(db, supplier_id)
        db.commit()
        return ServiceOutput(payload={"ok": True, "id": supplier_id})

    def set_registration_status(self, db, *, tenant_id: str, supplier_id: int, status: str) -> ServiceOutput:
        if status not in REGISTRATION_STATUSES:
            raise ValidationError(code="invalid_status")
        self._load(db, tenant_id, supplier_id)
        repository = SupplierRepository(tenant_id=tenant_id)
        repository.update_fields(db, supplier_id, {"registration_status": status})
        db.commit()
        return ServiceOutput(payload={"ok": True, "id": supplier_id, "registration_status": status})

    def score(self, db, *, tenant_id: str, supplier_id: int) -> ServiceOutput:
        self._load(db, tenant_id, supplier_id)
        return ServiceOutput(payload=EvaluationRepository(tenant_id=tenant_id).supplier_score(db, supplier_id))

    def list_categories(self, db, *, tenant_id: str) -> ServiceOutput:
        return ServiceOutput(payload={"items": CategoryRepository(tenant_id=tenant_id).list_all(db)})

    def create_category(self, db, *, tenant_id: str, name: str | None) -> ServiceOutput:
        normalized = clean_text(name)
        if not normalized:
            raise ValidationError(code="name_required")
        repository = CategoryRepository(tenant_id=tenant_id)
        if repository.find_by_name(db, normalized):
            raise ConflictError(code="already_exists", details={"field": "name"})
        category_id = repository.create(db, name=normalized)
        db.commit()
        return ServiceOutput(payload={"id": category_id, "name": normalized}, status_code=201)

    @staticmethod
    def _load(db, tenant_id: str, supplier_id: int) -> dict:
        supplier = SupplierRepository(tenant_id=tenant_id).get_by_id(db, supplier_id)
        if not supplier:
            raise NotFoundError(code="supplier_not_found")
        return supplier

    @staticmethod
    def _normalize(db, tenant_id: str, payload: Dict[str, Any], *, partial: bool) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for field in _TEXT_FIELDS:
            if field in payload or not partial:
                values[field] = clean_text(payload.get(field))
        if not partial or "name" in payload:
            if not values.get("name"):
                raise ValidationError(code="name_required")

        errors = contact_errors(values.get("email"), values.get("phone"), values.get("tax_id"))
        if "category_id" in payload:
            category_id = parse_positive_int(payload.get("category_id"))
            if payload.get("category_id") not in (None, "") and (
                category_id is None or not CategoryRepository(tenant_id=tenant_id).get_by_id(db, category_id)
            ):
                errors.append("invalid_categoryId")
            values["category_id"] = category_id
        if errors:
            raise ValidationError(code="validation_failed", details=errors)

        if "active" in payload:
            values["active"] = _as_bool(payload.get("active"))
        if "email" in values and values["email"]:
            values["email"] = values["email"].lower()
        return values
