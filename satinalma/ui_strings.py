from __future__ import annotations

from typing import Dict, List


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "satinalma.app",
    "request": "Talep",
    "rfq": "Teklif Talebi",
    "order": "Sipariş",
    "supplier": "Tedarikçi",
    "delivery": "Teslimat",
    "contract": "Sözleşme",
    "invoice": "Fatura",
    "meeting": "Toplantı",
}


DEFAULT_ERROR_MESSAGE = "Bir hata oluştu."


STATUS_LABELS: Dict[str, Dict[str, str]] = {
    "request": {
        "pending": "Beklemede",
        "approved": "Onaylandı",
        "rejected": "Reddedildi",
        "in_rfq": "Teklif Sürecinde",
        "ordered": "Siparişe Dönüştü",
        "completed": "Tamamlandı",
        "cancelled": "İptal Edildi",
    },
    "order": {
        "pending": "Beklemede",
        "approved": "Onaylandı",
        "partially_delivered": "Kısmi Teslim Edildi",
        "delivered": "Teslim Edildi",
        "completed": "Tamamlandı",
        "cancelled": "İptal Edildi",
    },
    "rfq": {
        "ACTIVE": "Aktif",
        "OPEN": "Yayında",
        "PASSIVE": "Pasif",
        "CANCELLED": "İptal Edildi",
        "COMPLETED": "Tamamlandı",
    },
    "contract": {
        "draft": "Taslak",
        "active": "Aktif",
        "terminated": "Feshedildi",
        "expired": "Süresi Doldu",
    },
    "invoice": {
        "pending": "Beklemede",
        "paid": "Ödendi",
        "cancelled": "İptal Edildi",
    },
    "meeting": {
        "planned": "Planlandı",
        "completed": "Tamamlandı",
        "cancelled": "İptal Edildi",
    },
}


AUDIT_ACTION_LABELS: Dict[str, str] = {
    "CREATE": "Oluşturma",
    "UPDATE": "Güncelleme",
    "DELETE": "Silme",
    "VIEW": "Görüntüleme",
    "LOGIN": "Giriş",
    "LOGOUT": "Çıkış",
    "APPROVE": "Onaylama",
    "REJECT": "Reddetme",
    "EXPORT": "Dışa Aktarma",
    "IMPORT": "İçe Aktarma",
}


AUDIT_ENTITY_LABELS: Dict[str, str] = {
    "User": "Kullanıcı",
    "Request": "Talep",
    "Order": "Sipariş",
    "Invoice": "Fatura",
    "Contract": "Sözleşme",
    "Supplier": "Tedarikçi",
    "Rfq": "Teklif Talebi",
    "Delivery": "Teslimat",
    "Workflow": "Onay Akışı",
    "Settings": "Ayarlar",
    "System": "Sistem",
}

MESSAGES: Dict[str, Dict[str, str]] = {
    "success": {
        "created": "Kayıt oluşturuldu.",
        "updated": "Kayıt güncellendi.",
        "deleted": "Kayıt silindi.",
        "rfq_published": "Teklif talebi yayınlandı ve tedarikçilere bildirildi.",
        "rfq_finalized": "Teklif talebi tamamlandı ve sipariş oluşturuldu.",
        "offer_submitted": "Teklifiniz alındı.",
        "delivery_recorded": "Teslimat kaydedildi.",
        "email_sent": "E-posta gönderildi.",
        "workflows_initialized": "Varsayılan onay akışları oluşturuldu.",
        "workflows_already_initialized": "Onay akışları zaten tanımlı.",
    },
    "error": {
        # auth
        "forbidden": "Bu işlem için yetkiniz yok.",
        "unauthorized": "Oturum açmanız gerekiyor.",
        "session_expired": "Oturumunuzun süresi doldu. Lütfen tekrar giriş yapın.",
        "invalid_token": "Bağlantı geçersiz veya süresi dolmuş.",
        "invalid_credentials": "E-posta veya şifre hatalı.",
        # validation
        "validation_failed": "Girilen bilgiler doğrulanamadı.",
        "missing_fields": "Zorunlu alanlar eksik.",
        "missing_params": "Zorunlu parametreler eksik.",
        "invalid_email": "Geçerli bir e-posta adresi girin.",
        "invalid_unitEmail": "Birim e-posta adresi geçersiz.",
        "invalid_phone": "Geçerli bir telefon numarası girin.",
        "invalid_taxId": "Geçerli bir vergi numarası girin.",
        "invalid_date": "Geçerli bir tarih girin.",
        "invalid_start_at": "Başlangıç zamanı geçersiz.",
        "invalid_end_at": "Bitiş zamanı geçersiz.",
        "invalid_status": "Geçersiz durum.",
        "invalid_payload": "Gönderilen veri geçersiz.",
        "invalid_question_ids": "Bilinmeyen değerlendirme soruları gönderildi.",
        "name_required": "İsim zorunludur.",
        "title_required": "Başlık zorunludur.",
        "no_valid_items": "Geçerli teslimat kalemi bulunamadı.",
        "no_changes": "Güncellenecek alan gönderilmedi.",
        "rate_limit_exceeded": "Çok fazla istek gönderildi. Lütfen biraz sonra tekrar deneyin.",
        # resource
        "not_found": "Kayıt bulunamadı.",
        "request_not_found": "Talep bulunamadı.",
        "requests_not_found": "Seçilen talepler bulunamadı.",
        "rfq_not_found": "Teklif talebi bulunamadı.",
        "offer_not_found": "Teklif bulunamadı.",
        "order_not_found": "Sipariş bulunamadı.",
        "supplier_not_found": "Tedarikçi bulunamadı.",
        "delivery_not_found": "Teslimat bulunamadı.",
        "contract_not_found": "Sözleşme bulunamadı.",
        "invoice_not_found": "Fatura bulunamadı.",
        "meeting_not_found": "Toplantı bulunamadı.",
        "notification_not_found": "Bildirim bulunamadı.",
        "invitation_not_found": "Davet bulunamadı.",
        "smtp_setting_not_found": "SMTP ayarı bulunamadı.",
        "workflow_not_found": "Onay akışı bulunamadı.",
        "entity_not_found": "Onaylanacak kayıt bulunamadı.",
        "already_exists": "Bu kayıt zaten mevcut.",
        "duplicate": "Aynı bilgilere sahip bir kayıt zaten var.",
        "duplicate_number": "Bu numara zaten kullanılıyor.",
        "duplicate_barcode": "Bu barkod zaten kullanılıyor.",
        "duplicate_code": "Bu irsaliye kodu zaten kullanılıyor.",
        "duplicate_contract": "Aynı dönem için bu sözleşme zaten kayıtlı.",
        # business
        "linked_records": "Bu kayda bağlı başka kayıtlar olduğu için işlem yapılamıyor.",
        "status_conflict": "Kaydın mevcut durumu bu işleme izin vermiyor.",
        "budget_exceeded": "Bütçe aşıldı.",
        "deadline_passed": "Son tarih geçti.",
        "already_published": "Teklif talebi zaten yayında.",
        "rfq_not_active": "Teklif talebi aktif değil.",
        "rfq_expired": "Teklif süresi doldu.",
        "mismatch": "Teklif bu teklif talebine ait değil.",
        "no_supplier_email": "Tedarikçinin e-posta adresi tanımlı değil.",
        "missing_order_or_supplier": "Sipariş ve tedarikçi seçilmelidir.",
        "answers_missing_or_invalid": "Geçerli cevap bulunamadı.",
        "invalid_action": "Geçersiz onay işlemi.",
        "invalid_entity_type": "Geçersiz kayıt türü.",
        "invalid_step": "Geçersiz onay adımı.",
        "no_workflow": "Bu kayıt türü için onay akışı tanımlı değil.",
        "approval_closed": "Onay süreci tamamlandı.",
        # server
        "server_error": "Sunucu hatası oluştu.",
        "database_error": "Veritabanı hatası oluştu.",
        "external_service_error": "Harici servis şu anda yanıt vermiyor.",
        "email_delivery_failed": "E-posta gönderilemedi.",
    },
}


def status_label(group: str, status: str | None) -> str:
    return STATUS_LABELS.get(group, {}).get(str(status or ""), str(status or ""))


def status_keys_for_group(group: str) -> List[str]:
    return list(STATUS_LABELS.get(group, {}).keys())


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)


def audit_action_label(action: str | None) -> str:
    return AUDIT_ACTION_LABELS.get(str(action or ""), str(action or ""))


def audit_entity_label(entity_type: str | None) -> str:
    return AUDIT_ENTITY_LABELS.get(str(entity_type or ""), str(entity_type or ""))
