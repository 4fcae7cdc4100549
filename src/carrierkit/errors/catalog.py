"""Known carrier error codes with their classification and translations.

The carrier answers failed calls with ``success: false`` plus parallel
``errors`` (messages) and ``errorCodes`` arrays. Codes listed here get a
fixed category, severity and retryability, and messages in English,
Ukrainian and Russian; unknown codes fall back to a non-retryable
business-logic error.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from carrierkit.models import ErrorCategory, ErrorSeverity


class Language(str, enum.Enum):
    EN = "en"
    UA = "ua"
    RU = "ru"


class CarrierErrorCode(str, enum.Enum):
    """Subset of carrier error codes the transport knows how to classify."""

    SERVICE_UNAVAILABLE = "20000100016"
    INVALID_LOGIN_OR_PASSWORD = "20000100015"
    API_AUTH_FAIL = "20000200068"
    API_KEY_EMPTY = "20000200069"
    CITY_RECIPIENT_NOT_FOUND = "20000200103"
    CITY_SENDER_NOT_FOUND = "20000200106"
    COST_TOO_HIGH = "20000200119"
    DOCUMENT_NOT_FOUND = "20000300415"
    DOCUMENT_NUMBER_INCORRECT = "20000200158"
    MARKETPLACE_PARTNER_TOKEN_INCORRECT = "20000100541"


@dataclass(frozen=True)
class ErrorInfo:
    messages: dict[Language, str]
    category: ErrorCategory
    severity: ErrorSeverity
    retryable: bool

    def message(self, language: Language = Language.EN) -> str:
        return self.messages.get(language) or self.messages[Language.EN]


ERROR_CATALOG: dict[str, ErrorInfo] = {
    CarrierErrorCode.API_KEY_EMPTY.value: ErrorInfo(
        messages={
            Language.EN: "API key is required. Please provide a valid API key.",
            Language.UA: "API-ключ не вказано",
            Language.RU: "API-ключ не указан",
        },
        category=ErrorCategory.AUTHENTICATION,
        severity=ErrorSeverity.CRITICAL,
        retryable=False,
    ),
    CarrierErrorCode.API_AUTH_FAIL.value: ErrorInfo(
        messages={
            Language.EN: "API authentication failed. Please check your API key.",
            Language.UA: "Помилка автентифікації API",
            Language.RU: "Ошибка аутентификации API",
        },
        category=ErrorCategory.AUTHENTICATION,
        severity=ErrorSeverity.CRITICAL,
        retryable=False,
    ),
    CarrierErrorCode.INVALID_LOGIN_OR_PASSWORD.value: ErrorInfo(
        messages={
            Language.EN: "Invalid login or password",
            Language.UA: "Невірний логін або пароль",
            Language.RU: "Неверный логин или пароль",
        },
        category=ErrorCategory.AUTHENTICATION,
        severity=ErrorSeverity.HIGH,
        retryable=False,
    ),
    CarrierErrorCode.MARKETPLACE_PARTNER_TOKEN_INCORRECT.value: ErrorInfo(
        messages={
            Language.EN: "Marketplace partner token is incorrect",
            Language.UA: "Невірний токен партнера маркетплейсу",
            Language.RU: "Неверный токен партнера маркетплейса",
        },
        category=ErrorCategory.CONFIGURATION,
        severity=ErrorSeverity.HIGH,
        retryable=False,
    ),
    CarrierErrorCode.SERVICE_UNAVAILABLE.value: ErrorInfo(
        messages={
            Language.EN: "Service unavailable",
            Language.UA: "Сервіс недоступний",
            Language.RU: "Сервис недоступен",
        },
        category=ErrorCategory.NETWORK,
        severity=ErrorSeverity.HIGH,
        retryable=True,
    ),
    CarrierErrorCode.CITY_RECIPIENT_NOT_FOUND.value: ErrorInfo(
        messages={
            Language.EN: "Recipient city not found",
            Language.UA: "Місто отримувача не знайдено",
            Language.RU: "Город получателя не найден",
        },
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.MEDIUM,
        retryable=False,
    ),
    CarrierErrorCode.CITY_SENDER_NOT_FOUND.value: ErrorInfo(
        messages={
            Language.EN: "Sender city not found",
            Language.UA: "Місто відправника не знайдено",
            Language.RU: "Город отправителя не найден",
        },
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.MEDIUM,
        retryable=False,
    ),
    CarrierErrorCode.COST_TOO_HIGH.value: ErrorInfo(
        messages={
            Language.EN: "Cost is too high",
            Language.UA: "Вартість занадто висока",
            Language.RU: "Стоимость слишком высокая",
        },
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.MEDIUM,
        retryable=False,
    ),
    CarrierErrorCode.DOCUMENT_NOT_FOUND.value: ErrorInfo(
        messages={
            Language.EN: "Document not found",
            Language.UA: "Документ не знайдено",
            Language.RU: "Документ не найден",
        },
        category=ErrorCategory.BUSINESS_LOGIC,
        severity=ErrorSeverity.MEDIUM,
        retryable=False,
    ),
    CarrierErrorCode.DOCUMENT_NUMBER_INCORRECT.value: ErrorInfo(
        messages={
            Language.EN: "Document number is incorrect",
            Language.UA: "Номер документа некоректний",
            Language.RU: "Номер документа некорректный",
        },
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.MEDIUM,
        retryable=False,
    ),
}


def get_error_info(code: str) -> Optional[ErrorInfo]:
    return ERROR_CATALOG.get(code)
