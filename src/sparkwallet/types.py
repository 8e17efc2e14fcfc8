from __future__ import annotations

import types
from dataclasses import MISSING, dataclass, fields, is_dataclass
from enum import Enum
from functools import cache
from typing import Any, ClassVar, TypeVar, Union, get_args, get_origin, get_type_hints

T = TypeVar("T")


class _ApiEnum(str, Enum):
    """Enum that maps values it doesn't know to ``FUTURE_VALUE``.

    The server may add members without a client release.
    """

    @classmethod
    def _missing_(cls, value: object) -> Any:
        return cls.__members__.get("FUTURE_VALUE")

    def __str__(self) -> str:
        return self.value


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class WalletStatus(_ApiEnum):
    FUTURE_VALUE = "FUTURE_VALUE"
    NOT_SETUP = "NOT_SETUP"
    DEPLOYING = "DEPLOYING"
    DEPLOYED = "DEPLOYED"
    INITIALIZING = "INITIALIZING"
    READY = "READY"
    UNAVAILABLE = "UNAVAILABLE"
    FAILED = "FAILED"
    TERMINATING = "TERMINATING"
    TERMINATED = "TERMINATED"


class TransactionStatus(_ApiEnum):
    FUTURE_VALUE = "FUTURE_VALUE"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"
    NOT_STARTED = "NOT_STARTED"
    CANCELLED = "CANCELLED"


class PaymentRequestStatus(_ApiEnum):
    FUTURE_VALUE = "FUTURE_VALUE"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class WithdrawalRequestStatus(_ApiEnum):
    FUTURE_VALUE = "FUTURE_VALUE"
    FAILED = "FAILED"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESSFUL = "SUCCESSFUL"


class PaymentFailureReason(_ApiEnum):
    FUTURE_VALUE = "FUTURE_VALUE"
    NONE = "NONE"
    TIMEOUT = "TIMEOUT"
    NO_ROUTE = "NO_ROUTE"
    ERROR = "ERROR"
    INCORRECT_PAYMENT_DETAILS = "INCORRECT_PAYMENT_DETAILS"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INVOICE_ALREADY_PAID = "INVOICE_ALREADY_PAID"
    SELF_PAYMENT = "SELF_PAYMENT"
    INVOICE_EXPIRED = "INVOICE_EXPIRED"


class KeyType(_ApiEnum):
    FUTURE_VALUE = "FUTURE_VALUE"
    RSA_OAEP = "RSA_OAEP"
    SECP256K1 = "SECP256K1"


class InvoiceType(_ApiEnum):
    FUTURE_VALUE = "FUTURE_VALUE"
    STANDARD = "STANDARD"
    AMP = "AMP"


class CurrencyUnit(_ApiEnum):
    FUTURE_VALUE = "FUTURE_VALUE"
    BITCOIN = "BITCOIN"
    SATOSHI = "SATOSHI"
    MILLISATOSHI = "MILLISATOSHI"
    NANOBITCOIN = "NANOBITCOIN"
    MICROBITCOIN = "MICROBITCOIN"
    MILLIBITCOIN = "MILLIBITCOIN"
    USD = "USD"


class BitcoinNetwork(_ApiEnum):
    FUTURE_VALUE = "FUTURE_VALUE"
    MAINNET = "MAINNET"
    REGTEST = "REGTEST"
    SIGNET = "SIGNET"
    TESTNET = "TESTNET"


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CurrencyAmount:
    _prefix: ClassVar[str] = "currency_amount_"

    original_value: int
    original_unit: CurrencyUnit
    preferred_currency_unit: CurrencyUnit | None = None
    preferred_currency_value_rounded: int | None = None
    preferred_currency_value_approx: float | None = None


@dataclass(frozen=True)
class Balances:
    _prefix: ClassVar[str] = "balances_"

    owned_balance: CurrencyAmount
    available_to_send_balance: CurrencyAmount
    available_to_withdraw_balance: CurrencyAmount


@dataclass(frozen=True)
class FeeEstimate:
    _prefix: ClassVar[str] = "fee_estimate_"

    fee_fast: CurrencyAmount
    fee_min: CurrencyAmount


@dataclass(frozen=True)
class RichText:
    _prefix: ClassVar[str] = "rich_text_"

    text: str


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Wallet:
    _prefix: ClassVar[str] = "wallet_"

    id: str
    status: WalletStatus
    created_at: str | None = None
    updated_at: str | None = None
    third_party_identifier: str | None = None
    balances: Balances | None = None


@dataclass(frozen=True)
class LoginWithJWTOutput:
    _prefix: ClassVar[str] = "login_with_jwt_output_"

    access_token: str
    valid_until: str
    wallet: Wallet


# ---------------------------------------------------------------------------
# Invoices and payments
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InvoiceData:
    """A decoded BOLT11 payment request."""

    _prefix: ClassVar[str] = "invoice_data_"

    encoded_payment_request: str
    bitcoin_network: BitcoinNetwork
    payment_hash: str
    amount: CurrencyAmount
    created_at: str | None = None
    expires_at: str | None = None
    memo: str | None = None


@dataclass(frozen=True)
class OutgoingPayment:
    _prefix: ClassVar[str] = "outgoing_payment_"

    id: str
    status: TransactionStatus
    amount: CurrencyAmount
    created_at: str | None = None
    updated_at: str | None = None
    resolved_at: str | None = None
    transaction_hash: str | None = None
    fees: CurrencyAmount | None = None
    payment_request_data: InvoiceData | None = None
    failure_reason: PaymentFailureReason | None = None
    failure_message: RichText | None = None


@dataclass(frozen=True)
class PaymentRequest:
    _prefix: ClassVar[str] = "payment_request_"

    id: str
    status: PaymentRequestStatus
    created_at: str | None = None
    updated_at: str | None = None
    data: InvoiceData | None = None


@dataclass(frozen=True)
class Transaction:
    _prefix: ClassVar[str] = "transaction_"

    id: str
    status: TransactionStatus
    amount: CurrencyAmount
    typename: str = "Transaction"
    created_at: str | None = None
    updated_at: str | None = None
    resolved_at: str | None = None
    transaction_hash: str | None = None


@dataclass(frozen=True)
class WithdrawalRequest:
    _prefix: ClassVar[str] = "withdrawal_request_"

    id: str
    status: WithdrawalRequestStatus
    amount: CurrencyAmount
    bitcoin_address: str
    created_at: str | None = None
    updated_at: str | None = None
    estimated_amount: CurrencyAmount | None = None
    completed_at: str | None = None


@dataclass(frozen=True)
class EncryptedSigningKey:
    """A wallet signing key as held by the server, encrypted with the user's password."""

    _prefix: ClassVar[str] = "secret_"

    encrypted_value: str
    cipher: str


@dataclass(frozen=True)
class WalletDashboard:
    id: str
    status: WalletStatus
    balances: Balances | None
    recent_transactions: list[Transaction]
    payment_requests: list[PaymentRequest]


# ---------------------------------------------------------------------------
# JSON mapping
# ---------------------------------------------------------------------------

@cache
def _hints(cls: type) -> dict[str, Any]:
    return get_type_hints(cls)


def _convert(tp: Any, value: Any) -> Any:
    if value is None:
        return None
    origin = get_origin(tp)
    if origin is Union or origin is types.UnionType:
        inner = [a for a in get_args(tp) if a is not type(None)]
        return _convert(inner[0], value) if len(inner) == 1 else value
    if origin is list:
        (item_tp,) = get_args(tp)
        return [_convert(item_tp, v) for v in value]
    if isinstance(tp, type) and issubclass(tp, Enum):
        return tp(value)
    if isinstance(tp, type) and is_dataclass(tp):
        return parse(tp, value)
    return value


def parse(cls: type[T], data: dict[str, Any] | None) -> T | None:
    """Map a GraphQL response object into *cls*.

    Keys are expected under the class's alias prefix, e.g. ``wallet_status``
    for ``Wallet.status``. Unknown keys are ignored and missing required keys
    become ``None``.
    """
    if data is None:
        return None
    prefix = getattr(cls, "_prefix", "")
    hints = _hints(cls)
    kwargs: dict[str, Any] = {}
    for f in fields(cls):  # type: ignore[arg-type]
        if f.name == "typename" and "__typename" in data:
            kwargs[f.name] = data["__typename"]
            continue
        key = prefix + f.name
        if key in data:
            kwargs[f.name] = _convert(hints[f.name], data[key])
        elif f.default is MISSING and f.default_factory is MISSING:
            kwargs[f.name] = None
    return cls(**kwargs)
