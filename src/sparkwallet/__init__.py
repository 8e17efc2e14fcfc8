import logging
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("sparkwallet")
except PackageNotFoundError:
    __version__ = "0.0.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from .auth import (
    AccountTokenAuthProvider,
    AuthProvider,
    CustomJwtAuthProvider,
    InMemoryJwtStorage,
    JwtStorage,
    JwtTokenInfo,
    OAuthHelper,
    OAuthProvider,
    StubAuthProvider,
)
from .awaiter import await_terminal_state
from .client import WalletClient
from .crypto import CryptoInterface, DefaultCrypto, SigningKeyPair
from .errors import (
    AuthExpiredError,
    AuthRequiredError,
    AwaitError,
    AwaitTimeoutError,
    DecryptionError,
    GraphQLError,
    InvalidQueryError,
    KeyDecodeError,
    KeyNotFoundError,
    NetworkError,
    SparkWalletError,
)
from .keys import NodeKeyCache
from .requester import Query, Requester
from .types import (
    Balances,
    BitcoinNetwork,
    CurrencyAmount,
    CurrencyUnit,
    FeeEstimate,
    InvoiceData,
    InvoiceType,
    KeyType,
    LoginWithJWTOutput,
    OutgoingPayment,
    PaymentFailureReason,
    PaymentRequest,
    PaymentRequestStatus,
    Transaction,
    TransactionStatus,
    Wallet,
    WalletDashboard,
    WalletStatus,
    WithdrawalRequest,
    WithdrawalRequestStatus,
)

__all__ = [
    "__version__",
    "WalletClient",
    "Requester",
    "Query",
    "NodeKeyCache",
    "await_terminal_state",
    "CryptoInterface",
    "DefaultCrypto",
    "SigningKeyPair",
    "AuthProvider",
    "StubAuthProvider",
    "AccountTokenAuthProvider",
    "CustomJwtAuthProvider",
    "JwtStorage",
    "InMemoryJwtStorage",
    "JwtTokenInfo",
    "OAuthHelper",
    "OAuthProvider",
    "SparkWalletError",
    "AuthRequiredError",
    "AuthExpiredError",
    "KeyNotFoundError",
    "KeyDecodeError",
    "DecryptionError",
    "InvalidQueryError",
    "NetworkError",
    "GraphQLError",
    "AwaitError",
    "AwaitTimeoutError",
    "Balances",
    "BitcoinNetwork",
    "CurrencyAmount",
    "CurrencyUnit",
    "FeeEstimate",
    "InvoiceData",
    "InvoiceType",
    "KeyType",
    "LoginWithJWTOutput",
    "OutgoingPayment",
    "PaymentFailureReason",
    "PaymentRequest",
    "PaymentRequestStatus",
    "Transaction",
    "TransactionStatus",
    "Wallet",
    "WalletDashboard",
    "WalletStatus",
    "WithdrawalRequest",
    "WithdrawalRequestStatus",
]
