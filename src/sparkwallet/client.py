from __future__ import annotations

import contextlib
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

import httpx

from . import __version__, queries
from .auth import AuthProvider, CustomJwtAuthProvider, JwtStorage, JwtTokenInfo, StubAuthProvider
from .awaiter import await_terminal_state
from .crypto import CryptoInterface, DefaultCrypto
from .errors import AuthRequiredError, SparkWalletError
from .keys import NodeKeyCache
from .requester import Query, Requester
from .types import (
    Balances,
    CurrencyAmount,
    EncryptedSigningKey,
    FeeEstimate,
    InvoiceData,
    InvoiceType,
    KeyType,
    LoginWithJWTOutput,
    OutgoingPayment,
    PaymentRequest,
    Transaction,
    TransactionStatus,
    Wallet,
    WalletDashboard,
    WalletStatus,
    WithdrawalRequest,
    parse,
)

T = TypeVar("T")

_DEFAULT_BASE_URL = "api.lightspark.com"
_WALLET_SDK_ENDPOINT = "graphql/wallet/2023-05-05"
WALLET_NODE_ID_KEY = "wallet_node_id"

_PAYMENT_COMPLETION_STATUSES = frozenset({
    TransactionStatus.SUCCESS,
    TransactionStatus.FAILED,
    TransactionStatus.CANCELLED,
})

_USER_AGENT = f"sparkwallet-python/{__version__}"


def _field(obj: dict[str, Any] | None, *path: str) -> Any:
    """Follow *path* through nested response objects, stopping at the first null."""
    for key in path:
        if obj is None:
            return None
        obj = obj.get(key)
    return obj


def _entities(connection: dict[str, Any] | None) -> list[dict[str, Any]]:
    return (connection or {}).get("entities") or []


class WalletClient:
    """Async client for a Lightning wallet.

    >>> async with WalletClient(auth_provider) as client:
    ...     client.load_wallet_signing_key(private_key_pem)
    ...     payment = await client.pay_invoice_and_await_result(bolt11, max_fees_msats=1000)

    Fund-moving calls need an unlocked wallet: load its signing key with
    :meth:`load_wallet_signing_key` or :meth:`unlock_wallet` first. The key
    stays in memory on this client and is only used to sign requests.
    """

    def __init__(
        self,
        auth_provider: AuthProvider | None = None,
        *,
        base_url: str = _DEFAULT_BASE_URL,
        crypto: CryptoInterface | None = None,
        timeout: float | httpx.Timeout = 30.0,
        http_client: httpx.AsyncClient | None = None,
        ws_connect: Callable[..., Awaitable[Any]] | None = None,
    ) -> None:
        self._auth_provider = auth_provider or StubAuthProvider()
        self._base_url = base_url.rstrip("/")
        self._crypto = crypto or DefaultCrypto()
        self._node_key_cache = NodeKeyCache(self._crypto)
        self._requester = Requester(
            self._node_key_cache,
            _WALLET_SDK_ENDPOINT,
            _USER_AGENT,
            self._base_url,
            self._auth_provider,
            timeout=timeout,
            http_client=http_client,
            ws_connect=ws_connect,
        )

    # -- auth ---------------------------------------------------------------

    def set_auth_provider(self, auth_provider: AuthProvider) -> None:
        """Switch credentials, e.g. after a user logs in."""
        self._auth_provider = auth_provider
        self._requester.auth_provider = auth_provider

    async def is_authorized(self) -> bool:
        return await self._auth_provider.is_authorized()

    async def login_with_jwt(self, account_id: str, jwt: str, storage: JwtStorage | None = None) -> LoginWithJWTOutput:
        """Log in with a JWT issued by your own backend.

        Installs a :class:`CustomJwtAuthProvider` holding the returned session
        token. The token is not refreshed: when it expires, calls raise
        :class:`~sparkwallet.errors.AuthExpiredError` and you log in again.
        """
        output = await self.execute_raw_query(Query(
            queries.LOGIN_WITH_JWT,
            lambda data: parse(LoginWithJWTOutput, _field(data, "login_with_jwt")),
            variables={"account_id": account_id, "jwt": jwt},
            requires_auth=False,
        ))
        if output is None:
            raise AuthRequiredError("Login failed. Please check your credentials and try again.")
        provider = CustomJwtAuthProvider(storage)
        provider.set_token_info(JwtTokenInfo(
            access_token=output.access_token,
            valid_until=datetime.fromisoformat(output.valid_until.replace("Z", "+00:00")),
        ))
        self.set_auth_provider(provider)
        return output

    # -- wallet lifecycle ---------------------------------------------------

    async def deploy_wallet(self) -> Wallet | None:
        """Deploy the wallet. Returns immediately; status moves to ``DEPLOYED`` or ``FAILED``."""
        return await self.execute_raw_query(Query(
            queries.DEPLOY_WALLET,
            lambda data: parse(Wallet, _field(data, "deploy_wallet", "wallet")),
        ))

    async def deploy_wallet_and_await_deployed(self, timeout_secs: float = 60) -> WalletStatus:
        """Deploy the wallet and wait until it is ``DEPLOYED`` or ``FAILED``."""
        wallet = await self.deploy_wallet()
        return await self._wait_for_wallet_status(
            wallet.status if wallet else None,
            {WalletStatus.DEPLOYED, WalletStatus.FAILED},
            timeout_secs,
        )

    async def initialize_wallet(self, key_type: KeyType, signing_public_key: str, signing_private_key: str | bytes) -> Wallet | None:
        """Initialize the wallet with a signing key pair.

        The private key is cached locally to sign this and later requests; it
        is never sent to the server.
        """
        self.load_wallet_signing_key(signing_private_key)
        return await self.execute_raw_query(Query(
            queries.INITIALIZE_WALLET,
            lambda data: parse(Wallet, _field(data, "initialize_wallet", "wallet")),
            variables={"key_type": str(key_type), "signing_public_key": signing_public_key},
            signing_node_id=WALLET_NODE_ID_KEY,
        ))

    async def initialize_wallet_and_await_ready(
        self,
        key_type: KeyType,
        signing_public_key: str,
        signing_private_key: str | bytes,
        timeout_secs: float = 300,
    ) -> WalletStatus:
        """Initialize the wallet and wait until it is ``READY`` or ``FAILED``."""
        wallet = await self.initialize_wallet(key_type, signing_public_key, signing_private_key)
        return await self._wait_for_wallet_status(
            wallet.status if wallet else None,
            {WalletStatus.READY, WalletStatus.FAILED},
            timeout_secs,
        )

    async def terminate_wallet(self) -> Wallet | None:
        return await self.execute_raw_query(Query(
            queries.TERMINATE_WALLET,
            lambda data: parse(Wallet, _field(data, "terminate_wallet", "wallet")),
        ))

    async def get_current_wallet(self) -> Wallet | None:
        return await self.execute_raw_query(Query(
            queries.CURRENT_WALLET,
            lambda data: parse(Wallet, _field(data, "current_wallet")),
        ))

    async def get_wallet_dashboard(self, num_transactions: int = 20, num_payment_requests: int = 20) -> WalletDashboard | None:
        """Balances plus the most recent transactions and payment requests."""

        def build(data: dict[str, Any]) -> WalletDashboard | None:
            wallet = data.get("current_wallet")
            if not wallet:
                return None
            return WalletDashboard(
                id=wallet["id"],
                status=WalletStatus(wallet["status"]),
                balances=parse(Balances, wallet.get("balances")),
                recent_transactions=[parse(Transaction, t) for t in _entities(wallet.get("recent_transactions"))],
                payment_requests=[parse(PaymentRequest, p) for p in _entities(wallet.get("payment_requests"))],
            )

        return await self.execute_raw_query(Query(
            queries.WALLET_DASHBOARD,
            build,
            variables={"numTransactions": num_transactions, "numPaymentRequests": num_payment_requests},
        ))

    # -- signing key --------------------------------------------------------

    def load_wallet_signing_key(self, signing_key: str | bytes) -> None:
        """Unlock the wallet with a key the application already holds (PEM text or DER bytes)."""
        self._node_key_cache.load_key(WALLET_NODE_ID_KEY, signing_key)

    async def unlock_wallet(self, password: str) -> bool:
        """Fetch the wallet's encrypted signing key and decrypt it with *password*.

        Returns ``False`` if the server holds no key for this wallet. A wrong
        password raises :class:`~sparkwallet.errors.DecryptionError`.
        """
        secret = await self.execute_raw_query(Query(
            queries.RECOVER_WALLET_SIGNING_KEY,
            lambda data: parse(EncryptedSigningKey, _field(data, "current_wallet", "encrypted_signing_private_key")),
        ))
        if secret is None:
            return False
        self._node_key_cache.decrypt_with_password(WALLET_NODE_ID_KEY, password, secret.cipher, secret.encrypted_value)
        return True

    def is_wallet_unlocked(self) -> bool:
        return self._node_key_cache.has_key(WALLET_NODE_ID_KEY)

    def _require_wallet_unlocked(self) -> None:
        if not self.is_wallet_unlocked():
            raise AuthRequiredError("You must unlock the wallet before performing this action.")

    # -- invoices and payments ----------------------------------------------

    async def create_invoice(self, amount_msats: int, memo: str | None = None, invoice_type: InvoiceType = InvoiceType.STANDARD) -> InvoiceData | None:
        """Create a BOLT11 invoice for *amount_msats* on the current wallet."""
        return await self.execute_raw_query(Query(
            queries.CREATE_INVOICE,
            lambda data: parse(InvoiceData, _field(data, "create_invoice", "invoice", "data")),
            variables={"amountMsats": amount_msats, "memo": memo, "type": str(invoice_type)},
        ))

    async def decode_invoice(self, encoded_invoice: str) -> InvoiceData | None:
        return await self.execute_raw_query(Query(
            queries.DECODE_INVOICE,
            lambda data: parse(InvoiceData, _field(data, "decoded_payment_request")),
            variables={"encoded_payment_request": encoded_invoice},
            requires_auth=False,
        ))

    async def pay_invoice(
        self,
        encoded_invoice: str,
        max_fees_msats: int,
        amount_msats: int | None = None,
        timeout_secs: int = 60,
    ) -> OutgoingPayment:
        """Pay a BOLT11 invoice. The returned payment may still be ``PENDING``.

        *max_fees_msats* is required. Around 15 basis points of the amount lets
        almost all payments through. *amount_msats* is only for zero-amount
        invoices.
        """
        self._require_wallet_unlocked()
        variables: dict[str, Any] = {
            "encoded_invoice": encoded_invoice,
            "maximum_fees_msats": max_fees_msats,
            "timeout_secs": timeout_secs,
        }
        if amount_msats is not None:
            variables["amount_msats"] = amount_msats
        payment = await self.execute_raw_query(Query(
            queries.PAY_INVOICE,
            lambda data: parse(OutgoingPayment, _field(data, "pay_invoice", "payment")),
            variables=variables,
            signing_node_id=WALLET_NODE_ID_KEY,
        ))
        if payment is None:
            raise SparkWalletError("Unknown error paying invoice")
        return payment

    async def pay_invoice_and_await_result(
        self,
        encoded_invoice: str,
        max_fees_msats: int,
        amount_msats: int | None = None,
        timeout_secs: int = 60,
    ) -> OutgoingPayment:
        """Pay a BOLT11 invoice and wait for ``SUCCESS``, ``FAILED`` or ``CANCELLED``."""
        payment = await self.pay_invoice(encoded_invoice, max_fees_msats, amount_msats, timeout_secs)
        return await self._await_payment_result(payment, timeout_secs)

    async def send_payment(
        self,
        destination_node_public_key: str,
        amount_msats: int,
        max_fees_msats: int,
        timeout_secs: int = 60,
    ) -> OutgoingPayment:
        """Keysend *amount_msats* to a node without an invoice. May return ``PENDING``."""
        self._require_wallet_unlocked()
        payment = await self.execute_raw_query(Query(
            queries.SEND_PAYMENT,
            lambda data: parse(OutgoingPayment, _field(data, "send_payment", "payment")),
            variables={
                "destination_node_public_key": destination_node_public_key,
                "amount_msats": amount_msats,
                "maximum_fees_msats": max_fees_msats,
                "timeout_secs": timeout_secs,
            },
            signing_node_id=WALLET_NODE_ID_KEY,
        ))
        if payment is None:
            raise SparkWalletError("Unknown error sending payment")
        return payment

    async def send_payment_and_await_result(
        self,
        destination_node_public_key: str,
        amount_msats: int,
        max_fees_msats: int,
        timeout_secs: int = 60,
    ) -> OutgoingPayment:
        payment = await self.send_payment(destination_node_public_key, amount_msats, max_fees_msats, timeout_secs)
        return await self._await_payment_result(payment, timeout_secs)

    # -- fees, funding, withdrawals -----------------------------------------

    async def get_bitcoin_fee_estimate(self) -> FeeEstimate | None:
        return await self.execute_raw_query(Query(
            queries.BITCOIN_FEE_ESTIMATE,
            lambda data: parse(FeeEstimate, _field(data, "bitcoin_fee_estimate")),
            requires_auth=False,
        ))

    async def get_lightning_fee_estimate_for_invoice(self, encoded_payment_request: str, amount_msats: int | None = None) -> CurrencyAmount | None:
        return await self.execute_raw_query(Query(
            queries.LIGHTNING_FEE_ESTIMATE_FOR_INVOICE,
            lambda data: parse(CurrencyAmount, _field(data, "lightning_fee_estimate_for_invoice", "fee_estimate")),
            variables={"encoded_payment_request": encoded_payment_request, "amount_msats": amount_msats},
        ))

    async def get_lightning_fee_estimate_for_node(self, destination_node_public_key: str, amount_msats: int) -> CurrencyAmount | None:
        return await self.execute_raw_query(Query(
            queries.LIGHTNING_FEE_ESTIMATE_FOR_NODE,
            lambda data: parse(CurrencyAmount, _field(data, "lightning_fee_estimate_for_node", "fee_estimate")),
            variables={"destination_node_public_key": destination_node_public_key, "amount_msats": amount_msats},
        ))

    async def create_bitcoin_funding_address(self) -> str | None:
        """Create an L1 address for depositing to the wallet."""
        self._require_wallet_unlocked()
        return await self.execute_raw_query(Query(
            queries.CREATE_BITCOIN_FUNDING_ADDRESS,
            lambda data: _field(data, "create_bitcoin_funding_address", "bitcoin_address"),
            signing_node_id=WALLET_NODE_ID_KEY,
        ))

    async def request_withdrawal(self, amount_sats: int, bitcoin_address: str) -> WithdrawalRequest | None:
        """Withdraw *amount_sats* to an L1 address. Completes asynchronously."""
        self._require_wallet_unlocked()
        return await self.execute_raw_query(Query(
            queries.REQUEST_WITHDRAWAL,
            lambda data: parse(WithdrawalRequest, _field(data, "request_withdrawal", "request")),
            variables={"amount_sats": amount_sats, "bitcoin_address": bitcoin_address},
            signing_node_id=WALLET_NODE_ID_KEY,
        ))

    # -- subscriptions ------------------------------------------------------

    async def listen_to_wallet_status(self) -> AsyncGenerator[WalletStatus, None]:
        """Yield the wallet's status every time it changes."""
        async with contextlib.aclosing(self._requester.subscribe(queries.WALLET_STATUS_SUBSCRIPTION)) as stream:
            async for payload in stream:
                status = _field(payload, "data", "current_wallet", "status")
                if status is not None:
                    yield WalletStatus(status)

    async def listen_to_payment_status(self, payment_id: str) -> AsyncGenerator[OutgoingPayment, None]:
        """Yield the payment every time it changes."""
        stream = self._requester.subscribe(queries.PAYMENT_STATUS_SUBSCRIPTION, {"id": payment_id})
        async with contextlib.aclosing(stream):
            async for payload in stream:
                payment = parse(OutgoingPayment, _field(payload, "data", "entity"))
                if payment is not None:
                    yield payment

    async def subscribe_to_raw_query(self, query: Query[T]) -> AsyncGenerator[T | None, None]:
        """Run a ``subscription`` :class:`Query`, yielding each mapped update."""
        async with contextlib.aclosing(self._requester.subscribe(query.query_payload, query.variables)) as stream:
            async for payload in stream:
                yield query.construct_object(payload.get("data") or {})

    async def _wait_for_wallet_status(self, current: WalletStatus | None, statuses: set[WalletStatus], timeout_secs: float) -> WalletStatus:
        return await await_terminal_state(current, self.listen_to_wallet_status, statuses, timeout_secs, label="wallet status")

    async def _await_payment_result(self, payment: OutgoingPayment, timeout_secs: float) -> OutgoingPayment:
        return await await_terminal_state(
            payment,
            lambda: self.listen_to_payment_status(payment.id),
            _PAYMENT_COMPLETION_STATUSES,
            timeout_secs,
            state_of=lambda p: p.status,
            label=f"payment {payment.id} status",
        )

    # -- raw access ---------------------------------------------------------

    async def execute_raw_query(self, query: Query[T]) -> T | None:
        """Run any :class:`Query`. Mostly for advanced use and internal calls."""
        return await self._requester.execute_query(query)

    async def close(self) -> None:
        """Close the HTTP pool and the subscription socket."""
        await self._requester.close()

    async def __aenter__(self) -> WalletClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
