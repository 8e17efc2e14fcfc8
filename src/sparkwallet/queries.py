"""GraphQL documents sent by :class:`~sparkwallet.client.WalletClient`.

Fields are aliased with the owning type's prefix (``wallet_status: status``)
so responses map directly onto :mod:`sparkwallet.types` via ``parse``.
"""

CURRENCY_AMOUNT_FRAGMENT = """
fragment CurrencyAmountFragment on CurrencyAmount {
    __typename
    currency_amount_original_value: original_value
    currency_amount_original_unit: original_unit
    currency_amount_preferred_currency_unit: preferred_currency_unit
    currency_amount_preferred_currency_value_rounded: preferred_currency_value_rounded
    currency_amount_preferred_currency_value_approx: preferred_currency_value_approx
}
"""

BALANCES_FRAGMENT = """
fragment BalancesFragment on Balances {
    __typename
    balances_owned_balance: owned_balance { ...CurrencyAmountFragment }
    balances_available_to_send_balance: available_to_send_balance { ...CurrencyAmountFragment }
    balances_available_to_withdraw_balance: available_to_withdraw_balance { ...CurrencyAmountFragment }
}
"""

WALLET_FRAGMENT = """
fragment WalletFragment on Wallet {
    __typename
    wallet_id: id
    wallet_created_at: created_at
    wallet_updated_at: updated_at
    wallet_third_party_identifier: third_party_identifier
    wallet_status: status
    wallet_balances: balances { ...BalancesFragment }
}
"""

INVOICE_DATA_FRAGMENT = """
fragment InvoiceDataFragment on InvoiceData {
    __typename
    invoice_data_encoded_payment_request: encoded_payment_request
    invoice_data_bitcoin_network: bitcoin_network
    invoice_data_payment_hash: payment_hash
    invoice_data_amount: amount { ...CurrencyAmountFragment }
    invoice_data_created_at: created_at
    invoice_data_expires_at: expires_at
    invoice_data_memo: memo
}
"""

OUTGOING_PAYMENT_FRAGMENT = """
fragment OutgoingPaymentFragment on OutgoingPayment {
    __typename
    outgoing_payment_id: id
    outgoing_payment_created_at: created_at
    outgoing_payment_updated_at: updated_at
    outgoing_payment_status: status
    outgoing_payment_resolved_at: resolved_at
    outgoing_payment_amount: amount { ...CurrencyAmountFragment }
    outgoing_payment_transaction_hash: transaction_hash
    outgoing_payment_fees: fees { ...CurrencyAmountFragment }
    outgoing_payment_payment_request_data: payment_request_data {
        ... on InvoiceData { ...InvoiceDataFragment }
    }
    outgoing_payment_failure_reason: failure_reason
    outgoing_payment_failure_message: failure_message {
        __typename
        rich_text_text: text
    }
}
"""

TRANSACTION_FRAGMENT = """
fragment TransactionFragment on Transaction {
    __typename
    transaction_id: id
    transaction_created_at: created_at
    transaction_updated_at: updated_at
    transaction_status: status
    transaction_resolved_at: resolved_at
    transaction_amount: amount { ...CurrencyAmountFragment }
    transaction_transaction_hash: transaction_hash
}
"""

PAYMENT_REQUEST_FRAGMENT = """
fragment PaymentRequestFragment on PaymentRequest {
    __typename
    payment_request_id: id
    payment_request_created_at: created_at
    payment_request_updated_at: updated_at
    payment_request_status: status
    payment_request_data: data {
        ... on InvoiceData { ...InvoiceDataFragment }
    }
}
"""

WITHDRAWAL_REQUEST_FRAGMENT = """
fragment WithdrawalRequestFragment on WithdrawalRequest {
    __typename
    withdrawal_request_id: id
    withdrawal_request_created_at: created_at
    withdrawal_request_updated_at: updated_at
    withdrawal_request_amount: amount { ...CurrencyAmountFragment }
    withdrawal_request_estimated_amount: estimated_amount { ...CurrencyAmountFragment }
    withdrawal_request_bitcoin_address: bitcoin_address
    withdrawal_request_status: status
    withdrawal_request_completed_at: completed_at
}
"""

FEE_ESTIMATE_FRAGMENT = """
fragment FeeEstimateFragment on FeeEstimate {
    __typename
    fee_estimate_fee_fast: fee_fast { ...CurrencyAmountFragment }
    fee_estimate_fee_min: fee_min { ...CurrencyAmountFragment }
}
"""

_WALLET = WALLET_FRAGMENT + BALANCES_FRAGMENT + CURRENCY_AMOUNT_FRAGMENT
_PAYMENT = OUTGOING_PAYMENT_FRAGMENT + INVOICE_DATA_FRAGMENT + CURRENCY_AMOUNT_FRAGMENT


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

LOGIN_WITH_JWT = """
mutation LoginWithJWT($account_id: ID!, $jwt: String!) {
    login_with_jwt(input: { account_id: $account_id, jwt: $jwt }) {
        login_with_jwt_output_access_token: access_token
        login_with_jwt_output_valid_until: valid_until
        login_with_jwt_output_wallet: wallet { ...WalletFragment }
    }
}
""" + _WALLET


# ---------------------------------------------------------------------------
# Wallet lifecycle
# ---------------------------------------------------------------------------

CURRENT_WALLET = """
query CurrentWallet {
    current_wallet { ...WalletFragment }
}
""" + _WALLET

DEPLOY_WALLET = """
mutation DeployWallet {
    deploy_wallet { wallet { ...WalletFragment } }
}
""" + _WALLET

INITIALIZE_WALLET = """
mutation InitializeWallet($key_type: KeyType!, $signing_public_key: String!) {
    initialize_wallet(input: { signing_public_key: { type: $key_type, public_key: $signing_public_key } }) {
        wallet { ...WalletFragment }
    }
}
""" + _WALLET

TERMINATE_WALLET = """
mutation TerminateWallet {
    terminate_wallet { wallet { ...WalletFragment } }
}
""" + _WALLET

WALLET_DASHBOARD = """
query WalletDashboard($numTransactions: Int!, $numPaymentRequests: Int!) {
    current_wallet {
        id
        status
        balances { ...BalancesFragment }
        recent_transactions: transactions(first: $numTransactions) {
            entities { ...TransactionFragment }
        }
        payment_requests: payment_requests(first: $numPaymentRequests) {
            entities { ...PaymentRequestFragment }
        }
    }
}
""" + BALANCES_FRAGMENT + TRANSACTION_FRAGMENT + PAYMENT_REQUEST_FRAGMENT + INVOICE_DATA_FRAGMENT + CURRENCY_AMOUNT_FRAGMENT

RECOVER_WALLET_SIGNING_KEY = """
query RecoverWalletSigningKey {
    current_wallet {
        encrypted_signing_private_key {
            secret_encrypted_value: encrypted_value
            secret_cipher: cipher
        }
    }
}
"""


# ---------------------------------------------------------------------------
# Invoices and payments
# ---------------------------------------------------------------------------

CREATE_INVOICE = """
mutation CreateInvoice($amountMsats: Long!, $memo: String, $type: InvoiceType) {
    create_invoice(input: { amount_msats: $amountMsats, memo: $memo, invoice_type: $type }) {
        invoice { data { ...InvoiceDataFragment } }
    }
}
""" + INVOICE_DATA_FRAGMENT + CURRENCY_AMOUNT_FRAGMENT

DECODE_INVOICE = """
query DecodeInvoice($encoded_payment_request: String!) {
    decoded_payment_request(encoded_payment_request: $encoded_payment_request) {
        ... on InvoiceData { ...InvoiceDataFragment }
    }
}
""" + INVOICE_DATA_FRAGMENT + CURRENCY_AMOUNT_FRAGMENT

PAY_INVOICE = """
mutation PayInvoice(
    $encoded_invoice: String!,
    $maximum_fees_msats: Long!,
    $timeout_secs: Int!,
    $amount_msats: Long
) {
    pay_invoice(input: {
        encoded_invoice: $encoded_invoice,
        maximum_fees_msats: $maximum_fees_msats,
        timeout_secs: $timeout_secs,
        amount_msats: $amount_msats
    }) {
        payment { ...OutgoingPaymentFragment }
    }
}
""" + _PAYMENT

SEND_PAYMENT = """
mutation SendPayment(
    $destination_node_public_key: String!,
    $amount_msats: Long!,
    $maximum_fees_msats: Long!,
    $timeout_secs: Int!
) {
    send_payment(input: {
        destination_node_public_key: $destination_node_public_key,
        amount_msats: $amount_msats,
        maximum_fees_msats: $maximum_fees_msats,
        timeout_secs: $timeout_secs
    }) {
        payment { ...OutgoingPaymentFragment }
    }
}
""" + _PAYMENT


# ---------------------------------------------------------------------------
# Fees, funding and withdrawals
# ---------------------------------------------------------------------------

BITCOIN_FEE_ESTIMATE = """
query BitcoinFeeEstimate {
    bitcoin_fee_estimate { ...FeeEstimateFragment }
}
""" + FEE_ESTIMATE_FRAGMENT + CURRENCY_AMOUNT_FRAGMENT

LIGHTNING_FEE_ESTIMATE_FOR_INVOICE = """
query LightningFeeEstimateForInvoice($encoded_payment_request: String!, $amount_msats: Long) {
    lightning_fee_estimate_for_invoice(input: {
        encoded_payment_request: $encoded_payment_request,
        amount_msats: $amount_msats
    }) {
        fee_estimate { ...CurrencyAmountFragment }
    }
}
""" + CURRENCY_AMOUNT_FRAGMENT

LIGHTNING_FEE_ESTIMATE_FOR_NODE = """
query LightningFeeEstimateForNode($destination_node_public_key: String!, $amount_msats: Long!) {
    lightning_fee_estimate_for_node(input: {
        destination_node_public_key: $destination_node_public_key,
        amount_msats: $amount_msats
    }) {
        fee_estimate { ...CurrencyAmountFragment }
    }
}
""" + CURRENCY_AMOUNT_FRAGMENT

CREATE_BITCOIN_FUNDING_ADDRESS = """
mutation CreateBitcoinFundingAddress {
    create_bitcoin_funding_address { bitcoin_address }
}
"""

REQUEST_WITHDRAWAL = """
mutation RequestWithdrawal($amount_sats: Long!, $bitcoin_address: String!) {
    request_withdrawal(input: { amount_sats: $amount_sats, bitcoin_address: $bitcoin_address }) {
        request { ...WithdrawalRequestFragment }
    }
}
""" + WITHDRAWAL_REQUEST_FRAGMENT + CURRENCY_AMOUNT_FRAGMENT


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

WALLET_STATUS_SUBSCRIPTION = """
subscription WalletStatusSubscription {
    current_wallet { status }
}
"""

PAYMENT_STATUS_SUBSCRIPTION = """
subscription PaymentStatusSubscription($id: ID!) {
    entity(id: $id) {
        ... on OutgoingPayment { ...OutgoingPaymentFragment }
    }
}
""" + _PAYMENT
