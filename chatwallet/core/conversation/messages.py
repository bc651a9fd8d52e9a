"""User-facing texts and inline keyboards."""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from .callbacks import Action

MARKDOWN = "Markdown"

GENERIC_ERROR = "Sorry, something went wrong. Please try again later."
STORAGE_ERROR = "⚠️ Wallet storage is temporarily unavailable. Please try again later."
WALLET_NOT_FOUND = "❌ Wallet not found. Please create a wallet first using /start"
WALLET_CREATION_FAILED = "Sorry, there was an error creating your wallet. Please try again later."
INSUFFICIENT_NATIVE = "❌ Insufficient balance. Please deposit more {symbol}."
MAIN_MENU = "Welcome back! What would you like to do?"

INVALID_ACCOUNT = "❌ Invalid account ID format. Please use the format: 0.0.1234\n\n{cancelled}"
INVALID_TOKEN = "❌ Invalid token ID format. Please use the format: 0.0.1234\n\n{cancelled}"
INVALID_AMOUNT = "❌ Invalid amount. Please enter a positive number.\n\n{cancelled}"

WITHDRAW_CANCELLED = "Withdrawal cancelled."
PURCHASE_CANCELLED = "Purchase cancelled."
SALE_CANCELLED = "Sale cancelled."

CANCELLED_NOTICES = {
    "withdraw": "❌ Withdrawal cancelled.",
    "buy": "❌ Purchase cancelled.\n\nReturning to main menu...",
    "sell": "❌ Sale cancelled.\n\nReturning to main menu...",
}

INVALID_CONFIRMATION = "❌ This confirmation is not valid. Please start again from the menu."
ALREADY_PROCESSED = "Already processed"

PREPARE_PURCHASE_FAILED = "❌ Error preparing purchase. Please try again later."
PREPARE_SALE_FAILED = "❌ Error preparing sale. Please try again later."
WITHDRAW_FAILED = "❌ Withdrawal failed. Please try again later."
PURCHASE_FAILED = "❌ Purchase failed. Please try again later.\nMake sure you have enough {symbol} balance."
SALE_FAILED = "❌ Sale failed. Please try again later.\nMake sure you have enough tokens to sell."
NOTHING_TO_SELL = "❌ You don't hold any {symbol} to sell."

ENTER_NATIVE_AMOUNT = "💰 Enter the amount of {symbol} to withdraw:"
ENTER_SPEND_AMOUNT = "🔢 Enter the amount of {symbol} you want to spend:"
CHOOSE_SELL_MODE = "🔢 Click the amount type of tokens you want to sell:"

KEY_DOCUMENT_NAME = "hedera_wallet.json"
KEY_DOCUMENT_CAPTION = "🔐 Here is your wallet information. Store it securely! Download in {minutes} mins"
QR_CAPTION = "📱 Scan this QR code to copy your Account ID"


Keyboard = Dict[str, Any]


def inline_keyboard(rows: List[List[Tuple[str, str]]]) -> Keyboard:
    return {
        "inline_keyboard": [
            [{"text": text, "callback_data": data} for text, data in row]
            for row in rows
        ]
    }


def force_reply() -> Keyboard:
    return {"force_reply": True, "selective": True}


def main_menu_keyboard() -> Keyboard:
    return inline_keyboard([
        [("💰 Deposit", Action.DEPOSIT), ("📤 Withdraw", Action.WITHDRAW)],
        [("🛒 Buy", Action.BUY), ("💵 Sell", Action.SELL)],
    ])


def return_to_menu_keyboard() -> Keyboard:
    return inline_keyboard([[("🔄 Return to Menu", Action.MENU)]])


def download_key_keyboard() -> Keyboard:
    return inline_keyboard([[("📥 Download Private Key", Action.DOWNLOAD_KEY)]])


def sell_mode_keyboard() -> Keyboard:
    return inline_keyboard([[("Sell", Action.SELL_MANUAL), ("Sell All", Action.SELL_ALL)]])


def confirm_keyboard(confirm_data: str, cancel_data: str) -> Keyboard:
    return inline_keyboard([[("✅ Confirm", confirm_data), ("❌ Cancel", cancel_data)]])


def md(value: str) -> str:
    """Escape legacy-Markdown control characters in oracle-supplied text."""
    for char in ("\\", "_", "*", "`", "["):
        value = value.replace(char, "\\" + char)
    return value


def fmt(amount: Decimal, places: int) -> str:
    return f"{amount:.{places}f}"


def wallet_created(account_id: str, private_key: str) -> str:
    return (
        "✅ Your new Hedera wallet has been created!\n\n"
        f"Account ID: `{account_id}`\n\n"
        f"Private Key: `{private_key}`\n\n"
        "⚠️ Please save your private key securely. It will only be shown once!"
    )


def deposit_instructions(account_id: str, balance: Decimal, symbol: str) -> str:
    return (
        f"💰 *Deposit {symbol}*\n\n"
        "Your Hedera Account ID:\n"
        f"`{account_id}`\n\n"
        f"Your Balance: {balance} {symbol}\n\n"
        "Instructions:\n"
        "1. Copy your Account ID above\n"
        f"2. Send {symbol} from your wallet/exchange to this account\n"
        "3. Wait for the transaction to be confirmed\n\n"
        "⚠️ Important:\n"
        "• Transactions are irreversible"
    )


def withdraw_prompt(balance: Decimal, symbol: str) -> str:
    return (
        f"📤 *Withdraw {symbol}*\n\n"
        f"Your current balance: {balance} {symbol}\n\n"
        "Please enter the destination Hedera account ID (e.g., 0.0.1234)"
    )


def buy_prompt(balance: Decimal, symbol: str) -> str:
    return (
        "🪙 *Buy Tokens*\n\n"
        f"Your Balance: {balance} {symbol}\n\n"
        "Please enter the token ID (e.g., 0.0.1234):"
    )


def sell_prompt() -> str:
    return "💰 *Sell Tokens*\n\nPlease enter the token ID (e.g., 0.0.1234):"


def sell_amount_prompt(balance: Decimal, symbol: str) -> str:
    return (
        f"Your current balance: {fmt(balance, 4)} {symbol}\n\n"
        "🔢 Enter the amount of tokens you want to sell: "
    )


def fallback_price_warning(asset_id: str, symbol: str) -> str:
    return f"⚠️ {asset_id} has no listed market price; the quote below uses a placeholder {symbol} price."


def confirm_withdraw(account_id: str, destination: str, amount: Decimal, symbol: str) -> str:
    return (
        "🔍 *Confirm Withdrawal*\n\n"
        f"From: `{account_id}`\n"
        f"To: `{destination}`\n"
        f"Amount: {amount} {symbol}\n\n"
        "Please confirm this transaction:"
    )


def confirm_purchase(token_id: str, tokens_out: Decimal, token_symbol: str, cost: Decimal, symbol: str) -> str:
    return (
        "🔍 *Confirm Purchase*\n\n"
        f"Token ID: `{token_id}`\n"
        f"Amount to buy: {fmt(tokens_out, 4)} {md(token_symbol)}\n"
        f"Cost: {cost} {symbol}\n\n"
        "Please confirm this transaction:"
    )


def confirm_sale(
    token_id: str,
    amount: Decimal,
    token_symbol: str,
    price_in_native: Decimal,
    native_out: Decimal,
    symbol: str,
) -> str:
    return (
        "🔍 *Confirm Sale*\n\n"
        f"Token ID: `{token_id}`\n"
        f"Amount to sell: {amount} {md(token_symbol)}\n"
        f"Price per token: {fmt(price_in_native, 6)} {symbol}\n"
        f"You will receive: {fmt(native_out, 3)} {symbol}\n\n"
        "Please confirm this transaction:"
    )


def withdraw_succeeded(amount: Decimal, destination: str, symbol: str, transaction_id: Optional[str]) -> str:
    return (
        "✅ Withdrawal successful!\n\n"
        f"Amount: {amount} {symbol}\n"
        f"Destination: {destination}\n"
        f"Transaction ID: {transaction_id or 'n/a'}"
    )


def withdraw_rejected(status: str) -> str:
    return f"❌ Withdrawal failed with status: {status}\n\nPlease try again later."


def purchase_succeeded(
    tokens_out: Optional[Decimal],
    token_label: str,
    paid: Decimal,
    symbol: str,
    transaction_id: Optional[str],
) -> str:
    bought = f"~{fmt(tokens_out, 4)} {token_label}" if tokens_out else token_label
    return (
        "✅ Purchase successful!\n\n"
        f"Tokens bought: {bought}\n"
        f"Amount paid: {paid} {symbol}\n"
        f"Transaction ID: {transaction_id or 'n/a'}"
    )


def sale_succeeded(sold: Decimal, token_label: str, transaction_id: Optional[str], places: int = 3) -> str:
    return (
        "✅ Sale successful!\n\n"
        f"Tokens sold: {fmt(sold, places)} {token_label}\n"
        f"Transaction ID: {transaction_id or 'n/a'}"
    )


def insufficient_tokens(required: Decimal, available: Decimal, symbol: str) -> str:
    return (
        "❌ Insufficient token balance!\n\n"
        f"Required: {required} {symbol}\n"
        f"Your balance: {available} {symbol}"
    )
