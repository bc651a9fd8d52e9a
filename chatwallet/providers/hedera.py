"""
Hedera ledger provider.

Signing and submission go through ``hiero_sdk_python``; balance reads are
delegated to the mirror node. Every submission runs on a dedicated SDK
client whose operator is the acting signer, so concurrent users never share
a client whose operator is being swapped underneath them.
"""

import asyncio
import logging
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Optional

from hiero_sdk_python import (
    AccountCreateTransaction,
    AccountId,
    Client,
    ContractExecuteTransaction,
    ContractFunctionParameters,
    ContractId,
    Hbar,
    Network,
    PrivateKey,
    ResponseCode,
    TokenAssociateTransaction,
    TokenId,
    TransferTransaction,
)

from ..config import settings
from ..core.errors import LedgerCallFailed, TransactionFailed
from ..core.execution.models import LedgerReceipt, StepKind, TransactionStep
from ..core.wallet.models import Credentials, NewAccount
from .base import LedgerProvider
from .mirror_node import MirrorNodeProvider, TINYBARS_PER_HBAR


logger = logging.getLogger(__name__)

_PARAM_ADDERS = {
    "uint256": "add_uint256",
    "address": "add_address",
    "address[]": "add_address_array",
}


def _to_tinybars(amount: Decimal) -> int:
    return int((amount * TINYBARS_PER_HBAR).to_integral_value(rounding=ROUND_FLOOR))


def _status_name(status: Any) -> str:
    try:
        return ResponseCode(status).name
    except ValueError:
        return str(status)


class HederaLedgerProvider(LedgerProvider):
    """Hedera network access for wallet creation and user-signed transactions."""

    name = "hedera"
    timeout_s = 60

    def __init__(
        self,
        network: Optional[str] = None,
        operator_id: Optional[str] = None,
        operator_key: Optional[str] = None,
        mirror: Optional[MirrorNodeProvider] = None,
    ):
        self.network = network or settings.hedera_network
        self.operator_id = operator_id or settings.hedera_operator_id
        self.operator_key = operator_key or settings.hedera_operator_key
        self.mirror = mirror or MirrorNodeProvider()

    async def ready(self) -> bool:
        return bool(self.operator_id and self.operator_key)

    async def close(self) -> None:
        await self.mirror.close()

    def _client_for(self, account_id: str, private_key: str) -> Client:
        client = Client(Network(network=self.network))
        client.set_operator(AccountId.from_string(account_id), PrivateKey.from_string(private_key))
        return client

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_native_balance(self, account_id: str) -> Decimal:
        return await self.mirror.get_native_balance(account_id)

    async def get_token_balance(self, account_id: str, token_id: str) -> int:
        return await self.mirror.get_token_balance(account_id, token_id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def _create_account_sync(self) -> NewAccount:
        client = self._client_for(self.operator_id, self.operator_key)
        try:
            key = PrivateKey.generate_ed25519()
            receipt = (
                AccountCreateTransaction()
                .set_key(key.public_key())
                .set_initial_balance(Hbar.from_tinybars(_to_tinybars(settings.new_account_initial_balance)))
                .execute(client)
            )
            status = _status_name(receipt.status)
            if status != "SUCCESS" or receipt.account_id is None:
                raise TransactionFailed(status, operation="create_account")
            return NewAccount(
                account_id=str(receipt.account_id),
                private_key=key.to_string_der(),
                transaction_id=str(receipt.transaction_id) if receipt.transaction_id else None,
            )
        finally:
            client.close()

    async def create_account(self) -> NewAccount:
        if not await self.ready():
            raise LedgerCallFailed("Operator credentials are not configured", operation="create_account")
        try:
            account = await asyncio.to_thread(self._create_account_sync)
        except TransactionFailed:
            raise
        except Exception as e:  # noqa: BLE001
            raise LedgerCallFailed(f"Account creation failed: {e}", operation="create_account") from e
        logger.info(f"Created account {account.account_id}")
        return account

    def _build(self, step: TransactionStep, signer: Credentials) -> Any:
        if step.kind == StepKind.TRANSFER:
            amount = step.amount_base_units or 0
            tx = (
                TransferTransaction()
                .add_hbar_transfer(AccountId.from_string(signer.account_id), -amount)
                .add_hbar_transfer(AccountId.from_string(step.target), amount)
            )
            if step.memo:
                tx.set_transaction_memo(step.memo)
            return tx

        if step.kind == StepKind.ASSOCIATE:
            return (
                TokenAssociateTransaction()
                .set_account_id(AccountId.from_string(signer.account_id))
                .add_token_id(TokenId.from_string(step.target))
            )

        params = ContractFunctionParameters()
        for param in step.params:
            adder = _PARAM_ADDERS.get(param.abi_type)
            if adder is None:
                raise ValueError(f"Unsupported ABI type {param.abi_type}")
            getattr(params, adder)(param.value)

        tx = (
            ContractExecuteTransaction()
            .set_contract_id(ContractId.from_string(step.target))
            .set_gas(step.gas_limit or settings.swap_gas_limit)
            .set_function(step.function, params)
        )
        if step.payable_amount:
            tx.set_payable_amount(Hbar.from_tinybars(step.payable_amount))
        return tx

    def _submit_sync(self, step: TransactionStep, signer: Credentials) -> LedgerReceipt:
        client = self._client_for(signer.account_id, signer.private_key)
        try:
            tx = self._build(step, signer)
            tx.freeze_with(client)
            tx.sign(PrivateKey.from_string(signer.private_key))
            receipt = tx.execute(client)
            return LedgerReceipt(
                status=_status_name(receipt.status),
                transaction_id=str(receipt.transaction_id) if receipt.transaction_id else None,
            )
        finally:
            client.close()

    async def submit(self, step: TransactionStep, signer: Credentials) -> LedgerReceipt:
        try:
            return await asyncio.to_thread(self._submit_sync, step, signer)
        except Exception as e:  # noqa: BLE001
            raise LedgerCallFailed(f"{step.label} submission failed: {e}", operation=step.label) from e
