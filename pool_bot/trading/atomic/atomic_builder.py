from __future__ import annotations

import base64
import logging

from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message, MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction, VersionedTransaction

from pool_bot.common import log_event

from ..errors import QuoteBuildError
from ..types import TxVersion
from .atomic_types import JITO_MAX_BUNDLE_TRANSACTIONS, SignedBundle


def decompile_legacy_message(message: Message) -> list[Instruction]:
    header = message.header
    keys = list(message.account_keys)
    num_signers = header.num_required_signatures
    writable_signers = num_signers - header.num_readonly_signed_accounts
    writable_unsigned_end = len(keys) - header.num_readonly_unsigned_accounts

    def is_writable(index: int) -> bool:
        if index < num_signers:
            return index < writable_signers
        return index < writable_unsigned_end

    instructions: list[Instruction] = []
    for compiled in message.instructions:
        metas = [
            AccountMeta(pubkey=keys[index], is_signer=index < num_signers, is_writable=is_writable(index))
            for index in bytes(compiled.accounts)
        ]
        instructions.append(Instruction(keys[compiled.program_id_index], bytes(compiled.data), metas))
    return instructions


def _encode(tx: Transaction | VersionedTransaction) -> tuple[str, str]:
    if not tx.signatures:
        raise QuoteBuildError("Signed transaction has no signatures.")
    return base64.b64encode(bytes(tx)).decode("ascii"), str(tx.signatures[0])


class BundleBuilder:
    """Signs a batch of unsigned swap transactions into one Jito bundle.

    Every transaction is re-anchored to the same ``recent_blockhash`` so the
    relay can land them together. Legacy transactions carry the tip transfer
    inline. V0 messages keep their instructions and lookup tables untouched
    and the tip goes into one trailing transaction.
    """

    def __init__(self, *, logger: logging.Logger) -> None:
        self._logger = logger

    def _tip_instruction(self, *, payer: Pubkey, tip_account: Pubkey, tip_lamports: int) -> Instruction:
        return transfer(
            TransferParams(
                from_pubkey=payer,
                to_pubkey=tip_account,
                lamports=int(tip_lamports),
            )
        )

    def _sign_legacy(
        self,
        *,
        message: Message,
        signer: Keypair,
        recent_blockhash: Hash,
        tip_instruction: Instruction | None,
    ) -> Transaction:
        payer = signer.pubkey()
        if message.header.num_required_signatures != 1 or message.account_keys[0] != payer:
            raise QuoteBuildError("Swap transaction expects signers other than the trading wallet.")

        instructions = decompile_legacy_message(message)
        if tip_instruction is not None:
            instructions.append(tip_instruction)
        return Transaction.new_signed_with_payer(instructions, payer, [signer], recent_blockhash)

    def _sign_v0(
        self,
        *,
        message: MessageV0,
        signer: Keypair,
        recent_blockhash: Hash,
    ) -> VersionedTransaction:
        if message.header.num_required_signatures != 1 or message.account_keys[0] != signer.pubkey():
            raise QuoteBuildError("Swap transaction expects signers other than the trading wallet.")

        anchored = MessageV0(
            message.header,
            list(message.account_keys),
            recent_blockhash,
            list(message.instructions),
            list(message.address_table_lookups),
        )
        return VersionedTransaction(anchored, [signer])

    def build(
        self,
        *,
        unsigned_transactions: list[bytes],
        signer: Keypair,
        recent_blockhash: Hash,
        tx_version: TxVersion,
        tip_account: Pubkey | None = None,
        tip_lamports: int = 0,
    ) -> SignedBundle:
        if not unsigned_transactions:
            raise QuoteBuildError("Nothing to bundle: no transactions were built.")

        tip_instruction: Instruction | None = None
        if tip_account is not None and tip_lamports > 0:
            tip_instruction = self._tip_instruction(
                payer=signer.pubkey(),
                tip_account=tip_account,
                tip_lamports=tip_lamports,
            )

        signed: list[Transaction | VersionedTransaction] = []
        inline_tip = tx_version == "LEGACY"
        try:
            for raw in unsigned_transactions:
                if tx_version == "V0":
                    versioned = VersionedTransaction.from_bytes(raw)
                    message = versioned.message
                    if isinstance(message, MessageV0):
                        signed.append(
                            self._sign_v0(message=message, signer=signer, recent_blockhash=recent_blockhash)
                        )
                        continue
                    # a legacy message wrapped in the versioned envelope
                    resigned = self._sign_legacy(
                        message=message,
                        signer=signer,
                        recent_blockhash=recent_blockhash,
                        tip_instruction=None,
                    )
                    signed.append(VersionedTransaction.populate(resigned.message, resigned.signatures))
                    continue

                legacy = Transaction.from_bytes(raw)
                signed.append(
                    self._sign_legacy(
                        message=legacy.message,
                        signer=signer,
                        recent_blockhash=recent_blockhash,
                        tip_instruction=tip_instruction,
                    )
                )

            if tip_instruction is not None and not inline_tip:
                tip_message = MessageV0.try_compile(signer.pubkey(), [tip_instruction], [], recent_blockhash)
                signed.append(VersionedTransaction(tip_message, [signer]))
        except QuoteBuildError:
            raise
        except Exception as error:
            raise QuoteBuildError(f"Failed to sign swap transactions: {error}") from error

        if len(signed) > JITO_MAX_BUNDLE_TRANSACTIONS:
            raise QuoteBuildError(
                f"Bundle has {len(signed)} transactions, the relay accepts at most "
                f"{JITO_MAX_BUNDLE_TRANSACTIONS}."
            )

        encoded = [_encode(tx) for tx in signed]
        bundle = SignedBundle(
            transactions=[payload for payload, _ in encoded],
            tx_signatures=[signature for _, signature in encoded],
            recent_blockhash=str(recent_blockhash),
            tx_version=tx_version,
            tip_account=str(tip_account) if tip_instruction is not None else None,
            tip_lamports=int(tip_lamports) if tip_instruction is not None else 0,
        )
        log_event(
            self._logger,
            level="info",
            event="bundle_signed",
            message="Swap transactions signed into a bundle",
            **bundle.to_dict(),
        )
        return bundle
