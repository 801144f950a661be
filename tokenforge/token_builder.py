# token_builder.py (assembles the unsigned token-creation transaction)

import base64
import logging
from typing import List

from solders.instruction import Instruction
from solders.message import Message
from solders.system_program import CreateAccountParams, create_account
from solders.transaction import Transaction
from spl.token.constants import MINT_LEN, TOKEN_PROGRAM_ID
from spl.token.instructions import (
    AuthorityType,
    InitializeMintParams,
    MintToParams,
    SetAuthorityParams,
    create_associated_token_account,
    get_associated_token_address,
    initialize_mint,
    mint_to,
    set_authority,
)

from .descriptor import AuthoritySet, TokenDescriptor, parse_address, short, validate_metadata_uri
from .metadata_instruction import create_metadata_v3

logger = logging.getLogger(__name__)


class TransactionBuilder:
    """Builds the create-token transaction; reads from the ledger, never writes.

    Instruction order (each step depends on the previous one):

    1. create the mint account, rent-exempt, owned by the token program
    2. initialize the mint (decimals, mint and freeze authority)
    3. create the recipient's associated token account
    4. mint ``supply * 10**decimals`` base units into it
    5. create the Metaplex metadata account
    6. revoke the mint authority, only when requested
    """

    def __init__(self, ledger):
        self.ledger = ledger

    def build_instructions(self, descriptor: TokenDescriptor, metadata_uri: str, rent_lamports=None) -> List[Instruction]:
        metadata_uri = validate_metadata_uri(metadata_uri)
        recipient = parse_address(descriptor.recipient_address, "recipientAddress")
        mint = parse_address(descriptor.mint_address, "mintAddress")
        authorities = AuthoritySet.resolve(descriptor.authority_options, recipient)

        if rent_lamports is None:
            rent_lamports = self.ledger.minimum_balance(MINT_LEN)
        associated_account = get_associated_token_address(recipient, mint)

        instructions = [
            create_account(
                CreateAccountParams(
                    from_pubkey=recipient,
                    to_pubkey=mint,
                    lamports=rent_lamports,
                    space=MINT_LEN,
                    owner=TOKEN_PROGRAM_ID,
                )
            ),
            initialize_mint(
                InitializeMintParams(
                    decimals=descriptor.decimals,
                    program_id=TOKEN_PROGRAM_ID,
                    mint=mint,
                    mint_authority=authorities.initial_mint_authority,
                    freeze_authority=authorities.freeze_authority,
                )
            ),
            create_associated_token_account(recipient, recipient, mint),
            mint_to(
                MintToParams(
                    program_id=TOKEN_PROGRAM_ID,
                    mint=mint,
                    dest=associated_account,
                    mint_authority=authorities.initial_mint_authority,
                    amount=descriptor.base_units,
                )
            ),
            create_metadata_v3(
                mint=mint,
                mint_authority=authorities.initial_mint_authority,
                payer=recipient,
                update_authority=authorities.update_authority,
                name=descriptor.name,
                symbol=descriptor.symbol,
                uri=metadata_uri,
                is_mutable=authorities.is_mutable,
            ),
        ]

        if authorities.mint_authority is None:
            instructions.append(
                set_authority(
                    SetAuthorityParams(
                        program_id=TOKEN_PROGRAM_ID,
                        account=mint,
                        authority=AuthorityType.MINT_TOKENS,
                        current_authority=authorities.initial_mint_authority,
                        new_authority=None,
                    )
                )
            )

        logger.info(
            f"Built {len(instructions)} instructions for {descriptor.symbol} mint={short(mint)} "
            f"recipient={short(recipient)} mint_authority="
            f"{'REVOKED' if authorities.mint_authority is None else 'RETAINED'} freeze_authority="
            f"{'RETAINED' if authorities.freeze_authority else 'NONE'} update_authority="
            f"{'RETAINED' if authorities.is_mutable else 'IMMUTABLE'}"
        )
        return instructions

    def build_transaction(self, descriptor: TokenDescriptor, metadata_uri: str) -> Transaction:
        instructions = self.build_instructions(descriptor, metadata_uri)
        fee_payer = parse_address(descriptor.recipient_address, "recipientAddress")
        blockhash = self.ledger.latest_blockhash().blockhash
        message = Message.new_with_blockhash(instructions, fee_payer, blockhash)
        return Transaction.new_unsigned(message)

    def build(self, descriptor: TokenDescriptor, metadata_uri: str) -> str:
        """Serialized, unsigned, base64-encoded transaction ready for a wallet."""
        transaction = self.build_transaction(descriptor, metadata_uri)
        return base64.b64encode(bytes(transaction)).decode("ascii")
