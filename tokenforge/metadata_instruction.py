# metadata_instruction.py (Metaplex CreateMetadataAccountV3, described with borsh layouts)
#
# Instruction data:
#   u8                         discriminator (33)
#   DataV2                     name, symbol, uri (u32-prefixed UTF-8), u16 royalty,
#                              Option<Vec<Creator>>, Option<Collection>, Option<Uses>
#   bool                       is_mutable
#   Option<CollectionDetails>

from typing import Optional

from borsh_construct import Bool, CStruct, Enum, Option, String, U8, U16, U64, Vec
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYS_PROGRAM_ID
from solders.sysvar import RENT

METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")
METADATA_SEED = b"metadata"
CREATE_METADATA_ACCOUNT_V3 = 33

CreatorLayout = CStruct(
    "address" / U8[32],
    "verified" / Bool,
    "share" / U8,
)
CollectionLayout = CStruct(
    "verified" / Bool,
    "key" / U8[32],
)
UseMethodLayout = Enum("Burn", "Multiple", "Single", enum_name="UseMethod")
UsesLayout = CStruct(
    "use_method" / UseMethodLayout,
    "remaining" / U64,
    "total" / U64,
)
CollectionDetailsLayout = Enum("V1" / CStruct("size" / U64), enum_name="CollectionDetails")

DataV2Layout = CStruct(
    "name" / String,
    "symbol" / String,
    "uri" / String,
    "seller_fee_basis_points" / U16,
    "creators" / Option(Vec(CreatorLayout)),
    "collection" / Option(CollectionLayout),
    "uses" / Option(UsesLayout),
)
CreateMetadataAccountV3Layout = CStruct(
    "instruction" / U8,
    "data" / DataV2Layout,
    "is_mutable" / Bool,
    "collection_details" / Option(CollectionDetailsLayout),
)


def metadata_pda(mint: Pubkey) -> Pubkey:
    return Pubkey.find_program_address(
        [METADATA_SEED, bytes(METADATA_PROGRAM_ID), bytes(mint)], METADATA_PROGRAM_ID
    )[0]


def encode_create_metadata_v3(name: str, symbol: str, uri: str, is_mutable: bool) -> bytes:
    return CreateMetadataAccountV3Layout.build(
        {
            "instruction": CREATE_METADATA_ACCOUNT_V3,
            "data": {
                "name": name,
                "symbol": symbol,
                "uri": uri,
                "seller_fee_basis_points": 0,
                "creators": None,
                "collection": None,
                "uses": None,
            },
            "is_mutable": is_mutable,
            "collection_details": None,
        }
    )


def decode_create_metadata_v3(data: bytes):
    return CreateMetadataAccountV3Layout.parse(data)


def create_metadata_v3(
    mint: Pubkey,
    mint_authority: Pubkey,
    payer: Pubkey,
    update_authority: Optional[Pubkey],
    name: str,
    symbol: str,
    uri: str,
    is_mutable: bool,
) -> Instruction:
    """Create the metadata PDA for ``mint`` with zero royalty and no creators."""
    update_authority = update_authority or mint_authority
    accounts = [
        AccountMeta(pubkey=metadata_pda(mint), is_signer=False, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=mint_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(
            pubkey=update_authority,
            is_signer=update_authority in (payer, mint_authority),
            is_writable=False,
        ),
        AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=RENT, is_signer=False, is_writable=False),
    ]
    data = encode_create_metadata_v3(name, symbol, uri, is_mutable)
    return Instruction(METADATA_PROGRAM_ID, data, accounts)
