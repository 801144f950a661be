# descriptor.py (token request parsing and authority resolution; never touches the network)

import base64
import binascii
import re
from dataclasses import dataclass, field
from typing import Optional

import base58
from solders.pubkey import Pubkey

from .errors import InvalidAddressError, ValidationError

MAX_NAME_BYTES = 32
MAX_SYMBOL_BYTES = 10
MAX_URI_BYTES = 200
MAX_DECIMALS = 9
U64_MAX = 2 ** 64 - 1

DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(;[\w=-]+)*;base64,", re.IGNORECASE)

IMAGE_SIGNATURES = [
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
]

SOCIAL_FIELDS = ("website", "twitter", "telegram", "discord", "github")


def short(value, length=8) -> str:
    """Shortened address or signature for log lines."""
    return str(value)[:length] + "..."


def parse_address(value, field_name) -> Pubkey:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Missing required field: {field_name}")
    if not isinstance(value, str):
        raise InvalidAddressError(field_name, value)
    try:
        raw = base58.b58decode(value.strip())
    except ValueError:
        raise InvalidAddressError(field_name, value)
    if len(raw) != 32:
        raise InvalidAddressError(field_name, value)
    return Pubkey.from_bytes(raw)


def parse_optional_address(value, field_name) -> Optional[Pubkey]:
    if value is None or value == "":
        return None
    return parse_address(value, field_name)


def validate_name_symbol(name, symbol):
    """Trim name and symbol, upper-case the symbol, enforce byte limits."""
    if not isinstance(name, str) or not name.strip() or not isinstance(symbol, str) or not symbol.strip():
        raise ValidationError("Missing required fields: name and symbol")
    name = name.strip()
    symbol = symbol.strip().upper()
    if len(name.encode("utf-8")) > MAX_NAME_BYTES:
        raise ValidationError(f"Name too long (max {MAX_NAME_BYTES} bytes)")
    if len(symbol.encode("utf-8")) > MAX_SYMBOL_BYTES:
        raise ValidationError(f"Symbol too long (max {MAX_SYMBOL_BYTES} bytes)")
    return name, symbol


def validate_metadata_uri(uri) -> str:
    if not isinstance(uri, str) or not uri.strip():
        raise ValidationError("Missing required field: metadataURI")
    uri = uri.strip()
    # the metadata program rejects longer URIs only after the wallet has signed
    if len(uri.encode("utf-8")) > MAX_URI_BYTES:
        raise ValidationError(f"metadataURI too long (max {MAX_URI_BYTES} bytes)")
    return uri


def _as_int(value, field_name):
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"{field_name} must be an integer")


def parse_decimals(value) -> int:
    if value is None or value == "":
        raise ValidationError("Missing required field: decimals")
    decimals = _as_int(value, "decimals")
    if not 0 <= decimals <= MAX_DECIMALS:
        raise ValidationError(f"decimals must be between 0 and {MAX_DECIMALS}")
    return decimals


def parse_supply(value, decimals) -> int:
    if value is None or value == "":
        raise ValidationError("Missing required field: supply")
    supply = _as_int(value, "supply")
    if supply <= 0:
        raise ValidationError("supply must be a positive integer")
    if supply * 10 ** decimals > U64_MAX:
        raise ValidationError(f"supply of {supply} with {decimals} decimals does not fit in a u64 amount")
    return supply


def decode_image(image_base64):
    """Return (raw bytes, mime type) for a base64 image, with or without a data-URI prefix."""
    mime = None
    match = DATA_URI_RE.match(image_base64)
    if match:
        mime = match.group("mime")
        image_base64 = image_base64[match.end():]
    try:
        data = base64.b64decode("".join(image_base64.split()), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("imageBase64 is not valid base64 data")
    if not data:
        raise ValidationError("imageBase64 is empty")
    return data, (mime or sniff_image_type(data)).lower()


def sniff_image_type(data: bytes) -> str:
    for signature, mime in IMAGE_SIGNATURES:
        if data.startswith(signature):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/png"


@dataclass
class Creator:
    name: Optional[str] = None
    address: Optional[str] = None


@dataclass
class SocialLinks:
    website: Optional[str] = None
    twitter: Optional[str] = None
    telegram: Optional[str] = None
    discord: Optional[str] = None
    github: Optional[str] = None

    def items(self):
        for name in SOCIAL_FIELDS:
            value = getattr(self, name)
            if value:
                yield name, value

    def external_url(self) -> Optional[str]:
        return self.website or self.twitter or self.telegram or self.discord or None


@dataclass
class AuthorityOptions:
    revoke_mint_authority: bool = False
    freeze_authority: bool = False
    revoke_update_authority: bool = False
    mint_authority_override: Optional[str] = None
    freeze_authority_override: Optional[str] = None
    update_authority_override: Optional[str] = None

    @classmethod
    def from_dict(cls, data):
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValidationError("authorityOptions must be an object")

        # freeze_authority is the keep flag, or the freeze authority address itself
        freeze = data.get("freeze_authority", False)
        freeze_address = data.get("freeze_authority_address") or None
        if isinstance(freeze, str):
            if freeze_address and freeze.strip() != freeze_address:
                raise ValidationError("freeze_authority and freeze_authority_address disagree")
            freeze_address = freeze.strip() or freeze_address
            freeze = freeze_address is not None
        elif freeze is not None and not isinstance(freeze, bool):
            raise ValidationError("freeze_authority must be a boolean or an address")

        return cls(
            revoke_mint_authority=bool(data.get("revoke_mint_authority", False)),
            freeze_authority=bool(freeze),
            revoke_update_authority=bool(data.get("revoke_update_authority", False)),
            mint_authority_override=data.get("mint_authority") or None,
            freeze_authority_override=freeze_address,
            update_authority_override=data.get("update_authority") or None,
        )


@dataclass
class AuthoritySet:
    # the mint is always initialized with a non-null authority
    initial_mint_authority: Pubkey
    mint_authority: Optional[Pubkey]
    freeze_authority: Optional[Pubkey]
    update_authority: Optional[Pubkey]
    is_mutable: bool

    @classmethod
    def resolve(cls, options: AuthorityOptions, recipient: Pubkey) -> "AuthoritySet":
        initial = parse_optional_address(options.mint_authority_override, "mint_authority") or recipient

        freeze = parse_optional_address(options.freeze_authority_override, "freeze_authority_address")
        if freeze is None and options.freeze_authority:
            freeze = recipient

        update = None
        if not options.revoke_update_authority:
            update = parse_optional_address(options.update_authority_override, "update_authority") or recipient

        return cls(
            initial_mint_authority=initial,
            mint_authority=None if options.revoke_mint_authority else initial,
            freeze_authority=freeze,
            update_authority=update,
            is_mutable=not options.revoke_update_authority,
        )


@dataclass
class TokenDescriptor:
    name: str
    symbol: str
    description: str = ""
    decimals: int = 9
    supply: int = 0
    image_bytes: Optional[bytes] = None
    image_type: Optional[str] = None
    recipient_address: Optional[str] = None
    mint_address: Optional[str] = None
    authority_options: AuthorityOptions = field(default_factory=AuthorityOptions)
    creator: Creator = field(default_factory=Creator)
    social: SocialLinks = field(default_factory=SocialLinks)

    @property
    def base_units(self) -> int:
        return self.supply * 10 ** self.decimals


def _social_from_json(data):
    social = data.get("social") or {}
    if not isinstance(social, dict):
        raise ValidationError("social must be an object")
    values = {}
    for name in SOCIAL_FIELDS:
        value = social.get(name) or data.get(name)
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{name} must be a string")
        values[name] = value.strip() if value else None
    return SocialLinks(**values)


def _creator_from_json(data):
    creator = data.get("creator") or {}
    if not isinstance(creator, dict):
        raise ValidationError("creator must be an object")
    address = creator.get("address") or None
    if address:
        parse_address(address, "creator.address")
    return Creator(name=creator.get("name") or None, address=address)


def metadata_descriptor_from_json(data) -> TokenDescriptor:
    """Descriptor for the publish step: name, symbol and the off-chain fields."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    name, symbol = validate_name_symbol(data.get("name"), data.get("symbol"))
    description = data.get("description") or ""
    if not isinstance(description, str):
        raise ValidationError("description must be a string")

    image_bytes = image_type = None
    image_base64 = data.get("imageBase64")
    if image_base64:
        if not isinstance(image_base64, str):
            raise ValidationError("imageBase64 must be a string")
        image_bytes, image_type = decode_image(image_base64)

    return TokenDescriptor(
        name=name,
        symbol=symbol,
        description=description.strip(),
        image_bytes=image_bytes,
        image_type=image_type,
        creator=_creator_from_json(data),
        social=_social_from_json(data),
    )


def token_descriptor_from_json(data, with_metadata_fields=False) -> TokenDescriptor:
    """Descriptor for the build step; also parses the publish fields when asked."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    if with_metadata_fields:
        descriptor = metadata_descriptor_from_json(data)
    else:
        name, symbol = validate_name_symbol(data.get("name"), data.get("symbol"))
        descriptor = TokenDescriptor(name=name, symbol=symbol)

    descriptor.decimals = parse_decimals(data.get("decimals"))
    descriptor.supply = parse_supply(data.get("supply"), descriptor.decimals)

    recipient = data.get("recipientAddress") or data.get("recipient")
    mint = data.get("mintAddress")
    parse_address(recipient, "recipientAddress")
    parse_address(mint, "mintAddress")
    descriptor.recipient_address = recipient.strip()
    descriptor.mint_address = mint.strip()

    descriptor.authority_options = AuthorityOptions.from_dict(
        data.get("authorityOptions", data.get("options"))
    )
    # overrides are parsed here too so bad addresses fail before any I/O
    AuthoritySet.resolve(descriptor.authority_options, parse_address(recipient, "recipientAddress"))
    return descriptor
