import base64

import pytest
from solders.pubkey import Pubkey

from tokenforge.descriptor import (
    MAX_URI_BYTES,
    U64_MAX,
    AuthorityOptions,
    AuthoritySet,
    decode_image,
    metadata_descriptor_from_json,
    parse_address,
    parse_supply,
    token_descriptor_from_json,
    validate_metadata_uri,
    validate_name_symbol,
)
from tokenforge.errors import InvalidAddressError, ValidationError

from conftest import make_address

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def build_request(**overrides):
    data = {
        "name": "Pepe Coin",
        "symbol": "pepe",
        "decimals": 9,
        "supply": 1_000_000,
        "recipientAddress": make_address(),
        "mintAddress": make_address(),
    }
    data.update(overrides)
    return data


class TestNameAndSymbol:
    def test_trims_and_uppercases(self):
        assert validate_name_symbol("  Pepe Coin ", " pepe ") == ("Pepe Coin", "PEPE")

    @pytest.mark.parametrize("name,symbol", [(None, "PEPE"), ("Pepe", None), ("", "PEPE"), ("Pepe", "   ")])
    def test_missing(self, name, symbol):
        with pytest.raises(ValidationError):
            validate_name_symbol(name, symbol)

    def test_limits_are_in_bytes(self):
        validate_name_symbol("x" * 32, "y" * 10)
        with pytest.raises(ValidationError, match="Name too long"):
            validate_name_symbol("x" * 33, "PEPE")
        with pytest.raises(ValidationError, match="Symbol too long"):
            validate_name_symbol("Pepe", "Y" * 11)
        # 11 characters but 33 bytes
        with pytest.raises(ValidationError, match="Name too long"):
            validate_name_symbol("€" * 11, "PEPE")


class TestAddresses:
    def test_valid_address(self):
        key = Pubkey.new_unique()
        assert parse_address(str(key), "recipientAddress") == key

    @pytest.mark.parametrize("value", ["not-an-address!", "abc", "0OIl" * 11, 12345])
    def test_invalid_address(self, value):
        with pytest.raises(InvalidAddressError):
            parse_address(value, "recipientAddress")

    def test_missing_address_is_validation_error(self):
        with pytest.raises(ValidationError, match="recipientAddress"):
            parse_address("", "recipientAddress")


class TestSupply:
    def test_supply_must_fit_u64(self):
        assert parse_supply(18_000_000_000, 9) == 18_000_000_000
        with pytest.raises(ValidationError, match="u64"):
            parse_supply(10 ** 12, 9)

    def test_boundary(self):
        assert parse_supply(U64_MAX, 0) == U64_MAX
        with pytest.raises(ValidationError):
            parse_supply(U64_MAX + 1, 0)

    @pytest.mark.parametrize("value", [0, -5, "abc", 1.5, True])
    def test_rejects_bad_values(self, value):
        with pytest.raises(ValidationError):
            parse_supply(value, 6)

    def test_accepts_digit_strings(self):
        assert parse_supply("1000", 6) == 1000


class TestAuthoritySet:
    def test_defaults(self):
        recipient = Pubkey.new_unique()
        authorities = AuthoritySet.resolve(AuthorityOptions(), recipient)
        assert authorities.initial_mint_authority == recipient
        assert authorities.mint_authority == recipient
        assert authorities.freeze_authority is None
        assert authorities.update_authority == recipient
        assert authorities.is_mutable is True

    def test_revocations_and_freeze(self):
        recipient = Pubkey.new_unique()
        options = AuthorityOptions(revoke_mint_authority=True, freeze_authority=True, revoke_update_authority=True)
        authorities = AuthoritySet.resolve(options, recipient)
        assert authorities.initial_mint_authority == recipient
        assert authorities.mint_authority is None
        assert authorities.freeze_authority == recipient
        assert authorities.update_authority is None
        assert authorities.is_mutable is False

    def test_overrides(self):
        recipient, mint_auth, freeze_auth, update_auth = (Pubkey.new_unique() for _ in range(4))
        options = AuthorityOptions.from_dict({
            "mint_authority": str(mint_auth),
            "freeze_authority_address": str(freeze_auth),
            "update_authority": str(update_auth),
        })
        authorities = AuthoritySet.resolve(options, recipient)
        assert authorities.initial_mint_authority == mint_auth
        assert authorities.freeze_authority == freeze_auth
        assert authorities.update_authority == update_auth

    def test_bad_override(self):
        options = AuthorityOptions.from_dict({"mint_authority": "garbage"})
        with pytest.raises(InvalidAddressError):
            AuthoritySet.resolve(options, Pubkey.new_unique())

    def test_freeze_authority_given_as_address(self):
        recipient, freeze_auth = Pubkey.new_unique(), Pubkey.new_unique()
        options = AuthorityOptions.from_dict({"freeze_authority": str(freeze_auth)})
        assert options.freeze_authority is True
        assert AuthoritySet.resolve(options, recipient).freeze_authority == freeze_auth

    def test_freeze_authority_conflicting_addresses(self):
        with pytest.raises(ValidationError):
            AuthorityOptions.from_dict({
                "freeze_authority": str(Pubkey.new_unique()),
                "freeze_authority_address": str(Pubkey.new_unique()),
            })

    def test_freeze_authority_rejects_other_types(self):
        with pytest.raises(ValidationError):
            AuthorityOptions.from_dict({"freeze_authority": 1})

    def test_bad_freeze_address_fails_before_io(self):
        with pytest.raises(InvalidAddressError):
            token_descriptor_from_json(build_request(authorityOptions={"freeze_authority": "not-an-address"}))


class TestImages:
    def test_data_uri(self):
        encoded = "data:image/jpeg;base64," + base64.b64encode(b"\xff\xd8\xff\xe0rest").decode()
        data, mime = decode_image(encoded)
        assert data == b"\xff\xd8\xff\xe0rest"
        assert mime == "image/jpeg"

    def test_sniffs_bare_base64(self):
        data, mime = decode_image(base64.b64encode(PNG_BYTES).decode())
        assert data == PNG_BYTES
        assert mime == "image/png"

    def test_invalid_base64(self):
        with pytest.raises(ValidationError):
            decode_image("data:image/png;base64,@@@not base64@@@")


class TestRequestParsing:
    def test_metadata_request(self):
        descriptor = metadata_descriptor_from_json({
            "name": "Pepe Coin",
            "symbol": "pepe",
            "description": "  the frog ",
            "imageBase64": base64.b64encode(PNG_BYTES).decode(),
            "twitter": "https://x.com/pepe",
            "social": {"website": "https://pepe.example"},
        })
        assert descriptor.symbol == "PEPE"
        assert descriptor.description == "the frog"
        assert descriptor.image_bytes == PNG_BYTES
        assert descriptor.social.website == "https://pepe.example"
        assert descriptor.social.twitter == "https://x.com/pepe"

    def test_token_request(self):
        data = build_request(authorityOptions={"revoke_mint_authority": True})
        descriptor = token_descriptor_from_json(data)
        assert descriptor.symbol == "PEPE"
        assert descriptor.base_units == 1_000_000 * 10 ** 9
        assert descriptor.authority_options.revoke_mint_authority is True

    def test_token_request_accepts_alternate_field_names(self):
        data = build_request(options={"freeze_authority": True})
        data["recipient"] = data.pop("recipientAddress")
        descriptor = token_descriptor_from_json(data)
        assert descriptor.recipient_address == data["recipient"]
        assert descriptor.authority_options.freeze_authority is True

    @pytest.mark.parametrize("field", ["recipientAddress", "mintAddress"])
    def test_bad_addresses(self, field):
        with pytest.raises(InvalidAddressError):
            token_descriptor_from_json(build_request(**{field: "xyz"}))

    @pytest.mark.parametrize("decimals", [-1, 10, "nine"])
    def test_bad_decimals(self, decimals):
        with pytest.raises(ValidationError):
            token_descriptor_from_json(build_request(decimals=decimals))

    def test_missing_decimals(self):
        data = build_request()
        del data["decimals"]
        with pytest.raises(ValidationError, match="decimals"):
            token_descriptor_from_json(data)

    def test_zero_decimals_is_allowed(self):
        assert token_descriptor_from_json(build_request(decimals=0)).decimals == 0

    def test_missing_supply(self):
        data = build_request()
        del data["supply"]
        with pytest.raises(ValidationError, match="supply"):
            token_descriptor_from_json(data)


class TestMetadataUri:
    def test_trims(self):
        assert validate_metadata_uri("  https://gateway.test/ipfs/Qm  ") == "https://gateway.test/ipfs/Qm"

    def test_limit_is_inclusive(self):
        uri = "https://" + "a" * (MAX_URI_BYTES - 8)
        assert validate_metadata_uri(uri) == uri
        with pytest.raises(ValidationError, match="too long"):
            validate_metadata_uri(uri + "a")

    @pytest.mark.parametrize("uri", [None, "", "   ", 42])
    def test_missing(self, uri):
        with pytest.raises(ValidationError, match="metadataURI"):
            validate_metadata_uri(uri)
