"""Tests for BN254 field encodings."""

import pytest

from primitives.field import (
    BN254_PRIME,
    FF,
    address_to_field,
    decode_signed,
    encode_signed,
    field_to_address,
    from_bytes,
    from_hex,
    is_canonical,
    random_field,
    to_bytes,
    to_field,
    to_hex,
)


class TestCanonical:
    """Test canonical value handling."""

    def test_field_order(self) -> None:
        """FF is the BN254 scalar field."""
        assert FF.order == BN254_PRIME

    def test_to_field_reduces(self) -> None:
        """Integers are reduced into [0, p)."""
        assert to_field(BN254_PRIME) == 0
        assert to_field(BN254_PRIME + 7) == 7
        assert to_field(-1) == BN254_PRIME - 1

    def test_is_canonical_bounds(self) -> None:
        """Only [0, p) is canonical."""
        assert is_canonical(0)
        assert is_canonical(BN254_PRIME - 1)
        assert not is_canonical(BN254_PRIME)
        assert not is_canonical(-1)

    def test_random_field_is_canonical(self) -> None:
        """Random elements are always in range."""
        for _ in range(20):
            assert is_canonical(random_field())


class TestSignedEncoding:
    """Test the signed integer encoding used for external amounts."""

    def test_negative_maps_to_additive_inverse(self) -> None:
        """-x encodes as p - x."""
        assert encode_signed(-40) == BN254_PRIME - 40
        assert encode_signed(40) == 40

    @pytest.mark.parametrize("value", [0, 1, -1, 100, -100, 2**127, -(2**127)])
    def test_decode_inverts_encode(self, value: int) -> None:
        """decode_signed(encode_signed(x)) == x."""
        assert decode_signed(encode_signed(value)) == value

    def test_encoded_sum_is_field_sum(self) -> None:
        """Adding encodings in the field adds the signed values."""
        assert int(FF(100) + FF(encode_signed(-40))) == 60

    def test_out_of_range_rejected(self) -> None:
        """Values beyond (p - 1) / 2 in magnitude have no encoding."""
        with pytest.raises(ValueError):
            encode_signed(BN254_PRIME)


class TestByteEncoding:
    """Test byte, hex and address encodings."""

    def test_to_bytes_is_32_byte_big_endian(self) -> None:
        """Elements serialize to 32 big-endian bytes."""
        assert to_bytes(1) == b"\x00" * 31 + b"\x01"

    def test_from_bytes_rejects_modulus(self) -> None:
        """p itself is not a valid encoding."""
        with pytest.raises(ValueError):
            from_bytes(BN254_PRIME.to_bytes(32, "big"))

    def test_from_bytes_rejects_wrong_length(self) -> None:
        """Only 32-byte inputs decode."""
        with pytest.raises(ValueError):
            from_bytes(b"\x01")

    def test_hex(self) -> None:
        """Hex form is 0x-prefixed and padded; short hex is accepted."""
        assert to_hex(255) == "0x" + "00" * 31 + "ff"
        assert from_hex("0xff") == 255
        assert from_hex(to_hex(BN254_PRIME - 1)) == BN254_PRIME - 1

    def test_from_hex_rejects_garbage(self) -> None:
        """Empty or oversized hex is rejected."""
        with pytest.raises(ValueError):
            from_hex("0x")
        with pytest.raises(ValueError):
            from_hex("0x" + "f" * 66)

    def test_address_embedding(self) -> None:
        """Addresses embed into the field and back."""
        address = "0x" + "ab" * 20
        assert field_to_address(address_to_field(address)) == address

    def test_field_to_address_rejects_wide_values(self) -> None:
        """Elements wider than 160 bits are not addresses."""
        with pytest.raises(ValueError):
            field_to_address(1 << 160)
