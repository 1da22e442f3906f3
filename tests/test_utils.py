"""Error and formatting helper tests."""

from roundtrip_bot.utils import (
    BotError,
    SequenceError,
    TransactionError,
    error_summary,
    format_address,
    format_eth,
    format_gwei,
    format_token,
    redact_secrets,
    validate_address,
    validate_private_key,
)


class TestBotError:
    def test_summary_is_text_before_first_semicolon(self):
        """Test error summary splitting."""
        err = BotError.from_exception(ValueError("nonce too low; next nonce 8, tx nonce 7"))
        assert err.summary == "nonce too low"
        assert err.detail == "nonce too low; next nonce 8, tx nonce 7"

    def test_without_semicolon(self):
        """Test messages without a separator."""
        err = BotError.from_exception(RuntimeError("timeout"))
        assert err.summary == err.detail == "timeout"

    def test_empty_message_uses_class_name(self):
        """Test empty messages fall back to the class name."""
        assert error_summary(KeyError()) == "KeyError"

    def test_bot_error_passes_through(self):
        """Test BotError instances are returned unchanged."""
        err = SequenceError("swap_back failed", failed_step="swap_back")
        assert BotError.from_exception(err) is err

    def test_subclass_keyword_arguments(self):
        """Test wrapping into a subclass with extra fields."""
        err = TransactionError.from_exception(OSError("reset; by peer"), tx_hash="0xabc")
        assert isinstance(err, TransactionError)
        assert err.summary == "reset"
        assert err.tx_hash == "0xabc"

    def test_sequence_error_records_steps(self):
        """Test SequenceError step fields."""
        err = SequenceError("x", completed_steps=["swap_out"], failed_step="approve_out")
        assert err.completed_steps == ("swap_out",)
        assert err.failed_step == "approve_out"


class TestFormatting:
    def test_format_eth(self):
        """Test ETH formatting."""
        assert format_eth(20_000_000_000_000) == "0.000020 ETH"
        assert format_eth(0) == "0.000000 ETH"

    def test_format_token(self):
        """Test token formatting with decimals."""
        assert format_token(1_500_000, 6, "USDC") == "1.500000 USDC"

    def test_format_gwei(self):
        """Test Gwei formatting."""
        assert format_gwei(1_200_000) == "0.0012 Gwei"

    def test_format_address(self):
        """Test address shortening."""
        address = "0x19E7E376E7C213B7E7e7e46cc70A5dD086DAff2A"
        assert format_address(address) == "0x19E7E3...DAff2A"


class TestValidation:
    def test_private_keys(self):
        """Test private key validation."""
        assert validate_private_key("0x" + "a" * 64)
        assert validate_private_key("a" * 64)
        assert not validate_private_key("0x" + "a" * 63)
        assert not validate_private_key("0x" + "g" * 64)
        assert not validate_private_key("")

    def test_addresses_any_case(self):
        """Test address validation ignores case and rejects non-strings."""
        assert validate_address("0xbA9986D2381edf1DA03B0B9c1f8b00dc4AacC369")
        assert validate_address("0xba9986d2381edf1da03b0b9c1f8b00dc4aacc369")
        assert not validate_address("0x1234")
        assert not validate_address(0xeba58c20629ddab41e21a3e4e2422e583ebd9719)
        assert not validate_address("")


class TestRedaction:
    def test_removes_key_with_and_without_prefix(self):
        """Test key redaction."""
        key = "0x" + "1" * 64
        assert "1" * 64 not in redact_secrets(f"key={key}", [key])
        assert "1" * 64 not in redact_secrets(f"key={'1' * 64}", [key])

    def test_keeps_transaction_hashes(self):
        """Test transaction hashes are not redacted."""
        tx_hash = "0x" + "ab" * 32
        assert redact_secrets(f"sent {tx_hash}", ["0x" + "1" * 64]) == f"sent {tx_hash}"
