"""
Tests for chainvault_core.pin: PIN-sealed mnemonic record.
"""

import pytest

from chainvault_core.errors import IncorrectPinError, IncorrectPinTypeError
from chainvault_core.pin import PinGate, check_pin_type, is_valid_pin_type

from conftest import ABANDON_MNEMONIC


@pytest.fixture
def gate(cipher):
    return PinGate(cipher)


@pytest.fixture
def sealed(gate):
    return gate.encrypt_mnemonic(ABANDON_MNEMONIC, 1234)


class TestPinType:

    @pytest.mark.parametrize("pin", [0, 7, 1234, 999999])
    def test_valid(self, pin):
        assert is_valid_pin_type(pin)
        check_pin_type(pin)

    @pytest.mark.parametrize("pin", [-1, "1234", 12.0, None, True, False, [1234]])
    def test_invalid(self, pin):
        assert not is_valid_pin_type(pin)
        with pytest.raises(IncorrectPinTypeError):
            check_pin_type(pin)

    def test_encrypt_rejects_bad_type(self, gate):
        with pytest.raises(IncorrectPinTypeError):
            gate.encrypt_mnemonic(ABANDON_MNEMONIC, "1234")


class TestValidatePin:

    def test_correct_pin(self, gate, sealed):
        assert gate.validate_pin(1234, sealed) is True

    def test_wrong_pin(self, gate, sealed):
        assert gate.validate_pin(4321, sealed) is False

    def test_wrong_type_is_false(self, gate, sealed):
        assert gate.validate_pin("1234", sealed) is False

    def test_garbage_record(self, gate):
        assert gate.validate_pin(1234, "not-an-envelope") is False

    def test_repeatable(self, gate, sealed):
        results = [gate.validate_pin(1234, sealed) for _ in range(3)]
        assert results == [True, True, True]


class TestRequireAndExport:

    def test_require_ok(self, gate, sealed):
        gate.require_pin(1234, sealed)

    def test_require_wrong_pin(self, gate, sealed):
        with pytest.raises(IncorrectPinError):
            gate.require_pin(1, sealed)

    def test_require_type_checked_first(self, gate, sealed):
        with pytest.raises(IncorrectPinTypeError):
            gate.require_pin("abc", sealed)

    def test_export(self, gate, sealed):
        assert gate.export_mnemonic(1234, sealed) == ABANDON_MNEMONIC

    def test_export_wrong_pin(self, gate, sealed):
        with pytest.raises(IncorrectPinError):
            gate.export_mnemonic(9999, sealed)

    def test_export_bad_type(self, gate, sealed):
        with pytest.raises(IncorrectPinTypeError):
            gate.export_mnemonic(None, sealed)

    def test_empty_mnemonic_never_valid(self, gate):
        record = gate.encrypt_mnemonic("", 1234)
        assert gate.validate_pin(1234, record) is False
        with pytest.raises(IncorrectPinError):
            gate.export_mnemonic(1234, record)

    def test_error_codes(self):
        assert IncorrectPinError().code == "INCORRECT_PIN"
        assert IncorrectPinTypeError().code == "INCORRECT_PIN_TYPE"
