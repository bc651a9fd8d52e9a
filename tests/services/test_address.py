import pytest

from chatwallet.services.address import is_ledger_id, to_evm_address


@pytest.mark.parametrize("ledger_id", ["0.0.1", "0.0.3045981", "1.2.1456986", "0.0." + str((1 << 160) - 1)])
def test_evm_address_shape(ledger_id):
    address = to_evm_address(ledger_id)

    assert len(address) == 42
    assert address.startswith("0x")
    assert address == address.lower()
    assert to_evm_address(ledger_id) == address


def test_evm_address_uses_entity_number_only():
    assert to_evm_address("0.0.3045981") == "0x" + "0" * 34 + "2e7a5d"
    assert to_evm_address("5.7.3045981") == to_evm_address("0.0.3045981")


@pytest.mark.parametrize("value", ["0.0.abc", "0.0", "", "0.0.1\n", " 0.0.1", "0.0." + str(1 << 160), "0x1234"])
def test_invalid_ids(value):
    assert is_ledger_id(value) is False
    with pytest.raises(ValueError):
        to_evm_address(value)
