import pytest

from procwarden.faults import Fault, FaultCode


def test_fault_keeps_code_and_description():
    fault = Fault(FaultCode.BAD_ARGUMENTS, "BAD_ARGUMENTS")
    assert fault.code is FaultCode.BAD_ARGUMENTS
    assert fault.string == "BAD_ARGUMENTS"


@pytest.mark.parametrize(
    "number,expected",
    [(20, FaultCode.NO_FILE), (30, FaultCode.FAILED), (80, FaultCode.SUCCESS)],
)
def test_fault_code_values_fixed_by_protocol(number, expected):
    fault = Fault(number, "x")
    assert fault.code is expected


def test_fault_from_plain_int_becomes_enum():
    fault = Fault(int(FaultCode.NO_FILE), "NO_FILE")
    assert fault.code is FaultCode.NO_FILE


def test_fault_unknown_code_kept_as_int():
    fault = Fault(12345, "odd")
    assert fault.code == 12345
    assert not isinstance(fault.code, FaultCode)


def test_fault_is_raisable_and_catchable():
    fault = Fault(FaultCode.FAILED, "FAILED")
    assert fault.code == FaultCode.FAILED
    assert "FAILED" in str(fault)
    with pytest.raises(Fault) as info:
        raise fault
    assert info.value.string == "FAILED"


def test_fault_str_contains_code_number():
    fault = Fault(FaultCode.NO_FILE, "NO_FILE")
    assert str(fault).startswith(str(int(FaultCode.NO_FILE)))