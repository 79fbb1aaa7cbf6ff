import pytest

from dfs_simulator.model.connection import CharacteristicPoint, LineConnectionCharacteristic, NodeConnection
from dfs_simulator.model.nodes import ClientNode, ServerNode
from dfs_simulator.units import ByteSize, ByteSpeed, SizeUnit, SpeedUnit, as_bps, as_bytes


def test_byte_quantities_convert_between_units():
    assert ByteSize.of(2, SizeUnit.MB).bytes == 2_000_000
    assert ByteSpeed.of(3, SpeedUnit.KBPS).bps == 3000
    assert ByteSize(1500).kilo_bytes == pytest.approx(1.5)
    assert ByteSize(2_500_000).mega_bytes == pytest.approx(2.5)
    assert ByteSize.of(4, SizeUnit.GB).giga_bytes == pytest.approx(4)
    speed = ByteSpeed.of(1.5, SpeedUnit.GBPS)
    assert (speed.kilo_bps, speed.mega_bps, speed.giga_bps) == pytest.approx((1.5e6, 1500, 1.5))
    assert as_bytes(ByteSize(10)) == 10
    assert as_bps(250) == 250
    assert ByteSize(999).human_readable() == "999 B"
    assert ByteSize(1500).human_readable() == "1.5 kB"


def _characteristic(values, period_ms=20000):
    characteristic = LineConnectionCharacteristic(period_ms=period_ms)
    characteristic.set_y_values(values)
    return characteristic


def test_characteristic_interpolates_between_points():
    values = [1.0, 0.0] + [0.5] * 19
    characteristic = _characteristic(values)

    assert characteristic.step_ms == 1000
    assert characteristic.modifier_at(0) == pytest.approx(1.0)
    assert characteristic.modifier_at(500) == pytest.approx(0.5)
    assert characteristic.modifier_at(1000) == pytest.approx(0.0)
    assert characteristic.modifier_at(1500) == pytest.approx(0.25)
    # the profile repeats every period
    assert characteristic.modifier_at(20500) == pytest.approx(0.5)


def test_characteristic_average_over_window():
    characteristic = _characteristic([1.0, 0.0] + [0.5] * 19)
    assert characteristic.average_modifier(0, 0) == pytest.approx(1.0)
    assert characteristic.average_modifier(0, 1000) == pytest.approx(0.5)


def test_characteristic_rejects_negative_values():
    characteristic = LineConnectionCharacteristic()
    with pytest.raises(ValueError):
        characteristic.set_y_values([-1.0] * LineConnectionCharacteristic.NUM_POINTS)
    with pytest.raises(ValueError):
        characteristic.set_y_values([1.0])
    with pytest.raises(ValueError):
        LineConnectionCharacteristic([CharacteristicPoint(0.0, -0.5)])


def test_connection_bandwidth_follows_characteristic():
    connection = NodeConnection(ClientNode("c"), ServerNode("s"), 1000, 5, _characteristic([1.0, 0.0] + [0.5] * 19))
    assert connection.average_bandwidth(0) == 1000
    assert connection.average_bandwidth(500) == 500


def test_connection_validates_latency_and_bandwidth():
    with pytest.raises(ValueError):
        NodeConnection(ClientNode("c"), ServerNode("s"), 1000, -1)
    with pytest.raises(ValueError):
        NodeConnection(ClientNode("c"), ServerNode("s"), -5, 1)
