"""Tests for the playback device interface and factory."""

from unittest.mock import AsyncMock, patch

import pytest

from mavrixfy.backends import (
    DeviceFactory,
    DeviceInfo,
    DeviceNotFoundError,
    DeviceRegistry,
    DeviceState,
    DeviceStatus,
    DeviceTrack,
    LocalAudioDevice,
    PlaybackDevice,
    SimulatedDevice,
)
from mavrixfy.config import Config


class TestDeviceState:
    """Tests for DeviceState enum."""

    def test_values(self) -> None:
        assert DeviceState.STOPPED == 1
        assert DeviceState.PLAYING == 2
        assert DeviceState.PAUSED == 3
        assert DeviceState.LOADING == 4
        assert DeviceState.ERROR == 5


class TestDeviceStatus:
    """Tests for DeviceStatus."""

    def test_defaults(self) -> None:
        status = DeviceStatus(session_id=3)
        assert status.position_ms == 0
        assert status.duration_ms == 0
        assert status.is_playing is False
        assert status.is_buffering is False
        assert status.did_finish is False
        assert status.error is None


class TestDeviceTrack:
    """Tests for DeviceTrack."""

    def test_to_dict(self) -> None:
        track = DeviceTrack(track_id="a", url="https://x/a.mp4", title="T", duration_ms=1000)
        d = track.to_dict()
        assert d["track_id"] == "a"
        assert d["url"] == "https://x/a.mp4"
        assert d["title"] == "T"
        assert d["duration_ms"] == 1000
        assert d["artist"] == ""


class TestDeviceInfo:
    """Tests for DeviceInfo."""

    def test_str_with_sample_rate(self) -> None:
        info = DeviceInfo(device_type="local", name="DAC", device_id="x", channels=2, sample_rate=48000)
        assert str(info) == "DAC (local) 2ch @ 48000Hz"

    def test_str_without_sample_rate(self) -> None:
        info = DeviceInfo(device_type="simulated", name="Sim", device_id="sim")
        assert str(info) == "Sim (simulated)"


class TestDeviceRegistry:
    """Tests for DeviceRegistry."""

    def test_builtin_devices_registered(self) -> None:
        assert DeviceRegistry.get("simulated") is SimulatedDevice
        assert DeviceRegistry.get("local") is LocalAudioDevice

    def test_get_unregistered(self) -> None:
        assert DeviceRegistry.get("chromecast") is None


class TestDeviceFactory:
    """Tests for DeviceFactory."""

    @pytest.mark.asyncio
    async def test_create_simulated(self) -> None:
        config = Config()
        config.backend.status_interval = 0.05
        config.backend.simulated.default_duration_ms = 5000

        device = await DeviceFactory.create_from_config(config)

        assert isinstance(device, SimulatedDevice)
        assert device.is_connected() is True
        assert device.get_info().device_type == "simulated"

    @pytest.mark.asyncio
    async def test_create_unknown_type_raises(self) -> None:
        config = Config()
        config.backend.type = "chromecast"
        with pytest.raises(DeviceNotFoundError, match="not available"):
            await DeviceFactory.create_from_config(config)

    @pytest.mark.asyncio
    async def test_local_connection_failure(self) -> None:
        config = Config()
        config.backend.type = "local"
        with patch.object(LocalAudioDevice, "connect", AsyncMock(return_value=False)):
            with pytest.raises(DeviceNotFoundError, match="Failed to connect"):
                await DeviceFactory.create_from_config(config)

    @pytest.mark.asyncio
    async def test_registered_type_built_from_config(self) -> None:
        """Test any registered device type is constructed through from_config()."""

        class StubDevice(SimulatedDevice):
            @classmethod
            def from_config(cls, config: Config) -> "StubDevice":
                return cls(name="Stub", status_interval=config.backend.status_interval)

        DeviceRegistry.register("stub", StubDevice)
        config = Config()
        config.backend.type = "stub"
        try:
            device = await DeviceFactory.create_from_config(config)
        finally:
            DeviceRegistry._devices.pop("stub", None)

        assert isinstance(device, StubDevice)
        assert device.name == "Stub"
        await device.disconnect()

    def test_list_available_devices(self) -> None:
        types = DeviceFactory.list_available_devices()
        assert "simulated" in types
        assert "local" in types


class TestPlaybackDeviceBase:
    """Tests for behaviour shared by all devices."""

    def test_is_abstract(self) -> None:
        with pytest.raises(TypeError):
            PlaybackDevice()  # type: ignore[abstract]

    @pytest.mark.asyncio
    async def test_play_order(self, device) -> None:
        tracks = [DeviceTrack(track_id="a"), DeviceTrack(track_id="b")]
        await device.set_play_order(tracks, 1)
        assert [t.track_id for t in device.play_order] == ["a", "b"]
        assert device.play_order_index == 1

    @pytest.mark.asyncio
    async def test_status_callback_errors_contained(self, device) -> None:
        def broken(status: DeviceStatus) -> None:
            raise RuntimeError("listener bug")

        session_id = await device.load("https://x/a.mp4", DeviceTrack(track_id="a"), broken)
        device._notify_status(DeviceStatus(session_id=session_id))

    @pytest.mark.asyncio
    async def test_session_ids_increase(self, device) -> None:
        first = await device.load("https://x/a.mp4", DeviceTrack(track_id="a"), lambda s: None)
        await device.unload()
        second = await device.load("https://x/b.mp4", DeviceTrack(track_id="b"), lambda s: None)
        assert second > first
        assert device.session_id == second

    @pytest.mark.asyncio
    async def test_disconnect_unloads(self, device) -> None:
        await device.connect()
        await device.load("https://x/a.mp4", DeviceTrack(track_id="a"), lambda s: None)
        await device.disconnect()
        assert device.session_id is None
        assert device.is_connected() is False
