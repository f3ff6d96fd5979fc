"""Tests for device identity resolution."""

from __future__ import annotations

from pathlib import Path

from stunt_sync.services.identity import (
    DeviceIdentityProvider,
    FileIdentity,
    IdentityUnavailableError,
    StaticIdentity,
    resolve_device_id,
)


class NoIdentity(DeviceIdentityProvider):
    def device_id(self) -> str:
        raise IdentityUnavailableError("no secure id on this platform")


class TestIdentity:
    def test_static(self) -> None:
        assert resolve_device_id(StaticIdentity("seat-phone-1")) == "seat-phone-1"

    def test_empty_static_falls_back_to_demo(self) -> None:
        assert resolve_device_id(StaticIdentity("")).startswith("demo_user_")

    def test_unavailable_falls_back_to_demo(self) -> None:
        device_id = resolve_device_id(NoIdentity())
        assert device_id.startswith("demo_user_")
        assert device_id.removeprefix("demo_user_").isdigit()

    def test_file_identity_is_stable(self, tmp_path: Path) -> None:
        path = tmp_path / "state" / "device_id"
        first = FileIdentity(path).device_id()
        second = FileIdentity(path).device_id()
        assert first == second
        assert path.read_text().strip() == first

    def test_file_identity_unwritable_falls_back(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        device_id = resolve_device_id(FileIdentity(blocker / "device_id"))
        assert device_id.startswith("demo_user_")
