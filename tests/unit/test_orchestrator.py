"""Unit tests for UpdateOrchestrator."""

import asyncio

import httpx
import pytest

from skyup.models.errors import ErrorKind, UpdateInProgressError
from skyup.models.status import StageEnum
from skyup.services.download import DownloadService
from skyup.services.orchestrator import UpdateOrchestrator

from conftest import ESSENTIALS_URL, SYSTEM_URL, xlb_content

FINGERPRINT = b"\x42" * 12


@pytest.mark.unit
class TestUpdateOrchestrator:
    """Orchestrator with mocked HTTP and a temp device root."""

    @pytest.fixture
    def archives(self, make_archive):
        return {
            ESSENTIALS_URL: make_archive({
                "fonts": None,
                "fonts/a.otb": FINGERPRINT + b"font",
                "airspace.oab": FINGERPRINT + b"air",
            }),
            SYSTEM_URL: make_archive({
                "firmware.xlb": xlb_content(150),
                "system/config.txt": b"config",
            }),
        }

    def _orchestrator(self, config, transport) -> UpdateOrchestrator:
        return UpdateOrchestrator(
            config=config, download_service=DownloadService(transport=transport)
        )

    @pytest.mark.asyncio
    async def test_successful_update(self, test_config, device_root, archives, archive_transport):
        orchestrator = self._orchestrator(test_config, archive_transport(archives))
        stages = []
        orchestrator.subscribe(lambda s: stages.append(s.stage))

        state = await orchestrator.update(device_root)

        assert state.stage == StageEnum.SUCCEEDED
        assert state.error is None
        assert state.loading is False
        assert state.done is True
        for progress in (state.essentials, state.system):
            assert progress.download_fraction == 1.0
            assert progress.install_fraction == 1.0
        assert (device_root / "fonts" / "a.otb").exists()
        assert (device_root / "firmware.xlb").exists()
        assert (device_root / "update").is_dir()
        assert (device_root / "system" / "config.txt").read_bytes() == b"config"
        assert stages[:3] == [StageEnum.IDLE, StageEnum.VALIDATING, StageEnum.RUNNING]
        assert stages[-1] == StageEnum.SUCCEEDED
        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_wrong_device(self, test_config, device_root, archive_transport):
        (device_root / ".sys" / "hwsw.info").write_text('hw="5pro"\nsw="build-102"\n')
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=b"never")

        orchestrator = self._orchestrator(test_config, httpx.MockTransport(handler))

        state = await orchestrator.update(device_root)

        assert state.stage == StageEnum.FAILED
        assert state.error.kind == ErrorKind.WRONG_DEVICE
        assert "5mini" in state.error.message
        assert requests == []

    @pytest.mark.asyncio
    async def test_missing_device_info(self, test_config, tmp_path, archive_transport):
        orchestrator = self._orchestrator(test_config, archive_transport({}))

        state = await orchestrator.update(tmp_path)

        assert state.stage == StageEnum.FAILED
        assert state.error.kind == ErrorKind.DEVICE_INFO_MISSING
        assert state.loading is False

    @pytest.mark.asyncio
    async def test_http_500_cancels_sibling_mid_download(self, test_config, device_root):
        system_started = asyncio.Event()
        system_cancelled = []

        async def endless_body():
            yield b"\x00" * 4096
            system_started.set()
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                system_cancelled.append(True)
                raise
            yield b"never reached"

        async def handler(request):
            if str(request.url) == SYSTEM_URL:
                return httpx.Response(
                    200, headers={"Content-Length": "1000000"}, content=endless_body()
                )
            await system_started.wait()
            return httpx.Response(500)

        orchestrator = self._orchestrator(test_config, httpx.MockTransport(handler))

        state = await asyncio.wait_for(orchestrator.update(device_root), timeout=10)

        assert state.stage == StageEnum.FAILED
        assert state.error.kind == ErrorKind.HTTP_ERROR
        assert state.error.status == 500
        assert system_cancelled == [True]
        assert 0.0 < state.system.download_fraction < 1.0
        assert state.system.install_fraction == 0.0
        assert sorted(p.name for p in device_root.iterdir()) == [".sys"]

    @pytest.mark.asyncio
    async def test_install_failure_reported(self, test_config, device_root, make_archive, archive_transport):
        archives = {
            ESSENTIALS_URL: make_archive({"a.txt": b"a"}),
            SYSTEM_URL: make_archive({"broken.xlb": b"no build number here"}),
        }
        orchestrator = self._orchestrator(test_config, archive_transport(archives))

        state = await orchestrator.update(device_root)

        assert state.stage == StageEnum.FAILED
        assert state.error.kind == ErrorKind.ARCHIVE_CORRUPT

    @pytest.mark.asyncio
    async def test_truncated_download_is_not_success(
        self, test_config, device_root, make_archive, archive_transport
    ):
        system = make_archive({"sys1.txt": b"1", "sys2.txt": b"2", "sys3.txt": b"3"})
        archives = {
            ESSENTIALS_URL: make_archive({"a.txt": b"a"}),
            # Stream cut inside the second header
            SYSTEM_URL: system[:512 + 512 + 300],
        }
        orchestrator = self._orchestrator(test_config, archive_transport(archives))

        state = await orchestrator.update(device_root)

        assert state.stage == StageEnum.FAILED
        assert state.error.kind == ErrorKind.ARCHIVE_CORRUPT
        assert state.system.install_fraction == 0.0
        assert not (device_root / "sys1.txt").exists()

    @pytest.mark.asyncio
    async def test_second_update_rejected_while_running(self, test_config, device_root):
        release = asyncio.Event()

        async def handler(request):
            await release.wait()
            return httpx.Response(500)

        orchestrator = self._orchestrator(test_config, httpx.MockTransport(handler))
        first = asyncio.create_task(orchestrator.update(device_root))
        await asyncio.sleep(0.05)

        with pytest.raises(UpdateInProgressError):
            await orchestrator.update(device_root)
        with pytest.raises(UpdateInProgressError):
            orchestrator.clear()

        release.set()
        state = await first
        assert state.stage == StageEnum.FAILED

    @pytest.mark.asyncio
    async def test_reserved_update_runs(self, test_config, device_root, archives, archive_transport):
        orchestrator = self._orchestrator(test_config, archive_transport(archives))

        orchestrator.reserve()
        assert orchestrator.is_running
        with pytest.raises(UpdateInProgressError):
            orchestrator.reserve()
        with pytest.raises(UpdateInProgressError):
            await orchestrator.update(device_root)

        state = await orchestrator.update(device_root, reserved=True)

        assert state.stage == StageEnum.SUCCEEDED
        assert not orchestrator.is_running
        orchestrator.reserve()

    @pytest.mark.asyncio
    async def test_cancelling_update_cancels_pipelines(self, test_config, device_root):
        async def handler(request):
            await asyncio.sleep(3600)

        orchestrator = self._orchestrator(test_config, httpx.MockTransport(handler))
        task = asyncio.create_task(orchestrator.update(device_root))
        await asyncio.sleep(0.05)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        state = orchestrator.get_state()
        assert state.stage == StageEnum.FAILED
        assert state.error.kind == ErrorKind.CANCELLED
        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_clear_returns_to_idle(self, test_config, tmp_path, archive_transport):
        orchestrator = self._orchestrator(test_config, archive_transport({}))
        await orchestrator.update(tmp_path)

        orchestrator.clear()

        state = orchestrator.get_state()
        assert state.stage == StageEnum.IDLE
        assert state.error is None
        assert state.essentials.download_fraction == 0.0

    @pytest.mark.asyncio
    async def test_rerun_skips_up_to_date_files(
        self, test_config, device_root, archives, archive_transport
    ):
        orchestrator = self._orchestrator(test_config, archive_transport(archives))
        await orchestrator.update(device_root)
        font = device_root / "fonts" / "a.otb"
        font.write_bytes(FINGERPRINT + b"locally patched tail")
        orchestrator.clear()

        state = await orchestrator.update(device_root)

        assert state.stage == StageEnum.SUCCEEDED
        assert font.read_bytes() == FINGERPRINT + b"locally patched tail"

    def test_set_error_surfaces_caller_error(self, test_config):
        orchestrator = UpdateOrchestrator(config=test_config)

        orchestrator.set_error("Mount point not found")

        error = orchestrator.get_state().error
        assert error.kind == ErrorKind.EXTERNAL
        assert error.message == "Mount point not found"
