from __future__ import annotations

import asyncio
import threading
from io import BytesIO

import pytest
from PIL import Image, features

from helpers import image_bytes, png_file
from services.errors import BackgroundRemovalError
from services.image_file import ImageFile
from services.rembg_service import STAGES, BackgroundOutput, BackgroundRemovalService


def _cut_out(image: Image.Image, session=None) -> Image.Image:
    """Stand-in for rembg: keeps the left half, clears the right half."""
    out = image.convert("RGBA")
    width, height = out.size
    out.paste((0, 0, 0, 0), (width // 2, 0, width, height))
    return out


def _run(service: BackgroundRemovalService, file: ImageFile, **kwargs):
    events = []

    def progress(stage: str, current: int, total: int) -> None:
        events.append((stage, current, total, threading.get_ident()))

    async def scenario():
        blob = await service.remove_background(file, progress=progress, **kwargs)
        return blob, threading.get_ident()

    (blob, loop_thread) = asyncio.run(scenario())
    return blob, events, loop_thread


def test_returns_transparent_png() -> None:
    service = BackgroundRemovalService(inference=_cut_out)
    source = ImageFile("portrait.jpg", "image/jpeg", image_bytes("JPEG", (20, 10), (0, 200, 0)))

    blob, _, _ = _run(service, source)

    out = Image.open(BytesIO(blob))
    assert out.format == "PNG"
    assert out.mode == "RGBA"
    assert out.size == (20, 10)
    assert out.getpixel((2, 5))[3] == 255
    assert out.getpixel((17, 5))[3] == 0


def test_progress_is_cumulative_and_delivered_on_loop_thread() -> None:
    service = BackgroundRemovalService(inference=_cut_out)

    _, events, loop_thread = _run(service, png_file())

    assert [(stage, cur, tot) for stage, cur, tot, _ in events] == [
        (stage, index + 1, len(STAGES)) for index, stage in enumerate(STAGES)
    ]
    assert all(thread == loop_thread for *_, thread in events)


def test_inference_runs_off_the_loop_thread() -> None:
    threads = []

    def inference(image, session=None):
        threads.append(threading.get_ident())
        return _cut_out(image)

    service = BackgroundRemovalService(inference=inference)

    _, _, loop_thread = _run(service, png_file())

    assert threads and threads[0] != loop_thread


@pytest.mark.skipif(not features.check("avif"), reason="Pillow built without AVIF support")
def test_lossy_output_format_is_honoured() -> None:
    service = BackgroundRemovalService(inference=_cut_out)

    blob, _, _ = _run(service, png_file(), output=BackgroundOutput(format="image/avif", quality=0.5))

    assert Image.open(BytesIO(blob)).format == "AVIF"


def test_inference_failure_is_wrapped() -> None:
    def inference(image, session=None):
        raise RuntimeError("onnx session crashed")

    service = BackgroundRemovalService(inference=inference)

    with pytest.raises(BackgroundRemovalError) as excinfo:
        _run(service, png_file())

    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_undecodable_input_is_wrapped() -> None:
    service = BackgroundRemovalService(inference=_cut_out)
    broken = ImageFile("broken.png", "image/png", b"not a png")

    with pytest.raises(BackgroundRemovalError):
        _run(service, broken)


def test_model_session_is_created_once(monkeypatch) -> None:
    rembg = pytest.importorskip("rembg")

    created = []

    def fake_new_session(model_name):
        created.append(model_name)
        return object()

    monkeypatch.setattr(rembg, "new_session", fake_new_session)
    monkeypatch.setattr(rembg, "remove", lambda image, session=None: _cut_out(image))
    service = BackgroundRemovalService(model_name="u2netp")

    _run(service, png_file())
    _run(service, png_file())

    assert created == ["u2netp"]
