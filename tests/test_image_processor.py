import asyncio
import base64
import io

from PIL import Image

from conftest import make_image_bytes
from models.errors import ProcessingError
from models.upload_models import ProcessedImage, SourceFile
from services.image_processor import ImageProcessor


def test_jpeg_thumbnail_fits_max_edge(jpeg_bytes):
    progress = []
    source = SourceFile(filename="holiday.jpg", content_type="image/jpeg", data=jpeg_bytes)

    result = asyncio.run(ImageProcessor(max_edge=300).process(source, on_progress=progress.append))

    assert isinstance(result, ProcessedImage)
    thumb = Image.open(io.BytesIO(result.thumbnail_bytes))
    assert thumb.format == "JPEG"
    assert max(thumb.size) <= 300
    assert thumb.size == (300, 225)
    assert base64.b64decode(result.base64_payload) == jpeg_bytes
    assert result.stored_filename.endswith("-holiday.jpg")
    assert progress == [0.5, 1.0]


def test_png_keeps_format_and_alpha(png_bytes):
    source = SourceFile(filename="logo.png", content_type="image/png", data=png_bytes)

    result = asyncio.run(ImageProcessor().process(source))

    thumb = Image.open(io.BytesIO(result.thumbnail_bytes))
    assert thumb.format == "PNG"
    assert thumb.mode == "RGBA"
    assert max(thumb.size) <= 300
    assert result.thumbnail_content_type == "image/png"


def test_small_image_is_not_upscaled():
    data = make_image_bytes("JPEG", size=(120, 80))
    source = SourceFile(filename="tiny.jpg", content_type="image/jpeg", data=data)

    result = asyncio.run(ImageProcessor(max_edge=300).process(source))

    assert Image.open(io.BytesIO(result.thumbnail_bytes)).size == (120, 80)


def test_unsupported_type_is_returned_not_raised():
    progress = []
    source = SourceFile(filename="anim.gif", content_type="image/gif", data=make_image_bytes("GIF", mode="P", color=1))

    result = asyncio.run(ImageProcessor().process(source, on_progress=progress.append))

    assert isinstance(result, ProcessingError)
    assert result.filename == "anim.gif"
    assert progress == []


def test_corrupt_bytes_yield_processing_error():
    source = SourceFile(filename="broken.jpg", content_type="image/jpeg", data=b"\xff\xd8not really a jpeg")

    result = asyncio.run(ImageProcessor().process(source))

    assert isinstance(result, ProcessingError)
    assert "Thumbnail" in str(result)


def test_content_type_parameters_are_ignored(jpeg_bytes):
    source = SourceFile(filename="a.jpg", content_type="IMAGE/JPEG; charset=binary", data=jpeg_bytes)

    assert isinstance(asyncio.run(ImageProcessor().process(source)), ProcessedImage)


def test_derived_filenames_are_unique_and_increasing():
    names = [ImageProcessor.derive_filename("same.jpg") for _ in range(50)]
    stamps = [int(name.split("-", 1)[0]) for name in names]

    assert len(set(names)) == 50
    assert stamps == sorted(stamps)
    assert all(b > a for a, b in zip(stamps, stamps[1:]))


def test_derived_filename_drops_directories():
    assert ImageProcessor.derive_filename("../../etc/cat.png").endswith("-cat.png")
