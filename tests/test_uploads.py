from __future__ import annotations

import asyncio

import pytest

from persistence.uploads import IMAGE_POLICY, MB, PDF_POLICY, UploadRejected, check_upload, upload_file


def test_oversized_upload_rejected_before_store_is_called(fake_blobs):
    async def _run():
        with pytest.raises(UploadRejected) as exc_info:
            await upload_file(
                fake_blobs,
                IMAGE_POLICY,
                data=b"\0" * (30 * MB),
                filename="big.png",
                content_type="image/png",
            )
        assert exc_info.value.reason == "too_large"
        assert "25MB" in str(exc_info.value)
        assert fake_blobs.uploads == []

    asyncio.run(_run())


def test_wrong_type_rejected(fake_blobs):
    async def _run():
        with pytest.raises(UploadRejected) as exc_info:
            await upload_file(fake_blobs, PDF_POLICY, data=b"x", filename="a.png", content_type="image/png")
        assert exc_info.value.reason == "unsupported_type"
        assert fake_blobs.uploads == []

    asyncio.run(_run())


def test_accepted_upload_passes_through(fake_blobs):
    async def _run():
        url = await upload_file(
            fake_blobs,
            PDF_POLICY,
            data=b"%PDF-1.7",
            filename="report.pdf",
            content_type="application/pdf",
            folder="reports",
        )
        assert url.endswith("/reports/report.pdf")
        assert fake_blobs.uploads == [
            {"size": 8, "filename": "report.pdf", "content_type": "application/pdf", "folder": "reports"}
        ]

    asyncio.run(_run())


def test_limit_is_inclusive():
    check_upload(IMAGE_POLICY, size=25 * MB, content_type="image/jpeg")
    with pytest.raises(UploadRejected):
        check_upload(IMAGE_POLICY, size=25 * MB + 1, content_type="image/jpeg")
