from __future__ import annotations

from dataclasses import dataclass

from .interfaces import BlobStore

MB = 1024 * 1024


class UploadRejected(ValueError):
    def __init__(self, message: str, *, reason: str):
        self.reason = reason  # "too_large" | "unsupported_type"
        super().__init__(message)


@dataclass(frozen=True)
class UploadPolicy:
    label: str
    accept: tuple[str, ...] = ()
    max_size_mb: int = 25

    def accepts(self, content_type: str | None) -> bool:
        if not self.accept:
            return True
        ctype = (content_type or "").lower()
        return any(ctype.startswith(prefix) for prefix in self.accept)


IMAGE_POLICY = UploadPolicy(label="Image", accept=("image/",))
PDF_POLICY = UploadPolicy(label="PDF", accept=("application/pdf",))


def check_upload(policy: UploadPolicy, *, size: int, content_type: str | None) -> None:
    if not policy.accepts(content_type):
        raise UploadRejected(f"Please select a {policy.label} file", reason="unsupported_type")
    if size > policy.max_size_mb * MB:
        raise UploadRejected(f"{policy.label} must be less than {policy.max_size_mb}MB", reason="too_large")


async def upload_file(
    store: BlobStore,
    policy: UploadPolicy,
    *,
    data: bytes,
    filename: str,
    content_type: str | None = None,
    folder: str | None = None,
) -> str:
    """Validate against the policy first; the store is not touched for rejected files."""
    check_upload(policy, size=len(data), content_type=content_type)
    return await store.upload(data, filename, content_type=content_type, folder=folder)
