"""Out-of-band image storage.

Inline data-URL images are decoded, size-checked, stored under image:{id}
as {mime, data} and replaced in the message by a short /images/{id}
reference. Remote http(s) URLs and existing references pass through.

Parsing is pure so callers can validate a whole message before writing
anything; persistence happens in a separate step.
"""

import base64
import binascii
import json
import re
import uuid
from dataclasses import dataclass
from urllib.parse import urlparse

from huddle.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from huddle.logging import get_logger
from huddle.store import KeyValueStore, keys

logger = get_logger(__name__)

IMAGE_REF_PREFIX = "/images/"
MAX_IMAGE_URL_CHARS = 2048

DATA_URL_PATTERN = re.compile(r"^data:(image/[A-Za-z0-9.+-]+);base64,(.+)$", re.DOTALL)
IMAGE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


@dataclass(frozen=True)
class ImageInput:
    """A validated image field.

    Either `reference` is final (remote URL or existing /images/{id}) or
    `mime`/`data` hold an inline payload that still has to be stored.
    """

    reference: str | None = None
    mime: str | None = None
    data: str | None = None

    @property
    def needs_upload(self) -> bool:
        return self.reference is None


@dataclass(frozen=True)
class ImageBlob:
    mime: str
    content: bytes


def image_reference(image_id: str) -> str:
    return f"{IMAGE_REF_PREFIX}{image_id}"


def parse_image(store: KeyValueStore, image: str | None, max_bytes: int) -> ImageInput | None:
    """Validate an image field without writing.

    Returns:
        None when no image was supplied.

    Raises:
        InvalidRequestError(E_INVALID_IMAGE): Unrecognized or malformed value.
        InvalidRequestError(E_IMAGE_TOO_LARGE): Decoded payload above max_bytes.
    """
    if image is None:
        return None
    image = image.strip()
    if not image:
        return None

    match = DATA_URL_PATTERN.match(image)
    if match:
        mime, data = match.group(1).lower(), match.group(2).strip()
        try:
            decoded = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidRequestError(
                ApiErrorCode.E_INVALID_IMAGE, "Image data is not valid base64"
            ) from e
        if not decoded:
            raise InvalidRequestError(ApiErrorCode.E_INVALID_IMAGE, "Image data is empty")
        if len(decoded) > max_bytes:
            raise InvalidRequestError(
                ApiErrorCode.E_IMAGE_TOO_LARGE, f"Image exceeds {max_bytes} bytes"
            )
        return ImageInput(mime=mime, data=data)

    if image.startswith(IMAGE_REF_PREFIX):
        image_id = image[len(IMAGE_REF_PREFIX) :]
        if not IMAGE_ID_PATTERN.match(image_id) or store.get(keys.image_blob(image_id)) is None:
            raise InvalidRequestError(ApiErrorCode.E_INVALID_IMAGE, "Unknown image reference")
        return ImageInput(reference=image)

    if len(image) <= MAX_IMAGE_URL_CHARS:
        parsed = urlparse(image)
        if parsed.scheme in ("http", "https") and parsed.netloc:
            return ImageInput(reference=image)

    raise InvalidRequestError(ApiErrorCode.E_INVALID_IMAGE, "Unsupported image value")


def store_image(store: KeyValueStore, image: ImageInput) -> str:
    """Persist an inline payload if needed and return the reference."""
    if not image.needs_upload:
        return image.reference  # type: ignore[return-value]

    image_id = uuid.uuid4().hex
    store.set(keys.image_blob(image_id), json.dumps({"mime": image.mime, "data": image.data}))
    logger.info("image_stored", image_id=image_id, mime=image.mime, data_chars=len(image.data or ""))
    return image_reference(image_id)


def get_image(store: KeyValueStore, image_id: str) -> ImageBlob:
    """Load a stored image for the blob endpoint.

    Raises:
        NotFoundError(E_IMAGE_NOT_FOUND): Unknown id or unreadable record.
    """
    if not IMAGE_ID_PATTERN.match(image_id):
        raise NotFoundError(ApiErrorCode.E_IMAGE_NOT_FOUND, "Image not found")

    raw = store.get(keys.image_blob(image_id))
    if raw is None:
        raise NotFoundError(ApiErrorCode.E_IMAGE_NOT_FOUND, "Image not found")

    try:
        record = json.loads(raw)
        content = base64.b64decode(record["data"])
        mime = str(record["mime"])
    except (ValueError, KeyError, TypeError, binascii.Error) as e:
        logger.warning("image_unreadable", image_id=image_id)
        raise NotFoundError(ApiErrorCode.E_IMAGE_NOT_FOUND, "Image not found") from e

    return ImageBlob(mime=mime, content=content)
