# metadata.py (builds the off-chain token metadata document and pins it)

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .descriptor import TokenDescriptor, validate_name_symbol
from .errors import TokenForgeError, UploadError

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}


@dataclass
class PublishResult:
    metadata_uri: str
    image_url: Optional[str]
    document: dict
    warnings: List[str] = field(default_factory=list)


def build_metadata_document(descriptor: TokenDescriptor, image_url=None, image_type=None) -> dict:
    """Metaplex fungible-token JSON for ``descriptor``."""
    document = {
        "name": descriptor.name,
        "symbol": descriptor.symbol,
        "description": descriptor.description or "",
        "seller_fee_basis_points": 0,
        "image": image_url or "",
        "attributes": [],
        "properties": {
            "files": [],
            "category": "image",
        },
    }
    if image_url:
        document["properties"]["files"].append({"uri": image_url, "type": image_type or "image/png"})

    for name, value in descriptor.social.items():
        document["attributes"].append({"trait_type": name.capitalize(), "value": value})
    external_url = descriptor.social.external_url()
    if external_url:
        document["external_url"] = external_url

    creator = descriptor.creator
    if creator.name:
        document["properties"]["creator"] = creator.name
    if creator.address:
        document["creators"] = [{"address": creator.address, "verified": False, "share": 100}]
    return document


class MetadataPublisher:
    def __init__(self, storage):
        self.storage = storage

    def publish(self, descriptor: TokenDescriptor) -> PublishResult:
        name, symbol = validate_name_symbol(descriptor.name, descriptor.symbol)
        descriptor.name, descriptor.symbol = name, symbol
        logger.info(f"Publishing metadata for {name} ({symbol})")

        warnings = []
        image_url = None
        if descriptor.image_bytes:
            image_url = self._upload_image(descriptor, warnings)

        document = build_metadata_document(descriptor, image_url, descriptor.image_type)
        try:
            metadata_uri = self.storage.upload_json(
                document,
                name=f"{name} Token Metadata",
                keyvalues={"symbol": symbol, "type": "token-metadata"},
            )
        except TokenForgeError:
            raise
        except Exception as e:
            raise UploadError(f"Metadata upload failed: {e}", cause=e) from e

        logger.info(f"Metadata uploaded: {metadata_uri}")
        return PublishResult(metadata_uri=metadata_uri, image_url=image_url, document=document, warnings=warnings)

    def _upload_image(self, descriptor, warnings):
        image_type = descriptor.image_type or "image/png"
        extension = EXTENSIONS.get(image_type, image_type.rsplit("/", 1)[-1])
        filename = f"{descriptor.symbol.lower()}-logo.{extension}"
        try:
            image_url = self.storage.upload_file(descriptor.image_bytes, filename, image_type)
        except Exception as e:
            # a missing logo is information loss, not a reason to fail the token
            logger.warning(f"Image upload failed, continuing without image: {e}")
            warnings.append("Image upload failed; metadata was published without an image.")
            return None
        logger.info(f"Image uploaded: {image_url}")
        return image_url
