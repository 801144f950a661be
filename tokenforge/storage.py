# storage.py (Pinata pinning service, the content-addressed storage collaborator)

import logging

import requests

from .errors import ConfigurationError, UploadError

logger = logging.getLogger(__name__)


class PinataStorage:
    def __init__(self, api_key, secret_api_key, api_url="https://api.pinata.cloud",
                 gateway="https://gateway.pinata.cloud", timeout=25.0, session=None):
        self.api_key = api_key
        self.secret_api_key = secret_api_key
        self.api_url = api_url.rstrip("/")
        self.gateway = gateway.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings):
        return cls(
            settings.pinata_api_key,
            settings.pinata_secret_api_key,
            api_url=settings.pinata_api_url,
            gateway=settings.pinata_gateway,
            timeout=settings.upload_timeout,
        )

    def _headers(self):
        if not self.api_key or not self.secret_api_key:
            raise ConfigurationError("Pinata API keys are not set (PINATA_API_KEY / PINATA_SECRET_API_KEY)")
        return {
            "pinata_api_key": self.api_key,
            "pinata_secret_api_key": self.secret_api_key,
        }

    def gateway_url(self, content_id):
        return f"{self.gateway}/ipfs/{content_id}"

    def upload_file(self, data, filename, content_type="application/octet-stream"):
        """Pin raw bytes and return their gateway URL."""
        headers = self._headers()
        return self._pin(
            "pinning/pinFileToIPFS",
            headers=headers,
            files={"file": (filename, data, content_type)},
        )

    def upload_json(self, document, name=None, keyvalues=None):
        """Pin a JSON document and return its gateway URL."""
        headers = self._headers()
        body = {"pinataContent": document}
        if name or keyvalues:
            body["pinataMetadata"] = {"name": name, "keyvalues": keyvalues or {}}
        return self._pin("pinning/pinJSONToIPFS", headers=headers, json=body)

    def _pin(self, path, **kwargs):
        url = f"{self.api_url}/{path}"
        try:
            response = self.session.post(url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            content_id = response.json()["IpfsHash"]
        except requests.exceptions.Timeout as e:
            raise UploadError(f"{path} timed out: {e}", cause=e,
                              public_message="Upload timeout - please try again") from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 401:
                public = "Invalid IPFS API credentials"
            elif status == 413:
                public = "File too large"
            else:
                public = None
            raise UploadError(f"{path} was rejected with HTTP {status}: {e}", cause=e, public_message=public) from e
        except requests.exceptions.RequestException as e:
            raise UploadError(f"{path} failed: {e}", cause=e) from e
        except (ValueError, KeyError) as e:
            raise UploadError(f"{path} returned an unexpected response: {e}", cause=e) from e

        logger.info(f"Pinned {path.rsplit('/', 1)[-1]} as {content_id}")
        return self.gateway_url(content_id)
