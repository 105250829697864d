import base64
import binascii
import logging
from typing import Any, Optional

import requests

from .config import Settings

logger = logging.getLogger(__name__)

# Field names of the provider's image prediction contract
IMAGE_FIELD = "bytesBase64Encoded"
MIME_FIELD = "mimeType"
DEFAULT_MIME_TYPE = "image/png"

IMAGE_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}

PREDICT_URL_TEMPLATE = (
    "https://{region}-aiplatform.googleapis.com/v1/projects/{project}"
    "/locations/{region}/publishers/google/models/{model}:predict"
)

# --- Errors ---

class PredictionError(Exception):
    """Base class for failures of the AI modification pipeline."""
    stage = "prediction"

    def __str__(self):
        return f"{self.stage}: {super().__str__()}"


class PredictionClientError(PredictionError):
    stage = "Failed to create prediction client"


class PredictionRequestError(PredictionError):
    stage = "Prediction request failed"


class EmptyPredictionError(PredictionError):
    stage = "Prediction returned no results"


class PredictionOutputError(PredictionError):
    stage = "Prediction output missing or unparseable"


class PredictionDecodeError(PredictionError):
    stage = "Failed to decode prediction output"

# --- Payload ---

def build_prediction_payload(image_bytes: bytes, prompt: str, sample_count: int = 1) -> dict[str, Any]:
    """
    Builds the predict request body: one instance carrying the base64 image and
    the prompt, plus a parameters block.
    """
    return {
        "instances": [
            {
                "prompt": prompt,
                "image": {IMAGE_FIELD: base64.b64encode(image_bytes).decode("ascii")},
            }
        ],
        "parameters": {"sampleCount": sample_count},
    }


def extract_image(response_json: Any) -> tuple[bytes, str]:
    """
    Pulls the single output image out of a predict response.
    Returns the decoded bytes and the reported mime type.
    """
    if not isinstance(response_json, dict):
        raise PredictionOutputError(f"expected a JSON object, got {type(response_json).__name__}")

    predictions = response_json.get("predictions")
    if not predictions:
        raise EmptyPredictionError("the provider returned an empty prediction list")
    if not isinstance(predictions, list):
        raise PredictionOutputError("'predictions' is not a list")
    if len(predictions) > 1:
        logger.warning(f"Expected one prediction, got {len(predictions)}. Using the first.")

    prediction = predictions[0]
    if not isinstance(prediction, dict):
        raise PredictionOutputError("prediction is not an object")
    encoded = prediction.get(IMAGE_FIELD)
    if not isinstance(encoded, str) or not encoded:
        raise PredictionOutputError(f"field '{IMAGE_FIELD}' missing from prediction")

    try:
        image_bytes = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PredictionDecodeError(str(e)) from e

    mime_type = prediction.get(MIME_FIELD)
    if mime_type is None:
        mime_type = DEFAULT_MIME_TYPE
    elif not isinstance(mime_type, str):
        raise PredictionOutputError(f"field '{MIME_FIELD}' is not a string")
    return image_bytes, mime_type


def extension_for(mime_type: str) -> str:
    """
    Maps an output mime type to a file extension. Only image types are honoured,
    anything else is stored as .png so /uploads never serves provider markup.
    """
    if not isinstance(mime_type, str):
        return ".png"
    base_type = mime_type.split(";", 1)[0].strip().lower()
    return IMAGE_EXTENSIONS.get(base_type, ".png")

# --- Clients ---

class PredictionClient:
    """
    Calls a hosted image model's predict endpoint over HTTPS.
    """

    def __init__(self, endpoint: str, access_token: str, timeout: float = 60.0):
        if not endpoint:
            raise PredictionClientError("no predict endpoint configured")
        if not access_token:
            raise PredictionClientError("no access token configured (AI_ACCESS_TOKEN)")
        self.endpoint = endpoint
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json; charset=utf-8",
        }

    def modify_image(self, image_bytes: bytes, prompt: str) -> tuple[bytes, str]:
        payload = build_prediction_payload(image_bytes, prompt)
        logger.debug(f"PREDICT: endpoint='{self.endpoint}', prompt='{prompt[:70]}', image={len(image_bytes)} bytes")

        try:
            response = requests.post(self.endpoint, headers=self.headers, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise PredictionRequestError(f"request timed out after {self.timeout}s") from e
        except requests.exceptions.HTTPError as e:
            body = e.response.text[:300] if e.response is not None else ""
            status_code = e.response.status_code if e.response is not None else "?"
            raise PredictionRequestError(f"provider returned status {status_code}: {body}") from e
        except requests.exceptions.RequestException as e:
            raise PredictionRequestError(str(e)) from e

        try:
            response_json = response.json()
        except ValueError as e:
            raise PredictionOutputError(f"response is not valid JSON: {e}") from e

        image, mime_type = extract_image(response_json)
        logger.info(f"Prediction succeeded: {len(image)} bytes ({mime_type})")
        return image, mime_type


class MockPredictionClient:
    """
    Returns the source image unchanged. Used when USE_MOCK_AI is set.
    """

    def modify_image(self, image_bytes: bytes, prompt: str) -> tuple[bytes, str]:
        logger.debug(f"MOCK AI: echoing {len(image_bytes)} bytes for prompt '{prompt[:70]}'")
        return image_bytes, DEFAULT_MIME_TYPE


def predict_url(settings: Settings) -> Optional[str]:
    if settings.ai_endpoint:
        return settings.ai_endpoint
    if not settings.ai_project_id:
        return None
    return PREDICT_URL_TEMPLATE.format(
        region=settings.ai_region,
        project=settings.ai_project_id,
        model=settings.ai_model,
    )


def create_prediction_client(settings: Settings):
    """
    Builds the client selected by the settings.
    Raises PredictionClientError when the provider is not configured.
    """
    if settings.use_mock_ai:
        logger.info("--- Using MOCKED AI client ---")
        return MockPredictionClient()

    endpoint = predict_url(settings)
    if endpoint is None:
        raise PredictionClientError("no AI_PROJECT_ID or AI_ENDPOINT configured")
    return PredictionClient(endpoint, settings.ai_access_token or "", timeout=settings.ai_timeout_seconds)
