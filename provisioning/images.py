"""
Resolves the base machine image for EC2 instances.

Image selection is an external lookup; nothing here computes an image id.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any

import boto3

from config.settings import settings

logger = logging.getLogger(__name__)


class ImageLookup(ABC):
    @abstractmethod
    def latest_image_id(self) -> str:
        """Image id (or a deploy-time reference to one) for new instances."""


class SsmImageLookup(ImageLookup):
    """Reads the public SSM parameter for the latest Amazon Linux 2023 image at synthesis time."""

    def __init__(self, client: Any | None = None, parameter: str | None = None) -> None:
        self.client = client or boto3.client("ssm", region_name=settings.aws.region)
        self.parameter = parameter or settings.compute.image_parameter
        self._image_id: str | None = None
        self._lock = threading.Lock()

    def latest_image_id(self) -> str:
        # Resolved once per synthesis so every instance gets the same image
        with self._lock:
            if self._image_id is None:
                response = self.client.get_parameter(Name=self.parameter)
                self._image_id = response["Parameter"]["Value"]
                logger.info("Resolved %s to %s", self.parameter, self._image_id)
            return self._image_id


class SsmDynamicReference(ImageLookup):
    """Defers resolution to CloudFormation with an `ssm` dynamic reference."""

    def __init__(self, parameter: str | None = None) -> None:
        self.parameter = parameter or settings.compute.image_parameter

    def latest_image_id(self) -> str:
        return f"{{{{resolve:ssm:{self.parameter}}}}}"


class StaticImageLookup(ImageLookup):
    """Pinned image id."""

    def __init__(self, image_id: str) -> None:
        self.image_id = image_id

    def latest_image_id(self) -> str:
        return self.image_id
