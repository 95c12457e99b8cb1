"""Pixel transform pipeline: fetch a remote image and apply ImageParams."""

from pixelserve.transform.fetcher import ImageFetcher
from pixelserve.transform.processor import ImageProcessor

__all__ = ["ImageFetcher", "ImageProcessor"]
